"""
PDB-backed symbol database.

A ``Pdb`` is built in two phases. Ingest interns every name into one
``StringArena`` and records symbols, structures and members as small
entries referencing the arena by byte offset. Freeze stops the arena, turns
every collection into a tuple and sorts the name indices. After ``setup()``
returns True the object never changes, so queries need no locking.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, NamedTuple, Optional, Tuple, Union

from ..config import SymbolConfig
from ..error_handling import PdbError, PdbFileState
from ..models import Offset, Walk
from .arena import StringArena, ascii_iequal, lower_bound, upper_bound
from .base import OnName, OnSymbol, SymbolSource
from .msf import PdbFile

logger = logging.getLogger(__name__)

Name = Union[str, bytes]


class SymbolEntry(NamedTuple):
    name_ref: int
    offset: int


class StructEntry(NamedTuple):
    name_ref: int
    size: int
    first: int
    last: int


class MemberEntry(NamedTuple):
    name_ref: int
    offset: int


def _encode(name: Name) -> bytes:
    if isinstance(name, bytes):
        return name
    return name.encode('utf-8', errors='surrogateescape')


def _decode(name: bytes) -> str:
    return name.decode('utf-8', errors='surrogateescape')


class Pdb(SymbolSource):
    """Symbol database loaded from one PDB file"""

    def __init__(self, filename, guid: str):
        self.filename = Path(filename)
        self.guid = guid
        self._arena = StringArena()
        self._symbols: List[SymbolEntry] = []
        self._by_name: List[int] = []
        self._by_offset: List[int] = []
        self._strucs: List[StructEntry] = []
        self._members: List[MemberEntry] = []
        self._frozen = False
        self.state: Optional[PdbFileState] = None

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def symbol_count(self) -> int:
        return len(self._symbols)

    @property
    def struc_count(self) -> int:
        return len(self._strucs)

    def setup(self) -> bool:
        """
        Parse the PDB file and freeze the indices.

        Returns:
            True on success; on failure the object must be discarded
        """
        if self._frozen:
            return self.state is PdbFileState.OK

        pdb = PdbFile()
        try:
            pdb.load(self.filename)
            symbols = pdb.global_variables()
            strucs = pdb.structures()
        except PdbError as e:
            self.state = e.state
            logger.error(f"unable to open pdb {self.filename}: {e.state.value}")
            logger.debug(e.message)
            return False

        if pdb.guid != self.guid:
            logger.warning(f"{self.filename} records identity {pdb.guid}, expected {self.guid}")

        for symbol in symbols:
            self.add_symbol(symbol.name, symbol.rva)
        for struc in strucs:
            self.add_struc(struc.name, struc.size, ((m.name, m.offset) for m in struc.members))
        self.freeze()
        self.state = PdbFileState.OK

        logger.info(f"Loaded {self.symbol_count} symbols and {self.struc_count} structures "
                    f"from {self.filename}")
        return True

    def _check_building(self) -> None:
        if self._frozen:
            raise RuntimeError("symbol database is frozen")

    def _offset_of(self, index: int) -> int:
        return self._symbols[index].offset

    def add_symbol(self, name: Name, offset: int) -> None:
        """Ingest one symbol; the offset index stays sorted as entries arrive"""
        self._check_building()
        index = len(self._symbols)
        self._symbols.append(SymbolEntry(self._arena.intern(_encode(name)), offset))
        self._by_name.append(index)
        position = upper_bound(self._by_offset, offset, key=self._offset_of)
        self._by_offset.insert(position, index)

    def add_struc(self, name: Name, size: int, members: Iterable[Tuple[Name, int]]) -> None:
        """Ingest one structure and its fields in declaration order"""
        self._check_building()
        name_ref = self._arena.intern(_encode(name))
        first = len(self._members)
        for member, offset in members:
            self._members.append(MemberEntry(self._arena.intern(_encode(member)), offset))
        self._strucs.append(StructEntry(name_ref, size, first, len(self._members)))

    def freeze(self) -> None:
        """End ingestion: freeze storage and sort the name indices"""
        if self._frozen:
            return
        self._arena.freeze()
        strings = self._arena

        self._symbols = tuple(self._symbols)
        self._members = tuple(self._members)
        self._by_offset = tuple(self._by_offset)
        self._by_name = tuple(sorted(self._by_name, key=lambda i: strings[self._symbols[i].name_ref]))
        self._strucs = tuple(sorted(self._strucs, key=lambda s: strings[s.name_ref]))
        self._frozen = True

    def _name_of(self, index: int) -> bytes:
        return self._arena[self._symbols[index].name_ref]

    def _find_symbol_index(self, name: bytes) -> Optional[int]:
        position = lower_bound(self._by_name, name, key=self._name_of)
        if position == len(self._by_name):
            return None
        index = self._by_name[position]
        if self._name_of(index) != name:
            return None
        return index

    def _find_struc(self, name: Name) -> Optional[StructEntry]:
        name = _encode(name)
        position = lower_bound(self._strucs, name, key=lambda s: self._arena[s.name_ref])
        if position == len(self._strucs):
            return None
        struc = self._strucs[position]
        if self._arena[struc.name_ref] != name:
            return None
        return struc

    def id(self) -> str:
        return self.guid

    def symbol_offset(self, symbol: str) -> Optional[int]:
        index = self._find_symbol_index(_encode(symbol))
        if index is None:
            return None
        return self._symbols[index].offset

    def list_symbols(self, on_symbol: OnSymbol) -> bool:
        for index in self._by_offset:
            entry = self._symbols[index]
            if on_symbol(_decode(self._arena[entry.name_ref]), entry.offset) is Walk.STOP:
                break
        return True

    def struc_names(self, on_struc: OnName) -> None:
        for struc in self._strucs:
            on_struc(_decode(self._arena[struc.name_ref]))

    def struc_size(self, struc: str) -> Optional[int]:
        entry = self._find_struc(struc)
        if entry is None:
            return None
        return entry.size

    def struc_members(self, struc: str, on_member: OnName) -> None:
        entry = self._find_struc(struc)
        if entry is None:
            return
        for member in self._members[entry.first:entry.last]:
            on_member(_decode(self._arena[member.name_ref]))

    def struc_fields(self, struc: str) -> Iterator[Tuple[str, int]]:
        entry = self._find_struc(struc)
        if entry is None:
            return
        for member in self._members[entry.first:entry.last]:
            yield _decode(self._arena[member.name_ref]), member.offset

    def member_offset(self, struc: str, member: str) -> Optional[int]:
        entry = self._find_struc(struc)
        if entry is None:
            return None
        target = _encode(member)
        for candidate in self._members[entry.first:entry.last]:
            if ascii_iequal(target, self._arena[candidate.name_ref]):
                return candidate.offset
        return None

    def _cursor(self, index: int, offset: int) -> Offset:
        entry = self._symbols[index]
        return Offset(_decode(self._arena[entry.name_ref]), offset - entry.offset)

    def find_symbol(self, offset: int) -> Optional[Offset]:
        order = self._by_offset
        # first entry at or above offset
        position = lower_bound(order, offset, key=self._offset_of)
        if position == len(order):
            if not order:
                return None
            return self._cursor(order[-1], offset)

        if self._offset_of(order[position]) == offset:
            return self._cursor(order[position], offset)

        if position == 0:
            return None

        # strictly greater, step back to the previous symbol
        return self._cursor(order[position - 1], offset)


def make_pdb(module: str, guid: str, config: Optional[SymbolConfig] = None) -> Optional[Pdb]:
    """
    Open ``root / module / guid / module`` from the configured symbol store.

    Args:
        module: Pdb file name from the module identity
        guid: Identity guid text
        config: Symbol store; resolved from the environment when omitted

    Returns:
        A ready database, or None if no store is configured or parsing fails
    """
    if config is None:
        config = SymbolConfig.from_env()
    if not config.configured:
        logger.debug(f"No symbol store configured, skipping {module}")
        return None

    pdb = Pdb(config.pdb_path(module, guid), guid)
    if not pdb.setup():
        return None
    return pdb
