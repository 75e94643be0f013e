"""
PDB file access on top of pdbparse.

pdbparse does the MSF and CodeView decoding. This module opens the file,
classifies failures into ``PdbFileState`` and reduces the global symbol and
type streams to what symbol resolution needs: RVAs for the globals and
struct layouts for the named structures.
"""

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import construct
import pdbparse

from ..error_handling import PdbError, PdbFileState, ErrorContext, create_error
from .identity import format_guid

logger = logging.getLogger(__name__)

PDB_VERSION_VC70 = 20000404
TPI_VERSIONS = (19990903, 20040203)     # V70, V80

STRUCT_LEAVES = ("LF_STRUCTURE", "LF_CLASS")

# Raised by pdbparse and construct on truncated or inconsistent data
FORMAT_ERRORS = (construct.ConstructError, struct.error, ValueError, IndexError, EOFError)


class IdentityOmap(object):
    """Stands in for the OMAP stream when the image was not rewritten"""

    def remap(self, address):
        return address


@dataclass
class GlobalSymbol:
    """A global symbol already converted to an RVA"""
    name: str
    rva: int


@dataclass
class StructMember:
    name: str
    offset: int


@dataclass
class StructType:
    name: str
    size: int
    members: List[StructMember] = field(default_factory=list)


def _number(value) -> int:
    # Enum-decoded fields keep their integer in ``intvalue``
    return int(getattr(value, 'intvalue', value))


def _remap(omap, address: int) -> Optional[int]:
    """Map an address through OMAP, None when the code was eliminated"""
    try:
        address = omap.remap(address)
    except IndexError:
        # past the last OMAP entry
        return None
    return address or None


class PdbFile:
    """
    A loaded PDB file.

    ``load()`` opens the file and validates the info and DBI streams; the
    symbol and type streams are decoded on demand by ``global_variables()``
    and ``structures()``.
    """

    def __init__(self):
        self.path: Optional[Path] = None
        self.version: Optional[int] = None
        self.age: Optional[int] = None
        self._guid: Optional[str] = None
        self._pdb = None

    @property
    def loaded(self) -> bool:
        return self.path is not None

    @property
    def guid(self) -> Optional[str]:
        """Identity guid text (GUID + DBI age) recorded in the file"""
        if self._guid is None:
            return None
        return self._guid + str(self.age)

    def _fail(self, state: PdbFileState, reason: str, stream: Optional[str] = None,
              original: Optional[Exception] = None) -> PdbError:
        error = create_error(
            state,
            context=ErrorContext(file=str(self.path), stream=stream),
            path=self.path,
            reason=reason
        )
        error.original_exception = original
        return error

    def load(self, path) -> None:
        """
        Open and validate a PDB file.

        Raises:
            PdbError: classified by ``state``
        """
        if self.loaded:
            raise create_error(
                PdbFileState.ALREADY_LOADED,
                context=ErrorContext(file=str(path)),
                path=path,
                reason=f"{self.path} already loaded"
            )

        self.path = Path(path)
        try:
            pdb = pdbparse.parse(str(self.path), fast_load=True)
        except OSError as e:
            raise self._fail(PdbFileState.ERR_FILE_OPEN, e.strerror or str(e), original=e) from e
        except FORMAT_ERRORS as e:
            raise self._fail(PdbFileState.INVALID_FILE, f"not an MSF 7.00 file: {e}", original=e) from e

        try:
            pdb.STREAM_PDB.load()
        except AttributeError as e:
            # PDB 2.00 containers carry no PDB 7 info stream
            raise self._fail(PdbFileState.UNSUPPORTED_VERSION, "not a PDB 7 container",
                             original=e) from e
        except FORMAT_ERRORS as e:
            raise self._fail(PdbFileState.INVALID_FILE, f"corrupt pdb stream: {e}",
                             stream="STREAM_PDB", original=e) from e
        info = pdb.STREAM_PDB
        version = _number(info.Version)
        if version < PDB_VERSION_VC70:
            raise self._fail(PdbFileState.UNSUPPORTED_VERSION, f"pdb stream version {version}",
                             stream="STREAM_PDB")

        try:
            pdb.STREAM_DBI.load()
        except construct.ConstError as e:
            raise self._fail(PdbFileState.UNSUPPORTED_VERSION, "old-style DBI header",
                             stream="STREAM_DBI", original=e) from e
        except FORMAT_ERRORS as e:
            raise self._fail(PdbFileState.INVALID_FILE, f"corrupt DBI stream: {e}",
                             stream="STREAM_DBI", original=e) from e
        pdb._update_names()

        guid = info.GUID
        self._guid = format_guid(guid.Data1, guid.Data2, guid.Data3, guid.Data4)
        self.version = version
        self.age = pdb.STREAM_DBI.DBIHeader.age
        self._pdb = pdb
        logger.debug(f"Loaded {self.path}: pdb version {version}, identity {self.guid}")

    def _stream(self, name: str, index: int):
        """
        Reload a stream with the class pdbparse registered for it.

        Returns:
            The loaded stream, or None when the DBI marks it absent
        """
        # absent streams are recorded as -1
        if index < 0:
            return None
        try:
            stream = getattr(self._pdb, name).reload()
            stream.load()
        except AttributeError:
            return None
        except FORMAT_ERRORS as e:
            raise self._fail(PdbFileState.INVALID_FILE, f"corrupt stream {index}: {e}",
                             stream=name, original=e) from e
        setattr(self._pdb, name, stream)
        return stream

    def _sections_and_omap(self):
        debug = self._pdb.STREAM_DBI.DBIDbgHeader
        omap = self._stream("STREAM_OMAP_FROM_SRC", debug.snOmapFromSrc)
        if omap is not None:
            sections = self._stream("STREAM_SECT_HDR_ORIG", debug.snSectionHdrOrig)
        else:
            omap = IdentityOmap()
            sections = self._stream("STREAM_SECT_HDR", debug.snSectionHdr)
        if sections is None:
            return None, omap
        return [section.VirtualAddress for section in sections.sections], omap

    def global_variables(self) -> List[GlobalSymbol]:
        """
        Global symbols keyed by RVA, first record per RVA wins.

        Raises:
            PdbError: If the global symbol stream is corrupt
        """
        sections, omap = self._sections_and_omap()
        if sections is None:
            logger.warning(f"{self.path} has no section headers, skipping symbols")
            return []

        gsyms = self._stream("STREAM_GSYM", self._pdb.STREAM_DBI.DBIHeader.symrecStream)
        if gsyms is None:
            return []

        symbols: Dict[int, GlobalSymbol] = {}
        for sym in gsyms.globals:
            if getattr(sym, 'offset', None) is None:
                continue
            if not 0 < sym.segment <= len(sections):
                continue
            rva = _remap(omap, sections[sym.segment - 1] + sym.offset)
            if rva is None:
                continue
            if rva not in symbols:
                symbols[rva] = GlobalSymbol(name=sym.name, rva=rva)
        return list(symbols.values())

    def structures(self) -> List[StructType]:
        """
        Named structure layouts from the TPI stream.

        Raises:
            PdbError: If the TPI stream is corrupt or of an unknown version
        """
        tpi = self._pdb.STREAM_TPI
        try:
            tpi.load()
        except FORMAT_ERRORS as e:
            raise self._fail(PdbFileState.INVALID_FILE, f"corrupt TPI stream: {e}",
                             stream="STREAM_TPI", original=e) from e

        version = _number(tpi.header.version)
        if version not in TPI_VERSIONS:
            raise self._fail(PdbFileState.UNSUPPORTED_VERSION, f"tpi stream version {version}",
                             stream="STREAM_TPI")

        strucs: Dict[str, StructType] = {}
        for index in sorted(tpi.types):
            leaf = tpi.types[index]
            if leaf.leaf_type not in STRUCT_LEAVES or leaf.prop.fwdref:
                continue
            if not leaf.name or leaf.name in strucs:
                continue
            strucs[leaf.name] = StructType(name=leaf.name, size=leaf.size,
                                           members=self._members(tpi, leaf.fieldlist))
        return list(strucs.values())

    @staticmethod
    def _members(tpi, fieldlist) -> List[StructMember]:
        """Data members of a field list, following LF_INDEX continuations"""
        members: List[StructMember] = []
        seen = set()
        while fieldlist is not None and id(fieldlist) not in seen:
            seen.add(id(fieldlist))
            following = None
            for entry in getattr(fieldlist, 'substructs', ()):
                if entry.leaf_type == "LF_MEMBER":
                    members.append(StructMember(name=entry.name, offset=entry.offset))
                elif entry.leaf_type == "LF_INDEX":
                    following = entry.index
            if isinstance(following, int):
                following = tpi.types.get(following)
            fieldlist = following
        return members
