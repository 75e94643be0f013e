"""Interned string storage and sorted-index helpers"""
from typing import Callable, Dict, Iterator, Sequence, TypeVar

T = TypeVar('T')
K = TypeVar('K')


class StringArena:
    """
    Append-only buffer of NUL-terminated names.

    ``intern()`` returns the byte offset of the stored run. Offsets stay valid
    for the arena's whole lifetime; after ``freeze()`` the buffer is immutable
    bytes and ``arena[ref]`` returns the name stored at ``ref``.
    """

    def __init__(self):
        self._data = bytearray()
        self._frozen = None
        self._strings: Dict[int, bytes] = {}

    @property
    def frozen(self) -> bool:
        return self._frozen is not None

    def intern(self, name: bytes) -> int:
        if self._frozen is not None:
            raise RuntimeError("cannot intern into a frozen arena")
        if b'\x00' in name:
            name = name.split(b'\x00', 1)[0]
        ref = len(self._data)
        self._data += name
        self._data.append(0)
        return ref

    def freeze(self) -> None:
        """Stop growth and build the name table with a single scan"""
        if self._frozen is not None:
            return
        self._frozen = bytes(self._data)
        self._data = bytearray()

        strings = {}
        ref = 0
        end = len(self._frozen)
        while ref < end:
            nul = self._frozen.index(b'\x00', ref)
            strings[ref] = self._frozen[ref:nul]
            ref = nul + 1
        self._strings = strings

    def __getitem__(self, ref: int) -> bytes:
        return self._strings[ref]

    def __len__(self) -> int:
        return len(self._strings)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._strings.values())

    @property
    def nbytes(self) -> int:
        if self._frozen is not None:
            return len(self._frozen)
        return len(self._data)


def lower_bound(seq: Sequence[T], value: K, key: Callable[[T], K]) -> int:
    """Index of the first item whose key is not less than ``value``"""
    lo, hi = 0, len(seq)
    while lo < hi:
        mid = (lo + hi) // 2
        if key(seq[mid]) < value:
            lo = mid + 1
        else:
            hi = mid
    return lo


def upper_bound(seq: Sequence[T], value: K, key: Callable[[T], K]) -> int:
    """Index of the first item whose key is greater than ``value``"""
    lo, hi = 0, len(seq)
    while lo < hi:
        mid = (lo + hi) // 2
        if value < key(seq[mid]):
            hi = mid
        else:
            lo = mid + 1
    return lo


def ascii_iequal(a: bytes, b: bytes) -> bool:
    """Length-equal comparison with ASCII-only case folding"""
    return len(a) == len(b) and a.lower() == b.lower()
