"""Core value types shared by the symbol subsystem"""
from dataclasses import dataclass
from enum import Enum


class Walk(Enum):
    """Visitor verdict for enumerations that support early exit"""
    NEXT = "next"
    STOP = "stop"


@dataclass(frozen=True)
class Span:
    """A range of guest virtual memory"""
    addr: int
    size: int

    @property
    def end(self) -> int:
        return self.addr + self.size

    def contains(self, other: 'Span') -> bool:
        """True if ``other`` lies entirely inside this span"""
        return self.addr <= other.addr and other.end <= self.end

    def __str__(self) -> str:
        return f"0x{self.addr:x}+0x{self.size:x}"


@dataclass(frozen=True)
class Identity:
    """Debug identity of a loaded module: pdb file name plus GUID/age text"""
    name: str
    guid: str


@dataclass(frozen=True)
class Offset:
    """Nearest symbol at or before an address, and the distance from it"""
    symbol: str
    delta: int

    def __str__(self) -> str:
        if not self.delta:
            return self.symbol
        return f"{self.symbol}+0x{self.delta:x}"
