"""
Symbol source capability.

Every debug-format backend exposes the same query surface so instrumentation
code never depends on the concrete format behind a module.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional, Tuple

from ..models import Offset, Walk

OnName = Callable[[str], None]
OnSymbol = Callable[[str, int], Optional[Walk]]


class SymbolSource(ABC):
    """
    Read-only symbol and structure-layout queries for one loaded module.

    Implementations are immutable once returned by their factory and must be
    safe to query concurrently without locking.
    """

    @abstractmethod
    def id(self) -> str:
        """Return the identity guid text this source was loaded for."""
        pass

    @abstractmethod
    def symbol_offset(self, symbol: str) -> Optional[int]:
        """
        Resolve a symbol name to its module-relative offset.

        Args:
            symbol: Exact, case-sensitive symbol name

        Returns:
            Offset, or None if no symbol has that name
        """
        pass

    @abstractmethod
    def list_symbols(self, on_symbol: OnSymbol) -> bool:
        """
        Visit every symbol in ascending offset order.

        ``on_symbol(name, offset)`` may return ``Walk.STOP`` to end the walk.

        Returns:
            True once the enumeration ran
        """
        pass

    @abstractmethod
    def struc_names(self, on_struc: OnName) -> None:
        """Visit every structure name in name order."""
        pass

    @abstractmethod
    def struc_size(self, struc: str) -> Optional[int]:
        """Return the byte size of a structure, or None if unknown."""
        pass

    @abstractmethod
    def struc_members(self, struc: str, on_member: OnName) -> None:
        """Visit the field names of a structure in declaration order."""
        pass

    @abstractmethod
    def struc_fields(self, struc: str) -> Iterator[Tuple[str, int]]:
        """Yield ``(name, offset)`` for every field in declaration order."""
        pass

    @abstractmethod
    def member_offset(self, struc: str, member: str) -> Optional[int]:
        """
        Return the offset of a structure field.

        The structure name must match exactly; the field name is compared
        without regard to ASCII case.
        """
        pass

    @abstractmethod
    def find_symbol(self, offset: int) -> Optional[Offset]:
        """
        Resolve an offset to the nearest symbol at or before it.

        Returns:
            Symbol name and distance, or None if the offset precedes every
            known symbol
        """
        pass
