"""Symbol-store configuration resolved from the environment"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .error_handling import ConfigurationError

logger = logging.getLogger(__name__)

SYMBOL_PATH_VARIABLE = "_NT_SYMBOL_PATH"


def parse_symbol_path(value: str) -> Optional[Path]:
    """
    Extract the local symbol-store root from a symbol path setting.

    Accepts a plain directory, ``;``-separated lists and the debugger forms
    ``srv*<cache>*<url>`` and ``cache*<dir>``. The first local directory wins;
    bare server URLs are ignored, so
    ``srv*/srv/symbols*https://msdl.microsoft.com/download/symbols`` yields
    ``/srv/symbols``.
    """
    for element in value.split(';'):
        element = element.strip()
        if not element:
            continue

        if '*' not in element:
            if '://' in element:
                continue
            return Path(element)

        parts = [p.strip() for p in element.split('*')]
        kind = parts[0].lower()
        if kind in ('srv', 'symsrv', 'cache'):
            for part in parts[1:]:
                if part and '://' not in part and not part.lower().endswith('.dll'):
                    return Path(part)
    return None


@dataclass
class SymbolConfig:
    """Where debug-information files live"""
    root: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SymbolConfig':
        """Resolve the symbol-store root now, from ``_NT_SYMBOL_PATH``"""
        if environ is None:
            environ = os.environ
        value = environ.get(SYMBOL_PATH_VARIABLE)
        if not value:
            return cls()

        root = parse_symbol_path(value)
        if root is None:
            logger.debug(f"{SYMBOL_PATH_VARIABLE} has no local directory: {value}")
        return cls(root=root)

    @property
    def configured(self) -> bool:
        return self.root is not None

    def require_root(self) -> Path:
        if self.root is None:
            raise ConfigurationError(
                "No symbol store configured",
                suggestion=f"Set {SYMBOL_PATH_VARIABLE} or pass --symbol-path."
            )
        return self.root

    def pdb_path(self, module: str, guid: str) -> Path:
        """Expected location ``root / module / guid / module``"""
        return self.require_root() / module / guid / module
