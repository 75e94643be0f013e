"""Backend selection for symbol sources"""
import logging
from typing import Callable, Dict, Optional

from ..config import SymbolConfig
from ..models import Identity
from .base import SymbolSource
from .pdb import make_pdb

logger = logging.getLogger(__name__)

Factory = Callable[[str, str, Optional[SymbolConfig]], Optional[SymbolSource]]

BACKENDS: Dict[str, Factory] = {
    "pdb": make_pdb,
}


def register_backend(name: str, factory: Factory) -> None:
    """Make an additional debug-format backend selectable by name"""
    if name in BACKENDS:
        logger.warning(f"Replacing symbol backend: {name}")
    BACKENDS[name] = factory


def make_symbols(module: str, guid: str, backend: str = "pdb",
                 config: Optional[SymbolConfig] = None) -> Optional[SymbolSource]:
    """
    Build a symbol source for a module with the selected backend.

    Returns:
        The source, or None if the backend is unknown or cannot load it
    """
    factory = BACKENDS.get(backend)
    if factory is None:
        logger.error(f"Unknown symbol backend: {backend}")
        return None
    return factory(module, guid, config)


def load_symbols(identity: Identity, backend: str = "pdb",
                 config: Optional[SymbolConfig] = None) -> Optional[SymbolSource]:
    """Build a symbol source for an extracted module identity"""
    return make_symbols(identity.name, identity.guid, backend=backend, config=config)
