"""Debug-symbol resolution package"""

from .base import SymbolSource, OnName, OnSymbol
from .identity import identify_pdb, read_pdb
from .pdb import Pdb, make_pdb
from .factory import BACKENDS, register_backend, make_symbols, load_symbols

__all__ = [
    'SymbolSource',
    'OnName',
    'OnSymbol',
    'identify_pdb',
    'read_pdb',
    'Pdb',
    'make_pdb',
    'BACKENDS',
    'register_backend',
    'make_symbols',
    'load_symbols',
]
