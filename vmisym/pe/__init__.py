"""PE helpers package"""

from .debug_directory import find_debug_codeview, PEFILE_AVAILABLE

__all__ = ['find_debug_codeview', 'PEFILE_AVAILABLE']
