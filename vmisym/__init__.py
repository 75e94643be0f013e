"""vmisym - debug-symbol resolution for virtual-machine introspection"""

from .__version__ import __version__
from .models import Identity, Offset, Span, Walk

__all__ = ['__version__', 'Identity', 'Offset', 'Span', 'Walk']
