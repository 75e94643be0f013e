"""
Memory-reading capabilities.

The hypervisor layer supplies its own ``Reader``; the implementations below
serve images already copied out of the guest (dumps, on-disk PE files) and
the test-suite.
"""

import logging
import struct
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

try:
    import pefile
    PEFILE_AVAILABLE = True
except ImportError:
    PEFILE_AVAILABLE = False

from .error_handling import ReadError, ErrorContext
from .models import Span

logger = logging.getLogger(__name__)


class Reader(ABC):
    """
    Opaque, possibly failing byte source over guest virtual memory.
    """

    @abstractmethod
    def read_all(self, addr: int, size: int) -> Optional[bytes]:
        """
        Read exactly ``size`` bytes at ``addr``.

        Returns:
            The bytes, or None if any part of the range is unreadable
        """
        pass

    def read(self, addr: int) -> Optional[int]:
        """Read a little-endian 8-byte value at ``addr``"""
        data = self.read_all(addr, 8)
        if data is None:
            return None
        return struct.unpack('<Q', data)[0]


class BufferReader(Reader):
    """Reader over an in-memory copy of a region starting at ``base``"""

    def __init__(self, data: bytes, base: int = 0):
        self.data = bytes(data)
        self.base = base

    @property
    def span(self) -> Span:
        return Span(self.base, len(self.data))

    def read_all(self, addr: int, size: int) -> Optional[bytes]:
        if size < 0:
            return None
        start = addr - self.base
        if start < 0 or start + size > len(self.data):
            return None
        return self.data[start:start + size]


class FileReader(Reader):
    """Reader over a raw memory dump file mapped at ``base``"""

    def __init__(self, path: str, base: int = 0):
        self.path = Path(path)
        self.base = base
        self.size = self.path.stat().st_size

    @property
    def span(self) -> Span:
        return Span(self.base, self.size)

    def read_all(self, addr: int, size: int) -> Optional[bytes]:
        start = addr - self.base
        if size < 0 or start < 0 or start + size > self.size:
            return None
        try:
            with open(self.path, 'rb') as f:
                f.seek(start)
                data = f.read(size)
        except OSError as e:
            logger.warning(f"Read of {size:#x} bytes at {addr:#x} from {self.path} failed: {e}")
            return None
        if len(data) != size:
            return None
        return data


class MappedImageReader(BufferReader):
    """
    Reader over a PE file laid out the way the loader maps it.
    """

    @classmethod
    def from_file(cls, path: str, base: Optional[int] = None) -> 'MappedImageReader':
        """
        Map an on-disk PE file into its in-memory layout.

        Args:
            path: PE file path
            base: Load address, defaults to the image's preferred ImageBase

        Raises:
            ReadError: If pefile is missing or the file is not a PE image
        """
        if not PEFILE_AVAILABLE:
            raise ReadError("pefile not installed. Run: pip install pefile")

        try:
            pe = pefile.PE(path, fast_load=True)
        except (OSError, pefile.PEFormatError) as e:
            raise ReadError(
                f"Cannot map PE image: {path}",
                context=ErrorContext(file=str(path)),
                original_exception=e
            ) from e

        try:
            image = pe.get_memory_mapped_image()
            image_base = pe.OPTIONAL_HEADER.ImageBase
        finally:
            pe.close()

        if base is None:
            base = image_base
        logger.debug(f"Mapped {path} at {base:#x} ({len(image):#x} bytes)")
        return cls(image, base)
