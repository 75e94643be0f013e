#!/usr/bin/env python3
"""
Debug directory locator for mapped PE images

Finds the CodeView blob referenced by a module's IMAGE_DEBUG_DIRECTORY so the
identity scan can be narrowed to a few dozen bytes instead of the whole image.

Author: vmisym Team
"""

import logging
import struct
from typing import Optional

try:
    import pefile
    PEFILE_AVAILABLE = True
except ImportError:
    PEFILE_AVAILABLE = False

from ..models import Span
from ..reader import Reader

logger = logging.getLogger(__name__)

HEADER_SIZE = 0x1000
DEBUG_ENTRY_SIZE = 28
IMAGE_DEBUG_TYPE_CODEVIEW = 2
# Characteristics, TimeDateStamp, MajorVersion, MinorVersion, Type,
# SizeOfData, AddressOfRawData, PointerToRawData
DEBUG_ENTRY_FORMAT = '<IIHHIIII'


def _debug_data_directory(headers: bytes):
    """Return (rva, size) of the debug data directory, or None"""
    try:
        pe = pefile.PE(data=headers, fast_load=True)
    except pefile.PEFormatError as e:
        logger.debug(f"Not a PE header: {e}")
        return None

    index = pefile.DIRECTORY_ENTRY['IMAGE_DIRECTORY_ENTRY_DEBUG']
    directories = pe.OPTIONAL_HEADER.DATA_DIRECTORY
    if len(directories) <= index:
        return None

    entry = directories[index]
    if not entry.VirtualAddress or not entry.Size:
        return None
    return entry.VirtualAddress, entry.Size


def find_debug_codeview(reader: Reader, span: Span) -> Optional[Span]:
    """
    Locate the CodeView debug record of a mapped PE module.

    Args:
        reader: Memory reader over the guest
        span: Span of the whole mapped module

    Returns:
        Span of the CodeView data, or None if the module has none or its
        headers cannot be read
    """
    if not PEFILE_AVAILABLE:
        logger.debug("pefile not installed, scanning full module span")
        return None

    headers = reader.read_all(span.addr, min(span.size, HEADER_SIZE))
    if headers is None:
        logger.debug(f"Unable to read PE headers at {span}")
        return None

    directory = _debug_data_directory(headers)
    if directory is None:
        return None

    rva, size = directory
    if not span.contains(Span(span.addr + rva, size)):
        logger.debug(f"Debug directory {rva:#x}+{size:#x} lies outside {span}")
        return None

    data = reader.read_all(span.addr + rva, size)
    if data is None:
        logger.debug(f"Unable to read debug directory at {span.addr + rva:#x}")
        return None

    for offset in range(0, len(data) - DEBUG_ENTRY_SIZE + 1, DEBUG_ENTRY_SIZE):
        fields = struct.unpack_from(DEBUG_ENTRY_FORMAT, data, offset)
        debug_type, size_of_data, address_of_raw_data = fields[4], fields[5], fields[6]
        if debug_type != IMAGE_DEBUG_TYPE_CODEVIEW:
            continue

        if not address_of_raw_data or not size_of_data:
            continue

        codeview = Span(span.addr + address_of_raw_data, size_of_data)
        if not span.contains(codeview):
            logger.debug(f"CodeView record {codeview} lies outside {span}")
            continue

        return codeview

    return None
