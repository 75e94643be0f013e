"""
Module debug identity extraction.

CodeView ``RSDS`` records are not delimited inside an image, so every match of
the signature is validated before it is trusted. A rejected candidate only
resumes the scan; extraction fails once the buffer is exhausted.
"""

import logging
import struct
from typing import Callable, Optional

from ..models import Identity, Span
from ..pe import find_debug_codeview
from ..reader import Reader

logger = logging.getLogger(__name__)

RSDS_MAGIC = b'RSDS'
GUID_SIZE = 16
AGE_SIZE = 4
NAME_OFFSET = len(RSDS_MAGIC) + GUID_SIZE + AGE_SIZE
# magic + guid + age + at least one name byte and its terminator
MIN_RECORD_SIZE = NAME_OFFSET + 2

Locator = Callable[[Reader, Span], Optional[Span]]


def _is_printable(data: bytes) -> bool:
    return all(0x20 <= c <= 0x7e for c in data)


def format_guid(data1: int, data2: int, data3: int, data4: bytes) -> str:
    """Upper-case hex of a GUID with its first three fields in big-endian order"""
    return (struct.pack('>IHH', data1, data2, data3) + bytes(data4)).hex().upper()


def read_pdb(data: bytes) -> Optional[Identity]:
    """
    Scan a buffer for the first valid RSDS record.

    Args:
        data: Raw bytes of a module image or of its CodeView blob

    Returns:
        Identity of the first record that passes validation, or None
    """
    size = len(data)
    start = 0
    while True:
        rsds = data.find(RSDS_MAGIC, start)
        if rsds < 0:
            logger.debug("Unable to find RSDS pattern in module")
            return None

        if size - rsds < MIN_RECORD_SIZE:
            logger.debug(f"Module is too small for pdb header at offset {rsds:#x}")
            return None

        name_start = rsds + NAME_OFFSET
        name_end = data.find(b'\x00', name_start)
        if name_end < 0:
            logger.debug(f"Missing null-terminating byte on pdb name at offset {rsds:#x}")
            start = rsds + 1
            continue

        name = data[name_start:name_end]
        if not name or not _is_printable(name):
            start = rsds + 1
            continue

        guid = format_guid(*struct.unpack_from('<IHH8s', data, rsds + 4))
        age = struct.unpack_from('<I', data, rsds + 4 + GUID_SIZE)[0]
        return Identity(name=name.decode('ascii'), guid=guid + str(age))


def identify_pdb(span: Span, reader: Reader,
                 locator: Optional[Locator] = find_debug_codeview) -> Optional[Identity]:
    """
    Recover the pdb identity of a loaded module.

    Args:
        span: Span of the mapped module
        reader: Memory reader over the guest
        locator: Optional helper narrowing the scan to the CodeView blob

    Returns:
        Identity, or None if the module is unreadable or carries no valid
        RSDS record
    """
    window = span
    if locator is not None:
        debug = locator(reader, span)
        if debug is not None:
            window = debug

    data = reader.read_all(window.addr, window.size)
    if data is None:
        logger.warning(f"Unable to read module span {window}")
        return None

    identity = read_pdb(data)
    if identity is None:
        logger.info(f"No pdb identity found in module {span}")
        return None

    logger.debug(f"Module {span} identified as {identity.name} {identity.guid}")
    return identity
