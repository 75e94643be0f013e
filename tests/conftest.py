"""Shared fixtures: synthetic PE images, PDB files and symbol stores"""
import struct

import pytest

from vmisym.config import SymbolConfig
from vmisym.symbols.pdb import Pdb
from tests.pdb_writer import PdbWriter, member, continuation, base_class, one_method, nested_type, static_member

KERNEL_PDB = "ntkrnlmp.pdb"
# PdbWriter defaults: guid bytes 00..0f, age 1
KERNEL_GUID = "030201000504070608090A0B0C0D0E0F1"

# Data1=0x12345678 Data2=0x9ABC Data3=0xDEF0 Data4=00 11 22 33 44 55 66 77
RAW_GUID = bytes.fromhex("78563412BC9AF0DE0011223344556677")
CANONICAL_GUID = "123456789ABCDEF00011223344556677"


def rsds_record(name: bytes = b"ntkrnlmp.pdb", guid: bytes = RAW_GUID, age: int = 3) -> bytes:
    return b"RSDS" + guid + struct.pack("<I", age) + name + b"\x00"


def build_pe(codeview: bytes, decoy: bytes = b"", image_base: int = 0x140000000) -> bytes:
    """
    Build a PE32+ image whose file layout equals its mapped layout.

    One .rdata section at RVA 0x1000 holds the debug directory (at 0x1000)
    and the CodeView record (at 0x1040). ``decoy`` bytes are placed in the
    header page at 0x400, outside the debug directory.
    """
    image = bytearray(0x2000)
    image[0:2] = b"MZ"
    struct.pack_into("<I", image, 0x3c, 0x80)

    image[0x80:0x84] = b"PE\x00\x00"
    struct.pack_into("<HHIIIHH", image, 0x84, 0x8664, 1, 0, 0, 0, 0xf0, 0x22)

    optional = 0x98
    struct.pack_into("<HBBIIIII", image, optional, 0x20b, 14, 0, 0, 0x1000, 0, 0, 0x1000)
    struct.pack_into("<QIIHHHHHHIIIIHHQQQQII", image, optional + 24,
                     image_base, 0x1000, 0x1000, 6, 0, 0, 0, 6, 0, 0,
                     0x2000, 0x1000, 0, 3, 0x8160,
                     0x100000, 0x1000, 0x100000, 0x1000, 0, 16)
    directories = optional + 112
    # IMAGE_DIRECTORY_ENTRY_DEBUG
    struct.pack_into("<II", image, directories + 6 * 8, 0x1000, 28)

    section = optional + 0xf0
    struct.pack_into("<8sIIIIIIHHI", image, section, b".rdata", 0x1000, 0x1000, 0x1000, 0x1000,
                     0, 0, 0, 0, 0x40000040)

    image[0x400:0x400 + len(decoy)] = decoy

    struct.pack_into("<IIHHIIII", image, 0x1000, 0, 0, 0, 0, 2, len(codeview), 0x1040, 0x1040)
    image[0x1040:0x1040 + len(codeview)] = codeview
    return bytes(image)


def kernel_writer() -> PdbWriter:
    """A small kernel-like pdb: a few globals and structures"""
    writer = PdbWriter()
    writer.add_public("KiSystemCall64", 1, 0x40)
    writer.add_public("NtCreateFile", 1, 0x200)
    writer.add_public("PsActiveProcessHead", 2, 0x10)
    writer.add_public("PsLoadedModuleList", 2, 0x20)
    # same RVA as the first public, dropped
    writer.add_public("KiSystemCall64Alias", 1, 0x40)
    # segment out of range, dropped
    writer.add_public("Orphan", 9, 0x10)

    writer.add_forward_ref("_EPROCESS")
    writer.add_struct("_EPROCESS", 0x500, [("UniqueProcessId", 0x2e0), ("ActiveProcessLinks", 0x2e8)])
    writer.add_struct("_LIST_ENTRY", 0x10, [("Flink", 0), ("Blink", 8)])
    # a later duplicate definition is ignored
    writer.add_struct("_LIST_ENTRY", 0x20, [("Other", 0)])

    tail = writer.add_field_list([member("Tail", 0x18), member("BigOffset", 0x12345)])
    head = writer.add_field_list([
        base_class(0, 0x1000),
        member("Head", 0),
        one_method("Method"),
        one_method("Virtual", attr=3 | (4 << 2), vbase=8),
        nested_type("Nested"),
        static_member("Static"),
        member("Middle", 0x10),
        continuation(tail),
    ])
    writer.add_struct("_KTHREAD", 0x430, fields=head, kind=0x1504)
    return writer


@pytest.fixture
def symbol_store(tmp_path):
    """A symbol store containing the kernel pdb at root/module/guid/module"""
    target = tmp_path / KERNEL_PDB / KERNEL_GUID
    target.mkdir(parents=True)
    kernel_writer().write(target / KERNEL_PDB)
    return SymbolConfig(root=tmp_path)


@pytest.fixture
def kernel_pdb(symbol_store):
    pdb = Pdb(symbol_store.pdb_path(KERNEL_PDB, KERNEL_GUID), KERNEL_GUID)
    assert pdb.setup()
    return pdb


@pytest.fixture
def scenario_a():
    pdb = Pdb("unused.pdb", "GUID1")
    pdb.add_symbol("Alpha", 0x1000)
    pdb.add_symbol("Beta", 0x2000)
    pdb.freeze()
    return pdb


@pytest.fixture
def scenario_b():
    pdb = Pdb("unused.pdb", "GUID1")
    pdb.add_struc("_EPROCESS", 0x500, [("UniqueProcessId", 0x2e0), ("ActiveProcessLinks", 0x2e8)])
    pdb.freeze()
    return pdb
