"""Tests for the PE debug directory locator and mapped image reader"""
import pytest

from vmisym.error_handling import ReadError
from vmisym.models import Identity, Span
from vmisym.pe import find_debug_codeview
from vmisym.reader import BufferReader, FileReader, MappedImageReader
from vmisym.symbols.identity import identify_pdb
from tests.conftest import CANONICAL_GUID, build_pe, rsds_record

BASE = 0xfffff80000000000


@pytest.fixture
def image():
    return build_pe(rsds_record(b"ntkrnlmp.pdb"), decoy=rsds_record(b"decoy.pdb"))


class TestFindDebugCodeview:
    def test_locates_codeview(self, image):
        reader = BufferReader(image, BASE)
        codeview = find_debug_codeview(reader, reader.span)
        assert codeview == Span(BASE + 0x1040, len(rsds_record(b"ntkrnlmp.pdb")))

    def test_not_a_pe(self):
        reader = BufferReader(b"\x00" * 0x2000, BASE)
        assert find_debug_codeview(reader, reader.span) is None

    def test_unreadable_headers(self):
        reader = BufferReader(b"", BASE)
        assert find_debug_codeview(reader, Span(BASE, 0x2000)) is None

    def test_directory_outside_span(self, image):
        reader = BufferReader(image, BASE)
        assert find_debug_codeview(reader, Span(BASE, 0x1000)) is None


class TestIdentifyWithLocator:
    def test_locator_skips_decoy(self, image):
        reader = BufferReader(image, BASE)
        identity = identify_pdb(reader.span, reader)
        assert identity == Identity("ntkrnlmp.pdb", CANONICAL_GUID + "3")

    def test_full_scan_finds_decoy_first(self, image):
        reader = BufferReader(image, BASE)
        assert identify_pdb(reader.span, reader, locator=None).name == "decoy.pdb"

    def test_non_pe_module_is_scanned(self):
        data = b"\x00" * 0x80 + rsds_record(b"driver.pdb")
        reader = BufferReader(data, BASE)
        assert identify_pdb(reader.span, reader).name == "driver.pdb"


class TestMappedImageReader:
    def test_maps_at_image_base(self, tmp_path, image):
        path = tmp_path / "ntoskrnl.exe"
        path.write_bytes(image)

        reader = MappedImageReader.from_file(str(path))
        assert reader.base == 0x140000000
        assert reader.span.size == 0x2000
        assert identify_pdb(reader.span, reader).name == "ntkrnlmp.pdb"

    def test_explicit_base(self, tmp_path, image):
        path = tmp_path / "ntoskrnl.exe"
        path.write_bytes(image)

        reader = MappedImageReader.from_file(str(path), base=BASE)
        assert reader.read_all(BASE, 2) == b"MZ"

    def test_not_a_pe(self, tmp_path):
        path = tmp_path / "garbage.bin"
        path.write_bytes(b"\x00" * 64)
        with pytest.raises(ReadError):
            MappedImageReader.from_file(str(path))


class TestReaders:
    def test_buffer_reader_bounds(self):
        reader = BufferReader(bytes(range(16)), 0x1000)
        assert reader.read_all(0x1004, 4) == bytes([4, 5, 6, 7])
        assert reader.read_all(0x0fff, 2) is None
        assert reader.read_all(0x100e, 4) is None

    def test_read_u64(self):
        reader = BufferReader(bytes(range(16)), 0x1000)
        assert reader.read(0x1000) == 0x0706050403020100
        assert reader.read(0x100c) is None

    def test_file_reader(self, tmp_path):
        path = tmp_path / "dump.bin"
        path.write_bytes(b"\xaa" * 8 + rsds_record(b"dump.pdb"))
        reader = FileReader(str(path), base=0x2000)
        assert reader.read_all(0x2000, 2) == b"\xaa\xaa"
        assert reader.read_all(0x1fff, 2) is None
        assert identify_pdb(reader.span, reader, locator=None).name == "dump.pdb"
