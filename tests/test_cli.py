"""Tests for the command-line front end"""
import pytest

from main import main, parse_address
from vmisym.config import SYMBOL_PATH_VARIABLE
from vmisym.error_handling import VmiSymError
from tests.conftest import CANONICAL_GUID, KERNEL_GUID, KERNEL_PDB, build_pe, kernel_writer, rsds_record
from tests.pdb_writer import PdbWriter


@pytest.fixture
def kernel_image(tmp_path):
    path = tmp_path / "ntoskrnl.exe"
    path.write_bytes(build_pe(rsds_record(KERNEL_PDB.encode()), decoy=rsds_record(b"decoy.pdb")))
    return path


@pytest.fixture
def store_args(symbol_store):
    return ["--symbol-path", str(symbol_store.root)]


def run(capsys, argv):
    code = main(argv)
    return code, capsys.readouterr().out


class TestIdentify:
    def test_identify(self, capsys, kernel_image):
        code, out = run(capsys, ["identify", str(kernel_image)])
        assert code == 0
        assert "PDB:  ntkrnlmp.pdb" in out
        assert f"GUID: {CANONICAL_GUID}3" in out

    def test_identify_without_locator_finds_decoy(self, capsys, kernel_image):
        code, out = run(capsys, ["identify", "--no-locator", str(kernel_image)])
        assert code == 0
        assert "decoy.pdb" in out

    def test_identify_raw_dump(self, capsys, tmp_path):
        path = tmp_path / "module.bin"
        path.write_bytes(b"\x00" * 0x40 + rsds_record(b"hal.pdb"))
        code, out = run(capsys, ["identify", "--mapped", "--base", "0x10000", str(path)])
        assert code == 0
        assert "hal.pdb" in out

    def test_identify_missing_file(self, capsys, tmp_path):
        code, _ = run(capsys, ["identify", str(tmp_path / "absent.exe")])
        assert code == 1

    def test_identify_no_record(self, capsys, tmp_path):
        path = tmp_path / "empty.bin"
        path.write_bytes(b"\x00" * 0x100)
        code, out = run(capsys, ["identify", "--mapped", str(path)])
        assert code == 1
        assert "No pdb identity" in out


class TestPdbCommands:
    def test_lookup(self, capsys, store_args):
        code, out = run(capsys, store_args + ["lookup", KERNEL_PDB, KERNEL_GUID, "PsActiveProcessHead"])
        assert code == 0
        assert "PsActiveProcessHead = 0x3010" in out

    def test_lookup_unknown(self, capsys, store_args):
        code, out = run(capsys, store_args + ["lookup", KERNEL_PDB, KERNEL_GUID, "psactiveprocesshead"])
        assert code == 1
        assert "Unknown symbol" in out

    def test_find(self, capsys, store_args):
        code, out = run(capsys, store_args + ["find", KERNEL_PDB, KERNEL_GUID, "0x1050"])
        assert code == 0
        assert "0x1050 = KiSystemCall64+0x10" in out

    def test_find_before_first_symbol(self, capsys, store_args):
        code, _ = run(capsys, store_args + ["find", KERNEL_PDB, KERNEL_GUID, "16"])
        assert code == 1

    def test_find_bad_address(self, capsys, store_args):
        code, _ = run(capsys, store_args + ["find", KERNEL_PDB, KERNEL_GUID, "nowhere"])
        assert code == 1

    def test_struct(self, capsys, store_args):
        code, out = run(capsys, store_args + ["struct", KERNEL_PDB, KERNEL_GUID, "_LIST_ENTRY"])
        assert code == 0
        assert "_LIST_ENTRY (0x10 bytes, 2 fields)" in out
        assert "+0x0008  Blink" in out

    def test_struct_fields_differing_in_case(self, capsys, tmp_path):
        target = tmp_path / "flags.pdb" / KERNEL_GUID
        target.mkdir(parents=True)
        writer = PdbWriter()
        writer.add_struct("_S", 8, [("flags", 0), ("Flags", 4)])
        writer.write(target / "flags.pdb")

        code, out = run(capsys, ["--symbol-path", str(tmp_path), "struct", "flags.pdb", KERNEL_GUID, "_S"])
        assert code == 0
        assert "+0x0000  flags" in out
        assert "+0x0004  Flags" in out

    def test_structs(self, capsys, store_args):
        code, out = run(capsys, store_args + ["structs", KERNEL_PDB, KERNEL_GUID])
        assert code == 0
        assert "3 structure(s)" in out

    def test_member(self, capsys, store_args):
        code, out = run(capsys, store_args + ["member", KERNEL_PDB, KERNEL_GUID, "_EPROCESS", "activeprocesslinks"])
        assert code == 0
        assert "= 0x2e8" in out

    def test_symbols_filter_and_limit(self, capsys, store_args):
        code, out = run(capsys, store_args + ["symbols", KERNEL_PDB, KERNEL_GUID, "--filter", "ps"])
        assert code == 0
        assert "2 symbol(s)" in out

        code, out = run(capsys, store_args + ["symbols", KERNEL_PDB, KERNEL_GUID, "--limit", "1"])
        assert "KiSystemCall64" in out
        assert "1 symbol(s)" in out

    def test_missing_store(self, capsys, monkeypatch):
        monkeypatch.delenv(SYMBOL_PATH_VARIABLE, raising=False)
        code, _ = run(capsys, ["lookup", KERNEL_PDB, KERNEL_GUID, "NtCreateFile"])
        assert code == 1

    def test_store_from_environment(self, capsys, monkeypatch, symbol_store):
        monkeypatch.setenv(SYMBOL_PATH_VARIABLE, str(symbol_store.root))
        code, out = run(capsys, ["lookup", KERNEL_PDB, KERNEL_GUID, "NtCreateFile"])
        assert code == 0
        assert "0x1200" in out


class TestResolve:
    def test_resolve(self, capsys, tmp_path, kernel_image):
        store = tmp_path / "store"
        target = store / KERNEL_PDB / (CANONICAL_GUID + "3")
        target.mkdir(parents=True)
        kernel_writer().write(target / KERNEL_PDB)

        code, out = run(capsys, ["--symbol-path", str(store), "resolve", str(kernel_image),
                                 "0x1050", "0x140003018", "0x10", "--absolute"])
        assert code == 0
        assert "KiSystemCall64" not in out
        assert "PsActiveProcessHead+0x8" in out

    def test_resolve_relative(self, capsys, tmp_path, kernel_image):
        store = tmp_path / "store"
        target = store / KERNEL_PDB / (CANONICAL_GUID + "3")
        target.mkdir(parents=True)
        kernel_writer().write(target / KERNEL_PDB)

        code, out = run(capsys, ["--symbol-path", str(store), "resolve", str(kernel_image), "0x1050"])
        assert code == 0
        assert "KiSystemCall64+0x10" in out


def test_no_command(capsys):
    assert main([]) == 1


def test_parse_address():
    assert parse_address("0x10") == 16
    assert parse_address("42") == 42
    with pytest.raises(VmiSymError):
        parse_address("forty")
