#!/usr/bin/env python3
"""
vmisym - debug-symbol resolution for VM introspection

A command-line front end over the symbol subsystem: identify the pdb of a
module image, then resolve names, addresses and structure layouts from a
local symbol store.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from vmisym.config import SymbolConfig
from vmisym.error_handling import (
    InputError, ErrorContext, create_error, get_error_handler, handle_gracefully
)
from vmisym.models import Walk
from vmisym.pe import find_debug_codeview
from vmisym.reader import FileReader, MappedImageReader
from vmisym.symbols import identify_pdb, load_symbols, make_symbols


def parse_address(value: str) -> int:
    """Parse a decimal or 0x-prefixed address"""
    try:
        return int(value, 0)
    except ValueError:
        raise create_error("invalid_address", value=value) from None


def open_image(args):
    """Return (reader, span) for the image named on the command line"""
    path = Path(args.image)
    if not path.is_file():
        raise InputError(f"File not found: {path}", context=ErrorContext(file=str(path)))

    if args.mapped:
        base = parse_address(args.base) if args.base else 0
        reader = FileReader(str(path), base)
    else:
        base = parse_address(args.base) if args.base else None
        reader = MappedImageReader.from_file(str(path), base)
    return reader, reader.span


def symbol_config(args) -> SymbolConfig:
    if args.symbol_path:
        return SymbolConfig(root=Path(args.symbol_path))
    return SymbolConfig.from_env()


def open_symbols(args):
    config = symbol_config(args)
    config.require_root()
    symbols = make_symbols(args.module, args.guid, config=config)
    if symbols is None:
        print(f"❌ No symbols for {args.module} {args.guid}", file=sys.stderr)
    return symbols


@handle_gracefully
def cmd_identify(args) -> int:
    reader, span = open_image(args)
    locator = None if args.no_locator else find_debug_codeview
    identity = identify_pdb(span, reader, locator=locator)
    if identity is None:
        print(f"❌ No pdb identity found in {args.image}")
        return 1

    print(f"🔍 Module: {args.image}")
    print(f"   PDB:  {identity.name}")
    print(f"   GUID: {identity.guid}")
    return 0


@handle_gracefully
def cmd_resolve(args) -> int:
    reader, span = open_image(args)
    identity = identify_pdb(span, reader)
    if identity is None:
        print(f"❌ No pdb identity found in {args.image}")
        return 1

    config = symbol_config(args)
    config.require_root()
    symbols = load_symbols(identity, config=config)
    if symbols is None:
        print(f"❌ No symbols for {identity.name} {identity.guid}")
        return 1

    for value in args.addresses:
        offset = parse_address(value)
        if args.absolute:
            offset -= span.addr
        cursor = symbols.find_symbol(offset)
        print(f"  0x{offset:08x}  {cursor if cursor is not None else '?'}")
    return 0


@handle_gracefully
def cmd_symbols(args) -> int:
    symbols = open_symbols(args)
    if symbols is None:
        return 1

    shown = []

    def on_symbol(name: str, offset: int) -> Optional[Walk]:
        if args.filter and args.filter.lower() not in name.lower():
            return Walk.NEXT
        print(f"  0x{offset:08x}  {name}")
        shown.append(name)
        if args.limit and len(shown) >= args.limit:
            return Walk.STOP
        return Walk.NEXT

    symbols.list_symbols(on_symbol)
    print(f"✓ {len(shown)} symbol(s)")
    return 0


@handle_gracefully
def cmd_lookup(args) -> int:
    symbols = open_symbols(args)
    if symbols is None:
        return 1

    offset = symbols.symbol_offset(args.name)
    if offset is None:
        print(f"❌ Unknown symbol: {args.name}")
        return 1
    print(f"{args.name} = 0x{offset:x}")
    return 0


@handle_gracefully
def cmd_find(args) -> int:
    symbols = open_symbols(args)
    if symbols is None:
        return 1

    offset = parse_address(args.offset)
    cursor = symbols.find_symbol(offset)
    if cursor is None:
        print(f"❌ No symbol at or before 0x{offset:x}")
        return 1
    print(f"0x{offset:x} = {cursor}")
    return 0


@handle_gracefully
def cmd_struct(args) -> int:
    symbols = open_symbols(args)
    if symbols is None:
        return 1

    size = symbols.struc_size(args.name)
    if size is None:
        print(f"❌ Unknown structure: {args.name}")
        return 1

    fields = list(symbols.struc_fields(args.name))
    print(f"📋 {args.name} (0x{size:x} bytes, {len(fields)} fields)")
    for member, offset in fields:
        print(f"  +0x{offset:04x}  {member}")
    return 0


@handle_gracefully
def cmd_structs(args) -> int:
    symbols = open_symbols(args)
    if symbols is None:
        return 1

    names: List[str] = []
    symbols.struc_names(names.append)
    for name in names:
        print(f"  {name}")
    print(f"✓ {len(names)} structure(s)")
    return 0


@handle_gracefully
def cmd_member(args) -> int:
    symbols = open_symbols(args)
    if symbols is None:
        return 1

    offset = symbols.member_offset(args.struct, args.field)
    if offset is None:
        print(f"❌ Unknown field: {args.struct}.{args.field}")
        return 1
    print(f"{args.struct}.{args.field} = 0x{offset:x}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vmisym',
        description='🔍 vmisym - debug-symbol resolution for VM introspection',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
📖 QUICK START:

  Identify the pdb of a module:
    vmisym identify ntoskrnl.exe
    vmisym identify --mapped --base 0xfffff80000000000 kernel.dmp

  Resolve addresses (store from _NT_SYMBOL_PATH or --symbol-path):
    vmisym resolve ntoskrnl.exe 0x2050 0x5000

  Query a pdb directly:
    vmisym lookup ntkrnlmp.pdb <GUID> PsActiveProcessHead
    vmisym find ntkrnlmp.pdb <GUID> 0x2050
    vmisym struct ntkrnlmp.pdb <GUID> _EPROCESS
    vmisym member ntkrnlmp.pdb <GUID> _EPROCESS activeprocesslinks

📁 SYMBOL STORE LAYOUT:

  <root>/<pdb name>/<GUID><age>/<pdb name>
        """
    )
    parser.add_argument('--symbol-path', metavar='PATH',
                        help='Symbol store root (default: from _NT_SYMBOL_PATH)')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')

    commands = parser.add_subparsers(dest='command', metavar='COMMAND')

    def image_command(name: str, help_text: str):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument('image', help='PE file, or raw mapped dump with --mapped')
        sub.add_argument('--mapped', action='store_true',
                         help='Image is already in its in-memory layout')
        sub.add_argument('--base', metavar='ADDR', help='Load address of the image')
        return sub

    identify = image_command('identify', 'Print the pdb identity of a module image')
    identify.add_argument('--no-locator', action='store_true',
                          help='Scan the whole image instead of the debug directory')
    identify.set_defaults(func=cmd_identify)

    resolve = image_command('resolve', 'Symbolicate addresses inside a module image')
    resolve.add_argument('addresses', nargs='+', metavar='ADDR', help='Module-relative offsets')
    resolve.add_argument('--absolute', action='store_true',
                         help='Addresses are absolute; subtract the image base')
    resolve.set_defaults(func=cmd_resolve)

    def pdb_command(name: str, help_text: str):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument('module', help='Pdb file name, e.g. ntkrnlmp.pdb')
        sub.add_argument('guid', help='GUID followed by age')
        return sub

    symbols = pdb_command('symbols', 'List symbols in offset order')
    symbols.add_argument('--filter', metavar='TEXT', help='Case-insensitive name filter')
    symbols.add_argument('--limit', type=int, default=0, metavar='N', help='Stop after N symbols')
    symbols.set_defaults(func=cmd_symbols)

    lookup = pdb_command('lookup', 'Resolve a symbol name to its offset')
    lookup.add_argument('name')
    lookup.set_defaults(func=cmd_lookup)

    find = pdb_command('find', 'Resolve an offset to the nearest preceding symbol')
    find.add_argument('offset')
    find.set_defaults(func=cmd_find)

    struct = pdb_command('struct', 'Show a structure layout')
    struct.add_argument('name')
    struct.set_defaults(func=cmd_struct)

    structs = pdb_command('structs', 'List structure names')
    structs.set_defaults(func=cmd_structs)

    member = pdb_command('member', 'Resolve a structure field offset')
    member.add_argument('struct')
    member.add_argument('field')
    member.set_defaults(func=cmd_member)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the vmisym CLI"""
    parser = build_parser()
    args = parser.parse_args(argv)
    get_error_handler(debug_mode=args.debug)

    if not getattr(args, 'func', None):
        parser.print_help()
        return 1

    result = args.func(args)
    if result is None:
        return 1
    return result


if __name__ == '__main__':
    sys.exit(main())
