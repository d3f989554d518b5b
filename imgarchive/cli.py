from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from imgarchive.archive import ImgArchive
from imgarchive.constants import (
    BLOCK_SIZE,
    MODE_READ_WRITE,
    VER1,
    VER2,
    VERSION_NAMES,
)
from imgarchive.errors import ImgArchiveError, ImgFormatError
from imgarchive.geometry import blocks_to_bytes
from imgarchive.transfer import extract_all, import_file


def cmd_create(archive: str, *, version: int = VER2, quiet: bool = False) -> bool:
    """Create an empty archive.

    Args:
        archive: Output path (.img; VER1 also creates the companion .dir).
        version: VER1 or VER2.
        quiet: Suppress the summary line.
    """
    with ImgArchive.create(archive, version=version) as arc:
        arc.sync()
    if not quiet:
        print(f"Created {VERSION_NAMES[version]} archive: {archive}")
    return True


def cmd_list(archive: str) -> bool:
    """List archive entries as offset, size (blocks) and name."""
    try:
        with ImgArchive.open(archive) as arc:
            entries = arc.entries
    except ImgFormatError as e:
        print(
            f"Error: {e}\nHint: a VER1 archive needs both its .dir and .img files side by side.",
            file=sys.stderr,
        )
        sys.exit(2)
    for e in entries:
        print(f"{e.offset}\t{e.size}\t{e.name}")
    return True


def cmd_info(archive: str) -> bool:
    """Show archive information."""
    with ImgArchive.open(archive) as arc:
        used = sum(e.size for e in arc.entries)
        end = arc.data_end
        holes = end - arc.reserved_blocks - used if arc.entries else 0
        print(f"Archive: {archive}")
        print(f"  Version: {VERSION_NAMES.get(arc.version, arc.version)}")
        print(f"  Entries: {arc.entry_count}")
        print(f"  Header blocks: {arc.header_reserved_size}")
        print(f"  Size: {arc.size} blocks ({blocks_to_bytes(arc.size)} bytes)")
        print(f"  Used data blocks: {used}")
        print(f"  Unused blocks: {max(holes, 0)}")
    return True


def cmd_extract(archive: str, *, outdir: str = ".", names: Optional[List[str]] = None, quiet: bool = False) -> bool:
    """Extract entries to a directory.

    Args:
        archive: Path to an .img or .dir file.
        outdir: Destination directory (created if missing).
        names: Entry names to extract; all entries when empty.
        quiet: Only print the summary.
    """
    with ImgArchive.open(archive) as arc:
        written = extract_all(arc, outdir, names=names)
    if not quiet:
        for p in written:
            print(f"extracted: {os.path.basename(p)}")
    print(f"Extracted {len(written)} entr{'y' if len(written) == 1 else 'ies'} to {outdir}")
    return True


def cmd_add(archive: str, inputs: List[str], *, quiet: bool = False) -> bool:
    """Import local files, replacing entries with the same name."""
    with ImgArchive.open(archive, MODE_READ_WRITE) as arc:
        for path in inputs:
            entry = import_file(arc, path)
            if not quiet:
                print(f"added: {entry.name} ({entry.size} block(s) at {entry.offset})")
        arc.sync()
    return True


def cmd_remove(archive: str, names: List[str]) -> bool:
    """Remove entries; returns False when any name was missing."""
    ok = True
    with ImgArchive.open(archive, MODE_READ_WRITE) as arc:
        for name in names:
            if arc.remove_entry(name):
                print(f"removed: {name}")
            else:
                print(f"Warning: no entry named {name}", file=sys.stderr)
                ok = False
        arc.sync()
    return ok


def cmd_rename(archive: str, old_name: str, new_name: str) -> bool:
    with ImgArchive.open(archive, MODE_READ_WRITE) as arc:
        arc.rename_entry(old_name, new_name)
        arc.sync()
    print(f"renamed: {old_name} -> {new_name}")
    return True


def cmd_pack(archive: str) -> bool:
    """Defragment the archive and report the size change."""
    with ImgArchive.open(archive, MODE_READ_WRITE) as arc:
        before = arc.size
        arc.pack()
        arc.sync()
        after = arc.size
    print(f"Packed: {before} -> {after} blocks ({(before - after) * BLOCK_SIZE} bytes reclaimed)")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="imgarchive",
        description="IMG archive tool (VER1 .dir/.img pairs and VER2 .img files)",
        epilog="Offsets and sizes are shown in 2048-byte blocks.",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Log engine activity to stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_create = sub.add_parser("create", help="Create an empty archive")
    ap_create.add_argument("archive", help="Output .img path")
    ap_create.add_argument("--ver1", action="store_true", help="Create a VER1 .dir/.img pair instead of VER2")
    ap_create.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path (.img or .dir)")

    ap_info = sub.add_parser("info", help="Show archive information")
    ap_info.add_argument("archive", help="Archive path (.img or .dir)")

    ap_extract = sub.add_parser("extract", help="Extract entries")
    ap_extract.add_argument("archive", help="Archive path (.img or .dir)")
    ap_extract.add_argument("names", nargs="*", help="Entry names to extract (default: all)")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_add = sub.add_parser("add", help="Add files (replacing entries with the same name)")
    ap_add.add_argument("archive", help="Archive path (.img or .dir)")
    ap_add.add_argument("inputs", nargs="+", help="Files to add")
    ap_add.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_remove = sub.add_parser("remove", help="Remove entries (space is reclaimed by 'pack')")
    ap_remove.add_argument("archive", help="Archive path (.img or .dir)")
    ap_remove.add_argument("names", nargs="+", help="Entry names")

    ap_rename = sub.add_parser("rename", help="Rename an entry")
    ap_rename.add_argument("archive", help="Archive path (.img or .dir)")
    ap_rename.add_argument("old_name", help="Current entry name")
    ap_rename.add_argument("new_name", help="New entry name (max 23 characters)")

    ap_pack = sub.add_parser("pack", help="Defragment the archive")
    ap_pack.add_argument("archive", help="Archive path (.img or .dir)")

    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    try:
        if args.cmd == "create":
            cmd_create(args.archive, version=VER1 if args.ver1 else VER2, quiet=args.quiet)
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "info":
            cmd_info(args.archive)
        elif args.cmd == "extract":
            cmd_extract(args.archive, outdir=args.outdir, names=args.names, quiet=args.quiet)
        elif args.cmd == "add":
            cmd_add(args.archive, args.inputs, quiet=args.quiet)
        elif args.cmd == "remove":
            success = cmd_remove(args.archive, args.names)
            sys.exit(0 if success else 1)
        elif args.cmd == "rename":
            cmd_rename(args.archive, args.old_name, args.new_name)
        elif args.cmd == "pack":
            cmd_pack(args.archive)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ImgArchiveError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
