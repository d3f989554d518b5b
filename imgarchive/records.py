from __future__ import annotations

import logging
import struct
from typing import BinaryIO, List, Sequence, Tuple

from .constants import (
    ENTRY_RECORD_SIZE,
    NAME_FIELD_SIZE,
    VER1,
    VER2,
    VER2_HEADER_SIZE,
    VER2_MAGIC,
)
from .entries import Entry
from .errors import EntryNameError, ImgFormatError


log = logging.getLogger(__name__)

# Entry record (fixed 32 bytes)
# struct: <I I 24s
#  - offset u32 (blocks)
#  - size u32 (blocks)
#  - name[24] (NUL padded)
_ENTRY_STRUCT = struct.Struct("<II24s")
_VER2_HDR_STRUCT = struct.Struct("<4sI")

assert _ENTRY_STRUCT.size == ENTRY_RECORD_SIZE
assert _VER2_HDR_STRUCT.size == VER2_HEADER_SIZE


def encode_name(name: str) -> bytes:
    try:
        raw = name.encode("latin-1")
    except UnicodeEncodeError:
        raise EntryNameError(f"Entry name is not single-byte encodable: {name!r}")
    if len(raw) > NAME_FIELD_SIZE:
        raise EntryNameError(f"Entry name does not fit the {NAME_FIELD_SIZE}-byte field: {name!r}")
    return raw.ljust(NAME_FIELD_SIZE, b"\x00")


def decode_name(field: bytes) -> str:
    # Bytes after the first NUL are leftovers from older names
    return field.split(b"\x00", 1)[0].decode("latin-1")


def pack_entry(entry: Entry) -> bytes:
    return _ENTRY_STRUCT.pack(entry.offset, entry.size, encode_name(entry.name))


def unpack_entry(raw: bytes) -> Entry:
    offset, size, name = _ENTRY_STRUCT.unpack(raw)
    return Entry(offset=offset, size=size, name=decode_name(name))


def table_bytes(version: int, count: int) -> int:
    """Bytes occupied by the header region holding ``count`` records."""
    n = count * ENTRY_RECORD_SIZE
    if version == VER2:
        n += VER2_HEADER_SIZE
    return n


def sniff_version(f: BinaryIO) -> int:
    """Guess the container generation from the first four bytes of ``f``.

    The stream position is restored afterwards. Anything without the VER2
    magic, including a stream shorter than four bytes, is VER1.
    """
    pos = f.tell()
    try:
        head = f.read(len(VER2_MAGIC))
    finally:
        f.seek(pos)
    return VER2 if head == VER2_MAGIC else VER1


def read_table(f: BinaryIO) -> Tuple[int, List[Entry]]:
    """
    Parse the entry table from the header-bearing stream.

    Returns ``(version, entries)`` with entries in ascending-offset order.
    A VER2 stream carries its own count. A VER1 stream is a bare record
    list read until end-of-stream. A short trailing remainder at the very
    end is ignored. An empty stream is an empty VER1 table.
    """
    f.seek(0)
    head = f.read(len(VER2_MAGIC))
    if not head:
        return VER1, []
    if len(head) < len(VER2_MAGIC):
        raise ImgFormatError("Premature end of file")

    entries: List[Entry] = []
    if head == VER2_MAGIC:
        version = VER2
        raw = f.read(4)
        if len(raw) != 4:
            raise ImgFormatError("Premature end of file")
        (count,) = struct.unpack("<I", raw)
        for i in range(count):
            rec = f.read(ENTRY_RECORD_SIZE)
            if len(rec) != ENTRY_RECORD_SIZE:
                raise ImgFormatError(f"Premature end of file in entry record {i} of {count}")
            entries.append(unpack_entry(rec))
    else:
        version = VER1
        f.seek(0)
        while True:
            rec = f.read(ENTRY_RECORD_SIZE)
            if not rec:
                break
            if len(rec) != ENTRY_RECORD_SIZE:
                if f.read(1):
                    raise ImgFormatError(
                        f"Input isn't divided into {ENTRY_RECORD_SIZE}-byte records. Is this really a VER1 DIR file?"
                    )
                log.warning("Ignoring %d trailing byte(s) at end of directory", len(rec))
                break
            entries.append(unpack_entry(rec))

    if any(b.offset < a.offset for a, b in zip(entries, entries[1:])):
        log.debug("Entry table not in offset order; sorting %d entries", len(entries))
        entries.sort(key=lambda e: e.offset)
    return version, entries


def write_table(f: BinaryIO, version: int, entries: Sequence[Entry]) -> int:
    """Write the header region at the start of ``f``; returns bytes written.

    VER1 has no stored count, so the directory stream is truncated to the
    records just written.
    """
    buf = bytearray()
    if version == VER2:
        buf += _VER2_HDR_STRUCT.pack(VER2_MAGIC, len(entries))
    for e in entries:
        buf += pack_entry(e)
    f.seek(0)
    f.write(buf)
    if version == VER1:
        f.truncate(len(buf))
    f.flush()
    return len(buf)


def empty_ver2_header() -> bytes:
    return _VER2_HDR_STRUCT.pack(VER2_MAGIC, 0)
