from __future__ import annotations

import io
from typing import BinaryIO

from .constants import COPY_CHUNK_BLOCKS
from .geometry import blocks_to_bytes


_ZERO_CHUNK = 8192


def store_length(f: BinaryIO) -> int:
    return f.seek(0, io.SEEK_END)


def read_blocks(f: BinaryIO, offset: int, count: int) -> bytes:
    """Read ``count`` blocks starting at block ``offset``.

    Blocks past the end of the store read as zeros, so the result is
    always exactly ``count`` blocks long.
    """
    length = blocks_to_bytes(count)
    f.seek(blocks_to_bytes(offset))
    buf = bytearray(length)
    view = memoryview(buf)
    got = 0
    while got < length:
        n = f.readinto(view[got:])
        if not n:
            break
        got += n
    return bytes(buf)


def write_zeros(f: BinaryIO, nbytes: int) -> None:
    while nbytes > 0:
        n = min(nbytes, _ZERO_CHUNK)
        f.write(b"\x00" * n)
        nbytes -= n


def write_padded(f: BinaryIO, offset: int, data: bytes, capacity: int) -> None:
    """Write ``data`` at block ``offset`` and zero-fill the rest of ``capacity`` blocks."""
    f.seek(blocks_to_bytes(offset))
    f.write(data)
    write_zeros(f, blocks_to_bytes(capacity) - len(data))


def extend_to(f: BinaryIO, blocks: int) -> None:
    """Zero-extend the store to at least ``blocks`` blocks."""
    target = blocks_to_bytes(blocks)
    end = store_length(f)
    if target > end:
        write_zeros(f, target - end)


def move_blocks_down(f: BinaryIO, src: int, dst: int, count: int, chunk_blocks: int = COPY_CHUNK_BLOCKS) -> None:
    """Copy ``count`` blocks from ``src`` to ``dst`` where ``dst <= src``.

    Copies low-to-high in bounded chunks; with the destination at or below
    the source a chunk never overwrites source blocks not yet read.
    """
    if dst > src:
        raise ValueError("move_blocks_down requires dst <= src")
    if dst == src or count == 0:
        return
    done = 0
    while done < count:
        n = min(chunk_blocks, count - done)
        data = read_blocks(f, src + done, n)
        f.seek(blocks_to_bytes(dst + done))
        f.write(data)
        done += n
