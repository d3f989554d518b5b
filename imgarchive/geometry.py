from __future__ import annotations

from .constants import BLOCK_SIZE


def blocks_to_bytes(blocks: int) -> int:
    return blocks * BLOCK_SIZE


def bytes_to_blocks(nbytes: int) -> int:
    """Round a byte count up to whole blocks."""
    if nbytes <= 0:
        return 0
    return -(-nbytes // BLOCK_SIZE)
