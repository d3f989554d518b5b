from __future__ import annotations

import logging
from typing import BinaryIO, List

from .blockio import read_blocks, write_padded
from .constants import VER1
from .entries import Entry, EntryTable
from .geometry import blocks_to_bytes, bytes_to_blocks
from .records import table_bytes


log = logging.getLogger(__name__)


class HeaderLayout:
    """Tracks the block range reserved for the entry table.

    The table sits at the front of the header-bearing store. For VER2 that
    is also the data store, so growing the table may collide with entry
    payloads; ``reserve`` moves such entries to the data end before the
    table is allowed to grow over them.
    """

    def __init__(self, version: int, reserved_blocks: int):
        self.version = version
        self.reserved_blocks = reserved_blocks

    def occupied_blocks(self, table: EntryTable) -> int:
        """Blocks in front of the first entry's payload.

        Zero for VER1 (the table lives in the separate directory store) and
        for an empty table.
        """
        if self.version == VER1:
            return 0
        first = table.first()
        return first.offset if first is not None else 0

    def minimum_blocks(self, count: int) -> int:
        return bytes_to_blocks(table_bytes(self.version, count))

    def data_end(self, table: EntryTable) -> int:
        return table.data_end(self.reserved_blocks)

    def reserve(self, table: EntryTable, store: BinaryIO, num_entries: int) -> List[Entry]:
        """
        Make room for a table of ``num_entries`` records.

        Entries whose payload starts inside the grown table region are read,
        removed and re-appended one at a time at the data end, keeping their
        relative order. Nothing else in the store is touched. Returns the
        relocated entries with their new offsets.
        """
        needed = table_bytes(self.version, num_entries)
        reserved = blocks_to_bytes(self.occupied_blocks(table))
        self.reserved_blocks = bytes_to_blocks(needed)

        if reserved == 0 or needed <= reserved:
            return []

        # Ascending offsets: the colliding entries are a prefix of the table
        movers: List[Entry] = []
        for e in table:
            if e.byte_offset >= needed:
                break
            movers.append(e)
        if not movers:
            return []

        log.debug(
            "Header grows to %d block(s) for %d entries; relocating %d entr%s",
            self.reserved_blocks,
            num_entries,
            len(movers),
            "y" if len(movers) == 1 else "ies",
        )
        moved: List[Entry] = []
        for e in movers:
            data = read_blocks(store, e.offset, e.size)
            table.remove(e.name)
            # Never land inside the grown table region, even when every entry moved
            new = table.insert(e.moved_to(max(self.reserved_blocks, self.data_end(table))))
            write_padded(store, new.offset, data, new.size)
            log.debug("Relocated %s: block %d -> %d (%d block(s))", e.name, e.offset, new.offset, e.size)
            moved.append(new)
        return moved
