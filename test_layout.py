from __future__ import annotations

import io
import struct
import unittest

from imgarchive.constants import BLOCK_SIZE, ENTRY_RECORD_SIZE, VER1, VER2
from imgarchive.entries import Entry, EntryTable, check_name
from imgarchive.errors import (
    DuplicateEntryError,
    EntryNameError,
    EntryNotFoundError,
    ImgFormatError,
    NameTooLongError,
)
from imgarchive.blockio import move_blocks_down
from imgarchive.geometry import blocks_to_bytes, bytes_to_blocks
from imgarchive.layout import HeaderLayout
from imgarchive.records import (
    decode_name,
    encode_name,
    pack_entry,
    read_table,
    sniff_version,
    table_bytes,
    unpack_entry,
    write_table,
)


def _fill_store(entries, fill_for=None) -> io.BytesIO:
    """Build a data store whose blocks carry a per-entry byte pattern."""
    store = io.BytesIO()
    for e in entries:
        store.seek(blocks_to_bytes(e.offset))
        marker = (fill_for or {}).get(e.name, bytes([ord(e.name[0])]))
        store.write(marker * blocks_to_bytes(e.size))
    return store


def _is_sorted(table: EntryTable) -> bool:
    offsets = [e.offset for e in table]
    return offsets == sorted(offsets)


class GeometryTests(unittest.TestCase):
    def test_block_conversions(self):
        self.assertEqual(blocks_to_bytes(0), 0)
        self.assertEqual(blocks_to_bytes(3), 3 * BLOCK_SIZE)
        self.assertEqual(bytes_to_blocks(0), 0)
        self.assertEqual(bytes_to_blocks(1), 1)
        self.assertEqual(bytes_to_blocks(2048), 1)
        self.assertEqual(bytes_to_blocks(2049), 2)
        for n in (0, 1, 7, 1000, 0xFFFFFFFF):
            self.assertEqual(bytes_to_blocks(blocks_to_bytes(n)), n)

    def test_no_overflow_on_large_counts(self):
        self.assertEqual(blocks_to_bytes(0xFFFFFFFF), 0xFFFFFFFF * 2048)


class BlockMoveTests(unittest.TestCase):
    def _numbered_store(self, blocks: int) -> io.BytesIO:
        return io.BytesIO(b"".join(bytes([i]) * BLOCK_SIZE for i in range(blocks)))

    def test_overlapping_move_across_several_chunks(self):
        store = self._numbered_store(13)
        before = store.getvalue()
        # 10 blocks shifted down by 2 in 3-block chunks: each chunk overlaps the next source range
        move_blocks_down(store, 3, 1, 10, chunk_blocks=3)
        data = store.getvalue()
        self.assertEqual(data[:BLOCK_SIZE], before[:BLOCK_SIZE])
        self.assertEqual(data[BLOCK_SIZE : 11 * BLOCK_SIZE], before[3 * BLOCK_SIZE : 13 * BLOCK_SIZE])
        self.assertEqual(data[11 * BLOCK_SIZE :], before[11 * BLOCK_SIZE :])

    def test_move_up_is_rejected(self):
        store = self._numbered_store(4)
        with self.assertRaises(ValueError):
            move_blocks_down(store, 1, 2, 1, chunk_blocks=3)


class RecordTests(unittest.TestCase):
    def test_entry_record_layout(self):
        raw = pack_entry(Entry(offset=7, size=3, name="player.dff"))
        self.assertEqual(len(raw), ENTRY_RECORD_SIZE)
        self.assertEqual(struct.unpack("<II", raw[:8]), (7, 3))
        self.assertEqual(raw[8:18], b"player.dff")
        self.assertEqual(raw[18:], b"\x00" * 14)
        self.assertEqual(unpack_entry(raw), Entry(offset=7, size=3, name="player.dff"))

    def test_name_decoding_stops_at_nul(self):
        field = b"abc\x00garbage" + b"\x00" * 12
        self.assertEqual(decode_name(field), "abc")
        self.assertEqual(encode_name("x" * 24), b"x" * 24)
        with self.assertRaises(EntryNameError):
            encode_name("x" * 25)

    def test_table_bytes(self):
        self.assertEqual(table_bytes(VER1, 3), 96)
        self.assertEqual(table_bytes(VER2, 3), 104)
        self.assertEqual(table_bytes(VER2, 0), 8)

    def test_sniff_restores_position(self):
        f = io.BytesIO(b"VER2\x00\x00\x00\x00")
        f.seek(2)
        self.assertEqual(sniff_version(f), VER2)
        self.assertEqual(f.tell(), 2)
        self.assertEqual(sniff_version(io.BytesIO(b"VE")), VER1)
        self.assertEqual(sniff_version(io.BytesIO(b"")), VER1)

    def test_ver2_write_then_read(self):
        entries = [Entry(1, 1, "a.txt"), Entry(2, 2, "B.txt"), Entry(4, 1, "c")]
        f = io.BytesIO()
        n = write_table(f, VER2, entries)
        self.assertEqual(n, 8 + 3 * 32)
        self.assertEqual(f.getvalue()[:8], b"VER2" + struct.pack("<I", 3))
        version, loaded = read_table(f)
        self.assertEqual(version, VER2)
        self.assertEqual(loaded, entries)

    def test_ver1_write_truncates_stale_records(self):
        f = io.BytesIO()
        write_table(f, VER1, [Entry(0, 1, "a"), Entry(1, 1, "b"), Entry(2, 1, "c")])
        write_table(f, VER1, [Entry(0, 1, "a")])
        self.assertEqual(len(f.getvalue()), 32)
        version, loaded = read_table(f)
        self.assertEqual(version, VER1)
        self.assertEqual(loaded, [Entry(0, 1, "a")])

    def test_ver1_trailing_remainder_tolerated(self):
        f = io.BytesIO()
        write_table(f, VER1, [Entry(0, 1, "a"), Entry(1, 2, "b")])
        f.seek(0, io.SEEK_END)
        f.write(b"\x01\x02\x03")
        with self.assertLogs("imgarchive.records", level="WARNING"):
            version, loaded = read_table(f)
        self.assertEqual(version, VER1)
        self.assertEqual([e.name for e in loaded], ["a", "b"])

    def test_empty_stream_is_empty_ver1(self):
        self.assertEqual(read_table(io.BytesIO()), (VER1, []))

    def test_premature_end(self):
        with self.assertRaises(ImgFormatError):
            read_table(io.BytesIO(b"VE"))
        with self.assertRaises(ImgFormatError):
            read_table(io.BytesIO(b"VER2" + struct.pack("<I", 2) + pack_entry(Entry(1, 1, "a"))))

    def test_unsorted_table_is_sorted_stably(self):
        entries = [Entry(5, 1, "late"), Entry(1, 1, "early"), Entry(3, 0, "mid0"), Entry(3, 2, "mid")]
        f = io.BytesIO()
        write_table(f, VER2, entries)
        _version, loaded = read_table(f)
        self.assertEqual([e.name for e in loaded], ["early", "mid0", "mid", "late"])


class EntryTableTests(unittest.TestCase):
    def test_case_insensitive_lookup_and_duplicates(self):
        t = EntryTable()
        t.insert(Entry(1, 1, "Player.DFF"))
        self.assertEqual(t.find("player.dff").name, "Player.DFF")
        self.assertIn("PLAYER.dff", t)
        self.assertIsNone(t.find("missing"))
        with self.assertRaises(DuplicateEntryError):
            t.insert(Entry(2, 1, "PLAYER.DFF"))

    def test_remove(self):
        t = EntryTable([Entry(1, 1, "a"), Entry(2, 1, "b")])
        self.assertTrue(t.remove("A"))
        self.assertFalse(t.remove("a"))
        self.assertEqual([e.name for e in t], ["b"])

    def test_rename_keeps_position_and_reindexes(self):
        t = EntryTable([Entry(1, 1, "a"), Entry(2, 1, "b"), Entry(3, 1, "c")])
        t.rename("B", "renamed")
        self.assertEqual([e.name for e in t], ["a", "renamed", "c"])
        self.assertIsNone(t.find("b"))
        self.assertEqual(t.find("RENAMED").offset, 2)
        # Case-only rename of the same entry is allowed
        t.rename("renamed", "Renamed")
        self.assertEqual(t.find("renamed").name, "Renamed")
        with self.assertRaises(DuplicateEntryError):
            t.rename("a", "C")
        with self.assertRaises(NameTooLongError):
            t.rename("a", "n" * 24)
        with self.assertRaises(EntryNotFoundError):
            t.rename("zzz", "yyy")

    def test_data_end(self):
        t = EntryTable()
        self.assertEqual(t.data_end(1), 1)
        self.assertEqual(t.data_end(4), 4)
        t.insert(Entry(1, 1, "a"))
        t.insert(Entry(2, 5, "b"))
        self.assertEqual(t.data_end(1), 7)
        self.assertTrue(_is_sorted(t))

    def test_check_name(self):
        self.assertEqual(check_name("a" * 23), b"a" * 23)
        with self.assertRaises(NameTooLongError):
            check_name("a" * 24)
        with self.assertRaises(EntryNameError):
            check_name("")
        with self.assertRaises(EntryNameError):
            check_name("bad\x00name")
        with self.assertRaises(EntryNameError):
            check_name("snow☃")


class HeaderLayoutTests(unittest.TestCase):
    def test_no_relocation_while_table_fits(self):
        entries = [Entry(1, 1, "a"), Entry(2, 1, "b")]
        t = EntryTable(entries)
        store = _fill_store(entries)
        before = store.getvalue()
        layout = HeaderLayout(VER2, 1)
        self.assertEqual(layout.reserve(t, store, 63), [])
        self.assertEqual(store.getvalue(), before)
        self.assertEqual(t.entries(), entries)

    def test_growth_relocates_colliding_prefix(self):
        entries = [Entry(1, 1, "a"), Entry(2, 1, "b"), Entry(3, 2, "c")]
        t = EntryTable(entries)
        store = _fill_store(entries)
        layout = HeaderLayout(VER2, 1)
        # 100 records + 8 bytes need 2 blocks: only "a" (block 1) collides
        moved = layout.reserve(t, store, 100)
        self.assertEqual(layout.reserved_blocks, 2)
        self.assertEqual([e.name for e in moved], ["a"])
        self.assertEqual([(e.name, e.offset) for e in t], [("b", 2), ("c", 3), ("a", 5)])
        data = store.getvalue()
        self.assertEqual(data[5 * BLOCK_SIZE : 6 * BLOCK_SIZE], b"a" * BLOCK_SIZE)
        self.assertEqual(data[3 * BLOCK_SIZE : 5 * BLOCK_SIZE], b"c" * 2 * BLOCK_SIZE)

    def test_growth_keeps_relative_order_of_movers(self):
        entries = [Entry(1, 1, "a"), Entry(2, 1, "b"), Entry(3, 1, "c"), Entry(4, 1, "d")]
        t = EntryTable(entries)
        store = _fill_store(entries)
        layout = HeaderLayout(VER2, 1)
        # 200 records + 8 bytes need 4 blocks: a, b, c collide
        layout.reserve(t, store, 200)
        self.assertEqual([(e.name, e.offset) for e in t], [("d", 4), ("a", 5), ("b", 6), ("c", 7)])
        self.assertTrue(_is_sorted(t))
        data = store.getvalue()
        for name, off in (("a", 5), ("b", 6), ("c", 7)):
            self.assertEqual(data[off * BLOCK_SIZE : (off + 1) * BLOCK_SIZE], name.encode() * BLOCK_SIZE)

    def test_growth_when_every_entry_collides(self):
        entries = [Entry(1, 1, "a"), Entry(2, 1, "b")]
        t = EntryTable(entries)
        store = _fill_store(entries)
        layout = HeaderLayout(VER2, 1)
        # 200 records + 8 bytes need 4 blocks; both entries sit inside them
        moved = layout.reserve(t, store, 200)
        self.assertEqual(layout.reserved_blocks, 4)
        self.assertEqual([e.name for e in moved], ["a", "b"])
        self.assertEqual([(e.name, e.offset) for e in t], [("a", 4), ("b", 5)])
        self.assertTrue(all(e.offset >= layout.reserved_blocks for e in t))
        data = store.getvalue()
        self.assertEqual(data[4 * BLOCK_SIZE : 5 * BLOCK_SIZE], b"a" * BLOCK_SIZE)
        self.assertEqual(data[5 * BLOCK_SIZE : 6 * BLOCK_SIZE], b"b" * BLOCK_SIZE)

    def test_ver1_never_relocates(self):
        entries = [Entry(0, 1, "a"), Entry(1, 1, "b")]
        t = EntryTable(entries)
        store = _fill_store(entries)
        layout = HeaderLayout(VER1, 0)
        self.assertEqual(layout.reserve(t, store, 500), [])
        self.assertEqual(t.entries(), entries)
        self.assertEqual(layout.reserved_blocks, bytes_to_blocks(500 * 32))

    def test_minimum_blocks(self):
        self.assertEqual(HeaderLayout(VER2, 1).minimum_blocks(0), 1)
        self.assertEqual(HeaderLayout(VER2, 1).minimum_blocks(63), 1)
        self.assertEqual(HeaderLayout(VER2, 1).minimum_blocks(64), 2)
        self.assertEqual(HeaderLayout(VER1, 1).minimum_blocks(64), 1)
        self.assertEqual(HeaderLayout(VER1, 1).minimum_blocks(0), 0)


if __name__ == "__main__":
    unittest.main()
