from __future__ import annotations

import logging
from typing import BinaryIO, Iterator, List, Optional, Union

from .blockio import extend_to, move_blocks_down, read_blocks, write_padded
from .constants import (
    DEFAULT_RESERVED_BLOCKS,
    MODE_READ_ONLY,
    MODE_READ_WRITE,
    VER1,
    VER2,
    VERSION_NAMES,
)
from .entries import Entry, EntryTable, check_name
from .errors import (
    ArchiveClosedError,
    CapacityExceededError,
    DuplicateEntryError,
    ImgArchiveError,
    ImgFormatError,
    ReadOnlyArchiveError,
)
from .geometry import blocks_to_bytes, bytes_to_blocks
from .layout import HeaderLayout
from .pathutil import companion_paths, resolve_archive_paths
from .records import empty_ver2_header, read_table, table_bytes, write_table
from .stream import EntryStream


log = logging.getLogger(__name__)

EntryRef = Union[str, Entry]


def _file_mode(mode: int) -> str:
    return "rb" if mode == MODE_READ_ONLY else "r+b"


class ImgArchive:
    """
    A block-addressed IMG archive over one (VER2) or two (VER1) stores.

    The archive owns its stores unless ``owns_streams`` is False. The entry
    table is held in memory; mutations write entry data straight to the
    data store, while the table itself is only written by ``sync()`` (and by
    the best-effort sync in ``close()``).

    Streams returned by ``open_entry`` share the data store's cursor with
    the archive and with each other; advance only one at a time.
    """

    def __init__(
        self,
        img_stream: BinaryIO,
        dir_stream: Optional[BinaryIO] = None,
        *,
        mode: int = MODE_READ_ONLY,
        owns_streams: bool = True,
    ):
        if mode not in (MODE_READ_ONLY, MODE_READ_WRITE):
            raise ValueError(f"Unknown archive mode: {mode!r}")
        self._img: Optional[BinaryIO] = img_stream
        self._dir: Optional[BinaryIO] = dir_stream if dir_stream is not None else img_stream
        self._mode = mode
        self._owns_streams = owns_streams
        self._closed = False
        self._table = EntryTable()
        self._layout = HeaderLayout(VER1, DEFAULT_RESERVED_BLOCKS)
        try:
            self._load()
        except (ImgArchiveError, OSError, ValueError):
            # Release the stores on failure to avoid leaks
            self.close(sync=False)
            raise

    # construction

    @classmethod
    def open(cls, path: str, mode: int = MODE_READ_ONLY) -> "ImgArchive":
        """Open an existing archive from a ``.img`` or ``.dir`` path."""
        version, dir_path, img_path = resolve_archive_paths(path)
        fmode = _file_mode(mode)
        img = open(img_path, fmode)
        if version == VER2:
            return cls(img, mode=mode)
        try:
            dirf = open(dir_path, fmode)
        except OSError:
            img.close()
            raise
        return cls(img, dirf, mode=mode)

    @classmethod
    def create(cls, path: str, version: int = VER2, mode: int = MODE_READ_WRITE) -> "ImgArchive":
        """Create a new, empty archive, replacing any existing files."""
        if version == VER2:
            img = open(path, "w+b")
            return cls.create_streams(img, mode=mode)
        if version == VER1:
            dir_path, img_path = companion_paths(path)
            dirf = open(dir_path, "w+b")
            try:
                img = open(img_path, "w+b")
            except OSError:
                dirf.close()
                raise
            return cls.create_streams(img, dirf, mode=mode)
        raise ValueError(f"Unknown IMG version: {version!r}")

    @classmethod
    def from_streams(
        cls,
        img_stream: BinaryIO,
        dir_stream: Optional[BinaryIO] = None,
        *,
        mode: int = MODE_READ_ONLY,
        owns_streams: bool = True,
    ) -> "ImgArchive":
        """Load an existing archive from already-open stores."""
        return cls(img_stream, dir_stream, mode=mode, owns_streams=owns_streams)

    @classmethod
    def create_streams(
        cls,
        img_stream: BinaryIO,
        dir_stream: Optional[BinaryIO] = None,
        *,
        mode: int = MODE_READ_WRITE,
        owns_streams: bool = True,
    ) -> "ImgArchive":
        """Format empty stores as a new archive.

        One stream gives a VER2 archive (header written now); two streams
        give a VER1 archive, which has no header to write.
        """
        if dir_stream is None:
            img_stream.seek(0)
            img_stream.write(empty_ver2_header())
            img_stream.flush()
        return cls(img_stream, dir_stream, mode=mode, owns_streams=owns_streams)

    def _load(self) -> None:
        assert self._dir is not None
        single = self._dir is self._img
        version, records = read_table(self._dir)
        if single and version != VER2:
            raise ImgFormatError("Single-stream archive lacks the VER2 header; VER1 needs a DIR stream")
        if not single and version == VER2:
            raise ImgFormatError("VER2 archives keep their table in the IMG stream; no DIR stream expected")

        self._table = EntryTable()
        for rec in records:
            if rec.name in self._table:
                log.warning("Duplicate entry name %r at block %d; keeping the later record", rec.name, rec.offset)
                self._table.remove(rec.name)
            self._table.insert(rec)
        first = self._table.first()
        reserved = first.offset if first is not None else DEFAULT_RESERVED_BLOCKS
        self._layout = HeaderLayout(version, reserved)
        log.debug(
            "Opened %s archive: %d entries, %d reserved header block(s)",
            VERSION_NAMES[version],
            len(self._table),
            reserved,
        )

    # properties

    @property
    def version(self) -> int:
        return self._layout.version

    @property
    def mode(self) -> int:
        return self._mode

    @property
    def writable(self) -> bool:
        return self._mode == MODE_READ_WRITE

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def img_stream(self) -> BinaryIO:
        self._check_open()
        assert self._img is not None
        return self._img

    @property
    def dir_stream(self) -> BinaryIO:
        self._check_open()
        assert self._dir is not None
        return self._dir

    @property
    def entry_count(self) -> int:
        return len(self._table)

    @property
    def entries(self) -> List[Entry]:
        """Entries in ascending-offset order."""
        return self._table.entries()

    @property
    def header_reserved_size(self) -> int:
        """Blocks in front of the first entry (always 0 for VER1)."""
        return self._layout.occupied_blocks(self._table)

    @property
    def reserved_blocks(self) -> int:
        return self._layout.reserved_blocks

    @property
    def data_end(self) -> int:
        return self._layout.data_end(self._table)

    @property
    def size(self) -> int:
        """Total archive size in blocks (VER1 includes the directory file)."""
        end = self._layout.data_end(self._table)
        if self.version == VER2:
            return end
        return end + bytes_to_blocks(table_bytes(VER1, len(self._table)))

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._table)

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._table)} entries"
        return f"<ImgArchive {VERSION_NAMES.get(self.version, '?')} {state}>"

    # lookups and reads

    def get_entry(self, name: str) -> Optional[Entry]:
        return self._table.find(name)

    def contains_entry(self, name: str) -> bool:
        return name in self._table

    def _resolve(self, ref: EntryRef) -> Entry:
        # Entries are re-resolved by name: a caller's copy may predate a relocation
        return self._table.get(ref.name if isinstance(ref, Entry) else ref)

    def open_entry(self, ref: EntryRef) -> EntryStream:
        """Return a bounded read-only stream over the entry's allocated blocks."""
        self._check_open()
        entry = self._resolve(ref)
        assert self._img is not None
        return EntryStream(self._img, entry.byte_offset, entry.byte_size)

    def read_entry_data(self, ref: EntryRef) -> bytes:
        """Read the entry's allocated blocks, including trailing zero padding."""
        self._check_open()
        entry = self._resolve(ref)
        assert self._img is not None
        return read_blocks(self._img, entry.offset, entry.size)

    # mutations

    def add_entry(self, name: str, data: bytes, *, replace: bool = False) -> Entry:
        """Append a new entry holding ``data`` at the current data end."""
        self._check_writable()
        self._prepare_name(name, replace)
        size = bytes_to_blocks(len(data))
        entry = self._append(name, size)
        assert self._img is not None
        write_padded(self._img, entry.offset, data, entry.size)
        log.debug("Added %s at block %d (%d block(s))", entry.name, entry.offset, entry.size)
        return entry

    def add_empty_entry(self, name: str, size_blocks: int, *, replace: bool = False) -> Entry:
        """Append a zero-filled entry of ``size_blocks`` blocks for later writes."""
        self._check_writable()
        if size_blocks < 0:
            raise ValueError("size_blocks must be non-negative")
        self._prepare_name(name, replace)
        entry = self._append(name, size_blocks)
        assert self._img is not None
        write_padded(self._img, entry.offset, b"", entry.size)
        extend_to(self._img, entry.end)
        log.debug("Reserved %s at block %d (%d block(s))", entry.name, entry.offset, entry.size)
        return entry

    def _prepare_name(self, name: str, replace: bool) -> None:
        check_name(name)
        if name in self._table:
            if not replace:
                raise DuplicateEntryError(f"Entry already exists: {name}")
            self._table.remove(name)

    def _append(self, name: str, size: int) -> Entry:
        assert self._img is not None
        self._layout.reserve(self._table, self._img, len(self._table) + 1)
        offset = self._layout.data_end(self._table)
        return self._table.insert(Entry(offset=offset, size=size, name=name))

    def write_entry_data(self, name: str, data: bytes) -> Entry:
        """Overwrite an entry's content in place; its block capacity never grows."""
        self._check_writable()
        entry = self._table.get(name)
        if len(data) > entry.byte_size:
            raise CapacityExceededError(
                f"Data size ({len(data)}) exceeds entry size ({entry.byte_size}) for {entry.name}"
            )
        assert self._img is not None
        write_padded(self._img, entry.offset, data, entry.size)
        return entry

    def remove_entry(self, name: str) -> bool:
        """Drop an entry from the table. Its blocks stay allocated until ``pack()``."""
        self._check_writable()
        return self._table.remove(name)

    def rename_entry(self, old_name: str, new_name: str) -> Entry:
        self._check_writable()
        return self._table.rename(old_name, new_name)

    def pack(self) -> int:
        """
        Defragment the archive.

        Entries are laid out back to back, in table order, directly after the
        smallest header that fits the current table. The data store is then
        truncated to the new data end. Returns the new data end in blocks.
        """
        self._check_writable()
        if not len(self._table):
            return self._layout.reserved_blocks
        assert self._img is not None
        old = self._table.entries()
        header = self._layout.minimum_blocks(len(old))
        new: List[Entry] = []
        cursor = header
        for e in old:
            new.append(e.moved_to(cursor))
            cursor += e.size

        if all(n.offset <= o.offset for n, o in zip(new, old)):
            for o, n in zip(old, new):
                move_blocks_down(self._img, o.offset, n.offset, o.size)
        else:
            log.debug("Layout overlaps its packed form; buffering %d entries", len(old))
            payloads = [read_blocks(self._img, e.offset, e.size) for e in old]
            for n, data in zip(new, payloads):
                write_padded(self._img, n.offset, data, n.size)

        self._table.clear()
        for n in new:
            self._table.insert(n)
        self._layout.reserved_blocks = header
        end = self._layout.data_end(self._table)
        self._img.truncate(blocks_to_bytes(end))
        self._img.flush()
        log.debug("Packed %d entries: header %d block(s), data end %d", len(new), header, end)
        return end

    # persistence and lifecycle

    def sync(self) -> None:
        """Write the entry table to the header region."""
        self._check_writable()
        assert self._img is not None and self._dir is not None
        if self.version == VER2:
            # A table loaded from disk may already overrun its first entry
            self._layout.reserve(self._table, self._img, len(self._table))
        write_table(self._dir, self.version, self._table.entries())
        if self._img is not self._dir:
            self._img.flush()

    def close(self, sync: bool = True) -> None:
        """
        Release the archive.

        With ``sync`` (the default) a writable archive first attempts one
        last ``sync()``; I/O errors from it, including a store closed behind
        the archive's back, are logged and swallowed so the stores are always
        released. Call ``sync()`` yourself beforehand when the save must not
        fail silently.
        """
        if self._closed:
            return
        try:
            if sync and self.writable:
                try:
                    self.sync()
                except (OSError, ValueError) as exc:
                    log.warning("Final sync failed while closing archive: %s", exc)
        finally:
            if self._owns_streams:
                if self._dir is not None and self._dir is not self._img:
                    self._dir.close()
                if self._img is not None:
                    self._img.close()
            self._img = None
            self._dir = None
            self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise ArchiveClosedError("Archive is closed")

    def _check_writable(self) -> None:
        self._check_open()
        if not self.writable:
            raise ReadOnlyArchiveError("Attempt to modify a read-only IMG archive")
