"""
imgarchive: read and edit block-addressed IMG archives.

Supports both container generations:

- VER1: a ``.dir`` file holding the bare entry table plus an ``.img`` data file.
- VER2: a single ``.img`` file with a ``VER2`` magic, entry count and table
  at the front, followed by the data region.

Entries are addressed in 2048-byte blocks. The engine keeps the in-memory
table in ascending-offset order, grows the header region by relocating
colliding entries to the data end, and can defragment (pack) an archive.
Open archives with ``ImgArchive.open`` / ``ImgArchive.create`` and always
release them with ``close()`` or a ``with`` block.
"""

from .archive import ImgArchive
from .constants import BLOCK_SIZE, MODE_READ_ONLY, MODE_READ_WRITE, VER1, VER2
from .entries import Entry
from .errors import (
    ArchiveClosedError,
    CapacityExceededError,
    DuplicateEntryError,
    EntryNameError,
    EntryNotFoundError,
    ImgArchiveError,
    ImgFormatError,
    NameTooLongError,
    ReadOnlyArchiveError,
)
from .records import sniff_version as guess_version
from .pathutil import guess_version_file

__version__ = "0.1"

__all__ = [
    "ImgArchive",
    "Entry",
    "BLOCK_SIZE",
    "MODE_READ_ONLY",
    "MODE_READ_WRITE",
    "VER1",
    "VER2",
    "guess_version",
    "guess_version_file",
    "ImgArchiveError",
    "ImgFormatError",
    "EntryNameError",
    "NameTooLongError",
    "DuplicateEntryError",
    "EntryNotFoundError",
    "CapacityExceededError",
    "ReadOnlyArchiveError",
    "ArchiveClosedError",
]
