from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Optional

from .constants import MAX_NAME_LENGTH
from .errors import DuplicateEntryError, EntryNameError, EntryNotFoundError, NameTooLongError
from .geometry import blocks_to_bytes


def check_name(name: str) -> bytes:
    """Validate a name for a new or renamed entry and return its stored bytes."""
    if not name:
        raise EntryNameError("Entry name must not be empty")
    if "\x00" in name:
        raise EntryNameError("Entry name must not contain NUL")
    try:
        raw = name.encode("latin-1")
    except UnicodeEncodeError:
        raise EntryNameError(f"Entry name is not single-byte encodable: {name!r}")
    if len(raw) > MAX_NAME_LENGTH:
        raise NameTooLongError(
            f"Maximum length of {MAX_NAME_LENGTH} characters for IMG entry names exceeded: {name!r}"
        )
    return raw


@dataclass(frozen=True)
class Entry:
    offset: int  # blocks from start of the data store
    size: int  # allocated blocks
    name: str

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def byte_offset(self) -> int:
        return blocks_to_bytes(self.offset)

    @property
    def byte_size(self) -> int:
        return blocks_to_bytes(self.size)

    def moved_to(self, offset: int) -> "Entry":
        return replace(self, offset=offset)

    def renamed(self, name: str) -> "Entry":
        return replace(self, name=name)


class EntryTable:
    """Entries in ascending-offset order, indexed by lower-cased name.

    A single insertion-ordered dict holds both the order and the index.
    Every insert goes at the tail and callers only insert at the current
    data end, so iteration order is offset order and the tail entry ends
    where written data ends.
    """

    def __init__(self, entries: Iterable[Entry] = ()):
        self._entries: Dict[str, Entry] = {}
        for e in entries:
            self.insert(e)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries.values()))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._entries

    def entries(self) -> List[Entry]:
        return list(self._entries.values())

    def first(self) -> Optional[Entry]:
        for e in self._entries.values():
            return e
        return None

    def last(self) -> Optional[Entry]:
        for e in reversed(self._entries.values()):
            return e
        return None

    def find(self, name: str) -> Optional[Entry]:
        return self._entries.get(name.lower())

    def get(self, name: str) -> Entry:
        e = self._entries.get(name.lower())
        if e is None:
            raise EntryNotFoundError(f"No entry found with name {name}")
        return e

    def insert(self, entry: Entry) -> Entry:
        if entry.key in self._entries:
            raise DuplicateEntryError(f"Entry already exists: {entry.name}")
        self._entries[entry.key] = entry
        return entry

    def remove(self, name: str) -> bool:
        return self._entries.pop(name.lower(), None) is not None

    def rename(self, old: str, new: str) -> Entry:
        check_name(new)
        entry = self.get(old)
        new_key = new.lower()
        if new_key != entry.key and new_key in self._entries:
            raise DuplicateEntryError(f"Entry already exists: {new}")
        renamed = entry.renamed(new)
        # Rebuild to keep the entry at its position in offset order
        self._entries = {
            (new_key if k == entry.key else k): (renamed if k == entry.key else v)
            for k, v in self._entries.items()
        }
        return renamed

    def clear(self) -> None:
        self._entries.clear()

    def data_end(self, reserved_blocks: int) -> int:
        """First block past all allocated entry data.

        ``reserved_blocks`` is returned for an empty table.
        """
        tail = self.last()
        if tail is None:
            return reserved_blocks
        return tail.end
