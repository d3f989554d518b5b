from __future__ import annotations

import io
from typing import BinaryIO


class EntryStream(io.RawIOBase):
    """Read-only view of one entry's byte range in a shared data store.

    The store is borrowed, not owned: closing the view leaves it open, and
    the view must not outlive the archive it came from. Every read and
    seek repositions the store's cursor first, so other users of the store
    may move it in between calls. Two views over the same store must not
    be advanced concurrently without external locking.
    """

    def __init__(self, store: BinaryIO, start: int, length: int):
        super().__init__()
        if start < 0 or length < 0:
            raise ValueError("start and length must be non-negative")
        self._store = store
        self._start = start
        self._length = length
        self._pos = 0
        store.seek(start)

    @property
    def start(self) -> int:
        return self._start

    @property
    def length(self) -> int:
        return self._length

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def tell(self) -> int:
        self._check_open()
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_open()
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._pos + offset
        elif whence == io.SEEK_END:
            target = self._length + offset
        else:
            raise ValueError(f"Invalid whence ({whence})")
        if target < 0 or target > self._length:
            raise ValueError(f"Seek position {target} outside entry range [0, {self._length}]")
        self._pos = target
        self._store.seek(self._start + target)
        return target

    def readinto(self, b) -> int:
        self._check_open()
        remaining = self._length - self._pos
        if remaining <= 0:
            return 0
        view = memoryview(b).cast("B")
        want = min(len(view), remaining)
        if want == 0:
            return 0
        self._store.seek(self._start + self._pos)
        data = self._store.read(want)
        n = len(data)
        view[:n] = data
        self._pos += n
        return n

    def write(self, b):
        raise io.UnsupportedOperation("entry streams are read-only")

    def truncate(self, size=None):
        raise io.UnsupportedOperation("entry streams are read-only")

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed entry stream")
