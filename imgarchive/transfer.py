from __future__ import annotations

import os
from typing import List, Optional

from .archive import EntryRef, ImgArchive
from .entries import Entry
from .pathutil import entry_name_for, safe_output_path


def extract_entry(archive: ImgArchive, ref: EntryRef, out_path: str) -> int:
    """Write an entry's allocated blocks to ``out_path``; returns bytes written."""
    data = archive.read_entry_data(ref)
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "wb") as wf:
        wf.write(data)
    return len(data)


def extract_all(archive: ImgArchive, outdir: str, names: Optional[List[str]] = None) -> List[str]:
    """Extract every entry (or just ``names``) into ``outdir``.

    Returns the written paths in archive order.
    """
    os.makedirs(outdir, exist_ok=True)
    if names:
        targets: List[EntryRef] = list(names)
    else:
        targets = list(archive.entries)
    written: List[str] = []
    for ref in targets:
        name = ref.name if isinstance(ref, Entry) else ref
        out_path = safe_output_path(outdir, name)
        extract_entry(archive, ref, out_path)
        written.append(out_path)
    return written


def import_file(archive: ImgArchive, path: str, name: Optional[str] = None) -> Entry:
    """Add a local file as an entry, replacing any entry of the same name."""
    entry_name = name or entry_name_for(path)
    with open(path, "rb") as fh:
        data = fh.read()
    return archive.add_entry(entry_name, data, replace=True)
