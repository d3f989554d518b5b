from __future__ import annotations

import os
from typing import Optional, Tuple

from .constants import DIR_EXT, IMG_EXT, VER1, VER2
from .errors import ImgFormatError
from .records import sniff_version


def companion_paths(path: str) -> Tuple[str, str]:
    """Return the ``(.dir, .img)`` pair sharing ``path``'s base name."""
    base, _ext = os.path.splitext(path)
    return base + DIR_EXT, base + IMG_EXT


def _existing_companion(path: str, ext: str) -> str:
    # Prefer an existing upper-case companion (GTA3.DIR next to GTA3.IMG)
    base, _ext = os.path.splitext(path)
    candidate = base + ext
    if not os.path.exists(candidate) and os.path.exists(base + ext.upper()):
        return base + ext.upper()
    return candidate


def guess_version_file(path: str) -> int:
    with open(path, "rb") as fh:
        return sniff_version(fh)


def resolve_archive_paths(path: str) -> Tuple[int, Optional[str], str]:
    """Locate the files making up the archive at ``path``.

    Returns ``(version, dir_path, img_path)``; ``dir_path`` is None for a
    single-file VER2 archive. A ``.dir`` path always means VER1; an ``.img``
    path is sniffed for the VER2 magic.
    """
    ext = os.path.splitext(path)[1].lower()
    if ext == DIR_EXT:
        return VER1, path, _existing_companion(path, IMG_EXT)
    if ext == IMG_EXT:
        if guess_version_file(path) == VER2:
            return VER2, None, path
        return VER1, _existing_companion(path, DIR_EXT), path
    raise ImgFormatError(f"File name is neither an IMG nor a DIR file: {path}")


def safe_output_path(outdir: str, name: str) -> str:
    """Join an entry name under ``outdir``, rejecting names that escape it."""
    norm = name.replace("\\", "/")
    if "/" in norm or norm in ("", ".", ".."):
        raise ValueError(f"Refusing to extract entry with unsafe name: {name!r}")
    return os.path.join(outdir, norm)


def entry_name_for(path: str) -> str:
    """Default entry name for a file imported from the local filesystem."""
    name = os.path.basename(path.replace("\\", "/").rstrip("/"))
    if not name or name in (".", ".."):
        raise ValueError(f"Cannot derive an entry name from {path!r}")
    return name
