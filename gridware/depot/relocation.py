"""Install-prefix relocation

Packages are built against a placeholder prefix. On import, text files (any
file without a NUL byte, whatever its encoding) have
``_DEPOT_`` replaced with the target depot path. Binaries carry the build
depot path with its last component set to ``_^DEPOT_``; each C string
holding it is rewritten in place, NUL padded so no offset moves.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from gridware.core.exceptions import RelocationError

logger = logging.getLogger(__name__)

PLACEHOLDER = "_DEPOT_"
BINARY_PLACEHOLDER = "_^DEPOT_"


def binary_search_path(depot_path: str) -> str:
    """``/opt/gridware/depots/abc123`` -> ``/opt/gridware/depots/_^DEPOT_``"""
    head, _, _ = depot_path.rstrip("/").rpartition("/")
    return f"{head}/{BINARY_PLACEHOLDER}"


def is_text_file(path: str | Path) -> bool:
    """Decide whether ``path`` gets text or binary relocation.

    Any file without a NUL byte counts as text whatever its encoding;
    scripts and READMEs shipped in Latin-1 still need their placeholder
    replaced.

    Args:
        path: file to inspect

    Returns:
        bool: True when the content holds no NUL byte
    """
    with open(path, "rb") as f:
        return b"\0" not in f.read()


def relocate_text(path: str | Path, depot_path: str) -> bool:
    """Replace every ``_DEPOT_`` in ``path`` with ``depot_path``.

    The replacement is done on raw bytes so the file keeps its original
    encoding; only the placeholder itself (plain ASCII) is touched.

    Args:
        path: file to rewrite in place
        depot_path: target depot hash path

    Returns:
        bool: True when the file changed
    """
    p = Path(path)
    data = p.read_bytes()
    placeholder = PLACEHOLDER.encode()
    if placeholder not in data:
        return False
    mode = p.stat().st_mode
    p.write_bytes(data.replace(placeholder, os.fsencode(depot_path)))
    os.chmod(p, mode)
    return True


def patch_bytes(data: bytes, search: bytes, replace: bytes) -> tuple[bytes, int]:
    """Rewrite each C string containing ``search``.

    Returns the new data (same length) and the number of strings patched.

    Raises:
        RelocationError: ``replace`` is longer than ``search``
    """
    if len(replace) > len(search):
        raise RelocationError(
            f"Replacement path is longer than the build path ({len(replace)} > "
            f"{len(search)} bytes): {replace.decode(errors='replace')}"
        )
    out = bytearray(data)
    count = 0
    pos = data.find(search)
    while pos != -1:
        end = data.find(b"\0", pos)
        if end == -1:
            end = len(data)
        # start of this C string; rfind gives -1 at offset 0, hence the +1
        start = data.rfind(b"\0", 0, pos) + 1
        segment = data[start:end]
        patched = segment.replace(search, replace)
        out[start:end] = patched.ljust(len(segment), b"\0")
        count += 1
        pos = data.find(search, end)
    return bytes(out), count


def patch_binary(path: str | Path, search: str, replace: str) -> int:
    """Patch ``path`` in place, keeping its permission bits.

    Args:
        path: file to patch
        search: build-time depot path (ending in ``_^DEPOT_``)
        replace: target depot path, no longer than ``search``

    Returns:
        int: number of C strings rewritten, 0 when ``search`` is absent

    Raises:
        RelocationError: ``replace`` is longer than ``search``
    """
    p = Path(path)
    data = p.read_bytes()
    if search.encode() not in data:
        return 0
    patched, count = patch_bytes(data, search.encode(), replace.encode())
    mode = p.stat().st_mode
    p.write_bytes(patched)
    os.chmod(p, mode)
    logger.debug("Patched %d string(s) in %s", count, p)
    return count


def relocate_file(path: str | Path, depot_path: str) -> bool:
    """Text or binary relocation depending on content."""
    if is_text_file(path):
        return relocate_text(path, depot_path)
    return patch_binary(path, binary_search_path(depot_path), depot_path) > 0


def relocate_tree(root: str | Path, depot_path: str) -> int:
    """Relocate every regular file below ``root``; returns files changed.

    Symlinks are skipped so a link pointing outside the payload is never
    followed and rewritten.
    """
    changed = 0
    for dirpath, _dirs, files in os.walk(root):
        for name in files:
            f = Path(dirpath) / name
            if f.is_symlink() or not f.is_file():
                continue
            if relocate_file(f, depot_path):
                changed += 1
    return changed
