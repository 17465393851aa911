"""YAML file helpers shared by every persisted document

Config files, definition metadata, the whitelist, depot package records and
export manifests all go through here so that encoding, empty-file handling,
parent directory creation and atomic replacement behave the same way.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Definition metadata is small; anything bigger is almost certainly not ours
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a sibling temp file and rename.

    A reader never observes a half-written file: the temporary file lives in
    the same directory so ``os.replace`` stays on one filesystem.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping.

    Args:
        path: file to read

    Returns:
        dict: the mapping, or an empty dict when the file is missing, empty
        or holds something other than a mapping

    Raises:
        ValueError: file exceeds MAX_YAML_SIZE
        yaml.YAMLError: malformed YAML (logged first)
        OSError: file unreadable (logged first)
    """
    p = Path(path)
    if not p.exists():
        return {}

    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ValueError(
            f"YAML file too large: {p} ({file_size} bytes, limit {MAX_YAML_SIZE})"
        )

    try:
        with open(p, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("Unable to parse YAML file %s: %s", path, e)
        raise
    except OSError as e:
        logger.error("Unable to read %s: %s", path, e)
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning(
            "%s does not contain a mapping (got %s), ignoring",
            path, type(result).__name__,
        )
        return {}
    return result


def dump_yaml(data: Any) -> str:
    """Serialize ``data`` keeping key order."""
    return yaml.dump(
        data, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )


def save_yaml(path: str | Path, data: Any) -> None:
    """Atomically write ``data`` as YAML, creating parent directories.

    Raises:
        yaml.YAMLError: ``data`` cannot be represented
        OSError: the file or its directory cannot be written
    """
    p = Path(path)
    try:
        atomic_write(p, dump_yaml(data))
    except yaml.YAMLError as e:
        logger.error("Unable to serialize YAML for %s: %s", path, e)
        raise
    except OSError as e:
        logger.error("Unable to write %s: %s", path, e)
        raise


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested mappings merge recursively and lists are unioned preserving
    order. ``None`` in the override never replaces an existing value.

    Args:
        base: mapping to start from, left unmodified
        override: mapping whose values win

    Returns:
        dict: the merged copy

    Example:
        >>> deep_merge({"users": ["a"]}, {"users": ["b", "a"]})
        {'users': ['a', 'b']}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            merged[key] = current + [v for v in value if v not in current]
        elif value is None and key in merged:
            continue
        else:
            merged[key] = value
    return merged
