"""YAML-backed registry base

Depot package records, and anything else stored as a keyed section of one
YAML document, share loading, saving and the basic put/get/list/remove
operations through this class. Subclasses only name their section.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from gridware.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


class YamlRegistry:
    """Registry persisted as ``{section_key: {key: entry}}``

    Usage:
        class MyRegistry(YamlRegistry):
            section_key = "items"
    """

    section_key: str = "entries"

    def __init__(self, registry_file: str | Path) -> None:
        self.registry_file = Path(registry_file)
        self._data: dict[str, Any] = load_yaml(self.registry_file)

    def _section(self) -> dict[str, dict[str, Any]]:
        result: dict[str, dict[str, Any]] = self._data.setdefault(self.section_key, {})
        return result

    def _save(self) -> None:
        save_yaml(self.registry_file, self._data)

    def _put(self, key: str, entry: dict[str, Any]) -> dict[str, Any]:
        self._section()[key] = entry
        self._save()
        logger.debug("%s: stored %s", self.registry_file, key)
        return entry

    def _get_raw(self, key: str) -> dict[str, Any] | None:
        return self._section().get(key)

    def _list_raw(self) -> list[dict[str, Any]]:
        return list(self._section().values())

    def _remove(self, key: str) -> bool:
        section = self._section()
        if key not in section:
            return False
        del section[key]
        self._save()
        return True
