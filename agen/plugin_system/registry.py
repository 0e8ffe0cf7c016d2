"""Persistent registry of installed plugins.

The registry is a single JSON file of the form ``{"plugins": {name: record}}``.
It is read once when constructed and rewritten wholesale by :meth:`save`.
There is no locking: two processes saving concurrently overwrite each other
and the last completed write wins.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from agen.plugin_system.manifest import Plugin
from agen.utils.exceptions import (
    InvalidManifestError,
    PluginNotFoundError,
    RegistryLoadError,
    RegistryWriteError,
)

logger = structlog.get_logger(__name__)

REGISTRY_FILENAME = "registry.json"


class PluginRegistry:
    """Mapping of plugin name to installed :class:`Plugin` record.

    Attributes:
        path: Backing file of the registry
    """

    def __init__(self, path: Union[str, Path], plugins: Optional[Dict[str, Plugin]] = None) -> None:
        self.path = Path(path)
        self._plugins: Dict[str, Plugin] = dict(plugins or {})

    @classmethod
    def load(cls, path: Union[str, Path]) -> PluginRegistry:
        """Read and parse a registry file.

        Raises:
            RegistryLoadError: With reason ``not_found`` if the file is missing,
                ``parse_error`` if it cannot be decoded into plugin records
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise RegistryLoadError(
                f"Registry file not found: {path}", reason=RegistryLoadError.NOT_FOUND
            ) from e
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RegistryLoadError(f"Failed to read registry {path}: {e}") from e

        if not isinstance(data, dict):
            raise RegistryLoadError(f"Registry {path} must contain a JSON object")

        entries = data.get("plugins")
        if entries is None:
            entries = {}
        elif not isinstance(entries, dict):
            raise RegistryLoadError(f"Registry {path} has a malformed 'plugins' mapping")

        plugins: Dict[str, Plugin] = {}
        for name, entry in entries.items():
            try:
                plugins[name] = Plugin.from_dict(entry)
            except InvalidManifestError as e:
                raise RegistryLoadError(f"Registry {path} has an invalid entry for {name}: {e}") from e

        return cls(path, plugins)

    @classmethod
    def load_or_empty(cls, path: Union[str, Path]) -> PluginRegistry:
        """Load the registry, substituting an empty one if that fails.

        A missing file is the normal first-run case. An unreadable or corrupt
        file is logged and then treated as empty; it is overwritten by the
        next successful save.
        """
        try:
            registry = cls.load(path)
        except RegistryLoadError as e:
            if e.reason == RegistryLoadError.NOT_FOUND:
                logger.debug("registry_missing", path=str(path))
            else:
                logger.warning("registry_unreadable", path=str(path), error=str(e))
            return cls(path)

        logger.debug("registry_loaded", path=str(path), plugins=len(registry))
        return registry

    def save(self) -> None:
        """Write the whole mapping to the backing file.

        The file is replaced atomically through a temporary file in the same
        directory.

        Raises:
            RegistryWriteError: If the file cannot be written
        """
        data = {
            "plugins": {
                name: self._plugins[name].to_dict() for name in sorted(self._plugins)
            }
        }

        tmp_path: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                    mode="w",
                    encoding="utf-8",
                    suffix=".json",
                    prefix=".registry-",
                    dir=self.path.parent,
                    delete=False
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(data, tmp, indent=2)
                tmp.write("\n")
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise RegistryWriteError(f"Failed to save registry {self.path}: {e}") from e

        logger.debug("registry_saved", path=str(self.path), plugins=len(self._plugins))

    def put(self, name: str, plugin: Plugin) -> None:
        self._plugins[name] = plugin

    def delete(self, name: str) -> None:
        self._plugins.pop(name, None)

    def get(self, name: str) -> Plugin:
        """Return the record for ``name``.

        Raises:
            PluginNotFoundError: If no plugin of that name is registered
        """
        try:
            return self._plugins[name]
        except KeyError:
            raise PluginNotFoundError(f"Plugin not found: {name}", plugin_name=name) from None

    def list(self) -> List[Plugin]:
        return list(self._plugins.values())

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)
