"""Plugin manager façade.

Installs plugins from a source reference, removes them, and answers queries
against the registry. Install runs a fixed pipeline::

    RESOLVING -> FETCHING -> EXTRACTING_METADATA -> REGISTERING -> DONE

Any failure in the first three steps ends in FAILED and is raised to the
caller as its typed error. Only REGISTERING touches the registry.
"""

from __future__ import annotations

import datetime
import enum
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
import structlog

from agen.core.config_manager import ConfigManager, default_config_dir
from agen.plugin_system.fetchers import (
    ArchiveFetcher,
    Fetcher,
    FetchResult,
    LocalPathFetcher,
    VcsFetcher,
)
from agen.plugin_system.manifest import Plugin, PluginType
from agen.plugin_system.metadata import has_manifest, resolve_plugin_metadata
from agen.plugin_system.registry import REGISTRY_FILENAME, PluginRegistry
from agen.plugin_system.source import SourceKind, is_store_name, resolve_source
from agen.plugin_system.tools import create_plugin_template
from agen.plugin_system.vcs import GitClient, VersionControl
from agen.utils.exceptions import (
    AgenError,
    ConfigurationError,
    InvalidManifestError,
    PluginNotFoundError,
    PluginRemovalError,
    RegistryWriteError,
)

logger = structlog.get_logger(__name__)


class InstallState(str, enum.Enum):
    RESOLVING = "resolving"
    FETCHING = "fetching"
    EXTRACTING_METADATA = "extracting_metadata"
    REGISTERING = "registering"
    DONE = "done"
    FAILED = "failed"


def plugins_dir_for(config_dir: Union[str, Path]) -> Path:
    """Plugin store root for a base configuration directory."""
    return Path(config_dir) / "agen" / "plugins"


class PluginManager:
    """Installs, removes and lists plugins.

    The registry is loaded once when the manager is created and saved after
    every successful install or uninstall. A manager is meant for a single
    caller; overlapping operations on one registry are not coordinated.

    Attributes:
        plugins_dir: Plugin store root (``<config_dir>/agen/plugins``)
        registry: Registry of installed plugins
    """

    def __init__(
            self,
            config_dir: Optional[Union[str, Path]] = None,
            vcs: Optional[VersionControl] = None,
            http_client: Optional[httpx.Client] = None,
            http_timeout: Optional[float] = None,
            follow_redirects: bool = True
    ) -> None:
        """Initialize the plugin manager.

        Args:
            config_dir: Base configuration directory (defaults to the
                platform's user configuration directory)
            vcs: Version control implementation for GitHub sources
            http_client: HTTP client for archive downloads
            http_timeout: Download timeout in seconds when no client is given
            follow_redirects: Whether archive downloads follow redirects

        Raises:
            ConfigurationError: If the plugin store cannot be created
        """
        self.plugins_dir = plugins_dir_for(config_dir if config_dir is not None else default_config_dir())
        try:
            self.plugins_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create plugin directory {self.plugins_dir}: {e}",
                config_key="paths.config_dir",
            ) from e

        self.registry = PluginRegistry.load_or_empty(self.plugins_dir / REGISTRY_FILENAME)
        self._fetchers: Dict[SourceKind, Fetcher[Any]] = {
            SourceKind.VCS: VcsFetcher(self.plugins_dir, vcs or GitClient()),
            SourceKind.ARCHIVE_URL: ArchiveFetcher(
                self.plugins_dir,
                client=http_client,
                timeout=http_timeout,
                follow_redirects=follow_redirects,
            ),
            SourceKind.LOCAL_PATH: LocalPathFetcher(),
        }

    @classmethod
    def from_config(cls, config_manager: ConfigManager, **kwargs: Any) -> PluginManager:
        """Build a manager from an initialized :class:`ConfigManager`."""
        kwargs.setdefault("vcs", GitClient(config_manager.get("vcs.executable", "git")))
        kwargs.setdefault("http_timeout", config_manager.get("http.timeout"))
        kwargs.setdefault("follow_redirects", config_manager.get("http.follow_redirects", True))
        return cls(config_manager.config_dir, **kwargs)

    def install(self, source: str) -> Plugin:
        """Install a plugin.

        Supported sources:

        * ``github.com/<owner>/<repo>[@<ref>]``, cloned into the store
        * ``https://host/path/plugin.zip``, downloaded and copied into the store
        * a local directory, registered in place

        Re-installing a plugin replaces its registry entry.

        Returns:
            The registered plugin record

        Raises:
            InvalidSourceError, FetchError, ExtractError, UnsupportedFormatError,
            PathNotFoundError, PathNotDirectoryError, InvalidManifestError,
            RegistryWriteError
        """
        state = InstallState.RESOLVING
        log = logger.bind(source=source)
        try:
            resolved = resolve_source(source)
            log.debug("plugin_install_state", state=state.value, kind=resolved.kind.value)

            state = InstallState.FETCHING
            log.debug("plugin_install_state", state=state.value)
            fetched = self._fetchers[resolved.kind].fetch(resolved)

            state = InstallState.EXTRACTING_METADATA
            log.debug("plugin_install_state", state=state.value, directory=str(fetched.directory))
            plugin = self._resolve_metadata(fetched)

            state = InstallState.REGISTERING
            log.debug("plugin_install_state", state=state.value, plugin=plugin.name)
            self._register(plugin)
        except AgenError as e:
            log.info(
                "plugin_install_failed",
                state=InstallState.FAILED.value,
                failed_at=state.value,
                kind=e.kind,
                error=str(e),
            )
            raise

        log.info("plugin_installed", state=InstallState.DONE.value, plugin=plugin.name, version=plugin.version)
        return plugin

    def _resolve_metadata(self, fetched: FetchResult) -> Plugin:
        inferred = not has_manifest(fetched.directory)
        try:
            plugin = resolve_plugin_metadata(fetched.directory)
        except InvalidManifestError:
            if fetched.created:
                logger.info("plugin_fetch_discarded", directory=str(fetched.directory))
                shutil.rmtree(fetched.directory, ignore_errors=True)
            raise

        if inferred:
            plugin = plugin.model_copy(update={"installed_at": _now()})
        return plugin

    def _register(self, plugin: Plugin) -> None:
        previous = self.registry.get(plugin.name) if plugin.name in self.registry else None
        self.registry.put(plugin.name, plugin)
        try:
            self.registry.save()
        except RegistryWriteError:
            if previous is None:
                self.registry.delete(plugin.name)
            else:
                self.registry.put(plugin.name, previous)
            raise

    def uninstall(self, name: str) -> None:
        """Remove a plugin's files from the store and its registry entry.

        Local plugins were never copied into the store, so a missing store
        directory is not an error. If the directory cannot be removed the
        registry is left unchanged.

        Raises:
            PluginNotFoundError: If the plugin is not installed
            PluginRemovalError: If the plugin directory cannot be removed
            RegistryWriteError: If the registry cannot be saved
        """
        if name not in self.registry:
            logger.warning("plugin_not_installed", plugin=name)
            raise PluginNotFoundError(f"Plugin not found: {name}", plugin_name=name)

        plugin_dir = self._store_path(name)
        if plugin_dir is not None and (plugin_dir.exists() or plugin_dir.is_symlink()):
            try:
                if plugin_dir.is_symlink() or not plugin_dir.is_dir():
                    plugin_dir.unlink()
                else:
                    shutil.rmtree(plugin_dir)
            except OSError as e:
                logger.error("plugin_remove_failed", plugin=name, path=str(plugin_dir), error=str(e))
                raise PluginRemovalError(f"Failed to remove plugin: {e}", plugin_name=name) from e

        removed = self.registry.get(name)
        self.registry.delete(name)
        try:
            self.registry.save()
        except RegistryWriteError:
            self.registry.put(name, removed)
            raise

        logger.info("plugin_uninstalled", plugin=name)

    def _store_path(self, name: str) -> Optional[Path]:
        """Store directory for ``name``, or None if the name cannot map to one."""
        if not is_store_name(name):
            return None
        candidate = self.plugins_dir / name
        if candidate.parent.resolve() != self.plugins_dir.resolve() or candidate.name != name:
            logger.warning("plugin_name_outside_store", plugin=name)
            return None
        return candidate

    def list(self) -> List[Plugin]:
        """Return all installed plugins, in no particular order."""
        return self.registry.list()

    def get(self, name: str) -> Plugin:
        """Return one installed plugin.

        Raises:
            PluginNotFoundError: If the plugin is not installed
        """
        return self.registry.get(name)

    def create(
            self,
            name: str,
            plugin_type: Union[str, PluginType] = PluginType.BUNDLE,
            output_dir: Union[str, Path] = "."
    ) -> Path:
        """Create a new plugin project under ``output_dir``.

        Raises:
            ScaffoldError: If the project cannot be created
        """
        return create_plugin_template(name, plugin_type, output_dir)


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")
