"""Plugin acquisition and registry.

Resolves plugin source references, fetches and extracts plugins, reads or
infers their metadata and records them in the plugin registry.
"""

from agen.plugin_system.manager import InstallState, PluginManager
from agen.plugin_system.manifest import MANIFEST_FILENAME, Plugin, PluginType
from agen.plugin_system.registry import REGISTRY_FILENAME, PluginRegistry
from agen.plugin_system.source import (
    ArchiveUrlSource,
    LocalPathSource,
    SourceKind,
    VcsSource,
    resolve_source,
)
from agen.plugin_system.vcs import GitClient, VersionControl

__all__ = [
    "ArchiveUrlSource",
    "GitClient",
    "InstallState",
    "LocalPathSource",
    "MANIFEST_FILENAME",
    "Plugin",
    "PluginManager",
    "PluginRegistry",
    "PluginType",
    "REGISTRY_FILENAME",
    "SourceKind",
    "VcsSource",
    "VersionControl",
    "resolve_source",
]
