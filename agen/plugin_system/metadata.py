"""Plugin metadata resolution for a staged directory.

A ``plugin.json`` at the directory root is authoritative. Without one the
plugin record is inferred from the conventional layout::

    agents/<name>.md        -> agents
    skills/<name>/          -> skills
    workflows/<name>.md     -> workflows
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Union

import structlog

from agen.plugin_system.manifest import MANIFEST_FILENAME, Plugin, PluginType

logger = structlog.get_logger(__name__)

MARKDOWN_EXTENSION = ".md"
INFERRED_VERSION = "0.0.0"


def has_manifest(directory: Union[str, Path]) -> bool:
    return (Path(directory) / MANIFEST_FILENAME).is_file()


def resolve_plugin_metadata(directory: Union[str, Path]) -> Plugin:
    """Return the plugin record for a staged directory.

    Raises:
        InvalidManifestError: If a manifest is present but malformed
    """
    directory = Path(directory)
    if has_manifest(directory):
        plugin = Plugin.load(directory / MANIFEST_FILENAME)
        logger.debug("manifest_loaded", directory=str(directory), plugin=plugin.name)
        return plugin
    return infer_plugin_metadata(directory)


def infer_plugin_metadata(directory: Union[str, Path]) -> Plugin:
    """Build a bundle record from the directory layout. Never fails."""
    directory = Path(directory)
    plugin = Plugin(
        name=directory.name or str(directory),
        version=INFERRED_VERSION,
        type=PluginType.BUNDLE,
        source=str(directory),
        agents=_markdown_names(directory / "agents"),
        skills=_directory_names(directory / "skills"),
        workflows=_markdown_names(directory / "workflows"),
    )
    logger.debug(
        "metadata_inferred",
        directory=str(directory),
        agents=len(plugin.agents),
        skills=len(plugin.skills),
        workflows=len(plugin.workflows),
    )
    return plugin


def _entries(directory: Path) -> List[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            return list(it)
    except OSError:
        return []


def _markdown_names(directory: Path) -> List[str]:
    return sorted(
        entry.name[: -len(MARKDOWN_EXTENSION)]
        for entry in _entries(directory)
        if not entry.is_dir() and entry.name.endswith(MARKDOWN_EXTENSION)
    )


def _directory_names(directory: Path) -> List[str]:
    return sorted(entry.name for entry in _entries(directory) if entry.is_dir())
