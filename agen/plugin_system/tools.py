"""Developer tools for agen plugins.

This module provides the plugin project scaffolder used by
``agen-plugin create``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Union

import structlog

from agen.plugin_system.manifest import MANIFEST_FILENAME, Plugin, PluginType
from agen.utils.exceptions import ScaffoldError

logger = structlog.get_logger(__name__)

INITIAL_VERSION = "0.1.0"

AGENT_TEMPLATE = """---
name: {name}
description: Custom agent description
---

# {title}

Your agent instructions here.
"""

SKILL_TEMPLATE = """---
name: {name}
description: Custom skill description
---

# {title}

Your skill instructions here.
"""

README_TEMPLATE = """# {name}

AGEN plugin.

## Installation

```bash
agen-plugin install ./{name}
```
"""


def create_plugin_template(
        plugin_name: str,
        plugin_type: Union[str, PluginType] = PluginType.BUNDLE,
        output_dir: Union[str, Path] = "."
) -> Path:
    """Create a new plugin project skeleton.

    Writes ``plugin.json`` and ``README.md`` plus, depending on the type, a
    sample ``agents/<name>.md``, a sample ``skills/<name>/SKILL.md``, an empty
    ``workflows/`` directory, or empty ``agents/``, ``skills/`` and
    ``workflows/`` directories for a bundle.

    Running it again on an existing project only adds what is missing: files
    that already exist are left untouched and nothing is deleted.

    Args:
        plugin_name: Plugin name, also used as the directory name
        plugin_type: One of agent, skill, workflow, bundle
        output_dir: Directory in which the project directory is created

    Returns:
        Path to the plugin project directory

    Raises:
        ScaffoldError: If the name or type is invalid or files cannot be written
    """
    if not plugin_name or plugin_name in (".", "..") or "/" in plugin_name or "\\" in plugin_name:
        raise ScaffoldError(f"Invalid plugin name: {plugin_name!r}", plugin_name=plugin_name)

    try:
        kind = PluginType(str(plugin_type).lower())
    except ValueError:
        raise ScaffoldError(
            f"Invalid plugin type {plugin_type!r}; expected one of: {', '.join(PluginType.values())}",
            plugin_name=plugin_name,
        ) from None

    plugin_dir = Path(output_dir) / plugin_name
    title = plugin_name.replace("-", " ").replace("_", " ").title()

    manifest = Plugin(
        name=plugin_name,
        version=INITIAL_VERSION,
        description=f"Custom {kind.value} plugin",
        type=kind,
        metadata={},
    )

    manifest_path = plugin_dir / MANIFEST_FILENAME
    files: Dict[Path, str] = {
        plugin_dir / "README.md": README_TEMPLATE.format(name=plugin_name),
    }
    directories = []

    if kind is PluginType.AGENT:
        files[plugin_dir / "agents" / f"{plugin_name}.md"] = AGENT_TEMPLATE.format(name=plugin_name, title=title)
    elif kind is PluginType.SKILL:
        files[plugin_dir / "skills" / plugin_name / "SKILL.md"] = SKILL_TEMPLATE.format(name=plugin_name, title=title)
    elif kind is PluginType.WORKFLOW:
        directories.append(plugin_dir / "workflows")
    else:
        directories.extend(plugin_dir / d for d in ("agents", "skills", "workflows"))

    try:
        plugin_dir.mkdir(parents=True, exist_ok=True)
        if manifest_path.exists():
            logger.debug("scaffold_file_exists", path=str(manifest_path))
        else:
            manifest.save(manifest_path)
        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)
        for path, content in files.items():
            if path.exists():
                logger.debug("scaffold_file_exists", path=str(path))
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ScaffoldError(f"Failed to create plugin {plugin_name}: {e}", plugin_name=plugin_name) from e

    logger.info("plugin_template_created", plugin=plugin_name, type=kind.value, path=str(plugin_dir))
    return plugin_dir
