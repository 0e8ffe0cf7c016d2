"""End-to-end plugin lifecycle through the manager façade."""

import json

import pytest

from agen.plugin_system.manager import PluginManager
from agen.plugin_system.manifest import PluginType
from agen.utils.exceptions import PluginNotFoundError


def test_create_install_uninstall_lifecycle(manager, tmp_path, registry_path):
    """Test a scaffolded project can be installed, inspected and removed."""
    workspace = tmp_path / "workspace"
    plugin_dir = manager.create("demo", "agent", workspace)
    assert (plugin_dir / "agents" / "demo.md").exists()

    plugin = manager.install(str(plugin_dir))
    assert plugin.name == "demo"
    assert plugin.type is PluginType.AGENT
    assert plugin.version == "0.1.0"

    # Manifest records are registered as written, so the agents list comes
    # from plugin.json rather than the directory layout.
    assert manager.get("demo").agents == []

    manager.uninstall("demo")
    assert manager.list() == []
    assert plugin_dir.is_dir()
    with pytest.raises(PluginNotFoundError):
        manager.get("demo")
    assert json.loads(registry_path.read_text()) == {"plugins": {}}


def test_mixed_sources(config_dir, fake_vcs, http_client, http_routes, zip_bytes, make_plugin_dir):
    """Test plugins from all three source kinds share one registry."""
    fake_vcs.repos["https://github.com/acme/widgets.git"] = {"workflows/release.md": ""}
    http_routes["https://example.com/toolkit.zip"] = (200, zip_bytes({"toolkit/skills/lint/SKILL.md": ""}))
    local = make_plugin_dir("local-agents", {"agents/a.md": "", "agents/b.txt": ""})

    manager = PluginManager(config_dir, vcs=fake_vcs, http_client=http_client)
    manager.install("github.com/acme/widgets")
    manager.install("https://example.com/toolkit.zip")
    manager.install(str(local))

    reloaded = PluginManager(config_dir, vcs=fake_vcs, http_client=http_client)
    plugins = {p.name: p for p in reloaded.list()}

    assert set(plugins) == {"widgets", "toolkit", "local-agents"}
    assert plugins["widgets"].workflows == ["release"]
    assert plugins["toolkit"].skills == ["lint"]
    assert plugins["local-agents"].agents == ["a"]

    # Re-installing from the network updates in place rather than duplicating
    reloaded.install("github.com/acme/widgets")
    assert len(reloaded.list()) == 3
    assert fake_vcs.calls[-1][0] == "pull"

    for name in list(plugins):
        reloaded.uninstall(name)
    assert reloaded.list() == []
    assert not (reloaded.plugins_dir / "widgets").exists()
    assert not (reloaded.plugins_dir / "toolkit").exists()
    assert local.is_dir()
