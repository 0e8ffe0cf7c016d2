"""Command-line interface for the agen plugin manager.

This module provides the ``agen-plugin`` command for installing, removing,
listing, inspecting and creating plugins.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from agen.core.config_manager import ConfigManager
from agen.core.logging_manager import LoggingManager
from agen.plugin_system.manager import PluginManager
from agen.plugin_system.manifest import Plugin, PluginType
from agen.utils.exceptions import AgenError


def _build_manager(args: argparse.Namespace) -> PluginManager:
    """Load configuration, set up logging and construct the plugin manager."""
    config_manager = ConfigManager(config_path=args.config)
    config_manager.initialize()
    if args.config_dir:
        config_manager.set("paths.config_dir", args.config_dir)
    if args.log_level:
        config_manager.set("logging.level", args.log_level)

    LoggingManager(config_manager).initialize()
    return PluginManager.from_config(config_manager)


def _report_error(operation: str, error: AgenError) -> int:
    print(f"{operation} failed: {error.kind}: {error}", file=sys.stderr)
    return 1


def _print_components(plugin: Plugin) -> None:
    if plugin.agents:
        print(f"  Agents: {', '.join(plugin.agents)}")
    if plugin.skills:
        print(f"  Skills: {', '.join(plugin.skills)}")
    if plugin.workflows:
        print(f"  Workflows: {', '.join(plugin.workflows)}")


def install_command(args: argparse.Namespace) -> int:
    """Handle the install command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    print(f"Installing plugin from: {args.source}")
    try:
        plugin = _build_manager(args).install(args.source)
    except AgenError as e:
        return _report_error("install", e)

    print(f"Installed: {plugin.name} v{plugin.version}")
    _print_components(plugin)
    return 0


def uninstall_command(args: argparse.Namespace) -> int:
    """Handle the uninstall command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        _build_manager(args).uninstall(args.name)
    except AgenError as e:
        return _report_error("uninstall", e)

    print(f"Uninstalled: {args.name}")
    return 0


def list_command(args: argparse.Namespace) -> int:
    """Handle the list command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        plugins = _build_manager(args).list()
    except AgenError as e:
        return _report_error("list", e)

    if not plugins:
        print("No plugins installed.")
        print("Install a plugin with: agen-plugin install github.com/<owner>/<repo>")
        return 0

    print(f"Installed plugins ({len(plugins)}):")
    for plugin in sorted(plugins, key=lambda p: p.name):
        print(f"  - {plugin.name} v{plugin.version}")
        print(f"    Type: {plugin.type}")
        if plugin.description:
            print(f"    {plugin.description}")

    return 0


def info_command(args: argparse.Namespace) -> int:
    """Handle the info command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        plugin = _build_manager(args).get(args.name)
    except AgenError as e:
        return _report_error("info", e)

    print(plugin.name)
    print(f"Version:     {plugin.version}")
    print(f"Type:        {plugin.type}")
    print(f"Author:      {plugin.author}")
    print(f"Source:      {plugin.source}")
    if plugin.installed_at:
        print(f"Installed:   {plugin.installed_at}")
    if plugin.description:
        print()
        print(plugin.description)

    for title, items in (("Agents", plugin.agents), ("Skills", plugin.skills), ("Workflows", plugin.workflows)):
        if items:
            print()
            print(f"{title}:")
            for item in items:
                print(f"  - {item}")

    return 0


def create_command(args: argparse.Namespace) -> int:
    """Handle the create command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        plugin_dir = _build_manager(args).create(args.name, args.type, args.output_dir)
    except AgenError as e:
        return _report_error("create", e)

    print(f"Created plugin: {plugin_dir}")
    print("Next steps:")
    print(f"  1. cd {plugin_dir}")
    print("  2. Edit the template files")
    print(f"  3. agen-plugin install {plugin_dir}")
    return 0


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        prog="agen-plugin",
        description="AGEN plugin manager",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--config", help="Path to a YAML or JSON configuration file")
    parser.add_argument("--config-dir", help="Base configuration directory (overrides paths.config_dir)")
    parser.add_argument(
        "--log-level",
        choices=sorted(LoggingManager.LOG_LEVELS),
        help="Log level (overrides logging.level)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Install command
    install_parser = subparsers.add_parser("install", help="Install a plugin")
    install_parser.add_argument(
        "source",
        help="github.com/<owner>/<repo>[@ref], https://host/plugin.zip or a local directory"
    )

    # Uninstall command
    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall a plugin")
    uninstall_parser.add_argument("name", help="Plugin name")

    # List command
    subparsers.add_parser("list", help="List installed plugins")

    # Info command
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("name", help="Plugin name")

    # Create command
    create_parser = subparsers.add_parser("create", help="Create a new plugin project")
    create_parser.add_argument("name", help="Plugin name (e.g., my-plugin)")
    create_parser.add_argument(
        "--type",
        default=PluginType.BUNDLE.value,
        help=f"Plugin type ({', '.join(PluginType.values())})"
    )
    create_parser.add_argument("--output-dir", default=".", help="Output directory")

    args = parser.parse_args(args)

    if args.command == "install":
        return install_command(args)
    elif args.command == "uninstall":
        return uninstall_command(args)
    elif args.command == "list":
        return list_command(args)
    elif args.command == "info":
        return info_command(args)
    elif args.command == "create":
        return create_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
