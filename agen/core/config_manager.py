from __future__ import annotations

import json
import os
import pathlib
import sys
from copy import deepcopy
from typing import Any, Dict, List, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from agen.utils.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


def default_config_dir() -> pathlib.Path:
    """Return the per-user configuration directory for the current platform.

    Uses ``%APPDATA%`` on Windows, ``~/Library/Application Support`` on macOS
    and ``$XDG_CONFIG_HOME`` (falling back to ``~/.config``) elsewhere.
    """
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        if appdata:
            return pathlib.Path(appdata)
        return pathlib.Path.home() / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return pathlib.Path.home() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg and os.path.isabs(xdg):
        return pathlib.Path(xdg)
    return pathlib.Path.home() / ".config"


class ConfigSchema(BaseModel):
    """Schema for validating configuration data.

    This model defines the expected structure and default values for the
    plugin manager configuration.
    """
    paths: Dict[str, Any] = Field(
        default_factory=lambda: {
            'config_dir': None,
        },
        description='Filesystem locations',
    )
    http: Dict[str, Any] = Field(
        default_factory=lambda: {
            'timeout': None,
            'follow_redirects': True,
        },
        description='Archive download settings',
    )
    vcs: Dict[str, Any] = Field(
        default_factory=lambda: {
            'executable': 'git',
        },
        description='Version control settings',
    )
    logging: Dict[str, Any] = Field(
        default_factory=lambda: {
            'level': 'WARNING',
            'format': 'text',
            'file': {
                'enabled': False,
                'path': 'logs/agen.log',
            },
        },
        description='Logging settings',
    )

    @model_validator(mode='after')
    def validate_http_timeout(self) -> 'ConfigSchema':
        """Validate that the HTTP timeout is a positive number or unset."""
        timeout = self.http.get('timeout')
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
            raise ValueError('HTTP timeout must be a positive number or null.')
        return self

    @model_validator(mode='after')
    def validate_logging_format(self) -> 'ConfigSchema':
        """Validate the log output format."""
        if str(self.logging.get('format', 'text')).lower() not in ('json', 'text'):
            raise ValueError("Logging format must be 'json' or 'text'.")
        return self


class ConfigManager:
    """Configuration manager for the plugin manager.

    Handles loading, validating, and providing access to configuration
    settings from defaults, an optional file and environment variables.

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The loaded configuration
    """

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'AGEN_'
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
            env_prefix: Prefix for environment variables
        """
        self._config_path = pathlib.Path(config_path) if config_path else None
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}
        self._initialized = False

    def initialize(self) -> None:
        """Load configuration from the default schema, file, and environment.

        Raises:
            ConfigurationError: If the file cannot be parsed or the result is invalid
        """
        self._config = ConfigSchema().model_dump()
        self._load_from_file()
        self._apply_env_vars()
        self._validate_config()
        self._initialized = True

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _load_from_file(self) -> None:
        """Load configuration from a file.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        if self._config_path is None or not self._config_path.exists():
            return

        suffix = self._config_path.suffix.lower()
        try:
            content = self._config_path.read_text(encoding='utf-8')
            if suffix in ('.yaml', '.yml'):
                file_config = yaml.safe_load(content)
            elif suffix == '.json':
                file_config = json.loads(content) if content.strip() else None
            else:
                raise ConfigurationError(
                    f'Unsupported config file format: {self._config_path.suffix}',
                    config_key='config_path'
                )
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f'Config file {self._config_path} must contain a mapping',
                    config_key='config_path'
                )
            self._merge_config(file_config)

    def _merge_config(self, source: Dict[str, Any], target: Optional[Dict[str, Any]] = None) -> None:
        """Recursively merge ``source`` into the loaded configuration."""
        if target is None:
            target = self._config
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge_config(value, target[key])
            else:
                target[key] = deepcopy(value)

    def _apply_env_vars(self) -> None:
        """Override configuration values with environment variables.

        ``AGEN_HTTP_TIMEOUT=30`` sets ``http.timeout``. The last path segment
        may itself contain underscores (``AGEN_PATHS_CONFIG_DIR``) when the
        parent section already defines such a key.
        """
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            parts = env_name[len(self._env_prefix):].lower().split('_')
            config_path = self._match_existing_path(parts)
            self._set_nested_value(self._config, config_path, self._parse_env_value(env_value))

    def _match_existing_path(self, parts: List[str]) -> List[str]:
        node: Any = self._config
        path: List[str] = []
        index = 0
        while index < len(parts):
            if not isinstance(node, dict):
                break
            for end in range(len(parts), index, -1):
                candidate = '_'.join(parts[index:end])
                if candidate in node:
                    path.append(candidate)
                    node = node[candidate]
                    index = end
                    break
            else:
                break
        if index < len(parts):
            path.append('_'.join(parts[index:]))
        return path

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, None or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False
        if value.lower() in ('null', 'none'):
            return None

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            return float(value)
        except ValueError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if key not in config or not isinstance(config[key], dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _validate_config(self) -> None:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            self._config = ConfigSchema(**self._config).model_dump()
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                details={'validation_errors': errors}
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            default: Default value if the key doesn't exist

        Returns:
            The configuration value or default

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config
        try:
            for part in key.split('.'):
                result = result[part]
            return result
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            value: The value to set

        Raises:
            ConfigurationError: If the manager isn't initialized or the value is invalid
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot set configuration before initialization',
                config_key=key
            )

        previous = deepcopy(self._config)
        self._set_nested_value(self._config, key.split('.'), value)
        try:
            self._validate_config()
        except ConfigurationError:
            self._config = previous
            raise
        logger.debug("config_value_set", key=key)

    @property
    def config_dir(self) -> pathlib.Path:
        """Base configuration directory (the parent of ``agen/``)."""
        configured = self.get('paths.config_dir')
        if configured:
            return pathlib.Path(configured).expanduser()
        return default_config_dir()
