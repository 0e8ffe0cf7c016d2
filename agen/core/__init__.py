"""Core package containing configuration and logging."""

from agen.core.config_manager import ConfigManager, ConfigSchema, default_config_dir
from agen.core.logging_manager import LoggingManager
