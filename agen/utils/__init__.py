"""Utility functions and classes for agen."""

from agen.utils.exceptions import (
    AgenError,
    ConfigurationError,
    ExtractError,
    FetchError,
    InvalidManifestError,
    InvalidSourceError,
    PathNotDirectoryError,
    PathNotFoundError,
    PluginError,
    PluginNotFoundError,
    PluginRemovalError,
    RegistryLoadError,
    RegistryWriteError,
    ScaffoldError,
    UnsupportedFormatError,
)
