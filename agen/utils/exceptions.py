from __future__ import annotations

from typing import Any, Optional


class AgenError(Exception):
    """Base exception for all agen errors."""

    #: Short error kind used when reporting to the user
    kind = "AgenError"

    def __init__(self, message: str, *args: Any, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            *args: Additional positional arguments to pass to Exception
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs.pop("details", {})
        self.details.update(kwargs)
        super().__init__(message, *args)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ConfigurationError(AgenError):
    """Exception raised for configuration-related errors."""

    kind = "ConfigurationError"

    def __init__(
            self, message: str, *args: Any, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            *args: Additional positional arguments to pass to the parent Exception.
            config_key: The configuration key that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, *args, details=details, **kwargs)


class PluginError(AgenError):
    """Exception raised for plugin-related errors."""

    kind = "PluginError"

    def __init__(
            self,
            message: str,
            *args: Any,
            plugin_name: Optional[str] = None,
            source: Optional[str] = None,
            **kwargs: Any
    ) -> None:
        """Initialize a PluginError.

        Args:
            message: A descriptive error message.
            *args: Additional positional arguments to pass to the parent Exception.
            plugin_name: The name of the plugin that caused the error.
            source: The source reference being installed.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if plugin_name:
            details["plugin_name"] = plugin_name
        if source:
            details["source"] = source
        super().__init__(message, *args, details=details, **kwargs)


class InvalidSourceError(PluginError):
    """The source string cannot be classified into a fetch strategy."""

    kind = "InvalidSource"


class FetchError(PluginError):
    """Version control or HTTP transport failure while fetching a plugin."""

    kind = "FetchError"

    def __init__(
            self, message: str, *args: Any, status_code: Optional[int] = None, **kwargs: Any
    ) -> None:
        details = kwargs.pop("details", {})
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, *args, details=details, **kwargs)
        self.status_code = status_code


class ExtractError(PluginError):
    """An archive could not be read or its destination could not be written."""

    kind = "ExtractError"

    def __init__(
            self, message: str, *args: Any, file_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, *args, details=details, **kwargs)


class UnsupportedFormatError(PluginError):
    """The downloaded artifact is not a recognized archive type."""

    kind = "UnsupportedFormat"


class PathNotFoundError(PluginError):
    """A local plugin source does not exist."""

    kind = "PathNotFound"


class PathNotDirectoryError(PluginError):
    """A local plugin source exists but is not a directory."""

    kind = "NotADirectory"


class InvalidManifestError(PluginError):
    """A plugin.json is present but does not describe a valid plugin."""

    kind = "InvalidManifest"


class RegistryWriteError(PluginError):
    """The registry file could not be written."""

    kind = "RegistryWriteError"


class PluginRemovalError(PluginError):
    """An installed plugin's files could not be removed."""

    kind = "RemoveError"


class PluginNotFoundError(PluginError):
    """The referenced plugin is not in the registry."""

    kind = "NotFound"


class RegistryLoadError(AgenError):
    """The registry file could not be loaded.

    ``reason`` is either ``"not_found"`` or ``"parse_error"``.
    """

    kind = "RegistryLoadError"

    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"

    def __init__(
            self, message: str, *args: Any, reason: str = PARSE_ERROR, **kwargs: Any
    ) -> None:
        details = kwargs.pop("details", {})
        details["reason"] = reason
        super().__init__(message, *args, details=details, **kwargs)
        self.reason = reason


class ScaffoldError(PluginError):
    """A plugin project skeleton could not be created."""

    kind = "ScaffoldError"
