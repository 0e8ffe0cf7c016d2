"""Plugin source classification.

A source string is turned into exactly one of three source variants without
touching the network or the filesystem:

* ``github.com/<owner>/<repo>[@<ref>]`` becomes a :class:`VcsSource`
* ``http://...`` or ``https://...`` becomes an :class:`ArchiveUrlSource`
* anything else becomes a :class:`LocalPathSource`
"""

from __future__ import annotations

import enum
import posixpath
from dataclasses import dataclass
from typing import ClassVar, Union
from urllib.parse import unquote, urlsplit

from agen.plugin_system.package import strip_archive_extension
from agen.plugin_system.registry import REGISTRY_FILENAME
from agen.utils.exceptions import InvalidSourceError

GITHUB_PREFIX = "github.com/"
URL_PREFIXES = ("http://", "https://")
DEFAULT_REF = "main"
DEFAULT_ARCHIVE_FILENAME = "plugin.zip"
DEFAULT_STORE_NAME = "plugin"
RESERVED_STORE_NAMES = (".", "..", REGISTRY_FILENAME)


class SourceKind(str, enum.Enum):
    VCS = "vcs"
    ARCHIVE_URL = "archive_url"
    LOCAL_PATH = "local_path"


@dataclass(frozen=True)
class VcsSource:
    """A GitHub repository at a branch or tag."""

    kind: ClassVar[SourceKind] = SourceKind.VCS

    raw: str
    owner: str
    repo: str
    ref: str = DEFAULT_REF

    @property
    def repo_path(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.repo_path}.git"


@dataclass(frozen=True)
class ArchiveUrlSource:
    """A plugin archive downloadable over HTTP(S)."""

    kind: ClassVar[SourceKind] = SourceKind.ARCHIVE_URL

    raw: str
    url: str
    filename: str


@dataclass(frozen=True)
class LocalPathSource:
    """A plugin directory on the local filesystem."""

    kind: ClassVar[SourceKind] = SourceKind.LOCAL_PATH

    raw: str
    path: str


PluginSource = Union[VcsSource, ArchiveUrlSource, LocalPathSource]


def resolve_source(source: str) -> PluginSource:
    """Classify a plugin source string.

    Args:
        source: Source reference as typed by the user

    Returns:
        The matching source variant

    Raises:
        InvalidSourceError: If the string is empty, a GitHub reference lacks
            a usable owner or repository segment, or a URL names an archive
            that cannot be stored as a single directory in the plugin store
    """
    if not source or not source.strip():
        raise InvalidSourceError("Plugin source must not be empty", source=source)

    if source.startswith(GITHUB_PREFIX):
        return _resolve_github(source)

    if source.startswith(URL_PREFIXES):
        return _resolve_url(source)

    return LocalPathSource(raw=source, path=source)


def _resolve_github(source: str) -> VcsSource:
    remainder = source[len(GITHUB_PREFIX):]
    repo_path, _, ref = remainder.partition("@")
    segments = repo_path.split("/")
    if len(segments) < 2 or not is_store_name(segments[0]) or not is_store_name(segments[1]):
        raise InvalidSourceError(f"Invalid GitHub source: {source}", source=source)
    return VcsSource(raw=source, owner=segments[0], repo=segments[1], ref=ref or DEFAULT_REF)


def archive_filename(url: str) -> str:
    """Return the last path segment of ``url``, or ``plugin.zip`` if empty."""
    path = unquote(urlsplit(url).path).replace("\\", "/")
    filename = posixpath.basename(path)
    if filename in ("", ".", ".."):
        return DEFAULT_ARCHIVE_FILENAME
    return filename


def _resolve_url(source: str) -> ArchiveUrlSource:
    filename = archive_filename(source)
    if not filename.isprintable() or not is_store_name(archive_store_name(filename)):
        raise InvalidSourceError(f"Invalid archive file name in URL: {source}", source=source)
    return ArchiveUrlSource(raw=source, url=source, filename=filename)


def archive_store_name(filename: str) -> str:
    """Store directory name for a downloaded archive: the name minus ``.zip``."""
    return strip_archive_extension(filename) or DEFAULT_STORE_NAME


def is_store_name(name: str) -> bool:
    """Whether ``name`` maps to exactly one directory directly under the plugin store."""
    return (
        bool(name)
        and name not in RESERVED_STORE_NAMES
        and "/" not in name
        and "\\" not in name
        and name.isprintable()
    )
