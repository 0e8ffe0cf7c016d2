"""Fetchers that materialize a plugin source as a directory on disk.

There is one fetcher per source kind. Each returns a :class:`FetchResult`
naming the directory metadata should be read from and whether this fetch
created that directory in the plugin store.
"""

from __future__ import annotations

import abc
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

import httpx
import structlog

from agen.plugin_system.manifest import MANIFEST_FILENAME
from agen.plugin_system.package import (
    copy_tree,
    extract_archive,
    is_supported_archive,
)
from agen.plugin_system.source import (
    ArchiveUrlSource,
    LocalPathSource,
    VcsSource,
    archive_store_name,
    is_store_name,
)
from agen.plugin_system.vcs import VersionControl
from agen.utils.exceptions import (
    ExtractError,
    FetchError,
    InvalidSourceError,
    PathNotDirectoryError,
    PathNotFoundError,
    UnsupportedFormatError,
)

logger = structlog.get_logger(__name__)

S = TypeVar("S")

DOWNLOAD_CHUNK_SIZE = 8192
IGNORED_ARCHIVE_ENTRIES = {"__MACOSX"}


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a fetch.

    Attributes:
        directory: Directory holding the plugin's files
        created: True if the fetch created ``directory`` in the plugin store
    """

    directory: Path
    created: bool = False


class Fetcher(abc.ABC, Generic[S]):
    """Base class for the per-source fetchers."""

    @abc.abstractmethod
    def fetch(self, source: S) -> FetchResult:
        """Materialize ``source`` on local disk."""


class VcsFetcher(Fetcher[VcsSource]):
    """Clones or updates a GitHub repository under the plugin store."""

    def __init__(self, plugins_dir: Union[str, Path], vcs: VersionControl) -> None:
        self.plugins_dir = Path(plugins_dir)
        self.vcs = vcs

    def fetch(self, source: VcsSource) -> FetchResult:
        target = store_target(self.plugins_dir, source.repo, source.raw)

        if target.exists():
            logger.info("plugin_repo_update", repo=source.repo_path, ref=source.ref, target=str(target))
            self.vcs.pull(target, source.ref)
            return FetchResult(target, created=False)

        logger.info("plugin_repo_clone", repo=source.repo_path, ref=source.ref, target=str(target))
        try:
            self.vcs.clone(source.clone_url, source.ref, target)
        except FetchError:
            if target.exists():
                shutil.rmtree(target, ignore_errors=True)
            raise
        return FetchResult(target, created=True)


class ArchiveFetcher(Fetcher[ArchiveUrlSource]):
    """Downloads a ZIP archive and copies its plugin folder into the store.

    The download and extraction happen in a temporary directory that is
    removed before :meth:`fetch` returns, whatever the outcome.
    """

    def __init__(
            self,
            plugins_dir: Union[str, Path],
            client: Optional[httpx.Client] = None,
            timeout: Optional[float] = None,
            follow_redirects: bool = True
    ) -> None:
        """Initialize the archive fetcher.

        Args:
            plugins_dir: Plugin store root
            client: HTTP client to use; a client is created per download if omitted
            timeout: Request timeout in seconds (``None`` keeps the httpx default)
            follow_redirects: Whether to follow HTTP redirects
        """
        self.plugins_dir = Path(plugins_dir)
        self._client = client
        self.timeout = timeout
        self.follow_redirects = follow_redirects

    def fetch(self, source: ArchiveUrlSource) -> FetchResult:
        target = store_target(self.plugins_dir, archive_store_name(source.filename), source.raw)
        with tempfile.TemporaryDirectory(prefix="agen-plugin-", ignore_cleanup_errors=True) as temp_dir:
            temp_path = Path(temp_dir)
            archive_path = temp_path / source.filename
            self.download(source.url, archive_path)

            if not is_supported_archive(source.filename):
                raise UnsupportedFormatError(
                    f"Unsupported file format: {source.filename}", source=source.raw
                )

            extract_dir = temp_path / "extracted"
            extract_archive(archive_path, extract_dir)
            plugin_root = select_plugin_root(extract_dir)

            existed = target.exists()
            try:
                copy_tree(plugin_root, target)
            except ExtractError:
                if not existed:
                    shutil.rmtree(target, ignore_errors=True)
                raise

        logger.info("plugin_archive_installed", url=source.url, target=str(target))
        return FetchResult(target, created=not existed)

    def download(self, url: str, dest: Path) -> None:
        """Stream ``url`` into ``dest`` with a single GET request.

        Raises:
            FetchError: On transport errors or a status other than 200
        """
        logger.info("plugin_download", url=url)
        if self._client is not None:
            self._stream_to_file(self._client, url, dest)
            return

        client_kwargs: Dict[str, Any] = {"follow_redirects": self.follow_redirects}
        if self.timeout is not None:
            client_kwargs["timeout"] = self.timeout
        with httpx.Client(**client_kwargs) as client:
            self._stream_to_file(client, url, dest)

    def _stream_to_file(self, client: httpx.Client, url: str, dest: Path) -> None:
        try:
            with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise FetchError(
                        f"Download failed with status: {response.status_code}",
                        status_code=response.status_code,
                        source=url,
                    )
                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download {url}: {e}", source=url) from e
        except (OSError, ValueError) as e:
            raise FetchError(f"Failed to save download from {url}: {e}", source=url) from e


class LocalPathFetcher(Fetcher[LocalPathSource]):
    """Validates a local plugin directory; nothing is copied."""

    def fetch(self, source: LocalPathSource) -> FetchResult:
        path = Path(os.path.abspath(source.path))
        if not path.exists():
            raise PathNotFoundError(f"Path not found: {source.path}", source=source.raw)
        if not path.is_dir():
            raise PathNotDirectoryError(f"Source must be a directory: {source.path}", source=source.raw)
        return FetchResult(path, created=False)


def store_target(plugins_dir: Path, name: str, source: str) -> Path:
    """Directory for ``name`` directly under the plugin store.

    Raises:
        InvalidSourceError: If ``name`` would land anywhere else
    """
    target = plugins_dir / name
    if not is_store_name(name) or target.parent != plugins_dir:
        raise InvalidSourceError(f"Plugin cannot be stored as {name!r}", source=source)
    return target


def select_plugin_root(extract_dir: Path) -> Path:
    """Pick the plugin folder inside an extracted archive.

    In order of preference:

    1. the extraction root itself, if it holds a manifest
    2. the first top-level directory (by name) holding a manifest
    3. the only top-level directory, if there are no top-level files
    4. the extraction root

    Hidden entries and ``__MACOSX`` folders are ignored.
    """
    if (extract_dir / MANIFEST_FILENAME).is_file():
        return extract_dir

    directories: List[Path] = []
    files: List[Path] = []
    for entry in sorted(extract_dir.iterdir()):
        if entry.name.startswith(".") or entry.name in IGNORED_ARCHIVE_ENTRIES:
            continue
        if entry.is_dir():
            directories.append(entry)
        else:
            files.append(entry)

    for directory in directories:
        if (directory / MANIFEST_FILENAME).is_file():
            return directory

    if len(directories) == 1 and not files:
        return directories[0]

    return extract_dir
