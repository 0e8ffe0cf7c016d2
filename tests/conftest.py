"""Pytest configuration and fixtures for agen tests."""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Tuple

import httpx
import pytest

from agen.plugin_system.manager import PluginManager
from agen.plugin_system.vcs import VersionControl
from agen.utils.exceptions import FetchError


class FakeVcs(VersionControl):
    """In-memory version control that materializes canned repositories.

    ``repos`` maps clone URLs to ``{relative path: content}``. Cloning an
    unknown URL fails like an unreachable remote.
    """

    def __init__(self, repos: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self.repos = repos or {}
        self.calls: List[Tuple[str, ...]] = []

    def clone(self, url: str, ref: str, dest: Path) -> None:
        self.calls.append(("clone", url, ref, str(dest)))
        if url not in self.repos:
            raise FetchError(f"Failed to clone: could not resolve host for {url}")
        for rel_path, content in self.repos[url].items():
            target = dest / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

    def pull(self, dest: Path, ref: str) -> None:
        self.calls.append(("pull", str(dest), ref))


def build_zip(entries: Dict[str, Optional[str]], modes: Optional[Dict[str, int]] = None) -> bytes:
    """Build a ZIP archive in memory.

    ``entries`` maps archive names to file content; names ending in ``/`` (or
    a ``None`` content) become directory entries.
    """
    modes = modes or {}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            is_dir = content is None or name.endswith("/")
            if is_dir and not name.endswith("/"):
                name += "/"
            info = zipfile.ZipInfo(name)
            mode = modes.get(name, 0o755 if is_dir else 0o644)
            info.external_attr = ((0o040000 if is_dir else 0o100000) | mode) << 16
            zf.writestr(info, b"" if is_dir else content.encode("utf-8"))
    return buffer.getvalue()


def write_manifest(directory: Path, **fields) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "plugin.json"
    path.write_text(json.dumps(fields), encoding="utf-8")
    return path


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Base configuration directory for a test."""
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def plugins_dir(config_dir: Path) -> Path:
    return config_dir / "agen" / "plugins"


@pytest.fixture
def registry_path(plugins_dir: Path) -> Path:
    return plugins_dir / "registry.json"


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def http_routes() -> Dict[str, Tuple[int, bytes]]:
    """URL to ``(status, body)`` mapping served by ``http_client``."""
    return {}


@pytest.fixture
def http_requests() -> List[httpx.Request]:
    """Requests received by ``http_client``."""
    return []


@pytest.fixture
def http_client(
        http_routes: Dict[str, Tuple[int, bytes]], http_requests: List[httpx.Request]
) -> Generator[httpx.Client, None, None]:
    """HTTP client backed by ``httpx.MockTransport``; unknown URLs get a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        status, body = http_routes.get(str(request.url), (404, b"not found"))
        return httpx.Response(status, content=body)

    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
    yield client
    client.close()


@pytest.fixture
def manager(config_dir: Path, fake_vcs: FakeVcs, http_client: httpx.Client) -> PluginManager:
    """Plugin manager wired to the fake VCS and mock HTTP transport."""
    return PluginManager(config_dir, vcs=fake_vcs, http_client=http_client)


@pytest.fixture
def make_plugin_dir(tmp_path: Path) -> Callable[..., Path]:
    """Create a local plugin directory from ``{relative path: content}``."""

    def _make(name: str, files: Optional[Dict[str, str]] = None, manifest: Optional[dict] = None) -> Path:
        directory = tmp_path / "sources" / name
        directory.mkdir(parents=True, exist_ok=True)
        for rel_path, content in (files or {}).items():
            target = directory / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        if manifest is not None:
            write_manifest(directory, **manifest)
        return directory

    return _make


@pytest.fixture
def zip_bytes() -> Callable[..., bytes]:
    return build_zip
