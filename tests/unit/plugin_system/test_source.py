"""Unit tests for plugin source classification."""

import pytest

from agen.plugin_system.source import (
    ArchiveUrlSource,
    LocalPathSource,
    SourceKind,
    VcsSource,
    archive_filename,
    archive_store_name,
    is_store_name,
    resolve_source,
)
from agen.utils.exceptions import InvalidSourceError


@pytest.mark.parametrize(
    "source, owner, repo, ref",
    [
        ("github.com/acme/widgets", "acme", "widgets", "main"),
        ("github.com/acme/widgets@v2", "acme", "widgets", "v2"),
        ("github.com/acme/widgets@", "acme", "widgets", "main"),
        ("github.com/eshanized/agen-plugins@release/1.0", "eshanized", "agen-plugins", "release/1.0"),
        ("github.com/acme/widgets/tree/dev", "acme", "widgets", "main"),
    ],
)
def test_resolve_github(source, owner, repo, ref):
    """Test GitHub references yield owner, repo and ref (default main)."""
    resolved = resolve_source(source)

    assert isinstance(resolved, VcsSource)
    assert resolved.kind is SourceKind.VCS
    assert resolved.raw == source
    assert resolved.owner == owner
    assert resolved.repo == repo
    assert resolved.ref == ref
    assert resolved.clone_url == f"https://github.com/{owner}/{repo}.git"


@pytest.mark.parametrize(
    "source",
    [
        "github.com/",
        "github.com/acme",
        "github.com/acme/",
        "github.com//widgets",
        "github.com/acme@v1",
        "github.com/acme/..",
        "github.com/acme/.",
        "github.com/../widgets",
        "github.com/acme/..@main",
    ],
)
def test_resolve_github_invalid(source):
    """Test GitHub references without a usable owner and repo are rejected."""
    with pytest.raises(InvalidSourceError) as exc_info:
        resolve_source(source)
    assert exc_info.value.kind == "InvalidSource"
    assert exc_info.value.details["source"] == source


@pytest.mark.parametrize(
    "url, filename",
    [
        ("https://example.com/plugins/toolkit.zip", "toolkit.zip"),
        ("http://example.com/bundle.tar", "bundle.tar"),
        ("https://example.com/download/plugin.zip?token=abc", "plugin.zip"),
        ("https://example.com/my%20plugin.zip", "my plugin.zip"),
        ("https://example.com/", "plugin.zip"),
        ("https://example.com", "plugin.zip"),
        ("https://example.com/a/..", "plugin.zip"),
    ],
)
def test_resolve_url(url, filename):
    """Test URLs become archive sources named after their last path segment."""
    resolved = resolve_source(url)

    assert isinstance(resolved, ArchiveUrlSource)
    assert resolved.kind is SourceKind.ARCHIVE_URL
    assert resolved.url == url
    assert resolved.filename == filename


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/...zip",
        "https://example.com/..zip",
        "https://example.com/registry.json.zip",
        "https://example.com/a%00.zip",
        "https://example.com/a%0Ab.zip",
    ],
)
def test_resolve_url_unstorable_filename(url):
    """Test archive names that cannot become a store directory are rejected."""
    with pytest.raises(InvalidSourceError) as exc_info:
        resolve_source(url)
    assert exc_info.value.details["source"] == url


def test_archive_store_name():
    assert archive_store_name("toolkit.zip") == "toolkit"
    assert archive_store_name(".zip") == "plugin"
    assert archive_store_name("bundle.tar") == "bundle.tar"


@pytest.mark.parametrize("name", ["", ".", "..", "registry.json", "a/b", "a\\b", "a\x00b"])
def test_is_store_name_rejects(name):
    assert not is_store_name(name)


@pytest.mark.parametrize(
    "source",
    ["./myplugin", "myplugin", "/opt/plugins/demo", "../other", "gitlab.com/acme/widgets", "ftp://host/p.zip"],
)
def test_resolve_local_path(source, monkeypatch):
    """Test unprefixed sources are local paths and open no connections."""

    def forbidden(*args, **kwargs):
        raise AssertionError("source resolution must not open connections")

    monkeypatch.setattr("socket.socket", forbidden)

    resolved = resolve_source(source)

    assert isinstance(resolved, LocalPathSource)
    assert resolved.kind is SourceKind.LOCAL_PATH
    assert resolved.path == source


@pytest.mark.parametrize("source", ["", "   "])
def test_resolve_empty(source):
    with pytest.raises(InvalidSourceError):
        resolve_source(source)


def test_archive_filename_strips_backslashes():
    assert archive_filename("https://example.com/dir%5Cevil.zip") == "evil.zip"
