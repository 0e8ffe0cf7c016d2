"""Unit tests for the per-source fetchers."""

import os
from pathlib import Path

import httpx
import pytest

from agen.plugin_system.fetchers import (
    ArchiveFetcher,
    FetchResult,
    LocalPathFetcher,
    VcsFetcher,
    select_plugin_root,
)
from agen.plugin_system.source import ArchiveUrlSource, VcsSource, resolve_source
from agen.utils.exceptions import (
    ExtractError,
    FetchError,
    InvalidSourceError,
    PathNotDirectoryError,
    PathNotFoundError,
    UnsupportedFormatError,
)

WIDGETS_URL = "https://github.com/acme/widgets.git"


@pytest.fixture
def store(tmp_path):
    path = tmp_path / "store"
    path.mkdir()
    return path


@pytest.fixture
def archive_fetcher(store, http_client):
    return ArchiveFetcher(store, client=http_client)


@pytest.fixture
def no_leftover_temp_dirs(tmp_path, monkeypatch):
    """Point temporary directories at a dedicated folder and check it ends empty."""
    temp_root = tmp_path / "tmp"
    temp_root.mkdir()
    monkeypatch.setattr("tempfile.tempdir", str(temp_root))
    yield temp_root
    assert os.listdir(temp_root) == []


class TestVcsFetcher:
    def test_clone_new(self, store, fake_vcs):
        """Test a new repository is cloned under the store."""
        fake_vcs.repos[WIDGETS_URL] = {"agents/helper.md": "# Helper"}

        result = VcsFetcher(store, fake_vcs).fetch(resolve_source("github.com/acme/widgets@v2"))

        assert result == FetchResult(store / "widgets", created=True)
        assert fake_vcs.calls == [("clone", WIDGETS_URL, "v2", str(store / "widgets"))]
        assert (store / "widgets" / "agents" / "helper.md").exists()

    def test_pull_existing(self, store, fake_vcs):
        """Test an existing checkout is updated in place."""
        (store / "widgets").mkdir()

        result = VcsFetcher(store, fake_vcs).fetch(resolve_source("github.com/acme/widgets"))

        assert result == FetchResult(store / "widgets", created=False)
        assert fake_vcs.calls == [("pull", str(store / "widgets"), "main")]

    def test_clone_failure_removes_partial_checkout(self, store, fake_vcs):
        class PartialVcs(type(fake_vcs)):
            def clone(self, url, ref, dest):
                (dest / ".git").mkdir(parents=True)
                raise FetchError("Failed to clone: connection reset")

        with pytest.raises(FetchError):
            VcsFetcher(store, PartialVcs()).fetch(resolve_source("github.com/acme/widgets"))

        assert not (store / "widgets").exists()

    def test_pull_failure_propagates(self, store, fake_vcs):
        class FailingPull(type(fake_vcs)):
            def pull(self, dest, ref):
                raise FetchError("Failed to update")

        (store / "widgets").mkdir()
        with pytest.raises(FetchError):
            VcsFetcher(store, FailingPull()).fetch(resolve_source("github.com/acme/widgets"))
        assert (store / "widgets").is_dir()


    @pytest.mark.parametrize("repo", ["..", ".", "registry.json"])
    def test_repo_outside_store_rejected(self, store, fake_vcs, repo):
        """Test repositories that would not land directly under the store are refused."""
        source = VcsSource(raw=f"github.com/acme/{repo}", owner="acme", repo=repo)

        with pytest.raises(InvalidSourceError):
            VcsFetcher(store, fake_vcs).fetch(source)

        assert fake_vcs.calls == []


class TestArchiveFetcher:
    def test_fetch_zip(self, store, archive_fetcher, http_routes, http_requests, zip_bytes, no_leftover_temp_dirs):
        """Test the archive is downloaded, extracted and copied into the store."""
        url = "https://example.com/releases/toolkit.zip"
        http_routes[url] = (200, zip_bytes({
            "toolkit-1.0/": None,
            "toolkit-1.0/plugin.json": '{"name": "toolkit"}',
            "toolkit-1.0/agents/helper.md": "# Helper",
        }))

        result = archive_fetcher.fetch(resolve_source(url))

        assert result == FetchResult(store / "toolkit", created=True)
        assert (store / "toolkit" / "plugin.json").exists()
        assert (store / "toolkit" / "agents" / "helper.md").read_text() == "# Helper"
        assert len(http_requests) == 1
        assert http_requests[0].method == "GET"

    def test_fetch_flat_zip(self, store, archive_fetcher, http_routes, zip_bytes):
        """Test an archive without a top-level folder is used from its root."""
        url = "https://example.com/flat.zip"
        http_routes[url] = (200, zip_bytes({"agents/a.md": "", "agents/b.md": "", "README.md": ""}))

        result = archive_fetcher.fetch(resolve_source(url))

        assert result.directory == store / "flat"
        assert sorted(os.listdir(store / "flat" / "agents")) == ["a.md", "b.md"]

    def test_refetch_is_not_created(self, store, archive_fetcher, http_routes, zip_bytes):
        url = "https://example.com/toolkit.zip"
        http_routes[url] = (200, zip_bytes({"toolkit/agents/a.md": ""}))

        assert archive_fetcher.fetch(resolve_source(url)).created is True
        assert archive_fetcher.fetch(resolve_source(url)).created is False

    def test_unsupported_format(self, store, archive_fetcher, http_routes, http_requests, no_leftover_temp_dirs):
        """Test a non-zip download fails before extraction."""
        url = "https://example.com/bundle.tar"
        http_routes[url] = (200, b"tar bytes")

        with pytest.raises(UnsupportedFormatError) as exc_info:
            archive_fetcher.fetch(resolve_source(url))

        assert exc_info.value.kind == "UnsupportedFormat"
        assert len(http_requests) == 1
        assert os.listdir(store) == []

    @pytest.mark.parametrize("status", [404, 500, 204])
    def test_http_status_error(self, store, archive_fetcher, http_routes, status, no_leftover_temp_dirs):
        url = "https://example.com/toolkit.zip"
        http_routes[url] = (status, b"")

        with pytest.raises(FetchError) as exc_info:
            archive_fetcher.fetch(resolve_source(url))

        assert exc_info.value.status_code == status
        assert os.listdir(store) == []

    def test_transport_error(self, store):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        fetcher = ArchiveFetcher(store, client=client)

        with pytest.raises(FetchError, match="connection refused"):
            fetcher.fetch(resolve_source("https://example.com/toolkit.zip"))
        client.close()

    def test_corrupt_archive(self, store, archive_fetcher, http_routes, no_leftover_temp_dirs):
        url = "https://example.com/toolkit.zip"
        http_routes[url] = (200, b"definitely not a zip")

        with pytest.raises(ExtractError):
            archive_fetcher.fetch(resolve_source(url))
        assert not (store / "toolkit").exists()

    def test_redirect_is_followed(self, store, zip_bytes):
        body = zip_bytes({"toolkit/agents/a.md": ""})

        def handler(request):
            if request.url.host == "example.com":
                return httpx.Response(302, headers={"Location": "https://cdn.example.com/toolkit.zip"})
            return httpx.Response(200, content=body)

        client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
        result = ArchiveFetcher(store, client=client).fetch(resolve_source("https://example.com/latest.zip"))
        client.close()

        assert result.directory == store / "latest"
        assert (store / "latest" / "agents" / "a.md").exists()

    def test_default_client_uses_timeout(self, store, monkeypatch):
        """Test a per-download client is built from the configured options."""
        created = {}

        class RecordingClient(httpx.Client):
            def __init__(self, **kwargs):
                created.update(kwargs)
                kwargs["transport"] = httpx.MockTransport(lambda request: httpx.Response(404))
                super().__init__(**kwargs)

        monkeypatch.setattr("agen.plugin_system.fetchers.httpx.Client", RecordingClient)

        with pytest.raises(FetchError):
            ArchiveFetcher(store, timeout=5.0, follow_redirects=False).fetch(
                resolve_source("https://example.com/toolkit.zip")
            )

        assert created == {"follow_redirects": False, "timeout": 5.0}


    @pytest.mark.parametrize("filename", ["...zip", "..zip", "registry.json.zip", "a\x00.zip", "../evil.zip"])
    def test_unstorable_filename_rejected(self, tmp_path, store, archive_fetcher, http_routes, http_requests,
                                          zip_bytes, filename):
        """Test archives named so they would escape the store are refused before download."""
        url = "https://example.com/plugin.zip"
        http_routes[url] = (200, zip_bytes({"plugin.json": '{"name": "evil"}'}))

        with pytest.raises(InvalidSourceError):
            archive_fetcher.fetch(ArchiveUrlSource(raw=url, url=url, filename=filename))

        assert http_requests == []
        assert os.listdir(store) == []
        assert sorted(os.listdir(tmp_path)) == ["store"]

    def test_unwritable_download_name(self, tmp_path, archive_fetcher, http_routes, zip_bytes):
        """Test a destination the filesystem cannot open is a fetch error."""
        url = "https://example.com/plugin.zip"
        http_routes[url] = (200, zip_bytes({"plugin.json": '{"name": "demo"}'}))

        with pytest.raises(FetchError, match="Failed to save download"):
            archive_fetcher.download(url, tmp_path / "a\x00.zip")


class TestLocalPathFetcher:
    def test_existing_directory(self, tmp_path):
        """Test a local directory is used in place."""
        directory = tmp_path / "myplugin"
        directory.mkdir()

        result = LocalPathFetcher().fetch(resolve_source(str(directory)))

        assert result == FetchResult(directory, created=False)

    def test_relative_path(self, tmp_path, monkeypatch):
        (tmp_path / "myplugin").mkdir()
        monkeypatch.chdir(tmp_path)

        result = LocalPathFetcher().fetch(resolve_source("./myplugin"))

        assert result.directory == tmp_path / "myplugin"
        assert result.directory.is_absolute()

    def test_missing_path(self, tmp_path):
        with pytest.raises(PathNotFoundError) as exc_info:
            LocalPathFetcher().fetch(resolve_source(str(tmp_path / "missing")))
        assert exc_info.value.kind == "PathNotFound"

    def test_file_path(self, tmp_path):
        path = tmp_path / "plugin.zip"
        path.write_bytes(b"")

        with pytest.raises(PathNotDirectoryError) as exc_info:
            LocalPathFetcher().fetch(resolve_source(str(path)))
        assert exc_info.value.kind == "NotADirectory"


class TestSelectPluginRoot:
    def test_root_manifest(self, tmp_path):
        (tmp_path / "plugin.json").write_text("{}")
        (tmp_path / "nested").mkdir()
        assert select_plugin_root(tmp_path) == tmp_path

    def test_single_top_level_directory(self, tmp_path):
        (tmp_path / "toolkit").mkdir()
        (tmp_path / "__MACOSX").mkdir()
        (tmp_path / ".DS_Store").write_text("")
        assert select_plugin_root(tmp_path) == tmp_path / "toolkit"

    def test_directory_with_manifest_preferred(self, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "toolkit").mkdir()
        (tmp_path / "toolkit" / "plugin.json").write_text("{}")
        assert select_plugin_root(tmp_path) == tmp_path / "toolkit"

    def test_mixed_top_level(self, tmp_path):
        (tmp_path / "agents").mkdir()
        (tmp_path / "README.md").write_text("")
        assert select_plugin_root(tmp_path) == tmp_path
