import pytest
import requests

from addon_manager.addons.domain.errors import TransferError
from addon_manager.addons.services.downloader import Downloader


class FakeResponse:
    def __init__(self, url, chunks=(), status=200, headers=None):
        self.url = url
        self.chunks = list(chunks)
        self.status = status
        self.headers = headers or {}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Client Error")

    def iter_content(self, chunk_size=1):
        yield from self.chunks


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def test_direct_links_are_named_without_a_request():
    session = FakeSession()
    dl = Downloader(session)

    assert dl.resolve_filename("https://host/files/arcdps.dll") == "arcdps.dll"
    assert dl.resolve_filename("https://host/releases/my%20addon.zip") == "my addon.zip"
    assert session.calls == []


def test_redirected_links_use_the_final_url():
    session = FakeSession(FakeResponse("https://cdn/releases/v2/pack.zip"))
    dl = Downloader(session)

    assert dl.resolve_filename("https://host/latest") == "pack.zip"
    assert session.calls[0][1]["allow_redirects"] is True


def test_download_streams_and_reports_progress(tmp_path):
    session = FakeSession(FakeResponse("u", chunks=[b"ab", b"", b"cde"], headers={"Content-Length": "5"}))
    progress = []
    dest = tmp_path / "nested" / "out.zip"

    Downloader(session).download("https://host/out.zip", dest, progress=lambda r, t: progress.append((r, t)))

    assert dest.read_bytes() == b"abcde"
    assert progress == [(2, 5), (5, 5)]


def test_download_without_length_reports_unknown_total(tmp_path):
    session = FakeSession(FakeResponse("u", chunks=[b"x"]))
    progress = []

    Downloader(session).download("https://host/x.dll", tmp_path / "x.dll", progress=lambda r, t: progress.append((r, t)))

    assert progress == [(1, None)]


def test_http_error_becomes_transfer_error(tmp_path):
    session = FakeSession(FakeResponse("u", status=404))

    with pytest.raises(TransferError):
        Downloader(session).download("https://host/x.zip", tmp_path / "x.zip")


def test_network_error_becomes_transfer_error(tmp_path):
    session = FakeSession(error=requests.ConnectionError("boom"))

    with pytest.raises(TransferError):
        Downloader(session).download("https://host/x.zip", tmp_path / "x.zip")
    with pytest.raises(TransferError):
        Downloader(session).resolve_filename("https://host/latest")
