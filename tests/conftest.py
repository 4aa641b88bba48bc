from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from addon_manager.addons.domain.errors import TransferError
from addon_manager.addons.domain.models import AddonDescriptor, UserConfig
from addon_manager.addons.store.config_store import ConfigurationStore


def make_zip(files: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeDownloader:
    """In-memory transport: url -> payload bytes. Records every download."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None):
        self.payloads: Dict[str, bytes] = dict(payloads or {})
        self.failing: set[str] = set()
        self.downloads: List[Tuple[str, Path]] = []

    def resolve_filename(self, url: str) -> str:
        return url.rstrip("/").rsplit("/", 1)[-1]

    def download(self, url, dest, progress=None):
        if url in self.failing or url not in self.payloads:
            raise TransferError(f"Download failed for {url}: 404")
        data = self.payloads[url]
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        self.downloads.append((url, dest))
        if progress is not None:
            progress(len(data), len(data))
        return dest

    def urls(self) -> List[str]:
        return [u for u, _ in self.downloads]


class RecordingObserver:
    def __init__(self):
        self.events: List[tuple] = []

    def on_progress(self, completed, total):
        self.events.append(("progress", completed, total))

    def on_status_message(self, text):
        self.events.append(("status", text))

    def on_download_progress(self, received, total):
        self.events.append(("download", received, total))

    def on_fatal_error(self, message):
        self.events.append(("fatal", message))

    def on_nothing_selected(self):
        self.events.append(("nothing_selected",))

    def of(self, kind: str) -> List[tuple]:
        return [e for e in self.events if e[0] == kind]


def descriptor(nickname: str, **kwargs) -> AddonDescriptor:
    data = {
        "nickname": nickname,
        "display_name": kwargs.pop("display_name", nickname.title()),
        "download_url": kwargs.pop("download_url", f"https://example.test/{nickname}.zip"),
        "version_id": kwargs.pop("version_id", "1"),
    }
    data.update(kwargs)
    return AddonDescriptor(**data)


@pytest.fixture
def game_dir(tmp_path: Path) -> Path:
    d = tmp_path / "game"
    d.mkdir()
    return d


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    d = tmp_path / "tmp"
    d.mkdir()
    return d


@pytest.fixture
def config_store(home_dir: Path, game_dir: Path) -> ConfigurationStore:
    store = ConfigurationStore(home_dir / "config.json")
    store.save(UserConfig(game_path=str(game_dir)))
    return store


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
