from pathlib import Path

import pytest

from addon_manager.addons.domain.errors import LoaderNotFoundError
from addon_manager.addons.domain.models import AddonCatalog, LoaderRelease
from addon_manager.addons.domain.version import VersionInfo
from addon_manager.addons.services.addon_manager import AddonLifecycleManager
from addon_manager.addons.services.events import UninstallSignal
from addon_manager.addons.services.loader_manager import (
    LOADER_FILENAME,
    LOCAL_LOADER_FILENAME,
    LoaderLifecycleManager,
)

from conftest import descriptor, make_zip

LOADER_URL = "https://example.test/loader/addon-loader.zip"


class FakeIntrospector:
    """Treats the 'library' file content as the loader version string."""

    def __init__(self, path: Path):
        self.path = path
        self.version = VersionInfo.parse(path.read_text(), name="GW2Load")
        self.closed = False

    def get_loader_version(self):
        return self.version

    def get_addons_in_directory(self, directory):
        return [(f"{directory}/arcdps/d3d9_arcdps_healing.dll", VersionInfo(name="healing", major=2, minor=1))]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def fake_factory(path):
    return FakeIntrospector(path) if Path(path).is_file() else None


@pytest.fixture
def wrapper():
    return descriptor("loader-wrapper", download_url="https://example.test/loader/wrapper.zip")


@pytest.fixture
def catalog(wrapper):
    return AddonCatalog(loader=LoaderRelease(version_id="0.5.0", download_url=LOADER_URL, wrapper=wrapper))


@pytest.fixture
def addon_manager(config_store, downloader, observer, temp_dir, wrapper):
    downloader.payloads[wrapper.download_url] = make_zip({"loader-wrapper.dll": b"w"})
    return AddonLifecycleManager(config_store, downloader, observer=observer, temp_dir=temp_dir)


@pytest.fixture
def build(config_store, addon_manager, catalog, downloader, observer, temp_dir, home_dir):
    def _build(**kwargs):
        kwargs.setdefault("catalog", catalog)
        return LoaderLifecycleManager(
            config_store,
            addon_manager,
            kwargs.pop("catalog"),
            local_dir=home_dir,
            downloader=downloader,
            introspector_factory=fake_factory,
            observer=observer,
            temp_dir=temp_dir,
            **kwargs,
        )

    return _build


def _publish_loader(downloader, version="0.5.0", files=None):
    downloader.payloads[LOADER_URL] = make_zip(files or {LOADER_FILENAME: version.encode(), "gw2load/README.txt": b"r"})


def test_existing_loader_is_queried_without_downloading(build, downloader, home_dir):
    (home_dir / LOCAL_LOADER_FILENAME).write_text("0.5.0")

    loader = build()

    assert str(loader.loader_version) == "0.5.0"
    assert downloader.downloads == []


def test_missing_loader_is_installed_on_construction(build, downloader, config_store, game_dir, home_dir, temp_dir):
    _publish_loader(downloader)

    loader = build()

    assert str(loader.loader_version) == "0.5.0"
    assert (game_dir / LOADER_FILENAME).read_text() == "0.5.0"
    assert (home_dir / LOCAL_LOADER_FILENAME).read_text() == "0.5.0"
    assert (game_dir / "gw2load" / "README.txt").is_file()
    assert not (temp_dir / "addon-loader.zip").exists()
    assert config_store.get_addon_states()["loader-wrapper"].installed


def test_loader_never_appears(build, downloader):
    _publish_loader(downloader, files={"something-else.dll": b"x"})

    with pytest.raises(LoaderNotFoundError):
        build()


def test_catalog_without_loader(build):
    with pytest.raises(LoaderNotFoundError):
        build(catalog=AddonCatalog())


def test_update_at_current_version_skips_loader_download(build, downloader, home_dir, wrapper):
    (home_dir / LOCAL_LOADER_FILENAME).write_text("0.5.0")
    loader = build()

    loader.update()

    assert downloader.urls() == [wrapper.download_url]


def test_update_replaces_outdated_loader(build, downloader, game_dir, home_dir, observer):
    (game_dir / LOADER_FILENAME).write_text("0.4.0")
    (home_dir / LOCAL_LOADER_FILENAME).write_text("0.4.0")
    loader = build()
    assert str(loader.loader_version) == "0.4.0"
    _publish_loader(downloader, version="0.5.0")

    loader.update()

    assert str(loader.loader_version) == "0.5.0"
    assert (game_dir / LOADER_FILENAME).read_text() == "0.5.0"
    assert ("status", "Downloading Addon Loader") in observer.events


def test_list_addons_in_directory(build, home_dir, game_dir):
    (home_dir / LOCAL_LOADER_FILENAME).write_text("0.5.0")
    loader = build()

    found = loader.list_addons_in_directory(game_dir / "addons")

    assert len(found) == 1
    path, version = found[0]
    assert path.endswith("d3d9_arcdps_healing.dll")
    assert str(version) == "2.1.0"


def test_uninstall_removes_both_copies(build, downloader, game_dir, home_dir):
    _publish_loader(downloader)
    signal = UninstallSignal()
    build(uninstall_signal=signal)

    signal.fire()

    assert not (game_dir / LOADER_FILENAME).exists()
    assert not (home_dir / LOCAL_LOADER_FILENAME).exists()


def test_release_id_is_compared_as_a_version(build, downloader, home_dir, wrapper):
    (home_dir / LOCAL_LOADER_FILENAME).write_text("0.5.0")
    release = LoaderRelease(version_id="v0.5", download_url=LOADER_URL, wrapper=wrapper)
    loader = build(catalog=AddonCatalog(loader=release))

    loader.update()

    assert LOADER_URL not in downloader.urls()


def test_non_semantic_release_id_triggers_download(build, downloader, home_dir, wrapper):
    (home_dir / LOCAL_LOADER_FILENAME).write_text("0.5.0")
    release = LoaderRelease(version_id="nightly", download_url=LOADER_URL, wrapper=wrapper)
    loader = build(catalog=AddonCatalog(loader=release))
    _publish_loader(downloader)

    loader.update()

    assert LOADER_URL in downloader.urls()
