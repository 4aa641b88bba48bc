from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..domain.errors import ConfigurationError, LoaderNotFoundError
from ..domain.models import AddonCatalog, LoaderRelease
from ..domain.version import VersionInfo
from ..store.config_store import ConfigurationStore
from .addon_manager import BATCH_LOCK, AddonLifecycleManager
from .downloader import Downloader
from .events import BatchObserver, LoggingObserver, UninstallSignal
from .file_ops import extract_archive, remove_files
from .introspector import LoaderIntrospector, open_native_introspector

logger = logging.getLogger("addon_manager.addons.loader_manager")

# Picked up by the game at launch (sideloaded system library name).
LOADER_FILENAME = "msimg32.dll"
# Copy kept next to the manager so its version can be queried.
LOCAL_LOADER_FILENAME = "gw2load.dll"
LOADER_ARCHIVE_NAME = "addon-loader.zip"

IntrospectorFactory = Callable[[Path], Optional[LoaderIntrospector]]


class LoaderLifecycleManager:
    """
    Keeps the bootstrap loader present and current.

    Construction queries the installed loader version once (installing the
    loader first if no local copy exists) and fails with LoaderNotFoundError
    when that is impossible.
    """

    def __init__(
        self,
        config_store: ConfigurationStore,
        addon_manager: AddonLifecycleManager,
        catalog: AddonCatalog,
        local_dir: Path,
        downloader: Optional[Downloader] = None,
        *,
        introspector_factory: IntrospectorFactory = open_native_introspector,
        observer: Optional[BatchObserver] = None,
        temp_dir: Optional[Path] = None,
        uninstall_signal: Optional[UninstallSignal] = None,
    ):
        self.config_store = config_store
        self.addon_manager = addon_manager
        self.catalog = catalog
        self.local_dir = Path(local_dir)
        self.downloader = downloader or addon_manager.downloader
        self.introspector_factory = introspector_factory
        self.observer: BatchObserver = observer or LoggingObserver()
        self.temp_dir = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
        self._loader_version: Optional[VersionInfo] = None

        if uninstall_signal is not None:
            uninstall_signal.subscribe(self.uninstall)

        self._fetch_loader_version()

    # ----------------------------
    # Paths
    # ----------------------------

    @property
    def install_path(self) -> Path:
        return self.config_store.game_path()

    @property
    def loader_path(self) -> Path:
        return self.install_path / LOADER_FILENAME

    @property
    def local_loader_path(self) -> Path:
        return self.local_dir / LOCAL_LOADER_FILENAME

    @property
    def download_path(self) -> Path:
        return self.temp_dir / LOADER_ARCHIVE_NAME

    @property
    def loader_version(self) -> Optional[VersionInfo]:
        return self._loader_version

    def _release(self) -> LoaderRelease:
        if self.catalog.loader is None:
            raise LoaderNotFoundError("Catalog does not describe the addon loader")
        return self.catalog.loader

    # ----------------------------
    # Version queries
    # ----------------------------

    def _open_loader(self) -> Optional[LoaderIntrospector]:
        return self.introspector_factory(self.local_loader_path)

    def _get_loader(self) -> Optional[LoaderIntrospector]:
        loader = self._open_loader()
        if loader is None:
            logger.info("No local loader copy at %s, installing", self.local_loader_path)
            self.update()
            loader = self._open_loader()
        return loader

    def _fetch_loader_version(self) -> None:
        loader = self._get_loader()
        if loader is None:
            raise LoaderNotFoundError("Could not find addon loader!")
        with loader:
            self._loader_version = loader.get_loader_version()
        logger.info("Installed loader version: %s", self._loader_version)

    def _refresh_loader_version(self) -> None:
        loader = self._open_loader()
        if loader is None:
            return
        with loader:
            self._loader_version = loader.get_loader_version()

    # ----------------------------
    # Update / install
    # ----------------------------

    def _is_current(self, release: LoaderRelease) -> bool:
        installed = self._loader_version
        if installed is None:
            return False
        try:
            return VersionInfo.parse(release.version_id, name=installed.name) == installed
        except ValueError:
            # not a semantic version; fall back to the rendered string
            return release.version_id == str(installed)

    def update(self) -> None:
        with BATCH_LOCK:
            release = self._release()
            self.addon_manager.install([release.wrapper])

            if self._is_current(release):
                logger.info("Loader already at version %s", release.version_id)
                return

            self.observer.on_status_message("Downloading Addon Loader")

            file_name = self.download_path
            if file_name.exists():
                file_name.unlink()

            try:
                self.downloader.download(release.download_url, file_name, progress=self.observer.on_download_progress)
                self._install(file_name)
            finally:
                file_name.unlink(missing_ok=True)

            self._refresh_loader_version()
            logger.info("Loader updated to %s", self._loader_version or release.version_id)

    def _install(self, file_name: Path) -> None:
        self.observer.on_status_message("Installing Addon Loader")

        remove_files([self.loader_path, self.local_loader_path])
        extract_archive(file_name, self.install_path)

        if not self.loader_path.is_file():
            raise LoaderNotFoundError(f"Loader archive did not contain {LOADER_FILENAME}")
        self.local_loader_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.loader_path, self.local_loader_path)

    # ----------------------------
    # Introspection passthrough
    # ----------------------------

    def list_addons_in_directory(self, directory: Path) -> List[Tuple[str, VersionInfo]]:
        loader = self._open_loader()
        if loader is None:
            raise LoaderNotFoundError("Could not find addon loader!")
        with loader:
            return loader.get_addons_in_directory(str(directory))

    # ----------------------------
    # Teardown
    # ----------------------------

    def uninstall(self) -> None:
        paths = [self.local_loader_path]
        try:
            paths.insert(0, self.loader_path)
        except ConfigurationError:
            logger.warning("No game path configured, only removing the local loader copy")
        with BATCH_LOCK:
            for p in paths:
                p.unlink(missing_ok=True)
        logger.info("Removed addon loader files")
