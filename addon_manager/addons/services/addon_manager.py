from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..domain.errors import (
    AddonCancelledError,
    AddonNotFoundError,
    AmbiguousResolutionError,
    ConfigurationError,
)
from ..domain.models import (
    AddonDescriptor,
    AddonState,
    BatchOperation,
    BatchResult,
    DownloadKind,
    InstallMode,
)
from ..store.config_store import ConfigurationStore
from .downloader import Downloader
from .events import BatchObserver, LoggingObserver, UninstallSignal
from .file_ops import extract_archive, remove_files

logger = logging.getLogger("addon_manager.addons.addon_manager")

# Shared folder the plugin host loads its plugins from.
PLUGIN_HOST_FOLDER = "arcdps"
ENABLED_EXTENSION = ".dll"
DISABLED_EXTENSION = ".dll.disabled"

DELETE_PROMPT = "This will delete the selected add-ons and all of their files. Continue?"
ENABLE_PROMPT = "This will enable the selected add-ons. Continue?"
DISABLE_PROMPT = "This will disable the selected add-ons. Continue?"

# Held for a whole batch (read state, mutate files, commit state). Reentrant
# because a loader update runs an add-on install batch while holding it.
BATCH_LOCK = threading.RLock()

ConfirmFn = Callable[[str], bool]
ItemFn = Callable[[AddonDescriptor, Dict[str, AddonState]], bool]


def _swap_extension(path: Path, enable: bool) -> Path:
    current, target = (DISABLED_EXTENSION, ENABLED_EXTENSION) if enable else (ENABLED_EXTENSION, DISABLED_EXTENSION)
    name = path.name
    if name.endswith(current):
        name = name[: -len(current)]
    return path.with_name(name + target)


def _rename_in_manifest(files: Iterable[str], folder: Path, old: Path, new: Path) -> Tuple[str, ...]:
    """Replace old with new in a manifest of folder-relative posix paths."""
    try:
        old_rel = old.relative_to(folder).as_posix()
        new_rel = new.relative_to(folder).as_posix()
    except ValueError:
        return tuple(files)
    return tuple(new_rel if f == old_rel else f for f in files)


class AddonLifecycleManager:
    """
    Installs, updates, toggles and removes add-ons under <game>/addons.

    Every batch works on a private copy of the persisted state map and writes
    it back when the batch ends, including after a failure partway through:
    items processed before the failure stay committed.
    """

    def __init__(
        self,
        config_store: ConfigurationStore,
        downloader: Optional[Downloader] = None,
        *,
        observer: Optional[BatchObserver] = None,
        confirm: Optional[ConfirmFn] = None,
        temp_dir: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None,
        uninstall_signal: Optional[UninstallSignal] = None,
    ):
        self.config_store = config_store
        self.downloader = downloader or Downloader()
        self.observer: BatchObserver = observer or LoggingObserver()
        self.confirm = confirm
        self.temp_dir = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
        self.cancel_event = cancel_event

        if uninstall_signal is not None:
            uninstall_signal.subscribe(self.uninstall)

    # ----------------------------
    # Paths
    # ----------------------------

    @property
    def addons_path(self) -> Path:
        return self.config_store.addons_path()

    def install_path(self, addon: AddonDescriptor) -> Path:
        if addon.install_mode is InstallMode.BINARY:
            return self.addons_path / addon.nickname
        return self.addons_path / PLUGIN_HOST_FOLDER

    def binary_path(self, addon: AddonDescriptor, disabled: bool) -> Optional[Path]:
        """
        Main binary of an add-on, tagged for the given disabled flag.

        Pattern-based plugin names resolve to the first match in sorted
        order; None when nothing matches.
        """
        folder = self.install_path(addon)
        extension = DISABLED_EXTENSION if disabled else ENABLED_EXTENSION

        if addon.install_mode is InstallMode.BINARY:
            return folder / f"{addon.nickname}{extension}"
        if addon.plugin_name is not None:
            return folder / f"{addon.plugin_name}{extension}"
        if addon.plugin_name_pattern is not None and folder.is_dir():
            matches = sorted(p for p in folder.glob(addon.plugin_name_pattern + extension) if p.is_file())
            if matches:
                return matches[0]
        return None

    # ----------------------------
    # Batch plumbing
    # ----------------------------

    def _confirmed(self, prompt: str, confirmed: Optional[bool]) -> bool:
        if confirmed is not None:
            return confirmed
        if self.confirm is None:
            return False
        return bool(self.confirm(prompt))

    def _run_batch(
        self,
        operation: BatchOperation,
        verb: str,
        addons: List[AddonDescriptor],
        item_fn: ItemFn,
    ) -> BatchResult:
        n = len(addons)
        i = 0
        skipped: List[str] = []
        status = "completed"
        error: Optional[str] = None

        with BATCH_LOCK:
            # a cancel request only applies to the batch running when it arrives
            if self.cancel_event is not None:
                self.cancel_event.clear()

            self.observer.on_progress(i, n)
            states = self.config_store.get_addon_states()
            try:
                for addon in addons:
                    if self.cancel_event is not None and self.cancel_event.is_set():
                        raise AddonCancelledError(f"{operation} cancelled before {addon.display_name}")
                    self.observer.on_status_message(f"{verb} {addon.display_name}...")
                    if not item_fn(addon, states):
                        skipped.append(addon.nickname)
                    i += 1
                    self.observer.on_progress(i, n)
            except AddonCancelledError as e:
                logger.warning("%s (%d/%d done)", e, i, n)
                status = "cancelled"
            except Exception as e:
                names = ", ".join(a.display_name for a in addons)
                logger.exception("Exception while %s addons (%s): %s", verb.lower(), names, e)
                error = str(e)
                status = "failed"
                self.observer.on_fatal_error(f"Error while {verb.lower()} some addons: {e}")

            # partial progress is committed even when the batch failed
            self.config_store.set_addon_states(states)

        return BatchResult(
            operation=operation,
            status=status,
            processed=i,
            total=n,
            skipped=skipped,
            error=error,
            states=states,
        )

    def cancel(self) -> bool:
        """Ask the running batch to stop before its next item. False when cancellation is not wired."""
        if self.cancel_event is None:
            return False
        self.cancel_event.set()
        logger.info("Cancellation requested")
        return True

    def _nothing_selected(self, operation: BatchOperation) -> BatchResult:
        self.observer.on_nothing_selected()
        return BatchResult(operation=operation, status="nothing_selected")

    # ----------------------------
    # Install / update
    # ----------------------------

    def _manifest_paths(self, addon: AddonDescriptor, state: AddonState) -> List[Path]:
        folder = self.install_path(addon)
        paths = [folder / f for f in state.installed_files]
        binary = self.binary_path(addon, state.disabled)
        if binary is not None:
            paths.append(binary)
        return paths

    def _install_one(self, addon: AddonDescriptor, states: Dict[str, AddonState]) -> bool:
        state = states.get(addon.nickname, AddonState.default())

        if state.installed and (state.version_id == addon.version_id or addon.self_updating):
            logger.info(f"Skipping {addon.display_name}, already installed and at the right version or self-updating.")
            return False

        logger.info(f"Installing {addon.display_name}...")

        dest_folder = self.install_path(addon)
        file_name = self.temp_dir / self.downloader.resolve_filename(addon.download_url)

        if file_name.exists():
            file_name.unlink()

        try:
            self.downloader.download(addon.download_url, file_name, progress=self.observer.on_download_progress)
            logger.info(f"Downloaded {addon.display_name}.")

            if state.installed:
                remove_files(self._manifest_paths(addon, state), dest_folder)
                logger.info(f"Removed existing installation of {addon.display_name}.")

            if addon.download_kind is DownloadKind.ARCHIVE:
                rel_files = extract_archive(file_name, dest_folder)
            else:
                dest_folder.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(file_name, dest_folder / file_name.name)
                rel_files = [file_name.name]

            installed_files = tuple(rel_files)
            if state.disabled:
                installed_files = self._retag_fresh_binary(addon, installed_files)

            states[addon.nickname] = state.model_copy(
                update={
                    "installed": True,
                    "version_id": addon.version_id,
                    "installed_files": installed_files,
                }
            )
        finally:
            file_name.unlink(missing_ok=True)

        logger.info(f"Installed {addon.display_name}.")
        return True

    def _retag_fresh_binary(self, addon: AddonDescriptor, installed_files: Tuple[str, ...]) -> Tuple[str, ...]:
        fresh = self.binary_path(addon, disabled=False)
        if fresh is None or not fresh.is_file():
            return installed_files
        tagged = _swap_extension(fresh, enable=False)
        fresh.replace(tagged)
        logger.debug(f"Kept {addon.display_name} disabled after update")
        return _rename_in_manifest(installed_files, self.install_path(addon), fresh, tagged)

    def install(self, addons: Optional[Iterable[AddonDescriptor]]) -> BatchResult:
        if addons is None:
            return self._nothing_selected("install")
        return self._run_batch("install", "Installing", list(addons), self._install_one)

    # ----------------------------
    # Delete
    # ----------------------------

    def _delete_one(self, addon: AddonDescriptor, states: Dict[str, AddonState]) -> bool:
        state = states.get(addon.nickname)
        if state is None:
            logger.info(f"Skipping {addon.display_name}, no install record.")
            return False

        logger.info(f"Deleting {addon.display_name}...")

        folder = self.install_path(addon)
        if folder.is_dir():
            dll_path = self.binary_path(addon, state.disabled)
            if dll_path is None:
                raise AmbiguousResolutionError(f"Could not determine install path for {addon.display_name}!")

            files = [dll_path]
            files += [folder / f for f in addon.files]
            files += [folder / f for f in state.installed_files]
            for f in files:
                if f.is_file():
                    logger.info(f"Deleting file '{f}'...")
            remove_files(files, folder)
        else:
            logger.warning(f"Directory '{folder}' does not exist, addon does not appear to be installed?")

        states.pop(addon.nickname, None)
        logger.info(f"Deleted {addon.display_name}.")
        return True

    def delete(self, addons: Optional[Iterable[AddonDescriptor]], confirmed: Optional[bool] = None) -> BatchResult:
        if addons is None:
            return self._nothing_selected("delete")
        if not self._confirmed(DELETE_PROMPT, confirmed):
            logger.info("Delete declined")
            return BatchResult(operation="delete", status="declined")
        return self._run_batch("delete", "Deleting", list(addons), self._delete_one)

    # ----------------------------
    # Enable / disable
    # ----------------------------

    def _toggle_one(self, addon: AddonDescriptor, states: Dict[str, AddonState], enable: bool) -> bool:
        state = states.get(addon.nickname, AddonState.default())
        if not state.installed or state.disabled == (not enable):
            logger.info(f"Skipping {addon.display_name}, not installed or already in desired state.")
            return False

        try:
            path = self.binary_path(addon, state.disabled)
            if path is None or not path.is_file():
                raise AddonNotFoundError(f"expected addon path '{path}' does not exist!")
        except AddonNotFoundError as e:
            logger.warning(f"Could not {'enable' if enable else 'disable'} {addon.display_name}, {e}")
            return False

        swapped = _swap_extension(path, enable)
        path.replace(swapped)
        logger.info(f"{'Enabled' if enable else 'Disabled'} {addon.display_name}.")

        states[addon.nickname] = state.model_copy(
            update={
                "disabled": not enable,
                "installed_files": _rename_in_manifest(state.installed_files, self.install_path(addon), path, swapped),
            }
        )
        return True

    def _toggle(self, addons: Optional[Iterable[AddonDescriptor]], confirmed: Optional[bool], enable: bool) -> BatchResult:
        operation: BatchOperation = "enable" if enable else "disable"
        if addons is None:
            return self._nothing_selected(operation)
        if not self._confirmed(ENABLE_PROMPT if enable else DISABLE_PROMPT, confirmed):
            logger.info(f"{operation.capitalize()} declined")
            return BatchResult(operation=operation, status="declined")

        def item(addon: AddonDescriptor, states: Dict[str, AddonState]) -> bool:
            return self._toggle_one(addon, states, enable)

        return self._run_batch(operation, "Enabling" if enable else "Disabling", list(addons), item)

    def enable(self, addons: Optional[Iterable[AddonDescriptor]], confirmed: Optional[bool] = None) -> BatchResult:
        return self._toggle(addons, confirmed, enable=True)

    def disable(self, addons: Optional[Iterable[AddonDescriptor]], confirmed: Optional[bool] = None) -> BatchResult:
        return self._toggle(addons, confirmed, enable=False)

    # ----------------------------
    # Full teardown
    # ----------------------------

    def uninstall(self) -> None:
        """Remove the whole add-ons folder. Hooked to the application-uninstalling signal."""
        try:
            folder = self.addons_path
        except ConfigurationError:
            logger.warning("No game path configured, nothing to uninstall")
            return
        with BATCH_LOCK:
            if folder.exists():
                shutil.rmtree(folder)
                logger.info("Removed add-ons folder: %s", folder)
