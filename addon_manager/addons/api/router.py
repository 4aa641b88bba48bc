# addon_manager/addons/api/router.py
from __future__ import annotations

import logging
import threading
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ...settings import get_settings
from ..domain.errors import (
    AddonManagerError,
    AddonNotFoundError,
    ArchiveError,
    ConfigurationError,
    LoaderUnavailableError,
    TransferError,
)
from ..domain.models import (
    AddonCatalog,
    AddonDescriptor,
    AddonStateView,
    BatchRequest,
    BatchResult,
    EnumeratedAddon,
    LoaderVersionResponse,
)
from ..lifecycle import lifecycle_of
from ..services.addon_manager import AddonLifecycleManager
from ..services.events import UninstallSignal
from ..services.loader_manager import LoaderLifecycleManager
from ..store import ConfigurationStore, load_catalog

router = APIRouter(prefix="/api/addons", tags=["addons"])
logger = logging.getLogger("addon_manager.addons.api")

# ----------------------------
# Singletons (built on first use)
# ----------------------------

_config_store: Optional[ConfigurationStore] = None
_catalog: Optional[AddonCatalog] = None
_addon_manager: Optional[AddonLifecycleManager] = None
_loader_manager: Optional[LoaderLifecycleManager] = None
_uninstall_signal = UninstallSignal()
_cancel_event = threading.Event()


def _http_error(e: AddonManagerError) -> HTTPException:
    if isinstance(e, LoaderUnavailableError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (TransferError, ArchiveError)):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, AddonNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def get_config_store() -> ConfigurationStore:
    global _config_store
    if _config_store is None:
        _config_store = ConfigurationStore(get_settings().config_path)
    return _config_store


def get_catalog() -> AddonCatalog:
    global _catalog
    if _catalog is None:
        _catalog = load_catalog(get_settings().catalog_path)
    return _catalog


def get_uninstall_signal() -> UninstallSignal:
    return _uninstall_signal


def get_addon_manager() -> AddonLifecycleManager:
    global _addon_manager
    if _addon_manager is None:
        _addon_manager = AddonLifecycleManager(
            get_config_store(),
            temp_dir=get_settings().temp_dir,
            cancel_event=_cancel_event,
            uninstall_signal=_uninstall_signal,
        )
    return _addon_manager


def get_loader_manager() -> LoaderLifecycleManager:
    global _loader_manager
    if _loader_manager is None:
        settings = get_settings()
        try:
            _loader_manager = LoaderLifecycleManager(
                get_config_store(),
                get_addon_manager(),
                get_catalog(),
                local_dir=settings.home,
                temp_dir=settings.temp_dir,
                uninstall_signal=_uninstall_signal,
            )
        except AddonManagerError as e:
            logger.error(f"Addon loader unavailable: {e}")
            raise _http_error(e) from e
    return _loader_manager


def _resolve(catalog: AddonCatalog, nicknames: Optional[List[str]]) -> Optional[List[AddonDescriptor]]:
    if nicknames is None:
        return None
    addons: List[AddonDescriptor] = []
    for nickname in nicknames:
        addon = catalog.get(nickname)
        if addon is None:
            logger.error(f"Addon not found: {nickname}")
            raise HTTPException(status_code=404, detail=f"Addon not found in catalog: {nickname}")
        addons.append(addon)
    return addons


# ----------------------------
# Catalog + state views
# ----------------------------

@router.get("/catalog", response_model=List[AddonDescriptor])
def get_catalog_addons(catalog: AddonCatalog = Depends(get_catalog)) -> List[AddonDescriptor]:
    return catalog.addons


@router.get("/state", response_model=List[AddonStateView])
def get_addon_states(
    catalog: AddonCatalog = Depends(get_catalog),
    store: ConfigurationStore = Depends(get_config_store),
) -> List[AddonStateView]:
    try:
        states = store.get_addon_states()
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    views: List[AddonStateView] = []
    for nickname, state in sorted(states.items()):
        addon = catalog.get(nickname)
        views.append(
            AddonStateView(
                nickname=nickname,
                display_name=addon.display_name if addon else None,
                lifecycle=lifecycle_of(state).value,
                state=state,
            )
        )
    return views


# ----------------------------
# Batches
# ----------------------------

@router.post("/install", response_model=BatchResult)
def install_addons(
    req: BatchRequest,
    catalog: AddonCatalog = Depends(get_catalog),
    manager: AddonLifecycleManager = Depends(get_addon_manager),
    loader: LoaderLifecycleManager = Depends(get_loader_manager),
) -> BatchResult:
    logger.info(f"POST /install called for: {req.nicknames}")
    addons = _resolve(catalog, req.nicknames)
    if addons is not None:
        # the loader has to be present and current before anything it loads
        try:
            loader.update()
        except AddonManagerError as e:
            logger.error(f"Loader update before install failed: {e}")
            raise _http_error(e) from e
    return manager.install(addons)


@router.post("/delete", response_model=BatchResult)
def delete_addons(
    req: BatchRequest,
    catalog: AddonCatalog = Depends(get_catalog),
    manager: AddonLifecycleManager = Depends(get_addon_manager),
) -> BatchResult:
    logger.info(f"POST /delete called for: {req.nicknames}")
    return manager.delete(_resolve(catalog, req.nicknames), confirmed=req.confirmed)


@router.post("/enable", response_model=BatchResult)
def enable_addons(
    req: BatchRequest,
    catalog: AddonCatalog = Depends(get_catalog),
    manager: AddonLifecycleManager = Depends(get_addon_manager),
) -> BatchResult:
    return manager.enable(_resolve(catalog, req.nicknames), confirmed=req.confirmed)


@router.post("/disable", response_model=BatchResult)
def disable_addons(
    req: BatchRequest,
    catalog: AddonCatalog = Depends(get_catalog),
    manager: AddonLifecycleManager = Depends(get_addon_manager),
) -> BatchResult:
    return manager.disable(_resolve(catalog, req.nicknames), confirmed=req.confirmed)


@router.post("/cancel")
def cancel_batch(manager: AddonLifecycleManager = Depends(get_addon_manager)) -> dict:
    logger.info("POST /cancel called")
    return {"cancelling": manager.cancel()}


# ----------------------------
# Loader
# ----------------------------

@router.post("/loader/update", response_model=LoaderVersionResponse)
def update_loader(loader: LoaderLifecycleManager = Depends(get_loader_manager)) -> LoaderVersionResponse:
    logger.info("POST /loader/update called")
    try:
        loader.update()
    except AddonManagerError as e:
        logger.error(f"Loader update failed: {e}")
        raise _http_error(e) from e
    version = loader.loader_version
    return LoaderVersionResponse(version=str(version) if version is not None else None)


@router.get("/loader/addons", response_model=List[EnumeratedAddon])
def list_loader_addons(
    directory: Optional[str] = Query(default=None, description="Directory to scan (defaults to the add-ons folder)"),
    loader: LoaderLifecycleManager = Depends(get_loader_manager),
    manager: AddonLifecycleManager = Depends(get_addon_manager),
) -> List[EnumeratedAddon]:
    try:
        target = directory or str(manager.addons_path)
        found = loader.list_addons_in_directory(target)
    except AddonManagerError as e:
        raise _http_error(e) from e
    return [EnumeratedAddon(path=path, name=ver.name, version=str(ver)) for path, ver in found]


# ----------------------------
# Application teardown
# ----------------------------

@router.post("/uninstall")
def uninstall_everything(signal: UninstallSignal = Depends(get_uninstall_signal)) -> dict:
    logger.info("POST /uninstall called")
    signal.fire()
    return {"uninstalled": True}
