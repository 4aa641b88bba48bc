from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..domain.errors import CatalogLoadError
from ..domain.models import CATALOG_SCHEMA_V1, AddonCatalog, AddonDescriptor, InstallMode

logger = logging.getLogger("addon_manager.store.catalog")


def _check_relative(addon_id: str, path: str) -> None:
    norm = path.replace("\\", "/")
    if norm.startswith("/") or norm.startswith("~") or "://" in norm or ":" in norm.split("/")[0]:
        logger.error(f"Invalid file path for {addon_id}: {path}")
        raise CatalogLoadError(f"Invalid file path for {addon_id} (must be relative): {path}")
    if ".." in norm.split("/"):
        logger.error(f"Invalid file path for {addon_id}: {path}")
        raise CatalogLoadError(f"Invalid file path for {addon_id} (no '..' allowed): {path}")


def normalize_descriptor(addon: AddonDescriptor) -> AddonDescriptor:
    logger.debug(f"Normalizing AddonDescriptor: nickname={addon.nickname}")

    for f in addon.files:
        _check_relative(addon.nickname, f)

    if addon.plugin_name is None and addon.plugin_name_pattern is None and addon.install_mode is InstallMode.PLUGIN_ADDON:
        raise CatalogLoadError(f"Plugin add-on {addon.nickname} needs pluginName or pluginNamePattern")

    return addon


def parse_catalog(raw: dict) -> AddonCatalog:
    try:
        doc = AddonCatalog.model_validate(raw)
    except ValidationError as e:
        raise CatalogLoadError(f"Invalid catalog: {e}") from e

    # IMPORTANT: schema check must use schema_ (not doc.schema)
    if doc.schema_ != CATALOG_SCHEMA_V1:
        raise CatalogLoadError(f"Unsupported catalog schema: {doc.schema_}")

    seen = set()
    normalized = []
    for addon in doc.addons:
        addon = normalize_descriptor(addon)
        if addon.nickname in seen:
            raise CatalogLoadError(f"Duplicate addon nickname in catalog: {addon.nickname}")
        seen.add(addon.nickname)
        normalized.append(addon)

    if doc.loader is not None:
        normalize_descriptor(doc.loader.wrapper)

    return doc.model_copy(update={"addons": normalized})


def load_catalog(path: Path) -> AddonCatalog:
    logger.info(f"Loading catalog from {path}")
    if not path.exists():
        logger.error(f"Catalog path does not exist: {path}")
        raise CatalogLoadError(f"Catalog path does not exist: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CatalogLoadError(f"Catalog is not valid JSON: {e}") from e

    catalog = parse_catalog(raw)
    logger.info(f"Catalog loaded: {len(catalog.addons)} add-on(s), loader={'yes' if catalog.loader else 'no'}")
    return catalog
