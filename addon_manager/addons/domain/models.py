# addon_manager/addons/domain/models.py
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


CATALOG_SCHEMA_V1 = "addon_manager.catalog.v1"


# -----------------------------
# Enums
# -----------------------------

class InstallMode(str, Enum):
    BINARY = "binary"
    PLUGIN_ADDON = "plugin_addon"


class DownloadKind(str, Enum):
    ARCHIVE = "archive"
    SINGLE_FILE = "single_file"


# -----------------------------
# Catalog-supplied descriptors
# -----------------------------

class AddonDescriptor(BaseModel):
    """
    One add-on as described by the catalog. Never mutated by the managers.

    - nickname: stable unique id, also the key in the persisted state map.
    - install_mode: "binary" add-ons live in addons/<nickname>/<nickname>.dll;
      "plugin_addon" add-ons share the plugin host folder and are found by
      plugin_name, or by plugin_name_pattern when the exact name is unknown.
    - version_id: opaque remote version string, compared for equality only.
    - self_updating: the add-on updates itself once installed, so a changed
      version_id alone never triggers a re-install.
    - files: extra paths (relative to the install folder) removed on delete.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    nickname: str
    display_name: str = Field(alias="displayName")
    description: Optional[str] = None

    install_mode: InstallMode = Field(default=InstallMode.BINARY, alias="installMode")
    plugin_name: Optional[str] = Field(default=None, alias="pluginName")
    plugin_name_pattern: Optional[str] = Field(default=None, alias="pluginNamePattern")

    download_url: str = Field(alias="downloadUrl")
    download_kind: DownloadKind = Field(default=DownloadKind.ARCHIVE, alias="downloadKind")

    version_id: str = Field(default="", alias="versionId")
    self_updating: bool = Field(default=False, alias="selfUpdating")
    files: Tuple[str, ...] = Field(default=(), alias="files")


class LoaderRelease(BaseModel):
    """
    Repository entry for the bootstrap loader.

    version_id is compared against the installed loader's rendered version,
    wrapper is the regular add-on that ships alongside the loader itself.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    version_id: str = Field(alias="versionId")
    download_url: str = Field(alias="downloadUrl")
    wrapper: AddonDescriptor


class AddonCatalog(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # JSON uses "schema"; python uses schema_
    schema_: str = Field(default=CATALOG_SCHEMA_V1, alias="schema")
    addons: List[AddonDescriptor] = Field(default_factory=list)
    loader: Optional[LoaderRelease] = None

    def get(self, nickname: str) -> Optional[AddonDescriptor]:
        for addon in self.addons:
            if addon.nickname == nickname:
                return addon
        if self.loader is not None and self.loader.wrapper.nickname == nickname:
            return self.loader.wrapper
        return None


# -----------------------------
# Persisted state
# -----------------------------

class AddonState(BaseModel):
    """
    Persisted per-add-on record, keyed by nickname.

    installed_files is the authoritative removal manifest: every path the
    last install wrote, relative to the add-on's install folder.
    """

    model_config = ConfigDict(frozen=True)

    installed: bool = False
    version_id: str = ""
    installed_files: Tuple[str, ...] = ()
    disabled: bool = False

    @model_validator(mode="after")
    def _uninstalled_has_no_files(self) -> "AddonState":
        if not self.installed and self.installed_files:
            raise ValueError("installed_files must be empty when installed is false")
        return self

    @classmethod
    def default(cls) -> "AddonState":
        return cls()


class UserConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    game_path: Optional[str] = None
    launch_game: bool = False
    culture: str = "en"
    addons_state: Dict[str, AddonState] = Field(default_factory=dict)


# -----------------------------
# Batch results
# -----------------------------

BatchOperation = Literal["install", "delete", "enable", "disable"]
BatchStatus = Literal["completed", "failed", "cancelled", "declined", "nothing_selected"]


class BatchResult(BaseModel):
    operation: BatchOperation
    status: BatchStatus
    processed: int = 0
    total: int = 0
    skipped: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    states: Dict[str, AddonState] = Field(default_factory=dict)


class EnumeratedAddon(BaseModel):
    """An add-on the loader discovered in a directory."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    version: str


# -----------------------------
# HTTP DTOs
# -----------------------------

class BatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # None means "nothing selected"
    nicknames: Optional[List[str]] = None
    confirmed: Optional[bool] = None


class AddonStateView(BaseModel):
    nickname: str
    display_name: Optional[str] = None
    lifecycle: str
    state: AddonState


class LoaderVersionResponse(BaseModel):
    version: Optional[str] = None
