from __future__ import annotations

import os
import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel

HOME_ENV = "ADDON_MANAGER_HOME"
TMP_ENV = "ADDON_MANAGER_TMP"


def _default_home() -> Path:
    return Path.home() / ".addon-manager"


class Settings(BaseModel):
    """
    Where the manager keeps its own files.

    home is also the directory the loader introspection copy is mirrored to.
    """

    home: Path
    temp_dir: Path

    @property
    def config_path(self) -> Path:
        return self.home / "config.json"

    @property
    def catalog_path(self) -> Path:
        return self.home / "catalog.json"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"


def load_settings() -> Settings:
    home = Path(os.environ.get(HOME_ENV) or _default_home()).expanduser()
    temp_dir = Path(os.environ.get(TMP_ENV) or tempfile.gettempdir())
    return Settings(home=home, temp_dir=temp_dir)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
