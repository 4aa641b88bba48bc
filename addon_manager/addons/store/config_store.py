from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict

from pydantic import ValidationError

from ..domain.errors import ConfigurationError
from ..domain.models import AddonState, UserConfig

logger = logging.getLogger("addon_manager.store.config")

CONFIG_LOCK = threading.Lock()

ADDONS_FOLDER = "addons"


class ConfigurationStore:
    """
    Handles reading/writing the user configuration JSON atomically.

    The add-on state map lives in here; the lifecycle managers read it at the
    start of a batch and overwrite it at the end.
    """

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"ConfigurationStore initialized, config_path={self.config_path}")

    def load(self) -> UserConfig:
        logger.debug(f"Loading configuration from {self.config_path}")
        with CONFIG_LOCK:
            if not self.config_path.exists():
                cfg = UserConfig()
                self._write(cfg)
                logger.info(f"Created default configuration at {self.config_path}")
                return cfg

            try:
                raw = json.loads(self.config_path.read_text(encoding="utf-8"))
                return UserConfig.model_validate(raw)
            except (json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Failed to load configuration: {e}")
                raise ConfigurationError(f"Failed to load configuration: {e}") from e

    def save(self, cfg: UserConfig) -> None:
        with CONFIG_LOCK:
            self._write(cfg)

    def _write(self, cfg: UserConfig) -> None:
        logger.debug(f"Saving configuration to {self.config_path}")
        tmp = self.config_path.with_suffix(".json.tmp")
        tmp.write_text(cfg.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.config_path)

    # ----------------------------
    # Add-on state map
    # ----------------------------

    def get_addon_states(self) -> Dict[str, AddonState]:
        return dict(self.load().addons_state)

    def set_addon_states(self, states: Dict[str, AddonState]) -> None:
        cfg = self.load()
        self.save(cfg.model_copy(update={"addons_state": dict(states)}))
        logger.info(f"Committed add-on state for {len(states)} add-on(s)")

    # ----------------------------
    # Paths
    # ----------------------------

    def game_path(self) -> Path:
        game_path = self.load().game_path
        if not game_path:
            raise ConfigurationError("Game path is not configured")
        return Path(game_path)

    def addons_path(self) -> Path:
        return self.game_path() / ADDONS_FOLDER
