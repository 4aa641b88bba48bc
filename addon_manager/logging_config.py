import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

FORMAT = (
    "%(asctime)s | %(levelname)-7s | %(name)s | "
    "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
)
formatter = logging.Formatter(FORMAT)


def _file_handler(path: Path, level=logging.INFO) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    for h in logger.handlers:
        if getattr(h, "baseFilename", None) == getattr(handler, "baseFilename", None):
            handler.close()
            return
    logger.addHandler(handler)


def setup_logging(log_dir: Path) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # --- Core (config, catalog, events) ---
    core_handler = _file_handler(log_dir / "core.log")

    core_parent = logging.getLogger("addon_manager")
    _attach(core_parent, core_handler)
    core_parent.propagate = False

    # --- Add-on lifecycle (managers, file ops, downloads, loader) ---
    addons_handler = _file_handler(log_dir / "addons.log", level=logging.DEBUG)

    addons_parent = logging.getLogger("addon_manager.addons")
    _attach(addons_parent, addons_handler)
    addons_parent.propagate = False

    # --- Uvicorn ---
    uvicorn_handler = _file_handler(log_dir / "uvicorn.log")
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        ul = logging.getLogger(name)
        _attach(ul, uvicorn_handler)
        ul.propagate = False
