from fastapi import FastAPI
import logging

from addon_manager.logging_config import setup_logging
from addon_manager.settings import get_settings

logger = logging.getLogger("addon_manager.core")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_dir)

    app = FastAPI(title="Addon Manager")
    logger.info("Addon manager starting (home=%s)", settings.home)

    # Delayed import so settings/logging are in place before the router's singletons exist.
    from .addons.api.router import router as addons_router

    app.include_router(addons_router)
    logger.info("Mounted addon routers")

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "addon-manager"}

    return app
