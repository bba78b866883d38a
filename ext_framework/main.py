from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import FastAPI, Request
import uvicorn

from . import __version__
from .api.plugins import router as plugins_router
from .core.config import Settings, settings as default_settings
from .core.database import DatabaseManager
from .core.logging_config import setup_logging
from .core.plugins import PluginManager, PluginState, setup_plugin_manager
from .shared.exceptions import FrameworkError, register_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the configured plugins before serving, release resources after"""
    app_settings: Settings = app.state.settings
    setup_logging(
        log_level=app_settings.log_level,
        enable_json=app_settings.log_json,
        log_file=app_settings.log_file
    )
    logger.info("Application starting...")

    manager: Optional[PluginManager] = app.state.plugin_manager
    if manager is None:
        manager = setup_plugin_manager(
            app_settings.to_framework_config(),
            db_manager=DatabaseManager(app_settings.mongodb_url, app_settings.database_name)
        )
        app.state.plugin_manager = manager

    try:
        await manager.load_plugins(app_settings.plugins, fail_fast=app_settings.fail_fast)
    except FrameworkError as e:
        logger.error(f"Plugin startup failed: {e}", extra={"plugin_id": e.plugin_id})
        await manager.shutdown()
        raise

    loaded = [p["id"] for p in manager.list_plugins(PluginState.ROUTES_REGISTERED)]
    manager.route_registry.publish(app, prefix=app_settings.route_prefix, plugin_ids=loaded)
    logger.info(f"Application started with {len(loaded)} plugins")

    yield

    logger.info("Application shutting down...")
    try:
        await manager.shutdown()
    except Exception as e:
        logger.error(f"Error while closing plugin resources: {e}")
    logger.info("Application shutdown complete")


def create_app(
    app_settings: Optional[Settings] = None,
    plugin_manager: Optional[PluginManager] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        app_settings: Settings to use instead of the environment-derived ones
        plugin_manager: Pre-built manager; built from the settings when omitted
    """
    app_settings = app_settings or default_settings

    app = FastAPI(
        title="Extension Framework",
        description="Hosts plugins loaded with their dependencies, schemas and routes.",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.plugin_manager = plugin_manager

    register_exception_handlers(app)
    app.include_router(plugins_router, prefix="/api/v1")

    @app.get("/health", tags=["default"], summary="Service health")
    async def health_check(request: Request):
        manager: Optional[PluginManager] = request.app.state.plugin_manager
        loaded = manager.list_plugins(PluginState.ROUTES_REGISTERED) if manager else []
        failed = manager.list_plugins(PluginState.FAILED) if manager else []

        # The database is only connected once a plugin activated a schema
        database = "not_connected"
        if manager and manager.db_manager.is_connected:
            database = "healthy" if await manager.db_manager.async_is_healthy() else "unhealthy"

        return {
            "status": "healthy" if manager and not failed and database != "unhealthy" else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "plugins_loaded": len(loaded),
            "plugins_failed": [p["id"] for p in failed],
            "database": database,
            "version": __version__
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "ext_framework.main:app",
        host=default_settings.app_host,
        port=default_settings.app_port,
        reload=default_settings.debug,
        log_level=default_settings.log_level.lower()
    )
