"""
Plugin status endpoints.

Read-only views over the plugin manager: load state of every claimed
plugin, health of instantiated plugins and manifest lookup.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..core.plugins import PluginManager, PluginState, get_plugin_manager

router = APIRouter(prefix="/plugins", tags=["plugins"])


def get_manager(request: Request) -> PluginManager:
    """Resolve the plugin manager of the running application, else the global one"""
    manager = getattr(request.app.state, "plugin_manager", None) or get_plugin_manager()
    if manager is None:
        raise HTTPException(status_code=503, detail="Plugin system not initialized")
    return manager


@router.get(
    "",
    summary="List plugins",
    description="Claimed plugins in claim order, with their load state."
)
def list_plugins(
    state: Optional[PluginState] = Query(None, description="Filter by load state"),
    manager: PluginManager = Depends(get_manager)
) -> Dict[str, Any]:
    plugins = manager.list_plugins(state)
    return {"success": True, "data": plugins, "total": len(plugins)}


@router.get("/health", summary="Health of instantiated plugins")
async def plugins_health(manager: PluginManager = Depends(get_manager)) -> Dict[str, Any]:
    return {"success": True, "data": await manager.health_check_all()}


@router.get("/{plugin_id}/manifest", summary="Resolve a plugin manifest")
async def get_manifest(plugin_id: str, manager: PluginManager = Depends(get_manager)) -> Dict[str, Any]:
    # ManifestNotFoundError is rendered by the framework exception handler
    manifest = await manager.loader.manifest_provider.resolve(plugin_id)
    return {"success": True, "data": manifest.model_dump()}


@router.get("/{plugin_id}", summary="Plugin load state")
def get_plugin(plugin_id: str, manager: PluginManager = Depends(get_manager)) -> Dict[str, Any]:
    state = manager.loader.get_state(plugin_id)
    if state == PluginState.UNCLAIMED:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' is not loaded")

    failure = manager.loader.get_failure(plugin_id)
    return {
        "success": True,
        "data": {
            "id": plugin_id,
            "state": state.value,
            "instantiated": manager.get_plugin(plugin_id) is not None,
            "error": failure.to_dict() if failure else None
        }
    }
