"""
Plugin Runtime Registry and Route Registry.

Both are process-wide tables keyed by plugin id. They are passed to the
loader explicitly rather than reached through module globals, so tests and
embedded uses can run isolated instances.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional
from fastapi import APIRouter, FastAPI
import logging

from .manifest import Manifest

logger = logging.getLogger(__name__)


class PluginRuntimeRegistry:
    """Table from plugin id to its instantiated runtime object"""

    def __init__(self):
        self._instances: Dict[str, Any] = {}
        self._order: List[str] = []
        self._lock = threading.Lock()

    def register(self, plugin_id: str, instance: Any):
        """Store a runtime instance; last write wins"""
        with self._lock:
            if plugin_id in self._instances:
                logger.warning(f"Plugin {plugin_id} instance replaced")
            else:
                self._order.append(plugin_id)
            self._instances[plugin_id] = instance

    def get(self, plugin_id: str) -> Optional[Any]:
        """Get plugin instance by id"""
        return self._instances.get(plugin_id)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    @property
    def plugin_ids(self) -> List[str]:
        """Registered ids in the order their instances were first stored"""
        return list(self._order)

    def get_all(self) -> Dict[str, Any]:
        return self._instances.copy()


class RouteRegistry:
    """
    Table from plugin id to the plugin's routing namespace.

    Each namespace is an ``APIRouter`` prefixed with ``/<id>``. Routers are
    included into an application with ``publish`` once the plugins have
    mounted their handlers, since FastAPI copies routes at inclusion time.
    """

    def __init__(self):
        self._routers: Dict[str, APIRouter] = {}
        self._published: set = set()
        self._lock = threading.Lock()

    def get_namespace(self, manifest: Manifest) -> APIRouter:
        """Get or create the namespace for a plugin; idempotent per id"""
        with self._lock:
            router = self._routers.get(manifest.id)
            if router is None:
                router = APIRouter(prefix=f"/{manifest.id}", tags=[manifest.name or manifest.id])
                self._routers[manifest.id] = router
                logger.debug(f"Created route namespace for {manifest.id}")
            return router

    def get(self, plugin_id: str) -> Optional[APIRouter]:
        return self._routers.get(plugin_id)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._routers

    @property
    def plugin_ids(self) -> List[str]:
        return list(self._routers)

    def publish(
        self,
        app: FastAPI,
        prefix: str = "",
        plugin_ids: Optional[Iterable[str]] = None
    ) -> List[str]:
        """
        Include every namespace not yet published into an application.

        Args:
            app: Application to mount the plugin routers on
            prefix: URL prefix placed before each plugin's ``/<id>``
            plugin_ids: Restrict publishing to these plugins

        Returns:
            Ids of the plugins published by this call
        """
        allowed = set(plugin_ids) if plugin_ids is not None else None
        published = []
        with self._lock:
            for plugin_id, router in self._routers.items():
                if plugin_id in self._published:
                    continue
                if allowed is not None and plugin_id not in allowed:
                    continue
                app.include_router(router, prefix=prefix)
                self._published.add(plugin_id)
                published.append(plugin_id)

        if published:
            logger.info(f"Published routes for plugins: {published}")
        return published
