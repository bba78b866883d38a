"""
Plugin Manager - wires the plugin loader to its collaborators.

The manager owns the process-wide registries, builds the default
filesystem-backed collaborators from the configuration, and provides the
operational interface used by application bootstrap.
"""

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging

from ...shared.exceptions import FrameworkError
from ..config import FrameworkConfig
from ..database import DatabaseManager
from .base import PluginRef, PluginState
from .loader import PluginLoader
from .manifest import FileManifestProvider, ManifestProvider
from .registry import PluginRuntimeRegistry, RouteRegistry
from .resolver import FileSystemPluginResolver, PluginResolver
from .schema import (
    FileSchemaDiscovery, MongoSchemaActivator, SchemaActivatorRegistry, SchemaDiscovery
)

logger = logging.getLogger(__name__)


class PluginManager:
    """
    Central plugin management system.

    Any collaborator not supplied is built from ``config.plugin_base_path``:
    manifests, schema files and plugin code are all read from
    ``<plugin_base_path>/<id>/``.
    """

    def __init__(
        self,
        config: FrameworkConfig,
        db_manager: Optional[DatabaseManager] = None,
        manifest_provider: Optional[ManifestProvider] = None,
        resolver: Optional[PluginResolver] = None,
        schema_discovery: Optional[SchemaDiscovery] = None,
        schema_activators: Optional[SchemaActivatorRegistry] = None
    ):
        self.config = config
        self.db_manager = db_manager or DatabaseManager(database_name=config.database_name)
        self.runtime_registry = PluginRuntimeRegistry()
        self.route_registry = RouteRegistry()

        if schema_activators is None:
            schema_activators = SchemaActivatorRegistry()
            schema_activators.register(MongoSchemaActivator.schema_type, MongoSchemaActivator(self.db_manager))

        self.loader = PluginLoader(
            config,
            manifest_provider=manifest_provider or FileManifestProvider(config.plugin_base_path),
            resolver=resolver or FileSystemPluginResolver(config.plugin_base_path),
            schema_discovery=schema_discovery or FileSchemaDiscovery(config.plugin_base_path),
            schema_activators=schema_activators,
            runtime_registry=self.runtime_registry,
            route_registry=self.route_registry
        )

        # Plugin event handlers
        self._event_handlers: Dict[str, List[Callable]] = {
            'plugin_loaded': [],
            'plugin_error': []
        }

    async def load_plugin(self, plugin: Union[PluginRef, str]) -> None:
        """
        Load one top-level plugin with its dependencies.

        Raises:
            FrameworkError: If any plugin in the chain failed
        """
        ref = PluginRef(id=plugin) if isinstance(plugin, str) else plugin
        try:
            await self.loader.load_plugin(ref)
        except FrameworkError as e:
            await self._emit_event('plugin_error', ref.id, e)
            raise
        await self._emit_event('plugin_loaded', ref.id)

    async def load_plugins(
        self,
        plugins: Iterable[Union[PluginRef, str]],
        fail_fast: bool = True
    ) -> Dict[str, Optional[FrameworkError]]:
        """
        Load top-level plugins one after another.

        Args:
            plugins: Plugin refs or ids, in load order
            fail_fast: Re-raise the first failure instead of continuing

        Returns:
            Mapping of requested id to its error, None for success
        """
        results: Dict[str, Optional[FrameworkError]] = {}
        for plugin in plugins:
            ref = PluginRef(id=plugin) if isinstance(plugin, str) else plugin
            try:
                await self.load_plugin(ref)
                results[ref.id] = None
            except FrameworkError as e:
                results[ref.id] = e
                if fail_fast:
                    raise
                logger.error(f"Continuing without plugin {ref.id}: {e}", extra={"plugin_id": ref.id})
        return results

    def get_plugin(self, plugin_id: str) -> Optional[Any]:
        """Get plugin runtime instance by id"""
        return self.runtime_registry.get(plugin_id)

    def list_plugins(self, state: Optional[PluginState] = None) -> List[Dict[str, Any]]:
        """List claimed plugins with their load state"""
        plugins = []
        for plugin_id in self.loader.loaded_plugins:
            plugin_state = self.loader.get_state(plugin_id)
            if state and plugin_state != state:
                continue
            failure = self.loader.get_failure(plugin_id)
            plugins.append({
                "id": plugin_id,
                "state": plugin_state.value,
                "error": failure.to_dict() if failure else None
            })
        return plugins

    async def health_check_all(self) -> Dict[str, Any]:
        """Perform health check on all instantiated plugins"""
        results = {}
        for plugin_id, plugin in self.runtime_registry.get_all().items():
            check = getattr(plugin, "health_check", None)
            if check is None:
                results[plugin_id] = {"status": "unknown"}
                continue
            try:
                result = check()
                if asyncio.iscoroutine(result):
                    result = await result
                results[plugin_id] = result
            except Exception as e:
                results[plugin_id] = {
                    "status": "error",
                    "error": str(e)
                }
        return results

    def get_manager_stats(self) -> Dict[str, Any]:
        """Get plugin manager statistics"""
        return {
            "loader": self.loader.get_loader_stats(),
            "schema_types": self.loader.schema_activators.types,
            "database": self.db_manager.get_connection_stats(),
            "event_handlers": {
                event: len(handlers) for event, handlers in self._event_handlers.items()
            }
        }

    async def shutdown(self):
        """Release resources held on behalf of plugins"""
        await self.db_manager.close_async_connection()

    # Event system
    def add_event_handler(self, event: str, handler: Callable):
        """Add an event handler"""
        if event not in self._event_handlers:
            raise ValueError(f"Unknown plugin event {event!r}. Valid: {sorted(self._event_handlers)}")
        self._event_handlers[event].append(handler)

    def remove_event_handler(self, event: str, handler: Callable):
        """Remove an event handler"""
        if event in self._event_handlers and handler in self._event_handlers[event]:
            self._event_handlers[event].remove(handler)

    async def _emit_event(self, event: str, *args, **kwargs):
        """Emit an event to all handlers"""
        for handler in self._event_handlers.get(event, []):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(*args, **kwargs)
                else:
                    handler(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event handler for {event}: {e}")


# Global plugin manager instance
_plugin_manager: Optional[PluginManager] = None


def get_plugin_manager() -> Optional[PluginManager]:
    """Get the global plugin manager instance"""
    return _plugin_manager


def setup_plugin_manager(config: FrameworkConfig, **kwargs) -> PluginManager:
    """Setup and return the global plugin manager"""
    global _plugin_manager
    _plugin_manager = PluginManager(config, **kwargs)
    return _plugin_manager
