"""
Plugin resolvers map a plugin id to the code that builds its runtime object
and mounts its routes.

``FileSystemPluginResolver`` imports ``server.py`` (class ``Server``) and the
optional ``routes.py`` (class ``Router``) from the plugin directory.
``StaticPluginResolver`` serves factories registered in code.
"""

import importlib.util
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Optional, Union
import logging

from .manifest import Manifest

logger = logging.getLogger(__name__)

# Builds a plugin runtime object from (config, manifest)
PluginFactory = Callable[..., Any]


class PluginResolver(ABC):
    """Resolves construction and route-registration code for a plugin"""

    @abstractmethod
    def resolve_server(self, manifest: Manifest) -> PluginFactory:
        """Return the callable invoked as ``factory(config, manifest)``"""
        pass

    @abstractmethod
    def resolve_router(self, manifest: Manifest) -> Optional[Callable[[], Any]]:
        """Return the router class, or None if the plugin has no routes"""
        pass


class FileSystemPluginResolver(PluginResolver):
    """Imports plugin code from ``<plugin_base_path>/<id>/``"""

    server_module = "server"
    server_class = "Server"
    routes_module = "routes"
    routes_class = "Router"

    def __init__(self, plugin_base_path: Union[str, Path]):
        self.plugin_base_path = Path(plugin_base_path)
        self.loaded_modules: Dict[str, ModuleType] = {}

    def _load_module(self, plugin_id: str, module: str) -> Optional[ModuleType]:
        module_file = self.plugin_base_path / plugin_id / f"{module}.py"
        if not module_file.exists():
            return None

        module_name = f"ext_plugin_{plugin_id.replace('-', '_')}_{module}"
        if module_name in self.loaded_modules:
            return self.loaded_modules[module_name]

        spec = importlib.util.spec_from_file_location(module_name, module_file)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot import {module_file}")
        loaded = importlib.util.module_from_spec(spec)

        # Add to sys.modules to support relative imports
        sys.modules[module_name] = loaded
        try:
            spec.loader.exec_module(loaded)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise

        self.loaded_modules[module_name] = loaded
        logger.debug(f"Imported {module_file}")
        return loaded

    def resolve_server(self, manifest: Manifest) -> PluginFactory:
        module = self._load_module(manifest.id, self.server_module)
        if module is None:
            raise FileNotFoundError(f"{self.server_module}.py not found for plugin {manifest.id}")
        if not hasattr(module, self.server_class):
            raise AttributeError(f"{self.server_module}.py of plugin {manifest.id} defines no {self.server_class}")
        return getattr(module, self.server_class)

    def resolve_router(self, manifest: Manifest) -> Optional[Callable[[], Any]]:
        module = self._load_module(manifest.id, self.routes_module)
        if module is None:
            return None
        if not hasattr(module, self.routes_class):
            raise AttributeError(f"{self.routes_module}.py of plugin {manifest.id} defines no {self.routes_class}")
        return getattr(module, self.routes_class)


class StaticPluginResolver(PluginResolver):
    """Resolves plugins from factories registered by id"""

    def __init__(self):
        self._servers: Dict[str, PluginFactory] = {}
        self._routers: Dict[str, Callable[[], Any]] = {}

    def register(
        self,
        plugin_id: str,
        server: PluginFactory,
        router: Optional[Callable[[], Any]] = None
    ):
        self._servers[plugin_id] = server
        if router is not None:
            self._routers[plugin_id] = router

    def resolve_server(self, manifest: Manifest) -> PluginFactory:
        try:
            return self._servers[manifest.id]
        except KeyError:
            raise LookupError(f"No server factory registered for plugin {manifest.id}") from None

    def resolve_router(self, manifest: Manifest) -> Optional[Callable[[], Any]]:
        return self._routers.get(manifest.id)
