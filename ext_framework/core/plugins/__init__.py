"""
Plugin System for the extension framework.

Loads plugins together with their transitive dependencies: each plugin's
manifest is resolved, its dependencies are loaded first, its schema is
activated, its runtime object is instantiated and its routes are mounted.

Key Components:
- Plugin Loader: the load pipeline and cycle-safe dependency traversal
- Manifest Providers: resolve a plugin id to its manifest
- Schema Discovery / Activators: create or migrate plugin storage
- Registries: runtime instances and route namespaces per plugin
- Plugin Manager: wires the above together for application bootstrap
"""

from .base import BasePlugin, BaseRouter, PluginRef, PluginState
from .manifest import Manifest, ManifestProvider, FileManifestProvider, InMemoryManifestProvider
from .schema import (
    SchemaDescriptor,
    SchemaDiscovery,
    FileSchemaDiscovery,
    InMemorySchemaDiscovery,
    SchemaActivator,
    CallableSchemaActivator,
    MongoSchemaActivator,
    SchemaActivatorRegistry
)
from .registry import PluginRuntimeRegistry, RouteRegistry
from .resolver import PluginResolver, FileSystemPluginResolver, StaticPluginResolver
from .loader import PluginLoader
from .manager import PluginManager, get_plugin_manager, setup_plugin_manager

__all__ = [
    "BasePlugin",
    "BaseRouter",
    "PluginRef",
    "PluginState",
    "Manifest",
    "ManifestProvider",
    "FileManifestProvider",
    "InMemoryManifestProvider",
    "SchemaDescriptor",
    "SchemaDiscovery",
    "FileSchemaDiscovery",
    "InMemorySchemaDiscovery",
    "SchemaActivator",
    "CallableSchemaActivator",
    "MongoSchemaActivator",
    "SchemaActivatorRegistry",
    "PluginRuntimeRegistry",
    "RouteRegistry",
    "PluginResolver",
    "FileSystemPluginResolver",
    "StaticPluginResolver",
    "PluginLoader",
    "PluginManager",
    "get_plugin_manager",
    "setup_plugin_manager"
]
