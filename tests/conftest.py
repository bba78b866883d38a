"""
Pytest configuration and shared fixtures.

Provides an in-memory plugin harness that records every pipeline stage in
the order it runs.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path

import pytest

# Configure test environment before importing framework modules
os.environ.setdefault('EXT_DATABASE_NAME', 'ext_framework_test')
os.environ.setdefault('EXT_PLUGINS', '[]')

from ext_framework.core.config import FrameworkConfig
from ext_framework.core.plugins import (
    BasePlugin,
    BaseRouter,
    CallableSchemaActivator,
    InMemoryManifestProvider,
    InMemorySchemaDiscovery,
    Manifest,
    PluginLoader,
    SchemaActivatorRegistry,
    SchemaDescriptor,
    StaticPluginResolver,
)


class RecordingManifestProvider(InMemoryManifestProvider):
    """Manifest provider that records each lookup"""

    def __init__(self, events: List[Tuple[str, str]], manifests: Dict[str, Any]):
        super().__init__(manifests)
        self.events = events

    async def resolve(self, plugin_id: str) -> Manifest:
        self.events.append(("manifest", plugin_id))
        return await super().resolve(plugin_id)


class PluginHarness:
    """
    Builds a loader over an in-memory plugin graph.

    Every plugin gets one ``recording`` schema descriptor, a runtime factory
    and a router, each appending ``(stage, plugin_id)`` to ``events``.
    """

    def __init__(self, graph: Dict[str, List[str]], config: FrameworkConfig):
        self.events: List[Tuple[str, str]] = []
        self.config = config
        self.manifests = RecordingManifestProvider(
            self.events,
            {plugin_id: {"dependencies": deps} for plugin_id, deps in graph.items()}
        )
        self.discovery = InMemorySchemaDiscovery()
        self.activators = SchemaActivatorRegistry()
        self.activators.register("recording", CallableSchemaActivator(self._activate))
        self.resolver = StaticPluginResolver()

        for plugin_id in graph:
            self.discovery.add(plugin_id, SchemaDescriptor(type="recording"))
            self.resolver.register(plugin_id, self._factory, self._router_class())

        self.loader = PluginLoader(
            config,
            manifest_provider=self.manifests,
            resolver=self.resolver,
            schema_discovery=self.discovery,
            schema_activators=self.activators
        )

    async def _activate(self, manifest: Manifest, descriptor: SchemaDescriptor):
        self.events.append(("schema", manifest.id))

    def _factory(self, config: FrameworkConfig, manifest: Manifest) -> BasePlugin:
        self.events.append(("instantiate", manifest.id))
        return BasePlugin(config, manifest)

    def _router_class(self):
        events = self.events

        class RecordingRouter(BaseRouter):
            def init(self, router, manifest):
                events.append(("routes", manifest.id))

                @router.get("/ping")
                def ping():
                    return {"plugin": manifest.id}

        return RecordingRouter

    def stages_for(self, plugin_id: str) -> List[str]:
        return [stage for stage, pid in self.events if pid == plugin_id]

    def index_of(self, stage: str, plugin_id: str) -> int:
        return self.events.index((stage, plugin_id))

    def count(self, stage: str, plugin_id: str) -> int:
        return self.events.count((stage, plugin_id))


@pytest.fixture
def framework_config(tmp_path: Path) -> FrameworkConfig:
    """Configuration snapshot with no load deadline"""
    return FrameworkConfig(plugin_base_path=str(tmp_path), environment="test", load_timeout_seconds=None)


@pytest.fixture
def make_harness(framework_config):
    """Factory for PluginHarness instances over a dependency graph"""
    def _make(graph: Dict[str, List[str]], config: Optional[FrameworkConfig] = None) -> PluginHarness:
        return PluginHarness(graph, config or framework_config)

    return _make


@pytest.fixture
def write_plugin(tmp_path: Path):
    """Write a plugin directory with manifest and optional code/schema files"""
    def _write(
        plugin_id: str,
        dependencies: Optional[List[str]] = None,
        server: Optional[str] = None,
        routes: Optional[str] = None,
        schemas: Optional[Dict[str, str]] = None,
        manifest: Optional[str] = None
    ) -> Path:
        import json

        plugin_dir = tmp_path / plugin_id
        plugin_dir.mkdir(parents=True, exist_ok=True)
        if manifest is None:
            manifest = json.dumps({
                "id": plugin_id,
                "name": plugin_id.title(),
                "version": "1.0",
                "server": {"dependencies": [{"id": dep, "ver": "1.0"} for dep in dependencies or []]}
            })
        (plugin_dir / "manifest.json").write_text(manifest, encoding="utf-8")
        if server is not None:
            (plugin_dir / "server.py").write_text(server, encoding="utf-8")
        if routes is not None:
            (plugin_dir / "routes.py").write_text(routes, encoding="utf-8")
        for relative_path, content in (schemas or {}).items():
            schema_file = plugin_dir / relative_path
            schema_file.parent.mkdir(parents=True, exist_ok=True)
            schema_file.write_text(content, encoding="utf-8")
        return plugin_dir

    return _write


@pytest.fixture(autouse=True)
def propagate_framework_logs():
    """Keep framework loggers visible to caplog"""
    logging.getLogger("ext_framework").setLevel(logging.DEBUG)
    yield
