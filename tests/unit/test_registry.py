"""
Unit tests for the runtime and route registries.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ext_framework.core.plugins import Manifest, PluginRuntimeRegistry, RouteRegistry


def _manifest(plugin_id: str, name: str = None) -> Manifest:
    return Manifest.from_json({"id": plugin_id, "name": name or plugin_id})


class TestPluginRuntimeRegistry:

    def test_register_and_get(self):
        registry = PluginRuntimeRegistry()
        instance = object()

        registry.register("core", instance)

        assert registry.get("core") is instance
        assert "core" in registry
        assert len(registry) == 1
        assert registry.get("missing") is None

    def test_last_write_wins_and_keeps_order(self):
        registry = PluginRuntimeRegistry()
        first, second = object(), object()

        registry.register("core", first)
        registry.register("auth", object())
        registry.register("core", second)

        assert registry.get("core") is second
        assert registry.plugin_ids == ["core", "auth"]
        assert len(registry.get_all()) == 2


class TestRouteRegistry:

    def test_namespace_is_idempotent(self):
        registry = RouteRegistry()

        first = registry.get_namespace(_manifest("profile"))
        second = registry.get_namespace(_manifest("profile"))

        assert first is second
        assert first.prefix == "/profile"
        assert registry.plugin_ids == ["profile"]
        assert "profile" in registry

    def test_publish_mounts_routes(self):
        registry = RouteRegistry()
        router = registry.get_namespace(_manifest("profile", "Profile"))

        @router.get("/me")
        def me():
            return {"name": "profile-user"}

        app = FastAPI()
        published = registry.publish(app, prefix="/plugin")

        assert published == ["profile"]
        client = TestClient(app)
        response = client.get("/plugin/profile/me")
        assert response.status_code == 200
        assert response.json() == {"name": "profile-user"}

    def test_publish_skips_already_published(self):
        registry = RouteRegistry()
        registry.get_namespace(_manifest("a"))
        app = FastAPI()

        assert registry.publish(app) == ["a"]

        registry.get_namespace(_manifest("b"))
        assert registry.publish(app) == ["b"]
        assert registry.publish(app) == []

    def test_publish_filters_plugin_ids(self):
        registry = RouteRegistry()
        for plugin_id in ("good", "broken"):
            router = registry.get_namespace(_manifest(plugin_id))

            @router.get("/ping")
            def ping():
                return {"ok": True}

        app = FastAPI()
        published = registry.publish(app, plugin_ids=["good"])

        assert published == ["good"]
        client = TestClient(app)
        assert client.get("/good/ping").status_code == 200
        assert client.get("/broken/ping").status_code == 404

    @pytest.mark.parametrize("prefix", ["", "/ext"])
    def test_publish_prefix(self, prefix):
        registry = RouteRegistry()
        router = registry.get_namespace(_manifest("p"))

        @router.get("/x")
        def x():
            return {}

        app = FastAPI()
        registry.publish(app, prefix=prefix)

        assert TestClient(app).get(f"{prefix}/p/x").status_code == 200
