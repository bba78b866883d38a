"""
Unit tests for framework exceptions and their HTTP rendering.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from ext_framework.shared.exceptions import (
    FrameworkError,
    FrameworkErrors,
    InstantiationError,
    LoadStage,
    ManifestNotFoundError,
    PluginLoadTimeoutError,
    RouteRegistrationError,
    SchemaActivationError,
    register_exception_handlers,
)


class TestFrameworkError:

    def test_class_defaults(self):
        assert ManifestNotFoundError("x").code == FrameworkErrors.MANIFEST_NOT_FOUND
        assert ManifestNotFoundError("x").stage == LoadStage.MANIFEST
        assert SchemaActivationError("x").code == FrameworkErrors.SCHEMA_LOADER_FAILED
        assert InstantiationError("x").stage == LoadStage.INSTANTIATE
        assert RouteRegistrationError("x").code == FrameworkErrors.ROUTE_REGISTRY_FAILED
        assert PluginLoadTimeoutError().code == FrameworkErrors.LOAD_TIMEOUT

    def test_overrides(self):
        error = PluginLoadTimeoutError(plugin_id="x", stage=LoadStage.SCHEMA, timeout=0.5)

        assert error.stage == LoadStage.SCHEMA
        assert error.timeout == 0.5
        # Class attribute is untouched
        assert PluginLoadTimeoutError.stage is None

    def test_str(self):
        assert str(FrameworkError("boom", plugin_id="a")) == "[PLUGIN_LOAD_FAILED] a: boom"
        assert str(FrameworkError("boom")) == "[PLUGIN_LOAD_FAILED] boom"

    def test_to_dict(self):
        cause = KeyError("users")
        error = SchemaActivationError(
            "Schema failed",
            plugin_id="profile",
            root_error=cause,
            details={"source": "db/schema.json"}
        )

        assert error.to_dict() == {
            "code": "SCHEMA_LOADER_FAILED",
            "message": "Schema failed",
            "plugin_id": "profile",
            "stage": "schema",
            "cause": "KeyError: 'users'",
            "details": {"source": "db/schema.json"}
        }


class TestExceptionHandler:

    def _client(self, error: FrameworkError) -> TestClient:
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/fail")
        async def fail():
            raise error

        return TestClient(app)

    def test_manifest_not_found_is_404(self):
        response = self._client(ManifestNotFoundError("No manifest", plugin_id="ghost")).get("/fail")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "MANIFEST_NOT_FOUND"
        assert body["error"]["plugin_id"] == "ghost"
        assert body["request_id"].startswith("req_")

    def test_other_errors_are_500(self):
        response = self._client(InstantiationError("ctor failed", plugin_id="a")).get("/fail")

        assert response.status_code == 500
        assert response.json()["error"]["stage"] == "instantiate"
