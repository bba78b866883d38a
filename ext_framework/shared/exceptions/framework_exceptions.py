"""
Plugin framework exception classes.

Every failure raised while loading a plugin carries the id of the plugin
that failed, the pipeline stage it failed in and the underlying cause, so
the top-level caller can surface it verbatim.
"""

from enum import Enum
from typing import Any, Dict, Optional


class FrameworkErrors(str, Enum):
    """Machine-readable error codes"""
    MANIFEST_NOT_FOUND = "MANIFEST_NOT_FOUND"
    SCHEMA_LOADER_FAILED = "SCHEMA_LOADER_FAILED"
    UNKNOWN_SCHEMA_TYPE = "UNKNOWN_SCHEMA_TYPE"
    PLUGIN_LOAD_FAILED = "PLUGIN_LOAD_FAILED"
    ROUTE_REGISTRY_FAILED = "ROUTE_REGISTRY_FAILED"
    LOAD_TIMEOUT = "LOAD_TIMEOUT"


class LoadStage(str, Enum):
    """Pipeline stages a plugin load can fail in"""
    CLAIM = "claim"
    MANIFEST = "manifest"
    DEPENDENCIES = "dependencies"
    SCHEMA = "schema"
    INSTANTIATE = "instantiate"
    ROUTES = "routes"


class FrameworkError(Exception):
    """Base exception for all plugin framework errors"""

    code: FrameworkErrors = FrameworkErrors.PLUGIN_LOAD_FAILED
    stage: Optional[LoadStage] = None

    def __init__(
        self,
        message: str,
        plugin_id: Optional[str] = None,
        code: Optional[FrameworkErrors] = None,
        stage: Optional[LoadStage] = None,
        root_error: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.plugin_id = plugin_id
        if code is not None:
            self.code = code
        if stage is not None:
            self.stage = stage
        self.root_error = root_error
        self.details = details or {}

    def __str__(self):
        if self.plugin_id:
            return f"[{self.code.value}] {self.plugin_id}: {self.message}"
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Render the error for logs and HTTP responses"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "plugin_id": self.plugin_id,
            "stage": self.stage.value if self.stage else None,
        }
        if self.root_error is not None:
            result["cause"] = f"{type(self.root_error).__name__}: {self.root_error}"
        if self.details:
            result["details"] = self.details
        return result


class ManifestNotFoundError(FrameworkError):
    """Manifest could not be located or parsed"""
    code = FrameworkErrors.MANIFEST_NOT_FOUND
    stage = LoadStage.MANIFEST


class SchemaActivationError(FrameworkError):
    """A schema descriptor failed to apply"""
    code = FrameworkErrors.SCHEMA_LOADER_FAILED
    stage = LoadStage.SCHEMA

    def __init__(self, message: str, schema_source: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.schema_source = schema_source


class UnknownSchemaTypeError(FrameworkError):
    """No activator is registered for a descriptor type"""
    code = FrameworkErrors.UNKNOWN_SCHEMA_TYPE
    stage = LoadStage.SCHEMA

    def __init__(self, schema_type: str, **kwargs):
        super().__init__(f"No schema activator registered for type '{schema_type}'", **kwargs)
        self.schema_type = schema_type


class InstantiationError(FrameworkError):
    """Plugin runtime construction failed"""
    code = FrameworkErrors.PLUGIN_LOAD_FAILED
    stage = LoadStage.INSTANTIATE


class RouteRegistrationError(FrameworkError):
    """Mounting the plugin's routes failed"""
    code = FrameworkErrors.ROUTE_REGISTRY_FAILED
    stage = LoadStage.ROUTES


class PluginLoadTimeoutError(FrameworkError):
    """Top-level load did not finish within its deadline"""
    code = FrameworkErrors.LOAD_TIMEOUT

    def __init__(self, message: str = "Plugin load timed out", timeout: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout
