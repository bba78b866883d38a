"""
Base plugin classes and interfaces.

Defines the contracts a plugin implements to integrate with the framework:
the runtime object built from ``(config, manifest)`` and the router that
mounts the plugin's HTTP handlers on its route namespace.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from fastapi import APIRouter
from pydantic import BaseModel, Field
import logging

from ..config import FrameworkConfig

if TYPE_CHECKING:
    from .manifest import Manifest

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Plugin load states, in pipeline order"""
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    DEPENDENCIES_LOADED = "dependencies_loaded"
    SCHEMA_ACTIVATED = "schema_activated"
    INSTANTIATED = "instantiated"
    ROUTES_REGISTERED = "routes_registered"
    FAILED = "failed"


class PluginRef(BaseModel):
    """Minimal identity used to request a plugin load"""
    id: str = Field(..., min_length=1, description="Plugin identifier")
    ver: Optional[str] = Field(None, description="Requested version (informational)")

    class Config:
        frozen = True

    def __str__(self) -> str:
        return f"{self.id}@{self.ver}" if self.ver else self.id


class BasePlugin:
    """
    Base implementation of a plugin runtime object.

    Subclasses are constructed by the loader with the framework configuration
    snapshot and the plugin's manifest. Raising from ``__init__`` or from
    ``_initialize_impl`` fails the plugin load.
    """

    def __init__(self, config: FrameworkConfig, manifest: "Manifest"):
        self.config = config
        self.manifest = manifest
        self.created_at = datetime.now(timezone.utc)
        self.logger = logging.getLogger(f"plugin.{manifest.id}")
        self._initialize_impl()

    @property
    def plugin_id(self) -> str:
        return self.manifest.id

    def health_check(self) -> Dict[str, Any]:
        """Perform basic health check"""
        return {
            "plugin": self.manifest.id,
            "version": self.manifest.version,
            "created_at": self.created_at.isoformat(),
            "status": "ok"
        }

    def _initialize_impl(self):
        """Override this method for plugin-specific setup"""
        pass


class BaseRouter(ABC):
    """Route-registration collaborator a plugin ships in ``routes.py``"""

    @abstractmethod
    def init(self, router: APIRouter, manifest: "Manifest") -> None:
        """
        Mount the plugin's handlers on its route namespace.

        Args:
            router: Namespace obtained from the route registry for this plugin
            manifest: The plugin's manifest
        """
        pass
