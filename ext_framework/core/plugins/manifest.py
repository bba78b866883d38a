"""
Plugin manifests and the providers that resolve them.

A manifest lives at ``<plugin_base_path>/<id>/manifest.json``::

    {
        "id": "profile",
        "name": "Profile",
        "version": "1.0",
        "author": "...",
        "server": {
            "dependencies": [{"id": "core", "ver": "1.0"}]
        }
    }

Dependencies may also be given as plain id strings.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, ValidationError
import logging

from ...shared.exceptions import ManifestNotFoundError
from .base import PluginRef

logger = logging.getLogger(__name__)


class Manifest(BaseModel):
    """Validated plugin manifest"""
    id: str = Field(..., min_length=1, description="Unique plugin identifier")
    name: str = Field("", description="Human-readable plugin name")
    version: str = Field("1.0", description="Plugin version")
    author: str = Field("", description="Plugin author")
    description: str = Field("", description="Plugin description")
    dependencies: List[PluginRef] = Field(default_factory=list, description="Direct dependencies, in load order")
    server: Dict[str, Any] = Field(default_factory=dict, description="Raw server section of the manifest")

    class Config:
        frozen = True

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Manifest":
        """
        Build a manifest from its JSON document.

        Args:
            data: Parsed manifest.json content

        Returns:
            Validated Manifest

        Raises:
            ValueError: If the document is not an object or a dependency is malformed
            ValidationError: If required fields are missing
        """
        if not isinstance(data, dict):
            raise ValueError("Manifest must be a JSON object")

        server = data.get("server") or {}
        raw_dependencies = server.get("dependencies")
        if raw_dependencies is None:
            raw_dependencies = data.get("dependencies") or []

        return cls(
            id=data.get("id"),
            name=data.get("name") or data.get("id") or "",
            version=str(data.get("version", "1.0")),
            author=data.get("author") or "",
            description=data.get("description") or "",
            dependencies=[cls._parse_dependency(dep) for dep in raw_dependencies],
            server=server,
        )

    @staticmethod
    def _parse_dependency(dep_spec: Any) -> PluginRef:
        """Parse dependency specification from manifest"""
        if isinstance(dep_spec, str):
            return PluginRef(id=dep_spec)
        elif isinstance(dep_spec, dict):
            return PluginRef(id=dep_spec.get("id"), ver=dep_spec.get("ver"))
        else:
            raise ValueError(f"Invalid dependency specification: {dep_spec!r}")


class ManifestProvider(ABC):
    """Resolves a plugin id to its validated manifest"""

    @abstractmethod
    async def resolve(self, plugin_id: str) -> Manifest:
        """
        Resolve the manifest for a plugin.

        Raises:
            ManifestNotFoundError: If the manifest cannot be located or parsed
        """
        pass


class FileManifestProvider(ManifestProvider):
    """Reads ``manifest.json`` from each plugin's directory"""

    manifest_filename = "manifest.json"

    def __init__(self, plugin_base_path: Union[str, Path]):
        self.plugin_base_path = Path(plugin_base_path)

    def plugin_dir(self, plugin_id: str) -> Path:
        if not plugin_id or "/" in plugin_id or "\\" in plugin_id or plugin_id in (".", ".."):
            raise ManifestNotFoundError(f"Invalid plugin id: {plugin_id!r}", plugin_id=plugin_id)
        return self.plugin_base_path / plugin_id

    async def resolve(self, plugin_id: str) -> Manifest:
        manifest_file = self.plugin_dir(plugin_id) / self.manifest_filename

        try:
            with open(manifest_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            manifest = Manifest.from_json(data)
        except FileNotFoundError as e:
            raise ManifestNotFoundError(
                f"Manifest not found: {manifest_file}", plugin_id=plugin_id, root_error=e
            ) from e
        except json.JSONDecodeError as e:
            raise ManifestNotFoundError(
                f"Invalid JSON in manifest {manifest_file}: {e}", plugin_id=plugin_id, root_error=e
            ) from e
        except (ValidationError, ValueError) as e:
            raise ManifestNotFoundError(
                f"Invalid manifest {manifest_file}: {e}", plugin_id=plugin_id, root_error=e
            ) from e

        if manifest.id != plugin_id:
            raise ManifestNotFoundError(
                f"Manifest in {manifest_file} declares id '{manifest.id}'", plugin_id=plugin_id
            )

        logger.debug(f"Resolved manifest: {manifest.id} v{manifest.version}")
        return manifest


class InMemoryManifestProvider(ManifestProvider):
    """Serves manifests registered in code"""

    def __init__(self, manifests: Optional[Dict[str, Union[Manifest, Dict[str, Any]]]] = None):
        self._manifests: Dict[str, Manifest] = {}
        for plugin_id, manifest in (manifests or {}).items():
            self.add(manifest if isinstance(manifest, Manifest) else Manifest.from_json({"id": plugin_id, **manifest}))

    def add(self, manifest: Manifest):
        self._manifests[manifest.id] = manifest

    async def resolve(self, plugin_id: str) -> Manifest:
        manifest = self._manifests.get(plugin_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest registered for '{plugin_id}'", plugin_id=plugin_id)
        return manifest
