"""
Schema discovery and activation.

Each plugin may ship zero or more schema files under
``<plugin_base_path>/<id>/db/**/schema*.json``. Every file names its
``type``; the activator registered for that type creates or migrates the
plugin's persistent storage from it.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, Field
import logging

from ...shared.exceptions import SchemaActivationError, UnknownSchemaTypeError
from ..database import DatabaseManager
from .manifest import Manifest

logger = logging.getLogger(__name__)


class SchemaDescriptor(BaseModel):
    """Typed schema definition discovered for a plugin"""
    type: str = Field(..., min_length=1, description="Activator type tag")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Full schema document")
    source: Optional[str] = Field(None, description="File the descriptor was read from")


class SchemaDiscovery(ABC):
    """Finds the schema descriptors a plugin ships"""

    @abstractmethod
    def discover(self, manifest: Manifest) -> List[SchemaDescriptor]:
        pass


class FileSchemaDiscovery(SchemaDiscovery):
    """Globs ``db/**/schema*.json`` inside the plugin directory"""

    pattern = "db/**/schema*.json"

    def __init__(self, plugin_base_path: Union[str, Path]):
        self.plugin_base_path = Path(plugin_base_path)

    def discover(self, manifest: Manifest) -> List[SchemaDescriptor]:
        plugin_dir = self.plugin_base_path / manifest.id
        descriptors = []

        for path in sorted(plugin_dir.glob(self.pattern)):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    document = json.load(f)
                if not isinstance(document, dict) or not document.get("type"):
                    raise ValueError("schema document must be an object with a 'type'")
            except (OSError, ValueError) as e:
                raise SchemaActivationError(
                    f"Unreadable schema file {path}: {e}",
                    plugin_id=manifest.id,
                    schema_source=str(path),
                    root_error=e
                ) from e

            descriptors.append(SchemaDescriptor(type=document["type"], payload=document, source=str(path)))

        logger.debug(f"Discovered {len(descriptors)} schema files for {manifest.id}")
        return descriptors


class InMemorySchemaDiscovery(SchemaDiscovery):
    """Serves descriptors registered in code"""

    def __init__(self, descriptors: Optional[Dict[str, List[SchemaDescriptor]]] = None):
        self._descriptors = {k: list(v) for k, v in (descriptors or {}).items()}

    def add(self, plugin_id: str, descriptor: SchemaDescriptor):
        self._descriptors.setdefault(plugin_id, []).append(descriptor)

    def discover(self, manifest: Manifest) -> List[SchemaDescriptor]:
        return list(self._descriptors.get(manifest.id, []))


class SchemaActivator(ABC):
    """Creates or migrates a plugin's persistent schema from a descriptor"""

    @abstractmethod
    async def create(self, manifest: Manifest, descriptor: SchemaDescriptor) -> None:
        pass


class CallableSchemaActivator(SchemaActivator):
    """Adapts an async function to the activator interface"""

    def __init__(self, func: Callable[[Manifest, SchemaDescriptor], Awaitable[None]]):
        self.func = func

    async def create(self, manifest: Manifest, descriptor: SchemaDescriptor) -> None:
        await self.func(manifest, descriptor)


class MongoSchemaActivator(SchemaActivator):
    """
    Activator for ``mongodb`` schema documents.

    Document shape::

        {
            "type": "mongodb",
            "collections": [
                {
                    "name": "profiles",
                    "validator": {"$jsonSchema": {...}},
                    "indexes": [{"keys": {"email": 1}, "unique": true}]
                }
            ]
        }

    Collections are namespaced ``<plugin_id>_<name>``. Missing collections are
    created; existing ones get their validator replaced with ``collMod``.
    Index creation is idempotent on the server side.
    """

    schema_type = "mongodb"

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def collection_name(manifest: Manifest, name: str) -> str:
        return f"{manifest.id}_{name}"

    @staticmethod
    def _index_keys(keys: Any) -> List[Tuple[str, Any]]:
        if isinstance(keys, dict):
            return list(keys.items())
        if isinstance(keys, str):
            return [(keys, 1)]
        return [tuple(key) for key in keys]

    async def create(self, manifest: Manifest, descriptor: SchemaDescriptor) -> None:
        collections = descriptor.payload.get("collections", [])
        if not isinstance(collections, list):
            raise ValueError("'collections' must be a list")

        db = await self.db_manager.get_async_database()
        existing = set(await db.list_collection_names())

        for collection in collections:
            name = self.collection_name(manifest, collection["name"])
            validator = collection.get("validator")

            if name not in existing:
                options = {"validator": validator} if validator else {}
                await db.create_collection(name, **options)
                existing.add(name)
                logger.info(f"Created collection {name}")
            elif validator:
                await db.command({"collMod": name, "validator": validator})
                logger.info(f"Updated validator on collection {name}")

            for index in collection.get("indexes", []):
                options = {k: v for k, v in index.items() if k != "keys"}
                await db[name].create_index(self._index_keys(index["keys"]), **options)


class SchemaActivatorRegistry:
    """Maps schema type tags to their activators"""

    def __init__(self):
        self._activators: Dict[str, SchemaActivator] = {}

    def register(self, schema_type: str, activator: SchemaActivator):
        if schema_type in self._activators:
            logger.warning(f"Replacing schema activator for type '{schema_type}'")
        self._activators[schema_type] = activator

    def for_type(self, schema_type: str) -> SchemaActivator:
        """
        Look up the activator for a descriptor type.

        Raises:
            UnknownSchemaTypeError: If no activator is registered for the type
        """
        activator = self._activators.get(schema_type)
        if activator is None:
            raise UnknownSchemaTypeError(schema_type)
        return activator

    @property
    def types(self) -> List[str]:
        return sorted(self._activators)
