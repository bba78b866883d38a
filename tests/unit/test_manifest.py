"""
Unit tests for manifest parsing and manifest providers.
"""

import json

import pytest
from pydantic import ValidationError

from ext_framework.core.plugins import (
    FileManifestProvider,
    InMemoryManifestProvider,
    Manifest,
    PluginRef,
)
from ext_framework.shared.exceptions import FrameworkErrors, ManifestNotFoundError


class TestManifestParsing:
    """Test Manifest.from_json."""

    def test_server_dependencies(self):
        manifest = Manifest.from_json({
            "id": "profile",
            "name": "Profile",
            "version": 1.2,
            "author": "ext team",
            "server": {
                "dependencies": [{"id": "core", "ver": "1.0"}, {"id": "auth"}]
            }
        })

        assert manifest.id == "profile"
        assert manifest.version == "1.2"
        assert manifest.dependencies == [PluginRef(id="core", ver="1.0"), PluginRef(id="auth")]
        assert manifest.server["dependencies"][0]["id"] == "core"

    def test_plain_string_dependencies(self):
        manifest = Manifest.from_json({"id": "a", "dependencies": ["b", "c"]})

        assert [dep.id for dep in manifest.dependencies] == ["b", "c"]
        assert manifest.name == "a"

    def test_no_dependencies(self):
        manifest = Manifest.from_json({"id": "solo"})

        assert manifest.dependencies == []

    def test_missing_id(self):
        with pytest.raises(ValidationError):
            Manifest.from_json({"name": "nameless"})

    def test_invalid_dependency_spec(self):
        with pytest.raises(ValueError):
            Manifest.from_json({"id": "a", "dependencies": [42]})

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            Manifest.from_json(["a"])

    def test_manifest_is_immutable(self):
        manifest = Manifest.from_json({"id": "a"})

        with pytest.raises(ValidationError):
            manifest.id = "b"


class TestFileManifestProvider:
    """Test reading manifest.json from plugin directories."""

    @pytest.mark.asyncio
    async def test_resolve(self, tmp_path, write_plugin):
        write_plugin("profile", dependencies=["core"])
        provider = FileManifestProvider(tmp_path)

        manifest = await provider.resolve("profile")

        assert manifest.id == "profile"
        assert manifest.dependencies == [PluginRef(id="core", ver="1.0")]

    @pytest.mark.asyncio
    async def test_missing_manifest(self, tmp_path):
        provider = FileManifestProvider(tmp_path)

        with pytest.raises(ManifestNotFoundError) as exc_info:
            await provider.resolve("absent")

        assert exc_info.value.plugin_id == "absent"
        assert exc_info.value.code == FrameworkErrors.MANIFEST_NOT_FOUND
        assert isinstance(exc_info.value.root_error, FileNotFoundError)

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path, write_plugin):
        write_plugin("broken", manifest="{not json")
        provider = FileManifestProvider(tmp_path)

        with pytest.raises(ManifestNotFoundError) as exc_info:
            await provider.resolve("broken")

        assert isinstance(exc_info.value.root_error, json.JSONDecodeError)

    @pytest.mark.asyncio
    async def test_id_mismatch(self, tmp_path, write_plugin):
        write_plugin("alias", manifest=json.dumps({"id": "original"}))
        provider = FileManifestProvider(tmp_path)

        with pytest.raises(ManifestNotFoundError, match="declares id 'original'"):
            await provider.resolve("alias")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("plugin_id", ["../etc", "a/b", "..", ""])
    async def test_rejects_path_like_ids(self, tmp_path, plugin_id):
        provider = FileManifestProvider(tmp_path)

        with pytest.raises(ManifestNotFoundError):
            await provider.resolve(plugin_id)


class TestInMemoryManifestProvider:

    @pytest.mark.asyncio
    async def test_resolve_registered(self):
        provider = InMemoryManifestProvider({"a": {"dependencies": ["b"]}})

        manifest = await provider.resolve("a")

        assert manifest.id == "a"
        assert manifest.dependencies == [PluginRef(id="b")]

    @pytest.mark.asyncio
    async def test_unknown_id(self):
        provider = InMemoryManifestProvider()

        with pytest.raises(ManifestNotFoundError) as exc_info:
            await provider.resolve("b")

        assert exc_info.value.plugin_id == "b"
