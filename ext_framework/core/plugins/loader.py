"""
Plugin Loader - activates a plugin and its transitive dependencies.

For one load request the loader runs, per plugin and strictly in order:

    1. claim       mark the id as "load in progress" so cycles don't recurse
    2. manifest    resolve the plugin's manifest
    3. dependencies load every unclaimed dependency, depth-first, in manifest order
    4. schema      create/migrate the plugin's persistent schema
    5. instantiate build the runtime object and store it in the runtime registry
    6. routes      mount the plugin's handlers on its route namespace

A claim is never rolled back. A plugin that failed after being claimed stays
claimed for the rest of the process, so loading it again is a no-op until
``release_claim`` is called.

Concurrent top-level loads share claims. A dependency being loaded by another
call is waited for before the dependent continues, unless waiting would close
a cycle.
"""

import asyncio
import inspect
import threading
import time
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from ...shared.exceptions import (
    FrameworkError, LoadStage, ManifestNotFoundError, SchemaActivationError,
    InstantiationError, RouteRegistrationError, PluginLoadTimeoutError
)
from ..config import FrameworkConfig
from .base import PluginRef, PluginState
from .manifest import Manifest, ManifestProvider
from .registry import PluginRuntimeRegistry, RouteRegistry
from .resolver import PluginResolver
from .schema import SchemaActivatorRegistry, SchemaDiscovery

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = object()

# States after which a claimed plugin is no longer in progress
_SETTLED_STATES = (PluginState.ROUTES_REGISTERED, PluginState.FAILED)


class _LoadTrace:
    """Progress of a single top-level load call"""

    def __init__(self, requested: str):
        self.requested = requested
        self.plugin_id: Optional[str] = None
        self.stage: Optional[LoadStage] = None
        # Plugins whose load was cancelled, innermost first
        self.cancelled: List[str] = []

    def enter(self, plugin_id: str, stage: LoadStage):
        self.plugin_id = plugin_id
        self.stage = stage


class PluginLoader:
    """
    Orchestrates plugin loads against injected collaborators.

    The configuration is deep-copied at construction; later changes to the
    caller's object do not reach plugins loaded by this instance.
    """

    def __init__(
        self,
        config: FrameworkConfig,
        manifest_provider: ManifestProvider,
        resolver: PluginResolver,
        schema_discovery: SchemaDiscovery,
        schema_activators: SchemaActivatorRegistry,
        runtime_registry: Optional[PluginRuntimeRegistry] = None,
        route_registry: Optional[RouteRegistry] = None
    ):
        self._config = config.model_copy(deep=True)
        self.manifest_provider = manifest_provider
        self.resolver = resolver
        self.schema_discovery = schema_discovery
        self.schema_activators = schema_activators
        self.runtime_registry = runtime_registry or PluginRuntimeRegistry()
        self.route_registry = route_registry or RouteRegistry()

        self._claim_lock = threading.Lock()
        self._plugins_loaded: List[str] = []
        self._states: Dict[str, PluginState] = {}
        self._failures: Dict[str, FrameworkError] = {}
        # Set once the claimed plugin reaches a settled state
        self._settled: Dict[str, asyncio.Event] = {}
        # In-progress plugin id -> dependency it is currently waiting on
        self._blocked_on: Dict[str, str] = {}

    @property
    def config(self) -> FrameworkConfig:
        return self._config

    @property
    def loaded_plugins(self) -> List[str]:
        """Claimed plugin ids, in claim order"""
        return list(self._plugins_loaded)

    def is_claimed(self, plugin_id: str) -> bool:
        return plugin_id in self._states

    def get_state(self, plugin_id: str) -> PluginState:
        return self._states.get(plugin_id, PluginState.UNCLAIMED)

    def get_failure(self, plugin_id: str) -> Optional[FrameworkError]:
        """Error that moved a plugin to FAILED, if any"""
        return self._failures.get(plugin_id)

    def _claim(self, plugin_id: str) -> Optional[asyncio.Event]:
        """Insert-if-absent into the loaded set; returns the settle event if this call claimed it"""
        with self._claim_lock:
            if plugin_id in self._states:
                return None
            self._states[plugin_id] = PluginState.CLAIMED
            self._plugins_loaded.append(plugin_id)
            settled = asyncio.Event()
            self._settled[plugin_id] = settled
            return settled

    def release_claim(self, plugin_id: str) -> bool:
        """
        Clear a claim so the plugin can be loaded again.

        Instances and route namespaces already registered are left in place.

        Returns:
            True if a claim was removed
        """
        with self._claim_lock:
            if plugin_id not in self._states:
                return False
            del self._states[plugin_id]
            self._plugins_loaded.remove(plugin_id)
            self._failures.pop(plugin_id, None)
            settled = self._settled.pop(plugin_id, None)
        if settled is not None:
            settled.set()
        logger.info(f"Released claim on plugin {plugin_id}", extra={"plugin_id": plugin_id})
        return True

    def _mark_failed(self, plugin_id: str, error: FrameworkError):
        self._states[plugin_id] = PluginState.FAILED
        self._failures[plugin_id] = error

    async def load_plugin(
        self,
        plugin: Union[PluginRef, str],
        timeout: Any = _DEFAULT_TIMEOUT
    ) -> None:
        """
        Load a plugin and, transitively, every dependency not yet claimed.

        Args:
            plugin: Plugin reference or id
            timeout: Deadline in seconds for the whole call; defaults to the
                configured ``load_timeout_seconds``, None disables it

        Raises:
            FrameworkError: Attributed to the deepest plugin and stage that failed
        """
        ref = PluginRef(id=plugin) if isinstance(plugin, str) else plugin
        if timeout is _DEFAULT_TIMEOUT:
            timeout = self._config.load_timeout_seconds

        trace = _LoadTrace(ref.id)
        if timeout is None:
            await self._load(ref, (), trace)
            return

        try:
            await asyncio.wait_for(self._load(ref, (), trace), timeout)
        except asyncio.TimeoutError as e:
            error = PluginLoadTimeoutError(
                f"Loading {ref.id} did not finish within {timeout}s",
                plugin_id=trace.plugin_id or ref.id,
                stage=trace.stage,
                timeout=timeout,
                details={"requested_plugin": ref.id}
            )
            for plugin_id in trace.cancelled:
                self._mark_failed(plugin_id, error)
            logger.error(
                str(error),
                extra={"plugin_id": error.plugin_id, "stage": trace.stage.value if trace.stage else None}
            )
            raise error from e

    async def _load(self, ref: PluginRef, trail: Tuple[str, ...], trace: _LoadTrace):
        settled = self._claim(ref.id)
        if settled is None:
            logger.debug(f"Plugin {ref.id} already claimed, skipping", extra={"plugin_id": ref.id})
            return

        trail = trail + (ref.id,)
        started = time.perf_counter()
        logger.info(f"Loading plugin {ref.id}", extra={"plugin_id": ref.id, "stage": LoadStage.CLAIM.value})

        try:
            manifest = await self._get_manifest(ref, trace)

            await self._load_dependencies(manifest, trail, trace)
            self._states[ref.id] = PluginState.DEPENDENCIES_LOADED

            await self._prepare_plugin(manifest, trace)
            self._states[ref.id] = PluginState.SCHEMA_ACTIVATED

            await self._instantiate_plugin(manifest, trace)
            self._states[ref.id] = PluginState.INSTANTIATED

            await self._register_routes(manifest, trace)
            self._states[ref.id] = PluginState.ROUTES_REGISTERED
        except FrameworkError as e:
            self._mark_failed(ref.id, e)
            if e.plugin_id == ref.id:
                logger.error(
                    f"Plugin {ref.id} failed at {e.stage.value if e.stage else 'unknown'} stage: {e.message}",
                    extra={"plugin_id": ref.id, "stage": e.stage.value if e.stage else None}
                )
            raise
        except asyncio.CancelledError:
            self._states[ref.id] = PluginState.FAILED
            trace.cancelled.append(ref.id)
            raise
        finally:
            settled.set()

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Plugin loaded: {ref.id} v{manifest.version}",
            extra={"plugin_id": ref.id, "duration_ms": round(duration_ms, 2)}
        )

    async def _get_manifest(self, ref: PluginRef, trace: _LoadTrace) -> Manifest:
        trace.enter(ref.id, LoadStage.MANIFEST)
        try:
            return await self.manifest_provider.resolve(ref.id)
        except ManifestNotFoundError as e:
            if e.plugin_id is None:
                e.plugin_id = ref.id
            raise
        except Exception as e:
            raise ManifestNotFoundError(
                f"Manifest lookup failed: {e}", plugin_id=ref.id, root_error=e
            ) from e

    def _find_cycle(self, waiter: str, dependency: str) -> Optional[List[str]]:
        """Path ``dependency -> ... -> waiter -> dependency`` if waiting would deadlock"""
        path = [dependency]
        current = dependency
        while current in self._blocked_on:
            current = self._blocked_on[current]
            path.append(current)
            if current == waiter:
                path.append(dependency)
                return path
        return None

    async def _await_dependency(self, waiter: str, dependency: str, awaitable):
        self._blocked_on[waiter] = dependency
        try:
            await awaitable
        finally:
            self._blocked_on.pop(waiter, None)

    async def _load_dependencies(self, manifest: Manifest, trail: Tuple[str, ...], trace: _LoadTrace):
        for dependency in manifest.dependencies:
            trace.enter(manifest.id, LoadStage.DEPENDENCIES)
            extra = {"plugin_id": manifest.id, "stage": LoadStage.DEPENDENCIES.value}

            if not self.is_claimed(dependency.id):
                await self._await_dependency(manifest.id, dependency.id, self._load(dependency, trail, trace))
                continue

            if dependency.id in trail:
                cycle = trail[trail.index(dependency.id):] + (dependency.id,)
            else:
                cycle = self._find_cycle(manifest.id, dependency.id)
            if cycle:
                logger.warning(f"Cyclic dependency {' -> '.join(cycle)}; {dependency.id} is already loading", extra=extra)
                continue

            settled = self._settled.get(dependency.id)
            if settled is not None and self.get_state(dependency.id) not in _SETTLED_STATES:
                logger.debug(f"Waiting for {dependency.id}, loading in another call", extra=extra)
                await self._await_dependency(manifest.id, dependency.id, settled.wait())

            if self.get_state(dependency.id) == PluginState.FAILED:
                logger.warning(
                    f"Dependency {dependency.id} of {manifest.id} failed and is not retried",
                    extra=extra
                )

    async def _prepare_plugin(self, manifest: Manifest, trace: _LoadTrace):
        """Activate every discovered schema descriptor before instantiation"""
        trace.enter(manifest.id, LoadStage.SCHEMA)
        try:
            descriptors = self.schema_discovery.discover(manifest)
        except FrameworkError as e:
            if e.plugin_id is None:
                e.plugin_id = manifest.id
            raise
        except Exception as e:
            raise SchemaActivationError(
                f"Schema discovery failed: {e}", plugin_id=manifest.id, root_error=e
            ) from e

        for descriptor in descriptors:
            try:
                activator = self.schema_activators.for_type(descriptor.type)
                await activator.create(manifest, descriptor)
            except Exception as e:
                raise SchemaActivationError(
                    f"Schema {descriptor.source or descriptor.type} failed: {e}",
                    plugin_id=manifest.id,
                    schema_source=descriptor.source,
                    root_error=e
                ) from e

    async def _instantiate_plugin(self, manifest: Manifest, trace: _LoadTrace):
        trace.enter(manifest.id, LoadStage.INSTANTIATE)
        try:
            plugin_class = self.resolver.resolve_server(manifest)
            instance = plugin_class(self._config, manifest)
            if inspect.isawaitable(instance):
                instance = await instance
        except Exception as e:
            raise InstantiationError(
                f"Plugin construction failed: {e}", plugin_id=manifest.id, root_error=e
            ) from e

        self.runtime_registry.register(manifest.id, instance)

    async def _register_routes(self, manifest: Manifest, trace: _LoadTrace):
        trace.enter(manifest.id, LoadStage.ROUTES)
        try:
            router = self.route_registry.get_namespace(manifest)
            router_class = self.resolver.resolve_router(manifest)
            if router_class is None:
                return
            result = router_class().init(router, manifest)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise RouteRegistrationError(
                f"Route registration failed: {e}", plugin_id=manifest.id, root_error=e
            ) from e

    def get_loader_stats(self) -> Dict[str, Any]:
        """Get plugin loader statistics"""
        by_state: Dict[str, int] = {}
        for state in self._states.values():
            by_state[state.value] = by_state.get(state.value, 0) + 1

        return {
            "claimed": self.loaded_plugins,
            "by_state": by_state,
            "instances": self.runtime_registry.plugin_ids,
            "route_namespaces": self.route_registry.plugin_ids,
            "failures": {plugin_id: error.to_dict() for plugin_id, error in self._failures.items()}
        }
