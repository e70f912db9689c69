"""Provisioning engine.

Drives one asyncio task per resource. Each task waits at the dependency gate,
runs the provisioner registered for the resource's kind, records its outputs
and resolves the bindings other resources hold on them. Every lifecycle step
is published on the state bus.
"""

from __future__ import annotations

import asyncio
import functools
import time
from typing import Dict, Optional

import structlog

from stackweave.config.settings import Settings, get_settings
from stackweave.core.errors import (
    BindError,
    ProviderError,
    StackweaveError,
    UnmappedKindError,
    WaitCancelledError,
    WaitError,
)
from stackweave.logging import bind_resource, run_context
from stackweave.model.resource import Resource
from stackweave.orchestration.bindings import OutputBindingResolver
from stackweave.orchestration.cancellation import CancellationToken
from stackweave.orchestration.context import OrchestratorContext
from stackweave.orchestration.graph import ApplicationGraph, ResourceLike
from stackweave.orchestration.notifications import ResourceState, StateBus, StateTransition
from stackweave.orchestration.results import ProvisionResult, ResultCollector
from stackweave.orchestration.wait_gate import DependencyWaitGate
from stackweave.providers.registry import ProvisionerRegistry, default_registry

logger = structlog.get_logger()


class ProvisioningEngine:
    """Provisions every resource of a frozen application graph."""

    def __init__(
        self,
        graph: ApplicationGraph,
        registry: Optional[ProvisionerRegistry] = None,
        *,
        bus: Optional[StateBus] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        registry = registry or default_registry(settings)

        graph.freeze()
        for resource in graph:
            if resource.kind not in registry:
                raise UnmappedKindError(resource.kind.value, resource.name)

        self.context = OrchestratorContext(
            graph=graph,
            registry=registry,
            settings=settings,
            bus=bus or StateBus(),
        )
        self._gate = DependencyWaitGate(graph, self.context.bus)
        self._resolver = OutputBindingResolver(graph)
        self._collector = ResultCollector()
        self._runs: Dict[str, "asyncio.Task[None]"] = {}

        for name in graph.topological_order():
            self.context.bus.publish(StateTransition.of(name, ResourceState.NOT_STARTED))

    @property
    def graph(self) -> ApplicationGraph:
        return self.context.graph

    @property
    def bus(self) -> StateBus:
        return self.context.bus

    async def provision_all(self, token: Optional[CancellationToken] = None) -> ProvisionResult:
        """Provision every resource concurrently and collect the outcome."""
        started = time.monotonic()
        with run_context() as run_id:
            runs = [self.provision(name, token) for name in self.graph.topological_order()]
            logger.info("provisioning_run_started", resources=len(runs))
            await asyncio.gather(*runs)

            result = self._collector.finalize(time.monotonic() - started, run_id)
            logger.info(
                "provisioning_run_finished",
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                binding_errors=len(result.binding_errors),
                duration_seconds=round(result.duration_seconds, 3),
            )
        return result

    def provision(
        self,
        resource: ResourceLike,
        token: Optional[CancellationToken] = None,
    ) -> "asyncio.Task[None]":
        """Start provisioning ``resource`` and its dependencies.

        A resource runs at most once per engine: asking again returns the
        task of the existing run, even when that run already finished.
        """
        target = self.graph.get(resource)
        run = self._runs.get(target.name)
        if run is not None:
            return run

        for dependency in sorted(self.graph.dependencies_of(target)):
            self.provision(dependency, token)
        run = asyncio.ensure_future(self._run(target, token))
        run.add_done_callback(functools.partial(self._on_run_done, target))
        self._runs[target.name] = run
        return run

    async def _run(self, resource: Resource, token: Optional[CancellationToken]) -> None:
        log = bind_resource(resource)
        provisioner = self.context.registry.get(resource.kind)
        resource.task.claim(self)

        self._publish(resource, ResourceState.WAITING)
        try:
            await self._gate.await_ready(resource, token)
        except WaitError as exc:
            log.warning("provisioning_blocked", error=exc.message)
            self._fail(resource, exc)
            return

        self._publish(resource, ResourceState.STARTING)
        log.info("provisioning_started")
        try:
            outputs = await provisioner.create_or_lookup(
                resource, self.context.sdk_config_for(resource)
            )
            resource.outputs.update_once({key: str(value) for key, value in outputs.items()})
        except Exception as exc:
            log.error("provisioner_failed", error_type=type(exc).__name__, error=str(exc))
            self._fail(resource, _as_stackweave_error(resource, exc))
            return

        self._publish(resource, ResourceState.RUNNING)
        self._publish(resource, ResourceState.FINISHED_SUCCESS)
        resource.task.set_success(self)
        self._collector.record_success(resource.name, dict(resource.outputs))
        log.info("provisioning_succeeded", outputs=sorted(resource.outputs))

        try:
            self._resolver.resolve_bindings(resource)
        except BindError:
            for edge in self.graph.references.outgoing(resource.name):
                error = self.graph.references.resolution(edge).error
                if isinstance(error, BindError):
                    self._collector.record_binding_error(edge, error)

    def _publish(
        self,
        resource: Resource,
        state: ResourceState,
        error: Optional[BaseException] = None,
    ) -> None:
        self.context.bus.publish(StateTransition.of(resource.name, state, error=error))

    def _fail(self, resource: Resource, error: StackweaveError) -> None:
        self._publish(resource, ResourceState.FINISHED_FAILURE, error)
        resource.task.set_failure(self, error)
        self._collector.record_failure(resource.name, error)

    def _on_run_done(self, resource: Resource, run: "asyncio.Task[None]") -> None:
        # Cancelled runs still signal the task and publish a terminal state.
        if not run.cancelled() or resource.task.done:
            return
        bind_resource(resource).warning(
            "provisioning_interrupted", state=self.bus.state_of(resource.name)
        )
        resource.task.claim(self)
        self._fail(resource, self._interrupted(resource))

    def _interrupted(self, resource: Resource) -> StackweaveError:
        if self.bus.state_of(resource.name) in (ResourceState.NOT_STARTED, ResourceState.WAITING):
            return WaitCancelledError(resource.name)
        return ProviderError(
            f"Provisioning '{resource.name}' was interrupted",
            details={"resource": resource.name},
        )


def _as_stackweave_error(resource: Resource, exc: Exception) -> StackweaveError:
    if isinstance(exc, StackweaveError):
        return exc
    error = ProviderError(
        f"Provisioning '{resource.name}' failed: {exc}",
        details={"resource": resource.name, "error_type": type(exc).__name__},
    )
    error.__cause__ = exc
    return error
