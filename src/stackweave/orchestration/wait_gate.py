"""Dependency wait gate.

Suspends a resource's provisioning until every resource in its dependency
set reached FinishedSuccess and every binding targeting it was resolved.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, List, Optional

import structlog

from stackweave.core.errors import DependencyFailedError, WaitCancelledError
from stackweave.model.annotations import ReferenceEdge
from stackweave.orchestration.cancellation import CancellationToken, Cancelled, until_cancelled
from stackweave.orchestration.graph import ApplicationGraph, ResourceLike
from stackweave.orchestration.notifications import ResourceState, StateBus, Subscription
from stackweave.orchestration.references import ReferenceStore

logger = structlog.get_logger()


class DependencyWaitGate:
    """Blocks callers until a resource's dependencies are ready."""

    def __init__(self, graph: ApplicationGraph, bus: StateBus) -> None:
        self._graph = graph
        self._bus = bus

    @property
    def _references(self) -> ReferenceStore:
        return self._graph.references

    async def await_ready(
        self,
        resource: ResourceLike,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Wait until ``resource`` may start provisioning.

        Raises:
            DependencyFailedError: as soon as any dependency finishes in
                failure, or a binding into ``resource`` could not be resolved.
            WaitCancelledError: if ``token`` fires before the dependencies
                are ready.
        """
        name = self._graph.get(resource).name
        dependencies = sorted(self._graph.dependencies_of(name))

        # Subscribe before reading current states so no transition slips
        # between the check and the wait.
        subscriptions = {dep: self._bus.subscribe(dep) for dep in dependencies}
        try:
            pending: List[str] = []
            for dep in dependencies:
                latest = self._bus.latest(dep)
                if latest is not None and latest.state == ResourceState.FINISHED_FAILURE:
                    raise DependencyFailedError(dep, latest.error)
                if latest is None or latest.state != ResourceState.FINISHED_SUCCESS:
                    pending.append(dep)

            if token is not None and token.cancelled:
                raise WaitCancelledError(name)

            waits: List[Awaitable[None]] = [
                self._wait_for_success(dep, subscriptions[dep]) for dep in pending
            ]
            waits.extend(self._wait_for_binding(edge) for edge in self._references.incoming(name))

            if not waits:
                return

            logger.debug("waiting_for_dependencies", resource=name, dependencies=dependencies)
            try:
                await until_cancelled(_first_failure(waits), token)
            except Cancelled:
                logger.info("dependency_wait_cancelled", resource=name)
                raise WaitCancelledError(name) from None
        finally:
            for subscription in subscriptions.values():
                subscription.close()

    async def _wait_for_success(self, dependency: str, subscription: Subscription) -> None:
        while True:
            record = await subscription.next()
            if record.state == ResourceState.FINISHED_SUCCESS:
                return
            if record.state == ResourceState.FINISHED_FAILURE:
                raise DependencyFailedError(dependency, record.error)

    async def _wait_for_binding(self, edge: ReferenceEdge) -> None:
        resolution = self._references.resolution(edge)
        await resolution.wait()
        if resolution.error is not None:
            raise DependencyFailedError(edge.source, resolution.error)


async def _first_failure(waits: List[Awaitable[None]]) -> None:
    """Await every wait, stopping at the first one that raises."""
    tasks = [asyncio.ensure_future(w) for w in waits]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        # Read every finished exception so none is reported as unretrieved.
        errors = [task.exception() for task in tasks if task in done]
        first = next((error for error in errors if error is not None), None)
        if first is not None:
            raise first
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
