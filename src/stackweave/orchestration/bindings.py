"""Output binding resolver.

Copies a provisioned resource's outputs into the environment of every
resource that references them. A target also receives the AWS profile and
region of the first AWS resource it references, so SDK clients it creates
talk to the same account and region.
"""

from __future__ import annotations

from typing import List, Optional

import structlog

from stackweave.core.errors import BindError, MissingOutputError, StackweaveError
from stackweave.model.annotations import ReferenceEdge
from stackweave.model.resource import Resource, ResourceKind
from stackweave.orchestration.graph import ApplicationGraph, ResourceLike

logger = structlog.get_logger()

# SDK config attribute -> environment keys (IConfiguration style, then SDK default chain)
SDK_ENVIRONMENT_KEYS = (
    ("profile", ("AWS__Profile", "AWS_PROFILE")),
    ("region", ("AWS__Region", "AWS_REGION")),
)


class OutputBindingResolver:
    """Materializes reference edges once their source has succeeded."""

    def __init__(self, graph: ApplicationGraph) -> None:
        self._graph = graph

    def resolve_bindings(self, resource: ResourceLike) -> List[ReferenceEdge]:
        """Resolve every edge whose source is ``resource``.

        Each edge is resolved independently and its outcome recorded in the
        reference store, so one missing output does not hold back the other
        targets. The first failure is raised once all edges were processed.

        Returns the edges that were written.
        """
        source = self._graph.get(resource)
        if not source.task.succeeded:
            raise StackweaveError(
                f"Cannot resolve bindings of '{source.name}' before it provisioned successfully"
            )

        resolved: List[ReferenceEdge] = []
        first_error: Optional[BindError] = None
        for edge in self._graph.references.outgoing(source.name):
            resolution = self._graph.references.resolution(edge)
            if resolution.done:
                continue
            try:
                self._write(edge)
            except BindError as exc:
                logger.error(
                    "binding_failed",
                    edge=edge.describe(),
                    error_type=type(exc).__name__,
                    error=exc.message,
                )
                resolution.resolve(exc)
                first_error = first_error or exc
                continue
            resolution.resolve()
            resolved.append(edge)
            logger.debug("binding_resolved", edge=edge.describe())

        if first_error is not None:
            raise first_error
        return resolved

    def _write(self, edge: ReferenceEdge) -> None:
        source = self._graph.get(edge.source)
        target = self._graph.get(edge.target)
        try:
            value = source.outputs[edge.output_key]
        except KeyError:
            raise MissingOutputError(source.name, edge.output_key) from None
        try:
            transformed = edge.apply(value)
        except Exception as exc:
            raise BindError(
                f"Transform for {edge.describe()} failed: {exc}",
                details={"target": target.name, "binding_key": edge.binding_key},
            ) from exc
        target.environment.set(edge.binding_key, transformed)
        self._apply_sdk_config(edge, target)

    def _apply_sdk_config(self, edge: ReferenceEdge, target: Resource) -> None:
        """Write the SDK context of ``edge.source`` unless another source owns it.

        Only the first AWS resource referenced by ``target`` (in registration
        order) supplies the context. Keys that are already set, or that an
        inbound edge binds explicitly, are left alone.
        """
        incoming = self._graph.references.incoming(target.name)
        aws_sources = [
            e.source for e in incoming if self._graph.get(e.source).kind != ResourceKind.PROCESS
        ]
        if not aws_sources or aws_sources[0] != edge.source:
            return

        bound = {e.binding_key for e in incoming}
        config = self._graph.sdk_config_for(edge.source)
        for attribute, keys in SDK_ENVIRONMENT_KEYS:
            value = getattr(config, attribute)
            if not value or any(key in bound or key in target.environment for key in keys):
                continue
            for key in keys:
                target.environment.set(key, value)
