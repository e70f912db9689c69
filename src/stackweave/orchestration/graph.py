"""Application graph: resource registration, reference edges and freezing.

Resources and edges are registered while composing the application. Once
``freeze`` is called (the engine does this when it is constructed) the
dependency sets are computed and the graph no longer accepts changes.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Union

import structlog

from stackweave.config.settings import Settings, get_settings
from stackweave.core.errors import (
    ConfigurationError,
    DependencyCycleError,
    GraphFrozenError,
    MissingOutputError,
    WaitCancelledError,
)
from stackweave.model.annotations import (
    ConstructAnnotation,
    ReferenceEdge,
    ValueTransform,
    WaitForAnnotation,
)
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.orchestration.cancellation import CancellationToken, Cancelled, until_cancelled
from stackweave.orchestration.references import ReferenceStore

logger = structlog.get_logger()

ResourceLike = Union[Resource, str]


def _name(resource: ResourceLike) -> str:
    return resource.name if isinstance(resource, Resource) else resource


def section_to_env_prefix(config_section: str) -> str:
    """Convert a configuration section (``AWS:Resources:Name``) to an env var prefix."""
    return config_section.replace(":", "__")


class OutputReference:
    """Late-bound reference to one output of a resource."""

    def __init__(self, resource: Resource, key: str) -> None:
        self.resource = resource
        self.name = key

    @property
    def value_expression(self) -> str:
        return f"{{{self.resource.name}.output.{self.name}}}"

    @property
    def value(self) -> str:
        try:
            return self.resource.outputs[self.name]
        except KeyError:
            raise MissingOutputError(self.resource.name, self.name) from None

    async def get_value(self, token: Optional[CancellationToken] = None) -> str:
        """Wait for the resource to finish provisioning, then read the output.

        Raises the resource's provisioning failure if it failed and
        WaitCancelledError if ``token`` fires first.
        """
        try:
            await until_cancelled(self.resource.task.wait(), token)
        except Cancelled:
            raise WaitCancelledError(self.resource.name) from None
        return self.value


class ApplicationGraph:
    """Registry of resources and the edges between them."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._resources: Dict[str, Resource] = {}
        self.references = ReferenceStore()
        self._frozen = False
        self._dependencies: Dict[str, FrozenSet[str]] = {}
        self._order: List[str] = []

    # Registration

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self, action: str) -> None:
        if self._frozen:
            raise GraphFrozenError(f"Cannot {action} after provisioning started")

    def add(self, resource: Resource) -> Resource:
        self._check_mutable(f"add resource '{resource.name}'")
        if resource.name in self._resources:
            raise ConfigurationError(
                f"Resource '{resource.name}' is already registered",
                details={"resource": resource.name},
            )
        self._resources[resource.name] = resource
        return resource

    def add_resource(self, name: str, kind: Union[ResourceKind, str], **kwargs) -> Resource:
        return self.add(Resource(name=name, kind=ResourceKind(kind), **kwargs))

    def add_construct(
        self,
        stack: ResourceLike,
        name: str,
        output_names: Sequence[str] = (),
        output_prefix: Optional[str] = None,
    ) -> Resource:
        """Register a construct whose outputs come from its parent stack."""
        parent = self.get(stack)
        if parent.kind != ResourceKind.STACK:
            raise ConfigurationError(
                f"Construct '{name}' must belong to a stack, not a {parent.kind.value}"
            )
        construct = Resource(name=name, kind=ResourceKind.CONSTRUCT, sdk_config=parent.sdk_config)
        construct.annotate(
            ConstructAnnotation(
                stack=parent,
                output_prefix=name if output_prefix is None else output_prefix,
                output_names=tuple(output_names),
            )
        )
        return self.add(construct)

    def get(self, resource: ResourceLike) -> Resource:
        name = _name(resource)
        try:
            return self._resources[name]
        except KeyError:
            raise ConfigurationError(
                f"Resource '{name}' is not registered", details={"resource": name}
            ) from None

    def __contains__(self, resource: ResourceLike) -> bool:
        return _name(resource) in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    @property
    def resources(self) -> List[Resource]:
        return list(self._resources.values())

    def sdk_config_for(self, resource: ResourceLike) -> AWSSDKConfig:
        """The resource's SDK config, falling back to the settings defaults."""
        config = self.get(resource).sdk_config or AWSSDKConfig()
        return AWSSDKConfig(
            profile=config.profile or self._settings.aws_profile,
            region=config.region or self._settings.aws_region,
        )

    def wait_for(self, resource: ResourceLike, dependency: ResourceLike) -> None:
        """Declare that ``resource`` may only start after ``dependency`` succeeded."""
        self._check_mutable("add a wait")
        target = self.get(resource)
        dep = self.get(dependency)
        if dep.name == target.name:
            raise ConfigurationError(f"Resource '{target.name}' cannot wait for itself")
        target.annotate(WaitForAnnotation(dependency=dep.name))

    def add_reference(
        self,
        source: ResourceLike,
        output_key: str,
        target: ResourceLike,
        binding_key: str,
        transform: Optional[ValueTransform] = None,
    ) -> ReferenceEdge:
        """Bind ``source.outputs[output_key]`` into ``target.environment[binding_key]``.

        Raises DuplicateBindingError if ``binding_key`` is already bound on
        ``target``.
        """
        self._check_mutable("add a reference")
        src = self.get(source)
        dst = self.get(target)
        if src.name == dst.name:
            raise ConfigurationError(f"Resource '{src.name}' cannot reference itself")
        if not output_key or not binding_key:
            raise ConfigurationError("Reference edges need an output key and a binding key")

        edge = ReferenceEdge(
            source=src.name,
            output_key=output_key,
            target=dst.name,
            binding_key=binding_key,
            transform=transform,
        )
        self.references.add(edge)
        logger.debug("reference_registered", edge=edge.describe())
        return edge

    def reference_outputs(
        self,
        target: ResourceLike,
        source: ResourceLike,
        keys: Optional[Iterable[str]] = None,
        config_section: Optional[str] = None,
    ) -> List[ReferenceEdge]:
        """Bind every listed output of ``source`` under a configuration section.

        Each output ``Key`` lands in ``<SECTION>__Key`` where the section
        defaults to ``<default_config_section>:<source name>``.
        """
        src = self.get(source)
        output_keys = tuple(keys) if keys is not None else src.well_known_outputs()
        if not output_keys:
            raise ConfigurationError(
                f"Resource '{src.name}' has no well-known outputs; list the output keys to bind",
                details={"resource": src.name, "kind": src.kind.value},
            )
        section = config_section or f"{self._settings.default_config_section}:{src.name}"
        prefix = section_to_env_prefix(section)
        return [self.add_reference(src, key, target, f"{prefix}__{key}") for key in output_keys]

    def output(self, resource: ResourceLike, key: str) -> OutputReference:
        return OutputReference(self.get(resource), key)

    # Freezing

    def freeze(self) -> None:
        """Compute dependency sets and the topological order, then lock the graph."""
        if self._frozen:
            return

        dependencies: Dict[str, set] = {name: set() for name in self._resources}
        for resource in self._resources.values():
            for wait in resource.annotations_of(WaitForAnnotation):
                dependencies[resource.name].add(self.get(wait.dependency).name)
            for construct in resource.annotations_of(ConstructAnnotation):
                dependencies[resource.name].add(self.get(construct.stack.name).name)
            for edge in self.references.incoming(resource.name):
                dependencies[resource.name].add(edge.source)

        self._order = _topological_order(dependencies)
        self._dependencies = {name: frozenset(deps) for name, deps in dependencies.items()}
        self.references.freeze()
        self._frozen = True
        logger.debug("graph_frozen", resources=len(self._resources), edges=len(self.references))

    def dependencies_of(self, resource: ResourceLike) -> FrozenSet[str]:
        if not self._frozen:
            raise ConfigurationError("Dependency sets are only available once the graph is frozen")
        return self._dependencies[self.get(resource).name]

    def dependents_of(self, resource: ResourceLike) -> FrozenSet[str]:
        name = self.get(resource).name
        return frozenset(r for r, deps in self._dependencies.items() if name in deps)

    def topological_order(self) -> List[str]:
        if not self._frozen:
            raise ConfigurationError("Graph order is only available once the graph is frozen")
        return list(self._order)


def _topological_order(dependencies: Dict[str, set]) -> List[str]:
    """Depth-first topological sort; raises DependencyCycleError on cycles."""
    order: List[str] = []
    visiting: List[str] = []
    visited: set = set()

    def visit(name: str) -> None:
        if name in visited:
            return
        if name in visiting:
            cycle = visiting[visiting.index(name):] + [name]
            raise DependencyCycleError(cycle)
        visiting.append(name)
        for dep in sorted(dependencies[name]):
            visit(dep)
        visiting.pop()
        visited.add(name)
        order.append(name)

    for name in dependencies:
        visit(name)
    return order
