"""Resource model for the provisioning graph."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Type, TypeVar

from stackweave.core.errors import (
    BindingAlreadySetError,
    OutputAlreadySetError,
    ProvisioningTaskClaimedError,
)

A = TypeVar("A")


class ResourceKind(str, Enum):
    """Kinds of resources the orchestrator can provision."""

    STACK = "stack"
    CONSTRUCT = "construct"
    SECRET = "secret"
    QUEUE = "queue"
    TOPIC = "topic"
    CACHE = "cache"
    FUNCTION = "function"
    PROCESS = "process"


# Output keys each kind populates once provisioned. Stacks and constructs
# expose whatever their template declares, so they have none here.
WELL_KNOWN_OUTPUTS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.SECRET: ("SecretArn", "SecretName"),
    ResourceKind.QUEUE: ("QueueUrl", "QueueArn"),
    ResourceKind.TOPIC: ("TopicArn",),
    ResourceKind.CACHE: ("Endpoint", "Port"),
    ResourceKind.FUNCTION: ("FunctionArn", "FunctionName"),
}


@dataclass(frozen=True)
class AWSSDKConfig:
    """Credentials profile and region used for a resource's provider calls."""

    profile: str | None = None
    region: str | None = None


class WriteOnceMap(Mapping[str, str]):
    """String mapping where each key may be written exactly once."""

    error_class: Type[OutputAlreadySetError] = OutputAlreadySetError

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._values: dict[str, str] = {}

    def set(self, key: str, value: str) -> None:
        if key in self._values:
            raise self.error_class(self._owner, key)
        self._values[key] = value

    def update_once(self, values: Mapping[str, str]) -> None:
        """Write several keys, rejecting the whole batch if any key is already set."""
        for key in values:
            if key in self._values:
                raise self.error_class(self._owner, key)
        for key, value in values.items():
            self._values[key] = value

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._owner!r}, {self._values!r})"


class OutputMap(WriteOnceMap):
    """Outputs produced by a resource's provisioner."""


class EnvironmentSink(WriteOnceMap):
    """Configuration/environment surface that output bindings write into."""

    error_class = BindingAlreadySetError


class ProvisioningTask:
    """One-shot completion signal owned by a single resource.

    Exactly one owner may claim the task and signal it, once. Any number of
    readers may ``await task.wait()``.
    """

    def __init__(self, resource: str) -> None:
        self._resource = resource
        self._owner: object | None = None
        self._event = asyncio.Event()
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def succeeded(self) -> bool:
        return self.done and self._error is None

    @property
    def error(self) -> BaseException | None:
        return self._error

    def claim(self, owner: object) -> None:
        if self._owner is not None and self._owner is not owner:
            raise ProvisioningTaskClaimedError(
                f"Provisioning task for '{self._resource}' is owned by another provisioner"
            )
        self._owner = owner

    def set_success(self, owner: object) -> None:
        self._signal(owner, None)

    def set_failure(self, owner: object, error: BaseException) -> None:
        self._signal(owner, error)

    def _signal(self, owner: object, error: BaseException | None) -> None:
        if self._owner is None or owner is not self._owner:
            raise ProvisioningTaskClaimedError(
                f"Provisioning task for '{self._resource}' was not claimed by this provisioner"
            )
        if self._event.is_set():
            raise ProvisioningTaskClaimedError(
                f"Provisioning task for '{self._resource}' was already signalled"
            )
        self._error = error
        self._event.set()

    async def wait(self) -> None:
        """Wait for completion, re-raising the provisioning failure if any."""
        await self._event.wait()
        if self._error is not None:
            raise self._error


@dataclass(eq=False)
class Resource:
    """A unit of infrastructure (or an application process) in the graph."""

    name: str
    kind: ResourceKind
    tags: dict[str, str] = field(default_factory=dict)
    sdk_config: AWSSDKConfig | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    annotations: list[Any] = field(default_factory=list)
    outputs: OutputMap = field(init=False, repr=False)
    environment: EnvironmentSink = field(init=False, repr=False)
    task: ProvisioningTask = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Resource name is required")
        self.kind = ResourceKind(self.kind)
        self.outputs = OutputMap(self.name)
        self.environment = EnvironmentSink(self.name)
        self.task = ProvisioningTask(self.name)

    def with_tag(self, key: str, value: str) -> "Resource":
        self.tags[key] = value
        return self

    def with_sdk_config(self, sdk_config: AWSSDKConfig) -> "Resource":
        self.sdk_config = sdk_config
        return self

    def annotate(self, annotation: Any) -> "Resource":
        self.annotations.append(annotation)
        return self

    def annotations_of(self, annotation_type: Type[A]) -> list[A]:
        return [a for a in self.annotations if isinstance(a, annotation_type)]

    def well_known_outputs(self) -> tuple[str, ...]:
        return WELL_KNOWN_OUTPUTS.get(self.kind, ())
