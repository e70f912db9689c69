from __future__ import annotations

from typing import Dict, List

from stackweave.config.settings import Settings
from stackweave.core.errors import UnmappedKindError
from stackweave.model.resource import ResourceKind
from stackweave.process import ProcessRunner
from stackweave.providers.application import ProcessProvisioner
from stackweave.providers.base import Provisioner
from stackweave.providers.construct import ConstructProvisioner
from stackweave.providers.elasticache import CacheProvisioner
from stackweave.providers.lambda_function import FunctionProvisioner
from stackweave.providers.secrets import SecretProvisioner
from stackweave.providers.sns import TopicProvisioner
from stackweave.providers.sqs import QueueProvisioner
from stackweave.providers.stack import StackProvisioner


class ProvisionerRegistry:
    """Maps each resource kind to the provisioner that creates it."""

    def __init__(self) -> None:
        self._provisioners: Dict[ResourceKind, Provisioner] = {}

    def register(self, provisioner: Provisioner, *, replace: bool = False) -> None:
        kind = ResourceKind(provisioner.kind)
        if kind in self._provisioners and not replace:
            raise ValueError(f"A provisioner for kind '{kind.value}' is already registered")
        self._provisioners[kind] = provisioner

    def get(self, kind: ResourceKind | str) -> Provisioner:
        try:
            return self._provisioners[ResourceKind(kind)]
        except (KeyError, ValueError):
            value = kind.value if isinstance(kind, ResourceKind) else str(kind)
            raise UnmappedKindError(value) from None

    def kinds(self) -> List[ResourceKind]:
        return list(self._provisioners)

    def __contains__(self, kind: object) -> bool:
        return kind in self._provisioners


def default_registry(
    settings: Settings | None = None,
    runner: ProcessRunner | None = None,
) -> ProvisionerRegistry:
    """Registry with a provisioner for every built-in kind."""
    registry = ProvisionerRegistry()
    registry.register(StackProvisioner(settings, runner))
    registry.register(ConstructProvisioner())
    registry.register(SecretProvisioner(settings))
    registry.register(QueueProvisioner(settings))
    registry.register(TopicProvisioner(settings))
    registry.register(CacheProvisioner(settings))
    registry.register(FunctionProvisioner(settings))
    registry.register(ProcessProvisioner())
    return registry
