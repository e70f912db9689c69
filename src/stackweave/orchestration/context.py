"""Shared context passed through a provisioning run."""

from __future__ import annotations

from dataclasses import dataclass, field

from stackweave.config.settings import Settings
from stackweave.model.resource import AWSSDKConfig, Resource
from stackweave.orchestration.graph import ApplicationGraph
from stackweave.orchestration.notifications import StateBus
from stackweave.providers.registry import ProvisionerRegistry


@dataclass
class OrchestratorContext:
    """Everything a run needs, passed explicitly instead of held globally."""

    graph: ApplicationGraph
    registry: ProvisionerRegistry
    settings: Settings
    bus: StateBus = field(default_factory=StateBus)

    def sdk_config_for(self, resource: Resource) -> AWSSDKConfig:
        """The resource's SDK config, falling back to the settings defaults."""
        return self.graph.sdk_config_for(resource)
