"""Orchestration package: dependency-ordered provisioning and output bindings."""

from stackweave.orchestration.bindings import OutputBindingResolver
from stackweave.orchestration.cancellation import CancellationToken
from stackweave.orchestration.context import OrchestratorContext
from stackweave.orchestration.engine import ProvisioningEngine
from stackweave.orchestration.graph import (
    ApplicationGraph,
    OutputReference,
    section_to_env_prefix,
)
from stackweave.orchestration.notifications import (
    ResourceState,
    StateBus,
    StateStyle,
    StateTransition,
    Subscription,
)
from stackweave.orchestration.references import EdgeResolution, ReferenceStore
from stackweave.orchestration.results import ProvisionResult, ResultCollector
from stackweave.orchestration.wait_gate import DependencyWaitGate

__all__ = [
    "ApplicationGraph",
    "CancellationToken",
    "DependencyWaitGate",
    "EdgeResolution",
    "OrchestratorContext",
    "OutputBindingResolver",
    "OutputReference",
    "ProvisionResult",
    "ProvisioningEngine",
    "ReferenceStore",
    "ResourceState",
    "ResultCollector",
    "StateBus",
    "StateStyle",
    "StateTransition",
    "Subscription",
    "section_to_env_prefix",
]
