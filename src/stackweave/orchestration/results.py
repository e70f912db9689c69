"""Result types for provisioning runs."""

from dataclasses import dataclass, field
from typing import Dict, List

from stackweave.core.errors import BindError, ExitCode, StackweaveError
from stackweave.model.annotations import ReferenceEdge


@dataclass
class ProvisionResult:
    """Outcome of provisioning an application graph."""

    succeeded: Dict[str, Dict[str, str]] = field(default_factory=dict)
    failed: Dict[str, StackweaveError] = field(default_factory=dict)
    binding_errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    run_id: str = ""

    @property
    def total_resources(self) -> int:
        """Number of resources that reached a terminal state."""
        return len(self.succeeded) + len(self.failed)

    @property
    def success(self) -> bool:
        """Whether every resource and binding succeeded."""
        return not self.failed and not self.binding_errors

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.success else ExitCode.PROVIDER_ERROR


class ResultCollector:
    """Aggregates per-resource outcomes while a run is in flight."""

    def __init__(self) -> None:
        self._result = ProvisionResult()

    def record_success(self, resource: str, outputs: Dict[str, str]) -> None:
        self._result.succeeded[resource] = dict(outputs)

    def record_failure(self, resource: str, error: StackweaveError) -> None:
        self._result.failed[resource] = error

    def record_binding_error(self, edge: ReferenceEdge, error: BindError) -> None:
        self._result.binding_errors.append(f"{edge.describe()}: {error.message}")

    def finalize(self, duration: float, run_id: str = "") -> ProvisionResult:
        """Return the final result with duration and run id set."""
        self._result.duration_seconds = duration
        self._result.run_id = run_id
        return self._result
