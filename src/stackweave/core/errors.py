"""
Unified error handling for stackweave.

Every error raised by the orchestrator derives from StackweaveError and
carries an exit code, so CLI commands can translate failures consistently.

Exit Codes:
- 0: Success
- 2: Blocked (a resource could not start because a wait failed)
- 10: Configuration error (graph construction, bindings, definitions)
- 11: Provider error (cloud API or external process failure)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    BLOCKED = 2
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    UNKNOWN_ERROR = 127


class StackweaveError(Exception):
    """Base exception for stackweave errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StackweaveError):
    """Raised for invalid application definitions or graph construction."""

    exit_code = ExitCode.CONFIG_ERROR


class GraphFrozenError(ConfigurationError):
    """Raised when the graph is modified after provisioning began."""


class DependencyCycleError(ConfigurationError):
    """Raised when resources depend on each other in a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            details={"cycle": cycle},
        )
        self.cycle = cycle


class UnmappedKindError(ConfigurationError):
    """Raised when no provisioner is registered for a resource kind."""

    def __init__(self, kind: str, resource: str | None = None):
        message = f"No provisioner registered for kind '{kind}'"
        if resource:
            message = f"{message} (resource '{resource}')"
        super().__init__(message, details={"kind": kind})
        self.kind = kind


class ProviderError(StackweaveError):
    """Raised when an external provider/service fails.

    Transient and permanent provider failures are not distinguished.
    """

    exit_code = ExitCode.PROVIDER_ERROR


# Binding errors


class BindError(ConfigurationError):
    """Base class for output binding failures."""


class MissingOutputError(BindError):
    """A provisioned resource did not populate an output a binding needs."""

    def __init__(self, resource: str, output_key: str):
        super().__init__(
            f"Resource '{resource}' has no output '{output_key}'",
            details={"resource": resource, "output_key": output_key},
        )
        self.resource = resource
        self.output_key = output_key


class DuplicateBindingError(BindError):
    """Two reference edges target the same binding key on one resource."""

    def __init__(self, target: str, binding_key: str, existing_source: str):
        super().__init__(
            f"Binding key '{binding_key}' on '{target}' is already bound from '{existing_source}'",
            details={"target": target, "binding_key": binding_key},
        )
        self.target = target
        self.binding_key = binding_key
        self.existing_source = existing_source


class OutputAlreadySetError(BindError):
    """An output key was written twice on the same resource."""

    def __init__(self, owner: str, key: str):
        super().__init__(
            f"Output '{key}' on '{owner}' is already set",
            details={"owner": owner, "key": key},
        )
        self.owner = owner
        self.key = key


class BindingAlreadySetError(OutputAlreadySetError):
    """A configuration key was written twice on the same environment sink."""


# Process errors


class SpawnError(ProviderError):
    """Base class for external process failures."""


class LaunchFailedError(SpawnError):
    """The external process could not be started."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to launch '{path}': {reason}", details={"path": path})
        self.path = path


class NonZeroExitError(SpawnError):
    """The external process exited with a non-zero code."""

    def __init__(self, path: str, exit_code: int, output: str):
        super().__init__(
            f"'{path}' exited with code {exit_code}",
            details={"path": path, "process_exit_code": exit_code},
        )
        self.path = path
        self.process_exit_code = exit_code
        self.output = output


# Wait errors


class WaitError(StackweaveError):
    """Base class for dependency wait failures."""

    exit_code = ExitCode.BLOCKED


class DependencyFailedError(WaitError):
    """A dependency of the waiting resource finished in failure."""

    def __init__(self, dependency: str, cause: BaseException | None = None):
        message = f"Dependency '{dependency}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, details={"dependency": dependency})
        self.dependency = dependency
        self.cause = cause


class WaitCancelledError(WaitError):
    """The wait was cancelled before every dependency was ready."""

    def __init__(self, resource: str):
        super().__init__(f"Wait for '{resource}' was cancelled", details={"resource": resource})
        self.resource = resource


# Internal invariants


class InvalidStateTransitionError(StackweaveError):
    """Raised for state transitions that go backwards or leave a terminal state."""

    def __init__(self, resource: str, from_state: str, to_state: str):
        super().__init__(
            f"Invalid state transition for '{resource}': {from_state} -> {to_state}",
            details={"resource": resource},
        )
        self.from_state = from_state
        self.to_state = to_state


class ProvisioningTaskClaimedError(StackweaveError):
    """Raised when a second provisioner tries to own a resource's task."""


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Exit codes:
        - StackweaveError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except StackweaveError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: StackweaveError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
