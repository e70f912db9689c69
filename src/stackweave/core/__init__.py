"""Core modules for stackweave - centralized error definitions."""

from stackweave.core.errors import (
    BindError,
    BindingAlreadySetError,
    ConfigurationError,
    DependencyCycleError,
    DependencyFailedError,
    DuplicateBindingError,
    ExitCode,
    GraphFrozenError,
    InvalidStateTransitionError,
    LaunchFailedError,
    MissingOutputError,
    NonZeroExitError,
    OutputAlreadySetError,
    ProviderError,
    ProvisioningTaskClaimedError,
    SpawnError,
    StackweaveError,
    UnmappedKindError,
    WaitCancelledError,
    WaitError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "StackweaveError",
    "ConfigurationError",
    "GraphFrozenError",
    "DependencyCycleError",
    "UnmappedKindError",
    "ProviderError",
    # Bindings
    "BindError",
    "MissingOutputError",
    "DuplicateBindingError",
    "OutputAlreadySetError",
    "BindingAlreadySetError",
    # Processes
    "SpawnError",
    "LaunchFailedError",
    "NonZeroExitError",
    # Waits
    "WaitError",
    "DependencyFailedError",
    "WaitCancelledError",
    # Internal
    "InvalidStateTransitionError",
    "ProvisioningTaskClaimedError",
    "main_with_error_handling",
    "format_error_message",
]
