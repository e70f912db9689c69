"""Resource model: resources, annotations, write-once maps and tasks."""

from stackweave.model.annotations import (
    ConstructAnnotation,
    ReferenceEdge,
    StackSourceAnnotation,
    ValueTransform,
    WaitForAnnotation,
)
from stackweave.model.resource import (
    WELL_KNOWN_OUTPUTS,
    AWSSDKConfig,
    EnvironmentSink,
    OutputMap,
    ProvisioningTask,
    Resource,
    ResourceKind,
)

__all__ = [
    "AWSSDKConfig",
    "ConstructAnnotation",
    "EnvironmentSink",
    "OutputMap",
    "ProvisioningTask",
    "ReferenceEdge",
    "Resource",
    "ResourceKind",
    "StackSourceAnnotation",
    "ValueTransform",
    "WaitForAnnotation",
    "WELL_KNOWN_OUTPUTS",
]
