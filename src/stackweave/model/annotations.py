"""Typed annotation records attached to resources.

Annotations carry cross-cutting metadata (explicit waits, construct linkage,
stack sources) and are looked up by record type with
``Resource.annotations_of``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from stackweave.model.resource import Resource

ValueTransform = Callable[[str], str]


@dataclass(frozen=True)
class ReferenceEdge:
    """Binds ``source.outputs[output_key]`` to ``target.environment[binding_key]``."""

    source: str
    output_key: str
    target: str
    binding_key: str
    transform: Optional[ValueTransform] = None

    def apply(self, value: str) -> str:
        if self.transform is None:
            return value
        return self.transform(value)

    def describe(self) -> str:
        return f"{self.source}.{self.output_key} -> {self.target}.{self.binding_key}"


@dataclass(frozen=True)
class WaitForAnnotation:
    """Explicit wait-for dependency on another resource."""

    dependency: str


@dataclass(frozen=True)
class ConstructAnnotation:
    """Links a construct to the stack that deploys it.

    The construct's outputs are read from the parent stack's outputs, named
    ``<output_prefix><OutputName>``.
    """

    stack: "Resource"
    output_prefix: str
    output_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class StackSourceAnnotation:
    """Describes where a stack's template comes from.

    ``mode`` is one of:
    - ``existing``: look up an already deployed stack
    - ``template``: deploy a CloudFormation template file
    - ``cdk``: synthesize a CDK app then deploy its template
    """

    mode: str = "existing"
    template_path: Path | None = None
    app_dir: Path | None = None
    parameters: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.mode not in {"existing", "template", "cdk"}:
            raise ValueError(f"Unknown stack source mode: {self.mode}")
        if self.mode == "template" and self.template_path is None:
            raise ValueError("Template stacks require a template_path")
