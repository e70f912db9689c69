"""
Application definition loader.

Reads a YAML application definition and registers its resources, waits and
references on an ApplicationGraph. Resources are registered before any
edge, so references may point at resources defined further down the file.

Example:

    aws:
      region: us-west-2
    resources:
      - name: Infra
        kind: stack
        template: infra.template.yaml
        constructs:
          - name: Bucket
            outputs: [BucketName]
      - name: Cache
        kind: cache
      - name: Worker
        kind: process
        wait_for: [Infra]
        references:
          - source: Cache
            output: Endpoint
            env: CACHE_URL
          - source: Bucket
            outputs: [BucketName]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml

from stackweave.config.settings import Settings
from stackweave.core.errors import ConfigurationError
from stackweave.model.annotations import StackSourceAnnotation
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.orchestration.graph import ApplicationGraph

logger = structlog.get_logger()

RESOURCE_KEYS = {
    "name",
    "kind",
    "tags",
    "aws",
    "properties",
    "wait_for",
    "references",
    "template",
    "cdk_app",
    "parameters",
    "constructs",
}

CONSTRUCT_KEYS = {"name", "outputs", "prefix"}
REFERENCE_KEYS = {"source", "output", "env", "outputs", "section"}


def load_application(
    file_path: str | Path,
    settings: Optional[Settings] = None,
) -> ApplicationGraph:
    """Load an application definition into a new, unfrozen graph.

    Raises:
        ConfigurationError: if the file is missing, is not valid YAML, or
            describes an invalid graph.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigurationError(
            f"Application file not found: {file_path}", details={"path": str(file_path)}
        )

    try:
        with open(file_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Application file must be a YAML dictionary: {file_path}")

    graph = ApplicationGraph(settings)
    default_sdk_config = _sdk_config(data.get("aws"), "aws")
    entries = _as_mappings(data.get("resources"), "resources")
    base_dir = file_path.parent

    for entry in entries:
        _register_resource(graph, entry, default_sdk_config, base_dir)
    for entry in entries:
        _register_edges(graph, entry)

    logger.debug(
        "application_loaded",
        path=str(file_path),
        resources=len(graph),
        edges=len(graph.references),
    )
    return graph


def _register_resource(
    graph: ApplicationGraph,
    entry: Dict[str, Any],
    default_sdk_config: Optional[AWSSDKConfig],
    base_dir: Path,
) -> Resource:
    name = entry.get("name")
    if not name:
        raise ConfigurationError("Every resource needs a 'name'", details={"entry": entry})
    unknown = sorted(set(entry) - RESOURCE_KEYS)
    if unknown:
        raise ConfigurationError(
            f"Resource '{name}' has unknown keys: {', '.join(unknown)}",
            details={"resource": name},
        )

    kind_value = entry.get("kind")
    try:
        kind = ResourceKind(kind_value)
    except ValueError:
        raise ConfigurationError(
            f"Resource '{name}' has unknown kind '{kind_value}'",
            details={"resource": name, "kind": kind_value},
        ) from None

    properties = dict(_as_dict(entry.get("properties"), f"{name}.properties"))
    if kind == ResourceKind.FUNCTION and properties.get("package"):
        properties["package"] = str(base_dir / properties["package"])

    resource = graph.add(
        Resource(
            name=str(name),
            kind=kind,
            tags={str(k): str(v) for k, v in _as_dict(entry.get("tags"), f"{name}.tags").items()},
            sdk_config=_sdk_config(entry.get("aws"), f"{name}.aws") or default_sdk_config,
            properties=properties,
        )
    )

    if kind == ResourceKind.STACK:
        source = _stack_source(entry, base_dir)
        if source is not None:
            resource.annotate(source)
        for construct in _as_mappings(entry.get("constructs"), f"{name}.constructs"):
            _register_construct(graph, resource, construct)
    elif "constructs" in entry or "template" in entry or "cdk_app" in entry:
        raise ConfigurationError(
            f"Only stacks may declare templates, CDK apps or constructs ('{name}' is a {kind.value})",
            details={"resource": name},
        )

    return resource


def _register_construct(
    graph: ApplicationGraph, stack: Resource, construct: Dict[str, Any]
) -> Resource:
    name = construct.get("name")
    if not name:
        raise ConfigurationError(
            f"Construct in stack '{stack.name}' needs a 'name'", details={"resource": stack.name}
        )
    unknown = sorted(set(construct) - CONSTRUCT_KEYS)
    if unknown:
        raise ConfigurationError(
            f"Construct '{name}' has unknown keys: {', '.join(unknown)}",
            details={"resource": str(name), "stack": stack.name},
        )
    prefix = construct.get("prefix")
    if prefix is not None and not isinstance(prefix, str):
        raise ConfigurationError(f"'{stack.name}.constructs.{name}.prefix' must be a string")

    outputs = _as_list(construct.get("outputs"), f"{stack.name}.constructs.{name}.outputs")
    return graph.add_construct(
        stack,
        str(name),
        output_names=[str(o) for o in outputs],
        output_prefix=prefix,
    )


def _stack_source(entry: Dict[str, Any], base_dir: Path) -> Optional[StackSourceAnnotation]:
    parameters = {
        str(k): str(v)
        for k, v in _as_dict(entry.get("parameters"), f"{entry['name']}.parameters").items()
    }
    if entry.get("template") and entry.get("cdk_app"):
        raise ConfigurationError(
            f"Stack '{entry['name']}' declares both a template and a CDK app",
            details={"resource": entry["name"]},
        )
    if entry.get("template"):
        return StackSourceAnnotation(
            mode="template",
            template_path=base_dir / entry["template"],
            parameters=parameters,
        )
    if entry.get("cdk_app"):
        return StackSourceAnnotation(
            mode="cdk",
            app_dir=base_dir / entry["cdk_app"],
            parameters=parameters,
        )
    if parameters:
        raise ConfigurationError(
            f"Stack '{entry['name']}' has parameters but no template or CDK app",
            details={"resource": entry["name"]},
        )
    return None


def _register_edges(graph: ApplicationGraph, entry: Dict[str, Any]) -> None:
    name = entry["name"]
    for dependency in _as_list(entry.get("wait_for"), f"{name}.wait_for"):
        graph.wait_for(name, str(dependency))

    for reference in _as_mappings(entry.get("references"), f"{name}.references"):
        source = reference.get("source")
        if not source:
            raise ConfigurationError(
                f"Reference on '{name}' needs a 'source'", details={"resource": name}
            )
        unknown = sorted(set(reference) - REFERENCE_KEYS)
        if unknown:
            raise ConfigurationError(
                f"Reference {source} on '{name}' has unknown keys: {', '.join(unknown)}",
                details={"resource": name},
            )
        if "output" in reference:
            if not reference.get("env"):
                raise ConfigurationError(
                    f"Reference {source}.{reference['output']} on '{name}' needs an 'env' key",
                    details={"resource": name},
                )
            graph.add_reference(source, str(reference["output"]), name, str(reference["env"]))
        else:
            keys = reference.get("outputs")
            if keys is not None:
                keys = [str(k) for k in _as_list(keys, f"{name}.references.{source}.outputs")]
            graph.reference_outputs(
                name,
                source,
                keys=keys,
                config_section=reference.get("section"),
            )


def _sdk_config(value: Any, where: str) -> Optional[AWSSDKConfig]:
    if value is None:
        return None
    data = _as_dict(value, where)
    return AWSSDKConfig(profile=data.get("profile"), region=data.get("region"))


def _as_dict(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{where}' must be a mapping")
    return value


def _as_list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"'{where}' must be a list")
    return value


def _as_mappings(value: Any, where: str) -> List[Dict[str, Any]]:
    items = _as_list(value, where)
    for item in items:
        if not isinstance(item, dict):
            raise ConfigurationError(f"Every entry of '{where}' must be a mapping")
    return items
