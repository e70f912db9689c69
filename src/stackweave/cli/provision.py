"""
CLI command for provisioning an application and wiring its outputs.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

from stackweave.cli.ux import console, error, header, print_key_value, success
from stackweave.config.loader import load_application
from stackweave.core.errors import main_with_error_handling
from stackweave.model.resource import ResourceKind
from stackweave.orchestration.cancellation import CancellationToken
from stackweave.orchestration.engine import ProvisioningEngine
from stackweave.orchestration.graph import ApplicationGraph
from stackweave.orchestration.notifications import StateBus, StateTransition, Subscription
from stackweave.orchestration.results import ProvisionResult

STYLE_MARKUP = {
    "info": "info",
    "success": "success",
    "warn": "warning",
    "error": "error",
}


def render_transition(record: StateTransition) -> None:
    style = STYLE_MARKUP[record.style.value]
    line = f"  [{style}]{record.state.value:<16}[/{style}] {record.resource_id}"
    if record.error is not None:
        line = f"{line} [muted]({record.error})[/muted]"
    console.print(line)


async def _observe(subscription: Subscription) -> None:
    async for record in subscription:
        render_transition(record)


async def run_provisioning(
    graph: ApplicationGraph,
    timeout: Optional[float] = None,
    quiet: bool = False,
) -> ProvisionResult:
    """Provision ``graph``, streaming state transitions unless ``quiet``."""
    bus = StateBus()
    subscription = bus.subscribe_all()
    observer = None if quiet else asyncio.ensure_future(_observe(subscription))

    token = CancellationToken()
    if timeout is not None:
        token.cancel_after(timeout)

    try:
        engine = ProvisioningEngine(graph, bus=bus)
        return await engine.provision_all(token)
    finally:
        if observer is not None:
            observer.cancel()
            for record in subscription.drain():
                render_transition(record)
        subscription.close()


def environments(graph: ApplicationGraph) -> dict[str, dict[str, str]]:
    """Resolved environment of every application process."""
    return {
        resource.name: dict(resource.environment)
        for resource in graph
        if resource.kind == ResourceKind.PROCESS
    }


def print_provision_summary(graph: ApplicationGraph, result: ProvisionResult) -> None:
    console.print()
    for name, env in environments(graph).items():
        print_key_value(env or {"(none)": "no bindings"}, title=f"{name} environment")
    console.print()

    for name, err in result.failed.items():
        error(f"{name}: {err.message}")
    for message in result.binding_errors:
        error(f"binding {message}")
    if result.success:
        success(
            f"Provisioned {len(result.succeeded)} resources in {result.duration_seconds:.1f}s"
        )


def print_provision_json(graph: ApplicationGraph, result: ProvisionResult) -> None:
    output = {
        "run_id": result.run_id,
        "succeeded": result.succeeded,
        "failed": {name: err.message for name, err in result.failed.items()},
        "binding_errors": result.binding_errors,
        "environments": environments(graph),
        "duration_seconds": result.duration_seconds,
        "success": result.success,
    }
    print(json.dumps(output, indent=2))


@main_with_error_handling()
def provision_command(
    app_yaml: str,
    output_format: str = "text",
    timeout: Optional[float] = None,
) -> int:
    """
    Provision every resource of an application definition.

    Returns:
        Exit code (0 for success, 11 if any resource or binding failed)
    """
    path = Path(app_yaml)
    graph = load_application(path)
    quiet = output_format == "json"

    if not quiet:
        header(f"Provision: {path.name}")
    result = asyncio.run(run_provisioning(graph, timeout=timeout, quiet=quiet))

    if quiet:
        print_provision_json(graph, result)
    else:
        print_provision_summary(graph, result)

    return int(result.exit_code)
