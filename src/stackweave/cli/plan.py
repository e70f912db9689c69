"""
CLI command for planning (dry-run) an application's provisioning order.
"""

import json
from pathlib import Path

from stackweave.cli.ux import console, header, print_table, warning
from stackweave.config.loader import load_application
from stackweave.core.errors import main_with_error_handling
from stackweave.orchestration.graph import ApplicationGraph


def build_plan(graph: ApplicationGraph) -> list[dict]:
    """Describe every resource in dependency order."""
    graph.freeze()
    plan = []
    for name in graph.topological_order():
        resource = graph.get(name)
        plan.append(
            {
                "name": name,
                "kind": resource.kind.value,
                "depends_on": sorted(graph.dependencies_of(name)),
                "bindings": [edge.describe() for edge in graph.references.incoming(name)],
            }
        )
    return plan


def print_plan_summary(app_yaml: Path, plan: list[dict]) -> None:
    header(f"Plan: {app_yaml.name}")
    console.print()

    if not plan:
        warning("No resources defined")
        return

    rows = [
        [
            str(step),
            item["name"],
            item["kind"],
            ", ".join(item["depends_on"]) or "-",
            "\n".join(item["bindings"]) or "-",
        ]
        for step, item in enumerate(plan, 1)
    ]
    print_table("Provisioning order", ["#", "Resource", "Kind", "Depends on", "Bindings"], rows)
    console.print()
    console.print(f"[bold]Total:[/bold] {len(plan)} resources")
    console.print("[muted]To provision them, run:[/muted]")
    console.print(f"  [info]stackweave provision {app_yaml}[/info]")
    console.print()


@main_with_error_handling()
def plan_command(app_yaml: str, output_format: str = "text") -> int:
    """
    Preview the order resources would be provisioned in.

    Returns:
        Exit code (0 for success, 10 for an invalid application)
    """
    path = Path(app_yaml)
    plan = build_plan(load_application(path))

    if output_format == "json":
        print(json.dumps({"application": str(path), "resources": plan}, indent=2))
    else:
        print_plan_summary(path, plan)

    return 0
