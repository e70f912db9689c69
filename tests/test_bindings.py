"""Tests for the output binding resolver."""

import itertools

import pytest

from stackweave.core.errors import BindError, MissingOutputError, StackweaveError
from stackweave.model.resource import AWSSDKConfig, ResourceKind
from stackweave.orchestration.bindings import OutputBindingResolver
from stackweave.orchestration.graph import ApplicationGraph

OWNER = object()

EDGES = [
    ("Cache", "Endpoint", "Worker", "CACHE_HOST"),
    ("Cache", "Port", "Worker", "CACHE_PORT"),
    ("Cache", "Endpoint", "Api", "CACHE_HOST"),
    ("Queue", "QueueUrl", "Worker", "QUEUE_URL"),
]

OUTPUTS = {
    "Cache": {"Endpoint": "cache.local", "Port": "6379"},
    "Queue": {"QueueUrl": "https://sqs.local/jobs"},
}

REGION_ENV = {"AWS__Region": "eu-west-1", "AWS_REGION": "eu-west-1"}


def build_graph(settings, edges):
    graph = ApplicationGraph(settings)
    graph.add_resource("Cache", ResourceKind.CACHE)
    graph.add_resource("Queue", ResourceKind.QUEUE)
    graph.add_resource("Worker", ResourceKind.PROCESS)
    graph.add_resource("Api", ResourceKind.PROCESS)
    for source, output_key, target, binding_key in edges:
        graph.add_reference(source, output_key, target, binding_key)
    graph.freeze()
    return graph


def succeed(graph, name, outputs):
    resource = graph.get(name)
    resource.task.claim(OWNER)
    resource.outputs.update_once(outputs)
    resource.task.set_success(OWNER)


class TestOutputBindingResolver:
    def test_copies_outputs_into_target_environments(self, settings):
        graph = build_graph(settings, EDGES)
        succeed(graph, "Cache", OUTPUTS["Cache"])

        resolved = OutputBindingResolver(graph).resolve_bindings("Cache")

        assert len(resolved) == 3
        assert dict(graph.get("Worker").environment) == {
            "CACHE_HOST": "cache.local",
            "CACHE_PORT": "6379",
            **REGION_ENV,
        }
        assert dict(graph.get("Api").environment) == {"CACHE_HOST": "cache.local", **REGION_ENV}
        assert all(graph.references.resolution(edge).done for edge in resolved)

    def test_resolution_is_permutation_independent(self, settings):
        environments = set()
        for edges in itertools.permutations(EDGES):
            graph = build_graph(settings, edges)
            for source in ("Queue", "Cache"):
                succeed(graph, source, OUTPUTS[source])
                OutputBindingResolver(graph).resolve_bindings(source)
            environments.add(
                tuple(
                    sorted(
                        (target, key, value)
                        for target in ("Worker", "Api")
                        for key, value in graph.get(target).environment.items()
                    )
                )
            )

        assert len(environments) == 1

    def test_transform_applied(self, settings):
        graph = ApplicationGraph(settings)
        graph.add_resource("Cache", ResourceKind.CACHE)
        graph.add_resource("Worker", ResourceKind.PROCESS)
        graph.add_reference(
            "Cache", "Endpoint", "Worker", "CACHE_URL", transform=lambda v: f"redis://{v}"
        )
        graph.freeze()
        succeed(graph, "Cache", OUTPUTS["Cache"])

        OutputBindingResolver(graph).resolve_bindings("Cache")

        assert graph.get("Worker").environment["CACHE_URL"] == "redis://cache.local"

    def test_failing_transform_is_a_bind_error(self, settings):
        graph = ApplicationGraph(settings)
        graph.add_resource("Cache", ResourceKind.CACHE)
        graph.add_resource("Worker", ResourceKind.PROCESS)
        edge = graph.add_reference("Cache", "Port", "Worker", "CACHE_PORT", transform=lambda v: 1 / 0)
        graph.freeze()
        succeed(graph, "Cache", OUTPUTS["Cache"])

        with pytest.raises(BindError):
            OutputBindingResolver(graph).resolve_bindings("Cache")

        assert isinstance(graph.references.resolution(edge).error, BindError)
        assert "CACHE_PORT" not in graph.get("Worker").environment

    def test_missing_output_fails_only_its_edge(self, settings):
        graph = build_graph(settings, EDGES)
        succeed(graph, "Cache", {"Endpoint": "cache.local"})

        with pytest.raises(MissingOutputError) as exc_info:
            OutputBindingResolver(graph).resolve_bindings("Cache")

        assert exc_info.value.output_key == "Port"
        assert dict(graph.get("Worker").environment) == {"CACHE_HOST": "cache.local", **REGION_ENV}
        assert graph.get("Api").environment["CACHE_HOST"] == "cache.local"
        port_edge = next(e for e in graph.references.outgoing("Cache") if e.output_key == "Port")
        assert isinstance(graph.references.resolution(port_edge).error, MissingOutputError)

    def test_requires_successful_source(self, settings):
        graph = build_graph(settings, EDGES)

        with pytest.raises(StackweaveError):
            OutputBindingResolver(graph).resolve_bindings("Cache")

    def test_already_resolved_edges_skipped(self, settings):
        graph = build_graph(settings, EDGES)
        succeed(graph, "Cache", OUTPUTS["Cache"])
        resolver = OutputBindingResolver(graph)
        resolver.resolve_bindings("Cache")

        assert resolver.resolve_bindings("Cache") == []


class TestSdkConfigPropagation:
    def test_target_receives_source_profile_and_region(self, settings):
        graph = ApplicationGraph(settings)
        graph.add_resource(
            "Cache", ResourceKind.CACHE, sdk_config=AWSSDKConfig(profile="dev", region="us-west-2")
        )
        graph.add_resource("Worker", ResourceKind.PROCESS)
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")
        graph.freeze()
        succeed(graph, "Cache", OUTPUTS["Cache"])

        OutputBindingResolver(graph).resolve_bindings("Cache")

        assert dict(graph.get("Worker").environment) == {
            "CACHE_URL": "cache.local",
            "AWS__Profile": "dev",
            "AWS_PROFILE": "dev",
            "AWS__Region": "us-west-2",
            "AWS_REGION": "us-west-2",
        }

    def test_first_referenced_resource_wins_in_any_resolution_order(self, settings):
        for resolution_order in (("Cache", "Queue"), ("Queue", "Cache")):
            graph = ApplicationGraph(settings)
            graph.add_resource(
                "Cache", ResourceKind.CACHE, sdk_config=AWSSDKConfig(region="us-west-2")
            )
            graph.add_resource(
                "Queue", ResourceKind.QUEUE, sdk_config=AWSSDKConfig(region="ap-south-1")
            )
            graph.add_resource("Worker", ResourceKind.PROCESS)
            graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")
            graph.add_reference("Queue", "QueueUrl", "Worker", "QUEUE_URL")
            graph.freeze()
            for source in resolution_order:
                succeed(graph, source, OUTPUTS[source])
                OutputBindingResolver(graph).resolve_bindings(source)

            assert graph.get("Worker").environment["AWS_REGION"] == "us-west-2"
            assert "AWS_PROFILE" not in graph.get("Worker").environment

    def test_explicit_binding_is_not_overwritten(self, settings):
        graph = ApplicationGraph(settings)
        graph.add_resource("Cache", ResourceKind.CACHE)
        graph.add_resource("Queue", ResourceKind.QUEUE)
        graph.add_resource("Worker", ResourceKind.PROCESS)
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")
        graph.add_reference("Queue", "QueueUrl", "Worker", "AWS_REGION")
        graph.freeze()

        for source in ("Cache", "Queue"):
            succeed(graph, source, OUTPUTS[source])
            OutputBindingResolver(graph).resolve_bindings(source)

        environment = graph.get("Worker").environment
        assert environment["AWS_REGION"] == "https://sqs.local/jobs"
        assert "AWS__Region" not in environment
