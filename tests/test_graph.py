"""Tests for the application graph and the reference annotation store."""

import asyncio

import pytest

from stackweave.core.errors import (
    ConfigurationError,
    DependencyCycleError,
    DuplicateBindingError,
    GraphFrozenError,
    MissingOutputError,
    ProviderError,
    StackweaveError,
    WaitCancelledError,
)
from stackweave.model.annotations import ConstructAnnotation, ReferenceEdge
from stackweave.model.resource import AWSSDKConfig, ResourceKind
from stackweave.orchestration.cancellation import CancellationToken
from stackweave.orchestration.graph import ApplicationGraph, section_to_env_prefix
from stackweave.orchestration.notifications import StateBus
from stackweave.orchestration.references import ReferenceStore


@pytest.fixture
def graph(settings):
    graph = ApplicationGraph(settings)
    graph.add_resource("Cache", ResourceKind.CACHE)
    graph.add_resource("Secret", ResourceKind.SECRET)
    graph.add_resource("Worker", ResourceKind.PROCESS)
    return graph


class TestReferenceStore:
    def test_indexes_edges_by_source_and_target(self):
        store = ReferenceStore()
        edge = ReferenceEdge("Cache", "Endpoint", "Worker", "CACHE_URL")
        store.add(edge)

        assert store.outgoing("Cache") == [edge]
        assert store.incoming("Worker") == [edge]
        assert store.outgoing("Worker") == []
        assert len(store) == 1

    def test_duplicate_binding_key_rejected(self):
        store = ReferenceStore()
        store.add(ReferenceEdge("Cache", "Endpoint", "Worker", "URL"))

        with pytest.raises(DuplicateBindingError) as exc_info:
            store.add(ReferenceEdge("Secret", "SecretArn", "Worker", "URL"))

        assert exc_info.value.existing_source == "Cache"
        assert store.incoming("Worker")[0].source == "Cache"

    def test_same_binding_key_on_different_targets_allowed(self):
        store = ReferenceStore()
        store.add(ReferenceEdge("Cache", "Endpoint", "Worker", "URL"))
        store.add(ReferenceEdge("Cache", "Endpoint", "Api", "URL"))

        assert len(store.outgoing("Cache")) == 2

    def test_frozen_store_rejects_edges(self):
        store = ReferenceStore()
        store.freeze()

        with pytest.raises(GraphFrozenError):
            store.add(ReferenceEdge("Cache", "Endpoint", "Worker", "URL"))

    @pytest.mark.asyncio
    async def test_resolution_is_write_once(self):
        store = ReferenceStore()
        edge = ReferenceEdge("Cache", "Endpoint", "Worker", "URL")
        store.add(edge)
        resolution = store.resolution(edge)

        resolution.resolve()
        await resolution.wait()

        assert resolution.done
        with pytest.raises(StackweaveError):
            resolution.resolve(ProviderError("late"))
        assert resolution.error is None


class TestRegistration:
    def test_duplicate_resource_name_rejected(self, graph):
        with pytest.raises(ConfigurationError):
            graph.add_resource("Cache", ResourceKind.QUEUE)

    def test_unknown_resource_rejected(self, graph):
        with pytest.raises(ConfigurationError):
            graph.wait_for("Worker", "Missing")

    def test_self_wait_and_self_reference_rejected(self, graph):
        with pytest.raises(ConfigurationError):
            graph.wait_for("Worker", "Worker")
        with pytest.raises(ConfigurationError):
            graph.add_reference("Cache", "Endpoint", "Cache", "SELF")

    def test_duplicate_binding_fails_before_any_transition(self, graph):
        bus = StateBus()
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")

        with pytest.raises(DuplicateBindingError):
            graph.add_reference("Secret", "SecretArn", "Worker", "CACHE_URL")

        assert bus.history() == []
        assert len(graph.references) == 1

    def test_construct_inherits_stack_sdk_config(self, settings):
        graph = ApplicationGraph(settings)
        stack = graph.add_resource(
            "Infra", ResourceKind.STACK, sdk_config=AWSSDKConfig(region="us-west-2")
        )

        bucket = graph.add_construct("Infra", "Bucket", output_names=["BucketName"])

        link = bucket.annotations_of(ConstructAnnotation)[0]
        assert bucket.kind is ResourceKind.CONSTRUCT
        assert bucket.sdk_config.region == "us-west-2"
        assert link.stack is stack
        assert link.output_prefix == "Bucket"
        assert link.output_names == ("BucketName",)

    def test_construct_requires_stack_parent(self, graph):
        with pytest.raises(ConfigurationError):
            graph.add_construct("Cache", "Bucket")


class TestSectionReferences:
    def test_section_to_env_prefix(self):
        assert section_to_env_prefix("AWS:Resources:MySecret") == "AWS__Resources__MySecret"

    def test_reference_outputs_uses_well_known_keys(self, graph):
        edges = graph.reference_outputs("Worker", "Secret")

        assert [e.binding_key for e in edges] == [
            "AWS__Resources__Secret__SecretArn",
            "AWS__Resources__Secret__SecretName",
        ]
        assert all(e.source == "Secret" and e.target == "Worker" for e in edges)

    def test_reference_outputs_custom_section_and_keys(self, graph):
        edges = graph.reference_outputs(
            "Worker", "Cache", keys=["Endpoint"], config_section="Caching:Primary"
        )

        assert [e.binding_key for e in edges] == ["Caching__Primary__Endpoint"]

    def test_stack_section_needs_explicit_keys(self, settings):
        graph = ApplicationGraph(settings)
        graph.add_resource("Infra", ResourceKind.STACK)
        graph.add_resource("Worker", ResourceKind.PROCESS)

        with pytest.raises(ConfigurationError):
            graph.reference_outputs("Worker", "Infra")

        edges = graph.reference_outputs("Worker", "Infra", keys=["BucketName"])
        assert edges[0].binding_key == "AWS__Resources__Infra__BucketName"


class TestFreeze:
    def test_dependency_set_combines_waits_edges_and_parent_stack(self, settings):
        graph = ApplicationGraph(settings)
        graph.add_resource("Infra", ResourceKind.STACK)
        graph.add_construct("Infra", "Bucket")
        graph.add_resource("Queue", ResourceKind.QUEUE)
        graph.add_resource("Cache", ResourceKind.CACHE)
        graph.add_resource("Worker", ResourceKind.PROCESS)
        graph.wait_for("Worker", "Queue")
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")
        graph.add_reference("Bucket", "BucketName", "Worker", "BUCKET")

        graph.freeze()

        assert graph.dependencies_of("Worker") == {"Queue", "Cache", "Bucket"}
        assert graph.dependencies_of("Bucket") == {"Infra"}
        assert graph.dependents_of("Infra") == {"Bucket"}

    def test_outbound_edges_do_not_create_dependencies(self, graph):
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")
        graph.freeze()

        assert graph.dependencies_of("Cache") == frozenset()

    def test_topological_order_puts_dependencies_first(self, graph):
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")
        graph.wait_for("Cache", "Secret")
        graph.freeze()

        order = graph.topological_order()

        assert order.index("Secret") < order.index("Cache") < order.index("Worker")

    def test_cycle_rejected(self, graph):
        graph.wait_for("Cache", "Worker")
        graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")

        with pytest.raises(DependencyCycleError) as exc_info:
            graph.freeze()

        assert set(exc_info.value.cycle) == {"Cache", "Worker"}
        assert not graph.frozen

    def test_frozen_graph_rejects_changes(self, graph):
        graph.freeze()

        with pytest.raises(GraphFrozenError):
            graph.add_resource("Topic", ResourceKind.TOPIC)
        with pytest.raises(GraphFrozenError):
            graph.wait_for("Worker", "Cache")
        with pytest.raises(GraphFrozenError):
            graph.add_reference("Cache", "Endpoint", "Worker", "CACHE_URL")

    def test_freeze_is_idempotent(self, graph):
        graph.freeze()
        graph.freeze()

        assert graph.frozen

    def test_dependencies_need_frozen_graph(self, graph):
        with pytest.raises(ConfigurationError):
            graph.dependencies_of("Worker")


class TestOutputReference:
    def test_value_expression(self, graph):
        ref = graph.output("Cache", "Endpoint")

        assert ref.value_expression == "{Cache.output.Endpoint}"
        assert ref.name == "Endpoint"

    def test_value_missing_raises(self, graph):
        with pytest.raises(MissingOutputError):
            graph.output("Cache", "Endpoint").value

    @pytest.mark.asyncio
    async def test_get_value_waits_for_provisioning(self, graph):
        cache = graph.get("Cache")
        ref = graph.output(cache, "Endpoint")
        waiter = asyncio.ensure_future(ref.get_value())
        await asyncio.sleep(0)
        assert not waiter.done()

        cache.task.claim("engine")
        cache.outputs.set("Endpoint", "cache.local")
        cache.task.set_success("engine")

        assert await waiter == "cache.local"

    @pytest.mark.asyncio
    async def test_get_value_cancelled(self, graph):
        token = CancellationToken()
        token.cancel_after(0.01)

        with pytest.raises(WaitCancelledError):
            await graph.output("Cache", "Endpoint").get_value(token)

    @pytest.mark.asyncio
    async def test_get_value_raises_provisioning_failure(self, graph):
        cache = graph.get("Cache")
        cache.task.claim("engine")
        cache.task.set_failure("engine", ProviderError("quota exceeded"))

        with pytest.raises(ProviderError):
            await graph.output(cache, "Endpoint").get_value()
