"""Tests for the stackweave CLI commands."""

import json
from unittest.mock import patch

import pytest

from stackweave.cli.main import build_parser, main
from stackweave.cli.plan import build_plan, plan_command
from stackweave.cli.provision import provision_command, run_provisioning
from stackweave.config.loader import load_application
from stackweave.core.errors import ExitCode
from stackweave.model.resource import ResourceKind
from stackweave.orchestration.notifications import ResourceState

APPLICATION = """
resources:
  - name: Worker
    kind: process
    references:
      - source: Cache
        output: Endpoint
        env: CACHE_URL
  - name: Cache
    kind: cache
"""


@pytest.fixture
def app_yaml(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text(APPLICATION)
    return path


@pytest.fixture
def fake_registry(script):
    script.outputs["Cache"] = {"Endpoint": "cache.local", "Port": "6379"}
    registry = script.registry()
    with patch("stackweave.orchestration.engine.default_registry", return_value=registry):
        yield script


class TestPlan:
    def test_build_plan_orders_dependencies_first(self, app_yaml, settings):
        plan = build_plan(load_application(app_yaml, settings))

        assert [item["name"] for item in plan] == ["Cache", "Worker"]
        assert plan[1]["depends_on"] == ["Cache"]
        assert plan[1]["bindings"] == ["Cache.Endpoint -> Worker.CACHE_URL"]

    def test_plan_json(self, app_yaml, capsys):
        exit_code = plan_command(str(app_yaml), output_format="json")

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert [item["kind"] for item in output["resources"]] == ["cache", "process"]

    def test_plan_text(self, app_yaml, capsys):
        exit_code = plan_command(str(app_yaml))

        assert exit_code == 0
        assert "Provisioning order" in capsys.readouterr().out

    def test_plan_invalid_application(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("resources: [{name: A, kind: database}]")

        assert plan_command(str(path)) == ExitCode.CONFIG_ERROR


class TestProvision:
    @pytest.mark.asyncio
    async def test_run_provisioning_binds_outputs(self, app_yaml, fake_registry, settings):
        graph = load_application(app_yaml, settings)

        result = await run_provisioning(graph, quiet=True)

        assert result.success
        assert graph.get("Worker").environment["CACHE_URL"] == "cache.local"
        assert fake_registry.calls == ["Cache", "Worker"]

    def test_provision_json(self, app_yaml, fake_registry, capsys):
        exit_code = provision_command(str(app_yaml), output_format="json")

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is True
        worker_env = output["environments"]["Worker"]
        assert worker_env["CACHE_URL"] == "cache.local"
        assert worker_env["AWS_REGION"] == worker_env["AWS__Region"]
        assert output["succeeded"]["Cache"] == {"Endpoint": "cache.local", "Port": "6379"}

    def test_provision_text_streams_transitions(self, app_yaml, fake_registry, capsys):
        exit_code = provision_command(str(app_yaml))

        assert exit_code == 0
        out = capsys.readouterr().out
        assert ResourceState.FINISHED_SUCCESS.value in out
        assert "CACHE_URL" in out

    def test_provision_failure_exit_code(self, app_yaml, fake_registry, capsys):
        fake_registry.failures["Cache"] = RuntimeError("InsufficientCapacity")

        exit_code = provision_command(str(app_yaml), output_format="json")

        assert exit_code == ExitCode.PROVIDER_ERROR
        output = json.loads(capsys.readouterr().out)
        assert set(output["failed"]) == {"Cache", "Worker"}

    def test_unmapped_kind_is_a_config_error(self, app_yaml, script):
        registry = script.registry(kinds=[ResourceKind.CACHE])
        with patch("stackweave.orchestration.engine.default_registry", return_value=registry):
            assert provision_command(str(app_yaml)) == ExitCode.CONFIG_ERROR


class TestMain:
    def test_parser(self):
        args = build_parser().parse_args(["provision", "app.yaml", "--timeout", "30"])

        assert args.command == "provision"
        assert args.timeout == 30.0
        assert args.output == "text"

    @patch("stackweave.cli.main.configure_logging")
    def test_main_exits_with_command_code(self, _configure_logging, app_yaml):
        with pytest.raises(SystemExit) as exc_info:
            main(["plan", str(app_yaml), "--output", "json"])

        assert exc_info.value.code == 0

    def test_main_without_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 0
        assert "stackweave" in capsys.readouterr().out
