"""Root test configuration."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import pytest
import structlog

from stackweave.config.settings import Settings
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.providers.registry import ProvisionerRegistry


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FakeProvisioner:
    """Scripted provisioner: returns canned outputs, fails or sleeps on demand."""

    def __init__(self, kind: ResourceKind, script: "ProvisionScript") -> None:
        self.kind = kind
        self._script = script

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> Dict[str, str]:
        self._script.calls.append(resource.name)
        self._script.sdk_configs[resource.name] = sdk_config
        delay = self._script.delays.get(resource.name)
        if delay:
            await asyncio.sleep(delay)
        failure = self._script.failures.get(resource.name)
        if failure is not None:
            raise failure
        self._script.completed.append(resource.name)
        return dict(self._script.outputs.get(resource.name, {}))


class ProvisionScript:
    """What each fake provisioner should do, and what it was asked to do."""

    def __init__(
        self,
        outputs: Optional[Dict[str, Dict[str, Any]]] = None,
        failures: Optional[Dict[str, BaseException]] = None,
        delays: Optional[Dict[str, float]] = None,
    ) -> None:
        self.outputs = outputs or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self.completed: List[str] = []
        self.sdk_configs: Dict[str, AWSSDKConfig] = {}

    def registry(self, kinds=None) -> ProvisionerRegistry:
        registry = ProvisionerRegistry()
        for kind in kinds or list(ResourceKind):
            registry.register(FakeProvisioner(kind, self))
        return registry


@pytest.fixture
def settings():
    """Settings with polling intervals short enough for tests."""
    return Settings(
        aws_region="eu-west-1",
        stack_poll_interval=0,
        stack_timeout=5,
        cache_poll_interval=0,
        cache_timeout=5,
    )


@pytest.fixture
def script():
    return ProvisionScript()
