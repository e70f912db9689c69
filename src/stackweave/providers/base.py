from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Protocol

import aioboto3
from botocore.exceptions import ClientError

from stackweave.config.settings import Settings, get_settings
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind


class Provisioner(Protocol):
    """Creates or looks up the cloud resource behind one resource kind."""

    kind: ResourceKind

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        """Return the resource's outputs once it exists."""
        ...


class AWSProvisioner:
    """Base class for provisioners backed by an aioboto3 client."""

    kind: ResourceKind
    service: str

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def session(self, sdk_config: AWSSDKConfig) -> aioboto3.Session:
        return aioboto3.Session(
            profile_name=sdk_config.profile,
            region_name=sdk_config.region,
        )

    @asynccontextmanager
    async def client(self, sdk_config: AWSSDKConfig) -> AsyncIterator[Any]:
        async with self.session(sdk_config).client(self.service) as client:
            yield client

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        raise NotImplementedError


def tag_list(tags: Mapping[str, str]) -> list[dict[str, str]]:
    """Format tags the way most AWS APIs expect them."""
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def is_not_found(exc: ClientError, *codes: str) -> bool:
    return error_code(exc) in codes
