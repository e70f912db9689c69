"""ElastiCache serverless cache provisioner."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from botocore.exceptions import ClientError

from stackweave.core.errors import ProviderError
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.providers.base import AWSProvisioner, is_not_found, tag_list

logger = structlog.get_logger()

DEFAULT_ENGINE = "valkey"
AVAILABLE = "available"
FAILED_STATUSES = frozenset({"create-failed", "deleting"})


class CacheProvisioner(AWSProvisioner):
    kind = ResourceKind.CACHE
    service = "elasticache"

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        props = resource.properties
        name = props.get("cache_name", resource.name)

        async with self.client(sdk_config) as client:
            cache = await self._describe(client, name)
            if cache is None:
                request: dict[str, Any] = {
                    "ServerlessCacheName": name,
                    "Engine": props.get("engine", DEFAULT_ENGINE),
                }
                if props.get("description"):
                    request["Description"] = props["description"]
                if props.get("major_engine_version"):
                    request["MajorEngineVersion"] = str(props["major_engine_version"])
                if resource.tags:
                    request["Tags"] = tag_list(resource.tags)
                await client.create_serverless_cache(**request)
                logger.info("cache_creating", resource=resource.name, cache=name)
                cache = await self._wait_available(client, name)
            elif cache["Status"] != AVAILABLE:
                cache = await self._wait_available(client, name)

        endpoint = cache.get("Endpoint") or {}
        logger.info("cache_ready", resource=resource.name, address=endpoint.get("Address"))
        return {"Endpoint": endpoint["Address"], "Port": str(endpoint["Port"])}

    async def _describe(self, client: Any, name: str) -> dict[str, Any] | None:
        try:
            response = await client.describe_serverless_caches(ServerlessCacheName=name)
        except ClientError as exc:
            if is_not_found(exc, "ServerlessCacheNotFoundFault"):
                return None
            raise
        caches = response.get("ServerlessCaches", [])
        return caches[0] if caches else None

    async def _wait_available(self, client: Any, name: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.cache_timeout
        while True:
            cache = await self._describe(client, name)
            if cache is None:
                raise ProviderError(
                    f"Serverless cache '{name}' disappeared while waiting",
                    details={"cache": name},
                )
            status = cache["Status"]
            if status == AVAILABLE:
                return cache
            if status in FAILED_STATUSES:
                raise ProviderError(
                    f"Serverless cache '{name}' is in status {status}",
                    details={"cache": name, "status": status},
                )
            if loop.time() >= deadline:
                raise ProviderError(
                    f"Timed out waiting for serverless cache '{name}'",
                    details={"cache": name, "status": status},
                )
            await asyncio.sleep(self._settings.cache_poll_interval)
