from __future__ import annotations

from typing import Any

import structlog

from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.providers.base import AWSProvisioner

logger = structlog.get_logger()


class QueueProvisioner(AWSProvisioner):
    """Creates (or finds, since create_queue is idempotent) an SQS queue."""

    kind = ResourceKind.QUEUE
    service = "sqs"

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        name = resource.properties.get("queue_name", resource.name)
        attributes = {k: str(v) for k, v in resource.properties.get("attributes", {}).items()}
        if name.endswith(".fifo"):
            attributes.setdefault("FifoQueue", "true")

        request: dict[str, Any] = {"QueueName": name}
        if attributes:
            request["Attributes"] = attributes
        if resource.tags:
            request["tags"] = dict(resource.tags)

        async with self.client(sdk_config) as client:
            created = await client.create_queue(**request)
            queue_url = created["QueueUrl"]
            response = await client.get_queue_attributes(
                QueueUrl=queue_url, AttributeNames=["QueueArn"]
            )

        logger.info("queue_ready", resource=resource.name, queue_url=queue_url)
        return {"QueueUrl": queue_url, "QueueArn": response["Attributes"]["QueueArn"]}
