from __future__ import annotations

from typing import Any

import structlog

from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.providers.base import AWSProvisioner, tag_list

logger = structlog.get_logger()


class TopicProvisioner(AWSProvisioner):
    """Creates (or finds) an SNS topic."""

    kind = ResourceKind.TOPIC
    service = "sns"

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        name = resource.properties.get("topic_name", resource.name)
        attributes = {k: str(v) for k, v in resource.properties.get("attributes", {}).items()}
        if name.endswith(".fifo"):
            attributes.setdefault("FifoTopic", "true")

        request: dict[str, Any] = {"Name": name}
        if attributes:
            request["Attributes"] = attributes
        if resource.tags:
            request["Tags"] = tag_list(resource.tags)

        async with self.client(sdk_config) as client:
            response = await client.create_topic(**request)

        logger.info("topic_ready", resource=resource.name, topic_arn=response["TopicArn"])
        return {"TopicArn": response["TopicArn"]}
