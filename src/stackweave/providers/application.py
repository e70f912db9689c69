from __future__ import annotations

import structlog

from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind

logger = structlog.get_logger()


class ProcessProvisioner:
    """Application processes have nothing to create.

    They only consume bindings, so provisioning one is a no-op that lets the
    engine mark it running once its dependencies are ready.
    """

    kind = ResourceKind.PROCESS

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        logger.debug(
            "process_ready",
            resource=resource.name,
            bindings=sorted(resource.environment),
        )
        return {}
