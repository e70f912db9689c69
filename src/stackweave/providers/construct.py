from __future__ import annotations

import structlog

from stackweave.core.errors import ConfigurationError, MissingOutputError
from stackweave.model.annotations import ConstructAnnotation
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind

logger = structlog.get_logger()


class ConstructProvisioner:
    """Exposes a construct's outputs from its already deployed parent stack.

    No provider call is made: the stack deploys the construct, and the wait
    gate only releases the construct once the stack succeeded.
    """

    kind = ResourceKind.CONSTRUCT

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        links = resource.annotations_of(ConstructAnnotation)
        if not links:
            raise ConfigurationError(
                f"Construct '{resource.name}' is not linked to a stack",
                details={"resource": resource.name},
            )
        link = links[0]
        stack_outputs = link.stack.outputs

        if link.output_names:
            outputs = {}
            for name in link.output_names:
                key = f"{link.output_prefix}{name}"
                if key not in stack_outputs:
                    raise MissingOutputError(link.stack.name, key)
                outputs[name] = stack_outputs[key]
        else:
            outputs = {
                key[len(link.output_prefix):]: value
                for key, value in stack_outputs.items()
                if key.startswith(link.output_prefix) and len(key) > len(link.output_prefix)
            }

        logger.debug(
            "construct_outputs_read",
            resource=resource.name,
            stack=link.stack.name,
            outputs=sorted(outputs),
        )
        return outputs
