from __future__ import annotations

from typing import Any

import structlog
from botocore.exceptions import ClientError

from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.providers.base import AWSProvisioner, is_not_found, tag_list

logger = structlog.get_logger()

DEFAULT_PASSWORD_LENGTH = 32


class SecretProvisioner(AWSProvisioner):
    """Looks up a Secrets Manager secret, creating it when missing.

    Properties:
        secret_name: name of the secret (defaults to the resource name)
        description: optional description
        secret_string: initial value
        generate: generate a random initial value instead
        password_length / exclude_punctuation: generation options
    """

    kind = ResourceKind.SECRET
    service = "secretsmanager"

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        props = resource.properties
        name = props.get("secret_name", resource.name)

        async with self.client(sdk_config) as client:
            try:
                existing = await client.describe_secret(SecretId=name)
            except ClientError as exc:
                if not is_not_found(exc, "ResourceNotFoundException"):
                    raise
            else:
                logger.info("secret_found", resource=resource.name, secret=name)
                return {"SecretArn": existing["ARN"], "SecretName": existing["Name"]}

            request: dict[str, Any] = {"Name": name}
            if resource.tags:
                request["Tags"] = tag_list(resource.tags)
            if props.get("description"):
                request["Description"] = props["description"]
            if "secret_string" in props:
                request["SecretString"] = props["secret_string"]
            elif props.get("generate"):
                generated = await client.get_random_password(
                    PasswordLength=int(props.get("password_length", DEFAULT_PASSWORD_LENGTH)),
                    ExcludePunctuation=bool(props.get("exclude_punctuation", False)),
                )
                request["SecretString"] = generated["RandomPassword"]

            created = await client.create_secret(**request)

        logger.info("secret_created", resource=resource.name, secret=name)
        return {"SecretArn": created["ARN"], "SecretName": created["Name"]}
