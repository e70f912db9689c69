from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from botocore.exceptions import ClientError

from stackweave.core.errors import ConfigurationError
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.providers.base import AWSProvisioner, is_not_found

logger = structlog.get_logger()

REQUIRED_PROPERTIES = ("runtime", "role", "handler")


class FunctionProvisioner(AWSProvisioner):
    """Looks up a Lambda function, creating it from a package when missing.

    The deployment package is either a local zip (``package``) or an S3
    object (``s3_bucket`` and ``s3_key``).
    """

    kind = ResourceKind.FUNCTION
    service = "lambda"

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        props = resource.properties
        name = props.get("function_name", resource.name)

        async with self.client(sdk_config) as client:
            try:
                existing = await client.get_function(FunctionName=name)
            except ClientError as exc:
                if not is_not_found(exc, "ResourceNotFoundException"):
                    raise
            else:
                config = existing["Configuration"]
                logger.info("function_found", resource=resource.name, function=name)
                return {
                    "FunctionArn": config["FunctionArn"],
                    "FunctionName": config["FunctionName"],
                }

            request = self._create_request(resource, name)
            created = await client.create_function(**request)

        logger.info("function_created", resource=resource.name, function=name)
        return {"FunctionArn": created["FunctionArn"], "FunctionName": created["FunctionName"]}

    def _create_request(self, resource: Resource, name: str) -> dict[str, Any]:
        props = resource.properties
        missing = [key for key in REQUIRED_PROPERTIES if not props.get(key)]
        if missing:
            raise ConfigurationError(
                f"Function '{resource.name}' is missing required properties: {', '.join(missing)}",
                details={"resource": resource.name, "missing": missing},
            )

        request: dict[str, Any] = {
            "FunctionName": name,
            "Runtime": props["runtime"],
            "Role": props["role"],
            "Handler": props["handler"],
            "Code": self._code(resource),
        }
        if "timeout" in props:
            request["Timeout"] = int(props["timeout"])
        if "memory_size" in props:
            request["MemorySize"] = int(props["memory_size"])
        if props.get("environment"):
            request["Environment"] = {
                "Variables": {k: str(v) for k, v in props["environment"].items()}
            }
        if resource.tags:
            request["Tags"] = dict(resource.tags)
        return request

    def _code(self, resource: Resource) -> dict[str, Any]:
        props = resource.properties
        if props.get("package"):
            path = Path(props["package"])
            if not path.exists():
                raise ConfigurationError(
                    f"Deployment package not found: {path}",
                    details={"resource": resource.name, "path": str(path)},
                )
            return {"ZipFile": path.read_bytes()}
        if props.get("s3_bucket") and props.get("s3_key"):
            return {"S3Bucket": props["s3_bucket"], "S3Key": props["s3_key"]}
        raise ConfigurationError(
            f"Function '{resource.name}' needs a 'package' or 's3_bucket'/'s3_key'",
            details={"resource": resource.name},
        )
