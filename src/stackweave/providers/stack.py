"""CloudFormation stack provisioner.

Stacks come from one of three sources (see StackSourceAnnotation): an
already deployed stack that is only looked up, a CloudFormation template
file, or a CDK app synthesized with the ``cdk`` CLI. Template and CDK stacks
are created when missing and updated otherwise; either way the provisioner
waits for the stack to settle and returns its outputs.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog
from botocore.exceptions import ClientError

from stackweave.config.settings import Settings
from stackweave.core.errors import ConfigurationError, ProviderError
from stackweave.model.annotations import StackSourceAnnotation
from stackweave.model.resource import AWSSDKConfig, Resource, ResourceKind
from stackweave.process import ProcessRunner
from stackweave.providers.base import AWSProvisioner, error_code, tag_list

logger = structlog.get_logger()

SUCCESS_STATUSES = frozenset({"CREATE_COMPLETE", "UPDATE_COMPLETE", "IMPORT_COMPLETE"})
# A stack whose last update rolled back is still usable when only looked up
LOOKUP_STATUSES = SUCCESS_STATUSES | {"UPDATE_ROLLBACK_COMPLETE"}
NO_UPDATES_MESSAGE = "No updates are to be performed"


class StackProvisioner(AWSProvisioner):
    kind = ResourceKind.STACK
    service = "cloudformation"

    def __init__(
        self,
        settings: Settings | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        super().__init__(settings)
        self._runner = runner or ProcessRunner()

    async def create_or_lookup(
        self, resource: Resource, sdk_config: AWSSDKConfig
    ) -> dict[str, str]:
        sources = resource.annotations_of(StackSourceAnnotation)
        source = sources[0] if sources else StackSourceAnnotation()
        stack_name = resource.properties.get("stack_name", resource.name)
        log = logger.bind(resource=resource.name, stack=stack_name, mode=source.mode)

        template_body = None
        if source.mode == "template":
            template_body = self._read_template(Path(source.template_path))
        elif source.mode == "cdk":
            template_body = await self._synthesize(stack_name, source)

        async with self.client(sdk_config) as cfn:
            if template_body is None:
                stack = await self._describe(cfn, stack_name)
                if stack is None:
                    raise ProviderError(
                        f"Stack '{stack_name}' does not exist",
                        details={"stack": stack_name},
                    )
                if stack["StackStatus"].endswith("_IN_PROGRESS"):
                    stack = await self._wait_for_stack(cfn, stack_name)
                log.info("stack_found", status=stack["StackStatus"])
                allowed = LOOKUP_STATUSES
            else:
                stack = await self._deploy(cfn, stack_name, template_body, resource, source)
                log.info("stack_deployed", status=stack["StackStatus"])
                allowed = SUCCESS_STATUSES

        self._check_status(stack_name, stack, allowed)
        return {o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])}

    def _read_template(self, path: Path) -> str:
        if not path.exists():
            raise ConfigurationError(
                f"CloudFormation template not found: {path}", details={"path": str(path)}
            )
        return path.read_text()

    async def _synthesize(self, stack_name: str, source: StackSourceAnnotation) -> str:
        app_dir = Path(source.app_dir) if source.app_dir else Path.cwd()
        output_dir = self._settings.cdk_output_dir
        await self._runner.run(
            self._settings.cdk_command,
            ["synth", stack_name, "--output", output_dir, "--quiet"],
            cwd=app_dir,
            check=True,
        )
        return self._read_template(app_dir / output_dir / f"{stack_name}.template.json")

    async def _describe(self, cfn: Any, stack_name: str) -> dict[str, Any] | None:
        try:
            response = await cfn.describe_stacks(StackName=stack_name)
        except ClientError as exc:
            if error_code(exc) == "ValidationError" and "does not exist" in str(exc):
                return None
            raise
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    async def _deploy(
        self,
        cfn: Any,
        stack_name: str,
        template_body: str,
        resource: Resource,
        source: StackSourceAnnotation,
    ) -> dict[str, Any]:
        request = {
            "StackName": stack_name,
            "TemplateBody": template_body,
            "Parameters": [
                {"ParameterKey": key, "ParameterValue": value}
                for key, value in source.parameters.items()
            ],
            "Tags": tag_list(resource.tags),
            "Capabilities": list(self._settings.stack_capabilities),
        }

        existing = await self._describe(cfn, stack_name)
        if existing is None:
            await cfn.create_stack(**request)
            return await self._wait_for_stack(cfn, stack_name)

        if existing["StackStatus"].endswith("_IN_PROGRESS"):
            existing = await self._wait_for_stack(cfn, stack_name)
        if existing["StackStatus"] == "ROLLBACK_COMPLETE":
            raise ProviderError(
                f"Stack '{stack_name}' is in ROLLBACK_COMPLETE and must be deleted before redeploying",
                details={"stack": stack_name},
            )

        try:
            await cfn.update_stack(**request)
        except ClientError as exc:
            if NO_UPDATES_MESSAGE in str(exc):
                return existing
            raise
        return await self._wait_for_stack(cfn, stack_name)

    async def _wait_for_stack(self, cfn: Any, stack_name: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.stack_timeout
        while True:
            stack = await self._describe(cfn, stack_name)
            if stack is None:
                raise ProviderError(
                    f"Stack '{stack_name}' disappeared while waiting", details={"stack": stack_name}
                )
            if not stack["StackStatus"].endswith("_IN_PROGRESS"):
                return stack
            if loop.time() >= deadline:
                raise ProviderError(
                    f"Timed out waiting for stack '{stack_name}'",
                    details={"stack": stack_name, "status": stack["StackStatus"]},
                )
            await asyncio.sleep(self._settings.stack_poll_interval)

    def _check_status(
        self, stack_name: str, stack: dict[str, Any], allowed: frozenset[str]
    ) -> None:
        status = stack["StackStatus"]
        if status not in allowed:
            raise ProviderError(
                f"Stack '{stack_name}' finished in status {status}",
                details={
                    "stack": stack_name,
                    "status": status,
                    "reason": stack.get("StackStatusReason", ""),
                },
            )
