# app/integrations/cloudformation_client.py
"""
Stack client used by the provider.

StackClient is the seam the provider depends on; CloudFormationStackClient
is the boto3 implementation. boto3 is blocking, so every call runs in a
worker thread to keep the event loop free while a synchronous bind polls.
"""
import asyncio
from typing import Any, Dict, List, Optional, Protocol

from botocore.exceptions import ClientError

from core.aws_client import get_cloudformation_client, get_secretsmanager_client
from core.logger import logger

# CloudFormation answers DescribeStacks for a missing stack with a plain
# ValidationError, so the message is the only signal available.
NO_EXIST_ERR_MATCH = "does not exist"

NOT_FOUND_ERROR_CODES = frozenset({"ResourceNotFoundException", "StackNotFoundException"})
ALREADY_EXISTS_ERROR_CODE = "AlreadyExistsException"
NO_UPDATES_ERR_MATCH = "No updates are to be performed"


def _error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


def _error_message(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Message", "")


def is_stack_not_found_error(err: BaseException) -> bool:
    """
    True when err means the stack (or secret) does not exist.

    This is the only place that string-matches error text.
    """
    if not isinstance(err, ClientError):
        return False
    code = _error_code(err)
    if code in NOT_FOUND_ERROR_CODES:
        return True
    return code == "ValidationError" and NO_EXIST_ERR_MATCH in _error_message(err)


def is_already_exists_error(err: BaseException) -> bool:
    return isinstance(err, ClientError) and _error_code(err) == ALREADY_EXISTS_ERROR_CODE


def is_no_update_error(err: BaseException) -> bool:
    """UpdateStack rejects an update that would change nothing."""
    return (
        isinstance(err, ClientError)
        and _error_code(err) == "ValidationError"
        and NO_UPDATES_ERR_MATCH in _error_message(err)
    )


class StackClient(Protocol):
    """Interface for the infrastructure engine."""

    async def create_stack(
        self,
        stack_name: str,
        template_body: str,
        parameters: List[Dict[str, Any]],
        capabilities: List[str],
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        ...

    async def update_stack(
        self,
        stack_name: str,
        parameters: List[Dict[str, Any]],
        capabilities: List[str],
        use_previous_template: bool = True,
    ) -> Dict[str, Any]:
        ...

    async def delete_stack(self, stack_name: str) -> Dict[str, Any]:
        ...

    async def describe_stacks(self, stack_name: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_secret_value(self, secret_id: str) -> Dict[str, Any]:
        ...

    async def check_connection(self) -> None:
        ...


class CloudFormationStackClient:
    """StackClient backed by boto3 CloudFormation and Secrets Manager clients."""

    def __init__(self, cloudformation=None, secretsmanager=None):
        self._cloudformation = cloudformation or get_cloudformation_client()
        self._secretsmanager = secretsmanager or get_secretsmanager_client()

    async def create_stack(
        self,
        stack_name: str,
        template_body: str,
        parameters: List[Dict[str, Any]],
        capabilities: List[str],
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "StackName": stack_name,
            "TemplateBody": template_body,
            "Parameters": parameters,
            "Capabilities": capabilities,
        }
        if tags:
            kwargs["Tags"] = [{"Key": k, "Value": v} for k, v in sorted(tags.items())]
        logger.debug("CreateStack", extra={"stack_name": stack_name})
        return await asyncio.to_thread(self._cloudformation.create_stack, **kwargs)

    async def update_stack(
        self,
        stack_name: str,
        parameters: List[Dict[str, Any]],
        capabilities: List[str],
        use_previous_template: bool = True,
    ) -> Dict[str, Any]:
        logger.debug("UpdateStack", extra={"stack_name": stack_name})
        return await asyncio.to_thread(
            self._cloudformation.update_stack,
            StackName=stack_name,
            Parameters=parameters,
            Capabilities=capabilities,
            UsePreviousTemplate=use_previous_template,
        )

    async def delete_stack(self, stack_name: str) -> Dict[str, Any]:
        logger.debug("DeleteStack", extra={"stack_name": stack_name})
        return await asyncio.to_thread(self._cloudformation.delete_stack, StackName=stack_name)

    async def describe_stacks(self, stack_name: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._cloudformation.describe_stacks, StackName=stack_name)

    async def get_secret_value(self, secret_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._secretsmanager.get_secret_value, SecretId=secret_id)

    async def check_connection(self) -> None:
        """Cheap authenticated CloudFormation call; raises if the API is unreachable."""
        await asyncio.to_thread(self._cloudformation.describe_account_limits)
