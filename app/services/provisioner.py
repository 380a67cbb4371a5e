# services/provisioner.py
"""
SQS Provisioning Service

Drives CloudFormation through the broker lifecycle:
1. Provision / Update / Deprovision of the queue-pair stack
2. Bind / Unbind of the per-binding IAM user stack
3. last_operation polling, derived from stack status on every call
4. Synchronous bind, emulated by polling with a deadline and cleanup

The provider holds no state between calls. Every decision is re-derived
from CloudFormation, which also serialises conflicting operations on the
same stack.
"""

import asyncio
import json
from functools import lru_cache
from typing import Any, Dict, List, Optional, Set, Type, TypeVar

from botocore.exceptions import ClientError
from pydantic import BaseModel, ValidationError

from core.config import settings
from core.logger import logger
from integrations.cloudformation_client import (
    CloudFormationStackClient,
    StackClient,
    is_already_exists_error,
    is_no_update_error,
    is_stack_not_found_error,
)
from schemas.request_models import (
    BindingSpec,
    LastOperationResult,
    LastOperationState,
    Operation,
    OperationSpec,
)
from schemas.sqs_models import BindParameters, QueueParameters
from services import stack_naming
from services.errors import (
    BadParametersError,
    BindingAlreadyExistsError,
    BindingDeadlineExceededError,
    BindingDoesNotExistError,
    BindingFailedError,
    InstanceAlreadyExistsError,
    InstanceDoesNotExistError,
    InstanceNotReadyError,
    StackNotFoundError,
    UnexpectedStackResponseError,
)
from services.queue_template import (
    OUTPUT_PRIMARY_QUEUE_ARN,
    OUTPUT_PRIMARY_QUEUE_URL,
    OUTPUT_SECONDARY_QUEUE_ARN,
    OUTPUT_SECONDARY_QUEUE_URL,
    render_queue_template,
)
from services.stack_status import classify_missing_stack, classify_stack_status
from services.template_functions import to_template_body
from services.user_template import (
    OUTPUT_CREDENTIALS_ARN,
    access_policy_actions,
    render_user_template,
)

# Binding stacks create named IAM users
CAPABILITIES = ["CAPABILITY_NAMED_IAM"]

STACK_STATUS_DELETE_COMPLETE = "DELETE_COMPLETE"
STACK_STATUS_DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"

PLAN_STANDARD = "standard"
PLAN_FIFO = "fifo"

ParamsModel = TypeVar("ParamsModel", bound=BaseModel)


def decode_parameters(model: Type[ParamsModel], raw: Optional[Any]) -> ParamsModel:
    """
    Decode raw request parameters, rejecting unknown keys.

    Raises:
        BadParametersError: before any CloudFormation call is made
    """
    if raw is None:
        return model()
    if not isinstance(raw, dict):
        raise BadParametersError("parameters must be a JSON object")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'parameters'}: {err['msg']}"
            for err in e.errors()
        )
        raise BadParametersError(f"invalid parameters: {problems}")


def get_stack_output(stack: Dict[str, Any], key: str) -> Optional[str]:
    for item in stack.get("Outputs") or []:
        if item.get("OutputKey") == key and item.get("OutputValue") is not None:
            return item["OutputValue"]
    return None


class SQSProvider:
    """
    Stateless façade invoked once per broker request.

    Stack names are "<resource_prefix>-<instance or binding id>".
    """

    def __init__(
        self,
        client: StackClient,
        resource_prefix: str,
        environment: str,
        permissions_boundary: str = "",
        additional_user_policy: str = "",
        bind_timeout: float = 55.0,
        polling_interval: float = 5.0,
        cleanup_timeout: float = 60.0,
    ):
        self.client = client
        self.resource_prefix = resource_prefix
        self.environment = environment
        self.permissions_boundary = permissions_boundary
        self.additional_user_policy = additional_user_policy
        self.bind_timeout = bind_timeout
        self.polling_interval = polling_interval
        self.cleanup_timeout = cleanup_timeout
        # Handles to detached cleanup tasks, so they are not garbage
        # collected mid-flight and shutdown can wait for them
        self._background_tasks: Set[asyncio.Task] = set()

    def get_stack_name(self, identifier: str) -> str:
        return stack_naming.stack_name(self.resource_prefix, identifier)

    def _tags(self, name: str, service_id: str) -> Dict[str, str]:
        return {
            "Name": name,
            "Service": "sqs",
            "ServiceID": service_id,
            "Environment": self.environment,
        }

    # ========================================================================
    # SERVICE INSTANCES
    # ========================================================================

    async def provision(
        self,
        instance_id: str,
        plan_name: str,
        service_id: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> OperationSpec:
        """
        Create the queue-pair stack. Always asynchronous.

        Raises:
            BadParametersError: unknown or malformed parameters
            InstanceAlreadyExistsError: the stack name is taken
        """
        params = decode_parameters(QueueParameters, parameters)
        is_fifo = plan_name == PLAN_FIFO
        if params.content_based_deduplication is not None and not is_fifo:
            raise BadParametersError("content_based_deduplication is only supported by the fifo plan")

        stack_name = self.get_stack_name(instance_id)
        # Redrive stays parameter-driven so updates can toggle the dead-letter queue
        template = render_queue_template(
            stack_name,
            is_fifo,
            self._tags(instance_id, service_id),
            QueueParameters(content_based_deduplication=params.content_based_deduplication),
        )

        try:
            await self.client.create_stack(
                stack_name,
                to_template_body(template),
                params.create_params(),
                CAPABILITIES,
            )
        except ClientError as e:
            if is_already_exists_error(e):
                raise InstanceAlreadyExistsError()
            raise

        logger.info(
            f"Provision submitted for {stack_name}",
            extra={"stack_name": stack_name, "plan": plan_name, "operation": Operation.PROVISION.value}
        )
        return OperationSpec(operation=Operation.PROVISION, is_async=True)

    async def update(
        self,
        instance_id: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> OperationSpec:
        """
        Update queue settings in place, keeping the stack's template.

        Omitted settings keep their previous values. The plan, and with it
        FIFO-ness, cannot change.
        """
        params = decode_parameters(QueueParameters, parameters)
        if params.content_based_deduplication is not None:
            raise BadParametersError("content_based_deduplication cannot be changed after provisioning")

        stack_name = self.get_stack_name(instance_id)
        try:
            await self.client.update_stack(
                stack_name,
                params.update_params(),
                CAPABILITIES,
                use_previous_template=True,
            )
        except ClientError as e:
            if is_no_update_error(e):
                logger.info(
                    f"Update for {stack_name} changes nothing",
                    extra={"stack_name": stack_name, "operation": Operation.UPDATE.value}
                )
            elif is_stack_not_found_error(e):
                raise InstanceDoesNotExistError()
            else:
                raise
        else:
            logger.info(
                f"Update submitted for {stack_name}",
                extra={"stack_name": stack_name, "operation": Operation.UPDATE.value}
            )

        return OperationSpec(operation=Operation.UPDATE, is_async=True)

    async def deprovision(self, instance_id: str) -> OperationSpec:
        """Delete the queue-pair stack. Idempotent."""
        return await self._delete_stack(
            self.get_stack_name(instance_id), Operation.DEPROVISION, report_async=True
        )

    async def last_operation(self, instance_id: str, operation: Optional[str] = None) -> LastOperationResult:
        return await self._last_stack_operation(self.get_stack_name(instance_id), operation)

    # ========================================================================
    # BINDINGS
    # ========================================================================

    async def bind(
        self,
        instance_id: str,
        binding_id: str,
        service_id: str,
        parameters: Optional[Dict[str, Any]] = None,
        async_allowed: bool = True,
        timeout: Optional[float] = None,
    ) -> BindingSpec:
        """
        Create the binding stack for an existing instance.

        When the platform cannot handle an asynchronous bind, this blocks
        until the stack settles or `timeout` (default: bind_timeout) elapses.

        Raises:
            BadParametersError: unknown keys or access policy
            InstanceDoesNotExistError: the instance stack is gone
            InstanceNotReadyError: the instance has no queues yet
            BindingAlreadyExistsError: the binding stack name is taken
            BindingDeadlineExceededError: synchronous bind timed out
            BindingFailedError: synchronous bind reached a failed state
        """
        bind_params = decode_parameters(BindParameters, parameters)
        access_policy_actions(bind_params.access_policy)

        queue_stack_name = self.get_stack_name(instance_id)
        try:
            queue_stack = await self._get_stack(queue_stack_name)
        except StackNotFoundError:
            raise InstanceDoesNotExistError()

        outputs = self._queue_outputs(queue_stack)

        template = render_user_template(
            binding_id=binding_id,
            resource_prefix=self.resource_prefix,
            permissions_boundary=self.permissions_boundary,
            tags=self._tags(binding_id, service_id),
            primary_queue_arn=outputs[OUTPUT_PRIMARY_QUEUE_ARN],
            secondary_queue_arn=outputs[OUTPUT_SECONDARY_QUEUE_ARN],
            access_policy=bind_params.access_policy,
            primary_queue_url=outputs[OUTPUT_PRIMARY_QUEUE_URL],
            secondary_queue_url=outputs[OUTPUT_SECONDARY_QUEUE_URL],
            additional_user_policy=self.additional_user_policy,
        )

        binding_stack_name = self.get_stack_name(binding_id)
        try:
            await self.client.create_stack(
                binding_stack_name,
                to_template_body(template),
                [],
                CAPABILITIES,
            )
        except ClientError as e:
            if is_already_exists_error(e):
                raise BindingAlreadyExistsError()
            raise

        logger.info(
            f"Bind submitted for {binding_stack_name}",
            extra={
                "stack_name": binding_stack_name,
                "instance_stack": queue_stack_name,
                "access_policy": bind_params.access_policy,
                "async_allowed": async_allowed,
            }
        )

        if not async_allowed:
            wait_budget = self.bind_timeout if timeout is None else timeout
            return await self._get_binding_sync(binding_stack_name, wait_budget)

        return BindingSpec(operation=Operation.BIND, is_async=True)

    async def unbind(self, instance_id: str, binding_id: str, async_allowed: bool = True) -> OperationSpec:
        """
        Delete the binding stack. Idempotent.

        Platforms that cannot poll get a synchronous answer while the
        delete finishes in the background.
        """
        return await self._delete_stack(
            self.get_stack_name(binding_id), Operation.UNBIND, report_async=async_allowed
        )

    async def last_binding_operation(
        self,
        instance_id: str,
        binding_id: str,
        operation: Optional[str] = None,
    ) -> LastOperationResult:
        return await self._last_stack_operation(self.get_stack_name(binding_id), operation)

    async def get_binding(self, instance_id: str, binding_id: str) -> Dict[str, Any]:
        """
        Credentials for an existing binding, parsed from its secret.

        Raises:
            BindingDoesNotExistError: the binding stack or secret is gone
        """
        return await self._get_binding_credentials(self.get_stack_name(binding_id))

    # ========================================================================
    # SYNCHRONOUS BIND
    # ========================================================================

    async def _get_binding_sync(self, binding_stack_name: str, timeout: float) -> BindingSpec:
        """
        Block until the binding stack settles, then return its credentials.

        Anything short of confirmed success, including cancellation of the
        calling task, schedules deletion of the half-created stack.
        """
        destroy_failed_binding = True
        try:
            try:
                await asyncio.wait_for(
                    self._wait_for_binding_operation_complete(binding_stack_name),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Synchronous bind timed out after {timeout}s",
                    extra={"stack_name": binding_stack_name}
                )
                raise BindingDeadlineExceededError()

            credentials = await self._get_binding_credentials(binding_stack_name)
            destroy_failed_binding = False
        finally:
            if destroy_failed_binding:
                self._spawn_cleanup(binding_stack_name)

        return BindingSpec(operation=Operation.BIND, is_async=False, credentials=credentials)

    async def _wait_for_binding_operation_complete(self, stack_name: str) -> None:
        while True:
            await asyncio.sleep(self.polling_interval)
            last_operation = await self._last_stack_operation(stack_name, Operation.BIND)
            if last_operation.state == LastOperationState.SUCCEEDED:
                return
            if last_operation.state == LastOperationState.FAILED:
                raise BindingFailedError(last_operation.description)

    def _spawn_cleanup(self, stack_name: str) -> None:
        task = asyncio.get_running_loop().create_task(self._try_destroy_stack(stack_name))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _try_destroy_stack(self, stack_name: str) -> None:
        """
        Best-effort delete of a binding stack after a failed synchronous bind.

        Runs detached from the request that triggered it and under its own
        timeout, since that request may already be cancelled or past its
        deadline. Nobody is left to report to, so failures are logged and
        dropped on purpose.
        """
        try:
            await asyncio.wait_for(self.client.delete_stack(stack_name), timeout=self.cleanup_timeout)
            logger.info(f"Cleaned up failed binding stack {stack_name}", extra={"stack_name": stack_name})
        except Exception as e:
            logger.error(
                f"try-destroy-stack failed for {stack_name}: {type(e).__name__}: {e}",
                extra={"stack_name": stack_name}
            )

    async def drain_background_tasks(self) -> None:
        """Wait for outstanding cleanup tasks, e.g. on shutdown."""
        pending = list(self._background_tasks)
        if pending:
            logger.info(f"Waiting for {len(pending)} binding cleanup task(s)")
            await asyncio.gather(*pending, return_exceptions=True)

    # ========================================================================
    # STACK HELPERS
    # ========================================================================

    async def _delete_stack(self, stack_name: str, operation: Operation, report_async: bool) -> OperationSpec:
        try:
            stack = await self._get_stack(stack_name)
        except StackNotFoundError:
            # already deleted, or never existed
            return OperationSpec(operation=operation, is_async=False)

        status = stack["StackStatus"]
        if status == STACK_STATUS_DELETE_COMPLETE:
            return OperationSpec(operation=operation, is_async=False)

        if status != STACK_STATUS_DELETE_IN_PROGRESS:
            await self.client.delete_stack(stack_name)
            logger.info(
                f"Delete submitted for {stack_name}",
                extra={"stack_name": stack_name, "previous_status": status, "operation": operation.value}
            )

        return OperationSpec(operation=operation, is_async=report_async)

    async def _last_stack_operation(self, stack_name: str, operation: Optional[str]) -> LastOperationResult:
        try:
            stack = await self._get_stack(stack_name)
        except StackNotFoundError:
            return classify_missing_stack(operation)
        return classify_stack_status(stack["StackStatus"])

    async def _get_stack(self, stack_name: str) -> Dict[str, Any]:
        """
        Describe exactly one stack.

        Raises:
            StackNotFoundError: the stack does not exist
            UnexpectedStackResponseError: the response has an impossible shape
        """
        try:
            describe_output = await self.client.describe_stacks(stack_name)
        except ClientError as e:
            if is_stack_not_found_error(e):
                raise StackNotFoundError(stack_name)
            raise

        if describe_output is None:
            raise UnexpectedStackResponseError(
                "describe_stacks returned nothing, potential issue with AWS client"
            )
        stacks: List[Dict[str, Any]] = describe_output.get("Stacks") or []
        if len(stacks) == 0:
            raise UnexpectedStackResponseError(
                "describe_stacks contained no stacks, potential issue with AWS client"
            )
        if len(stacks) > 1:
            raise UnexpectedStackResponseError(
                "describe_stacks contained multiple stacks for one stack name, potential issue with AWS client"
            )
        stack = stacks[0]
        if not stack.get("StackStatus"):
            raise UnexpectedStackResponseError(
                "describe_stacks contained a stack without a status, potential issue with AWS client"
            )
        return stack

    def _queue_outputs(self, queue_stack: Dict[str, Any]) -> Dict[str, str]:
        keys = (
            OUTPUT_PRIMARY_QUEUE_ARN,
            OUTPUT_PRIMARY_QUEUE_URL,
            OUTPUT_SECONDARY_QUEUE_ARN,
            OUTPUT_SECONDARY_QUEUE_URL,
        )
        outputs = {key: get_stack_output(queue_stack, key) for key in keys}
        missing = [key for key, value in outputs.items() if not value]
        if missing:
            status = queue_stack["StackStatus"]
            if classify_stack_status(status).state != LastOperationState.SUCCEEDED:
                raise InstanceNotReadyError(f"instance stack is {status}")
            raise UnexpectedStackResponseError(
                f"instance stack is missing outputs: {', '.join(missing)}"
            )
        return outputs

    async def _get_binding_credentials(self, binding_stack_name: str) -> Dict[str, Any]:
        try:
            binding_stack = await self._get_stack(binding_stack_name)
        except StackNotFoundError:
            raise BindingDoesNotExistError()

        credentials_arn = get_stack_output(binding_stack, OUTPUT_CREDENTIALS_ARN)
        if not credentials_arn:
            raise UnexpectedStackResponseError(
                f"binding stack is missing output {OUTPUT_CREDENTIALS_ARN}"
            )

        try:
            secret = await self.client.get_secret_value(credentials_arn)
        except ClientError as e:
            if is_stack_not_found_error(e):
                raise BindingDoesNotExistError()
            raise

        secret_string = (secret or {}).get("SecretString")
        if secret_string is None:
            raise UnexpectedStackResponseError("invalid response from secrets manager")
        try:
            credentials = json.loads(secret_string)
        except ValueError:
            raise UnexpectedStackResponseError("binding credentials are not valid JSON")
        if not isinstance(credentials, dict):
            raise UnexpectedStackResponseError("binding credentials are not a JSON object")
        return credentials


@lru_cache(maxsize=1)
def get_provider() -> SQSProvider:
    """Process-wide provider built from settings."""
    return SQSProvider(
        client=CloudFormationStackClient(),
        resource_prefix=settings.RESOURCE_PREFIX,
        environment=settings.DEPLOY_ENV,
        permissions_boundary=settings.PERMISSIONS_BOUNDARY,
        additional_user_policy=settings.ADDITIONAL_USER_POLICY,
        bind_timeout=settings.BIND_TIMEOUT_SECS,
        polling_interval=settings.POLLING_INTERVAL_SECS,
        cleanup_timeout=settings.CLEANUP_TIMEOUT_SECS,
    )
