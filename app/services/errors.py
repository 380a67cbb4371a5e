# services/errors.py
"""
Broker error taxonomy.

Each BrokerError carries the HTTP status and OSBAPI error code the router
answers with, so the provider never imports FastAPI. CloudFormation errors
that are not classified here propagate to the caller unchanged.
"""

from typing import Optional


class BrokerError(Exception):
    """Base class for errors the broker API reports to the platform."""

    status_code: int = 500
    error_code: Optional[str] = None

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class BadParametersError(BrokerError):
    """Caller-supplied parameters were rejected before any infra call."""
    status_code = 400
    error_code = "bad-json-format"


class UnknownAccessPolicyError(BadParametersError):
    error_code = "unknown-access-policy"

    def __init__(self, access_policy: str):
        super().__init__(f"unknown access policy {access_policy!r}")
        self.access_policy = access_policy


class InstanceAlreadyExistsError(BrokerError):
    status_code = 409

    def __init__(self, description: str = "instance already exists"):
        super().__init__(description)


class BindingAlreadyExistsError(BrokerError):
    status_code = 409

    def __init__(self, description: str = "binding already exists"):
        super().__init__(description)


class InstanceDoesNotExistError(BrokerError):
    status_code = 404

    def __init__(self, description: str = "instance does not exist"):
        super().__init__(description)


class BindingDoesNotExistError(BrokerError):
    status_code = 404

    def __init__(self, description: str = "binding does not exist"):
        super().__init__(description)


class InstanceNotReadyError(BrokerError):
    """Bind against an instance whose queues are not created yet."""
    status_code = 422
    error_code = "ConcurrencyError"


class BindingDeadlineExceededError(BrokerError):
    status_code = 504

    def __init__(self, description: str = (
        "timeout waiting for the binding stack to reach a success or failed state"
    )):
        super().__init__(description)


class BindingFailedError(BrokerError):
    """A synchronous bind saw the binding stack settle in a failed state."""


class UnexpectedStackResponseError(BrokerError):
    """CloudFormation or Secrets Manager answered with an impossible shape."""


class AsyncRequiredError(BrokerError):
    status_code = 422
    error_code = "AsyncRequired"

    def __init__(self, description: str = "This service plan requires client support for asynchronous service operations."):
        super().__init__(description)


class StackNotFoundError(Exception):
    """The stack is absent or deleted. Classified per operation by the provider."""

    def __init__(self, stack_name: str):
        super().__init__("cloudformation stack does not exist")
        self.stack_name = stack_name
