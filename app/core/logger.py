# app/core/logger.py
import logging
from core.config import settings

# extra={...} keys worth printing; anything else passed as extra is dropped
CONTEXT_FIELDS = (
    "request_id",
    "stack_name",
    "instance_stack",
    "operation",
    "plan",
    "previous_status",
    "access_policy",
    "async_allowed",
    "aws_error_code",
    "auth_result",
    "resource_prefix",
    "environment",
)


class ContextFormatter(logging.Formatter):
    """Pipe-separated line with known context fields appended as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{field}={getattr(record, field)}"
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]
        if context:
            line = f"{line} | {' '.join(context)}"
        return line


logger = logging.getLogger("sqs-broker-logger")
logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
logger.propagate = False

_console = logging.StreamHandler()
_console.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
_console.setFormatter(ContextFormatter(
    fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
))
logger.addHandler(_console)
