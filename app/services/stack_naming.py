# services/stack_naming.py
"""
Deterministic resource names.

Stack names, queue names and IAM user names are part of the persisted
contract with stacks created by earlier releases. Do not change them.
"""

FIFO_SUFFIX = ".fifo"


def stack_name(resource_prefix: str, identifier: str) -> str:
    """Stack for a service instance or binding: "<prefix>-<id>"."""
    return f"{resource_prefix}-{identifier}"


def primary_queue_name(queue_name: str, is_fifo: bool) -> str:
    name = f"{queue_name}-pri"
    return name + FIFO_SUFFIX if is_fifo else name


def secondary_queue_name(queue_name: str, is_fifo: bool) -> str:
    name = f"{queue_name}-sec"
    return name + FIFO_SUFFIX if is_fifo else name


def binding_user_name(binding_id: str) -> str:
    return f"binding-{binding_id}"


def binding_user_path(resource_prefix: str) -> str:
    return f"/{resource_prefix.strip('/')}/"


def export_name(prefix: str, output_key: str) -> str:
    """Cross-stack export name for a stack output."""
    return f"{prefix}-{output_key}"
