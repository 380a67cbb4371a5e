# services/stack_status.py
"""
CloudFormation stack status → broker lifecycle state.

States are derived on every call and never stored.
"""

from schemas.request_models import LastOperationResult, LastOperationState, Operation

DESCRIPTION_READY = "ready"
DESCRIPTION_DONE = "done"
DESCRIPTION_PENDING = "pending"
DESCRIPTION_STACK_MISSING = "failed: cloudformation stack does not exist"

# A missing stack only means success when the operation was a delete
DELETE_OPERATIONS = (Operation.DEPROVISION, Operation.UNBIND)

# Settled rollbacks: the stack is usable again but the requested change did not happen
ROLLED_BACK_STATUSES = ("ROLLBACK_COMPLETE", "UPDATE_ROLLBACK_COMPLETE", "IMPORT_ROLLBACK_COMPLETE")


def classify_stack_status(stack_status: str) -> LastOperationResult:
    """
    Map a stack status to a lifecycle state.

    Anything still moving, rollbacks and cleanups included, is in progress:
    the stack stays locked until it settles. A settled rollback counts as
    failed. DELETE_COMPLETE is a success like every other *_COMPLETE status.
    """
    if stack_status.endswith("_IN_PROGRESS"):
        return LastOperationResult(state=LastOperationState.IN_PROGRESS, description=DESCRIPTION_PENDING)
    if stack_status.endswith("_FAILED") or stack_status in ROLLED_BACK_STATUSES:
        return LastOperationResult(
            state=LastOperationState.FAILED,
            description=f"failed: {stack_status}",
        )
    if stack_status.endswith("_COMPLETE"):
        return LastOperationResult(state=LastOperationState.SUCCEEDED, description=DESCRIPTION_READY)
    return LastOperationResult(state=LastOperationState.IN_PROGRESS, description=DESCRIPTION_PENDING)


def classify_missing_stack(operation) -> LastOperationResult:
    if operation in DELETE_OPERATIONS:
        return LastOperationResult(state=LastOperationState.SUCCEEDED, description=DESCRIPTION_DONE)
    return LastOperationResult(state=LastOperationState.FAILED, description=DESCRIPTION_STACK_MISSING)
