"""Tests for mapping CloudFormation stack statuses to lifecycle states."""
import pytest

from schemas.request_models import LastOperationState, Operation
from services.stack_status import classify_missing_stack, classify_stack_status


@pytest.mark.parametrize("status", [
    "CREATE_COMPLETE",
    "UPDATE_COMPLETE",
    "DELETE_COMPLETE",
    "IMPORT_COMPLETE",
])
def test_complete_statuses_succeed(status):
    result = classify_stack_status(status)
    assert result.state == LastOperationState.SUCCEEDED
    assert result.description == "ready"


@pytest.mark.parametrize("status", [
    "CREATE_FAILED",
    "DELETE_FAILED",
    "ROLLBACK_COMPLETE",
    "ROLLBACK_FAILED",
    "UPDATE_ROLLBACK_COMPLETE",
    "UPDATE_ROLLBACK_FAILED",
    "IMPORT_ROLLBACK_COMPLETE",
])
def test_failed_and_rollback_statuses_fail(status):
    result = classify_stack_status(status)
    assert result.state == LastOperationState.FAILED
    assert result.description == f"failed: {status}"


@pytest.mark.parametrize("status", [
    "CREATE_IN_PROGRESS",
    "UPDATE_IN_PROGRESS",
    "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS",
    "DELETE_IN_PROGRESS",
    "REVIEW_IN_PROGRESS",
    "ROLLBACK_IN_PROGRESS",
    "UPDATE_ROLLBACK_IN_PROGRESS",
    "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS",
])
def test_other_statuses_are_in_progress(status):
    result = classify_stack_status(status)
    assert result.state == LastOperationState.IN_PROGRESS
    assert result.description == "pending"


@pytest.mark.parametrize("operation", [Operation.DEPROVISION, Operation.UNBIND, "deprovision", "unbind"])
def test_missing_stack_after_delete_is_done(operation):
    result = classify_missing_stack(operation)
    assert result.state == LastOperationState.SUCCEEDED
    assert result.description == "done"


@pytest.mark.parametrize("operation", [Operation.PROVISION, Operation.BIND, "update", None, ""])
def test_missing_stack_otherwise_fails(operation):
    result = classify_missing_stack(operation)
    assert result.state == LastOperationState.FAILED
    assert result.description == "failed: cloudformation stack does not exist"
