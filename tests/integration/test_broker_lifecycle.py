"""
End-to-end broker lifecycle against the in-memory CloudFormation fake.

Stacks only settle when the test says so, so every step observes the
in-progress state the platform would see while polling.
"""
import asyncio

import pytest

from schemas.request_models import LastOperationState
from schemas.sqs_models import Credentials
from tests.fakes import FAKE_ACCESS_KEY_ID, SERVICE_ID, make_provider

pytestmark = pytest.mark.integration

INSTANCE_ID = "0f5f3b36-instance"
BINDING_ID = "7c1e2d90-binding"
INSTANCE_STACK = f"test-broker-{INSTANCE_ID}"
BINDING_STACK = f"test-broker-{BINDING_ID}"
SYNC_BINDING_ID = "9a4b6e21-binding"
SYNC_BINDING_STACK = f"test-broker-{SYNC_BINDING_ID}"


@pytest.mark.asyncio
async def test_full_lifecycle(slow_fake_client):
    broker = make_provider(slow_fake_client)

    # provision
    spec = await broker.provision(
        INSTANCE_ID, "fifo", SERVICE_ID,
        {"redrive_max_receive_count": 5, "content_based_deduplication": True},
    )
    assert spec.is_async
    state = await broker.last_operation(INSTANCE_ID, "provision")
    assert state.state == LastOperationState.IN_PROGRESS
    slow_fake_client.complete(INSTANCE_STACK)
    state = await broker.last_operation(INSTANCE_ID, "provision")
    assert state.state == LastOperationState.SUCCEEDED
    assert slow_fake_client.parameter_values(INSTANCE_STACK)["RedriveMaxReceiveCount"] == "5"

    # update
    await broker.update(INSTANCE_ID, {"redrive_max_receive_count": 0, "delay_seconds": 2})
    state = await broker.last_operation(INSTANCE_ID, "update")
    assert state.state == LastOperationState.IN_PROGRESS
    slow_fake_client.complete(INSTANCE_STACK)
    values = slow_fake_client.parameter_values(INSTANCE_STACK)
    assert values["RedriveMaxReceiveCount"] == "0"
    assert values["DelaySeconds"] == "2"
    assert values["MaximumMessageSize"] == "262144"

    # bind
    spec = await broker.bind(INSTANCE_ID, BINDING_ID, SERVICE_ID, {"access_policy": "consumer"})
    assert spec.is_async
    state = await broker.last_binding_operation(INSTANCE_ID, BINDING_ID, "bind")
    assert state.state == LastOperationState.IN_PROGRESS
    slow_fake_client.complete(BINDING_STACK)
    state = await broker.last_binding_operation(INSTANCE_ID, BINDING_ID, "bind")
    assert state.state == LastOperationState.SUCCEEDED

    credentials = Credentials.model_validate(await broker.get_binding(INSTANCE_ID, BINDING_ID))
    assert credentials.aws_access_key_id == FAKE_ACCESS_KEY_ID
    assert credentials.primary_queue_url.endswith(f"{INSTANCE_STACK}-pri.fifo")
    assert credentials.secondary_queue_url.endswith(f"{INSTANCE_STACK}-sec.fifo")

    # unbind
    spec = await broker.unbind(INSTANCE_ID, BINDING_ID, async_allowed=True)
    assert spec.is_async
    slow_fake_client.complete(BINDING_STACK)
    state = await broker.last_binding_operation(INSTANCE_ID, BINDING_ID, "unbind")
    assert state.state == LastOperationState.SUCCEEDED
    assert state.description == "done"

    # synchronous bind, for platforms that cannot poll
    task = asyncio.create_task(broker.bind(
        INSTANCE_ID, SYNC_BINDING_ID, SERVICE_ID, {"access_policy": "producer"},
        async_allowed=False, timeout=5.0,
    ))
    while SYNC_BINDING_STACK not in slow_fake_client.stacks:
        await asyncio.sleep(0.005)
    await asyncio.sleep(0.03)
    assert not task.done()
    slow_fake_client.complete(SYNC_BINDING_STACK)
    spec = await task
    assert spec.is_async is False
    assert spec.credentials["aws_access_key_id"] == FAKE_ACCESS_KEY_ID
    assert spec.credentials["primary_queue_url"].endswith(f"{INSTANCE_STACK}-pri.fifo")

    spec = await broker.unbind(INSTANCE_ID, SYNC_BINDING_ID, async_allowed=False)
    assert spec.is_async is False
    slow_fake_client.complete(SYNC_BINDING_STACK)
    await broker.drain_background_tasks()

    # deprovision, twice
    spec = await broker.deprovision(INSTANCE_ID)
    assert spec.is_async
    again = await broker.deprovision(INSTANCE_ID)
    assert again.is_async
    slow_fake_client.complete(INSTANCE_STACK)
    state = await broker.last_operation(INSTANCE_ID, "deprovision")
    assert state.state == LastOperationState.SUCCEEDED
    assert state.description == "done"

    assert [c["stack_name"] for c in slow_fake_client.calls_to("delete_stack")] == [
        BINDING_STACK,
        SYNC_BINDING_STACK,
        INSTANCE_STACK,
    ]
    assert slow_fake_client.stacks == {}
    assert slow_fake_client.secrets == {}


@pytest.mark.asyncio
async def test_failed_provision_can_be_deprovisioned(slow_fake_client):
    broker = make_provider(slow_fake_client)
    await broker.provision(INSTANCE_ID, "standard", SERVICE_ID, None)
    slow_fake_client.set_status(INSTANCE_STACK, "ROLLBACK_COMPLETE")

    state = await broker.last_operation(INSTANCE_ID, "provision")
    assert state.state == LastOperationState.FAILED
    assert state.description == "failed: ROLLBACK_COMPLETE"

    spec = await broker.deprovision(INSTANCE_ID)
    assert spec.is_async
    slow_fake_client.complete(INSTANCE_STACK)
    assert (await broker.last_operation(INSTANCE_ID, "deprovision")).description == "done"
