# services/queue_template.py
"""
CloudFormation template for a service instance: a primary queue and a
secondary (dead-letter) queue.

Numeric queue settings are template parameters so UpdateStack can change
them with UsePreviousTemplate and keep unrelated values with
UsePreviousValue. Logical ids and output keys are read back by the binding
path and by stacks created with earlier releases.
"""

from typing import Any, Dict, Mapping, Optional

from schemas.sqs_models import QueueParameters
from services import stack_naming
from services.template_functions import (
    NO_VALUE,
    equals,
    get_att,
    if_,
    new_template,
    output,
    ref,
    tag_list,
)

PARAM_DELAY_SECONDS = "DelaySeconds"
PARAM_MAXIMUM_MESSAGE_SIZE = "MaximumMessageSize"
PARAM_MESSAGE_RETENTION_PERIOD = "MessageRetentionPeriod"
PARAM_RECEIVE_MESSAGE_WAIT_TIME_SECONDS = "ReceiveMessageWaitTimeSeconds"
PARAM_REDRIVE_MAX_RECEIVE_COUNT = "RedriveMaxReceiveCount"
PARAM_VISIBILITY_TIMEOUT = "VisibilityTimeout"

CONDITION_SHOULD_NOT_USE_DLQ = "ShouldNotUseDLQ"

RESOURCE_PRIMARY_QUEUE = "PrimaryQueue"
RESOURCE_SECONDARY_QUEUE = "SecondaryQueue"

OUTPUT_PRIMARY_QUEUE_URL = "PrimaryQueueURL"
OUTPUT_PRIMARY_QUEUE_ARN = "PrimaryQueueARN"
OUTPUT_SECONDARY_QUEUE_URL = "SecondaryQueueURL"
OUTPUT_SECONDARY_QUEUE_ARN = "SecondaryQueueARN"

QUEUE_TYPE_TAG = "QueueType"

# Defaults and limits as documented for AWS::SQS::Queue
TEMPLATE_PARAMETERS: Dict[str, Dict[str, Any]] = {
    PARAM_DELAY_SECONDS: {
        "Description": "The time in seconds for which the delivery of all messages in the queue is "
                       "delayed. You can specify an integer value of 0 to 900 (15 minutes).",
        "Type": "Number",
        "Default": 0,
        "MinValue": 0,
        "MaxValue": 900,
    },
    PARAM_MAXIMUM_MESSAGE_SIZE: {
        "Description": "The limit of how many bytes that a message can contain before Amazon SQS "
                       "rejects it. You can specify an integer value from 1,024 bytes (1 KiB) to "
                       "262,144 bytes (256 KiB).",
        "Type": "Number",
        "Default": 262144,
        "MinValue": 1024,
        "MaxValue": 262144,
    },
    PARAM_MESSAGE_RETENTION_PERIOD: {
        "Description": "The number of seconds that Amazon SQS retains a message. You can specify "
                       "an integer value from 60 seconds (1 minute) to 1,209,600 seconds (14 days).",
        "Type": "Number",
        "Default": 345600,
        "MinValue": 60,
        "MaxValue": 1209600,
    },
    PARAM_RECEIVE_MESSAGE_WAIT_TIME_SECONDS: {
        "Description": "The duration, in seconds, that a ReceiveMessage call waits for a message "
                       "to arrive. You can specify an integer from 1 to 20. Short polling is used "
                       "when you specify 0.",
        "Type": "Number",
        "Default": 0,
        "MinValue": 0,
        "MaxValue": 20,
    },
    PARAM_REDRIVE_MAX_RECEIVE_COUNT: {
        "Description": "The number of times a message is delivered to the source queue before "
                       "being moved to the dead-letter queue. A value of 0 disables the "
                       "dead-letter queue.",
        "Type": "Number",
        "Default": 0,
        "MinValue": 0,
    },
    PARAM_VISIBILITY_TIMEOUT: {
        "Description": "The length of time during which a message will be unavailable after it "
                       "is delivered from the queue. Values must be from 0 to 43,200 seconds "
                       "(12 hours).",
        "Type": "Number",
        "Default": 30,
        "MinValue": 0,
        "MaxValue": 43200,
    },
}


def render_redrive_policy(redrive_max_receive_count: Optional[int]) -> Optional[Any]:
    """
    Redrive policy for the primary queue, or None when it must be omitted.

    CloudFormation needs RedrivePolicy to be absent rather than zero-valued
    when there is no dead-letter wiring, hence three cases:
      - None: decided by the RedriveMaxReceiveCount parameter at apply time
      - 0: no policy at all
      - n > 0: policy pointing at the secondary queue with maxReceiveCount n
    """
    dead_letter_target = get_att(RESOURCE_SECONDARY_QUEUE, "Arn")
    if redrive_max_receive_count is None:
        return if_(
            CONDITION_SHOULD_NOT_USE_DLQ,
            ref(NO_VALUE),
            {
                "deadLetterTargetArn": dead_letter_target,
                "maxReceiveCount": ref(PARAM_REDRIVE_MAX_RECEIVE_COUNT),
            },
        )
    if redrive_max_receive_count == 0:
        return None
    return {
        "deadLetterTargetArn": dead_letter_target,
        "maxReceiveCount": redrive_max_receive_count,
    }


def render_queue_template(
    queue_name: str,
    is_fifo: bool,
    tags: Mapping[str, str],
    params: QueueParameters,
) -> Dict[str, Any]:
    """
    Build the queue-pair template.

    Args:
        queue_name: Base name, normally the instance stack name
        is_fifo: Whether both queues are FIFO
        tags: Tags applied to both queues alongside QueueType
        params: Only settings baked into the template body are read here
            (content_based_deduplication and redrive_max_receive_count);
            the rest travel as stack parameters

    Returns:
        dict: CloudFormation template document
    """
    template = new_template(f"SQS queue pair {queue_name}")
    template["Parameters"] = {key: dict(value) for key, value in TEMPLATE_PARAMETERS.items()}

    redrive_policy = render_redrive_policy(params.redrive_max_receive_count)
    if params.redrive_max_receive_count is None:
        template["Conditions"][CONDITION_SHOULD_NOT_USE_DLQ] = equals(
            ref(PARAM_REDRIVE_MAX_RECEIVE_COUNT), "0"
        )

    primary_properties: Dict[str, Any] = {
        "QueueName": stack_naming.primary_queue_name(queue_name, is_fifo),
        "Tags": tag_list({**tags, QUEUE_TYPE_TAG: "Primary"}),
        "DelaySeconds": ref(PARAM_DELAY_SECONDS),
        "MaximumMessageSize": ref(PARAM_MAXIMUM_MESSAGE_SIZE),
        "MessageRetentionPeriod": ref(PARAM_MESSAGE_RETENTION_PERIOD),
        "ReceiveMessageWaitTimeSeconds": ref(PARAM_RECEIVE_MESSAGE_WAIT_TIME_SECONDS),
        "VisibilityTimeout": ref(PARAM_VISIBILITY_TIMEOUT),
    }
    if redrive_policy is not None:
        primary_properties["RedrivePolicy"] = redrive_policy

    # The secondary queue only ever receives redriven messages
    secondary_properties: Dict[str, Any] = {
        "QueueName": stack_naming.secondary_queue_name(queue_name, is_fifo),
        "Tags": tag_list({**tags, QUEUE_TYPE_TAG: "Secondary"}),
        "MessageRetentionPeriod": ref(PARAM_MESSAGE_RETENTION_PERIOD),
        "VisibilityTimeout": ref(PARAM_VISIBILITY_TIMEOUT),
    }

    if is_fifo:
        primary_properties["FifoQueue"] = True
        secondary_properties["FifoQueue"] = True
        if params.content_based_deduplication is not None:
            primary_properties["ContentBasedDeduplication"] = params.content_based_deduplication

    template["Resources"][RESOURCE_PRIMARY_QUEUE] = {
        "Type": "AWS::SQS::Queue",
        "Properties": primary_properties,
    }
    template["Resources"][RESOURCE_SECONDARY_QUEUE] = {
        "Type": "AWS::SQS::Queue",
        "Properties": secondary_properties,
    }

    template["Outputs"] = {
        OUTPUT_PRIMARY_QUEUE_URL: output(
            "Primary queue URL",
            ref(RESOURCE_PRIMARY_QUEUE),
            stack_naming.export_name(queue_name, OUTPUT_PRIMARY_QUEUE_URL),
        ),
        OUTPUT_PRIMARY_QUEUE_ARN: output(
            "Primary queue ARN",
            get_att(RESOURCE_PRIMARY_QUEUE, "Arn"),
            stack_naming.export_name(queue_name, OUTPUT_PRIMARY_QUEUE_ARN),
        ),
        OUTPUT_SECONDARY_QUEUE_URL: output(
            "Secondary queue URL",
            ref(RESOURCE_SECONDARY_QUEUE),
            stack_naming.export_name(queue_name, OUTPUT_SECONDARY_QUEUE_URL),
        ),
        OUTPUT_SECONDARY_QUEUE_ARN: output(
            "Secondary queue ARN",
            get_att(RESOURCE_SECONDARY_QUEUE, "Arn"),
            stack_naming.export_name(queue_name, OUTPUT_SECONDARY_QUEUE_ARN),
        ),
    }

    return template
