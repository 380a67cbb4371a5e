# schemas/sqs_models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional


# Template parameter name for every QueueParameters field that CloudFormation
# tracks across updates. content_based_deduplication is rendered into the
# template body instead, so it has no entry here.
QUEUE_TEMPLATE_PARAMETERS: Dict[str, str] = {
    "delay_seconds": "DelaySeconds",
    "maximum_message_size": "MaximumMessageSize",
    "message_retention_period": "MessageRetentionPeriod",
    "receive_message_wait_time_seconds": "ReceiveMessageWaitTimeSeconds",
    "redrive_max_receive_count": "RedriveMaxReceiveCount",
    "visibility_timeout": "VisibilityTimeout",
}


class QueueParameters(BaseModel):
    """
    User-supplied queue settings, e.g.
        cf create-service aws-sqs-queue standard q -c '{"delay_seconds": 5}'

    Every field is optional. Omitted fields fall back to the template
    parameter defaults on create and to the stack's previous value on update.
    Ranges are declared on the template parameters and enforced by
    CloudFormation, not here.
    """
    model_config = ConfigDict(extra="forbid")

    # FIFO only. Duplicate message bodies inside the deduplication
    # interval are delivered once.
    content_based_deduplication: Optional[bool] = None
    # 0 to 900 seconds
    delay_seconds: Optional[int] = None
    # 1,024 to 262,144 bytes
    maximum_message_size: Optional[int] = None
    # 60 to 1,209,600 seconds
    message_retention_period: Optional[int] = None
    # 0 to 20 seconds, 0 means short polling
    receive_message_wait_time_seconds: Optional[int] = None
    # deliveries before a message moves to the secondary queue, 0 disables redrive
    redrive_max_receive_count: Optional[int] = None
    # 0 to 43,200 seconds
    visibility_timeout: Optional[int] = None

    def create_params(self) -> List[Dict[str, str]]:
        """CloudFormation parameters for CreateStack: only what the user set."""
        params = []
        for field, key in QUEUE_TEMPLATE_PARAMETERS.items():
            value = getattr(self, field)
            if value is not None:
                params.append({"ParameterKey": key, "ParameterValue": str(value)})
        return params

    def update_params(self) -> List[Dict[str, object]]:
        """
        CloudFormation parameters for UpdateStack.

        Omitted fields are sent as UsePreviousValue so a partial update never
        resets unrelated settings to their defaults.
        """
        params = []
        for field, key in QUEUE_TEMPLATE_PARAMETERS.items():
            value = getattr(self, field)
            if value is None:
                params.append({"ParameterKey": key, "UsePreviousValue": True})
            else:
                params.append({"ParameterKey": key, "ParameterValue": str(value)})
        return params


class BindParameters(BaseModel):
    """User-supplied binding settings."""
    model_config = ConfigDict(extra="forbid")

    access_policy: str = Field(
        default="full",
        description="Canned access policy: full, producer or consumer"
    )


class Credentials(BaseModel):
    """Shape of the secret handed to a bound application. Never log this."""
    aws_access_key_id: str
    aws_secret_access_key: str
    aws_region: str
    primary_queue_url: str
    secondary_queue_url: str
