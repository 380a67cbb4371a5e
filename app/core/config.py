from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """
    Centralized broker configuration.
    Grouped logically for readability.
    """

    # ------------------------------------------------------------
    # Project / Runtime
    # ------------------------------------------------------------
    PROJECT_NAME: str = "SQS Service Broker"
    DEBUG: bool = False

    # HTTP / API
    RATE_LIMIT_MIN: str = "120"

    # ------------------------------------------------------------
    # AWS Core
    # ------------------------------------------------------------
    AWS_REGION: str = "eu-west-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None
    AWS_CONNECT_TIMEOUT_SECS: int = 10
    AWS_READ_TIMEOUT_SECS: int = 30
    AWS_MAX_ATTEMPTS: int = 5

    # ------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------

    """
    Every CloudFormation stack is named "<RESOURCE_PREFIX>-<id>".
    Changing this orphans stacks created by a previous deployment.
    """
    RESOURCE_PREFIX: str = Field(
        default="sqs-broker",
        description="Prefix for stack names and the IAM path of binding users"
    )
    DEPLOY_ENV: str = Field(
        default="dev",
        description="Environment name tagged onto every provisioned resource"
    )
    PERMISSIONS_BOUNDARY: str = Field(
        default="",
        description="IAM permissions boundary ARN attached to binding users (optional)"
    )
    ADDITIONAL_USER_POLICY: str = Field(
        default="",
        description="Managed policy ARN attached to binding users in addition to queue access (optional)"
    )

    # ------------------------------------------------------------
    # Synchronous binding
    # ------------------------------------------------------------
    BIND_TIMEOUT_SECS: float = Field(
        default=55.0,
        description="Maximum time a synchronous bind waits for the binding stack"
    )
    POLLING_INTERVAL_SECS: float = Field(
        default=5.0,
        description="Delay between stack status checks during a synchronous bind"
    )
    CLEANUP_TIMEOUT_SECS: float = Field(
        default=60.0,
        description="Time budget for deleting a binding stack after a failed synchronous bind"
    )

    # ------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------
    SERVICE_ID: str = "uk.gov.paas.sqs"
    SERVICE_NAME: str = "aws-sqs-queue"
    SERVICE_DESCRIPTION: str = "AWS SQS queue with a dead-letter queue"
    STANDARD_PLAN_ID: str = "uk.gov.paas.sqs.standard"
    FIFO_PLAN_ID: str = "uk.gov.paas.sqs.fifo"

    # ------------------------------------------------------------
    # Security
    # ------------------------------------------------------------
    BROKER_USERNAME: str = Field(default="broker", description="HTTP basic auth user for the platform")
    BROKER_PASSWORD: str = Field(default="", description="HTTP basic auth password for the platform")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
