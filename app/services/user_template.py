# services/user_template.py
"""
CloudFormation template for a binding: an IAM user with one access key, a
policy scoped to the instance's two queues, and a Secrets Manager secret
holding the credentials handed to the bound application.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Mapping

from services import stack_naming
from services.errors import UnknownAccessPolicyError
from services.template_functions import new_template, output, ref, sub, tag_list

RESOURCE_USER = "IAMUser"
RESOURCE_ACCESS_KEY = "IAMAccessKey"
RESOURCE_POLICY = "IAMPolicy"
RESOURCE_CREDENTIALS = "BindingCredentials"

OUTPUT_CREDENTIALS_ARN = "CredentialsARN"

POLICY_VERSION = "2012-10-17"


class AccessPolicy(str, Enum):
    FULL = "full"
    PRODUCER = "producer"
    CONSUMER = "consumer"


ACCESS_POLICY_ACTIONS: Dict[AccessPolicy, List[str]] = {
    AccessPolicy.FULL: [
        "sqs:ChangeMessageVisibility",
        "sqs:DeleteMessage",
        "sqs:GetQueueAttributes",
        "sqs:GetQueueUrl",
        "sqs:ListDeadLetterSourceQueues",
        "sqs:ListQueueTags",
        "sqs:PurgeQueue",
        "sqs:ReceiveMessage",
        "sqs:SendMessage",
    ],
    AccessPolicy.PRODUCER: [
        "sqs:GetQueueAttributes",
        "sqs:GetQueueUrl",
        "sqs:ListDeadLetterSourceQueues",
        "sqs:ListQueueTags",
        "sqs:SendMessage",
    ],
    AccessPolicy.CONSUMER: [
        "sqs:DeleteMessage",
        "sqs:GetQueueAttributes",
        "sqs:GetQueueUrl",
        "sqs:ListDeadLetterSourceQueues",
        "sqs:ListQueueTags",
        "sqs:PurgeQueue",
        "sqs:ReceiveMessage",
    ],
}


def access_policy_actions(access_policy: str) -> List[str]:
    """
    Canned action list for an access policy name. Empty means "full".

    Raises:
        UnknownAccessPolicyError: for any other name, so a typo never
            falls back to a broader grant
    """
    if not access_policy:
        access_policy = AccessPolicy.FULL.value
    try:
        policy = AccessPolicy(access_policy)
    except ValueError:
        raise UnknownAccessPolicyError(access_policy)
    return list(ACCESS_POLICY_ACTIONS[policy])


def credentials_secret_string(primary_queue_url: str, secondary_queue_url: str) -> Dict[str, str]:
    """
    Fn::Sub document for the credentials secret.

    ${IAMAccessKey} and ${IAMAccessKey.SecretAccessKey} are resolved by
    CloudFormation at apply time, so the secret key never passes through
    the broker.
    """
    placeholders = {
        "aws_access_key_id": "${%s}" % RESOURCE_ACCESS_KEY,
        "aws_secret_access_key": "${%s.SecretAccessKey}" % RESOURCE_ACCESS_KEY,
        "aws_region": "${AWS::Region}",
        "primary_queue_url": primary_queue_url,
        "secondary_queue_url": secondary_queue_url,
    }
    return sub(json.dumps(placeholders, sort_keys=True))


def render_user_template(
    binding_id: str,
    resource_prefix: str,
    permissions_boundary: str,
    tags: Mapping[str, str],
    primary_queue_arn: str,
    secondary_queue_arn: str,
    access_policy: str,
    primary_queue_url: str = "",
    secondary_queue_url: str = "",
    additional_user_policy: str = "",
) -> Dict[str, Any]:
    """
    Build the binding template.

    The policy resource list is exactly the two queue ARNs; never a wildcard.

    Raises:
        UnknownAccessPolicyError: before anything is rendered
    """
    actions = access_policy_actions(access_policy)

    template = new_template(f"SQS binding {binding_id}")

    user_properties: Dict[str, Any] = {
        "UserName": stack_naming.binding_user_name(binding_id),
        "Path": stack_naming.binding_user_path(resource_prefix),
        "Tags": tag_list(tags),
    }
    if permissions_boundary:
        user_properties["PermissionsBoundary"] = permissions_boundary
    if additional_user_policy:
        user_properties["ManagedPolicyArns"] = [additional_user_policy]

    template["Resources"][RESOURCE_USER] = {
        "Type": "AWS::IAM::User",
        "Properties": user_properties,
    }
    template["Resources"][RESOURCE_ACCESS_KEY] = {
        "Type": "AWS::IAM::AccessKey",
        "Properties": {
            "Status": "Active",
            "UserName": ref(RESOURCE_USER),
        },
    }
    template["Resources"][RESOURCE_POLICY] = {
        "Type": "AWS::IAM::Policy",
        "Properties": {
            "PolicyName": f"sqs-access-{binding_id}",
            "PolicyDocument": {
                "Version": POLICY_VERSION,
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Action": actions,
                        "Resource": [primary_queue_arn, secondary_queue_arn],
                    }
                ],
            },
            "Users": [ref(RESOURCE_USER)],
        },
    }
    template["Resources"][RESOURCE_CREDENTIALS] = {
        "Type": "AWS::SecretsManager::Secret",
        "Properties": {
            "Description": f"Credentials for binding {binding_id}",
            "SecretString": credentials_secret_string(primary_queue_url, secondary_queue_url),
            "Tags": tag_list(tags),
        },
    }

    template["Outputs"][OUTPUT_CREDENTIALS_ARN] = output(
        "Binding credentials secret ARN",
        ref(RESOURCE_CREDENTIALS),
        stack_naming.export_name(
            stack_naming.stack_name(resource_prefix, binding_id), OUTPUT_CREDENTIALS_ARN
        ),
    )

    return template
