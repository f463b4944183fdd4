"""AWS-specific constants for EC2 and IAM operations."""

from devrig.constants import OSFamily

IMAGE_QUERIES = {
    OSFamily.AL2023: {
        "owner": "amazon",
        "name": "al2023-ami-2023*-x86_64",
        "root_device": "/dev/xvda",
    },
    OSFamily.UBUNTU: {
        "owner": "099720109477",
        "name": "ubuntu/images/hvm-ssd-gp3/ubuntu-noble-24.04-amd64-server-*",
        "root_device": "/dev/sda1",
    },
}
"""Image lookup per family: owner account, name pattern and root device.

099720109477 is Canonical's publisher account.
"""

SSH_SECURITY_GROUP_DEFAULT_CIDR = "0.0.0.0/0"
"""CIDR opened on port 22 in public mode when none is configured."""

NOT_FOUND_ERROR_CODES = frozenset(("InvalidInstanceID.NotFound",))
"""describe_instances error codes meaning the instance no longer exists."""

MALFORMED_ID_ERROR_CODE = "InvalidInstanceID.Malformed"
"""Error code for an instance ID that EC2 cannot parse."""

CREDENTIAL_ERROR_CODES = frozenset(
    (
        "AuthFailure",
        "UnauthorizedOperation",
        "AccessDenied",
        "ExpiredToken",
        "ExpiredTokenException",
        "RequestExpired",
        "InvalidClientTokenId",
        "SignatureDoesNotMatch",
    )
)
"""Error codes meaning the credentials were rejected or lack permission.

These are not transient and must not be reported as an unreachable instance.
"""

BEDROCK_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonBedrockFullAccess"
"""Managed policy attached to the instance role."""

EC2_TRUST_POLICY = (
    '{"Version":"2012-10-17","Statement":[{"Effect":"Allow",'
    '"Principal":{"Service":"ec2.amazonaws.com"},"Action":"sts:AssumeRole"}]}'
)
"""Trust policy letting EC2 assume the instance role."""

VALID_INSTANCE_TYPES = frozenset(
    (
        "t2.micro",
        "t2.small",
        "t2.medium",
        "t2.large",
        "t2.xlarge",
        "t2.2xlarge",
        "t3.micro",
        "t3.small",
        "t3.medium",
        "t3.large",
        "t3.xlarge",
        "t3.2xlarge",
        "t3a.micro",
        "t3a.small",
        "t3a.medium",
        "t3a.large",
        "t3a.xlarge",
        "t3a.2xlarge",
        "m5.large",
        "m5.xlarge",
        "m5.2xlarge",
        "m5.4xlarge",
        "m6i.large",
        "m6i.xlarge",
        "m6i.2xlarge",
        "c5.large",
        "c5.xlarge",
        "c5.2xlarge",
        "c6i.large",
        "c6i.xlarge",
        "r5.large",
        "r5.xlarge",
    )
)
"""Supported x86_64 instance types.

The image queries only select x86_64 images, so Graviton types are excluded.
"""
