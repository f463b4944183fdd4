"""IAM role and instance profile management for Bedrock access."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import boto3
from botocore.exceptions import ProfileNotFound

from devrig.constants import IAM_PROPAGATION_DELAY_SECONDS
from devrig.providers.aws.constants import BEDROCK_POLICY_ARN, EC2_TRUST_POLICY
from devrig.providers.aws.errors import handle_aws_errors
from devrig.providers.exceptions import ProviderAPIError, ProviderError

logger = logging.getLogger(__name__)


class IAMRoleManager:
    """Ensure the instance role and profile exist.

    IAM calls often need broader permissions than EC2 calls, so the manager
    first tries the default credentials and then the admin profile override.

    Parameters
    ----------
    region : str
        AWS region name
    admin_profile : str | None
        Profile to fall back to when the default credentials lack IAM access
    session_factory : Callable[..., Any] | None
        Factory creating boto3 sessions (default: boto3.Session)
    sleep : Callable[[float], None]
        Sleep function used while waiting for propagation
    """

    def __init__(
        self,
        region: str,
        admin_profile: str | None = None,
        session_factory: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.region = region
        self.admin_profile = admin_profile
        self.session_factory = session_factory or boto3.Session
        self.sleep = sleep

    def _can_use(self, iam_client: Any) -> bool:
        try:
            with handle_aws_errors():
                iam_client.list_roles(MaxItems=1)
        except ProviderError as e:
            logger.debug("IAM access check failed: %s", e)
            return False
        return True

    def get_iam_client(self) -> Any | None:
        """Return an IAM client with permission to manage roles, if any."""
        session = self.session_factory(region_name=self.region)
        iam_client = session.client("iam")

        if self._can_use(iam_client):
            return iam_client

        if self.admin_profile:
            try:
                admin_session = self.session_factory(
                    profile_name=self.admin_profile, region_name=self.region
                )
                admin_client = admin_session.client("iam")
            except ProfileNotFound as e:
                logger.warning("Cannot load AWS profile %s: %s", self.admin_profile, e)
                return None

            if self._can_use(admin_client):
                logger.info("Using %s profile for IAM operations", self.admin_profile)
                return admin_client

        return None

    def _role_exists(self, iam_client: Any, role_name: str) -> bool:
        try:
            with handle_aws_errors():
                iam_client.get_role(RoleName=role_name)
        except ProviderAPIError as e:
            if e.error_code == "NoSuchEntity":
                return False
            raise
        return True

    def _get_instance_profile_arn(self, iam_client: Any, profile_name: str) -> str | None:
        try:
            with handle_aws_errors():
                response = iam_client.get_instance_profile(InstanceProfileName=profile_name)
        except ProviderAPIError as e:
            if e.error_code == "NoSuchEntity":
                return None
            raise
        return response["InstanceProfile"]["Arn"]

    def ensure_instance_profile(self, role_name: str) -> str | None:
        """Ensure role and instance profile, returning the profile ARN.

        Parameters
        ----------
        role_name : str
            Name used for both the role and the instance profile

        Returns
        -------
        str | None
            Instance profile ARN, or None when no credentials with IAM
            permissions are available and the instance launches without a role
        """
        iam_client = self.get_iam_client()

        if iam_client is None:
            logger.warning("No IAM permissions available. Skipping Bedrock role setup.")
            logger.warning(
                "Set AWS_ADMIN_PROFILE to a profile with IAM permissions, "
                "or manually attach a role later."
            )
            return None

        if self._role_exists(iam_client, role_name):
            logger.info("Using existing IAM role: %s", role_name)
        else:
            logger.info("Creating IAM role: %s", role_name)
            with handle_aws_errors():
                iam_client.create_role(
                    RoleName=role_name,
                    AssumeRolePolicyDocument=EC2_TRUST_POLICY,
                    Description="IAM role for EC2 dev rig with Bedrock access",
                )
                iam_client.attach_role_policy(
                    RoleName=role_name, PolicyArn=BEDROCK_POLICY_ARN
                )

        profile_arn = self._get_instance_profile_arn(iam_client, role_name)
        if profile_arn:
            logger.info("Using existing instance profile: %s", role_name)
            return profile_arn

        logger.info("Creating instance profile: %s", role_name)
        with handle_aws_errors():
            response = iam_client.create_instance_profile(InstanceProfileName=role_name)
            iam_client.add_role_to_instance_profile(
                InstanceProfileName=role_name, RoleName=role_name
            )

        logger.info("Waiting for instance profile to propagate...")
        self.sleep(IAM_PROPAGATION_DELAY_SECONDS)

        return response["InstanceProfile"]["Arn"]
