"""EC2 instance management for devrig."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, WaiterError

from devrig.constants import (
    MANAGED_BY_TAG,
    TRANSITIONAL_STATES,
    WAITER_DELAY_SECONDS,
    WAITER_MAX_ATTEMPTS,
    RemoteState,
)
from devrig.core.config import DevRigConfig
from devrig.core.exceptions import ProvisioningTimeoutError, StateFileError
from devrig.core.interfaces import InstanceStatus
from devrig.core.outcomes import CleanupOutcome
from devrig.providers.aws.ami import AMIResolver
from devrig.providers.aws.constants import (
    IMAGE_QUERIES,
    CREDENTIAL_ERROR_CODES,
    MALFORMED_ID_ERROR_CODE,
    NOT_FOUND_ERROR_CODES,
    VALID_INSTANCE_TYPES,
)
from devrig.providers.aws.errors import handle_aws_errors
from devrig.providers.aws.iam import IAMRoleManager
from devrig.providers.aws.keypair import KeyPairManager
from devrig.providers.aws.network import NetworkManager
from devrig.providers.aws.utils import extract_instance_from_response
from devrig.providers.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
)

logger = logging.getLogger(__name__)

WAITER_NAMES = {
    RemoteState.RUNNING: "instance_running",
    RemoteState.STOPPED: "instance_stopped",
    RemoteState.TERMINATED: "instance_terminated",
}


class EC2Manager:
    """Manage the dev rig instance through the EC2 API.

    Parameters
    ----------
    region : str
        AWS region name
    boto3_client_factory : Callable[..., Any] | None
        Factory creating boto3 clients (default: boto3.client)
    iam_manager_factory : Callable[..., IAMRoleManager] | None
        Factory creating the IAM role manager (default: IAMRoleManager)
    waiter_delay : int
        Seconds between state polls
    waiter_max_attempts : int
        Number of polls before a wait times out
    sleep : Callable[[float], None]
        Sleep function used by the settle loop
    """

    def __init__(
        self,
        region: str,
        boto3_client_factory: Callable[..., Any] | None = None,
        iam_manager_factory: Callable[..., IAMRoleManager] | None = None,
        waiter_delay: int = WAITER_DELAY_SECONDS,
        waiter_max_attempts: int = WAITER_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.region = region
        self.boto3_client_factory = boto3_client_factory or boto3.client
        self.iam_manager_factory = iam_manager_factory or IAMRoleManager
        self.waiter_delay = waiter_delay
        self.waiter_max_attempts = waiter_max_attempts
        self.sleep = sleep

        self.ec2_client = self.boto3_client_factory("ec2", region_name=region)

        self.ami_resolver = AMIResolver(self.ec2_client, region)
        self.keypair_manager = KeyPairManager(self.ec2_client, region)
        self.network_manager = NetworkManager(self.ec2_client, region)

    @classmethod
    def from_config(cls, config: DevRigConfig, **kwargs: Any) -> EC2Manager:
        return cls(
            region=config.region,
            waiter_delay=config.waiter_delay,
            waiter_max_attempts=config.waiter_max_attempts,
            **kwargs,
        )

    def get_account_id(self) -> str:
        """Verify credentials with STS and return the account ID.

        Raises
        ------
        ProviderCredentialsError
            If no credentials are configured
        ProviderAPIError
            If the credentials are rejected (e.g., expired token)
        """
        sts_client = self.boto3_client_factory("sts", region_name=self.region)

        with handle_aws_errors():
            identity = sts_client.get_caller_identity()

        return identity["Account"]

    def describe_instance(self, instance_id: str) -> InstanceStatus:
        """Query the state and address of an instance.

        Instances that no longer exist map to TERMINATED, since terminated
        instances are reaped and become unqueryable. Transient failures map to
        UNKNOWN, which callers must not treat as authoritative.

        Parameters
        ----------
        instance_id : str
            Instance ID to query

        Returns
        -------
        InstanceStatus
            Observed state and public address

        Raises
        ------
        ProviderCredentialsError
            If no credentials are configured
        ProviderAPIError
            If the credentials are rejected or lack permission
        StateFileError
            If EC2 rejects the recorded instance ID as malformed
        """
        try:
            with handle_aws_errors():
                response = self.ec2_client.describe_instances(InstanceIds=[instance_id])
        except ProviderAPIError as e:
            if e.error_code in NOT_FOUND_ERROR_CODES:
                logger.debug("Instance %s not found: %s", instance_id, e.error_code)
                return InstanceStatus(state=RemoteState.TERMINATED)
            if e.error_code == MALFORMED_ID_ERROR_CODE:
                raise StateFileError(
                    f"Instance ID {instance_id!r} in the local record is malformed"
                ) from e
            if e.error_code in CREDENTIAL_ERROR_CODES:
                raise
            logger.warning("Failed to query instance %s: %s", instance_id, e)
            return InstanceStatus(state=RemoteState.UNKNOWN)
        except (ProviderConnectionError, BotoCoreError) as e:
            logger.warning("Failed to query instance %s: %s", instance_id, e)
            return InstanceStatus(state=RemoteState.UNKNOWN)

        instance = extract_instance_from_response(response)
        if instance is None:
            return InstanceStatus(state=RemoteState.TERMINATED)

        raw_state = instance.get("State", {}).get("Name")
        state = RemoteState.parse(raw_state)

        if state == RemoteState.UNKNOWN:
            logger.warning(
                "Instance %s reported unrecognized state %r", instance_id, raw_state
            )

        return InstanceStatus(state=state, public_ip=instance.get("PublicIpAddress"))

    def _validate_instance_type(self, instance_type: str) -> None:
        """Validate that instance type is supported.

        Raises
        ------
        ValueError
            If instance type is invalid
        """
        if instance_type not in VALID_INSTANCE_TYPES:
            raise ValueError(
                f"Invalid instance type: {instance_type}. "
                f"Must be one of: {', '.join(sorted(VALID_INSTANCE_TYPES))}"
            )

    def launch_instance(self, config: DevRigConfig, user_data: str) -> str:
        """Launch the instance without waiting for it to run.

        Key pair, security group and (optionally) IAM instance profile are
        reused when they already exist.

        Parameters
        ----------
        config : DevRigConfig
            Validated configuration
        user_data : str
            Bootstrap descriptor, passed through unexamined

        Returns
        -------
        str
            ID of the new instance

        Raises
        ------
        ValueError
            If instance type is invalid, no image matches, or the region has
            no default VPC
        """
        self._validate_instance_type(config.instance_type)

        ami_id = self.ami_resolver.resolve_ami(config.os_family, config.image_id)
        self.keypair_manager.ensure_key_pair(config.key_name, config.key_file)
        sg_id = self.network_manager.ensure_security_group(
            config.security_group_name, config.is_private, config.ssh_allowed_cidr
        )

        profile_arn = None
        if config.enable_bedrock:
            logger.info("Setting up IAM role for Bedrock access...")
            iam_manager = self.iam_manager_factory(
                region=self.region, admin_profile=config.admin_profile
            )
            profile_arn = iam_manager.ensure_instance_profile(config.iam_role_name)

        run_args: dict[str, Any] = {
            "ImageId": ami_id,
            "InstanceType": config.instance_type,
            "KeyName": config.key_name,
            "SecurityGroupIds": [sg_id],
            "UserData": user_data,
            "MinCount": 1,
            "MaxCount": 1,
            "BlockDeviceMappings": [
                {
                    "DeviceName": IMAGE_QUERIES[config.os_family]["root_device"],
                    "Ebs": {
                        "VolumeSize": config.disk_size,
                        "VolumeType": "gp3",
                        "DeleteOnTermination": True,
                    },
                }
            ],
            "TagSpecifications": [
                {
                    "ResourceType": "instance",
                    "Tags": [
                        {"Key": "Name", "Value": config.instance_name},
                        {"Key": "ManagedBy", "Value": MANAGED_BY_TAG},
                    ],
                }
            ],
        }

        if profile_arn:
            run_args["IamInstanceProfile"] = {"Arn": profile_arn}
            logger.info("Attaching IAM role for Bedrock access")

        logger.info("Launching EC2 instance...")

        with handle_aws_errors():
            response = self.ec2_client.run_instances(**run_args)

        instance_id = response["Instances"][0]["InstanceId"]
        logger.info("Instance launched: %s", instance_id)

        return instance_id

    def _change_state(self, operation: str, instance_id: str) -> None:
        """Issue a state change, treating IncorrectInstanceState as satisfied."""
        try:
            with handle_aws_errors():
                getattr(self.ec2_client, operation)(InstanceIds=[instance_id])
        except ProviderAPIError as e:
            if e.error_code != "IncorrectInstanceState":
                raise
            logger.info("%s on %s skipped: %s", operation, instance_id, e)

    def start_instance(self, instance_id: str) -> None:
        """Request an instance start."""
        logger.info("Starting instance %s...", instance_id)
        self._change_state("start_instances", instance_id)

    def stop_instance(self, instance_id: str) -> None:
        """Request an instance stop."""
        logger.info("Stopping instance %s...", instance_id)
        self._change_state("stop_instances", instance_id)

    def terminate_instance(self, instance_id: str) -> list[str]:
        """Request termination of an instance.

        Parameters
        ----------
        instance_id : str
            Instance ID to terminate

        Returns
        -------
        list[str]
            Security group IDs attached before termination, for cleanup
        """
        sg_ids: list[str] = []

        try:
            with handle_aws_errors():
                response = self.ec2_client.describe_instances(InstanceIds=[instance_id])
            instance = extract_instance_from_response(response) or {}
            sg_ids = [sg["GroupId"] for sg in instance.get("SecurityGroups", [])]
        except ProviderAPIError as e:
            logger.debug("Could not read security groups of %s: %s", instance_id, e)

        logger.info("Terminating instance %s...", instance_id)

        try:
            with handle_aws_errors():
                self.ec2_client.terminate_instances(InstanceIds=[instance_id])
        except ProviderAPIError as e:
            if e.error_code not in NOT_FOUND_ERROR_CODES:
                raise
            logger.info("Instance %s is already gone", instance_id)

        return sg_ids

    def wait_for_state(
        self, instance_id: str, target: RemoteState, timeout: int | None = None
    ) -> InstanceStatus:
        """Block until the instance reaches the target state.

        Parameters
        ----------
        instance_id : str
            Instance ID to wait for
        target : RemoteState
            RUNNING, STOPPED or TERMINATED
        timeout : int | None
            Upper bound in seconds (default: delay * max attempts)

        Returns
        -------
        InstanceStatus
            Status read after the wait, carrying the fresh address

        Raises
        ------
        ProvisioningTimeoutError
            If the state is not reached in time or the waiter hits a failure state
        """
        max_attempts = self.waiter_max_attempts
        if timeout is not None and self.waiter_delay > 0:
            max_attempts = max(1, timeout // self.waiter_delay)

        waiter = self.ec2_client.get_waiter(WAITER_NAMES[target])

        try:
            waiter.wait(
                InstanceIds=[instance_id],
                WaiterConfig={
                    "Delay": self.waiter_delay,
                    "MaxAttempts": max_attempts,
                },
            )
        except WaiterError as e:
            raise ProvisioningTimeoutError(
                f"Instance {instance_id} did not reach '{target.value}' "
                f"within {self.waiter_delay * max_attempts}s: {e}"
            ) from e

        return self.describe_instance(instance_id)

    def wait_until_settled(
        self, instance_id: str, timeout: int | None = None
    ) -> InstanceStatus:
        """Poll until the instance leaves its transitional state.

        UNKNOWN answers are treated as transient and polled through.

        Parameters
        ----------
        instance_id : str
            Instance ID to wait for
        timeout : int | None
            Upper bound in seconds (default: delay * max attempts)

        Returns
        -------
        InstanceStatus
            First non-transitional, known status

        Raises
        ------
        ProvisioningTimeoutError
            If the instance is still transitioning when the wait expires
        """
        if timeout is None:
            timeout = self.waiter_delay * self.waiter_max_attempts

        deadline = time.monotonic() + timeout

        while True:
            status = self.describe_instance(instance_id)

            settled = status.state not in TRANSITIONAL_STATES
            if settled and status.state != RemoteState.UNKNOWN:
                return status

            if time.monotonic() >= deadline:
                raise ProvisioningTimeoutError(
                    f"Instance {instance_id} still '{status.state.value}' after {timeout}s"
                )

            logger.info("Instance %s is %s, waiting...", instance_id, status.state.value)
            self.sleep(self.waiter_delay)

    def delete_security_group(self, sg_id: str) -> CleanupOutcome:
        """Delete a security group, tolerating failure."""
        return self.network_manager.delete_security_group(sg_id)
