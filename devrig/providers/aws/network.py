"""Network and security group management for EC2 instances."""

import hashlib
import logging
from typing import Any

from devrig.constants import MANAGED_BY_TAG
from devrig.core.outcomes import CleanupOutcome
from devrig.providers.aws.constants import SSH_SECURITY_GROUP_DEFAULT_CIDR
from devrig.providers.aws.errors import handle_aws_errors
from devrig.providers.exceptions import ProviderAPIError, ProviderError

logger = logging.getLogger(__name__)


def security_group_name_for(base_name: str, private: bool) -> str:
    """Return the security group name for a reachability mode.

    The suffix is derived from a hash of the mode, so each mode maps to one
    stable group and switching modes never creates look-alike duplicates.

    Parameters
    ----------
    base_name : str
        Configured security group base name
    private : bool
        Whether the instance is reachable over Tailscale only
    """
    mode = "private" if private else "public"
    digest = hashlib.sha256(mode.encode()).hexdigest()[:8]
    return f"{base_name}-{digest}"


class NetworkManager:
    """Manage EC2 network resources (security groups, VPCs)."""

    def __init__(self, ec2_client: Any, region: str) -> None:
        """Initialize NetworkManager.

        Parameters
        ----------
        ec2_client : Any
            Boto3 EC2 client
        region : str
            AWS region name
        """
        self.ec2_client = ec2_client
        self.region = region

    def get_default_vpc_id(self) -> str:
        """Get the default VPC ID for the region.

        Returns
        -------
        str
            Default VPC ID

        Raises
        ------
        ValueError
            If no default VPC is found
        """
        with handle_aws_errors():
            vpcs = self.ec2_client.describe_vpcs(
                Filters=[{"Name": "isDefault", "Values": ["true"]}]
            )

        if not vpcs["Vpcs"]:
            raise ValueError(f"No default VPC found in region '{self.region}'")

        return vpcs["Vpcs"][0]["VpcId"]

    def find_security_group(self, sg_name: str, vpc_id: str) -> str | None:
        """Return the ID of the named group in the VPC, if any."""
        with handle_aws_errors():
            existing = self.ec2_client.describe_security_groups(
                Filters=[
                    {"Name": "group-name", "Values": [sg_name]},
                    {"Name": "vpc-id", "Values": [vpc_id]},
                ]
            )

        if existing["SecurityGroups"]:
            return existing["SecurityGroups"][0]["GroupId"]
        return None

    def ensure_security_group(
        self,
        base_name: str,
        private: bool,
        ssh_allowed_cidr: str | None = None,
    ) -> str:
        """Reuse or create the security group for the reachability mode.

        Parameters
        ----------
        base_name : str
            Configured security group base name
        private : bool
            Leave port 22 closed when True
        ssh_allowed_cidr : str | None
            CIDR block for SSH access in public mode. Defaults to 0.0.0.0/0

        Returns
        -------
        str
            Security group ID
        """
        sg_name = security_group_name_for(base_name, private)
        vpc_id = self.get_default_vpc_id()

        sg_id = self.find_security_group(sg_name, vpc_id)
        if sg_id:
            logger.info("Using existing security group: %s (%s)", sg_name, sg_id)
            return sg_id

        logger.info("Creating security group: %s", sg_name)
        description = (
            "Dev rig security group - private mode (Tailscale only)"
            if private
            else "Dev rig security group - SSH access"
        )

        with handle_aws_errors():
            response = self.ec2_client.create_security_group(
                GroupName=sg_name,
                Description=description,
                VpcId=vpc_id,
                TagSpecifications=[
                    {
                        "ResourceType": "security-group",
                        "Tags": [{"Key": "ManagedBy", "Value": MANAGED_BY_TAG}],
                    }
                ],
            )
        sg_id = response["GroupId"]

        if private:
            logger.warning(
                "Private mode: SSH port 22 will NOT be opened. Use Tailscale to connect."
            )
            return sg_id

        cidr_block = ssh_allowed_cidr or SSH_SECURITY_GROUP_DEFAULT_CIDR

        if cidr_block == SSH_SECURITY_GROUP_DEFAULT_CIDR:
            logger.warning(
                "SSH security group is using %s (all IPs). "
                "Consider restricting ssh_allowed_cidr to your IP range.",
                SSH_SECURITY_GROUP_DEFAULT_CIDR,
            )

        with handle_aws_errors():
            self.ec2_client.authorize_security_group_ingress(
                GroupId=sg_id,
                IpPermissions=[
                    {
                        "IpProtocol": "tcp",
                        "FromPort": 22,
                        "ToPort": 22,
                        "IpRanges": [{"CidrIp": cidr_block}],
                    }
                ],
            )

        return sg_id

    def delete_security_group(self, sg_id: str) -> CleanupOutcome:
        """Delete a security group, tolerating failure.

        The group may still be attached to another instance, in which case
        the DependencyViolation is logged and returned rather than raised.

        Parameters
        ----------
        sg_id : str
            Security group ID

        Returns
        -------
        CleanupOutcome
            DONE when deleted or already gone, TOLERATED otherwise
        """
        step = f"delete-security-group:{sg_id}"

        try:
            with handle_aws_errors():
                self.ec2_client.delete_security_group(GroupId=sg_id)
        except ProviderAPIError as e:
            if e.error_code == "InvalidGroup.NotFound":
                return CleanupOutcome.done(step)
            logger.warning("Could not delete security group %s: %s", sg_id, e)
            return CleanupOutcome.tolerated(step, str(e))
        except ProviderError as e:
            logger.warning("Could not delete security group %s: %s", sg_id, e)
            return CleanupOutcome.tolerated(step, str(e))

        logger.info("Deleted security group %s", sg_id)
        return CleanupOutcome.done(step)
