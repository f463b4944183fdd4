"""AMI resolution for EC2 instances."""

import logging
from typing import Any

from devrig.constants import OSFamily
from devrig.providers.aws.constants import IMAGE_QUERIES
from devrig.providers.aws.errors import handle_aws_errors

logger = logging.getLogger(__name__)


class AMIResolver:
    """Resolve the image to launch for an image family."""

    def __init__(self, ec2_client: Any, region: str) -> None:
        """Initialize AMIResolver.

        Parameters
        ----------
        ec2_client : Any
            Boto3 EC2 client
        region : str
            AWS region name
        """
        self.ec2_client = ec2_client
        self.region = region

    def resolve_ami(self, os_family: OSFamily, image_id: str | None = None) -> str:
        """Return the explicit image ID or the newest image of the family.

        Parameters
        ----------
        os_family : OSFamily
            Image family to look up
        image_id : str | None
            Explicit AMI ID; skips the lookup when set

        Returns
        -------
        str
            AMI ID to launch

        Raises
        ------
        ValueError
            If no available image matches the family query
        """
        if image_id:
            return image_id

        query = IMAGE_QUERIES[OSFamily(os_family)]
        return self.find_ami_by_query(name_pattern=query["name"], owner=query["owner"])

    def find_ami_by_query(self, name_pattern: str, owner: str | None = None) -> str:
        """Query AWS for AMI matching pattern and return newest by CreationDate.

        Parameters
        ----------
        name_pattern : str
            AMI name pattern (supports * and ? wildcards)
        owner : str | None
            AWS account ID or alias (e.g., "099720109477", "amazon")

        Returns
        -------
        str
            Image ID of the newest matching AMI

        Raises
        ------
        ValueError
            If no AMIs match the filters
        """
        kwargs: dict[str, Any] = {
            "Filters": [
                {"Name": "name", "Values": [name_pattern]},
                {"Name": "state", "Values": ["available"]},
            ]
        }
        if owner:
            kwargs["Owners"] = [owner]

        with handle_aws_errors():
            response = self.ec2_client.describe_images(**kwargs)

        if not response["Images"]:
            owner_msg = f"owner={owner}, " if owner else ""
            raise ValueError(
                f"No AMI found for {owner_msg}name={name_pattern} in region {self.region}"
            )

        newest = max(response["Images"], key=lambda image: image["CreationDate"])
        logger.info("AMI: %s (%s)", newest["ImageId"], newest.get("Name", name_pattern))

        return newest["ImageId"]
