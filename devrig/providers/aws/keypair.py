"""SSH key pair management for EC2 instances."""

import logging
import os
from pathlib import Path
from typing import Any

from devrig.providers.aws.errors import handle_aws_errors
from devrig.providers.exceptions import ProviderAPIError

logger = logging.getLogger(__name__)


class KeyPairManager:
    """Create or reuse the named EC2 key pair."""

    def __init__(self, ec2_client: Any, region: str) -> None:
        """Initialize KeyPairManager.

        Parameters
        ----------
        ec2_client : Any
            Boto3 EC2 client
        region : str
            AWS region name
        """
        self.ec2_client = ec2_client
        self.region = region

    def key_pair_exists(self, key_name: str) -> bool:
        """Return whether the key pair is registered in the region."""
        try:
            with handle_aws_errors():
                self.ec2_client.describe_key_pairs(KeyNames=[key_name])
        except ProviderAPIError as e:
            if e.error_code == "InvalidKeyPair.NotFound":
                return False
            raise
        return True

    def ensure_key_pair(self, key_name: str, key_file: Path) -> Path:
        """Reuse the key pair if registered, otherwise create it.

        Parameters
        ----------
        key_name : str
            EC2 key pair name
        key_file : Path
            Where the private key is (or will be) stored

        Returns
        -------
        Path
            Path of the private key file
        """
        if self.key_pair_exists(key_name):
            logger.info("Using existing key pair: %s", key_name)
            if not key_file.exists():
                logger.warning(
                    "Key file not found at %s - you may need to recreate the key pair",
                    key_file,
                )
            return key_file

        logger.info("Creating key pair: %s", key_name)

        with handle_aws_errors():
            response = self.ec2_client.create_key_pair(KeyName=key_name)

        key_file.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

        if key_file.exists():
            key_file.chmod(0o600)

        fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(response["KeyMaterial"])
        key_file.chmod(0o400)

        logger.info("Key saved to: %s", key_file)
        return key_file
