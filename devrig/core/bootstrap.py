"""Build the cloud-init user-data attached when the instance is created."""

import logging
import re
from string import Template

from devrig.constants import USER_DATA_MAX_BYTES, OSFamily
from devrig.core.config import SSH_USERS, DevRigConfig
from devrig.core.exceptions import BootstrapError
from devrig.templates import PACKAGE_SETUP, USER_DATA_TEMPLATE

logger = logging.getLogger(__name__)

AUTHKEY_PATTERN = re.compile(r"^[A-Za-z0-9._:-]+$")

MANUAL_TAILSCALE_STEP = "# Run: sudo tailscale up"


class UserDataTemplate(Template):
    """Template using '@' placeholders so shell '$' expansions pass through."""

    delimiter = "@"


def tailscale_setup_step(authkey: str | None) -> str:
    """Return the Tailscale line of the user-data script.

    Parameters
    ----------
    authkey : str | None
        Auth key, or None to leave a manual instruction instead

    Raises
    ------
    BootstrapError
        If the key contains characters that would break shell quoting
    """
    if not authkey:
        return MANUAL_TAILSCALE_STEP

    if not AUTHKEY_PATTERN.match(authkey):
        raise BootstrapError("Tailscale auth key contains invalid characters")

    return f'tailscale up --authkey="{authkey}" --ssh'


class BootstrapDescriptorBuilder:
    """Render the first-boot user-data script for an image family.

    Parameters
    ----------
    os_family : OSFamily | str
        Image family the script targets
    region : str
        Region exported as the default AWS_REGION in the login shell
    """

    def __init__(self, os_family: OSFamily | str, region: str) -> None:
        self.os_family = os_family
        self.region = region

    @classmethod
    def from_config(cls, config: DevRigConfig) -> "BootstrapDescriptorBuilder":
        return cls(config.os_family, config.region)

    def build(self, tailscale_authkey: str | None = None) -> str:
        """Render the user-data script.

        Parameters
        ----------
        tailscale_authkey : str | None
            Auth key for unattended tailnet join

        Returns
        -------
        str
            The user-data script

        Raises
        ------
        BootstrapError
            If the family is unknown, the key is invalid, a placeholder is
            left unresolved, or the result exceeds the EC2 user-data limit
        """
        try:
            family = OSFamily(self.os_family)
        except ValueError as e:
            raise BootstrapError(f"Unsupported OS family: {self.os_family}") from e

        try:
            user_data = UserDataTemplate(USER_DATA_TEMPLATE).substitute(
                package_setup=PACKAGE_SETUP[family.value],
                login_user=SSH_USERS[family],
                aws_region=self.region,
                tailscale_setup=tailscale_setup_step(tailscale_authkey),
            )
        except (KeyError, ValueError) as e:
            raise BootstrapError(f"Failed to render user-data template: {e}") from e

        size = len(user_data.encode())
        if size > USER_DATA_MAX_BYTES:
            raise BootstrapError(
                f"User-data is {size} bytes, exceeding the {USER_DATA_MAX_BYTES} byte limit"
            )

        if tailscale_authkey:
            logger.info("Tailscale will auto-connect")

        return user_data
