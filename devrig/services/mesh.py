"""Tailscale operations on the instance and on the local machine."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from collections.abc import Callable

import paramiko

from devrig.constants import MESH_LOGOUT_TIMEOUT_SECONDS
from devrig.core.outcomes import CleanupOutcome
from devrig.core.state import InstanceRecord
from devrig.services.ssh import SSHManager

logger = logging.getLogger(__name__)

LOGOUT_COMMAND = "sudo tailscale logout"

PEER_HOSTNAME_PREFIX = "ip-"


class TailscaleClient:
    """Best-effort Tailscale helper.

    Parameters
    ----------
    ssh_manager_factory : Callable[..., SSHManager] | None
        Factory creating SSH managers (default: SSHManager)
    run : Callable[..., subprocess.CompletedProcess] | None
        Subprocess runner for the local tailscale binary (default: subprocess.run)
    which : Callable[[str], str | None] | None
        Binary lookup (default: shutil.which)
    """

    def __init__(
        self,
        ssh_manager_factory: Callable[..., SSHManager] | None = None,
        run: Callable[..., subprocess.CompletedProcess] | None = None,
        which: Callable[[str], str | None] | None = None,
    ) -> None:
        self.ssh_manager_factory = ssh_manager_factory or SSHManager
        self.run = run or subprocess.run
        self.which = which or shutil.which

    def logout(self, record: InstanceRecord) -> CleanupOutcome:
        """Log the instance out of the tailnet so its node is released.

        Parameters
        ----------
        record : InstanceRecord
            Record of the instance about to be terminated

        Returns
        -------
        CleanupOutcome
            DONE when the logout command succeeded, TOLERATED otherwise
        """
        step = "tailscale-logout"

        if not record.public_ip:
            return CleanupOutcome.tolerated(step, "instance has no public IP address")

        logger.info("Logging out of Tailscale...")

        ssh_manager = self.ssh_manager_factory(
            host=record.public_ip, key_file=record.key_file, username=record.ssh_user
        )

        try:
            ssh_manager.connect(timeout=MESH_LOGOUT_TIMEOUT_SECONDS, max_retries=1)
            exit_code = ssh_manager.execute_command(LOGOUT_COMMAND)
        except (ConnectionError, OSError, paramiko.SSHException) as e:
            logger.warning("Tailscale logout skipped: %s", e)
            return CleanupOutcome.tolerated(step, str(e))
        finally:
            ssh_manager.close()

        if exit_code != 0:
            logger.warning("Tailscale logout exited with status %s", exit_code)
            return CleanupOutcome.tolerated(step, f"exit status {exit_code}")

        return CleanupOutcome.done(step)

    def find_peer_ip(self) -> str | None:
        """Return the tailnet address of the instance, if visible locally.

        Returns
        -------
        str | None
            First Tailscale IP of a peer whose hostname looks like an EC2
            default hostname, or None
        """
        if self.which("tailscale") is None:
            return None

        try:
            result = self.run(
                ["tailscale", "status", "--json"],
                capture_output=True,
                text=True,
                timeout=10,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("tailscale status failed: %s", e)
            return None

        if result.returncode != 0:
            return None

        try:
            status = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.debug("Could not parse tailscale status: %s", e)
            return None

        peers = status.get("Peer") or {}
        for peer in peers.values():
            hostname = peer.get("HostName", "")
            addresses = peer.get("TailscaleIPs") or []
            if hostname.startswith(PEER_HOSTNAME_PREFIX) and addresses:
                return addresses[0]

        return None
