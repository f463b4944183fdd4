"""SSH command execution and interactive session hand-off."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import socket
import subprocess
import time

import paramiko

from devrig.core.exceptions import NoAddressError
from devrig.core.state import InstanceRecord

logger = logging.getLogger(__name__)

SSH_TERM = "xterm-256color"


class SSHManager:
    """Run commands on the instance over SSH.

    Parameters
    ----------
    host : str
        Remote host IP address or hostname
    key_file : str
        Path to SSH private key file
    username : str
        SSH username (default: ec2-user)
    port : int
        SSH port (default: 22)

    Attributes
    ----------
    client : paramiko.SSHClient | None
        SSH client instance (None when not connected)
    """

    def __init__(
        self, host: str, key_file: str, username: str = "ec2-user", port: int = 22
    ) -> None:
        self.host = host
        self.key_file = key_file
        self.username = username
        self.port = port
        self.client: paramiko.SSHClient | None = None

    def connect(self, timeout: float = 30, max_retries: int = 1) -> None:
        """Establish SSH connection with retry logic.

        Parameters
        ----------
        timeout : float
            Connect, auth and banner timeout in seconds
        max_retries : int
            Maximum number of connection attempts (default: 1)

        Raises
        ------
        ConnectionError
            If connection fails after all retry attempts
        OSError
            If SSH key file cannot be read
        """
        delays = [1, 2, 4, 8, 16, 30]

        for attempt in range(max_retries):
            try:
                logger.debug(
                    "Attempting SSH connection to %s (attempt %s/%s)",
                    self.host,
                    attempt + 1,
                    max_retries,
                )

                self.client = paramiko.SSHClient()
                self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

                key = paramiko.RSAKey.from_private_key_file(self.key_file)

                self.client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    pkey=key,
                    timeout=timeout,
                    auth_timeout=timeout,
                    banner_timeout=timeout,
                )
                return

            except (
                paramiko.ssh_exception.NoValidConnectionsError,
                paramiko.ssh_exception.SSHException,
                TimeoutError,
                ConnectionRefusedError,
                ConnectionResetError,
                socket.timeout,
            ) as e:
                self.close()
                if attempt < max_retries - 1:
                    time.sleep(delays[min(attempt, len(delays) - 1)])
                    continue
                raise ConnectionError(
                    f"Failed to establish SSH connection to {self.host} "
                    f"after {max_retries} attempts"
                ) from e

    def execute_command(self, command: str) -> int:
        """Run a command and log its output.

        Parameters
        ----------
        command : str
            Shell command to execute

        Returns
        -------
        int
            Command exit code

        Raises
        ------
        RuntimeError
            If SSH connection is not established
        ValueError
            If command is empty
        """
        if not command or not command.strip():
            raise ValueError("Command cannot be empty")

        if not self.client:
            raise RuntimeError("SSH connection not established")

        stdin, stdout, stderr = self.client.exec_command(command)

        try:
            for line in stdout.readlines():
                logger.info(line.rstrip("\n"), extra={"stream": "remote"})
            for line in stderr.readlines():
                logger.info(line.rstrip("\n"), extra={"stream": "remote"})

            return stdout.channel.recv_exit_status()
        finally:
            stdin.close()
            stdout.close()
            stderr.close()

    def close(self) -> None:
        """Close SSH connection."""
        if self.client:
            self.client.close()
            self.client = None


def build_ssh_command(record: InstanceRecord, peer_ip: str | None = None) -> list[str]:
    """Build the argument vector for an interactive ssh session.

    Parameters
    ----------
    record : InstanceRecord
        Local record of the instance
    peer_ip : str | None
        Tailnet address; when set, Tailscale SSH is used and no key is passed

    Returns
    -------
    list[str]
        Arguments for the ssh binary

    Raises
    ------
    NoAddressError
        If neither a tailnet nor a public address is available
    """
    if peer_ip:
        return ["ssh", f"{record.ssh_user}@{peer_ip}"]

    if not record.public_ip:
        raise NoAddressError(f"Instance {record.instance_id} has no public IP address")

    return [
        "ssh",
        "-i",
        record.key_file,
        "-o",
        "StrictHostKeyChecking=accept-new",
        f"{record.ssh_user}@{record.public_ip}",
    ]


def hand_off(command: list[str]) -> int:
    """Run ssh in the foreground and return its exit code.

    Raises
    ------
    RuntimeError
        If the ssh binary is not on PATH
    """
    if shutil.which(command[0]) is None:
        raise RuntimeError(f"'{command[0]}' not found on PATH")

    logger.debug("Handing off to: %s", shlex.join(command))

    env = {**os.environ, "TERM": SSH_TERM}
    return subprocess.run(command, env=env, check=False).returncode
