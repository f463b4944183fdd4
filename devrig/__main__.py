#!/usr/bin/env python3
"""devrig - EC2 development instance manager."""

from __future__ import annotations

import logging
import os
import sys
import time
from collections.abc import Callable
from pathlib import Path

import boto3

from devrig.constants import DEFAULT_CONFIG_FILE, DesiredAction, RemoteState
from devrig.core.config import ConfigLoader, DevRigConfig
from devrig.core.interfaces import ComputeProvider, MeshClient
from devrig.core.outcomes import CleanupStatus, LifecycleResult, Outcome
from devrig.core.state import LocalStateStore
from devrig.lifecycle import LifecycleController
from devrig.providers.aws.compute import EC2Manager
from devrig.services.mesh import TailscaleClient
from devrig.services.ssh import build_ssh_command, hand_off
from devrig.templates import CONFIG_TEMPLATE
from devrig.utils import log_and_print_error, prompt_confirmation

logger = logging.getLogger(__name__)


class DevRig:
    """Main CLI interface for devrig.

    Parameters
    ----------
    compute_provider_factory : Callable[[DevRigConfig], ComputeProvider] | None
        Factory creating the compute provider (default: EC2Manager)
    mesh_client_factory : Callable[[], MeshClient] | None
        Factory creating the Tailscale client (default: TailscaleClient)
    boto3_client_factory : Callable | None
        Factory creating boto3 clients (default: boto3.client)
    confirm : Callable[[], bool] | None
        Termination confirmation prompt (default: prompt_confirmation)
    ssh_runner : Callable[[list[str]], int] | None
        Runs the interactive ssh session (default: hand_off)
    sleep : Callable[[float], None]
        Sleep function used before handing off to ssh
    """

    def __init__(
        self,
        compute_provider_factory: Callable[[DevRigConfig], ComputeProvider] | None = None,
        mesh_client_factory: Callable[[], MeshClient] | None = None,
        boto3_client_factory: Callable | None = None,
        confirm: Callable[[], bool] | None = None,
        ssh_runner: Callable[[list[str]], int] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config_loader = ConfigLoader()
        self._config: DevRigConfig | None = None
        self._boto3_client_factory = boto3_client_factory or boto3.client
        self._compute_provider_factory = (
            compute_provider_factory or self._create_compute_provider
        )
        self._mesh_client_factory = mesh_client_factory or TailscaleClient
        self._confirm = confirm or prompt_confirmation
        self._ssh_runner = ssh_runner or hand_off
        self._sleep = sleep

    @property
    def config(self) -> DevRigConfig:
        """Merged configuration, loaded on first use."""
        if self._config is None:
            self._config = self._config_loader.build()
        return self._config

    def _create_compute_provider(self, config: DevRigConfig) -> ComputeProvider:
        return EC2Manager.from_config(
            config, boto3_client_factory=self._boto3_client_factory
        )

    def _store(self) -> LocalStateStore:
        return LocalStateStore(Path(self.config.state_file))

    def _controller(self) -> LifecycleController:
        return LifecycleController(
            config=self.config,
            store=self._store(),
            compute=self._compute_provider_factory(self.config),
            mesh=self._mesh_client_factory(),
            confirm=self._confirm,
        )

    def provision(self) -> None:
        """Create the instance, or start it if it is stopped."""
        result = self._controller().reconcile(DesiredAction.ENSURE_RUNNING)
        self._report(result)

    def connect(self) -> None:
        """Ensure the instance is running, then open an SSH session.

        Exits with the exit code of ssh.
        """
        result = self._controller().reconcile(DesiredAction.ENSURE_RUNNING)
        self._report(result)

        if result.outcome in (Outcome.STARTED, Outcome.PROVISIONED):
            print("Waiting for SSH to be ready...")
            self._sleep(self.config.ssh_ready_delay)

        peer_ip = self._mesh_client_factory().find_peer_ip()
        command = build_ssh_command(result.record, peer_ip)

        if peer_ip:
            print(f"Connecting via Tailscale: {peer_ip}")
        else:
            print(f"Connecting via public IP: {result.record.public_ip}")

        sys.exit(self._ssh_runner(command))

    def teardown(self, terminate: bool = False) -> None:
        """Stop the instance, or destroy it with --terminate.

        Parameters
        ----------
        terminate : bool
            Terminate the instance and delete its security group
        """
        action = DesiredAction.TERMINATE if terminate else DesiredAction.STOP
        result = self._controller().reconcile(action)
        self._report(result)

    def status(self) -> None:
        """Print the local record and the live instance state."""
        record = self._store().load()

        if record is None:
            print("No instance record found. Run 'devrig provision' to create one.")
            return

        compute = self._compute_provider_factory(self.config)
        status = compute.describe_instance(record.instance_id)

        print(f"Instance:  {record.instance_id}")
        print(f"State:     {status.state.value}")
        print(f"Public IP: {status.public_ip or record.public_ip or '-'}")
        print(f"Region:    {record.region}")
        print(f"SSH user:  {record.ssh_user}")
        print(f"Key file:  {record.key_file}")

        if status.state == RemoteState.TERMINATED:
            print("\nThe instance no longer exists. Run 'devrig provision' to replace it.")

    def init(self, force: bool = False) -> None:
        """Create a default devrig.yaml configuration file."""
        config_path = os.environ.get("DEVRIG_CONFIG", DEFAULT_CONFIG_FILE)
        config_file = Path(config_path)

        if config_file.exists() and not force:
            log_and_print_error(
                "%s already exists. Use --force to overwrite.",
                config_path,
            )
            sys.exit(1)

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            f.write(CONFIG_TEMPLATE)

        print(f"Created {config_path} configuration file.")

    def _report(self, result: LifecycleResult) -> None:
        record = result.record

        if result.outcome == Outcome.PROVISIONED:
            print()
            print("Instance ready!")
            print(f"  Instance ID: {record.instance_id}")
            print(f"  Public IP:   {record.public_ip}")
            print(f"  SSH user:    {record.ssh_user}")
            print()
            print("The bootstrap script runs in the background (~5-10 minutes).")
            print("It is done when ~/.bootstrap-complete exists on the instance.")
            print()
            print("Connect with: devrig connect")
        elif result.outcome == Outcome.STARTED:
            print(f"Instance started: {record.public_ip}")
        elif result.outcome == Outcome.ALREADY_RUNNING:
            print(f"Instance {record.instance_id} is running at {record.public_ip}")
        elif result.outcome == Outcome.STOPPED:
            print("Instance stopped. Storage charges still apply.")
            print("Restart with: devrig provision")
        elif result.outcome == Outcome.TERMINATED:
            for step in result.cleanup:
                if step.status == CleanupStatus.TOLERATED:
                    print(f"Skipped {step.step}: {step.detail}")
            print("Instance terminated.")


from devrig.cli.main import main  # noqa: E402

if __name__ == "__main__":
    main()
