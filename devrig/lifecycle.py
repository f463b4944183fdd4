from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from enum import Enum

from devrig.constants import (
    TRANSITIONAL_STATES,
    DesiredAction,
    RemoteState,
)
from devrig.core.bootstrap import BootstrapDescriptorBuilder
from devrig.core.config import DevRigConfig
from devrig.core.exceptions import (
    ProvisioningTimeoutError,
    RemoteQueryError,
    TransitionInProgressError,
)
from devrig.core.interfaces import ComputeProvider, InstanceStatus, MeshClient
from devrig.core.outcomes import CleanupOutcome, LifecycleResult, Outcome
from devrig.core.state import InstanceRecord, LocalStateStore
from devrig.utils import prompt_confirmation

logger = logging.getLogger(__name__)


class ObservedState(str, Enum):
    """Controller view of the instance, combining record and remote state."""

    NO_RECORD = "no-record"
    RUNNING = "running"
    STOPPED = "stopped"
    TERMINATED = "terminated"
    TRANSITIONAL = "transitional"
    UNREACHABLE = "unreachable"


def observe(state: RemoteState) -> ObservedState:
    """Map a remote state onto the transition table rows."""
    if state == RemoteState.RUNNING:
        return ObservedState.RUNNING
    if state == RemoteState.STOPPED:
        return ObservedState.STOPPED
    if state == RemoteState.TERMINATED:
        return ObservedState.TERMINATED
    if state in TRANSITIONAL_STATES:
        return ObservedState.TRANSITIONAL
    return ObservedState.UNREACHABLE


TRANSITIONS: dict[tuple[ObservedState, DesiredAction], str] = {
    (ObservedState.NO_RECORD, DesiredAction.ENSURE_RUNNING): "_provision",
    (ObservedState.NO_RECORD, DesiredAction.STOP): "_nothing_to_do",
    (ObservedState.NO_RECORD, DesiredAction.TERMINATE): "_nothing_to_do",
    (ObservedState.STOPPED, DesiredAction.ENSURE_RUNNING): "_start",
    (ObservedState.STOPPED, DesiredAction.STOP): "_already_stopped",
    (ObservedState.STOPPED, DesiredAction.TERMINATE): "_terminate",
    (ObservedState.RUNNING, DesiredAction.ENSURE_RUNNING): "_keep_running",
    (ObservedState.RUNNING, DesiredAction.STOP): "_stop",
    (ObservedState.RUNNING, DesiredAction.TERMINATE): "_terminate",
    (ObservedState.TRANSITIONAL, DesiredAction.ENSURE_RUNNING): "_wait_and_reevaluate",
    (ObservedState.TRANSITIONAL, DesiredAction.STOP): "_reject_in_transition",
    (ObservedState.TRANSITIONAL, DesiredAction.TERMINATE): "_reject_in_transition",
    (ObservedState.TERMINATED, DesiredAction.ENSURE_RUNNING): "_purge_and_provision",
    (ObservedState.TERMINATED, DesiredAction.STOP): "_purge",
    (ObservedState.TERMINATED, DesiredAction.TERMINATE): "_purge",
    (ObservedState.UNREACHABLE, DesiredAction.ENSURE_RUNNING): "_reject_unreachable",
    (ObservedState.UNREACHABLE, DesiredAction.STOP): "_reject_unreachable",
    (ObservedState.UNREACHABLE, DesiredAction.TERMINATE): "_reject_unreachable",
}
"""Handler for every (observed state, desired action) pair."""


class LifecycleController:
    """Reconcile the desired action with the remote state and local record.

    Parameters
    ----------
    config : DevRigConfig
        Validated configuration
    store : LocalStateStore
        Local record store
    compute : ComputeProvider
        Cloud operations
    mesh : MeshClient
        Tailscale operations
    confirm : Callable[[], bool]
        Asks the operator to approve termination (default: prompt_confirmation)
    """

    def __init__(
        self,
        config: DevRigConfig,
        store: LocalStateStore,
        compute: ComputeProvider,
        mesh: MeshClient,
        confirm: Callable[[], bool] = prompt_confirmation,
    ) -> None:
        self.config = config
        self.store = store
        self.compute = compute
        self.mesh = mesh
        self.confirm = confirm
        self._action = DesiredAction.ENSURE_RUNNING
        self._settle_waited = False

    def reconcile(self, action: DesiredAction | str) -> LifecycleResult:
        """Perform the transition for the desired action.

        Parameters
        ----------
        action : DesiredAction | str
            ensure-running, stop or terminate

        Returns
        -------
        LifecycleResult
            What was done and the record left behind

        Raises
        ------
        RemoteQueryError
            If the remote state could not be determined
        TransitionInProgressError
            If the instance is transitioning and the action cannot wait
        ProvisioningTimeoutError
            If the instance does not reach the expected state in time
        BootstrapError
            If the user-data cannot be built
        StateFileError
            If the local record is malformed
        """
        self._action = DesiredAction(action)
        self._settle_waited = False

        record = self.store.load()

        if record is None:
            logger.debug("No local record, skipping remote query")
            return self._dispatch(ObservedState.NO_RECORD, None, None)

        status = self.compute.describe_instance(record.instance_id)
        logger.debug("Instance %s is %s", record.instance_id, status.state.value)

        return self._dispatch(observe(status.state), record, status)

    def _dispatch(
        self,
        observed: ObservedState,
        record: InstanceRecord | None,
        status: InstanceStatus | None,
    ) -> LifecycleResult:
        handler = getattr(self, TRANSITIONS[(observed, self._action)])
        return handler(record, status)

    def _nothing_to_do(
        self, record: InstanceRecord | None, status: InstanceStatus | None
    ) -> LifecycleResult:
        print("No instance found. Nothing to do.")
        return LifecycleResult(outcome=Outcome.NOTHING_TO_DO)

    def _provision(
        self, record: InstanceRecord | None, status: InstanceStatus | None
    ) -> LifecycleResult:
        user_data = BootstrapDescriptorBuilder.from_config(self.config).build(
            self.config.tailscale_authkey
        )

        account_id = self.compute.get_account_id()
        logger.info("Using AWS account %s in %s", account_id, self.config.region)

        instance_id = self.compute.launch_instance(self.config, user_data)

        record = InstanceRecord(
            instance_id=instance_id,
            public_ip="",
            key_file=str(self.config.key_file),
            region=self.config.region,
            ssh_user=self.config.ssh_user,
        )
        self.store.save(record)

        print("Waiting for instance to be running...")
        status = self.compute.wait_for_state(
            instance_id, RemoteState.RUNNING, timeout=self.config.wait_timeout
        )

        record = record.with_address(status.public_ip)
        self.store.save(record)

        return LifecycleResult(outcome=Outcome.PROVISIONED, record=record)

    def _start(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        print(f"Starting stopped instance {record.instance_id}...")
        self.compute.start_instance(record.instance_id)

        status = self.compute.wait_for_state(
            record.instance_id, RemoteState.RUNNING, timeout=self.config.wait_timeout
        )

        record = record.with_address(status.public_ip)
        self.store.save(record)

        return LifecycleResult(outcome=Outcome.STARTED, record=record)

    def _keep_running(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        if status.public_ip and status.public_ip != record.public_ip:
            logger.info("Public IP changed to %s", status.public_ip)
            record = record.with_address(status.public_ip)
            self.store.save(record)

        return LifecycleResult(outcome=Outcome.ALREADY_RUNNING, record=record)

    def _already_stopped(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        print(f"Instance {record.instance_id} is already stopped.")
        return LifecycleResult(outcome=Outcome.ALREADY_STOPPED, record=record)

    def _stop(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        print(f"Stopping instance {record.instance_id}...")
        self.compute.stop_instance(record.instance_id)
        self.compute.wait_for_state(
            record.instance_id, RemoteState.STOPPED, timeout=self.config.wait_timeout
        )

        return LifecycleResult(outcome=Outcome.STOPPED, record=record)

    def _terminate(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        print(f"WARNING: This will permanently delete instance {record.instance_id}")

        if not self.confirm():
            print("Cancelled.")
            return LifecycleResult(outcome=Outcome.CANCELLED, record=record)

        cleanup: list[CleanupOutcome] = []

        if status.state == RemoteState.RUNNING:
            cleanup.append(self.mesh.logout(record))

        sg_ids = self.compute.terminate_instance(record.instance_id)
        self.store.clear()

        try:
            self.compute.wait_for_state(
                record.instance_id, RemoteState.TERMINATED, timeout=self.config.wait_timeout
            )
        except ProvisioningTimeoutError as e:
            logger.warning("Instance %s not yet terminated: %s", record.instance_id, e)

        for sg_id in sg_ids:
            cleanup.append(self.compute.delete_security_group(sg_id))

        return LifecycleResult(
            outcome=Outcome.TERMINATED, record=None, cleanup=tuple(cleanup)
        )

    def _wait_and_reevaluate(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        if self._settle_waited:
            raise TransitionInProgressError(
                f"Instance {record.instance_id} is still '{status.state.value}'"
            )

        self._settle_waited = True
        print(
            f"Instance {record.instance_id} is {status.state.value}, "
            "waiting for it to settle..."
        )

        settled = self.compute.wait_until_settled(
            record.instance_id, timeout=self.config.wait_timeout
        )
        return self._dispatch(observe(settled.state), record, settled)

    def _reject_in_transition(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        raise TransitionInProgressError(
            f"Instance {record.instance_id} is '{status.state.value}'. "
            "Wait for it to finish and try again."
        )

    def _purge(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        print(f"Instance {record.instance_id} no longer exists. Removing stale record.")
        self.store.clear()
        return LifecycleResult(outcome=Outcome.NOTHING_TO_DO, purged_stale_record=True)

    def _purge_and_provision(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        self._purge(record, status)
        result = self._provision(None, None)
        return replace(result, purged_stale_record=True)

    def _reject_unreachable(
        self, record: InstanceRecord, status: InstanceStatus
    ) -> LifecycleResult:
        raise RemoteQueryError(
            f"Could not determine the state of instance {record.instance_id}. "
            "The local record was kept; try again shortly."
        )
