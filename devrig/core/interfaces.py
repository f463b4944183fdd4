"""Interfaces between the lifecycle controller and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from devrig.constants import RemoteState

if TYPE_CHECKING:
    from devrig.core.config import DevRigConfig
    from devrig.core.outcomes import CleanupOutcome
    from devrig.core.state import InstanceRecord


@dataclass(frozen=True)
class InstanceStatus:
    """Remote view of an instance returned by the cloud state reader.

    Attributes
    ----------
    state : RemoteState
        Lifecycle state, UNKNOWN when the query failed
    public_ip : str | None
        Current public address, if any
    """

    state: RemoteState
    public_ip: str | None = None


class ComputeProvider(Protocol):
    """Cloud operations needed to manage the instance lifecycle."""

    region: str

    def get_account_id(self) -> str:
        """Verify credentials and return the account ID."""
        ...

    def describe_instance(self, instance_id: str) -> InstanceStatus:
        """Return the current state and address of an instance."""
        ...

    def launch_instance(self, config: DevRigConfig, user_data: str) -> str:
        """Create the instance and return its ID without waiting."""
        ...

    def start_instance(self, instance_id: str) -> None:
        """Request an instance start."""
        ...

    def stop_instance(self, instance_id: str) -> None:
        """Request an instance stop."""
        ...

    def terminate_instance(self, instance_id: str) -> list[str]:
        """Request termination and return the attached security group IDs."""
        ...

    def wait_for_state(
        self, instance_id: str, target: RemoteState, timeout: int | None = None
    ) -> InstanceStatus:
        """Block until the instance reaches target or the wait times out."""
        ...

    def wait_until_settled(
        self, instance_id: str, timeout: int | None = None
    ) -> InstanceStatus:
        """Block until the instance leaves its transitional state."""
        ...

    def delete_security_group(self, sg_id: str) -> CleanupOutcome:
        """Delete a security group, tolerating failure."""
        ...


class MeshClient(Protocol):
    """Mesh VPN operations used around termination and connect."""

    def logout(self, record: InstanceRecord) -> CleanupOutcome:
        """Remove the instance from the tailnet, tolerating failure."""
        ...

    def find_peer_ip(self) -> str | None:
        """Return the tailnet address of the instance, if reachable."""
        ...
