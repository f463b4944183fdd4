"""Global constants for devrig.

This module contains application-wide constants and the enumerations shared by
the lifecycle controller, the state store and the cloud provider layer.
"""

from enum import Enum

DEFAULT_REGION = "us-east-1"
"""Default AWS region used when neither configuration nor environment sets one."""

DEFAULT_STATE_FILE = ".instance-info"
"""Local record of the last provisioned instance, relative to the working directory."""

DEFAULT_CONFIG_FILE = "devrig.yaml"
"""Configuration file looked up when DEVRIG_CONFIG is not set."""

WAITER_DELAY_SECONDS = 15
"""Delay between waiter polling attempts in seconds.

Used by AWS waiters when polling for instance state changes
(e.g., waiting for an instance to reach 'running' state).
"""

WAITER_MAX_ATTEMPTS = 40
"""Maximum number of waiter polling attempts before giving up.

Together with WAITER_DELAY_SECONDS this bounds every blocking wait to ten
minutes, after which a slow-provisioning error is raised.
"""

SSH_READY_DELAY_SECONDS = 10
"""Pause after a restart before handing off to ssh.

The instance reports 'running' before sshd accepts connections.
"""

MESH_LOGOUT_TIMEOUT_SECONDS = 5
"""Connect timeout for the best-effort Tailscale logout over SSH."""

IAM_PROPAGATION_DELAY_SECONDS = 10
"""Pause after creating an instance profile so EC2 can see it."""

CONFIRMATION_WORD = "yes"
"""Literal affirmation the operator must type before termination."""

MANAGED_BY_TAG = "devrig"
"""Value of the ManagedBy tag applied to instances and security groups."""

USER_DATA_MAX_BYTES = 16384
"""EC2 limit for raw user-data size."""

EXIT_ERROR = 1
"""Exit code for any fatal runtime condition."""

EXIT_CONFIG_ERROR = 2
"""Exit code for invalid configuration."""


class RemoteState(str, Enum):
    """Instance state as reported by the cloud control plane."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "RemoteState":
        """Map a raw state name to a member, falling back to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


TRANSITIONAL_STATES = frozenset(
    (RemoteState.PENDING, RemoteState.STOPPING, RemoteState.SHUTTING_DOWN)
)
"""States expected to resolve without operator action."""


class DesiredAction(str, Enum):
    """Operator intent for a single invocation."""

    ENSURE_RUNNING = "ensure-running"
    STOP = "stop"
    TERMINATE = "terminate"


class OSFamily(str, Enum):
    """Supported machine image families."""

    AL2023 = "al2023"
    UBUNTU = "ubuntu"


class PrivateMode(str, Enum):
    """Network reachability mode selector.

    AUTO resolves to private when a Tailscale auth key is configured.
    """

    AUTO = "auto"
    TRUE = "true"
    FALSE = "false"
