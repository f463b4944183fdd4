"""Result types returned by lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from devrig.core.state import InstanceRecord


class CleanupStatus(str, Enum):
    """Result of a best-effort cleanup step."""

    DONE = "done"
    TOLERATED = "tolerated"


@dataclass(frozen=True)
class CleanupOutcome:
    """Outcome of a best-effort step such as mesh logout.

    A TOLERATED outcome records a failure that was logged but deliberately
    not raised.

    Attributes
    ----------
    step : str
        Short name of the step
    status : CleanupStatus
        DONE or TOLERATED
    detail : str | None
        Failure description for TOLERATED outcomes
    """

    step: str
    status: CleanupStatus
    detail: str | None = None

    @classmethod
    def done(cls, step: str) -> CleanupOutcome:
        return cls(step=step, status=CleanupStatus.DONE)

    @classmethod
    def tolerated(cls, step: str, detail: str) -> CleanupOutcome:
        return cls(step=step, status=CleanupStatus.TOLERATED, detail=detail)

    @property
    def ok(self) -> bool:
        return self.status == CleanupStatus.DONE


class Outcome(str, Enum):
    """What a reconcile call did."""

    PROVISIONED = "provisioned"
    STARTED = "started"
    ALREADY_RUNNING = "already-running"
    STOPPED = "stopped"
    ALREADY_STOPPED = "already-stopped"
    TERMINATED = "terminated"
    NOTHING_TO_DO = "nothing-to-do"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LifecycleResult:
    """Result of one reconcile call.

    Attributes
    ----------
    outcome : Outcome
        Transition performed
    record : InstanceRecord | None
        Local record after the transition
    cleanup : tuple[CleanupOutcome, ...]
        Best-effort steps attempted during termination
    purged_stale_record : bool
        Whether a record pointing at a terminated instance was removed
    """

    outcome: Outcome
    record: InstanceRecord | None = None
    cleanup: tuple[CleanupOutcome, ...] = field(default_factory=tuple)
    purged_stale_record: bool = False
