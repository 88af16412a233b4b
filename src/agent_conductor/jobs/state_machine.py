"""Pure lifecycle transitions for delegated jobs."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from agent_conductor.results import Err, Ok


class JobStatus(str, Enum):
    """Job lifecycle states."""

    RECEIVED = "received"
    PARSED = "parsed"
    POLICY_CHECKED = "policy_checked"
    PLANNED = "planned"
    EXECUTING = "executing"
    PR_OPENED = "pr_opened"
    WAITING_APPROVAL = "waiting_approval"
    MERGED = "merged"
    DEPLOYED = "deployed"
    DONE = "done"
    DENIED = "denied"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class JobEventType(str, Enum):
    """Events accepted by the job state machine."""

    PARSED = "parsed"
    POLICY_CHECKED = "policy_checked"
    PLANNED = "planned"
    EXECUTING = "executing"
    PR_OPENED = "pr_opened"
    WAITING_APPROVAL = "waiting_approval"
    MERGED = "merged"
    DEPLOYED = "deployed"
    DONE = "done"
    DENIED = "denied"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


TERMINAL_JOB_STATUSES = frozenset(
    {
        JobStatus.DONE,
        JobStatus.DENIED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
        JobStatus.TIMED_OUT,
    },
)

_ABORT_EVENTS = {
    JobEventType.FAILED: JobStatus.FAILED,
    JobEventType.CANCELLED: JobStatus.CANCELLED,
    JobEventType.TIMED_OUT: JobStatus.TIMED_OUT,
}

# (current status, event) -> next status; abort events are handled separately.
_TRANSITIONS: dict[tuple[JobStatus, JobEventType], JobStatus] = {
    (JobStatus.RECEIVED, JobEventType.PARSED): JobStatus.PARSED,
    (JobStatus.PARSED, JobEventType.POLICY_CHECKED): JobStatus.POLICY_CHECKED,
    (JobStatus.POLICY_CHECKED, JobEventType.PLANNED): JobStatus.PLANNED,
    (JobStatus.POLICY_CHECKED, JobEventType.DENIED): JobStatus.DENIED,
    (JobStatus.PLANNED, JobEventType.EXECUTING): JobStatus.EXECUTING,
    (JobStatus.EXECUTING, JobEventType.PR_OPENED): JobStatus.PR_OPENED,
    (JobStatus.EXECUTING, JobEventType.DONE): JobStatus.DONE,
    (JobStatus.PR_OPENED, JobEventType.WAITING_APPROVAL): JobStatus.WAITING_APPROVAL,
    (JobStatus.PR_OPENED, JobEventType.MERGED): JobStatus.MERGED,
    (JobStatus.WAITING_APPROVAL, JobEventType.MERGED): JobStatus.MERGED,
    (JobStatus.MERGED, JobEventType.DEPLOYED): JobStatus.DEPLOYED,
    (JobStatus.DEPLOYED, JobEventType.DONE): JobStatus.DONE,
}


@dataclass(frozen=True, slots=True)
class JobState:
    """Snapshot of one job's lifecycle position."""

    job_id: str
    status: JobStatus
    changed_at: datetime
    pr_number: int | None = None
    reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


@dataclass(frozen=True, slots=True)
class JobEvent:
    """One lifecycle event; ``pr_number`` and ``reason`` only for events that carry them."""

    type: JobEventType
    at: datetime
    pr_number: int | None = None
    reason: str | None = None


def create_received_job_state(job_id: str, at: datetime) -> JobState:
    return JobState(job_id=job_id, status=JobStatus.RECEIVED, changed_at=at)


def is_terminal_job_status(status: JobStatus) -> bool:
    return status in TERMINAL_JOB_STATUSES


def transition_job_state(state: JobState, event: JobEvent) -> Ok[JobState] | Err:
    """Apply ``event`` to ``state`` without mutating it.

    Terminal states reject every event. ``failed``, ``cancelled`` and ``timed_out`` are
    accepted from any non-terminal state; everything else follows the forward table.
    The ``pr_number`` of a job survives every later transition except the abort ones.
    """

    if state.is_terminal:
        return _invalid(state, event, "state is terminal")

    abort_status = _ABORT_EVENTS.get(event.type)
    if abort_status is not None:
        return Ok(
            JobState(
                job_id=state.job_id,
                status=abort_status,
                changed_at=event.at,
                reason=event.reason,
            ),
        )

    next_status = _TRANSITIONS.get((state.status, event.type))
    if next_status is None:
        return _invalid(state, event)

    if event.type is JobEventType.PR_OPENED:
        if event.pr_number is None:
            return _invalid(state, event, "pr_number is required")
        return Ok(replace(state, status=next_status, changed_at=event.at, pr_number=event.pr_number))
    if event.type is JobEventType.DENIED:
        return Ok(replace(state, status=next_status, changed_at=event.at, reason=event.reason))
    return Ok(replace(state, status=next_status, changed_at=event.at))


def _invalid(state: JobState, event: JobEvent, reason: str | None = None) -> Err:
    suffix = f": {reason}" if reason else ""
    return Err(
        f"Invalid job transition {state.status.value.upper()} -> {event.type.value}{suffix}",
    )
