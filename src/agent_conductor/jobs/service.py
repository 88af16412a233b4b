"""In-memory job registry sequencing lifecycle events."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from agent_conductor.config import Settings
from agent_conductor.jobs.audit import JobAuditWriter
from agent_conductor.jobs.models import PolicyDecision, UserMessagePacket
from agent_conductor.jobs.state_machine import (
    JobEvent,
    JobEventType,
    JobState,
    JobStatus,
    create_received_job_state,
    transition_job_state,
)
from agent_conductor.results import Err
from agent_conductor.sanitization import sanitize_preview

logger = logging.getLogger(__name__)

DEFAULT_DENIAL_REASON = "Blocked by policy"

TransitionListener = Callable[[JobState | None, JobState], None]


class JobServiceError(Exception):
    """Base error for job service operations."""


class JobNotFoundError(JobServiceError):
    """Raised when a job id is unknown."""


class JobConflictError(JobServiceError):
    """Raised for duplicate job ids or a second PR assignment."""


class InvalidJobTransitionError(JobServiceError):
    """Raised when an event is not allowed from the current status."""


class JobService:
    """Single source of truth for job progress.

    All mutations run under one lock held for a single transition, so the service can be
    shared between threads. State is process-local; ``audit_writer`` and
    ``on_transition`` are the hooks for durable trails and notifications.
    """

    def __init__(
        self,
        *,
        audit_writer: JobAuditWriter | None = None,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._states: dict[str, JobState] = {}
        self._pr_numbers: dict[str, int] = {}
        self._initial_packets: dict[str, UserMessagePacket] = {}
        self._lock = threading.Lock()
        self._audit_writer = audit_writer
        self._on_transition = on_transition

    def create_job(self, packet: UserMessagePacket, at: datetime) -> JobState:
        with self._lock:
            if packet.job_id in self._states:
                raise JobConflictError(f"Job already exists: {packet.job_id}")
            state = create_received_job_state(packet.job_id, at)
            self._states[packet.job_id] = state
            self._initial_packets[packet.job_id] = packet
        logger.info("Job %s received (channel=%s)", packet.job_id, packet.channel)
        self._notify(None, state, event_type="received")
        return state

    def get_state(self, job_id: str) -> JobState | None:
        return self._states.get(job_id)

    def get_initial_packet(self, job_id: str) -> UserMessagePacket | None:
        return self._initial_packets.get(job_id)

    def list_jobs(self, *, status: JobStatus | None = None) -> list[JobState]:
        """Snapshot of known jobs, optionally filtered by status."""

        with self._lock:
            states = list(self._states.values())
        if status is None:
            return states
        return [state for state in states if state.status is status]

    def mark_parsed(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.PARSED, at))

    def apply_policy_decision(
        self,
        job_id: str,
        at: datetime,
        decision: PolicyDecision,
    ) -> JobState:
        """Record the policy check, then deny immediately when the decision disallows."""

        with self._lock:
            received, checked = self._transition_locked(
                job_id,
                JobEvent(JobEventType.POLICY_CHECKED, at),
            )
            denied = None
            if not decision.allowed:
                _, denied = self._transition_locked(
                    job_id,
                    JobEvent(
                        JobEventType.DENIED,
                        at,
                        reason=decision.reason or DEFAULT_DENIAL_REASON,
                    ),
                )
        self._notify(received, checked, event_type=JobEventType.POLICY_CHECKED.value)
        if denied is None:
            return checked
        self._notify(checked, denied, event_type=JobEventType.DENIED.value)
        return denied

    def mark_planned(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.PLANNED, at))

    def mark_executing(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.EXECUTING, at))

    def open_pr(self, job_id: str, at: datetime, pr_number: int) -> JobState:
        with self._lock:
            existing = self._pr_numbers.get(job_id)
            if existing is not None:
                raise JobConflictError(f"Job {job_id} already has PR #{existing}")
            previous, state = self._transition_locked(
                job_id,
                JobEvent(JobEventType.PR_OPENED, at, pr_number=pr_number),
            )
            self._pr_numbers[job_id] = pr_number
        self._notify(previous, state, event_type=JobEventType.PR_OPENED.value)
        return state

    def mark_waiting_approval(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.WAITING_APPROVAL, at))

    def mark_merged(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.MERGED, at))

    def mark_deployed(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.DEPLOYED, at))

    def mark_done(self, job_id: str, at: datetime) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.DONE, at))

    def mark_failed(self, job_id: str, at: datetime, reason: str) -> JobState:
        return self._apply(job_id, JobEvent(JobEventType.FAILED, at, reason=_require_reason(reason)))

    def mark_cancelled(self, job_id: str, at: datetime, reason: str) -> JobState:
        return self._apply(
            job_id,
            JobEvent(JobEventType.CANCELLED, at, reason=_require_reason(reason)),
        )

    def mark_timed_out(self, job_id: str, at: datetime, reason: str) -> JobState:
        return self._apply(
            job_id,
            JobEvent(JobEventType.TIMED_OUT, at, reason=_require_reason(reason)),
        )

    def _apply(self, job_id: str, event: JobEvent) -> JobState:
        with self._lock:
            previous, state = self._transition_locked(job_id, event)
        self._notify(previous, state, event_type=event.type.value)
        return state

    def _transition_locked(self, job_id: str, event: JobEvent) -> tuple[JobState, JobState]:
        current = self._states.get(job_id)
        if current is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        result = transition_job_state(current, event)
        if isinstance(result, Err):
            logger.debug("Rejected event for job %s: %s", job_id, result.error)
            raise InvalidJobTransitionError(result.error)
        self._states[job_id] = result.value
        return current, result.value

    def _notify(self, previous: JobState | None, current: JobState, *, event_type: str) -> None:
        logger.info(
            "Job %s: %s -> %s",
            current.job_id,
            previous.status.value if previous else "-",
            current.status.value,
        )
        if self._audit_writer is not None:
            payload: dict[str, object] = {
                "status_from": previous.status.value if previous else None,
                "status_to": current.status.value,
            }
            if current.pr_number is not None:
                payload["pr_number"] = current.pr_number
            if current.reason:
                payload["reason"] = sanitize_preview(current.reason)
            self._audit_writer.append_event(
                job_id=current.job_id,
                at=current.changed_at,
                event_type=event_type,
                payload=payload,
            )
        if self._on_transition is not None:
            self._on_transition(previous, current)


def _require_reason(reason: str) -> str:
    if not reason or not reason.strip():
        raise ValueError("A non-empty reason is required for failure transitions.")
    return reason


def build_job_service(
    settings: Settings,
    *,
    on_transition: TransitionListener | None = None,
) -> JobService:
    """Job service wired to the audit trail when auditing is enabled."""

    audit_writer = JobAuditWriter(settings.audit.root_dir) if settings.audit.enabled else None
    return JobService(audit_writer=audit_writer, on_transition=on_transition)
