"""Pure lifecycle transitions for one delegation run."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from agent_conductor.results import Err, Ok


class DelegationStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PROPOSAL_READY = "proposal_ready"
    NO_CHANGES = "no_changes"
    FAILED = "failed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class DelegationEventType(str, Enum):
    START = "start"
    DELEGATE_SUCCESS_WITH_DIFF = "delegate_success_with_diff"
    DELEGATE_SUCCESS_NO_DIFF = "delegate_success_no_diff"
    DELEGATE_FAILED = "delegate_failed"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"


TERMINAL_DELEGATION_STATUSES = frozenset(
    {
        DelegationStatus.NO_CHANGES,
        DelegationStatus.FAILED,
        DelegationStatus.ACCEPTED,
        DelegationStatus.REJECTED,
        DelegationStatus.EXPIRED,
    },
)


@dataclass(frozen=True, slots=True)
class DelegationState:
    status: DelegationStatus
    changed_at: datetime
    proposal_id: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DELEGATION_STATUSES


@dataclass(frozen=True, slots=True)
class DelegationEvent:
    """``proposal_id`` is required for a diff result and optional for accept/reject."""

    type: DelegationEventType
    at: datetime
    proposal_id: str | None = None
    error: str | None = None


def create_queued_delegation_state(at: datetime) -> DelegationState:
    return DelegationState(status=DelegationStatus.QUEUED, changed_at=at)


def is_terminal_delegation_status(status: DelegationStatus) -> bool:
    return status in TERMINAL_DELEGATION_STATUSES


def transition_delegation_state(
    state: DelegationState,
    event: DelegationEvent,
) -> Ok[DelegationState] | Err:
    if state.is_terminal:
        return _invalid(state, event, "state is terminal")

    if state.status is DelegationStatus.QUEUED:
        if event.type is DelegationEventType.START:
            return Ok(DelegationState(status=DelegationStatus.RUNNING, changed_at=event.at))
        return _invalid(state, event)

    if state.status is DelegationStatus.RUNNING:
        if event.type is DelegationEventType.DELEGATE_SUCCESS_WITH_DIFF:
            if not event.proposal_id:
                return _invalid(state, event, "proposal id is required")
            return Ok(
                DelegationState(
                    status=DelegationStatus.PROPOSAL_READY,
                    changed_at=event.at,
                    proposal_id=event.proposal_id,
                ),
            )
        if event.type is DelegationEventType.DELEGATE_SUCCESS_NO_DIFF:
            return Ok(DelegationState(status=DelegationStatus.NO_CHANGES, changed_at=event.at))
        if event.type is DelegationEventType.DELEGATE_FAILED:
            return Ok(
                DelegationState(
                    status=DelegationStatus.FAILED,
                    changed_at=event.at,
                    error=event.error or "Delegation failed",
                ),
            )
        return _invalid(state, event)

    # PROPOSAL_READY
    resolved = {
        DelegationEventType.ACCEPT: DelegationStatus.ACCEPTED,
        DelegationEventType.REJECT: DelegationStatus.REJECTED,
        DelegationEventType.EXPIRE: DelegationStatus.EXPIRED,
    }.get(event.type)
    if resolved is None:
        return _invalid(state, event)
    if (
        event.type is not DelegationEventType.EXPIRE
        and event.proposal_id
        and event.proposal_id != state.proposal_id
    ):
        return _invalid(state, event, "proposal id mismatch")
    return Ok(
        DelegationState(status=resolved, changed_at=event.at, proposal_id=state.proposal_id),
    )


def _invalid(state: DelegationState, event: DelegationEvent, reason: str | None = None) -> Err:
    suffix = f": {reason}" if reason else ""
    return Err(
        f"Invalid delegation transition {state.status.value} -> {event.type.value}{suffix}",
    )
