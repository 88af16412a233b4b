from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from agent_conductor.delegation.state_machine import (
    DelegationEvent,
    DelegationEventType,
    DelegationState,
    DelegationStatus,
    create_queued_delegation_state,
    is_terminal_delegation_status,
    transition_delegation_state,
)
from agent_conductor.results import Err, Ok

pytestmark = [
    allure.epic("Delegation"),
    allure.feature("State Machine"),
]

T0 = datetime(2026, 2, 24, 9, 0, tzinfo=UTC)


def _running() -> DelegationState:
    result = transition_delegation_state(
        create_queued_delegation_state(T0),
        DelegationEvent(DelegationEventType.START, T0),
    )
    assert isinstance(result, Ok)
    return result.value


def _ready(proposal_id: str = "p-1") -> DelegationState:
    result = transition_delegation_state(
        _running(),
        DelegationEvent(
            DelegationEventType.DELEGATE_SUCCESS_WITH_DIFF,
            T0 + timedelta(minutes=1),
            proposal_id=proposal_id,
        ),
    )
    assert isinstance(result, Ok)
    return result.value


def test_queued_only_accepts_start() -> None:
    queued = create_queued_delegation_state(T0)

    result = transition_delegation_state(queued, DelegationEvent(DelegationEventType.ACCEPT, T0))

    assert isinstance(result, Err)
    assert result.error == "Invalid delegation transition queued -> accept"


def test_diff_result_requires_proposal_id() -> None:
    result = transition_delegation_state(
        _running(),
        DelegationEvent(DelegationEventType.DELEGATE_SUCCESS_WITH_DIFF, T0),
    )

    assert isinstance(result, Err)
    assert "proposal id is required" in result.error


def test_ready_state_carries_proposal_id() -> None:
    ready = _ready("p-7")

    assert ready.status is DelegationStatus.PROPOSAL_READY
    assert ready.proposal_id == "p-7"


@pytest.mark.parametrize(
    ("event_type", "expected"),
    [
        (DelegationEventType.ACCEPT, DelegationStatus.ACCEPTED),
        (DelegationEventType.REJECT, DelegationStatus.REJECTED),
        (DelegationEventType.EXPIRE, DelegationStatus.EXPIRED),
    ],
)
def test_ready_resolves_to_terminal_state(
    event_type: DelegationEventType,
    expected: DelegationStatus,
) -> None:
    result = transition_delegation_state(_ready(), DelegationEvent(event_type, T0))

    assert isinstance(result, Ok)
    assert result.value.status is expected
    assert result.value.proposal_id == "p-1"
    assert result.value.is_terminal


def test_accept_with_wrong_proposal_id_is_rejected() -> None:
    result = transition_delegation_state(
        _ready("p-1"),
        DelegationEvent(DelegationEventType.ACCEPT, T0, proposal_id="p-2"),
    )

    assert isinstance(result, Err)
    assert "proposal id mismatch" in result.error


def test_no_diff_and_failure_outcomes() -> None:
    no_changes = transition_delegation_state(
        _running(),
        DelegationEvent(DelegationEventType.DELEGATE_SUCCESS_NO_DIFF, T0),
    )
    failed = transition_delegation_state(
        _running(),
        DelegationEvent(DelegationEventType.DELEGATE_FAILED, T0, error="exit code 2"),
    )

    assert isinstance(no_changes, Ok)
    assert no_changes.value.status is DelegationStatus.NO_CHANGES
    assert isinstance(failed, Ok)
    assert failed.value.status is DelegationStatus.FAILED
    assert failed.value.error == "exit code 2"


def test_terminal_states_reject_further_events() -> None:
    accepted = transition_delegation_state(_ready(), DelegationEvent(DelegationEventType.ACCEPT, T0))
    assert isinstance(accepted, Ok)

    again = transition_delegation_state(
        accepted.value,
        DelegationEvent(DelegationEventType.EXPIRE, T0),
    )

    assert isinstance(again, Err)
    assert "state is terminal" in again.error
    assert is_terminal_delegation_status(DelegationStatus.EXPIRED)
    assert not is_terminal_delegation_status(DelegationStatus.PROPOSAL_READY)
