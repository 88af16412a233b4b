from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from agent_conductor.jobs.state_machine import (
    JobEvent,
    JobEventType,
    JobStatus,
    create_received_job_state,
    is_terminal_job_status,
    transition_job_state,
)
from agent_conductor.results import Err, Ok

pytestmark = [
    allure.epic("Job Lifecycle"),
    allure.feature("State Machine"),
]

T0 = datetime(2026, 2, 24, 9, 0, tzinfo=UTC)

HAPPY_PATH = [
    (JobEventType.PARSED, JobStatus.PARSED),
    (JobEventType.POLICY_CHECKED, JobStatus.POLICY_CHECKED),
    (JobEventType.PLANNED, JobStatus.PLANNED),
    (JobEventType.EXECUTING, JobStatus.EXECUTING),
    (JobEventType.PR_OPENED, JobStatus.PR_OPENED),
    (JobEventType.WAITING_APPROVAL, JobStatus.WAITING_APPROVAL),
    (JobEventType.MERGED, JobStatus.MERGED),
    (JobEventType.DEPLOYED, JobStatus.DEPLOYED),
    (JobEventType.DONE, JobStatus.DONE),
]


def _event(event_type: JobEventType, minutes: int = 1, **kwargs) -> JobEvent:
    return JobEvent(event_type, T0 + timedelta(minutes=minutes), **kwargs)


def test_happy_path_reaches_done_and_keeps_pr_number() -> None:
    state = create_received_job_state("job-1", T0)

    for index, (event_type, expected) in enumerate(HAPPY_PATH, start=1):
        pr_number = 7 if event_type is JobEventType.PR_OPENED else None
        result = transition_job_state(state, _event(event_type, index, pr_number=pr_number))
        assert isinstance(result, Ok), result
        state = result.value
        assert state.status is expected
        assert state.changed_at == T0 + timedelta(minutes=index)

    assert state.pr_number == 7
    assert state.is_terminal


def test_invalid_transition_leaves_state_untouched() -> None:
    state = create_received_job_state("job-1", T0)

    result = transition_job_state(state, _event(JobEventType.PLANNED))

    assert isinstance(result, Err)
    assert result.error == "Invalid job transition RECEIVED -> planned"
    assert state.status is JobStatus.RECEIVED


def test_denied_only_after_policy_check() -> None:
    parsed = transition_job_state(create_received_job_state("job-1", T0), _event(JobEventType.PARSED))
    assert isinstance(parsed, Ok)

    early = transition_job_state(parsed.value, _event(JobEventType.DENIED, reason="nope"))
    assert isinstance(early, Err)

    checked = transition_job_state(parsed.value, _event(JobEventType.POLICY_CHECKED))
    assert isinstance(checked, Ok)
    denied = transition_job_state(checked.value, _event(JobEventType.DENIED, reason="blocked path"))
    assert isinstance(denied, Ok)
    assert denied.value.status is JobStatus.DENIED
    assert denied.value.reason == "blocked path"


def test_pr_opened_requires_pr_number() -> None:
    state = create_received_job_state("job-1", T0)
    for event_type, _ in HAPPY_PATH[:4]:
        result = transition_job_state(state, _event(event_type))
        assert isinstance(result, Ok)
        state = result.value

    result = transition_job_state(state, _event(JobEventType.PR_OPENED))

    assert isinstance(result, Err)
    assert "pr_number is required" in result.error


@pytest.mark.parametrize(
    ("event_type", "expected"),
    [
        (JobEventType.FAILED, JobStatus.FAILED),
        (JobEventType.CANCELLED, JobStatus.CANCELLED),
        (JobEventType.TIMED_OUT, JobStatus.TIMED_OUT),
    ],
)
def test_abort_events_accepted_from_any_non_terminal_state(
    event_type: JobEventType,
    expected: JobStatus,
) -> None:
    state = create_received_job_state("job-1", T0)

    result = transition_job_state(state, _event(event_type, reason="worker crashed"))

    assert isinstance(result, Ok)
    assert result.value.status is expected
    assert result.value.reason == "worker crashed"


def test_terminal_states_reject_every_event() -> None:
    failed = transition_job_state(
        create_received_job_state("job-1", T0),
        _event(JobEventType.FAILED, reason="boom"),
    )
    assert isinstance(failed, Ok)

    for event_type in JobEventType:
        result = transition_job_state(failed.value, _event(event_type, 2, reason="again"))
        assert isinstance(result, Err)
        assert "state is terminal" in result.error


def test_terminal_status_helper() -> None:
    assert is_terminal_job_status(JobStatus.DONE)
    assert is_terminal_job_status(JobStatus.DENIED)
    assert not is_terminal_job_status(JobStatus.WAITING_APPROVAL)
