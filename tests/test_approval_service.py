from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure

from agent_conductor.delegation.approval import (
    DISCORD_WRITES_DISABLED,
    EXPIRED_MESSAGE,
    ApprovalContext,
    DelegationApprovalService,
)
from agent_conductor.delegation.command_parser import (
    AcceptCommand,
    InvalidCommand,
    NoCommand,
    PendingCommand,
    RejectCommand,
)
from agent_conductor.delegation.models import PendingProposal
from agent_conductor.delegation.proposals import ProposalStore
from agent_conductor.delegation.state_machine import DelegationStatus
from agent_conductor.results import Err, Ok

pytestmark = [
    allure.epic("Delegation"),
    allure.feature("Approval Service"),
]

NOW = datetime(2026, 2, 24, 12, 0, tzinfo=UTC)


def _service(store: ProposalStore, sent: list[str], **overrides) -> DelegationApprovalService:
    context = ApprovalContext(
        session_id="session-1",
        proposal_store=store,
        send=sent.append,
        now=lambda: NOW + timedelta(minutes=1),
        **overrides,
    )
    return DelegationApprovalService(context)


def test_no_command_is_not_handled() -> None:
    sent: list[str] = []

    result = _service(ProposalStore(), sent).handle(NoCommand())

    assert result.handled is False
    assert sent == []


def test_invalid_command_is_reported() -> None:
    sent: list[str] = []

    result = _service(ProposalStore(), sent).handle(InvalidCommand(error="ambiguous"))

    assert result.handled
    assert sent == ["[INVALID] ambiguous"]


def test_pending_shows_proposal(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal())
    sent: list[str] = []

    _service(store, sent).handle(PendingCommand())

    assert sent[0].startswith("[PENDING PROPOSAL] p-1")
    assert sent[-1] == "Reply 'accept p-1' to apply or 'reject p-1' to discard."


def test_pending_without_proposal() -> None:
    sent: list[str] = []

    _service(ProposalStore(), sent).handle(PendingCommand())

    assert sent == ["There is no pending delegated proposal for this session."]


def test_accept_applies_patch_and_resolves(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal(changed_files=("a.py", "b.py")))
    sent: list[str] = []
    applied: list[str] = []
    cleaned: list[str] = []

    def _apply(proposal: PendingProposal) -> Ok[None]:
        applied.append(proposal.id)
        return Ok(None)

    service = _service(
        store,
        sent,
        apply_patch=_apply,
        cleanup_proposal=lambda proposal: cleaned.append(proposal.id),
    )
    service.handle(AcceptCommand(proposal_id="p-1"))

    assert applied == ["p-1"]
    assert cleaned == ["p-1"]
    assert sent == ["[PROPOSAL APPLIED] p-1\n\nProposal applied.\nChanged files: 2"]
    assert store.get_state("session-1").status is DelegationStatus.ACCEPTED
    assert service.context.history[-1] == "Proposal applied: p-1"


def test_failed_apply_keeps_proposal_pending(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal())
    sent: list[str] = []
    failures: list[str] = []

    service = _service(
        store,
        sent,
        apply_patch=lambda _: Err("Patch does not apply cleanly."),
        on_apply_failed=lambda _, error: failures.append(error),
    )
    service.handle(AcceptCommand())

    assert sent == ["Patch does not apply cleanly."]
    assert failures == ["Patch does not apply cleanly."]
    assert store.has_pending("session-1")


def test_precondition_failure_blocks_apply(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal())
    sent: list[str] = []
    applied: list[str] = []

    def _apply(proposal: PendingProposal) -> Ok[None]:
        applied.append(proposal.id)
        return Ok(None)

    _service(
        store,
        sent,
        verify_preconditions=lambda _: Err("Repository HEAD moved."),
        apply_patch=_apply,
    ).handle(AcceptCommand())

    assert sent == ["Repository HEAD moved."]
    assert applied == []


def test_discord_accept_requires_unsafe_writes(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal())
    sent: list[str] = []

    _service(store, sent, channel="discord").handle(AcceptCommand())

    assert sent == [DISCORD_WRITES_DISABLED]
    assert store.has_pending("session-1")


def test_reject_resolves_proposal(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal())
    sent: list[str] = []
    rejected: list[str] = []

    _service(store, sent, on_rejected=lambda proposal: rejected.append(proposal.id)).handle(
        RejectCommand(proposal_id="p-1"),
    )

    assert sent == ["[PROPOSAL REJECTED] p-1\n\nProposal rejected."]
    assert rejected == ["p-1"]
    assert not store.has_pending("session-1")


def test_accept_mismatched_id_reports_error(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal("p-1"))
    sent: list[str] = []

    _service(store, sent).handle(AcceptCommand(proposal_id="p-2"))

    assert sent == ["Proposal id p-2 does not match pending proposal p-1."]
    assert store.has_pending("session-1")


def test_expired_proposal_is_reported_as_expired(make_proposal) -> None:
    store = ProposalStore()
    store.create_proposal(make_proposal(ttl=timedelta(seconds=30)))
    sent: list[str] = []
    expired: list[str] = []

    _service(store, sent, on_expired=lambda proposal: expired.append(proposal.id)).handle(
        AcceptCommand(proposal_id="p-1"),
    )

    assert sent == [EXPIRED_MESSAGE]
    assert expired == ["p-1"]
    assert store.get_state("session-1").status is DelegationStatus.EXPIRED
