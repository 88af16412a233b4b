"""Apply parsed operator commands to the proposal store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from agent_conductor.delegation.command_parser import (
    AcceptCommand,
    DelegationControlCommand,
    InvalidCommand,
    NoCommand,
    PendingCommand,
    RejectCommand,
)
from agent_conductor.delegation.messages import format_pending_proposal_messages
from agent_conductor.delegation.models import PendingProposal
from agent_conductor.delegation.proposals import ProposalStore
from agent_conductor.results import Err, Ok
from agent_conductor.storage.common import utc_now

logger = logging.getLogger(__name__)

ProposalHook = Callable[[PendingProposal], None]
ProposalCheck = Callable[[PendingProposal], Ok[None] | Err]

EXPIRED_MESSAGE = "The pending proposal expired and was discarded."
DISCORD_WRITES_DISABLED = (
    "Applying delegated changes is disabled from Discord unless DISCORD_UNSAFE_ENABLE_WRITES=1."
)


def _always_ok(_: PendingProposal) -> Ok[None]:
    return Ok(None)


def _noop(_: PendingProposal) -> None:
    return None


@dataclass(slots=True)
class ApprovalContext:
    """Per-session collaborators; patch application itself lives outside this package."""

    session_id: str
    proposal_store: ProposalStore
    send: Callable[[str], None]
    channel: str = "repl"
    discord_unsafe_enable_writes: bool = False
    now: Callable[[], datetime] = utc_now
    verify_preconditions: ProposalCheck = _always_ok
    apply_patch: ProposalCheck = _always_ok
    cleanup_proposal: ProposalHook = _noop
    on_expired: ProposalHook | None = None
    on_accepted: ProposalHook | None = None
    on_rejected: ProposalHook | None = None
    on_apply_failed: Callable[[PendingProposal, str], None] | None = None
    history: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ApprovalResult:
    handled: bool


class DelegationApprovalService:
    """Routes accept / reject / pending intents for one session."""

    def __init__(self, context: ApprovalContext) -> None:
        self.context = context

    def handle(self, command: DelegationControlCommand) -> ApprovalResult:
        if isinstance(command, NoCommand):
            return ApprovalResult(handled=False)

        expired_for_session = self._expire_stale()

        if isinstance(command, InvalidCommand):
            self._reply(f"[INVALID] {command.error}")
            self._remember(f"Delegation control command rejected: {command.error}")
        elif isinstance(command, PendingCommand):
            self._show_pending()
        elif isinstance(command, RejectCommand):
            self._reject(command, expired_for_session=expired_for_session)
        elif isinstance(command, AcceptCommand):
            self._accept(command, expired_for_session=expired_for_session)
        return ApprovalResult(handled=True)

    def _expire_stale(self) -> bool:
        ctx = self.context
        expired_for_session = False
        for proposal in ctx.proposal_store.expire_stale(ctx.now()):
            if proposal.session_id == ctx.session_id:
                expired_for_session = True
            ctx.cleanup_proposal(proposal)
            if ctx.on_expired is not None:
                ctx.on_expired(proposal)
        return expired_for_session

    def _show_pending(self) -> None:
        pending = self.context.proposal_store.get_proposal(self.context.session_id)
        if pending is None:
            self._reply("There is no pending delegated proposal for this session.")
            self._remember("No pending delegated proposal.")
            return
        for message in format_pending_proposal_messages(pending):
            self._reply(message)
        self._remember(f"Pending proposal shown: {pending.id}")

    def _reject(self, command: RejectCommand, *, expired_for_session: bool) -> None:
        ctx = self.context
        resolved = ctx.proposal_store.reject_proposal(ctx.session_id, command.proposal_id, ctx.now())
        if isinstance(resolved, Err):
            self._reply(EXPIRED_MESSAGE if expired_for_session else resolved.error)
            self._remember(f"Proposal reject failed: {resolved.error}")
            return
        proposal = resolved.value.proposal
        ctx.cleanup_proposal(proposal)
        if ctx.on_rejected is not None:
            ctx.on_rejected(proposal)
        self._reply(f"[PROPOSAL REJECTED] {proposal.id}\n\nProposal rejected.")
        self._remember(f"Proposal rejected: {proposal.id}")

    def _accept(self, command: AcceptCommand, *, expired_for_session: bool) -> None:
        ctx = self.context
        if ctx.channel == "discord" and not ctx.discord_unsafe_enable_writes:
            self._reply(DISCORD_WRITES_DISABLED)
            self._remember("Proposal apply denied from Discord unsafe mode off.")
            return

        pending = ctx.proposal_store.get_proposal(ctx.session_id)
        if pending is None or (command.proposal_id and pending.id != command.proposal_id):
            if pending is None:
                error = "No pending delegated proposal for this session."
            else:
                error = (
                    f"Proposal id {command.proposal_id} does not match pending proposal "
                    f"{pending.id}."
                )
            self._reply(EXPIRED_MESSAGE if expired_for_session else error)
            self._remember(f"Proposal apply failed: {error}")
            return

        for step, check in (("blocked", ctx.verify_preconditions), ("failed", ctx.apply_patch)):
            outcome = check(pending)
            if isinstance(outcome, Err):
                logger.warning("Proposal %s apply %s: %s", pending.id, step, outcome.error)
                self._reply(outcome.error)
                if ctx.on_apply_failed is not None:
                    ctx.on_apply_failed(pending, outcome.error)
                self._remember(f"Proposal apply {step}: {outcome.error}")
                return

        accepted = ctx.proposal_store.accept_proposal(ctx.session_id, command.proposal_id, ctx.now())
        if isinstance(accepted, Err):
            self._reply(accepted.error)
            self._remember(f"Proposal apply state mismatch: {accepted.error}")
            return

        proposal = accepted.value.proposal
        ctx.cleanup_proposal(proposal)
        if ctx.on_accepted is not None:
            ctx.on_accepted(proposal)
        self._reply(
            f"[PROPOSAL APPLIED] {proposal.id}\n\nProposal applied.\n"
            f"Changed files: {len(proposal.changed_files)}",
        )
        self._remember(f"Proposal applied: {proposal.id}")

    def _reply(self, message: str) -> None:
        self.context.send(message)

    def _remember(self, note: str) -> None:
        self.context.history.append(note)
