"""Pending proposal store enforcing one open proposal per session."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime

from agent_conductor.delegation.models import (
    PendingProposal,
    ProposalResolution,
    StoredProposalRecord,
)
from agent_conductor.delegation.repository import InMemoryProposalRepository, ProposalRepository
from agent_conductor.delegation.state_machine import (
    DelegationEvent,
    DelegationEventType,
    DelegationState,
    DelegationStatus,
    create_queued_delegation_state,
    transition_delegation_state,
)
from agent_conductor.results import Err, Ok
from agent_conductor.storage.common import ensure_utc, utc_now

logger = logging.getLogger(__name__)

RESOLVED_HISTORY_LIMIT = 1024


class ProposalStore:
    """Tracks delegation runs that produced a diff until a human resolves them.

    Mutations return ``Ok``/``Err`` values instead of raising. One lock covers each
    mutation so the check-and-insert in ``create_proposal`` is atomic.
    """

    def __init__(
        self,
        repository: ProposalRepository | None = None,
        *,
        resolved_history_limit: int = RESOLVED_HISTORY_LIMIT,
    ) -> None:
        if resolved_history_limit < 1:
            raise ValueError("resolved_history_limit must be >= 1")
        self.repository: ProposalRepository = repository or InMemoryProposalRepository()
        self._lock = threading.Lock()
        # Terminal state of the last resolved run per session, oldest sessions evicted first.
        self._resolved: OrderedDict[str, DelegationState] = OrderedDict()
        self._resolved_history_limit = resolved_history_limit

    def create_proposal(self, proposal: PendingProposal) -> Ok[ProposalResolution] | Err:
        with self._lock:
            existing = self.repository.get(proposal.session_id)
            if existing is not None:
                return Err(
                    f"Session {proposal.session_id} already has a pending proposal "
                    f"({existing.proposal.id}).",
                )

            at = proposal.created_at
            running = transition_delegation_state(
                create_queued_delegation_state(at),
                DelegationEvent(DelegationEventType.START, at),
            )
            if isinstance(running, Err):
                return running
            ready = transition_delegation_state(
                running.value,
                DelegationEvent(
                    DelegationEventType.DELEGATE_SUCCESS_WITH_DIFF,
                    at,
                    proposal_id=proposal.id,
                ),
            )
            if isinstance(ready, Err):
                return ready

            self.repository.set(StoredProposalRecord(proposal=proposal, state=ready.value))
            self._resolved.pop(proposal.session_id, None)

        logger.info(
            "Proposal %s ready for session %s (%d files, expires %s)",
            proposal.id,
            proposal.session_id,
            len(proposal.changed_files),
            proposal.expires_at.isoformat(),
        )
        return Ok(ProposalResolution(proposal=proposal, state=ready.value))

    def get_proposal(self, session_id: str) -> PendingProposal | None:
        record = self.repository.get(session_id)
        return record.proposal if record else None

    def get_state(self, session_id: str) -> DelegationState | None:
        """Pending state, or the terminal state of the session's last resolved run."""

        record = self.repository.get(session_id)
        if record is not None:
            return record.state
        return self._resolved.get(session_id)

    def has_pending(self, session_id: str) -> bool:
        return self.repository.has(session_id)

    def list_pending(self, session_id: str | None = None) -> list[PendingProposal]:
        return [record.proposal for record in self.repository.list(session_id)]

    def accept_proposal(
        self,
        session_id: str,
        proposal_id: str | None = None,
        at: datetime | None = None,
    ) -> Ok[ProposalResolution] | Err:
        return self._resolve(session_id, proposal_id, at, DelegationEventType.ACCEPT)

    def reject_proposal(
        self,
        session_id: str,
        proposal_id: str | None = None,
        at: datetime | None = None,
    ) -> Ok[ProposalResolution] | Err:
        return self._resolve(session_id, proposal_id, at, DelegationEventType.REJECT)

    def expire_stale(self, now: datetime | None = None) -> list[PendingProposal]:
        """Remove every record whose ``expires_at <= now`` and return the removed proposals.

        Removal never depends on the formal ``expire`` transition succeeding. A record that
        is already terminal is dropped quietly; any other transition failure is logged
        before the record is dropped, so a bookkeeping bug stays visible without blocking
        cleanup of the remaining records.
        """

        current = ensure_utc(now) if now is not None else utc_now()
        expired: list[PendingProposal] = []
        with self._lock:
            for record in self.repository.list():
                if ensure_utc(record.proposal.expires_at) > current:
                    continue
                transitioned = transition_delegation_state(
                    record.state,
                    DelegationEvent(DelegationEventType.EXPIRE, current),
                )
                if isinstance(transitioned, Ok):
                    final_state = transitioned.value
                else:
                    if not record.state.is_terminal:
                        logger.warning(
                            "Force-removing proposal %s for session %s: %s",
                            record.proposal.id,
                            record.session_id,
                            transitioned.error,
                        )
                    final_state = DelegationState(
                        status=DelegationStatus.EXPIRED,
                        changed_at=current,
                        proposal_id=record.proposal.id,
                    )
                self.repository.delete(record.session_id)
                self._remember_resolved(record.session_id, final_state)
                expired.append(record.proposal)

        for proposal in expired:
            logger.info("Proposal %s for session %s expired", proposal.id, proposal.session_id)
        return expired

    def _resolve(
        self,
        session_id: str,
        proposal_id: str | None,
        at: datetime | None,
        event_type: DelegationEventType,
    ) -> Ok[ProposalResolution] | Err:
        with self._lock:
            record = self.repository.get(session_id)
            if record is None:
                return Err(f"No pending proposal exists for session {session_id}.")
            if proposal_id and record.proposal.id != proposal_id:
                return Err(
                    f"Proposal id {proposal_id} does not match pending proposal "
                    f"{record.proposal.id}.",
                )

            transitioned = transition_delegation_state(
                record.state,
                DelegationEvent(event_type, at or utc_now(), proposal_id=proposal_id),
            )
            if isinstance(transitioned, Err):
                return transitioned

            self.repository.delete(session_id)
            self._remember_resolved(session_id, transitioned.value)

        logger.info(
            "Proposal %s for session %s %s",
            record.proposal.id,
            session_id,
            transitioned.value.status.value,
        )
        return Ok(ProposalResolution(proposal=record.proposal, state=transitioned.value))

    def _remember_resolved(self, session_id: str, state: DelegationState) -> None:
        self._resolved.pop(session_id, None)
        self._resolved[session_id] = state
        while len(self._resolved) > self._resolved_history_limit:
            self._resolved.popitem(last=False)
