"""Storage backends for pending proposal records keyed by session."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from sqlmodel import Session, SQLModel, col, select

from agent_conductor.delegation.models import (
    PendingProposal,
    StoredProposalRecord,
    state_from_payload,
    state_to_payload,
)
from agent_conductor.storage.common import build_sqlite_engine, ensure_utc, utc_now
from agent_conductor.storage.sqlmodel_models import PendingProposalRow

logger = logging.getLogger(__name__)


class ProposalRepository(Protocol):
    """Minimal map-like contract the proposal store relies on."""

    def get(self, session_id: str) -> StoredProposalRecord | None: ...

    def has(self, session_id: str) -> bool: ...

    def list(self, session_id: str | None = None) -> list[StoredProposalRecord]: ...

    def set(self, record: StoredProposalRecord) -> None: ...

    def delete(self, session_id: str) -> None: ...


class InMemoryProposalRepository:
    """Process-local repository; records vanish on restart."""

    def __init__(self) -> None:
        self._by_session: dict[str, StoredProposalRecord] = {}

    def get(self, session_id: str) -> StoredProposalRecord | None:
        return self._by_session.get(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._by_session

    def list(self, session_id: str | None = None) -> list[StoredProposalRecord]:
        if session_id:
            record = self._by_session.get(session_id)
            return [record] if record else []
        return list(self._by_session.values())

    def set(self, record: StoredProposalRecord) -> None:
        self._by_session[record.session_id] = record

    def delete(self, session_id: str) -> None:
        self._by_session.pop(session_id, None)


class SqlProposalRepository:
    """SQLite-backed repository so pending proposals survive restarts."""

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = 5_000,
        now: Callable[[], datetime] = utc_now,
        path_exists: Callable[[str], bool] = os.path.exists,
    ) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        self._now = now
        self._path_exists = path_exists

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self, *, prune_stale: bool = True) -> None:
        """Create tables and, unless ``prune_stale`` is false, drop records that cannot be resumed.

        A record is unusable after a restart when it already expired or its patch file
        disappeared together with the isolated worktree.
        """

        SQLModel.metadata.create_all(self.engine, tables=[PendingProposalRow.__table__])
        if not prune_stale:
            return
        now = ensure_utc(self._now())
        with Session(self.engine) as session:
            rows = session.exec(select(PendingProposalRow)).all()
            for row in rows:
                record = _to_record(row)
                if record.proposal.expires_at <= now:
                    reason = "expired"
                elif not record.proposal.patch_path or not self._path_exists(
                    record.proposal.patch_path,
                ):
                    reason = "patch file missing"
                else:
                    continue
                logger.info(
                    "Dropping stored proposal %s for session %s on load: %s",
                    record.proposal.id,
                    record.session_id,
                    reason,
                )
                session.delete(row)
            session.commit()

    def get(self, session_id: str) -> StoredProposalRecord | None:
        with Session(self.engine) as session:
            row = session.get(PendingProposalRow, session_id)
            return _to_record(row) if row is not None else None

    def has(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def list(self, session_id: str | None = None) -> list[StoredProposalRecord]:
        with Session(self.engine) as session:
            query = select(PendingProposalRow).order_by(col(PendingProposalRow.created_at).asc())
            if session_id:
                query = query.where(PendingProposalRow.session_id == session_id)
            return [_to_record(row) for row in session.exec(query).all()]

    def set(self, record: StoredProposalRecord) -> None:
        proposal = record.proposal
        with Session(self.engine) as session:
            row = session.get(PendingProposalRow, proposal.session_id)
            if row is None:
                row = PendingProposalRow(
                    session_id=proposal.session_id,
                    proposal_id=proposal.id,
                    status=record.state.status.value,
                    patch_path=proposal.patch_path,
                    created_at=proposal.created_at,
                    expires_at=proposal.expires_at,
                    proposal_json=json.dumps(proposal.to_payload(), ensure_ascii=False),
                    state_json=json.dumps(state_to_payload(record.state)),
                )
            else:
                row.proposal_id = proposal.id
                row.status = record.state.status.value
                row.patch_path = proposal.patch_path
                row.created_at = proposal.created_at
                row.expires_at = proposal.expires_at
                row.proposal_json = json.dumps(proposal.to_payload(), ensure_ascii=False)
                row.state_json = json.dumps(state_to_payload(record.state))
            session.add(row)
            session.commit()

    def delete(self, session_id: str) -> None:
        with Session(self.engine) as session:
            row = session.get(PendingProposalRow, session_id)
            if row is None:
                return
            session.delete(row)
            session.commit()


def _to_record(row: PendingProposalRow) -> StoredProposalRecord:
    return StoredProposalRecord(
        proposal=PendingProposal.from_payload(json.loads(row.proposal_json)),
        state=state_from_payload(json.loads(row.state_json)),
    )
