from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import allure

from agent_conductor.delegation.proposals import ProposalStore
from agent_conductor.delegation.repository import SqlProposalRepository
from agent_conductor.delegation.state_machine import DelegationStatus
from agent_conductor.results import Ok

pytestmark = [
    allure.epic("Delegation"),
    allure.feature("Persistent Proposals"),
]

NOW = datetime(2026, 2, 24, 12, 0, tzinfo=UTC)


def _repository(db_path: Path, *, now: datetime = NOW) -> SqlProposalRepository:
    repository = SqlProposalRepository(db_path, now=lambda: now)
    repository.init_schema()
    return repository


def test_pending_proposal_survives_restart(tmp_path: Path, make_proposal) -> None:
    db_path = tmp_path / "proposals.db"
    patch = tmp_path / "p-1.patch"
    patch.write_text("diff", "utf-8")

    first = _repository(db_path)
    try:
        result = ProposalStore(first).create_proposal(make_proposal(patch_path=str(patch)))
        assert isinstance(result, Ok)
    finally:
        first.close()

    second = _repository(db_path, now=NOW + timedelta(minutes=1))
    try:
        store = ProposalStore(second)
        proposal = store.get_proposal("session-1")
        assert proposal is not None
        assert proposal.id == "p-1"
        assert proposal.changed_files == ("src/app.py",)
        assert proposal.file_diffs[0].diff == "-old\n+new"
        assert proposal.expires_at == NOW + timedelta(minutes=30)
        assert store.get_state("session-1").status is DelegationStatus.PROPOSAL_READY
    finally:
        second.close()


def test_resolution_deletes_row(tmp_path: Path, make_proposal) -> None:
    patch = tmp_path / "p-1.patch"
    patch.write_text("diff", "utf-8")
    repository = _repository(tmp_path / "proposals.db")
    try:
        store = ProposalStore(repository)
        store.create_proposal(make_proposal(patch_path=str(patch)))

        assert isinstance(store.accept_proposal("session-1", "p-1"), Ok)
        assert repository.list() == []
        assert not repository.has("session-1")
    finally:
        repository.close()


def test_init_schema_drops_expired_and_orphaned_records(tmp_path: Path, make_proposal) -> None:
    db_path = tmp_path / "proposals.db"
    live_patch = tmp_path / "live.patch"
    live_patch.write_text("diff", "utf-8")

    seed = _repository(db_path)
    try:
        store = ProposalStore(seed)
        store.create_proposal(
            make_proposal("p-live", "session-live", patch_path=str(live_patch)),
        )
        store.create_proposal(
            make_proposal(
                "p-old",
                "session-old",
                ttl=timedelta(minutes=5),
                patch_path=str(live_patch),
            ),
        )
        store.create_proposal(
            make_proposal("p-orphan", "session-orphan", patch_path=str(tmp_path / "gone.patch")),
        )
    finally:
        seed.close()

    reloaded = _repository(db_path, now=NOW + timedelta(minutes=10))
    try:
        assert [record.proposal.id for record in reloaded.list()] == ["p-live"]
    finally:
        reloaded.close()


def test_init_schema_can_keep_stale_records_for_expiry_sweep(
    tmp_path: Path,
    make_proposal,
) -> None:
    db_path = tmp_path / "proposals.db"
    seed = _repository(db_path)
    try:
        ProposalStore(seed).create_proposal(make_proposal(ttl=timedelta(minutes=5)))
    finally:
        seed.close()

    repository = SqlProposalRepository(db_path)
    try:
        repository.init_schema(prune_stale=False)
        store = ProposalStore(repository)
        expired = store.expire_stale(NOW + timedelta(minutes=6))
        assert [proposal.id for proposal in expired] == ["p-1"]
        assert repository.list() == []
    finally:
        repository.close()


def test_list_filters_by_session(tmp_path: Path, make_proposal) -> None:
    patch = tmp_path / "p.patch"
    patch.write_text("diff", "utf-8")
    repository = _repository(tmp_path / "proposals.db")
    try:
        store = ProposalStore(repository)
        store.create_proposal(make_proposal("p-1", "session-1", patch_path=str(patch)))
        store.create_proposal(
            make_proposal(
                "p-2",
                "session-2",
                created_at=NOW + timedelta(minutes=1),
                patch_path=str(patch),
            ),
        )

        assert [record.proposal.id for record in repository.list()] == ["p-1", "p-2"]
        assert [record.proposal.id for record in repository.list("session-2")] == ["p-2"]
    finally:
        repository.close()
