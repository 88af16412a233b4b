"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from agent_conductor.delegation.models import PendingProposal, ProposalFileDiff
from agent_conductor.policy.engine import reset_default_engine

NOW = datetime(2026, 2, 24, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep tests independent from the developer's AGENT_CONDUCTOR_* environment."""
    for name in (
        "AGENT_CONDUCTOR_LOG_LEVEL",
        "AGENT_CONDUCTOR_POLICY_PATH",
        "AGENT_CONDUCTOR_CRON_REGISTRY_PATH",
        "AGENT_CONDUCTOR_SCAN_WINDOW_MINUTES",
        "AGENT_CONDUCTOR_DB_PATH",
        "AGENT_CONDUCTOR_BUSY_TIMEOUT_MS",
        "DISCORD_UNSAFE_ENABLE_WRITES",
        "AGENT_CONDUCTOR_AUDIT_ROOT",
        "AGENT_CONDUCTOR_AUDIT_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_default_engine()
    yield
    reset_default_engine()


@pytest.fixture()
def make_proposal() -> Callable[..., PendingProposal]:
    """Factory for pending proposals created at ``NOW`` with a 30 minute TTL."""

    def _make(
        proposal_id: str = "p-1",
        session_id: str = "session-1",
        *,
        created_at: datetime = NOW,
        ttl: timedelta = timedelta(minutes=30),
        patch_path: str = "/tmp/p-1.patch",
        changed_files: tuple[str, ...] = ("src/app.py",),
    ) -> PendingProposal:
        return PendingProposal(
            id=proposal_id,
            session_id=session_id,
            created_at=created_at,
            expires_at=created_at + ttl,
            project_name="demo",
            repo_root="/repo",
            base_head="abc123",
            worktree_path="/tmp/worktree",
            patch_path=patch_path,
            changed_files=changed_files,
            diff_stat=" src/app.py | 2 +-",
            file_diffs=tuple(
                ProposalFileDiff(file_path=path, language="python", diff="-old\n+new")
                for path in changed_files
            ),
            delegate_summary="Renamed a variable.",
        )

    return _make
