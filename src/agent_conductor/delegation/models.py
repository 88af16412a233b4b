"""Domain models for delegated code-change proposals."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from agent_conductor.delegation.state_machine import DelegationState, DelegationStatus
from agent_conductor.storage.common import from_iso


@dataclass(frozen=True, slots=True)
class ProposalFileDiff:
    """Diff of one changed file."""

    file_path: str
    language: str
    diff: str


@dataclass(frozen=True, slots=True)
class PendingProposal:
    """Untrusted file changes from a delegated run, awaiting accept or reject."""

    id: str
    session_id: str
    created_at: datetime
    expires_at: datetime
    project_name: str
    repo_root: str
    base_head: str
    worktree_path: str
    patch_path: str
    changed_files: tuple[str, ...] = ()
    diff_stat: str = ""
    diff_preview: str = ""
    file_diffs: tuple[ProposalFileDiff, ...] = ()
    delegate_summary: str = ""
    delegate_exit_code: int = 0

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        payload["expires_at"] = self.expires_at.isoformat()
        payload["changed_files"] = list(self.changed_files)
        payload["file_diffs"] = [asdict(entry) for entry in self.file_diffs]
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PendingProposal:
        return cls(
            id=str(payload["id"]),
            session_id=str(payload["session_id"]),
            created_at=from_iso(str(payload["created_at"])),
            expires_at=from_iso(str(payload["expires_at"])),
            project_name=str(payload.get("project_name", "")),
            repo_root=str(payload.get("repo_root", "")),
            base_head=str(payload.get("base_head", "")),
            worktree_path=str(payload.get("worktree_path", "")),
            patch_path=str(payload.get("patch_path", "")),
            changed_files=tuple(str(item) for item in payload.get("changed_files", [])),
            diff_stat=str(payload.get("diff_stat", "")),
            diff_preview=str(payload.get("diff_preview", "")),
            file_diffs=tuple(
                ProposalFileDiff(
                    file_path=str(entry["file_path"]),
                    language=str(entry.get("language", "")),
                    diff=str(entry.get("diff", "")),
                )
                for entry in payload.get("file_diffs", [])
            ),
            delegate_summary=str(payload.get("delegate_summary", "")),
            delegate_exit_code=int(payload.get("delegate_exit_code", 0)),
        )


@dataclass(frozen=True, slots=True)
class StoredProposalRecord:
    """A pending proposal together with its delegation state."""

    proposal: PendingProposal
    state: DelegationState

    @property
    def session_id(self) -> str:
        return self.proposal.session_id


@dataclass(frozen=True, slots=True)
class ProposalResolution:
    """Successful outcome of a store mutation."""

    proposal: PendingProposal
    state: DelegationState


@dataclass(frozen=True, slots=True)
class DelegateResult:
    """What the external code-generation worker reported back."""

    exit_code: int
    summary: str
    proposal: PendingProposal | None = None
    no_changes: bool = False


def state_to_payload(state: DelegationState) -> dict[str, Any]:
    return {
        "status": state.status.value,
        "changed_at": state.changed_at.isoformat(),
        "proposal_id": state.proposal_id,
        "error": state.error,
    }


def state_from_payload(payload: dict[str, Any]) -> DelegationState:
    return DelegationState(
        status=DelegationStatus(payload["status"]),
        changed_at=from_iso(str(payload["changed_at"])),
        proposal_id=payload.get("proposal_id"),
        error=payload.get("error"),
    )
