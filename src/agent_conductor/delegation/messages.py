"""Operator-facing rendering of delegation results and pending proposals."""

from __future__ import annotations

from agent_conductor.delegation.models import DelegateResult, PendingProposal, ProposalFileDiff
from agent_conductor.storage.common import to_iso_z

MAX_FILE_DIFF_CHARS = 1_400
MAX_FILE_DIFF_LINES = 120


def truncate_diff(diff: str) -> str:
    """Clamp a diff to ``MAX_FILE_DIFF_LINES`` lines and ``MAX_FILE_DIFF_CHARS`` chars."""

    clipped = "\n".join(diff.split("\n")[:MAX_FILE_DIFF_LINES])
    if len(clipped) > MAX_FILE_DIFF_CHARS:
        clipped = clipped[:MAX_FILE_DIFF_CHARS]
    if len(clipped) < len(diff):
        return f"{clipped}\n... [diff truncated]"
    return clipped


def format_file_diff_message(file_diff: ProposalFileDiff) -> str:
    body = truncate_diff(file_diff.diff.strip() or "(no textual diff output)")
    return "\n".join(
        [
            f"File: {file_diff.file_path}",
            f"Language: {file_diff.language}",
            "```diff",
            body,
            "```",
        ],
    )


def format_pending_proposal_messages(proposal: PendingProposal) -> list[str]:
    """Header, one message per changed file, then the accept/reject hint."""

    header = _join_sections(
        [
            f"[PENDING PROPOSAL] {proposal.id}",
            f"Here are the proposed changes to the {proposal.project_name} project.",
            f"Expires: {to_iso_z(proposal.expires_at)}",
            _changed_files_line(proposal, empty="No file list available"),
            f"Diffstat:\n{proposal.diff_stat}" if proposal.diff_stat else "",
        ],
    )
    return [header, *_file_messages(proposal), _resolution_hint(proposal)]


def format_pending_proposal_message(proposal: PendingProposal) -> str:
    return "\n\n".join(format_pending_proposal_messages(proposal))


def format_delegate_completion_messages(result: DelegateResult) -> list[str]:
    if result.proposal is not None:
        proposal = result.proposal
        header = _join_sections(
            [
                "The delegated task has finished.",
                f"Here are the proposed changes to the {proposal.project_name} project.",
                f"Summary:\n{result.summary}" if result.summary else "",
                f"[PROPOSAL READY] {proposal.id}",
                f"Expires: {to_iso_z(proposal.expires_at)}",
                _changed_files_line(proposal, empty="No files listed"),
                f"Diffstat:\n{proposal.diff_stat}" if proposal.diff_stat else "",
            ],
        )
        return [header, *_file_messages(proposal), _resolution_hint(proposal)]

    if result.no_changes:
        return [
            _join_sections(
                [
                    "The delegated task has finished.",
                    f"Summary:\n{result.summary}" if result.summary else "",
                    "No file changes were proposed.",
                ],
            ),
        ]

    if result.summary:
        return [f"The delegated task has finished:\n\n{result.summary}"]
    return ["The delegated task has finished."]


def _changed_files_line(proposal: PendingProposal, *, empty: str) -> str:
    files = ", ".join(proposal.changed_files) if proposal.changed_files else empty
    return f"Changed files ({len(proposal.changed_files)}): {files}"


def _file_messages(proposal: PendingProposal) -> list[str]:
    if not proposal.file_diffs:
        return ["No per-file diff output is available."]
    return [format_file_diff_message(entry) for entry in proposal.file_diffs]


def _resolution_hint(proposal: PendingProposal) -> str:
    return f"Reply 'accept {proposal.id}' to apply or 'reject {proposal.id}' to discard."


def _join_sections(sections: list[str]) -> str:
    return "\n\n".join(section for section in sections if section)
