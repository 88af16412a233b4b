"""Turn free-form operator text into a delegation control intent."""

from __future__ import annotations

import re
from dataclasses import dataclass

SLASH_COMMANDS_REMOVED = (
    "Slash delegation commands are no longer supported. Use accept, reject, or pending."
)
AMBIGUOUS_INTENT = "Delegation control intent is ambiguous: both accept and reject were found."

_WHITESPACE_RE = re.compile(r"\s+")
_LEGACY_SLASH_RE = re.compile(r"(?:^|\s)/(?:accept|reject|pending)\b")
_ACCEPT_RE = re.compile(r"\baccept\b")
_REJECT_RE = re.compile(r"\breject\b")
_PENDING_RE = re.compile(r"\bpending\b")
_PROPOSAL_ID_RE = re.compile(r"\bp-[a-z0-9-]+\b")


@dataclass(frozen=True, slots=True)
class NoCommand:
    type: str = "none"


@dataclass(frozen=True, slots=True)
class InvalidCommand:
    error: str
    type: str = "invalid"


@dataclass(frozen=True, slots=True)
class AcceptCommand:
    proposal_id: str | None = None
    type: str = "accept"


@dataclass(frozen=True, slots=True)
class RejectCommand:
    proposal_id: str | None = None
    type: str = "reject"


@dataclass(frozen=True, slots=True)
class PendingCommand:
    type: str = "pending"


DelegationControlCommand = NoCommand | InvalidCommand | AcceptCommand | RejectCommand | PendingCommand


def parse_delegation_control_command(
    text: str,
    *,
    has_pending_proposal: bool = False,
) -> DelegationControlCommand:
    """Classify ``text``.

    A bare "accept"/"reject" only counts as a command when the session has a pending
    proposal or the text names a proposal id; otherwise it is ordinary conversation.
    Text containing both words is rejected as ambiguous before either is honoured.
    """

    normalized = _WHITESPACE_RE.sub(" ", text.strip().lower())
    if not normalized:
        return NoCommand()

    if _LEGACY_SLASH_RE.search(normalized):
        return InvalidCommand(error=SLASH_COMMANDS_REMOVED)

    has_accept = _ACCEPT_RE.search(normalized) is not None
    has_reject = _REJECT_RE.search(normalized) is not None
    match = _PROPOSAL_ID_RE.search(normalized)
    proposal_id = match.group(0) if match else None

    if has_accept and has_reject:
        return InvalidCommand(error=AMBIGUOUS_INTENT)

    if has_accept or has_reject:
        if not has_pending_proposal and proposal_id is None:
            return NoCommand()
        if has_accept:
            return AcceptCommand(proposal_id=proposal_id)
        return RejectCommand(proposal_id=proposal_id)

    if _PENDING_RE.search(normalized):
        return PendingCommand()
    return NoCommand()
