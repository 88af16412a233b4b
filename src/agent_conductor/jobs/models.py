"""Domain models for job intake and policy decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class UserMessagePacket:
    """Intake packet that opens a job."""

    job_id: str
    text: str
    received_at: datetime
    session_id: str | None = None
    channel: str = "repl"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    """Verdict recorded against a job after the policy check."""

    allowed: bool
    reason: str | None = None
