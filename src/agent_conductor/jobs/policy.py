"""Path-based risk classification for jobs that write to the repository."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from agent_conductor.jobs.models import PolicyDecision


class RiskLevel(str, Enum):
    """Ordered risk tiers; higher means more scrutiny."""

    R0 = "R0"
    R1 = "R1"
    R2 = "R2"
    R3 = "R3"

    @property
    def rank(self) -> int:
        return int(self.value[1])


_R1_PREFIXES: tuple[str, ...] = ("/jobs/", "/audit/", "/intel/", "/memory/")
_R2_PREFIXES: tuple[str, ...] = ("/skills/", "/cron/")
_R3_PREFIXES: tuple[str, ...] = ("/agent/", "/policies/", "/.github/")

_RISK_REASONS = {
    RiskLevel.R1: "Touches informational paths (/jobs, /audit, /intel, /memory)",
    RiskLevel.R2: "Touches behavior-adjacent paths (/skills or /cron)",
    RiskLevel.R3: (
        "Touches high-risk paths (/agent, /policies, /.github) or unknown write locations"
    ),
}


@dataclass(slots=True)
class RiskClassification:
    risk_level: RiskLevel
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class JobPolicyDecision:
    """Outcome of the write-path policy for one job."""

    risk_level: RiskLevel
    allowed: bool
    requires_approval: bool
    approval_authority: str
    reasons: list[str] = field(default_factory=list)

    def to_policy_decision(self) -> PolicyDecision:
        """Collapse into the verdict shape recorded by the job service."""

        if self.allowed:
            return PolicyDecision(allowed=True)
        return PolicyDecision(allowed=False, reason="; ".join(self.reasons) or None)


def _normalize_path(path: str) -> str:
    if not path:
        return "/"
    return path if path.startswith("/") else f"/{path}"


def _classify_path(normalized: str) -> tuple[RiskLevel, bool]:
    """Return the path's risk and whether it fell outside every known category."""

    if normalized.startswith(_R3_PREFIXES):
        return RiskLevel.R3, False
    if normalized.startswith(_R2_PREFIXES):
        return RiskLevel.R2, False
    if normalized.startswith(_R1_PREFIXES):
        return RiskLevel.R1, False
    return RiskLevel.R3, True


def classify_job_risk(paths: Iterable[str]) -> RiskClassification:
    touched = list(paths)
    if not touched:
        return RiskClassification(
            risk_level=RiskLevel.R0,
            reasons=["No write paths touched; classified as read-only"],
        )

    highest = RiskLevel.R0
    saw_unknown = False
    for path in touched:
        risk, unknown = _classify_path(_normalize_path(path))
        if risk.rank > highest.rank:
            highest = risk
        saw_unknown = saw_unknown or unknown

    reasons = [_RISK_REASONS[highest]] if highest in _RISK_REASONS else []
    if saw_unknown:
        reasons.append("At least one touched path is outside explicit allowlisted risk categories")
    return RiskClassification(risk_level=highest, reasons=reasons)


def evaluate_job_policy(
    touched_paths: Iterable[str] = (),
    *,
    owner_approved: bool = False,
) -> JobPolicyDecision:
    """R2 and above need owner approval before execution is allowed."""

    risk = classify_job_risk(touched_paths)
    requires_approval = risk.risk_level.rank >= RiskLevel.R2.rank
    allowed = not requires_approval or owner_approved
    reasons = list(risk.reasons)
    if requires_approval and not allowed:
        reasons.append("Owner approval required before execution")
    return JobPolicyDecision(
        risk_level=risk.risk_level,
        allowed=allowed,
        requires_approval=requires_approval,
        approval_authority="owner" if requires_approval else "none",
        reasons=reasons,
    )
