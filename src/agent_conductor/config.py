"""Runtime configuration for the orchestration core."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True)
class PolicySettings:
    """Command policy settings."""

    policy_path: Path = Path("policies/policy.json")


@dataclass(slots=True)
class SchedulerSettings:
    """Cron scheduler settings."""

    registry_path: Path = Path("cron/jobs.json")
    scan_window_minutes: int = 5


@dataclass(slots=True)
class DelegationSettings:
    """Delegated proposal settings."""

    db_path: Path = Path(".agent_conductor.db")
    busy_timeout_ms: int = 5_000
    discord_unsafe_enable_writes: bool = False


@dataclass(slots=True)
class AuditSettings:
    """Job audit trail settings."""

    root_dir: Path = Path(".")
    enabled: bool = True


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    log_level: str = "INFO"
    policy: PolicySettings = field(default_factory=PolicySettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    delegation: DelegationSettings = field(default_factory=DelegationSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults suited to a local checkout."""

        return cls(
            log_level=os.getenv("AGENT_CONDUCTOR_LOG_LEVEL", "INFO").strip().upper(),
            policy=PolicySettings(
                policy_path=Path(
                    os.getenv("AGENT_CONDUCTOR_POLICY_PATH", "policies/policy.json"),
                ),
            ),
            scheduler=SchedulerSettings(
                registry_path=Path(
                    os.getenv("AGENT_CONDUCTOR_CRON_REGISTRY_PATH", "cron/jobs.json"),
                ),
                scan_window_minutes=int(
                    os.getenv("AGENT_CONDUCTOR_SCAN_WINDOW_MINUTES", "5"),
                ),
            ),
            delegation=DelegationSettings(
                db_path=db_path
                or Path(os.getenv("AGENT_CONDUCTOR_DB_PATH", ".agent_conductor.db")),
                busy_timeout_ms=int(os.getenv("AGENT_CONDUCTOR_BUSY_TIMEOUT_MS", "5000")),
                discord_unsafe_enable_writes=_env_bool(
                    "DISCORD_UNSAFE_ENABLE_WRITES",
                    default=False,
                ),
            ),
            audit=AuditSettings(
                root_dir=Path(os.getenv("AGENT_CONDUCTOR_AUDIT_ROOT", ".")),
                enabled=_env_bool("AGENT_CONDUCTOR_AUDIT_ENABLED", default=True),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"AGENT_CONDUCTOR_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, "
                f"got {self.log_level!r}.",
            )
        if self.scheduler.scan_window_minutes <= 0:
            raise ValueError("AGENT_CONDUCTOR_SCAN_WINDOW_MINUTES must be > 0.")
        if self.delegation.busy_timeout_ms <= 0:
            raise ValueError("AGENT_CONDUCTOR_BUSY_TIMEOUT_MS must be > 0.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
