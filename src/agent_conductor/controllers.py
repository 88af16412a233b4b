"""Controllers for agent-conductor CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from agent_conductor.config import Settings
from agent_conductor.delegation.approval import ApprovalContext, DelegationApprovalService
from agent_conductor.delegation.command_parser import (
    AcceptCommand,
    DelegationControlCommand,
    RejectCommand,
    parse_delegation_control_command,
)
from agent_conductor.delegation.proposals import ProposalStore
from agent_conductor.delegation.repository import SqlProposalRepository
from agent_conductor.policy.engine import Decision, PolicyEngine, hash_secret
from agent_conductor.scheduler.dispatcher import compute_due_run_instances, dedupe_run_instances
from agent_conductor.scheduler.repository import CronRegistryRepository
from agent_conductor.storage.common import from_iso, to_iso_z, utc_now


@dataclass(slots=True)
class PolicyCheckCommand:
    """CLI inputs for policy check command."""

    command: str
    policy_path: Path | None


@dataclass(slots=True)
class PolicyVerifySecretCommand:
    """CLI inputs for secret verification command."""

    rule_id: str
    passphrase: str
    policy_path: Path | None


@dataclass(slots=True)
class ScheduleDueCommand:
    """CLI inputs for due run computation."""

    start: str | None
    end: str | None
    registry_path: Path | None
    seen_ids: tuple[str, ...]


@dataclass(slots=True)
class ProposalsPendingCommand:
    """CLI inputs for pending proposal listing."""

    db_path: Path | None
    session_id: str | None


@dataclass(slots=True)
class ProposalsResolveCommand:
    """CLI inputs for accept / reject commands."""

    db_path: Path | None
    session_id: str
    proposal_id: str | None
    accept: bool


@dataclass(slots=True)
class ProposalsReplyCommand:
    """CLI inputs for free-form operator replies."""

    db_path: Path | None
    session_id: str
    text: str
    channel: str


@dataclass(slots=True)
class ProposalsExpireCommand:
    """CLI inputs for the expiry sweep."""

    db_path: Path | None


@dataclass(slots=True)
class CommandOutcome:
    """Lines to print plus whether the command succeeded."""

    lines: list[str]
    success: bool = True


class PolicyCliController:
    """Coordinates policy command execution."""

    def check(self, command: PolicyCheckCommand) -> CommandOutcome:
        engine = _policy_engine(command.policy_path)
        verdict = engine.evaluate(command.command)
        lines = [f"Decision: {verdict.decision.value}", f"Rule: {verdict.rule_id or '-'}"]
        if verdict.reason:
            lines.append(f"Reason: {verdict.reason}")
        if verdict.prompt:
            lines.append(verdict.prompt)
        return CommandOutcome(lines=lines, success=verdict.decision is not Decision.BLOCKED)

    def verify_secret(self, command: PolicyVerifySecretCommand) -> CommandOutcome:
        engine = _policy_engine(command.policy_path)
        if engine.verify_secret(command.rule_id, command.passphrase):
            return CommandOutcome(lines=[f"Secret accepted for rule {command.rule_id}."])
        return CommandOutcome(
            lines=[f"Secret rejected for rule {command.rule_id}."],
            success=False,
        )

    def hash_secret(self, passphrase: str) -> list[str]:
        return [hash_secret(passphrase)]


class SchedulerCliController:
    """Coordinates scheduler command execution."""

    def due(self, command: ScheduleDueCommand) -> list[str]:
        settings = _settings()
        registry = CronRegistryRepository(command.registry_path or settings.scheduler.registry_path)
        start, end = _scan_window(command.start, command.end, settings.scheduler.scan_window_minutes)
        due = dedupe_run_instances(
            compute_due_run_instances(registry.list_scheduled_jobs(), start, end),
            command.seen_ids,
        )
        lines = [f"Due run instances: {len(due)}"]
        lines.extend(f"  {item.run_instance_id}" for item in due)
        return lines


class ProposalsCliController:
    """Coordinates proposal store commands against the SQLite repository."""

    def pending(self, command: ProposalsPendingCommand) -> list[str]:
        settings = _settings(db_path=command.db_path)
        with _proposal_store(settings) as store:
            proposals = store.list_pending(command.session_id)
        if not proposals:
            return ["No pending proposals."]
        lines = [f"Pending proposals: {len(proposals)}"]
        for proposal in proposals:
            lines.append(
                f"  session={proposal.session_id} id={proposal.id} "
                f"project={proposal.project_name} files={len(proposal.changed_files)} "
                f"expires={to_iso_z(proposal.expires_at)}",
            )
        return lines

    def resolve(self, command: ProposalsResolveCommand) -> list[str]:
        control: DelegationControlCommand
        if command.accept:
            control = AcceptCommand(proposal_id=command.proposal_id)
        else:
            control = RejectCommand(proposal_id=command.proposal_id)
        return self._run_control(
            db_path=command.db_path,
            session_id=command.session_id,
            control=control,
            channel="cli",
        )

    def reply(self, command: ProposalsReplyCommand) -> list[str]:
        settings = _settings(db_path=command.db_path)
        # Expired rows must survive until the approval service reports them.
        with _proposal_store(settings, prune_stale=False) as store:
            has_pending = store.has_pending(command.session_id)
        control = parse_delegation_control_command(command.text, has_pending_proposal=has_pending)
        if control.type == "none":
            return ["No delegation control intent found."]
        return self._run_control(
            db_path=command.db_path,
            session_id=command.session_id,
            control=control,
            channel=command.channel,
        )

    def expire(self, command: ProposalsExpireCommand) -> list[str]:
        settings = _settings(db_path=command.db_path)
        with _proposal_store(settings, prune_stale=False) as store:
            expired = store.expire_stale()
        lines = [f"Expired proposals: {len(expired)}"]
        lines.extend(f"  session={item.session_id} id={item.id}" for item in expired)
        return lines

    def _run_control(
        self,
        *,
        db_path: Path | None,
        session_id: str,
        control: DelegationControlCommand,
        channel: str,
    ) -> list[str]:
        settings = _settings(db_path=db_path)
        lines: list[str] = []
        # The approval service runs its own expiry sweep and reports it to the operator.
        with _proposal_store(settings, prune_stale=False) as store:
            service = DelegationApprovalService(
                ApprovalContext(
                    session_id=session_id,
                    proposal_store=store,
                    send=lines.append,
                    channel=channel,
                    discord_unsafe_enable_writes=settings.delegation.discord_unsafe_enable_writes,
                ),
            )
            service.handle(control)
        return lines


def _settings(db_path: Path | None = None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _scan_window(
    start: str | None,
    end: str | None,
    minutes: int,
) -> tuple[str | datetime, str | datetime]:
    """Fill a missing bound from the other one (or from now) using the scan window."""

    window = timedelta(minutes=minutes)
    if start is not None and end is not None:
        return start, end
    if start is not None:
        return start, from_iso(start) + window
    if end is not None:
        return from_iso(end) - window, end
    now = utc_now()
    return now - window, now


def _policy_engine(policy_path: Path | None) -> PolicyEngine:
    return PolicyEngine(policy_path=policy_path or _settings().policy.policy_path)


@contextmanager
def _proposal_store(settings: Settings, *, prune_stale: bool = True) -> Iterator[ProposalStore]:
    repository = SqlProposalRepository(
        settings.delegation.db_path,
        busy_timeout_ms=settings.delegation.busy_timeout_ms,
    )
    try:
        repository.init_schema(prune_stale=prune_stale)
        yield ProposalStore(repository)
    finally:
        repository.close()
