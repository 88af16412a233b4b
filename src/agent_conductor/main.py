"""CLI entrypoint for agent-conductor."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from agent_conductor import __version__
from agent_conductor.config import Settings
from agent_conductor.controllers import (
    PolicyCheckCommand,
    PolicyCliController,
    PolicyVerifySecretCommand,
    ProposalsCliController,
    ProposalsExpireCommand,
    ProposalsPendingCommand,
    ProposalsReplyCommand,
    ProposalsResolveCommand,
    ScheduleDueCommand,
    SchedulerCliController,
)

T = TypeVar("T")

click.rich_click.USE_MARKDOWN = True
POLICY_CONTROLLER = PolicyCliController()
SCHEDULER_CONTROLLER = SchedulerCliController()
PROPOSALS_CONTROLLER = ProposalsCliController()


@click.group()
@click.version_option(version=__version__, prog_name="agent-conductor")
def agent_conductor() -> None:
    """Agent orchestration core CLI."""

    level = _run(Settings.from_env).log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@agent_conductor.group()
def policy() -> None:
    """Command policy commands."""


@policy.command("check")
@click.argument("command")
@click.option(
    "--policy-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Policy JSON file. Defaults to AGENT_CONDUCTOR_POLICY_PATH.",
)
def policy_check(command: str, policy_path: Path | None) -> None:
    """Evaluate COMMAND against the policy rules. Exits with 1 when it is blocked."""

    outcome = _run(
        lambda: POLICY_CONTROLLER.check(
            PolicyCheckCommand(command=command, policy_path=policy_path),
        ),
    )
    _emit_lines(outcome.lines)
    if not outcome.success:
        raise SystemExit(1)


@policy.command("verify-secret")
@click.argument("rule_id")
@click.option("--passphrase", prompt=True, hide_input=True, help="Passphrase to check.")
@click.option(
    "--policy-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Policy JSON file. Defaults to AGENT_CONDUCTOR_POLICY_PATH.",
)
def policy_verify_secret(rule_id: str, passphrase: str, policy_path: Path | None) -> None:
    """Check a passphrase against the stored hash of RULE_ID."""

    outcome = _run(
        lambda: POLICY_CONTROLLER.verify_secret(
            PolicyVerifySecretCommand(
                rule_id=rule_id,
                passphrase=passphrase,
                policy_path=policy_path,
            ),
        ),
    )
    _emit_lines(outcome.lines)
    if not outcome.success:
        raise SystemExit(1)


@policy.command("hash-secret")
@click.option(
    "--passphrase",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Passphrase to hash.",
)
def policy_hash_secret(passphrase: str) -> None:
    """Print the `secret_hash` value for a passphrase."""

    _emit_lines(POLICY_CONTROLLER.hash_secret(passphrase))


@agent_conductor.group()
def schedule() -> None:
    """Cron scheduler commands."""


@schedule.command("due")
@click.option(
    "--start",
    default=None,
    help="Window start, ISO-8601 UTC. Defaults to --end minus the scan window.",
)
@click.option(
    "--end",
    default=None,
    help="Window end (inclusive), ISO-8601 UTC. Defaults to now.",
)
@click.option(
    "--registry-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Cron registry JSON. Defaults to AGENT_CONDUCTOR_CRON_REGISTRY_PATH.",
)
@click.option(
    "--seen-id",
    "seen_ids",
    multiple=True,
    help="Run instance id already dispatched. Can be repeated.",
)
def schedule_due(
    start: str | None,
    end: str | None,
    registry_path: Path | None,
    seen_ids: tuple[str, ...],
) -> None:
    """List run instances due inside the window."""

    _emit_lines(
        _run(
            lambda: SCHEDULER_CONTROLLER.due(
                ScheduleDueCommand(
                    start=start,
                    end=end,
                    registry_path=registry_path,
                    seen_ids=seen_ids,
                ),
            ),
        ),
    )


@agent_conductor.group()
def proposals() -> None:
    """Pending delegated proposal commands."""


@proposals.command("pending")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--session", "session_id", default=None, help="Only show this session.")
def proposals_pending(db_path: Path | None, session_id: str | None) -> None:
    """List pending proposals."""

    _emit_lines(
        _run(
            lambda: PROPOSALS_CONTROLLER.pending(
                ProposalsPendingCommand(db_path=db_path, session_id=session_id),
            ),
        ),
    )


@proposals.command("accept")
@click.argument("session_id")
@click.option("--id", "proposal_id", default=None, help="Expected proposal id.")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def proposals_accept(session_id: str, proposal_id: str | None, db_path: Path | None) -> None:
    """Accept the pending proposal of SESSION_ID."""

    _emit_lines(_resolve(session_id, proposal_id, db_path, accept=True))


@proposals.command("reject")
@click.argument("session_id")
@click.option("--id", "proposal_id", default=None, help="Expected proposal id.")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def proposals_reject(session_id: str, proposal_id: str | None, db_path: Path | None) -> None:
    """Reject the pending proposal of SESSION_ID."""

    _emit_lines(_resolve(session_id, proposal_id, db_path, accept=False))


@proposals.command("reply")
@click.argument("session_id")
@click.argument("text")
@click.option(
    "--channel",
    type=click.Choice(["repl", "discord", "cli"]),
    default="repl",
    show_default=True,
    help="Channel the reply arrived on.",
)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def proposals_reply(session_id: str, text: str, channel: str, db_path: Path | None) -> None:
    """Interpret a free-form operator reply for SESSION_ID."""

    _emit_lines(
        _run(
            lambda: PROPOSALS_CONTROLLER.reply(
                ProposalsReplyCommand(
                    db_path=db_path,
                    session_id=session_id,
                    text=text,
                    channel=channel,
                ),
            ),
        ),
    )


@proposals.command("expire")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def proposals_expire(db_path: Path | None) -> None:
    """Discard proposals whose expiry has passed."""

    _emit_lines(_run(lambda: PROPOSALS_CONTROLLER.expire(ProposalsExpireCommand(db_path=db_path))))


def _resolve(
    session_id: str,
    proposal_id: str | None,
    db_path: Path | None,
    *,
    accept: bool,
) -> list[str]:
    return _run(
        lambda: PROPOSALS_CONTROLLER.resolve(
            ProposalsResolveCommand(
                db_path=db_path,
                session_id=session_id,
                proposal_id=proposal_id,
                accept=accept,
            ),
        ),
    )


def _run(action: Callable[[], T]) -> T:
    try:
        return action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_conductor()
