from __future__ import annotations

import allure
import pytest

from agent_conductor.delegation.command_parser import (
    AMBIGUOUS_INTENT,
    SLASH_COMMANDS_REMOVED,
    AcceptCommand,
    InvalidCommand,
    NoCommand,
    PendingCommand,
    RejectCommand,
    parse_delegation_control_command,
)

pytestmark = [
    allure.epic("Delegation"),
    allure.feature("Control Command Parser"),
]


def test_accept_with_proposal_id() -> None:
    command = parse_delegation_control_command("Please ACCEPT   p-1a2b")

    assert command == AcceptCommand(proposal_id="p-1a2b")


def test_reject_with_pending_proposal_and_no_id() -> None:
    command = parse_delegation_control_command("reject", has_pending_proposal=True)

    assert command == RejectCommand(proposal_id=None)


def test_bare_keyword_without_pending_is_conversation() -> None:
    assert parse_delegation_control_command("I accept that the tests are slow") == NoCommand()


def test_both_keywords_are_ambiguous() -> None:
    command = parse_delegation_control_command(
        "accept or reject p-1? not sure",
        has_pending_proposal=True,
    )

    assert isinstance(command, InvalidCommand)
    assert command.error == AMBIGUOUS_INTENT


@pytest.mark.parametrize("text", ["/accept p-1", "ok /pending", "/reject"])
def test_slash_commands_are_rejected(text: str) -> None:
    command = parse_delegation_control_command(text, has_pending_proposal=True)

    assert command == InvalidCommand(error=SLASH_COMMANDS_REMOVED)


def test_pending_query() -> None:
    assert parse_delegation_control_command("anything pending?") == PendingCommand()


@pytest.mark.parametrize("text", ["", "   ", "accepted the invite", "hello there"])
def test_non_commands(text: str) -> None:
    assert parse_delegation_control_command(text, has_pending_proposal=True) == NoCommand()
