"""Loading and validation of the declarative command policy."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class PolicyConfigError(ValueError):
    """Raised when the policy document is malformed."""


class RuleAction(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"
    REQUIRES_SECRET = "requires-secret"


class DefaultAction(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"


@dataclass(frozen=True, slots=True)
class PolicyRule:
    """One ordered rule; ``pattern`` is matched case-insensitively anywhere in the command."""

    id: str
    pattern: str
    action: RuleAction
    description: str = ""
    secret_hash: str | None = None
    compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            compiled = re.compile(self.pattern, re.IGNORECASE)
        except re.error as error:
            raise PolicyConfigError(
                f"Policy rule {self.id!r} has an invalid pattern {self.pattern!r}: {error}",
            ) from error
        object.__setattr__(self, "compiled", compiled)


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """Rules stay a list: the earliest matching rule wins."""

    default_action: DefaultAction
    rules: tuple[PolicyRule, ...] = ()

    def find_rule(self, rule_id: str) -> PolicyRule | None:
        return next((rule for rule in self.rules if rule.id == rule_id), None)


def load_policy(path: Path) -> PolicyConfig:
    try:
        raw = json.loads(path.read_text("utf-8"))
    except FileNotFoundError as error:
        raise PolicyConfigError(f"Policy file not found: {path}") from error
    except json.JSONDecodeError as error:
        raise PolicyConfigError(f"Policy file {path} is not valid JSON: {error}") from error
    return parse_policy(raw)


def parse_policy(raw: Any) -> PolicyConfig:
    if not isinstance(raw, dict):
        raise PolicyConfigError("Policy document must be a JSON object")

    default_raw = raw.get("default_action")
    try:
        default_action = DefaultAction(default_raw)
    except ValueError as error:
        raise PolicyConfigError(
            f"policy.default_action must be 'allow' or 'block', got {default_raw!r}",
        ) from error

    rules_raw = raw.get("rules")
    if not isinstance(rules_raw, list):
        raise PolicyConfigError("policy.rules must be an array")

    rules: list[PolicyRule] = []
    seen_ids: set[str] = set()
    for index, entry in enumerate(rules_raw):
        rule = _parse_rule(entry, index=index)
        if rule.id in seen_ids:
            raise PolicyConfigError(f"Duplicate policy rule id: {rule.id!r}")
        seen_ids.add(rule.id)
        rules.append(rule)
    return PolicyConfig(default_action=default_action, rules=tuple(rules))


def _parse_rule(entry: Any, *, index: int) -> PolicyRule:
    where = f"policy.rules[{index}]"
    if not isinstance(entry, dict):
        raise PolicyConfigError(f"{where} must be an object")

    rule_id = entry.get("id")
    pattern = entry.get("pattern")
    description = entry.get("description", "")
    secret_hash = entry.get("secret_hash")
    if not isinstance(rule_id, str) or not rule_id.strip():
        raise PolicyConfigError(f"{where}.id must be a non-empty string")
    if not isinstance(pattern, str) or not pattern:
        raise PolicyConfigError(f"{where}.pattern must be a non-empty string")
    if not isinstance(description, str):
        raise PolicyConfigError(f"{where}.description must be a string")
    if secret_hash is not None and not isinstance(secret_hash, str):
        raise PolicyConfigError(f"{where}.secret_hash must be a string")
    try:
        action = RuleAction(entry.get("action"))
    except ValueError as error:
        raise PolicyConfigError(
            f"{where}.action must be one of allow, block, requires-secret",
        ) from error

    return PolicyRule(
        id=rule_id,
        pattern=pattern,
        action=action,
        description=description,
        secret_hash=secret_hash.strip().lower() if secret_hash else None,
    )
