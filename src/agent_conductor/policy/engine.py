"""Evaluate commands against the ordered policy rules."""

from __future__ import annotations

import hashlib
import hmac
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from agent_conductor.config import Settings
from agent_conductor.policy.config import (
    DefaultAction,
    PolicyConfig,
    PolicyRule,
    RuleAction,
    load_policy,
)
from agent_conductor.sanitization import sanitize_preview

logger = logging.getLogger(__name__)

DEFAULT_RULE_ID = "default"
DEFAULT_BLOCK_REASON = "No rule matched; default policy is block"


class Decision(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    REQUIRES_SECRET = "requires-secret"


@dataclass(frozen=True, slots=True)
class PolicyVerdict:
    """``prompt`` is set only for ``requires-secret``; ``reason`` only for ``blocked``."""

    decision: Decision
    rule_id: str | None = None
    reason: str | None = None
    prompt: str | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOWED


def hash_secret(passphrase: str) -> str:
    """One-way digest stored as ``secret_hash``; surrounding whitespace is ignored."""

    return hashlib.sha256(passphrase.strip().encode("utf-8")).hexdigest()


class PolicyEngine:
    """First matching rule wins; the default action acts as an implicit trailing rule.

    The configuration is read from ``policy_path`` on first use and then kept for the
    lifetime of the engine.
    """

    def __init__(self, config: PolicyConfig | None = None, *, policy_path: Path | None = None) -> None:
        if config is None and policy_path is None:
            raise ValueError("PolicyEngine needs either a config or a policy_path")
        self._config = config
        self._policy_path = policy_path
        self._load_lock = threading.Lock()

    @property
    def config(self) -> PolicyConfig:
        if self._config is None:
            with self._load_lock:
                if self._config is None:
                    self._config = load_policy(self._policy_path)  # type: ignore[arg-type]
                    logger.info(
                        "Loaded %d policy rules from %s (default=%s)",
                        len(self._config.rules),
                        self._policy_path,
                        self._config.default_action.value,
                    )
        return self._config

    def evaluate(self, command: str) -> PolicyVerdict:
        config = self.config
        for rule in config.rules:
            if rule.compiled.search(command):
                verdict = _verdict_from_rule(rule)
                break
        else:
            if config.default_action is DefaultAction.ALLOW:
                verdict = PolicyVerdict(decision=Decision.ALLOWED)
            else:
                verdict = PolicyVerdict(
                    decision=Decision.BLOCKED,
                    rule_id=DEFAULT_RULE_ID,
                    reason=DEFAULT_BLOCK_REASON,
                )

        logger.debug(
            "Policy verdict for %r: %s (rule=%s)",
            sanitize_preview(command, max_chars=200),
            verdict.decision.value,
            verdict.rule_id,
        )
        return verdict

    def verify_secret(self, rule_id: str, passphrase: str) -> bool:
        """True only for a known rule with a stored hash matching the trimmed passphrase."""

        rule = self.config.find_rule(rule_id)
        if rule is None or not rule.secret_hash:
            return False
        return hmac.compare_digest(hash_secret(passphrase), rule.secret_hash)


def _verdict_from_rule(rule: PolicyRule) -> PolicyVerdict:
    if rule.action is RuleAction.ALLOW:
        return PolicyVerdict(decision=Decision.ALLOWED, rule_id=rule.id)
    if rule.action is RuleAction.BLOCK:
        return PolicyVerdict(decision=Decision.BLOCKED, rule_id=rule.id, reason=rule.description)
    return PolicyVerdict(
        decision=Decision.REQUIRES_SECRET,
        rule_id=rule.id,
        prompt=f"Passphrase required for: {rule.description}",
    )


_default_engine: PolicyEngine | None = None
_default_lock = threading.Lock()


def get_default_engine(policy_path: Path | None = None) -> PolicyEngine:
    """Process-wide engine reading ``policy_path`` (or the configured default) lazily."""

    global _default_engine
    with _default_lock:
        if _default_engine is None:
            if policy_path is None:
                policy_path = Settings.from_env().policy.policy_path
            _default_engine = PolicyEngine(policy_path=policy_path)
        return _default_engine


def reset_default_engine() -> None:
    global _default_engine
    with _default_lock:
        _default_engine = None


def evaluate(command: str) -> PolicyVerdict:
    return get_default_engine().evaluate(command)


def verify_secret(rule_id: str, passphrase: str) -> bool:
    return get_default_engine().verify_secret(rule_id, passphrase)
