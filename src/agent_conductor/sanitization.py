"""Redaction helpers for text that ends up in logs or audit files."""

from __future__ import annotations

import re
from collections.abc import Callable

_MAX_PREVIEW_CHARS = 500

_Replacement = str | Callable[[re.Match[str]], str]

_REPLACEMENTS: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    (
        re.compile(
            r"-----BEGIN[A-Z ]*PRIVATE KEY-----.*?-----END[A-Z ]*PRIVATE KEY-----",
            re.DOTALL,
        ),
        "[redacted-private-key]",
    ),
    (
        re.compile(r"(?i)\b(bearer)\s+[a-z0-9._\-]{8,}\b"),
        r"\1 [redacted-token]",
    ),
    (
        re.compile(r"\bsk-(?:ant-)?[A-Za-z0-9_\-]{20,}"),
        "[redacted-token]",
    ),
    (
        re.compile(r"\bghp_[A-Za-z0-9_]{36,}"),
        "[redacted-token]",
    ),
    (
        re.compile(r"\bAKIA[0-9A-Z]{16}\b"),
        "[redacted-token]",
    ),
    (
        re.compile(r"(?i)\bdiscord[._-]?token\s*[=:]\s*\S+"),
        "[redacted-secret]",
    ),
    (
        re.compile(r"\b([A-Z][A-Z0-9_]*_(?:KEY|TOKEN|PASSWORD|SECRET))\s*[=:]\s*\S+"),
        lambda match: f"{match.group(1)}=[redacted]",
    ),
    (
        re.compile(r"(?i)\b(passw(?:or)?d)\s*[=:]\s*\S+"),
        lambda match: f"{match.group(1)}=[redacted]",
    ),
    (
        re.compile(r"(?i)(https?://)[^\s:/@]+:[^\s@]+@"),
        r"\1[redacted]@",
    ),
)


def sanitize_preview(text: str, *, max_chars: int = _MAX_PREVIEW_CHARS) -> str:
    """Redact obvious credentials and clamp payload size."""

    compact = text.strip()
    if not compact:
        return ""

    redacted = compact
    for pattern, replacement in _REPLACEMENTS:
        redacted = pattern.sub(replacement, redacted)

    if len(redacted) <= max_chars:
        return redacted
    return redacted[:max_chars] + "\u2026"
