"""File-backed job audit trail and summaries, partitioned by UTC year/month."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from agent_conductor.storage.common import ensure_utc, to_iso_z


@dataclass(slots=True)
class AuditAppendResult:
    """Where an audit line went and what it contained."""

    file_path: Path
    line: str


@dataclass(slots=True)
class JobSummary:
    """Final human-readable record of a job."""

    job_id: str
    created_at: datetime
    status: str
    summary: str
    evidence_links: list[str] = field(default_factory=list)


class JobAuditWriter:
    """Append-only JSONL audit events under ``<root>/audit/YYYY/MM/<job_id>.jsonl``."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    def append_event(
        self,
        *,
        job_id: str,
        at: datetime,
        event_type: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditAppendResult:
        at_utc = ensure_utc(at)
        dir_path = _month_dir(self.root_dir / "audit", at_utc)
        dir_path.mkdir(parents=True, exist_ok=True)
        file_path = dir_path / f"{job_id}.jsonl"

        record: dict[str, Any] = {
            "t": int(at_utc.timestamp()),
            "at": to_iso_z(at_utc),
            "ev": event_type,
            "job_id": job_id,
            **(payload or {}),
        }
        line = json.dumps(record, ensure_ascii=False) + "\n"
        with file_path.open("a", encoding="utf-8") as handle:
            handle.write(line)
        return AuditAppendResult(file_path=file_path, line=line)


class JobSummaryWriter:
    """Markdown job summaries under ``<root>/jobs/YYYY/MM/<job_id>.md``."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    def write_summary(self, summary: JobSummary) -> Path:
        created = ensure_utc(summary.created_at)
        dir_path = _month_dir(self.root_dir / "jobs", created)
        dir_path.mkdir(parents=True, exist_ok=True)
        file_path = dir_path / f"{summary.job_id}.md"
        tmp_path = file_path.with_name(f"{file_path.name}.tmp")
        tmp_path.write_text(render_job_summary(summary), "utf-8")
        os.replace(tmp_path, file_path)
        return file_path


def render_job_summary(summary: JobSummary) -> str:
    lines = [
        f"# Job {summary.job_id}",
        "",
        f"Created: {to_iso_z(summary.created_at)}",
        f"Status: {summary.status}",
        "",
        "## Summary",
        summary.summary,
        "",
        "## Evidence",
    ]
    if summary.evidence_links:
        lines.extend(f"- {link}" for link in summary.evidence_links)
    else:
        lines.append("- None")
    lines.append("")
    return "\n".join(lines)


def _month_dir(base: Path, at: datetime) -> Path:
    return base / f"{at.year:04d}" / f"{at.month:02d}"
