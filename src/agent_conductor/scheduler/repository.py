"""File-backed registry of recurring job definitions."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from agent_conductor.scheduler.cron import parse_cron_expression
from agent_conductor.scheduler.dispatcher import ScheduledJob
from agent_conductor.storage.common import from_iso, to_iso_z, utc_now, write_json_atomic

logger = logging.getLogger(__name__)

REGISTRY_VERSION = 1


class CronRegistryError(ValueError):
    """Raised when the registry file or an entry is malformed."""


@dataclass(frozen=True, slots=True)
class CronJobSpec:
    intent: str
    inputs: dict[str, Any] = field(default_factory=dict)
    allowed_domains: tuple[str, ...] = ()
    max_prs: int | None = None


@dataclass(frozen=True, slots=True)
class CronLastRun:
    at: str
    status: str


@dataclass(frozen=True, slots=True)
class CronJobEntry:
    job_id: str
    enabled: bool
    timezone: str
    schedule_cron: str
    job_spec: CronJobSpec
    cron_summary: str = ""
    cron_notes: str | None = None
    next_runs_utc: tuple[str, ...] = ()
    next_runs_local: tuple[str, ...] = ()
    last_run: CronLastRun | None = None

    def to_scheduled_job(self) -> ScheduledJob:
        return ScheduledJob(
            job_id=self.job_id,
            enabled=self.enabled,
            timezone=self.timezone,
            schedule_cron=self.schedule_cron,
        )


class CronRegistryRepository:
    """Versioned JSON registry; every mutation is written through atomically."""

    def __init__(self, path: Path, *, now: Callable[[], datetime] = utc_now) -> None:
        self.path = path
        self._now = now
        self._updated_at, self._jobs = self._load()

    @property
    def updated_at(self) -> str:
        return self._updated_at

    def list_jobs(self) -> list[CronJobEntry]:
        return list(self._jobs)

    def list_scheduled_jobs(self) -> list[ScheduledJob]:
        return [entry.to_scheduled_job() for entry in self._jobs]

    def get_job(self, job_id: str) -> CronJobEntry | None:
        return next((entry for entry in self._jobs if entry.job_id == job_id), None)

    def upsert_job(self, entry: CronJobEntry) -> CronJobEntry:
        validated = parse_entry(entry_to_payload(entry), where=f"job {entry.job_id!r}")
        for index, existing in enumerate(self._jobs):
            if existing.job_id == validated.job_id:
                self._jobs[index] = validated
                break
        else:
            self._jobs.append(validated)
        self._touch_and_persist()
        logger.info("Cron job %s saved to %s", validated.job_id, self.path)
        return validated

    def delete_job(self, job_id: str) -> bool:
        before = len(self._jobs)
        self._jobs = [entry for entry in self._jobs if entry.job_id != job_id]
        if len(self._jobs) == before:
            return False
        self._touch_and_persist()
        logger.info("Cron job %s removed from %s", job_id, self.path)
        return True

    def record_last_run(self, job_id: str, *, at: datetime, status: str) -> CronJobEntry:
        entry = self.get_job(job_id)
        if entry is None:
            raise CronRegistryError(f"Cron job not found: {job_id}")
        return self.upsert_job(replace(entry, last_run=CronLastRun(at=to_iso_z(at), status=status)))

    def _touch_and_persist(self) -> None:
        self._updated_at = to_iso_z(self._now())
        write_json_atomic(
            self.path,
            {
                "version": REGISTRY_VERSION,
                "updated_at": self._updated_at,
                "jobs": [entry_to_payload(entry) for entry in self._jobs],
            },
        )

    def _load(self) -> tuple[str, list[CronJobEntry]]:
        if not self.path.exists():
            return to_iso_z(self._now()), []
        try:
            raw = json.loads(self.path.read_text("utf-8"))
        except json.JSONDecodeError as error:
            raise CronRegistryError(f"Cron registry {self.path} is not valid JSON: {error}") from error

        if not isinstance(raw, dict):
            raise CronRegistryError("Cron registry must be a JSON object")
        if raw.get("version") != REGISTRY_VERSION:
            raise CronRegistryError(
                f"Unsupported cron registry version: {raw.get('version')!r}",
            )
        updated_at = _require_timestamp(raw.get("updated_at"), "updated_at")
        jobs_raw = raw.get("jobs")
        if not isinstance(jobs_raw, list):
            raise CronRegistryError("Cron registry 'jobs' must be an array")
        jobs = [parse_entry(item, where=f"jobs[{index}]") for index, item in enumerate(jobs_raw)]
        return updated_at, jobs


def entry_to_payload(entry: CronJobEntry) -> dict[str, Any]:
    constraints: dict[str, Any] = {"allowed_domains": list(entry.job_spec.allowed_domains)}
    if entry.job_spec.max_prs is not None:
        constraints["max_prs"] = entry.job_spec.max_prs
    payload: dict[str, Any] = {
        "job_id": entry.job_id,
        "enabled": entry.enabled,
        "timezone": entry.timezone,
        "schedule_cron": entry.schedule_cron,
        "cron_summary": entry.cron_summary,
        "cron_notes": entry.cron_notes,
        "next_runs_utc": list(entry.next_runs_utc),
        "next_runs_local": list(entry.next_runs_local),
        "job_spec": {
            "intent": entry.job_spec.intent,
            "inputs": dict(entry.job_spec.inputs),
            "constraints": constraints,
        },
    }
    if entry.last_run is not None:
        payload["last_run"] = {"at": entry.last_run.at, "status": entry.last_run.status}
    return payload


def parse_entry(raw: Any, *, where: str) -> CronJobEntry:
    if not isinstance(raw, dict):
        raise CronRegistryError(f"{where} must be an object")

    job_id = _require_str(raw.get("job_id"), f"{where}.job_id")
    enabled = raw.get("enabled")
    if not isinstance(enabled, bool):
        raise CronRegistryError(f"{where}.enabled must be a boolean")
    timezone = _require_str(raw.get("timezone"), f"{where}.timezone")
    schedule_cron = _require_str(raw.get("schedule_cron"), f"{where}.schedule_cron")
    try:
        parse_cron_expression(schedule_cron)
    except ValueError as error:
        raise CronRegistryError(f"{where}.schedule_cron: {error}") from error

    cron_notes = raw.get("cron_notes")
    if cron_notes is not None and not isinstance(cron_notes, str):
        raise CronRegistryError(f"{where}.cron_notes must be a string or null")

    last_run_raw = raw.get("last_run")
    last_run = None
    if last_run_raw is not None:
        if not isinstance(last_run_raw, dict):
            raise CronRegistryError(f"{where}.last_run must be an object")
        last_run = CronLastRun(
            at=_require_timestamp(last_run_raw.get("at"), f"{where}.last_run.at"),
            status=_require_str(last_run_raw.get("status"), f"{where}.last_run.status"),
        )

    return CronJobEntry(
        job_id=job_id,
        enabled=enabled,
        timezone=timezone,
        schedule_cron=schedule_cron,
        job_spec=_parse_job_spec(raw.get("job_spec"), where=f"{where}.job_spec"),
        cron_summary=str(raw.get("cron_summary") or ""),
        cron_notes=cron_notes,
        next_runs_utc=tuple(
            _require_timestamp(value, f"{where}.next_runs_utc")
            for value in _require_list(raw.get("next_runs_utc", []), f"{where}.next_runs_utc")
        ),
        next_runs_local=tuple(
            _require_str(value, f"{where}.next_runs_local")
            for value in _require_list(raw.get("next_runs_local", []), f"{where}.next_runs_local")
        ),
        last_run=last_run,
    )


def _parse_job_spec(raw: Any, *, where: str) -> CronJobSpec:
    if not isinstance(raw, dict):
        raise CronRegistryError(f"{where} must be an object")
    inputs = raw.get("inputs", {})
    if not isinstance(inputs, dict):
        raise CronRegistryError(f"{where}.inputs must be an object")
    constraints = raw.get("constraints", {})
    if not isinstance(constraints, dict):
        raise CronRegistryError(f"{where}.constraints must be an object")
    max_prs = constraints.get("max_prs")
    if max_prs is not None and (
        isinstance(max_prs, bool) or not isinstance(max_prs, int) or max_prs <= 0
    ):
        raise CronRegistryError(f"{where}.constraints.max_prs must be a positive integer")
    return CronJobSpec(
        intent=_require_str(raw.get("intent"), f"{where}.intent"),
        inputs=dict(inputs),
        allowed_domains=tuple(
            _require_str(value, f"{where}.constraints.allowed_domains")
            for value in _require_list(
                constraints.get("allowed_domains", []),
                f"{where}.constraints.allowed_domains",
            )
        ),
        max_prs=max_prs,
    )


def _require_str(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CronRegistryError(f"{where} must be a non-empty string")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise CronRegistryError(f"{where} must be an array")
    return value


def _require_timestamp(value: Any, where: str) -> str:
    text = _require_str(value, where)
    try:
        from_iso(text)
    except ValueError as error:
        raise CronRegistryError(f"{where} must be an ISO-8601 timestamp") from error
    return text
