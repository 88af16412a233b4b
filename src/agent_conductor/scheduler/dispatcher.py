"""Compute which scheduled jobs are due inside a UTC window."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agent_conductor.scheduler.cron import CronExpression, parse_cron_expression
from agent_conductor.storage.common import ensure_utc, from_iso, to_iso_z

logger = logging.getLogger(__name__)

_ONE_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True, slots=True)
class ScheduledJob:
    job_id: str
    enabled: bool
    timezone: str
    schedule_cron: str


@dataclass(frozen=True, slots=True)
class DueRunInstance:
    job_id: str
    scheduled_at_utc: str
    run_instance_id: str


def build_run_instance_id(job_id: str, scheduled_at_utc: str) -> str:
    return f"{job_id}:{scheduled_at_utc}"


def compute_due_run_instances(
    jobs: Sequence[ScheduledJob],
    window_start_utc: str | datetime,
    window_end_utc: str | datetime,
) -> list[DueRunInstance]:
    """Return run instances for every whole minute in ``[start, end]``.

    Both bounds are truncated to the minute and are inclusive. Each instant is converted
    into the job's IANA timezone before matching, so DST transitions land on the correct
    UTC minute. Output is ordered by instant, then by the order of ``jobs``.
    """

    start = _truncate_to_minute(_coerce_instant(window_start_utc, "window_start_utc"))
    end = _truncate_to_minute(_coerce_instant(window_end_utc, "window_end_utc"))
    if start > end:
        raise ValueError("window_start_utc must be <= window_end_utc")

    compiled: list[tuple[ScheduledJob, CronExpression, ZoneInfo]] = [
        (job, parse_cron_expression(job.schedule_cron), _load_zone(job.timezone))
        for job in jobs
        if job.enabled
    ]

    due: list[DueRunInstance] = []
    instant = start
    while instant <= end:
        scheduled_at = to_iso_z(instant)
        for job, expression, zone in compiled:
            if expression.matches(instant.astimezone(zone)):
                due.append(
                    DueRunInstance(
                        job_id=job.job_id,
                        scheduled_at_utc=scheduled_at,
                        run_instance_id=build_run_instance_id(job.job_id, scheduled_at),
                    ),
                )
        instant += _ONE_MINUTE

    logger.debug(
        "Computed %d due run instances for %d enabled jobs in [%s, %s]",
        len(due),
        len(compiled),
        to_iso_z(start),
        to_iso_z(end),
    )
    return dedupe_run_instances(due, ())


def dedupe_run_instances(
    due: Iterable[DueRunInstance],
    seen_ids: Iterable[str],
) -> list[DueRunInstance]:
    """Drop already-seen ids and in-batch duplicates, keeping the first occurrence."""

    seen = set(seen_ids)
    filtered: list[DueRunInstance] = []
    for item in due:
        if item.run_instance_id in seen:
            continue
        seen.add(item.run_instance_id)
        filtered.append(item)
    return filtered


def _coerce_instant(value: str | datetime, name: str) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(from_iso(value))
    except ValueError as error:
        raise ValueError(f"{name} must be a valid ISO timestamp, got {value!r}") from error


def _truncate_to_minute(value: datetime) -> datetime:
    return value.astimezone(UTC).replace(second=0, microsecond=0)


def _load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as error:
        raise ValueError(f"Unknown timezone: {name!r}") from error
