"""Five-field cron expressions: parsing and per-minute matching."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


class CronParseError(ValueError):
    """Raised for malformed cron expressions."""


@dataclass(frozen=True, slots=True)
class CronField:
    """``any`` is true only for a bare ``*``; otherwise ``values`` lists every allowed number."""

    any: bool
    values: frozenset[int] = frozenset()

    def matches(self, value: int) -> bool:
        return self.any or value in self.values


@dataclass(frozen=True, slots=True)
class CronExpression:
    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField
    source: str = ""

    def matches(self, local_time: datetime) -> bool:
        """Match a wall-clock time already converted into the job's timezone.

        When both day-of-month and day-of-week are restricted, either one matching is
        enough (classic cron OR rule); otherwise both must match.
        """

        if not (
            self.minute.matches(local_time.minute)
            and self.hour.matches(local_time.hour)
            and self.month.matches(local_time.month)
        ):
            return False

        # Python: Monday=0; cron: Sunday=0.
        cron_weekday = (local_time.weekday() + 1) % 7
        dom_ok = self.day_of_month.matches(local_time.day)
        dow_ok = self.day_of_week.matches(cron_weekday)
        if not self.day_of_month.any and not self.day_of_week.any:
            return dom_ok or dow_ok
        return dom_ok and dow_ok


def parse_cron_expression(expression: str) -> CronExpression:
    fields = expression.split()
    if len(fields) != 5:
        raise CronParseError(f"Invalid cron expression (expected 5 fields): {expression!r}")

    return CronExpression(
        minute=_parse_field(fields[0], 0, 59, "minute"),
        hour=_parse_field(fields[1], 0, 23, "hour"),
        day_of_month=_parse_field(fields[2], 1, 31, "day-of-month"),
        month=_parse_field(fields[3], 1, 12, "month"),
        day_of_week=_parse_field(fields[4], 0, 7, "day-of-week", sunday_seven=True),
        source=expression.strip(),
    )


def _parse_field(
    source: str,
    minimum: int,
    maximum: int,
    name: str,
    *,
    sunday_seven: bool = False,
) -> CronField:
    if source == "*":
        return CronField(any=True)

    values: set[int] = set()
    for token in source.split(","):
        if not token:
            raise CronParseError(f"Invalid {name} token: empty")

        base, _, step_raw = token.partition("/")
        step = 1
        if step_raw:
            step = _parse_number(step_raw, 1, maximum - minimum + 1, f"{name} step")

        if base == "*":
            start, end = minimum, maximum
        elif "-" in base:
            start_raw, _, end_raw = base.partition("-")
            start = _parse_number(start_raw, minimum, maximum, name)
            end = _parse_number(end_raw, minimum, maximum, name)
            if start > end:
                raise CronParseError(f"Invalid {name} range: {base}")
        else:
            start = _parse_number(base, minimum, maximum, name)
            # "5/15" runs from 5 to the top of the range; a plain "5" is just 5.
            end = maximum if step_raw else start

        values.update(range(start, end + 1, step))

    if sunday_seven and 7 in values:
        values.discard(7)
        values.add(0)
    return CronField(any=False, values=frozenset(values))


def _parse_number(raw: str, minimum: int, maximum: int, name: str) -> int:
    if not raw.isdigit():
        raise CronParseError(f"Invalid {name} value: {raw!r}")
    value = int(raw)
    if value < minimum or value > maximum:
        raise CronParseError(f"Invalid {name} value: {raw!r} (allowed {minimum}-{maximum})")
    return value
