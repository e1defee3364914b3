"""CronTrigger - Fires based on cron expressions."""

from __future__ import annotations

import bisect
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, ClassVar

from flash_tasks.exceptions import ExpressionFormatError
from flash_tasks.schemas import validate_timezone

from .base import Trigger

if TYPE_CHECKING:
    import zoneinfo

    from flash_tasks.context import TriggerContext
    from flash_tasks.schemas import CronTriggerConfig

# Years searched past the base instant before an expression is declared dead.
MAX_SEARCH_YEARS = 4


class CronField:
    """Parses and matches a single cron field."""

    def __init__(
        self,
        name: str,
        expr: str,
        min_val: int,
        max_val: int,
        aliases: dict[str, int] | None = None,
        allow_any: bool = False,
    ):
        self.name = name
        self.expr = expr
        self.min_val = min_val
        self.max_val = max_val
        self.aliases = aliases if aliases else {}
        self.allow_any = allow_any
        self.values = frozenset(self._parse(expr))
        self._sorted = tuple(sorted(self.values))
        # '*' and '?' leave the field unrestricted for day matching.
        self.is_wildcard = expr.startswith("*") or (allow_any and expr == "?")

    def _fail(self, reason: str) -> ExpressionFormatError:
        return ExpressionFormatError(f"Invalid {self.name} field '{self.expr}': {reason}")

    def _int(self, token: str) -> int:
        try:
            return int(token)
        except ValueError:
            raise self._fail(f"'{token}' is not a number") from None

    def _parse(self, expr: str) -> set[int]:
        """Parses a cron sub-expression (e.g., '*/15', '1,5', 'MON-FRI')."""
        if not expr:
            raise self._fail("empty field")
        expr = expr.upper()
        for alias, val in self.aliases.items():
            expr = expr.replace(alias, str(val))
        if self.allow_any and expr == "?":
            expr = "*"

        values: set[int] = set()
        for part in expr.split(","):
            if not part:
                raise self._fail("empty list element")

            step = 1
            if "/" in part:
                range_part, step_part = part.split("/", 1)
                step = self._int(step_part)
                if step <= 0:
                    raise self._fail(f"step must be positive, got {step}")
                if range_part == "*":
                    start, end = self.min_val, self.max_val
                elif "-" in range_part:
                    start, end = self._range(range_part)
                else:
                    start = self._int(range_part)
                    end = self.max_val
            elif "-" in part:
                start, end = self._range(part)
            elif part == "*":
                start, end = self.min_val, self.max_val
            else:
                start = end = self._int(part)

            for v in (start, end):
                if v < self.min_val or v > self.max_val:
                    raise self._fail(
                        f"Value {v} out of range [{self.min_val}, {self.max_val}]"
                    )
            if start > end:
                raise self._fail(f"range start {start} greater than end {end}")

            values.update(range(start, end + 1, step))

        return values

    def _range(self, part: str) -> tuple[int, int]:
        bounds = part.split("-")
        if len(bounds) != 2:
            raise self._fail(f"malformed range '{part}'")
        return self._int(bounds[0]), self._int(bounds[1])

    def matches(self, value: int) -> bool:
        return value in self.values

    def next_value(self, current: int) -> int | None:
        """Finds the next valid value greater than current."""
        idx = bisect.bisect_right(self._sorted, current)
        if idx < len(self._sorted):
            return self._sorted[idx]
        return None

    def first_value(self) -> int:
        """Returns the smallest valid value."""
        return self._sorted[0]


class CronTrigger(Trigger):
    """
    Trigger that fires based on a six-field cron expression.

    Format: second minute hour day-of-month month day-of-week

    When both day-of-month and day-of-week are restricted a day matches if
    either of them does, as in classic cron. ``?`` is accepted in the two
    day fields and means "any".

    Next times are computed from the completion of the previous run, so
    runs never overlap.

    Examples:
        >>> # Noon every day
        >>> trigger = CronTrigger("0 0 12 * * ?")

        >>> # Every 15 minutes on weekdays, in Berlin time
        >>> trigger = CronTrigger("0 */15 * * * MON-FRI", tz=ZoneInfo("Europe/Berlin"))

    Args:
        expression: The cron expression.
        tz: Timezone (or zone name) the fields are matched in. Defaults to UTC.
    """

    DAY_ALIASES: ClassVar[dict[str, int]] = {
        "SUN": 0,
        "MON": 1,
        "TUE": 2,
        "WED": 3,
        "THU": 4,
        "FRI": 5,
        "SAT": 6,
    }
    MONTH_ALIASES: ClassVar[dict[str, int]] = {
        "JAN": 1,
        "FEB": 2,
        "MAR": 3,
        "APR": 4,
        "MAY": 5,
        "JUN": 6,
        "JUL": 7,
        "AUG": 8,
        "SEP": 9,
        "OCT": 10,
        "NOV": 11,
        "DEC": 12,
    }

    def __init__(
        self,
        expression: str,
        tz: timezone | zoneinfo.ZoneInfo | str | None = None,
    ):
        self.expression = expression.strip()
        try:
            self.tz = validate_timezone(tz) if tz else timezone.utc
        except ValueError as exc:
            raise ExpressionFormatError(str(exc)) from exc

        parts = self.expression.split()
        if len(parts) != 6:
            msg = (
                f"Cron expression must consist of 6 fields "
                f"(found {len(parts)} in \"{expression}\")"
            )
            raise ExpressionFormatError(msg)

        second, minute, hour, day, month, day_of_week = parts
        self._second = CronField("second", second, 0, 59)
        self._minute = CronField("minute", minute, 0, 59)
        self._hour = CronField("hour", hour, 0, 23)
        self._day = CronField("day-of-month", day, 1, 31, allow_any=True)
        self._month = CronField("month", month, 1, 12, self.MONTH_ALIASES)
        self._day_of_week = CronField(
            "day-of-week", day_of_week, 0, 6, self.DAY_ALIASES, allow_any=True
        )

    @classmethod
    def from_config(cls, config: CronTriggerConfig) -> CronTrigger:
        return cls(config.expression, tz=config.tz)

    def next_execution_time(self, context: TriggerContext) -> datetime | None:
        times = context.snapshot()
        base = times.last_completion_time
        if base is not None:
            scheduled = times.last_scheduled_execution_time
            if scheduled is not None and base < scheduled:
                # The previous run finished before its own scheduled time
                # (clock skew); never fire twice in the same second.
                base = scheduled
        else:
            base = context.now()
        return self.next_after(base)

    def next_after(self, base: datetime) -> datetime:
        """
        Return the first matching instant strictly after ``base``'s second.

        Raises:
            ExpressionFormatError: If nothing matches within the search horizon.
        """
        if base.tzinfo is None:
            base = base.replace(tzinfo=timezone.utc)
        local = base.astimezone(self.tz)

        # Search on naive wall-clock time in the trigger's zone.
        candidate = local.replace(microsecond=0, tzinfo=None) + timedelta(seconds=1)
        while True:
            candidate = self._search(candidate, local.year)
            result = candidate.replace(tzinfo=self.tz).astimezone(timezone.utc)
            if result > base:
                return result
            # Repeated wall-clock hour after a DST fall-back: try its second pass.
            result = candidate.replace(tzinfo=self.tz, fold=1).astimezone(timezone.utc)
            if result > base:
                return result
            candidate += timedelta(seconds=1)

    def _search(self, dt: datetime, base_year: int) -> datetime:
        """Advance ``dt`` field by field until every field matches."""
        while True:
            if dt.year - base_year > MAX_SEARCH_YEARS:
                msg = (
                    f"Invalid cron expression \"{self.expression}\" "
                    f"led to runaway search for next trigger"
                )
                raise ExpressionFormatError(msg)

            if not self._month.matches(dt.month):
                dt = self._advance_month(dt)
                continue

            if not self._day_matches(dt):
                dt = self._next_day(dt)
                continue

            if not self._hour.matches(dt.hour):
                next_val = self._hour.next_value(dt.hour)
                if next_val is None:
                    dt = self._next_day(dt)
                else:
                    dt = dt.replace(hour=next_val, minute=0, second=0)
                continue

            if not self._minute.matches(dt.minute):
                next_val = self._minute.next_value(dt.minute)
                if next_val is None:
                    dt = dt.replace(minute=0, second=0) + timedelta(hours=1)
                else:
                    dt = dt.replace(minute=next_val, second=0)
                continue

            if not self._second.matches(dt.second):
                next_val = self._second.next_value(dt.second)
                if next_val is None:
                    dt = dt.replace(second=0) + timedelta(minutes=1)
                else:
                    dt = dt.replace(second=next_val)
                continue

            return dt

    def _day_matches(self, dt: datetime) -> bool:
        # Python 0=Mon -> cron 0=Sun
        cron_dow = (dt.weekday() + 1) % 7
        dom_ok = self._day.matches(dt.day)
        dow_ok = self._day_of_week.matches(cron_dow)
        if not self._day.is_wildcard and not self._day_of_week.is_wildcard:
            return dom_ok or dow_ok
        return dom_ok and dow_ok

    def _advance_month(self, dt: datetime) -> datetime:
        """Jump to the start of the next valid month."""
        next_val = self._month.next_value(dt.month)
        if next_val is None:
            return datetime(dt.year + 1, self._month.first_value(), 1)
        return datetime(dt.year, next_val, 1)

    @staticmethod
    def _next_day(dt: datetime) -> datetime:
        return datetime(dt.year, dt.month, dt.day) + timedelta(days=1)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CronTrigger):
            return NotImplemented
        return self.expression == other.expression and self.tz == other.tz

    def __hash__(self) -> int:
        return hash((self.expression, self.tz))

    def __str__(self) -> str:
        return self.expression

    def __repr__(self) -> str:
        return f"CronTrigger({self.expression!r}, tz={self.tz!r})"
