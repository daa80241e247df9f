"""Time expression parsing.

Converts human-entered expressions into aware instants in a fixed zone.
Grammars are tried in a fixed order; the first one whose shape matches
decides the outcome, even when its fields turn out to be invalid.

Supported grammars:
- ``30min`` / ``30 minutes``           relative minutes
- ``2h`` / ``2 hours``                 relative hours
- ``tomorrow 9am`` / ``tomorrow 21``   next day at H:00
- ``today 5pm``                        current day at H:00
- ``2024-12-25 15:30``                 absolute, year first
- ``25:12:2024 15:30``                 absolute, day first
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from courier.scheduling.errors import ParseError

# Ten years; keeps timedelta arithmetic well inside datetime range
MAX_RELATIVE_MINUTES = 10 * 366 * 24 * 60


@dataclass(frozen=True)
class _Outcome:
    """Result of a grammar whose shape matched: an instant or a reason."""

    fire_at: datetime | None = None
    reason: str | None = None


Matcher = Callable[[str, datetime, ZoneInfo], _Outcome | None]


@dataclass(frozen=True)
class ParsedExpression:
    """A time expression split off the front of a free-text command."""

    expression: str
    fire_at: datetime
    message: str


def resolve_zone(zone: str | ZoneInfo) -> ZoneInfo:
    """Return a ZoneInfo for an IANA name, raising ValueError if unknown."""
    if isinstance(zone, ZoneInfo):
        return zone
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {zone!r}") from e


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def _number(raw: str | None, name: str, low: int, high: int) -> int | str:
    """Validate a numeric field, returning the value or an error reason."""
    if raw is None or raw == "":
        return f"{name} is missing"
    if not raw.isascii() or not raw.isdigit():
        return f"{name} must be a number, got {raw!r}"
    value = int(raw)
    if not low <= value <= high:
        return f"{name} must be between {low} and {high}, got {value}"
    return value


def _wall_clock(
    zone: ZoneInfo, year: int, month: int, day: int, hour: int, minute: int
) -> _Outcome:
    try:
        return _Outcome(fire_at=datetime(year, month, day, hour, minute, tzinfo=zone))
    except ValueError:
        return _Outcome(reason=f"{year:04d}-{month:02d}-{day:02d} is not a valid date")


def _first_error(*values: int | str) -> str | None:
    for value in values:
        if isinstance(value, str):
            return value
    return None


# ---------------------------------------------------------------------------
# Grammars
# ---------------------------------------------------------------------------

_RELATIVE_MINUTES = re.compile(r"^(?P<n>\S*?)\s*(?:min|mins|minute|minutes)$")
_RELATIVE_HOURS = re.compile(r"^(?P<n>\S*?)\s*(?:h|hr|hrs|hour|hours)$")
_DAY_CLOCK = re.compile(
    r"^(?P<day>today|tomorrow)(?:\s+(?P<hour>\S*?))?\s*(?P<meridiem>am|pm)?$"
)
_YEAR_FIRST = re.compile(
    r"^(?P<year>[^-\s]*)-(?P<month>[^-\s]*)-(?P<day>[^-\s]*)"
    r"\s+(?P<hour>[^:\s]*):(?P<minute>[^:\s]*)$"
)
_DAY_FIRST = re.compile(
    r"^(?P<day>[^:\s]*):(?P<month>[^:\s]*):(?P<year>[^:\s]*)"
    r"\s+(?P<hour>[^:\s]*):(?P<minute>[^:\s]*)$"
)


def _relative(pattern: re.Pattern[str], unit_minutes: int, unit: str) -> Matcher:
    def match(text: str, now: datetime, zone: ZoneInfo) -> _Outcome | None:
        m = pattern.match(text)
        if m is None:
            return None
        limit = MAX_RELATIVE_MINUTES // unit_minutes
        count = _number(m["n"], f"{unit} count", 0, limit)
        if isinstance(count, str):
            return _Outcome(reason=count)
        fire_at = now + timedelta(minutes=count * unit_minutes)
        return _Outcome(fire_at=fire_at.astimezone(zone))

    return match


def _match_day_clock(text: str, now: datetime, zone: ZoneInfo) -> _Outcome | None:
    m = _DAY_CLOCK.match(text)
    if m is None:
        return None

    meridiem = m["meridiem"]
    if meridiem:
        hour = _number(m["hour"], "hour", 1, 12)
    else:
        hour = _number(m["hour"], "hour", 0, 23)
    if isinstance(hour, str):
        return _Outcome(reason=f"{hour} (12-hour clock)" if meridiem else hour)

    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0

    local_day: date = now.astimezone(zone).date()
    if m["day"] == "tomorrow":
        local_day += timedelta(days=1)
    return _wall_clock(zone, local_day.year, local_day.month, local_day.day, hour, 0)


def _absolute(pattern: re.Pattern[str]) -> Matcher:
    def match(text: str, now: datetime, zone: ZoneInfo) -> _Outcome | None:
        m = pattern.match(text)
        if m is None:
            return None
        year = _number(m["year"], "year", 1, 9999)
        month = _number(m["month"], "month", 1, 12)
        day = _number(m["day"], "day", 1, 31)
        hour = _number(m["hour"], "hour", 0, 23)
        minute = _number(m["minute"], "minute", 0, 59)
        reason = _first_error(year, month, day, hour, minute)
        if reason is not None:
            return _Outcome(reason=reason)
        return _wall_clock(zone, year, month, day, hour, minute)  # type: ignore[arg-type]

    return match


# Order is significant: the first grammar whose shape matches wins.
GRAMMARS: tuple[Matcher, ...] = (
    _relative(_RELATIVE_MINUTES, 1, "minute"),
    _relative(_RELATIVE_HOURS, 60, "hour"),
    _match_day_clock,
    _absolute(_YEAR_FIRST),
    _absolute(_DAY_FIRST),
)


def _normalize(expression: str) -> str:
    return " ".join(expression.split()).lower()


def _evaluate(text: str, now: datetime, zone: ZoneInfo) -> _Outcome | None:
    for grammar in GRAMMARS:
        outcome = grammar(text, now, zone)
        if outcome is not None:
            return outcome
    return None


def _require_aware(now: datetime) -> None:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be timezone-aware")


def parse_time_expression(
    expression: str, now: datetime, zone: str | ZoneInfo
) -> datetime:
    """Resolve a time expression to an aware instant in ``zone``.

    Relative grammars are computed from ``now``; absolute grammars are read as
    wall-clock time in ``zone``. No future-time check is made here.

    Raises:
        ParseError: If no grammar matches or a field is invalid.
        ValueError: If ``now`` is naive or ``zone`` is unknown.
    """
    _require_aware(now)
    tz = resolve_zone(zone)
    text = _normalize(expression)
    if not text:
        raise ParseError(expression, "expression is empty")

    outcome = _evaluate(text, now, tz)
    if outcome is None:
        raise ParseError(
            expression,
            "unrecognized format (try 30min, 2h, tomorrow 9am, "
            "2024-12-25 15:30 or 25:12:2024 15:30)",
        )
    if outcome.fire_at is None:
        raise ParseError(expression, outcome.reason or "invalid value")
    return outcome.fire_at


def split_time_expression(
    text: str, now: datetime, zone: str | ZoneInfo
) -> ParsedExpression:
    """Split ``"<expression> <message>"`` into its parts.

    The longest leading run of words that resolves to an instant is taken as
    the expression. When only invalid candidates match, the reason from the
    longest one is reported.

    Raises:
        ParseError: If no prefix parses or nothing is left for the message.
    """
    _require_aware(now)
    tz = resolve_zone(zone)
    words = text.split()
    first_reason: str | None = None

    # Expressions span at most three words ("tomorrow 9 am")
    for size in range(min(3, len(words)), 0, -1):
        candidate = " ".join(words[:size])
        outcome = _evaluate(candidate.lower(), now, tz)
        if outcome is None:
            continue
        if outcome.fire_at is None:
            first_reason = first_reason or outcome.reason
            continue
        message = " ".join(words[size:])
        if not message:
            raise ParseError(text, "message is missing after the time")
        return ParsedExpression(
            expression=candidate, fire_at=outcome.fire_at, message=message
        )

    raise ParseError(
        text,
        first_reason or "expected '<time> <message>', e.g. '30min Call mom'",
    )


class TimeExpressionParser:
    """Parser bound to a configured time zone."""

    def __init__(self, zone: str | ZoneInfo = "UTC") -> None:
        self._zone = resolve_zone(zone)

    @property
    def zone(self) -> ZoneInfo:
        return self._zone

    def parse(self, expression: str, now: datetime) -> datetime:
        return parse_time_expression(expression, now, self._zone)

    def split(self, text: str, now: datetime) -> ParsedExpression:
        return split_time_expression(text, now, self._zone)
