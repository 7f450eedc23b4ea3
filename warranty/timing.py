"""Date parsing and countdown arithmetic for Warranty cog.

Every function here is pure: callers pass in "now" and the configured zone,
so the same inputs always render the same output.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

# =============================================================================
# Timing Constants
# =============================================================================

# Seconds between two runs of the countdown updater
UPDATE_INTERVAL_SECONDS = 60

EXPIRED_LABEL = "Expired"

# Highest two-digit year that still means 20xx
TWO_DIGIT_YEAR_CUTOFF = 60


# =============================================================================
# Date Parsing
# =============================================================================

def _strptime(pattern: str) -> Callable[[str, ZoneInfo], datetime]:
    """Build a parser that reads ``pattern`` as wall-clock time in the zone."""

    def parse(text: str, tz: ZoneInfo) -> datetime:
        return datetime.strptime(text, pattern).replace(tzinfo=tz)

    return parse


def _parse_short_year(text: str, tz: ZoneInfo) -> datetime:
    """``M/D/YY``. Two-digit years up to 60 are 20xx, later ones 19xx."""
    parsed = datetime.strptime(text, "%m/%d/%y")
    if parsed.year % 100 > TWO_DIGIT_YEAR_CUTOFF and parsed.year >= 2000:
        parsed = parsed.replace(year=parsed.year - 100)
    return parsed.replace(tzinfo=tz)


def _parse_iso(text: str, tz: ZoneInfo) -> datetime:
    """Full ISO-8601. Offsets are converted into ``tz``, naive values are read in it."""
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


# Tried top to bottom, the first pattern that accepts the input wins.
# An ambiguous string like 1/2/25 is therefore always month/day/year.
DATE_PARSERS: List[Tuple[str, Callable[[str, ZoneInfo], datetime]]] = [
    ("M/D/YY", _parse_short_year),
    ("M/D/YYYY", _strptime("%m/%d/%Y")),
    ("YYYY-MM-DD", _strptime("%Y-%m-%d")),
    ("YYYY-MM-DD HH:MM", _strptime("%Y-%m-%d %H:%M")),
    ("DD.MM.YYYY", _strptime("%d.%m.%Y")),
    ("ISO-8601", _parse_iso),
]


def parse_date(text: str, tz: ZoneInfo) -> Optional[datetime]:
    """Parse a human-entered start date.

    Past dates are accepted so already running warranties can be backfilled.

    Args:
        text: Free-form date string such as ``8/21/25`` or ``2025-08-21 14:30``
        tz: Zone the date is interpreted in

    Returns:
        Timezone-aware datetime in ``tz``, or None if no pattern matches
    """
    text = text.strip()
    if not text:
        return None

    for _name, parser in DATE_PARSERS:
        try:
            return parser(text, tz)
        except ValueError:
            continue
    return None


# =============================================================================
# Countdown Arithmetic
# =============================================================================

def compute_end(start: datetime, duration_days: int, tz: ZoneInfo) -> datetime:
    """Calculate when a warranty ends.

    Days are added on the local calendar of ``tz``, so a countdown that starts
    at 14:30 ends at 14:30 even when a DST change falls in between.

    Args:
        start: Timezone-aware start of the warranty
        duration_days: Length of the warranty in days, must be positive
        tz: Configured zone

    Returns:
        Timezone-aware datetime in ``tz``

    Raises:
        ValueError: If ``duration_days`` is not a positive integer, or the end
            falls outside the supported calendar range
    """
    if duration_days <= 0:
        raise ValueError("Duration must be a positive number of days.")
    try:
        return start.astimezone(tz) + timedelta(days=duration_days)
    except OverflowError as e:
        raise ValueError(f"A duration of {duration_days} days is out of range.") from e


def is_expired(now: datetime, end: datetime) -> bool:
    """Compare absolute instants, whatever zone either side is in."""
    return now.astimezone(timezone.utc) >= end.astimezone(timezone.utc)


def _absolute(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc)


def format_remaining(now: datetime, end: datetime, tz: ZoneInfo) -> str:
    """Render the time left until ``end`` as ``{d}d {h}h {m}m``.

    Days are counted on the local calendar of ``tz``, the rest is the exact
    time left after those days. Every unit is floored.

    Args:
        now: Current instant
        end: End of the warranty
        tz: Configured zone

    Returns:
        ``"Expired"`` once ``now`` has reached ``end``, otherwise e.g. ``"3d 4h 5m"``
    """
    if is_expired(now, end):
        return EXPIRED_LABEL

    now_local = now.astimezone(tz)
    end_local = end.astimezone(tz)

    days = (end_local.date() - now_local.date()).days
    anchor = now_local + timedelta(days=days)
    while days > 0 and _absolute(anchor) > _absolute(end_local):
        days -= 1
        anchor = now_local + timedelta(days=days)

    rest = _absolute(end_local) - _absolute(anchor)
    if rest >= timedelta(days=1):
        # 25 hour local day at the DST fall-back
        days += 1
        rest -= timedelta(days=1)

    total_minutes = int(rest.total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{days}d {hours}h {minutes}m"


def format_instant(dt: datetime, tz: ZoneInfo) -> str:
    """Format an instant for display, e.g. ``2025-08-21 14:30 (Europe/Berlin)``."""
    return f"{dt.astimezone(tz).strftime('%Y-%m-%d %H:%M')} ({tz.key})"
