"""Time helpers for lesson timing and time logging."""

import re
import time


MS_PER_MINUTE = 60_000

# Used when neither the timer nor the duration hint yields a value
DEFAULT_LOGGED_MINUTES = 5

_MINUTES_PATTERN = re.compile(r"([0-9]+)\s*(min|minutes|m)")
_HOURS_PATTERN = re.compile(r"([0-9]+)\s*(h|heures|hours)")


def monotonic_ms() -> int:
    """Default timer clock: monotonic time in milliseconds."""
    return time.monotonic_ns() // 1_000_000


def round_half_up(numerator: int, denominator: int) -> int:
    """Round a non-negative fraction to the nearest integer, .5 going up."""
    return (2 * numerator + denominator) // (2 * denominator)


def parse_duration_minutes(duration: str | None) -> int | None:
    """Parse a free-text duration hint into minutes.

    Recognizes "<n> min|minutes|m" first, then "<n> h|heures|hours".
    Any match yields at least 1 minute. Returns None when nothing matches.

    >>> parse_duration_minutes("45 min")
    45
    >>> parse_duration_minutes("2h")
    120
    """
    if not duration:
        return None
    text = duration.strip().lower()

    minutes = _MINUTES_PATTERN.search(text)
    if minutes:
        return max(1, int(minutes.group(1)))

    hours = _HOURS_PATTERN.search(text)
    if hours:
        return max(1, int(hours.group(1)) * 60)

    return None


def elapsed_to_minutes(elapsed_ms: int) -> int | None:
    """Convert timer milliseconds to whole logged minutes (floor of 1).

    Returns None when no time was recorded.
    """
    if elapsed_ms <= 0:
        return None
    return max(1, round_half_up(elapsed_ms, MS_PER_MINUTE))


def minutes_to_log(elapsed_ms: int, duration_hint: str | None) -> int:
    """Pick the duration of the time-log entry for a completed lesson.

    Timer time wins, then the lesson's duration hint, then the default.
    """
    return (
        elapsed_to_minutes(elapsed_ms)
        or parse_duration_minutes(duration_hint)
        or DEFAULT_LOGGED_MINUTES
    )


def format_elapsed(total_seconds: int) -> str:
    """Format seconds as "MM:SS" (minutes are not wrapped into hours)."""
    safe_value = max(0, int(total_seconds))
    minutes, seconds = divmod(safe_value, 60)
    return f"{minutes:02d}:{seconds:02d}"


def format_minutes(total_minutes: int) -> str:
    """Format logged minutes as "<h>h <m>m"."""
    hours, minutes = divmod(max(0, int(total_minutes)), 60)
    return f"{hours}h {minutes}m"
