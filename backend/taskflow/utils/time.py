"""Duration formatting helpers."""


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}{'' if value == 1 else 's'}"


def format_duration(minutes: int) -> str:
    """Human-readable duration, e.g. ``"1 hour 30 minutes"``."""
    hours, remaining = divmod(minutes, 60)
    if hours == 0:
        return _plural(remaining, "minute")
    if remaining == 0:
        return _plural(hours, "hour")
    return f"{_plural(hours, 'hour')} {_plural(remaining, 'minute')}"


def format_duration_short(minutes: int) -> str:
    """Compact duration, e.g. ``"2h 30m"``, ``"45m"``, ``"0m"``."""
    hours, remaining = divmod(minutes, 60)
    if hours == 0:
        return f"{remaining}m"
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}m"


def format_elapsed(seconds: int) -> str:
    """Stopwatch display, ``HH:MM:SS``."""
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
