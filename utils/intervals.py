import re

_INTERVAL = re.compile(r"^\s*(\d+)\s+(second|minute|hour|day|week|month|year)s?\s*$", re.IGNORECASE)

_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 604800,
    "month": 2592000,   # approximate
    "year": 31536000,   # approximate
}


def interval_to_seconds(interval: str) -> int:
    """
    Parse "10 minutes", "1 hour", "30 seconds"...
    Raises ValueError on anything else.
    """
    match = _INTERVAL.match(interval or "")
    if not match:
        raise ValueError(f"Unrecognised interval: {interval!r}")
    value = int(match.group(1))
    return value * _UNIT_SECONDS[match.group(2).lower()]


def seconds_to_interval(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds} seconds"

    if seconds < 3600:
        minutes = int(seconds / 60 + 0.5)
        return f"{minutes} minute{'s' if minutes > 1 else ''}"

    hours = int(seconds / 3600 + 0.5)
    return f"{hours} hour{'s' if hours > 1 else ''}"
