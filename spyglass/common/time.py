"""Clock and block time helpers."""

from __future__ import annotations

import datetime as dt

_UTC_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_AGE_UNITS: tuple[tuple[int, str], ...] = (
    (86_400, "day"),
    (3_600, "hour"),
    (60, "min"),
    (1, "sec"),
)


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def format_utc_time(timestamp: int) -> str:
    """Render a unix timestamp in seconds as ``YYYY-MM-DD HH:MM:SS`` UTC."""
    return dt.datetime.fromtimestamp(timestamp, dt.UTC).strftime(_UTC_TIME_FORMAT)


def format_age(timestamp: int, *, now: dt.datetime | None = None) -> str:
    """Describe how long ago ``timestamp`` happened, e.g. ``"3 mins ago"``.

    Only the largest whole unit is reported. Timestamps in the future (clock
    skew between the node and this host) are reported as ``"0 secs ago"``.
    """
    reference = now or utcnow()
    elapsed = max(int(reference.timestamp()) - timestamp, 0)
    for seconds, unit in _AGE_UNITS:
        if elapsed >= seconds:
            count = elapsed // seconds
            suffix = "" if count == 1 else "s"
            return f"{count} {unit}{suffix} ago"
    return "0 secs ago"
