# alertmigrator/core/timeutils.py
from __future__ import annotations

import re
from datetime import datetime, timezone

NANOS_PER_SECOND = 1_000_000_000

_UNITS = (
    ("y", 365 * 24 * 3600),
    ("w", 7 * 24 * 3600),
    ("d", 24 * 3600),
    ("h", 3600),
    ("m", 60),
    ("s", 1),
)
_UNIT_SECONDS = dict(_UNITS)
_UNIT_SECONDS["ms"] = 0.001

_DURATION_RE = re.compile(r"(\d+)(ms|y|w|d|h|m|s)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ns_to_seconds(value) -> int:
    return int(value or 0) // NANOS_PER_SECOND


def seconds_to_ns(value) -> int:
    return int(value or 0) * NANOS_PER_SECOND


def format_duration(seconds) -> str:
    """
    Prometheus-style duration: 300 -> "5m", 31449600 -> "52w", 0 -> "0s".
    """
    remaining = int(seconds or 0)
    if remaining <= 0:
        return "0s"
    out = []
    for unit, size in _UNITS:
        if remaining >= size:
            n, remaining = divmod(remaining, size)
            out.append(f"{n}{unit}")
    return "".join(out)


def parse_duration(value: str) -> int:
    """
    Seconds for "5m", "1h30m", "10s"; a bare number is seconds.
    Raises ValueError on anything else.
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("empty duration")
    if raw.isdigit():
        return int(raw)

    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(raw):
        if m.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += int(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(raw):
        raise ValueError(f"invalid duration {value!r}")
    return int(total)


def parse_relative_time(value: str) -> int:
    """
    Legacy query time params: "5m", "now-5m", "now" -> seconds before now.
    """
    raw = (value or "").strip()
    if raw == "now":
        return 0
    if raw.startswith("now-"):
        raw = raw[len("now-"):]
    return parse_duration(raw)
