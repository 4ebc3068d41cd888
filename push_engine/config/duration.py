"""Duration strings used by timing settings (cooldowns, windows, deadlines).

Accepted forms:

- compact units, optionally combined: ``250ms``, ``30s``, ``5m``, ``1h30m``, ``2d``
- ISO-8601 durations: ``PT30S``, ``PT1M30S``, ``P1D``
- bare numbers, read as seconds: ``45``, ``0.5``
"""

import re
from typing import Union

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_COMPACT_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_ISO_8601 = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(value: Union[str, int, float]) -> float:
    """Convert a duration setting to seconds.

    Args:
        value: Duration string or a number of seconds

    Returns:
        Duration in seconds (may be fractional)

    Raises:
        DurationParseError: If the value is malformed or not positive

    Examples:
        >>> parse_duration("1h30m")
        5400.0
        >>> parse_duration("PT45S")
        45.0
        >>> parse_duration("250ms")
        0.25
    """
    if isinstance(value, bool):
        raise DurationParseError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        if not text:
            raise DurationParseError("Duration string cannot be empty")
        if text.upper().startswith("P"):
            seconds = _parse_iso8601(text.upper())
        else:
            seconds = _parse_compact(text.lower())

    if seconds <= 0:
        raise DurationParseError(f"Duration must be positive: {value!r}")
    return seconds


def _parse_iso8601(text: str) -> float:
    match = _ISO_8601.match(text)
    if not match or text in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration: '{text}'. Expected a form like 'PT30S' or 'PT1H30M'"
        )
    parts = match.groupdict()
    return (
        int(parts["days"] or 0) * _UNIT_SECONDS["d"]
        + int(parts["hours"] or 0) * _UNIT_SECONDS["h"]
        + int(parts["minutes"] or 0) * _UNIT_SECONDS["m"]
        + float(parts["seconds"] or 0)
    )


def _parse_compact(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        pass

    compact = re.sub(r"\s+", "", text)
    parts = _COMPACT_PART.findall(compact)
    if not parts or "".join(num + unit for num, unit in parts) != compact:
        raise DurationParseError(
            f"Invalid duration: '{text}'. Use units ms, s, m, h, d (e.g. '30s', '1h30m')"
        )
    return sum(float(num) * _UNIT_SECONDS[unit] for num, unit in parts)


def validate_duration_range(
    seconds: float,
    min_seconds: float,
    max_seconds: float,
    label: str = "Duration",
) -> None:
    """Check that a parsed duration lies within bounds.

    Raises:
        DurationParseError: If seconds is outside [min_seconds, max_seconds]
    """
    if seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {format_seconds(seconds)}. Minimum is {format_seconds(min_seconds)}."
        )
    if seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {format_seconds(seconds)}. Maximum is {format_seconds(max_seconds)}."
        )


def format_seconds(seconds: float) -> str:
    """Render seconds with the largest whole unit, e.g. ``90.0 -> '1.5 minutes'``."""
    for unit, size in (("day", 86400.0), ("hour", 3600.0), ("minute", 60.0), ("second", 1.0)):
        if seconds >= size:
            amount = seconds / size
            text = f"{amount:g}"
            return f"{text} {unit}{'' if amount == 1 else 's'}"
    return f"{seconds * 1000:g} milliseconds"
