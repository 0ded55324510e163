"""Convert plan timing offsets into milliseconds.

Only fixed-length units are supported. Months and years have no fixed length
without a reference date, so they are rejected like any other unknown unit.
"""

from __future__ import annotations

from .errors import InvalidDurationError, UnknownDurationUnitError

_MS_PER_UNIT: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "min": 1000 * 60,
    "h": 1000 * 60 * 60,
    "d": 1000 * 60 * 60 * 24,
    "wk": 1000 * 60 * 60 * 24 * 7,
}

SUPPORTED_UNITS: frozenset[str] = frozenset(_MS_PER_UNIT)


def to_milliseconds(value: float, unit: str) -> int:
    """Return ``value`` expressed in ``unit`` as whole milliseconds."""

    try:
        multiplier = _MS_PER_UNIT[unit]
    except KeyError:
        raise UnknownDurationUnitError(
            f"Unsupported duration unit {unit!r} (expected one of {sorted(SUPPORTED_UNITS)})"
        ) from None

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDurationError(f"Duration value must be numeric, got {value!r}")
    if value < 0:
        raise InvalidDurationError(f"Duration value must be non-negative, got {value!r}")

    return int(round(value * multiplier))
