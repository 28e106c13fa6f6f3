"""Byte-size and duration codecs.

Byte sizes accept a decimal magnitude with an optional SI (``k``, ``M``,
``G``...) or IEC (``Ki``, ``Mi``, ``Gi``...) suffix, optionally followed by
``B``. Durations accept an integer followed by ``s``, ``m`` or ``h``.
"""

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Tuple

from bucketrepl.exceptions import InvalidFormatError, ValidationError

MIN_BANDWIDTH_LIMIT = 100 * 1000 * 1000

_MAX_UINT64 = 2**64 - 1

_PREFIXES = ["K", "M", "G", "T", "P", "E"]

# Largest unit first so rendering picks the shortest exact form.
_SI_UNITS: List[Tuple[str, int]] = [
    (prefix, 1000 ** (power + 1)) for power, prefix in reversed(list(enumerate(_PREFIXES)))
]
_IEC_UNITS: List[Tuple[str, int]] = [
    (prefix + "i", 1024 ** (power + 1)) for power, prefix in reversed(list(enumerate(_PREFIXES)))
]

_MULTIPLIERS: Dict[str, int] = {"": 1, "b": 1}
for _unit, _base in _SI_UNITS + _IEC_UNITS:
    _MULTIPLIERS[_unit.lower()] = _base
    _MULTIPLIERS[_unit.lower() + "b"] = _base

_BYTE_SIZE_RE = re.compile(r"^\s*([0-9][0-9,]*(?:\.[0-9]+)?|\.[0-9]+)\s*([a-zA-Z]*)\s*$")
_DURATION_RE = re.compile(r"^([0-9]+)\s?([smh])$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}


def parse_byte_size(text: str) -> int:
    """Parse a human byte size such as ``"100M"``, ``"1.5 GiB"`` or ``"42"``.

    Raises:
        InvalidFormatError: If the text is not a byte size
    """
    match = _BYTE_SIZE_RE.match(text or "")
    if not match:
        raise InvalidFormatError(text, "byte size")

    magnitude, unit = match.groups()
    multiplier = _MULTIPLIERS.get(unit.lower())
    if multiplier is None:
        raise InvalidFormatError(text, "byte size")

    try:
        value = Decimal(magnitude.replace(",", "")) * multiplier
    except InvalidOperation:
        raise InvalidFormatError(text, "byte size")

    if value > _MAX_UINT64:
        raise InvalidFormatError(text, "byte size")
    return int(value)


def format_byte_size(size: int) -> str:
    """Render ``size`` with the largest unit that represents it exactly.

    SI units win over IEC ones; sizes neither divides are rendered as a bare
    byte count.
    """
    if size < 0:
        raise ValueError(f"byte size cannot be negative: {size}")
    if size == 0:
        return "0"
    for units in (_SI_UNITS, _IEC_UNITS):
        for unit, base in units:
            if size % base == 0:
                return f"{size // base}{unit}"
    return str(size)


def validate_bandwidth_limit(limit: int) -> None:
    """Reject a bandwidth limit that is neither unlimited (0) nor at least 100 MB."""
    if limit != 0 and limit < MIN_BANDWIDTH_LIMIT:
        raise ValidationError(
            f"bandwidth limit must be 0 or at least {format_byte_size(MIN_BANDWIDTH_LIMIT)}, "
            f"got {format_byte_size(limit)}"
        )


def parse_duration(text: str) -> timedelta:
    """Parse ``"30s"``, ``"5m"`` or ``"1h"`` into a timedelta."""
    match = _DURATION_RE.match(text or "")
    if not match:
        raise InvalidFormatError(text, "duration")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


def format_duration(duration: timedelta) -> str:
    """Render a duration in the largest unit that represents it exactly."""
    seconds = int(round(duration.total_seconds()))
    if seconds != 0:
        if seconds % 3600 == 0:
            return f"{seconds // 3600}h"
        if seconds % 60 == 0:
            return f"{seconds // 60}m"
    return f"{seconds}s"


def same_byte_size(stored: str, declared: str) -> bool:
    """Whether ``declared`` renders to the ``stored`` text, so no change is needed."""
    try:
        return format_byte_size(parse_byte_size(declared)) == stored
    except InvalidFormatError:
        return False


def same_duration(stored: str, declared: str) -> bool:
    """Whether ``declared`` renders to the ``stored`` text, so no change is needed."""
    try:
        return format_duration(parse_duration(declared)) == stored
    except InvalidFormatError:
        return False
