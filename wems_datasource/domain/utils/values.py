"""
Resolution of untyped upstream values into numbers.

The WEMS series endpoint returns each point's ``value`` as whatever JSON type
the device reported. Values are classified once, at the parsing boundary,
into a closed set of variants and then converted with a fixed table:

=============  ======================================================
Variant        Numeric value
=============  ======================================================
NumberValue    the number itself (integers widened to float)
BoolValue      ``1.0`` for true, ``0.0`` for false
StringValue    the string parsed as a float64, ``0.0`` if unparseable
OtherValue     ``0.0`` (null, arrays, objects)
=============  ======================================================

The string rule is lossy on purpose: dashboards built on this datasource
rely on unparseable strings plotting as zero.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Union


@dataclass(frozen=True)
class NumberValue:
    """JSON number (integer or floating point)."""

    value: float


@dataclass(frozen=True)
class BoolValue:
    """JSON boolean."""

    value: bool


@dataclass(frozen=True)
class StringValue:
    """JSON string."""

    value: str


@dataclass(frozen=True)
class OtherValue:
    """Any other JSON shape (null, array, object)."""

    raw: Any = None


UpstreamValue = Union[NumberValue, BoolValue, StringValue, OtherValue]

# Decimal float syntax accepted by a float64 parser: optional sign, digits with
# optional fraction, optional exponent. No surrounding whitespace, no "_".
_DECIMAL_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")
_HEX_RE = re.compile(
    r"[+-]?0[xX]([0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?[0-9]+"
)
_SPECIAL_RE = re.compile(r"[+-]?(inf|infinity|nan)", re.IGNORECASE)


def classify(raw: Any) -> UpstreamValue:
    """Classify a decoded JSON value into its variant.

    ``bool`` is checked before numbers since Python booleans are integers.
    """
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, (int, float)):
        try:
            return NumberValue(float(raw))
        except OverflowError:
            return OtherValue(raw)
    if isinstance(raw, str):
        return StringValue(raw)
    return OtherValue(raw)


def parse_float64(text: str) -> float:
    """Parse ``text`` with float64 parsing rules.

    Accepts decimal and hexadecimal floating-point syntax and the special
    values ``inf``/``infinity``/``nan`` (any case, optional sign). Rejects
    surrounding whitespace and digit separators, which Python's ``float()``
    would otherwise accept, and finite literals outside the float64 range.

    Raises
    ------
    ValueError
        If ``text`` is not a valid float64 literal.
    """
    if _SPECIAL_RE.fullmatch(text):
        return float(text)
    if _HEX_RE.fullmatch(text):
        return float.fromhex(text)
    if _DECIMAL_RE.fullmatch(text):
        result = float(text)
        if math.isinf(result):
            raise ValueError(f"value out of range: {text!r}")
        return result
    raise ValueError(f"invalid syntax: {text!r}")


def to_float(value: UpstreamValue) -> float:
    """Convert a classified value to its numeric form."""
    if isinstance(value, NumberValue):
        return value.value
    if isinstance(value, BoolValue):
        return 1.0 if value.value else 0.0
    if isinstance(value, StringValue):
        try:
            return parse_float64(value.value)
        except (ValueError, OverflowError):
            return 0.0
    return 0.0


def coerce_value(raw: Any) -> float:
    """Classify and convert a single raw upstream value."""
    return to_float(classify(raw))


def coerce_values(raw_values: Iterable[Any]) -> List[float]:
    """Convert raw upstream values, preserving order."""
    return [coerce_value(raw) for raw in raw_values]
