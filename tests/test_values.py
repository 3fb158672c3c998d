"""
Tests for untyped upstream value classification and numeric coercion.
"""

import math

import pytest

from wems_datasource.domain.utils.values import (
    BoolValue,
    NumberValue,
    OtherValue,
    StringValue,
    classify,
    coerce_value,
    coerce_values,
    parse_float64,
    to_float,
)


def test_classify_variants():
    """Test that each JSON shape maps to its variant."""
    assert classify(3) == NumberValue(3.0)
    assert classify(2.5) == NumberValue(2.5)
    assert classify(True) == BoolValue(True)
    assert classify("7") == StringValue("7")
    assert classify(None) == OtherValue(None)
    assert isinstance(classify([1]), OtherValue)
    assert isinstance(classify({"a": 1}), OtherValue)


def test_bool_is_not_treated_as_number():
    assert classify(False) == BoolValue(False)
    assert to_float(classify(False)) == 0.0
    assert to_float(classify(True)) == 1.0


def test_huge_integer_is_other():
    """Integers beyond float range are not numbers we can plot."""
    assert isinstance(classify(10**400), OtherValue)
    assert coerce_value(10**400) == 0.0


@pytest.mark.parametrize(
    "text,expected",
    [
        ("1", 1.0),
        ("-3.25", -3.25),
        ("+.5", 0.5),
        ("1.", 1.0),
        ("1e3", 1000.0),
        ("2E-2", 0.02),
        ("0x1p-2", 0.25),
        ("0x1.8p1", 3.0),
        ("-0x10p0", -16.0),
    ],
)
def test_parse_float64_accepts(text, expected):
    assert parse_float64(text) == expected


@pytest.mark.parametrize(
    "text", ["", " 1", "1 ", "1_000", ".", "abc", "1e", "0x10", "1,5", "e5"]
)
def test_parse_float64_rejects(text):
    with pytest.raises(ValueError):
        parse_float64(text)


def test_parse_float64_out_of_range():
    with pytest.raises(ValueError, match="out of range"):
        parse_float64("1e400")


@pytest.mark.parametrize("text", ["inf", "+Inf", "INFINITY", "-inf", "NaN", "nan"])
def test_parse_float64_special_values(text):
    result = parse_float64(text)
    assert math.isinf(result) or math.isnan(result)


def test_string_coercion():
    """Unparseable strings coerce to zero instead of failing."""
    assert coerce_value("42") == 42.0
    assert coerce_value("1_000") == 0.0
    assert coerce_value(" 1") == 0.0
    assert coerce_value("1e400") == 0.0
    assert coerce_value("0x1p-2") == 0.25
    assert math.isnan(coerce_value("NaN"))
    assert coerce_value("-Inf") == -math.inf


def test_other_values_are_zero():
    assert coerce_value(None) == 0.0
    assert coerce_value([1, 2]) == 0.0
    assert coerce_value({"v": 1}) == 0.0


def test_coerce_values_preserves_order():
    assert coerce_values(["3.5", True, None, 42]) == [3.5, 1.0, 0.0, 42.0]
