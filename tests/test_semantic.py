# tests/test_semantic.py
"""
Tests for constant folding and static field-length validation.
"""

import pytest

from bitmatch import ast as A
from bitmatch.errors import LengthRangeError, MissingTypeError, StaticValidationError
from bitmatch.parser import parse_expr
from bitmatch.semantic import (
    BITSTRING_LENGTH_RULE,
    INT_LENGTH_RULE,
    STRING_LENGTH_RULE,
    evaluate,
    validate_field_length,
)


class TestEvaluate:

    @pytest.mark.parametrize("text,value", [
        ("8", 8),
        ("8 * 4 + 1", 33),
        ("-7 / 2", -3),
        ("7 / -2", -3),
        ("-7 mod 2", -1),
        ("-7 % 2", -1),
        ("1 lsl 3", 8),
        ("-8 asr 1", -4),
        ("-1 lsr 60", 7),
        ("0xf0 land 0x3c", 0x30),
        ("0xf0 lor 0x0f", 0xff),
        ("0xff lxor 0x0f", 0xf0),
        ("lnot 0", -1),
        ("-(2 + 3)", -5),
    ], ids=[
        "literal", "arith", "div_truncates", "div_negative_divisor", "mod_sign",
        "percent", "lsl", "asr", "lsr", "land", "lor", "lxor", "lnot", "neg",
    ])
    def test_folds(self, text, value):
        assert evaluate(parse_expr(text)) == value

    @pytest.mark.parametrize("text", [
        "x",
        "x + 1",
        "8 * n",
        "f(1)",
        "1 < 2",
        "not 1",
        "true",
        '"ab"',
        "(1, 2)",
        "7 / 0",
        "7 mod 0",
        "1 lsl -1",
    ], ids=[
        "name", "free_left", "free_right", "call", "comparison", "not",
        "bool", "string", "tuple", "div_zero", "mod_zero", "negative_shift",
    ])
    def test_unknown(self, text):
        assert evaluate(parse_expr(text)) is None


class TestValidateFieldLength:

    @pytest.mark.parametrize("value_type,length", [
        (A.FieldType.INT, 1),
        (A.FieldType.INT, 64),
        (A.FieldType.INT, None),
        (A.FieldType.STRING, 8),
        (A.FieldType.STRING, -1),
        (A.FieldType.STRING, None),
        (A.FieldType.BITSTRING, 0),
        (A.FieldType.BITSTRING, -1),
        (A.FieldType.BITSTRING, 13),
    ], ids=[
        "int_1", "int_64", "int_dynamic", "string_8", "string_rest",
        "string_dynamic", "bitstring_0", "bitstring_rest", "bitstring_13",
    ])
    def test_accepted(self, value_type, length):
        validate_field_length(value_type, length)

    @pytest.mark.parametrize("value_type,length,rule", [
        (A.FieldType.INT, 0, INT_LENGTH_RULE),
        (A.FieldType.INT, 65, INT_LENGTH_RULE),
        (A.FieldType.INT, -1, INT_LENGTH_RULE),
        (A.FieldType.STRING, 0, STRING_LENGTH_RULE),
        (A.FieldType.STRING, 12, STRING_LENGTH_RULE),
        (A.FieldType.STRING, -8, STRING_LENGTH_RULE),
        (A.FieldType.BITSTRING, -2, BITSTRING_LENGTH_RULE),
    ], ids=[
        "int_0", "int_65", "int_rest", "string_0", "string_12",
        "string_negative", "bitstring_negative",
    ])
    def test_rejected(self, value_type, length, rule):
        with pytest.raises(LengthRangeError) as excinfo:
            validate_field_length(value_type, length, "f:x")
        assert excinfo.value.rule == rule
        assert excinfo.value.length == length
        assert isinstance(excinfo.value, StaticValidationError)
        assert "'f:x'" in str(excinfo.value)

    def test_missing_type(self):
        with pytest.raises(MissingTypeError, match="No type to check"):
            validate_field_length(None, 8, "x:8")
