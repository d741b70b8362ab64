# tests/test_qualifiers.py
"""
Tests for qualifier resolution into FieldSpec.
"""

import pytest

from bitmatch import ast as A
from bitmatch.errors import DuplicateAttributeError, UnknownQualifierError
from bitmatch.qualifiers import qualifier_text, resolve, resolve_qualifier


class TestResolve:

    def test_tokens(self):
        spec = resolve("int, signed, littleendian")
        assert spec == A.FieldSpec(A.FieldType.INT, A.Sign.SIGNED, A.Endian.LITTLE)

    @pytest.mark.parametrize("text,attribute,value", [
        ("string", "value_type", A.FieldType.STRING),
        ("bitstring", "value_type", A.FieldType.BITSTRING),
        ("unsigned", "sign", A.Sign.UNSIGNED),
        ("bigendian", "endian", A.Endian.BIG),
        ("nativeendian", "endian", A.Endian.NATIVE),
    ], ids=["string", "bitstring", "unsigned", "bigendian", "nativeendian"])
    def test_single_token(self, text, attribute, value):
        spec = resolve(text)
        assert getattr(spec, attribute) is value

    def test_function_qualifiers(self):
        spec = resolve("check(x > 1), bind(x * 2), set_offset_at(8), endian(e)")
        assert spec.check == A.BinaryOp(A.BinOp.GT, A.Name("x"), A.IntLit(1))
        assert spec.bind == A.BinaryOp(A.BinOp.MUL, A.Name("x"), A.IntLit(2))
        assert spec.offset_override == A.IntLit(8)
        assert spec.endian == A.ReferredEndian(A.Name("e"))

    def test_unset_attributes_stay_unset(self):
        spec = resolve("signed")
        assert spec.value_type is None
        assert spec.endian is None

    def test_threads_existing_spec(self):
        spec = resolve("signed", A.FieldSpec(value_type=A.FieldType.INT))
        assert spec.value_type is A.FieldType.INT
        assert spec.sign is A.Sign.SIGNED

    def test_accepts_parsed_expression(self):
        spec = resolve_qualifier(A.EMPTY_SPEC, A.Name("string"))
        assert spec.value_type is A.FieldType.STRING


class TestResolveErrors:

    @pytest.mark.parametrize("text,label", [
        ("int, int", "Value type"),
        ("int, string", "Value type"),
        ("signed, unsigned", "Signedness"),
        ("littleendian, endian(e)", "Endianness"),
        ("check(a), check(b)", "Check expression"),
        ("bind(a), bind(b)", "Bind expression"),
        ("set_offset_at(0), set_offset_at(8)", "Offset expression"),
    ], ids=["type_twice", "type_conflict", "sign", "endian", "check", "bind", "offset"])
    def test_duplicates(self, text, label):
        with pytest.raises(DuplicateAttributeError) as excinfo:
            resolve(text)
        assert excinfo.value.attribute == label
        assert "can only be defined once" in str(excinfo.value)

    def test_duplicate_names_offending_qualifier(self):
        with pytest.raises(DuplicateAttributeError) as excinfo:
            resolve("check(a), check(b)")
        assert excinfo.value.qualifier == "check(b)"

    @pytest.mark.parametrize("text", [
        "foo",
        "check(1, 2)",
        "bind()",
        "42",
        "int(8)",
        "endian",
    ], ids=["name", "two_args", "no_args", "literal", "call_token", "bare_function"])
    def test_unknown(self, text):
        with pytest.raises(UnknownQualifierError, match="Invalid qualifier"):
            resolve(text)

    def test_unknown_has_hint(self):
        with pytest.raises(UnknownQualifierError) as excinfo:
            resolve("bigendain")
        assert "littleendian" in excinfo.value.to_gcc_format()


class TestQualifierText:

    def test_tuple(self):
        expr = A.TupleExpr((A.Name("int"), A.Call("check", (A.Name("x"),))))
        assert qualifier_text(expr) == "int, check(x)"
