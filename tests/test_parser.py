# tests/test_parser.py
"""
Tests for the text front end: field strings, cases and match sources.
"""

import pytest

from bitmatch import ast as A
from bitmatch.errors import (
    ConfigurationError,
    DuplicateAttributeError,
    FieldFormatError,
    InvalidCasePatternError,
    UnknownQualifierError,
)
from bitmatch.parser import (
    parse_case,
    parse_expr,
    parse_field,
    parse_fields,
    parse_match_source,
    parse_pattern,
    parse_qualifiers,
)
from tests.conftest import GIF_MATCH, IPV4_MATCH


class TestParseFields:

    def test_default_spec_without_qualifiers(self):
        fields = parse_fields("a:4, b:4, _:8")
        assert len(fields) == 3
        assert all(f.spec == A.DEFAULT_SPEC for f in fields)
        assert fields[2].pattern == A.WildcardPattern()
        assert fields[2].length == A.IntLit(8)

    def test_explicit_qualifiers(self):
        (field,) = parse_fields("x:8:int, signed, littleendian")
        assert field.spec.value_type is A.FieldType.INT
        assert field.spec.sign is A.Sign.SIGNED
        assert field.spec.endian is A.Endian.LITTLE

    def test_implicit_defaults_fill_missing_attributes(self):
        (field,) = parse_fields("s:-1:string")
        assert field.spec.value_type is A.FieldType.STRING
        assert field.spec.sign is A.Sign.UNSIGNED
        assert field.spec.endian is A.Endian.BIG

    def test_without_implicit_int(self):
        (field,) = parse_fields("x:8:signed", implicit_int=False)
        assert field.spec.value_type is None
        assert field.spec.endian is None
        assert field.spec.sign is A.Sign.SIGNED

    def test_no_qualifiers_still_default_without_implicit_int(self):
        (field,) = parse_fields("x:8", implicit_int=False)
        assert field.spec == A.DEFAULT_SPEC

    def test_rest_field(self):
        fields = parse_fields("x:8, _")
        assert fields[1].is_rest
        assert fields[1].spec is None
        assert not fields[0].is_rest

    def test_field_text_is_kept(self):
        fields = parse_fields("x:8:check(x > 1), y:16")
        assert [f.text for f in fields] == ["x:8:check(x > 1)", "y:16"]

    def test_dynamic_length(self):
        fields = parse_fields("n:8, data:n*8:string")
        assert fields[1].length == A.BinaryOp(A.BinOp.MUL, A.Name("n"), A.IntLit(8))

    def test_parse_field_single(self):
        field = parse_field("  v:8:int  ")
        assert field.pattern == A.VarPattern("v")


class TestParseErrors:

    def test_format_error_has_span(self):
        with pytest.raises(FieldFormatError) as excinfo:
            parse_fields("a:")
        assert excinfo.value.span.line == 1
        assert excinfo.value.text == "a:"

    def test_duplicate_attribute(self):
        with pytest.raises(DuplicateAttributeError, match="Value type can only be defined once"):
            parse_fields("x:8:int, int")

    def test_duplicate_attribute_even_if_different(self):
        with pytest.raises(DuplicateAttributeError, match="Signedness"):
            parse_fields("x:8:signed, unsigned")

    def test_unknown_qualifier(self):
        with pytest.raises(UnknownQualifierError, match="Invalid qualifier: foo"):
            parse_fields("x:8:foo")

    def test_qualifier_error_located_in_source(self):
        source = '| "a:8" -> a\n| "b:8" -> b\n| "c:8:wrong" -> c\n'
        with pytest.raises(UnknownQualifierError) as excinfo:
            parse_match_source(source, file="m.bm")
        assert excinfo.value.span.line == 3
        assert excinfo.value.span.file == "m.bm"


class TestParseExpr:

    def test_strips_whitespace(self):
        assert parse_expr("  x + 1 ") == A.BinaryOp(A.BinOp.ADD, A.Name("x"), A.IntLit(1))

    def test_invalid(self):
        with pytest.raises(FieldFormatError, match="expression") as excinfo:
            parse_expr("x +")
        assert excinfo.value.code == "BM-1001"

    def test_pattern_and_qualifiers(self):
        assert parse_pattern(" 1 | 2 ") == A.OrPattern((A.LiteralPattern(1), A.LiteralPattern(2)))
        assert parse_qualifiers("int, signed") == A.TupleExpr((A.Name("int"), A.Name("signed")))


class TestParseCase:

    def test_expression_body(self):
        case = parse_case("x:8", "x + 1", index=3)
        assert case.index == 3
        assert case.fields_text == "x:8"
        assert case.body == A.BinaryOp(A.BinOp.ADD, A.Name("x"), A.IntLit(1))

    def test_callable_body(self):
        body = lambda x: x
        assert parse_case("x:8", body).body is body

    def test_node_body(self):
        assert parse_case("_", A.IntLit(0)).body == A.IntLit(0)

    @pytest.mark.parametrize("fields", [
        42,
        b"x:8",
        None,
    ], ids=["int", "bytes", "none"])
    def test_fields_must_be_string(self, fields):
        with pytest.raises(InvalidCasePatternError, match="Wrong pattern type"):
            parse_case(fields, "0")

    def test_body_must_be_expression_or_callable(self):
        with pytest.raises(ConfigurationError, match="Case body"):
            parse_case("_", 42)


class TestParseMatchSource:

    def test_ipv4(self):
        cases = parse_match_source(IPV4_MATCH)
        assert [c.index for c in cases] == [0, 1]
        assert cases[0].fields[0].pattern == A.LiteralPattern(4)
        assert cases[0].body == A.TupleExpr((A.Name("ihl"), A.Name("tos"), A.Name("length")))
        assert cases[1].fields[1].is_rest

    def test_escaped_quotes_in_fields(self):
        cases = parse_match_source(GIF_MATCH)
        assert cases[0].fields[0].pattern == A.LiteralPattern(b"GIF")
        assert cases[0].fields[0].spec.value_type is A.FieldType.STRING

    def test_empty(self):
        assert parse_match_source("# nothing here\n") == []
