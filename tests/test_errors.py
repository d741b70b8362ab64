# tests/test_errors.py
"""
Tests for error codes, source spans and diagnostic formatting.
"""

import json

import pytest

from bitmatch.errors import (
    BitmatchError,
    BitmatchErrorCodes,
    ConfigurationError,
    ErrorPhase,
    FieldFormatError,
    LengthRangeError,
    NoMatchError,
    SourceSpan,
    StaticValidationError,
    UnboundNameError,
    UnknownQualifierError,
)
from bitmatch.parser import parse_match_source


class TestErrorCodes:

    def test_text_form(self):
        assert str(BitmatchErrorCodes.NO_MATCH) == "BM-5000"
        assert BitmatchErrorCodes.NO_MATCH == "BM-5000"
        assert BitmatchErrorCodes.LENGTH_OUT_OF_RANGE != "BM-5000"

    def test_codes_are_distinct(self):
        codes = [v for v in vars(BitmatchErrorCodes).values() if hasattr(v, "code")]
        assert len({c.code for c in codes}) == len(codes)

    @pytest.mark.parametrize("exc,code,phase", [
        (FieldFormatError("a:"), "BM-1000", ErrorPhase.SYNTAX),
        (UnknownQualifierError("foo"), "BM-2001", ErrorPhase.QUALIFIER),
        (LengthRangeError("int width must be 1..64", 65), "BM-3001", ErrorPhase.STATIC),
        (UnboundNameError("n"), "BM-3003", ErrorPhase.STATIC),
        (NoMatchError(), "BM-5000", ErrorPhase.RUNTIME),
    ], ids=["format", "qualifier", "length", "unbound", "no_match"])
    def test_codes_by_class(self, exc, code, phase):
        assert exc.code == code
        assert exc.code.phase is phase

    def test_hierarchy(self):
        assert issubclass(UnknownQualifierError, ConfigurationError)
        assert issubclass(LengthRangeError, StaticValidationError)
        assert issubclass(NoMatchError, BitmatchError)
        assert not issubclass(LengthRangeError, ConfigurationError)

    def test_static_validation_default_code(self):
        exc = StaticValidationError("length must be known")
        assert exc.code == "BM-3001"
        assert exc.code.phase is ErrorPhase.STATIC


class TestSourceSpan:

    def test_from_offset(self):
        source = 'first\n| "a:" -> a\n'
        span = SourceSpan.from_offset(source, source.index("a:"), file="m.bm")
        assert (span.line, span.column) == (2, 4)
        assert span.text == '| "a:" -> a'
        assert str(span) == "m.bm:2:4"

    def test_offset_is_clamped(self):
        span = SourceSpan.from_offset("abc", 99)
        assert (span.line, span.column) == (1, 4)

    def test_unknown_location(self):
        assert str(SourceSpan()) == "<bitmatch>"


class TestFormatting:

    def _error(self):
        span = SourceSpan(file="m.bm", line=2, column=3, text='| "a:" -> a')
        return FieldFormatError("a:", span=span)

    def test_gcc_format(self):
        lines = self._error().to_gcc_format().splitlines()
        assert lines[0] == "m.bm:2:3: error: Format error: 'a:' [BM-1000]"
        assert lines[1] == '    | "a:" -> a'
        assert lines[2] == "      ^"

    def test_notes_and_hint(self):
        exc = UnboundNameError("n", "x:n", available=["b", "a"])
        report = exc.to_gcc_format()
        assert "note: names in scope: a, b" in report
        assert report.endswith("hint: bind it in an earlier field or pass it through env")

    def test_json(self):
        data = self._error().to_json()
        assert data["code"] == "BM-1000"
        assert data["phase"] == "syntax"
        assert data["location"] == {
            "file": "m.bm", "line": 2, "column": 3, "text": '| "a:" -> a',
        }
        json.dumps(data)

    def test_str_is_plain_message(self):
        assert str(NoMatchError()) == "no case matched the subject"
        assert str(UnknownQualifierError("foo")) == "Invalid qualifier: foo"

    def test_with_span_keeps_precise_location(self):
        exc = self._error()
        exc.with_span(SourceSpan(file="other.bm", line=9))
        assert exc.span.file == "m.bm"
        assert ConfigurationError("x").with_span(SourceSpan(line=9)).span.line == 9


class TestParserLocations:

    def test_format_error_points_into_match_file(self):
        source = '| "x:8" -> x\n| "a:" -> a\n'
        with pytest.raises(FieldFormatError) as excinfo:
            parse_match_source(source, file="m.bm")
        span = excinfo.value.span
        assert span.file == "m.bm"
        assert span.line == 2
        assert excinfo.value.to_gcc_format().startswith("m.bm:2:")
