# tests/test_matcher.py
"""
End-to-end tests: compile matches and run them against real buffers.
"""

import logging

import pytest

from bitmatch import (
    Bitstring,
    BitWriter,
    ConfigurationError,
    DispatchState,
    MatchConfig,
    Matcher,
    NoMatchError,
    bitmatch,
    case,
    compile_match,
    load_match_file,
)
from bitmatch import ast as A
from bitmatch.errors import (
    BodySignatureError,
    InvalidCasePatternError,
    LengthRangeError,
    MissingTypeError,
    UnboundNameError,
)
from bitmatch.parser import parse_match_source
from tests.conftest import GIF_MATCH, IPV4_WORD, TLV_MATCH


class TestBasicScenarios:

    def test_single_int_field(self):
        assert Matcher([case("v:8:int", "v")])(b"\x0a") == 10

    def test_nibbles_then_skip(self):
        m = Matcher([case("a:4, b:4, _:8", "(a, b)")])
        assert m(b"\xff\x00") == (15, 15)

    def test_check_failure_falls_through(self):
        m = Matcher([
            case("x:8:check(x > 10)", "x"),
            case("_:8", "-1"),
        ])
        assert m(b"\x05") == -1
        assert m(b"\x0b") == 11

    def test_empty_buffer_matches_nothing(self):
        m = Matcher([case("x:8", "x")])
        with pytest.raises(NoMatchError):
            m(b"")
        result = m.try_match(b"")
        assert result.state is DispatchState.EXHAUSTED

    def test_wildcard_matches_empty_buffer(self):
        assert Matcher([case("_", "0")])(b"") == 0


class TestCaseOrdering:

    def test_later_cases_not_evaluated(self):
        calls = []

        def probe(i):
            calls.append(i)
            return True

        m = Matcher(
            [
                case("x:8:check(probe(0) && x == 1)", "0"),
                case("x:8:check(probe(1))", "1"),
                case("x:8:check(probe(2))", "2"),
            ],
            env={"probe": probe},
        )
        assert m(b"\x02") == 1
        assert calls == [0, 1]

    def test_body_of_failed_case_never_runs(self):
        ran = []
        m = Matcher([
            case("x:8, y:8", lambda x, y: ran.append((x, y))),
            case("x:8", lambda x: x),
        ])
        assert m(b"\x07") == 7
        assert ran == []

    def test_result_reports_case_index(self):
        m = Matcher([case("0:8", "0"), case("1:8", "1")])
        assert m.try_match(b"\x01").case_index == 1


class TestIntegers:

    @pytest.mark.parametrize("fields,data,value", [
        ("x:8:signed", b"\xff", -1),
        ("x:4:signed, _:4", b"\xf0", -1),
        ("x:16:littleendian", b"\x34\x12", 0x1234),
        ("x:16:bigendian", b"\x34\x12", 0x3412),
        ("x:12:littleendian, _", b"\xab\xc0", 0xCAB),
        ("x:64", b"\xff" * 8, (1 << 64) - 1),
        ("x:32:signed, littleendian", b"\xfe\xff\xff\xff", -2),
    ], ids=[
        "signed_8", "signed_nibble", "little_16", "big_16", "little_12",
        "width_64", "signed_little_32",
    ])
    def test_extraction(self, fields, data, value):
        assert Matcher([case(fields, "x")])(data) == value

    def test_native_endian_follows_config(self):
        little = Matcher([case("x:16:nativeendian", "x")], config=MatchConfig(native_endian="little"))
        big = Matcher([case("x:16:nativeendian", "x")], config=MatchConfig(native_endian="big"))
        assert little(b"\x34\x12") == 0x1234
        assert big(b"\x34\x12") == 0x3412

    def test_runtime_endianness(self):
        m = Matcher([case("x:16:endian(order)", "x")], env={"order": A.Endian.LITTLE})
        assert m(b"\x34\x12") == 0x1234
        assert Matcher([case("x:16:endian(BigEndian)", "x")])(b"\x34\x12") == 0x3412

    def test_literal_patterns(self):
        m = Matcher([
            case("0x47:8, pid:13:check(pid != 0x1fff), _", "pid"),
            case("_", "-1"),
        ])
        # 3 flag bits precede the 13-bit pid
        assert Matcher([case("0x47:8, _:3, pid:13, _", "pid")])(b"\x47\x00\x11") == 17
        assert m(b"\x48\x00\x11") == -1

    def test_or_and_alias_patterns(self):
        m = Matcher([
            case("(1 | 2) as kind:8, _", "kind * 10"),
            case("_", "0"),
        ])
        assert m(b"\x02\xff") == 20
        assert m(b"\x03") == 0

    def test_bind_then_check(self):
        m = Matcher([case("x:8:bind(x * 2), check(x == 10)", "x"), case("_", "-1")])
        assert m(b"\x05") == 10
        assert m(b"\x04") == -1

    def test_arithmetic_semantics(self):
        m = Matcher([case("x:8:signed", "(x / 2, x mod 2, x lsr 60)")])
        assert m(b"\xf9") == (-3, -1, 7)


class TestDynamicLengths:

    def test_length_from_earlier_field(self):
        m = Matcher([case("n:8, data:n*8:string, _", "data")])
        assert m(b"\x03abcdef") == b"abc"

    def test_length_too_long_fails(self):
        m = Matcher([case("n:8, data:n*8:string", "data"), case("_", "-1")])
        assert m(b"\x09ab") == -1

    def test_length_from_env(self):
        assert Matcher([case("x:n", "x")], env={"n": 4})(b"\xa0") == 0xA

    @pytest.mark.parametrize("width", [0, 65, -3], ids=["zero", "too_wide", "negative"])
    def test_dynamic_int_width_out_of_range_fails(self, width):
        m = Matcher([case("x:w", "x")], env={"w": width})
        assert not m.try_match(b"\xff" * 16).matched

    def test_dynamic_minus_one_takes_the_rest(self):
        m = Matcher([case("s:n:string", "s")], env={"n": -1})
        assert m(b"ab") == b"ab"

    def test_dynamic_string_not_whole_bytes_fails(self):
        m = Matcher([case("s:n:string", "s")], env={"n": 12})
        assert not m.try_match(b"abc").matched


class TestStringsAndBitstrings:

    def test_gif_header(self):
        m = Matcher(parse_match_source(GIF_MATCH))
        data = b"GIF89a" + (10).to_bytes(2, "little") + (20).to_bytes(2, "little")
        assert m(data) == (b"89a", 10, 20)
        assert m(b"PNG") == -1

    def test_rest_string_needs_whole_bytes(self):
        m = Matcher([case("_:4, s:-1:string", "s"), case("_", "-1")])
        assert m(b"\x0a\xbc") == -1
        assert Matcher([case("_:8, s:-1:string", "s")])(b"\x00AB") == b"AB"

    def test_tlv(self):
        m = Matcher(parse_match_source(TLV_MATCH))
        tag, value, rest = m(b"\x01\x02hi\xf0")
        assert (tag, value) == (1, b"hi")
        assert rest == Bitstring.from_bytes(b"\xf0")

    def test_fixed_bitstring_bounds_checked(self):
        m = Matcher([case("b:12:bitstring, rest:-1:bitstring", "(b, rest)"), case("_", "-1")])
        b, rest = m(b"\xab\xcd")
        assert b.bits() == "101010111100"
        assert len(rest) == 4
        assert m(b"\xab") == -1

    def test_zero_length_bitstring(self):
        b = Matcher([case("b:0:bitstring", "b")])(b"")
        assert len(b) == 0


class TestWildcardQualifiers:

    SKIPS = [
        "_:8:int",
        "_:16:string",
        "_:-1:string",
        "_:8:bitstring",
        "_:-1:bitstring",
    ]
    SKIP_IDS = ["int", "string", "rest_string", "bitstring", "rest_bitstring"]

    @pytest.mark.parametrize("skip", SKIPS, ids=SKIP_IDS)
    def test_check_guards_skipped_field(self, skip):
        m = Matcher([case(f"a:8, {skip}, check(a > 10)", "1"), case("_", "2")])
        assert m(b"\x05\x00\x00") == 2
        assert m(b"\x0b\x00\x00") == 1

    @pytest.mark.parametrize("skip", SKIPS, ids=SKIP_IDS)
    def test_bind_and_check_on_skipped_field(self, skip):
        m = Matcher([
            case(f"a:8, {skip}, bind(a), check(a == 1)", "a"),
            case("_", "-1"),
        ])
        assert m(b"\x01\x00\x00") == 1
        assert m(b"\x02\x00\x00") == -1

    def test_offset_override_on_skipped_bitstring(self):
        m = Matcher([case("a:8, _:8:bitstring, set_offset_at(0), b:8", "(a, b)")])
        assert m(b"\x2a\xff") == (42, 42)

    def test_rest_string_with_check_needs_whole_bytes(self):
        m = Matcher([case("_:4, _:-1:string, check(true)", "1"), case("_", "2")])
        assert m(b"\x0a\xbc") == 2


class TestSubjects:

    def test_bitstring_subject(self):
        m = Matcher([case("x:8", "x")])
        assert m(Bitstring(b"\xab\xcd", 4, 8)) == 0xBC

    def test_triple_subject(self):
        assert Matcher([case("x:8, _", "x")])((b"\xab\xcd", 4, 12)) == 0xBC

    def test_view_length_is_respected(self):
        m = Matcher([case("x:8, y:8", "y"), case("_", "-1")])
        assert m(Bitstring(b"\x01\x02\x03", 0, 12)) == -1

    def test_bad_subject(self):
        with pytest.raises(TypeError):
            Matcher([case("_", "0")])("text")


class TestOffsetOverride:

    def test_rewind(self):
        m = Matcher([case("a:8, b:8:set_offset_at(0), c:8", "(a, b, c)")])
        assert m(b"\x01\x02") == (1, 2, 1)

    def test_relative_to_subject_origin(self):
        m = Matcher([case("a:8:set_offset_at(4), b:4", "(a, b)")])
        assert m(Bitstring(b"\xf1\x23", 4, 12)) == (0x12, 0x2)

    def test_out_of_range_fails(self):
        m = Matcher([case("a:8:set_offset_at(100)", "a"), case("_", "-1")])
        assert m(b"\x01") == -1


class TestCallableBodies:

    def test_keyword_arguments(self):
        m = Matcher([case("a:4, b:4", lambda a, b: a + b)])
        assert m(b"\x12") == 3

    def test_var_keyword(self):
        assert Matcher([case("a:4, b:4", lambda **kw: kw)])(b"\x12") == {"a": 1, "b": 2}

    def test_no_parameters(self):
        assert Matcher([case("_", lambda: "hit")])(b"") == "hit"

    def test_missing_parameter(self):
        with pytest.raises(BodySignatureError):
            Matcher([case("a:8", lambda a, b: a)])


class TestCompileErrors:

    @pytest.mark.parametrize("fields,exc", [
        ("x:65", LengthRangeError),
        ("s:12:string", LengthRangeError),
        ("x:n", UnboundNameError),
    ], ids=["int_width", "string_width", "unbound_length"])
    def test_raised_at_construction(self, fields, exc):
        with pytest.raises(exc):
            Matcher([case(fields, "0")])

    def test_unbound_body_name(self):
        with pytest.raises(UnboundNameError, match="'y'"):
            Matcher([case("x:8", "y")])

    def test_missing_type_without_implicit_int(self):
        with pytest.raises(MissingTypeError):
            Matcher([case("x:8:signed", "x")], config=MatchConfig(implicit_int=False))

    def test_invalid_config(self):
        with pytest.raises(ConfigurationError, match="native_endian"):
            Matcher([case("_", "0")], config=MatchConfig(native_endian="middle"))

    def test_empty(self):
        with pytest.raises(ConfigurationError, match="Empty case list"):
            Matcher([])

    def test_case_must_be_pair(self):
        with pytest.raises(ConfigurationError, match="pair"):
            Matcher(["x:8"])

    def test_discriminator_must_be_string(self):
        with pytest.raises(InvalidCasePatternError):
            Matcher([(8, "0")])


class TestFacade:

    def test_source_and_repr(self):
        m = compile_match([case("x:8", "x"), case("_", "-1")])
        assert "def _bm_case_0(" in m.source
        assert "def _bm_case_1(" in m.source
        assert len(m) == 2
        assert repr(m) == "Matcher(['x:8', '_'])"

    def test_reusable(self):
        m = Matcher([case("x:8", "x")])
        assert [m(bytes([i])) for i in range(3)] == [0, 1, 2]

    def test_one_shot(self):
        assert bitmatch(b"\x0a", [case("v:8", "v")]) == 10

    def test_round_trip_through_writer(self):
        packet = (BitWriter()
                  .append_int(4, 4)
                  .append_int(5, 4)
                  .append_int(0, 8)
                  .append_int(1500, 16)
                  .build())
        m = Matcher([case("version:4, ihl:4, _:8, length:16", "(version, ihl, length)")])
        assert m(packet) == (4, 5, 1500)

    def test_load_match_file(self, ipv4_file):
        m = load_match_file(ipv4_file)
        assert m(IPV4_WORD) == (5, 0, 1500)
        assert m(b"\x65\x00") == 6
        assert m.config.filename == str(ipv4_file)

    def test_logs_compilation(self, caplog):
        with caplog.at_level(logging.INFO, logger="bitmatch"):
            Matcher([case("x:8", "x")])
        assert "compiled 1 case(s)" in caplog.text
