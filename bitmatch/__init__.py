"""bitmatch: declarative pattern matching over bitstrings.

A match is a list of cases.  Each case describes the layout of a bitstring
as a sequence of fields (``pattern : length : qualifiers``) and carries a
body that is evaluated, with the field values bound, when every field
accepts the input.  Cases are compiled to Python functions once and then
tried in order against each subject; the first one that matches wins.

Submodules
----------
errors
    Exception hierarchy with ``BM-XXXX`` error codes and ``SourceSpan``
    locations; ``to_gcc_format`` / ``to_json`` for reporting.
grammar / parser
    parsimonious grammar for field strings, expressions and match files.
qualifiers
    Resolution of qualifier lists into a ``FieldSpec``.
semantic
    Constant folding and static field-length validation.
codegen
    Generation of one Python function per case.
runtime
    ``MatchConfig``, the case dispatcher and the integer helpers shared by
    generated code.
bitbuffer
    Bit-addressed reads, ``Bitstring`` views and ``BitWriter``.
matcher
    ``Matcher``, ``case``, ``bitmatch`` and ``load_match_file``.
main
    CLI entry-point with subcommands: ``parse``, ``check``, ``compile``,
    ``run``.

Usage
-----
Programmatic::

    from bitmatch import Matcher, case

    header = Matcher([
        case("0x47:8, _:3, pid:13:check(pid != 0x1fff), _", "pid"),
        case("_", "-1"),
    ])
    header(b"\\x47\\x00\\x11")   # -> 17

Command-line::

    python -m bitmatch run ipv4.bm packet.bin
    python -m bitmatch --help
"""

from __future__ import annotations

__version__: str = "0.1.0"

from bitmatch.bitbuffer import Bitstring, BitWriter
from bitmatch.errors import (
    BitmatchError,
    ConfigurationError,
    NoMatchError,
    StaticValidationError,
)
from bitmatch.matcher import Matcher, bitmatch, case, compile_match, load_match_file
from bitmatch.runtime import DispatchState, MatchConfig, MatchResult

__all__: list[str] = [
    "__version__",
    "Bitstring",
    "BitWriter",
    "BitmatchError",
    "ConfigurationError",
    "NoMatchError",
    "StaticValidationError",
    "Matcher",
    "bitmatch",
    "case",
    "compile_match",
    "load_match_file",
    "DispatchState",
    "MatchConfig",
    "MatchResult",
]
