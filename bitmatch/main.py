#!/usr/bin/env python3
"""bitmatch/main.py: CLI entry-point for the bitmatch compiler.

Usage examples
--------------
    # Dump the parsed cases of a match file
    python -m bitmatch parse ipv4.bm --format sexp

    # Parse and generate code, reporting diagnostics for every case
    python -m bitmatch check ipv4.bm -f json

    # Write the generated Python module
    python -m bitmatch compile ipv4.bm -o ipv4_match.py

    # Match a binary file, or hex text with --hex
    python -m bitmatch run ipv4.bm packet.bin
    python -m bitmatch run ipv4.bm "45 00 05 dc" --hex

    # Constants available to expressions
    python -m bitmatch run tlv.bm frame.bin -D MAGIC=0x47

Match files hold one arm per case::

    | "version:4, ihl:4, _:8, length:16" -> (version, ihl, length)
    | "_"                                -> -1

Exit codes
----------
    0   Success (the subject matched, or no diagnostics).
    1   One or more diagnostics were emitted.
    2   Infrastructure failure (bad file, bad hex input, etc.).
    3   No case matched the subject.

The module doubles as ``python -m bitmatch`` via the companion
``bitmatch/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO

from bitmatch import __version__
from bitmatch import ast as A
from bitmatch.errors import BitmatchError, SourceSpan
from bitmatch.runtime import MatchConfig

_log = logging.getLogger("bitmatch")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_NO_MATCH: int = 3


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``bitmatch`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("bitmatch")
    root.setLevel(level)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _emit_diagnostics(
    diagnostics: List[BitmatchError],
    fmt: str,
    stream: TextIO,
) -> int:
    """Write *diagnostics* to *stream*; returns how many were written."""
    for diag in diagnostics:
        if fmt == "json":
            stream.write(json.dumps(diag.to_json()) + "\n")
        else:
            stream.write(diag.to_gcc_format() + "\n")
    return len(diagnostics)


def _parse_defines(raw: Sequence[str]) -> Dict[str, int]:
    """``-D NAME=INT`` options as an expression environment."""
    env: Dict[str, int] = {}
    for item in raw:
        name, sep, value = item.partition("=")
        if not sep or not name:
            _log.error("bad define %r, expected NAME=INT", item)
            raise SystemExit(EXIT_INFRA)
        try:
            env[name] = int(value, 0)
        except ValueError:
            _log.error("define %s: %r is not an integer", name, value)
            raise SystemExit(EXIT_INFRA) from None
    return env


def _config(args: argparse.Namespace, path: Path) -> MatchConfig:
    config = MatchConfig(filename=str(path), implicit_int=not args.no_implicit_int)
    if args.native_endian:
        config.native_endian = args.native_endian
    return config


def _load_cases(path: Path, config: MatchConfig) -> List[A.Case]:
    from bitmatch.parser import parse_match_source

    return parse_match_source(
        path.read_text(encoding="utf-8"), file=str(path), implicit_int=config.implicit_int
    )


def _read_subject(raw: str, as_hex: bool) -> bytes:
    if as_hex:
        try:
            return bytes.fromhex(raw)
        except ValueError:
            _log.error("not hex input: %r", raw)
            raise SystemExit(EXIT_INFRA) from None
    return _resolve_path(raw, "input").read_bytes()


# ===========================================================================
# Sub-commands
# ===========================================================================

# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------

def cmd_parse(args: argparse.Namespace) -> int:
    """Parse a match file and print its cases.

    Useful for debugging the front-end without generating any code.
    """
    src_path = _resolve_path(args.source_file, "match file")
    config = _config(args, src_path)
    try:
        cases = _load_cases(src_path, config)
    except BitmatchError as exc:
        _emit_diagnostics([exc], "gcc", sys.stderr)
        return EXIT_ERROR

    out = _open_output(args.output)
    try:
        if args.format == "sexp":
            out.write(A.to_sexp(cases) + "\n")
        elif args.format == "json":
            payload = [
                {"index": c.index, "fields": c.fields_text, "sexp": A.to_sexp(c)}
                for c in cases
            ]
            out.write(json.dumps(payload, indent=2) + "\n")
        else:
            for c in cases:
                out.write(repr(c) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def cmd_check(args: argparse.Namespace) -> int:
    """Parse a match file and generate code for each case separately.

    Every failing case is reported, not only the first one.
    """
    from bitmatch.codegen import MatchGenerator

    src_path = _resolve_path(args.source_file, "match file")
    config = _config(args, src_path)
    env = _parse_defines(args.define)
    try:
        cases = _load_cases(src_path, config)
    except BitmatchError as exc:
        _emit_diagnostics([exc], args.format, sys.stdout)
        return EXIT_ERROR

    source = src_path.read_text(encoding="utf-8")
    diagnostics: List[BitmatchError] = []
    for c in cases:
        try:
            MatchGenerator(config, env).generate([c])
        except BitmatchError as exc:
            position = source.find(c.fields_text)
            exc.with_span(SourceSpan.from_offset(source, max(position, 0), str(src_path)))
            diagnostics.append(exc)

    error_count = _emit_diagnostics(diagnostics, args.format, sys.stdout)
    _log.info("%s: %d case(s), %d error(s)", src_path.name, len(cases), error_count)
    return EXIT_ERROR if error_count > 0 else EXIT_OK


# ---------------------------------------------------------------------------
# compile
# ---------------------------------------------------------------------------

def cmd_compile(args: argparse.Namespace) -> int:
    """Write the Python module generated for a match file."""
    from bitmatch.codegen import MatchGenerator

    src_path = _resolve_path(args.source_file, "match file")
    config = _config(args, src_path)
    env = _parse_defines(args.define)
    try:
        generated = MatchGenerator(config, env).generate(_load_cases(src_path, config))
    except BitmatchError as exc:
        _emit_diagnostics([exc], "gcc", sys.stderr)
        return EXIT_ERROR

    if args.output is None or args.output == "-":
        sys.stdout.write(generated.code)
    else:
        generated.write_to_file(Path(args.output).expanduser().resolve())
    _log.info("Compiled %s (%d case(s))", src_path, len(generated.case_names))
    return EXIT_OK


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------

def cmd_run(args: argparse.Namespace) -> int:
    """Compile a match file and apply it to one subject."""
    from bitmatch.matcher import Matcher

    src_path = _resolve_path(args.source_file, "match file")
    config = _config(args, src_path)
    env = _parse_defines(args.define)
    subject = _read_subject(args.input, args.hex)
    try:
        matcher = Matcher(_load_cases(src_path, config), env, config)
    except BitmatchError as exc:
        _emit_diagnostics([exc], "gcc", sys.stderr)
        return EXIT_ERROR

    result = matcher.try_match(subject)
    if not result.matched:
        _log.warning("no case matched %d byte(s) of input", len(subject))
        return EXIT_NO_MATCH
    _log.info("case %d matched", result.case_index)
    print(repr(result.value))
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="bitmatch",
        description=(
            "bitmatch: declarative pattern matching over bitstrings.\n\n"
            "Compiles match files of field descriptors into Python code\n"
            "and runs them against binary input."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              bitmatch parse  ipv4.bm --format sexp
              bitmatch check  ipv4.bm -f json
              bitmatch compile ipv4.bm -o ipv4_match.py
              bitmatch run    ipv4.bm "45 00 05 dc" --hex
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_source_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "source_file",
            metavar="FILE",
            help="Match file of '| \"fields\" -> body' arms.",
        )
        g = p.add_argument_group("compilation")
        g.add_argument(
            "--native-endian",
            choices=["big", "little"],
            default=None,
            help="Byte order of 'native' fields (default: this machine's).",
        )
        g.add_argument(
            "--no-implicit-int",
            action="store_true",
            help="Do not complete qualifier lists with int/unsigned/bigendian.",
        )

    def _add_define_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-D", "--define",
            action="append",
            default=[],
            metavar="NAME=INT",
            help="Integer constant available to expressions (repeatable).",
        )

    def _add_output_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    # --- parse -------------------------------------------------------------
    p_parse = subparsers.add_parser(
        "parse",
        help="Parse a match file and dump its cases.",
    )
    _add_source_args(p_parse)
    p_parse.add_argument(
        "-f", "--format",
        choices=["sexp", "json", "repr"],
        default="sexp",
        help="Output format (default: sexp).",
    )
    _add_output_args(p_parse)
    p_parse.set_defaults(func=cmd_parse)

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Validate a match file (no output code).",
    )
    _add_source_args(p_check)
    _add_define_args(p_check)
    p_check.add_argument(
        "-f", "--format",
        choices=["gcc", "json"],
        default="gcc",
        help="Diagnostic format (default: gcc).",
    )
    p_check.set_defaults(func=cmd_check)

    # --- compile -----------------------------------------------------------
    p_compile = subparsers.add_parser(
        "compile",
        help="Write the generated Python module.",
    )
    _add_source_args(p_compile)
    _add_define_args(p_compile)
    _add_output_args(p_compile)
    p_compile.set_defaults(func=cmd_compile)

    # --- run ---------------------------------------------------------------
    p_run = subparsers.add_parser(
        "run",
        help="Match binary input and print the result.",
    )
    _add_source_args(p_run)
    _add_define_args(p_run)
    p_run.add_argument(
        "input",
        metavar="INPUT",
        help="Binary input file, or hex text with --hex.",
    )
    p_run.add_argument(
        "--hex",
        action="store_true",
        help="Treat INPUT as hex digits instead of a file name.",
    )
    p_run.set_defaults(func=cmd_run)

    return parser


# ===========================================================================
# Entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point.  Returns an exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not getattr(args, "command", None):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.warning("Interrupted.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unexpected error: %s", exc, exc_info=args.verbose >= 2)
        return EXIT_INFRA


if __name__ == "__main__":
    sys.exit(main())
