"""
bitmatch/parser.py
==================

Text front end: turns field descriptor strings, expressions and match
sources into :mod:`bitmatch.ast` nodes.

Parsing is done by the PEG grammar in :mod:`bitmatch.grammar`; this module
resolves qualifiers, applies the default field spec and converts
parsimonious errors into :class:`~bitmatch.errors.FieldFormatError` with a
line/column span.

Usage::

    from bitmatch.parser import parse_fields, parse_match_source

    fields = parse_fields("version:4, ihl:4, _:8, length:16:bigendian")
    cases = parse_match_source('''
        | "v:8:int" -> v
        | "_"       -> -1
    ''')
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from parsimonious.exceptions import ParseError

from bitmatch import ast as A
from bitmatch.errors import (
    BitmatchError,
    BitmatchErrorCodes,
    ConfigurationError,
    ErrorCode,
    FieldFormatError,
    InvalidCasePatternError,
    SourceSpan,
)
from bitmatch.grammar import ArmSyntax, FieldSyntax, build
from bitmatch.qualifiers import resolve_qualifier

logger = logging.getLogger(__name__)

__all__ = [
    "parse_expr",
    "parse_pattern",
    "parse_qualifiers",
    "parse_field",
    "parse_fields",
    "parse_case",
    "parse_match_source",
]


def _build(text: str, rule: str, what: str, file: str = "", base: int = 0,
           source: str = "", code: Optional[ErrorCode] = None) -> Any:
    """Run the grammar; report failures against *source* at *base*."""
    source = source or text
    try:
        return build(text, rule)
    except ParseError as exc:
        span = SourceSpan.from_offset(source, base + exc.pos, file)
        raise FieldFormatError(text, f"Format error in {what}", span=span, code=code) from None
    except BitmatchError as exc:
        exc.with_span(SourceSpan.from_offset(source, base, file))
        raise


def parse_expr(text: str) -> A.Expr:
    """Parse an expression such as ``"x * 8 + 4"``."""
    return _build(text.strip(), "expr", "expression",
                  code=BitmatchErrorCodes.INVALID_EXPRESSION)


def parse_pattern(text: str) -> A.Pattern:
    return _build(text.strip(), "pattern", "pattern")


def parse_qualifiers(text: str) -> A.Expr:
    """Parse the qualifier section of a field (``"int, signed"``)."""
    return _build(text.strip(), "qualifiers", "qualifiers")


def _to_field(
    syntax: FieldSyntax,
    implicit_int: bool,
    source: str,
    base: int,
    file: str,
) -> A.Field:
    if syntax.length is None:
        return A.Field(A.WildcardPattern(), None, None, syntax.text)
    if syntax.qualifiers is None:
        spec = A.DEFAULT_SPEC
    else:
        try:
            spec = resolve_qualifier(A.EMPTY_SPEC, syntax.qualifiers)
        except BitmatchError as exc:
            exc.with_span(SourceSpan.from_offset(source, base + syntax.start, file))
            raise
        if implicit_int:
            spec = spec.with_defaults(A.DEFAULT_SPEC)
    return A.Field(syntax.pattern, syntax.length, spec, syntax.text)


def parse_field(text: str, implicit_int: bool = True) -> A.Field:
    """Parse one field descriptor, e.g. ``"x:8:int, signed"``."""
    syntax = _build(text.strip(), "field_item", "field")
    return _to_field(syntax, implicit_int, text.strip(), 0, "")


def parse_fields(
    text: str,
    implicit_int: bool = True,
    *,
    file: str = "",
    base: int = 0,
    source: str = "",
) -> Tuple[A.Field, ...]:
    """Parse a case discriminator into its fields.

    A field without qualifiers gets ``DEFAULT_SPEC`` (unsigned big-endian
    int).  With *implicit_int*, qualifier lists are completed from the same
    defaults; without it only the attributes they name are set.
    """
    source = source or text
    syntaxes: List[FieldSyntax] = _build(
        text, "field_list", "field list", file=file, base=base, source=source
    )
    return tuple(_to_field(s, implicit_int, source, base, file) for s in syntaxes)


def parse_case(
    fields: Any,
    body: Any,
    index: int = 0,
    implicit_int: bool = True,
) -> A.Case:
    """Build a :class:`Case` from a field string and a body.

    *body* may be expression text, an expression node or a callable.
    """
    if not isinstance(fields, str):
        raise InvalidCasePatternError(fields)
    if isinstance(body, str):
        body = parse_expr(body)
    elif not callable(body) and not isinstance(body, A.EXPR_TYPES):
        raise ConfigurationError(
            f"Case body must be an expression or a callable, got {type(body).__name__}"
        )
    return A.Case(fields, parse_fields(fields, implicit_int), body, index)


def parse_match_source(
    text: str,
    file: str = "",
    implicit_int: bool = True,
) -> List[A.Case]:
    """Parse a file of ``"fields" -> body`` arms into cases."""
    arms: List[ArmSyntax] = _build(text, "match_source", "match source", file=file)
    cases = []
    for index, arm in enumerate(arms):
        fields = parse_fields(
            arm.fields_text, implicit_int, file=file, base=arm.start, source=text
        )
        cases.append(A.Case(arm.fields_text, fields, arm.body, index))
    logger.debug("parsed %d case(s) from %s", len(cases), file or "<string>")
    return cases
