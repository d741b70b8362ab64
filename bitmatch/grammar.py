"""
grammar.py: PEG grammar for bitmatch field descriptors and match sources
=========================================================================

Three entry rules share one grammar:

``field_list``
    The string discriminator of a case, e.g. ``"a:4, b:4, _:8"`` or
    ``"x:8:check(x > 10); _"``.  Fields are separated by ``;`` or ``,``.
    A ``,`` followed by something shaped like a field (``pattern :`` or a
    lone ``_``) starts a new field; otherwise it continues the qualifier
    tuple, so ``"n:16:int, littleendian, rest:-1:bitstring"`` reads as two
    fields.

``expr``
    Lengths, qualifier arguments and case bodies.  C and ML spellings of
    the operators are both accepted (``%``/``mod``, ``&``/``land``,
    ``>>``/``asr``, ...).

``match_source``
    A file of case arms, ``"fields" -> body``, optionally introduced by
    ``|`` and terminated by ``;``.  ``#`` starts a comment.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import logging
from typing import Any, List, NamedTuple, Optional

from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from bitmatch import ast as A
from bitmatch.errors import BitmatchError, FieldFormatError

logger = logging.getLogger(__name__)

__all__ = [
    "BITMATCH_GRAMMAR",
    "GRAMMAR",
    "FieldSyntax",
    "ArmSyntax",
    "SyntaxBuilder",
    "parse_tree",
    "build",
]


BITMATCH_GRAMMAR = r'''
    # ── Field lists ──────────────────────────────────────────────────────
    field_list      = _ field_item field_tail* _ field_sep? _
    field_tail      = _ field_sep _ field_item
    field_sep       = ";" / ","
    field_item      = full_field / rest_field
    full_field      = pattern _ ":" _ expr qualifier_part?
    qualifier_part  = _ ":" _ qualifiers
    rest_field      = wildcard !(_ ":")
    qualifiers      = expr qualifier_tail*
    qualifier_tail  = _ "," _ !field_start expr
    field_start     = (pattern _ ":") / (wildcard _ (field_sep / eof))
    eof             = !~r"[\s\S]"

    # ── Match sources ────────────────────────────────────────────────────
    match_source    = _ match_arm*
    match_arm       = arm_bar? arm_head _ expr _ arm_end? _
    arm_bar         = "|" _
    arm_head        = string_literal _ "->"
    arm_end         = ";"

    # ── Patterns ─────────────────────────────────────────────────────────
    pattern         = alias_pattern / or_pattern
    alias_pattern   = or_pattern _ kw_as _ identifier
    or_pattern      = atom_pattern or_tail*
    or_tail         = _ "|" _ atom_pattern
    atom_pattern    = wildcard / literal_pattern / identifier / group_pattern
    group_pattern   = "(" _ pattern _ ")"
    literal_pattern = signed_integer / string_literal

    # ── Expressions (lowest precedence first) ────────────────────────────
    expr            = and_expr or_rest*
    or_rest         = _ or_op _ and_expr
    or_op           = "||" / kw_or
    and_expr        = not_expr and_rest*
    and_rest        = _ and_op _ not_expr
    and_op          = "&&" / kw_and
    not_expr        = negation / comparison
    negation        = not_op _ not_expr
    not_op          = kw_not / ("!" !"=")
    comparison      = bitor_expr compare_rest?
    compare_rest    = _ compare_op _ bitor_expr
    compare_op      = "==" / "!=" / "<>" / "<=" / ">=" / "<" / ">" / "="
    bitor_expr      = bitxor_expr bitor_rest*
    bitor_rest      = _ bitor_op _ bitxor_expr
    bitor_op        = kw_lor / ("|" !"|" !(_ arm_head))
    bitxor_expr     = bitand_expr bitxor_rest*
    bitxor_rest     = _ bitxor_op _ bitand_expr
    bitxor_op       = "^" / kw_lxor
    bitand_expr     = shift_expr bitand_rest*
    bitand_rest     = _ bitand_op _ shift_expr
    bitand_op       = kw_land / ("&" !"&")
    shift_expr      = add_expr shift_rest*
    shift_rest      = _ shift_op _ add_expr
    shift_op        = "<<" / ">>" / kw_lsl / kw_lsr / kw_asr
    add_expr        = mul_expr add_rest*
    add_rest        = _ add_op _ mul_expr
    add_op          = "+" / ("-" !">")
    mul_expr        = unary_expr mul_rest*
    mul_rest        = _ mul_op _ unary_expr
    mul_op          = "*" / "/" / "%" / kw_mod
    unary_expr      = negated / postfix_expr
    negated         = unary_op _ unary_expr
    unary_op        = "-" / "~" / kw_lnot
    postfix_expr    = call / primary
    call            = identifier _ "(" _ arguments? _ ")"
    arguments       = expr argument_rest* trailing_comma?
    argument_rest   = _ "," _ expr
    primary         = parenthesized / literal / identifier
    parenthesized   = "(" _ tuple_items? _ ")"
    tuple_items     = expr argument_rest* trailing_comma?
    trailing_comma  = _ ","
    literal         = integer / string_literal / boolean

    # ── Lexical ──────────────────────────────────────────────────────────
    kw_as           = ~r"as(?![A-Za-z0-9_])"
    kw_or           = ~r"or(?![A-Za-z0-9_])"
    kw_and          = ~r"and(?![A-Za-z0-9_])"
    kw_not          = ~r"not(?![A-Za-z0-9_])"
    kw_mod          = ~r"mod(?![A-Za-z0-9_])"
    kw_land         = ~r"land(?![A-Za-z0-9_])"
    kw_lor          = ~r"lor(?![A-Za-z0-9_])"
    kw_lxor         = ~r"lxor(?![A-Za-z0-9_])"
    kw_lnot         = ~r"lnot(?![A-Za-z0-9_])"
    kw_lsl          = ~r"lsl(?![A-Za-z0-9_])"
    kw_lsr          = ~r"lsr(?![A-Za-z0-9_])"
    kw_asr          = ~r"asr(?![A-Za-z0-9_])"
    boolean         = ~r"(?:true|false)(?![A-Za-z0-9_])"
    identifier      = ~r"(?!(?:as|or|and|not|mod|land|lor|lxor|lnot|lsl|lsr|asr|true|false|_)(?![A-Za-z0-9_]))[A-Za-z_][A-Za-z0-9_]*"
    wildcard        = ~r"_(?![A-Za-z0-9_])"
    integer         = ~r"(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|[0-9][0-9_]*)(?![A-Za-z0-9_])"
    signed_integer  = ~r"-?(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|[0-9][0-9_]*)(?![A-Za-z0-9_])"
    string_literal  = ~r'"(?:[^"\\]|\\.)*"'
    _               = ~r"(?:\s|#[^\n]*)*"
'''

GRAMMAR = Grammar(BITMATCH_GRAMMAR)


class FieldSyntax(NamedTuple):
    """A field as written: qualifiers are still an unresolved expression."""

    pattern: A.Pattern
    length: Optional[A.Expr]
    qualifiers: Optional[A.Expr]
    text: str
    start: int


class ArmSyntax(NamedTuple):
    """One ``"fields" -> body`` arm of a match source."""

    fields_text: str
    body: A.Expr
    start: int


_BINARY_OPERATORS = {
    "||": A.BinOp.OR, "or": A.BinOp.OR,
    "&&": A.BinOp.AND, "and": A.BinOp.AND,
    "==": A.BinOp.EQ, "=": A.BinOp.EQ,
    "!=": A.BinOp.NE, "<>": A.BinOp.NE,
    "<": A.BinOp.LT, "<=": A.BinOp.LE,
    ">": A.BinOp.GT, ">=": A.BinOp.GE,
    "|": A.BinOp.LOR, "lor": A.BinOp.LOR,
    "^": A.BinOp.LXOR, "lxor": A.BinOp.LXOR,
    "&": A.BinOp.LAND, "land": A.BinOp.LAND,
    "<<": A.BinOp.LSL, "lsl": A.BinOp.LSL,
    ">>": A.BinOp.ASR, "asr": A.BinOp.ASR,
    "lsr": A.BinOp.LSR,
    "+": A.BinOp.ADD, "-": A.BinOp.SUB,
    "*": A.BinOp.MUL, "/": A.BinOp.DIV,
    "%": A.BinOp.MOD, "mod": A.BinOp.MOD,
}

_UNARY_OPERATORS = {
    "-": A.UnaryOpKind.NEG,
    "~": A.UnaryOpKind.LNOT,
    "lnot": A.UnaryOpKind.LNOT,
    "not": A.UnaryOpKind.NOT,
    "!": A.UnaryOpKind.NOT,
}

_RADIX = {"0x": 16, "0o": 8, "0b": 2}


def _many(value: Any) -> List[Any]:
    """Children of a ``*`` repetition (an empty match visits to a Node)."""
    return value if isinstance(value, list) else []


def _opt(value: Any) -> Any:
    """Child of a ``?`` option, or None when it did not match."""
    return value[0] if isinstance(value, list) else None


def _int_value(text: str) -> int:
    digits = text.replace("_", "")
    sign = 1
    if digits.startswith("-"):
        sign, digits = -1, digits[1:]
    radix = _RADIX.get(digits[:2].lower(), 10)
    if radix != 10:
        digits = digits[2:]
    try:
        return sign * int(digits, radix)
    except ValueError:
        raise FieldFormatError(text, "Invalid integer literal") from None


def _string_value(text: str) -> bytes:
    body = text[1:-1]
    try:
        return body.encode("utf-8").decode("unicode_escape").encode("latin-1")
    except (UnicodeDecodeError, UnicodeEncodeError):
        raise FieldFormatError(text, "Invalid string literal") from None


class SyntaxBuilder(NodeVisitor):
    """Transforms a parsimonious parse tree into bitmatch AST nodes."""

    unwrapped_exceptions = (BitmatchError,)

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit__(self, node, visited_children):
        return None

    # ─────────────────────────────────────────────────────────────
    # Field lists
    # ─────────────────────────────────────────────────────────────

    def visit_field_list(self, node, visited_children):
        _, first, tails, *_ = visited_children
        return [first] + _many(tails)

    def visit_field_tail(self, node, visited_children):
        return visited_children[-1]

    def visit_field_item(self, node, visited_children):
        return visited_children[0]

    def visit_full_field(self, node, visited_children):
        pattern, _, _, _, length, qualifiers = visited_children
        return FieldSyntax(pattern, length, _opt(qualifiers), node.text.strip(), node.start)

    def visit_qualifier_part(self, node, visited_children):
        return visited_children[-1]

    def visit_rest_field(self, node, visited_children):
        return FieldSyntax(A.WildcardPattern(), None, None, "_", node.start)

    def visit_qualifiers(self, node, visited_children):
        first, tails = visited_children
        items = [first] + _many(tails)
        if len(items) == 1:
            return first
        return A.TupleExpr(tuple(items))

    def visit_qualifier_tail(self, node, visited_children):
        return visited_children[-1]

    # ─────────────────────────────────────────────────────────────
    # Match sources
    # ─────────────────────────────────────────────────────────────

    def visit_match_source(self, node, visited_children):
        _, arms = visited_children
        return _many(arms)

    def visit_match_arm(self, node, visited_children):
        _, head, _, body, *_ = visited_children
        fields_text, start = head
        return ArmSyntax(fields_text, body, start)

    def visit_arm_head(self, node, visited_children):
        # +1 skips the opening quote
        return visited_children[0].decode("latin-1"), node.start + 1

    # ─────────────────────────────────────────────────────────────
    # Patterns
    # ─────────────────────────────────────────────────────────────

    def visit_pattern(self, node, visited_children):
        return visited_children[0]

    def visit_alias_pattern(self, node, visited_children):
        pattern, _, _, _, name = visited_children
        return A.AliasPattern(pattern, name)

    def visit_or_pattern(self, node, visited_children):
        first, tails = visited_children
        alternatives = [first] + _many(tails)
        if len(alternatives) == 1:
            return first
        if not all(isinstance(alt, A.LiteralPattern) for alt in alternatives):
            raise FieldFormatError(node.text, "Or-patterns may only combine constants")
        return A.OrPattern(tuple(alternatives))

    def visit_or_tail(self, node, visited_children):
        return visited_children[-1]

    def visit_atom_pattern(self, node, visited_children):
        value = visited_children[0]
        if isinstance(value, str):
            return A.VarPattern(value)
        return value

    def visit_group_pattern(self, node, visited_children):
        return visited_children[2]

    def visit_literal_pattern(self, node, visited_children):
        return A.LiteralPattern(visited_children[0])

    def visit_wildcard(self, node, visited_children):
        return A.WildcardPattern()

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    def _fold(self, node, visited_children):
        """Left-associate ``operand (op operand)*``."""
        result, tails = visited_children
        for op, operand in _many(tails):
            result = A.BinaryOp(_BINARY_OPERATORS[op], result, operand)
        return result

    def _operator(self, node, visited_children):
        _, op, _, operand = visited_children
        return op, operand

    visit_expr = visit_and_expr = visit_bitor_expr = visit_bitxor_expr = _fold
    visit_bitand_expr = visit_shift_expr = visit_add_expr = visit_mul_expr = _fold

    visit_or_rest = visit_and_rest = visit_bitor_rest = visit_bitxor_rest = _operator
    visit_bitand_rest = visit_shift_rest = visit_add_rest = visit_mul_rest = _operator
    visit_compare_rest = _operator

    def _operator_text(self, node, visited_children):
        return node.text

    visit_or_op = visit_and_op = visit_not_op = visit_compare_op = _operator_text
    visit_bitor_op = visit_bitxor_op = visit_bitand_op = visit_shift_op = _operator_text
    visit_add_op = visit_mul_op = visit_unary_op = _operator_text

    def visit_not_expr(self, node, visited_children):
        return visited_children[0]

    def visit_negation(self, node, visited_children):
        op, _, operand = visited_children
        return A.UnaryOp(_UNARY_OPERATORS[op], operand)

    def visit_comparison(self, node, visited_children):
        left, rest = visited_children
        rest = _opt(rest)
        if rest is None:
            return left
        op, right = rest
        return A.BinaryOp(_BINARY_OPERATORS[op], left, right)

    def visit_unary_expr(self, node, visited_children):
        return visited_children[0]

    def visit_negated(self, node, visited_children):
        op, _, operand = visited_children
        if op == "-" and isinstance(operand, A.IntLit):
            return A.IntLit(-operand.value)
        return A.UnaryOp(_UNARY_OPERATORS[op], operand)

    def visit_postfix_expr(self, node, visited_children):
        return visited_children[0]

    def visit_call(self, node, visited_children):
        func, _, _, _, arguments, _, _ = visited_children
        return A.Call(func, tuple(_opt(arguments) or ()))

    def visit_arguments(self, node, visited_children):
        first, rest, _ = visited_children
        return [first] + _many(rest)

    def visit_argument_rest(self, node, visited_children):
        return visited_children[-1]

    def visit_primary(self, node, visited_children):
        value = visited_children[0]
        if isinstance(value, str):
            return A.Name(value)
        return value

    def visit_parenthesized(self, node, visited_children):
        items = _opt(visited_children[2])
        if items is None:
            return A.TupleExpr(())
        exprs, trailing = items
        if len(exprs) == 1 and not trailing:
            return exprs[0]
        return A.TupleExpr(tuple(exprs))

    def visit_tuple_items(self, node, visited_children):
        first, rest, trailing = visited_children
        return [first] + _many(rest), _opt(trailing) is not None

    def visit_trailing_comma(self, node, visited_children):
        return True

    def visit_literal(self, node, visited_children):
        value = visited_children[0]
        if isinstance(value, bytes):
            return A.StrLit(value)
        return value

    # ─────────────────────────────────────────────────────────────
    # Lexical
    # ─────────────────────────────────────────────────────────────

    def visit_identifier(self, node, visited_children):
        return node.text

    def visit_integer(self, node, visited_children):
        return A.IntLit(_int_value(node.text))

    def visit_signed_integer(self, node, visited_children):
        return _int_value(node.text)

    def visit_string_literal(self, node, visited_children):
        return _string_value(node.text)

    def visit_boolean(self, node, visited_children):
        return A.BoolLit(node.text == "true")


def parse_tree(text: str, rule: str = "field_list") -> Node:
    """Parse *text* with the named entry rule.

    Raises parsimonious ``ParseError`` / ``IncompleteParseError``.
    """
    return GRAMMAR[rule].parse(text)


def build(text: str, rule: str = "field_list") -> Any:
    """Parse *text* and build AST nodes for the given entry rule."""
    tree = parse_tree(text, rule)
    result = SyntaxBuilder().visit(tree)
    logger.debug("parsed %r as %s", text, rule)
    return result
