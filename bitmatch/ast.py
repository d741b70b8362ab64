"""bitmatch/ast.py – Abstract syntax for bit-level match descriptions.

A match is an ordered list of cases.  Each case is a string of field
descriptors (``pattern : length : qualifiers``) plus a body that is
evaluated when every field of the case accepts the input.

This module defines the *abstract* syntax produced by the grammar front end
and consumed by the qualifier resolver, the static evaluator and the code
generator: expressions and patterns as tagged variants, the per-field
``FieldSpec`` and the ``Field`` / ``Case`` containers.

Design invariants
-----------------
* Every node is a frozen dataclass; children are tuples.
* ``FieldSpec`` attributes are written at most once; ``FieldSpec.set``
  returns a new value and never mutates.
* Expressions carry no host-language objects: names, literals, operators,
  calls and tuples are the whole vocabulary.

Module layout
-------------
§1  Enumerations (field type, sign, endianness, operators)
§2  Expressions
§3  Patterns
§4  Field descriptors and cases
§5  Dispatch helpers
§6  S-expression rendering
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Union

import sexpdata

__all__ = [
    "FieldType",
    "Sign",
    "Endian",
    "ReferredEndian",
    "BinOp",
    "UnaryOpKind",
    "IntLit",
    "StrLit",
    "BoolLit",
    "Name",
    "BinaryOp",
    "UnaryOp",
    "Call",
    "TupleExpr",
    "Expr",
    "EXPR_TYPES",
    "WildcardPattern",
    "VarPattern",
    "LiteralPattern",
    "OrPattern",
    "AliasPattern",
    "Pattern",
    "FieldSpec",
    "EMPTY_SPEC",
    "DEFAULT_SPEC",
    "Field",
    "Case",
    "dispatch",
    "to_sexp",
    "to_text",
    "pattern_names",
]


# ════════════════════════════════════════════════════════════════════════
# §1  Enumerations
# ════════════════════════════════════════════════════════════════════════


class FieldType(Enum):
    """How the bits of a field are interpreted."""

    INT = "int"
    STRING = "string"
    BITSTRING = "bitstring"


class Sign(Enum):
    SIGNED = "signed"
    UNSIGNED = "unsigned"


class Endian(Enum):
    """Byte order of an integer field; ``NATIVE`` resolves per config."""

    LITTLE = "little"
    BIG = "big"
    NATIVE = "native"


@dataclass(frozen=True, slots=True)
class ReferredEndian:
    """Byte order decided at runtime by evaluating ``expr``."""

    expr: "Expr"


Endianness = Union[Endian, ReferredEndian]


class BinOp(Enum):
    OR = "or"
    AND = "and"
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    LOR = "lor"
    LXOR = "lxor"
    LAND = "land"
    LSL = "lsl"
    LSR = "lsr"
    ASR = "asr"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "mod"


class UnaryOpKind(Enum):
    NEG = "-"
    LNOT = "lnot"
    NOT = "not"


# ════════════════════════════════════════════════════════════════════════
# §2  Expressions
# ════════════════════════════════════════════════════════════════════════
#
# Lengths, guards (``check``), rebinding (``bind``), runtime endianness,
# offset overrides and case bodies are all expressions of this shape.


@dataclass(frozen=True, slots=True)
class IntLit:
    value: int


@dataclass(frozen=True, slots=True)
class StrLit:
    """A string literal; values are byte strings."""

    value: bytes


@dataclass(frozen=True, slots=True)
class BoolLit:
    value: bool


@dataclass(frozen=True, slots=True)
class Name:
    name: str


@dataclass(frozen=True, slots=True)
class BinaryOp:
    op: BinOp
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True, slots=True)
class UnaryOp:
    op: UnaryOpKind
    operand: "Expr"


@dataclass(frozen=True, slots=True)
class Call:
    """Function-style application, ``func(args...)``."""

    func: str
    args: Tuple["Expr", ...] = ()


@dataclass(frozen=True, slots=True)
class TupleExpr:
    items: Tuple["Expr", ...] = ()


Expr = Union[IntLit, StrLit, BoolLit, Name, BinaryOp, UnaryOp, Call, TupleExpr]

EXPR_TYPES = (IntLit, StrLit, BoolLit, Name, BinaryOp, UnaryOp, Call, TupleExpr)


# ════════════════════════════════════════════════════════════════════════
# §3  Patterns
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class WildcardPattern:
    """``_`` – accept anything, bind nothing."""


@dataclass(frozen=True, slots=True)
class VarPattern:
    name: str


@dataclass(frozen=True, slots=True)
class LiteralPattern:
    """Integer or byte-string constant the extracted value must equal."""

    value: Union[int, bytes]


@dataclass(frozen=True, slots=True)
class OrPattern:
    """Alternatives; every alternative is a ``LiteralPattern``."""

    alternatives: Tuple[LiteralPattern, ...]


@dataclass(frozen=True, slots=True)
class AliasPattern:
    """``pattern as name``."""

    pattern: "Pattern"
    name: str


Pattern = Union[WildcardPattern, VarPattern, LiteralPattern, OrPattern, AliasPattern]


def pattern_names(pattern: Pattern) -> Tuple[str, ...]:
    """Names a pattern binds, outermost last."""
    if isinstance(pattern, VarPattern):
        return (pattern.name,)
    if isinstance(pattern, AliasPattern):
        return pattern_names(pattern.pattern) + (pattern.name,)
    return ()


# ════════════════════════════════════════════════════════════════════════
# §4  Field descriptors and cases
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Resolved qualifiers of one field.

    Every attribute is optional during resolution.  ``set`` refuses to
    overwrite an attribute that already has a value; the caller turns that
    into a ``DuplicateAttributeError``.
    """

    value_type: Optional[FieldType] = None
    sign: Optional[Sign] = None
    endian: Optional[Endianness] = None
    check: Optional[Expr] = None
    bind: Optional[Expr] = None
    offset_override: Optional[Expr] = None

    def is_set(self, attribute: str) -> bool:
        return getattr(self, attribute) is not None

    def set(self, attribute: str, value: Any) -> "FieldSpec":
        """Return a copy with *attribute* set.  Raises ``KeyError`` if it
        was already set."""
        if self.is_set(attribute):
            raise KeyError(attribute)
        return replace(self, **{attribute: value})

    def with_defaults(self, defaults: "FieldSpec") -> "FieldSpec":
        """Fill type, sign and endianness that are still unset."""
        return replace(
            self,
            value_type=self.value_type or defaults.value_type,
            sign=self.sign or defaults.sign,
            endian=self.endian or defaults.endian,
        )

    @property
    def signed(self) -> bool:
        return self.sign is Sign.SIGNED


EMPTY_SPEC = FieldSpec()

#: What a field without a qualifier section means.
DEFAULT_SPEC = FieldSpec(value_type=FieldType.INT, sign=Sign.UNSIGNED, endian=Endian.BIG)


@dataclass(frozen=True, slots=True)
class Field:
    """One ``pattern : length : qualifiers`` descriptor.

    A lone ``_`` (no length, no spec) ignores the rest of the input and ends
    the case successfully.
    """

    pattern: Pattern
    length: Optional[Expr] = None
    spec: Optional[FieldSpec] = None
    text: str = field(default="", compare=False)

    @property
    def is_rest(self) -> bool:
        return isinstance(self.pattern, WildcardPattern) and self.length is None


#: A case body is either a DSL expression or a Python callable.
Body = Union[Expr, Callable[..., Any]]


@dataclass(frozen=True)
class Case:
    """One arm of a match: field descriptors plus a body."""

    fields_text: str
    fields: Tuple[Field, ...]
    body: Body
    index: int = 0


# ════════════════════════════════════════════════════════════════════════
# §5  Dispatch helpers
# ════════════════════════════════════════════════════════════════════════
#
# Nodes are plain dataclasses without ``accept`` methods; ``dispatch``
# routes a node to the visitor method named after its type.

_DISPATCH: dict[type, str] = {
    IntLit: "visit_int_lit",
    StrLit: "visit_str_lit",
    BoolLit: "visit_bool_lit",
    Name: "visit_name",
    BinaryOp: "visit_binary_op",
    UnaryOp: "visit_unary_op",
    Call: "visit_call",
    TupleExpr: "visit_tuple_expr",
    WildcardPattern: "visit_wildcard_pattern",
    VarPattern: "visit_var_pattern",
    LiteralPattern: "visit_literal_pattern",
    OrPattern: "visit_or_pattern",
    AliasPattern: "visit_alias_pattern",
}


def dispatch(node: Any, visitor: Any, *args: Any) -> Any:
    """Dispatch *node* to the appropriate visitor method."""
    method_name = _DISPATCH.get(type(node))
    if method_name is None:
        raise TypeError(f"Unknown node type: {type(node).__name__}")
    return getattr(visitor, method_name)(node, *args)


# ════════════════════════════════════════════════════════════════════════
# §6  S-expression rendering
# ════════════════════════════════════════════════════════════════════════
#
# Used by ``bitmatch parse --format sexp`` and handy in test failures.

_S = sexpdata.Symbol


def _sexp_tree(node: Any) -> Any:
    if isinstance(node, IntLit):
        return node.value
    if isinstance(node, StrLit):
        return node.value.decode("latin-1")
    if isinstance(node, BoolLit):
        return _S("true" if node.value else "false")
    if isinstance(node, Name):
        return _S(node.name)
    if isinstance(node, BinaryOp):
        return [_S(node.op.value), _sexp_tree(node.left), _sexp_tree(node.right)]
    if isinstance(node, UnaryOp):
        return [_S(node.op.value), _sexp_tree(node.operand)]
    if isinstance(node, Call):
        return [_S(node.func)] + [_sexp_tree(a) for a in node.args]
    if isinstance(node, TupleExpr):
        return [_S("tuple")] + [_sexp_tree(i) for i in node.items]
    if isinstance(node, WildcardPattern):
        return _S("_")
    if isinstance(node, VarPattern):
        return _S(node.name)
    if isinstance(node, LiteralPattern):
        if isinstance(node.value, bytes):
            return node.value.decode("latin-1")
        return node.value
    if isinstance(node, OrPattern):
        return [_S("|")] + [_sexp_tree(a) for a in node.alternatives]
    if isinstance(node, AliasPattern):
        return [_S("as"), _sexp_tree(node.pattern), _S(node.name)]
    if isinstance(node, ReferredEndian):
        return [_S("endian"), _sexp_tree(node.expr)]
    if isinstance(node, Enum):
        return _S(node.value)
    if isinstance(node, FieldSpec):
        out: list = [_S("spec")]
        for attr in ("value_type", "sign", "endian", "check", "bind", "offset_override"):
            value = getattr(node, attr)
            if value is not None:
                out.append([_S(attr), _sexp_tree(value)])
        return out
    if isinstance(node, Field):
        if node.is_rest:
            return [_S("rest")]
        out = [_S("field"), _sexp_tree(node.pattern), _sexp_tree(node.length)]
        if node.spec is not None:
            out.append(_sexp_tree(node.spec))
        return out
    if isinstance(node, Case):
        body = _sexp_tree(node.body) if not callable(node.body) else _S("<callable>")
        return [_S("case"), node.fields_text] + [_sexp_tree(f) for f in node.fields] + [
            [_S("body"), body]
        ]
    raise TypeError(f"Cannot render {type(node).__name__} as an S-expression")


def to_sexp(node: Any) -> str:
    """Render a node (or a list of cases) as S-expression text."""
    if isinstance(node, (list, tuple)):
        return "\n".join(to_sexp(n) for n in node)
    return sexpdata.dumps(_sexp_tree(node))


def to_text(node: Any) -> str:
    """Render an expression or pattern back in surface syntax (fully
    parenthesised) for messages."""
    if isinstance(node, IntLit):
        return str(node.value)
    if isinstance(node, StrLit):
        return '"' + node.value.decode("latin-1").replace('"', '\\"') + '"'
    if isinstance(node, BoolLit):
        return "true" if node.value else "false"
    if isinstance(node, Name):
        return node.name
    if isinstance(node, BinaryOp):
        return f"({to_text(node.left)} {node.op.value} {to_text(node.right)})"
    if isinstance(node, UnaryOp):
        sep = " " if node.op is not UnaryOpKind.NEG else ""
        return f"{node.op.value}{sep}{to_text(node.operand)}"
    if isinstance(node, Call):
        return f"{node.func}({', '.join(to_text(a) for a in node.args)})"
    if isinstance(node, TupleExpr):
        if len(node.items) == 1:
            return f"({to_text(node.items[0])},)"
        return "(" + ", ".join(to_text(i) for i in node.items) + ")"
    if isinstance(node, WildcardPattern):
        return "_"
    if isinstance(node, VarPattern):
        return node.name
    if isinstance(node, LiteralPattern):
        if isinstance(node.value, bytes):
            return to_text(StrLit(node.value))
        return str(node.value)
    if isinstance(node, OrPattern):
        return " | ".join(to_text(a) for a in node.alternatives)
    if isinstance(node, AliasPattern):
        return f"({to_text(node.pattern)}) as {node.name}"
    raise TypeError(f"Cannot render {type(node).__name__} as text")
