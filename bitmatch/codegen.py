#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
bitmatch/codegen.py
===================

Code generator for bitmatch cases.

Every case becomes one Python function ``(data, origin, total)`` that walks
the fields left to right.  Each field checks that enough bits remain,
extracts its value, binds and tests it, then hands a fresh
``(offset, length)`` cursor to the code of the next field.  A failing field
returns ``None`` so the dispatcher moves on to the next case; when every
field accepts, the function returns ``Matched(body_value)``.

Architecture
------------
1. **ExpressionCompiler** - bitmatch expressions to Python expressions,
   resolving names against the case scope, the caller's environment and a
   small set of builtins
2. **PatternCompiler** - a field pattern to a test on the extracted value
   plus the names it binds
3. **FieldGenerator** - one field, written in continuation-passing style:
   ``generate(cursor, field, continuation)`` emits the field and appends
   whatever the continuation produces for the output cursor
4. **CaseGenerator** - folds the fields of a case right to left into a
   continuation chain ending in the case body
5. **MatchGenerator** - a module with one function per case and the
   ``_BM_CASES`` tuple the dispatcher iterates

Generated names all start with ``_bm_`` so they cannot collide with names
bound by patterns.
"""

from __future__ import annotations

import functools
import inspect
import keyword
import logging
import os
import re
from dataclasses import dataclass, field
from io import StringIO
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from bitmatch import ast as A
from bitmatch.bitbuffer import get_bytes, get_int, sub
from bitmatch.errors import (
    BodySignatureError,
    CodeGenError,
    ConfigurationError,
    InvalidBitstringPatternError,
    MissingTypeError,
    UnboundNameError,
)
from bitmatch.runtime import MatchConfig, Matched, int_div, int_mod, lsr, resolve_endian
from bitmatch.semantic import evaluate, validate_field_length
from bitmatch.visitor import ASTVisitor, free_names

logger = logging.getLogger(__name__)

__all__ = [
    "generate",
    "CodeEmitter",
    "Cursor",
    "CompilationContext",
    "ExpressionCompiler",
    "PatternCompiler",
    "FieldGenerator",
    "CaseGenerator",
    "MatchGenerator",
    "GeneratedMatcher",
    "EXPRESSION_BUILTINS",
]

#: Names every expression may use without binding them.
EXPRESSION_BUILTINS: Dict[str, Any] = {
    "len": len,
    "abs": abs,
    "min": min,
    "max": max,
    "int": int,
    "bool": bool,
    "bytes": bytes,
    "LittleEndian": A.Endian.LITTLE,
    "BigEndian": A.Endian.BIG,
    "NativeEndian": A.Endian.NATIVE,
}

_RUNTIME_NAMES: Dict[str, Any] = {
    "_bm_get_int": get_int,
    "_bm_get_bytes": get_bytes,
    "_bm_sub": sub,
    "_bm_Matched": Matched,
    "_bm_int_div": int_div,
    "_bm_int_mod": int_mod,
    "_bm_lsr": lsr,
    "_bm_resolve_endian": resolve_endian,
}

_INFIX: Dict[A.BinOp, str] = {
    A.BinOp.OR: "or",
    A.BinOp.AND: "and",
    A.BinOp.EQ: "==",
    A.BinOp.NE: "!=",
    A.BinOp.LT: "<",
    A.BinOp.LE: "<=",
    A.BinOp.GT: ">",
    A.BinOp.GE: ">=",
    A.BinOp.LOR: "|",
    A.BinOp.LXOR: "^",
    A.BinOp.LAND: "&",
    A.BinOp.LSL: "<<",
    A.BinOp.ASR: ">>",
    A.BinOp.ADD: "+",
    A.BinOp.SUB: "-",
    A.BinOp.MUL: "*",
}

_HELPER_CALLS: Dict[A.BinOp, str] = {
    A.BinOp.DIV: "_bm_int_div",
    A.BinOp.MOD: "_bm_int_mod",
    A.BinOp.LSR: "_bm_lsr",
}

_UNARY: Dict[A.UnaryOpKind, str] = {
    A.UnaryOpKind.NEG: "-",
    A.UnaryOpKind.LNOT: "~",
    A.UnaryOpKind.NOT: "not ",
}


# ═══════════════════════════════════════════════════════════════════════════
# CODE EMITTER
# ═══════════════════════════════════════════════════════════════════════════

class CodeEmitter:
    """Low-level code emission with indentation management."""

    def __init__(self, indent_str: str = "    ") -> None:
        self._buffer = StringIO()
        self._indent_str = indent_str
        self._indent_level = 0

    def emit(self, code: str) -> None:
        """Emit a line of code at the current indentation."""
        if code.strip():
            self._buffer.write(self._indent_str * self._indent_level)
            self._buffer.write(code)
        self._buffer.write("\n")

    def emit_lines(self, lines: Sequence[str]) -> None:
        for line in lines:
            self.emit(line)

    def emit_blank(self, count: int = 1) -> None:
        for _ in range(count):
            self._buffer.write("\n")

    def emit_comment(self, text: str) -> None:
        for line in text.split("\n"):
            self.emit(f"# {line}")

    def indent(self) -> None:
        self._indent_level += 1

    def dedent(self) -> None:
        self._indent_level = max(0, self._indent_level - 1)

    def block(self, header: str) -> "CodeEmitter._BlockContext":
        """Context manager for indented blocks."""
        return self._BlockContext(self, header)

    class _BlockContext:

        def __init__(self, emitter: "CodeEmitter", header: str) -> None:
            self._emitter = emitter
            self._header = header

        def __enter__(self) -> "CodeEmitter":
            self._emitter.emit(self._header)
            self._emitter.indent()
            return self._emitter

        def __exit__(self, *args: Any) -> None:
            self._emitter.dedent()

    def get_code(self) -> str:
        return self._buffer.getvalue()

    @staticmethod
    def make_identifier(name: str) -> str:
        """Convert a bound name to a Python local that cannot clash with
        generated names or keywords."""
        result = re.sub(r"[^a-zA-Z0-9_]", "_", name)
        if result and result[0].isdigit():
            result = "_" + result
        if result.startswith("_bm_"):
            result = "_user" + result
        if keyword.iskeyword(result):
            result = result + "_"
        return result or "_unnamed"


# ═══════════════════════════════════════════════════════════════════════════
# COMPILATION STATE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Cursor:
    """Python expressions for the current bit offset and remaining length."""

    off: str
    len: str


@dataclass
class CompilationContext:
    """State shared by the compilers while generating one match."""

    config: MatchConfig = field(default_factory=MatchConfig)
    env_names: FrozenSet[str] = frozenset()
    # objects the generated module needs besides the runtime helpers
    globals: Dict[str, Any] = field(default_factory=dict)
    # bound name -> Python local, for the case being generated
    scope: Dict[str, str] = field(default_factory=dict)
    field_text: str = ""
    uses_end: bool = False
    _counter: int = 0

    def fresh(self, prefix: str) -> str:
        """Generate a fresh variable name."""
        self._counter += 1
        return f"_bm_{prefix}_{self._counter}"

    def begin_case(self) -> None:
        self.scope = {}
        self.uses_end = False

    def bind(self, name: str) -> str:
        local = CodeEmitter.make_identifier(name)
        self.scope[name] = local
        return local


# ═══════════════════════════════════════════════════════════════════════════
# EXPRESSION COMPILER
# ═══════════════════════════════════════════════════════════════════════════

class ExpressionCompiler(ASTVisitor):
    """Compile bitmatch expressions to Python expressions."""

    def __init__(self, context: CompilationContext) -> None:
        self.ctx = context

    def compile(self, expr: A.Expr) -> str:
        return self.visit(expr)

    def _resolve(self, name: str) -> str:
        if name in self.ctx.scope:
            return self.ctx.scope[name]
        if name in self.ctx.env_names or name in EXPRESSION_BUILTINS:
            return name
        raise UnboundNameError(
            name,
            self.ctx.field_text,
            available=list(self.ctx.scope) + sorted(self.ctx.env_names),
        )

    def visit_int_lit(self, node: A.IntLit) -> str:
        return repr(node.value)

    def visit_str_lit(self, node: A.StrLit) -> str:
        return repr(node.value)

    def visit_bool_lit(self, node: A.BoolLit) -> str:
        return "True" if node.value else "False"

    def visit_name(self, node: A.Name) -> str:
        return self._resolve(node.name)

    def visit_binary_op(self, node: A.BinaryOp) -> str:
        left = self.visit(node.left)
        right = self.visit(node.right)
        helper = _HELPER_CALLS.get(node.op)
        if helper is not None:
            return f"{helper}({left}, {right})"
        return f"({left} {_INFIX[node.op]} {right})"

    def visit_unary_op(self, node: A.UnaryOp) -> str:
        return f"({_UNARY[node.op]}{self.visit(node.operand)})"

    def visit_call(self, node: A.Call) -> str:
        func = self._resolve(node.func)
        args = ", ".join(self.visit(arg) for arg in node.args)
        return f"{func}({args})"

    def visit_tuple_expr(self, node: A.TupleExpr) -> str:
        items = [self.visit(item) for item in node.items]
        if len(items) == 1:
            return f"({items[0]},)"
        return f"({', '.join(items)})"

    def generic_visit(self, node: Any, *args: Any) -> str:
        raise CodeGenError(f"Cannot compile expression of type {type(node).__name__}")


# ═══════════════════════════════════════════════════════════════════════════
# PATTERN COMPILER
# ═══════════════════════════════════════════════════════════════════════════

class PatternCompiler(ASTVisitor):
    """Compile a field pattern into a condition on the extracted value.

    ``compile`` returns the Python condition (``None`` when the pattern
    accepts everything); bound names come from ``A.pattern_names``.
    """

    def __init__(self, context: CompilationContext, value_type: A.FieldType) -> None:
        self.ctx = context
        self.value_type = value_type

    def compile(self, pattern: A.Pattern, target: str) -> Optional[str]:
        return self.visit(pattern, target)

    def _literal(self, value: Any) -> str:
        expected = bytes if self.value_type is A.FieldType.STRING else int
        if not isinstance(value, expected):
            raise ConfigurationError(
                f"Pattern constant {value!r} cannot match a "
                f"{self.value_type.value} field {self.ctx.field_text!r}"
            )
        return repr(value)

    def visit_wildcard_pattern(self, node: A.WildcardPattern, target: str) -> None:
        return None

    def visit_var_pattern(self, node: A.VarPattern, target: str) -> None:
        return None

    def visit_literal_pattern(self, node: A.LiteralPattern, target: str) -> str:
        return f"{target} == {self._literal(node.value)}"

    def visit_or_pattern(self, node: A.OrPattern, target: str) -> str:
        values = ", ".join(self._literal(alt.value) for alt in node.alternatives)
        return f"{target} in ({values})"

    def visit_alias_pattern(self, node: A.AliasPattern, target: str) -> Optional[str]:
        return self.visit(node.pattern, target)


# ═══════════════════════════════════════════════════════════════════════════
# FIELD GENERATOR
# ═══════════════════════════════════════════════════════════════════════════

Continuation = Callable[[Cursor], List[str]]

_FAIL = "    return None"


class FieldGenerator:
    """Emit the code for one field and chain the continuation."""

    def __init__(self, context: CompilationContext) -> None:
        self.ctx = context
        self.expressions = ExpressionCompiler(context)

    def generate(self, cursor: Cursor, field: A.Field, continuation: Continuation) -> List[str]:
        spec = field.spec
        self.ctx.field_text = field.text
        if spec is None or spec.value_type is None:
            raise MissingTypeError(field.text)

        static = evaluate(field.length)
        validate_field_length(spec.value_type, static, field.text)

        if spec.value_type is not A.FieldType.INT and (
            spec.value_type is A.FieldType.BITSTRING or static == -1
        ):
            if not isinstance(field.pattern, (A.WildcardPattern, A.VarPattern)):
                raise InvalidBitstringPatternError(A.to_text(field.pattern), field.text)

        lines = [f"# {' '.join(field.text.split())}"]
        if static == -1:
            out, value = self._rest(cursor, field, lines)
        elif spec.value_type is A.FieldType.INT:
            out, value = self._int(cursor, field, static, lines)
        elif spec.value_type is A.FieldType.STRING:
            out, value = self._string(cursor, field, static, lines)
        else:
            out, value = self._bitstring(cursor, field, static, lines)

        if value is not None:
            self._bind_and_test(field, value, lines)
        if spec.offset_override is not None:
            out = self._override_offset(spec.offset_override, lines)

        return lines + continuation(out)

    # ── lengths ─────────────────────────────────────────────────────────

    def _dynamic_length(self, cursor: Cursor, field: A.Field, lines: List[str]) -> str:
        logger.debug("%r: length depends on %s", field.text, ", ".join(free_names(field.length)))
        n = self.ctx.fresh("n")
        lines.append(f"{n} = {self.expressions.compile(field.length)}")
        return n

    def _advance(self, cursor: Cursor, n: str, lines: List[str]) -> Cursor:
        out = Cursor(self.ctx.fresh("off"), self.ctx.fresh("len"))
        lines.append(f"{out.off} = {cursor.off} + {n}")
        lines.append(f"{out.len} = {cursor.len} - {n}")
        return out

    # ── field kinds ─────────────────────────────────────────────────────

    @staticmethod
    def _keeps_value(field: A.Field) -> bool:
        """A ``_`` field is still extracted when ``bind`` or ``check`` reads it."""
        spec = field.spec
        return (not isinstance(field.pattern, A.WildcardPattern)
                or spec.bind is not None or spec.check is not None)

    def _rest(self, cursor: Cursor, field: A.Field, lines: List[str]) -> Tuple[Cursor, Optional[str]]:
        """Length -1: the field takes everything that is left."""
        value = None
        if self._keeps_value(field):
            value = self.ctx.fresh("v")
            if field.spec.value_type is A.FieldType.STRING:
                lines.append(f"if {cursor.len} & 7:")
                lines.append(_FAIL)
                lines.append(f"{value} = _bm_get_bytes(_bm_data, {cursor.off}, {cursor.len} >> 3)")
            else:
                lines.append(f"{value} = _bm_sub(_bm_data, {cursor.off}, {cursor.len})")
        out = Cursor(self.ctx.fresh("off"), self.ctx.fresh("len"))
        lines.append(f"{out.off} = {cursor.off} + {cursor.len}")
        lines.append(f"{out.len} = 0")
        return out, value

    def _int(self, cursor: Cursor, field: A.Field, static: Optional[int],
             lines: List[str]) -> Tuple[Cursor, str]:
        if static is None:
            n = self._dynamic_length(cursor, field, lines)
            lines.append(f"if not 1 <= {n} <= 64 or {n} > {cursor.len}:")
        else:
            n = str(static)
            lines.append(f"if {cursor.len} < {n}:")
        lines.append(_FAIL)

        spec = field.spec
        value = self.ctx.fresh("v")
        lines.append(
            f"{value} = _bm_get_int(_bm_data, {cursor.off}, {n}, "
            f"{spec.signed}, {self._endian(spec.endian)})"
        )
        return self._advance(cursor, n, lines), value

    def _string(self, cursor: Cursor, field: A.Field, static: Optional[int],
                lines: List[str]) -> Tuple[Cursor, str]:
        if static is None:
            n = self._dynamic_length(cursor, field, lines)
            lines.append(f"if {n} == -1:")
            lines.append(f"    {n} = {cursor.len}")
            lines.append(f"if {n} < 0 or {n} & 7 or {n} > {cursor.len}:")
            nbytes = f"{n} >> 3"
        else:
            n = str(static)
            lines.append(f"if {cursor.len} < {n}:")
            nbytes = str(static // 8)
        lines.append(_FAIL)

        value = self.ctx.fresh("v")
        lines.append(f"{value} = _bm_get_bytes(_bm_data, {cursor.off}, {nbytes})")
        return self._advance(cursor, n, lines), value

    def _bitstring(self, cursor: Cursor, field: A.Field, static: Optional[int],
                   lines: List[str]) -> Tuple[Cursor, Optional[str]]:
        if static is None:
            n = self._dynamic_length(cursor, field, lines)
            lines.append(f"if {n} == -1:")
            lines.append(f"    {n} = {cursor.len}")
            lines.append(f"if {n} < 0 or {n} > {cursor.len}:")
        else:
            n = str(static)
            lines.append(f"if {cursor.len} < {n}:")
        lines.append(_FAIL)

        value = None
        if self._keeps_value(field):
            value = self.ctx.fresh("v")
            lines.append(f"{value} = _bm_sub(_bm_data, {cursor.off}, {n})")
        return self._advance(cursor, n, lines), value

    # ── qualifiers ──────────────────────────────────────────────────────

    def _endian(self, endian: Optional[A.Endianness]) -> str:
        if isinstance(endian, A.ReferredEndian):
            expr = self.expressions.compile(endian.expr)
            return f"_bm_resolve_endian({expr}, {self.ctx.config.native_endian!r})"
        if endian is A.Endian.NATIVE:
            return repr(self.ctx.config.native_endian)
        if endian is A.Endian.LITTLE:
            return "'little'"
        return "'big'"

    def _bind_and_test(self, field: A.Field, value: str, lines: List[str]) -> None:
        """Bind pattern names, apply ``bind``, then test pattern and ``check``."""
        spec = field.spec
        locals_ = [self.ctx.bind(name) for name in A.pattern_names(field.pattern)]
        for local in locals_:
            lines.append(f"{local} = {value}")

        if spec.bind is not None:
            lines.append(f"{value} = {self.expressions.compile(spec.bind)}")
            for local in locals_:
                lines.append(f"{local} = {value}")

        conditions = []
        test = PatternCompiler(self.ctx, spec.value_type).compile(field.pattern, value)
        if test is not None:
            conditions.append(test)
        if spec.check is not None:
            conditions.append(self.expressions.compile(spec.check))
        if conditions:
            lines.append(f"if not ({' and '.join(conditions)}):")
            lines.append(_FAIL)

    def _override_offset(self, expr: A.Expr, lines: List[str]) -> Cursor:
        """``set_offset_at(e)``: continue at bit *e* of the subject."""
        self.ctx.uses_end = True
        out = Cursor(self.ctx.fresh("off"), self.ctx.fresh("len"))
        lines.append(f"{out.off} = _bm_origin + {self.expressions.compile(expr)}")
        lines.append(f"if not _bm_origin <= {out.off} <= _bm_end:")
        lines.append(_FAIL)
        lines.append(f"{out.len} = _bm_end - {out.off}")
        return out


# ═══════════════════════════════════════════════════════════════════════════
# CASE GENERATOR
# ═══════════════════════════════════════════════════════════════════════════

def _body_arguments(body: Callable[..., Any], bound: Sequence[str], case_text: str) -> List[str]:
    """The bound names a callable body accepts as keyword arguments."""
    try:
        signature = inspect.signature(body)
    except (TypeError, ValueError):
        return list(bound)

    params = list(signature.parameters.values())
    if any(p.kind is p.VAR_KEYWORD for p in params):
        return list(bound)

    accepted = []
    for p in params:
        if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name in bound:
            accepted.append(p.name)
        elif p.default is p.empty and p.kind is not p.VAR_POSITIONAL:
            raise BodySignatureError(p.name, case_text)
    return accepted


class CaseGenerator:
    """Generate the function for one case."""

    def __init__(self, context: CompilationContext) -> None:
        self.ctx = context
        self.fields = FieldGenerator(context)
        self.expressions = ExpressionCompiler(context)

    def generate(self, cursor: Cursor, case: A.Case) -> List[str]:
        """Lines that match *case* starting at *cursor* and return the body
        value wrapped in ``Matched``."""
        fields = self._effective_fields(case)

        def terminal(cursor: Cursor) -> List[str]:
            return self._terminal(case)

        continuation: Continuation = terminal
        for f in reversed(fields):
            continuation = functools.partial(
                self.fields.generate, field=f, continuation=continuation
            )
        return continuation(cursor)

    def emit_function(self, case: A.Case) -> Tuple[str, List[str]]:
        """Return the name and source lines of the function for *case*."""
        self.ctx.begin_case()
        body = self.generate(Cursor("_bm_origin", "_bm_total"), case)

        name = f"_bm_case_{case.index}"
        emitter = CodeEmitter()
        with emitter.block(f"def {name}(_bm_data, _bm_origin, _bm_total):"):
            emitter.emit(f"# case {case.index}: {case.fields_text!r}")
            if self.ctx.uses_end:
                emitter.emit("_bm_end = _bm_origin + _bm_total")
            emitter.emit_lines(body)
        return name, emitter.get_code().splitlines()

    def _effective_fields(self, case: A.Case) -> Sequence[A.Field]:
        """Fields up to and excluding the first lone ``_``."""
        for position, f in enumerate(case.fields):
            if f.is_rest:
                if position + 1 < len(case.fields):
                    logger.warning(
                        "case %d %r: fields after '_' are ignored",
                        case.index, case.fields_text,
                    )
                return case.fields[:position]
        return case.fields

    def _terminal(self, case: A.Case) -> List[str]:
        self.ctx.field_text = case.fields_text
        if not callable(case.body):
            return [f"return _bm_Matched({self.expressions.compile(case.body)})"]

        body_name = f"_bm_body_{case.index}"
        self.ctx.globals[body_name] = case.body
        names = _body_arguments(case.body, list(self.ctx.scope), case.fields_text)
        plain = [n for n in names if self.ctx.scope[n] == n]
        renamed = [n for n in names if self.ctx.scope[n] != n]
        args = [f"{n}={n}" for n in plain]
        if renamed:
            pairs = ", ".join(f"{n!r}: {self.ctx.scope[n]}" for n in renamed)
            args.append(f"**{{{pairs}}}")
        return [f"return _bm_Matched({body_name}({', '.join(args)}))"]


# ═══════════════════════════════════════════════════════════════════════════
# MATCH GENERATOR
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class GeneratedMatcher:
    """Container for generated source and the objects it refers to."""

    code: str
    namespace: Dict[str, Any]
    case_names: List[str]

    def load(self, filename: str = "<bitmatch>") -> Tuple[Callable[..., Any], ...]:
        """Execute the code and return the case functions in order."""
        namespace = dict(self.namespace)
        exec(compile(self.code, filename, "exec"), namespace)
        return namespace["_BM_CASES"]

    def write_to_file(self, path: Union[str, "os.PathLike[str]"]) -> None:
        """Write the generated module, creating parent directories."""
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.code)


class MatchGenerator:
    """Generate a module with one function per case."""

    def __init__(
        self,
        config: Optional[MatchConfig] = None,
        env: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.config = config or MatchConfig()
        self.env = dict(env or {})
        for name in self.env:
            if not name.isidentifier() or keyword.iskeyword(name) or name.startswith("_bm_"):
                raise ConfigurationError(f"Environment name {name!r} is not usable in expressions")
        self.ctx = CompilationContext(config=self.config, env_names=frozenset(self.env))

    def generate(self, cases: Sequence[A.Case]) -> GeneratedMatcher:
        if not cases:
            raise ConfigurationError("Empty case list")

        emitter = CodeEmitter()
        emitter.emit_comment("Generated by bitmatch")
        emitter.emit_blank()

        generator = CaseGenerator(self.ctx)
        names = []
        for case in cases:
            name, lines = generator.emit_function(case)
            names.append(name)
            emitter.emit_lines(lines)
            emitter.emit_blank()

        emitter.emit(f"_BM_CASES = ({', '.join(names)},)")
        code = emitter.get_code()
        logger.debug("generated matcher:\n%s", code)

        namespace: Dict[str, Any] = dict(EXPRESSION_BUILTINS)
        namespace.update(_RUNTIME_NAMES)
        namespace.update(self.env)
        namespace.update(self.ctx.globals)
        return GeneratedMatcher(code=code, namespace=namespace, case_names=names)


def generate(
    cases: Sequence[A.Case],
    config: Optional[MatchConfig] = None,
    env: Optional[Mapping[str, Any]] = None,
) -> GeneratedMatcher:
    """Generate Python source for *cases*."""
    return MatchGenerator(config, env).generate(cases)
