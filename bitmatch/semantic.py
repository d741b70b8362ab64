"""
bitmatch/semantic.py
====================

Compile-time analysis of field descriptors.

* ``StaticEvaluator`` / ``evaluate`` – fold an expression to an integer when
  it is made of integer literals and arithmetic only; ``None`` otherwise.
* ``validate_field_length`` – reject lengths that can never be valid for the
  field's type.  Lengths the evaluator cannot fold are checked at runtime.
"""

from __future__ import annotations

import logging
import operator
from typing import Callable, Dict, Optional

from bitmatch import ast as A
from bitmatch.errors import LengthRangeError, MissingTypeError
from bitmatch.runtime import int_div, int_mod, lsr
from bitmatch.visitor import ASTVisitor

logger = logging.getLogger(__name__)

__all__ = [
    "StaticEvaluator",
    "evaluate",
    "validate_field_length",
    "INT_LENGTH_RULE",
    "STRING_LENGTH_RULE",
    "BITSTRING_LENGTH_RULE",
]

INT_LENGTH_RULE = "length of int field must be [1..64]"
STRING_LENGTH_RULE = "length of string must be > 0 and multiple of 8, or the special value -1"
BITSTRING_LENGTH_RULE = "length of bitstring must be >= 0 or the special value -1"


def _shift_left(a: int, b: int) -> int:
    if b < 0:
        raise ValueError("negative shift count")
    return a << b


def _shift_right(a: int, b: int) -> int:
    if b < 0:
        raise ValueError("negative shift count")
    return a >> b


def _logical_shift_right(a: int, b: int) -> int:
    if b < 0:
        raise ValueError("negative shift count")
    return lsr(a, b)


_FOLDABLE: Dict[A.BinOp, Callable[[int, int], int]] = {
    A.BinOp.ADD: operator.add,
    A.BinOp.SUB: operator.sub,
    A.BinOp.MUL: operator.mul,
    A.BinOp.DIV: int_div,
    A.BinOp.MOD: int_mod,
    A.BinOp.LAND: operator.and_,
    A.BinOp.LOR: operator.or_,
    A.BinOp.LXOR: operator.xor,
    A.BinOp.LSL: _shift_left,
    A.BinOp.LSR: _logical_shift_right,
    A.BinOp.ASR: _shift_right,
}


class StaticEvaluator(ASTVisitor):
    """Constant folding over integer literals.

    Any free name, non-integer literal, call, tuple or operator outside the
    arithmetic set makes the whole expression unknown (``None``).  Division
    by zero and negative shift counts are unknown too; they surface when the
    generated code runs.
    """

    def visit_int_lit(self, node: A.IntLit) -> Optional[int]:
        return node.value

    def visit_unary_op(self, node: A.UnaryOp) -> Optional[int]:
        value = self.visit(node.operand)
        if value is None:
            return None
        if node.op is A.UnaryOpKind.NEG:
            return -value
        if node.op is A.UnaryOpKind.LNOT:
            return ~value
        return None

    def visit_binary_op(self, node: A.BinaryOp) -> Optional[int]:
        fold = _FOLDABLE.get(node.op)
        if fold is None:
            return None
        left = self.visit(node.left)
        if left is None:
            return None
        right = self.visit(node.right)
        if right is None:
            return None
        try:
            return fold(left, right)
        except (ZeroDivisionError, ValueError):
            return None


def evaluate(expr: A.Expr) -> Optional[int]:
    """Fold *expr* to an integer, or ``None`` when it is not constant."""
    return StaticEvaluator().visit(expr)


def validate_field_length(
    value_type: Optional[A.FieldType],
    length: Optional[int],
    field_text: str = "",
) -> None:
    """Check a statically known *length* against *value_type*.

    ``length=None`` (not statically known) always passes.
    """
    if value_type is None:
        raise MissingTypeError(field_text)
    if length is None:
        return
    if value_type is A.FieldType.INT:
        if not 1 <= length <= 64:
            raise LengthRangeError(INT_LENGTH_RULE, length, field_text)
    elif value_type is A.FieldType.STRING:
        if length != -1 and (length <= 0 or length % 8 != 0):
            raise LengthRangeError(STRING_LENGTH_RULE, length, field_text)
    elif value_type is A.FieldType.BITSTRING:
        if length < -1:
            raise LengthRangeError(BITSTRING_LENGTH_RULE, length, field_text)
    logger.debug("%s field length %d accepted", value_type.value, length)
