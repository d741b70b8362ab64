"""
bitmatch/visitor.py
===================

Visitor infrastructure for bitmatch expressions and patterns.

Provides:
- ``ASTVisitor`` - base with a ``visit_X`` method per node type
- ``NameCollector`` - free names referenced by an expression
"""

from __future__ import annotations

from typing import Any, List

from bitmatch import ast as A

__all__ = [
    "ASTVisitor",
    "NameCollector",
    "free_names",
]


class ASTVisitor:
    """Base class for bitmatch AST visitors.

    Each ``visit_X`` method corresponds to a node type.  The defaults call
    ``generic_visit``, which returns None.  Extra positional arguments given
    to :meth:`visit` are forwarded to the handler.
    """

    def visit(self, node: Any, *args: Any) -> Any:
        """Dispatch to the appropriate visit method."""
        return A.dispatch(node, self, *args)

    def generic_visit(self, node: Any, *args: Any) -> Any:
        return None

    # --- Expressions ---

    def visit_int_lit(self, node: A.IntLit, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_str_lit(self, node: A.StrLit, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_bool_lit(self, node: A.BoolLit, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_name(self, node: A.Name, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_binary_op(self, node: A.BinaryOp, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_unary_op(self, node: A.UnaryOp, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_call(self, node: A.Call, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_tuple_expr(self, node: A.TupleExpr, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    # --- Patterns ---

    def visit_wildcard_pattern(self, node: A.WildcardPattern, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_var_pattern(self, node: A.VarPattern, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_literal_pattern(self, node: A.LiteralPattern, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_or_pattern(self, node: A.OrPattern, *args: Any) -> Any:
        return self.generic_visit(node, *args)

    def visit_alias_pattern(self, node: A.AliasPattern, *args: Any) -> Any:
        return self.generic_visit(node, *args)


class NameCollector(ASTVisitor):
    """Collect every ``Name`` and called function in an expression, in
    order of first appearance."""

    def __init__(self) -> None:
        self.names: List[str] = []

    def _add(self, name: str) -> None:
        if name not in self.names:
            self.names.append(name)

    def visit_name(self, node: A.Name) -> None:
        self._add(node.name)

    def visit_binary_op(self, node: A.BinaryOp) -> None:
        self.visit(node.left)
        self.visit(node.right)

    def visit_unary_op(self, node: A.UnaryOp) -> None:
        self.visit(node.operand)

    def visit_call(self, node: A.Call) -> None:
        self._add(node.func)
        for arg in node.args:
            self.visit(arg)

    def visit_tuple_expr(self, node: A.TupleExpr) -> None:
        for item in node.items:
            self.visit(item)


def free_names(expr: A.Expr) -> List[str]:
    collector = NameCollector()
    collector.visit(expr)
    return collector.names
