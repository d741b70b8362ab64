"""
bitmatch/qualifiers.py
======================

Qualifier resolution: turns the third part of a field descriptor
(``int, signed, littleendian, check(x > 0)``) into a :class:`FieldSpec`.

Resolution is a left-to-right fold over the qualifiers.  Each qualifier
writes exactly one attribute of the field spec; writing an attribute twice is an
error even when both qualifiers agree (``int, int``).

Vocabulary
----------
======================  =================================
``int`` ``string``      value type
``bitstring``
``signed``              sign
``unsigned``
``littleendian``        endianness
``bigendian``
``nativeendian``
``endian(e)``           endianness decided at runtime by *e*
``bind(e)``             replace the extracted value by *e*
``check(e)``            guard; the field fails unless *e* holds
``set_offset_at(e)``    continue matching at bit offset *e*
======================  =================================
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Tuple, Union

from bitmatch import ast as A
from bitmatch.errors import DuplicateAttributeError, UnknownQualifierError

logger = logging.getLogger(__name__)

__all__ = [
    "resolve",
    "resolve_qualifier",
    "qualifier_text",
]

# token -> (attribute, value)
_TOKENS: Dict[str, Tuple[str, object]] = {
    "int": ("value_type", A.FieldType.INT),
    "string": ("value_type", A.FieldType.STRING),
    "bitstring": ("value_type", A.FieldType.BITSTRING),
    "signed": ("sign", A.Sign.SIGNED),
    "unsigned": ("sign", A.Sign.UNSIGNED),
    "littleendian": ("endian", A.Endian.LITTLE),
    "bigendian": ("endian", A.Endian.BIG),
    "nativeendian": ("endian", A.Endian.NATIVE),
}

# function-style qualifier -> (attribute, wrap argument)
_FUNCTIONS: Dict[str, Tuple[str, Callable[[A.Expr], object]]] = {
    "endian": ("endian", A.ReferredEndian),
    "bind": ("bind", lambda e: e),
    "check": ("check", lambda e: e),
    "set_offset_at": ("offset_override", lambda e: e),
}

_ATTRIBUTE_LABELS = {
    "value_type": "Value type",
    "sign": "Signedness",
    "endian": "Endianness",
    "check": "Check expression",
    "bind": "Bind expression",
    "offset_override": "Offset expression",
}


def qualifier_text(expr: A.Expr) -> str:
    """Readable rendering of a qualifier for error messages."""
    if isinstance(expr, A.TupleExpr):
        return ", ".join(qualifier_text(item) for item in expr.items)
    return A.to_text(expr)


def _write(spec: A.FieldSpec, attribute: str, value: object, qualifier: A.Expr) -> A.FieldSpec:
    try:
        return spec.set(attribute, value)
    except KeyError:
        raise DuplicateAttributeError(
            _ATTRIBUTE_LABELS[attribute], qualifier_text(qualifier)
        ) from None


def resolve_qualifier(spec: A.FieldSpec, qualifier: A.Expr) -> A.FieldSpec:
    """Apply one qualifier (or a tuple of them) to *spec*."""
    if isinstance(qualifier, A.TupleExpr):
        for item in qualifier.items:
            spec = resolve_qualifier(spec, item)
        return spec

    if isinstance(qualifier, A.Name) and qualifier.name in _TOKENS:
        attribute, value = _TOKENS[qualifier.name]
        return _write(spec, attribute, value, qualifier)

    if (
        isinstance(qualifier, A.Call)
        and qualifier.func in _FUNCTIONS
        and len(qualifier.args) == 1
    ):
        attribute, wrap = _FUNCTIONS[qualifier.func]
        return _write(spec, attribute, wrap(qualifier.args[0]), qualifier)

    raise UnknownQualifierError(qualifier_text(qualifier))


def resolve(
    qualifiers: Union[A.Expr, str],
    spec: A.FieldSpec = A.EMPTY_SPEC,
) -> A.FieldSpec:
    """Resolve a qualifier expression into a :class:`FieldSpec`.

    *qualifiers* may be an already parsed expression or qualifier text such
    as ``"int, signed"``.  Attributes no qualifier mentions stay unset; the
    caller decides on defaults.
    """
    if isinstance(qualifiers, str):
        from bitmatch.parser import parse_qualifiers

        qualifiers = parse_qualifiers(qualifiers)
    resolved = resolve_qualifier(spec, qualifiers)
    logger.debug("resolved qualifiers %s -> %r", qualifier_text(qualifiers), resolved)
    return resolved
