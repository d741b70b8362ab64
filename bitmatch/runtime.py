"""
bitmatch/runtime.py
===================

Runtime support for compiled matchers.

This module provides:

* ``MatchConfig``     – configuration dataclass for compiling matchers
* ``DispatchState``   – RUNNING / MATCHED / EXHAUSTED
* ``Matched``         – the value a case function returns on success
* ``MatchResult``     – outcome of running a matcher over one subject
* ``dispatch``        – runs case functions in order, first match wins
* ``to_cursor``       – normalises a subject to ``(data, offset, length)``
* integer helpers     – ``int_div``, ``int_mod``, ``lsr``, shared by the
                        static evaluator and generated code so both agree
* ``resolve_endian``  – runtime byte order for ``endian(expr)`` fields
"""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from bitmatch.bitbuffer import Bitstring
from bitmatch import ast as A

__all__ = [
    "MatchConfig",
    "DispatchState",
    "Matched",
    "MatchResult",
    "CaseFunction",
    "dispatch",
    "to_cursor",
    "int_div",
    "int_mod",
    "lsr",
    "resolve_endian",
    "INT_BITS",
]

#: Width of the integers ``lsr`` treats as unsigned words.
INT_BITS = 63


# ===================================================================== #
#  Configuration                                                         #
# ===================================================================== #

@dataclass
class MatchConfig:
    """Tuning knobs for compiling matchers."""

    native_endian: str = sys.byteorder
    implicit_int: bool = True
    filename: str = "<bitmatch>"

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if self.native_endian not in ("big", "little"):
            problems.append("native_endian must be 'big' or 'little'")
        if not self.filename:
            problems.append("filename must not be empty")
        return problems


# ===================================================================== #
#  Integer semantics                                                     #
# ===================================================================== #

def int_div(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def int_mod(a: int, b: int) -> int:
    """Remainder with the sign of the dividend (``a == b * int_div(a, b) + r``)."""
    return a - b * int_div(a, b)


def lsr(a: int, b: int) -> int:
    """Logical shift right on ``INT_BITS``-bit words."""
    return (a & ((1 << INT_BITS) - 1)) >> b


def resolve_endian(value: Any, native: str = sys.byteorder) -> str:
    """Byte order named by a runtime ``endian(expr)`` value.

    Accepts ``Endian`` members and the strings ``big``, ``little`` and
    ``native`` (as ``str`` or ``bytes``).
    """
    if isinstance(value, A.Endian):
        value = value.value
    elif isinstance(value, bytes):
        value = value.decode("ascii", "replace")
    if value == "native":
        return native
    if value in ("big", "little"):
        return value
    raise ValueError(f"not a byte order: {value!r}")


# ===================================================================== #
#  Dispatch                                                              #
# ===================================================================== #

class DispatchState(enum.Enum):
    """Progress of a dispatch.  Results only ever carry MATCHED or EXHAUSTED."""

    RUNNING = "running"
    MATCHED = "matched"
    EXHAUSTED = "exhausted"


class Matched:
    """Returned by a case function whose fields all accepted the input."""

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Matched({self.value!r})"


#: ``(data, origin, total) -> Matched | None``
CaseFunction = Callable[[bytes, int, int], Optional[Matched]]


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one dispatch."""

    state: DispatchState
    value: Any = None
    case_index: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.state is DispatchState.MATCHED


def to_cursor(subject: Any) -> Tuple[bytes, int, int]:
    """Normalise a match subject to ``(data, bit_offset, bit_length)``."""
    if isinstance(subject, Bitstring):
        return subject.cursor
    if isinstance(subject, (bytes, bytearray, memoryview)):
        data = bytes(subject)
        return data, 0, len(data) * 8
    if isinstance(subject, tuple) and len(subject) == 3:
        return Bitstring(*subject).cursor
    raise TypeError(
        f"cannot match on {type(subject).__name__}; expected bytes, "
        f"Bitstring or a (data, offset, length) tuple"
    )


def dispatch(cases: Sequence[CaseFunction], subject: Any) -> MatchResult:
    """Run *cases* in order against *subject*; the first success wins.

    No case after the matching one is evaluated.  Exhausting the list is
    reported through the result, never raised.
    """
    data, origin, total = to_cursor(subject)
    state = DispatchState.RUNNING
    index = 0
    while state is DispatchState.RUNNING:
        if index == len(cases):
            state = DispatchState.EXHAUSTED
            continue
        outcome = cases[index](data, origin, total)
        if outcome is not None:
            return MatchResult(DispatchState.MATCHED, outcome.value, index)
        index += 1
    return MatchResult(state)
