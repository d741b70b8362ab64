"""
bitmatch/matcher.py
===================

Public entry points.

A :class:`Matcher` is built once from a list of cases and can then be
applied to any number of subjects.  Building it parses every field string,
generates one Python function per case and compiles the result, so all
compile-time errors are raised from the constructor.

Usage::

    from bitmatch import Matcher, case

    m = Matcher([
        case("version:4, ihl:4, tos:8, length:16", lambda version, length: (version, length)),
        case("_", "-1"),
    ])
    m(packet)          # -> (4, 1500)
    m.try_match(b"")   # MatchResult(state=EXHAUSTED, ...)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from bitmatch import ast as A
from bitmatch.codegen import GeneratedMatcher, MatchGenerator
from bitmatch.errors import ConfigurationError, NoMatchError
from bitmatch.parser import parse_case, parse_match_source
from bitmatch.runtime import MatchConfig, MatchResult, dispatch

logger = logging.getLogger(__name__)

__all__ = [
    "case",
    "Matcher",
    "compile_match",
    "bitmatch",
    "load_match_file",
]

CaseLike = Union[A.Case, Tuple[str, Any]]


def case(fields: str, body: Any) -> Tuple[str, Any]:
    """Pair a field string with its body, e.g. ``case("x:8", "x + 1")``."""
    return (fields, body)


def _normalize_cases(cases: Sequence[CaseLike], implicit_int: bool) -> list[A.Case]:
    normalized = []
    for index, item in enumerate(cases):
        if isinstance(item, A.Case):
            normalized.append(A.Case(item.fields_text, item.fields, item.body, index))
            continue
        if not isinstance(item, tuple) or len(item) != 2:
            raise ConfigurationError(
                f"Case {index} must be a (fields, body) pair, got {type(item).__name__}"
            )
        fields, body = item
        normalized.append(parse_case(fields, body, index, implicit_int))
    return normalized


class Matcher:
    """Compiled, reusable match over bitstrings.

    Parameters
    ----------
    cases:
        ``(fields, body)`` pairs (see :func:`case`) or parsed
        :class:`~bitmatch.ast.Case` objects, tried in order.
    env:
        Names besides the bound fields that expressions may refer to:
        constants, helper functions or endianness values.
    config:
        :class:`~bitmatch.runtime.MatchConfig`; defaults apply when omitted.
    """

    def __init__(
        self,
        cases: Sequence[CaseLike],
        env: Optional[Mapping[str, Any]] = None,
        config: Optional[MatchConfig] = None,
    ) -> None:
        self.config = config or MatchConfig()
        problems = self.config.validate()
        if problems:
            raise ConfigurationError("Invalid match config: " + "; ".join(problems))

        self.cases = _normalize_cases(cases, self.config.implicit_int)
        self.generated: GeneratedMatcher = MatchGenerator(self.config, env).generate(self.cases)
        self._functions = self.generated.load(self.config.filename)
        logger.info("compiled %d case(s)", len(self._functions))

    @property
    def source(self) -> str:
        """The generated Python module."""
        return self.generated.code

    def try_match(self, subject: Any) -> MatchResult:
        """Run the cases; exhaustion is reported in the result."""
        return dispatch(self._functions, subject)

    def match(self, subject: Any) -> Any:
        """Value of the first matching case's body.

        Raises :class:`~bitmatch.errors.NoMatchError` when no case matches.
        """
        result = self.try_match(subject)
        if not result.matched:
            raise NoMatchError()
        logger.debug("case %d matched", result.case_index)
        return result.value

    __call__ = match

    def __len__(self) -> int:
        return len(self.cases)

    def __repr__(self) -> str:
        return f"Matcher({[c.fields_text for c in self.cases]!r})"


def compile_match(
    cases: Sequence[CaseLike],
    env: Optional[Mapping[str, Any]] = None,
    config: Optional[MatchConfig] = None,
) -> Matcher:
    return Matcher(cases, env, config)


def bitmatch(
    subject: Any,
    cases: Sequence[CaseLike],
    env: Optional[Mapping[str, Any]] = None,
    config: Optional[MatchConfig] = None,
) -> Any:
    """One-shot match: compile *cases* and apply them to *subject*."""
    return Matcher(cases, env, config).match(subject)


def load_match_file(
    path: Union[str, Path],
    env: Optional[Mapping[str, Any]] = None,
    config: Optional[MatchConfig] = None,
) -> Matcher:
    """Compile a match source file (``| "fields" -> body`` arms)."""
    path = Path(path)
    config = config or MatchConfig(filename=str(path))
    cases = parse_match_source(
        path.read_text(encoding="utf-8"), file=str(path), implicit_int=config.implicit_int
    )
    return Matcher(cases, env, config)
