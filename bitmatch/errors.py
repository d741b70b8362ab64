# bitmatch/errors.py
"""
bitmatch Error Types and Reporting

Error handling for every stage of the match compiler: surface syntax, qualifier
resolution, static validation, code generation and dispatch.

Error Hierarchy:
────────────────
    BitmatchError (base)
    ├── ConfigurationError            - the match description is unusable
    │   ├── FieldFormatError          - malformed field descriptor text
    │   ├── DuplicateAttributeError   - a qualifier attribute given twice
    │   ├── UnknownQualifierError     - not a recognised qualifier
    │   ├── MissingTypeError          - field reached generation without a type
    │   ├── InvalidBitstringPatternError
    │   ├── InvalidCasePatternError   - case discriminator is not a string
    │   ├── UnboundNameError          - expression refers to an unknown name
    │   └── BodySignatureError        - case body cannot accept the bindings
    ├── StaticValidationError
    │   └── LengthRangeError          - statically known length out of range
    ├── CodeGenError                  - generator bug or unsupported construct
    └── NoMatchError                  - no case matched the subject

Error Codes:
────────────
Codes follow the pattern BM-NNNN:
  - 1000-1999: Syntax errors
  - 2000-2999: Qualifier errors
  - 3000-3999: Static validation and scope errors
  - 4000-4999: Code generation errors
  - 5000-5999: Runtime errors

A field that simply does not match its input is not an error: generated code
falls through to the next case without raising or logging anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto, unique
from typing import Any, Dict, List, Optional

__all__ = [
    "ErrorPhase",
    "ErrorCategory",
    "ErrorCode",
    "BitmatchErrorCodes",
    "SourceSpan",
    "ErrorNote",
    "ErrorMessage",
    "BitmatchError",
    "ConfigurationError",
    "FieldFormatError",
    "DuplicateAttributeError",
    "UnknownQualifierError",
    "MissingTypeError",
    "InvalidBitstringPatternError",
    "InvalidCasePatternError",
    "UnboundNameError",
    "BodySignatureError",
    "StaticValidationError",
    "LengthRangeError",
    "CodeGenError",
    "NoMatchError",
]


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorPhase(Enum):
    """Compiler stage where the error occurred."""

    SYNTAX = "syntax"          # Parsing field descriptors and expressions
    QUALIFIER = "qualifier"    # Qualifier resolution
    STATIC = "static"          # Length validation, scope checks
    CODEGEN = "codegen"        # Python source generation
    RUNTIME = "runtime"        # Dispatch


@unique
class ErrorCategory(Enum):
    """Fine-grained error categories for filtering."""

    INVALID_FIELD = auto()
    INVALID_EXPRESSION = auto()
    INVALID_PATTERN = auto()
    DUPLICATE_ATTRIBUTE = auto()
    UNKNOWN_QUALIFIER = auto()
    MISSING_TYPE = auto()
    LENGTH_OUT_OF_RANGE = auto()
    UNDEFINED_SYMBOL = auto()
    ARITY_MISMATCH = auto()
    UNSUPPORTED_FEATURE = auto()
    NO_MATCH = auto()


class ErrorCode:
    """
    Structured error code.

    The textual form is PREFIX-NNNN, e.g. ``BM-2001``.
    """

    __slots__ = ("prefix", "number", "category", "phase")

    def __init__(
        self,
        prefix: str,
        number: int,
        category: ErrorCategory,
        phase: ErrorPhase,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.category = category
        self.phase = phase

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.category.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class BitmatchErrorCodes:
    """Predefined error codes."""

    # ── SYNTAX (1000-1999) ────────────────────────────────────────────────
    INVALID_FIELD = ErrorCode(
        "BM", 1000, ErrorCategory.INVALID_FIELD, ErrorPhase.SYNTAX
    )
    INVALID_EXPRESSION = ErrorCode(
        "BM", 1001, ErrorCategory.INVALID_EXPRESSION, ErrorPhase.SYNTAX
    )
    INVALID_CASE_PATTERN = ErrorCode(
        "BM", 1002, ErrorCategory.INVALID_PATTERN, ErrorPhase.SYNTAX
    )

    # ── QUALIFIERS (2000-2999) ────────────────────────────────────────────
    DUPLICATE_ATTRIBUTE = ErrorCode(
        "BM", 2000, ErrorCategory.DUPLICATE_ATTRIBUTE, ErrorPhase.QUALIFIER
    )
    UNKNOWN_QUALIFIER = ErrorCode(
        "BM", 2001, ErrorCategory.UNKNOWN_QUALIFIER, ErrorPhase.QUALIFIER
    )

    # ── STATIC VALIDATION / SCOPE (3000-3999) ─────────────────────────────
    MISSING_TYPE = ErrorCode(
        "BM", 3000, ErrorCategory.MISSING_TYPE, ErrorPhase.STATIC
    )
    LENGTH_OUT_OF_RANGE = ErrorCode(
        "BM", 3001, ErrorCategory.LENGTH_OUT_OF_RANGE, ErrorPhase.STATIC
    )
    INVALID_BITSTRING_PATTERN = ErrorCode(
        "BM", 3002, ErrorCategory.INVALID_PATTERN, ErrorPhase.STATIC
    )
    UNBOUND_NAME = ErrorCode(
        "BM", 3003, ErrorCategory.UNDEFINED_SYMBOL, ErrorPhase.STATIC
    )
    BODY_SIGNATURE = ErrorCode(
        "BM", 3004, ErrorCategory.ARITY_MISMATCH, ErrorPhase.STATIC
    )
    INVALID_CONFIG = ErrorCode(
        "BM", 3005, ErrorCategory.UNSUPPORTED_FEATURE, ErrorPhase.STATIC
    )

    # ── CODE GENERATION (4000-4999) ───────────────────────────────────────
    CODEGEN_FAILURE = ErrorCode(
        "BM", 4000, ErrorCategory.UNSUPPORTED_FEATURE, ErrorPhase.CODEGEN
    )

    # ── RUNTIME (5000-5999) ───────────────────────────────────────────────
    NO_MATCH = ErrorCode(
        "BM", 5000, ErrorCategory.NO_MATCH, ErrorPhase.RUNTIME
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATIONS AND MESSAGES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    Position of the offending text.

    ``text`` is the field descriptor (or match file line) the error refers to;
    ``line``/``column`` are 1-based and 0 when unknown.
    """

    file: str = ""
    line: int = 0
    column: int = 0
    text: str = ""

    @classmethod
    def from_offset(cls, source: str, offset: int, file: str = "") -> "SourceSpan":
        """Build a span from a character offset into *source*."""
        offset = max(0, min(offset, len(source)))
        line = source.count("\n", 0, offset) + 1
        line_start = source.rfind("\n", 0, offset) + 1
        line_end = source.find("\n", offset)
        if line_end < 0:
            line_end = len(source)
        return cls(
            file=file,
            line=line,
            column=offset - line_start + 1,
            text=source[line_start:line_end],
        )

    def __str__(self) -> str:
        parts = [self.file or "<bitmatch>"]
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))
        return ":".join(parts)


@dataclass
class ErrorNote:
    """Additional context attached to an error."""

    message: str
    label: str = "note"

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"


@dataclass
class ErrorMessage:
    """A complete error message with all context."""

    code: ErrorCode
    message: str
    span: SourceSpan = field(default_factory=SourceSpan)
    notes: List[ErrorNote] = field(default_factory=list)
    hint: str = ""

    def add_note(self, message: str, label: str = "note") -> "ErrorMessage":
        self.notes.append(ErrorNote(message=message, label=label))
        return self

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        lines = [f"{self.span}: error: {self.message} [{self.code}]"]

        if self.span.text:
            lines.append(f"    {self.span.text}")
            if self.span.column > 0:
                lines.append(f"    {' ' * (self.span.column - 1)}^")

        for note in self.notes:
            lines.append(str(note))

        if self.hint:
            lines.append(f"hint: {self.hint}")

        return "\n".join(lines)

    def to_json(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code.code,
            "message": self.message,
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
                "text": self.span.text,
            },
            "phase": self.code.phase.value,
            "category": self.code.category.name,
            "notes": [
                {"message": note.message, "label": note.label}
                for note in self.notes
            ],
            "hint": self.hint,
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class BitmatchError(Exception):
    """
    Base exception for all bitmatch errors.

    Carries an :class:`ErrorMessage`; ``str(exc)`` is the plain message so
    that ``pytest.raises(match=...)`` and log lines stay readable, while
    :meth:`to_gcc_format` gives the full report.
    """

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        notes: Optional[List[ErrorNote]] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.error_message = ErrorMessage(
            code=code or BitmatchErrorCodes.CODEGEN_FAILURE,
            message=message,
            span=span or SourceSpan(),
            notes=notes or [],
            hint=hint,
        )

    @property
    def message(self) -> str:
        return self.error_message.message

    @property
    def code(self) -> ErrorCode:
        return self.error_message.code

    @property
    def span(self) -> SourceSpan:
        return self.error_message.span

    def add_note(self, message: str, label: str = "note") -> "BitmatchError":
        """Add a note to this error."""
        self.error_message.add_note(message, label)
        return self

    def with_hint(self, hint: str) -> "BitmatchError":
        """Add a hint to this error."""
        self.error_message.hint = hint
        return self

    def with_span(self, span: SourceSpan) -> "BitmatchError":
        """Attach a location, keeping one that is already more precise."""
        if self.error_message.span.line == 0:
            self.error_message.span = span
        return self

    def to_gcc_format(self) -> str:
        return self.error_message.to_gcc_format()

    def to_json(self) -> Dict[str, Any]:
        return self.error_message.to_json()

    def __str__(self) -> str:
        return self.error_message.message


# ───────────────────────────────────────────────────────────────────────────────
# CONFIGURATION ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ConfigurationError(BitmatchError):
    """The match description cannot be compiled."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("code", BitmatchErrorCodes.INVALID_CONFIG)
        super().__init__(message, **kwargs)


class FieldFormatError(ConfigurationError):
    """Field descriptor, pattern or expression text does not parse."""

    def __init__(
        self,
        text: str,
        reason: str = "Format error",
        span: Optional[SourceSpan] = None,
        code: Optional[ErrorCode] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"{reason}: {text!r}",
            code=code or BitmatchErrorCodes.INVALID_FIELD,
            span=span,
            **kwargs,
        )
        self.text = text
        self.reason = reason


class DuplicateAttributeError(ConfigurationError):
    """The same field attribute was set by two qualifiers."""

    def __init__(self, attribute: str, qualifier: str, **kwargs: Any) -> None:
        super().__init__(
            f"{attribute} can only be defined once (offending qualifier: {qualifier})",
            code=BitmatchErrorCodes.DUPLICATE_ATTRIBUTE,
            **kwargs,
        )
        self.attribute = attribute
        self.qualifier = qualifier


class UnknownQualifierError(ConfigurationError):
    """A qualifier that is not part of the qualifier vocabulary."""

    def __init__(self, qualifier: str, **kwargs: Any) -> None:
        super().__init__(
            f"Invalid qualifier: {qualifier}",
            code=BitmatchErrorCodes.UNKNOWN_QUALIFIER,
            **kwargs,
        )
        self.qualifier = qualifier
        self.with_hint(
            "expected one of int, string, bitstring, signed, unsigned, "
            "littleendian, bigendian, nativeendian, endian(e), bind(e), "
            "check(e), set_offset_at(e)"
        )


class MissingTypeError(ConfigurationError):
    """A field has no value type at generation time."""

    def __init__(self, field_text: str = "", **kwargs: Any) -> None:
        where = f" in field {field_text!r}" if field_text else ""
        super().__init__(
            f"No type to check{where}",
            code=BitmatchErrorCodes.MISSING_TYPE,
            **kwargs,
        )
        self.field_text = field_text


class InvalidBitstringPatternError(ConfigurationError):
    """Bitstring-valued fields only bind a name or are skipped."""

    def __init__(self, pattern: str, field_text: str = "", **kwargs: Any) -> None:
        super().__init__(
            f"Bitstring can only be assigned to variables or skipped, "
            f"got pattern {pattern!r}",
            code=BitmatchErrorCodes.INVALID_BITSTRING_PATTERN,
            **kwargs,
        )
        self.pattern = pattern
        self.field_text = field_text


class InvalidCasePatternError(ConfigurationError):
    """A case discriminator that is not a string of field descriptors."""

    def __init__(self, pattern: Any, **kwargs: Any) -> None:
        super().__init__(
            f"Wrong pattern type in bitmatch case: {pattern!r}",
            code=BitmatchErrorCodes.INVALID_CASE_PATTERN,
            **kwargs,
        )
        self.pattern = pattern


class UnboundNameError(ConfigurationError):
    """An expression refers to a name nothing binds."""

    def __init__(
        self,
        name: str,
        field_text: str = "",
        available: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        where = f" in field {field_text!r}" if field_text else ""
        super().__init__(
            f"Unbound name {name!r}{where}",
            code=BitmatchErrorCodes.UNBOUND_NAME,
            **kwargs,
        )
        self.name = name
        if available:
            self.add_note(f"names in scope: {', '.join(sorted(available))}")
        self.with_hint("bind it in an earlier field or pass it through env")


class BodySignatureError(ConfigurationError):
    """A callable case body requires an argument the case does not bind."""

    def __init__(self, parameter: str, case_text: str, **kwargs: Any) -> None:
        super().__init__(
            f"Case body requires {parameter!r} which case {case_text!r} does not bind",
            code=BitmatchErrorCodes.BODY_SIGNATURE,
            **kwargs,
        )
        self.parameter = parameter


# ───────────────────────────────────────────────────────────────────────────────
# STATIC VALIDATION
# ───────────────────────────────────────────────────────────────────────────────

class StaticValidationError(BitmatchError):
    """A compile-time check failed."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("code", BitmatchErrorCodes.LENGTH_OUT_OF_RANGE)
        super().__init__(message, **kwargs)


class LengthRangeError(StaticValidationError):
    """A statically known field length violates its type's rule."""

    def __init__(
        self,
        rule: str,
        length: int,
        field_text: str = "",
        **kwargs: Any,
    ) -> None:
        where = f" (field {field_text!r})" if field_text else ""
        super().__init__(
            f"{rule}, got {length}{where}",
            code=BitmatchErrorCodes.LENGTH_OUT_OF_RANGE,
            **kwargs,
        )
        self.rule = rule
        self.length = length


# ───────────────────────────────────────────────────────────────────────────────
# CODE GENERATION / RUNTIME
# ───────────────────────────────────────────────────────────────────────────────

class CodeGenError(BitmatchError):
    """The generator met a construct it cannot translate."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("code", BitmatchErrorCodes.CODEGEN_FAILURE)
        super().__init__(message, **kwargs)


class NoMatchError(BitmatchError):
    """No case of a match accepted the subject."""

    def __init__(self, message: str = "no case matched the subject") -> None:
        super().__init__(message, code=BitmatchErrorCodes.NO_MATCH)
