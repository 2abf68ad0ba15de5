"""Structured error types for parser/runtime separation."""

from __future__ import annotations


class ParseError(SyntaxError):
    """Lexical or syntactic failure, located by 1-based line and column."""

    def __init__(
        self,
        message: str,
        *,
        line: int,
        column: int,
        pos: int,
        expected: tuple[str, ...] = (),
        found: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.pos = pos
        self.expected = expected
        self.found = found

    def __str__(self) -> str:
        expected_text = ""
        if self.expected:
            expected_text = f"; expected {', '.join(self.expected)}"
        found_text = ""
        if self.found is not None:
            found_text = f"; found {self.found}"
        return f"parse error [{self.line}:{self.column}]: {self.message}{expected_text}{found_text}"


class LexicalError(ParseError):
    """Unknown character or malformed escape sequence."""


class ExprError(Exception):
    """Base class for structured expr-jax runtime errors."""


class EvaluationError(ExprError):
    """Failure while evaluating an otherwise well-formed program."""


class SecurityError(EvaluationError):
    """Expression touched a reserved name or an untrusted callable."""


class UnsupportedError(ExprError):
    """Construct exists in the language but the JAX lowering cannot express it."""


def coordinates(source: str, pos: int) -> tuple[int, int]:
    """Return the 1-based (line, column) of offset ``pos`` in ``source``."""
    line = source.count("\n", 0, pos) + 1
    last_newline = source.rfind("\n", 0, pos)
    return line, pos - last_newline
