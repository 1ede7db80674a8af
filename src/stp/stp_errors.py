"""
Error types raised by the Stp lexer and parser.

Every error carries a `Span` pointing at the offending source range and can render
itself as a diagnostic with the affected lines underlined:

    error: Unterminated string
      --> demo.stp:1:5
    1  | x = "abc
       |     ~~~~

Hierarchy:
    StpError (SyntaxError)
        LexError
            UnterminatedStringError
            UnterminatedEscapeError
        StpSyntaxError
            UnbalancedDelimiterError
        StackLimitError

All errors derive from Python's `SyntaxError` so callers that only care about
"malformed input" can catch that.
"""

from typing import Any


class Span:
    """A half-open source range with the line/column of its first character.

    Attributes:
        start (int): Offset of the first character.
        end (int): Offset one past the last character.
        line (int): 1-based line of `start`.
        col (int): 1-based column of `start`.
    """

    __slots__ = ("start", "end", "line", "col")

    def __init__(self, start: int = 0, end: int = 0, line: int = 1, col: int = 1):
        self.start = start
        self.end = max(end, start)
        self.line = line
        self.col = col

    def __repr__(self) -> str:
        return f"Span({self.start}, {self.end}, line={self.line}, col={self.col})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Span)
            and self.start == other.start
            and self.end == other.end
            and self.line == other.line
            and self.col == other.col
        )

    def __hash__(self) -> int:
        return hash((self.start, self.end, self.line, self.col))

    def byte_range(self, source: str) -> tuple[int, int]:
        """Converts the character offsets to UTF-8 byte offsets within `source`."""
        start = len(source[: self.start].encode("utf-8"))
        return start, start + len(source[self.start : self.end].encode("utf-8"))


class StpError(SyntaxError):
    """Base class for all Stp lexing and parsing failures.

    Args:
        message (str): Human readable description.
        span (Span, optional): Location of the problem.
    """

    kind = "error"

    def __init__(self, message: str, span: Span | None = None):
        super().__init__(message)
        self.message = message
        self.span = span or Span()
        self.lineno = self.span.line
        self.offset = self.span.col

    def __str__(self) -> str:
        return f"{self.message} at line {self.span.line}, col {self.span.col}"

    def __reduce__(self) -> tuple[Any, ...]:
        return (self.__class__, (self.message, self.span))

    def format(self, source: str, filename: str = "<string>") -> str:
        """Renders the error with the affected source lines underlined."""
        lines = source.split("\n")
        span = self.span
        last_line = span.line + source[span.start : span.end].count("\n")
        width = len(str(last_line))
        out = [
            f"{self.kind}: {self.message}",
            f"{' ' * width}--> {filename}:{span.line}:{span.col}",
        ]

        offset = sum(len(text) + 1 for text in lines[: span.line - 1])
        for lineno in range(span.line, min(last_line, len(lines)) + 1):
            text = lines[lineno - 1]
            line_start = offset
            line_end = offset + len(text)
            lo = max(span.start, line_start) - line_start
            hi = min(max(span.end, span.start + 1), line_end) - line_start
            marks = " " * lo + "~" * max(hi - lo, 1)
            out.append(f"{str(lineno).rjust(width)}  | {text}")
            out.append(f"{' ' * width}  | {marks}")
            offset = line_end + 1
        return "\n".join(out)


class LexError(StpError):
    """An unrecognized character appeared outside any literal."""

    kind = "lex error"


class UnterminatedStringError(LexError):
    """End of input was reached before a string's closing quote."""


class UnterminatedEscapeError(LexError):
    """A backslash escape inside a string is unknown or truncated."""


class StpSyntaxError(StpError):
    """The token sequence matches no grammar alternative at this position."""

    kind = "syntax error"


class UnbalancedDelimiterError(StpSyntaxError):
    """A `{}`, `[]`, `()` or `\\{ \\}` pair is not matched."""


class StackLimitError(StpError):
    """Nesting exceeded the configured maximum depth."""

    kind = "nesting error"


__all__ = [
    "LexError",
    "Span",
    "StackLimitError",
    "StpError",
    "StpSyntaxError",
    "UnbalancedDelimiterError",
    "UnterminatedEscapeError",
    "UnterminatedStringError",
]
