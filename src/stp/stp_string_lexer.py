"""
String sub-lexer for the Stp language.

Splits the interior of a string literal into segments, in source order:

    string_char          maximal run of characters other than `"` and `\\`
    escape_sequence      `\\r \\n \\t \\b \\f \\" \\\\`
    unicode_escape       `\\x` followed by 8, 4 or 2 hex digits (longest run wins)
    octal_escape         `\\` followed by exactly three octal digits
    formatting_snippet   `\\{ expr \\}`; the interior is lexed by re-entering the Lexer

The sub-lexer runs on the enclosing Lexer's CharacterStream, positioned just after
the opening quote, and consumes the closing quote.
"""

from typing import TYPE_CHECKING, Any

from stp.stp_constants import HEX_DIGITS, HEX_ESCAPE_LENGTHS, OCTAL_DIGITS, SIMPLE_ESCAPES
from stp.stp_errors import (
    Span,
    UnbalancedDelimiterError,
    UnterminatedEscapeError,
    UnterminatedStringError,
)

if TYPE_CHECKING:  # pragma: no cover
    from stp.stp_lexer import Lexer, Token


class StringSegment:
    """One piece of a string literal.

    Attributes:
        kind (str): One of the segment kinds listed in the module docstring.
        text (str): The raw source text of the segment.
        line, col, start, end: Source position of the segment.
        digits (str | None): Hex digits of a unicode escape.
        tokens (list[Token]): Interior tokens of a formatting snippet, ending with EOF.
    """

    def __init__(
        self,
        kind: str,
        text: str,
        line: int,
        col: int,
        start: int,
        end: int,
        digits: str | None = None,
        tokens: list["Token"] | None = None,
    ):
        self.kind = kind
        self.text = text
        self.line = line
        self.col = col
        self.start = start
        self.end = end
        self.digits = digits
        self.tokens = tokens or []

    def __repr__(self) -> str:
        return f"StringSegment({self.kind}, {self.text!r})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, StringSegment)
            and self.kind == other.kind
            and self.text == other.text
            and self.start == other.start
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.text, self.start))


class StringLexer:
    """Tokenizes the interior of one string literal.

    Args:
        lexer (Lexer): The enclosing lexer. Its stream must sit just after the
            opening quote; snippets re-enter it through `Lexer.lex_snippet`.
    """

    def __init__(self, lexer: "Lexer") -> None:
        self.lexer = lexer
        self.stream = lexer.stream

    def _unterminated(self) -> UnterminatedStringError:
        return UnterminatedStringError("Unterminated string", self.stream.span_here())

    def lex(self) -> list[StringSegment]:
        """Lexes segments up to and including the closing quote.

        Raises:
            UnterminatedStringError: If input ends before the closing quote.
            UnterminatedEscapeError: On an unknown or truncated escape.
            UnbalancedDelimiterError: On `\\}` without an open snippet.
        """
        segments: list[StringSegment] = []
        while True:
            if self.stream.end_of_file():
                raise self._unterminated()
            ch = self.stream.peek()
            if ch == '"':
                self.stream.next()
                return segments
            if ch == "\\":
                segments.append(self.lex_escape())
            else:
                segments.append(self.lex_run())

    def lex_run(self) -> StringSegment:
        line, col, start = self.stream.line, self.stream.column, self.stream.position
        text = ""
        while not self.stream.end_of_file() and self.stream.peek() not in ('"', "\\"):
            text += self.stream.next()
        return StringSegment("string_char", text, line, col, start, self.stream.position)

    def lex_escape(self) -> StringSegment:
        line, col, start = self.stream.line, self.stream.column, self.stream.position
        self.stream.next()  # backslash
        if self.stream.end_of_file():
            raise self._unterminated()

        ch = self.stream.peek()

        def segment(kind: str, **kwargs: Any) -> StringSegment:
            text = self.stream.source[start : self.stream.position]
            return StringSegment(
                kind, text, line, col, start, self.stream.position, **kwargs
            )

        if ch in SIMPLE_ESCAPES:
            self.stream.next()
            return segment("escape_sequence")

        if ch == "x":
            self.stream.next()
            available = 0
            while (
                available < HEX_ESCAPE_LENGTHS[0]
                and self.stream.peek(available) in HEX_DIGITS
            ):
                available += 1
            for length in HEX_ESCAPE_LENGTHS:
                if available >= length:
                    digits = "".join(self.stream.next() for _ in range(length))
                    return segment("unicode_escape", digits=digits)
            raise UnterminatedEscapeError(
                "Unicode escape needs 2, 4 or 8 hex digits after '\\x'",
                Span(start, self.stream.position + available, line, col),
            )

        if ch in OCTAL_DIGITS:
            digits = ""
            while len(digits) < 3 and self.stream.peek() in OCTAL_DIGITS:
                digits += self.stream.next()
            if len(digits) != 3:
                raise UnterminatedEscapeError(
                    "Octal escape needs exactly three octal digits",
                    Span(start, self.stream.position, line, col),
                )
            return segment("octal_escape")

        if ch == "{":
            self.stream.next()
            tokens = self.lexer.lex_snippet()
            return segment("formatting_snippet", tokens=tokens)

        if ch == "}":
            raise UnbalancedDelimiterError(
                "'\\}' without matching '\\{'", Span(start, start + 2, line, col)
            )

        raise UnterminatedEscapeError(
            f"Unknown escape sequence '\\{ch}'", Span(start, start + 2, line, col)
        )


__all__ = ["StringLexer", "StringSegment"]
