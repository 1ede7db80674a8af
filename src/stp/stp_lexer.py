"""
Lexical analyzer for the Stp language.

This module provides core components for converting raw source code into token streams:

Classes:
    CharacterStream: Stream abstraction for reading characters with line/column tracking.
    Token: Represents a single token with type, value, and source span.
    Lexer: Converts a CharacterStream into a sequence of tokens.

Features:
    - Skips spaces, tabs, `\\r` and backslash-newline continuations
    - Emits `#` comments as COMMENT trivia tokens
    - Emits NEWLINE tokens, except inside `( )`, `[ ]` and string formatting snippets
    - Longest-match recognition of operators (`...` before `.`, `.*` before `.`)
    - Identifiers with keyword lookup after the maximal match; `mod` is an operator
      only when surrounded by whitespace
    - Numbers `\\d+(\\.\\d+)?`
    - Strings, delegated to `StringLexer`, which re-enters this lexer for `\\{ ... \\}`

Raises:
    LexError: On a character that starts no token.
    UnterminatedStringError: When input ends inside a string.

Example:
    >>> [t.type for t in tokenize("x = 2 ^ 3")]
    ['IDENT', 'ASSIGN', 'NUMBER', 'POW', 'NUMBER', 'EOF']

Exports:
    - CharacterStream
    - Token
    - Lexer
    - tokenize
    - token_hashmap
"""

import logging
from typing import Any

from stp.stp_constants import (
    KEYWORDS,
    default_max_depth,
    operator_hashmap,
    token_hashmap,
)
from stp.stp_errors import (
    LexError,
    Span,
    StackLimitError,
    UnbalancedDelimiterError,
    UnterminatedStringError,
)
from stp.stp_string_lexer import StringLexer, StringSegment

logger = logging.getLogger(__name__)

_MAX_OPERATOR_LEN = max(len(op) for op in operator_hashmap)

_GROUP_OPEN = {"LPAREN": "RPAREN", "LBRACK": "RBRACK"}
_GROUP_CLOSE = {"RPAREN", "RBRACK"}


class CharacterStream:
    """
    A utility for reading characters from a string source with line and column tracking.

    Attributes:
        source (str): The input source string.
        position (int): Current index in the source.
        line (int): Current line number (1-indexed).
        column (int): Current column number (1-indexed).
    """

    def __init__(self, source: str, position: int = 0, line: int = 1, column: int = 1):
        self.source = source
        self.position = position
        self.line = line
        self.column = column

    def next(self) -> str:
        """
        Consumes and returns the next character in the stream.

        Raises:
            LexError: If reading past the end of the source.
        """
        if self.position >= len(self.source):
            raise LexError(
                "Attempted to read past end of source", self.span_here()
            )
        char = self.source[self.position]
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.position += 1
        return char

    def peek(self, offset: int = 0) -> str:
        """Returns the character `offset` places ahead, or "" when out of bounds."""
        index = self.position + offset
        if index < 0 or index >= len(self.source):
            return ""
        return self.source[index]

    def current(self) -> str | None:
        return self.source[self.position] if self.position < len(self.source) else None

    def end_of_file(self) -> bool:
        return self.position >= len(self.source)

    def span_here(self, length: int = 0) -> Span:
        """A span starting at the current position."""
        return Span(self.position, self.position + length, self.line, self.column)


class Token:
    """Represents a single lexical token in the Stp language.

    Attributes:
        type (str): The canonical token type (e.g. 'IDENT', 'NUMBER', 'EOF').
        value (str): The source text of the token.
        line (int): The 1-based line number where the token appears.
        col (int): The 1-based column number where the token starts.
        start (int): Offset of the first character.
        end (int): Offset one past the last character.
        spaced (bool): True when whitespace, a newline or the start of input precedes it.
        segments (list[StringSegment]): For STRING tokens, the lexed string interior.
    """

    def __init__(
        self,
        type_: str,
        value: str,
        line: int = 0,
        col: int = 0,
        start: int = 0,
        end: int = 0,
        spaced: bool = False,
        segments: list[StringSegment] | None = None,
    ):
        self.type = type_
        self.value = value
        self.line = line
        self.col = col
        self.start = start
        self.end = end
        self.spaced = spaced
        self.segments: list[StringSegment] = segments or []

    @property
    def span(self) -> Span:
        return Span(self.start, self.end, self.line, self.col)

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Token)
            and self.type == other.type
            and self.value == other.value
            and self.line == other.line
            and self.col == other.col
        )

    def __hash__(self) -> int:
        return hash((self.type, self.value, self.line, self.col))


class Lexer:
    """Lexical analyzer for the Stp language.

    The Lexer takes a CharacterStream and converts it into a stream of Token objects.

    Args:
        stream (CharacterStream): The source stream to tokenize.
        max_depth (int, optional): Maximum nesting of strings inside formatting
            snippets. Defaults to `default_max_depth()`.
        snippet (bool): True when lexing the interior of a `\\{ ... \\}` snippet; the
            lexer then stops at the closing `\\}` and treats newlines as whitespace.
        depth (int): Current snippet nesting depth.
    """

    def __init__(
        self,
        stream: CharacterStream,
        max_depth: int | None = None,
        snippet: bool = False,
        depth: int = 0,
    ) -> None:
        self.stream = stream
        self.max_depth = max_depth if max_depth is not None else default_max_depth()
        self.snippet = snippet
        self.depth = depth
        self.groups: list[Token] = []
        self._spaced = True

    def peek(self) -> str:
        return self.stream.peek()

    def advance(self) -> str:
        return self.stream.next()

    def _is_continuation(self) -> bool:
        if self.peek() != "\\":
            return False
        nxt = self.stream.peek(1)
        return nxt == "\n" or (nxt == "\r" and self.stream.peek(2) == "\n")

    def skip_whitespace(self) -> None:
        """Skips blanks and line continuations; newlines too when they are not significant."""
        while not self.stream.end_of_file():
            ch = self.peek()
            if ch in " \t\r":
                self.advance()
            elif ch == "\n" and (self.groups or self.snippet):
                self.advance()
            elif self._is_continuation():
                self.advance()
                while self.peek() != "\n":
                    self.advance()
                self.advance()
            else:
                break
            self._spaced = True

    def skip_comment(self) -> str:
        """Advances through the stream until the end of a comment line."""
        text = ""
        while not self.stream.end_of_file() and self.peek() != "\n":
            text += self.advance()
        return text.rstrip("\r")

    def match_operator(self) -> Token | None:
        """Attempts to match the longest valid operator from the current position."""
        line, col, start = self.stream.line, self.stream.column, self.stream.position
        max_token = None
        candidate = ""

        for i in range(_MAX_OPERATOR_LEN):
            ch = self.stream.peek(i)
            if ch == "":
                break
            candidate += ch
            if candidate in operator_hashmap:
                max_token = candidate

        if max_token:
            for _ in range(len(max_token)):
                self.advance()
            return self._make(operator_hashmap[max_token], max_token, line, col, start)

        return None

    def _make(
        self,
        type_: str,
        value: str,
        line: int,
        col: int,
        start: int,
        segments: list[StringSegment] | None = None,
    ) -> Token:
        tok = Token(
            type_,
            value,
            line,
            col,
            start,
            self.stream.position,
            spaced=self._spaced,
            segments=segments,
        )
        self._spaced = type_ in ("NEWLINE", "COMMENT")
        return tok

    def _track_group(self, tok: Token) -> None:
        if tok.type in _GROUP_OPEN:
            self.groups.append(tok)
        elif tok.type in _GROUP_CLOSE and self.groups:
            if _GROUP_OPEN[self.groups[-1].type] == tok.type:
                self.groups.pop()

    def next_token(self) -> Token:
        """Consumes and returns the next Token from the stream.

        Raises:
            LexError: If a character starts no token.
            UnterminatedStringError: If input ends inside a string.
        """
        self.skip_whitespace()

        line, col, start = self.stream.line, self.stream.column, self.stream.position

        if self.stream.end_of_file():
            if self.snippet:
                raise UnterminatedStringError(
                    "Unterminated string: formatting snippet is never closed",
                    self.stream.span_here(),
                )
            return self._make("EOF", "", line, col, start)

        ch = self.peek()

        # 1. Newline (significant only outside groups and snippets)
        if ch == "\n":
            self.advance()
            return self._make("NEWLINE", "\n", line, col, start)

        # 2. Comment
        if ch == "#":
            text = self.skip_comment()
            return self._make("COMMENT", text, line, col, start)

        # 3. Snippet close
        if ch == "\\" and self.stream.peek(1) == "}":
            if not self.snippet:
                raise UnbalancedDelimiterError(
                    "'\\}' without matching '\\{'", self.stream.span_here(2)
                )
            if self.groups:
                opener = self.groups[-1]
                raise UnbalancedDelimiterError(
                    f"'{opener.value}' is not closed before '\\}}'", opener.span
                )
            self.advance()
            self.advance()
            return self._make("SNIPPET_CLOSE", "\\}", line, col, start)

        # 4. Identifier or keyword
        if ch.isascii() and (ch.isalpha() or ch == "_"):
            ident = ""
            while not self.stream.end_of_file() and (
                self.peek().isascii() and (self.peek().isalnum() or self.peek() == "_")
            ):
                ident += self.advance()
            if ident == "mod" and self._preceded_by_blank(start) and self._followed_by_space():
                return self._make(token_hashmap[ident], ident, line, col, start)
            if ident in KEYWORDS:
                return self._make(KEYWORDS[ident], ident, line, col, start)
            return self._make("IDENT", ident, line, col, start)

        # 5. Number
        if ch.isascii() and ch.isdigit():
            num = ""
            while self.peek().isascii() and self.peek().isdigit():
                num += self.advance()
            nxt = self.stream.peek(1)
            if self.peek() == "." and nxt.isascii() and nxt.isdigit():
                num += self.advance()
                while self.peek().isascii() and self.peek().isdigit():
                    num += self.advance()
            return self._make("NUMBER", num, line, col, start)

        # 6. String
        if ch == '"':
            self.advance()
            segments = StringLexer(self).lex()
            text = self.stream.source[start : self.stream.position]
            return self._make("STRING", text, line, col, start, segments=segments)

        # 7. Compound or symbolic operator
        token = self.match_operator()
        if token:
            self._track_group(token)
            return token

        # 8. Unknown character
        raise LexError(f"Unexpected character {ch!r}", self.stream.span_here(1))

    def _preceded_by_blank(self, start: int) -> bool:
        return start > 0 and self.stream.source[start - 1] in (" ", "\t")

    def _followed_by_space(self) -> bool:
        nxt = self.peek()
        return nxt in (" ", "\t", "\r", "\n") or self._is_continuation()

    def lex_snippet(self) -> list[Token]:
        """Lexes a formatting snippet interior up to and including its closing `\\}`.

        Called by `StringLexer` right after it consumed `\\{`. Returns the interior
        tokens followed by an EOF token placed at the `\\}`.

        Raises:
            StackLimitError: When snippets nest deeper than `max_depth`.
        """
        if self.depth + 1 > self.max_depth:
            raise StackLimitError(
                f"Formatting snippets nested deeper than {self.max_depth}",
                self.stream.span_here(),
            )
        logger.debug(
            "entering formatting snippet at line %d, col %d (depth %d)",
            self.stream.line,
            self.stream.column,
            self.depth + 1,
        )
        inner = Lexer(
            self.stream, max_depth=self.max_depth, snippet=True, depth=self.depth + 1
        )
        tokens: list[Token] = []
        while True:
            tok = inner.next_token()
            if tok.type == "SNIPPET_CLOSE":
                tokens.append(
                    Token("EOF", "", tok.line, tok.col, tok.start, tok.start, tok.spaced)
                )
                return tokens
            tokens.append(tok)

    def tokens(self) -> list[Token]:
        """Lexes the remaining input into a list ending with an EOF token."""
        result: list[Token] = []
        while True:
            tok = self.next_token()
            result.append(tok)
            if tok.type == "EOF":
                return result


def tokenize(source: str, max_depth: int | None = None) -> list[Token]:
    """Tokenizes a whole Stp source text.

    Args:
        source (str): The program text.
        max_depth (int, optional): Snippet nesting limit.

    Returns:
        list[Token]: All tokens, comments included, ending with EOF.
    """
    return Lexer(CharacterStream(source), max_depth=max_depth).tokens()


__all__ = ["CharacterStream", "Lexer", "Token", "token_hashmap", "tokenize"]
