"""
Token tables and operator precedence for the Stp language.

Exports:
    token_hashmap: Maps operator/punctuation spellings and keywords to token types.
    KEYWORDS: Reserved words, recognized only after a maximal identifier match.
    PRECEDENCE: Binary operator token type -> (level, associativity).
    UNARY_OPS: Prefix operator token types.
    SUFFIX_OPS: Postfix operator token types.
    default_max_depth(): Nesting limit, overridable with ``STP_MAX_DEPTH``.
"""

import os

# Operators and punctuation, matched longest-first by the lexer.
operator_hashmap: dict[str, str] = {
    "+": "PLUS",
    "-": "SUB",
    "*": "MULT",
    "/": "DIV",
    "^": "POW",
    ".*": "DOT_MULT",
    "./": "DOT_DIV",
    ".^": "DOT_POW",
    "@": "MATMUL",
    "&": "AMP",
    "==": "EQ",
    "!=": "NE",
    "<": "LT",
    "<=": "LE",
    ">": "GT",
    ">=": "GE",
    "=": "ASSIGN",
    "~": "TILDE",
    "'": "TRANSPOSE",
    "!": "BANG",
    "%": "PERCENT",
    ".": "DOT",
    "...": "ELLIPSIS",
    ",": "COMMA",
    ";": "SEMI",
    "(": "LPAREN",
    ")": "RPAREN",
    "[": "LBRACK",
    "]": "RBRACK",
    "{": "LBRACE",
    "}": "RBRACE",
}

# `mod` is an operator only between whitespace; the lexer checks that itself.
KEYWORDS: dict[str, str] = {
    "sym": "SYM",
    "if": "IF",
    "elseif": "ELSEIF",
    "else": "ELSE",
    "while": "WHILE",
    "for": "FOR",
    "in": "IN",
    "fn": "FN",
    "ret": "RET",
    "break": "BREAK",
    "cont": "CONT",
    "exit": "EXIT",
    "import": "IMPORT",
    "and": "AND",
    "or": "OR",
    "not": "NOT",
}

token_hashmap: dict[str, str] = {**operator_hashmap, **KEYWORDS, "mod": "MOD"}

LEFT = "left"
RIGHT = "right"

# Precedence levels, lowest binding first.
BINARY_LEFT_0 = 1
BINARY_LEFT_1 = 2
BINARY_LEFT_2 = 3
BINARY_RIGHT = 4
UNARY_PREFIX = 5
SUFFIX = 6

PRECEDENCE: dict[str, tuple[int, str]] = {
    "EQ": (BINARY_LEFT_0, LEFT),
    "NE": (BINARY_LEFT_0, LEFT),
    "LT": (BINARY_LEFT_0, LEFT),
    "LE": (BINARY_LEFT_0, LEFT),
    "GT": (BINARY_LEFT_0, LEFT),
    "GE": (BINARY_LEFT_0, LEFT),
    "IN": (BINARY_LEFT_0, LEFT),
    "AND": (BINARY_LEFT_0, LEFT),
    "OR": (BINARY_LEFT_0, LEFT),
    "NOT": (BINARY_LEFT_0, LEFT),
    "PLUS": (BINARY_LEFT_1, LEFT),
    "SUB": (BINARY_LEFT_1, LEFT),
    "MULT": (BINARY_LEFT_2, LEFT),
    "DIV": (BINARY_LEFT_2, LEFT),
    "DOT_MULT": (BINARY_LEFT_2, LEFT),
    "DOT_DIV": (BINARY_LEFT_2, LEFT),
    "MOD": (BINARY_LEFT_2, LEFT),
    "MATMUL": (BINARY_LEFT_2, LEFT),
    "AMP": (BINARY_LEFT_2, LEFT),
    "POW": (BINARY_RIGHT, RIGHT),
    "DOT_POW": (BINARY_RIGHT, RIGHT),
}

UNARY_OPS: set[str] = {"TILDE", "PLUS", "SUB"}

SUFFIX_OPS: set[str] = {"TRANSPOSE", "BANG", "PERCENT"}

# Escape letters accepted after a backslash inside strings.
SIMPLE_ESCAPES = set('rntbf"\\')

HEX_ESCAPE_LENGTHS = (8, 4, 2)

OCTAL_DIGITS = set("01234567")

HEX_DIGITS = set("0123456789abcdefABCDEF")

DEFAULT_MAX_DEPTH = 100


def default_max_depth() -> int:
    """Returns the nesting limit, honouring the ``STP_MAX_DEPTH`` environment variable."""
    raw = os.getenv("STP_MAX_DEPTH")
    if not raw:
        return DEFAULT_MAX_DEPTH
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"STP_MAX_DEPTH must be an integer, got {raw!r}") from e
    if value < 1:
        raise ValueError(f"STP_MAX_DEPTH must be positive, got {value}")
    return value


__all__ = [
    "KEYWORDS",
    "PRECEDENCE",
    "SUFFIX_OPS",
    "UNARY_OPS",
    "default_max_depth",
    "operator_hashmap",
    "token_hashmap",
]
