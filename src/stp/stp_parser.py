"""
Stp Language Parser

Parses Stp token streams into concrete syntax trees.

This module turns the flat list of `Token` objects produced by `stp.stp_lexer` into a
tree of `ASTNode` instances with stable named fields. Expressions are parsed by
precedence climbing; statements and blocks by recursive descent.

Supported Constructs
--------------------
- Expressions:
    * Binary operators on four levels, `^` and `.^` right-associative:
      `a + b * c`, `a ^ b ^ c`, `x in xs and y`
    * Unary prefix `~ + -` and adjacent suffix `' ! %` operators: `-a'`, `n!`
    * Matrices `[1 2; 3 4]`, ranges `1...10` / `1...2...10`, percentages `50%`
    * Calls with positional and keyword arguments: `plot(x, y, color="red")`
    * Member access `a.b.c`, parenthesized expressions
    * Strings with escapes and formatting snippets: `"x = \\{a + 1\\}\\n"`

- Statements:
    * Assignment `x = expr`, symbol declaration `sym x`
    * `if` / `elseif` / `else`, `while expr { }`, `for x in expr { }`
    * `fn name(a, b, k=1) { }`, `ret expr`, `break`, `cont`, `exit`
    * `import a.b`, comments, bare expression statements

Parser Behavior
---------------
- Strict mode (default) raises the first `StpError` encountered.
- Recovery mode (`strict=False`) records errors, inserts `ERROR` nodes and
  resynchronizes at the next statement separator.
- Nesting of expressions, blocks and snippets is bounded by `max_depth`.

Entry Points
------------
- `parse(source)`: Lex and parse a complete program into a `source_file` node.
- `reparse(tree, source, start, end, replacement)`: Parse an edited program,
  reusing unaffected top-level statements.
- `Parser.parse_statement()` / `Parser.parse_expression()`: Parse one construct.

Raises
------
StpError
    `StpSyntaxError`, `UnbalancedDelimiterError` and `StackLimitError` from the
    parser, plus the `LexError` family from the lexer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from stp.stp_ast import ASTNode, Field
from stp.stp_constants import (
    BINARY_LEFT_0,
    PRECEDENCE,
    RIGHT,
    SUFFIX_OPS,
    UNARY_OPS,
    default_max_depth,
    token_hashmap,
)
from stp.stp_errors import (
    Span,
    StackLimitError,
    StpError,
    StpSyntaxError,
    UnbalancedDelimiterError,
)
from stp.stp_lexer import CharacterStream, Lexer, Token
from stp.stp_string_lexer import StringSegment

logger = logging.getLogger(__name__)

_OPENERS = {"LPAREN": "RPAREN", "LBRACK": "RBRACK", "LBRACE": "RBRACE"}
_CLOSERS = {"RPAREN": "(", "RBRACK": "[", "RBRACE": "{"}
_SEPARATORS = ("NEWLINE", "SEMI")
# tokens after which `mod` is the binary operator
_OPERAND_ENDS = {"IDENT", "NUMBER", "STRING", "RPAREN", "RBRACK", "TRANSPOSE", "BANG", "PERCENT"}
_SPELLINGS = {type_: text for text, type_ in token_hashmap.items()}

Begin = Token | ASTNode


class Parser:
    """
    Stp Parser Class

    Transforms a list of lexical tokens into a concrete syntax tree.

    Attributes
    ----------
    tokens : list[Token]
        The token stream, without comments that sit inside `( )` or `[ ]`.
    position : int
        Current index into the token stream.
    strict : bool
        Raise on the first error when True, recover when False.
    max_depth : int
        Nesting limit for expressions, blocks and formatting snippets.
    depth : int
        Current nesting depth.
    loop_depth : int
        Number of enclosing `while`/`for` bodies within the current function.
    errors : list[StpError]
        Errors recorded in recovery mode.
    trivia : list[ASTNode]
        `comment` nodes removed from inside brackets.
    """

    def __init__(
        self,
        tokens: list[Token],
        strict: bool = True,
        max_depth: int | None = None,
        depth: int = 0,
    ) -> None:
        self.strict = strict
        self.max_depth = max_depth if max_depth is not None else default_max_depth()
        self.depth = depth
        self.position = 0
        self.loop_depth = 0
        self.errors: list[StpError] = []
        self.trivia: list[ASTNode] = []
        self.tokens: list[Token] = self._prepare_tokens(tokens)

    def _prepare_tokens(self, tokens: list[Token]) -> list[Token]:
        """Moves comments inside `( )` and `[ ]` to `trivia` and resolves `mod`.

        A spaced `mod` is the operator only where an operand has just ended;
        anywhere else (statement start, after `=` or another operator) it is a name.
        """
        kept: list[Token] = []
        groups = 0
        for tok in tokens:
            if tok.type in ("LPAREN", "LBRACK"):
                groups += 1
            elif tok.type in ("RPAREN", "RBRACK") and groups:
                groups -= 1
            elif tok.type == "COMMENT" and groups:
                self.trivia.append(self._leaf("comment", tok))
                continue
            elif tok.type == "MOD" and not (kept and kept[-1].type in _OPERAND_ENDS):
                tok = Token(
                    "IDENT", tok.value, tok.line, tok.col, tok.start, tok.end, tok.spaced
                )
            kept.append(tok)
        return kept

    # Token helpers

    def current(self) -> Token:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return self._eof()

    def peek(self, offset: int = 1) -> Token:
        index = self.position + offset
        return self.tokens[index] if index < len(self.tokens) else self._eof()

    def previous(self) -> Token:
        if 0 < self.position <= len(self.tokens):
            return self.tokens[self.position - 1]
        return self.current()

    def _eof(self) -> Token:
        if self.tokens:
            last = self.tokens[-1]
            return Token("EOF", "", last.line, last.col, last.end, last.end)
        return Token("EOF", "", 1, 1)

    def advance(self) -> Token:
        tok = self.current()
        if self.position < len(self.tokens):
            self.position += 1
        return tok

    def match(self, *types: str, strict: bool = True) -> Token | None:
        tok = self.current()
        if tok.type in types:
            return self.advance()
        if strict:
            raise StpSyntaxError(
                f"Expected {self._describe_types(types)}, got {self._describe(tok)}",
                tok.span,
            )
        return None

    def expect(self, *types: str) -> Token:
        tok = self.match(*types)
        assert tok is not None  # for mypy
        return tok

    @staticmethod
    def _describe(tok: Token) -> str:
        if tok.type == "EOF":
            return "end of input"
        if tok.type == "NEWLINE":
            return "end of line"
        return f"'{tok.value}'"

    @staticmethod
    def _describe_types(types: tuple[str, ...]) -> str:
        names = {"IDENT": "identifier", "NUMBER": "number", "STRING": "string"}
        return " or ".join(
            names[t] if t in names else f"'{_SPELLINGS.get(t, t)}'" for t in types
        )

    def _close(self, opener: Token) -> Token:
        """Consumes the delimiter closing `opener`."""
        closer = _OPENERS[opener.type]
        tok = self.current()
        if tok.type == closer:
            return self.advance()
        if tok.type == "EOF" or tok.type in _CLOSERS:
            raise UnbalancedDelimiterError(f"'{opener.value}' is never closed", opener.span)
        raise StpSyntaxError(
            f"Expected '{_SPELLINGS[closer]}' to close '{opener.value}', "
            f"got {self._describe(tok)}",
            tok.span,
        )

    @contextmanager
    def _nested(self, tok: Token) -> Iterator[None]:
        self.depth += 1
        try:
            if self.depth > self.max_depth:
                raise StackLimitError(
                    f"Nesting exceeds the maximum depth of {self.max_depth}", tok.span
                )
            yield
        finally:
            self.depth -= 1

    def _bounded(self, node: ASTNode, tok: Token) -> None:
        """Rejects an operator chain whose tree would nest deeper than `max_depth`."""
        if self.depth + node.height > self.max_depth:
            raise StackLimitError(
                f"Expression nests deeper than the maximum depth of {self.max_depth}",
                tok.span,
            )

    # Node helpers

    @staticmethod
    def _leaf(kind: str, tok: Token, value: str | None = None) -> ASTNode:
        return ASTNode(
            kind,
            tok.value if value is None else value,
            line=tok.line,
            col=tok.col,
            start=tok.start,
            end=tok.end,
        )

    def _node(
        self,
        kind: str,
        begin: Begin,
        children: list[ASTNode],
        fields: dict | None = None,
        value: str | None = None,
        end: int | None = None,
    ) -> ASTNode:
        return ASTNode(
            kind,
            value,
            children,
            line=begin.line,
            col=begin.col,
            fields=fields,
            start=begin.start,
            end=self.previous().end if end is None else end,
        )

    # Program structure

    def parse(self) -> ASTNode:
        """Parses the whole token stream into a `source_file` node."""
        logger.debug("parsing %d tokens (strict=%s)", len(self.tokens), self.strict)
        stmts = self._parse_statements(closer=None)
        eof = self.current()
        root = ASTNode(
            "source_file", children=stmts, line=1, col=1, start=0, end=eof.end
        )
        root.errors = list(self.errors)
        root.trivia = list(self.trivia)
        return root

    def _parse_statements(self, closer: str | None) -> list[ASTNode]:
        stmts: list[ASTNode] = []
        while True:
            tok = self.current()
            if tok.type in _SEPARATORS:
                self.advance()
                continue
            if tok.type == "EOF" or tok.type == closer:
                return stmts
            try:
                stmts.append(self.parse_statement())
            except StpError as e:
                if self.strict:
                    raise
                stmts.append(self._recover(e, tok, in_block=closer is not None))

    def _recover(self, error: StpError, start_tok: Token, in_block: bool) -> ASTNode:
        """Records `error` and skips to the end of the broken statement."""
        self.errors.append(error)
        logger.debug("recovering from %r at line %d", error.message, error.span.line)

        braces = 0
        while True:
            tok = self.current()
            if tok.type == "EOF":
                break
            if braces == 0 and tok.type in _SEPARATORS:
                break
            if tok.type == "LBRACE":
                braces += 1
            elif tok.type == "RBRACE":
                if braces == 0 and in_block:
                    break
                braces = max(braces - 1, 0)
            self.advance()

        if self.current() is start_tok and start_tok.type != "EOF":
            self.advance()
        end = max(self.previous().end, start_tok.end)
        return ASTNode(
            "ERROR",
            error.message,
            line=start_tok.line,
            col=start_tok.col,
            start=start_tok.start,
            end=end,
        )

    def parse_block(self) -> ASTNode:
        """Parses a `{ ... }` block into a `block` node."""
        opener = self.current()
        if opener.type != "LBRACE":
            raise StpSyntaxError(
                f"Expected '{{' to start a block, got {self._describe(opener)}",
                opener.span,
            )
        self.advance()
        with self._nested(opener):
            stmts = self._parse_statements(closer="RBRACE")
            self._close(opener)
        return self._node("block", opener, stmts)

    # Statements

    def parse_statement(self) -> ASTNode:
        """Parses one statement, choosing the form from its first token."""
        tok = self.current()

        if tok.type == "COMMENT":
            self.advance()
            return self._leaf("comment", tok)
        if tok.type == "SYM":
            return self.parse_symbol_decl()
        if tok.type == "IF":
            return self.parse_if()
        if tok.type == "WHILE":
            return self.parse_while()
        if tok.type == "FOR":
            return self.parse_for()
        if tok.type == "FN":
            return self.parse_function()
        if tok.type == "IMPORT":
            return self.parse_import()
        if tok.type == "RET":
            return self.parse_return()
        if tok.type in ("BREAK", "CONT"):
            return self.parse_loop_control()
        if tok.type == "EXIT":
            self.advance()
            return self._leaf("exit", tok)
        if tok.type in _CLOSERS:
            raise UnbalancedDelimiterError(f"Unmatched '{tok.value}'", tok.span)
        if tok.type in ("ELSE", "ELSEIF"):
            raise StpSyntaxError(f"'{tok.value}' without a preceding 'if'", tok.span)
        if tok.type == "IDENT" and self.peek().type == "ASSIGN":
            return self.parse_assignment()

        expr = self.parse_expression()
        semi = self.match("SEMI", strict=False)
        return self._node(
            "expression_statement",
            expr,
            [expr],
            value=semi.value if semi else None,
        )

    def parse_assignment(self) -> ASTNode:
        name_tok = self.expect("IDENT")
        name = self._leaf("identifier", name_tok)
        self.expect("ASSIGN")
        expr = self.parse_expression()
        semi = self.match("SEMI", strict=False)
        return self._node(
            "assignment",
            name,
            [name, expr],
            {Field.ASSIGN_NAME: name, Field.ASSIGN_EXPR: expr},
            value=semi.value if semi else None,
        )

    def parse_symbol_decl(self) -> ASTNode:
        sym_tok = self.expect("SYM")
        name = self._leaf("identifier", self.expect("IDENT"))
        return self._node(
            "symbol_decl_statement", sym_tok, [name], {Field.SYM_NAME: name}
        )

    def parse_if(self) -> ASTNode:
        """Parses `if cond { } (elseif cond { })* (else { })?`."""
        if_tok = self.expect("IF")
        condition = self.parse_expression()
        body = self.parse_block()
        children = [condition, body]

        seen_else = False
        while self._next_significant().type in ("ELSEIF", "ELSE"):
            while self.current().type == "NEWLINE":
                self.advance()
            tok = self.advance()
            if tok.type == "ELSEIF":
                if seen_else:
                    raise StpSyntaxError("'elseif' cannot follow 'else'", tok.span)
                cond = self.parse_expression()
                block = self.parse_block()
                children.append(
                    self._node(
                        "elseif_clause",
                        tok,
                        [cond, block],
                        {Field.CONDITION: cond, Field.BODY: block},
                    )
                )
            else:
                if seen_else:
                    raise StpSyntaxError("An 'if' can have only one 'else'", tok.span)
                seen_else = True
                block = self.parse_block()
                children.append(
                    self._node("else_clause", tok, [block], {Field.BODY: block})
                )

        return self._node(
            "if_else_stmt",
            if_tok,
            children,
            {Field.CONDITION: condition, Field.BODY: body},
        )

    def _next_significant(self) -> Token:
        offset = 0
        while self.peek(offset).type == "NEWLINE":
            offset += 1
        return self.peek(offset)

    def _loop_body(self) -> ASTNode:
        self.loop_depth += 1
        try:
            return self.parse_block()
        finally:
            self.loop_depth -= 1

    def parse_while(self) -> ASTNode:
        while_tok = self.expect("WHILE")
        cond = self.parse_expression()
        body = self._loop_body()
        return self._node(
            "while_stmt",
            while_tok,
            [cond, body],
            {Field.LOOP_EXPR: cond, Field.LOOP_BODY: body},
        )

    def parse_for(self) -> ASTNode:
        for_tok = self.expect("FOR")
        var = self._leaf("identifier", self.expect("IDENT"))
        self.expect("IN")
        iterable = self.parse_expression()
        body = self._loop_body()
        return self._node(
            "for_in_stmt",
            for_tok,
            [var, iterable, body],
            {Field.LOOP_VAR: var, Field.LOOP_EXPR: iterable, Field.LOOP_BODY: body},
        )

    def parse_loop_control(self) -> ASTNode:
        tok = self.advance()
        if self.loop_depth == 0:
            raise StpSyntaxError(
                f"'{tok.value}' is only allowed inside a loop body", tok.span
            )
        return self._leaf(tok.value, tok)

    def parse_return(self) -> ASTNode:
        ret_tok = self.expect("RET")
        expr = self.parse_expression()
        return self._node("return_stmt", ret_tok, [expr], {Field.RET_EXPR: expr})

    def parse_import(self) -> ASTNode:
        import_tok = self.expect("IMPORT")
        if self.current().type != "IDENT":
            raise StpSyntaxError(
                f"Expected module name after 'import', got {self._describe(self.current())}",
                self.current().span,
            )
        name = self.parse_member_access(matrix=False)
        return self._node(
            "import_statement", import_tok, [name], {Field.MODULE_NAME: name}
        )

    def parse_function(self) -> ASTNode:
        """Parses `fn name(a, b, k=default) { body }`."""
        fn_tok = self.expect("FN")
        name = self._leaf("identifier", self.expect("IDENT"))
        opener = self.current()
        self.expect("LPAREN")
        pos_args, keyword_args = self._parse_arguments(opener, definition=True)

        saved_loops, self.loop_depth = self.loop_depth, 0
        try:
            body = self.parse_block()
        finally:
            self.loop_depth = saved_loops

        return self._node(
            "function_definition",
            fn_tok,
            [name, pos_args, keyword_args, body],
            {
                Field.FN_NAME: name,
                Field.POS_ARGS: pos_args,
                Field.KEYWORD_ARGS: keyword_args,
                Field.FN_BODY: body,
            },
        )

    def _parse_arguments(
        self, opener: Token, definition: bool
    ) -> tuple[ASTNode, ASTNode]:
        """Parses an argument list after `(` through the closing `)`.

        Positional entries come first, then `name = value` pairs. In a definition the
        positional entries must be plain names, and a keyword-only list may open
        with a separating comma: `fn f(, k=1)`.
        """
        positional: list[ASTNode] = []
        keyword: list[ASTNode] = []

        if (
            definition
            and self.current().type == "COMMA"
            and self.peek().type == "IDENT"
            and self.peek(2).type == "ASSIGN"
        ):
            self.advance()

        while self.current().type != "RPAREN":
            tok = self.current()
            if tok.type == "EOF" or tok.type in ("RBRACK", "RBRACE"):
                raise UnbalancedDelimiterError(
                    f"'{opener.value}' is never closed", opener.span
                )
            if tok.type == "IDENT" and self.peek().type == "ASSIGN":
                keyword.append(self._parse_keyword_argument())
            elif keyword:
                raise StpSyntaxError(
                    "Positional argument follows keyword argument", tok.span
                )
            elif definition:
                positional.append(self._leaf("identifier", self.expect("IDENT")))
            else:
                positional.append(self.parse_expression())

            if self.current().type == "COMMA":
                comma = self.advance()
                if self.current().type == "RPAREN":
                    raise StpSyntaxError("Trailing ',' in argument list", comma.span)
            elif self.current().type != "RPAREN":
                self._close(opener)
        close = self.advance()

        pos_node = ASTNode(
            "pos_args",
            children=positional,
            line=opener.line,
            col=opener.col,
            start=opener.start,
            end=close.end,
        )
        kw_node = ASTNode(
            "keyword_args",
            children=keyword,
            line=opener.line,
            col=opener.col,
            start=opener.start,
            end=close.end,
        )
        return pos_node, kw_node

    def _parse_keyword_argument(self) -> ASTNode:
        name = self._leaf("identifier", self.expect("IDENT"))
        self.expect("ASSIGN")
        value = self.parse_expression()
        return self._node(
            "keyword_argument",
            name,
            [name, value],
            {Field.ARGUMENT_NAME: name, Field.ARGUMENT_VALUE: value},
        )

    # Expressions

    def parse_expression(
        self, min_prec: int = BINARY_LEFT_0, matrix: bool = False
    ) -> ASTNode:
        """Parses an expression by precedence climbing.

        Args:
            min_prec: Lowest binary precedence level this call may consume.
            matrix: True for matrix elements, where `a -b` is two elements.
        """
        with self._nested(self.current()):
            lhs = self.parse_unary(matrix)
            while True:
                tok = self.current()
                info = PRECEDENCE.get(tok.type)
                if info is None:
                    break
                prec, assoc = info
                if prec < min_prec:
                    break
                if matrix and self._starts_element(tok):
                    break
                self.advance()
                op = self._leaf("operator", tok)
                rhs = self.parse_expression(prec if assoc == RIGHT else prec + 1, matrix)
                lhs = self._node(
                    "binary_expression",
                    lhs,
                    [lhs, op, rhs],
                    {Field.LHS: lhs, Field.OPERATOR: op, Field.RHS: rhs},
                    end=rhs.end,
                )
                self._bounded(lhs, tok)
            return lhs

    def _starts_element(self, tok: Token) -> bool:
        return (
            tok.type in ("PLUS", "SUB")
            and tok.spaced
            and not self.peek().spaced
            and self.peek().type not in ("EOF", "RBRACK")
        )

    def parse_unary(self, matrix: bool = False) -> ASTNode:
        tok = self.current()
        if tok.type not in UNARY_OPS:
            return self.parse_suffix(matrix)
        self.advance()
        op = self._leaf("operator", tok)
        with self._nested(tok):
            operand = self.parse_unary(matrix)
        return self._node(
            "unary_expression",
            tok,
            [op, operand],
            {Field.UNARY_OP: op, Field.OPERAND: operand},
            end=operand.end,
        )

    def parse_suffix(self, matrix: bool = False) -> ASTNode:
        operand = self.parse_primary(matrix)
        while self.current().type in SUFFIX_OPS and not self.current().spaced:
            tok = self.advance()
            op = self._leaf("operator", tok)
            operand = self._node(
                "suffix_expression",
                operand,
                [operand, op],
                {Field.OPERAND: operand, Field.OPERATOR: op},
            )
            self._bounded(operand, tok)
        return operand

    def parse_primary(self, matrix: bool = False) -> ASTNode:
        """Parses matrix, range, bracketed, call, member access, number or string."""
        tok = self.current()

        if tok.type == "LBRACK":
            return self.parse_matrix()
        if tok.type == "NUMBER" and self.peek().type == "ELLIPSIS":
            return self.parse_range()
        if tok.type == "LPAREN":
            return self.parse_bracketed()
        if tok.type == "IDENT":
            target = self.parse_member_access(matrix)
            nxt = self.current()
            if nxt.type == "LPAREN" and not (matrix and nxt.spaced):
                return self.parse_call(target)
            return target
        if tok.type == "NUMBER":
            self.advance()
            nxt = self.current()
            if nxt.type == "PERCENT" and not nxt.spaced:
                self.advance()
                return self._node("percentage", tok, [], value=tok.value + nxt.value)
            return self._leaf("number", tok)
        if tok.type == "STRING":
            return self.parse_string()
        raise StpSyntaxError(f"Expected expression, got {self._describe(tok)}", tok.span)

    def parse_bracketed(self) -> ASTNode:
        opener = self.expect("LPAREN")
        if self.current().type == "RPAREN":
            raise StpSyntaxError("Empty parentheses", self.current().span)
        expr = self.parse_expression()
        self._close(opener)
        return self._node("bracketed_expr", opener, [expr])

    def parse_member_access(self, matrix: bool = False) -> ASTNode:
        """Parses `a` or `a.b.c` into an `identifier_or_member_access` node."""
        first = self.expect("IDENT")
        parts = [self._leaf("identifier", first)]
        while self.current().type == "DOT" and not (matrix and self.current().spaced):
            self.advance()
            parts.append(self._leaf("identifier", self.expect("IDENT")))
        return self._node(
            "identifier_or_member_access",
            first,
            parts,
            value=".".join(p.value or "" for p in parts),
        )

    def parse_call(self, target: ASTNode) -> ASTNode:
        opener = self.expect("LPAREN")
        with self._nested(opener):
            pos_args, keyword_args = self._parse_arguments(opener, definition=False)
        return self._node(
            "function_call",
            target,
            [target, pos_args, keyword_args],
            {
                Field.FN_NAME: target,
                Field.POS_ARGS: pos_args,
                Field.KEYWORD_ARGS: keyword_args,
            },
        )

    def parse_matrix(self) -> ASTNode:
        """Parses `[a b; c d]`. Rows are non-empty; only the last lacks a `;`."""
        opener = self.expect("LBRACK")
        rows: list[ASTNode] = []
        with self._nested(opener):
            while True:
                row_start = self.current()
                elements: list[ASTNode] = []
                while self.current().type not in ("SEMI", "RBRACK", "EOF", "RPAREN", "RBRACE"):
                    elements.append(self.parse_expression(matrix=True))
                    self.match("COMMA", strict=False)
                if not elements:
                    raise StpSyntaxError("Matrix rows cannot be empty", row_start.span)
                if self.current().type == "SEMI":
                    self.advance()
                    rows.append(self._node("matrix_row", row_start, elements))
                    continue
                self._close(opener)
                rows.append(
                    self._node(
                        "matrix_row_last", row_start, elements, end=elements[-1].end
                    )
                )
                break
        return self._node("matrix", opener, rows)

    def parse_range(self) -> ASTNode:
        """Parses `start...end` or `start...step...end`; every bound is a number."""
        bounds = [self._leaf("number", self.expect("NUMBER"))]
        while self.current().type == "ELLIPSIS":
            dots = self.advance()
            if len(bounds) == 3:
                raise StpSyntaxError("A range takes at most three numbers", dots.span)
            if self.current().type != "NUMBER":
                raise StpSyntaxError(
                    f"Range bounds must be numbers, got {self._describe(self.current())}",
                    self.current().span,
                )
            bounds.append(self._leaf("number", self.advance()))

        if len(bounds) == 2:
            fields = {Field.START: bounds[0], Field.END: bounds[1]}
        else:
            fields = {Field.START: bounds[0], Field.STEP: bounds[1], Field.END: bounds[2]}
        return self._node("range_expr", bounds[0], bounds, fields)

    def parse_string(self) -> ASTNode:
        tok = self.expect("STRING")
        chars = [self._segment_node(seg) for seg in tok.segments]
        return self._node("string", tok, chars, {Field.STRING_CHARS: chars}, end=tok.end)

    def _segment_node(self, seg: StringSegment) -> ASTNode:
        def node(children: list[ASTNode] | None = None, fields: dict | None = None) -> ASTNode:
            value = None if seg.kind == "formatting_snippet" else seg.text
            return ASTNode(
                seg.kind,
                value,
                children,
                line=seg.line,
                col=seg.col,
                fields=fields,
                start=seg.start,
                end=seg.end,
            )

        if seg.kind == "unicode_escape":
            digits_start = seg.end - len(seg.digits or "")
            digits = ASTNode(
                "hex_digits",
                seg.digits,
                line=seg.line,
                col=seg.col + 2,
                start=digits_start,
                end=seg.end,
            )
            return node([digits], {Field.HEX_DIGITS: digits})
        if seg.kind == "formatting_snippet":
            expr = self._parse_snippet(seg)
            return node([expr], {Field.FORMATTING_EXPR: expr})
        return node()

    def _parse_snippet(self, seg: StringSegment) -> ASTNode:
        logger.debug("parsing formatting snippet at line %d, col %d", seg.line, seg.col)
        sub = Parser(seg.tokens, strict=True, max_depth=self.max_depth, depth=self.depth)
        self.trivia.extend(sub.trivia)
        if sub.current().type == "EOF":
            raise StpSyntaxError(
                "Formatting snippet needs an expression",
                Span(seg.start, seg.end, seg.line, seg.col),
            )
        expr = sub.parse_expression()
        leftover = sub.current()
        if leftover.type != "EOF":
            raise StpSyntaxError(
                f"Unexpected {self._describe(leftover)} in formatting snippet",
                leftover.span,
            )
        return expr


def _lex(
    stream: CharacterStream, strict: bool, max_depth: int | None
) -> tuple[list[Token], StpError | None, int]:
    """Lexes the stream. In recovery mode a lex error ends the token list early."""
    lexer = Lexer(stream, max_depth=max_depth)
    tokens: list[Token] = []
    while True:
        before = stream.position
        line, col = stream.line, stream.column
        try:
            tok = lexer.next_token()
        except StpError as e:
            if strict:
                raise
            logger.debug("lexing stopped early: %s", e)
            tokens.append(Token("EOF", "", line, col, before, before))
            return tokens, e, before
        tokens.append(tok)
        if tok.type == "EOF":
            return tokens, None, tok.end


def _parse_stream(
    stream: CharacterStream, strict: bool, max_depth: int | None
) -> ASTNode:
    tokens, lex_error, lex_stop = _lex(stream, strict, max_depth)
    root = Parser(tokens, strict=strict, max_depth=max_depth).parse()
    if lex_error is not None:
        source = stream.source
        tail = ASTNode(
            "ERROR",
            lex_error.message,
            line=lex_error.span.line,
            col=lex_error.span.col,
            start=lex_stop,
            end=len(source),
        )
        root.children.append(tail)
        root.errors.append(lex_error)
        root.end = len(source)
    return root


def parse(source: str, strict: bool = True, max_depth: int | None = None) -> ASTNode:
    """Lexes and parses a complete Stp program.

    Args:
        source (str): Program text.
        strict (bool): Raise on the first error (default) or return a partial tree
            with `ERROR` nodes and the errors on `root.errors`.
        max_depth (int, optional): Nesting limit. Defaults to `default_max_depth()`.

    Returns:
        ASTNode: The `source_file` root.

    Raises:
        StpError: In strict mode, on the first lexing or parsing error.
    """
    return _parse_stream(CharacterStream(source), strict, max_depth)


def _separator_end(source: str, stmt: ASTNode) -> int | None:
    """Offset just past the `\\n` or `;` ending `stmt`, if any."""
    if stmt.value == ";":
        return stmt.end
    i = stmt.end
    while i < len(source) and source[i] in " \t\r":
        i += 1
    if i < len(source) and source[i] in "\n;":
        return i + 1
    return None


def reparse(
    tree: ASTNode,
    source: str,
    start: int,
    end: int,
    replacement: str,
    strict: bool = True,
    max_depth: int | None = None,
) -> ASTNode:
    """Parses `source` with `source[start:end]` replaced, reusing unaffected statements.

    Top-level statements of `tree` whose text and terminating separator lie before
    `start` are kept as-is; lexing resumes right after the last of them. A tree with
    errors is never reused.

    Args:
        tree (ASTNode): The `source_file` previously parsed from `source`.
        source (str): The text `tree` was parsed from.
        start, end (int): The replaced range of `source`.
        replacement (str): The new text for that range.

    Returns:
        ASTNode: A tree for the edited text, equal to a full parse of it.
    """
    if not 0 <= start <= end <= len(source):
        raise ValueError(f"Invalid edit range {start}..{end} for source of length {len(source)}")
    new_source = source[:start] + replacement + source[end:]

    if tree.errors or tree.has_error():
        logger.debug("previous tree has errors, parsing from scratch")
        return parse(new_source, strict=strict, max_depth=max_depth)

    reused: list[ASTNode] = []
    for stmt in tree.children:
        sep_end = _separator_end(source, stmt)
        if sep_end is None or sep_end > start:
            break
        reused.append(stmt)
    # a following `else` may still attach to a reused `if`
    if reused and reused[-1].kind == "if_else_stmt":
        reused.pop()
    if not reused:
        return parse(new_source, strict=strict, max_depth=max_depth)
    resume = _separator_end(source, reused[-1]) or 0

    logger.debug("reusing %d of %d statements", len(reused), len(tree.children))
    line = new_source.count("\n", 0, resume) + 1
    col = resume - (new_source.rfind("\n", 0, resume) + 1) + 1
    rest = _parse_stream(CharacterStream(new_source, resume, line, col), strict, max_depth)

    root = ASTNode(
        "source_file",
        children=reused + rest.children,
        line=1,
        col=1,
        start=0,
        end=len(new_source),
    )
    root.errors = rest.errors
    root.trivia = [c for c in tree.trivia if c.end <= resume] + rest.trivia
    return root


__all__ = ["Parser", "parse", "reparse"]
