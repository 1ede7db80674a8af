"""
Renders Stp syntax trees back into canonical Stp source.

This module defines the `SourceEmitter` class, used by the `Renderer` for the
``stp`` target. The emitted text parses back into a tree with the same structure as
the input tree, so it doubles as a formatter.

Layout:
    - One statement per line, blocks indented by four spaces, `} elseif` / `} else`
      on the closing brace's line.
    - Binary operators surrounded by single spaces; unary and suffix operators
      attached to their operand.
    - Matrices as `[a b; c d]`, ranges as `1...2...10`, calls as `f(a, k=1)`.
    - String segments keep their original spelling; snippets are re-rendered as
      `\\{expr\\}`.
    - `ERROR` nodes from recovery mode become `# error: ...` comments.

Raises:
    NotImplementedError: If a node kind has no emitter method.
"""

from stp.stp_ast import ASTNode, Field


class SourceEmitter:
    """Emits Stp source from syntax tree nodes.

    Statement kinds are handled by `emit_<kind>` methods that append lines;
    expression kinds by `emit_expr_<kind>` methods that return strings.

    Attributes:
        lines (list[str]): Accumulated lines of output.
        indent (int): Current block nesting.
    """

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.indent = 0

    def indent_str(self) -> str:
        return "    " * self.indent

    def get_output(self) -> str:
        return "\n".join(self.lines) + ("\n" if self.lines else "")

    def _line(self, text: str) -> None:
        self.lines.append(f"{self.indent_str()}{text}")

    def _visit(self, node: ASTNode) -> None:
        meth = getattr(self, f"emit_{node.kind}", None)
        if meth is None:
            if hasattr(self, f"emit_expr_{node.kind}"):
                self._line(self.emit_expr(node))
                return
            raise NotImplementedError(f"SourceEmitter: no emitter for {node.kind}")
        meth(node)

    def _block(self, header: str, block: ASTNode | None, attach: bool = False) -> None:
        """Emits `header {`, the block's statements and `}`.

        With `attach`, the header continues the previous `}` line.
        """
        if attach and self.lines:
            self.lines[-1] += f" {header} {{"
        else:
            self._line(f"{header} {{")
        self.indent += 1
        for stmt in block.children if block is not None else []:
            self._visit(stmt)
        self.indent -= 1
        self._line("}")

    # Statements

    def emit_source_file(self, node: ASTNode) -> None:
        for stmt in node.children:
            self._visit(stmt)

    def emit_comment(self, node: ASTNode) -> None:
        self._line(str(node.value))

    def emit_ERROR(self, node: ASTNode) -> None:
        self._line(f"# error: {node.value}")

    def emit_assignment(self, node: ASTNode) -> None:
        name = self.emit_expr(node.field(Field.ASSIGN_NAME))
        expr = self.emit_expr(node.field(Field.ASSIGN_EXPR))
        self._line(f"{name} = {expr}{node.value or ''}")

    def emit_expression_statement(self, node: ASTNode) -> None:
        self._line(f"{self.emit_expr(node.children[0])}{node.value or ''}")

    def emit_symbol_decl_statement(self, node: ASTNode) -> None:
        self._line(f"sym {self.emit_expr(node.field(Field.SYM_NAME))}")

    def emit_if_else_stmt(self, node: ASTNode) -> None:
        cond = self.emit_expr(node.field(Field.CONDITION))
        self._block(f"if {cond}", node.field(Field.BODY))
        for clause in node.children[2:]:
            body = clause.field(Field.BODY)
            if clause.kind == "elseif_clause":
                cond = self.emit_expr(clause.field(Field.CONDITION))
                self._block(f"elseif {cond}", body, attach=True)
            else:
                self._block("else", body, attach=True)

    def emit_while_stmt(self, node: ASTNode) -> None:
        cond = self.emit_expr(node.field(Field.LOOP_EXPR))
        self._block(f"while {cond}", node.field(Field.LOOP_BODY))

    def emit_for_in_stmt(self, node: ASTNode) -> None:
        var = self.emit_expr(node.field(Field.LOOP_VAR))
        iterable = self.emit_expr(node.field(Field.LOOP_EXPR))
        self._block(f"for {var} in {iterable}", node.field(Field.LOOP_BODY))

    def emit_function_definition(self, node: ASTNode) -> None:
        name = self.emit_expr(node.field(Field.FN_NAME))
        args = self._arguments(node)
        self._block(f"fn {name}({args})", node.field(Field.FN_BODY))

    def emit_import_statement(self, node: ASTNode) -> None:
        self._line(f"import {self.emit_expr(node.field(Field.MODULE_NAME))}")

    def emit_return_stmt(self, node: ASTNode) -> None:
        self._line(f"ret {self.emit_expr(node.field(Field.RET_EXPR))}")

    def emit_break(self, node: ASTNode) -> None:
        self._line("break")

    def emit_cont(self, node: ASTNode) -> None:
        self._line("cont")

    def emit_exit(self, node: ASTNode) -> None:
        self._line("exit")

    # Expressions

    def emit_expr(self, node: ASTNode | None) -> str:
        """Emits an expression node as a single line of Stp source."""
        if node is None:
            raise TypeError("Expected an expression node, got None")
        meth = getattr(self, f"emit_expr_{node.kind}", None)
        if meth is None:
            raise NotImplementedError(f"No expression emitter for kind '{node.kind}'")
        return str(meth(node))

    def emit_expr_identifier(self, node: ASTNode) -> str:
        return str(node.value)

    emit_expr_identifier_or_member_access = emit_expr_identifier
    emit_expr_number = emit_expr_identifier
    emit_expr_percentage = emit_expr_identifier
    emit_expr_operator = emit_expr_identifier

    def emit_expr_binary_expression(self, node: ASTNode) -> str:
        lhs = self.emit_expr(node.field(Field.LHS))
        rhs = self.emit_expr(node.field(Field.RHS))
        return f"{lhs} {node.field(Field.OPERATOR).value} {rhs}"

    def emit_expr_unary_expression(self, node: ASTNode) -> str:
        return f"{node.field(Field.UNARY_OP).value}{self.emit_expr(node.field(Field.OPERAND))}"

    def emit_expr_suffix_expression(self, node: ASTNode) -> str:
        return f"{self.emit_expr(node.field(Field.OPERAND))}{node.field(Field.OPERATOR).value}"

    def emit_expr_bracketed_expr(self, node: ASTNode) -> str:
        return f"({self.emit_expr(node.children[0])})"

    def emit_expr_range_expr(self, node: ASTNode) -> str:
        return "...".join(self.emit_expr(bound) for bound in node.children)

    def emit_expr_matrix(self, node: ASTNode) -> str:
        rows = (" ".join(self.emit_expr(e) for e in row.children) for row in node.children)
        return f"[{'; '.join(rows)}]"

    def emit_expr_function_call(self, node: ASTNode) -> str:
        return f"{self.emit_expr(node.field(Field.FN_NAME))}({self._arguments(node)})"

    def emit_expr_keyword_argument(self, node: ASTNode) -> str:
        name = self.emit_expr(node.field(Field.ARGUMENT_NAME))
        return f"{name}={self.emit_expr(node.field(Field.ARGUMENT_VALUE))}"

    def _arguments(self, node: ASTNode) -> str:
        args: list[str] = []
        for container in (Field.POS_ARGS, Field.KEYWORD_ARGS):
            group = node.field(container)
            if group is not None:
                args.extend(self.emit_expr(arg) for arg in group.children)
        return ", ".join(args)

    def emit_expr_string(self, node: ASTNode) -> str:
        parts = []
        for seg in node.fields(Field.STRING_CHARS):
            if seg.kind == "formatting_snippet":
                parts.append(f"\\{{{self.emit_expr(seg.field(Field.FORMATTING_EXPR))}\\}}")
            else:
                parts.append(str(seg.value))
        return f'"{"".join(parts)}"'
