"""
Defines the concrete syntax tree node structure for the Stp language.

Classes:
    Field:
        The stable vocabulary of field names attached to nodes (``fn_name``,
        ``loop_var``, ``start``/``step``/``end`` ...). Downstream tools query nodes by
        these names, so renaming a member is a breaking change.

    ASTNode:
        A node in the syntax tree. Produced bottom-up by the parser, consumed by the
        renderers in ``stp.emitters`` and by external tools.

    ASTDict:
        TypedDict shape of ``ASTNode.to_dict()``, suitable for JSON output.

Each ASTNode tracks:
    kind (str): The grammar construct (e.g. "binary_expression", "while_stmt").
    value (str, optional): Source text for leaves (identifier names, numbers, operators,
        string segments). Assignment and expression statements hold ``";"`` when they
        were written with a trailing semicolon.
    children (list[ASTNode]): Ordered child nodes.
    fields: Named labels over the children, keyed by `Field`.
    line, col (int): 1-based position of the first character.
    start, end (int): Source offsets of the node's text.

Example:
    node = ASTNode("symbol_decl_statement", children=[name], fields={Field.SYM_NAME: name})
    node.field("sym_name") is name
"""

from collections.abc import Iterator
from enum import Enum
from typing import Any, TypedDict, Union


class Field(str, Enum):
    """Named child labels. Values are the public field names."""

    SYM_NAME = "sym_name"
    RET_EXPR = "ret_expr"
    LOOP_VAR = "loop_var"
    LOOP_EXPR = "loop_expr"
    LOOP_BODY = "loop_body"
    FN_NAME = "fn_name"
    FN_BODY = "fn_body"
    POS_ARGS = "pos_args"
    KEYWORD_ARGS = "keyword_args"
    ARGUMENT_NAME = "argument_name"
    ARGUMENT_VALUE = "argument_value"
    START = "start"
    STEP = "step"
    END = "end"
    OPERATOR = "operator"
    UNARY_OP = "unary_op"
    OPERAND = "operand"
    LHS = "lhs"
    RHS = "rhs"
    STRING_CHARS = "string_chars"
    FORMATTING_EXPR = "formatting_expr"
    HEX_DIGITS = "hex_digits"
    CONDITION = "condition"
    BODY = "body"
    ASSIGN_NAME = "assign_name"
    ASSIGN_EXPR = "assign_expr"
    MODULE_NAME = "module_name"


FieldKey = Union[Field, str]
FieldValue = Union["ASTNode", list["ASTNode"]]


class ASTDict(TypedDict, total=False):
    """
    TypedDict representation of an ASTNode used for serialization.

    Fields:
        kind (str): The node kind.
        value (str | None): Leaf text, if any.
        line (int): Line of the first character.
        col (int): Column of the first character.
        start (int): Start offset.
        end (int): End offset.
        fields (dict[str, list[int]]): Field name -> indexes into ``children``.
        children (list[ASTDict]): Child nodes.
    """

    kind: str
    value: str | None
    line: int
    col: int
    start: int
    end: int
    fields: dict[str, list[int]]
    children: list["ASTDict"]


class ASTNode:
    """
    Represents a node in the Stp concrete syntax tree.

    Args:
        kind (str): The node kind (e.g. "assignment", "range_expr").
        value (str, optional): Leaf text.
        children (list[ASTNode], optional): Ordered children.
        line (int): Source line number (default 0).
        col (int): Source column number (default 0).
        fields (dict, optional): Field -> child (or list of children). Every labelled
            node must also appear in `children`.
        start (int): Start offset.
        end (int): End offset.

    Attributes:
        height (int): Levels in the subtree rooted here, 1 for a leaf. Computed at
            construction from the children.
        errors (list): Errors collected while building this subtree in recovery mode.
            Only the root node populates it.
        trivia (list[ASTNode]): Comments the grammar skipped (inside brackets). Only
            the root node populates it.
    """

    def __init__(
        self,
        kind: str,
        value: str | None = None,
        children: list["ASTNode"] | None = None,
        line: int = 0,
        col: int = 0,
        fields: dict[FieldKey, FieldValue] | None = None,
        start: int = 0,
        end: int = 0,
    ):
        self.kind = kind
        self.value = value
        self.children: list["ASTNode"] = children or []
        self.line = line
        self.col = col
        self.start = start
        self.end = end
        self._fields: dict[Field, list["ASTNode"]] = {}
        for key, labelled in (fields or {}).items():
            nodes = labelled if isinstance(labelled, list) else [labelled]
            self._fields[Field(key)] = list(nodes)
        self.errors: list[Any] = []
        self.trivia: list["ASTNode"] = []
        self.height = 1 + max((c.height for c in self.children), default=0)

    def field(self, name: FieldKey) -> "ASTNode | None":
        """Returns the first child labelled `name`, or None."""
        nodes = self._fields.get(Field(name))
        return nodes[0] if nodes else None

    def fields(self, name: FieldKey) -> list["ASTNode"]:
        """Returns every child labelled `name`, in source order."""
        return list(self._fields.get(Field(name), []))

    def field_names(self) -> list[str]:
        return [f.value for f in self._fields]

    def walk(self) -> Iterator["ASTNode"]:
        """Yields this node and all descendants, depth first, pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def has_error(self) -> bool:
        return any(n.kind == "ERROR" for n in self.walk())

    def text(self, source: str) -> str:
        return source[self.start : self.end]

    def __repr__(self) -> str:
        parts = [f"{self.kind}"]
        if self.value is not None:
            parts.append(f"value={repr(self.value)}")
        if self._fields:
            parts.append(f"fields={self.field_names()}")
        if self.children:
            preview = ", ".join(repr(c) for c in self.children[:3])
            if len(self.children) > 3:
                preview += ", ..."
            parts.append(f"children=[{preview}]")
        return f"ASTNode({', '.join(parts)})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ASTNode):
            return False
        return (
            self.kind == other.kind
            and self.value == other.value
            and self.line == other.line
            and self.col == other.col
            and self.children == other.children
            and self._field_indexes() == other._field_indexes()
        )

    def same_structure(self, other: "ASTNode") -> bool:
        """Compares kind, value, children and fields, ignoring source positions."""
        if self.kind != other.kind or self.value != other.value:
            return False
        if len(self.children) != len(other.children):
            return False
        if self._field_indexes() != other._field_indexes():
            return False
        return all(a.same_structure(b) for a, b in zip(self.children, other.children))

    def _field_indexes(self) -> dict[str, list[int]]:
        indexes: dict[str, list[int]] = {}
        for name, nodes in self._fields.items():
            positions = []
            for node in nodes:
                for i, child in enumerate(self.children):
                    if child is node:
                        positions.append(i)
                        break
            indexes[name.value] = positions
        return indexes

    def to_dict(self) -> ASTDict:
        result: ASTDict = {
            "kind": self.kind,
            "value": self.value,
            "line": self.line,
            "col": self.col,
            "start": self.start,
            "end": self.end,
            "children": [c.to_dict() for c in self.children],
        }
        if self._fields:
            result["fields"] = self._field_indexes()
        return result


__all__ = ["ASTDict", "ASTNode", "Field"]
