"""
Renders Stp syntax trees as an indented text dump.

Every node is printed on its own line as ``'kind'``, followed by ``: "value"`` for
nodes that carry text. Children are indented two spaces below their parent and
prefixed with their field label when they have one:

    'source_file'
      'assignment'
        assign_name: 'identifier' : "x"
        assign_expr: 'number' : "1"

Recovery-mode errors attached to the root are listed after the tree.
"""

from stp.stp_ast import ASTNode


class TreeEmitter:
    """Emits an indented dump of a whole tree.

    Attributes:
        lines (list[str]): Accumulated lines of output.
    """

    def __init__(self) -> None:
        self.lines: list[str] = []

    def get_output(self) -> str:
        return "\n".join(self.lines) + ("\n" if self.lines else "")

    def emit_source_file(self, node: ASTNode) -> None:
        self._dump(node, 0, None)
        for error in node.errors:
            self.lines.append(f"{error.kind}: {error}")

    def _dump(self, node: ASTNode, depth: int, label: str | None) -> None:
        text = "  " * depth
        if label:
            text += f"{label}: "
        text += f"'{node.kind}'"
        if node.value is not None:
            text += f' : "{node.value}"'
        self.lines.append(text)

        labels: dict[int, str] = {}
        for name in node.field_names():
            for child in node.fields(name):
                labels.setdefault(id(child), name)
        for child in node.children:
            self._dump(child, depth + 1, labels.get(id(child)))
