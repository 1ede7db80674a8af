"""
Renders Stp syntax trees as JSON.

The document is `ASTNode.to_dict()` of the root, plus an ``errors`` list when the
tree was produced in recovery mode.
"""

import json
from typing import Any

from stp.stp_ast import ASTNode


class JsonEmitter:
    """Emits a JSON document for a whole tree."""

    def __init__(self, indent: int | None = 2) -> None:
        self.indent = indent
        self.document: dict[str, Any] = {}

    def get_output(self) -> str:
        return json.dumps(self.document, indent=self.indent, ensure_ascii=False) + "\n"

    def emit_source_file(self, node: ASTNode) -> None:
        self.document = dict(node.to_dict())
        if node.errors:
            self.document["errors"] = [
                {
                    "kind": error.kind,
                    "message": error.message,
                    "line": error.span.line,
                    "col": error.span.col,
                    "start": error.span.start,
                    "end": error.span.end,
                }
                for error in node.errors
            ]
