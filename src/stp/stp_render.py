"""
Provides the `Renderer` class and emitter interface for turning Stp syntax trees into text.

Classes and Features:
    - Emitter (Protocol): Interface for all output emitters. Requires `__init__` and `get_output`.
    - SourceEmitter: Canonical Stp source (target ``stp``).
    - TreeEmitter: Indented node dump (target ``tree``).
    - JsonEmitter: JSON document (target ``json``).
    - Renderer: Selects the emitter for a target and dispatches the tree's root to
      the matching `emit_*` method.

Example:
    >>> Renderer("stp").render(parse("x=1+2"))
    'x = 1 + 2\\n'

Raises:
    ValueError: If the target is not supported.
    TypeError: If the tree is not an ASTNode.
    NotImplementedError: If the emitter lacks an `emit_*` method for the root's kind.
"""

import logging
from typing import Protocol

from stp.emitters.json_emitter import JsonEmitter
from stp.emitters.source_emitter import SourceEmitter
from stp.emitters.tree_emitter import TreeEmitter
from stp.stp_ast import ASTNode

logger = logging.getLogger(__name__)


class Emitter(Protocol):  # pragma: no cover
    """Protocol for all Stp emitters.

    Methods:
        __init__(): Initializes the emitter.
        get_output(): Returns the complete emitted text.
    """

    def __init__(self) -> None: ...  # pragma: no cover

    def get_output(self) -> str: ...  # pragma: no cover


EmitterType = type[Emitter]
"""Alias for a concrete Emitter class type."""

EMITTERS: dict[str, EmitterType] = {
    "stp": SourceEmitter,
    "source": SourceEmitter,
    "tree": TreeEmitter,
    "json": JsonEmitter,
}


class Renderer:
    """Dispatches Stp syntax trees to the emitter for an output target.

    Attributes:
        target (str): The normalized target name.
    """

    def __init__(self, target: str) -> None:
        """Initializes the renderer with the desired output target.

        Args:
            target: One of "stp", "tree" or "json" (case-insensitive).

        Raises:
            ValueError: If the target is not supported.
        """
        target = target.lower()
        if target not in EMITTERS:
            raise ValueError(f"Unknown render target: {target!r}")
        self.target = target
        self.emitter_type = EMITTERS[target]

    def render(self, tree: ASTNode) -> str:
        """Renders a tree with a fresh emitter and returns the text."""
        if not isinstance(tree, ASTNode):
            raise TypeError("Renderer expects an ASTNode.")
        emitter = self.emitter_type()
        self._visit(emitter, tree)
        logger.debug("rendered %s tree as %s", tree.kind, self.target)
        return emitter.get_output()

    def _visit(self, emitter: Emitter, node: ASTNode) -> None:
        """Invokes the emitter's method for a node.

        Raises:
            NotImplementedError: If the emitter does not support the node kind.
        """
        method_name = f"emit_{node.kind}"
        if hasattr(emitter, method_name):
            getattr(emitter, method_name)(node)
        else:
            raise NotImplementedError(
                f"No emitter method for node kind '{node.kind}' "
                f"(line {node.line}, col {node.col})"
            )


__all__ = ["EMITTERS", "Emitter", "Renderer"]
