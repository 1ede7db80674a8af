"""
Interactive read-parse-print loop for Stp.

Each entry is parsed (in recovery mode unless `:strict` is on) and the resulting
tree is printed with the current render target, followed by any diagnostics.
Input continues on `... ` prompts while brackets or braces are open or the line
ends with a backslash.

Commands:
    exit, quit          Leave the REPL.
    :target NAME        Switch the render target (tree, stp, json).
    :strict             Toggle fail-fast parsing.
"""

import logging

from stp.stp_errors import StpError
from stp.stp_parser import parse
from stp.stp_render import EMITTERS, Renderer

logger = logging.getLogger(__name__)

_OPEN = "([{"
_CLOSE = ")]}"


def open_delimiters(line: str) -> int:
    """Net count of opening brackets on a line, ignoring strings and comments."""
    count = 0
    in_string = False
    escaped = False
    for ch in line:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == "#":
            break
        if ch == '"':
            in_string = True
        elif ch in _OPEN:
            count += 1
        elif ch in _CLOSE:
            count -= 1
    return count


def handle_command(src: str, state: dict[str, object]) -> bool:
    """Applies a `:command`. Returns False when `src` is not a command."""
    if not src.startswith(":"):
        return False
    name, _, arg = src[1:].partition(" ")
    arg = arg.strip()
    if name == "target":
        if arg.lower() not in EMITTERS:
            print(f"[error] >>> Unknown target {arg!r}; choose from {', '.join(EMITTERS)}")
        else:
            state["target"] = arg.lower()
            print(f"[mode] >>> Target {state['target']}")
    elif name == "strict":
        state["strict"] = not state["strict"]
        print(f"[mode] >>> Strict mode {'ON' if state['strict'] else 'OFF'}")
    else:
        print(f"[error] >>> Unknown command :{name}")
    return True


def evaluate(src: str, target: str, strict: bool, max_depth: int | None = None) -> None:
    """Parses one REPL entry and prints the rendered tree and diagnostics."""
    try:
        tree = parse(src, strict=strict, max_depth=max_depth)
    except StpError as e:
        print(e.format(src, "<repl>"))
        return
    print(Renderer(target).render(tree), end="")
    for error in tree.errors:
        print(error.format(src, "<repl>"))


def start_repl(
    target: str = "tree", strict: bool = False, max_depth: int | None = None
) -> None:
    print(f"Stp REPL [target={target}]. Type 'exit' or 'quit' to leave.")
    state: dict[str, object] = {"target": target, "strict": strict}

    while True:
        try:
            src_lines: list[str] = []
            depth = 0
            while True:
                prompt = ">>> " if not src_lines else "... "
                line = input(prompt)
                if line.strip() in ("exit", "quit") and not src_lines:
                    print("Exiting Stp REPL.")
                    return
                src_lines.append(line)
                depth += open_delimiters(line)
                if depth <= 0 and not line.endswith("\\"):
                    break
            src = "\n".join(src_lines).strip()
            if not src:
                continue
            if handle_command(src, state):
                continue
            logger.debug("evaluating %d line(s)", len(src_lines))
            evaluate(src, str(state["target"]), bool(state["strict"]), max_depth)

        except (KeyboardInterrupt, EOFError):
            print("\nExiting Stp REPL.")
            break


def main() -> None:
    start_repl()


if __name__ == "__main__":
    main()
