"""
Stp CLI Entrypoint.

This module provides the command-line interface for parsing Stp source code.
It supports rendering the syntax tree in several formats and an interactive REPL.

Features:
    - Read source from `.stp` files or inline strings.
    - Lex and parse, in fail-fast or recovery mode.
    - Render the tree as a node dump, canonical Stp source or JSON.
    - Output to console or file; diagnostics go to stderr.
    - Launch an interactive REPL.

Example usage:
    stp hello.stp
    stp -s "x = [1 2; 3 4]" -t json
    stp messy.stp --recover -t stp -o clean.stp
    stp --repl

Functions:
    run_stp(source: str, is_string: bool = False, target: str = "tree", out: str | None = None,
            recover: bool = False, max_depth: int | None = None) -> int:
        Executes the full pipeline (lex → parse → render → output) and returns an exit status.

    main() -> None:
        Parses CLI arguments and invokes the appropriate action (REPL or render).
"""

import argparse
import logging
import sys

from stp.stp_errors import StpError
from stp.stp_parser import parse
from stp.stp_render import Renderer

logger = logging.getLogger(__name__)


def report(error: StpError, source: str, filename: str) -> None:
    print(error.format(source, filename), file=sys.stderr)


def run_stp(
    source: str,
    is_string: bool = False,
    target: str = "tree",
    out: str | None = None,
    recover: bool = False,
    max_depth: int | None = None,
) -> int:
    """
    Run the Stp toolchain: lex, parse, render, and print or write the output.

    Args:
        source (str): The Stp source code or path to a `.stp` file.
        is_string (bool): If True, treats `source` as raw code instead of a file path.
        target (str): Render target ('tree', 'stp' or 'json'). Defaults to 'tree'.
        out (str | None): Optional path to write the output. If None, prints to stdout.
        recover (bool): Parse in recovery mode and render the partial tree.
        max_depth (int | None): Nesting limit override.

    Returns:
        int: 0 on success, 1 when the source has errors.

    Raises:
        ValueError: If `is_string` is False and the source does not end with '.stp'.
    """
    if not is_string and not source.endswith(".stp"):
        raise ValueError("Only .stp files are supported.")
    filename = "<string>"
    if not is_string:
        filename = source
        with open(source, encoding="utf-8") as f:
            source = f.read()

    logger.info("parsing %s (%d characters)", filename, len(source))
    try:
        tree = parse(source, strict=not recover, max_depth=max_depth)
    except StpError as e:
        report(e, source, filename)
        return 1

    text = Renderer(target).render(tree)
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("wrote %s output to %s", target, out)
    else:
        print(text, end="")

    for error in tree.errors:
        report(error, source, filename)
    return 1 if tree.errors else 0


def main(argv: list[str] | None = None) -> None:
    """
    Entry point for the Stp CLI.

    Parses command-line arguments and dispatches to the appropriate mode:
    - Launches the REPL if no arguments are passed or `--repl` is specified.
    - Otherwise, parses the source and renders it.

    Supported flags:
        - `-s`, `--string`: Interpret source as a raw string instead of a file path.
        - `-t`, `--target`: Output format ('tree', 'stp' or 'json'), default is 'tree'.
        - `-o`, `--out`: Write output to a file.
        - `--recover`: Keep parsing after errors and print the partial tree.
        - `--max-depth`: Maximum nesting depth.
        - `--repl`: Launch the interactive REPL.
        - `--log-level`: Logging threshold (default WARNING).
    """
    args_list = sys.argv[1:] if argv is None else argv
    if not args_list:
        # No args passed: open REPL instead
        from stp.stp_repl import start_repl

        start_repl()
        return
    parser = argparse.ArgumentParser(prog="stp")
    parser.add_argument("source", nargs="?", help="Filename or raw source (with -s)")
    parser.add_argument(
        "-s", "--string", action="store_true", help="Interpret source as literal string"
    )
    parser.add_argument(
        "-t",
        "--target",
        choices=("tree", "stp", "json"),
        default="tree",
        help="Output format (default: tree)",
    )
    parser.add_argument("-o", "--out", metavar="OUTFILE", help="Output to file")
    parser.add_argument(
        "--recover",
        action="store_true",
        help="Recover from errors and print the partial tree",
    )
    parser.add_argument(
        "--max-depth", type=int, metavar="N", help="Maximum nesting depth"
    )
    parser.add_argument(
        "--repl",
        action="store_true",
        help="Launch interactive REPL instead of parsing",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: WARNING)",
    )

    args = parser.parse_args(args_list)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if args.max_depth is not None and args.max_depth < 1:
        parser.error("--max-depth must be positive")

    if args.repl or args.source is None:
        from stp.stp_repl import start_repl

        start_repl(target=args.target, max_depth=args.max_depth)
        return

    try:
        status = run_stp(
            source=args.source,
            is_string=args.string,
            target=args.target,
            out=args.out,
            recover=args.recover,
            max_depth=args.max_depth,
        )
    except (ValueError, OSError) as e:
        print(f"stp: {e}", file=sys.stderr)
        status = 2
    if status:
        sys.exit(status)


if __name__ == "__main__" and not any("pytest" in arg for arg in sys.argv):
    main()
