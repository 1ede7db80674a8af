import builtins
from collections.abc import Callable, Iterable

import pytest

from stp import stp_repl
from stp.stp_repl import evaluate, handle_command, open_delimiters, start_repl


def feed(monkeypatch: pytest.MonkeyPatch, lines: Iterable[str]) -> list[str]:
    """Replaces `input` with a scripted session; returns the prompts shown."""
    calls = iter(lines)
    prompts: list[str] = []

    def fake_input(prompt: str) -> str:
        prompts.append(prompt)
        return next(calls)

    monkeypatch.setattr(builtins, "input", fake_input)
    return prompts


def raising(exc: type[BaseException]) -> Callable[[str], str]:
    def fake_input(_: str) -> str:
        raise exc()

    return fake_input


@pytest.mark.parametrize("word", ["quit", "exit", "  exit  "])  # type: ignore[misc]
def test_repl_leaves_on_exit_words(
    word: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, [word])
    start_repl()
    out = capsys.readouterr().out
    assert out.startswith("Stp REPL [target=tree].")
    assert out.rstrip().endswith("Exiting Stp REPL.")


def test_repl_empty_input_skipped(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, ["   ", "", "quit"])
    start_repl()
    out = capsys.readouterr().out
    assert "'source_file'" not in out


def test_repl_renders_tree(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, ["x = 1", "quit"])
    start_repl()
    out = capsys.readouterr().out
    assert "  'assignment'" in out
    assert "    assign_expr: 'number' : \"1\"" in out


def test_repl_continues_open_block(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    prompts = feed(monkeypatch, ["while x {", "  y = 1", "}", "quit"])
    start_repl(target="stp")
    assert prompts == [">>> ", "... ", "... ", ">>> "]
    assert "while x {\n    y = 1\n}\n" in capsys.readouterr().out


def test_repl_line_continuation(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    prompts = feed(monkeypatch, ["x = 1 + \\", "2", "quit"])
    start_repl(target="stp")
    assert prompts[:2] == [">>> ", "... "]
    assert "x = 1 + 2\n" in capsys.readouterr().out


def test_repl_exit_word_inside_entry_is_source(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, ["f(", "exit", ")", "quit"])
    start_repl(target="stp")
    out = capsys.readouterr().out
    assert "Expected expression, got 'exit'" in out
    assert out.count("Exiting Stp REPL.") == 1


def test_repl_recovers_by_default(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, ["a = )", "quit"])
    start_repl(target="stp")
    out = capsys.readouterr().out
    assert "# error: Expected expression, got ')'" in out
    assert "syntax error: Expected expression, got ')'" in out
    assert " --> <repl>:1:5" in out


def test_repl_strict_toggle(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, [":strict", "a = )", ":strict", "quit"])
    start_repl(target="stp")
    out = capsys.readouterr().out
    assert "[mode] >>> Strict mode ON" in out
    assert "[mode] >>> Strict mode OFF" in out
    assert "# error:" not in out
    assert "syntax error: Expected expression" in out


def test_repl_switch_target(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    feed(monkeypatch, [":target stp", "x=1", ":target cobol", "quit"])
    start_repl()
    out = capsys.readouterr().out
    assert "[mode] >>> Target stp" in out
    assert "x = 1\n" in out
    assert "[error] >>> Unknown target 'cobol'" in out


@pytest.mark.parametrize("exc", [KeyboardInterrupt, EOFError])  # type: ignore[misc]
def test_repl_interrupt_exits(
    exc: type[BaseException],
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(builtins, "input", raising(exc))
    start_repl()
    assert capsys.readouterr().out.endswith("\nExiting Stp REPL.\n")


def test_handle_command() -> None:
    state: dict[str, object] = {"target": "tree", "strict": False}
    assert handle_command("x = 1", state) is False
    assert handle_command(":target JSON", state) is True
    assert state["target"] == "json"
    assert handle_command(":strict", state) is True
    assert state["strict"] is True


def test_handle_unknown_command(capsys: pytest.CaptureFixture[str]) -> None:
    state: dict[str, object] = {"target": "tree", "strict": False}
    assert handle_command(":load x.stp", state) is True
    assert "[error] >>> Unknown command :load" in capsys.readouterr().out
    assert state == {"target": "tree", "strict": False}


def test_evaluate_strict_error(capsys: pytest.CaptureFixture[str]) -> None:
    evaluate('s = "abc', "tree", strict=True)
    out = capsys.readouterr().out
    assert out.startswith("lex error: Unterminated string")
    assert "'source_file'" not in out


def test_evaluate_max_depth(capsys: pytest.CaptureFixture[str]) -> None:
    evaluate("[[[1]]]", "stp", strict=False, max_depth=2)
    assert "nesting error" in capsys.readouterr().out


@pytest.mark.parametrize(  # type: ignore[misc]
    "line,expected",
    [
        ("x = 1", 0),
        ("while x {", 1),
        ("f([1 2", 2),
        ("}", -1),
        ('s = "({["', 0),
        ('s = "\\"(" + (', 1),
        ("x = 1 # {", 0),
        ("a(b)[c]{", 1),
    ],
)
def test_open_delimiters(line: str, expected: int) -> None:
    assert open_delimiters(line) == expected


def test_main_starts_repl(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[bool] = []
    monkeypatch.setattr(stp_repl, "start_repl", lambda: calls.append(True))
    stp_repl.main()
    assert calls == [True]
