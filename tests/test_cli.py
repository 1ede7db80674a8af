import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any

import pytest

from stp import stp_cli

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def test_run_stp_string_prints_tree(capsys: pytest.CaptureFixture[str]) -> None:
    status = stp_cli.run_stp("x = 1", is_string=True)
    captured = capsys.readouterr()
    assert status == 0
    assert captured.out.startswith("'source_file'\n  'assignment'")
    assert captured.err == ""


def test_run_stp_file_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    file_path = tmp_path / "input.stp"
    file_path.write_text("x=[1 2;3 4]\n", encoding="utf-8")
    assert stp_cli.run_stp(str(file_path), target="stp") == 0
    assert capsys.readouterr().out == "x = [1 2; 3 4]\n"


def test_run_stp_json_target(capsys: pytest.CaptureFixture[str]) -> None:
    stp_cli.run_stp("f(a)", is_string=True, target="json")
    doc = json.loads(capsys.readouterr().out)
    assert doc["children"][0]["kind"] == "expression_statement"


def test_run_stp_rejects_non_stp_file() -> None:
    with pytest.raises(ValueError, match="Only .stp files are supported."):
        stp_cli.run_stp("example.txt", is_string=False)


def test_run_stp_reports_syntax_error(capsys: pytest.CaptureFixture[str]) -> None:
    status = stp_cli.run_stp("x = (1", is_string=True)
    captured = capsys.readouterr()
    assert status == 1
    assert captured.out == ""
    assert "syntax error: '(' is never closed" in captured.err
    assert " --> <string>:1:5" in captured.err


def test_run_stp_reports_file_name(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    file_path = tmp_path / "bad.stp"
    file_path.write_text('msg = "open', encoding="utf-8")
    assert stp_cli.run_stp(str(file_path)) == 1
    err = capsys.readouterr().err
    assert "lex error: Unterminated string" in err
    assert f"{file_path}:1:12" in err


def test_run_stp_recover_prints_partial_tree(capsys: pytest.CaptureFixture[str]) -> None:
    status = stp_cli.run_stp("a = )\nb = 2", is_string=True, target="stp", recover=True)
    captured = capsys.readouterr()
    assert status == 1
    assert captured.out == "# error: Expected expression, got ')'\nb = 2\n"
    assert "syntax error: Expected expression" in captured.err


def test_run_stp_output_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    output_path = tmp_path / "clean.stp"
    status = stp_cli.run_stp("y=-x'", is_string=True, target="stp", out=str(output_path))
    assert status == 0
    assert output_path.read_text(encoding="utf-8") == "y = -x'\n"
    assert capsys.readouterr().out == ""


def test_run_stp_max_depth(capsys: pytest.CaptureFixture[str]) -> None:
    assert stp_cli.run_stp("x = ((1))", is_string=True, max_depth=2) == 1
    assert "nesting error" in capsys.readouterr().err


def test_long_expression_reports_nesting_error(capsys: pytest.CaptureFixture[str]) -> None:
    source = "x = " + " + ".join(["1"] * 600)
    with pytest.raises(SystemExit) as exc:
        stp_cli.main(["-s", source, "-t", "json"])
    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "nesting error: Expression nests deeper" in captured.err


def test_main_renders_string(capsys: pytest.CaptureFixture[str]) -> None:
    stp_cli.main(["-s", "sym t", "-t", "stp"])
    assert capsys.readouterr().out == "sym t\n"


def test_main_passes_arguments(monkeypatch: pytest.MonkeyPatch) -> None:
    called: dict[str, Any] = {}

    def dummy_run(**kwargs: Any) -> int:
        called.update(kwargs)
        return 0

    monkeypatch.setattr(stp_cli, "run_stp", dummy_run)
    stp_cli.main(["prog.stp", "--recover", "--max-depth", "7", "-o", "out.txt"])
    assert called == {
        "source": "prog.stp",
        "is_string": False,
        "target": "tree",
        "out": "out.txt",
        "recover": True,
        "max_depth": 7,
    }


def test_main_exits_with_error_status(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        stp_cli.main(["-s", "x = "])
    assert exc.value.code == 1
    assert "syntax error" in capsys.readouterr().err


@pytest.mark.parametrize("path", ["notes.txt", "missing.stp"])  # type: ignore[misc]
def test_main_bad_input_file(
    path: str, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as exc:
        stp_cli.main([str(tmp_path / path)])
    assert exc.value.code == 2
    assert capsys.readouterr().err.startswith("stp: ")


@pytest.mark.parametrize(  # type: ignore[misc]
    "argv", [["-t", "py", "-s", "x = 1"], ["--max-depth", "0", "-s", "x = 1"]]
)
def test_main_invalid_arguments(argv: list[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        stp_cli.main(argv)
    assert exc.value.code == 2


def test_main_without_arguments_starts_repl(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr("stp.stp_repl.start_repl", lambda **kw: calls.append(kw))
    monkeypatch.setattr(sys, "argv", ["stp"])
    stp_cli.main()
    assert calls == [{}]


def test_main_repl_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr("stp.stp_repl.start_repl", lambda **kw: calls.append(kw))
    stp_cli.main(["--repl", "-t", "json", "--max-depth", "12"])
    assert calls == [{"target": "json", "max_depth": 12}]


def test_cli_module_runs_as_script() -> None:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(SRC_DIR)
    result = subprocess.run(
        [sys.executable, "-m", "stp.stp_cli", "-s", "ret 1", "-t", "stp"],
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )
    assert result.returncode == 0
    assert result.stdout == "ret 1\n"
