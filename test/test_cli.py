"""Command-line runner tests."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest
from processor import main


@pytest.fixture(autouse=True)
def _release_log_handlers():
    yield
    root = logging.getLogger()
    for h in list(root.handlers):
        h.close()
        root.removeHandler(h)


def _write(tmp_path: Path, text: str) -> str:
    p = tmp_path / "program.txt"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_cli_prints_outputs(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _write(tmp_path, "3,9,8,9,10,9,4,9,99,-1,8\n")
    rc = main([prog, "8", "--logfile", str(tmp_path / "p.log")])
    assert rc == 0
    assert capsys.readouterr().out == "1\nSTEPS: 4\n"


def test_cli_disasm(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _write(tmp_path, "104,7,99")
    rc = main([prog, "--disasm", "--logfile", str(tmp_path / "p.log")])
    assert rc == 0
    assert capsys.readouterr().out.splitlines() == ["     0: OUTPUT #7", "     2: HALT"]


def test_cli_bad_program(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _write(tmp_path, "1,oops")
    assert main([prog, "--logfile", str(tmp_path / "p.log")]) == 2
    assert "Bad program" in capsys.readouterr().out


def test_cli_fault_exit_status(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    prog = _write(tmp_path, "3,0,99")
    assert main([prog, "--logfile", str(tmp_path / "p.log")]) == 1
    assert "InputExhausted" in capsys.readouterr().out


def test_cli_interactive_reads_stdin(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    prog = _write(tmp_path, "3,0,4,0,3,0,4,0,99")
    monkeypatch.setattr("sys.stdin", io.StringIO("4\n5\n"))
    rc = main([prog, "--interactive", "--logfile", str(tmp_path / "p.log")])
    assert rc == 0
    assert capsys.readouterr().out == "4\n5\nSTEPS: 5\n"


def test_cli_interactive_eof(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    prog = _write(tmp_path, "3,0,99")
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    assert main([prog, "--interactive", "--logfile", str(tmp_path / "p.log")]) == 1
    assert "Input closed" in capsys.readouterr().out


def test_cli_debug_writes_tape_dump(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(tmp_path)
    prog = _write(tmp_path, "1101,2,3,0,99")
    assert main([prog, "--debug"]) == 0
    assert (tmp_path / "processor.log").exists()
    assert "00000000: 5" in (tmp_path / "tape_dump.txt").read_text(encoding="utf-8")
    assert capsys.readouterr().out == "STEPS: 2\n"
