"""Program image loader and config loader tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from config import DEFAULTS, ConfigError, load_config
from loader import StartupParseFault, load_program, parse_program


def test_parse_program_tolerates_whitespace() -> None:
    assert parse_program("1, 0,0 ,0,-99\n") == [1, 0, 0, 0, -99]


@pytest.mark.parametrize("text", ["", "  \n", "1,,2", "1,x,3", "1,2.5", "1_0,2"])
def test_parse_program_rejects_bad_images(text: str) -> None:
    with pytest.raises(StartupParseFault):
        parse_program(text)


@pytest.mark.parametrize("token", ["9223372036854775808", "-9223372036854775809", "1" + "0" * 30])
def test_parse_program_rejects_values_outside_cell_range(token: str) -> None:
    with pytest.raises(StartupParseFault, match="position 1"):
        parse_program(f"104,{token},99")


def test_parse_program_accepts_cell_limits() -> None:
    text = "9223372036854775807,-9223372036854775808"
    assert parse_program(text) == [2**63 - 1, -(2**63)]


def test_parse_error_reports_position() -> None:
    with pytest.raises(StartupParseFault, match="position 2"):
        parse_program("1,2,three")


def test_load_program(tmp_path: Path) -> None:
    p = tmp_path / "prog.txt"
    p.write_text("104,7,99\n", encoding="utf-8")
    assert load_program(p) == [104, 7, 99]


def test_load_program_missing_file(tmp_path: Path) -> None:
    with pytest.raises(StartupParseFault):
        load_program(tmp_path / "nope.txt")


def test_config_defaults() -> None:
    cfg = load_config()
    assert cfg == DEFAULTS
    assert cfg is not DEFAULTS


def test_config_from_dict_normalizes() -> None:
    cfg = load_config({"input_policy": " Suspend ", "inputs": 5, "initial_tape_cells": "16"})
    assert cfg["input_policy"] == "suspend"
    assert cfg["inputs"] == [5]
    assert cfg["initial_tape_cells"] == 16
    assert cfg["lenient_log"] is False


def test_config_from_yaml(tmp_path: Path) -> None:
    p = tmp_path / "cfg.yaml"
    p.write_text("input_policy: suspend\ninputs: [1, 2]\nlenient_log: true\n", encoding="utf-8")
    cfg = load_config(str(p))
    assert cfg["input_policy"] == "suspend"
    assert cfg["inputs"] == [1, 2]
    assert cfg["lenient_log"] is True


@pytest.mark.parametrize(
    "bad",
    [
        {"input_policy": "block"},
        {"initial_tape_cells": -1},
        {"initial_tape_cells": "many"},
        {"inputs": ["a"]},
    ],
)
def test_config_rejects_bad_values(bad: dict) -> None:
    with pytest.raises(ConfigError):
        load_config(bad)


def test_config_file_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "missing.yaml"))
    p = tmp_path / "list.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(p))
