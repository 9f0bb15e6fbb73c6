from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

"""Config loader and validator.

Provides `load_config` which accepts either a path to a YAML file,
a dictionary or None and returns a normalized configuration dict
using DEFAULTS for missing values.
"""


INPUT_POLICIES = ("fault", "suspend")

DEFAULTS: dict[str, Any] = {
    "input_policy": "fault",
    "inputs": [],
    "lenient_log": False,
    "initial_tape_cells": 0,
}


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def _convert_types(cfg: dict[str, Any]) -> None:
    """Normalize types for configuration values in-place.

    Raises ConfigError on conversion failure.
    """
    try:
        # input_policy
        v = cfg.get("input_policy")
        cfg["input_policy"] = DEFAULTS["input_policy"] if v is None else str(v).strip().lower()

        # inputs: a single scalar is accepted as a one-element queue
        v = cfg.get("inputs")
        if v is None:
            cfg["inputs"] = []
        elif isinstance(v, (list, tuple)):
            cfg["inputs"] = [int(x) for x in v]
        else:
            cfg["inputs"] = [int(v)]

        # lenient_log (bool coercion)
        cfg["lenient_log"] = bool(cfg.get("lenient_log", DEFAULTS["lenient_log"]))

        # initial_tape_cells
        v = cfg.get("initial_tape_cells")
        cfg["initial_tape_cells"] = DEFAULTS["initial_tape_cells"] if v is None else int(v)
    except Exception as e:
        msg = f"Bad types in config: {e}"
        raise ConfigError(msg) from e


def _validate_cfg(cfg: dict[str, Any]) -> None:
    """Perform semantic validation on normalized config dict.

    Raises ConfigError on invalid values.
    """
    if cfg["input_policy"] not in INPUT_POLICIES:
        msg = f"input_policy must be one of {', '.join(INPUT_POLICIES)} (got {cfg['input_policy']!r})"
        raise ConfigError(msg)

    if cfg["initial_tape_cells"] < 0:
        msg = "initial_tape_cells must be non-negative"
        raise ConfigError(msg)


def load_config(path_or_dict: str | dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and normalize configuration.

    Accepts:
      - None -> returns DEFAULTS copy
      - dict -> overlay DEFAULTS with provided dict
      - str (path) -> load YAML and overlay DEFAULTS

    Returns a normalized dict or raises ConfigError.
    """
    if path_or_dict is None:
        cfg: dict[str, Any] = dict(DEFAULTS)
    elif isinstance(path_or_dict, dict):
        cfg = dict(DEFAULTS)
        cfg.update(path_or_dict)
    elif isinstance(path_or_dict, str):
        p = Path(path_or_dict)
        if not p.exists():
            msg = f"Config file not found: {path_or_dict}"
            raise ConfigError(msg)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except Exception as e:
            msg = f"Failed to load config file {path_or_dict}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {path_or_dict} does not contain a mapping"
            raise ConfigError(msg)
        cfg = dict(DEFAULTS)
        cfg.update(data)
    else:
        msg = "Unsupported config input"
        raise ConfigError(msg)

    # convert types and validate semantics
    _convert_types(cfg)
    _validate_cfg(cfg)

    return cfg
