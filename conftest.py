"""Shared pytest hooks: golden-record parametrization."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml


def pytest_configure(config: Any) -> None:
    """Configure the tests."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with golden machine records matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        if m.args:
            yield m.args[0]
        else:
            yield "golden/*.yaml"


def _load_record(p: Path) -> dict[str, Any]:
    """Load one golden record; load errors become part of the record."""
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        data = {"__yaml_load_error__": str(e)}
    if not isinstance(data, dict):
        data = {"__yaml_load_error__": f"{p.name} does not contain a mapping"}
    data.setdefault("__path__", str(p))
    data.setdefault("__name__", p.name)
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Generate tests (parametrization) from YAML golden files."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns: list[str] = list(_iter_marker_patterns(metafunc.definition))
    if not patterns:
        patterns = ["golden/*.yaml"]

    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    if not files:
        return

    params = [_load_record(p) for p in files]
    ids = [p.stem for p in files]
    metafunc.parametrize("golden", params, ids=ids)
