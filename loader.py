"""Program image loading: comma-separated integer text -> initial tape."""

from __future__ import annotations

import logging
from pathlib import Path

from isa import CELL_MAX, CELL_MIN, MachineFault, fits_cell


class StartupParseFault(MachineFault):
    """Raised when a program image cannot be parsed."""


def parse_program(text: str) -> list[int]:
    """Parse comma-separated signed integers.

    Whitespace around tokens and a trailing newline are ignored.
    Raises StartupParseFault on an empty image, a non-integer token or a
    value outside the signed 64-bit cell range.
    """
    stripped = text.strip()
    if not stripped:
        err = "Empty program image"
        raise StartupParseFault(err)
    program: list[int] = []
    for pos, token in enumerate(stripped.split(",")):
        tok = token.strip()
        # int() would accept digit separators
        if "_" in tok:
            err = f"Bad program token at position {pos}: {tok!r}"
            raise StartupParseFault(err)
        try:
            program.append(int(tok))
        except ValueError as e:
            err = f"Bad program token at position {pos}: {tok!r}"
            raise StartupParseFault(err) from e
        if not fits_cell(program[-1]):
            err = f"Program token at position {pos} outside {CELL_MIN}..{CELL_MAX}: {tok}"
            raise StartupParseFault(err)
    logging.debug("loader: parsed %d cells", len(program))
    return program


def load_program(path: str | Path) -> list[int]:
    """Read and parse a program image file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        err = f"Cannot read program file {p}: {e}"
        raise StartupParseFault(err) from e
    return parse_program(text)
