"""ISA: opcodes, addressing modes, instruction decoding and helpers."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from enum import IntEnum


class MachineFault(Exception):
    """Base class for every unrecoverable machine error."""


class DecodeFault(MachineFault):
    """Raised for an unknown opcode or addressing-mode digit."""


# cells are signed 64-bit words
CELL_MIN = -(1 << 63)
CELL_MAX = (1 << 63) - 1


def fits_cell(value: int) -> bool:
    return CELL_MIN <= value <= CELL_MAX


class OpCode(IntEnum):
    """Keeps opcodes from all operations."""

    ADD = 1  # dest = a + b
    MULTIPLY = 2  # dest = a * b
    INPUT = 3  # dest = next queued input
    OUTPUT = 4  # suspend with a
    JUMP_IF_NZ = 5  # if a != 0: ip = target
    JUMP_IF_Z = 6  # if a == 0: ip = target
    LESS_THAN = 7  # dest = a < b
    EQUALS = 8  # dest = a == b
    ADJ_REL_BASE = 9  # relative_base += a
    HALT = 99


class AddressMode(IntEnum):
    """How an operand word is interpreted."""

    POSITION = 0
    IMMEDIATE = 1
    RELATIVE = 2


# number of operand words following the instruction word
OPERAND_COUNT: dict[OpCode, int] = {
    OpCode.ADD: 3,
    OpCode.MULTIPLY: 3,
    OpCode.INPUT: 1,
    OpCode.OUTPUT: 1,
    OpCode.JUMP_IF_NZ: 2,
    OpCode.JUMP_IF_Z: 2,
    OpCode.LESS_THAN: 3,
    OpCode.EQUALS: 3,
    OpCode.ADJ_REL_BASE: 1,
    OpCode.HALT: 0,
}

_MODE_PREFIX = {
    AddressMode.POSITION: "@",
    AddressMode.IMMEDIATE: "#",
    AddressMode.RELATIVE: "~",
}


def decode_instr(word: int) -> tuple[OpCode, tuple[AddressMode, ...]]:
    """Decode one instruction word.

    The two low decimal digits select the opcode; every digit further left
    gives the mode of the next operand, first operand first. Missing digits
    mean POSITION.

    Returns (OpCode, modes). Raises DecodeFault on unknown opcode or mode.
    """
    if word < 0:
        msg = f"Negative instruction word {word}"
        raise DecodeFault(msg)
    try:
        opcode = OpCode(word % 100)
    except ValueError as e:
        msg = f"Unrecognized opcode {word % 100} in word {word}"
        raise DecodeFault(msg) from e

    rest = word // 100
    modes: list[AddressMode] = []
    for _ in range(OPERAND_COUNT[opcode]):
        digit = rest % 10
        rest //= 10
        try:
            modes.append(AddressMode(digit))
        except ValueError as e:
            msg = f"Unrecognized addressing mode {digit} in word {word}"
            raise DecodeFault(msg) from e
    return opcode, tuple(modes)


def format_operand(mode: AddressMode, raw: int) -> str:
    """Render an operand word with its mode prefix."""
    return f"{_MODE_PREFIX[mode]}{raw}"


def mnemonic(opcode: OpCode, modes: Sequence[AddressMode] = (), operands: Sequence[int] = ()) -> str:
    """Get operation mnemonic, e.g. ``ADD @9 #10 ~3``."""
    if not operands:
        return opcode.name
    parts = [format_operand(m, raw) for m, raw in zip(modes, operands)]
    return f"{opcode.name} {' '.join(parts)}"


def disassemble(tape: Sequence[int], start: int = 0) -> Iterator[tuple[int, str]]:
    """Walk the tape linearly and yield (address, text) for each instruction.

    Words that do not decode (or whose operands run off the end) are emitted
    as ``DATA n`` and the walk continues with the next word.
    """
    addr = start
    size = len(tape)
    while addr < size:
        word = tape[addr]
        try:
            opcode, modes = decode_instr(word)
        except DecodeFault:
            yield addr, f"DATA {word}"
            addr += 1
            continue
        count = len(modes)
        if addr + count >= size:
            yield addr, f"DATA {word}"
            addr += 1
            continue
        operands = tape[addr + 1 : addr + 1 + count]
        yield addr, mnemonic(opcode, modes, operands)
        addr += 1 + count
