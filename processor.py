"""Processor (Datapath + ControlUnit) and CLI wrapper.

Provides the tape machine, its suspend-on-output run protocol, logging
initialization and an optional tape dump written when debug logging is
enabled.
"""

from __future__ import annotations

import logging
import sys
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, TextIO

from config import ConfigError, load_config
from isa import AddressMode, MachineFault, OpCode, decode_instr, disassemble, fits_cell, mnemonic
from loader import StartupParseFault, load_program

LOGFILE = "processor.log"
TAPE_DUMP = "tape_dump.txt"


class _IndentOnceFormatter(logging.Formatter):
    """Leaves the first record flush and indents the rest, so a trace reads as one block."""

    def __init__(self, fmt: str | None = None) -> None:
        super().__init__(fmt)
        self._seen_first = False

    def format(self, record: logging.LogRecord) -> str:
        s = super().format(record)
        if not self._seen_first:
            self._seen_first = True
            return s
        return "    " + s


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.

    In debug mode a compact format without timestamp is used, so entries
    look like:
        DEBUG root:processor.py:254 STATE: running        STEP: FETCH         N:      0 IP:     0 ...
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    if debug:
        fh.setFormatter(_IndentOnceFormatter(file_fmt))
    else:
        fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


class InvalidWriteTarget(MachineFault):
    """Raised when an immediate-mode operand is used as a destination."""


class InputExhausted(MachineFault):
    """Raised when INPUT runs with an empty queue under the fault policy."""


class AddressFault(MachineFault):
    """Raised for a negative address or an instruction fetch off the tape."""


class ArithmeticOverflow(MachineFault):
    """Raised when ADD or MULTIPLY leaves the signed 64-bit cell range."""


class MachineHalted(MachineFault):
    """Raised when a halted machine is asked to run again."""


class MachineFaulted(MachineFault):
    """Raised when a machine that already faulted is asked to run again."""


class ProcessorState(str, Enum):
    """Lifecycle states of the machine."""

    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    SUSPENDED = "suspended"
    HALTED = "halted"
    FAULTED = "faulted"


@dataclass(frozen=True)
class Outcome:
    """Result of one `ControlUnit.run` call.

    `state` is SUSPENDED (an output is ready in `value`), HALTED or
    AWAITING_INPUT.
    """

    state: ProcessorState
    value: int | None = None

    @property
    def is_output(self) -> bool:
        return self.state is ProcessorState.SUSPENDED

    @property
    def halted(self) -> bool:
        return self.state is ProcessorState.HALTED


class Tape:
    """Growable integer memory; cells past the end read as zero."""

    cells: list[int]

    def __init__(self, program: Iterable[int] = (), min_cells: int = 0) -> None:
        self.cells = [int(v) for v in program]
        if len(self.cells) < min_cells:
            self.cells.extend([0] * (min_cells - len(self.cells)))

    def __len__(self) -> int:
        return len(self.cells)

    def read(self, addr: int) -> int:
        """Read a cell. Addresses at or beyond the end read 0 without growing."""
        if addr < 0:
            err = f"read at negative address {addr}"
            raise AddressFault(err)
        if addr >= len(self.cells):
            return 0
        return self.cells[addr]

    def write(self, addr: int, value: int) -> None:
        """Write a cell, zero-extending the tape up to `addr` first."""
        if addr < 0:
            err = f"write at negative address {addr}"
            raise AddressFault(err)
        if addr >= len(self.cells):
            grow = addr + 1 - len(self.cells)
            self.cells.extend([0] * grow)
            logging.debug("Tape: grown by %d cells to %d", grow, len(self.cells))
        self.cells[addr] = value

    def snapshot(self) -> list[int]:
        return list(self.cells)


class Datapath:
    """Datapath (tape + registers + input queue) for the machine."""

    tape: Tape
    ip: int
    relative_base: int
    inputs: deque[int]
    state: ProcessorState
    steps: int
    input_policy: str
    lenient_log: bool

    def __init__(
        self,
        program: Sequence[int],
        inputs: Iterable[int] = (),
        input_policy: str = "fault",
        lenient_log: bool = False,
        initial_tape_cells: int = 0,
    ) -> None:
        """Initialize Datapath state with a private copy of `program`."""
        self.tape = Tape(program, min_cells=initial_tape_cells)
        self.ip = 0
        self.relative_base = 0
        self.inputs = deque(int(v) for v in inputs)
        self.state = ProcessorState.RUNNING
        self.steps = 0
        self.input_policy = input_policy
        self.lenient_log = bool(lenient_log)
        logging.debug(
            "Datapath: %d cells loaded, %d inputs queued, input_policy=%s",
            len(self.tape),
            len(self.inputs),
            self.input_policy,
        )

    def feed(self, *values: int) -> None:
        """Append values to the input queue."""
        for v in values:
            self.inputs.append(int(v))
        logging.debug("Datapath.feed: %d values queued (%d pending)", len(values), len(self.inputs))


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC loop for the Datapath."""

    dp: Datapath

    def __init__(self, dp: Datapath) -> None:
        """Create a ControlUnit bound to `dp`."""
        self.dp = dp

    # --- operand resolution ---
    def _next_word(self) -> int:
        word = self.dp.tape.read(self.dp.ip)
        self.dp.ip += 1
        return word

    def read_operand(self, mode: AddressMode) -> int:
        """Consume one operand word and return its value."""
        raw = self._next_word()
        if mode == AddressMode.IMMEDIATE:
            return raw
        addr = raw + self.dp.relative_base if mode == AddressMode.RELATIVE else raw
        return self.dp.tape.read(addr)

    def write_operand(self, mode: AddressMode, value: int) -> None:
        """Consume one operand word and store `value` at the address it names."""
        raw = self._next_word()
        if mode == AddressMode.IMMEDIATE:
            err = f"immediate-mode write target {raw} at ip {self.dp.ip - 1}"
            raise InvalidWriteTarget(err)
        addr = raw + self.dp.relative_base if mode == AddressMode.RELATIVE else raw
        self.dp.tape.write(addr, value)

    # --- tracing ---
    def _format_instr(self, opcode: OpCode, modes: tuple[AddressMode, ...], ip: int) -> str:
        operands = [self.dp.tape.read(ip + 1 + i) for i in range(len(modes))]
        return mnemonic(opcode, modes, operands)

    def _log_step(self, step: str, ip: int, instr: str) -> None:
        # skip verbose per-step logs in lenient mode to reduce log size
        if self.dp.lenient_log:
            return
        dp = self.dp
        left = f"STATE: {dp.state.value:<14} STEP: {step:<13} N: {dp.steps:6d} "
        right = f"IP: {ip:5d} RB: {dp.relative_base:5d} IN: {len(dp.inputs):3d} TAPE: {len(dp.tape):6d}\tINSTR: {instr}"
        logging.debug(left + right)

    # --- execution ---
    def run(self) -> Outcome:
        """Execute until an output, a halt or (suspend policy) a starved INPUT."""
        while True:
            outcome = self.step()
            if outcome is not None:
                return outcome

    def step(self) -> Outcome | None:
        """Execute a single instruction.

        Returns an Outcome when control goes back to the caller, else None.
        Raises MachineHalted / MachineFaulted if the machine has already
        halted or faulted. Any other fault leaves the machine FAULTED.
        """
        dp = self.dp
        if dp.state == ProcessorState.HALTED:
            err = "machine already halted"
            raise MachineHalted(err)
        if dp.state == ProcessorState.FAULTED:
            err = f"machine faulted at ip {dp.ip}"
            raise MachineFaulted(err)
        dp.state = ProcessorState.RUNNING
        try:
            return self._cycle()
        except MachineFault:
            dp.state = ProcessorState.FAULTED
            raise

    def _cycle(self) -> Outcome | None:
        dp = self.dp
        start = dp.ip
        if start < 0 or start >= len(dp.tape):
            err = f"instruction fetch at {start} outside tape of {len(dp.tape)} cells"
            raise AddressFault(err)
        opcode, modes = decode_instr(dp.tape.read(start))

        trace = not dp.lenient_log and logging.getLogger().isEnabledFor(logging.DEBUG)
        instr_str = self._format_instr(opcode, modes, start) if trace else ""
        if trace:
            self._log_step("FETCH", start, instr_str)

        if opcode == OpCode.INPUT and not dp.inputs:
            if dp.input_policy == "suspend":
                dp.state = ProcessorState.AWAITING_INPUT
                if trace:
                    self._log_step("AWAIT_INPUT", start, instr_str)
                return Outcome(ProcessorState.AWAITING_INPUT)
            err = f"INPUT at ip {start} with an empty input queue"
            raise InputExhausted(err)

        dp.ip = start + 1
        outcome = self.exec(opcode, modes)
        dp.steps += 1

        if trace:
            self._log_step("EXECUTION", start, instr_str)
        return outcome

    def _checked(self, opcode: OpCode, value: int) -> int:
        if not fits_cell(value):
            err = f"{opcode.name} result {value} overflows a 64-bit cell"
            raise ArithmeticOverflow(err)
        return value

    def exec(self, opcode: OpCode, modes: tuple[AddressMode, ...]) -> Outcome | None:  # noqa: C901
        """Apply a decoded instruction; `dp.ip` points at its first operand."""
        dp = self.dp

        if opcode == OpCode.ADD:
            a = self.read_operand(modes[0])
            b = self.read_operand(modes[1])
            self.write_operand(modes[2], self._checked(opcode, a + b))
            return None
        if opcode == OpCode.MULTIPLY:
            a = self.read_operand(modes[0])
            b = self.read_operand(modes[1])
            self.write_operand(modes[2], self._checked(opcode, a * b))
            return None
        if opcode == OpCode.INPUT:
            value = dp.inputs.popleft()
            logging.debug("INPUT: consumed %d (%d left)", value, len(dp.inputs))
            self.write_operand(modes[0], value)
            return None
        if opcode == OpCode.OUTPUT:
            value = self.read_operand(modes[0])
            logging.debug("OUTPUT: %d", value)
            dp.state = ProcessorState.SUSPENDED
            return Outcome(ProcessorState.SUSPENDED, value)
        if opcode in (OpCode.JUMP_IF_NZ, OpCode.JUMP_IF_Z):
            a = self.read_operand(modes[0])
            target = self.read_operand(modes[1])
            taken = a != 0 if opcode == OpCode.JUMP_IF_NZ else a == 0
            if taken:
                logging.debug("%s: jump to %d", opcode.name, target)
                dp.ip = target
            return None
        if opcode == OpCode.LESS_THAN:
            a = self.read_operand(modes[0])
            b = self.read_operand(modes[1])
            self.write_operand(modes[2], 1 if a < b else 0)
            return None
        if opcode == OpCode.EQUALS:
            a = self.read_operand(modes[0])
            b = self.read_operand(modes[1])
            self.write_operand(modes[2], 1 if a == b else 0)
            return None
        if opcode == OpCode.ADJ_REL_BASE:
            before = dp.relative_base
            dp.relative_base += self.read_operand(modes[0])
            logging.debug("ADJ_REL_BASE: %d -> %d", before, dp.relative_base)
            return None
        if opcode == OpCode.HALT:
            logging.debug("HALT encountered")
            dp.state = ProcessorState.HALTED
            return Outcome(ProcessorState.HALTED)
        # OpCode is closed; decode_instr never yields anything else
        err = f"Unhandled opcode: {opcode}"
        raise MachineFault(err)

    # --- tape dump ---
    def _dump_cells(self, f: TextIO, dp: Datapath) -> None:
        f.write("=== CELLS ===\n")
        for i, v in enumerate(dp.tape.cells):
            f.write(f"{i:08d}: {v}\n")

    def _dump_listing(self, f: TextIO, dp: Datapath) -> None:
        f.write("\n=== LISTING ===\n")
        for addr, text in disassemble(dp.tape.cells):
            f.write(f"{addr:08d}: {text}\n")

    def dump_tape_to_file(self, path: str) -> None:
        """Write registers, raw cells and a linear listing to `path`."""
        dp = self.dp
        with open(path, "w", encoding="utf-8") as f:
            f.write("=== TAPE DUMP ===\n")
            f.write(f"cells: {len(dp.tape)}  ip: {dp.ip}  relative_base: {dp.relative_base}\n")
            f.write(f"state: {dp.state.value}  steps: {dp.steps}\n\n")
            self._dump_cells(f, dp)
            self._dump_listing(f, dp)
            f.write("\n=== END DUMP ===\n")


# ---------- Public API ----------
def make_machine(program: Sequence[int], config: dict[str, Any] | None = None) -> ControlUnit:
    """Build a ready-to-run ControlUnit from a program and a config dict."""
    cfg = load_config(dict(config) if config is not None else None)
    dp = Datapath(
        program,
        inputs=cfg["inputs"],
        input_policy=cfg["input_policy"],
        lenient_log=cfg["lenient_log"],
        initial_tape_cells=cfg["initial_tape_cells"],
    )
    return ControlUnit(dp)


def run_program(
    program: Sequence[int],
    inputs: Iterable[int] = (),
    config: dict[str, Any] | None = None,
) -> tuple[list[int], int, str]:
    """Run to halt (or until starved for input) and return (outputs, steps, state)."""
    cu = make_machine(program, config)
    cu.dp.feed(*inputs)
    outputs: list[int] = []
    while True:
        outcome = cu.run()
        if not outcome.is_output:
            break
        if outcome.value is not None:
            outputs.append(outcome.value)
    return outputs, cu.dp.steps, cu.dp.state.value


def _read_stdin_inputs(stream: TextIO) -> list[int] | None:
    """Read one line of whitespace/comma separated integers; None on EOF."""
    line = stream.readline()
    if not line:
        return None
    return [int(tok) for tok in line.replace(",", " ").split()]


# ---------- CLI ----------
def main(argv: list[str] | None = None) -> int:  # noqa: C901
    import argparse

    ap = argparse.ArgumentParser(
        description="Tape machine runner. Program file holds comma-separated integers; "
        "trailing arguments are queued as inputs."
    )
    ap.add_argument("program", help="program image (comma-separated integers).")
    ap.add_argument("inputs", nargs="*", type=int, help="values queued before the first run")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--disasm", action="store_true", help="print a listing of the program and exit")
    ap.add_argument(
        "--interactive",
        action="store_true",
        help="read more inputs from stdin whenever the program waits for input",
    )

    help_debug = "enable debug logging to logfile (detailed per-step state)."
    help_logfile = "path to processor log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    args = ap.parse_args(argv)

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print("Bad config:", e)
        return 2
    if args.interactive:
        cfg["input_policy"] = "suspend"

    try:
        program = load_program(args.program)
    except StartupParseFault as e:
        print("Bad program:", e)
        return 2

    if args.disasm:
        for addr, text in disassemble(program):
            sys.stdout.write(f"{addr:6d}: {text}\n")
        return 0

    cu = make_machine(program, cfg)
    cu.dp.feed(*args.inputs)
    status = 0
    try:
        while True:
            outcome = cu.run()
            if outcome.is_output:
                sys.stdout.write(f"{outcome.value}\n")
                continue
            if outcome.halted:
                break
            # awaiting input
            try:
                more = _read_stdin_inputs(sys.stdin)
            except ValueError as e:
                print("Bad input:", e)
                status = 2
                break
            if more is None:
                print("Input closed while program awaits input")
                status = 1
                break
            cu.dp.feed(*more)
    except MachineFault as e:
        logging.exception("Machine fault at ip %d", cu.dp.ip)
        print(f"Fault: {type(e).__name__}: {e}")
        status = 1

    if logging.getLogger().getEffectiveLevel() == logging.DEBUG:
        try:
            cu.dump_tape_to_file(TAPE_DUMP)
        except OSError as e:
            logging.debug("Failed to write %s: %s", TAPE_DUMP, e)

    sys.stdout.write("STEPS: " + str(cu.dp.steps))
    sys.stdout.write("\n")
    return status


if __name__ == "__main__":
    sys.exit(main())
