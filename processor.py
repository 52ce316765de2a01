"""Processor (Datapath + ControlUnit) and CLI wrapper.

Provides the Intcode execution engine, logging initialization, the
noun/verb search driver and optional debug output files (out.hex)
emitted when debug logging is enabled.
"""

from __future__ import annotations

import logging
import sys
from collections import deque
from enum import Enum
from typing import Any

from config import ConfigError, load_config
from isa import (
    PARAM_COUNT,
    WRITE_PARAM,
    IllegalWriteModeError,
    IntcodeError,
    MemoryFault,
    OpCode,
    ParameterMode,
    ValueOverflowError,
    decode_instr,
    fits_int64,
    mnemonic,
)
from loader import ParseError, disassemble, load_program, parse

LOGFILE = "processor.log"


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.

    In debug mode the file format has no timestamp so that entries look like:
        DEBUG root:processor.py:231 Status: INITIAL -> RUNNING at IP 0
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

    # The first record is left unindented, every following one gets 4 spaces.
    class _IndentOnceFormatter(logging.Formatter):
        def __init__(self, fmt: str | None = None):
            super().__init__(fmt)
            self._seen_first = False

        def format(self, record: logging.LogRecord) -> str:
            s = super().format(record)
            if not self._seen_first:
                self._seen_first = True
                return s
            return "    " + s

    # always create a FileHandler so the log can be inspected afterwards
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


def _flush_logging_handlers() -> None:
    for h in list(logging.getLogger().handlers):
        h.flush()


def _write_out_hex(memory: list[int], path: str = "out.hex") -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(disassemble(memory)))
    except OSError as e:
        logging.debug("Failed to write %s: %s", path, e)


def _write_debug_out_files(memory: list[int]) -> None:
    _flush_logging_handlers()
    _write_out_hex(memory)


class Status(Enum):
    """Run state of one engine."""

    INITIAL = "initial"
    RUNNING = "running"
    WAITING = "waiting"
    HALTED = "halted"


class Datapath:
    """Datapath (memory + instruction pointer + I/O queues) for one engine."""

    memory: list[int]
    ip: int
    input_queue: deque[int]
    output_queue: deque[int]
    tick: int
    lenient_log: bool

    def __init__(self, memory: list[int], lenient_log: bool = False) -> None:
        """Initialize Datapath state from a private copy of `memory`."""
        self.memory = list(memory)
        self.ip = 0
        self.input_queue = deque()
        self.output_queue = deque()
        self.tick = 0
        self.lenient_log = bool(lenient_log)
        logging.debug("Datapath: %d memory cells loaded", len(self.memory))

    def _check_addr(self, addr: int, position: int | None) -> None:
        if addr < 0 or addr >= len(self.memory):
            raise MemoryFault(self.ip if position is None else position, addr)

    def read_word(self, addr: int, position: int | None = None) -> int:
        """Read one cell. Raises MemoryFault for out-of-range addresses.

        `position` is the instruction the access belongs to (defaults to ip).
        """
        self._check_addr(addr, position)
        return self.memory[addr]

    def write_word(self, addr: int, value: int, position: int | None = None) -> None:
        """Write one cell.

        Raises MemoryFault for out-of-range writes and ValueOverflowError
        when `value` is not a signed 64-bit integer.
        """
        self._check_addr(addr, position)
        if not fits_int64(value):
            raise ValueOverflowError(self.ip if position is None else position, value)
        self.memory[addr] = value

    def load(self, operand: int, mode: ParameterMode) -> int:
        """Resolve a read operand according to its addressing mode."""
        if mode == ParameterMode.IMMEDIATE:
            return operand
        return self.read_word(operand)

    def push_input(self, value: int) -> None:
        self.input_queue.append(value)

    def pop_input(self) -> int | None:
        if not self.input_queue:
            return None
        return self.input_queue.popleft()

    def emit(self, value: int) -> None:
        self.output_queue.append(value)
        logging.debug("[OUT] %d", value)

    def pop_output(self) -> int | None:
        if not self.output_queue:
            return None
        return self.output_queue.popleft()


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC loop for the Datapath."""

    dp: Datapath
    status: Status

    def __init__(self, dp: Datapath) -> None:
        """Create a ControlUnit bound to `dp`."""
        self.dp = dp
        self.status = Status.INITIAL

    def _set_status(self, status: Status) -> None:
        if status is not self.status:
            logging.debug("Status: %s -> %s at IP %d", self.status.name, status.name, self.dp.ip)
            self.status = status

    def _log_step(self, step: str, instr: str) -> None:
        # skip verbose per-step logs in lenient mode to reduce log size
        if self.dp.lenient_log:
            return
        dp = self.dp
        left = f"STATE: {self.status.name:<8} STEP: {step:<13} TICK: {dp.tick:4d} IP: {dp.ip:5d} "
        right = f"IN: {len(dp.input_queue):3d} OUT: {len(dp.output_queue):3d}\tINSTR: {instr}"
        logging.debug(left + right)

    def run(self) -> Status:
        """Execute instructions until the engine is waiting for input or halted."""
        if self.status is Status.HALTED:
            logging.debug("run() on halted engine -> nothing to do")
            return self.status
        self._set_status(Status.RUNNING)
        while self.status is Status.RUNNING:
            self._cycle()
        return self.status

    def step(self) -> Status:
        """Execute exactly one instruction."""
        if self.status is Status.HALTED:
            return self.status
        self._set_status(Status.RUNNING)
        self._cycle()
        return self.status

    def _cycle(self) -> None:
        dp = self.dp
        pos = dp.ip
        try:
            opcode, modes = decode_instr(dp.read_word(pos, pos), pos)
            params = [dp.read_word(pos + i, pos) for i in range(1, PARAM_COUNT[opcode] + 1)]
            instr_str = mnemonic(opcode, params, modes)
            self._log_step("COMMAND_FETCH", instr_str)
            self.exec(opcode, modes, params)
        except IntcodeError as e:
            logging.debug("Fault at IP %d: %s", pos, e)
            raise

        if self.status is Status.WAITING:
            self._log_step("WAIT_INPUT", instr_str)
            return
        dp.tick += 1
        self._log_step("EXECUTION", instr_str)

    def exec(self, opcode: OpCode, modes: tuple[ParameterMode, ...], params: list[int]) -> None:  # noqa: C901
        """Execute a single decoded instruction (hardwired control unit)."""
        dp = self.dp
        pos = dp.ip

        w = WRITE_PARAM.get(opcode)
        if w is not None and modes[w] == ParameterMode.IMMEDIATE:
            raise IllegalWriteModeError(pos, opcode)

        def arg(i: int) -> int:
            return dp.load(params[i], modes[i])

        if opcode == OpCode.ADD:
            dp.write_word(params[2], arg(0) + arg(1))
            dp.ip = pos + 4
            return
        if opcode == OpCode.MUL:
            dp.write_word(params[2], arg(0) * arg(1))
            dp.ip = pos + 4
            return
        if opcode == OpCode.IN:
            value = dp.pop_input()
            if value is None:
                # retried on the next run() once input arrives
                self._set_status(Status.WAITING)
                return
            logging.debug("[IN] %d", value)
            dp.write_word(params[0], value)
            dp.ip = pos + 2
            return
        if opcode == OpCode.OUT:
            dp.emit(arg(0))
            dp.ip = pos + 2
            return
        if opcode == OpCode.JT:
            dp.ip = arg(1) if arg(0) != 0 else pos + 3
            return
        if opcode == OpCode.JF:
            dp.ip = arg(1) if arg(0) == 0 else pos + 3
            return
        if opcode == OpCode.LT:
            dp.write_word(params[2], 1 if arg(0) < arg(1) else 0)
            dp.ip = pos + 4
            return
        if opcode == OpCode.EQ:
            dp.write_word(params[2], 1 if arg(0) == arg(1) else 0)
            dp.ip = pos + 4
            return
        if opcode == OpCode.HALT:
            self._set_status(Status.HALTED)
            return

    def _dump_memory_to_file(self, path: str) -> None:
        dp = self.dp
        with open(path, "w", encoding="utf-8") as f:
            f.write("=== MEMORY DUMP ===\n")
            f.write(f"cells: {len(dp.memory)}  ip: {dp.ip}  status: {self.status.name}\n\n")
            for i, v in enumerate(dp.memory):
                f.write(f"{i:08d}: {v}\n")
            f.write("\n=== CODE (linear listing) ===\n")
            for line in disassemble(dp.memory):
                f.write(line + "\n")
            f.write("\n=== END DUMP ===\n")


class Intcode:
    """Intcode execution engine.

    Owns a private copy of the memory image, an instruction pointer, FIFO
    input and output queues and a Status. Faults are raised as IntcodeError
    subclasses and never turn into a state.
    """

    dp: Datapath
    cu: ControlUnit

    def __init__(self, memory: list[int], lenient_log: bool = False) -> None:
        self.dp = Datapath(memory, lenient_log=lenient_log)
        self.cu = ControlUnit(self.dp)

    @property
    def status(self) -> Status:
        return self.cu.status

    @property
    def memory(self) -> list[int]:
        return self.dp.memory

    @property
    def ip(self) -> int:
        return self.dp.ip

    @property
    def ticks(self) -> int:
        return self.dp.tick

    @property
    def outputs(self) -> list[int]:
        """Snapshot of the queued (not yet popped) outputs."""
        return list(self.dp.output_queue)

    def input(self, value: int) -> None:
        """Enqueue one input value. Legal in any state."""
        self.dp.push_input(int(value))

    def with_input(self, value: int) -> Intcode:
        self.input(value)
        return self

    def output(self) -> int | None:
        """Pop the oldest queued output, or None."""
        return self.dp.pop_output()

    def run(self) -> Status:
        return self.cu.run()

    def step(self) -> Status:
        return self.cu.step()

    def set_noun_verb(self, noun: int, verb: int) -> Intcode:
        """Store `noun` at address 1 and `verb` at address 2."""
        self.dp.write_word(1, noun, 0)
        self.dp.write_word(2, verb, 0)
        return self

    def validate_output(self) -> tuple[int, int] | None:
        """Check that every output before the last one is zero.

        Returns (index, value) of the first non-zero test output, or None.
        """
        for i, out in enumerate(self.outputs[:-1]):
            if out != 0:
                return i, out
        return None

    def diagnostic_code(self) -> int:
        """Return the last queued output."""
        if not self.dp.output_queue:
            err = "program produced no output"
            raise IntcodeError(err)
        return self.dp.output_queue[-1]

    def dump_memory(self, path: str) -> None:
        self.cu._dump_memory_to_file(path)


# ---------- Public API ----------
def run_program(
    memory: list[int], inputs: list[int] | tuple[int, ...] = (), config: str | dict[str, Any] | None = None
) -> Intcode:
    """Build an engine from `memory` and `config`, feed inputs and run it once.

    Config inputs are queued before `inputs`.
    """
    cfg = load_config(config)
    engine = Intcode(memory, lenient_log=cfg["lenient_log"])
    if cfg["noun"] is not None:
        engine.set_noun_verb(cfg["noun"], cfg["verb"])
    for v in [*cfg["inputs"], *inputs]:
        engine.input(v)
    engine.run()
    return engine


def find_noun_verb(memory: list[int], target: int, limit: int | None = None) -> tuple[int, int] | None:
    """Search nouns and verbs in 0..limit-1 for a run leaving `target` at address 0.

    `limit` defaults to 100, capped at the memory size since noun and verb
    are addresses.
    """
    if limit is None:
        limit = min(100, len(memory))
    for noun in range(limit):
        for verb in range(limit):
            engine = Intcode(memory, lenient_log=True).set_noun_verb(noun, verb)
            if engine.run() is not Status.HALTED:
                err = "program requested input during noun/verb search"
                raise IntcodeError(err)
            if engine.memory[0] == target:
                logging.debug("find_noun_verb: noun=%d verb=%d", noun, verb)
                return noun, verb
    return None


# ---------- CLI ----------
def main(argv: list[str] | None = None) -> int:  # noqa: C901
    import argparse

    ap = argparse.ArgumentParser(
        description="Intcode VM runner. PROGRAM is a file whose first line holds comma-separated integers."
    )
    ap.add_argument("program", help="program file")
    ap.add_argument("--input", type=int, action="append", default=None, help="input value (repeatable)")
    ap.add_argument("--noun", type=int, default=None, help="value stored at address 1 before running")
    ap.add_argument("--verb", type=int, default=None, help="value stored at address 2 before running")
    ap.add_argument("--phases", default=None, help="comma-separated phase settings; runs an amplifier chain")
    ap.add_argument("--feedback", action="store_true", help="loop the last stage back into the first")
    ap.add_argument("--search", action="store_true", help="try every permutation of --phases")
    ap.add_argument("--find-target", type=int, default=None, help="search noun/verb producing this value")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--dump-memory", default=None, help="write final memory to this file")

    help_debug = "enable debug logging to logfile (detailed per-step state)."
    help_logfile = "path to processor log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    args = ap.parse_args(argv)

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    # CLI flags override the config file
    try:
        cfg = load_config(args.config)
        if args.input:
            cfg["inputs"] = cfg["inputs"] + args.input
        if args.noun is not None or args.verb is not None:
            cfg["noun"], cfg["verb"] = args.noun, args.verb
        if args.phases is not None:
            cfg["phases"] = parse(args.phases)
        if args.feedback:
            cfg["feedback"] = True
        cfg = load_config(cfg)
    except (ConfigError, ParseError) as e:
        print("Bad config:", e)
        return 2

    if args.search and cfg["phases"] is None:
        print("Bad config: --search requires phases")
        return 2

    try:
        memory = load_program(args.program)
    except ParseError as e:
        print("Bad program:", e)
        return 2

    try:
        if args.find_target is not None:
            found = find_noun_verb(memory, args.find_target)
            if found is None:
                sys.stdout.write("NO SOLUTION\n")
                return 1
            noun, verb = found
            sys.stdout.write(f"{100 * noun + verb}\n")
            return 0

        if cfg["phases"] is not None:
            from chain import amplify, max_signal

            if args.search:
                signal, phases = max_signal(memory, cfg["phases"], feedback=cfg["feedback"])
                sys.stdout.write(f"{signal}\n")
                sys.stdout.write("PHASES: " + ",".join(str(p) for p in phases) + "\n")
            else:
                signal = amplify(memory, cfg["phases"], feedback=cfg["feedback"])
                sys.stdout.write(f"{signal}\n")
            return 0

        engine = run_program(memory, config=cfg)
    except IntcodeError as e:
        logging.debug("CLI: run aborted: %s", e)
        print("VM fault:", e)
        return 1

    # print VM output to stdout
    value = engine.output()
    while value is not None:
        sys.stdout.write(f"{value}\n")
        value = engine.output()
    sys.stdout.write("STATUS: " + engine.status.name)
    sys.stdout.write("\n")
    sys.stdout.write("TICKS: " + str(engine.ticks))
    sys.stdout.write("\n")

    if args.dump_memory:
        engine.dump_memory(args.dump_memory)
    if logging.getLogger().getEffectiveLevel() == logging.DEBUG:
        _write_debug_out_files(engine.memory)
    return 0


if __name__ == "__main__":
    sys.exit(main())
