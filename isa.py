"""ISA: Intcode opcodes, parameter modes, decoding helpers and faults."""

from __future__ import annotations

from enum import IntEnum


class OpCode(IntEnum):
    """Keeps opcodes from all operations."""

    ADD = 1  # mem[dst] = a + b
    MUL = 2  # mem[dst] = a * b
    IN = 3  # mem[dst] = input
    OUT = 4  # output a
    JT = 5  # jump-if-true
    JF = 6  # jump-if-false
    LT = 7  # mem[dst] = a < b
    EQ = 8  # mem[dst] = a == b

    HALT = 99


class ParameterMode(IntEnum):
    """Addressing mode of one instruction parameter."""

    POSITION = 0  # operand is an address
    IMMEDIATE = 1  # operand is the value itself (reads only)


# number of parameters following the opcode cell
PARAM_COUNT: dict[OpCode, int] = {
    OpCode.ADD: 3,
    OpCode.MUL: 3,
    OpCode.IN: 1,
    OpCode.OUT: 1,
    OpCode.JT: 2,
    OpCode.JF: 2,
    OpCode.LT: 3,
    OpCode.EQ: 3,
    OpCode.HALT: 0,
}

# index of the write-destination parameter (0-based), if any
WRITE_PARAM: dict[OpCode, int] = {
    OpCode.ADD: 2,
    OpCode.MUL: 2,
    OpCode.IN: 0,
    OpCode.LT: 2,
    OpCode.EQ: 2,
}

MODE_DIGITS = 3

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1


class IntcodeError(Exception):
    """Base class for all fatal VM faults."""


class DecodeError(IntcodeError):
    """Raised when a memory cell is not a valid instruction."""


class UnknownOpcodeError(DecodeError):
    """Raised when the low two digits of a cell are not a known opcode."""

    def __init__(self, position: int | None, value: int) -> None:
        self.position = position
        self.value = value
        where = "?" if position is None else str(position)
        super().__init__(f"{where}: unknown opcode {value}")


class InvalidModeError(DecodeError):
    """Raised when a parameter mode digit is neither 0 nor 1."""

    def __init__(self, position: int | None, value: int, digit: int) -> None:
        self.position = position
        self.value = value
        self.digit = digit
        where = "?" if position is None else str(position)
        super().__init__(f"{where}: invalid parameter mode {digit} in {value}")


class IllegalWriteModeError(IntcodeError):
    """Raised when a write destination is given in immediate mode."""

    def __init__(self, position: int, opcode: OpCode) -> None:
        self.position = position
        self.opcode = opcode
        super().__init__(f"{position}: {opcode.name} received its destination in immediate mode")


class MemoryFault(IntcodeError):
    """Raised on any access outside of the memory image."""

    def __init__(self, position: int, address: int) -> None:
        self.position = position
        self.address = address
        super().__init__(f"{position}: address {address} out of memory")


class ValueOverflowError(IntcodeError):
    """Raised when a stored value does not fit in a signed 64-bit word."""

    def __init__(self, position: int, value: int) -> None:
        self.position = position
        self.value = value
        super().__init__(f"{position}: value {value} does not fit in 64 bits")


def fits_int64(value: int) -> bool:
    return INT64_MIN <= value <= INT64_MAX


def decode_instr(cell: int, position: int | None = None) -> tuple[OpCode, tuple[ParameterMode, ...]]:
    """Decode one memory cell.

    Returns (OpCode, modes) where modes holds the addressing mode of
    parameters 1..3 taken from the hundreds, thousands and ten-thousands
    digits. Digits above those are ignored. `position` is only used to
    annotate raised errors.
    """
    if cell < 0:
        raise UnknownOpcodeError(position, cell)
    try:
        opcode = OpCode(cell % 100)
    except ValueError as e:
        raise UnknownOpcodeError(position, cell) from e

    modes: list[ParameterMode] = []
    rest = cell // 100
    for _ in range(MODE_DIGITS):
        digit = rest % 10
        if digit not in (ParameterMode.POSITION, ParameterMode.IMMEDIATE):
            raise InvalidModeError(position, cell, digit)
        modes.append(ParameterMode(digit))
        rest //= 10
    return opcode, tuple(modes)


def mnemonic(opcode: OpCode, params: list[int] | tuple[int, ...] = (), modes: tuple[ParameterMode, ...] = ()) -> str:
    """Get operation mnemonic, e.g. ``ADD 100 #-1 4``.

    Immediate operands are prefixed with ``#``.
    """
    parts = [opcode.name]
    for i, p in enumerate(params):
        if i < len(modes) and modes[i] == ParameterMode.IMMEDIATE:
            parts.append(f"#{p}")
        else:
            parts.append(str(p))
    return " ".join(parts)
