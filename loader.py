"""Module: load Intcode program text into a memory image.

This module contains:
- parse(text) -> list of ints (the memory template)
- load_program(path) -> parse the first line of a program file
- disassemble(memory) -> human-readable listing of a memory image
"""

from __future__ import annotations

import re
from pathlib import Path

from isa import PARAM_COUNT, DecodeError, decode_instr, fits_int64, mnemonic

_INT_RE = re.compile(r"[-+]?[0-9]+")


class ParseError(ValueError):
    """Raised when program text cannot be turned into a memory image."""


def parse(text: str) -> list[int]:
    """Split comma-separated program text into a list of ints.

    Surrounding whitespace (a trailing newline from a file) is dropped;
    whitespace inside the list is not allowed. Each engine must get its own
    copy of the returned image.
    """
    body = text.strip()
    if not body:
        msg = "Empty program"
        raise ParseError(msg)

    memory: list[int] = []
    for idx, tok in enumerate(body.split(",")):
        if not _INT_RE.fullmatch(tok):
            msg = f"Bad integer literal at index {idx}: {tok!r}"
            raise ParseError(msg)
        v = int(tok)
        if not fits_int64(v):
            msg = f"Integer literal at index {idx} does not fit in 64 bits: {tok}"
            raise ParseError(msg)
        memory.append(v)
    return memory


def load_program(path: str | Path) -> list[int]:
    """Read the first line of `path` and parse it."""
    p = Path(path)
    if not p.exists():
        msg = f"Program file not found: {path}"
        raise ParseError(msg)
    with p.open("r", encoding="utf-8") as f:
        first = f.readline()
    return parse(first)


def disassemble(memory: list[int]) -> list[str]:
    """Produce a linear listing "<addr> - <cell> - <mnemonic>".

    Cells that do not decode are listed as DATA and the listing resumes at
    the next cell.
    """
    lines: list[str] = []
    addr = 0
    while addr < len(memory):
        cell = memory[addr]
        try:
            opcode, modes = decode_instr(cell, addr)
        except DecodeError:
            lines.append(f"{addr} - {cell} - DATA {cell}")
            addr += 1
            continue
        n = PARAM_COUNT[opcode]
        params = memory[addr + 1 : addr + 1 + n]
        if len(params) < n:
            lines.append(f"{addr} - {cell} - DATA {cell}")
            addr += 1
            continue
        lines.append(f"{addr} - {cell} - {mnemonic(opcode, params, modes)}")
        addr += 1 + n
    return lines
