"""Tests for the execution engine, its drivers and the CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from isa import IllegalWriteModeError, IntcodeError, MemoryFault, UnknownOpcodeError, ValueOverflowError
from loader import parse
from processor import Intcode, Status, find_noun_verb, main, run_program

COMPARE_8 = parse(
    "3,21,1008,21,8,20,1005,20,22,107,8,21,20,1006,20,31,1106,0,36,98,0,0,1002,21,125,20,4,20,1105,1,46,104,"
    "999,1105,1,46,1101,1000,1,20,4,20,1105,1,46,98,99"
)


def test_add_halts_with_result() -> None:
    engine = Intcode([1, 0, 0, 0, 99])
    assert engine.status is Status.INITIAL
    assert engine.run() is Status.HALTED
    assert engine.memory[0] == 2


def test_multiply() -> None:
    engine = Intcode([2, 3, 0, 3, 99])
    engine.run()
    assert engine.memory == [2, 3, 0, 6, 99]


def test_echo_input() -> None:
    engine = Intcode([3, 0, 4, 0, 99])
    engine.input(7)
    engine.run()
    assert engine.output() == 7
    assert engine.output() is None


def test_single_step_with_immediate_operands() -> None:
    engine = Intcode([1101, 100, -1, 4, 0])
    assert engine.step() is Status.RUNNING
    assert engine.memory[4] == 99
    assert engine.ip == 4
    assert engine.run() is Status.HALTED


def test_engine_copies_memory() -> None:
    image = [1, 0, 0, 0, 99]
    a = Intcode(image)
    b = Intcode(image)
    a.run()
    assert image == [1, 0, 0, 0, 99]
    assert b.memory == [1, 0, 0, 0, 99]


def test_waiting_keeps_pointer_and_resumes() -> None:
    engine = Intcode([3, 9, 3, 10, 4, 9, 4, 10, 99, 0, 0])
    assert engine.run() is Status.WAITING
    assert engine.ip == 0
    assert engine.ticks == 0

    # still starving: no progress, no fault
    assert engine.run() is Status.WAITING
    assert engine.ip == 0

    engine.input(5)
    assert engine.run() is Status.WAITING
    assert engine.ip == 2
    assert engine.memory[9] == 5

    engine.input(6)
    engine.input(8)
    assert engine.run() is Status.HALTED
    assert engine.outputs == [5, 6]
    # the extra value stays queued
    assert list(engine.dp.input_queue) == [8]


def test_input_is_legal_in_any_state() -> None:
    engine = Intcode([99])
    engine.input(1)
    engine.run()
    engine.input(2)
    assert list(engine.dp.input_queue) == [1, 2]


def test_run_on_halted_engine_is_noop() -> None:
    engine = Intcode([1, 0, 0, 0, 99])
    engine.run()
    snapshot = list(engine.memory)
    ticks = engine.ticks
    assert engine.run() is Status.HALTED
    assert engine.step() is Status.HALTED
    assert engine.memory == snapshot
    assert engine.ticks == ticks


def test_outputs_keep_emission_order() -> None:
    engine = Intcode([104, 1, 104, 2, 104, 3, 99])
    engine.run()
    assert [engine.output(), engine.output(), engine.output()] == [1, 2, 3]


@pytest.mark.parametrize(
    ("program", "taken"),
    [
        ([1105, 1, 7, 104, 0, 99, 0, 104, 1, 99], True),
        ([1105, 0, 7, 104, 0, 99, 0, 104, 1, 99], False),
        ([1106, 0, 7, 104, 0, 99, 0, 104, 1, 99], True),
        ([1106, 3, 7, 104, 0, 99, 0, 104, 1, 99], False),
    ],
)
def test_jumps_do_not_touch_memory(program: list[int], taken: bool) -> None:
    engine = Intcode(program)
    engine.run()
    assert engine.memory == program
    assert engine.output() == (1 if taken else 0)


@pytest.mark.parametrize(
    ("program", "inp", "expected"),
    [
        ("3,9,8,9,10,9,4,9,99,-1,8", 8, 1),
        ("3,9,8,9,10,9,4,9,99,-1,8", 3, 0),
        ("3,9,7,9,10,9,4,9,99,-1,8", 3, 1),
        ("3,9,7,9,10,9,4,9,99,-1,8", 9, 0),
        ("3,3,1108,-1,8,3,4,3,99", 8, 1),
        ("3,3,1107,-1,8,3,4,3,99", 10, 0),
    ],
)
def test_comparisons_write_zero_or_one(program: str, inp: int, expected: int) -> None:
    engine = run_program(parse(program), [inp])
    assert engine.outputs == [expected]


@pytest.mark.parametrize(("inp", "expected"), [(7, 999), (8, 1000), (9, 1001)])
def test_compare_against_8(inp: int, expected: int) -> None:
    engine = run_program(COMPARE_8, [inp], {"lenient_log": True})
    assert engine.outputs == [expected]


def test_unknown_opcode_reports_position() -> None:
    engine = Intcode([1, 0, 0, 0, 42])
    with pytest.raises(UnknownOpcodeError) as exc:
        engine.run()
    assert exc.value.position == 4
    assert exc.value.value == 42


def test_immediate_destination_is_fatal() -> None:
    with pytest.raises(IllegalWriteModeError):
        Intcode([11101, 1, 1, 0, 99]).run()
    engine = Intcode([103, 0, 99])
    engine.input(1)
    with pytest.raises(IllegalWriteModeError):
        engine.run()
    # nothing was consumed
    assert list(engine.dp.input_queue) == [1]


@pytest.mark.parametrize(
    "program",
    [
        [1, 0, 0, 50, 99],  # write past the end
        [1, -1, 0, 0, 99],  # negative read address
        [4, 100, 99],  # output from outside memory
        [1105, 1, 50],  # jump outside memory
        [1, 0, 0],  # truncated instruction
    ],
)
def test_memory_faults(program: list[int]) -> None:
    with pytest.raises(MemoryFault):
        Intcode(program).run()


def test_value_overflow() -> None:
    big = 2**62
    with pytest.raises(ValueOverflowError):
        Intcode([1102, big, 4, 0, 99]).run()


def test_fault_is_not_a_status() -> None:
    engine = Intcode([42])
    with pytest.raises(IntcodeError):
        engine.run()
    assert engine.status is Status.RUNNING


def test_noun_verb_and_diagnostics() -> None:
    engine = Intcode([1, 0, 0, 0, 99]).set_noun_verb(4, 4)
    engine.run()
    assert engine.memory[:3] == [198, 4, 4]

    diag = run_program(parse("104,0,104,0,104,12,99"))
    assert diag.validate_output() is None
    assert diag.diagnostic_code() == 12

    broken = run_program(parse("104,0,104,3,104,12,99"))
    assert broken.validate_output() == (1, 3)


def test_diagnostic_code_without_output() -> None:
    with pytest.raises(IntcodeError):
        Intcode([99]).diagnostic_code()


def test_run_program_uses_config_inputs_first() -> None:
    engine = run_program(parse("3,0,3,1,4,0,4,1,99"), [2], {"inputs": [1]})
    assert engine.outputs == [1, 2]


def test_find_noun_verb() -> None:
    # mem[0] = mem[noun] + mem[verb]
    memory = [1, 0, 0, 0, 99, 10, 20, 30]
    assert find_noun_verb(memory, 50, limit=8) == (6, 7)
    assert find_noun_verb(memory, 12345, limit=8) is None


def test_find_noun_verb_rejects_input_programs() -> None:
    with pytest.raises(IntcodeError):
        find_noun_verb([3, 0, 0, 99], 0, limit=4)


def test_step_log_lines(read_log: Any) -> None:
    Intcode([1101, 100, -1, 4, 0]).run()
    text = read_log()
    assert "Status: INITIAL -> RUNNING at IP 0" in text
    assert "STEP: COMMAND_FETCH" in text
    assert "INSTR: ADD #100 #-1 4" in text
    assert "Status: RUNNING -> HALTED at IP 4" in text


def test_lenient_log_skips_step_lines(read_log: Any) -> None:
    Intcode([1101, 100, -1, 4, 0], lenient_log=True).run()
    text = read_log()
    assert "STEP:" not in text
    assert "RUNNING -> HALTED" in text


def test_dump_memory(tmp_path: Path) -> None:
    engine = Intcode([1, 0, 0, 0, 99])
    engine.run()
    path = tmp_path / "dump.txt"
    engine.dump_memory(str(path))
    text = path.read_text(encoding="utf-8")
    assert "00000000: 2" in text
    assert "status: HALTED" in text
    assert "4 - 99 - HALT" in text


# ---------- CLI ----------
def _program(tmp_path: Path, text: str) -> str:
    p = tmp_path / "prog.input"
    p.write_text(text + "\n", encoding="utf-8")
    return str(p)


def test_cli_runs_program(tmp_path: Path, capsys: Any) -> None:
    prog = _program(tmp_path, "3,0,4,0,99")
    rc = main([prog, "--input", "7", "--logfile", str(tmp_path / "p.log")])
    assert rc == 0
    assert capsys.readouterr().out.splitlines() == ["7", "STATUS: HALTED", "TICKS: 3"]


def test_cli_chain_and_search(tmp_path: Path, capsys: Any) -> None:
    prog = _program(tmp_path, "3,15,3,16,1002,16,10,16,1,16,15,15,4,15,99,0,0")
    log = str(tmp_path / "p.log")
    assert main([prog, "--phases", "4,3,2,1,0", "--logfile", log]) == 0
    assert capsys.readouterr().out.strip() == "43210"

    assert main([prog, "--phases", "0,1,2,3,4", "--search", "--logfile", log]) == 0
    assert capsys.readouterr().out.splitlines() == ["43210", "PHASES: 4,3,2,1,0"]


def test_cli_find_target(tmp_path: Path, capsys: Any) -> None:
    prog = _program(tmp_path, "1,0,0,0,99")
    assert main([prog, "--find-target", "198", "--logfile", str(tmp_path / "p.log")]) == 0
    assert capsys.readouterr().out.strip() == "404"


def test_cli_config_file(tmp_path: Path, capsys: Any) -> None:
    prog = _program(tmp_path, "1,0,0,0,99")
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("noun: 4\nverb: 4\n", encoding="utf-8")
    dump = tmp_path / "mem.txt"
    rc = main([prog, "--config", str(cfg), "--dump-memory", str(dump), "--logfile", str(tmp_path / "p.log")])
    assert rc == 0
    assert "00000000: 198" in dump.read_text(encoding="utf-8")


def test_cli_errors(tmp_path: Path, capsys: Any) -> None:
    log = str(tmp_path / "p.log")
    assert main([str(tmp_path / "missing.input"), "--logfile", log]) == 2
    assert main([_program(tmp_path, "1,x"), "--logfile", log]) == 2
    assert main([_program(tmp_path, "42"), "--logfile", log]) == 1
    assert main([_program(tmp_path, "99"), "--search", "--logfile", log]) == 2
    assert main([_program(tmp_path, "99"), "--noun", "1", "--logfile", log]) == 2
    out = capsys.readouterr().out
    assert "Bad program" in out
    assert "VM fault" in out
