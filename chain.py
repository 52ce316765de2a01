"""Chain orchestrator: run Intcode engines as a pipeline.

Each stage's output is moved into the next stage's input. With feedback
enabled the output of the last stage is moved back into the first stage and
passes repeat until the last stage halts.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from itertools import permutations

from isa import IntcodeError
from processor import Intcode, Status


class ChainError(IntcodeError):
    """Raised when the chain cannot be driven to completion."""


class IntcodeChain:
    """Ordered engines connected through one transfer buffer."""

    stages: list[Intcode]
    feedback: bool
    transfer: deque[int]
    passes: int

    def __init__(self, engines: Iterable[Intcode], feedback: bool = False) -> None:
        self.stages = list(engines)
        if not self.stages:
            err = "chain needs at least one stage"
            raise ChainError(err)
        self.feedback = bool(feedback)
        self.transfer = deque()
        self.passes = 0

    def with_feedback(self) -> IntcodeChain:
        self.feedback = True
        return self

    def input(self, value: int) -> None:
        """Feed `value` to the first stage."""
        self.stages[0].input(value)

    def output(self) -> int | None:
        """Pop the oldest value left over from the last stage."""
        if not self.transfer:
            return None
        return self.transfer.popleft()

    def _pass(self) -> bool:
        """Run every stage once, in order.

        Returns True when any stage executed an instruction or any value moved.
        """
        progressed = False
        for i, stage in enumerate(self.stages):
            if self.transfer:
                progressed = True
            while self.transfer:
                stage.input(self.transfer.popleft())

            before = stage.ticks
            status = stage.run()
            if stage.ticks != before:
                progressed = True

            if not self.feedback and status is not Status.HALTED:
                err = f"stage {i} did not halt (status {status.name})"
                raise ChainError(err)

            value = stage.output()
            while value is not None:
                self.transfer.append(value)
                value = stage.output()
        return progressed

    def run(self) -> None:
        """Drive the pipeline; with feedback, loop until the last stage halts."""
        last = self.stages[-1]
        self.passes = 0
        while True:
            progressed = self._pass()
            self.passes += 1
            logging.debug(
                "Chain: pass %d done, last stage %s, %d value(s) buffered",
                self.passes,
                last.status.name,
                len(self.transfer),
            )
            if not self.feedback or last.status is Status.HALTED:
                return
            if not progressed:
                err = f"chain stalled after {self.passes} pass(es): no stage can make progress"
                raise ChainError(err)


def amplify(memory: list[int], phases: Iterable[int], feedback: bool = False, signal: int = 0) -> int:
    """Run one engine per phase setting and return the final output signal."""
    chain = IntcodeChain((Intcode(memory, lenient_log=True).with_input(p) for p in phases), feedback=feedback)
    chain.input(signal)
    chain.run()
    out = chain.output()
    if out is None:
        err = "program produced no output"
        raise ChainError(err)
    return out


def max_signal(memory: list[int], phase_settings: Iterable[int], feedback: bool = False) -> tuple[int, tuple[int, ...]]:
    """Try every ordering of `phase_settings`; return the best signal and its phases."""
    best: tuple[int, tuple[int, ...]] | None = None
    for phases in permutations(phase_settings):
        signal = amplify(memory, phases, feedback=feedback)
        if best is None or signal > best[0]:
            best = (signal, phases)
    assert best is not None
    return best
