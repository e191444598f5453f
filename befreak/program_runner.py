"""
program_runner: Headless running and tracing of Befreak programs.

Wraps BefreakHost with file loading, per-step trace capture and
breakpoints on grid cells, for the debugger and for tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .grid import Grid
from .host import BefreakHost, MAX_STEPS
from .machine import S_NOT_STARTED, S_RUNNING

logger = logging.getLogger(__name__)


def load_program(path: str | Path) -> Grid:
    """Read a program file into a Grid."""
    text = Path(path).read_text(encoding="utf-8")
    return Grid.from_text(text)


# ---------------------------------------------------------------------------
# Trace representation
# ---------------------------------------------------------------------------

@dataclass
class TraceEntry:
    step: int
    location: tuple[int, int]
    char: str
    direction: str
    inverse_mode: bool
    string_mode: bool
    stack: list[int] = field(default_factory=list)
    control_stack: list[int] = field(default_factory=list)
    state: str = ""

    def format(self) -> str:
        flags = ("I" if self.inverse_mode else "-") + ("S" if self.string_mode else "-")
        return (f"{self.step:6d} {self.location!s:>10} {self.char!r:5} "
                f"{self.direction:5} {flags} {self.state:24} "
                f"main={self.stack} ctrl={self.control_stack}")


# ---------------------------------------------------------------------------
# ProgramRunner
# ---------------------------------------------------------------------------

class ProgramRunner:
    """Drives a BefreakHost to completion, forwards or backwards."""

    def __init__(self, host: BefreakHost | None = None):
        self.host = host if host is not None else BefreakHost()
        self.trace: list[TraceEntry] = []
        self.breakpoints: set[tuple[int, int]] = set()

    @classmethod
    def from_file(cls, path: str | Path) -> "ProgramRunner":
        return cls(BefreakHost(load_program(path)))

    @classmethod
    def from_text(cls, text: str) -> "ProgramRunner":
        return cls(BefreakHost.from_text(text))

    @property
    def machine(self):
        return self.host.machine

    def _record(self):
        m = self.host.machine
        self.trace.append(TraceEntry(
            step=m.step_count,
            location=m.location,
            char=m.current_char,
            direction=m.direction.name,
            inverse_mode=m.inverse_mode,
            string_mode=m.string_mode,
            stack=m.stack.values(),
            control_stack=m.control_stack.values(),
            state=self.host.state_name,
        ))

    def toggle_breakpoint(self, location: tuple[int, int]):
        if location in self.breakpoints:
            self.breakpoints.discard(location)
        else:
            self.breakpoints.add(location)

    # -------------------------------------------------------------------
    # Execution control
    # -------------------------------------------------------------------

    def _drive(self, max_steps: int, trace: bool, stop_at_breakpoints: bool) -> int:
        steps = 0
        while steps < max_steps:
            state = self.host.step()
            steps += 1
            if trace:
                self._record()
            if state != S_RUNNING:
                return steps
            if stop_at_breakpoints and self.host.machine.location in self.breakpoints:
                logger.info("breakpoint at %s", self.host.machine.location)
                return steps
        logger.warning("step budget of %d exhausted", max_steps)
        return steps

    def run_to_end(self, max_steps: int = MAX_STEPS, trace: bool = False) -> int:
        """Run forwards until Done or Error. Returns steps taken."""
        return self._drive(max_steps, trace, stop_at_breakpoints=False)

    def run_to_breakpoint(self, max_steps: int = MAX_STEPS, trace: bool = False) -> int:
        """Run until the cursor lands on a breakpoint cell or execution stops."""
        return self._drive(max_steps, trace, stop_at_breakpoints=True)

    def run_back(self, max_steps: int = MAX_STEPS, trace: bool = False) -> int:
        """Unwind to the start position. Returns steps taken."""
        if not self.host.machine.direction_reversed:
            self.host.reverse_direction()
        if self.host.state == S_NOT_STARTED:
            return 0
        return self._drive(max_steps, trace, stop_at_breakpoints=False)
