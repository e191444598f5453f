"""
BefreakHost: execution state machine around the Befreak engine.

Owns the machine, drives NotStarted/Running/Done/Error transitions, and is
the only place engine errors are turned into the Error state. Callers (the
debugger, tests, a UI) step, reverse and read observables through it.
"""

from __future__ import annotations

import logging

from .errors import BefreakError
from .grid import Grid
from .machine import (
    BefreakMachine, S_DONE, S_ERROR, S_NOT_STARTED, S_RUNNING, STATE_NAMES,
)

logger = logging.getLogger(__name__)

MAX_STEPS = 100_000


class BefreakHost:
    """High-level interface to one Befreak machine.

    Args:
        grid: Program grid. Defaults to a blank 10x10 grid holding only the
            start marker.
    """

    def __init__(self, grid: Grid | None = None):
        self.load_grid(grid if grid is not None else Grid.empty())

    @classmethod
    def from_text(cls, text: str) -> "BefreakHost":
        return cls(Grid.from_text(text))

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------

    def load_grid(self, grid: Grid):
        """Replace the program. The previous machine is discarded."""
        machine = BefreakMachine(grid)
        self.grid = grid
        self.machine = machine
        logger.debug("loaded %dx%d grid, start at %s",
                     grid.width, grid.height, self.machine.start_pos)

    def load_text(self, text: str):
        self.load_grid(Grid.from_text(text))

    def new_empty(self):
        self.load_grid(Grid.empty())

    def reset(self):
        self.machine.reset()

    def with_cell(self, location: tuple[int, int], char: str):
        """Edit one cell and reload a fresh machine on the edited grid."""
        self.load_grid(self.grid.with_cell(location, char))

    def serialize(self) -> str:
        return self.grid.serialize()

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------

    @property
    def state(self) -> int:
        return self.machine.state

    @property
    def error(self) -> BefreakError | None:
        return self.machine.error

    @property
    def state_name(self) -> str:
        if self.machine.state == S_ERROR and self.machine.error is not None:
            return f"Error({self.machine.error.kind})"
        return STATE_NAMES[self.machine.state]

    def _fail(self, err: BefreakError):
        self.machine.state = S_ERROR
        self.machine.error = err
        logger.warning("error at %s (step %d): %s",
                       self.machine.location, self.machine.step_count, err)

    def recover(self):
        """Restart a finished program, or begin one that was reversed at its start."""
        m = self.machine
        if m.state == S_DONE:
            if not m.direction_reversed:
                m.reset()
            m.state = S_RUNNING
        elif m.state == S_NOT_STARTED:
            if m.direction_reversed:
                m.reset()
            m.state = S_RUNNING

    def step(self) -> int:
        """Execute one instruction if running. Returns the new state."""
        self.recover()
        if self.machine.state == S_RUNNING:
            try:
                self.machine.step()
            except BefreakError as err:
                self._fail(err)
        return self.machine.state

    def reverse_direction(self):
        """Switch between running forwards and unwinding.

        Clears an Error state. A pending literal is settled first in any
        state, and the flip always happens. When the machine is mid-run the
        instruction under the cursor has already been applied, so it is
        re-applied in the new mode to cancel it.
        """
        m = self.machine
        run_step = m.state == S_RUNNING
        m.settle_literal()
        m.flip_direction()
        if m.state == S_ERROR:
            m.state = S_RUNNING
            m.error = None
        if run_step:
            try:
                m.process_instruction()
            except BefreakError as err:
                self._fail(err)
        logger.debug("direction reversed=%s at %s", m.direction_reversed, m.location)

    def run(self, max_steps: int = MAX_STEPS) -> int:
        """Step until the machine stops running. Returns steps taken."""
        steps = 0
        if self.machine.state == S_ERROR:
            return steps
        while steps < max_steps:
            self.step()
            steps += 1
            if self.machine.state != S_RUNNING:
                return steps
        logger.warning("step budget of %d exhausted at %s", max_steps, self.machine.location)
        return steps

    def unwind(self, max_steps: int = MAX_STEPS) -> int:
        """Run a finished program backwards to its start."""
        if not self.machine.direction_reversed:
            self.reverse_direction()
        return self.run(max_steps)

    # -------------------------------------------------------------------
    # Observables
    # -------------------------------------------------------------------

    def output_bytes(self) -> bytes:
        return bytes(v & 0xFF for v in self.machine.output_stack)

    def output_text(self) -> str:
        return self.output_bytes().decode("latin-1")

    def snapshot(self) -> dict:
        m = self.machine
        return {
            "state": self.state_name,
            "step": m.step_count,
            "location": m.location,
            "direction": m.direction.name,
            "direction_reversed": m.direction_reversed,
            "inverse_mode": m.inverse_mode,
            "string_mode": m.string_mode,
            "stack": m.stack.values(),
            "control_stack": m.control_stack.values(),
            "output_stack": m.output_stack.values(),
            "pending_digits": "".join(m.number_buffer),
            "literal_void": m.literal_void,
        }
