"""
Befreak machine: reversible execution engine for the Befreak grid language.

One step moves the cursor, decodes the character under it and applies the
operation to the main, control and output stacks. Running backwards uses
the same engine with the heading reversed and every operation complemented;
no execution history is kept.
"""

from __future__ import annotations

import logging

from .chips import WordStack, to_signed64
from .errors import (
    BefreakError, EmptyControlStack, EmptyMainStack, EmptyOutputStack,
    InvalidPopZero, InvalidStringRemoval, InvalidUnder, InvalidUnduplicate,
    NonBoolInControlStack, ReadNotSupported,
)
from .grid import Direction, Grid
from .opcodes import (
    BRANCHES, MIRRORS, Op, decode, is_digit, literal_value,
)

logger = logging.getLogger(__name__)

# Execution states
S_NOT_STARTED = 0
S_RUNNING     = 1
S_DONE        = 2
S_ERROR       = 3

STATE_NAMES = {
    S_NOT_STARTED: "NotStarted",
    S_RUNNING: "Running",
    S_DONE: "Done",
    S_ERROR: "Error",
}


def _trunc_divmod(y: int, x: int) -> tuple[int, int]:
    """Division rounding toward zero; the remainder takes the dividend's sign."""
    q = abs(y) // abs(x)
    if (y < 0) != (x < 0):
        q = -q
    return q, y - q * x


class BefreakMachine:
    """Mutable execution context over a shared, read-only Grid."""

    def __init__(self, grid: Grid, start_pos: tuple[int, int] | None = None):
        self.grid = grid
        self.start_pos = start_pos if start_pos is not None else grid.find_start()

        self.stack = WordStack("main", EmptyMainStack)
        self.control_stack = WordStack("control", EmptyControlStack)
        self.output_stack = WordStack("output", EmptyOutputStack)

        self._handlers = {
            Op.PUSH_ZERO: self._push_zero,
            Op.POP_ZERO: self._pop_zero,
            Op.TO_CONTROL: self._to_control,
            Op.FROM_CONTROL: self._from_control,
            Op.SWAP_CONTROL: self._swap_control,
            Op.WRITE: self._write,
            Op.READ: self._read,
            Op.INCREMENT: self._increment,
            Op.DECREMENT: self._decrement,
            Op.ADD: self._add,
            Op.SUBTRACT: self._subtract,
            Op.DIVIDE: self._divide,
            Op.MULTIPLY: self._multiply,
            Op.NOT: self._not,
            Op.AND: self._and,
            Op.OR: self._or,
            Op.XOR: self._xor,
            Op.ROTATE_LEFT: self._rotate_left,
            Op.ROTATE_RIGHT: self._rotate_right,
            Op.TOGGLE: self._toggle,
            Op.EQUAL: self._equal,
            Op.LESS: self._less,
            Op.GREATER: self._greater,
            Op.SWAP: self._swap,
            Op.DIG: self._dig,
            Op.BURY: self._bury,
            Op.FLIP: self._flip,
            Op.SWAP_UNDER: self._swap_under,
            Op.OVER: self._over,
            Op.UNDER: self._under,
            Op.DUP: self._dup,
            Op.UNDUP: self._undup,
            Op.STRING: self._string,
            Op.TOGGLE_INVERSE: self._toggle_inverse,
            Op.HALT: self._halt,
            Op.MIRROR_BACK: self._mirror,
            Op.MIRROR_FORWARD: self._mirror,
            Op.BRANCH_EAST: self._branch,
            Op.BRANCH_WEST: self._branch,
            Op.BRANCH_SOUTH: self._branch,
            Op.BRANCH_NORTH: self._branch,
            Op.NOP: self._nop,
        }
        self.reset()

    def reset(self):
        """Return to the freshly loaded state at the start position."""
        self.location = self.start_pos
        self.direction = Direction.EAST
        self.direction_reversed = False
        self.inverse_mode = False
        self.string_mode = False
        self.stack.clear()
        self.control_stack.clear()
        self.output_stack.clear()
        self.number_buffer: list[str] = []
        # digits of the current run carry no value (set by reversing a
        # literal that had nothing to XOR into)
        self.literal_void = False
        self.step_count = 0
        self.state = S_NOT_STARTED
        self.error: BefreakError | None = None

    @property
    def current_char(self) -> str:
        return self.grid[self.location]

    # -------------------------------------------------------------------
    # Stepping
    # -------------------------------------------------------------------

    def step(self):
        """Move one cell and execute it. Raises BefreakError on failure."""
        self.location = self.grid.move(self.location, self.direction)
        if self.direction_reversed:
            self.step_count -= 1
        else:
            self.step_count += 1
        self.process_instruction()

    def flip_direction(self):
        self.direction_reversed = not self.direction_reversed
        self.direction = self.direction.reversed()
        self.inverse_mode = not self.inverse_mode

    def settle_literal(self):
        """Prepare a pending literal for a change of heading. Never raises.

        A literal with a target is applied now, using the mode it was read
        under, so the walk back over its digits XORs it out again. Without a
        target the run is marked void and its digits are skipped on the way
        back. Reversing inside a void run rebuilds the digits read so far.
        """
        if self.literal_void:
            self.literal_void = False
            self.number_buffer = self._digits_behind()
        elif self.number_buffer:
            if self.stack:
                self._resolve_literal()
            else:
                self.number_buffer = []
                self.literal_void = True

    def _digits_behind(self) -> list[str]:
        """Digits trailing the cursor along the current heading, in the
        order a walk the other way would read them."""
        digits = []
        loc = self.location
        if self.direction in (Direction.EAST, Direction.WEST):
            span = self.grid.width
        else:
            span = self.grid.height
        for _ in range(span - 1):
            loc = self.grid.move(loc, self.direction)
            char = self.grid[loc]
            if not is_digit(char):
                break
            digits.append(char)
        digits.reverse()
        return digits

    def process_instruction(self):
        """Execute the character under the cursor in the current mode."""
        char = self.current_char

        if self.string_mode:
            self._string_char(char)
            return

        if is_digit(char):
            if not self.literal_void:
                self.number_buffer.append(char)
            return
        self.literal_void = False

        pending = None
        if self.number_buffer:
            pending = (list(self.number_buffer), self._resolve_literal())

        try:
            op = decode(char)
            if self.inverse_mode:
                op = op.inverse()
            logger.debug("step %d at %s %s: %s", self.step_count, self.location,
                         self.direction.name, op.name)
            self._handlers[op](op)
        except BefreakError:
            if pending is not None:
                digits, value = pending
                self.stack.set_top(self.stack.peek() ^ value)
                self.number_buffer = digits
            raise

    def _resolve_literal(self) -> int:
        value = literal_value(self.number_buffer, reverse=self.inverse_mode)
        self.stack.set_top(self.stack.peek() ^ value)
        self.number_buffer = []
        return value

    def _string_char(self, char: str):
        if char == '"':
            self.string_mode = False
        elif self.inverse_mode:
            current = self.stack.pop()
            if current != ord(char):
                self.stack.push(current)
                raise InvalidStringRemoval()
        else:
            self.stack.push(ord(char))

    # -------------------------------------------------------------------
    # Stack transfer
    # -------------------------------------------------------------------

    def _push_zero(self, op):
        self.stack.push(0)

    def _pop_zero(self, op):
        x = self.stack.pop()
        if x != 0:
            self.stack.push(x)
            raise InvalidPopZero()

    def _to_control(self, op):
        self.control_stack.push(self.stack.pop())

    def _from_control(self, op):
        self.stack.push(self.control_stack.pop())

    def _swap_control(self, op):
        self.stack.require(1)
        self.control_stack.require(1)
        main = self.stack.pop()
        control = self.control_stack.pop()
        self.stack.push(control)
        self.control_stack.push(main)

    def _write(self, op):
        # 'w' keeps its character in inverse mode; the behaviour branches here
        if self.inverse_mode:
            self.stack.push(self.output_stack.pop())
        else:
            self.output_stack.push(self.stack.pop())

    def _read(self, op):
        raise ReadNotSupported()

    # -------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------

    def _increment(self, op):
        self.stack.set_top(self.stack.peek() + 1)

    def _decrement(self, op):
        self.stack.set_top(self.stack.peek() - 1)

    def _add(self, op):
        top, nxt = self.stack.pop_many(2)
        self.stack.push(nxt + top)
        self.stack.push(top)

    def _subtract(self, op):
        top, nxt = self.stack.pop_many(2)
        self.stack.push(nxt - top)
        self.stack.push(top)

    def _divide(self, op):
        # [y] [x] -> [y/x] [y%x] [x]
        self.stack.require(2)
        if self.stack.peek() == 0:
            raise ZeroDivisionError("Befreak division by zero")
        x, y = self.stack.pop_many(2)
        q, r = _trunc_divmod(y, x)
        self.stack.push(q)
        self.stack.push(r)
        self.stack.push(x)

    def _multiply(self, op):
        top, remainder, quotient = self.stack.pop_many(3)
        self.stack.push(quotient * top + remainder)
        self.stack.push(top)

    # -------------------------------------------------------------------
    # Bitwise
    # -------------------------------------------------------------------

    def _not(self, op):
        self.stack.set_top(~self.stack.peek())

    def _and(self, op):
        # [z] [y] [x] -> [z^(y&x)] [y] [x]
        x, y, z = self.stack.pop_many(3)
        self.stack.push(z ^ (y & x))
        self.stack.push(y)
        self.stack.push(x)

    def _or(self, op):
        x, y, z = self.stack.pop_many(3)
        self.stack.push(z ^ (y | x))
        self.stack.push(y)
        self.stack.push(x)

    def _xor(self, op):
        x, y = self.stack.pop_many(2)
        self.stack.push(y ^ x)
        self.stack.push(x)

    def _rotate(self, y: int, bits: int) -> int:
        u = y & ((1 << 64) - 1)
        bits %= 64
        return to_signed64((u << bits) | (u >> (64 - bits)))

    def _rotate_left(self, op):
        x, y = self.stack.pop_many(2)
        self.stack.push(self._rotate(y, x))
        self.stack.push(x)

    def _rotate_right(self, op):
        x, y = self.stack.pop_many(2)
        self.stack.push(self._rotate(y, -x))
        self.stack.push(x)

    # -------------------------------------------------------------------
    # Control stack and comparisons
    # -------------------------------------------------------------------

    def _toggle(self, op):
        self.control_stack.toggle_top()

    def _compare(self, holds: bool):
        # operands stay on the stack
        if holds:
            self.control_stack.toggle_top()

    def _equal(self, op):
        self.stack.require(2)
        self._compare(self.stack.peek(1) == self.stack.peek())

    def _less(self, op):
        self.stack.require(2)
        self._compare(self.stack.peek(1) < self.stack.peek())

    def _greater(self, op):
        self.stack.require(2)
        self._compare(self.stack.peek(1) > self.stack.peek())

    # -------------------------------------------------------------------
    # Permutations
    # -------------------------------------------------------------------

    def _swap(self, op):
        top, nxt = self.stack.pop_many(2)
        self.stack.push(top)
        self.stack.push(nxt)

    def _dig(self, op):
        # [z] [y] [x] -> [y] [x] [z]
        x, y, z = self.stack.pop_many(3)
        for v in (y, x, z):
            self.stack.push(v)

    def _bury(self, op):
        # [z] [y] [x] -> [x] [z] [y]
        x, y, z = self.stack.pop_many(3)
        for v in (x, z, y):
            self.stack.push(v)

    def _flip(self, op):
        # [z] [y] [x] -> [x] [y] [z]
        x, y, z = self.stack.pop_many(3)
        for v in (x, y, z):
            self.stack.push(v)

    def _swap_under(self, op):
        # [z] [y] [x] -> [y] [z] [x]
        x, y, z = self.stack.pop_many(3)
        for v in (y, z, x):
            self.stack.push(v)

    def _over(self, op):
        # [y] [x] -> [y] [x] [y]
        x, y = self.stack.pop_many(2)
        for v in (y, x, y):
            self.stack.push(v)

    def _under(self, op):
        # [y] [x] [y] -> [y] [x]
        y1, x, y2 = self.stack.pop_many(3)
        if y1 != y2:
            for v in (y2, x, y1):
                self.stack.push(v)
            raise InvalidUnder()
        self.stack.push(y2)
        self.stack.push(x)

    def _dup(self, op):
        x = self.stack.peek()
        self.stack.push(x)

    def _undup(self, op):
        x1, x2 = self.stack.pop_many(2)
        if x1 != x2:
            self.stack.push(x2)
            self.stack.push(x1)
            raise InvalidUnduplicate()
        self.stack.push(x1)

    # -------------------------------------------------------------------
    # Modes and flow
    # -------------------------------------------------------------------

    def _string(self, op):
        self.string_mode = True

    def _toggle_inverse(self, op):
        self.inverse_mode = not self.inverse_mode

    def _halt(self, op):
        if self.direction_reversed:
            # running backwards into the entry point: the program is unwound
            self.state = S_NOT_STARTED
            self.flip_direction()
            logger.info("unwound to start at %s", self.location)
        else:
            self.state = S_DONE
            logger.info("halted after %d steps", self.step_count)

    def _mirror(self, op):
        self.direction = MIRRORS[op][self.direction]

    def _branch(self, op):
        branch = BRANCHES[op]
        heading = self.direction
        if heading in branch.write:
            self.direction = branch.named
            self.control_stack.push(branch.write[heading] ^ int(self.inverse_mode))
        elif heading == branch.read_heading:
            v = self.control_stack.pop()
            if v not in (0, 1):
                self.control_stack.push(v)
                raise NonBoolInControlStack()
            self.direction = branch.exits[v ^ int(self.inverse_mode)]
        else:
            self.control_stack.toggle_top()
            self.inverse_mode = not self.inverse_mode
            self.direction = heading.reversed()

    def _nop(self, op):
        pass

    # -------------------------------------------------------------------
    # Observables
    # -------------------------------------------------------------------

    def stats(self) -> dict:
        return {
            "step": self.step_count,
            "state": STATE_NAMES[self.state],
            "location": self.location,
            "direction": self.direction.name,
            "direction_reversed": self.direction_reversed,
            "inverse_mode": self.inverse_mode,
            "string_mode": self.string_mode,
            "stack_depth": len(self.stack),
            "control_depth": len(self.control_stack),
            "output_len": len(self.output_stack),
        }
