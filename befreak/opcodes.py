"""
Instruction decoding for the Befreak machine.

Each grid character decodes once into an Op. In inverse mode the Op is
replaced by its complement; ops missing from the complement table are their
own inverse. Digits never decode: they are buffered as numeric literals.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .chips import to_signed64
from .errors import InvalidOperation
from .grid import Direction

N, S, E, W = Direction.NORTH, Direction.SOUTH, Direction.EAST, Direction.WEST


class Op(enum.Enum):
    PUSH_ZERO = "("
    POP_ZERO = ")"
    TO_CONTROL = "["
    FROM_CONTROL = "]"
    SWAP_CONTROL = "$"
    WRITE = "w"
    READ = "r"
    INCREMENT = "'"
    DECREMENT = "`"
    ADD = "+"
    SUBTRACT = "-"
    DIVIDE = "%"
    MULTIPLY = "*"
    NOT = "~"
    AND = "&"
    OR = "|"
    XOR = "#"
    ROTATE_LEFT = "{"
    ROTATE_RIGHT = "}"
    TOGGLE = "!"
    EQUAL = "="
    LESS = "l"
    GREATER = "g"
    SWAP = "s"
    DIG = "d"
    BURY = "b"
    FLIP = "f"
    SWAP_UNDER = "c"
    OVER = "o"
    UNDER = "u"
    DUP = ":"
    UNDUP = ";"
    STRING = '"'
    TOGGLE_INVERSE = "?"
    HALT = "@"
    MIRROR_BACK = "\\"
    MIRROR_FORWARD = "/"
    BRANCH_EAST = ">"
    BRANCH_WEST = "<"
    BRANCH_SOUTH = "v"
    BRANCH_NORTH = "^"
    NOP = " "

    def inverse(self) -> "Op":
        return INVERSES.get(self, self)


_PAIRS = [
    (Op.PUSH_ZERO, Op.POP_ZERO),
    (Op.TO_CONTROL, Op.FROM_CONTROL),
    (Op.INCREMENT, Op.DECREMENT),
    (Op.ADD, Op.SUBTRACT),
    (Op.DIVIDE, Op.MULTIPLY),
    (Op.ROTATE_LEFT, Op.ROTATE_RIGHT),
    (Op.DIG, Op.BURY),
    (Op.OVER, Op.UNDER),
    (Op.DUP, Op.UNDUP),
]

INVERSES: dict[Op, Op] = {}
for _a, _b in _PAIRS:
    INVERSES[_a] = _b
    INVERSES[_b] = _a

DIGITS = frozenset("0123456789")


def is_digit(char: str) -> bool:
    return char in DIGITS


def decode(char: str) -> Op:
    try:
        return Op(char)
    except ValueError:
        raise InvalidOperation(f"Tried to run an invalid operator: {char!r}") from None


def literal_value(digits: list[str], reverse: bool) -> int:
    """Value of a buffered literal; digits are read backwards when `reverse`."""
    ordered = reversed(digits) if reverse else digits
    value = 0
    for digit in ordered:
        value = value * 10 + int(digit)
    return to_signed64(value)


# ---------------------------------------------------------------------------
# Direction tables
# ---------------------------------------------------------------------------

MIRRORS = {
    Op.MIRROR_BACK: {N: W, S: E, E: S, W: N},
    Op.MIRROR_FORWARD: {N: E, S: W, E: N, W: S},
}


@dataclass(frozen=True)
class Branch:
    """Three-way hinge for one arrow.

    write: heading -> flag pushed (XORed with inverse mode); leaves along `named`.
    read:  arriving with `read_heading`, pop v and leave by exits[v ^ inverse].
    hinge: arriving with `named`, toggle control top, flip inverse mode, and
           leave by the opposite heading.
    """
    named: Direction
    write: dict
    read_heading: Direction
    exits: tuple


BRANCHES = {
    Op.BRANCH_EAST: Branch(named=E, write={N: 1, S: 0}, read_heading=W, exits=(S, N)),
    Op.BRANCH_WEST: Branch(named=W, write={N: 0, S: 1}, read_heading=E, exits=(N, S)),
    Op.BRANCH_SOUTH: Branch(named=S, write={E: 1, W: 0}, read_heading=N, exits=(W, E)),
    Op.BRANCH_NORTH: Branch(named=N, write={E: 0, W: 1}, read_heading=S, exits=(E, W)),
}
