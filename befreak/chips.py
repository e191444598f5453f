"""
Storage primitives for the Befreak machine.

Models the three stacks as 64-bit word stores with two's-complement wrapping.
Multi-item pops are all-or-nothing so a failing instruction never leaves a
stack half-consumed.
"""

from __future__ import annotations

from .errors import BefreakError, EmptyMainStack

WORD_BITS = 64
WORD_MASK = (1 << WORD_BITS) - 1
SIGN_BIT = 1 << (WORD_BITS - 1)


def to_signed64(value: int) -> int:
    """Fold an arbitrary int into the signed 64-bit range."""
    value &= WORD_MASK
    if value & SIGN_BIT:
        return value - (1 << WORD_BITS)
    return value


class WordStack:
    """Unbounded stack of signed 64-bit words.

    `empty_error` is the BefreakError subclass raised when an operation needs
    more items than the stack holds.
    """

    def __init__(self, name: str,
                 empty_error: type[BefreakError] = EmptyMainStack):
        self.name = name
        self.empty_error = empty_error
        self.data: list[int] = []

    def push(self, val: int):
        self.data.append(to_signed64(val))

    def pop(self) -> int:
        if not self.data:
            raise self.empty_error()
        return self.data.pop()

    def require(self, n: int):
        if len(self.data) < n:
            raise self.empty_error()

    def pop_many(self, n: int) -> list[int]:
        """Pop `n` items, top first. Nothing is removed if fewer exist."""
        self.require(n)
        return [self.data.pop() for _ in range(n)]

    def peek(self, depth: int = 0) -> int:
        self.require(depth + 1)
        return self.data[-1 - depth]

    def set_top(self, val: int):
        self.require(1)
        self.data[-1] = to_signed64(val)

    def toggle_top(self):
        self.require(1)
        self.data[-1] ^= 1

    def clear(self):
        self.data.clear()

    def values(self) -> list[int]:
        return list(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self):
        return iter(self.data)

    def __bool__(self) -> bool:
        return bool(self.data)

    def __repr__(self) -> str:
        return f"WordStack({self.name!r}, {self.data!r})"
