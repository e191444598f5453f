"""
Error kinds raised by the Befreak engine.

Every engine failure is a BefreakError subclass carrying a `kind` name; the
host state machine turns these into the Error state. Load-time problems are
GridError, which never reach a machine.
"""

from __future__ import annotations


class BefreakError(RuntimeError):
    """Recoverable engine error. `kind` names the error in the Error state."""

    kind = "BefreakError"
    message = "Befreak engine error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class InvalidPosition(BefreakError):
    kind = "InvalidPosition"
    message = "Tried to enter a position outside the grid"


class InvalidOperation(BefreakError):
    kind = "InvalidOperation"
    message = "Tried to run an invalid operator"


class EmptyMainStack(BefreakError):
    kind = "EmptyMainStack"
    message = "Tried to pop off the stack but it was empty"


class EmptyControlStack(BefreakError):
    kind = "EmptyControlStack"
    message = "Tried to pop off the control stack but it was empty"


class EmptyOutputStack(BefreakError):
    kind = "EmptyOutputStack"
    message = "Tried to pop off the output stack but it was empty"


class NonBoolInControlStack(BefreakError):
    kind = "NonBoolInControlStack"
    message = "Tried to use the control stack but a non boolean value was at the top"


class InvalidUnduplicate(BefreakError):
    kind = "InvalidUnduplicate"
    message = "Tried to unduplicate the top two values but they were not identical"


class InvalidPopZero(BefreakError):
    kind = "InvalidPopZero"
    message = "Tried to pop a value off the stack but it was not a zero"


class InvalidUnder(BefreakError):
    kind = "InvalidUnder"
    message = "Tried to do under but the top and third values were not identical"


class InvalidStringRemoval(BefreakError):
    kind = "InvalidStringRemoval"
    message = "Tried to remove a string but it did not match"


class ReadNotSupported(BefreakError):
    kind = "ReadNotSupported"
    message = "Tried to read input but character input is not supported"


class GridError(ValueError):
    pass
