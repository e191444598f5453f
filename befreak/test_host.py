"""
Verification suite for the Befreak execution state machine.

Runs whole programs forwards to Done and back to NotStarted, and checks the
recovery, error and reversal transitions plus the runner and debugger.
"""

from __future__ import annotations

import contextlib
import io
import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from rich.console import Console

from befreak.debugger import main as debugger_main, render_grid, render_stacks, render_state
from befreak.errors import EmptyMainStack, GridError, ReadNotSupported
from befreak.grid import Direction
from befreak.host import BefreakHost
from befreak.machine import S_DONE, S_ERROR, S_NOT_STARTED, S_RUNNING
from befreak.program_runner import ProgramRunner, load_program

HELLO = '@"!olleH"wwwwww'
DIVIDE = "@(17(5%*5)17)"
BRANCH_SOUTH = "    / \\   \n@(1[< >]1)\n    \\(/   "
BRANCH_NORTH = "    / \\   \n@(0[< >]0)\n    \\(/   "
KITCHEN_SINK = "@(5(3+-%*'`~~ou:;ss(dbffcc)##{}([$$=lg!])\"hi\"ww3)5)"


def assert_initial(host: BefreakHost):
    m = host.machine
    assert host.state == S_NOT_STARTED
    assert m.step_count == 0
    assert m.location == m.start_pos
    assert m.direction is Direction.EAST
    assert not m.direction_reversed
    assert not m.inverse_mode
    assert not m.string_mode
    assert m.stack.values() == []
    assert m.control_stack.values() == []
    assert m.output_stack.values() == []
    assert m.number_buffer == []
    assert not m.literal_void


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

def test_hello_world():
    host = BefreakHost.from_text(HELLO)
    steps = host.run()
    assert steps == len(HELLO)
    assert host.state == S_DONE
    assert host.output_bytes() == b"Hello!"
    assert host.output_text() == "Hello!"
    assert host.machine.stack.values() == []

    assert host.unwind() == len(HELLO)
    assert host.machine.output_stack.values() == []
    assert_initial(host)


def test_division_program():
    host = BefreakHost.from_text(DIVIDE)
    for _ in range(6):
        host.step()
    assert host.machine.current_char == "%"
    assert host.machine.stack.values() == [3, 2, 5]
    host.step()
    assert host.machine.stack.values() == [17, 5]
    host.run()
    assert host.state == S_DONE
    assert host.machine.stack.values() == []
    host.unwind()
    assert_initial(host)


def test_branch_programs():
    for text, final in ((BRANCH_SOUTH, [0]), (BRANCH_NORTH, [])):
        host = BefreakHost.from_text(text)
        assert host.run() == 12
        assert host.state == S_DONE
        assert host.machine.stack.values() == final
        assert host.machine.control_stack.values() == []
        assert host.unwind() == 12
        assert_initial(host)


def test_round_trip_property():
    for text in (HELLO, DIVIDE, BRANCH_SOUTH, BRANCH_NORTH, KITCHEN_SINK):
        host = BefreakHost.from_text(text)
        forward = host.run()
        assert host.state == S_DONE, text
        assert host.unwind() == forward, text
        assert_initial(host)


def test_kitchen_sink_output():
    host = BefreakHost.from_text(KITCHEN_SINK)
    host.run()
    assert host.state == S_DONE
    assert host.output_text() == "ih"
    assert host.machine.stack.values() == []


# ---------------------------------------------------------------------------
# State machine transitions
# ---------------------------------------------------------------------------

def test_step_from_done_restarts():
    host = BefreakHost.from_text(HELLO)
    host.run()
    host.step()
    assert host.state == S_RUNNING
    assert host.machine.step_count == 1
    assert host.machine.output_stack.values() == []


def test_reverse_at_start_then_step_runs_forward():
    host = BefreakHost.from_text(HELLO)
    host.reverse_direction()
    assert host.machine.direction_reversed
    host.step()
    assert host.state == S_RUNNING
    assert not host.machine.direction_reversed
    assert host.machine.step_count == 1


def test_error_state_and_recovery():
    host = BefreakHost.from_text("@)")
    assert host.step() == S_ERROR
    assert isinstance(host.error, EmptyMainStack)
    assert host.state_name == "Error(EmptyMainStack)"
    assert host.machine.location == (1, 0)

    # forward stepping is disabled while in error
    assert host.step() == S_ERROR
    assert host.machine.step_count == 1
    assert host.run() == 0

    host.reverse_direction()
    assert host.state == S_RUNNING
    assert host.error is None
    assert host.machine.stack.values() == []
    host.step()
    assert_initial(host)


def test_read_is_a_recoverable_error():
    host = BefreakHost.from_text("@(r)")
    host.run()
    assert host.state == S_ERROR
    assert isinstance(host.error, ReadNotSupported)
    assert host.machine.stack.values() == [0]
    host.unwind()
    assert_initial(host)


def test_division_by_zero_is_fatal():
    host = BefreakHost.from_text("@((%")
    host.step()
    host.step()
    with pytest.raises(ZeroDivisionError):
        host.step()


def test_reverse_mid_run():
    host = BefreakHost.from_text(DIVIDE)
    for _ in range(7):
        host.step()
    assert host.machine.stack.values() == [17, 5]
    host.reverse_direction()
    # the '*' under the cursor is re-applied as '%'
    assert host.machine.stack.values() == [3, 2, 5]
    assert host.machine.step_count == 7
    assert host.run() == 7
    assert_initial(host)


def test_reverse_inside_a_literal():
    for forward_steps in (2, 3, 5, 6):
        host = BefreakHost.from_text("@(12 12)")
        for _ in range(forward_steps):
            host.step()
        host.reverse_direction()
        assert host.state == S_RUNNING
        assert host.run() == forward_steps
        assert_initial(host)


def test_unwind_from_error_after_literal():
    host = BefreakHost.from_text("@(12)")
    host.run()
    assert host.state_name == "Error(InvalidPopZero)"
    assert host.machine.stack.values() == [0]
    assert host.machine.number_buffer == ["1", "2"]

    host.reverse_direction()
    assert host.state == S_RUNNING
    assert host.machine.direction_reversed
    assert host.machine.number_buffer == []
    assert host.run() == 4
    assert_initial(host)


def test_reverse_on_literal_without_target():
    host = BefreakHost.from_text("@5 ")
    host.step()
    host.reverse_direction()
    assert host.state == S_RUNNING
    assert host.machine.direction_reversed
    assert host.machine.literal_void
    assert host.run() == 1
    assert_initial(host)


def test_unwind_from_literal_without_target_error():
    host = BefreakHost.from_text("@55 ")
    host.run()
    assert isinstance(host.error, EmptyMainStack)
    assert host.machine.number_buffer == ["5", "5"]
    host.reverse_direction()
    assert host.machine.direction_reversed
    assert host.run() == 3
    assert_initial(host)


def test_reverse_twice_inside_void_literal():
    host = BefreakHost.from_text("@55 ")
    host.step()
    host.step()
    host.reverse_direction()
    host.step()
    assert host.machine.location == (1, 0)
    host.reverse_direction()
    assert not host.machine.direction_reversed
    assert not host.machine.literal_void
    assert host.machine.number_buffer == ["5"]
    # forwards again the literal still has no target
    host.run()
    assert isinstance(host.error, EmptyMainStack)
    host.reverse_direction()
    assert host.run() == 3
    assert_initial(host)


def test_reverse_twice_resumes_forward():
    host = BefreakHost.from_text(HELLO)
    for _ in range(5):
        host.step()
    host.reverse_direction()
    host.reverse_direction()
    host.run()
    assert host.state == S_DONE
    assert host.output_text() == "Hello!"


# ---------------------------------------------------------------------------
# Loading and observables
# ---------------------------------------------------------------------------

def test_loading():
    host = BefreakHost()
    assert host.grid.find_start() == (1, 1)
    assert host.serialize().count("\n") == 10
    with pytest.raises(GridError):
        host.load_text("no marker")
    with pytest.raises(GridError):
        host.load_text("@ @")

    host.load_text(HELLO)
    host.run()
    host.with_cell((9, 0), " ")
    assert_initial(host)
    host.run()
    assert host.output_text() == "Hello"
    assert host.serialize() == '@"!olleH" wwwww\n'

    host.new_empty()
    assert host.grid.width == 10


def test_snapshot():
    host = BefreakHost.from_text(DIVIDE)
    for _ in range(3):
        host.step()
    snap = host.snapshot()
    assert snap["state"] == "Running"
    assert snap["step"] == 3
    assert snap["location"] == (3, 0)
    assert snap["direction"] == "EAST"
    assert snap["stack"] == [0]
    assert snap["pending_digits"] == "17"
    assert host.machine.stats()["stack_depth"] == 1


# ---------------------------------------------------------------------------
# Runner and debugger
# ---------------------------------------------------------------------------

def test_runner_trace_and_breakpoints():
    runner = ProgramRunner.from_text(DIVIDE)
    runner.toggle_breakpoint((6, 0))
    assert runner.run_to_breakpoint() == 6
    assert runner.machine.stack.values() == [3, 2, 5]
    runner.toggle_breakpoint((6, 0))
    assert runner.breakpoints == set()

    runner = ProgramRunner.from_text(DIVIDE)
    steps = runner.run_to_end(trace=True)
    assert len(runner.trace) == steps == 13
    assert runner.trace[-1].state == "Done"
    assert runner.trace[5].char == "%"
    assert "main=[3, 2, 5]" in runner.trace[5].format()
    assert runner.run_back() == 13
    assert_initial(runner.host)


def test_runner_from_file():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "hello.bfk")
        with open(path, "w", encoding="utf-8") as f:
            f.write(HELLO + "\n")
        assert load_program(path).rows() == [HELLO]
        runner = ProgramRunner.from_file(path)
        runner.run_to_end()
        assert runner.host.output_text() == "Hello!"


def test_debugger_panels():
    host = BefreakHost.from_text(DIVIDE)
    for _ in range(6):
        host.step()
    buf = io.StringIO()
    console = Console(file=buf, width=100, color_system=None)
    for panel in (render_grid(host), render_state(host), render_stacks(host)):
        console.print(panel)
    text = buf.getvalue()
    assert "@(17(5%*5)17)" in text
    assert "Running" in text
    assert "[3, 2, 5]" in text
    assert "Control" in text


def test_debugger_cli():
    out = io.StringIO()
    with contextlib.redirect_stdout(out):
        code = debugger_main(["-e", HELLO, "--unwind"])
    assert code == 0
    assert "Output: 'Hello!'" in out.getvalue()
    assert "initial state restored" in out.getvalue()

    err = io.StringIO()
    with contextlib.redirect_stdout(io.StringIO()), contextlib.redirect_stderr(err):
        code = debugger_main(["-e", "@)"])
    assert code == 1
    assert "Tried to pop off the stack" in err.getvalue()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    print("=" * 60)
    print("Befreak Host: Verification Suite")
    print("=" * 60)
    tests = [(name, fn) for name, fn in globals().items()
             if name.startswith("test_") and callable(fn)]
    failed = 0
    for name, fn in tests:
        try:
            fn()
        except Exception as e:
            failed += 1
            print(f"  FAIL: {name}: {e!r}")
        else:
            print(f"  ok:   {name}")
    print("\n" + "=" * 60)
    if failed:
        print(f"{failed} TESTS FAILED")
        sys.exit(1)
    print("ALL TESTS PASSED")


if __name__ == "__main__":
    main()
