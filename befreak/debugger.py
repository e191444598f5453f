"""
Line-mode debugger for the Befreak machine.

Loads a program, runs it (optionally printing a per-step trace), prints the
output and the final machine panels, and can unwind the program back to its
start to check that the initial state is recovered.

Usage:
    python -m befreak.debugger examples/hello.bfk
    python -m befreak.debugger -e '@"!olleH"wwwwww'
    python -m befreak.debugger --trace --unwind examples/branch.bfk
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from .errors import GridError
from .host import BefreakHost, MAX_STEPS
from .machine import S_DONE, S_ERROR, S_NOT_STARTED
from .program_runner import ProgramRunner, load_program


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------

CURSOR = Style(reverse=True, bold=True)


def render_grid(host: BefreakHost) -> Panel:
    """Grid rows with the cursor cell highlighted."""
    col, row = host.machine.location
    text = Text(no_wrap=True)
    for y, line in enumerate(host.grid.rows()):
        if y == row:
            text.append(line[:col])
            text.append(line[col], CURSOR)
            text.append(line[col + 1:])
        else:
            text.append(line)
        text.append("\n")
    text.rstrip()
    return Panel(text, title="Source", expand=False)


def render_state(host: BefreakHost) -> Panel:
    s = host.snapshot()
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("State", s["state"])
    table.add_row("Step", str(s["step"]))
    table.add_row("Location", str(s["location"]))
    table.add_row("Heading", s["direction"])
    table.add_row("Reversed", str(s["direction_reversed"]))
    table.add_row("Inverse", str(s["inverse_mode"]))
    table.add_row("String", str(s["string_mode"]))
    table.add_row("Digits", s["pending_digits"] or ("void" if s["literal_void"] else "-"))
    return Panel(table, title="State", expand=False)


def render_stacks(host: BefreakHost) -> Panel:
    s = host.snapshot()
    shown = "".join(chr(b) if 32 <= b < 127 else "." for b in host.output_bytes())
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Stack")
    table.add_column("Values (bottom to top)", overflow="fold")
    table.add_row("Main", Text(str(s["stack"])))
    table.add_row("Control", Text(str(s["control_stack"])))
    table.add_row("Output", Text(f"{s['output_stack']}  | {shown}"))
    return Panel(table, title="Stacks", expand=False)



# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Befreak reversible grid language debugger",
        prog="python -m befreak.debugger",
    )
    parser.add_argument("file", nargs="?", help="Path to a Befreak program")
    parser.add_argument("-e", "--expr",
                        help="Program text (use \\n between rows)")
    parser.add_argument("--trace", action="store_true",
                        help="Print one line per executed step")
    parser.add_argument("--unwind", action="store_true",
                        help="After halting, run the program back to its start")
    parser.add_argument("--max-steps", type=int, default=MAX_STEPS,
                        help=f"Step budget per run (default {MAX_STEPS})")
    parser.add_argument("--debug", action="store_true",
                        help="Log every instruction")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)5s %(name)s: %(message)s",
    )

    if not args.file and not args.expr:
        parser.error("Provide a program file or -e program text")

    console = Console(highlight=False)
    err_console = Console(stderr=True, highlight=False)

    def fail(message: str) -> int:
        err_console.print(f"Error: {message}", markup=False, soft_wrap=True)
        return 1

    try:
        if args.file:
            path = Path(args.file)
            if not path.exists():
                return fail(f"File not found: {path}")
            runner = ProgramRunner(BefreakHost(load_program(path)))
        else:
            runner = ProgramRunner.from_text(args.expr.replace("\\n", "\n"))
    except GridError as e:
        return fail(str(e))

    host = runner.host
    console.print(render_grid(host))

    runner.run_to_end(args.max_steps, trace=args.trace)
    if args.trace:
        for entry in runner.trace:
            console.print(entry.format(), markup=False, soft_wrap=True)

    console.print(render_state(host))
    console.print(render_stacks(host))
    console.print(f"Output: {host.output_text()!r}", markup=False, soft_wrap=True)

    if host.state == S_ERROR:
        return fail(str(host.error))
    if host.state != S_DONE:
        return fail(f"did not halt within {args.max_steps} steps")

    if args.unwind:
        runner.trace.clear()
        steps = runner.run_back(args.max_steps, trace=args.trace)
        if args.trace:
            for entry in runner.trace:
                console.print(entry.format(), markup=False, soft_wrap=True)
        s = host.snapshot()
        restored = (host.state == S_NOT_STARTED and s["step"] == 0
                    and not s["stack"] and not s["control_stack"]
                    and not s["output_stack"]
                    and s["location"] == host.machine.start_pos)
        verdict = "initial state restored" if restored else "initial state NOT restored"
        console.print(f"Unwound {steps} steps: {verdict}", markup=False, soft_wrap=True)
        console.print(render_state(host))
        if not restored:
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
