"""
turing-tm: run a Turing machine program from the command line.

Examples:
    turing-tm programs/binary_add.tm '1011+11001'
    turing-tm busy_beaver.tm -n 1000 --every-step -d 50
    turing-tm adder.yaml -t trace.npy

Defaults can be set in the environment or a .env file:
    TURING_DELAY_MS, TURING_MAX_STEPS, TURING_START_STATE,
    TURING_COMMENT, TURING_LOG_LEVEL
"""

from argparse import ArgumentParser
from pathlib import Path
import logging
import os
import sys
import time

from dotenv import load_dotenv

from turing_machine import COMMENT, InvalidInstruction, Machine, NoMatch, Table
from turing_program import format_tape, load_program, make_head
from turing_trace import save_history_to_file

log = logging.getLogger(__name__)

DEFAULT_TAPE = '_'
DEFAULT_START_STATE = '0'


def _env_int(name, default=None):
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise SystemExit(f'{name} must be an integer, got {value!r}')


def build_parser():
    ap = ArgumentParser(prog='turing-tm', description='Run a Turing machine program.')
    ap.add_argument('program', help='Program file (text, or .yaml/.yml machine definition)')
    ap.add_argument('tape', nargs='?', default=None,
                    help="Initial tape; '_' is blank, '*' marks the head start (default: '_')")
    ap.add_argument('-d', '--delay', help='Delay between steps, in milliseconds', type=int,
                    default=_env_int('TURING_DELAY_MS', 0))
    ap.add_argument('-n', '--steps', help='Stop after this many steps', type=int,
                    default=_env_int('TURING_MAX_STEPS'))
    ap.add_argument('-s', '--start', help='Initial state (default: 0)',
                    default=os.getenv('TURING_START_STATE'))
    ap.add_argument('-c', '--comment', help='Comment delimiter for text programs',
                    default=os.getenv('TURING_COMMENT') or COMMENT)
    ap.add_argument('--every-step', help='Print the tape after every step', action='store_true')
    ap.add_argument('--no-break', help="Ignore '!' breakpoints", action='store_true')
    ap.add_argument('-t', '--trace', help='Save the execution history to this .npy file', type=Path)
    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', help='Log every step', action='store_true')
    verbosity.add_argument('-q', '--quiet', help='Only log errors', action='store_true')
    return ap


def setup_logging(verbose=False, quiet=False):
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = getattr(logging, os.getenv('TURING_LOG_LEVEL', 'WARNING').upper(), logging.WARNING)
    logging.basicConfig(level=level, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')


def print_report(tape, cycles, elapsed, file=None):
    """Print the tape followed by a cycle count and timing line."""
    file = file or sys.stdout
    ms = elapsed * 1000
    ops = cycles * 1000 / ms if ms > 0 else 0.0
    print(file=file)
    print(format_tape(tape), file=file)
    print(f'\nCycles: {cycles} | Elapsed: {ms:.2f}ms | Op/s: {ops:.2f}', file=file)


def _wait_for_resume(step):
    try:
        input(f'Breakpoint after step {step.steps} (state {step.state}). Press Enter to continue...')
    except EOFError:
        log.warning('stdin closed, continuing past breakpoint')


def main(argv=None):
    load_dotenv()
    ap = build_parser()
    args = ap.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    if not args.comment:
        ap.error('comment delimiter must not be empty')

    if not Path(args.program).is_file():
        ap.error(f'program file not found: {args.program}')

    print('Loading...')
    loaded = load_program(args.program)
    tape_text = args.tape if args.tape is not None else (loaded['input'] or DEFAULT_TAPE)
    start_state = args.start or loaded['start_state'] or DEFAULT_START_STATE

    def on_step(step):
        print_report(step.tape, step.steps, time.perf_counter() - started)

    try:
        machine = Machine(Table(loaded['program'], args.comment), make_head(tape_text),
                          record=args.trace is not None)
        print('Computing...')
        started = time.perf_counter()
        result = machine.run(start_state, max_steps=args.steps, delay=args.delay / 1000,
                             on_step=on_step if args.every_step else None,
                             on_break=_wait_for_resume, breakpoints=not args.no_break)
    except (NoMatch, InvalidInstruction) as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - started
    print('Done.')

    print_report(result.tape, result.steps, elapsed)
    if not result.halted:
        print(f'Stopped ({result.reason.value.lower()}) in state {result.state}.')
    if args.trace is not None:
        save_history_to_file(list(result.history), args.trace)
    return 0


if __name__ == '__main__':
    sys.exit(main())
