"""
Turing Machine Interpreter

Programs are lists of text lines, one transition per line:
    <state> <symbol> <new symbol> <direction> <new state> [!]

Where:
    - state: any word, case-sensitive; '*' matches any state
    - symbol: the symbol read from the tape; '_' is blank, '*' matches any symbol
    - new symbol: the symbol to write; '_' erases, '*' leaves the cell unchanged
    - direction: 'l' (left), 'r' (right) or '*' (do not move)
    - new state: the state to transition to; '*' keeps the current state
    - '!': optional breakpoint, the driving loop pauses after this line runs

Lines starting with ';' are comments. Lines without exactly five fields (six
with a breakpoint) are skipped. The machine halts as soon as it enters any
state whose label starts with 'halt', eg. halt, halt-accept.

Syntax follows https://morphett.info/turing/turing.html
"""

from collections import namedtuple
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import logging
import threading
import time

log = logging.getLogger(__name__)

BLANK_ON_TAPE = ' '
BLANK_IN_PROGRAM = '_'  # '_' represents blank (space) when matching
WILDCARD_IN_PROGRAM = '*'
NO_CHANGE = '*'  # new symbol / new state: keep what is there
ERASURE = '_'
HALT_PREFIX = 'halt'
COMMENT = ';'
BREAKPOINT = '!'
SEPARATOR = ' '


def escape(symbol):
    """Return the program spelling of a tape symbol (blank becomes '_')."""
    return BLANK_IN_PROGRAM if symbol == BLANK_ON_TAPE else symbol


class NoMatch(LookupError):
    """No table row, exact or wildcard, for the current state and symbol."""

    def __init__(self, state, symbol):
        super().__init__(f"Match not found in state '{state}' for symbol '{symbol}'")
        self.state = state
        self.symbol = symbol


class InvalidInstruction(ValueError):
    """A table row that does not decode into a write/move/next-state triple."""

    def __init__(self, fields, reason='expected exactly 3 fields'):
        super().__init__(f'Invalid instruction {list(fields)!r}: {reason}')
        self.fields = fields


# ============================================================
# Tape and head
# ============================================================

class Tape:
    """Dense tape holding every cell the head has visited."""

    def __init__(self, symbols: Iterable[str] = ()):
        self._cells: List[str] = list(symbols) or [BLANK_ON_TAPE]

    def __len__(self):
        return len(self._cells)

    def __getitem__(self, index):
        return self._cells[index]

    def __setitem__(self, index, symbol):
        self._cells[index] = symbol

    def __iter__(self):
        return iter(self._cells)

    def __str__(self):
        return ''.join(self._cells)

    def __repr__(self):
        return f'Tape({str(self)!r})'

    def append(self, symbol):
        self._cells.append(symbol)

    def prepend(self, symbol):
        self._cells.insert(0, symbol)

    def snapshot(self) -> Tuple[str, ...]:
        return tuple(self._cells)


class Head:
    """
    Reads and writes the tape and moves one (and only one) cell at a time.

    The tape grows by a single blank cell whenever the head moves past
    either end, so the position is always a valid index.
    """

    def __init__(self, tape: Tape, position: int = 0):
        if not 0 <= position < len(tape):
            raise ValueError(f'Head position {position} outside tape of length {len(tape)}')
        self.tape = tape
        self.position = position

    def move_right(self):
        if self.position == len(self.tape) - 1:
            self.tape.append(BLANK_ON_TAPE)
        self.position += 1

    def move_left(self):
        # The new cell takes index 0, which is where the head already points.
        if self.position == 0:
            self.tape.prepend(BLANK_ON_TAPE)
        else:
            self.position -= 1

    def read(self) -> str:
        return self.tape[self.position]

    def write(self, symbol: str):
        self.tape[self.position] = symbol


# ============================================================
# State and instructions
# ============================================================

class State:
    """The machine's control-state label."""

    def __init__(self, label: str):
        self.label = label

    def transition(self, label: str):
        if label != NO_CHANGE:
            self.label = label

    @property
    def halted(self) -> bool:
        return self.label.startswith(HALT_PREFIX)

    def __str__(self):
        return self.label

    def __repr__(self):
        return f'State({self.label!r})'


class WriteAction(Enum):
    KEEP = 'keep'
    ERASE = 'erase'
    SYMBOL = 'symbol'


class Move(Enum):
    LEFT = 'l'
    RIGHT = 'r'
    STAY = '*'


class Instruction:
    """
    The action half of a table row: (new symbol, direction, new state).

    The write and move fields both spell "no change" as '*', but they are
    decoded separately: a row may keep the cell and still move, or write and
    stay put.
    """

    __slots__ = ('write', 'direction', 'next_state', 'breakpoint')

    def __init__(self, fields, breakpoint: bool = False):
        if fields is None or len(fields) != 3:
            raise InvalidInstruction(fields or ())
        write, direction, next_state = fields
        if write not in (NO_CHANGE, ERASURE) and len(write) != 1:
            raise InvalidInstruction(fields, f'cannot write {write!r}, symbols are single characters')
        self.write, self.direction, self.next_state = write, direction, next_state
        self.breakpoint = breakpoint

    @property
    def writes(self) -> bool:
        """True if the row writes or erases the current cell."""
        return self.write != NO_CHANGE

    @property
    def erases(self) -> bool:
        return self.write == ERASURE

    @property
    def moves_right(self) -> bool:
        return self.direction == Move.RIGHT.value

    @property
    def moves_left(self) -> bool:
        return self.direction == Move.LEFT.value

    @property
    def write_action(self) -> WriteAction:
        if not self.writes:
            return WriteAction.KEEP
        return WriteAction.ERASE if self.erases else WriteAction.SYMBOL

    @property
    def move(self) -> Move:
        if self.moves_right:
            return Move.RIGHT
        if self.moves_left:
            return Move.LEFT
        return Move.STAY

    def execute(self, head: Head, state: State):
        if self.writes:
            head.write(BLANK_ON_TAPE if self.erases else self.write)

        if self.moves_right:
            head.move_right()
        elif self.moves_left:
            head.move_left()

        state.transition(self.next_state)

    def __eq__(self, other):
        if not isinstance(other, Instruction):
            return NotImplemented
        return self.fields == other.fields and self.breakpoint == other.breakpoint

    def __hash__(self):
        return hash((self.fields, self.breakpoint))

    @property
    def fields(self) -> Tuple[str, str, str]:
        return self.write, self.direction, self.next_state

    def __repr__(self):
        mark = ' !' if self.breakpoint else ''
        return f"Instruction('{self.write} {self.direction} {self.next_state}{mark}')"


# ============================================================
# Transition table
# ============================================================

class Table:
    """
    The compiled transition function: state -> symbol -> Instruction.

    Built once from program lines and never changed afterwards. Lookups try
    the exact symbol before the '*' symbol, and the exact state before the
    '*' state, so an exact row always wins over a wildcard row.
    """

    def __init__(self, program: Iterable[str], comment: str = COMMENT):
        if not comment:
            raise ValueError('Comment delimiter must not be empty')
        self.comment = comment
        self._rows: Dict[str, Dict[str, Instruction]] = {}
        for number, line in enumerate(program, 1):
            line = line.rstrip('\r\n')
            if line.startswith(comment):
                continue

            fields = line.split(SEPARATOR)
            breakpoint = len(fields) == 6 and fields[5] == BREAKPOINT
            if len(fields) != 5 and not breakpoint:
                log.debug('skipping line %d: %r', number, line)
                continue

            self._rows.setdefault(fields[0], {})[fields[1]] = Instruction(fields[2:5], breakpoint)

    def __len__(self):
        return sum(map(len, self._rows.values()))

    def __contains__(self, state):
        return state in self._rows

    @property
    def states(self) -> List[str]:
        return list(self._rows)

    def match(self, state: str, symbol: str) -> Instruction:
        """
        Find the row for ``state`` reading ``symbol``.

        Args:
            state: The current state label
            symbol: The symbol under the head, as stored on the tape

        Returns:
            The matching Instruction

        Raises:
            NoMatch: if neither an exact nor a wildcard row exists
        """
        symbol = escape(symbol)
        for state_key in (state, WILDCARD_IN_PROGRAM):
            row = self._rows.get(state_key)
            if row is None:
                continue
            instruction = row.get(symbol)
            if instruction is None:
                instruction = row.get(WILDCARD_IN_PROGRAM)
            if instruction is not None:
                return instruction
        raise NoMatch(state, symbol)


# ============================================================
# Driving loop
# ============================================================

Transition = namedtuple('Transition', 'state read write direction next_state')


class StopReason(Enum):
    HALT = 'HALT'
    LIMIT = 'LIMIT'
    CANCELLED = 'CANCELLED'


@dataclass(frozen=True)
class StepResult:
    tape: Tuple[str, ...]
    steps: int
    state: str
    position: int
    breakpoint: bool = False


@dataclass(frozen=True)
class RunResult:
    tape: Tuple[str, ...]
    steps: int
    state: str
    reason: StopReason
    history: Tuple[Transition, ...] = ()

    @property
    def halted(self) -> bool:
        return self.reason is StopReason.HALT


class Machine:
    """
    Runs a Table against a Head until the state halts.

    Usage:
        machine = Machine(Table(lines), Head(Tape('ab')))
        result = machine.run('0', on_step=print)
        print(''.join(result.tape), result.steps)
    """

    def __init__(self, table: Table, head: Head, record: bool = False):
        self.table = table
        self.head = head
        self.state = State('0')
        self.step_count = 0
        self.record = record
        self.history: List[Transition] = []
        self._cancel = threading.Event()
        self._resume = threading.Event()

    @property
    def tape(self) -> Tape:
        return self.head.tape

    @property
    def halted(self) -> bool:
        return self.state.halted

    def stop(self):
        """Ask the current (or next) run to stop before its next step. Safe from any thread."""
        self._cancel.set()
        self._resume.set()

    def resume(self):
        """Release a loop paused on a breakpoint."""
        self._resume.set()

    def step(self) -> Instruction:
        """Execute exactly one transition and return the instruction that ran."""
        symbol = self.head.read()
        instruction = self.table.match(self.state.label, symbol)
        before = self.state.label
        instruction.execute(self.head, self.state)
        self.step_count += 1

        if self.record:
            written = None
            if instruction.writes:
                written = BLANK_ON_TAPE if instruction.erases else instruction.write
            self.history.append(Transition(before, escape(symbol), written, instruction.move, self.state.label))
        if log.isEnabledFor(logging.DEBUG):
            log.debug('step %d: %s %r -> %r', self.step_count, before, symbol, instruction)
        return instruction

    def _execute(self, start_state, max_steps):
        # A stop() requested before the first step still cancels the run.
        self.state = State(start_state)
        self.step_count = 0
        self.history = []

        while not self.state.halted:
            if max_steps is not None and self.step_count >= max_steps:
                break
            if self._cancel.is_set():
                break
            yield self.step()

    def _step_result(self, instruction) -> StepResult:
        return StepResult(self.tape.snapshot(), self.step_count, self.state.label,
                          self.head.position, instruction.breakpoint)

    def _stop_reason(self) -> StopReason:
        if self.state.halted:
            return StopReason.HALT
        if self._cancel.is_set():
            return StopReason.CANCELLED
        return StopReason.LIMIT

    def steps(self, start_state: str = '0', max_steps: Optional[int] = None) -> Iterator[StepResult]:
        """
        Yield one StepResult per executed step.

        Stops when the state halts, after ``max_steps`` steps, or when stop()
        is called. The generator is not restartable; build a new Machine to
        run again from scratch.
        """
        try:
            for instruction in self._execute(start_state, max_steps):
                yield self._step_result(instruction)
        finally:
            self._cancel.clear()

    def run(self, start_state: str = '0', max_steps: Optional[int] = None, delay: float = 0,
            on_step: Optional[Callable[[StepResult], None]] = None,
            on_finish: Optional[Callable[[RunResult], None]] = None,
            on_break: Optional[Callable[[StepResult], None]] = None,
            breakpoints: bool = True) -> RunResult:
        """
        Run the machine.

        Args:
            start_state: Label of the initial state
            max_steps: Maximum steps before forced stop (None for unlimited)
            delay: Seconds to wait between steps
            on_step: Called with a StepResult after every step
            on_finish: Called with the RunResult when the run ends
            on_break: Called with the StepResult after a breakpoint line ran.
                      If None, the loop blocks until resume() or stop().
            breakpoints: If False, breakpoint markers are ignored

        Returns:
            RunResult with the final tape, step count, state and stop reason

        Raises:
            NoMatch: if a step has no matching table row
        """
        log.info('running from state %r on tape %r', start_state, str(self.tape))
        try:
            for instruction in self._execute(start_state, max_steps):
                pause = instruction.breakpoint and breakpoints
                if on_step is not None or pause:
                    result = self._step_result(instruction)
                    if on_step is not None:
                        on_step(result)
                    if pause:
                        self._pause(result, on_break)
                if delay and not self.state.halted:
                    time.sleep(delay)
            reason = self._stop_reason()
        finally:
            self._cancel.clear()
        log.info('stopped (%s) in state %r after %d steps', reason.value, self.state.label, self.step_count)

        result = RunResult(self.tape.snapshot(), self.step_count, self.state.label, reason, tuple(self.history))
        if on_finish is not None:
            on_finish(result)
        return result

    def _pause(self, result, on_break):
        log.info('breakpoint after step %d in state %r', result.steps, result.state)
        if on_break is not None:
            on_break(result)
            return
        self._resume.clear()
        if not self._cancel.is_set():
            self._resume.wait()
