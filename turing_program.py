"""
Loading programs and tapes for the interpreter.

Two program formats are understood:
    - Text programs, one '<state> <symbol> <new symbol> <direction> <new state> [!]'
      line per transition (see turing_machine)
    - YAML machine definitions in the common online format, which are
      converted to text program lines

Initial tapes are plain strings: one cell per character, '_' for a blank
cell, and an optional '*' right before the cell the head should start on.
"""

from pathlib import Path
import logging
import re

import yaml

from turing_machine import (BLANK_IN_PROGRAM, BLANK_ON_TAPE, COMMENT, HALT_PREFIX, NO_CHANGE,
                            WILDCARD_IN_PROGRAM, Head, Machine, Table, Tape)

log = logging.getLogger(__name__)

HEAD_MARKER = '*'
YAML_SUFFIXES = ('.yaml', '.yml')


# ============================================================
# Tapes
# ============================================================

def parse_tape(text):
    """
    Convert initial tape text to a list of cells and a head position.

    Args:
        text: Tape text, eg. '1101+11', '_ab_' or 'ab*cd'

    Returns:
        Tuple of (symbols, position)

    Example:
        parse_tape('a_b')  -> (['a', ' ', 'b'], 0)
        parse_tape('ab*c') -> (['a', 'b', 'c'], 2)
    """
    position = text.find(HEAD_MARKER)
    if position >= 0:
        text = text[:position] + text[position + 1:]
    else:
        position = 0
    symbols = [BLANK_ON_TAPE if ch == BLANK_IN_PROGRAM else ch for ch in text] or [BLANK_ON_TAPE]
    # A trailing marker points one past the end; the head starts on a fresh blank.
    if position == len(symbols):
        symbols.append(BLANK_ON_TAPE)
    return symbols, position


def make_head(text):
    """Build a Head over a new Tape from initial tape text."""
    symbols, position = parse_tape(text)
    return Head(Tape(symbols), position)


def format_tape(tape, strip=False):
    """Join tape cells into a string, optionally trimming surrounding blanks."""
    result = ''.join(tape)
    return result.strip(BLANK_ON_TAPE) if strip else result


# ============================================================
# Text programs
# ============================================================

def read_program(path):
    """Read a text program file into a list of lines."""
    return Path(path).read_text(encoding='utf-8').splitlines()


def load_program(path):
    """
    Load a program file of either format.

    Returns:
        Dict with keys 'program' (list of text lines), 'input' (initial tape
        text or None) and 'start_state' (or None)
    """
    path = Path(path)
    if path.suffix.lower() in YAML_SUFFIXES:
        return parse_yaml_machine(path.read_text(encoding='utf-8'))
    return {'program': read_program(path), 'input': None, 'start_state': None}


# ============================================================
# YAML machines
# ============================================================

def _preprocess_yaml_keys(yaml_string):
    """
    Preprocess YAML string to convert list-style keys [a,b,c] to quoted strings.

    YAML doesn't support lists as dictionary keys, but many online Turing machine
    definitions use this syntax for symbol groups. We convert them to quoted strings
    that can be parsed later.

    Example: '[0,1,+]: R' becomes '"[0,1,+]": R'
    """
    pattern = r'^(\s*)(\[[^\]]+\])(\s*:)'

    processed_lines = []
    for line in yaml_string.split('\n'):
        match = re.match(pattern, line)
        if match:
            indent, key, colon = match.groups()
            processed_lines.append(f'{indent}"{key}"{colon}{line[match.end():]}')
        else:
            processed_lines.append(line)

    return '\n'.join(processed_lines)


def _parse_symbol_key(key):
    """
    Parse a symbol key which may be a single symbol or a list of symbols.

    Examples:
        '0' -> ['0']
        ' ' -> [' ']
        [0, 1, '+'] -> ['0', '1', '+']
        '[0,1,+]' -> ['0', '1', '+']  (string representation of list)
    """
    if isinstance(key, list):
        return [str(s) for s in key]

    key_str = str(key)
    if key_str.startswith('[') and key_str.endswith(']'):
        return [s.strip().strip("'\"") or BLANK_ON_TAPE for s in key_str[1:-1].split(',')]

    return [key_str]


def _parse_transition_value(state_name, value):
    """
    Parse a transition value into (write, direction, next_state).

    Handles various formats:
        'R' -> (None, 'R', state_name)  # Move right, no write, same state
        {L: next_state} -> (None, 'L', next_state)
        {write: x, R: next_state} -> (x, 'R', next_state)
        {write: x, L} -> (x, 'L', state_name)  # write and move, same state

    Note: When no explicit write is specified, write is None.
    """
    if value in ('R', 'L'):
        return (None, value, state_name)

    if isinstance(value, dict):
        write_symbol = value.get('write', None)
        write_symbol = str(write_symbol) if write_symbol is not None else None

        for direction in ('L', 'R'):
            if direction in value:
                next_state = value[direction] if value[direction] is not None else state_name
                return (write_symbol, direction, str(next_state))

        raise ValueError(f"No direction (L/R) found in transition: {value}")

    raise ValueError(f"Cannot parse transition value: {value}")


def _program_symbol(symbol, blank):
    if symbol == blank:
        return BLANK_IN_PROGRAM
    if len(symbol) != 1 or symbol.isspace() or symbol in (NO_CHANGE, BLANK_IN_PROGRAM, COMMENT):
        raise ValueError(f'Cannot use {symbol!r} as a tape symbol')
    return symbol


def _state_label(name):
    label = str(name)
    if not label or any(ch.isspace() for ch in label) or label.startswith(COMMENT) \
            or label == WILDCARD_IN_PROGRAM:
        raise ValueError(f'Cannot use {label!r} as a state name')
    return label


def _halt_label(state_name):
    return state_name if state_name.startswith(HALT_PREFIX) else f'{HALT_PREFIX}-{state_name}'


def parse_yaml_machine(yaml_string):
    """
    Parse a YAML-format Turing machine definition into text program lines.

    States with no transitions halt the YAML machine; since the interpreter
    halts on labels starting with 'halt', those states are renamed to
    'halt-<name>' throughout.

    Args:
        yaml_string: YAML string defining the Turing machine

    Returns:
        Dict with keys:
            - 'program': List of text program lines
            - 'input': Initial tape text, blanks spelled '_' (or None)
            - 'start_state': Initial state label

    Raises:
        ValueError: for a transition without a direction, or a symbol or
                    state name that cannot be written in a text program

    Example YAML format:
        input: '1101011+11001'
        blank: ' '
        start state: right
        table:
          right:
            [0,1,+]: R
            ' ': {L: read}
          read:
            0: {write: c, L: have0}
            1: {write: c, L: have1}
    """
    data = yaml.safe_load(_preprocess_yaml_keys(yaml_string))
    if not isinstance(data, dict):
        raise ValueError('YAML machine definition must be a mapping')

    blank = str(data.get('blank', BLANK_ON_TAPE))
    table = data.get('table') or {}
    start_state = data.get('start state', data.get('start_state', None))
    if start_state is None and table:
        start_state = next(iter(table))

    halting = {_state_label(name) for name, transitions in table.items() if not transitions}
    labels = {name: _halt_label(name) for name in halting}

    def label(name):
        name = _state_label(name)
        return labels.get(name, name)

    program = []
    for state_name, transitions in table.items():
        if not transitions:
            continue
        if not isinstance(transitions, dict):
            raise ValueError(f'Transitions of state {state_name!r} must be a mapping')

        for key, value in transitions.items():
            write, direction, next_state = _parse_transition_value(str(state_name), value)
            new_symbol = NO_CHANGE if write is None else _program_symbol(write, blank)
            for read_symbol in _parse_symbol_key(key):
                program.append(' '.join((label(state_name), _program_symbol(read_symbol, blank),
                                         new_symbol, direction.lower(), label(next_state))))

    input_string = data.get('input', None)
    if input_string is not None:
        input_string = ''.join(BLANK_IN_PROGRAM if ch == blank else ch for ch in str(input_string))

    log.debug('converted YAML machine: %d lines, halting states %s', len(program), sorted(labels.values()))
    return {
        'program': program,
        'input': input_string,
        'start_state': label(start_state) if start_state is not None else None,
    }


# ============================================================
# One-call runner
# ============================================================

def run_turing_machine(program, initial_tape='', initial_state='0', max_steps=None, delay=0,
                       verbose=False, comment=COMMENT, record=False):
    """
    Run a Turing machine program.

    Args:
        program: List of text program lines
        initial_tape: Initial tape text (see parse_tape)
        initial_state: The starting state
        max_steps: Maximum steps before forced stop (None for unlimited)
        delay: Seconds to wait between steps
        verbose: If True, print each step and a summary
        comment: Comment delimiter for the program
        record: If True, the result carries the execution history

    Returns:
        RunResult (tape, steps, state, reason, history)

    Raises:
        NoMatch: if the machine reaches a state/symbol pair with no row
    """
    table = Table(program, comment)
    machine = Machine(table, make_head(initial_tape), record=record)

    if verbose:
        print("Starting Turing Machine simulation")
        print(f"Initial state: {initial_state}, Initial tape: {initial_tape!r}")
        print(f"Program has {len(table)} transition rules")
        print("-" * 60)

    def report(step):
        print(f"Step {step.steps}: State={step.state}, Head={step.position}, "
              f"Tape={format_tape(step.tape)!r}")

    result = machine.run(initial_state, max_steps=max_steps, delay=delay,
                         on_step=report if verbose else None, breakpoints=False)

    if verbose:
        if result.halted:
            print(f"\nMachine halted in state {result.state} after {result.steps} steps.")
        else:
            print(f"\nReached maximum steps ({max_steps}), stopping.")
        print(f"Final tape: {format_tape(result.tape)!r}")

    return result


# Binary Adder Machine
# Adds two binary numbers: given input "a+b", produces "c b" where c = a+b
# Example: '11+1' => '100 1' (3+1=4)
BINARY_ADDER_YAML = """
input: '1011+11001'
blank: ' '
start state: right
table:
  # Start at the second number's rightmost digit.
  right:
    [0,1,+]: R
    ' ': {L: read}

  # Add each digit from right to left:
  # read the current digit of the second number,
  read:
    0: {write: c, L: have0}
    1: {write: c, L: have1}
    +: {write: ' ', L: rewrite}
  # and add it to the next place of the first number,
  # marking the place (using O or I) as already added.
  have0:
    [0,1]: L
    +: {L: add0}
  have1:
    [0,1]: L
    +: {L: add1}
  add0:
    [0,' ']: {write: O, R: back0}
    1: {write: I, R: back0}
    [O,I]: L
  add1:
    [0,' ']: {write: I, R: back1}
    1: {write: O, L: carry}
    [O,I]: L
  carry:
    [0,' ']: {write: 1, R: back1}
    1: {write: 0, L}
  # Then, restore the current digit, and repeat with the next digit.
  back0:
    [0,1,O,I,+]: R
    c: {write: 0, L: read}
  back1:
    [0,1,O,I,+]: R
    c: {write: 1, L: read}

  # Finish: rewrite place markers back to 0s and 1s.
  rewrite:
    O: {write: 0, L}
    I: {write: 1, L}
    [0,1]: L
    ' ': {R: done}
  done:
"""
