"""
Execution history export.

A Machine created with ``record=True`` keeps one Transition per executed
step:
    (state, read, write, direction, next_state)

Where:
    - state: the concrete state label the step started in
    - read: the symbol that was matched, in program spelling ('_' for blank)
    - write: the symbol written to the tape, or None if the cell was kept
    - direction: Move.LEFT, Move.RIGHT or Move.STAY
    - next_state: the concrete state label the step ended in

These helpers turn such a history into a numpy array so runs can be
compared, stored, or fed to sequence models.
"""

import logging

import numpy as np

from turing_machine import Move, escape

log = logging.getLogger(__name__)

# Direction encoding
DIRECTION_ENCODING = {Move.LEFT: 0, Move.RIGHT: 1, Move.STAY: 2}


def build_state_encoding(history):
    """Encode every state label seen in ``history`` as an integer, sorted by label."""
    all_states = set()
    for curr, _, _, _, nxt in history:
        all_states.add(curr)
        all_states.add(nxt)
    return {state: i for i, state in enumerate(sorted(all_states, key=str))}


def build_symbol_encoding(history):
    """Encode every symbol read or written in ``history`` as an integer."""
    all_symbols = set()
    for _, read, write, _, _ in history:
        all_symbols.add(read)
        if write is not None:  # None means no write, don't add to encoding
            all_symbols.add(escape(write))
    return {sym: i for i, sym in enumerate(sorted(all_symbols, key=str))}


def history_to_numpy(history, state_encoding=None, symbol_encoding=None, include_halt_row=True):
    """
    Convert execution history to a numpy array of shape (n_steps, 5).

    Args:
        history: List of Transition records from Machine.history
        state_encoding: Optional dict mapping state labels to integers.
                        If None, states are auto-encoded alphabetically.
        symbol_encoding: Optional dict mapping symbols to integers.
                         If None, symbols are auto-encoded (sorted).
        include_halt_row: If True (default), adds a final row representing the
                          last state with [-1, -1, -1, -1, final_state].

    Returns:
        Tuple of (array, state_encoding, symbol_encoding) where:
            - array: int16 numpy array with columns
                     [current_state, read, write, direction, next_state]
            - state_encoding: dict mapping state labels to integers
            - symbol_encoding: dict mapping symbols to integers

    Encoding:
        - Direction: L=0, R=1, stay=2
        - Write column: -1 indicates no write (tape unchanged)
        - Blank is encoded under its program spelling '_'
    """
    if not history:
        return np.array([], dtype=np.int16).reshape(0, 5), state_encoding or {}, symbol_encoding or {}

    if state_encoding is None:
        state_encoding = build_state_encoding(history)
    if symbol_encoding is None:
        symbol_encoding = build_symbol_encoding(history)

    n_steps = len(history)
    total_rows = n_steps + 1 if include_halt_row else n_steps
    arr = np.zeros((total_rows, 5), dtype=np.int16)

    for i, (curr_state, read, write, direction, next_state) in enumerate(history):
        arr[i, 0] = state_encoding[curr_state]
        arr[i, 1] = symbol_encoding[read]
        arr[i, 2] = symbol_encoding[escape(write)] if write is not None else -1
        arr[i, 3] = DIRECTION_ENCODING[direction]
        arr[i, 4] = state_encoding[next_state]

    if include_halt_row:
        arr[n_steps, :4] = -1
        arr[n_steps, 4] = state_encoding[history[-1][4]]

    return arr, state_encoding, symbol_encoding


def save_history_to_file(history, filepath, state_encoding=None, include_halt_row=True):
    """
    Save execution history to a .npy file.

    Args:
        history: List of Transition records from Machine.history
        filepath: Path to save the numpy array (should end in .npy)
        state_encoding: Optional dict mapping state labels to integers
        include_halt_row: If True (default), adds a final halt state row

    Returns:
        The (state_encoding, symbol_encoding) pair used
    """
    arr, states, symbols = history_to_numpy(history, state_encoding, include_halt_row=include_halt_row)
    np.save(filepath, arr)
    log.info('saved %d-step history to %s', len(history), filepath)
    return states, symbols
