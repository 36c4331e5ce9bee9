"""Turn legality.

A session progresses S0 -> S1 -> S2 ... where each step adds exactly one
mark, advances ply and message number by one, hands the move to the other
player and is authored by a different player than the step before it.
Win and draw detection are not part of these rules.

A rejected turn is a normal outcome, not an error: check_turn() reports
the first rule that failed and validate_turn() reduces that to a bool.
"""

from __future__ import annotations

from enum import Enum

from tictactoe.config import MAX_TURN
from tictactoe.simulation.state import GameState


class TurnRejection(Enum):
    """Why a well-formed state is not a legal successor, in check order."""
    TURN_NOT_NEXT = "turn does not follow the previous turn"
    SAME_MOVER = "the same player is marked to move twice"
    MESSAGE_NOT_NEXT = "message number does not follow the previous message"
    REPEAT_SUBMITTER = "a player cannot author two consecutive states"
    UNREGISTERED_PLAYER = "submitter is not registered in this session"
    ILLEGAL_BOARD = "board must gain exactly one mark in an empty cell"


def compare_boards(prev: GameState, next_state: GameState) -> bool:
    """True iff exactly one previously empty cell changed."""
    differences = 0
    for before, after in zip(prev.board, next_state.board):
        # Rewriting an occupied cell disqualifies the move outright
        if before != 0 and before != after:
            return False
        if before != after:
            differences += 1
    return differences == 1


def check_turn(prev: GameState, next_state: GameState) -> TurnRejection | None:
    """Return the first rule ``next_state`` breaks as a successor, or None."""
    # Ply wraps 8 -> 0 on the ninth mark, same as Message.step
    if next_state.turn != (prev.turn + 1) % MAX_TURN:
        return TurnRejection.TURN_NOT_NEXT
    if next_state.p2_turn == prev.p2_turn:
        return TurnRejection.SAME_MOVER
    if next_state.message_number != prev.message_number + 1:
        return TurnRejection.MESSAGE_NOT_NEXT
    if next_state.submitted_by == prev.submitted_by:
        return TurnRejection.REPEAT_SUBMITTER
    if not prev.accepts(next_state.submitted_by):
        return TurnRejection.UNREGISTERED_PLAYER
    if not compare_boards(prev, next_state):
        return TurnRejection.ILLEGAL_BOARD
    return None


def validate_turn(prev: GameState, next_state: GameState) -> bool:
    """Whether ``next_state`` may replace ``prev``. False means do not apply."""
    return check_turn(prev, next_state) is None
