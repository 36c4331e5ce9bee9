"""Shared test fixtures for the tic-tac-toe server."""

from __future__ import annotations

import pytest

from tictactoe.networking.player import PlayerId
from tictactoe.networking.protocol import encode_empty
from tictactoe.simulation.state import GameState


@pytest.fixture
def player_one() -> PlayerId:
    return PlayerId.new()


@pytest.fixture
def player_two() -> PlayerId:
    return PlayerId.new()


@pytest.fixture
def opening(player_one: PlayerId) -> GameState:
    """The state a session starts from: empty board, player 1 to move, one open seat."""
    return GameState.from_message(encode_empty(), None, players=(player_one, None))
