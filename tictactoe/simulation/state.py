"""Game state derived from protocol messages.

A GameState is one player-relative snapshot of a session: the occupancy
board, the ply and message counters, whose move is next, who authored
the snapshot, and which two players may take part. Snapshots never
change after construction; a move produces a new GameState.

INVARIANTS (enforced by from_message, never repaired):
- message_number % 9 == turn, with turn < 9 and message_number < 27.
- Even message numbers are player 1's move, odd ones player 2's.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from tictactoe.config import BOARD_CELLS
from tictactoe.networking.player import PlayerId
from tictactoe.networking.protocol import Message, encode_empty

# Two seats; None marks a seat nobody has claimed yet
Players = tuple[PlayerId | None, PlayerId | None]

EMPTY_BOARD: tuple[int, ...] = (0,) * BOARD_CELLS


@dataclass(frozen=True, slots=True)
class GameState:
    """Snapshot of one session.

    Attributes:
        board: Occupancy per cell (1 = occupied), index = cell position.
        turn: Ply index at the time this state was produced.
        message_number: Sequence counter at the time this state was produced.
        p2_turn: Whether player 2 moves next.
        submitted_by: Player who authored this state, None if server-made.
        players: Registered seats, None when anyone may play.
        message: The data message this state was decoded from, reserved
            bits cleared.
    """
    board: tuple[int, ...] = EMPTY_BOARD
    turn: int = 0
    message_number: int = 0
    p2_turn: bool = True
    submitted_by: PlayerId | None = None
    players: Players | None = None
    message: Message = field(default_factory=encode_empty)

    @classmethod
    def new(
        cls,
        submitter: PlayerId | None = None,
        players: Players | None = None,
    ) -> GameState:
        """Zero-value state seeded from the empty message."""
        return cls(submitted_by=submitter, players=players)

    @classmethod
    def from_message(
        cls,
        message: Message,
        submitter: PlayerId | None,
        players: Players | None = None,
    ) -> GameState:
        """Decode a data message into a state authored by ``submitter``.

        Raises:
            ValidationError: if the message's counters are inconsistent.
        """
        message.validate()
        board_state = message.board_state
        board = tuple((board_state >> i) & 1 for i in range(BOARD_CELLS))
        return cls(
            board=board,
            turn=message.turn,
            message_number=message.message_number,
            p2_turn=message.p2_turn,
            submitted_by=submitter,
            players=players,
            # Reserved bits and the type bit are dropped
            message=Message.from_fields(
                message.board_state, message.turn, message.message_number, message.p2_turn,
            ),
        )

    def to_message(self) -> Message:
        return self.message

    def accepts(self, player: PlayerId | None) -> bool:
        """Whether ``player`` may author a state in this session."""
        if self.players is None:
            return True
        if player is None:
            return False
        return player in self.players or None in self.players

    def register(self, player: PlayerId) -> GameState:
        """Seat ``player`` in the first open slot.

        Returns self unchanged if the player is already seated, no seat is
        open, or the session has no registration at all.
        """
        if self.players is None or player in self.players:
            return self
        first, second = self.players
        if first is None:
            return replace(self, players=(player, second))
        if second is None:
            return replace(self, players=(first, player))
        return self
