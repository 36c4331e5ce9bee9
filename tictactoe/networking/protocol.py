"""Network protocol definitions.

Every application message is a single 32-bit unsigned integer. Fields are
addressed by their offset from the least-significant bit:

    [0..9)    board state      one occupancy bit per cell, row-major
    [9..21)   reserved         ignored on read, zero on write
    [21..26)  message number   session sequence counter (0..26)
    [26]      p2 turn          set when player 2 moves next
    [27..31)  turn             ply index within the current game (0..8)
    [31]      message type     1 = ack, 0 = data

The board only records occupancy, never which symbol sits in a cell. Each
side interprets occupancy against the state it already holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from tictactoe.config import BOARD_CELLS, MAX_MESSAGE_NUMBER, MAX_TURN


class MessageType(IntEnum):
    """Value of the top bit of a message."""
    DATA = 0
    ACK = 1


# --- Bit layout ---

BOARD_OFFSET = 0
BOARD_WIDTH = BOARD_CELLS
MESSAGE_NUMBER_OFFSET = 21
MESSAGE_NUMBER_WIDTH = 5
P2_TURN_OFFSET = 26
TURN_OFFSET = 27
TURN_WIDTH = 4
MESSAGE_TYPE_OFFSET = 31

MESSAGE_MASK = 0xFFFFFFFF
BOARD_MASK = ((1 << BOARD_WIDTH) - 1) << BOARD_OFFSET
MESSAGE_NUMBER_MASK = ((1 << MESSAGE_NUMBER_WIDTH) - 1) << MESSAGE_NUMBER_OFFSET
P2_TURN_MASK = 1 << P2_TURN_OFFSET
TURN_MASK = ((1 << TURN_WIDTH) - 1) << TURN_OFFSET
MESSAGE_TYPE_MASK = 1 << MESSAGE_TYPE_OFFSET


def _extract(value: int, offset: int, width: int) -> int:
    return (value >> offset) & ((1 << width) - 1)


# --- Errors ---

class ValidationReason(Enum):
    """Why a data message failed validation, in the order rules are checked."""
    MESSAGE_OVERFLOW = "message number past maximum value"
    TURN_OVERFLOW = "turn number past maximum value"
    TURN_AHEAD = "message number is less than turn number"
    OUT_OF_SYNC = "turn number and message number are not in sync"
    PARITY_MISMATCH = "player turn does not match message number parity"


class ProtocolError(ValueError):
    """Base class for malformed or inconsistent wire data."""


class ValidationError(ProtocolError):
    """A data message whose fields contradict each other."""

    def __init__(self, reason: ValidationReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


class MessageNumberOverflow(ProtocolError):
    """Advancing the sequence would reach the message number ceiling."""

    def __init__(self, message_number: int) -> None:
        super().__init__(
            f"cannot advance message number {message_number} past {MAX_MESSAGE_NUMBER - 1}"
        )
        self.message_number = message_number


# --- Message ---

@dataclass(frozen=True, slots=True)
class Message:
    """One bit-packed protocol message.

    Immutable: every accessor is a pure function of ``value`` and every
    transformation returns a new Message.
    """
    value: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.value <= MESSAGE_MASK:
            raise ValueError(f"message value out of u32 range: {self.value}")

    @classmethod
    def from_fields(
        cls,
        board_state: int = 0,
        turn: int = 0,
        message_number: int = 0,
        p2_turn: bool = False,
        message_type: MessageType = MessageType.DATA,
    ) -> Message:
        """Pack fields into a message. Each field is masked to its width."""
        value = (board_state << BOARD_OFFSET) & BOARD_MASK
        value |= (message_number << MESSAGE_NUMBER_OFFSET) & MESSAGE_NUMBER_MASK
        value |= (turn << TURN_OFFSET) & TURN_MASK
        if p2_turn:
            value |= P2_TURN_MASK
        if message_type == MessageType.ACK:
            value |= MESSAGE_TYPE_MASK
        return cls(value)

    @property
    def board_state(self) -> int:
        return _extract(self.value, BOARD_OFFSET, BOARD_WIDTH)

    @property
    def turn(self) -> int:
        return _extract(self.value, TURN_OFFSET, TURN_WIDTH)

    @property
    def message_number(self) -> int:
        return _extract(self.value, MESSAGE_NUMBER_OFFSET, MESSAGE_NUMBER_WIDTH)

    @property
    def p2_turn(self) -> bool:
        return _extract(self.value, P2_TURN_OFFSET, 1) == 1

    @property
    def message_type(self) -> MessageType:
        return MessageType(_extract(self.value, MESSAGE_TYPE_OFFSET, 1))

    @property
    def is_ack(self) -> bool:
        """True only for a bare ack: the type bit and nothing else."""
        return self.value == MESSAGE_TYPE_MASK

    def place(self, cell: int) -> Message:
        """Mark one board cell as occupied."""
        if not 0 <= cell < BOARD_CELLS:
            raise ValueError(f"cell out of range: {cell}")
        return Message(self.value | (1 << (BOARD_OFFSET + cell)))

    def swap_view(self) -> Message:
        """Flip every occupancy bit and the p2 turn bit.

        Converts a board as seen by the mover into the board as seen by
        the opponent. Applying it twice yields the original message.
        """
        return Message(self.value ^ BOARD_MASK ^ P2_TURN_MASK)

    def step(self) -> Message:
        """Advance to the next message in the sequence.

        Turn wraps 8 -> 0, message number increments, mover flips.

        Raises:
            MessageNumberOverflow: if the next message number would reach
                the ceiling.
        """
        message_number = self.message_number
        if message_number + 1 >= MAX_MESSAGE_NUMBER:
            raise MessageNumberOverflow(message_number)
        value = self.value & ~(TURN_MASK | MESSAGE_NUMBER_MASK)
        value |= ((self.turn + 1) % MAX_TURN) << TURN_OFFSET
        value |= (message_number + 1) << MESSAGE_NUMBER_OFFSET
        value ^= P2_TURN_MASK
        return Message(value)

    def validate(self) -> None:
        """Check that turn, message number and mover agree.

        Rules are checked in a fixed order; the first one that fails is
        reported.

        Raises:
            ValidationError: carrying the failing ValidationReason.
        """
        turn = self.turn
        message_number = self.message_number
        if message_number >= MAX_MESSAGE_NUMBER:
            raise ValidationError(ValidationReason.MESSAGE_OVERFLOW)
        if turn >= MAX_TURN:
            raise ValidationError(ValidationReason.TURN_OVERFLOW)
        if message_number < turn:
            raise ValidationError(ValidationReason.TURN_AHEAD)
        if message_number % MAX_TURN != turn:
            raise ValidationError(ValidationReason.OUT_OF_SYNC)
        # Even message numbers belong to player 1, odd ones to player 2
        if (message_number % 2 == 1) != self.p2_turn:
            raise ValidationError(ValidationReason.PARITY_MISMATCH)

    def __repr__(self) -> str:
        return f"Message(0x{self.value:08x})"


def encode_ack() -> Message:
    """A bare acknowledgment: only the message type bit set."""
    return Message(MESSAGE_TYPE_MASK)


def encode_empty() -> Message:
    """The all-zero data message: empty board, ply 0, player 1 to move."""
    return Message(0)
