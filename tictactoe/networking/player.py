"""Opaque player identity exchanged during the handshake."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from tictactoe.config import TOKEN_SIZE


@dataclass(frozen=True, slots=True)
class PlayerId:
    """A 16-byte identity. Hashable, so it doubles as a session key."""
    value: uuid.UUID

    @classmethod
    def new(cls) -> PlayerId:
        return cls(uuid.uuid4())

    @classmethod
    def from_bytes(cls, data: bytes) -> PlayerId:
        """Parse a raw token. Raises ValueError unless it is exactly 16 bytes."""
        if len(data) != TOKEN_SIZE:
            raise ValueError(f"Expected {TOKEN_SIZE}-byte token, got {len(data)}")
        return cls(uuid.UUID(bytes=bytes(data)))

    def to_bytes(self) -> bytes:
        return self.value.bytes

    def __str__(self) -> str:
        return str(self.value)
