"""Asyncio client for the game server.

Drives the handshake and the request/reply loop from the player's side.
The client keeps the last state the server confirmed so the next move can
be built from it.

Usage:
    host = await GameClient.connect("127.0.0.1", port)
    guest = await GameClient.connect("127.0.0.1", port, join=host.player_id)
    await host.sync()
    accepted = await host.play(4)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from tictactoe.config import MESSAGE_SIZE, TOKEN_SIZE
from tictactoe.networking.player import PlayerId
from tictactoe.networking.protocol import Message, ProtocolError, encode_ack
from tictactoe.networking.serialization import decode_message, encode_message

logger = logging.getLogger(__name__)


class GameClient:
    """One player's connection to a game server."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        player_id: PlayerId,
        session: PlayerId,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.player_id = player_id
        self.session = session
        self.state: Message | None = None

    @classmethod
    async def connect(
        cls, host: str, port: int, join: PlayerId | None = None,
    ) -> GameClient:
        """Open a connection and complete the handshake.

        Args:
            join: Session to join. Defaults to a private session keyed by
                the id the server assigns to this client.
        """
        reader, writer = await asyncio.open_connection(host, port)
        try:
            writer.write(encode_message(encode_ack()))
            await writer.drain()
            player_id = PlayerId.from_bytes(await reader.readexactly(TOKEN_SIZE))

            session = join if join is not None else player_id
            writer.write(session.to_bytes())
            await writer.drain()
            reply = decode_message(await reader.readexactly(MESSAGE_SIZE))
            if not reply.is_ack:
                raise ProtocolError(f"handshake not acknowledged: {reply!r}")
        except BaseException:
            writer.close()
            raise
        logger.info("Connected to %s:%d as %s (session %s)", host, port, player_id, session)
        return cls(reader, writer, player_id, session)

    async def request(self, message: Message) -> Message:
        """Send one message and wait for the server's reply."""
        self._writer.write(encode_message(message))
        await self._writer.drain()
        return decode_message(await self._reader.readexactly(MESSAGE_SIZE))

    async def sync(self) -> Message:
        """Fetch the session's current state (opening the session if needed)."""
        self.state = await self.request(encode_ack())
        return self.state

    async def submit(self, message: Message) -> bool:
        """Submit a move. Returns True if the server accepted it.

        On acceptance the move becomes the known state; on rejection the
        server's authoritative state does.
        """
        reply = await self.request(message)
        if reply.is_ack:
            self.state = message
            return True
        logger.debug("Move %r rejected, server holds %r", message, reply)
        self.state = reply
        return False

    async def play(self, cell: int) -> bool:
        """Mark ``cell`` on top of the last known state and submit it."""
        if self.state is None:
            await self.sync()
        return await self.submit(self.state.step().place(cell))

    async def close(self) -> None:
        self._writer.close()
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()
