"""TCP game server.

One asyncio task per accepted connection drives the protocol:

Handshake:
    client -> server   ack                (4 bytes)
    server -> client   fresh player id    (16 bytes)
    client -> server   session token      (16 bytes, own id or a peer's id)
    server -> client   ack                (4 bytes)

Steady state, one reply per 4-byte message:
    no session yet     -> store the opening state, reply with it
    ack                -> reply with the stored state (sync)
    data, legal turn   -> store it, reply ack
    data, illegal turn -> reply with the stored state, keep the connection

Malformed messages close only the offending connection. That covers
inconsistent data messages and acks with payload bits set, as well as
transport failures. Session state is reached exclusively through the SessionStore.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable

from tictactoe.config import IDLE_TIMEOUT_S, MESSAGE_SIZE, TOKEN_SIZE
from tictactoe.networking.player import PlayerId
from tictactoe.networking.protocol import (
    Message,
    MessageType,
    ProtocolError,
    ValidationError,
    encode_ack,
    encode_empty,
)
from tictactoe.networking.serialization import decode_message, encode_message
from tictactoe.simulation.rules import check_turn
from tictactoe.simulation.state import GameState
from tictactoe.simulation.store import SessionStore

logger = logging.getLogger(__name__)


class HandshakeError(ProtocolError):
    """The client did not follow the two-step handshake."""


class GameServer:
    """Accepts connections and runs the protocol for each of them."""

    def __init__(
        self, store: SessionStore, idle_timeout: float | None = IDLE_TIMEOUT_S,
    ) -> None:
        self._store = store
        self._idle_timeout = idle_timeout
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        if self._server is None or not self._server.sockets:
            raise RuntimeError("server is not listening")
        return self._server.sockets[0].getsockname()[1]

    async def start(self, host: str, port: int) -> asyncio.Server:
        """Bind and start accepting. Port 0 picks a free port."""
        self._server = await asyncio.start_server(self.handle_connection, host, port)
        logger.info("Listening on %s:%d", host, self.port)
        return self._server

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
    ) -> None:
        peer = writer.get_extra_info("peername")
        logger.info("Connection from %s", peer)
        try:
            player, session = await self._handshake(reader, writer)
            logger.info("Player %s joined session %s", player, session)
            await self._serve(reader, writer, player, session)
        except HandshakeError as e:
            logger.warning("Handshake with %s failed: %s", peer, e)
        except ValidationError as e:
            logger.warning("Invalid message from %s: %s", peer, e)
        except ProtocolError as e:
            logger.warning("Protocol violation from %s: %s", peer, e)
        except asyncio.IncompleteReadError:
            logger.warning("Short read from %s", peer)
        except asyncio.TimeoutError:
            logger.warning("Connection from %s idle for %ss", peer, self._idle_timeout)
        except OSError as e:
            logger.warning("Connection from %s failed: %s", peer, e)
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
            logger.info("Connection from %s closed", peer)

    async def _handshake(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
    ) -> tuple[PlayerId, PlayerId]:
        """Run both handshake steps. Returns (player, session key)."""
        # Step 1: hello
        data = await self._read_chunk(reader, TOKEN_SIZE)
        if len(data) != MESSAGE_SIZE:
            raise HandshakeError(f"expected {MESSAGE_SIZE}-byte hello, got {len(data)} bytes")
        if not decode_message(data).is_ack:
            raise HandshakeError("hello is not an ack")
        player = PlayerId.new()
        await self._send(writer, player.to_bytes())

        # Step 2: session token, a fixed frame that may arrive in pieces
        data = await self._with_timeout(reader.readexactly(TOKEN_SIZE))
        session = PlayerId.from_bytes(data)
        await self._send(writer, encode_message(encode_ack()))
        return player, session

    async def _serve(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        player: PlayerId,
        session: PlayerId,
    ) -> None:
        while True:
            message = await self._read_message(reader)
            if message is None:
                logger.debug("Player %s disconnected", player)
                return
            reply = await self._process(message, player, session)
            await self._send(writer, encode_message(reply))

    async def _process(
        self, message: Message, player: PlayerId, session: PlayerId,
    ) -> Message:
        """Apply one message to the session and return the reply."""
        current = await self._store.get(session)
        if current is None:
            opening = GameState.from_message(encode_empty(), None, players=(player, None))
            if await self._store.replace(session, None, opening):
                logger.info("Opened session %s for player %s", session, player)
                return opening.to_message()
            # Another connection opened the session first
            current = await self._store.get(session)
            return current.to_message()

        if message.is_ack:
            return current.to_message()
        if message.message_type == MessageType.ACK:
            raise ProtocolError(f"ack carries payload: {message!r}")

        candidate = GameState.from_message(message, player, players=current.players)
        rejection = check_turn(current, candidate)
        if rejection is not None:
            logger.warning(
                "Rejected turn %d from %s in session %s: %s",
                candidate.turn, player, session, rejection.value,
            )
            return current.to_message()

        candidate = candidate.register(player)
        if not await self._store.replace(session, current, candidate):
            logger.warning("Session %s changed under player %s", session, player)
            latest = await self._store.get(session)
            return latest.to_message()

        logger.debug(
            "Session %s: player %s played turn %d (message %d)",
            session, player, candidate.turn, candidate.message_number,
        )
        return encode_ack()

    async def _read_message(self, reader: asyncio.StreamReader) -> Message | None:
        """Read one message. Returns None on a clean close before any byte."""
        try:
            data = await self._with_timeout(reader.readexactly(MESSAGE_SIZE))
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                return None
            raise
        return decode_message(data)

    async def _read_chunk(self, reader: asyncio.StreamReader, limit: int) -> bytes:
        """Read whatever the client sent in one go, up to ``limit`` bytes."""
        data = await self._with_timeout(reader.read(limit))
        if not data:
            raise ConnectionError("closed during handshake")
        return data

    async def _send(self, writer: asyncio.StreamWriter, data: bytes) -> None:
        writer.write(data)
        await writer.drain()

    async def _with_timeout(self, awaitable: Awaitable[bytes]) -> bytes:
        if self._idle_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self._idle_timeout)


async def serve(host: str, port: int, idle_timeout: float | None = IDLE_TIMEOUT_S) -> None:
    """Run a server with its own session store until cancelled."""
    async with SessionStore() as store:
        server = GameServer(store, idle_timeout=idle_timeout)
        listener = await server.start(host, port)
        async with listener:
            await listener.serve_forever()
