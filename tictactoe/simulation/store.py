"""Session store: the single owner of per-session game state.

All access goes through one asyncio task that drains a request queue, so
operations are applied one at a time in arrival order. Connection
handlers never touch the mapping directly; they submit a request and
await its reply.

Usage:
    async with SessionStore() as store:
        await store.put(key, state)
        state = await store.get(key)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from tictactoe.networking.player import PlayerId
from tictactoe.simulation.state import GameState

logger = logging.getLogger(__name__)


class StoreOp(IntEnum):
    GET = 1
    PUT = 2
    REPLACE = 3  # compare-and-set against the currently stored state
    SIZE = 4


@dataclass(slots=True)
class StoreRequest:
    op: StoreOp
    reply: asyncio.Future
    key: PlayerId | None = None
    state: GameState | None = None
    expected: GameState | None = None


@dataclass(slots=True)
class _Stats:
    gets: int = 0
    puts: int = 0
    conflicts: int = 0


class SessionStore:
    """Actor owning the session key -> GameState mapping.

    The store performs no game-rule validation. Absence of a session is
    reported as None, never as an error.
    """

    def __init__(self) -> None:
        self._sessions: dict[PlayerId, GameState] = {}
        self._requests: asyncio.Queue[StoreRequest] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._stats = _Stats()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the owning task on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="session-store",
        )
        logger.debug("Session store started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        # A task cancelled before its first step never reaches _run's finally
        self._fail_pending()
        logger.debug(
            "Session store stopped: %d sessions, %d gets, %d puts, %d conflicts",
            len(self._sessions), self._stats.gets, self._stats.puts, self._stats.conflicts,
        )

    async def __aenter__(self) -> SessionStore:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def get(self, key: PlayerId) -> GameState | None:
        """Current state of a session, or None if the key is unseen."""
        return await self._submit(StoreOp.GET, key=key)

    async def put(self, key: PlayerId, state: GameState) -> None:
        """Unconditionally replace the session's state."""
        await self._submit(StoreOp.PUT, key=key, state=state)

    async def replace(
        self, key: PlayerId, expected: GameState | None, state: GameState,
    ) -> bool:
        """Store ``state`` only if the session still holds ``expected``.

        ``expected`` of None means the key must be absent. Returns whether
        the state was applied.
        """
        return await self._submit(StoreOp.REPLACE, key=key, state=state, expected=expected)

    async def size(self) -> int:
        return await self._submit(StoreOp.SIZE)

    async def _submit(self, op: StoreOp, **kwargs: Any) -> Any:
        if not self.running:
            raise RuntimeError("session store is not running")
        reply = asyncio.get_running_loop().create_future()
        await self._requests.put(StoreRequest(op=op, reply=reply, **kwargs))
        return await reply

    async def _run(self) -> None:
        try:
            while True:
                request = await self._requests.get()
                try:
                    if request.reply.done():
                        continue  # caller gave up waiting
                    try:
                        result = self._apply(request)
                    except Exception as e:
                        request.reply.set_exception(e)
                    else:
                        request.reply.set_result(result)
                finally:
                    self._requests.task_done()
        finally:
            self._fail_pending()

    def _fail_pending(self) -> None:
        """Fail every queued request so no caller waits on a dead store."""
        while not self._requests.empty():
            request = self._requests.get_nowait()
            self._requests.task_done()
            if not request.reply.done():
                request.reply.set_exception(RuntimeError("session store is not running"))

    def _apply(self, request: StoreRequest) -> Any:
        if request.op == StoreOp.GET:
            self._stats.gets += 1
            return self._sessions.get(request.key)
        if request.op == StoreOp.PUT:
            self._stats.puts += 1
            self._sessions[request.key] = request.state
            return None
        if request.op == StoreOp.REPLACE:
            if self._sessions.get(request.key) != request.expected:
                self._stats.conflicts += 1
                return False
            self._stats.puts += 1
            self._sessions[request.key] = request.state
            return True
        if request.op == StoreOp.SIZE:
            return len(self._sessions)
        raise ValueError(f"Unknown store op: {request.op}")
