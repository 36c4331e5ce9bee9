"""Tests for the SessionStore actor."""

import asyncio

import pytest

from tictactoe.networking.player import PlayerId
from tictactoe.networking.protocol import encode_empty
from tictactoe.simulation.state import GameState
from tictactoe.simulation.store import SessionStore


def _state(message_number: int) -> GameState:
    m = encode_empty()
    for _ in range(message_number):
        m = m.step()
    return GameState.from_message(m, None)


class TestBasicOperations:
    def test_get_unseen_key(self):
        async def scenario():
            async with SessionStore() as store:
                return await store.get(PlayerId.new())

        assert asyncio.run(scenario()) is None

    def test_put_then_get(self):
        key = PlayerId.new()
        state = _state(3)

        async def scenario():
            async with SessionStore() as store:
                await store.put(key, state)
                return await store.get(key)

        assert asyncio.run(scenario()) == state

    def test_put_replaces(self):
        key = PlayerId.new()

        async def scenario():
            async with SessionStore() as store:
                await store.put(key, _state(1))
                await store.put(key, _state(2))
                return await store.get(key), await store.size()

        state, size = asyncio.run(scenario())
        assert state.message_number == 2
        assert size == 1

    def test_keys_are_independent(self):
        a, b = PlayerId.new(), PlayerId.new()

        async def scenario():
            async with SessionStore() as store:
                await store.put(a, _state(1))
                await store.put(b, _state(5))
                return await store.get(a), await store.get(b)

        state_a, state_b = asyncio.run(scenario())
        assert state_a.message_number == 1
        assert state_b.message_number == 5

    def test_not_running(self):
        async def scenario():
            store = SessionStore()
            await store.get(PlayerId.new())

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())

    def test_stop_is_idempotent(self):
        async def scenario():
            store = SessionStore()
            store.start()
            assert store.running
            await store.stop()
            await store.stop()
            return store.running

        assert asyncio.run(scenario()) is False

    def test_stop_fails_queued_requests(self):
        async def scenario():
            store = SessionStore()
            store.start()
            pending = asyncio.create_task(store.get(PlayerId.new()))
            await asyncio.sleep(0)  # request queued, not yet served
            await store.stop()
            with pytest.raises(RuntimeError):
                await asyncio.wait_for(pending, 1.0)

        asyncio.run(scenario())

    def test_apply_error_reaches_caller(self, monkeypatch):
        def broken(request):
            raise KeyError(request.key)

        async def scenario():
            async with SessionStore() as store:
                monkeypatch.setattr(store, "_apply", broken)
                with pytest.raises(KeyError):
                    await asyncio.wait_for(store.get(PlayerId.new()), 1.0)
                monkeypatch.undo()
                return store.running, await store.size()

        running, size = asyncio.run(scenario())
        assert running is True
        assert size == 0


class TestReplace:
    def test_replace_absent(self):
        key = PlayerId.new()

        async def scenario():
            async with SessionStore() as store:
                first = await store.replace(key, None, _state(0))
                second = await store.replace(key, None, _state(1))
                return first, second, await store.get(key)

        first, second, state = asyncio.run(scenario())
        assert first is True
        assert second is False
        assert state.message_number == 0

    def test_replace_matching(self):
        key = PlayerId.new()

        async def scenario():
            async with SessionStore() as store:
                await store.put(key, _state(0))
                applied = await store.replace(key, _state(0), _state(1))
                return applied, await store.get(key)

        applied, state = asyncio.run(scenario())
        assert applied is True
        assert state.message_number == 1

    def test_replace_stale(self):
        key = PlayerId.new()

        async def scenario():
            async with SessionStore() as store:
                await store.put(key, _state(2))
                applied = await store.replace(key, _state(1), _state(3))
                return applied, await store.get(key)

        applied, state = asyncio.run(scenario())
        assert applied is False
        assert state.message_number == 2


class TestConcurrency:
    def test_concurrent_puts_all_land(self):
        keys = [PlayerId.new() for _ in range(50)]

        async def scenario():
            async with SessionStore() as store:
                await asyncio.gather(*(store.put(k, _state(i % 27)) for i, k in enumerate(keys)))
                return await asyncio.gather(*(store.get(k) for k in keys)), await store.size()

        states, size = asyncio.run(scenario())
        assert size == 50
        assert [s.message_number for s in states] == [i % 27 for i in range(50)]

    def test_no_lost_updates(self):
        """Racing read-advance-write loops on one key never lose a step."""
        key = PlayerId.new()
        workers = 5
        steps_each = 5

        async def worker(store: SessionStore) -> int:
            applied = 0
            while applied < steps_each:
                current = await store.get(key)
                nxt = _state(current.message_number + 1)
                if await store.replace(key, current, nxt):
                    applied += 1
                await asyncio.sleep(0)
            return applied

        async def scenario():
            async with SessionStore() as store:
                await store.put(key, _state(0))
                results = await asyncio.gather(*(worker(store) for _ in range(workers)))
                return results, await store.get(key)

        results, final = asyncio.run(scenario())
        assert sum(results) == workers * steps_each
        assert final.message_number == workers * steps_each
