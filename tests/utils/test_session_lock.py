import asyncio
from unittest.mock import patch

import pytest

from verifychat.errors import SessionBusy
from verifychat.utils.lock import session_lock


def test_lock_is_held_inside_and_released_after(lock_redis):
    async def scenario():
        async with session_lock("s1", ttl_ms=1000):
            assert list(lock_redis.keys) == ["lock:session:s1"]
        return dict(lock_redis.keys)

    assert asyncio.run(scenario()) == {}
    assert lock_redis.ttls["lock:session:s1"] == 1000


def test_lock_released_when_turn_raises(lock_redis):
    async def scenario():
        async with session_lock("s1"):
            raise ValueError("boom")

    with pytest.raises(ValueError):
        asyncio.run(scenario())
    assert lock_redis.keys == {}


def test_second_turn_waits_for_first(lock_redis):
    order = []

    async def turn(name, hold):
        async with session_lock("s1", wait_ms=2000):
            order.append(f"{name}-in")
            await asyncio.sleep(hold)
            order.append(f"{name}-out")

    async def scenario():
        first = asyncio.ensure_future(turn("a", 0.05))
        while "a-in" not in order:
            await asyncio.sleep(0.005)
        await asyncio.gather(first, turn("b", 0))

    asyncio.run(scenario())
    assert order == ["a-in", "a-out", "b-in", "b-out"]


@patch("verifychat.utils.lock.log")
def test_busy_lock_raises_after_wait(mock_log, lock_redis):
    lock_redis.keys["lock:session:s1"] = "someone-else"

    async def scenario():
        async with session_lock("s1", wait_ms=30):
            pass

    with pytest.raises(SessionBusy):
        asyncio.run(scenario())
    assert mock_log.call_args.args[0] == "session_lock_busy"
    # Another turn's lock is never deleted
    assert lock_redis.keys == {"lock:session:s1": "someone-else"}


@patch("verifychat.utils.lock.log")
def test_release_failure_is_logged(mock_log, lock_redis):
    def broken_eval(*args):
        raise ConnectionError("redis down")

    lock_redis.eval = broken_eval

    async def scenario():
        async with session_lock("s1"):
            pass

    asyncio.run(scenario())
    assert mock_log.call_args.args[0] == "session_lock_release_failed"
