import asyncio
from unittest.mock import MagicMock, patch

from verifychat.settings import settings
from verifychat.store.identity_repo import (
    IdentityMemory, LocalIdentityMemory, forget_identity, recall_identity, remember_identity,
)


@patch("verifychat.store.identity_repo.get_redis")
def test_remember_without_ttl(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis
    with patch.object(settings, "IDENTITY_TTL_SEC", 0):
        remember_identity("dev-1", "a@b.c")
    mock_redis.set.assert_called_with("identity:dev-1", "a@b.c")


@patch("verifychat.store.identity_repo.get_redis")
def test_remember_with_ttl(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis
    with patch.object(settings, "IDENTITY_TTL_SEC", 60):
        remember_identity("dev-1", "a@b.c")
    mock_redis.set.assert_called_with("identity:dev-1", "a@b.c", ex=60)


@patch("verifychat.store.identity_repo.get_redis")
def test_recall_and_forget(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis
    mock_redis.get.return_value = "a@b.c"
    assert recall_identity("dev-1") == "a@b.c"
    assert recall_identity("") is None
    forget_identity("dev-1")
    mock_redis.delete.assert_called_with("identity:dev-1")


@patch("verifychat.store.identity_repo.get_redis")
def test_async_facade_uses_redis(mock_get_redis):
    mock_get_redis.return_value.get.return_value = None
    assert asyncio.run(IdentityMemory().recall("dev-1")) is None


def test_local_identity_memory():
    mem = LocalIdentityMemory()

    async def scenario():
        await mem.remember("dev-1", "a@b.c")
        first = await mem.recall("dev-1")
        await mem.forget("dev-1")
        return first, await mem.recall("dev-1")

    assert asyncio.run(scenario()) == ("a@b.c", None)
