"""
Remembered sign-in identity per device.

When a device has signed in with email/password before, the login step skips
straight to the password prompt for that email.
"""
from typing import Dict, Optional

from starlette.concurrency import run_in_threadpool

from verifychat.settings import settings
from verifychat.store.redis_conn import get_redis

PREFIX = "identity:"


def _key(device_id: str) -> str:
    return f"{PREFIX}{device_id}"


def recall_identity(device_id: str) -> Optional[str]:
    if not device_id:
        return None
    r = get_redis()
    return r.get(_key(device_id)) or None


def remember_identity(device_id: str, email: str) -> None:
    if not device_id or not email:
        return
    r = get_redis()
    ttl = int(settings.IDENTITY_TTL_SEC or 0)
    if ttl > 0:
        r.set(_key(device_id), email, ex=ttl)
    else:
        r.set(_key(device_id), email)


def forget_identity(device_id: str) -> None:
    if not device_id:
        return
    r = get_redis()
    r.delete(_key(device_id))


class IdentityMemory:
    """Async facade used by the login sub-flow."""

    async def recall(self, device_id: str) -> Optional[str]:
        return await run_in_threadpool(recall_identity, device_id)

    async def remember(self, device_id: str, email: str) -> None:
        await run_in_threadpool(remember_identity, device_id, email)

    async def forget(self, device_id: str) -> None:
        await run_in_threadpool(forget_identity, device_id)


class LocalIdentityMemory(IdentityMemory):
    """Process-local memory for single-user runs (terminal chat, tests)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._emails: Dict[str, str] = dict(initial or {})

    async def recall(self, device_id: str) -> Optional[str]:
        return self._emails.get(device_id)

    async def remember(self, device_id: str, email: str) -> None:
        if device_id and email:
            self._emails[device_id] = email

    async def forget(self, device_id: str) -> None:
        self._emails.pop(device_id, None)
