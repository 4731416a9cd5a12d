import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from starlette.concurrency import run_in_threadpool

from verifychat.errors import SessionBusy
from verifychat.observability.logging import log
from verifychat.settings import settings
from verifychat.store.redis_conn import get_redis

LOCK_POLL_SEC = 0.02

# Delete the key only if we still own it (the TTL may have handed it to someone else)
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def _key(session_id: str) -> str:
    return f"lock:session:{session_id}"


@asynccontextmanager
async def session_lock(session_id: str, ttl_ms: Optional[int] = None, wait_ms: Optional[int] = None):
    """
    Distributed lock so only one turn at a time reads, advances and writes a session.
    Waits up to `wait_ms` for a running turn to finish, then raises SessionBusy.
    """
    ttl = ttl_ms or settings.SESSION_LOCK_TTL_MS
    wait = settings.SESSION_LOCK_WAIT_MS if wait_ms is None else wait_ms
    r = get_redis()
    key = _key(session_id)
    token = uuid.uuid4().hex
    deadline = time.monotonic() + wait / 1000.0

    acquired = await run_in_threadpool(r.set, key, token, px=ttl, nx=True)
    while not acquired:
        if time.monotonic() >= deadline:
            log("session_lock_busy", sessionId=session_id, waitMs=wait)
            raise SessionBusy(session_id)
        await asyncio.sleep(LOCK_POLL_SEC)
        acquired = await run_in_threadpool(r.set, key, token, px=ttl, nx=True)

    try:
        yield
    finally:
        try:
            await run_in_threadpool(r.eval, _RELEASE_SCRIPT, 1, key, token)
        except Exception as e:
            # The TTL frees the key anyway
            log("session_lock_release_failed", sessionId=session_id, errorType=type(e).__name__, error=str(e)[:300])
