"""
Device Ban Gate.

The engine decides to ban; the gate makes the decision durable. Enforcement
(refusing a banned device elsewhere) is not done here, apart from the registry
lookup the chat API uses to refuse starting a new conversation.
"""
import time
from typing import Dict, Optional

from starlette.concurrency import run_in_threadpool

from verifychat.auth.bridge import AuthBridge
from verifychat.errors import AuthError, BanInvocationError
from verifychat.observability.logging import log
from verifychat.queue.jobs import ban_device_job
from verifychat.queue.rq_conn import ban_retry, get_queue
from verifychat.settings import settings
from verifychat.store.redis_conn import get_redis

PREFIX = "ban:"


def _key(device_id: str) -> str:
    return f"{PREFIX}{device_id}"


def record_ban(device_id: str, reason: str, session_id: str = "") -> None:
    r = get_redis()
    r.hset(_key(device_id), mapping={
        "reason": reason,
        "sessionId": session_id or "",
        "bannedAtEpoch": int(time.time()),
    })


def get_ban(device_id: str) -> Optional[Dict[str, str]]:
    if not device_id:
        return None
    r = get_redis()
    data = r.hgetall(_key(device_id))
    return data or None


def is_banned(device_id: str) -> bool:
    return get_ban(device_id) is not None


class DeviceBanGate:
    async def ban(self, device_id: str, reason: str, session_id: str = "") -> None:
        raise NotImplementedError


class QueuedBanGate(DeviceBanGate):
    """Record the ban in Redis and hand the bridge call to an RQ worker."""

    def _ban_sync(self, device_id: str, reason: str, session_id: str) -> None:
        record_ban(device_id, reason, session_id)
        q = get_queue()
        q.enqueue(
            ban_device_job,
            device_id,
            reason,
            retry=ban_retry(),
        )

    async def ban(self, device_id: str, reason: str, session_id: str = "") -> None:
        try:
            await run_in_threadpool(self._ban_sync, device_id, reason, session_id)
        except Exception as e:
            raise BanInvocationError(f"could not queue ban for {device_id}: {e}") from e
        log("device_ban_queued", deviceId=device_id, sessionId=session_id, reason=reason)


class DirectBanGate(DeviceBanGate):
    """Call the bridge inline."""

    def __init__(self, bridge: AuthBridge):
        self.bridge = bridge

    async def ban(self, device_id: str, reason: str, session_id: str = "") -> None:
        try:
            await run_in_threadpool(record_ban, device_id, reason, session_id)
            await self.bridge.ban_device(device_id, reason)
        except AuthError as e:
            raise BanInvocationError(f"bridge refused ban for {device_id}: {e}") from e
        except Exception as e:
            raise BanInvocationError(f"could not record ban for {device_id}: {e}") from e


class LocalBanGate(DeviceBanGate):
    """Keeps bans in process memory (terminal chat, tests)."""

    def __init__(self):
        self.banned: Dict[str, str] = {}

    async def ban(self, device_id: str, reason: str, session_id: str = "") -> None:
        self.banned[device_id] = reason


def build_ban_gate(bridge: AuthBridge) -> DeviceBanGate:
    if settings.BAN_GATE_MODE == "direct":
        return DirectBanGate(bridge)
    return QueuedBanGate()
