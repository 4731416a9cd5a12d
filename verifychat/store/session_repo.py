import inspect
import json
import time

from verifychat.observability.logging import log
from verifychat.settings import settings
from verifychat.store.models import Session
from verifychat.store.redis_conn import get_redis

PREFIX = "session:"


def _key(session_id: str) -> str:
    return f"{PREFIX}{session_id}"


def _filter_session_kwargs(data: dict) -> dict:
    """
    Drop unknown fields so Session(**kwargs) never explodes
    """
    sig = inspect.signature(Session)
    allowed = set(sig.parameters.keys())
    dropped = [k for k in data if k not in allowed]
    if dropped:
        log("session_fields_dropped", sessionId=data.get("sessionId", ""), fields=sorted(dropped))
    return {k: v for k, v in data.items() if k in allowed}


def load_session(session_id: str) -> Session:
    r = get_redis()
    raw = r.get(_key(session_id))
    if not raw:
        return Session(sessionId=session_id)

    data = json.loads(raw)
    data["sessionId"] = session_id
    # Older records may lack these or carry nulls
    data["transcript"] = data.get("transcript") or []
    data["variables"] = data.get("variables") or {}
    data["attempts"] = int(data.get("attempts") or 0)
    data["generation"] = int(data.get("generation") or 0)

    return Session(**_filter_session_kwargs(data))


def save_session(session: Session) -> None:
    r = get_redis()
    session.updatedAtMs = int(time.time() * 1000)
    data = session.__dict__.copy()
    ttl = int(settings.SESSION_TTL_SEC or 0)
    if ttl > 0:
        r.set(_key(session.sessionId), json.dumps(data), ex=ttl)
    else:
        r.set(_key(session.sessionId), json.dumps(data))


def delete_session(session_id: str) -> None:
    r = get_redis()
    r.delete(_key(session_id))
