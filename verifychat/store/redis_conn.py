from typing import Optional

from redis import Redis
from verifychat.settings import settings

_client: Optional[Redis] = None


def get_redis() -> Redis:
    """Shared client (one connection pool per process) for sessions, steps, identities and bans."""
    global _client
    if _client is None:
        _client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client
