from typing import List

from redis import Redis
from rq import Queue, Retry
from verifychat.settings import settings


def get_queue() -> Queue:
    # RQ pickles job payloads, so this connection must not decode responses
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.RQ_QUEUE_NAME, connection=conn)


def _intervals(raw: str) -> List[int]:
    out = [int(x) for x in raw.split(",") if x.strip()]
    return out or [5]


def ban_retry() -> Retry:
    """Retry policy for device-ban jobs (bridge outages are usually short)."""
    return Retry(max=settings.BAN_JOB_RETRIES, interval=_intervals(settings.BAN_JOB_RETRY_INTERVALS))
