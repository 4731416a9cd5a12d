"""
Flow Metrics
------------
Lightweight Redis counters for the verification flow and a single snapshot
function consumed by /admin/metrics. Missing keys (first boot) read as zero.
"""
from __future__ import annotations
import time
from typing import List

from verifychat.store.redis_conn import get_redis

# Keys (stable across restarts)
K_STARTED = "metrics:flow:started"            # INCR
K_RESTARTED = "metrics:flow:restarted"        # INCR
K_COMPLETED = "metrics:flow:completed"        # INCR
K_BANNED = "metrics:flow:banned"              # INCR
K_WARNINGS = "metrics:flow:warnings"          # INCR
K_TURN_LAT = "metrics:turn:latencies"         # LPUSH ms
K_BANNED_RECENT = "metrics:bans:recent"       # LPUSH deviceId (trim window)

_MAX_SAMPLES = 500


def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])


def increment(key: str, n: int = 1) -> None:
    r = get_redis()
    r.incr(key, n)


def record_turn_latency(ms: int) -> None:
    try:
        ms = int(ms)
    except (TypeError, ValueError):
        return
    r = get_redis()
    r.lpush(K_TURN_LAT, ms)
    r.ltrim(K_TURN_LAT, 0, _MAX_SAMPLES - 1)


def record_ban(device_id: str) -> None:
    r = get_redis()
    r.incr(K_BANNED, 1)
    if device_id:
        r.lpush(K_BANNED_RECENT, device_id)
        r.ltrim(K_BANNED_RECENT, 0, 49)  # keep last 50


def _read_latencies() -> List[float]:
    r = get_redis()
    out: List[float] = []
    for x in r.lrange(K_TURN_LAT, 0, _MAX_SAMPLES - 1) or []:
        try:
            out.append(float(x))
        except (TypeError, ValueError):
            continue
    return out


def get_flow_snapshot() -> dict:
    r = get_redis()
    started = int(r.get(K_STARTED) or 0)
    completed = int(r.get(K_COMPLETED) or 0)
    banned = int(r.get(K_BANNED) or 0)
    lat = _read_latencies()
    return {
        "sessions_started": started,
        "sessions_restarted": int(r.get(K_RESTARTED) or 0),
        "sessions_completed": completed,
        "sessions_banned": banned,
        "warnings_raised": int(r.get(K_WARNINGS) or 0),
        "completion_rate": round((completed / started) * 100.0, 3) if started else 0.0,
        "ban_rate": round((banned / started) * 100.0, 3) if started else 0.0,
        "p50_turn_latency_ms": _percentile(lat, 0.50),
        "p95_turn_latency_ms": _percentile(lat, 0.95),
        "recent_banned_devices": list(r.lrange(K_BANNED_RECENT, 0, 19) or []),
        "snapshot_at": int(time.time()),
    }
