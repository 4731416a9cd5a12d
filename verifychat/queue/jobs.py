from verifychat.auth.bridge import post_device_ban
from verifychat.observability.logging import log

def ban_device_job(device_id: str, reason: str):
    """
    Background job that reports a ban decision to the Authentication Bridge.
    Raises on failure so RQ can retry it.
    """
    try:
        log(event="ban_job_start", deviceId=device_id, reason=reason)
        status = post_device_ban(device_id, reason)
        log(event="ban_job_done", deviceId=device_id, statusCode=status)
    except Exception as e:
        log(event="ban_job_exception", deviceId=device_id, errorType=type(e).__name__, error=str(e)[:500])
        raise
