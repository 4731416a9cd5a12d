import json
import time
from verifychat.settings import settings

# Fields that may carry user answers or PII (redacted when ENABLE_PII_REDACTION is on)
SENSITIVE_KEYS = {"text", "input", "reply", "prompt"}
# Identity fields keep their domain so sign-in problems stay diagnosable
EMAIL_KEYS = {"email", "pendingAuthEmail"}
# Never logged in clear, whatever the redaction setting
SECRET_KEYS = {"password", "credential"}


def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    return v


def mask_email(v):
    if not isinstance(v, str) or "@" not in v:
        return _redact_value(v)
    local, _, domain = v.rpartition("@")
    return f"{local[:1]}***@{domain}"


def _clean(k, v, redact: bool):
    if k in SECRET_KEYS:
        return _redact_value(v)
    if not redact:
        return v
    if k in SENSITIVE_KEYS:
        return _redact_value(v)
    if k in EMAIL_KEYS:
        return mask_email(v)
    if isinstance(v, dict):
        return {sk: _clean(sk, sv, redact) for sk, sv in v.items()}
    return v


def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}
    redact = settings.ENABLE_PII_REDACTION
    payload.update({k: _clean(k, v, redact) for k, v in fields.items()})
    print(json.dumps(payload, ensure_ascii=False, default=str))
