import hmac

from fastapi import Header, HTTPException
from verifychat.settings import settings


def _key_matches(given: str, expected: str) -> bool:
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """
    Chat clients: the key is optional.
    - API_KEY empty: every request is allowed.
    - API_KEY set: x-api-key must match.
    """
    if not settings.API_KEY:
        return
    if not _key_matches(x_api_key, settings.API_KEY):
        raise HTTPException(status_code=401, detail="Invalid API key")


def require_admin(x_admin_key: str = Header(default="", alias="x-admin-key")):
    """Flow authors and operators. With RBAC on and no key configured, nobody gets in."""
    if not settings.ADMIN_RBAC_ENABLED:
        return
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin access disabled (no key configured)")
    if not _key_matches(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=403, detail="Invalid admin key")
