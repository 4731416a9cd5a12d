"""
Authentication Bridge client.

The bridge is an external HTTP service that fronts the identity provider
(Google OAuth, email/password) and the device ban registry. Every failure,
transport or HTTP, is raised as AuthError so the engine has a single thing to
catch.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from verifychat.errors import AuthError
from verifychat.observability.logging import log
from verifychat.settings import settings


@dataclass(frozen=True)
class AuthIdentity:
    email: str


class AuthBridge:
    """Contract consumed by the login sub-flow and the ban gate."""

    async def sign_in_with_google(self, credential: Optional[str] = None) -> AuthIdentity:
        raise NotImplementedError

    async def sign_in_with_password(self, email: str, password: str) -> None:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError

    async def ban_device(self, device_id: str, reason: str) -> None:
        raise NotImplementedError


def _error_from_response(resp: httpx.Response, default_code: str) -> AuthError:
    code = default_code
    message = f"bridge returned {resp.status_code}"
    try:
        body = resp.json()
        if isinstance(body, dict):
            code = str(body.get("code") or code)
            message = str(body.get("message") or body.get("detail") or message)
    except ValueError:
        pass
    return AuthError(message, code=code)


class HttpAuthBridge(AuthBridge):
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.AUTH_BRIDGE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.AUTH_BRIDGE_TIMEOUT_SEC
        self._client = client

    async def _post(self, path: str, payload: dict, default_code: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            log("auth_bridge_unreachable", path=path, errorType=type(e).__name__, error=str(e)[:300])
            raise AuthError("authentication service unavailable", code="unavailable") from e

        if not (200 <= resp.status_code < 300):
            raise _error_from_response(resp, default_code)
        return resp

    async def sign_in_with_google(self, credential: Optional[str] = None) -> AuthIdentity:
        resp = await self._post("/auth/google", {"credential": credential}, "google_failed")
        try:
            email = (resp.json() or {}).get("email")
        except ValueError:
            email = None
        if not email:
            raise AuthError("provider did not return an email", code="no_email")
        return AuthIdentity(email=str(email))

    async def sign_in_with_password(self, email: str, password: str) -> None:
        await self._post("/auth/password", {"email": email, "password": password}, "invalid_credentials")

    async def sign_out(self) -> None:
        await self._post("/auth/sign-out", {}, "sign_out_failed")

    async def ban_device(self, device_id: str, reason: str) -> None:
        await self._post("/devices/ban", {"deviceId": device_id, "reason": reason}, "ban_failed")


def post_device_ban(device_id: str, reason: str) -> int:
    """Blocking variant of ban_device for worker processes. Returns the HTTP status."""
    url = f"{settings.AUTH_BRIDGE_URL.rstrip('/')}/devices/ban"
    with httpx.Client(timeout=settings.AUTH_BRIDGE_TIMEOUT_SEC) as client:
        resp = client.post(url, json={"deviceId": device_id, "reason": reason})
    if not (200 <= resp.status_code < 300):
        raise _error_from_response(resp, "ban_failed")
    return resp.status_code
