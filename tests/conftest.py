import threading
from unittest.mock import patch

import pytest

from verifychat.auth.ban_gate import LocalBanGate
from verifychat.auth.bridge import AuthBridge, AuthIdentity
from verifychat.core.engine import FlowEngine
from verifychat.errors import AuthError
from verifychat.store.identity_repo import LocalIdentityMemory
from verifychat.store.step_repo import parse_steps


class FakeBridge(AuthBridge):
    """In-memory Authentication Bridge that records every call."""

    def __init__(self):
        self.google_email = "alice@example.com"
        self.google_error = None
        self.passwords = {"alice@example.com": "hunter2"}
        self.calls = []

    async def sign_in_with_google(self, credential=None):
        self.calls.append(("google", credential))
        if self.google_error is not None:
            raise self.google_error
        return AuthIdentity(self.google_email)

    async def sign_in_with_password(self, email, password):
        self.calls.append(("password", email))
        if self.passwords.get(email) != password:
            raise AuthError("invalid email or password", code="invalid_credentials")

    async def sign_out(self):
        self.calls.append(("sign_out",))

    async def ban_device(self, device_id, reason):
        self.calls.append(("ban", device_id, reason))


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def gate():
    return LocalBanGate()


@pytest.fixture
def identity():
    return LocalIdentityMemory()


@pytest.fixture
def make_engine(bridge, gate, identity):
    def _make(raw_steps, inline=True):
        steps, problems = parse_steps(raw_steps)
        assert not problems, problems
        return FlowEngine(steps, bridge, gate, identity, inline_auto_advance=inline)
    return _make


class LockRedis:
    """Just enough of SET NX PX and EVAL for the session lock, safe across worker threads."""

    def __init__(self):
        self.keys = {}
        self.ttls = {}
        self._mu = threading.Lock()

    def set(self, key, value, px=None, nx=False):
        with self._mu:
            if nx and key in self.keys:
                return None
            self.keys[key] = value
            self.ttls[key] = px
            return True

    def eval(self, script, numkeys, key, token):
        with self._mu:
            if self.keys.get(key) == token:
                del self.keys[key]
                return 1
            return 0


@pytest.fixture
def lock_redis():
    fake = LockRedis()
    with patch("verifychat.utils.lock.get_redis", return_value=fake):
        yield fake
