"""
Failure taxonomy for the verification flow.

None of these are meant to escape a conversation turn: each one is caught at
the seam where it is raised and turned into a bot message, a failure outcome
or a terminal session state.
"""
from typing import List, Optional


class VerifyChatError(Exception):
    """Base class for flow errors."""


class ValidationError(VerifyChatError):
    """An authored step is malformed. Raised at load time; the step is skipped."""

    def __init__(self, step_id: Optional[str], problems: List[str]):
        self.step_id = step_id
        self.problems = list(problems)
        label = step_id or "<no id>"
        super().__init__(f"step {label}: " + "; ".join(self.problems))


class AuthError(VerifyChatError):
    """An Authentication Bridge call failed or was rejected."""

    def __init__(self, message: str, code: str = "auth_failed"):
        self.code = code
        super().__init__(message)


class UnauthorizedIdentity(VerifyChatError):
    """Sign-in succeeded but the identity is not on the step's allow-list."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"identity not allowed: {email}")


class DanglingReference(VerifyChatError):
    """A step points at a target id that does not exist."""

    def __init__(self, step_id: str, target_id: str):
        self.step_id = step_id
        self.target_id = target_id
        super().__init__(f"step {step_id} references missing step {target_id}")


class BanInvocationError(VerifyChatError):
    """The Device Ban Gate call itself failed."""


class SessionBusy(VerifyChatError):
    """Another turn for the same session still holds the session lock."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"session {session_id} is busy")
