"""
Failure policy evaluation.

Decides what a wrong answer costs. Mutates only `session.attempts`.

Note the counting asymmetry: a step without onFailureGoTo retries forever and
never touches the counter, while WARN_RETRY and the login sub-flow count every
failure towards a ban.
"""
from dataclasses import dataclass
from typing import Optional

from verifychat.settings import settings
from verifychat.store.models import BanDevice, RedirectTo, StepDefinition, WarnRetry

RETRY = "RETRY"
REDIRECT = "REDIRECT"
WARN = "WARN"
BAN = "BAN"

MAX_ATTEMPTS_REASON = "max attempts exceeded"
BAN_POLICY_REASON = "ban policy"
LOGIN_FAILURES_REASON = "login failures exceeded"


@dataclass(frozen=True)
class Verdict:
    action: str
    target: Optional[str] = None
    message: str = ""
    reason: str = ""


def evaluate(step: StepDefinition, session) -> Verdict:
    policy = step.onFailureGoTo

    if isinstance(policy, BanDevice):
        return Verdict(BAN, message=step.warningText, reason=BAN_POLICY_REASON)

    if isinstance(policy, WarnRetry):
        session.attempts += 1
        if step.maxAttempts and session.attempts >= step.maxAttempts:
            return Verdict(BAN, message=step.warningText, reason=MAX_ATTEMPTS_REASON)
        return Verdict(WARN, message=step.warningText)

    if isinstance(policy, RedirectTo):
        session.attempts = 0
        return Verdict(REDIRECT, target=policy.target)

    return Verdict(RETRY)


def evaluate_login_failure(session, warning_text: str = "", threshold: Optional[int] = None) -> Verdict:
    """Same counting as WARN_RETRY with a fixed threshold (LOGIN_BAN_THRESHOLD, default 2)."""
    limit = threshold if threshold is not None else settings.LOGIN_BAN_THRESHOLD
    session.attempts += 1
    if session.attempts >= limit:
        return Verdict(BAN, message=warning_text, reason=LOGIN_FAILURES_REASON)
    return Verdict(WARN, message=warning_text)
