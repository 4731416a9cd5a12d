from verifychat.core.policy import (
    BAN, MAX_ATTEMPTS_REASON, REDIRECT, RETRY, WARN,
    evaluate, evaluate_login_failure,
)
from verifychat.store.models import BanDevice, RedirectTo, Session, StepDefinition, WarnRetry


def test_no_policy_retries_without_counting():
    s = Session(sessionId="s", attempts=0)
    step = StepDefinition(id="S1")
    for _ in range(10):
        assert evaluate(step, s).action == RETRY
    assert s.attempts == 0


def test_redirect_resets_attempts():
    s = Session(sessionId="s", attempts=2)
    v = evaluate(StepDefinition(id="S1", onFailureGoTo=RedirectTo("S7")), s)
    assert v.action == REDIRECT and v.target == "S7"
    assert s.attempts == 0


def test_ban_device_bans_first_failure():
    s = Session(sessionId="s")
    v = evaluate(StepDefinition(id="S1", onFailureGoTo=BanDevice(), warningText="Bye"), s)
    assert v.action == BAN and v.message == "Bye"


def test_warn_retry_bans_on_exactly_the_third_failure():
    s = Session(sessionId="s")
    step = StepDefinition(id="S1", onFailureGoTo=WarnRetry(), maxAttempts=3, warningText="Careful")
    assert evaluate(step, s).action == WARN
    assert evaluate(step, s).action == WARN
    v = evaluate(step, s)
    assert v.action == BAN
    assert v.reason == MAX_ATTEMPTS_REASON
    assert s.attempts == 3


def test_warn_retry_without_max_never_bans():
    s = Session(sessionId="s")
    step = StepDefinition(id="S1", onFailureGoTo=WarnRetry())
    for _ in range(25):
        assert evaluate(step, s).action == WARN
    assert s.attempts == 25


def test_login_failure_threshold():
    s = Session(sessionId="s")
    assert evaluate_login_failure(s, "no").action == WARN
    assert evaluate_login_failure(s, "no").action == BAN


def test_login_failure_custom_threshold():
    s = Session(sessionId="s")
    for _ in range(3):
        assert evaluate_login_failure(s, threshold=4).action == WARN
    assert evaluate_login_failure(s, threshold=4).action == BAN
