import json
from unittest.mock import MagicMock, patch

from verifychat.settings import settings
from verifychat.store.models import Session
from verifychat.store.session_repo import _filter_session_kwargs, delete_session, load_session, save_session


def test_filter_session_kwargs_drops_unknown():
    data = {"sessionId": "s1", "legacy_junk": 1, "attempts": 2}
    assert _filter_session_kwargs(data) == {"sessionId": "s1", "attempts": 2}


@patch("verifychat.store.session_repo.get_redis")
def test_load_missing_session_is_fresh(mock_get_redis):
    mock_get_redis.return_value.get.return_value = None
    s = load_session("s1")
    assert s.sessionId == "s1"
    assert s.currentStepId is None
    assert s.transcript == []


@patch("verifychat.store.session_repo.get_redis")
def test_save_then_load_round_trip(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis

    s = Session(sessionId="s1", deviceId="dev-1", generation=2, currentStepId="S3",
                variables={"nickname": "Addi"}, attempts=1, authSubState="awaiting_password",
                pendingAuthEmail="a@b.c")
    s.transcript.append({"sender": "bot", "text": "hi", "timestamp": 1})
    save_session(s)

    args, kwargs = mock_redis.set.call_args
    assert args[0] == "session:s1"
    assert kwargs["ex"] == settings.SESSION_TTL_SEC

    mock_redis.get.return_value = args[1]
    loaded = load_session("s1")
    assert loaded == s


@patch("verifychat.store.session_repo.get_redis")
def test_load_tolerates_old_records(mock_get_redis):
    mock_get_redis.return_value.get.return_value = json.dumps({
        "sessionId": "s1", "currentStepId": "S2", "variables": None, "transcript": None,
        "currentStepIndex": 4,
    })
    s = load_session("s1")
    assert s.currentStepId == "S2"
    assert s.variables == {} and s.transcript == []


@patch("verifychat.store.session_repo.get_redis")
def test_save_without_ttl(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis
    with patch.object(settings, "SESSION_TTL_SEC", 0):
        save_session(Session(sessionId="s1"))
    assert "ex" not in mock_redis.set.call_args.kwargs


@patch("verifychat.store.session_repo.get_redis")
def test_delete_session(mock_get_redis):
    delete_session("s1")
    mock_get_redis.return_value.delete.assert_called_with("session:s1")
