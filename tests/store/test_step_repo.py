import json
from unittest.mock import MagicMock, patch

import pytest

from verifychat.errors import ValidationError
from verifychat.settings import settings
from verifychat.store.models import BanDevice, MatchType, RedirectTo, StepKind, WarnRetry
from verifychat.store.step_repo import load_steps, parse_step, parse_steps, save_raw_steps, validate_flow


def test_parse_full_step():
    step = parse_step({
        "id": "S2", "order": 2, "kind": "text", "prompt": "Name?", "inputRequired": True,
        "expectedAnswers": "its,im", "matchType": "exact", "captureAs": "nickname",
        "successReply": "Nice, {nickname}!", "onFailureGoTo": "WARN_RETRY", "maxAttempts": 3,
        "warningText": "Careful",
    })
    assert step.kind == StepKind.TEXT
    assert step.matchType == MatchType.EXACT
    assert step.onFailureGoTo == WarnRetry()
    assert step.maxAttempts == 3
    assert step.to_dict()["onFailureGoTo"] == "WARN_RETRY"


def test_parse_legacy_field_names():
    step = parse_step({
        "id": "S1", "type": "text", "question": "Code?", "expectedAnswer": ["a", "b"],
        "variableName": "code", "nextStepId": "S3", "failureNextStepId": "S4",
    })
    assert step.prompt == "Code?"
    assert step.expectedAnswers == "a,b"
    assert step.captureAs == "code"
    assert step.onSuccessGoTo == "S3"
    assert step.onFailureGoTo == RedirectTo("S4")
    assert step.inputRequired is True


def test_parse_legacy_media_and_link():
    img = parse_step({"id": "I", "type": "image", "mediaUrl": "https://x/a.png"})
    link = parse_step({"id": "K", "kind": "link", "linkUrl": "https://x", "linkText": "Go"})
    assert img.media == "https://x/a.png"
    assert img.inputRequired is False
    assert link.link.url == "https://x" and link.link.label == "Go"


def test_ban_device_sentinel():
    assert parse_step({"id": "S1", "inputRequired": False, "onFailureGoTo": "BAN_DEVICE"}).onFailureGoTo == BanDevice()


@pytest.mark.parametrize("raw, fragment", [
    ({"kind": "text"}, "id is required"),
    ({"id": "BAN_DEVICE", "inputRequired": False}, "reserved"),
    ({"id": "S1", "kind": "video"}, "unknown kind"),
    ({"id": "S1", "inputRequired": True}, "expectedAnswers required"),
    ({"id": "S1", "kind": "image"}, "needs media"),
    ({"id": "S1", "kind": "link"}, "link.url"),
    ({"id": "S1", "kind": "options", "options": ["only"]}, "at least two"),
    ({"id": "S1", "inputRequired": False, "maxAttempts": 0}, "maxAttempts"),
    ({"id": "S1", "inputRequired": False, "matchType": "fuzzy"}, "matchType"),
])
def test_invalid_steps_raise(raw, fragment):
    with pytest.raises(ValidationError) as exc:
        parse_step(raw)
    assert fragment in str(exc.value)


def test_login_and_end_never_require_input():
    assert parse_step({"id": "L", "kind": "login", "inputRequired": True}).inputRequired is False
    assert parse_step({"id": "E", "kind": "end"}).inputRequired is False


def test_parse_steps_skips_bad_and_duplicate_steps():
    steps, problems = parse_steps([
        {"id": "S1", "inputRequired": False},
        {"id": "S1", "inputRequired": False},
        {"id": "S2", "kind": "image"},
        "nonsense",
        {"id": "S3", "kind": "end"},
    ])
    assert [s.id for s in steps] == ["S1", "S3"]
    assert [p.step_id for p in problems] == ["S1", "S2", None]
    assert steps[1].order == 4


def test_parse_steps_requires_list():
    steps, problems = parse_steps({"id": "S1"})
    assert steps == [] and len(problems) == 1


def test_validate_flow_reports_dangling_references():
    steps, _ = parse_steps([
        {"id": "S1", "inputRequired": False, "onSuccessGoTo": "S9"},
        {"id": "S2", "inputRequired": True, "expectedAnswers": "x", "onFailureGoTo": "S8"},
        {"id": "S3", "kind": "options", "options": ["A", "B"],
         "branches": [{"label": "A", "targetStepId": "S7"}, {"label": "C", "targetStepId": "S1"}]},
    ])
    warnings = validate_flow(steps)
    assert any("S9" in w for w in warnings)
    assert any("S8" in w for w in warnings)
    assert any("S7" in w for w in warnings)
    assert any("not one of the options" in w for w in warnings)


def test_load_steps_from_file(tmp_path):
    path = tmp_path / "flow.json"
    path.write_text(json.dumps([{"id": "S1", "inputRequired": False}, {"id": "bad", "kind": "gif"}]))
    with patch.object(settings, "STEPS_FILE", str(path)), patch("verifychat.store.step_repo.log") as mock_log:
        steps = load_steps()
    assert [s.id for s in steps] == ["S1"]
    assert mock_log.call_args.args[0] == "steps_invalid"


@patch("verifychat.store.step_repo.get_redis")
def test_load_and_save_steps_in_redis(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis
    raw = [{"id": "S1", "kind": "end"}]

    with patch.object(settings, "STEPS_FILE", ""):
        save_raw_steps(raw)
        key, payload = mock_redis.set.call_args.args
        assert key == settings.STEPS_KEY
        mock_redis.get.return_value = payload
        steps = load_steps()
    assert [s.id for s in steps] == ["S1"]


@patch("verifychat.store.step_repo.get_redis")
def test_load_steps_empty_store(mock_get_redis):
    mock_get_redis.return_value.get.return_value = None
    with patch.object(settings, "STEPS_FILE", ""):
        assert load_steps() == []
