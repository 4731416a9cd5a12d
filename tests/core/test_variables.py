from verifychat.core.variables import capture, interpolate


def test_interpolate_known_tokens():
    assert interpolate("Nice, {nickname}!", {"nickname": "its Addi"}) == "Nice, its Addi!"


def test_interpolate_leaves_unknown_tokens():
    assert interpolate("Hi {nickname}, {city}", {"nickname": "Addi"}) == "Hi Addi, {city}"


def test_interpolate_ignores_non_identifier_braces():
    assert interpolate('{"a": 1} {x}', {"x": "y"}) == '{"a": 1} y'


def test_interpolate_empty_template():
    assert interpolate("", {"a": "b"}) == ""
    assert interpolate(None, {}) == ""


def test_capture_returns_new_mapping():
    before = {"a": "1"}
    after = capture(before, "b", "2")
    assert after == {"a": "1", "b": "2"}
    assert before == {"a": "1"}


def test_capture_without_name_is_noop():
    assert capture({"a": "1"}, None, "x") == {"a": "1"}


def test_capture_overwrites():
    assert capture({"a": "1"}, "a", "2") == {"a": "2"}
