"""Tests for instruction normalization and action scripts.

Pure Python, no device required.

Run with: python -m pytest tests/test_script.py -v
"""

import pytest

from rootpilot.core.errors import ScriptParseError
from rootpilot.core.normalize import normalize_instruction, words
from rootpilot.core.script import (
    ActionScript,
    KeyEvent,
    Launch,
    Tap,
    TypeText,
    Wait,
    encode_text,
    parse_step,
)


# ============================================================================
# NORMALIZATION
# ============================================================================

@pytest.mark.parametrize("raw, expected", [
    ("Go Back!", "go back"),
    ("  search   for\tpizza ", "search for pizza"),
    ("Type 'hi; rm -rf /' and send", "type hi rm rf and send"),
    ("", ""),
    ("!!!", ""),
    ("Open YouTube 2", "open youtube 2"),
])
def test_normalize_instruction(raw, expected):
    assert normalize_instruction(raw) == expected


@pytest.mark.parametrize("raw", [
    "Go Back!", "  MIXED   case\n text ", "émoji 🎉 text", "a-b_c.d", "",
])
def test_normalize_is_idempotent(raw):
    once = normalize_instruction(raw)
    assert normalize_instruction(once) == once


def test_words_of_empty_text():
    assert words("") == []
    assert words("go back") == ["go", "back"]


# ============================================================================
# STEPS
# ============================================================================

def test_step_lines():
    assert Tap(540, 200).to_line() == "input tap 540 200"
    assert TypeText("hello%sworld").to_line() == "input text 'hello%sworld'"
    assert KeyEvent(66).to_line() == "input keyevent 66"
    assert Wait(1000).to_line() == "sleep 1"
    assert Wait(500).to_line() == "sleep 0.5"
    assert Launch("-n com.whatsapp/.HomeActivity").to_line() == "am start -n com.whatsapp/.HomeActivity"


def test_encode_text_replaces_internal_spaces():
    assert encode_text("hello  big world") == "hello%sbig%sworld"
    assert encode_text("  pizza ") == "pizza"


@pytest.mark.parametrize("line, step", [
    ("input tap 10 20", Tap(10, 20)),
    ("input text 'a%sb'", TypeText("a%sb")),
    ('input text "hello"', TypeText("hello")),
    ("input text plain", TypeText("plain")),
    ("input keyevent 4", KeyEvent(4)),
    ("input keyevent KEYCODE_BACK", KeyEvent("KEYCODE_BACK")),
    ("sleep 1", Wait(1000)),
    ("sleep 0.5", Wait(500)),
    ("am start -n com.android.settings/.Settings", Launch("-n com.android.settings/.Settings")),
])
def test_parse_step(line, step):
    assert parse_step(line) == step


@pytest.mark.parametrize("line", [
    "input tap abc def",
    "input swipe 1 2 3 4",
    "reboot",
    "sleep forever",
    "",
])
def test_parse_step_rejects_illegal_lines(line):
    with pytest.raises(ScriptParseError):
        parse_step(line)


def test_script_parse_error_is_a_value_error():
    with pytest.raises(ValueError):
        ActionScript.parse("input tap 1 2\nrm -rf /")


# ============================================================================
# SCRIPTS
# ============================================================================

def test_script_serialize_and_parse():
    script = ActionScript.of(Tap(540, 200), Wait(1000), TypeText("pizza"), Wait(500), KeyEvent(66))
    text = script.serialize()

    assert text.splitlines() == [
        "input tap 540 200",
        "sleep 1",
        "input text 'pizza'",
        "sleep 0.5",
        "input keyevent 66",
    ]
    assert ActionScript.parse(text) == script


def test_script_parse_skips_blank_lines():
    script = ActionScript.parse("\ninput keyevent 4\n\n  \n")
    assert list(script) == [KeyEvent(4)]


def test_empty_script_is_falsy():
    assert not ActionScript()
    assert len(ActionScript.of(KeyEvent(3))) == 1
    assert str(ActionScript.of(KeyEvent(3))) == "input keyevent 3"


# ============================================================================
# UNSAFE STEPS
# ============================================================================

@pytest.mark.parametrize("text", ["it's", "a\nb", "x'&id&'"])
def test_type_text_refuses_quotes_and_line_breaks(text):
    with pytest.raises(ScriptParseError):
        TypeText(text)


@pytest.mark.parametrize("args", [
    "-n a/.B&id",
    "-n a/.B;id",
    "-d 'unterminated",
    "-d \"$(id)\"",
    "",
])
def test_launch_refuses_unquoted_metacharacters(args):
    with pytest.raises(ScriptParseError):
        Launch(args)


def test_launch_accepts_quoted_tokens():
    args = "-a android.intent.action.SEARCH --es query 'lo fi & chill' -e x \"y z\""
    assert Launch(args).to_line() == f"am start {args}"
