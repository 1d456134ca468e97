"""
Deterministic pattern matcher for rootpilot.

Resolves common instructions against the extracted on-screen elements without
calling the language model. Rules are pure functions of
(normalized_instruction, elements) returning an ActionScript or None, tried
in a fixed order; the first one that produces a script wins.

Order:
    1. type-then-confirm   "type hello and send"
    2. send-message        "send hello" / "message hello"
    3. click               "click settings" / "tap play" / "press search"
    4. search              "search pizza" / "search for pizza"
    5. navigation          "go back" / "go home" / "press enter"
    6. open-in-app         "open settings" (tap a visible element)
    7. type-only           "type hello"

Taps only ever use the coordinates of supplied elements.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from rootpilot.core.logger import get_logger
from rootpilot.core.normalize import normalize_instruction
from rootpilot.core.script import (
    KEYCODE_BACK,
    KEYCODE_ENTER,
    KEYCODE_HOME,
    ActionScript,
    KeyEvent,
    Tap,
    TypeText,
    Wait,
    encode_text,
)
from rootpilot.vision.ui_elements import UIElement, find_by_resource_id, find_by_text


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    script: Optional[ActionScript] = None
    rule: Optional[str] = None


NO_MATCH = MatchResult(matched=False)

# Step timings (ms)
TYPE_SETTLE_MS = 500
SEARCH_OPEN_MS = 1000

INPUT_ID_FRAGMENTS = ("entry", "edit", "input", "text", "message", "search")

_TYPE_AND_SEND_RE = re.compile(r"type\s+(.+?)\s+and\s+(send|click send)")
_SEND_MESSAGE_RE = re.compile(r"(send message|message|send)\s+(.+)")
_CLICK_RE = re.compile(r"(click|tap|press)\s+(.+)")
_SEARCH_RE = re.compile(r"search\s+(for\s+)?(.+)")
_OPEN_RE = re.compile(r"open\s+(.+)")
_TYPE_RE = re.compile(r"type\s+(.+)")

_NAVIGATION: Tuple[Tuple[re.Pattern, int], ...] = (
    (re.compile(r"go back|press back|back button"), KEYCODE_BACK),
    (re.compile(r"go home|home button|press home"), KEYCODE_HOME),
    (re.compile(r"press enter|hit enter"), KEYCODE_ENTER),
)


# ============================================================================
# Element heuristics
# ============================================================================

def find_input_field(elements: Sequence[UIElement]) -> Optional[UIElement]:
    for fragment in INPUT_ID_FRAGMENTS:
        el = find_by_resource_id(elements, fragment)
        if el is not None:
            return el
    return None


def find_send_button(elements: Sequence[UIElement]) -> Optional[UIElement]:
    return find_by_resource_id(elements, "send") or find_by_text(elements, "send")


def find_search_element(elements: Sequence[UIElement]) -> Optional[UIElement]:
    return find_by_resource_id(elements, "search") or find_by_text(elements, "search")


def _type_and_confirm(text: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    field = find_input_field(elements)
    send = find_send_button(elements)
    if field is None or send is None:
        return None
    return ActionScript.of(
        Tap(field.center_x, field.center_y),
        Wait(TYPE_SETTLE_MS),
        TypeText(encode_text(text)),
        Wait(TYPE_SETTLE_MS),
        Tap(send.center_x, send.center_y),
    )


def _tap(element: Optional[UIElement]) -> Optional[ActionScript]:
    if element is None:
        return None
    return ActionScript.of(Tap(element.center_x, element.center_y))


# ============================================================================
# Rules
# ============================================================================

def match_type_and_send(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    m = _TYPE_AND_SEND_RE.search(instruction)
    if not m:
        return None
    return _type_and_confirm(m.group(1), elements)


def match_send_message(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    m = _SEND_MESSAGE_RE.search(instruction)
    if not m:
        return None
    return _type_and_confirm(m.group(2), elements)


def match_click(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    m = _CLICK_RE.search(instruction)
    if not m:
        return None
    return _tap(find_by_text(elements, m.group(2)))


def match_search(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    m = _SEARCH_RE.search(instruction)
    if not m:
        return None
    target = find_search_element(elements)
    if target is None:
        return None
    return ActionScript.of(
        Tap(target.center_x, target.center_y),
        Wait(SEARCH_OPEN_MS),
        TypeText(encode_text(m.group(2))),
        Wait(TYPE_SETTLE_MS),
        KeyEvent(KEYCODE_ENTER),
    )


def match_navigation(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    for pattern, keycode in _NAVIGATION:
        if pattern.search(instruction):
            return ActionScript.of(KeyEvent(keycode))
    return None


def match_open_in_app(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    m = _OPEN_RE.search(instruction)
    if not m:
        return None
    return _tap(find_by_text(elements, m.group(1)))


def match_type_only(instruction: str, elements: Sequence[UIElement]) -> Optional[ActionScript]:
    m = _TYPE_RE.search(instruction)
    if not m:
        return None
    field = find_input_field(elements)
    if field is None:
        return None
    return ActionScript.of(
        Tap(field.center_x, field.center_y),
        Wait(TYPE_SETTLE_MS),
        TypeText(encode_text(m.group(1))),
    )


Rule = Callable[[str, Sequence[UIElement]], Optional[ActionScript]]

RULES: Tuple[Tuple[str, Rule], ...] = (
    ("type_and_send", match_type_and_send),
    ("send_message", match_send_message),
    ("click", match_click),
    ("search", match_search),
    ("navigation", match_navigation),
    ("open_in_app", match_open_in_app),
    ("type_only", match_type_only),
)


def try_match(instruction: str, elements: Optional[List[UIElement]] = None, context=None,
              logger=None) -> MatchResult:
    """
    Run the rule chain over a normalized instruction.

    The context is accepted for parity with the generative fallback; no rule
    depends on it.
    """
    normalized = normalize_instruction(instruction)
    if not normalized:
        return NO_MATCH
    elements = elements or []

    for name, rule in RULES:
        script = rule(normalized, elements)
        if script:
            (logger or get_logger()).debug(f"[PATTERN] '{normalized}' matched rule {name}")
            return MatchResult(matched=True, script=script, rule=name)

    (logger or get_logger()).debug(f"[PATTERN] no rule matched '{normalized}'")
    return NO_MATCH
