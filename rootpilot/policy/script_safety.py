"""rootpilot.policy.script_safety

Validation of language-model responses before they become action scripts.

Two independent filters:
- ALLOW-LIST: only lines starting with a permitted verb are retained. The
  UI variant permits tap/text/keyevent/sleep; the launch variant also
  permits `am start`.
- DENY-LIST: any line of the cleaned response containing a dangerous token
  rejects the whole response, even lines the allow-list would drop.

A response is either accepted in full or rejected in full; nothing is
partially executed. Retained lines must also parse as steps, and the step
grammar keeps typed text inside one single-quoted word and `am start`
arguments to plain or quoted tokens.
"""

from __future__ import annotations

import re
from typing import List, Literal, Optional, Tuple

from rootpilot.core.errors import GenerationRejected, ScriptParseError
from rootpilot.core.script import ActionScript, parse_step

Variant = Literal["ui", "launch"]


# ============================================================================
# ALLOW-LIST
# ============================================================================

UI_ALLOWED_PREFIXES: Tuple[str, ...] = (
    "input tap ",
    "input text ",
    "input keyevent ",
    "sleep ",
)

LAUNCH_ALLOWED_PREFIXES: Tuple[str, ...] = UI_ALLOWED_PREFIXES + (
    "am start ",
)

# ============================================================================
# DENY-LIST
# ============================================================================

# Destructive commands, device state changes, privilege escalation and shell
# metacharacters that could chain a second command onto an allowed one.
DENIED_TOKENS: Tuple[str, ...] = (
    "rm ",
    "rmdir",
    "dd ",
    "format",
    "flash",
    "fastboot",
    "recovery",
    "wipe",
    "reboot",
    "shutdown",
    "chmod 777",
    "su -c",
    ">",
    "<",
    ":/ ",
    "&&",
    "||",
    ";",
    "|",
    "`",
    "$(",
    "${",
    "$'",
    "\\n",
)

_FENCE_RE = re.compile(r"```[a-z]*\n?")
_LABEL_RE = re.compile(r"^(?:Commands?|Shell command):\s*", re.IGNORECASE)


def allowed_prefixes(variant: Variant) -> Tuple[str, ...]:
    if variant == "launch":
        return LAUNCH_ALLOWED_PREFIXES
    return UI_ALLOWED_PREFIXES


def clean_response(text: Optional[str]) -> str:
    """Strip code fences and a leading 'Commands:' style label."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    cleaned = _LABEL_RE.sub("", cleaned)
    return cleaned.strip()


def find_denied_token(text: str) -> Optional[Tuple[str, str]]:
    """
    Scan every line for a denied token (case-insensitive).

    Returns:
        (token, line) for the first hit, or None
    """
    for raw in (text or "").splitlines():
        line = raw.strip()
        lowered = line.lower()
        for token in DENIED_TOKENS:
            if token in lowered:
                return token, line
    return None


def retain_allowed_lines(text: str, variant: Variant = "ui") -> List[str]:
    """Lines that start with an allow-listed verb, in order."""
    prefixes = allowed_prefixes(variant)
    retained = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if line and line.startswith(prefixes):
            retained.append(line)
    return retained


def validate_response(response: str, variant: Variant = "ui") -> ActionScript:
    """
    Turn a raw model response into an ActionScript or reject it.

    Raises:
        GenerationRejected: on a denied token anywhere, no retained lines, or
            a retained line that is not a legal step
    """
    cleaned = clean_response(response)

    hit = find_denied_token(cleaned)
    if hit is not None:
        token, line = hit
        raise GenerationRejected(
            f"Response contains denied token {token!r} in line {line!r}",
            response=response,
            offending=line,
        )

    lines = retain_allowed_lines(cleaned, variant)
    if not lines:
        raise GenerationRejected("Response contains no allowed commands", response=response)

    steps = []
    for line in lines:
        try:
            steps.append(parse_step(line))
        except ScriptParseError as e:
            raise GenerationRejected(
                f"Response line is not a legal step: {line!r}",
                response=response,
                offending=line,
            ) from e
    return ActionScript.from_steps(steps)
