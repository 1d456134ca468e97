"""
Action scripts: the immutable, line-based step sequences that the pipeline
produces and the execution engine runs.

One step per line:
    input tap <x> <y>
    input text '<text with %s for spaces>'
    input keyevent <code>
    sleep <seconds>
    am start <args>          (package-launch scripts only)
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple, Union

from rootpilot.core.errors import ScriptParseError


# Placeholder the device's `input text` command expands to a space.
TEXT_SPACE_TOKEN = "%s"

# Key codes used by the deterministic rules
KEYCODE_HOME = 3
KEYCODE_BACK = 4
KEYCODE_VOLUME_UP = 24
KEYCODE_VOLUME_DOWN = 25
KEYCODE_ENTER = 66
KEYCODE_SYSRQ = 120  # screenshot


def encode_text(text: str) -> str:
    """Replace internal spaces with the text-input placeholder token."""
    return re.sub(r"\s+", TEXT_SPACE_TOKEN, (text or "").strip())


@dataclass(frozen=True)
class Tap:
    x: int
    y: int

    def to_line(self) -> str:
        return f"input tap {self.x} {self.y}"


@dataclass(frozen=True)
class TypeText:
    text: str  # already encoded (spaces -> %s)

    def __post_init__(self):
        # to_line() single-quotes the text, so a quote or line break would end the step
        if "'" in self.text or "\n" in self.text or "\r" in self.text:
            raise ScriptParseError(f"Text cannot be typed safely: {self.text!r}", line=self.text)

    def to_line(self) -> str:
        return f"input text '{self.text}'"


@dataclass(frozen=True)
class KeyEvent:
    code: Union[int, str]

    def to_line(self) -> str:
        return f"input keyevent {self.code}"


@dataclass(frozen=True)
class Wait:
    duration_ms: int

    def to_line(self) -> str:
        seconds = self.duration_ms / 1000
        if seconds == int(seconds):
            return f"sleep {int(seconds)}"
        return f"sleep {seconds:g}"


@dataclass(frozen=True)
class Launch:
    args: str  # everything after "am start"

    def __post_init__(self):
        if not _LAUNCH_ARGS_RE.match(self.args or ""):
            raise ScriptParseError(f"Illegal am start arguments: {self.args!r}", line=self.args)

    def to_line(self) -> str:
        return f"am start {self.args}"


Step = Union[Tap, TypeText, KeyEvent, Wait, Launch]


_TAP_RE = re.compile(r"^input\s+tap\s+(-?\d+)\s+(-?\d+)$")
_TEXT_RE = re.compile(r"^input\s+text\s+(?:'([^']*)'|\"([^\"]*)\"|(\S+))$")
_KEY_RE = re.compile(r"^input\s+keyevent\s+(\d+|KEYCODE_[A-Z0-9_]+)$")
_SLEEP_RE = re.compile(r"^sleep\s+(\d+(?:\.\d+)?)$")
_LAUNCH_RE = re.compile(r"^am\s+start\s+(\S.*)$")

# am start arguments are plain tokens or quoted tokens without expansions
_LAUNCH_TOKEN = r"""(?:[A-Za-z0-9_./:=%+,@-]+|'[^'\n]*'|"[^"\\$`\n]*")"""
_LAUNCH_ARGS_RE = re.compile(rf"^{_LAUNCH_TOKEN}(?:[ \t]+{_LAUNCH_TOKEN})*$")


def parse_step(line: str) -> Step:
    """
    Parse one script line into a Step.

    Raises:
        ScriptParseError: if the line is not a legal primitive
    """
    text = (line or "").strip()

    m = _TAP_RE.match(text)
    if m:
        return Tap(int(m.group(1)), int(m.group(2)))

    m = _TEXT_RE.match(text)
    if m:
        value = next(g for g in m.groups() if g is not None)
        return TypeText(value)

    m = _KEY_RE.match(text)
    if m:
        code = m.group(1)
        return KeyEvent(int(code) if code.isdigit() else code)

    m = _SLEEP_RE.match(text)
    if m:
        return Wait(int(round(float(m.group(1)) * 1000)))

    m = _LAUNCH_RE.match(text)
    if m:
        return Launch(m.group(1).strip())

    raise ScriptParseError(f"Illegal script line: {text!r}", line=text)


@dataclass(frozen=True)
class ActionScript:
    """Ordered, immutable sequence of steps."""

    steps: Tuple[Step, ...] = ()

    @classmethod
    def of(cls, *steps: Step) -> "ActionScript":
        return cls(tuple(steps))

    @classmethod
    def from_steps(cls, steps: Iterable[Step]) -> "ActionScript":
        return cls(tuple(steps))

    @classmethod
    def parse(cls, text: str) -> "ActionScript":
        """Parse a serialized script. Blank lines are ignored."""
        steps = []
        for raw in (text or "").splitlines():
            if not raw.strip():
                continue
            steps.append(parse_step(raw))
        return cls(tuple(steps))

    def serialize(self) -> str:
        return "\n".join(step.to_line() for step in self.steps)

    def lines(self) -> Tuple[str, ...]:
        return tuple(step.to_line() for step in self.steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __bool__(self) -> bool:
        return bool(self.steps)

    def __str__(self) -> str:
        return self.serialize()
