"""
rootpilot.vision.ui_elements

Interactable on-screen elements from a `uiautomator dump` hierarchy.

parse_hierarchy() is a tolerant regex scan rather than an XML parse: dumps
read back through a shell are often truncated or interleaved with shell
output, and a partial hierarchy is still useful.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from rootpilot.core.config import Config
from rootpilot.core.errors import DetectionTimeout
from rootpilot.core.logger import get_logger
from rootpilot.device.shell import ShellResult, run_shell


_NODE_RE = re.compile(r"<node([^>]+)/?>")
_BOUNDS_RE = re.compile(r"\[(\d+),(\d+)\]\[(\d+),(\d+)\]")
_ATTR_CACHE = {}


@dataclass(frozen=True)
class UIElement:
    resource_id: str
    class_name: str
    text: str
    content_desc: str
    interactable: bool
    center_x: int
    center_y: int

    def identifier(self) -> str:
        """Visible text, else content description, else the resource-id suffix."""
        if self.text:
            return self.text
        if self.content_desc:
            return self.content_desc
        if self.resource_id:
            return self.resource_id.rsplit("/", 1)[-1]
        return "unknown"

    def is_meaningful(self) -> bool:
        if self.text or self.content_desc:
            return True
        rid = self.resource_id
        return bool(rid) and "layout" not in rid and "frame" not in rid


def _attr(attrs: str, name: str) -> str:
    pattern = _ATTR_CACHE.get(name)
    if pattern is None:
        pattern = re.compile(r'(?<![\w-])' + re.escape(name) + r'="([^"]*)"')
        _ATTR_CACHE[name] = pattern
    m = pattern.search(attrs)
    return html.unescape(m.group(1)) if m else ""


def parse_center(bounds: str) -> Optional[tuple]:
    """'[x1,y1][x2,y2]' -> (cx, cy), or None if unparsable"""
    m = _BOUNDS_RE.search(bounds or "")
    if not m:
        return None
    x1, y1, x2, y2 = (int(g) for g in m.groups())
    return (x1 + x2) // 2, (y1 + y2) // 2


def parse_hierarchy(xml: str) -> List[UIElement]:
    """
    Extract interactable elements from a hierarchy dump.

    Nodes qualify when clickable, long-clickable or an EditText. Missing
    attributes read as "", and nodes with unparsable bounds are skipped.
    """
    elements = []
    for m in _NODE_RE.finditer(xml or ""):
        attrs = m.group(1)
        class_name = _attr(attrs, "class")
        interactable = (
            _attr(attrs, "clickable") == "true"
            or _attr(attrs, "long-clickable") == "true"
            or "EditText" in class_name
        )
        if not interactable:
            continue
        center = parse_center(_attr(attrs, "bounds"))
        if center is None:
            continue
        elements.append(UIElement(
            resource_id=_attr(attrs, "resource-id"),
            class_name=class_name,
            text=_attr(attrs, "text"),
            content_desc=_attr(attrs, "content-desc"),
            interactable=True,
            center_x=center[0],
            center_y=center[1],
        ))
    return elements


def find_by_resource_id(elements: Sequence[UIElement], fragment: str) -> Optional[UIElement]:
    for el in elements:
        if el.resource_id and fragment in el.resource_id:
            return el
    return None


def find_by_text(elements: Sequence[UIElement], text: str) -> Optional[UIElement]:
    """Case-insensitive substring match over text and content description."""
    wanted = (text or "").lower()
    if not wanted:
        return None
    for el in elements:
        if el.text and wanted in el.text.lower():
            return el
        if el.content_desc and wanted in el.content_desc.lower():
            return el
    return None


def format_for_prompt(elements: Sequence[UIElement], limit: Optional[int] = None) -> str:
    """Numbered 'N. identifier at (x,y)' lines for meaningful elements."""
    if limit is None:
        limit = Config.PROMPT_MAX_ELEMENTS
    lines = []
    for el in elements:
        if len(lines) >= limit:
            break
        if el.is_meaningful():
            lines.append(f"{len(lines) + 1}. {el.identifier()} at ({el.center_x},{el.center_y})")
    return "\n".join(lines)


class ElementExtractor:
    """Dumps and parses the current UI hierarchy through the device shell."""

    def __init__(
        self,
        runner: Optional[Callable[..., ShellResult]] = None,
        dump_path: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        logger=None,
    ):
        self.logger = logger or get_logger()
        self._runner = runner or run_shell
        self.dump_path = dump_path or Config.UI_DUMP_PATH
        self.timeout_sec = Config.UI_DUMP_TIMEOUT_SEC if timeout_sec is None else timeout_sec

    def extract_elements(self) -> List[UIElement]:
        """Current interactable elements; any failure yields []"""
        commands = [
            f"uiautomator dump {self.dump_path}",
            f"cat {self.dump_path}",
            f"rm {self.dump_path}",
        ]
        try:
            result = self._runner(commands, timeout=self.timeout_sec)
        except Exception as e:
            self.logger.warning(f"[UI] hierarchy dump failed: {e}")
            return []

        if result.timed_out:
            error = DetectionTimeout(
                f"UI dump exceeded {self.timeout_sec}s", timeout_sec=self.timeout_sec
            )
            self.logger.warning(f"[UI] {error.message}")
            return []

        elements = parse_hierarchy(result.output)
        if not elements and "<hierarchy" not in result.output:
            self.logger.warning(f"[UI] no hierarchy in dump output: {result.output.strip()[:200]}")
        self.logger.debug(f"[UI] {len(elements)} interactable elements")
        return elements
