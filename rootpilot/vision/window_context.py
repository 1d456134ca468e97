"""
rootpilot.vision.window_context

Foreground application awareness (read-only).

Reports which package and activity currently own the screen, plus a friendly
app name and screen description for prompts. Detection is bounded by a single
deadline (Config.CONTEXT_TIMEOUT_SEC); when it passes, the shell process tree
is destroyed and detection reports "unknown" (None) instead of raising.

Returns:
    AppContext(package, screen, app_name, screen_description) | None
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from rootpilot.core.config import Config
from rootpilot.core.errors import DetectionTimeout, RootPilotError
from rootpilot.core.logger import get_logger
from rootpilot.device.shell import ShellSession


# Primary probe first; the others run in the remaining time if it finds nothing.
FOCUS_PROBES: Tuple[str, ...] = (
    "dumpsys window windows | grep -E 'mCurrentFocus|mFocusedApp'",
    "dumpsys activity activities | grep -E 'mResumedActivity|mFocusedActivity'",
    "dumpsys activity top | grep -E 'ACTIVITY|TASK'",
)

PROBE_END_MARKER = "__ROOTPILOT_PROBE_END__"

APP_NAMES = {
    "com.whatsapp": "WhatsApp",
    "com.whatsapp.w4b": "WhatsApp Business",
    "com.google.android.youtube": "YouTube",
    "com.instagram.android": "Instagram",
    "com.facebook.katana": "Facebook",
    "com.twitter.android": "Twitter",
    "org.telegram.messenger": "Telegram",
    "com.google.android.apps.maps": "Google Maps",
    "com.android.chrome": "Chrome",
    "com.google.android.gm": "Gmail",
    "com.spotify.music": "Spotify",
    "com.netflix.mediaclient": "Netflix",
    "com.amazon.mShop.android.shopping": "Amazon",
}

# package -> ordered (activity fragment, description) pairs
SCREEN_DESCRIPTIONS = {
    "com.whatsapp": (
        ("HomeActivity", "Chats List"),
        ("Conversation", "Chat Conversation"),
        ("ContactPicker", "Contact Selection"),
        ("Status", "Status Screen"),
        ("Call", "Call Screen"),
    ),
    "com.google.android.youtube": (
        ("WatchWhileActivity", "Video Player"),
        ("HomeActivity", "Home Feed"),
        ("SearchActivity", "Search Screen"),
        ("SubscriptionFeed", "Subscriptions"),
    ),
    "com.google.android.apps.maps": (
        ("MapsActivity", "Map View"),
        ("SearchActivity", "Search Screen"),
        ("NavigationActivity", "Navigation"),
    ),
    "com.instagram.android": (
        ("MainTabActivity", "Home Feed"),
        ("DirectInboxActivity", "Direct Messages"),
        ("CameraActivity", "Camera/Story"),
    ),
    "com.android.chrome": (
        ("ChromeTabbedActivity", "Browser Tab"),
        ("Incognito", "Incognito Mode"),
    ),
}

DEFAULT_SCREEN_DESCRIPTION = "Main Screen"


# Logging (throttled: detection runs once per instruction and can be noisy)
_last_log_time = 0.0
_LOG_THROTTLE_SECONDS = 2.0


def _log_debug(logger, msg: str) -> None:
    global _last_log_time
    now = time.time()
    if now - _last_log_time < _LOG_THROTTLE_SECONDS:
        return
    _last_log_time = now
    logger.debug(msg)


@dataclass(frozen=True)
class AppContext:
    """Foreground application snapshot"""
    package: str
    screen: str
    app_name: str
    screen_description: str

    def summary(self) -> str:
        return (
            f"Current App: {self.app_name}\n"
            f"Current Screen: {self.screen_description}\n"
            f"Package: {self.package}\n"
            f"Activity: {self.screen}"
        )

    @classmethod
    def from_focus(cls, package: str, screen: str) -> "AppContext":
        return cls(
            package=package,
            screen=screen,
            app_name=app_name_for(package),
            screen_description=describe_screen(package, screen),
        )


def app_name_for(package: str) -> str:
    """Friendly app name; unknown packages map to the package id."""
    return APP_NAMES.get(package, package)


def describe_screen(package: str, activity: Optional[str]) -> str:
    if not activity:
        return DEFAULT_SCREEN_DESCRIPTION
    for fragment, description in SCREEN_DESCRIPTIONS.get(package, ()):
        if fragment in activity:
            return description
    return DEFAULT_SCREEN_DESCRIPTION


def parse_focus_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Extract (package, activity) from a dumpsys focus line.

    The first whitespace token containing '/' is split at the slash; braces
    around the token are dropped.
    """
    if not line or "/" not in line:
        return None
    for token in line.split():
        if "/" not in token:
            continue
        package, _, activity = token.partition("/")
        package = package.strip("{}").strip()
        activity = activity.replace("}", "").strip()
        if "=" in package:
            package = package.rsplit("=", 1)[1]
        if package and activity:
            return package, activity
    return None


class ContextDetector:
    """Detects the foreground app through the device shell"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], ShellSession]] = None,
        timeout_sec: Optional[float] = None,
        logger=None,
    ):
        self.logger = logger or get_logger()
        self._session_factory = session_factory or (lambda: ShellSession(logger=self.logger))
        self.timeout_sec = Config.CONTEXT_TIMEOUT_SEC if timeout_sec is None else timeout_sec

    def detect(self) -> Optional[AppContext]:
        """
        Detect the foreground app.

        Returns:
            AppContext, or None when nothing could be determined in time
        """
        deadline = time.monotonic() + self.timeout_sec
        try:
            session = self._session_factory().start()
        except RootPilotError as e:
            self.logger.warning(f"[CONTEXT] shell unavailable: {e.message}")
            return None

        focus = None
        timed_out = False
        try:
            for probe in FOCUS_PROBES:
                if time.monotonic() >= deadline:
                    timed_out = True
                    break
                _log_debug(self.logger, f"[CONTEXT] probing: {probe}")
                session.send(probe)
                session.send(f"echo {PROBE_END_MARKER}")
                focus, timed_out = self._read_focus(session, deadline)
                if focus or timed_out:
                    break
        except RootPilotError as e:
            self.logger.warning(f"[CONTEXT] detection failed: {e.message}")
            session.kill()
            return None

        if timed_out:
            session.kill()
            error = DetectionTimeout(
                f"Context detection exceeded {self.timeout_sec}s", timeout_sec=self.timeout_sec
            )
            self.logger.warning(f"[CONTEXT] {error.message}; context unknown")
            return None

        session.close(timeout=max(0.5, deadline - time.monotonic()))

        if focus is None:
            self.logger.info("[CONTEXT] no foreground activity found; context unknown")
            return None

        context = AppContext.from_focus(*focus)
        self.logger.info(
            f"[CONTEXT] {context.app_name} / {context.screen_description} "
            f"({context.package}/{context.screen})"
        )
        return context

    def _read_focus(self, session, deadline: float) -> Tuple[Optional[Tuple[str, str]], bool]:
        """Read lines until a focus token, the probe end marker or the deadline."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None, True
            line = session.read_line(timeout=remaining)
            if line is None:
                # Either the deadline passed or the shell went away
                return None, time.monotonic() >= deadline
            line = line.strip()
            if line == PROBE_END_MARKER:
                return None, False
            focus = parse_focus_line(line)
            if focus:
                return focus, False
