"""
Device-level skills: app launching, Wi-Fi and installed-app listing.
All commands go straight through the shell; none of these need the UI.
"""
import re
from typing import List, Optional, Sequence

from rootpilot.core.errors import ExecutionStepFailed
from rootpilot.skills.base import Skill, SkillContext

# Words that mean the instruction asks for more than one action
EXTRA_ACTION_KEYWORDS = (
    " and ", " then ", " after ", " wait ", " delay ",
    " send ", " message ", " type ", " tap ", " press ",
    " search ", " find ", " go to ", " click ", " scroll ",
    " swipe ", " open ", " close ", " switch ",
)

OPEN_APP_BLOCKERS = (
    " and ", " then ", " after ", " send ", " message ", " to ",
    " saying ", " with ", " search ", " type ", " tap ", " press ",
)

COMMON_APP_NAMES = (
    "whatsapp", "telegram", "chrome", "browser", "firefox", "edge",
    "youtube", "instagram", "facebook", "twitter", "tiktok", "snapchat",
    "gmail", "outlook", "mail", "calendar", "clock", "calculator",
    "camera", "gallery", "photos", "music", "spotify", "netflix",
    "maps", "waze", "uber", "settings", "contacts",
    "phone", "messages", "sms", "dialer", "files",
    "notes", "keep", "pdf", "reader", "office",
)

SYSTEM_PACKAGE_PREFIXES = ("com.android.", "android.")

_OPEN_RE = re.compile(r"^(open|launch)\s+")


def has_extra_actions(normalized: str, keywords: Sequence[str] = EXTRA_ACTION_KEYWORDS) -> bool:
    return any(k in normalized for k in keywords)


def parse_package_list(output: str) -> List[str]:
    """`pm list packages` output -> package names"""
    packages = []
    for line in (output or "").splitlines():
        line = line.strip()
        if line.startswith("package:"):
            packages.append(line[len("package:"):].strip())
    return packages


def is_system_package(package: str) -> bool:
    return package == "android" or package.startswith(SYSTEM_PACKAGE_PREFIXES)


def find_package(app_name: str, packages: Sequence[str]) -> Optional[str]:
    """
    Match a spoken app name against installed packages.

    Direct substring of the package id first, then any known app name
    contained in the request.
    """
    wanted = app_name.lower().replace(" ", "")
    if not wanted:
        return None
    for package in packages:
        if wanted in package.lower():
            return package
    for common in COMMON_APP_NAMES:
        if common in app_name.lower():
            for package in packages:
                if common in package.lower():
                    return package
    return None


def installed_packages(ctx: SkillContext) -> List[str]:
    result = ctx.run_raw("pm list packages")
    if not result.ok:
        raise ExecutionStepFailed(
            f"Could not list packages (exit {result.exit_code})",
            exit_code=result.exit_code,
            output=result.output,
        )
    return parse_package_list(result.output)


# ============================================================================
# open_app
# ============================================================================

def _open_app_matches(normalized: str) -> bool:
    if not _OPEN_RE.match(normalized):
        return False
    if len(normalized.split()) > 3:
        return False
    return not has_extra_actions(normalized, OPEN_APP_BLOCKERS)


def extract_app_name(normalized: str) -> str:
    name = _OPEN_RE.sub("", normalized, count=1).strip()
    return re.sub(r"\s+(app|application)$", "", name)


def _open_app_execute(normalized: str, ctx: SkillContext) -> None:
    app_name = extract_app_name(normalized)
    if not app_name:
        raise LookupError("Could not determine which app to open")

    packages = installed_packages(ctx)
    package = find_package(app_name, packages)
    if package is None:
        others = [p for p in packages if not is_system_package(p)][:10]
        ctx.report(f"App not found: {app_name}")
        if others:
            ctx.report("Some available apps: " + ", ".join(others))
        raise LookupError(f"App not found: {app_name}")

    result = ctx.run_raw(f"monkey -p {package} -c android.intent.category.LAUNCHER 1")
    if not result.ok:
        ctx.logger.warning(f"[SKILL] monkey failed for {package}, trying am start")
        result = ctx.run_raw(f"am start -n {package}/.MainActivity")
    if not result.ok:
        raise ExecutionStepFailed(
            f"Failed to open {package} (exit {result.exit_code})",
            exit_code=result.exit_code,
            output=result.output,
        )
    ctx.report(f"Opening: {app_name} ({package})")
    ctx.callback.on_success(result.output)


open_app = Skill(
    name="open_app",
    matches=_open_app_matches,
    execute=_open_app_execute,
    description="Launch an installed app by name",
)


# ============================================================================
# toggle_wifi
# ============================================================================

_WIFI_VERBS = ("toggle", "turn", "enable", "disable", "on", "off")


def _toggle_wifi_matches(normalized: str) -> bool:
    if "wifi" not in normalized:
        return False
    words = normalized.split()
    if not any(v in words for v in _WIFI_VERBS):
        return False
    if has_extra_actions(normalized):
        return False
    return len(normalized) <= 25


def _toggle_wifi_execute(normalized: str, ctx: SkillContext) -> None:
    words = normalized.split()
    enable = "on" in words or "enable" in words
    if "off" in words or "disable" in words:
        enable = False
    state = "enable" if enable else "disable"
    result = ctx.run_raw(f"svc wifi {state}")
    if not result.ok:
        raise ExecutionStepFailed(
            f"svc wifi {state} exited with {result.exit_code}: {result.output.strip()}",
            exit_code=result.exit_code,
            output=result.output,
        )
    ctx.report(f"Wi-Fi -> {state}")
    ctx.callback.on_success(result.output)


toggle_wifi = Skill(
    name="toggle_wifi",
    matches=_toggle_wifi_matches,
    execute=_toggle_wifi_execute,
    description="Turn Wi-Fi on or off",
)


# ============================================================================
# list_apps
# ============================================================================

_LIST_PHRASES = ("list apps", "show apps", "what apps", "available apps")
LIST_LIMIT = 20


def _list_apps_matches(normalized: str) -> bool:
    if not any(p in normalized for p in _LIST_PHRASES):
        return False
    if has_extra_actions(normalized, EXTRA_ACTION_KEYWORDS + (" turn ",)):
        return False
    return len(normalized) <= 25


def _list_apps_execute(normalized: str, ctx: SkillContext) -> None:
    apps = [p for p in installed_packages(ctx) if not is_system_package(p)]
    ctx.report(f"Installed apps ({len(apps)}):")
    for number, package in enumerate(apps[:LIST_LIMIT], 1):
        ctx.report(f"  {number}. {package}")
    if len(apps) > LIST_LIMIT:
        ctx.report(f"  ... and {len(apps) - LIST_LIMIT} more")
    ctx.callback.on_success("\n".join(apps))


list_apps = Skill(
    name="list_apps",
    matches=_list_apps_matches,
    execute=_list_apps_execute,
    description="List installed (non-system) apps",
)
