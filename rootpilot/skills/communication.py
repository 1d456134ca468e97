"""
Messaging skills.

whatsapp_message handles the simple grammar
    "send whatsapp to <name or number> message <text>"
by opening WhatsApp's send URL with the recipient's number. Anything more
involved falls through to ui_automation.
"""
from typing import Optional, Tuple
from urllib.parse import quote

from rootpilot.core.script import ActionScript, Launch
from rootpilot.skills.base import Skill, SkillContext

WHATSAPP_SEND_URL = "https://api.whatsapp.com/send?phone={phone}&text={text}"

_EXTRA_ACTIONS = (
    " and ", " then ", " after ", " wait ", " delay ",
    " open ", " close ", " switch ", " turn ", " tap ", " press ",
    " search ", " find ", " go to ", " click ", " scroll ", " swipe ",
)
_OTHER_APPS = ("youtube", "chrome", "instagram", "facebook", "twitter", "telegram", "gmail")


def _matches(normalized: str) -> bool:
    if "whatsapp" not in normalized:
        return False
    if "send" not in normalized and "message" not in normalized:
        return False
    if any(k in normalized for k in _EXTRA_ACTIONS):
        return False
    if len(normalized) > 50:
        return False
    return not any(app in normalized for app in _OTHER_APPS)


def parse_recipient_and_message(normalized: str) -> Tuple[str, str]:
    """Split the instruction into (recipient, message text)."""
    if "message" in normalized:
        left, _, right = normalized.partition("message")
        who = left.replace("send whatsapp to", "").replace("send whatsapp", "").strip()
        if who.endswith(" to"):
            who = who[:-3].strip()
        return who, right.strip()

    idx = normalized.find(" to ")
    if idx >= 0:
        return normalized[idx + 4:].strip(), ""
    return "", ""


def resolve_phone(who: str, contacts) -> Optional[str]:
    digits = "".join(ch for ch in who if ch.isdigit())
    if digits and len(digits) == len(who.replace(" ", "")):
        return digits
    if contacts is None:
        return None
    return contacts.resolve(who)


def build_send_script(phone: str, message: str) -> ActionScript:
    url = WHATSAPP_SEND_URL.format(phone=phone, text=quote(message or ""))
    return ActionScript.of(Launch(f"-a android.intent.action.VIEW -d '{url}'"))


def _execute(normalized: str, ctx: SkillContext) -> None:
    who, message = parse_recipient_and_message(normalized)
    if not who:
        raise LookupError("No recipient found in the request")

    phone = resolve_phone(who, ctx.contacts)
    if phone is None:
        raise LookupError(f"No contact found for '{who}'")

    output = ctx.engine.run(build_send_script(phone, message), ctx.callback.on_progress)
    ctx.report(f"WhatsApp message to {who} ({phone})")
    ctx.callback.on_success(output)


whatsapp_message = Skill(
    name="whatsapp_message",
    matches=_matches,
    execute=_execute,
    description="Send a WhatsApp message to a contact or number",
)
