"""
ui_automation: the catch-all skill for on-screen actions.

It hands the instruction to the resolution pipeline (cache, patterns,
language model) and runs the resulting script with retry.
"""
from rootpilot.skills.base import Skill, SkillContext

ACTION_WORDS = frozenset({
    "type", "tap", "click", "press", "search", "send", "message",
    "enter", "select", "scroll", "swipe", "open", "volume",
    "screenshot", "and", "then",
})

ACTION_PHRASES = ("go back", "go home")


def _matches(normalized: str) -> bool:
    words = normalized.split()
    if any(w in ACTION_WORDS for w in words):
        return True
    return any(p in normalized for p in ACTION_PHRASES)


def _execute(normalized: str, ctx: SkillContext) -> None:
    output = ctx.resolve_and_execute(normalized)
    ctx.callback.on_success(output)


ui_automation = Skill(
    name="ui_automation",
    matches=_matches,
    execute=_execute,
    description="Resolve and run on-screen actions",
)
