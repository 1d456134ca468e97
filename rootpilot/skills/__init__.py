"""
Skills package for rootpilot.
Ordered handlers that turn a normalized instruction into device actions.
"""
from typing import Optional

from rootpilot.skills.automation import ui_automation
from rootpilot.skills.base import Skill, SkillContext, SkillRegistry
from rootpilot.skills.communication import whatsapp_message
from rootpilot.skills.system import list_apps, open_app, toggle_wifi

DEFAULT_SKILLS = (open_app, toggle_wifi, list_apps, whatsapp_message, ui_automation)


def build_default_registry(raw_shell_fallback: Optional[bool] = None, logger=None) -> SkillRegistry:
    """Registry with the built-in skills in priority order"""
    registry = SkillRegistry(raw_shell_fallback=raw_shell_fallback, logger=logger)
    for skill in DEFAULT_SKILLS:
        registry.register(skill)
    return registry


__all__ = ["Skill", "SkillContext", "SkillRegistry", "build_default_registry", "DEFAULT_SKILLS"]
