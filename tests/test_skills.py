"""Tests for the skill registry and the built-in skills.

Shell access goes through FakeRunner / FakeSession; nothing touches a device.

Run with: python -m pytest tests/test_skills.py -v
"""

import pytest

from rootpilot.core.assistant import Assistant
from rootpilot.core.errors import ExecutionStepFailed
from rootpilot.core.executor import ExecutionEngine
from rootpilot.core.orchestrator import Orchestrator
from rootpilot.device.shell import ShellResult
from rootpilot.memory.command_cache import CommandCache
from rootpilot.memory.contacts import Contact, ContactDirectory
from rootpilot.skills import DEFAULT_SKILLS, build_default_registry
from rootpilot.skills.base import Skill, SkillContext, SkillRegistry
from rootpilot.skills.communication import build_send_script, parse_recipient_and_message, resolve_phone
from rootpilot.skills.system import extract_app_name, find_package, parse_package_list
from fakes import (
    FakeDetector,
    FakeExtractor,
    FakeGenerator,
    FakeRunner,
    RecordingCallback,
    SessionFactory,
)


PACKAGES = "package:com.android.settings\npackage:com.whatsapp\npackage:com.spotify.music\n"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def callback():
    return RecordingCallback()


@pytest.fixture
def runner():
    return FakeRunner(results={"pm list packages": ShellResult(PACKAGES, 0)})


@pytest.fixture
def ctx(runner, callback):
    return SkillContext(shell_runner=runner, callback=callback)


def recording_skill(name, accepts, calls, fail=False):
    def execute(normalized, ctx):
        calls.append(name)
        if fail:
            raise RuntimeError(f"{name} broke")
    return Skill(name=name, matches=accepts, execute=execute)


# ============================================================================
# REGISTRY
# ============================================================================

def test_first_matching_skill_wins(ctx):
    calls = []
    registry = SkillRegistry(raw_shell_fallback=False)
    registry.register(recording_skill("a", lambda s: "go" in s, calls))
    registry.register(recording_skill("b", lambda s: True, calls))

    assert registry.dispatch("go back", ctx) is True
    assert calls == ["a"]


def test_skill_exception_still_counts_as_handled(ctx, callback):
    calls = []
    registry = SkillRegistry(raw_shell_fallback=False)
    registry.register(recording_skill("a", lambda s: True, calls, fail=True))
    registry.register(recording_skill("b", lambda s: True, calls))

    assert registry.dispatch("anything", ctx) is True
    assert calls == ["a"]
    assert isinstance(callback.errors[0], RuntimeError)


def test_matcher_exception_skips_that_skill(ctx):
    calls = []

    def broken(_):
        raise KeyError("bad matcher")

    registry = SkillRegistry(raw_shell_fallback=False)
    registry.register(Skill(name="broken", matches=broken, execute=lambda n, c: calls.append("broken")))
    registry.register(recording_skill("b", lambda s: True, calls))

    assert registry.dispatch("anything", ctx) is True
    assert calls == ["b"]


def test_raw_shell_fallback(ctx, runner, callback):
    registry = SkillRegistry(raw_shell_fallback=True)
    assert registry.dispatch("getprop ro build version", ctx) is False
    assert runner.calls == ["getprop ro build version"]
    assert len(callback.successes) == 1


def test_raw_shell_fallback_nonzero_exit_is_an_error(callback):
    runner = FakeRunner(default=ShellResult("getprop: not found", 127))
    ctx = SkillContext(shell_runner=runner, callback=callback)

    assert SkillRegistry(raw_shell_fallback=True).dispatch("getprop", ctx) is False

    assert callback.successes == []
    assert isinstance(callback.errors[0], ExecutionStepFailed)
    assert callback.errors[0].exit_code == 127


def test_no_fallback_when_disabled(ctx, runner):
    registry = SkillRegistry(raw_shell_fallback=False)
    assert registry.dispatch("getprop", ctx) is False
    assert runner.calls == []


def test_default_registry_order():
    registry = build_default_registry(raw_shell_fallback=False)
    assert registry.names() == ["open_app", "toggle_wifi", "list_apps", "whatsapp_message", "ui_automation"]
    assert len(DEFAULT_SKILLS) == 5


@pytest.mark.parametrize("instruction, skill", [
    ("open whatsapp", "open_app"),
    ("launch spotify app", "open_app"),
    ("open whatsapp and send hi", "ui_automation"),
    ("turn wifi off", "toggle_wifi"),
    ("list apps", "list_apps"),
    ("send whatsapp to john message hello", "whatsapp_message"),
    ("go back", "ui_automation"),
    ("type hello and send", "ui_automation"),
    ("getprop", None),
])
def test_default_routing(instruction, skill):
    found = build_default_registry(raw_shell_fallback=False).find(instruction)
    assert (found.name if found else None) == skill


# ============================================================================
# SYSTEM SKILLS
# ============================================================================

def test_parse_package_list():
    assert parse_package_list(PACKAGES) == ["com.android.settings", "com.whatsapp", "com.spotify.music"]


def test_find_package():
    packages = parse_package_list(PACKAGES)
    assert find_package("whatsapp", packages) == "com.whatsapp"
    assert find_package("my spotify", packages) == "com.spotify.music"
    assert find_package("netflix", packages) is None


def test_extract_app_name():
    assert extract_app_name("open spotify app") == "spotify"
    assert extract_app_name("launch whatsapp") == "whatsapp"


def test_open_app_launches_with_monkey(ctx, runner, callback):
    registry = build_default_registry(raw_shell_fallback=False)
    registry.dispatch("open whatsapp", ctx)
    assert runner.calls[-1] == "monkey -p com.whatsapp -c android.intent.category.LAUNCHER 1"
    assert len(callback.successes) == 1


def test_open_app_reports_missing_app(ctx, runner, callback):
    registry = build_default_registry(raw_shell_fallback=False)
    registry.dispatch("open netflix", ctx)
    assert runner.calls == ["pm list packages"]
    assert "App not found: netflix" in callback.progress
    assert isinstance(callback.errors[0], LookupError)
    assert callback.successes == []


@pytest.mark.parametrize("instruction, command", [
    ("turn wifi off", "svc wifi disable"),
    ("turn wifi on", "svc wifi enable"),
    ("disable wifi", "svc wifi disable"),
])
def test_toggle_wifi(ctx, runner, instruction, command):
    build_default_registry(raw_shell_fallback=False).dispatch(instruction, ctx)
    assert runner.calls == [command]


def test_list_apps_hides_system_packages(ctx, callback):
    build_default_registry(raw_shell_fallback=False).dispatch("list apps", ctx)
    assert callback.successes == ["com.whatsapp\ncom.spotify.music"]


def test_toggle_wifi_failure_is_reported(callback):
    runner = FakeRunner(default=ShellResult("svc: permission denied", 1))
    ctx = SkillContext(shell_runner=runner, callback=callback)

    assert build_default_registry(raw_shell_fallback=False).dispatch("turn wifi off", ctx) is True

    assert callback.successes == []
    assert callback.progress == []
    error = callback.errors[0]
    assert isinstance(error, ExecutionStepFailed)
    assert error.exit_code == 1
    assert "permission denied" in error.message


def test_open_app_failure_after_both_launch_attempts(callback):
    runner = FakeRunner(
        results={"pm list packages": ShellResult(PACKAGES, 0)},
        default=ShellResult("Error: activity not found", 1),
    )
    ctx = SkillContext(shell_runner=runner, callback=callback)

    build_default_registry(raw_shell_fallback=False).dispatch("open whatsapp", ctx)

    assert runner.calls[-1] == "am start -n com.whatsapp/.MainActivity"
    assert callback.successes == []
    assert isinstance(callback.errors[0], ExecutionStepFailed)


def test_package_listing_failure_is_reported(callback):
    ctx = SkillContext(shell_runner=FakeRunner(default=ShellResult("", 255)), callback=callback)

    build_default_registry(raw_shell_fallback=False).dispatch("list apps", ctx)

    assert callback.successes == []
    assert callback.errors[0].exit_code == 255


# ============================================================================
# MESSAGING
# ============================================================================

def test_parse_recipient_and_message():
    assert parse_recipient_and_message("send whatsapp to john message hello there") == ("john", "hello there")
    assert parse_recipient_and_message("send whatsapp to john") == ("john", "")


def test_resolve_phone():
    contacts = ContactDirectory(runner=FakeRunner())
    contacts.add(Contact("John Doe", "15551234567"))
    assert resolve_phone("919876543210", contacts) == "919876543210"
    assert resolve_phone("john", contacts) == "15551234567"
    assert resolve_phone("mary", contacts) is None


def test_build_send_script_quotes_text():
    script = build_send_script("15551234567", "hello there")
    assert script.serialize() == (
        "am start -a android.intent.action.VIEW -d "
        "'https://api.whatsapp.com/send?phone=15551234567&text=hello%20there'"
    )


def test_whatsapp_skill_runs_send_script(callback):
    factory = SessionFactory()
    contacts = ContactDirectory(runner=FakeRunner())
    contacts.add(Contact("John Doe", "15551234567"))
    engine = ExecutionEngine(session_factory=factory, step_delay_ms=0)
    ctx = SkillContext(engine=engine, contacts=contacts, shell_runner=FakeRunner(), callback=callback)

    build_default_registry(raw_shell_fallback=False).dispatch(
        "send whatsapp to john message hello", ctx
    )

    sent = factory.sessions[0].sent
    assert sent[0].startswith("am start -a android.intent.action.VIEW")
    assert "phone=15551234567&text=hello" in sent[0]
    assert len(callback.successes) == 1


@pytest.mark.parametrize("instruction, reason", [
    ("send whatsapp message hello", "No recipient"),
    ("send whatsapp to mary message hello", "No contact found for 'mary'"),
])
def test_whatsapp_skill_reports_unresolved_recipient(callback, instruction, reason):
    factory = SessionFactory()
    contacts = ContactDirectory(runner=FakeRunner())
    contacts.add(Contact("John Doe", "15551234567"))
    engine = ExecutionEngine(session_factory=factory, step_delay_ms=0)
    ctx = SkillContext(engine=engine, contacts=contacts, shell_runner=FakeRunner(), callback=callback)

    build_default_registry(raw_shell_fallback=False).dispatch(instruction, ctx)

    assert factory.count == 0
    assert callback.successes == []
    assert isinstance(callback.errors[0], LookupError)
    assert reason in str(callback.errors[0])


# ============================================================================
# ASSISTANT (end to end with fakes)
# ============================================================================

def make_assistant(tmp_path, generator=None):
    factory = SessionFactory()
    assistant = Assistant(
        cache=CommandCache(path=str(tmp_path / "cache.json"), seed_defaults=False),
        detector=FakeDetector(None),
        extractor=FakeExtractor([]),
        generator=generator or FakeGenerator(),
        engine=ExecutionEngine(session_factory=factory, step_delay_ms=0, retry_backoff_sec=0),
        contacts=ContactDirectory(runner=FakeRunner()),
        registry=build_default_registry(raw_shell_fallback=False),
        shell_runner=FakeRunner(),
    )
    return assistant, factory


def test_assistant_handles_navigation(tmp_path):
    assistant, factory = make_assistant(tmp_path)
    callback = RecordingCallback()

    assert assistant.handle("Go back!", callback) is True

    assert "input keyevent 4" in factory.sessions[0].sent
    assert len(callback.successes) == 1
    assert assistant.cache_stats()["count"] == 1


def test_assistant_reports_generation_failure(tmp_path):
    assistant, factory = make_assistant(tmp_path, FakeGenerator(error=ConnectionError("down")))
    callback = RecordingCallback()

    assert assistant.handle("tap the blue thing", callback) is True

    assert factory.count == 0
    assert isinstance(callback.errors[0], ConnectionError)


def test_assistant_ignores_empty_utterance(tmp_path):
    assistant, _ = make_assistant(tmp_path)
    assert assistant.handle("?!") is False


def test_assistant_dry_run(tmp_path):
    assistant, factory = make_assistant(tmp_path)
    resolution = assistant.resolve("go home")
    assert resolution.script.serialize() == "input keyevent 3"
    assert factory.count == 0


def test_assistant_orchestrator_shares_cache(tmp_path):
    assistant, _ = make_assistant(tmp_path)
    assert isinstance(assistant.orchestrator, Orchestrator)
    assert assistant.orchestrator.cache is assistant.cache
