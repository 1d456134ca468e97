"""
Skill records, the registry that dispatches to them, and the context
handed to a skill when it runs.

A skill is data, not a subclass: a name plus two plain functions.
Dispatch walks the registered skills in order; the first whose matcher
accepts the normalized instruction runs, and no other does.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from rootpilot.core.config import Config
from rootpilot.core.errors import ExecutionStepFailed
from rootpilot.core.executor import ExecutionCallback
from rootpilot.core.logger import get_logger
from rootpilot.device.shell import ShellResult, run_shell


@dataclass
class SkillContext:
    """Everything a skill may use while executing"""
    orchestrator: Optional[object] = None
    engine: Optional[object] = None
    contacts: Optional[object] = None
    shell_runner: Callable[..., ShellResult] = run_shell
    callback: ExecutionCallback = field(default_factory=ExecutionCallback)
    logger: Optional[object] = None

    def __post_init__(self):
        if self.logger is None:
            self.logger = get_logger()

    def report(self, message: str) -> None:
        """User-facing progress line"""
        self.logger.info(f"[SKILL] {message}")
        self.callback.on_progress(message)

    def run_raw(self, command: str, timeout: Optional[float] = None) -> ShellResult:
        """Run a shell command as-is (no script validation)."""
        return self.shell_runner(command, timeout=timeout)

    def resolve_and_execute(self, instruction: str, max_retries: Optional[int] = None) -> str:
        """Resolve through the pipeline, then execute with retry. Blocking."""
        resolution = self.orchestrator.resolve(instruction)
        self.report(f"Resolved via {resolution.source} ({len(resolution.script)} steps)")
        return self.engine.run_with_retry(
            resolution.script, self.callback.on_progress, max_retries=max_retries
        )


@dataclass(frozen=True)
class Skill:
    name: str
    matches: Callable[[str], bool]
    execute: Callable[[str, SkillContext], None]
    description: str = ""


class SkillRegistry:
    """Ordered skill list with first-match-wins dispatch"""

    def __init__(self, raw_shell_fallback: Optional[bool] = None, logger=None):
        self.logger = logger or get_logger()
        self.raw_shell_fallback = (
            Config.RAW_SHELL_FALLBACK if raw_shell_fallback is None else raw_shell_fallback
        )
        self._skills: List[Skill] = []

    def register(self, skill: Skill) -> None:
        self._skills.append(skill)

    @property
    def skills(self) -> List[Skill]:
        return list(self._skills)

    def names(self) -> List[str]:
        return [s.name for s in self._skills]

    def find(self, normalized: str) -> Optional[Skill]:
        """First skill whose matcher accepts the instruction"""
        for skill in self._skills:
            try:
                if skill.matches(normalized):
                    return skill
            except Exception as e:
                self.logger.error(f"[SKILL] matcher of {skill.name} raised: {e}")
        return None

    def dispatch(self, normalized: str, ctx: SkillContext) -> bool:
        """
        Run the first matching skill.

        Returns True when a skill handled the instruction (even if it raised).
        Otherwise falls back to running the instruction as a raw shell
        command when enabled, and returns False.
        """
        skill = self.find(normalized)
        if skill is not None:
            self.logger.info(f"[SKILL] using {skill.name}")
            try:
                skill.execute(normalized, ctx)
            except Exception as e:
                self.logger.error(f"[SKILL] {skill.name} failed: {type(e).__name__}: {e}")
                ctx.callback.on_error(e)
            return True

        if self.raw_shell_fallback and normalized:
            # Unvalidated path: the text goes to the shell untouched
            self.logger.warning(f"[SKILL] no skill matched, running raw shell command: {normalized!r}")
            try:
                result = ctx.run_raw(normalized)
            except Exception as e:
                self.logger.error(f"[SKILL] raw shell command failed: {e}")
                ctx.callback.on_error(e)
                return False
            if result.ok:
                ctx.callback.on_success(result.output)
            else:
                self.logger.error(f"[SKILL] raw shell command exited with {result.exit_code}")
                ctx.callback.on_error(ExecutionStepFailed(
                    f"Raw command exited with {result.exit_code}: {result.output.strip()}",
                    exit_code=result.exit_code,
                    output=result.output,
                ))
        else:
            self.logger.info(f"[SKILL] no skill matched '{normalized}'")
        return False
