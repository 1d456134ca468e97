"""
Resolution orchestrator for rootpilot.

Turns one instruction into an ActionScript:

    detect context -> cache lookup -> extract elements -> pattern match -> generate

Context detection and element extraction never fail the cycle; they degrade
to "unknown" and "no elements". Pattern and generated scripts are written
back to the cache. A generation failure is recorded as FAILED and re-raised
unchanged.
"""
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import List, Optional

from rootpilot.core.config import Config
from rootpilot.core.errors import ScriptParseError
from rootpilot.core.logger import get_logger
from rootpilot.core.normalize import normalize_instruction
from rootpilot.core.pattern_matcher import try_match
from rootpilot.core.script import ActionScript
from rootpilot.core.state import ResolutionState, ResolutionTrace
from rootpilot.vision.ui_elements import UIElement


@dataclass(frozen=True)
class Resolution:
    """Outcome of one resolution cycle"""
    script: ActionScript
    source: str  # "cache" | "pattern" | "generative"
    elapsed_ms: float
    context: Optional[object]
    state: ResolutionState
    rule: Optional[str] = None
    key: str = ""


class Orchestrator:
    """Sequences the cache, the pattern matcher and the generative fallback."""

    def __init__(self, cache, detector=None, extractor=None, generator=None,
                 cache_scope: Optional[str] = None, logger=None):
        self.logger = logger or get_logger()
        self.cache = cache
        self.detector = detector
        self.extractor = extractor
        self.generator = generator
        self.cache_scope = cache_scope or Config.CACHE_SCOPE

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    def cache_key(self, instruction: str, context=None) -> str:
        if self.cache_scope == "context" and context is not None:
            return self.cache.make_key(instruction, context)
        return self.cache.make_key(instruction)

    def _detect(self):
        if self.detector is None:
            return None
        try:
            return self.detector.detect()
        except Exception as e:
            self.logger.warning(f"[RESOLVE] context detection failed: {e}")
            return None

    def _extract(self) -> List[UIElement]:
        if self.extractor is None:
            return []
        try:
            return self.extractor.extract_elements()
        except Exception as e:
            self.logger.warning(f"[RESOLVE] element extraction failed: {e}")
            return []

    def _cached_script(self, key: str) -> Optional[ActionScript]:
        entry = self.cache.lookup(key)
        if entry is None:
            return None
        try:
            return ActionScript.parse(entry.script)
        except ScriptParseError as e:
            self.logger.warning(f"[RESOLVE] ignoring unusable cache entry '{entry.key}': {e.message}")
            return None

    def _finish(self, trace: ResolutionTrace, state: ResolutionState, script: ActionScript,
                context, key: str, rule: Optional[str] = None) -> Resolution:
        trace.transition_to(state)
        elapsed_ms = trace.elapsed_ms()
        resolution = Resolution(
            script=script,
            source=trace.source_tag(),
            elapsed_ms=elapsed_ms,
            context=context,
            state=state,
            rule=rule,
            key=key,
        )
        self.logger.info(
            f"[RESOLVE] '{key}' via {resolution.source} "
            f"({len(script)} step(s), {elapsed_ms:.1f}ms)"
        )
        return resolution

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def resolve(self, instruction: str) -> Resolution:
        """
        Resolve an instruction to a script (blocking).

        Raises:
            ValueError: the instruction normalizes to nothing
            GenerationRejected, ConnectionError, ValueError: from the
                generative fallback, unchanged
        """
        trace = ResolutionTrace()
        normalized = normalize_instruction(instruction)
        if not normalized:
            trace.transition_to(ResolutionState.FAILED)
            raise ValueError(f"Instruction is empty after normalization: {instruction!r}")

        context = self._detect()
        trace.transition_to(ResolutionState.CONTEXT_DETECTED)
        key = self.cache_key(normalized, context)

        cached = self._cached_script(key)
        if cached:
            return self._finish(trace, ResolutionState.CACHED, cached, context, key)

        elements = self._extract()

        match = try_match(normalized, elements, context, logger=self.logger)
        if match.matched:
            self.cache.store(key, match.script.serialize())
            return self._finish(
                trace, ResolutionState.PATTERN_MATCHED, match.script, context, key, rule=match.rule
            )

        if self.generator is None:
            trace.transition_to(ResolutionState.FAILED)
            raise LookupError(f"No pattern matched '{normalized}' and no generator is configured")

        try:
            script = self.generator.generate(instruction.strip(), context, elements)
        except Exception as e:
            trace.transition_to(ResolutionState.FAILED)
            self.logger.error(
                f"[RESOLVE] '{key}' failed after {trace.elapsed_ms():.1f}ms: {type(e).__name__}: {e}"
            )
            raise

        self.cache.store(key, script.serialize())
        return self._finish(trace, ResolutionState.GENERATED, script, context, key)

    def submit(self, instruction: str) -> "Future[Resolution]":
        """
        Resolve on a fresh worker thread.

        The future carries the Resolution or the exception resolve() raised.
        """
        future: "Future[Resolution]" = Future()

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            start = time.perf_counter()
            try:
                future.set_result(self.resolve(instruction))
            except BaseException as e:
                self.logger.debug(
                    f"[RESOLVE] worker finished with {type(e).__name__} "
                    f"after {(time.perf_counter() - start) * 1000:.1f}ms"
                )
                future.set_exception(e)

        threading.Thread(target=_run, name="ResolveWorker", daemon=True).start()
        return future
