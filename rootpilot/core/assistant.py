"""rootpilot.core.assistant

The Assistant owns the wiring: it builds the shell-backed detectors, the
command cache, the generator, the orchestrator and the execution engine
from Config, and dispatches utterances through the skill registry.

Components can be injected for testing; anything not given is built from
Config.
"""
import threading
from concurrent.futures import Future
from typing import Optional

from rootpilot.brain.command_generator import CommandGenerator
from rootpilot.brain.ollama_client import OllamaClient
from rootpilot.core.config import Config
from rootpilot.core.executor import ExecutionCallback, ExecutionEngine
from rootpilot.core.logger import get_logger
from rootpilot.core.normalize import normalize_instruction
from rootpilot.core.orchestrator import Orchestrator, Resolution
from rootpilot.device.shell import run_shell
from rootpilot.memory.command_cache import CommandCache
from rootpilot.memory.contacts import ContactDirectory
from rootpilot.skills import SkillContext, SkillRegistry, build_default_registry
from rootpilot.vision.ui_elements import ElementExtractor
from rootpilot.vision.window_context import ContextDetector


class Assistant:
    """Main rootpilot coordinator"""

    def __init__(
        self,
        cache: Optional[CommandCache] = None,
        detector=None,
        extractor=None,
        generator=None,
        engine: Optional[ExecutionEngine] = None,
        contacts: Optional[ContactDirectory] = None,
        registry: Optional[SkillRegistry] = None,
        shell_runner=None,
        ollama_model: Optional[str] = None,
        ollama_url: Optional[str] = None,
        llm_timeout: Optional[int] = None,
        logger=None,
    ):
        self.logger = logger or get_logger()
        self.shell_runner = shell_runner or run_shell

        self.contacts = contacts if contacts is not None else ContactDirectory(
            runner=self.shell_runner, logger=self.logger
        )
        self.cache = cache if cache is not None else CommandCache(logger=self.logger)
        self.detector = detector or ContextDetector(logger=self.logger)
        self.extractor = extractor or ElementExtractor(logger=self.logger)

        if generator is None:
            client = OllamaClient(
                base_url=ollama_url or Config.OLLAMA_BASE_URL,
                timeout=llm_timeout or Config.LLM_TIMEOUT,
                logger=self.logger,
            )
            generator = CommandGenerator(
                client=client,
                model=ollama_model or Config.OLLAMA_MODEL,
                contacts=self.contacts,
                logger=self.logger,
            )
        self.generator = generator

        self.orchestrator = Orchestrator(
            cache=self.cache,
            detector=self.detector,
            extractor=self.extractor,
            generator=self.generator,
            logger=self.logger,
        )
        self.engine = engine or ExecutionEngine(logger=self.logger)
        self.registry = registry or build_default_registry(logger=self.logger)

    def load_contacts(self) -> int:
        """Load the contact directory (once contacts access is available)."""
        return self.contacts.load()

    def make_context(self, callback: Optional[ExecutionCallback] = None) -> SkillContext:
        return SkillContext(
            orchestrator=self.orchestrator,
            engine=self.engine,
            contacts=self.contacts,
            shell_runner=self.shell_runner,
            callback=callback or ExecutionCallback(),
            logger=self.logger,
        )

    def handle(self, utterance: str, callback: Optional[ExecutionCallback] = None) -> bool:
        """
        Normalize and dispatch one utterance (blocking).

        Returns:
            True if a skill handled it
        """
        normalized = normalize_instruction(utterance)
        if not normalized:
            self.logger.warning("[SKILL] empty utterance ignored")
            return False
        self.logger.info(f"[SKILL] handling '{normalized}'")
        return self.registry.dispatch(normalized, self.make_context(callback))

    def submit(self, utterance: str, callback: Optional[ExecutionCallback] = None) -> "Future[bool]":
        """handle() on a fresh worker thread"""
        future: "Future[bool]" = Future()

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.handle(utterance, callback))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=_run, name="AssistantWorker", daemon=True).start()
        return future

    def resolve(self, utterance: str) -> Resolution:
        """Resolve without executing (dry run)."""
        return self.orchestrator.resolve(utterance)

    def cache_stats(self) -> dict:
        return self.cache.stats()

    def evict_stale(self) -> int:
        return self.cache.evict_stale()
