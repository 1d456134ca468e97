"""
Execution engine for rootpilot.

Runs an ActionScript over one device shell session per attempt:
- steps strictly in order, one progress message per step
- Wait steps sleep locally (and can be cancelled) instead of going to the shell
- a short delay after every shell step so the UI can settle
- taps outside the screen envelope are skipped with a warning
- every shell step is followed by an `echo` marker carrying its exit status;
  any non-zero status fails the attempt

Asynchronous entry points run on a new thread and report through an
ExecutionCallback; exactly one terminal notification (on_success or
on_error) is delivered per call.
"""

from __future__ import annotations

import re
import threading
from typing import Callable, List, Optional, Sequence

from rootpilot.core.config import Config
from rootpilot.core.errors import (
    ExecutionCancelled,
    ExecutionStepFailed,
    ExecutionTimeout,
    RootPilotError,
)
from rootpilot.core.logger import get_logger
from rootpilot.core.script import ActionScript, Tap, Wait
from rootpilot.device.shell import ShellSession


RC_MARKER = "__RC__"
_RC_RE = re.compile(r"^" + RC_MARKER + r"(\d+):(\d+)\s*$", re.MULTILINE)
_RC_LINE_RE = re.compile(r"^" + RC_MARKER + r"\d+:\d+\s*\n?", re.MULTILINE)

ProgressSink = Callable[[str], None]


class ExecutionCallback:
    """Receiver for execution progress. Subclass and override what you need."""

    def on_progress(self, message: str) -> None:
        pass

    def on_success(self, output: str) -> None:
        pass

    def on_error(self, error: Exception) -> None:
        pass


class _TerminalOnce:
    """Forwards progress freely but only the first terminal notification."""

    def __init__(self, callback: ExecutionCallback):
        self._callback = callback
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        with self._lock:
            return self._done

    def on_progress(self, message: str) -> None:
        if not self.done:
            self._callback.on_progress(message)

    def _claim(self) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    def on_success(self, output: str) -> None:
        if self._claim():
            self._callback.on_success(output)

    def on_error(self, error: Exception) -> None:
        if self._claim():
            self._callback.on_error(error)


class ExecutionEngine:
    """Stepwise script execution with verification, retry and timeout."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], ShellSession]] = None,
        step_delay_ms: Optional[int] = None,
        screen_envelope: Optional[Sequence[int]] = None,
        max_retries: Optional[int] = None,
        retry_backoff_sec: Optional[float] = None,
        logger=None,
    ):
        self.logger = logger or get_logger()
        self._session_factory = session_factory or (lambda: ShellSession(logger=self.logger))
        self.step_delay_ms = Config.STEP_DELAY_MS if step_delay_ms is None else step_delay_ms
        self.max_x, self.max_y = screen_envelope or Config.get_screen_envelope()
        self.max_retries = Config.MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff_sec = (
            Config.RETRY_BACKOFF_SEC if retry_backoff_sec is None else retry_backoff_sec
        )

    def in_envelope(self, tap: Tap) -> bool:
        return 0 < tap.x < self.max_x and 0 < tap.y < self.max_y

    # ========================================================================
    # Synchronous core
    # ========================================================================

    def run(
        self,
        script: ActionScript,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None,
        on_session: Optional[Callable[[ShellSession], None]] = None,
    ) -> str:
        """
        Execute one attempt and return the shell output (markers removed).

        Raises:
            ExecutionStepFailed: a step exited non-zero or the shell died
            ExecutionCancelled: cancel_event was set during the attempt
            ShellUnavailable: the shell could not be started
        """
        progress = progress or (lambda message: None)
        cancel = cancel_event or threading.Event()
        steps = list(script)
        total = len(steps)

        if cancel.is_set():
            raise ExecutionCancelled("Execution cancelled before start")

        session = self._session_factory().start()
        if on_session is not None:
            on_session(session)

        sent: List[int] = []
        try:
            for index, step in enumerate(steps, 1):
                if cancel.is_set():
                    raise ExecutionCancelled(f"Execution cancelled at step {index}/{total}")

                if isinstance(step, Wait):
                    progress(f"Step {index}/{total}: wait {step.duration_ms}ms")
                    if cancel.wait(step.duration_ms / 1000):
                        raise ExecutionCancelled(f"Execution cancelled at step {index}/{total}")
                    continue

                if isinstance(step, Tap) and not self.in_envelope(step):
                    message = (
                        f"Step {index}/{total}: skipped tap ({step.x}, {step.y}) "
                        f"outside screen {self.max_x}x{self.max_y}"
                    )
                    self.logger.warning(f"[EXEC] {message}")
                    progress(message)
                    continue

                line = step.to_line()
                progress(f"Step {index}/{total}: {line}")
                session.send(line)
                session.send(f"echo {RC_MARKER}{index}:$?")
                sent.append(index)

                if self.step_delay_ms and cancel.wait(self.step_delay_ms / 1000):
                    raise ExecutionCancelled(f"Execution cancelled after step {index}/{total}")

            result = session.close(timeout=Config.SHELL_TIMEOUT_SEC)
        except RootPilotError as e:
            session.kill()
            if cancel.is_set() and not isinstance(e, ExecutionCancelled):
                raise ExecutionCancelled(f"Execution cancelled: {e.message}") from e
            raise

        if cancel.is_set() or session.killed:
            raise ExecutionCancelled("Execution cancelled while the shell was running")

        return self._verify(result, sent)

    def _verify(self, result, sent: List[int]) -> str:
        """Check per-step exit markers and the session status."""
        statuses = {int(i): int(rc) for i, rc in _RC_RE.findall(result.output)}
        output = _RC_LINE_RE.sub("", result.output)

        for index in sent:
            rc = statuses.get(index)
            if rc is None:
                raise ExecutionStepFailed(
                    f"Step {index} produced no exit status (shell exited early)",
                    step_index=index, exit_code=result.exit_code, output=output,
                )
            if rc != 0:
                raise ExecutionStepFailed(
                    f"Step {index} failed with exit code {rc}",
                    step_index=index, exit_code=rc, output=output,
                )

        if result.timed_out or result.exit_code != 0:
            raise ExecutionStepFailed(
                f"Shell session ended with exit code {result.exit_code}",
                exit_code=result.exit_code, output=output,
            )
        return output

    def run_with_retry(
        self,
        script: ActionScript,
        progress: Optional[ProgressSink] = None,
        max_retries: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        on_session: Optional[Callable[[ShellSession], None]] = None,
    ) -> str:
        """
        Up to max_retries + 1 attempts with a fixed backoff between them.

        Cancellation is never retried.
        """
        progress = progress or (lambda message: None)
        retries = self.max_retries if max_retries is None else max_retries
        cancel = cancel_event or threading.Event()
        last_error: Optional[Exception] = None

        for attempt in range(retries + 1):
            if attempt > 0:
                if cancel.wait(self.retry_backoff_sec):
                    raise ExecutionCancelled("Execution cancelled between retries")
                progress(f"Retry attempt {attempt}/{retries}")
                self.logger.info(f"[EXEC] retry attempt {attempt}/{retries}")
            try:
                return self.run(script, progress, cancel_event=cancel, on_session=on_session)
            except ExecutionCancelled:
                raise
            except Exception as e:
                last_error = e
                self.logger.warning(f"[EXEC] attempt {attempt + 1}/{retries + 1} failed: {e}")

        raise last_error

    # ========================================================================
    # Asynchronous entry points
    # ========================================================================

    def _spawn(self, target: Callable[[], None], name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        return thread

    def execute(self, script: ActionScript, callback: Optional[ExecutionCallback] = None) -> threading.Thread:
        """One attempt on a worker thread."""
        guard = _TerminalOnce(callback or ExecutionCallback())

        def _work() -> None:
            try:
                output = self.run(script, guard.on_progress)
            except Exception as e:
                self.logger.error(f"[EXEC] failed: {e}")
                guard.on_error(e)
                return
            guard.on_success(output)

        return self._spawn(_work, "ExecWorker")

    def execute_with_retry(self, script: ActionScript, callback: Optional[ExecutionCallback] = None,
                           max_retries: Optional[int] = None) -> threading.Thread:
        """Retrying execution on a worker thread."""
        guard = _TerminalOnce(callback or ExecutionCallback())

        def _work() -> None:
            try:
                output = self.run_with_retry(script, guard.on_progress, max_retries=max_retries)
            except Exception as e:
                self.logger.error(f"[EXEC] failed after retries: {e}")
                guard.on_error(e)
                return
            guard.on_success(output)

        return self._spawn(_work, "ExecRetryWorker")

    def execute_with_timeout(self, script: ActionScript, timeout_sec: Optional[float] = None,
                             callback: Optional[ExecutionCallback] = None,
                             retry: bool = False) -> threading.Thread:
        """
        Execution bounded by a deadline.

        When the deadline passes, ExecutionTimeout is reported, the in-flight
        attempt's process tree is destroyed and nothing is retried. Returns the
        watchdog thread; joining it waits for the outcome.
        """
        timeout = Config.EXECUTION_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        guard = _TerminalOnce(callback or ExecutionCallback())
        cancel = threading.Event()
        sessions: List[ShellSession] = []
        sessions_lock = threading.Lock()

        def _track(session: ShellSession) -> None:
            with sessions_lock:
                sessions.append(session)
            if cancel.is_set():
                session.kill()

        def _work() -> None:
            try:
                if retry:
                    output = self.run_with_retry(
                        script, guard.on_progress, cancel_event=cancel, on_session=_track
                    )
                else:
                    output = self.run(script, guard.on_progress, cancel_event=cancel, on_session=_track)
            except Exception as e:
                if not cancel.is_set():
                    self.logger.error(f"[EXEC] failed: {e}")
                guard.on_error(e)
                return
            guard.on_success(output)

        worker = self._spawn(_work, "ExecTimeoutWorker")

        def _watch() -> None:
            worker.join(timeout)
            if not worker.is_alive():
                return
            error = ExecutionTimeout(f"Execution exceeded {timeout}s", timeout_sec=timeout)
            self.logger.warning(f"[EXEC] {error.message}; cancelling")
            guard.on_error(error)
            cancel.set()
            with sessions_lock:
                in_flight = list(sessions)
            for session in in_flight:
                session.kill()
            worker.join(2.0)

        return self._spawn(_watch, "ExecWatchdog")

    def execute_batch(self, scripts: Sequence[ActionScript],
                      callback: Optional[ExecutionCallback] = None) -> threading.Thread:
        """Run several scripts in order, stopping at the first failure."""
        guard = _TerminalOnce(callback or ExecutionCallback())

        def _work() -> None:
            outputs = []
            total = len(scripts)
            for number, script in enumerate(scripts, 1):
                guard.on_progress(f"Script {number}/{total}")
                try:
                    outputs.append(self.run(script, guard.on_progress))
                except Exception as e:
                    self.logger.error(f"[EXEC] batch stopped at script {number}/{total}: {e}")
                    guard.on_error(e)
                    return
            guard.on_success("".join(outputs))

        return self._spawn(_work, "ExecBatchWorker")
