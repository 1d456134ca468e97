"""rootpilot.device.shell

Device shell facility.

A ShellSession is one long-lived shell process (`su` on a rooted device,
`adb shell` from a host). Lines are written to its stdin in order; stdout and
stderr are merged and collected by a reader thread so callers can either wait
for individual lines (with a deadline) or collect everything at close.
"""

from __future__ import annotations

import queue
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

import psutil

from rootpilot.core.config import Config
from rootpilot.core.errors import ExecutionStepFailed, ShellUnavailable
from rootpilot.core.logger import get_logger


@dataclass
class ShellResult:
    """Combined output and exit status of a shell session"""
    output: str
    exit_code: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


def build_shell_argv(command: Optional[str] = None) -> List[str]:
    """Split the configured shell command into argv."""
    argv = shlex.split(command or Config.SHELL_COMMAND)
    if not argv:
        raise ShellUnavailable("Shell command is empty")
    return argv


def kill_process_tree(pid: int) -> None:
    """Kill a process and all of its children. Missing processes are ignored."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    children = parent.children(recursive=True)
    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass
    try:
        parent.kill()
    except psutil.NoSuchProcess:
        pass
    psutil.wait_procs(children + [parent], timeout=2)


class ShellSession:
    """One interactive shell process fed line by line."""

    def __init__(self, command: Optional[str] = None, logger=None):
        self.logger = logger or get_logger()
        self.argv = build_shell_argv(command)
        self.process: Optional[subprocess.Popen] = None
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self._captured: List[str] = []
        self._reader: Optional[threading.Thread] = None
        self._killed = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> "ShellSession":
        try:
            self.process = subprocess.Popen(
                self.argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise ShellUnavailable(f"Cannot start shell {self.argv!r}: {e}") from e

        self._reader = threading.Thread(
            target=self._read_loop, name="ShellReader", daemon=True
        )
        self._reader.start()
        self.logger.debug(f"[SHELL] started {' '.join(self.argv)} pid={self.process.pid}")
        return self

    def _read_loop(self) -> None:
        stream = self.process.stdout
        try:
            for line in stream:
                self._lines.put(line)
        except (OSError, ValueError):
            pass
        finally:
            self._lines.put(None)  # EOF marker

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def killed(self) -> bool:
        return self._killed

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------
    def send(self, line: str) -> None:
        """Write one command line to the shell."""
        if self.process is None:
            raise ShellUnavailable("Shell session not started")
        try:
            self.process.stdin.write(line.rstrip("\n") + "\n")
            self.process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            raise ExecutionStepFailed(f"Shell session closed while sending {line!r}: {e}") from e
        self.logger.debug(f"[SHELL] -> {line}")

    def read_line(self, timeout: float) -> Optional[str]:
        """
        Wait up to `timeout` seconds for the next output line.

        Returns None on timeout or end of output.
        """
        try:
            line = self._lines.get(timeout=max(0.0, timeout))
        except queue.Empty:
            return None
        if line is None:
            self._lines.put(None)  # keep EOF visible to later readers
            return None
        self._captured.append(line)
        return line

    def close(self, timeout: Optional[float] = None) -> ShellResult:
        """Send `exit`, wait for the process and return everything it printed."""
        if self.process is None:
            raise ShellUnavailable("Shell session not started")
        wait_for = Config.SHELL_TIMEOUT_SEC if timeout is None else timeout

        if self.is_running():
            try:
                self.process.stdin.write("exit\n")
                self.process.stdin.flush()
            except (BrokenPipeError, OSError, ValueError):
                pass
        try:
            self.process.stdin.close()
        except (BrokenPipeError, OSError, ValueError):
            pass

        timed_out = False
        try:
            exit_code = self.process.wait(timeout=wait_for)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"[SHELL] pid={self.process.pid} did not exit in {wait_for}s, destroying")
            self.kill()
            timed_out = True
            exit_code = self.process.wait()

        if self._reader is not None:
            self._reader.join(timeout=1.0)
        self._drain()
        return ShellResult("".join(self._captured), exit_code, timed_out=timed_out)

    def kill(self) -> None:
        """Destroy the shell and every process it spawned."""
        if self.process is None or self._killed:
            return
        self._killed = True
        kill_process_tree(self.process.pid)
        self.logger.debug(f"[SHELL] killed pid={self.process.pid}")

    def _drain(self) -> None:
        while True:
            try:
                line = self._lines.get_nowait()
            except queue.Empty:
                return
            if line is None:
                continue
            self._captured.append(line)

    def __enter__(self) -> "ShellSession":
        if self.process is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_running():
            self.kill()


def run_shell(
    commands: Union[str, Iterable[str]],
    timeout: Optional[float] = None,
    command: Optional[str] = None,
    logger=None,
) -> ShellResult:
    """
    Run one command line, or a newline-delimited sequence, in a fresh shell.

    Returns combined output and exit status. A session that outlives the
    timeout is destroyed and reported with timed_out=True.
    """
    if isinstance(commands, str):
        lines = [c for c in commands.splitlines() if c.strip()]
    else:
        lines = [c for c in commands if c and c.strip()]

    start_time = time.perf_counter()
    session = ShellSession(command=command, logger=logger).start()
    try:
        for line in lines:
            session.send(line)
    except ExecutionStepFailed:
        pass  # process already gone; close() reports its status
    result = session.close(timeout=timeout)
    elapsed_ms = int((time.perf_counter() - start_time) * 1000)
    session.logger.debug(f"[SHELL] {len(lines)} line(s) exit={result.exit_code} in {elapsed_ms}ms")
    return result
