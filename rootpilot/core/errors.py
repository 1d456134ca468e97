"""rootpilot.core.errors

Error taxonomy for the resolution pipeline and the execution engine.

Detection and cache errors are absorbed by the layer that raises them and
degrade the pipeline. Generation and execution errors are terminal for the
instruction and reach the caller unchanged.

Every error renders to the same dict shape tool results use:
    {"error": {"type": "...", "message": "..."}}
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RootPilotError(Exception):
    """Base class for all rootpilot errors."""

    error_type = "rootpilot_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"type": self.error_type, "message": self.message}}


class DetectionTimeout(RootPilotError):
    """Context or element extraction exceeded its deadline."""

    error_type = "detection_timeout"

    def __init__(self, message: str, timeout_sec: float = 0.0):
        super().__init__(message)
        self.timeout_sec = timeout_sec


class CacheUnavailable(RootPilotError):
    """The cache store could not be read or written."""

    error_type = "cache_unavailable"


class GenerationRejected(RootPilotError):
    """The model response failed the allow-list / deny-list checks."""

    error_type = "generation_rejected"

    def __init__(self, message: str, response: str = "", offending: Optional[str] = None):
        super().__init__(message)
        self.response = response
        self.offending = offending


class ExecutionStepFailed(RootPilotError):
    """A shell step (or the whole session) returned a non-zero status."""

    error_type = "execution_step_failed"

    def __init__(self, message: str, step_index: Optional[int] = None,
                 exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.step_index = step_index
        self.exit_code = exit_code
        self.output = output


class ExecutionTimeout(RootPilotError):
    """The execution deadline expired; the in-flight attempt was cancelled."""

    error_type = "execution_timeout"

    def __init__(self, message: str, timeout_sec: float = 0.0):
        super().__init__(message)
        self.timeout_sec = timeout_sec


class ExecutionCancelled(RootPilotError):
    """The attempt was cancelled from outside (timeout wrapper)."""

    error_type = "execution_cancelled"


class ShellUnavailable(RootPilotError):
    """The device shell could not be started."""

    error_type = "shell_unavailable"


class ScriptParseError(RootPilotError, ValueError):
    """A script line is not one of the legal step primitives."""

    error_type = "script_parse_error"

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line


def error_to_dict(exc: BaseException) -> Dict[str, Any]:
    """Render any exception in the tool-result error shape."""
    if isinstance(exc, RootPilotError):
        return exc.to_dict()
    return {"error": {"type": type(exc).__name__, "message": str(exc)}}
