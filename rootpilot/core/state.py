"""
State management for rootpilot.
Defines the per-instruction resolution state machine.
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import time


class ResolutionState(Enum):
    """Resolution state machine states"""
    START = "START"
    CONTEXT_DETECTED = "CONTEXT_DETECTED"
    CACHED = "CACHED"
    PATTERN_MATCHED = "PATTERN_MATCHED"
    GENERATED = "GENERATED"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset({
    ResolutionState.CACHED,
    ResolutionState.PATTERN_MATCHED,
    ResolutionState.GENERATED,
    ResolutionState.FAILED,
})

# Source tag reported for each successful terminal state
SOURCE_TAGS = {
    ResolutionState.CACHED: "cache",
    ResolutionState.PATTERN_MATCHED: "pattern",
    ResolutionState.GENERATED: "generative",
}

_ALLOWED_TRANSITIONS = {
    ResolutionState.START: {ResolutionState.CONTEXT_DETECTED, ResolutionState.FAILED},
    ResolutionState.CONTEXT_DETECTED: {
        ResolutionState.CACHED,
        ResolutionState.PATTERN_MATCHED,
        ResolutionState.GENERATED,
        ResolutionState.FAILED,
    },
}


@dataclass
class ResolutionTrace:
    """Runtime state tracking for one resolution cycle"""
    current_state: ResolutionState = ResolutionState.START
    started_at: float = field(default_factory=time.perf_counter)
    history: List[Tuple[ResolutionState, float]] = field(default_factory=list)

    def transition_to(self, new_state: ResolutionState) -> None:
        """Transition to a new state"""
        allowed = _ALLOWED_TRANSITIONS.get(self.current_state, set())
        if new_state not in allowed:
            raise RuntimeError(
                f"Illegal resolution transition {self.current_state.value} -> {new_state.value}"
            )
        self.current_state = new_state
        self.history.append((new_state, self.elapsed_ms()))

    def is_terminal(self) -> bool:
        return self.current_state in TERMINAL_STATES

    def elapsed_ms(self) -> float:
        """Wall-clock milliseconds since the cycle started"""
        return (time.perf_counter() - self.started_at) * 1000

    def source_tag(self) -> Optional[str]:
        return SOURCE_TAGS.get(self.current_state)
