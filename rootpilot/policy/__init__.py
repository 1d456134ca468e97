"""rootpilot.policy

Safety checks applied to generated scripts before they can run.

HARD RULES:
- A response is accepted whole or rejected whole
- Checks are deterministic (no LLM involvement)
"""

from rootpilot.policy.script_safety import (
    DENIED_TOKENS,
    validate_response,
)

__all__ = [
    "DENIED_TOKENS",
    "validate_response",
]
