"""
Instruction normalization shared by the cache, the pattern matcher and the
skill registry. The same function must run at cache-write and cache-read time.
"""
import re
from typing import List

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WS_RE = re.compile(r"\s+")


def normalize_instruction(text: str) -> str:
    """
    Normalize an instruction.

    - lowercase
    - strip every character that is not a-z, 0-9 or whitespace
    - collapse whitespace to single spaces
    - trim

    Idempotent: normalize_instruction(normalize_instruction(s)) == normalize_instruction(s)
    """
    if not text:
        return ""
    result = text.lower()
    result = _NON_ALNUM_RE.sub("", result)
    result = _WS_RE.sub(" ", result)
    return result.strip()


def words(text: str) -> List[str]:
    """Split normalized text into words (empty text -> no words)."""
    return text.split() if text else []
