"""
Command Cache for rootpilot.

Persistent map from normalized instruction keys to action scripts, with
fuzzy lookup, use counting and stale-entry eviction.

Key forms:
- unscoped: "<normalized instruction>"
- scoped:   "<package> <screen>::<normalized instruction>"

The fuzzy scan only compares entries that share the same scope prefix, so a
script recorded for one screen is never replayed on another.

Persistence: the whole map is rewritten (temp file + os.replace) after every
mutation, including use-count bumps on lookup hits.
"""

import json
import os
import tempfile
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Optional, Tuple

from rootpilot.core.config import Config
from rootpilot.core.errors import CacheUnavailable
from rootpilot.core.logger import get_logger
from rootpilot.core.normalize import normalize_instruction, words


SCOPE_SEPARATOR = "::"

# Seeded when the store is empty (Config.CACHE_SEED_DEFAULTS)
DEFAULT_COMMANDS: Tuple[Tuple[str, str], ...] = (
    # Messaging and social
    ("open whatsapp", "am start -n com.whatsapp/.HomeActivity"),
    ("open whatsapp business", "am start -n com.whatsapp.w4b/.HomeActivity"),
    ("open youtube", "am start -n com.google.android.youtube/.HomeActivity"),
    ("open youtube trending",
     "am start -a android.intent.action.VIEW -d 'vnd.youtube://www.youtube.com/feed/trending'"),
    ("open youtube shorts",
     "am start -a android.intent.action.VIEW -d 'vnd.youtube://www.youtube.com/shorts'"),
    ("open instagram", "am start -n com.instagram.android/.activity.MainTabActivity"),
    ("open facebook", "am start -n com.facebook.katana/.activity.FbMainTabActivity"),
    ("open twitter", "am start -n com.twitter.android/.StartActivity"),
    ("open telegram", "am start -n org.telegram.messenger/.DefaultIcon"),
    # Google apps
    ("open gmail", "am start -n com.google.android.gm/.ConversationListActivityGmail"),
    ("open chrome", "am start -n com.android.chrome/com.google.android.apps.chrome.Main"),
    ("open maps", "am start -n com.google.android.apps.maps/com.google.android.maps.MapsActivity"),
    ("open drive", "am start -n com.google.android.apps.docs/.app.NewMainProxyActivity"),
    ("open photos", "am start -n com.google.android.apps.photos/.home.HomeActivity"),
    # System apps
    ("open settings", "am start -n com.android.settings/.Settings"),
    ("open camera", "am start -n com.android.camera/.Camera"),
    ("open gallery", "am start -a android.intent.action.VIEW -t 'image/*'"),
    # Navigation and hardware keys
    ("go back", "input keyevent 4"),
    ("go home", "input keyevent 3"),
    ("press enter", "input keyevent 66"),
    ("volume up", "input keyevent 24"),
    ("volume down", "input keyevent 25"),
    ("take screenshot", "input keyevent 120"),
)


@dataclass
class CacheEntry:
    """One cached script"""
    key: str
    script: str
    created_at: float
    use_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("key")
        return data

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=key,
            script=str(data["script"]),
            created_at=float(data.get("created_at", time.time())),
            use_count=max(1, int(data.get("use_count", 1))),
        )


def split_key(key: str) -> Tuple[str, str]:
    """Split a cache key into (scope, instruction). Unscoped keys have scope ''."""
    scope, sep, instruction = key.rpartition(SCOPE_SEPARATOR)
    if not sep:
        return "", key
    return scope, instruction


def is_similar(a: str, b: str, threshold: float = 0.8) -> bool:
    """
    Fuzzy comparison of two normalized instructions.

    Similar when the word counts differ by at most one, neither count is more
    than twice the other, and at least `threshold` of the shorter instruction's
    words appear verbatim in the longer one.
    """
    words_a = words(a)
    words_b = words(b)
    if not words_a or not words_b:
        return False
    if abs(len(words_a) - len(words_b)) > 1:
        return False
    if len(words_a) > len(words_b) * 2 or len(words_b) > len(words_a) * 2:
        return False

    shorter, longer = (words_a, words_b) if len(words_a) <= len(words_b) else (words_b, words_a)
    longer_set = set(longer)
    hits = sum(1 for w in shorter if w in longer_set)
    return hits / len(shorter) >= threshold


class CommandCache:
    """
    Thread-safe persistent command cache.

    A single RLock guards every read-modify-write on the map and the disk write
    that follows it.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        seed_defaults: Optional[bool] = None,
        fuzzy_threshold: Optional[float] = None,
        logger=None,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logger or get_logger()
        self._path = Path(path or Config.CACHE_FILE_PATH)
        self._fuzzy_threshold = (
            Config.CACHE_FUZZY_THRESHOLD if fuzzy_threshold is None else fuzzy_threshold
        )
        self._clock = clock
        self._lock = RLock()
        self._entries: Dict[str, CacheEntry] = {}

        loaded = self._load()
        seed = Config.CACHE_SEED_DEFAULTS if seed_defaults is None else seed_defaults
        if loaded and seed and not self._entries:
            self._seed()
        self.logger.debug(f"[CACHE] ready with {len(self._entries)} entries ({self._path})")

    # =========================================================================
    # Keys
    # =========================================================================

    @staticmethod
    def make_key(instruction: str, context=None) -> str:
        """
        Build a cache key. With a context (anything exposing .package and
        .screen) the key is scoped to that screen.
        """
        normalized = normalize_instruction(instruction)
        if context is None:
            return normalized
        return f"{context.package} {context.screen}{SCOPE_SEPARATOR}{normalized}"

    @staticmethod
    def _canonical(key: str) -> str:
        scope, instruction = split_key(key)
        normalized = normalize_instruction(instruction)
        return f"{scope}{SCOPE_SEPARATOR}{normalized}" if scope else normalized

    # =========================================================================
    # Operations
    # =========================================================================

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """
        Exact lookup, then a fuzzy scan within the same scope.

        A hit increments use_count and is persisted before returning.
        Returns a snapshot of the entry, or None on a miss.
        """
        key = self._canonical(key)
        if not split_key(key)[1]:
            return None

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.use_count += 1
                self._save()
                self.logger.debug(f"[CACHE] HIT '{key}' uses={entry.use_count}")
                return replace(entry)

            scope, instruction = split_key(key)
            for candidate_key, candidate in self._entries.items():
                candidate_scope, candidate_instruction = split_key(candidate_key)
                if candidate_scope != scope:
                    continue
                if is_similar(instruction, candidate_instruction, self._fuzzy_threshold):
                    candidate.use_count += 1
                    self._save()
                    self.logger.debug(
                        f"[CACHE] FUZZY HIT '{key}' -> '{candidate_key}' uses={candidate.use_count}"
                    )
                    return replace(candidate)

        self.logger.debug(f"[CACHE] MISS '{key}'")
        return None

    def store(self, key: str, script: str) -> CacheEntry:
        """
        Insert or update an entry.

        Existing key: use_count += 1 and the script is replaced; created_at is
        kept. New key: inserted with use_count = 1.
        """
        key = self._canonical(key)
        script = str(script)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.use_count += 1
                entry.script = script
                self.logger.debug(f"[CACHE] updated '{key}' uses={entry.use_count}")
            else:
                entry = CacheEntry(key=key, script=script, created_at=self._clock())
                self._entries[key] = entry
                self.logger.debug(f"[CACHE] stored '{key}'")
            self._save()
            return replace(entry)

    def evict_stale(self, max_age_sec: Optional[float] = None, min_uses: Optional[int] = None) -> int:
        """
        Remove entries used fewer than `min_uses` times AND older than `max_age_sec`.

        Returns:
            Number of entries removed
        """
        if max_age_sec is None:
            max_age_sec = Config.get_cache_max_age_sec()
        if min_uses is None:
            min_uses = Config.CACHE_MIN_USES
        cutoff = self._clock() - max_age_sec

        with self._lock:
            stale = [
                key for key, entry in self._entries.items()
                if entry.use_count < min_uses and entry.created_at < cutoff
            ]
            for key in stale:
                del self._entries[key]
            if stale:
                self._save()

        self.logger.info(f"[CACHE] evicted {len(stale)} stale entries, {len(self._entries)} remaining")
        return len(stale)

    def stats(self) -> Dict[str, int]:
        """Entry count and total uses"""
        with self._lock:
            return {
                "count": len(self._entries),
                "total_uses": sum(e.use_count for e in self._entries.values()),
            }

    def clear(self) -> None:
        """Drop every entry (no reseeding)"""
        with self._lock:
            self._entries.clear()
            self._save()

    def keys(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # =========================================================================
    # Persistence
    # =========================================================================

    def _seed(self) -> None:
        now = self._clock()
        with self._lock:
            for instruction, script in DEFAULT_COMMANDS:
                key = normalize_instruction(instruction)
                self._entries[key] = CacheEntry(key=key, script=script, created_at=now)
            self._save()
        self.logger.info(f"[CACHE] seeded {len(DEFAULT_COMMANDS)} common commands")

    def _load(self) -> bool:
        """
        Load the map from disk.

        Returns:
            False if the store exists but could not be read (the cache then
            runs in memory, starting empty)
        """
        try:
            if not self._path.exists():
                return True
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise CacheUnavailable(f"Cache file {self._path} does not hold a JSON object")
            for key, raw in data.items():
                self._entries[key] = CacheEntry.from_dict(key, raw)
            return True
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError, CacheUnavailable) as e:
            self._entries.clear()
            error = e if isinstance(e, CacheUnavailable) else CacheUnavailable(f"Failed to load cache: {e}")
            self.logger.warning(f"[CACHE] {error.message}; continuing with an in-memory cache")
            return False

    def _save(self) -> bool:
        """
        Write the whole map atomically.

        Failures are logged as CacheUnavailable; the in-memory map stays
        authoritative for the rest of the session.
        """
        payload = {key: entry.to_dict() for key, entry in self._entries.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                suffix=".json",
                prefix="cache_tmp_",
                dir=str(self._path.parent),
            )
            try:
                with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(temp_path, self._path)
                return True
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
        except (IOError, OSError) as e:
            error = CacheUnavailable(f"Failed to save cache: {e}")
            self.logger.error(f"[CACHE] {error.message}")
            return False
