"""
Configuration module for rootpilot.
Centralizes all settings with environment variable overrides.
"""
import os
from pathlib import Path
from typing import List


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    """Central configuration for rootpilot"""

    # Device shell (the external execution facility)
    # "su" on a rooted device, "adb shell" from a host machine.
    SHELL_COMMAND: str = os.environ.get("ROOTPILOT_SHELL", "su")
    SHELL_TIMEOUT_SEC: float = float(os.environ.get("ROOTPILOT_SHELL_TIMEOUT_SEC", "15"))

    # Context detection (dumpsys window) deadline
    CONTEXT_TIMEOUT_SEC: float = float(os.environ.get("ROOTPILOT_CONTEXT_TIMEOUT_SEC", "3.0"))

    # UI hierarchy dump (uiautomator)
    UI_DUMP_PATH: str = os.environ.get("ROOTPILOT_UI_DUMP_PATH", "/sdcard/window_dump.xml")
    UI_DUMP_TIMEOUT_SEC: float = float(os.environ.get("ROOTPILOT_UI_DUMP_TIMEOUT_SEC", "8.0"))

    # Command cache
    CACHE_FILE_PATH: str = os.environ.get(
        "ROOTPILOT_CACHE_FILE_PATH",
        str(Path.home() / ".rootpilot" / "command_cache.json")
    )
    # "context": scope keys by package + screen when the context is known
    # "global": never scope keys
    CACHE_SCOPE: str = os.environ.get("ROOTPILOT_CACHE_SCOPE", "context")
    CACHE_MAX_AGE_DAYS: float = float(os.environ.get("ROOTPILOT_CACHE_MAX_AGE_DAYS", "30"))
    CACHE_MIN_USES: int = int(os.environ.get("ROOTPILOT_CACHE_MIN_USES", "2"))
    CACHE_FUZZY_THRESHOLD: float = float(os.environ.get("ROOTPILOT_CACHE_FUZZY_THRESHOLD", "0.8"))
    CACHE_SEED_DEFAULTS: bool = _env_bool("ROOTPILOT_CACHE_SEED_DEFAULTS", "true")

    # LLM (Ollama) settings
    OLLAMA_BASE_URL: str = os.environ.get("ROOTPILOT_OLLAMA_URL", "http://127.0.0.1:11434")
    OLLAMA_MODEL: str = os.environ.get("ROOTPILOT_OLLAMA_MODEL", "llama3.1:latest")
    LLM_TIMEOUT: int = int(os.environ.get("ROOTPILOT_LLM_TIMEOUT", "30"))
    OLLAMA_TEMPERATURE: float = float(os.environ.get("ROOTPILOT_OLLAMA_TEMPERATURE", "0.2"))
    OLLAMA_NUM_PREDICT: int = int(os.environ.get("ROOTPILOT_OLLAMA_NUM_PREDICT", "200"))
    PROMPT_MAX_ELEMENTS: int = int(os.environ.get("ROOTPILOT_PROMPT_MAX_ELEMENTS", "15"))

    # Execution engine
    SCREEN_MAX_X: int = int(os.environ.get("ROOTPILOT_SCREEN_MAX_X", "1440"))
    SCREEN_MAX_Y: int = int(os.environ.get("ROOTPILOT_SCREEN_MAX_Y", "3000"))
    STEP_DELAY_MS: int = int(os.environ.get("ROOTPILOT_STEP_DELAY_MS", "300"))
    MAX_RETRIES: int = int(os.environ.get("ROOTPILOT_MAX_RETRIES", "3"))
    RETRY_BACKOFF_SEC: float = float(os.environ.get("ROOTPILOT_RETRY_BACKOFF_SEC", "1.0"))
    EXECUTION_TIMEOUT_SEC: float = float(os.environ.get("ROOTPILOT_EXECUTION_TIMEOUT_SEC", "30"))

    # Skill registry: run unmatched instructions as raw shell commands.
    # This path skips script validation entirely.
    RAW_SHELL_FALLBACK: bool = _env_bool("ROOTPILOT_RAW_SHELL_FALLBACK", "true")

    # Logging
    LOG_LEVEL: str = os.environ.get("ROOTPILOT_LOG_LEVEL", "INFO")
    QUIET_MODE: bool = _env_bool("ROOTPILOT_QUIET_MODE", "false")

    @classmethod
    def get_cache_max_age_sec(cls) -> float:
        """Get the stale-entry age threshold in seconds"""
        return cls.CACHE_MAX_AGE_DAYS * 24 * 60 * 60

    @classmethod
    def get_ollama_options(cls) -> dict:
        """Generation options passed to Ollama"""
        return {
            "temperature": cls.OLLAMA_TEMPERATURE,
            "num_predict": cls.OLLAMA_NUM_PREDICT,
        }

    @classmethod
    def get_screen_envelope(cls) -> List[int]:
        """Get [max_x, max_y] for tap verification"""
        return [cls.SCREEN_MAX_X, cls.SCREEN_MAX_Y]
