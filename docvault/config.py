# Config
"""
Configuration for the docvault ingestion pipeline.

Values come from environment variables; a local .env file is loaded first
when present.
"""

import math
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from docvault.utils.errors import ConfigurationError

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: float) -> float:
    """A non-negative number from the environment.

    Raises:
        ConfigurationError: If the variable is not a finite non-negative number
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        value = math.nan
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r} (expected a non-negative number)",
            {"variable": name, "value": raw},
        )
    return value


class Settings:
    def __init__(self) -> None:
        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.dev_mode = _env_bool("DEV_MODE")
        self.log_file = os.getenv("LOG_FILE") or None

        # Persistence
        self.database_url = os.getenv("DATABASE_URL") or None
        self.storage_root = Path(os.getenv("STORAGE_ROOT") or Path.cwd())

        # Extraction
        self.extraction_timeout_seconds = _env_number("EXTRACTION_TIMEOUT_SECONDS", 60)
        self.max_file_size_bytes = int(_env_number("MAX_FILE_SIZE_MB", 100) * 1024 * 1024)

        # LLM insights (optional)
        self.ai_provider = os.getenv("AI_PROVIDER", "gemini").lower()
        self.gemini_api_key = os.getenv("GEMINI_API_KEY") or None
        self.gemini_model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.ollama_url = os.getenv("LLM_SERVICE_URL", "http://localhost:11434")
        self.ollama_model = os.getenv("OLLAMA_MODEL", "qwen2.5")
        self.llm_max_content_length = 5000
        self.llm_max_retries = 3
        self.llm_retry_delay = 1.0

    def get_log_file_path(self) -> Optional[Path]:
        """Log file path with its directory created, or None when file logging is off."""
        if not self.log_file:
            return None
        log_path = Path(self.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return log_path


# Singleton instance
_settings = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
