"""Configuration helpers for the assistant server."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


DEFAULT_STT_PROMPT = (
    "This is audio from a screen capture session. The user might be speaking "
    "about what they see on screen or asking for help."
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read once at construction; use `get_settings()` for the shared
    instance and build a fresh `Settings(...)` in tests.
    """

    # Letta Cloud agent the assistant relays to.
    letta_api_key: Optional[str] = os.getenv("LETTA_API_KEY")
    letta_agent_id: Optional[str] = os.getenv("LETTA_AGENT_ID")
    letta_project: Optional[str] = os.getenv("LETTA_PROJECT")
    letta_base_url: str = os.getenv("LETTA_BASE_URL", "https://api.letta.com")

    # Groq Whisper (OpenAI-compatible transcription endpoint).
    groq_api_key: Optional[str] = os.getenv("GROQ_API_KEY")
    groq_base_url: str = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
    stt_model: str = os.getenv("STT_MODEL", "distil-whisper-large-v3-en")
    stt_language: str = os.getenv("STT_LANGUAGE", "en")
    stt_prompt: str = os.getenv("STT_PROMPT", DEFAULT_STT_PROMPT)

    ocr_language: str = os.getenv("OCR_LANGUAGE", "eng")

    # Microphone capture defaults; Whisper expects 16 kHz mono.
    recording_sample_rate: int = _env_int("RECORDING_SAMPLE_RATE", 16_000)
    recording_channels: int = _env_int("RECORDING_CHANNELS", 1)

    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = _env_int("PORT", 3001)
    environment: str = os.getenv("APP_ENV", "development").strip().lower() or "development"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60"))

    # Local-only bearer check; any sufficiently long token is accepted.
    auth_min_token_length: int = _env_int("AUTH_MIN_TOKEN_LENGTH", 10)
    max_request_bytes: int = _env_int("MAX_REQUEST_BYTES", 10 * 1024 * 1024)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Install the root log format once; later calls only adjust the level."""
    resolved = logging.getLevelName((level or "INFO").strip().upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=resolved,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    root.setLevel(resolved)


def mask_secret(value: Optional[str]) -> str:
    """Mask secret values for safe log output."""
    trimmed = (value or "").strip()
    if len(trimmed) < 8:
        return "***"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


settings = get_settings()
