from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

LANGUAGES = {"es", "en"}
_BYTES_PER_MB = 1024 * 1024


def bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    candidates = [
        repo_root / ".env",
        repo_root / "backend/.env",
    ]
    for candidate in candidates:
        if candidate.exists():
            load_dotenv(candidate, override=False)


def normalize_language(value: str | None) -> str:
    candidate = (value or "").strip().lower()
    if candidate not in LANGUAGES:
        raise ValueError(f"Unsupported language: {value!r}")
    return candidate


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    analysis_model: str = "gemini-3-pro-preview"
    chat_model: str = "gemini-3-pro-preview"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Fenrir"
    max_file_size_mb: float = 20.0
    analysis_timeout_seconds: float = 120.0
    chat_timeout_seconds: float = 25.0
    tts_timeout_seconds: float = 30.0
    default_language: str = "es"
    recording_sample_rate: int = 16000
    allowed_origins: tuple[str, ...] = ("http://localhost:3000",)

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * _BYTES_PER_MB)

    @classmethod
    def from_env(cls) -> "Settings":
        bootstrap_local_env()
        api_key = (os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "").strip()
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        return cls(
            api_key=api_key,
            base_url=_env_str("HEALTHVIBE_GEMINI_BASE_URL", cls.base_url).rstrip("/"),
            analysis_model=_env_str("HEALTHVIBE_ANALYSIS_MODEL", cls.analysis_model),
            chat_model=_env_str("HEALTHVIBE_CHAT_MODEL", cls.chat_model),
            tts_model=_env_str("HEALTHVIBE_TTS_MODEL", cls.tts_model),
            tts_voice=_env_str("HEALTHVIBE_TTS_VOICE", cls.tts_voice),
            max_file_size_mb=_env_float("HEALTHVIBE_MAX_FILE_SIZE_MB", cls.max_file_size_mb),
            analysis_timeout_seconds=_env_float("HEALTHVIBE_ANALYSIS_TIMEOUT_SECONDS", cls.analysis_timeout_seconds),
            chat_timeout_seconds=_env_float("HEALTHVIBE_CHAT_TIMEOUT_SECONDS", cls.chat_timeout_seconds),
            tts_timeout_seconds=_env_float("HEALTHVIBE_TTS_TIMEOUT_SECONDS", cls.tts_timeout_seconds),
            default_language=normalize_language(_env_str("HEALTHVIBE_DEFAULT_LANGUAGE", cls.default_language)),
            recording_sample_rate=_env_int("HEALTHVIBE_RECORDING_SAMPLE_RATE", cls.recording_sample_rate),
            allowed_origins=tuple(origin.strip() for origin in origins if origin.strip()),
        )
