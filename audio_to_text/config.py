"""Configuration constants and .env loading.

WHY: Endpoints, polling cadence, concurrency ceiling, and streaming audio
format are deployment knobs. Keeping them as plain module-level values makes
them easy to find and override without touching pipeline code.

HOW: python-dotenv loads the .env file on import. Every constant reads an
environment variable with a sensible default. load_api_key() gives a clear
error when the credential is missing.

RULES:
- The API key is loaded from .env / environment, never hardcoded
- POLL_MAX_ATTEMPTS and POLL_MAX_SECONDS default to None (unbounded polling)
- Streaming audio is raw little-endian PCM: STREAM_SAMPLE_RATE Hz,
  STREAM_BIT_DEPTH bits, framed into STREAM_FRAME_MS chunks
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

from audio_to_text.errors import MissingCredentialError

load_dotenv()


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return int(raw)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return float(raw)


# ---------------------------------------------------------------------------
# Backend endpoints
# ---------------------------------------------------------------------------

API_BASE_URL = os.getenv("ASSEMBLYAI_BASE_URL", "https://api.assemblyai.com/v2")
REALTIME_URL = os.getenv(
    "ASSEMBLYAI_REALTIME_URL", "wss://api.assemblyai.com/v2/realtime/ws"
)

# ---------------------------------------------------------------------------
# Transcription defaults
# ---------------------------------------------------------------------------

DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "ko")
DEFAULT_SPEAKER_LABELS = os.getenv("DEFAULT_SPEAKER_LABELS", "true").lower() == "true"

# ---------------------------------------------------------------------------
# Batch pipeline
# ---------------------------------------------------------------------------

DEFAULT_CONCURRENCY = _env_int("DEFAULT_CONCURRENCY", 5)
POLL_INTERVAL_S = _env_float("POLL_INTERVAL_S", 2.0)
POLL_MAX_ATTEMPTS = _env_int("POLL_MAX_ATTEMPTS", None)
POLL_MAX_SECONDS = _env_float("POLL_MAX_SECONDS", None)
UPLOAD_CHUNK_BYTES = 64 * 1024

SUPPORTED_FORMATS: set[str] = {
    ".aac", ".aiff", ".amr", ".flac", ".m4a", ".mp3",
    ".mp4", ".ogg", ".opus", ".pcm", ".raw", ".wav", ".webm",
}
"""Audio/video file extensions accepted for upload (lowercase, with dot)."""

# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

STREAM_SAMPLE_RATE = _env_int("STREAM_SAMPLE_RATE", 16000)
STREAM_BIT_DEPTH = _env_int("STREAM_BIT_DEPTH", 16)
STREAM_FRAME_MS = _env_int("STREAM_FRAME_MS", 100)
REALTIME_TOKEN_TTL_S = _env_int("REALTIME_TOKEN_TTL_S", 3600)


def load_api_key() -> str:
    """Load the AssemblyAI API key from the environment.

    RULES:
    - Raises MissingCredentialError if the key is missing or blank
    - Never returns a default/placeholder value
    """
    key = os.getenv("ASSEMBLYAI_API_KEY", "").strip()
    if not key:
        raise MissingCredentialError(
            "AssemblyAI API key not configured. "
            "Add ASSEMBLYAI_API_KEY to the .env file or the environment."
        )
    return key


def resolve_credential(credential: Optional[str]) -> str:
    """Return an explicit credential, falling back to load_api_key()."""
    if credential is not None and credential.strip():
        return credential.strip()
    return load_api_key()
