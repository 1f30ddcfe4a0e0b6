"""Batch transcription API client package.

WHY: The batch pipeline needs to upload audio, create jobs, and poll their
status. This package keeps all backend HTTP communication behind JobClient.

HOW: JobClient wraps httpx.AsyncClient; responses are parsed into the typed
dataclasses defined in models.py.

RULES:
- All backend HTTP calls go through JobClient (no direct httpx usage elsewhere)
- Authentication is the credential sent in the authorization header
"""

from audio_to_text.api.client import JobClient
from audio_to_text.api.models import (
    JobOptions,
    RemoteJob,
    RemoteStatus,
    TranscriptResult,
    Utterance,
)

__all__ = [
    "JobClient",
    "JobOptions",
    "RemoteJob",
    "RemoteStatus",
    "TranscriptResult",
    "Utterance",
]
