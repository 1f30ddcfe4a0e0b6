"""Exception taxonomy for batch transcription and live streaming.

WHY: Callers need typed exceptions to tell a rejected upload from a failed
job, a broken status query, or a dropped realtime channel. The batch
orchestrator converts every one of these into a per-file Failed state, so
each carries a message that reads well on its own.

HOW: Everything derives from AudioToTextError. The three HTTP step errors
share APIError, which wraps the HTTP status code (None for transport-level
failures) and the backend's response body.

RULES:
- UploadError / JobCreationError / StatusQueryError: one per HTTP step
- TranscriptionFailedError: backend reported status "error" for the job
- PollTimeoutError: an explicitly configured poll guard was exceeded
- StreamConnectionError: realtime channel could not open or dropped; it is
  also a builtin ConnectionError so generic handlers still catch it
- MissingCredentialError: no usable credential was supplied
"""

from __future__ import annotations

from typing import Optional


class AudioToTextError(Exception):
    """Base class for every error raised by this package."""


class APIError(AudioToTextError):
    """Raised when a backend HTTP call fails.

    RULES:
    - status_code is None when the request never got a response
    - message is the response body text or the transport error summary
    """

    step = "request"

    def __init__(self, status_code: Optional[int], message: str) -> None:
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"{self.step} failed: {message}")
        else:
            super().__init__(f"{self.step} failed ({status_code}): {message}")


class UploadError(APIError):
    step = "Upload"


class JobCreationError(APIError):
    step = "Job creation"


class StatusQueryError(APIError):
    step = "Status query"


class TranscriptionFailedError(AudioToTextError):
    """Raised when the backend reports a job in the "error" status."""

    def __init__(self, job_id: str, reason: Optional[str] = None) -> None:
        self.job_id = job_id
        self.reason = reason
        super().__init__(
            f"Transcription {job_id} failed: {reason or 'backend reported an error'}"
        )


class PollTimeoutError(AudioToTextError, TimeoutError):
    """Raised when polling exceeds a configured attempt or duration guard."""


class StreamConnectionError(AudioToTextError, ConnectionError):
    """Raised when the realtime channel cannot be opened or faults."""


class MissingCredentialError(AudioToTextError, ValueError):
    """Raised when no valid credential is available."""


class InvalidTransitionError(AudioToTextError, ValueError):
    """Raised when a JobState is moved along an edge the lifecycle forbids."""
