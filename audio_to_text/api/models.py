"""Transcription backend request and response dataclasses.

WHY: The backend returns flat JSON objects for job status and completed
transcripts. Typed dataclasses make the fields explicit and keep wire names
(``start``/``end``, ``language_code``) out of the rest of the package.

HOW: Each dataclass maps one backend JSON object. ``from_dict`` factories
parse raw responses; ``to_dict`` produces the JSON the HTTP API serves.

RULES:
- RemoteStatus values match the backend exactly: queued, processing,
  completed, error
- Utterance times are integer milliseconds; utterances keep the order the
  backend delivered (never resorted here)
- TranscriptResult.result is present on a RemoteJob only when completed
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from audio_to_text import config


class RemoteStatus(str, enum.Enum):
    """Lifecycle of a remote job, as observed through status queries."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RemoteStatus.COMPLETED, RemoteStatus.ERROR)


@dataclass(frozen=True)
class Utterance:
    """One speaker-attributed, time-bounded text segment."""

    speaker: str
    start_ms: int
    end_ms: int
    text: str
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Utterance:
        return cls(
            speaker=str(data["speaker"]),
            start_ms=int(data["start"]),
            end_ms=int(data["end"]),
            text=data["text"],
            confidence=data.get("confidence"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "text": self.text,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class TranscriptResult:
    """Structured transcript of one completed job.

    WHY: The backend returns either plain text or, with speaker labels
    enabled, a list of utterances (usually alongside the full text). The
    presentation layer decides how to render either shape.

    RULES:
    - utterances is None when speaker segmentation was off or not returned
    - text may be an empty string for silent audio
    """

    text: Optional[str] = None
    utterances: Optional[List[Utterance]] = None
    confidence: Optional[float] = None
    language: Optional[str] = None

    @property
    def has_utterances(self) -> bool:
        return bool(self.utterances)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TranscriptResult:
        raw_utterances = data.get("utterances")
        utterances = None
        if raw_utterances:
            utterances = [Utterance.from_dict(u) for u in raw_utterances]
        return cls(
            text=data.get("text"),
            utterances=utterances,
            confidence=data.get("confidence"),
            language=data.get("language_code"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "utterances": (
                [u.to_dict() for u in self.utterances]
                if self.utterances is not None else None
            ),
            "confidence": self.confidence,
            "language": self.language,
        }


@dataclass(frozen=True)
class RemoteJob:
    """Status response from GET /transcript/{id}."""

    id: str
    status: RemoteStatus
    result: Optional[TranscriptResult] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], job_id: Optional[str] = None) -> RemoteJob:
        """Parse a status body; job_id fills in when the body omits "id"."""
        status = RemoteStatus(data["status"])
        result = None
        if status is RemoteStatus.COMPLETED:
            result = TranscriptResult.from_dict(data)
        return cls(
            id=data.get("id") or job_id,
            status=status,
            result=result,
            error=data.get("error"),
        )


@dataclass(frozen=True)
class JobOptions:
    """Options sent with job creation."""

    language: Optional[str] = field(default_factory=lambda: config.DEFAULT_LANGUAGE)
    speaker_labels: bool = field(default_factory=lambda: config.DEFAULT_SPEAKER_LABELS)

    def to_request(self, locator: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "audio_url": locator,
            "speaker_labels": self.speaker_labels,
        }
        if self.language:
            body["language_code"] = self.language
        return body
