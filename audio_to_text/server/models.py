"""Pydantic request/response models for the HTTP API.

WHY: FastAPI endpoints need typed schemas for response serialization and
the generated OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Phase values match audio_to_text.core.batch.JobPhase exactly
- Python 3.9+ compatible (Optional/List from typing)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from audio_to_text.api.models import TranscriptResult
from audio_to_text.core.batch import JobState


class UtteranceModel(BaseModel):
    speaker: str = Field(description="Speaker label assigned by the backend (e.g. 'A').")
    start_ms: int = Field(description="Utterance start in milliseconds.")
    end_ms: int = Field(description="Utterance end in milliseconds.")
    text: str = Field(description="Utterance text.")
    confidence: Optional[float] = Field(default=None, description="Backend confidence 0.0-1.0.")


class TranscriptModel(BaseModel):
    text: Optional[str] = Field(default=None, description="Full transcript text.")
    utterances: Optional[List[UtteranceModel]] = Field(
        default=None,
        description="Speaker-segmented utterances, when speaker labels were enabled.",
    )
    confidence: Optional[float] = Field(default=None, description="Overall confidence.")
    language: Optional[str] = Field(default=None, description="Language code reported by the backend.")

    @classmethod
    def from_result(cls, result: TranscriptResult) -> TranscriptModel:
        return cls(**result.to_dict())


class JobStateModel(BaseModel):
    """State of one file within a batch.

    RULES:
    - result is only set when phase is 'completed'
    - error is only set when phase is 'failed'
    """

    index: int = Field(description="Position of the file in the submission.")
    file_name: str = Field(description="Original uploaded filename.")
    phase: str = Field(description="pending, uploading, polling, completed, or failed.")
    progress: int = Field(description="Upload progress 0-100.")
    result: Optional[TranscriptModel] = Field(default=None, description="Transcript when completed.")
    error: Optional[str] = Field(default=None, description="Error message when failed.")

    @classmethod
    def from_state(cls, index: int, state: JobState) -> JobStateModel:
        return cls(
            index=index,
            file_name=state.file_name,
            phase=state.phase.value,
            progress=state.progress,
            result=TranscriptModel.from_result(state.result) if state.result else None,
            error=state.error,
        )


class BatchCreatedResponse(BaseModel):
    id: str = Field(description="Batch identifier for polling.")
    files: List[str] = Field(description="Accepted file names in submission order.")


class BatchResponse(BaseModel):
    id: str = Field(description="Batch identifier.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")
    finished: bool = Field(description="True once every file is completed or failed.")
    files: List[JobStateModel] = Field(description="Per-file state, index-aligned with the submission.")


class RealtimeTokenResponse(BaseModel):
    token: str = Field(description="Temporary credential for the realtime socket.")


class ErrorResponse(BaseModel):
    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
