"""Batch orchestration core: poll loop, concurrency limiter, orchestrator."""

from audio_to_text.core.batch import (
    AudioFile,
    BatchOrchestrator,
    FileTask,
    JobPhase,
    JobState,
)
from audio_to_text.core.limiter import ConcurrencyLimiter, TaskOutcome
from audio_to_text.core.polling import PollLoop

__all__ = [
    "AudioFile",
    "BatchOrchestrator",
    "ConcurrencyLimiter",
    "FileTask",
    "JobPhase",
    "JobState",
    "PollLoop",
    "TaskOutcome",
]
