"""Batch orchestration: many files, bounded concurrency, independent states.

WHY: Users drop a whole folder of recordings at once. Each file must go
through upload → job creation → polling on its own, failures must stay
local to the file that caused them, and the caller wants to watch progress
for every file while the batch is still running.

HOW: Four pieces work together:
  JobPhase          — closed enum of per-file phases
  JobState          — immutable per-file record; transitions return a new
                      record and reject edges the lifecycle forbids
  FileTask          — one input file plus its position in the submission
  BatchOrchestrator — owns the JobState list, runs one pipeline per file
                      through ConcurrencyLimiter, and publishes every state
                      replacement to subscribers as it happens

RULES:
- N input files produce exactly N JobState entries, index-aligned
- Each entry is written only by its own pipeline, always as one whole-record
  replacement of its list slot
- Exactly one of result/error is set once a phase is terminal, never both
- transcribe_all never raises for per-file failures
- Upload progress is 0-100 and only meaningful while Uploading
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Union

from audio_to_text import config
from audio_to_text.api.client import JobClient
from audio_to_text.api.models import JobOptions, TranscriptResult
from audio_to_text.core.limiter import ConcurrencyLimiter
from audio_to_text.core.polling import PollLoop
from audio_to_text.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class JobPhase(str, enum.Enum):
    """Per-file pipeline phase.

    RULES:
    - pending: waiting for a concurrency slot
    - uploading: audio bytes being sent
    - polling: job created (or being created) and awaiting a terminal status
    - completed / failed: terminal
    """

    PENDING = "pending"
    UPLOADING = "uploading"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.COMPLETED, JobPhase.FAILED)


_TRANSITIONS: Dict[JobPhase, FrozenSet[JobPhase]] = {
    JobPhase.PENDING: frozenset({JobPhase.UPLOADING, JobPhase.FAILED}),
    JobPhase.UPLOADING: frozenset({JobPhase.UPLOADING, JobPhase.POLLING, JobPhase.FAILED}),
    JobPhase.POLLING: frozenset({JobPhase.COMPLETED, JobPhase.FAILED}),
    JobPhase.COMPLETED: frozenset(),
    JobPhase.FAILED: frozenset(),
}


@dataclass(frozen=True)
class JobState:
    """Snapshot of one file's progress through the batch pipeline."""

    file_name: str
    phase: JobPhase = JobPhase.PENDING
    progress: int = 0
    result: Optional[TranscriptResult] = None
    error: Optional[str] = None

    def _advance(self, phase: JobPhase, **changes) -> JobState:  # noqa: ANN003
        if phase not in _TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"{self.file_name}: cannot move from {self.phase.value} to {phase.value}"
            )
        return replace(self, phase=phase, **changes)

    def uploading(self, progress: int = 0) -> JobState:
        return self._advance(JobPhase.UPLOADING, progress=max(0, min(100, progress)))

    def polling(self) -> JobState:
        return self._advance(JobPhase.POLLING, progress=100)

    def completed(self, result: TranscriptResult) -> JobState:
        return self._advance(JobPhase.COMPLETED, progress=100, result=result, error=None)

    def failed(self, error: str) -> JobState:
        return self._advance(JobPhase.FAILED, result=None, error=error)

    def to_dict(self) -> dict:
        return {
            "file_name": self.file_name,
            "phase": self.phase.value,
            "progress": self.progress,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class AudioFile:
    """Raw audio content plus the name it was submitted under."""

    name: str
    data: bytes

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> AudioFile:
        path = Path(path)
        return cls(name=path.name, data=path.read_bytes())


@dataclass(frozen=True)
class FileTask:
    """One submitted file and its position in the submission list."""

    source: AudioFile
    index: int


UpdateCallback = Callable[[int, JobState], None]


@dataclass
class _BatchRun:
    """State list and per-call callback of one transcribe_all invocation."""

    states: List[JobState]
    on_update: Optional[UpdateCallback] = None


class BatchOrchestrator:
    """Transcribe a list of files with bounded concurrency.

    The orchestrator is reusable across batches. Concurrent transcribe_all
    calls each keep their own state list and on_update callback, and the
    concurrency ceiling applies per call. `states` reflects the most
    recently started batch; subscribe() listeners see every batch.

    Args:
        client: an entered JobClient.
        concurrency: maximum number of file pipelines in flight.
        poll_interval / max_polls / max_poll_seconds: PollLoop settings.
        file_timeout: optional seconds after which a still-running file
            pipeline is abandoned and marked failed.
        sleep: sleep coroutine handed to PollLoop.
    """

    def __init__(
        self,
        client: JobClient,
        concurrency: int = config.DEFAULT_CONCURRENCY,
        poll_interval: float = config.POLL_INTERVAL_S,
        max_polls: Optional[int] = config.POLL_MAX_ATTEMPTS,
        max_poll_seconds: Optional[float] = config.POLL_MAX_SECONDS,
        file_timeout: Optional[float] = None,
        sleep=asyncio.sleep,  # noqa: ANN001
    ) -> None:
        self._client = client
        self._limiter = ConcurrencyLimiter(concurrency)
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._max_poll_seconds = max_poll_seconds
        self._file_timeout = file_timeout
        self._sleep = sleep
        self._states: List[JobState] = []
        self._listeners: List[UpdateCallback] = []

    @property
    def limiter(self) -> ConcurrencyLimiter:
        return self._limiter

    @property
    def states(self) -> List[JobState]:
        """A copy of the current per-file states."""
        return list(self._states)

    def subscribe(self, callback: UpdateCallback) -> Callable[[], None]:
        """Register callback(index, state); returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def transcribe_all(
        self,
        files: Sequence[AudioFile],
        options: Optional[JobOptions] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> List[JobState]:
        """Run every file through upload → create → poll and return final states."""
        options = options or JobOptions()
        tasks = [FileTask(source=f, index=i) for i, f in enumerate(files)]
        run = _BatchRun(states=[JobState(file_name=t.source.name) for t in tasks], on_update=on_update)
        self._states = run.states

        for task in tasks:
            self._notify(run, task.index, run.states[task.index])

        logger.info(
            "Transcribing %d file(s) with concurrency %d",
            len(tasks), self._limiter.limit,
        )
        await self._limiter.run(
            [self._make_runner(run, task, options) for task in tasks]
        )

        failed = sum(1 for s in run.states if s.phase is JobPhase.FAILED)
        logger.info("Batch finished: %d completed, %d failed", len(tasks) - failed, failed)
        return list(run.states)

    # ------------------------------------------------------------------
    # Per-file pipeline
    # ------------------------------------------------------------------

    def _make_runner(self, run: _BatchRun, task: FileTask, options: JobOptions):  # noqa: ANN202
        async def runner() -> None:
            if self._file_timeout is None:
                await self._run_pipeline(run, task, options)
                return
            try:
                await asyncio.wait_for(
                    self._run_pipeline(run, task, options), timeout=self._file_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("%s timed out after %.0fs", task.source.name, self._file_timeout)
                self._fail(run, task.index, f"Timed out after {self._file_timeout:g}s")

        return runner

    async def _run_pipeline(
        self, run: _BatchRun, task: FileTask, options: JobOptions
    ) -> None:
        index = task.index
        self._set(run, index, run.states[index].uploading(0))

        def on_progress(sent: int, total: int) -> None:
            pct = 100 if total == 0 else int(sent * 100 / total)
            current = run.states[index]
            if current.phase is JobPhase.UPLOADING and pct != current.progress:
                self._set(run, index, current.uploading(pct))

        try:
            locator = await self._client.upload(task.source.data, on_progress=on_progress)
            self._set(run, index, run.states[index].polling())

            job_id = await self._client.create_job(locator, options)
            poller = PollLoop(
                self._client,
                interval=self._poll_interval,
                max_attempts=self._max_polls,
                max_duration=self._max_poll_seconds,
                sleep=self._sleep,
            )
            result = await poller.run(job_id)
        except Exception as exc:
            logger.warning("Transcription failed for %s: %s", task.source.name, exc)
            self._fail(run, index, str(exc) or exc.__class__.__name__)
            return

        self._set(run, index, run.states[index].completed(result))

    def _fail(self, run: _BatchRun, index: int, message: str) -> None:
        current = run.states[index]
        if not current.phase.is_terminal:
            self._set(run, index, current.failed(message))

    def _set(self, run: _BatchRun, index: int, state: JobState) -> None:
        run.states[index] = state
        self._notify(run, index, state)

    def _notify(self, run: _BatchRun, index: int, state: JobState) -> None:
        listeners = list(self._listeners)
        if run.on_update is not None:
            listeners.append(run.on_update)
        for listener in listeners:
            try:
                listener(index, state)
            except Exception:
                logger.exception("Update listener failed for index %d", index)
