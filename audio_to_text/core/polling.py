"""Poll a remote transcription job until it reaches a terminal status.

WHY: Transcription is not instant. After job creation the client must keep
reading the job status until the backend reports "completed" or "error".
Processing time is unbounded, so by default the loop is too.

HOW: A fixed delay separates consecutive status queries. Each iteration is
one get_status call followed by status inspection; the sleep only happens
when another query is needed. Optional max_attempts / max_duration guards
turn the loop into a bounded one when explicitly configured.

RULES:
- Returns the TranscriptResult when status is "completed"
- Raises TranscriptionFailedError when status is "error"
- StatusQueryError from the client propagates unchanged (fatal, no retry)
- Raises PollTimeoutError only when a guard was configured and exceeded
- Never sleeps after a terminal status
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Optional, Protocol

from audio_to_text import config
from audio_to_text.api.models import RemoteJob, RemoteStatus, TranscriptResult
from audio_to_text.errors import PollTimeoutError, TranscriptionFailedError

logger = logging.getLogger(__name__)


class StatusSource(Protocol):
    async def get_status(self, job_id: str) -> RemoteJob: ...


class PollLoop:
    """Drive one job from "created" to a terminal status by polling.

    Args:
        client: anything with an async get_status(job_id) (normally JobClient).
        interval: seconds between consecutive queries.
        max_attempts: optional ceiling on the number of queries.
        max_duration: optional ceiling on elapsed seconds.
        on_status: optional callback invoked with every RemoteJob read.
        sleep: injectable sleep coroutine (tests pass a recorder).
    """

    def __init__(
        self,
        client: StatusSource,
        interval: float = config.POLL_INTERVAL_S,
        max_attempts: Optional[int] = config.POLL_MAX_ATTEMPTS,
        max_duration: Optional[float] = config.POLL_MAX_SECONDS,
        on_status: Optional[Callable[[RemoteJob], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_duration = max_duration
        self._on_status = on_status
        self._sleep = sleep
        self._clock = clock

    async def run(self, job_id: str) -> TranscriptResult:
        """Poll job_id until it completes or fails."""
        start = self._clock()
        attempts = 0

        while True:
            job = await self._client.get_status(job_id)
            attempts += 1

            if self._on_status:
                self._on_status(job)

            if job.status is RemoteStatus.COMPLETED:
                logger.info("Job %s completed after %d status queries", job_id, attempts)
                return job.result or TranscriptResult(text="")

            if job.status is RemoteStatus.ERROR:
                raise TranscriptionFailedError(job_id, job.error)

            logger.debug("Job %s is %s (query %d)", job_id, job.status.value, attempts)

            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise PollTimeoutError(
                    f"Job {job_id} still {job.status.value} after "
                    f"{attempts} status queries (limit: {self.max_attempts})"
                )
            elapsed = self._clock() - start
            if self.max_duration is not None and elapsed + self.interval > self.max_duration:
                raise PollTimeoutError(
                    f"Job {job_id} still {job.status.value} after "
                    f"{elapsed:.0f}s (limit: {self.max_duration:.0f}s)"
                )

            await self._sleep(self.interval)
