"""Shared fixtures and fakes for the audio_to_text test suite.

WHY: Client, poll loop, orchestrator, and API tests all need a backend that
behaves like the real one without touching the network.

HOW: FakeJobClient implements the JobClient coroutine surface in memory and
records every call; status sequences are scripted per job. completed_payload
builds a realistic completed status body. An autouse fixture pins a test API
key so credential resolution never depends on the developer's .env.

RULES:
- No test reaches the network
- Sleep is always replaced with a recorder
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from audio_to_text.api.models import JobOptions, RemoteJob, RemoteStatus
from audio_to_text.errors import UploadError


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("ASSEMBLYAI_API_KEY", "test-key")


def completed_payload(job_id: str = "job-1", text: str = "안녕하세요", utterances=None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "id": job_id,
        "status": "completed",
        "text": text,
        "confidence": 0.93,
        "language_code": "ko",
    }
    if utterances is not None:
        body["utterances"] = utterances
    return body


SAMPLE_UTTERANCES: List[Dict[str, Any]] = [
    {"speaker": "A", "start": 120, "end": 1800, "text": "안녕하세요", "confidence": 0.95},
    {"speaker": "B", "start": 2100, "end": 3950, "text": "반갑습니다", "confidence": 0.91},
    {"speaker": "A", "start": 4200, "end": 6010, "text": "시작할까요?", "confidence": 0.9},
]


class SleepRecorder:
    """Drop-in for asyncio.sleep that records delays and yields once."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeJobClient:
    """In-memory stand-in for an entered JobClient.

    Behaviour is keyed by the uploaded bytes:
      - data in fail_uploads → UploadError
      - otherwise the locator is "loc:<data>" and the job id "job:<data>"
      - statuses[data] is the scripted list of status strings for that job
        (default: ["processing", "completed"])
    """

    def __init__(
        self,
        statuses: Optional[Dict[bytes, List[str]]] = None,
        fail_uploads: Optional[set] = None,
        upload_delay_steps: int = 0,
    ) -> None:
        self.statuses = statuses or {}
        self.fail_uploads = fail_uploads or set()
        self.upload_delay_steps = upload_delay_steps
        self.calls: List[tuple] = []
        self.created: Dict[str, bytes] = {}
        self.in_flight = 0
        self.peak_in_flight = 0
        self._remaining: Dict[str, List[str]] = {}

    async def upload(self, data: bytes, on_progress=None) -> str:  # noqa: ANN001
        self.calls.append(("upload", data))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            for _ in range(self.upload_delay_steps):
                await asyncio.sleep(0)
            if data in self.fail_uploads:
                raise UploadError(413, "file too large")
            if on_progress:
                half = len(data) // 2
                on_progress(half, len(data))
                on_progress(len(data), len(data))
            return "loc:" + data.decode()
        finally:
            self.in_flight -= 1

    async def create_job(self, locator: str, options: Optional[JobOptions] = None) -> str:
        self.calls.append(("create_job", locator, options))
        data = locator[len("loc:"):].encode()
        job_id = "job:" + data.decode()
        self.created[job_id] = data
        self._remaining[job_id] = list(self.statuses.get(data, ["processing", "completed"]))
        return job_id

    async def get_status(self, job_id: str) -> RemoteJob:
        self.calls.append(("get_status", job_id))
        status = self._remaining[job_id].pop(0)
        if status == "completed":
            return RemoteJob.from_dict(completed_payload(job_id, text="text of " + job_id))
        if status == "error":
            return RemoteJob(id=job_id, status=RemoteStatus.ERROR, error="audio too short")
        return RemoteJob(id=job_id, status=RemoteStatus(status))


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
