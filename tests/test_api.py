"""Tests for the FastAPI batch transcription API.

HOW: FastAPI TestClient drives the app in-process. The background runner
is patched out for endpoint tests; tests that need finished entries write
states straight into the store. The background pipeline itself is tested
by running _run_batch against FakeJobClient.

RULES:
- The backend is never called
- The batch store is reset before each test
"""

from __future__ import annotations

import asyncio
import functools
import io
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeJobClient, SleepRecorder

from audio_to_text.api.models import JobOptions, TranscriptResult, Utterance
from audio_to_text.core.batch import AudioFile, BatchOrchestrator, JobPhase, JobState
from audio_to_text.errors import APIError
from audio_to_text.server import app as app_module
from audio_to_text.server.app import app, batch_store


@pytest.fixture(autouse=True)
def _reset_batch_store():
    batch_store._batches.clear()
    yield
    batch_store._batches.clear()


@pytest.fixture
def client():
    with patch(
        "audio_to_text.server.app._run_batch_sync",
        new=lambda *args, **kwargs: None,
    ):
        yield TestClient(app)


def _audio(name: str = "talk.wav", content: bytes = b"fake audio"):
    return ("files", (name, io.BytesIO(content), "audio/wav"))


class _ClientContext:
    """Async context manager standing in for JobClient()."""

    def __init__(self, inner):
        self.inner = inner

    async def __aenter__(self):
        return self.inner

    async def __aexit__(self, *exc):
        return None


# ---------------------------------------------------------------------------
# POST /transcriptions
# ---------------------------------------------------------------------------


class TestCreateTranscriptions:

    def test_submit_multiple_files(self, client):
        resp = client.post(
            "/transcriptions",
            files=[_audio("one.wav"), _audio("two.mp3")],
            data={"language_code": "ko", "speaker_labels": "true"},
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["files"] == ["one.wav", "two.mp3"]
        batch = batch_store.get_batch(body["id"])
        assert [s.phase for s in batch.states] == [JobPhase.PENDING, JobPhase.PENDING]
        assert batch.config["language_code"] == "ko"
        assert batch.config["speaker_labels"] is True

    def test_background_runner_receives_files_and_options(self):
        calls = []
        with patch(
            "audio_to_text.server.app._run_batch_sync",
            new=lambda *args: calls.append(args),
        ):
            resp = TestClient(app).post(
                "/transcriptions",
                files=[_audio("one.wav", b"abc")],
                data={"speaker_labels": "false", "concurrency": "2"},
            )

        assert resp.status_code == 201
        batch_id, files, options, store, concurrency = calls[0]
        assert batch_id == resp.json()["id"]
        assert files == [AudioFile(name="one.wav", data=b"abc")]
        assert options.speaker_labels is False
        assert store is batch_store
        assert concurrency == 2

    def test_path_components_are_stripped(self, client):
        resp = client.post("/transcriptions", files=[_audio("../../etc/evil.wav")])

        assert resp.status_code == 201
        assert resp.json()["files"] == ["evil.wav"]

    def test_reject_unsupported_file_type(self, client):
        resp = client.post(
            "/transcriptions",
            files=[_audio("ok.wav"), ("files", ("notes.xyz", io.BytesIO(b"x"), "text/plain"))],
        )

        assert resp.status_code == 400
        assert "Unsupported file type" in resp.json()["detail"]
        assert batch_store._batches == {}

    def test_too_many_batches(self, client, monkeypatch):
        monkeypatch.setattr(batch_store, "max_batches", 0)

        resp = client.post("/transcriptions", files=[_audio()])

        assert resp.status_code == 429


# ---------------------------------------------------------------------------
# GET /transcriptions/{id}
# ---------------------------------------------------------------------------


class TestGetTranscriptions:

    def test_reports_each_file(self, client):
        batch = batch_store.create_batch(["a.wav", "b.wav"])
        batch_store.update_state(batch.id, 0, JobState(file_name="a.wav").uploading(30))
        batch_store.update_state(batch.id, 1, JobState(file_name="b.wav").failed("Upload failed (413): too big"))

        resp = client.get("/transcriptions/{}".format(batch.id))

        assert resp.status_code == 200
        body = resp.json()
        assert body["finished"] is False
        assert body["files"][0]["phase"] == "uploading"
        assert body["files"][0]["progress"] == 30
        assert body["files"][1]["phase"] == "failed"
        assert body["files"][1]["error"] == "Upload failed (413): too big"
        assert body["files"][1]["result"] is None

    def test_completed_entry_includes_result(self, client):
        batch = batch_store.create_batch(["a.wav"])
        result = TranscriptResult(
            text="hi there",
            utterances=[Utterance(speaker="A", start_ms=0, end_ms=900, text="hi there")],
        )
        batch_store.update_state(
            batch.id, 0, JobState(file_name="a.wav").uploading().polling().completed(result)
        )

        body = client.get("/transcriptions/{}".format(batch.id)).json()

        assert body["finished"] is True
        assert body["files"][0]["result"]["utterances"][0]["speaker"] == "A"
        assert body["files"][0]["error"] is None

    def test_not_found(self, client):
        assert client.get("/transcriptions/missing").status_code == 404


# ---------------------------------------------------------------------------
# Download and delete
# ---------------------------------------------------------------------------


class TestDownload:

    def _completed_batch(self):
        batch = batch_store.create_batch(["meeting.m4a", "other.wav"])
        result = TranscriptResult(
            text="hello",
            utterances=[Utterance(speaker="B", start_ms=1000, end_ms=2500, text="hello")],
        )
        batch_store.update_state(
            batch.id, 0, JobState(file_name="meeting.m4a").uploading().polling().completed(result)
        )
        return batch

    def test_plain_text_download(self, client):
        batch = self._completed_batch()

        resp = client.get("/transcriptions/{}/files/0/plain_text".format(batch.id))

        assert resp.status_code == 200
        assert resp.text == "Speaker B [00:01 - 00:02]\nhello\n"
        assert 'filename="meeting-transcription.txt"' in resp.headers["content-disposition"]

    def test_not_completed_conflict(self, client):
        batch = self._completed_batch()

        resp = client.get("/transcriptions/{}/files/1/plain_text".format(batch.id))

        assert resp.status_code == 409

    def test_unknown_index_and_format(self, client):
        batch = self._completed_batch()

        assert client.get("/transcriptions/{}/files/9/plain_text".format(batch.id)).status_code == 404
        assert client.get("/transcriptions/{}/files/0/docx".format(batch.id)).status_code == 404


class TestDelete:

    def test_delete_then_404(self, client):
        batch = batch_store.create_batch(["a.wav"])

        assert client.delete("/transcriptions/{}".format(batch.id)).status_code == 204
        assert client.get("/transcriptions/{}".format(batch.id)).status_code == 404
        assert client.delete("/transcriptions/{}".format(batch.id)).status_code == 404


# ---------------------------------------------------------------------------
# Realtime token and health
# ---------------------------------------------------------------------------


class TestRealtimeToken:

    def test_issues_token(self, client):
        class TokenClient:
            async def create_realtime_token(self):
                return "tmp-123"

        with patch.object(app_module, "JobClient", lambda: _ClientContext(TokenClient())):
            resp = client.get("/realtime-token")

        assert resp.status_code == 200
        assert resp.json() == {"token": "tmp-123"}

    def test_backend_refusal_is_502(self, client):
        class RefusingClient:
            async def create_realtime_token(self):
                raise APIError(401, "bad key")

        with patch.object(app_module, "JobClient", lambda: _ClientContext(RefusingClient())):
            resp = client.get("/realtime-token")

        assert resp.status_code == 502

    def test_missing_key_is_500(self, client, monkeypatch):
        monkeypatch.delenv("ASSEMBLYAI_API_KEY", raising=False)

        resp = client.get("/realtime-token")

        assert resp.status_code == 500
        assert "ASSEMBLYAI_API_KEY" in resp.json()["detail"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Background pipeline
# ---------------------------------------------------------------------------


class TestBackgroundPipeline:

    def test_run_batch_mirrors_states_into_store(self, monkeypatch):
        fake = FakeJobClient(fail_uploads={b"bad"})
        monkeypatch.setattr(app_module, "JobClient", lambda: _ClientContext(fake))
        monkeypatch.setattr(
            app_module, "BatchOrchestrator", functools.partial(BatchOrchestrator, sleep=SleepRecorder())
        )
        batch = batch_store.create_batch(["good.wav", "bad.wav"])
        files = [AudioFile(name="good.wav", data=b"good"), AudioFile(name="bad.wav", data=b"bad")]

        asyncio.run(app_module._run_batch(batch.id, files, JobOptions(), batch_store, 2))

        states = batch_store.snapshot(batch.id)
        assert states[0].phase is JobPhase.COMPLETED
        assert states[1].phase is JobPhase.FAILED
        assert batch_store.get_batch(batch.id).completed_at is not None

    def test_missing_credential_fails_every_file(self, monkeypatch):
        monkeypatch.delenv("ASSEMBLYAI_API_KEY", raising=False)
        batch = batch_store.create_batch(["a.wav", "b.wav"])
        files = [AudioFile(name="a.wav", data=b"a"), AudioFile(name="b.wav", data=b"b")]

        asyncio.run(app_module._run_batch(batch.id, files, JobOptions(), batch_store))

        states = batch_store.snapshot(batch.id)
        assert all(s.phase is JobPhase.FAILED for s in states)
        assert "ASSEMBLYAI_API_KEY" in states[0].error
