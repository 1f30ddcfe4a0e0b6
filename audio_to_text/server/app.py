"""FastAPI application exposing batch transcription and realtime tokens.

WHY: Browser front-ends and scripts need an HTTP surface: submit several
audio files at once, watch each file's progress, fetch finished transcripts
as text, and obtain a short-lived token for the realtime socket without
ever seeing the API key.

HOW: POST /transcriptions accepts a multipart upload of one or more files,
creates a batch in the BatchStore, and runs the BatchOrchestrator in the
background. Every JobState replacement the orchestrator publishes is copied
into the store, so GET /transcriptions/{id} always shows live progress.

RULES:
- Error responses use the shared ErrorResponse schema
- Background work uses FastAPI BackgroundTasks (sync wrapper + asyncio.run)
- The batch store is a module-level singleton; expired batches are removed
  by a periodic task started in the app lifespan
- File extensions are checked against config.SUPPORTED_FORMATS
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from audio_to_text import __version__, config
from audio_to_text.api.client import JobClient
from audio_to_text.api.models import JobOptions
from audio_to_text.core.batch import AudioFile, BatchOrchestrator, JobPhase
from audio_to_text.errors import APIError, MissingCredentialError
from audio_to_text.formatters import FORMATTERS
from audio_to_text.server.models import (
    BatchCreatedResponse,
    BatchResponse,
    ErrorResponse,
    HealthResponse,
    JobStateModel,
    RealtimeTokenResponse,
)
from audio_to_text.server.store import BatchStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

batch_store = BatchStore()


async def _periodic_cleanup() -> None:
    """Run batch cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        batch_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Audio To Text API",
    description=(
        "Submit one or many audio files for transcription, follow per-file "
        "progress, download transcripts, and issue realtime streaming tokens."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in config.SUPPORTED_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}' ({}). Supported formats: {}".format(
                ext, filename, ", ".join(sorted(config.SUPPORTED_FORMATS))
            ),
        )


async def _run_batch(
    batch_id: str,
    files: List[AudioFile],
    options: JobOptions,
    store: BatchStore,
    concurrency: int = config.DEFAULT_CONCURRENCY,
) -> None:
    """Transcribe a stored batch, mirroring every state update into the store."""

    def on_update(index: int, state) -> None:  # noqa: ANN001
        store.update_state(batch_id, index, state)

    try:
        async with JobClient() as client:
            orchestrator = BatchOrchestrator(client, concurrency=concurrency)
            await orchestrator.transcribe_all(files, options, on_update=on_update)
    except MissingCredentialError as exc:
        logger.error("Batch %s cannot run: %s", batch_id, exc)
        states = store.snapshot(batch_id) or []
        for index, state in enumerate(states):
            if not state.phase.is_terminal:
                store.update_state(batch_id, index, state.failed(str(exc)))


def _run_batch_sync(
    batch_id: str,
    files: List[AudioFile],
    options: JobOptions,
    store: BatchStore,
    concurrency: int = config.DEFAULT_CONCURRENCY,
) -> None:
    """Synchronous wrapper for BackgroundTasks."""
    asyncio.run(_run_batch(batch_id, files, options, store, concurrency))


def _get_batch_or_404(batch_id: str):  # noqa: ANN202
    batch = batch_store.get_batch(batch_id)
    if batch is None:
        raise HTTPException(status_code=404, detail="Batch not found: {}".format(batch_id))
    return batch


# ---------------------------------------------------------------------------
# Endpoints: Transcriptions
# ---------------------------------------------------------------------------


@app.post(
    "/transcriptions",
    response_model=BatchCreatedResponse,
    status_code=201,
    tags=["transcriptions"],
    summary="Submit a batch of audio files",
    description=(
        "Upload one or more audio files. Returns a batch ID immediately; "
        "poll GET /transcriptions/{id} for per-file progress."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or no files"},
        429: {"model": ErrorResponse, "description": "Too many stored batches"},
    },
)
async def create_transcriptions(
    background_tasks: BackgroundTasks,
    files: Annotated[
        List[UploadFile],
        File(description="Audio files to transcribe."),
    ],
    language_code: Annotated[
        Optional[str],
        Form(description="Language hint (e.g. 'ko', 'en')."),
    ] = config.DEFAULT_LANGUAGE,
    speaker_labels: Annotated[
        bool,
        Form(description="Split the transcript into speaker-labelled utterances."),
    ] = config.DEFAULT_SPEAKER_LABELS,
    concurrency: Annotated[
        int,
        Form(description="Maximum files transcribed at the same time.", ge=1, le=20),
    ] = config.DEFAULT_CONCURRENCY,
) -> BatchCreatedResponse:
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    audio_files: List[AudioFile] = []
    for upload in files:
        # Sanitize filename to prevent path traversal
        name = Path(upload.filename or "upload").name
        _validate_file_extension(name)
        audio_files.append(AudioFile(name=name, data=await upload.read()))

    options = JobOptions(language=language_code or None, speaker_labels=speaker_labels)
    try:
        batch = batch_store.create_batch(
            [f.name for f in audio_files],
            config={
                "language_code": options.language,
                "speaker_labels": options.speaker_labels,
                "concurrency": concurrency,
            },
        )
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    background_tasks.add_task(
        _run_batch_sync, batch.id, audio_files, options, batch_store, concurrency
    )

    return BatchCreatedResponse(id=batch.id, files=[f.name for f in audio_files])


@app.get(
    "/transcriptions/{batch_id}",
    response_model=BatchResponse,
    tags=["transcriptions"],
    summary="Get per-file batch status",
    responses={404: {"model": ErrorResponse, "description": "Batch not found"}},
)
async def get_transcriptions(batch_id: str) -> BatchResponse:
    batch = _get_batch_or_404(batch_id)
    states = batch_store.snapshot(batch_id) or []
    return BatchResponse(
        id=batch.id,
        created_at=batch.created_at,
        finished=all(s.phase.is_terminal for s in states),
        files=[JobStateModel.from_state(i, s) for i, s in enumerate(states)],
    )


@app.get(
    "/transcriptions/{batch_id}/files/{index}/{format_key}",
    tags=["transcriptions"],
    summary="Download one file's transcript",
    description="Render a completed file's transcript with a registered formatter (plain_text, json).",
    responses={
        404: {"model": ErrorResponse, "description": "Batch, file, or format not found"},
        409: {"model": ErrorResponse, "description": "File not yet completed"},
    },
)
async def download_transcript(batch_id: str, index: int, format_key: str) -> Response:
    _get_batch_or_404(batch_id)
    states = batch_store.snapshot(batch_id) or []
    if index < 0 or index >= len(states):
        raise HTTPException(status_code=404, detail="File index {} not found".format(index))
    if format_key not in FORMATTERS:
        raise HTTPException(
            status_code=404,
            detail="Unknown format '{}'. Available: {}".format(
                format_key, ", ".join(sorted(FORMATTERS))
            ),
        )

    state = states[index]
    if state.phase is not JobPhase.COMPLETED or state.result is None:
        raise HTTPException(
            status_code=409,
            detail="File is not completed (current phase: {}).".format(state.phase.value),
        )

    output = FORMATTERS[format_key]().format(state.result)
    filename = output.filename_for(state.file_name)
    return Response(
        content=output.content.encode("utf-8"),
        media_type="{}; charset=utf-8".format(output.media_type),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@app.delete(
    "/transcriptions/{batch_id}",
    status_code=204,
    tags=["transcriptions"],
    summary="Delete a batch",
    responses={404: {"model": ErrorResponse, "description": "Batch not found"}},
)
async def delete_transcriptions(batch_id: str) -> Response:
    if not batch_store.delete_batch(batch_id):
        raise HTTPException(status_code=404, detail="Batch not found: {}".format(batch_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Realtime
# ---------------------------------------------------------------------------


@app.get(
    "/realtime-token",
    response_model=RealtimeTokenResponse,
    tags=["realtime"],
    summary="Issue a temporary realtime token",
    responses={
        500: {"model": ErrorResponse, "description": "API key not configured"},
        502: {"model": ErrorResponse, "description": "Backend refused to issue a token"},
    },
)
async def realtime_token() -> RealtimeTokenResponse:
    try:
        async with JobClient() as client:
            token = await client.create_realtime_token()
    except MissingCredentialError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    except APIError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return RealtimeTokenResponse(token=token)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the audio-to-text-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
