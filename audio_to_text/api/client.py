"""Async HTTP client for the batch transcription endpoints.

WHY: The batch pipeline needs to upload audio, create a transcription job,
and read its status. This module hides the HTTP details behind one client
class so the poll loop, orchestrator, CLI, and server never touch httpx.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. JobClient is an async
context manager: enter it to get an authenticated connection pool, exit to
close it. Each endpoint is one method that maps a request to a typed
response or a typed error:
upload → create_job → get_status (repeated by PollLoop).

RULES:
- Always use the async context manager (async with JobClient(...) as client:)
- No internal retry; every call is a single side-effecting request
- upload streams the body in UPLOAD_CHUNK_BYTES pieces and reports bytes
  sent through on_progress when given
- Non-2xx and transport failures map to UploadError / JobCreationError /
  StatusQueryError; a "processing" status is a valid response
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable

import httpx

from audio_to_text import config
from audio_to_text.api.models import JobOptions, RemoteJob
from audio_to_text.errors import (
    APIError,
    JobCreationError,
    StatusQueryError,
    UploadError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class JobClient:
    """Async client for upload, job creation, and job status.

    RULES:
    - credential defaults to config.load_api_key(); raises
      MissingCredentialError when neither is available
    - base_url defaults to config.API_BASE_URL
    - transport may be injected (httpx.MockTransport in tests)
    """

    def __init__(
        self,
        credential: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        chunk_size: int = config.UPLOAD_CHUNK_BYTES,
    ) -> None:
        self._credential = config.resolve_credential(credential)
        self._base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self._transport = transport
        self._chunk_size = chunk_size
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> JobClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"authorization": self._credential},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "JobClient must be used as an async context manager: "
                "async with JobClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        data: bytes,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Upload raw audio bytes and return the locator.

        HOW: The body is an async generator over fixed-size slices, so
        on_progress(sent, total) fires as the transport consumes the body.

        Raises:
            UploadError: on non-2xx status or transport failure.
        """
        client = self._ensure_client()
        total = len(data)

        try:
            resp = await client.post(
                "/upload",
                content=self._iter_body(data, on_progress),
                headers={
                    "content-type": "application/octet-stream",
                    "content-length": str(total),
                },
            )
        except httpx.HTTPError as exc:
            raise UploadError(None, str(exc)) from exc

        if resp.status_code not in (200, 201):
            raise UploadError(resp.status_code, resp.text)

        locator = _read_field(resp, "upload_url", UploadError)
        logger.debug("Uploaded %d bytes -> %s", total, locator)
        return locator

    async def _iter_body(
        self,
        data: bytes,
        on_progress: ProgressCallback | None,
    ) -> AsyncIterator[bytes]:
        total = len(data)
        sent = 0
        for offset in range(0, total, self._chunk_size):
            chunk = data[offset:offset + self._chunk_size]
            yield chunk
            sent += len(chunk)
            if on_progress:
                on_progress(sent, total)

    # ------------------------------------------------------------------
    # Job creation
    # ------------------------------------------------------------------

    async def create_job(self, locator: str, options: JobOptions | None = None) -> str:
        """Create a transcription job for an uploaded locator; return its id.

        Raises:
            JobCreationError: on non-2xx status or transport failure.
        """
        client = self._ensure_client()
        body = (options or JobOptions()).to_request(locator)

        try:
            resp = await client.post("/transcript", json=body)
        except httpx.HTTPError as exc:
            raise JobCreationError(None, str(exc)) from exc

        if resp.status_code not in (200, 201):
            raise JobCreationError(resp.status_code, resp.text)

        job_id = _read_field(resp, "id", JobCreationError)
        logger.info("Created transcription job %s", job_id)
        return job_id

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_status(self, job_id: str) -> RemoteJob:
        """Read the current status of a job once.

        Raises:
            StatusQueryError: when the query itself fails (transport error,
                non-200 status, or an unparseable body).
        """
        client = self._ensure_client()

        try:
            resp = await client.get(f"/transcript/{job_id}")
        except httpx.HTTPError as exc:
            raise StatusQueryError(None, str(exc)) from exc

        if resp.status_code != 200:
            raise StatusQueryError(resp.status_code, resp.text)

        try:
            return RemoteJob.from_dict(resp.json(), job_id)
        except (KeyError, ValueError, TypeError) as exc:
            raise StatusQueryError(resp.status_code, f"malformed status body: {exc}") from exc

    # ------------------------------------------------------------------
    # Realtime token
    # ------------------------------------------------------------------

    async def create_realtime_token(
        self, expires_in: int = config.REALTIME_TOKEN_TTL_S
    ) -> str:
        """Issue a temporary token for the realtime socket.

        Lets a browser or other untrusted client open a stream without ever
        seeing the long-lived API key.
        """
        client = self._ensure_client()

        try:
            resp = await client.post("/realtime/token", json={"expires_in": expires_in})
        except httpx.HTTPError as exc:
            raise APIError(None, str(exc)) from exc

        if resp.status_code not in (200, 201):
            raise APIError(resp.status_code, resp.text)

        return _read_field(resp, "token", APIError)


def _read_field(resp: httpx.Response, name: str, error_cls: type[APIError]) -> str:
    """Pull one required string field out of a JSON response body."""
    try:
        value = resp.json()[name]
    except (KeyError, ValueError, TypeError) as exc:
        raise error_cls(resp.status_code, f"response is missing '{name}': {resp.text}") from exc
    return str(value)
