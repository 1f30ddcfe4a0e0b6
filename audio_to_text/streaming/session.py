"""Realtime transcription over a persistent websocket.

WHY: Live transcription shows text while audio is still being sent. The
backend keeps one duplex channel per stream: raw PCM frames go out, partial
and final transcript hypotheses come back. Each hypothesis already contains
the full text so far, so the session simply replaces its current transcript
on every event.

HOW: StreamSession wraps one websockets client connection and tracks an
explicit ConnectionState. open() connects, send_all() pushes frames from a
StreamChunker followed by an end-of-stream control message, receive()
consumes inbound JSON events until the channel closes, and close() tears
the channel down. stream() composes all four for the common case.

RULES:
- Idle → Connecting → Open → Closed | Errored; Errored and Closed are final
- Frames are only sent while the channel reports OPEN; once it drops the
  remaining frames are skipped (no buffering, no retry)
- Inbound transcript events overwrite current_transcript and is_final;
  text is never concatenated and the latest event always wins
- After Errored no inbound event is applied
- close() is idempotent
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, List, Optional
from urllib.parse import urlencode

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
from websockets.protocol import State

from audio_to_text import config
from audio_to_text.errors import StreamConnectionError
from audio_to_text.streaming.chunker import StreamChunker

logger = logging.getLogger(__name__)

END_OF_STREAM = json.dumps({"event": "end-of-stream"})

# Inbound message kinds → is_final. Both the short form and the
# AssemblyAI v2 realtime names are accepted.
_TRANSCRIPT_KINDS = {
    "partial": False,
    "final": True,
    "PartialTranscript": False,
    "FinalTranscript": True,
}

TranscriptCallback = Callable[[str, bool], None]
Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


class StreamSession:
    """One realtime transcription stream.

    Args:
        credential: API key or temporary realtime token; defaults to
            config.load_api_key().
        sample_rate / bit_depth / frame_ms: raw PCM format of the input.
        url: realtime endpoint; defaults to config.REALTIME_URL.
        connector: coroutine function url -> connection (websockets'
            connect by default; tests inject a fake).
    """

    def __init__(
        self,
        credential: Optional[str] = None,
        sample_rate: int = config.STREAM_SAMPLE_RATE,
        bit_depth: int = config.STREAM_BIT_DEPTH,
        frame_ms: int = config.STREAM_FRAME_MS,
        url: Optional[str] = None,
        connector: Connector = connect,
    ) -> None:
        self._credential = config.resolve_credential(credential)
        self.sample_rate = sample_rate
        self.bit_depth = bit_depth
        self.frame_ms = frame_ms
        self._url = url or config.REALTIME_URL
        self._connector = connector
        self._conn: Any = None
        self._callbacks: List[TranscriptCallback] = []
        self._eos_sent = False

        self.state = ConnectionState.IDLE
        self.current_transcript = ""
        self.is_final = False
        self.error: Optional[StreamConnectionError] = None

    def on_transcript_update(self, callback: TranscriptCallback) -> None:
        """Register callback(text, is_final), called on every transcript event."""
        self._callbacks.append(callback)

    @property
    def connection_url(self) -> str:
        query = urlencode({"sample_rate": self.sample_rate, "token": self._credential})
        return f"{self._url}?{query}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Establish the duplex channel.

        Raises:
            StreamConnectionError: when the transport cannot be established.
        """
        if self.state is not ConnectionState.IDLE:
            raise RuntimeError(f"cannot open a session that is {self.state.value}")

        self.state = ConnectionState.CONNECTING
        self.current_transcript = ""
        self.is_final = False
        try:
            self._conn = await self._connector(self.connection_url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            error = StreamConnectionError(f"could not open realtime channel: {exc}")
            self.error = error
            self.state = ConnectionState.ERRORED
            raise error from exc

        self.state = ConnectionState.OPEN
        logger.info("Realtime channel open (sample_rate=%d)", self.sample_rate)

    async def send_all(self, pcm: bytes) -> int:
        """Send every frame of pcm, then the end-of-stream marker.

        Returns the number of frames actually sent, which is smaller than the
        frame count when the channel dropped mid-transmission.
        """
        if self.state is ConnectionState.IDLE:
            raise RuntimeError("session is not open")
        if self.state is not ConnectionState.OPEN:
            return 0

        chunker = StreamChunker(pcm, self.sample_rate, self.bit_depth, self.frame_ms)
        sent = 0
        for frame in chunker:
            if not self._channel_open():
                logger.info("Channel no longer open; %d of %d frames sent", sent, len(chunker))
                return sent
            try:
                await self._conn.send(frame)
            except ConnectionClosed as exc:
                await self._handle_closed(exc)
                return sent
            sent += 1

        await self._send_end_of_stream()
        logger.debug("Sent %d frames and end-of-stream marker", sent)
        return sent

    async def receive(self) -> None:
        """Consume inbound events until the channel closes."""
        if self._conn is None:
            raise RuntimeError("session is not open")

        try:
            async for raw in self._conn:
                if self.state is not ConnectionState.OPEN:
                    break
                await self._handle_message(raw)
        except ConnectionClosed as exc:
            await self._handle_closed(exc)
        except OSError as exc:
            await self._fail(StreamConnectionError(f"realtime channel fault: {exc}"))
        else:
            if self.state is ConnectionState.OPEN:
                self.state = ConnectionState.CLOSED
                logger.info("Realtime channel closed by peer")

    async def close(self) -> None:
        """Send end-of-stream if still open, then release the channel."""
        if self.state in (ConnectionState.CLOSED, ConnectionState.ERRORED):
            return
        if self.state is ConnectionState.IDLE or self._conn is None:
            self.state = ConnectionState.CLOSED
            return

        if self._channel_open():
            await self._send_end_of_stream()
        await self._conn.close()
        if self.state is not ConnectionState.ERRORED:
            self.state = ConnectionState.CLOSED

    async def stream(self, pcm: bytes) -> str:
        """Open, send pcm, collect events until the peer closes, then close.

        Raises:
            StreamConnectionError: if the channel could not open or faulted.
        """
        await self.open()
        try:
            await asyncio.gather(self.send_all(pcm), self.receive())
        finally:
            await self.close()
        if self.error is not None:
            raise self.error
        return self.current_transcript

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _channel_open(self) -> bool:
        return (
            self.state is ConnectionState.OPEN
            and self._conn is not None
            and getattr(self._conn, "state", None) is State.OPEN
        )

    async def _send_end_of_stream(self) -> None:
        if self._eos_sent or not self._channel_open():
            return
        self._eos_sent = True
        try:
            await self._conn.send(END_OF_STREAM)
        except ConnectionClosed as exc:
            await self._handle_closed(exc)

    async def _handle_message(self, raw: Any) -> None:
        if isinstance(raw, (bytes, bytearray)):
            return
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON realtime message: %.80s", raw)
            return
        if not isinstance(message, dict):
            return

        if message.get("error"):
            await self._fail(StreamConnectionError(f"realtime backend error: {message['error']}"))
            return

        kind = message.get("messageType", message.get("message_type"))
        if kind not in _TRANSCRIPT_KINDS:
            logger.debug("Ignoring realtime message of type %r", kind)
            return

        self.current_transcript = message.get("text") or ""
        self.is_final = _TRANSCRIPT_KINDS[kind]
        for callback in list(self._callbacks):
            try:
                callback(self.current_transcript, self.is_final)
            except Exception:
                logger.exception("Transcript callback failed")

    async def _handle_closed(self, exc: ConnectionClosed) -> None:
        if isinstance(exc, ConnectionClosedOK):
            if self.state is ConnectionState.OPEN:
                self.state = ConnectionState.CLOSED
                logger.info("Realtime channel closed")
            return
        await self._fail(StreamConnectionError(f"realtime channel dropped: {exc}"))

    async def _fail(self, error: StreamConnectionError) -> None:
        if self.state is ConnectionState.ERRORED:
            return
        logger.warning("%s", error)
        self.error = error
        self.state = ConnectionState.ERRORED
        if self._conn is not None:
            await self._conn.close()
