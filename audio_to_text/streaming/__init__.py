"""Realtime streaming: PCM framing and the websocket session."""

from audio_to_text.streaming.chunker import StreamChunker, frame_size
from audio_to_text.streaming.session import ConnectionState, StreamSession

__all__ = ["ConnectionState", "StreamChunker", "StreamSession", "frame_size"]
