"""Audio To Text — batch and realtime transcription orchestration.

WHY: Users submit one or many recordings and want a transcript per file,
optionally split by speaker, or they stream raw audio and want to see the
transcript grow while it plays. Both paths talk to a remote transcription
backend whose jobs take an unpredictable amount of time.

HOW: Two independent pipelines. The batch pipeline (api + core) uploads
files, creates jobs, and polls them under a concurrency ceiling, tracking
one JobState per file. The streaming pipeline (streaming) frames PCM audio
over a websocket and keeps a single current transcript.

RULES:
- One file's failure never affects another file's state
- Streaming errors terminate only their own session
- Rendering is left to formatters/ and the callers
"""

__version__ = "0.1.0"
