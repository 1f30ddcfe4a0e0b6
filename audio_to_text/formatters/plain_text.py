"""Plain text transcript formatter with speaker-labeled utterances.

WHY: The simplest way to keep a transcript is a .txt file: one block per
utterance with the speaker and its time span, or the bare text when speaker
labels were off.

HOW: Each utterance becomes a header line ``Speaker A [01:05 - 01:09]``
followed by its text. Blocks are separated by a blank line. A result with
no utterances renders as its text.

RULES:
- Times render as MM:SS, or H:MM:SS from one hour on
- Utterance order is kept as delivered
- Output suffix: "-transcription.txt"
- Media type: "text/plain"
"""

from __future__ import annotations

from typing import List

from audio_to_text.api.models import TranscriptResult
from audio_to_text.formatters.base import BaseFormatter, FormatterOutput


def format_timestamp(ms: int) -> str:
    """Render milliseconds as MM:SS or H:MM:SS."""
    total = max(0, ms) // 1000
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return "{}:{:02d}:{:02d}".format(hours, minutes, seconds)
    return "{:02d}:{:02d}".format(minutes, seconds)


def render_text(result: TranscriptResult) -> str:
    if result.utterances:
        blocks: List[str] = []
        for utt in result.utterances:
            blocks.append("Speaker {} [{} - {}]\n{}".format(
                utt.speaker,
                format_timestamp(utt.start_ms),
                format_timestamp(utt.end_ms),
                utt.text.strip(),
            ))
        return "\n\n".join(blocks) + "\n"
    text = (result.text or "").strip()
    return text + "\n" if text else ""


class PlainTextFormatter(BaseFormatter):

    @property
    def name(self) -> str:
        return "Plain Text"

    def format(self, result: TranscriptResult) -> FormatterOutput:
        return FormatterOutput(
            suffix="-transcription.txt",
            content=render_text(result),
            media_type="text/plain",
        )
