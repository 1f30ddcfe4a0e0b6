"""Structured JSON output of a completed transcript."""

from __future__ import annotations

import json

from audio_to_text.api.models import TranscriptResult
from audio_to_text.formatters.base import BaseFormatter, FormatterOutput


class JSONFormatter(BaseFormatter):

    @property
    def name(self) -> str:
        return "JSON"

    def format(self, result: TranscriptResult) -> FormatterOutput:
        return FormatterOutput(
            suffix="-transcription.json",
            content=json.dumps(result.to_dict(), ensure_ascii=False, indent=2) + "\n",
            media_type="application/json",
        )
