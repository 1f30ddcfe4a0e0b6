"""Abstract base formatter and output container.

WHY: The CLI and the HTTP API both turn a TranscriptResult into a file.
A shared interface lets either pick a formatter by key without knowing
what it produces.

HOW: BaseFormatter is an ABC with a ``name`` property and a ``format()``
method. FormatterOutput bundles the file suffix with its content and MIME
type.

RULES:
- ``suffix`` starts with a hyphen, e.g. ``"-transcription.txt"``
- The caller prepends the source filename stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from audio_to_text.api.models import TranscriptResult


@dataclass
class FormatterOutput:
    """One output file produced by a formatter."""

    suffix: str
    content: str
    media_type: str

    def filename_for(self, source_name: str) -> str:
        return "{}{}".format(Path(source_name).stem, self.suffix)


class BaseFormatter(ABC):
    """Abstract base for all output formatters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'Plain Text'."""

    @abstractmethod
    def format(self, result: TranscriptResult) -> FormatterOutput:
        """Render one completed transcript."""
