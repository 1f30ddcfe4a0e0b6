"""Output formatter registry.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["plain_text"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and API paths)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from audio_to_text.formatters.json_result import JSONFormatter
from audio_to_text.formatters.plain_text import PlainTextFormatter

if TYPE_CHECKING:
    from audio_to_text.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "plain_text": PlainTextFormatter,
    "json": JSONFormatter,
}
