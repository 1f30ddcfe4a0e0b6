"""Command-line interface for batch and realtime transcription.

WHY: Users need a way to transcribe a folder of recordings, or to watch a
live transcript of a raw PCM file, straight from the terminal.

HOW: argparse with two subcommands.
  transcribe — runs the BatchOrchestrator over every input file, prints
               per-file progress to stderr, and saves one output file per
               completed input next to the source (or to --output-dir)
  stream     — runs a StreamSession over one raw PCM file, printing each
               partial/final transcript to stderr and the last transcript
               to stdout

RULES:
- Status output goes to stderr so stdout can be piped
- Unsupported extensions are rejected before any network call
- transcribe exits 1 if any file failed; stream exits 1 on a channel error
- Output naming: {stem}{suffix}, numeric suffix on conflicts
  (-transcription-2.txt)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from audio_to_text import config
from audio_to_text.api.client import JobClient
from audio_to_text.api.models import JobOptions
from audio_to_text.core.batch import AudioFile, BatchOrchestrator, JobPhase, JobState
from audio_to_text.errors import AudioToTextError
from audio_to_text.formatters import FORMATTERS
from audio_to_text.formatters.base import FormatterOutput
from audio_to_text.streaming.session import StreamSession

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _save_output(output: FormatterOutput, source_name: str, output_dir: Path) -> Path:
    """Write a formatter output, never overwriting an existing file."""
    target = output_dir / output.filename_for(source_name)
    counter = 2
    base_suffix = output.suffix.rsplit(".", 1)
    while target.exists():
        if len(base_suffix) == 2:
            name = "{}{}-{}.{}".format(Path(source_name).stem, base_suffix[0], counter, base_suffix[1])
        else:
            name = "{}{}-{}".format(Path(source_name).stem, output.suffix, counter)
        target = output_dir / name
        counter += 1
    target.write_text(output.content, encoding="utf-8")
    return target


def _describe(state: JobState) -> str:
    if state.phase is JobPhase.UPLOADING:
        return "uploading {}%".format(state.progress)
    if state.phase is JobPhase.FAILED:
        return "failed: {}".format(state.error)
    return state.phase.value


# ---------------------------------------------------------------------------
# transcribe
# ---------------------------------------------------------------------------


def _validate_inputs(paths: List[str]) -> List[Path]:
    resolved: List[Path] = []
    for raw in paths:
        path = Path(raw).resolve()
        if not path.is_file():
            _status("Error: File not found: {}".format(path))
            sys.exit(1)
        if path.suffix.lower() not in config.SUPPORTED_FORMATS:
            _status("Error: Unsupported file type '{}'. Supported formats: {}".format(
                path.suffix.lower(), ", ".join(sorted(config.SUPPORTED_FORMATS)),
            ))
            sys.exit(1)
        resolved.append(path)
    return resolved


async def _run_transcribe(args: argparse.Namespace) -> int:
    paths = _validate_inputs(args.files)
    output_dir = Path(args.output_dir).resolve() if args.output_dir else None
    if output_dir is not None and not output_dir.is_dir():
        _status("Error: Output directory does not exist: {}".format(output_dir))
        return 1

    files = [AudioFile.from_path(p) for p in paths]
    options = JobOptions(language=args.language or None, speaker_labels=args.speaker_labels)

    def on_update(index: int, state: JobState) -> None:
        _status("[{}/{}] {}: {}".format(index + 1, len(files), state.file_name, _describe(state)))

    async with JobClient() as client:
        orchestrator = BatchOrchestrator(
            client,
            concurrency=args.concurrency,
            poll_interval=args.poll_interval,
            max_polls=args.max_polls,
            max_poll_seconds=args.max_poll_seconds,
            file_timeout=args.file_timeout,
        )
        states = await orchestrator.transcribe_all(files, options, on_update=on_update)

    formatter = FORMATTERS[args.format]()
    failed = 0
    for path, state in zip(paths, states):
        if state.phase is JobPhase.COMPLETED and state.result is not None:
            saved = _save_output(formatter.format(state.result), path.name, output_dir or path.parent)
            _status("  Saved: {}".format(saved))
        else:
            failed += 1
            _status("  Failed: {} ({})".format(state.file_name, state.error))

    _status("")
    _status("Done: {} completed, {} failed".format(len(states) - failed, failed))
    return 1 if failed else 0


# ---------------------------------------------------------------------------
# stream
# ---------------------------------------------------------------------------


async def _run_stream(args: argparse.Namespace) -> int:
    path = Path(args.file).resolve()
    if not path.is_file():
        _status("Error: File not found: {}".format(path))
        return 1

    session = StreamSession(
        sample_rate=args.sample_rate,
        frame_ms=args.frame_ms,
    )
    session.on_transcript_update(
        lambda text, is_final: _status("{} {}".format("[final]  " if is_final else "[partial]", text))
    )

    transcript = await session.stream(path.read_bytes())
    print(transcript)
    return 0


# ---------------------------------------------------------------------------
# Parser and entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="audio-to-text",
        description="Transcribe audio files in batch, or stream raw PCM for a live transcript.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    tr = sub.add_parser("transcribe", help="Transcribe one or more audio files.")
    tr.add_argument("files", nargs="+", help="Audio files to transcribe.")
    tr.add_argument(
        "--language",
        default=config.DEFAULT_LANGUAGE,
        help="Language hint (default: %(default)s). Pass an empty string for auto-detect.",
    )
    tr.add_argument(
        "--speaker-labels",
        action=argparse.BooleanOptionalAction,
        default=config.DEFAULT_SPEAKER_LABELS,
        help="Split the transcript into speaker utterances (default: %(default)s).",
    )
    tr.add_argument(
        "--concurrency",
        type=int,
        default=config.DEFAULT_CONCURRENCY,
        help="Maximum files in flight at once (default: %(default)s).",
    )
    tr.add_argument(
        "--poll-interval",
        type=float,
        default=config.POLL_INTERVAL_S,
        help="Seconds between status queries (default: %(default)s).",
    )
    tr.add_argument(
        "--max-polls",
        type=int,
        default=config.POLL_MAX_ATTEMPTS,
        help="Give up on a file after this many status queries (default: unlimited).",
    )
    tr.add_argument(
        "--max-poll-seconds",
        type=float,
        default=config.POLL_MAX_SECONDS,
        help="Give up on a file after polling this long (default: unlimited).",
    )
    tr.add_argument(
        "--file-timeout",
        type=float,
        default=None,
        help="Abandon a file whose whole pipeline takes longer than this many seconds.",
    )
    tr.add_argument(
        "--format",
        choices=sorted(FORMATTERS),
        default="plain_text",
        help="Output format (default: %(default)s).",
    )
    tr.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: next to each input).",
    )

    st = sub.add_parser("stream", help="Stream a raw 16-bit PCM file for a live transcript.")
    st.add_argument("file", help="Raw little-endian 16-bit mono PCM file.")
    st.add_argument(
        "--sample-rate",
        type=int,
        default=config.STREAM_SAMPLE_RATE,
        help="Sample rate of the PCM data (default: %(default)s).",
    )
    st.add_argument(
        "--frame-ms",
        type=int,
        default=config.STREAM_FRAME_MS,
        help="Frame duration in milliseconds (default: %(default)s).",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI (argv=None means sys.argv)."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    runner = _run_transcribe if args.command == "transcribe" else _run_stream
    try:
        code = asyncio.run(runner(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except AudioToTextError as e:
        _status("Error: {}".format(e))
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
