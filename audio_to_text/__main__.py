"""Package entry point for ``python -m audio_to_text``."""

from audio_to_text.cli import main

if __name__ == "__main__":
    main()
