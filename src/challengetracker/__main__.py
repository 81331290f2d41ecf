"""Main entry point for ``python -m challengetracker``."""

from challengetracker.cli import main

if __name__ == "__main__":
    main()
