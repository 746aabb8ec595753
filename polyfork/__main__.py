"""Main entry point for the polyfork CLI."""

from polyfork.cli import main

if __name__ == "__main__":
    main()
