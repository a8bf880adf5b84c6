"""Entry point for the mite CLI.

This module serves as the main entry point when running the mite package directly,
which is also how the build server starts its watcher process.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
