"""Pane entrypoint: render the agent's stream-json from stdin to stdout."""

from __future__ import annotations

import sys

from panecrew.core.stream_formatter import format_stream
from panecrew.logging_config import setup_logging


def main() -> int:
    setup_logging()
    format_stream(sys.stdin, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
