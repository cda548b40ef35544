"""Pane entrypoint: finalize a run after its agent exits.

Invoked from the pane script built at launch:
    python -m panecrew.entrypoints.finalize <run-id>
"""

from __future__ import annotations

import argparse
import logging
import sys

from panecrew.core.errors import PanecrewError
from panecrew.core.lifecycle import finalize_run
from panecrew.core.workspace import Workspace
from panecrew.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Record a finished run and publish it to the data ref")
    parser.add_argument("run_id", help="Run to finalize")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging()

    try:
        ws = Workspace.discover()
        result = finalize_run(ws, args.run_id)
    except PanecrewError as e:
        logger.warning("Finalize of %s failed: %s", args.run_id, e)
        return 1

    if result is None:
        return 0
    for category in result.findings:
        print(f"  - sensitive: {category}", file=sys.stderr)
    if result.findings:
        print(f"  Log not published. Review it, then push it with push_log('{args.run_id}').", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
