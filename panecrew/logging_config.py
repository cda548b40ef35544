"""panecrew logging configuration.

Modules log through ``logging.getLogger(__name__)``; this only wires a single
stream handler onto the package logger for entrypoints. The level comes from
``PANECREW_LOG_LEVEL`` (default ``WARNING``).
"""

from __future__ import annotations

import logging
import os
from typing import Optional

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure panecrew logging.

    Args:
        level: Optional override for `PANECREW_LOG_LEVEL`.
    """
    if level:
        os.environ["PANECREW_LOG_LEVEL"] = level

    resolved = os.environ.get("PANECREW_LOG_LEVEL", "WARNING").upper()
    logger = logging.getLogger("panecrew")
    logger.setLevel(getattr(logging, resolved, logging.WARNING))

    if not any(getattr(handler, "_panecrew", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._panecrew = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
