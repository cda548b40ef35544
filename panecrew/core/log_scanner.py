"""Extract run outcome from an agent's stream-json event log."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from panecrew.constants import PR_HOST_FRAGMENT, PR_PATH_FRAGMENT, PR_TRAILING_PUNCTUATION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogSummary:
    """What finalize can learn from a finished log. None means not found."""

    cost_usd: Optional[float] = None
    duration_ms: Optional[int] = None
    pr_url: Optional[str] = None


def extract_pr_url(text: str) -> Optional[str]:
    """Return the first whitespace token that looks like a pull request link.

    This is a substring heuristic, not a URL parser: a token qualifies when it
    contains both the host and the pull-path fragment after trailing
    punctuation is trimmed.
    """
    for word in text.split():
        word = word.rstrip(PR_TRAILING_PUNCTUATION)
        if PR_HOST_FRAGMENT in word and PR_PATH_FRAGMENT in word:
            return word
    return None


def _positive_number(value: object) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def summarize_events(lines: Iterable[str]) -> LogSummary:
    """Scan stream-json lines.

    The last non-zero cost and duration win; the first PR link wins.
    Lines that are not JSON objects are skipped.
    """
    cost_usd: Optional[float] = None
    duration_ms: Optional[int] = None
    pr_url: Optional[str] = None

    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(event, dict):
            continue

        event_type = event.get("type")
        if event_type == "result":
            cost = _positive_number(event.get("total_cost_usd"))
            if cost is not None:
                cost_usd = cost
            duration = _positive_number(event.get("duration_ms"))
            if duration is not None:
                duration_ms = int(duration)
        elif event_type == "assistant" and pr_url is None:
            message = event.get("message")
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, list):
                continue
            for block in content:
                if not isinstance(block, dict) or block.get("type") != "text":
                    continue
                text = block.get("text")
                if isinstance(text, str):
                    pr_url = extract_pr_url(text)
                    if pr_url:
                        break

    return LogSummary(cost_usd=cost_usd, duration_ms=duration_ms, pr_url=pr_url)


def summarize_log(path: str | os.PathLike[str]) -> LogSummary:
    """Scan a log file on disk."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        summary = summarize_events(f)
    logger.debug("Log %s: cost=%s duration_ms=%s pr=%s", path, summary.cost_usd, summary.duration_ms, summary.pr_url)
    return summary
