"""Default sensitivity check for agent logs before publishing.

Any callable ``(bytes) -> list[str]`` can stand in for `check_sensitivity`;
an empty result means the log may be published.
"""

from __future__ import annotations

import re
from collections.abc import Callable

Classifier = Callable[[bytes], list[str]]

_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(
            r"(?:^|[^0-9])(?:10\.\d{1,3}\.\d{1,3}\.\d{1,3}"
            r"|172\.(?:1[6-9]|2[0-9]|3[01])\.\d{1,3}\.\d{1,3}"
            r"|192\.168\.\d{1,3}\.\d{1,3})(?:[^0-9]|$)"
        ),
        "private IP addresses",
    ),
    (
        re.compile(r"OPENSSH PRIVATE KEY|RSA PRIVATE KEY|EC PRIVATE KEY|DSA PRIVATE KEY"),
        "SSH private key material",
    ),
    (
        re.compile(r"(?i)(?:password|token|secret|api_key|apikey|api-key)\s*[=:]"),
        "credential patterns (password/token/secret/api_key)",
    ),
    (
        re.compile(r"\.age\b.*:\s*\S"),
        ".age secret file references",
    ),
]


def check_sensitivity(data: bytes) -> list[str]:
    """Return the distinct categories of sensitive content found, in first-seen order."""
    found: list[str] = []
    for line in data.decode("utf-8", errors="replace").splitlines():
        for pattern, category in _PATTERNS:
            if category not in found and pattern.search(line):
                found.append(category)
        if len(found) == len(_PATTERNS):
            break
    return found
