"""Input sanitization for chat messages."""

from __future__ import annotations

import re

_STRIP_PATTERNS = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
)


def sanitize_input(text: str) -> str:
    """Strip markup and URL schemes that must never reach the transcript."""
    if not text:
        return ""
    for pattern in _STRIP_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()
