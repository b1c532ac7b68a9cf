from __future__ import annotations

from typing import Optional


def collapse_whitespace(text: Optional[str]) -> str:
    """
    Flatten text to single-space separated words.

    - None or empty input gives "".
    - Any run of whitespace (spaces, tabs, newlines, nbsp) becomes one space.
    - Leading and trailing whitespace is removed.
    """
    if not text:
        return ""

    return " ".join(text.split())


def preview(text: Optional[str], max_length: int = 200) -> str:
    """Short single-line preview used in log lines."""
    if not text:
        return ""

    if max_length <= 0:
        return ""

    return text[:max_length]
