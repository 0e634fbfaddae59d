"""
Filter for catastrophically broad patterns.

Applied only to patterns from the environment channel. The authorized
commands file is curated by the user and is never filtered.
"""

from __future__ import annotations

from collections.abc import Iterable

from cmdgate.core.config import log_event

DANGEROUS_PATTERNS = frozenset(
    {
        ".*",
        "^.*$",
        ".+",
        "^.+$",
        r"[\s\S]*",
        r"^[\s\S]*$",
    }
)


def is_dangerous_pattern(pattern: str) -> bool:
    return pattern in DANGEROUS_PATTERNS


def filter_dangerous_patterns(patterns: Iterable[str]) -> list[str]:
    """Drop patterns that exactly equal a denylist entry, keeping order."""
    kept = []
    for pattern in patterns:
        if is_dangerous_pattern(pattern):
            log_event("warning", "dangerous_pattern_filtered", pattern=pattern)
            continue
        kept.append(pattern)
    return kept
