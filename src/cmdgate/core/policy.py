"""
Compound command validation and approved-pattern sources.

A command line is authorized only when every atomic command it would run
matches at least one approved pattern.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping, Sequence

from cmdgate.core.config import (
    ENV_APPROVED_REGEX,
    ENV_SAFETY_CHECKS_DISABLED,
    is_truthy,
    log_event,
)
from cmdgate.core.dangerous import filter_dangerous_patterns
from cmdgate.core.parser import extract_commands
from cmdgate.core.store import AuthorizationStore, StoreError, compile_patterns, matches_any

# Returned when the session override disables all checks.
MATCH_EVERYTHING = ".*"


def unmatched_commands(command: str, approved_patterns: Sequence[str]) -> list[str]:
    """Atomic commands in ``command`` that no approved pattern matches.

    Raises DecompositionError when the line does not parse.
    """
    compiled = compile_patterns(approved_patterns)
    return [atomic for atomic in extract_commands(command) if not matches_any(atomic, compiled)]


def validate_compound_command(command: str, approved_patterns: Sequence[str]) -> bool:
    """True only if every atomic command matches some approved pattern.

    A line with no atomic commands (empty, assignments only) is not
    authorized. Raises DecompositionError when the line does not parse.
    """
    commands = extract_commands(command)
    if not commands:
        return False
    compiled = compile_patterns(approved_patterns)
    return all(matches_any(atomic, compiled) for atomic in commands)


def parse_env_patterns(value: str | None) -> list[str]:
    """Parse a JSON array of pattern strings. Anything malformed yields nothing."""
    if not value:
        return []
    try:
        data = json.loads(value)
    except ValueError as e:
        log_event("debug", "env_patterns_malformed", error=str(e))
        return []
    if not isinstance(data, list):
        log_event("debug", "env_patterns_malformed", error="not a JSON array")
        return []
    return [item for item in data if isinstance(item, str)]


def safety_checks_disabled(variables: Mapping[str, str] | None = None) -> bool:
    if variables is None:
        variables = os.environ
    return is_truthy(variables.get(ENV_SAFETY_CHECKS_DISABLED))


def get_approved_patterns(
    store: AuthorizationStore, variables: Mapping[str, str] | None = None
) -> list[str]:
    """Filtered environment patterns followed by the store's patterns."""
    if variables is None:
        variables = os.environ

    if safety_checks_disabled(variables):
        return [MATCH_EVERYTHING]

    patterns = filter_dangerous_patterns(parse_env_patterns(variables.get(ENV_APPROVED_REGEX)))

    try:
        patterns.extend(store.cached_patterns())
    except StoreError as e:
        log_event("error", "store_read_failed", path=str(store.path), error=str(e))

    return patterns
