"""
Authorization pattern generation.

Turns atomic commands and menu prefixes into anchored regular expressions:

- loose patterns are what gets stored and matched at runtime (``^git\\ status.*``)
- exact-prefix patterns track a specific prefix for bookkeeping
- pre-selection patterns decide whether a menu prefix is shown as already approved
"""

from __future__ import annotations

import re

from cmdgate.core.parser import extract_commands, tokenize

MAX_SUBCOMMAND_LENGTH = 20

_SUBCOMMAND_RE = re.compile(r"[A-Za-z][A-Za-z0-9_-]*")

# Matches the empty string only; generated for empty input.
EMPTY_PATTERN = "^$"


def looks_like_subcommand(token: str) -> bool:
    """Guess whether ``token`` is a subcommand (``status`` in ``git status``)."""
    if not token or token.startswith("-"):
        return False
    if len(token) > MAX_SUBCOMMAND_LENGTH:
        return False
    return _SUBCOMMAND_RE.fullmatch(token) is not None


def _anchored(text: str) -> str:
    return f"^{re.escape(text)}.*"


def loose_authorization_pattern(command: str) -> str:
    """Pattern stored when the user approves ``command``.

    Anchors on the first word, plus the second word when it looks like a
    subcommand:

    >>> loose_authorization_pattern("ls -la /tmp")
    '^ls.*'
    >>> loose_authorization_pattern("git status")
    '^git\\\\ status.*'
    """
    tokens = command.split()
    if not tokens:
        return EMPTY_PATTERN
    if len(tokens) > 1 and looks_like_subcommand(tokens[1]):
        return _anchored(f"{tokens[0]} {tokens[1]}")
    return _anchored(tokens[0])


def exact_prefix_pattern(prefix: str) -> str:
    """Pattern for exactly ``prefix``: ``^ls$`` for one word, else a prefix match."""
    tokens = prefix.split()
    if not tokens:
        return EMPTY_PATTERN
    if len(tokens) == 1:
        return f"^{re.escape(tokens[0])}$"
    return _anchored(prefix.strip())


def preselection_pattern(prefix: str) -> str:
    """Pattern whose literal presence in the store marks ``prefix`` as approved.

    Same shape as the loose pattern, except that a multi-word prefix without a
    subcommand keeps the whole prefix. A stored ``^awk.*`` therefore pre-selects
    ``awk`` but not ``awk -F'|'``.
    """
    tokens = prefix.split()
    if not tokens:
        return EMPTY_PATTERN
    if len(tokens) == 1:
        return _anchored(tokens[0])
    if looks_like_subcommand(tokens[1]):
        return _anchored(f"{tokens[0]} {tokens[1]}")
    return _anchored(prefix.strip())


def candidate_prefixes(command: str) -> list[str]:
    """Return up to three prefixes of ``command`` to offer in the menu.

    The bare command, the command with its first argument, and the whole
    command when it has three or more words. Quoted arguments stay whole and
    leading assignments stay on the command word.
    """
    command = command.strip()
    tokens = tokenize(command)
    if not tokens:
        return []

    prefixes = [tokens[0]]
    if len(tokens) > 1:
        prefixes.append(f"{tokens[0]} {tokens[1]}")
    if len(tokens) >= 3 and command != prefixes[-1]:
        prefixes.append(command)
    return prefixes


def compound_command_patterns(command: str) -> list[str]:
    """Loose patterns for every atomic command in ``command``, deduplicated.

    Raises DecompositionError when the line does not parse.
    """
    patterns: list[str] = []
    for atomic in extract_commands(command):
        pattern = loose_authorization_pattern(atomic)
        if pattern not in patterns:
            patterns.append(pattern)
    return patterns
