"""
Interactive confirmation.

The terminal is reached through a Confirmer so callers (and tests) decide
where answers come from.
"""

from __future__ import annotations

import sys
from typing import Protocol, TextIO


class Confirmer(Protocol):
    """Source of user answers."""

    @property
    def interactive(self) -> bool: ...

    def read_line(self, prompt: str) -> str:
        """Read one answer. May raise KeyboardInterrupt or EOFError."""
        ...

    def write(self, text: str) -> None: ...


class TerminalConfirmer:
    """Asks on the controlling terminal."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None):
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout

    @property
    def interactive(self) -> bool:
        try:
            return self.stdin.isatty()
        except ValueError:  # closed stream
            return False

    def read_line(self, prompt: str) -> str:
        self.write(prompt)
        line = self.stdin.readline()
        if not line:
            raise EOFError
        return line.rstrip("\n")

    def write(self, text: str) -> None:
        self.stdout.write(text)
        self.stdout.flush()


def prompt_suffix(default_to_yes: bool) -> str:
    return "(Y/n/manage/freeform)" if default_to_yes else "(y/N/manage/freeform)"


def user_confirmation(
    confirmer: Confirmer,
    question: str,
    explanation: str = "",
    default_to_yes: bool = False,
) -> str:
    """Ask ``question`` and normalize the answer to y, n, m, or free-form text.

    Interrupts, end of input, read errors and non-interactive sessions all
    answer "n". A blank answer takes the default.
    """
    if not confirmer.interactive:
        return "n"

    if explanation:
        confirmer.write(explanation.rstrip("\n") + "\n")

    try:
        answer = confirmer.read_line(f"{question} {prompt_suffix(default_to_yes)} ")
    except (KeyboardInterrupt, EOFError, OSError):
        return "n"

    answer = answer.strip()
    normalized = answer.lower()
    if not normalized:
        return "y" if default_to_yes else "n"
    if normalized in ("y", "yes"):
        return "y"
    if normalized in ("n", "no"):
        return "n"
    if normalized in ("m", "manage"):
        return "m"
    return answer
