"""
Shared test fixtures for cmdgate tests.
"""

from __future__ import annotations

import pytest

from cmdgate.core.config import Config, configure_logging
from cmdgate.core.store import AuthorizationStore

# Fed to ScriptedConfirmer to simulate Ctrl+C at that point.
INTERRUPT = object()


class ScriptedConfirmer:
    """Confirmer that answers from a fixed script and records what it showed."""

    def __init__(self, lines=(), interactive: bool = True):
        self.lines = list(lines)
        self.interactive = interactive
        self.prompts: list[str] = []
        self.output: list[str] = []

    def read_line(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.lines:
            raise EOFError
        line = self.lines.pop(0)
        if line is INTERRUPT:
            raise KeyboardInterrupt
        return line

    def write(self, text: str) -> None:
        self.output.append(text)


@pytest.fixture
def store(tmp_path):
    """Empty store in a fresh config directory."""
    return AuthorizationStore(tmp_path / "config" / "authorized_commands")


@pytest.fixture
def confirmer():
    """Factory for scripted confirmers."""

    def _make(*lines, interactive: bool = True) -> ScriptedConfirmer:
        return ScriptedConfirmer(lines, interactive=interactive)

    return _make


@pytest.fixture
def no_env():
    """Variable table with no overrides."""
    return {}


@pytest.fixture(autouse=True)
def _logging_off():
    """Keep structlog configuration from leaking between tests."""
    yield
    configure_logging(Config())
