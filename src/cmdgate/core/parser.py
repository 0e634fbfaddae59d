"""
Decompose shell command lines into the atomic commands they would execute.

Uses bashlex as the bash grammar. Every node that can hold a nested command
is visited (lists, pipelines, subshells, brace groups, command and process
substitutions, control-flow bodies) and each simple command is rendered back
from its source text, so quoting survives verbatim.
"""

from __future__ import annotations

from typing import Any

import bashlex

# Node kinds that never contain a nested command. Heredoc bodies are
# checked through the redirect that owns them.
_LEAF_KINDS = frozenset({"reservedword", "operator", "pipe", "tilde", "heredoc"})

# Text that starts a command or process substitution.
_SUBSTITUTION_MARKERS = ("$(", "`", "<(", ">(")


class DecompositionError(ValueError):
    """Raised when a command line cannot be parsed."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"cannot parse command: {reason}")
        self.command = command


def _parse(command: str) -> list[Any]:
    try:
        return bashlex.parse(command)
    except Exception as e:
        # bashlex raises ParsingError, NotImplementedError, and the odd
        # IndexError on input it does not understand.
        raise DecompositionError(command, str(e) or type(e).__name__) from e


def _source(source: str, node: Any) -> str:
    start, end = node.pos
    return source[start:end]


def _expansion_hides_substitution(text: str) -> bool:
    """True when a ${...} expansion in ``text`` contains a substitution.

    bash runs those while expanding the word, and bashlex keeps the whole
    expansion as one opaque parameter node.
    """
    start = text.find("${")
    while start != -1:
        depth = 0
        end = len(text)  # unbalanced: check the rest of the word
        for i in range(start + 1, len(text)):
            if text[i] == "{":
                depth += 1
            elif text[i] == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if any(marker in text[start:end] for marker in _SUBSTITUTION_MARKERS):
            return True
        start = text.find("${", start + 2)
    return False


def _check_heredoc(source: str, redirect: Any) -> None:
    heredoc = getattr(redirect, "heredoc", None)
    if heredoc is None or isinstance(redirect.output, int):
        return
    # <<'EOF', <<"EOF" and <<\EOF keep the body literal
    delimiter = _source(source, redirect.output)
    if any(quote in delimiter for quote in ("'", '"', "\\")):
        return
    body = getattr(heredoc, "value", None) or _source(source, heredoc)
    if "$(" in body or "`" in body:
        raise DecompositionError(source, "command substitution inside here-document")


def _render_command(source: str, node: Any) -> str | None:
    """Render a simple command from its word and assignment nodes.

    Returns None for a command made only of assignments.
    """
    if not any(part.kind == "word" for part in node.parts):
        return None
    return " ".join(
        _source(source, part)
        for part in node.parts
        if part.kind in ("word", "assignment")
    )


def _collect(source: str, node: Any, commands: list[str]) -> None:
    kind = node.kind

    if kind in _LEAF_KINDS:
        return

    if kind == "command":
        rendered = _render_command(source, node)
        if rendered is not None:
            commands.append(rendered)
        for part in node.parts:
            _collect(source, part, commands)
        return

    if kind in ("commandsubstitution", "processsubstitution"):
        _collect(source, node.command, commands)
        return

    if kind == "redirect":
        _check_heredoc(source, node)
        # fd duplication (2>&1) carries an int, not a word
        if not isinstance(node.output, int):
            _collect(source, node.output, commands)
        return

    if kind == "compound":
        for child in node.list:
            _collect(source, child, commands)
        for redirect in getattr(node, "redirects", None) or []:
            _collect(source, redirect, commands)
        return

    if kind == "parameter":
        value = getattr(node, "value", None) or ""
        if any(marker in value for marker in _SUBSTITUTION_MARKERS):
            raise DecompositionError(source, "substitution inside parameter expansion")
        return

    if kind in ("word", "assignment") and _expansion_hides_substitution(
        _source(source, node)
    ):
        raise DecompositionError(source, "substitution inside parameter expansion")

    # word, assignment, list, pipeline, if, for, while, until, function
    children = getattr(node, "list", None) or getattr(node, "parts", None) or []
    for child in children:
        _collect(source, child, commands)


def extract_commands(command: str) -> list[str]:
    """Return every atomic command in ``command``, left to right, depth first.

    A command is listed before the commands found in substitutions inside its
    own words. Redirections are not part of the rendered command. Raises
    DecompositionError when the line does not parse.

    >>> extract_commands("ls -la | grep txt")
    ['ls -la', 'grep txt']
    """
    if not command.strip():
        return []

    commands: list[str] = []
    for node in _parse(command):
        _collect(command, node, commands)
    return commands


def tokenize(command: str) -> list[str]:
    """Split the first simple command into words, keeping quote characters.

    Leading assignments stay attached to the command word (``FOO=1 ls``), as
    they are in the rendered atomic command. Falls back to whitespace
    splitting when the input does not parse or is not a simple command.
    """
    if not command.strip():
        return []

    try:
        nodes = _parse(command)
    except DecompositionError:
        return command.split()

    if not nodes or nodes[0].kind != "command":
        return command.split()

    leading: list[str] = []
    words: list[str] = []
    for part in nodes[0].parts:
        if part.kind == "word":
            words.append(_source(command, part))
        elif part.kind == "assignment" and not words:
            leading.append(_source(command, part))

    if words and leading:
        words[0] = " ".join([*leading, words[0]])
    return words or leading
