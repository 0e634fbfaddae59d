"""
Permission menu: choose which command prefixes to approve for good.

The menu lists up to three prefixes for every atomic command in the original
line. Each is pre-checked when the pattern it would store is already present
in the store. Applying writes the checked prefixes back.

Results: "y" (run once), "n" (decline), "manage" (run, and approvals were
saved) or free-form text (decline with that reason).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from cmdgate.core.config import log_event
from cmdgate.core.parser import DecompositionError, extract_commands
from cmdgate.core.patterns import (
    candidate_prefixes,
    exact_prefix_pattern,
    loose_authorization_pattern,
    preselection_pattern,
)
from cmdgate.core.store import AuthorizationStore, StoreError
from cmdgate.prompt import Confirmer

MAX_ITEM_WIDTH = 60
MAX_CURRENT_WIDTH = 50
MAX_ENABLED_WIDTH = 30

_UP = ("k", "up")
_DOWN = ("j", "down")
_TOGGLE = ("space", "toggle")
_APPLY = ("", "enter", "apply")
_CANCEL = ("esc", "escape", "cancel", "q", "quit")
_YES = ("y", "yes")
_NO = ("n", "no")
_HELP = ("h", "help", "?")

CONTROLS = (
    "Controls: j/k=navigate, space=toggle, enter=apply, esc=cancel\n"
    "Direct: y=yes (one-time), n=no (deny), 1-9=jump\n"
)


@dataclass
class PermissionAtom:
    """One prefix offered in the menu."""

    command: str
    enabled: bool = False
    is_new: bool = True


@dataclass
class PermissionsMenuState:
    atoms: list[PermissionAtom] = field(default_factory=list)
    selected_index: int = 0
    original_command: str = ""
    active: bool = True

    @property
    def selected(self) -> PermissionAtom | None:
        if 0 <= self.selected_index < len(self.atoms):
            return self.atoms[self.selected_index]
        return None

    def toggle(self) -> None:
        atom = self.selected
        if atom is not None:
            atom.enabled = not atom.enabled

    def enabled_commands(self) -> list[str]:
        return [atom.command for atom in self.atoms if atom.enabled]


def _truncate(text: str, width: int) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def build_menu_state(command: str, store: AuthorizationStore) -> PermissionsMenuState:
    """Build the menu for ``command``, pre-checking prefixes already approved."""
    try:
        commands = extract_commands(command)
    except DecompositionError as e:
        log_event("warning", "menu_decompose_failed", error=str(e))
        commands = [command]

    atoms = []
    for atomic in commands:
        for prefix in candidate_prefixes(atomic):
            pattern = preselection_pattern(prefix)
            try:
                enabled = store.is_pattern_literally_present(pattern)
            except StoreError as e:
                log_event("warning", "menu_preselect_failed", pattern=pattern, error=str(e))
                enabled = False
            atoms.append(PermissionAtom(command=prefix, enabled=enabled, is_new=not enabled))

    return PermissionsMenuState(atoms=atoms, original_command=command)


def apply_menu_selection(state: PermissionsMenuState, store: AuthorizationStore) -> str:
    """Commit the checked prefixes.

    Stored patterns generated by any prefix shown in this menu are replaced by
    the loose patterns of the checked prefixes; everything else is kept.
    Returns "manage" when at least one prefix is checked, else "y".
    """
    state.active = False

    try:
        existing = store.load()
    except StoreError as e:
        log_event("error", "menu_load_failed", error=str(e))
        existing = []

    managed = set()
    for atom in state.atoms:
        managed.add(loose_authorization_pattern(atom.command))
        managed.add(exact_prefix_pattern(atom.command))

    patterns = [pattern for pattern in existing if pattern not in managed]
    enabled = [atom for atom in state.atoms if atom.enabled]
    patterns.extend(loose_authorization_pattern(atom.command) for atom in enabled)

    try:
        store.replace_all(patterns)
    except StoreError as e:
        log_event("error", "menu_save_failed", error=str(e))

    return "manage" if enabled else "y"


def handle_menu_input(
    state: PermissionsMenuState, text: str, store: AuthorizationStore
) -> str | None:
    """Apply one line of input. Returns None while the menu stays open."""
    # A lone space is a toggle, and would be lost to strip()
    if text == " ":
        state.toggle()
        return None

    answer = text.strip()
    key = answer.lower()

    if key in _UP:
        if state.selected_index > 0:
            state.selected_index -= 1
        return None
    if key in _DOWN:
        if state.selected_index < len(state.atoms) - 1:
            state.selected_index += 1
        return None
    if key in _TOGGLE:
        state.toggle()
        return None
    if key in _HELP:
        return None
    if key in _APPLY:
        return apply_menu_selection(state, store)
    if key in _CANCEL or key in _NO:
        state.active = False
        return "n"
    if key in _YES:
        state.active = False
        return "y"
    if len(key) == 1 and "1" <= key <= "9":
        index = int(key) - 1
        if index < len(state.atoms):
            state.selected_index = index
        return None

    state.active = False
    return answer


def render_menu(state: PermissionsMenuState) -> str:
    lines = [
        f"Managing permissions for: {state.original_command}",
        "",
        "Permission Management - Toggle permissions for command prefixes:",
        "",
    ]
    for i, atom in enumerate(state.atoms):
        indicator = ">    " if i == state.selected_index else "     "
        checkbox = "[✓]" if atom.enabled else "[ ]"
        lines.append(f"{indicator}{checkbox} {_truncate(atom.command, MAX_ITEM_WIDTH)}")
    lines.append("")

    text = "\n".join(lines) + "\n" + CONTROLS
    if state.selected is not None:
        text += f"\nCurrent: {_truncate(state.selected.command, MAX_CURRENT_WIDTH)}\n"
    enabled = [_truncate(c, MAX_ENABLED_WIDTH) for c in state.enabled_commands()]
    text += f"Enabled: {', '.join(enabled) if enabled else 'none'}\n"
    return text


class PermissionsMenu:
    """Runs the menu against a store through a Confirmer.

    Only one run at a time per menu; a concurrent run declines immediately.
    """

    def __init__(self, store: AuthorizationStore, confirmer: Confirmer):
        self.store = store
        self.confirmer = confirmer
        self._running = threading.Lock()

    def open(self, command: str) -> PermissionsMenuState:
        return build_menu_state(command, self.store)

    def run(self, command: str) -> str:
        if not self._running.acquire(blocking=False):
            log_event("warning", "menu_already_running")
            return "n"
        try:
            result = self._run(command)
        finally:
            self._running.release()
        log_event("info", "menu_result", result=result)
        return result

    def _run(self, command: str) -> str:
        if not self.confirmer.interactive:
            return "n"

        state = self.open(command)
        if not state.atoms:
            return "n"

        while state.active:
            self.confirmer.write(render_menu(state))
            try:
                text = self.confirmer.read_line("> ")
            except (KeyboardInterrupt, EOFError):
                state.active = False
                return "n"
            result = handle_menu_input(state, text, self.store)
            if result is not None:
                return result
        return "n"
