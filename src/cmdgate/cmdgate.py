"""
cmdgate: decide whether a shell command line may run without asking.

A line is decomposed into every atomic command it would run (pipelines,
&&/|| chains, subshells, command substitutions, background jobs). It runs
unasked only if each atomic command matches an approved pattern, taken from
the authorized commands file plus a filtered environment channel.

Hook mode (``cmdgate check`` with no argument) reads a PreToolUse payload
from stdin and answers with a hookSpecificOutput decision:

    allow   every atomic command is approved
    ask     anything else, including parse failures
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from cmdgate.core.config import (
    Config,
    configure_logging,
    load_config,
    log_decision,
    log_event,
)
from cmdgate.core.parser import DecompositionError, extract_commands
from cmdgate.core.patterns import compound_command_patterns
from cmdgate.core.policy import get_approved_patterns, unmatched_commands
from cmdgate.core.store import AuthorizationStore, StoreError
from cmdgate.menu import PermissionsMenu
from cmdgate.prompt import Confirmer, TerminalConfirmer, user_confirmation

QUESTION = "Do I have your permission to run this command?"
DECLINED = "User declined this request"

# Menu and prompt answers that approve running the command
_APPROVING = ("y", "m", "manage")


@dataclass
class Authorization:
    """Outcome of the interactive gate."""

    approved: bool
    response: str
    message: str = ""


def check_command(
    command: str,
    store: AuthorizationStore,
    variables: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Non-interactive decision for ``command``.

    Returns {"authorized", "commands", "unmatched"} and, when the line does
    not parse, "error".
    """
    if variables is None:
        variables = os.environ

    try:
        commands = extract_commands(command)
        unmatched = unmatched_commands(command, get_approved_patterns(store, variables))
    except DecompositionError as e:
        log_decision("ask", command, reason="parse_failed")
        return {"authorized": False, "commands": [], "unmatched": [command], "error": str(e)}

    authorized = bool(commands) and not unmatched
    if authorized:
        log_decision("allow", command)
    else:
        log_decision("ask", command, reason="no_commands" if not commands else "unmatched")
    return {"authorized": authorized, "commands": commands, "unmatched": unmatched}


def _declined(response: str) -> Authorization:
    if response == "n":
        return Authorization(False, response, DECLINED)
    return Authorization(False, response, f"{DECLINED}: {response}")


def authorize_command(
    command: str,
    reason: str = "",
    *,
    store: AuthorizationStore,
    confirmer: Confirmer,
    variables: Mapping[str, str] | None = None,
    default_to_yes: bool = False,
) -> Authorization:
    """Gate ``command``: pass if pre-approved, otherwise ask the user.

    Answering "manage" opens the permission menu, whose result decides.
    """
    if check_command(command, store, variables)["authorized"]:
        return Authorization(True, "y")

    response = user_confirmation(confirmer, QUESTION, reason, default_to_yes)
    if response == "m":
        response = PermissionsMenu(store, confirmer).run(command)

    if response in _APPROVING:
        log_decision("allow", command, reason=f"user_{response}")
        return Authorization(True, response)

    log_decision("deny", command, reason="user_declined")
    return _declined(response)


# === Entry point ===


def _hook_output(decision: str, reason: str) -> dict[str, Any]:
    return {
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": decision,
            "permissionDecisionReason": reason,
        }
    }


def _hook_reason(result: dict[str, Any]) -> str:
    if result["authorized"]:
        return "all commands approved"
    if "error" in result:
        return "Could not parse command"
    if not result["commands"]:
        return "No commands found"
    return "Command requires approval: " + ", ".join(result["unmatched"])


def _cmd_check(args: argparse.Namespace, store: AuthorizationStore) -> int:
    if args.command is not None:
        result = check_command(args.command, store)
        print(json.dumps(result))
        return 0 if result["authorized"] else 1

    try:
        payload = json.load(sys.stdin)
        command = payload.get("tool_input", {}).get("command", "")
    except (ValueError, AttributeError) as e:
        log_event("warning", "hook_input_invalid", error=str(e))
        command = ""

    if not isinstance(command, str) or not command.strip():
        print(json.dumps(_hook_output("ask", "Empty command")))
        return 0

    result = check_command(command, store)
    decision = "allow" if result["authorized"] else "ask"
    print(json.dumps(_hook_output(decision, _hook_reason(result))))
    return 0


def _cmd_decompose(args: argparse.Namespace, store: AuthorizationStore) -> int:
    try:
        commands = extract_commands(args.command)
    except DecompositionError as e:
        print(f"cmdgate: {e}", file=sys.stderr)
        return 2
    for command in commands:
        print(command)
    return 0


def _cmd_list(args: argparse.Namespace, store: AuthorizationStore) -> int:
    for pattern in store.load():
        print(pattern)
    return 0


def _cmd_allow(args: argparse.Namespace, store: AuthorizationStore) -> int:
    try:
        patterns = compound_command_patterns(args.command)
    except DecompositionError as e:
        print(f"cmdgate: {e}", file=sys.stderr)
        return 2
    for pattern in patterns:
        store.append(pattern)
        print(pattern)
    return 0


def _cmd_manage(args: argparse.Namespace, store: AuthorizationStore) -> int:
    result = PermissionsMenu(store, TerminalConfirmer()).run(args.command)
    print(result)
    return 0 if result in _APPROVING else 1


def _cmd_confirm(
    args: argparse.Namespace, store: AuthorizationStore, config: Config
) -> int:
    outcome = authorize_command(
        args.command,
        args.reason,
        store=store,
        confirmer=TerminalConfirmer(),
        default_to_yes=config.default_to_yes,
    )
    if not outcome.approved:
        print(outcome.message, file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmdgate",
        description="Authorize compound shell commands against approved patterns.",
    )
    sub = parser.add_subparsers(dest="action", required=True)

    check = sub.add_parser("check", help="decide without asking (reads a hook payload without COMMAND)")
    check.add_argument("command", nargs="?")

    decompose = sub.add_parser("decompose", help="print each atomic command")
    decompose.add_argument("command")

    sub.add_parser("list", help="print stored patterns")

    allow = sub.add_parser("allow", help="always allow every command in COMMAND")
    allow.add_argument("command")

    manage = sub.add_parser("manage", help="choose prefixes to approve")
    manage.add_argument("command")

    confirm = sub.add_parser("confirm", help="run the full gate, asking if needed")
    confirm.add_argument("command")
    confirm.add_argument("--reason", default="", help="explanation shown before asking")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        print(f"cmdgate: {e}", file=sys.stderr)
        return 2
    configure_logging(config)
    store = AuthorizationStore.from_config(config)

    try:
        if args.action == "confirm":
            return _cmd_confirm(args, store, config)
        handler = {
            "check": _cmd_check,
            "decompose": _cmd_decompose,
            "list": _cmd_list,
            "allow": _cmd_allow,
            "manage": _cmd_manage,
        }[args.action]
        return handler(args, store)
    except StoreError as e:
        print(f"cmdgate: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
