"""
cmdgate - Authorization for compound shell commands.

Runs a command line unasked only when every command inside it is approved.
"""

from __future__ import annotations

__version__ = "0.1.0"

from cmdgate.cmdgate import Authorization, authorize_command, check_command
from cmdgate.core.parser import DecompositionError, extract_commands
from cmdgate.core.policy import get_approved_patterns, validate_compound_command
from cmdgate.core.store import AuthorizationStore, StoreError

__all__ = [
    "Authorization",
    "AuthorizationStore",
    "DecompositionError",
    "StoreError",
    "authorize_command",
    "check_command",
    "extract_commands",
    "get_approved_patterns",
    "validate_compound_command",
    "__version__",
]
