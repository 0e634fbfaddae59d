"""
Tests for compound command validation and approved-pattern sources.
"""

import json

import pytest

from cmdgate.core.config import ENV_APPROVED_REGEX, ENV_SAFETY_CHECKS_DISABLED
from cmdgate.core.parser import DecompositionError
from cmdgate.core.policy import (
    get_approved_patterns,
    parse_env_patterns,
    safety_checks_disabled,
    unmatched_commands,
    validate_compound_command,
)
from cmdgate.core.store import AuthorizationStore

LS_ONLY = ["^ls.*"]


class TestValidateCompoundCommand:
    def test_all_approved(self):
        patterns = ["^ls.*", "^pwd.*", "^echo.*"]
        assert validate_compound_command("ls && echo $(pwd) && (echo done && ls)", patterns)

    @pytest.mark.parametrize(
        "command",
        [
            "ls; rm -rf /",
            "ls && rm -rf /",
            "ls || rm -rf /",
            "ls | rm -rf /",
            "(ls && rm -rf /)",
            "echo $(ls && rm -rf /)",
            "ls & rm -rf /",
            "ls `rm -rf /`",
            "ls $(rm -rf /)",
            "ls <(rm -rf /)",
            'ls "$(rm -rf /)"',
            "{ ls; rm -rf /; }",
        ],
    )
    def test_one_unapproved_command_rejects_all(self, command):
        assert not validate_compound_command(command, LS_ONLY)

    def test_substitution_needs_approval_too(self):
        assert not validate_compound_command("echo $(pwd)", ["^echo.*"])
        assert validate_compound_command("echo $(pwd)", ["^echo.*", "^pwd.*"])

    def test_long_pipeline(self):
        command = "ls -la | awk -F'|' '{print $1}' | sort -u"
        assert validate_compound_command(command, ["^ls.*", "^awk.*", "^sort.*"])
        assert not validate_compound_command(command, ["^ls.*", "^awk.*"])

    def test_subcommand_patterns(self):
        patterns = [r"^git\ status.*", r"^git\ diff.*"]
        assert validate_compound_command("git status && git diff --stat", patterns)
        assert not validate_compound_command("git status && git push --force", patterns)

    def test_pattern_is_anchored(self):
        assert not validate_compound_command("rm -rf / ; echo ls", ["^echo.*"])
        assert not validate_compound_command("sudo ls", LS_ONLY)

    def test_invalid_patterns_skipped(self):
        assert validate_compound_command("ls", ["[invalid", "(", "^ls.*"])
        assert not validate_compound_command("ls", ["[invalid"])

    def test_no_patterns(self):
        assert not validate_compound_command("ls", [])

    @pytest.mark.parametrize("command", ["", "   ", "FOO=bar"])
    def test_nothing_to_run_is_not_authorized(self, command):
        assert not validate_compound_command(command, [".*"])

    @pytest.mark.parametrize("command", ["ls &&", "ls; (rm", "echo 'oops"])
    def test_parse_failure_raises(self, command):
        with pytest.raises(DecompositionError):
            validate_compound_command(command, [".*"])

    @pytest.mark.parametrize(
        "command",
        [
            "echo ${x:-$(rm -rf /)}",
            "echo ${x/$(rm -rf /)/y}",
            "echo ${x:-`rm -rf /`}",
            "cat <<EOF\n$(rm -rf /)\nEOF",
            "cat <<EOF\n`rm -rf /`\nEOF",
            "echo $((1 + 2))",
            "[[ -f x ]]",
        ],
    )
    def test_hidden_commands_never_validate(self, command):
        with pytest.raises(DecompositionError):
            validate_compound_command(command, ["^echo.*", "^cat.*", "^\\[\\[.*"])

    def test_quoted_heredoc_validates_on_command_alone(self):
        assert validate_compound_command("cat <<'EOF'\n$(rm -rf /)\nEOF", ["^cat.*"])

    def test_match_everything(self):
        assert validate_compound_command("ls && rm -rf / | sh", [".*"])


class TestUnmatchedCommands:
    def test_lists_unmatched(self):
        assert unmatched_commands("ls && rm -rf / | grep x", LS_ONLY) == ["rm -rf /", "grep x"]

    def test_all_matched(self):
        assert unmatched_commands("ls | ls", LS_ONLY) == []

    def test_parse_failure(self):
        with pytest.raises(DecompositionError):
            unmatched_commands("ls &&", LS_ONLY)


class TestParseEnvPatterns:
    def test_array(self):
        assert parse_env_patterns('["^git.*", "^npm.*"]') == ["^git.*", "^npm.*"]

    @pytest.mark.parametrize("value", [None, "", "not json", "[", '{"a": 1}', '"^ls.*"', "42"])
    def test_malformed_yields_nothing(self, value):
        assert parse_env_patterns(value) == []

    def test_non_strings_dropped(self):
        assert parse_env_patterns('["^ls.*", 1, null, ["^x"], "^pwd.*"]') == ["^ls.*", "^pwd.*"]


class TestSafetyChecksDisabled:
    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", "on", " On "])
    def test_truthy(self, value):
        assert safety_checks_disabled({ENV_SAFETY_CHECKS_DISABLED: value})

    @pytest.mark.parametrize("value", ["false", "0", "no", "", "enabled"])
    def test_falsy(self, value):
        assert not safety_checks_disabled({ENV_SAFETY_CHECKS_DISABLED: value})

    def test_unset(self):
        assert not safety_checks_disabled({})


class TestGetApprovedPatterns:
    def test_file_patterns(self, store, no_env):
        store.append("^ls.*")
        assert get_approved_patterns(store, no_env) == ["^ls.*"]

    def test_env_then_file(self, store):
        store.append("^ls.*")
        env = {ENV_APPROVED_REGEX: json.dumps(["^git.*"])}
        assert get_approved_patterns(store, env) == ["^git.*", "^ls.*"]

    def test_env_dangerous_filtered(self, store):
        env = {ENV_APPROVED_REGEX: json.dumps([".*", "^git.*", ".+"])}
        assert get_approved_patterns(store, env) == ["^git.*"]

    def test_file_patterns_not_filtered(self, store, no_env):
        store.append(".*")
        assert get_approved_patterns(store, no_env) == [".*"]

    def test_malformed_env_keeps_file_patterns(self, store):
        store.append("^ls.*")
        env = {ENV_APPROVED_REGEX: "{not json"}
        assert get_approved_patterns(store, env) == ["^ls.*"]

    def test_safety_override(self, store):
        store.append("^ls.*")
        env = {
            ENV_SAFETY_CHECKS_DISABLED: "true",
            ENV_APPROVED_REGEX: json.dumps(["^git.*"]),
        }
        assert get_approved_patterns(store, env) == [".*"]

    def test_safety_override_not_persisted(self, store):
        get_approved_patterns(store, {ENV_SAFETY_CHECKS_DISABLED: "1"})
        assert store.load() == []

    def test_store_error_yields_env_only(self, tmp_path):
        broken = tmp_path / "authorized_commands"
        broken.mkdir()
        env = {ENV_APPROVED_REGEX: json.dumps(["^git.*"])}
        assert get_approved_patterns(AuthorizationStore(broken), env) == ["^git.*"]

    def test_append_visible(self, store, no_env):
        assert get_approved_patterns(store, no_env) == []
        store.append("^ls.*")
        assert get_approved_patterns(store, no_env) == ["^ls.*"]

    def test_defaults_to_process_environment(self, store, monkeypatch):
        monkeypatch.setenv(ENV_APPROVED_REGEX, json.dumps(["^make.*"]))
        monkeypatch.delenv(ENV_SAFETY_CHECKS_DISABLED, raising=False)
        assert get_approved_patterns(store) == ["^make.*"]
