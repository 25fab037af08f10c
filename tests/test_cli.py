from __future__ import annotations

from unittest.mock import patch

import pytest

from chanmirror.cli import MirrorApplication, parse_command_line
from chanmirror.config import MirrorConfig
from chanmirror.errors import MirrorError


def test_parse_mode_and_value_flags():
    command_line = parse_command_line(
        ["logs", "--target", "12345", "--log=/tmp/x.log", "--cache-size", "5", "--verbose"]
    )

    assert command_line.mode == "logs"
    assert command_line.verbose is True
    assert command_line.options == {
        "target_id": "12345",
        "log_path": "/tmp/x.log",
        "cache_size": "5",
    }


def test_parse_boolean_flags():
    command_line = parse_command_line(["transcripts", "--shell", "--from-start"])
    assert command_line.options == {"shell": True, "from_start": True}


def test_parse_maps_timeout_and_command_flags():
    command_line = parse_command_line(
        ["logs", "--timeout", "5", "--command", "notify {target} {message}"]
    )
    assert command_line.options == {
        "send_timeout_seconds": "5",
        "command": "notify {target} {message}",
    }


def test_parse_rejects_unknown_mode():
    with pytest.raises(MirrorError, match="mode must be one of"):
        parse_command_line(["watch"])


def test_parse_rejects_unknown_argument():
    with pytest.raises(MirrorError, match="unknown argument: --bogus"):
        parse_command_line(["logs", "--bogus"])


def test_parse_rejects_flag_without_value():
    with pytest.raises(MirrorError, match="--target requires a value"):
        parse_command_line(["logs", "--target"])


def test_help_exits_zero(capsys):
    assert MirrorApplication().run(["--help"]) == 0
    assert "usage:" in capsys.readouterr().out


def test_no_arguments_prints_usage_and_exits_two(capsys):
    assert MirrorApplication().run([]) == 2
    assert "usage:" in capsys.readouterr().out


def test_validation_error_exits_one(capsys, monkeypatch):
    """Config errors are reported on stderr without starting the daemon."""
    monkeypatch.delenv("CHANMIRROR_TARGET_ID", raising=False)
    with patch.object(MirrorApplication, "_run_daemon") as run_daemon:
        assert MirrorApplication().run(["logs"]) == 1

    run_daemon.assert_not_called()
    assert "target id is required" in capsys.readouterr().err


def test_resolved_config_is_handed_to_daemon(monkeypatch, tmp_path):
    monkeypatch.delenv("CHANMIRROR_CACHE_SIZE", raising=False)
    with patch.object(MirrorApplication, "_run_daemon", return_value=0) as run_daemon:
        status = MirrorApplication().run(
            ["transcripts", "--target", "42", "--sessions-dir", str(tmp_path)]
        )

    assert status == 0
    config = run_daemon.call_args.args[0]
    assert isinstance(config, MirrorConfig)
    assert config.mode == "transcripts"
    assert config.target_id == "42"
    assert config.sessions_dir == tmp_path
