"""Resolved runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .constants import (
    DEFAULT_CACHE_SIZE,
    DEFAULT_COMMAND_TEMPLATE,
    DEFAULT_LOG_PATH,
    DEFAULT_MARKER,
    DEFAULT_MAX_CHARS,
    DEFAULT_POLL_SECONDS,
    DEFAULT_RUN_CACHE_SIZE,
    DEFAULT_SEND_TIMEOUT_SECONDS,
    DEFAULT_SESSIONS_DIR,
    DEFAULT_SOURCE_CHANNEL,
    DEFAULT_TARGET_CHANNEL,
    MODES,
)
from .errors import MirrorError

ENV_PREFIX = "CHANMIRROR_"
TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True)
class MirrorConfig:
    """Runtime parameters for one daemon instance.

    Attributes:
        mode: `logs` (run correlation over the runtime log) or `transcripts`
            (turn correlation over session transcripts).
        target_id: Messaging target that receives mirrored text.
        log_path: Runtime log followed in `logs` mode.
        sessions_dir: Session transcript directory.
        source_channel: Channel whose replies are mirrored.
        target_channel: Channel label of the messaging target.
        marker: Tag prepended to every mirrored message.
        cache_size: Bound on remembered mirrored texts.
        run_cache_size: Bound on pending and processed run ids.
        poll_seconds: Delay between file polls.
        send_timeout_seconds: Upper bound for one send command.
        max_chars: Size limit of one outgoing message.
        command_template: Send command with `{target}` and `{message}`.
        shell: Run the send command through the shell.
        state_dir: Activity log directory, None to disable.
        from_start: Read followed files from the top instead of the end.
    """

    mode: str
    target_id: str
    log_path: Path = DEFAULT_LOG_PATH
    sessions_dir: Path = DEFAULT_SESSIONS_DIR
    source_channel: str = DEFAULT_SOURCE_CHANNEL
    target_channel: str = DEFAULT_TARGET_CHANNEL
    marker: str = DEFAULT_MARKER
    cache_size: int = DEFAULT_CACHE_SIZE
    run_cache_size: int = DEFAULT_RUN_CACHE_SIZE
    poll_seconds: float = DEFAULT_POLL_SECONDS
    send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS
    max_chars: int = DEFAULT_MAX_CHARS
    command_template: str = DEFAULT_COMMAND_TEMPLATE
    shell: bool = False
    state_dir: Path | None = None
    from_start: bool = False


def load_config(
    mode: str,
    options: Mapping[str, object],
    environ: Mapping[str, str] | None = None,
) -> MirrorConfig:
    """Resolve configuration from CLI options, environment and defaults.

    CLI options win over `CHANMIRROR_*` environment variables, which win over
    built-in defaults.

    Args:
        mode: Input mode, `logs` or `transcripts`.
        options: Parsed CLI options keyed by config field name.
        environ: Environment mapping, defaults to `os.environ`.

    Returns:
        Validated configuration.

    Raises:
        MirrorError: If a value is missing or invalid.
    """
    if mode not in MODES:
        raise MirrorError(f"validation error: mode must be one of {', '.join(MODES)}")
    env = os.environ if environ is None else environ

    def lookup(name: str) -> object | None:
        value = options.get(name)
        if value is not None:
            return value
        return env.get(ENV_PREFIX + name.upper())

    target_id = lookup("target_id")
    if not isinstance(target_id, str) or not target_id.strip():
        raise MirrorError(
            "validation error: target id is required (--target or CHANMIRROR_TARGET_ID)"
        )

    marker = _text(lookup("marker"), DEFAULT_MARKER, "marker")
    command_template = _text(lookup("command"), DEFAULT_COMMAND_TEMPLATE, "command")
    if "{message}" not in command_template:
        raise MirrorError("validation error: command must contain {message}")

    state_dir = lookup("state_dir")
    return MirrorConfig(
        mode=mode,
        target_id=target_id.strip(),
        log_path=Path(str(lookup("log_path") or DEFAULT_LOG_PATH)).expanduser(),
        sessions_dir=Path(str(lookup("sessions_dir") or DEFAULT_SESSIONS_DIR)).expanduser(),
        source_channel=_text(lookup("source_channel"), DEFAULT_SOURCE_CHANNEL, "source channel"),
        target_channel=_text(lookup("target_channel"), DEFAULT_TARGET_CHANNEL, "target channel"),
        marker=marker,
        cache_size=_positive_int(lookup("cache_size"), DEFAULT_CACHE_SIZE, "cache size"),
        run_cache_size=_positive_int(
            lookup("run_cache_size"), DEFAULT_RUN_CACHE_SIZE, "run cache size"
        ),
        poll_seconds=_positive_float(lookup("poll_seconds"), DEFAULT_POLL_SECONDS, "poll seconds"),
        send_timeout_seconds=_positive_float(
            lookup("send_timeout_seconds"), DEFAULT_SEND_TIMEOUT_SECONDS, "send timeout"
        ),
        max_chars=_positive_int(lookup("max_chars"), DEFAULT_MAX_CHARS, "max chars"),
        command_template=command_template,
        shell=_flag(lookup("shell"), "shell"),
        state_dir=Path(str(state_dir)).expanduser() if state_dir else None,
        from_start=_flag(options.get("from_start"), "from start"),
    )


def _text(value: object | None, default: str, label: str) -> str:
    """Return a non-empty string option."""
    if value is None:
        return default
    text = str(value).strip()
    if not text:
        raise MirrorError(f"validation error: {label} cannot be empty")
    return text


def _positive_int(value: object | None, default: int, label: str) -> int:
    """Return a positive integer option."""
    if value is None:
        return default
    try:
        parsed = int(str(value))
    except ValueError as exc:
        raise MirrorError(f"validation error: {label} must be an integer") from exc
    if parsed <= 0:
        raise MirrorError(f"validation error: {label} must be positive")
    return parsed


def _positive_float(value: object | None, default: float, label: str) -> float:
    """Return a positive number option."""
    if value is None:
        return default
    try:
        parsed = float(str(value))
    except ValueError as exc:
        raise MirrorError(f"validation error: {label} must be a number") from exc
    if parsed <= 0:
        raise MirrorError(f"validation error: {label} must be positive")
    return parsed


def _flag(value: object | None, label: str) -> bool:
    """Return a boolean option from a bool or an environment string."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise MirrorError(f"validation error: {label} must be true or false")
