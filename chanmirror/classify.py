"""Line classification for runtime logs and session transcripts."""

from __future__ import annotations

import json
import re

from .constants import (
    DEFAULT_SOURCE_CHANNEL,
    DEFAULT_TARGET_CHANNEL,
    OTHER_CHANNEL,
    RUN_DONE_PREFIX,
    RUN_START_PREFIX,
    RUN_SUBSYSTEM,
    SYSTEM_CHANNEL,
    SYSTEM_TEXT_PREFIXES,
)
from .events import AssistantTurn, LogEvent, RunDone, RunStart, Unrecognized, UserTurn

KNOWN_CHANNELS = frozenset(
    {
        "webchat",
        "telegram",
        "whatsapp",
        "discord",
        "signal",
        "slack",
        "imessage",
        "sms",
        "matrix",
    }
)
TRANSCRIPT_ENTRY_TYPES = (None, "message", "user", "assistant")

CHANNEL_PREFIX_PATTERN = re.compile(r"^\[([A-Za-z][\w-]*)[\s\]]")
MESSAGE_ID_PATTERN = re.compile(r"\[message_id:\s*([^\]\s]+)\s*\]")
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
NUMERIC_ID_PATTERN = re.compile(r"^\d+$")


def classify_line(
    line: str | None,
    source_channel: str = DEFAULT_SOURCE_CHANNEL,
    target_channel: str = DEFAULT_TARGET_CHANNEL,
) -> LogEvent:
    """Classify one raw log or transcript line.

    Never raises: anything that is not a complete, well-formed entry comes
    back as `Unrecognized`.

    Args:
        line: Raw line, possibly empty or cut off mid-write.
        source_channel: Channel whose user turns trigger mirroring.
        target_channel: Channel that receives mirrored text.

    Returns:
        Typed event for the line.
    """
    if not isinstance(line, str) or not line.strip():
        return Unrecognized("empty line")
    # deeply nested input exhausts the decoder recursion limit
    try:
        entry = json.loads(line)
    except (json.JSONDecodeError, RecursionError):
        return Unrecognized("malformed json")
    if not isinstance(entry, dict):
        return Unrecognized("expected JSON object")

    message = entry.get("message")
    if isinstance(message, dict) and "role" in message:
        return _classify_transcript_entry(entry, message, source_channel, target_channel)
    return _classify_log_entry(entry)


def parse_subsystem(entry: object) -> str | None:
    """Return the subsystem tag of a runtime log entry.

    Structured entries carry a JSON object such as
    ``{"subsystem": "agent/embedded"}`` in field ``"0"``. Plain log entries
    carry free text there instead.

    Args:
        entry: Parsed log entry.

    Returns:
        Subsystem name, or None for plain or malformed entries.
    """
    if not isinstance(entry, dict):
        return None
    head = entry.get("0")
    if not isinstance(head, str) or not head.startswith("{"):
        return None
    try:
        parsed = json.loads(head)
    except (json.JSONDecodeError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    subsystem = parsed.get("subsystem")
    if isinstance(subsystem, str) and subsystem:
        return subsystem
    return None


def parse_key_values(text: str) -> dict[str, str]:
    """Parse whitespace-separated `key=value` tokens.

    Args:
        text: Log message text.

    Returns:
        Mapping of keys to values. Tokens without `=` are ignored.
    """
    fields: dict[str, str] = {}
    for token in text.split():
        key, sep, value = token.partition("=")
        if sep and key and value:
            fields[key] = value
    return fields


def fingerprint_channel(
    text: str,
    source_channel: str = DEFAULT_SOURCE_CHANNEL,
    target_channel: str = DEFAULT_TARGET_CHANNEL,
) -> str:
    """Infer the origin channel of a user turn from its raw text.

    Rules, first match wins:
    1. leading bracketed channel name (``[telegram ...]``) names the channel
    2. leading system marker (status, queued, audio) means `system`
    3. no ``[message_id: ...]`` token means `other`
    4. UUID id means the source channel, numeric id means the target channel

    Args:
        text: User turn text.
        source_channel: Channel label returned for UUID ids.
        target_channel: Channel label returned for numeric ids.

    Returns:
        Channel label.
    """
    stripped = text.lstrip()

    prefix = CHANNEL_PREFIX_PATTERN.match(stripped)
    if prefix is not None:
        name = prefix.group(1).lower()
        if name in KNOWN_CHANNELS or name in (source_channel, target_channel):
            return name

    lowered = stripped.lower()
    for marker in SYSTEM_TEXT_PREFIXES:
        if lowered.startswith(marker):
            return SYSTEM_CHANNEL

    matches = MESSAGE_ID_PATTERN.findall(stripped)
    if not matches:
        return OTHER_CHANNEL

    # the gateway appends the id, so the last token is the authoritative one
    message_id = matches[-1]
    if UUID_PATTERN.match(message_id):
        return source_channel
    if NUMERIC_ID_PATTERN.match(message_id):
        return target_channel
    return OTHER_CHANNEL


def extract_user_text(content: object) -> str:
    """Return the first text-bearing element of user message content."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    for block in content:
        if isinstance(block, str) and block.strip():
            return block
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text_value = block.get("text")
        if isinstance(text_value, str) and text_value.strip():
            return text_value
    return ""


def extract_assistant_text(content: object) -> str:
    """Join all text blocks of assistant message content.

    Tool calls, thinking blocks and other non-text elements are skipped.

    Args:
        content: Assistant `message.content` payload.

    Returns:
        Text blocks joined by a blank line, or an empty string.
    """
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""

    text_parts: list[str] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text_value = block.get("text")
        if isinstance(text_value, str) and text_value.strip():
            text_parts.append(text_value.strip())
    return "\n\n".join(text_parts)


def _classify_transcript_entry(
    entry: dict,
    message: dict,
    source_channel: str,
    target_channel: str,
) -> LogEvent:
    """Classify one transcript row that carries `message.role`."""
    if entry.get("type") not in TRANSCRIPT_ENTRY_TYPES:
        return Unrecognized(f"transcript entry type {entry.get('type')!r}")

    role = message.get("role")
    content = message.get("content")

    if role == "user":
        if _is_tool_result_only(content):
            return Unrecognized("tool result row")
        text = extract_user_text(content)
        channel = fingerprint_channel(text, source_channel, target_channel)
        return UserTurn(channel=channel, text=text)

    if role == "assistant":
        entry_id = entry.get("id")
        return AssistantTurn(
            text=extract_assistant_text(content),
            entry_id=entry_id if isinstance(entry_id, str) and entry_id else None,
        )

    return Unrecognized(f"transcript role {role!r}")


def _classify_log_entry(entry: dict) -> LogEvent:
    """Classify one structured runtime log entry."""
    subsystem = parse_subsystem(entry)
    if subsystem is None:
        return Unrecognized("no subsystem")
    if subsystem != RUN_SUBSYSTEM:
        return Unrecognized(f"subsystem {subsystem}")

    text = entry.get("1")
    if not isinstance(text, str):
        return Unrecognized("log message is not a string")

    if text.startswith(RUN_START_PREFIX):
        fields = parse_key_values(text[len(RUN_START_PREFIX) :])
        run_id = fields.get("runId")
        session_id = fields.get("sessionId")
        channel = fields.get("messageChannel") or fields.get("channel")
        if not run_id or not session_id or not channel:
            return Unrecognized("run start missing fields")
        return RunStart(run_id=run_id, session_id=session_id, channel=channel)

    if text.startswith(RUN_DONE_PREFIX):
        fields = parse_key_values(text[len(RUN_DONE_PREFIX) :])
        run_id = fields.get("runId")
        session_id = fields.get("sessionId")
        if not run_id or not session_id:
            return Unrecognized("run done missing fields")
        return RunDone(run_id=run_id, session_id=session_id)

    return Unrecognized("other run event")


def _is_tool_result_only(content: object) -> bool:
    """Return true when user content holds nothing but tool results.

    Args:
        content: User `message.content` payload.

    Returns:
        True when every block is a tool result.
    """
    if not isinstance(content, list) or not content:
        return False
    for block in content:
        if not isinstance(block, dict):
            return False
        if block.get("type") not in ("tool_result", "toolResult"):
            return False
    return True
