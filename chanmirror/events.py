"""Typed events produced by the line classifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class UserTurn:
    """One user row from a session transcript.

    Attributes:
        channel: Origin channel inferred from the text (see
            `classify.fingerprint_channel`).
        text: First text-bearing content element.
    """

    channel: str
    text: str


@dataclass(frozen=True)
class AssistantTurn:
    """One assistant row from a session transcript.

    Attributes:
        text: All text blocks joined by a blank line, empty when the row only
            carries tool calls or thinking blocks.
        entry_id: Transcript entry id when present.
    """

    text: str
    entry_id: str | None = None


@dataclass(frozen=True)
class RunStart:
    """Embedded agent run started."""

    run_id: str
    session_id: str
    channel: str


@dataclass(frozen=True)
class RunDone:
    """Embedded agent run finished."""

    run_id: str
    session_id: str


@dataclass(frozen=True)
class Unrecognized:
    """Line that carries nothing the correlators act on."""

    reason: str = ""


LogEvent = Union[UserTurn, AssistantTurn, RunStart, RunDone, Unrecognized]
