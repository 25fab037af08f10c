"""Prepare accepted text and hand it to the send transport."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .constants import DEFAULT_MARKER, DEFAULT_MAX_CHARS, TRUNCATION_SUFFIX
from .errors import MirrorError
from .transport import CommandTransport

logger = logging.getLogger(__name__)

# NUL cannot travel in argv; other C0 controls garble the target chat;
# lone surrogates (half of a split emoji) cannot be encoded as UTF-8
UNSAFE_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\ud800-\udfff]")


@dataclass(frozen=True)
class ForwardResult:
    """Outcome of one forward attempt.

    Attributes:
        ok: True when the send command succeeded.
        message: Exact text handed to the transport.
        detail: Failure reason, empty on success.
    """

    ok: bool
    message: str
    detail: str = ""


def escape_text(text: str) -> str:
    """Remove characters that cannot be passed to the send command.

    Quoting for shell transports happens in `CommandTransport`.

    Args:
        text: Accepted reply text.

    Returns:
        Text without NUL, non-printing control characters and lone
        surrogates. Newlines and tabs are kept.
    """
    return UNSAFE_CHARS_PATTERN.sub("", text.replace("\r\n", "\n"))


def truncate_text(text: str, limit: int) -> str:
    """Cut `text` to at most `limit` characters, marking the cut.

    Args:
        text: Text to shorten.
        limit: Maximum length of the returned text.

    Returns:
        Unchanged text when it fits, otherwise a prefix plus the truncation
        suffix.
    """
    if len(text) <= limit:
        return text
    keep = max(limit - len(TRUNCATION_SUFFIX), 0)
    return text[:keep].rstrip() + TRUNCATION_SUFFIX


def preview(text: str, width: int = 60) -> str:
    """Return a one-line preview for log output."""
    flat = " ".join(escape_text(text).split())
    if len(flat) <= width:
        return flat
    return flat[: width - 1] + "…"


class Forwarder:
    """Tag, bound and send mirrored text to one target."""

    def __init__(
        self,
        transport: CommandTransport,
        target_id: str,
        marker: str = DEFAULT_MARKER,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        """Initialize the forwarder.

        Args:
            transport: Send command adapter.
            target_id: Messaging target identifier.
            marker: Tag prepended to every message.
            max_chars: Size limit of the final tagged message.
        """
        if not target_id:
            raise MirrorError("validation error: target id cannot be empty")
        if max_chars <= len(marker) + 1 + len(TRUNCATION_SUFFIX):
            raise MirrorError("validation error: max chars too small for marker and suffix")
        self.transport = transport
        self.target_id = target_id
        self.marker = marker
        self.max_chars = max_chars

    def format_message(self, text: str) -> str:
        """Return the exact outgoing message for accepted text."""
        body = escape_text(text).strip()
        body = truncate_text(body, self.max_chars - len(self.marker) - 1)
        return f"{self.marker} {body}"

    def forward(self, text: str) -> ForwardResult:
        """Send one accepted text.

        Failures are logged and returned. Nothing is retried.

        Args:
            text: Text accepted by the echo filter.

        Returns:
            Forward outcome.
        """
        if not escape_text(text).strip():
            logger.warning("nothing sendable left in reply for %s", self.target_id)
            return ForwardResult(ok=False, message="", detail="no sendable text")
        message = self.format_message(text)
        result = self.transport.send(self.target_id, message)
        if not result.ok:
            logger.warning(
                "failed to forward to %s: %s (%s)",
                self.target_id,
                result.detail,
                preview(text),
            )
            return ForwardResult(ok=False, message=message, detail=result.detail)

        logger.info("mirrored to %s: %s", self.target_id, preview(text))
        return ForwardResult(ok=True, message=message)
