"""Read-only access to the per-session transcript files."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .classify import extract_assistant_text

logger = logging.getLogger(__name__)


class SessionStore:
    """Directory of `<session_id>.jsonl` transcripts."""

    def __init__(self, sessions_dir: Path) -> None:
        """Initialize the store.

        Args:
            sessions_dir: Directory holding the session transcripts.
        """
        self.sessions_dir = sessions_dir.expanduser()

    def transcript_path(self, session_id: str) -> Path | None:
        """Return the transcript path for a session id.

        Args:
            session_id: Session identifier taken from a log line.

        Returns:
            Transcript path, or None when the id is not a plain file name.
        """
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            return None
        return self.sessions_dir / f"{session_id}.jsonl"

    def last_assistant_text(self, session_id: str) -> str | None:
        """Return the newest non-empty assistant reply in a session.

        Args:
            session_id: Session identifier.

        Returns:
            Assistant text, or None when the transcript is missing or holds no
            assistant text.
        """
        path = self.transcript_path(session_id)
        if path is None:
            logger.debug("rejecting session id %r", session_id)
            return None
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except FileNotFoundError:
            logger.debug("no transcript for session %s", session_id)
            return None
        except OSError as exc:
            logger.warning("cannot read transcript %s: %s", path, exc)
            return None

        for raw_line in reversed(lines):
            raw_line = raw_line.strip()
            if not raw_line:
                continue
            try:
                entry = json.loads(raw_line)
            except (json.JSONDecodeError, RecursionError):
                continue
            if not isinstance(entry, dict) or entry.get("type") != "message":
                continue
            message = entry.get("message")
            if not isinstance(message, dict) or message.get("role") != "assistant":
                continue
            text = extract_assistant_text(message.get("content"))
            if text:
                return text
        return None

    def newest_transcript(self) -> Path | None:
        """Return the most recently modified transcript, if any."""
        if not self.sessions_dir.is_dir():
            return None

        candidates: list[tuple[Path, float]] = []
        for session_file in self.sessions_dir.glob("*.jsonl"):
            try:
                candidates.append((session_file, session_file.stat().st_mtime))
            except OSError:
                continue
        if not candidates:
            return None

        candidates.sort(key=lambda item: item[1], reverse=True)
        return candidates[0][0]
