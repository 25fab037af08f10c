"""Poll-based followers for the runtime log and session transcripts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class LineBatch:
    """Complete lines read by one poll.

    Attributes:
        lines: New lines in file order, without line terminators.
        switched: True when the followed file was rotated, truncated or
            replaced by another session since the previous poll.
        path: File the lines came from.
    """

    lines: list[str] = field(default_factory=list)
    switched: bool = False
    path: Path | None = None


class FileFollower:
    """Follow one growing file by byte offset.

    A trailing fragment without a newline is held back until the writer
    finishes the line. A changed inode or a file shorter than the current
    offset restarts reading from the top of the new file.
    """

    def __init__(self, path: Path, start_offset: int | None = None) -> None:
        """Initialize the follower.

        Args:
            path: File to follow.
            start_offset: Byte offset to start from. None starts at the end
                of the file as first seen; a file that does not exist yet is
                read from the top once it appears.
        """
        self.path = path
        self._start_offset = start_offset
        self._offset = 0
        self._inode: int | None = None
        self._pending = b""

    @property
    def offset(self) -> int:
        """Byte offset of the next unread byte."""
        return self._offset

    def poll(self) -> LineBatch:
        """Read complete lines appended since the previous poll."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            if self._inode is None:
                self._start_offset = 0
            return LineBatch(path=self.path)
        except OSError as exc:
            logger.warning("cannot stat %s: %s", self.path, exc)
            return LineBatch(path=self.path)

        switched = False
        if self._inode is None:
            self._inode = stat.st_ino
            if self._start_offset is None:
                self._offset = stat.st_size
            else:
                self._offset = min(self._start_offset, stat.st_size)
        elif stat.st_ino != self._inode or stat.st_size < self._offset:
            logger.info("%s was rotated or truncated; reading from the top", self.path)
            self._inode = stat.st_ino
            self._offset = 0
            self._pending = b""
            switched = True

        if stat.st_size == self._offset:
            return LineBatch(switched=switched, path=self.path)

        try:
            with self.path.open("rb") as handle:
                handle.seek(self._offset)
                chunk = handle.read()
                self._offset = handle.tell()
        except OSError as exc:
            logger.warning("cannot read %s: %s", self.path, exc)
            return LineBatch(switched=switched, path=self.path)

        parts = (self._pending + chunk).split(b"\n")
        self._pending = parts.pop()
        lines = [part.decode("utf-8", errors="replace").rstrip("\r") for part in parts]
        return LineBatch(lines=lines, switched=switched, path=self.path)


class SessionFollower:
    """Follow whichever session transcript was modified most recently.

    Files present at startup resume from their startup size; files created
    later are read from the top. Switching away and back resumes where the
    earlier follower stopped. Followers of deleted transcripts are dropped.
    """

    def __init__(self, store: SessionStore, *, from_start: bool = False) -> None:
        """Initialize the follower.

        Args:
            store: Session transcript directory.
            from_start: Read the first followed transcript from the top.
        """
        self.store = store
        self._from_start = from_start
        self._started = False
        self._baseline: dict[Path, int] | None = None
        self._followers: dict[Path, FileFollower] = {}
        self._active: FileFollower | None = None

    @property
    def active_path(self) -> Path | None:
        """Transcript currently followed."""
        return self._active.path if self._active is not None else None

    def poll(self) -> LineBatch:
        """Read new lines from the newest transcript."""
        if self._baseline is None:
            self._baseline = self._snapshot_sizes()

        newest = self.store.newest_transcript()
        if newest is None:
            return LineBatch()

        switched = False
        if self._active is None or self._active.path != newest:
            if self._active is not None:
                logger.info("session switch: %s -> %s", self._active.path.name, newest.name)
                switched = True
            self._prune_missing()
            self._active = self._follower_for(newest)

        batch = self._active.poll()
        batch.switched = batch.switched or switched
        return batch

    def _follower_for(self, path: Path) -> FileFollower:
        """Return the cached follower for one transcript, creating it if needed."""
        follower = self._followers.get(path)
        if follower is not None:
            return follower

        if self._from_start and not self._started:
            start_offset = 0
        else:
            start_offset = (self._baseline or {}).get(path, 0)
        self._started = True
        follower = FileFollower(path, start_offset=start_offset)
        self._followers[path] = follower
        return follower

    def _prune_missing(self) -> None:
        """Forget followers and baselines of transcripts that were deleted."""
        for path in [path for path in self._followers if not path.exists()]:
            logger.debug("dropping follower for deleted transcript %s", path.name)
            del self._followers[path]
        if self._baseline:
            for path in [path for path in self._baseline if not path.exists()]:
                del self._baseline[path]

    def _snapshot_sizes(self) -> dict[Path, int]:
        """Record transcript sizes at startup."""
        sizes: dict[Path, int] = {}
        if not self.store.sessions_dir.is_dir():
            return sizes
        for session_file in self.store.sessions_dir.glob("*.jsonl"):
            try:
                sizes[session_file] = session_file.stat().st_size
            except OSError:
                continue
        return sizes
