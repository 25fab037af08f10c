"""Mirror daemon: follow, classify, correlate, filter and forward."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Union

from .classify import classify_line
from .config import MirrorConfig
from .correlate import ForwardCandidate, RunCorrelator, TurnCorrelator
from .dedup import EchoFilter
from .eventlog import MirrorEventLog
from .events import Unrecognized
from .forward import Forwarder, ForwardResult, preview
from .session_store import SessionStore
from .tail import FileFollower, LineBatch, SessionFollower
from .transport import CommandTransport

logger = logging.getLogger(__name__)

Correlator = Union[TurnCorrelator, RunCorrelator]
Follower = Union[FileFollower, SessionFollower]


class MirrorDaemon:
    """Processes followed lines one at a time, strictly in arrival order.

    A send blocks the loop until the command finishes or times out, so
    correlation state is never touched by two lines at once.
    """

    def __init__(
        self,
        config: MirrorConfig,
        correlator: Correlator,
        echo_filter: EchoFilter,
        forwarder: Forwarder,
        follower: Follower,
        session_store: SessionStore | None = None,
        event_log: MirrorEventLog | None = None,
    ) -> None:
        """Initialize the daemon.

        Args:
            config: Resolved configuration.
            correlator: Turn or run correlation strategy.
            echo_filter: Echo and duplicate suppression.
            forwarder: Outbound sender.
            follower: Line source.
            session_store: Transcript lookup for run-correlated candidates.
            event_log: Optional activity log.
        """
        self.config = config
        self.correlator = correlator
        self.echo_filter = echo_filter
        self.forwarder = forwarder
        self.follower = follower
        self.session_store = session_store
        self.event_log = event_log
        self._stop = threading.Event()
        self._active_path: Path | None = None

    @property
    def stopping(self) -> bool:
        """True once shutdown was requested."""
        return self._stop.is_set()

    def stop(self) -> None:
        """Request shutdown. Safe to call from a signal handler."""
        self._stop.set()

    def run(self) -> None:
        """Poll the follower until `stop` is called."""
        logger.info(
            "mirroring %s replies to %s (%s mode)",
            self.config.source_channel,
            self.config.target_id,
            self.config.mode,
        )
        self._record("system", "started", meta={"mode": self.config.mode})
        while not self._stop.is_set():
            self.process_batch(self.follower.poll())
            self._stop.wait(self.config.poll_seconds)
        self._record("system", "stopped")
        logger.info("mirror daemon stopped")

    def process_batch(self, batch: LineBatch) -> list[ForwardResult]:
        """Process one poll result.

        A rotation or session switch clears correlation state before any of
        the new lines are looked at.

        Args:
            batch: Lines from one poll.

        Returns:
            Results of the forwards attempted for this batch.
        """
        if batch.path is not None and batch.path != self._active_path:
            self._active_path = batch.path
            if self.event_log is not None:
                self.event_log.set_active_file(batch.path)
        if batch.switched:
            self.reset_correlation(batch.path)

        results: list[ForwardResult] = []
        for line in batch.lines:
            if self._stop.is_set():
                logger.info("shutdown requested; leaving remaining lines unread")
                break
            result = self.process_line(line)
            if result is not None:
                results.append(result)
        return results

    def process_line(self, line: str) -> ForwardResult | None:
        """Run one line through the pipeline.

        Args:
            line: Raw line.

        Returns:
            Forward result when a send was attempted, otherwise None.
        """
        event = classify_line(line, self.config.source_channel, self.config.target_channel)
        if isinstance(event, Unrecognized):
            return None

        candidate = self.correlator.feed(event)
        if candidate is None:
            return None

        text = self._resolve_text(candidate)
        if text is None:
            return None

        if not self.echo_filter.should_forward(text):
            self._record("suppressed", preview(text), meta=_candidate_meta(candidate))
            return None

        result = self.forwarder.forward(text)
        meta = _candidate_meta(candidate)
        if result.ok:
            self._record("forwarded", preview(text), meta=meta)
        else:
            meta["detail"] = result.detail
            self._record("failed", preview(text), meta=meta)
        return result

    def reset_correlation(self, path: Path | None = None) -> None:
        """Clear position-dependent correlation state."""
        self.correlator.reset()
        logger.info("correlation state reset (%s)", path if path is not None else "switch")
        self._record("switch", str(path) if path is not None else "")

    def _resolve_text(self, candidate: ForwardCandidate) -> str | None:
        """Return candidate text, reading the session transcript if needed."""
        if candidate.text is not None:
            return candidate.text
        if candidate.session_id is None or self.session_store is None:
            return None
        text = self.session_store.last_assistant_text(candidate.session_id)
        if text is None:
            logger.info(
                "run %s finished without assistant text in session %s",
                candidate.run_id,
                candidate.session_id,
            )
        return text

    def _record(self, kind: str, message: str, *, meta: dict | None = None) -> None:
        """Write one activity event when the log is enabled."""
        if self.event_log is not None:
            self.event_log.log(kind, message, meta=meta)


def build_daemon(config: MirrorConfig, event_log: MirrorEventLog | None = None) -> MirrorDaemon:
    """Wire a daemon for the configured mode.

    Args:
        config: Resolved configuration.
        event_log: Optional activity log.

    Returns:
        Ready-to-run daemon.
    """
    store = SessionStore(config.sessions_dir)
    if config.mode == "logs":
        correlator: Correlator = RunCorrelator(config.source_channel, config.run_cache_size)
        follower: Follower = FileFollower(
            config.log_path,
            start_offset=0 if config.from_start else None,
        )
    else:
        correlator = TurnCorrelator(config.source_channel, config.run_cache_size)
        follower = SessionFollower(store, from_start=config.from_start)

    transport = CommandTransport(
        config.command_template,
        config.send_timeout_seconds,
        shell=config.shell,
    )
    forwarder = Forwarder(
        transport,
        target_id=config.target_id,
        marker=config.marker,
        max_chars=config.max_chars,
    )
    return MirrorDaemon(
        config=config,
        correlator=correlator,
        echo_filter=EchoFilter(config.marker, config.cache_size),
        forwarder=forwarder,
        follower=follower,
        session_store=store,
        event_log=event_log,
    )


def _candidate_meta(candidate: ForwardCandidate) -> dict:
    """Return activity-log metadata for one candidate."""
    meta: dict = {}
    if candidate.run_id is not None:
        meta["run_id"] = candidate.run_id
    if candidate.session_id is not None:
        meta["session_id"] = candidate.session_id
    return meta
