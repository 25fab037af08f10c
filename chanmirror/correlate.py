"""Correlate trigger events with the assistant replies that answer them."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .constants import DEFAULT_RUN_CACHE_SIZE, DEFAULT_SOURCE_CHANNEL
from .events import AssistantTurn, LogEvent, RunDone, RunStart, UserTurn
from .state import BoundedSet, PendingRuns

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardCandidate:
    """Reply that should be considered for mirroring.

    Attributes:
        text: Reply text, set by the turn strategy.
        session_id: Session whose transcript holds the reply, set by the run
            strategy. The caller looks the text up in the session store.
        run_id: Run that produced the reply, set by the run strategy.
    """

    text: str | None = None
    session_id: str | None = None
    run_id: str | None = None


class TurnCorrelator:
    """Forward assistant turns that follow a source-channel user turn.

    Only the most recent user turn matters. Assistant rows in between (tool
    calls, partial replies) leave the flag alone; the next user turn of any
    channel replaces it.
    """

    def __init__(
        self,
        source_channel: str = DEFAULT_SOURCE_CHANNEL,
        seen_capacity: int = DEFAULT_RUN_CACHE_SIZE,
    ) -> None:
        """Initialize turn state.

        Args:
            source_channel: Channel whose user turns trigger mirroring.
            seen_capacity: Bound on remembered assistant entry ids.
        """
        self.source_channel = source_channel
        self.pending_source_turn = False
        self._seen_entries = BoundedSet(seen_capacity)

    def feed(self, event: LogEvent) -> ForwardCandidate | None:
        """Apply one event.

        Args:
            event: Classified line.

        Returns:
            Candidate for an assistant reply to a source-channel turn.
        """
        if isinstance(event, UserTurn):
            self.pending_source_turn = event.channel == self.source_channel
            logger.debug(
                "user turn from %s (pending=%s)", event.channel, self.pending_source_turn
            )
            return None

        if not isinstance(event, AssistantTurn):
            return None
        if not self.pending_source_turn:
            if event.text:
                logger.debug("assistant turn without source-channel trigger; skipping")
            return None
        if not event.text:
            return None
        if event.entry_id is not None and not self._seen_entries.add(event.entry_id):
            logger.debug("assistant entry %s already handled", event.entry_id)
            return None
        return ForwardCandidate(text=event.text)

    def reset(self) -> None:
        """Drop position-dependent state after a file or session switch."""
        self.pending_source_turn = False


class RunCorrelator:
    """Forward runs that started on the source channel once they finish."""

    def __init__(
        self,
        source_channel: str = DEFAULT_SOURCE_CHANNEL,
        run_capacity: int = DEFAULT_RUN_CACHE_SIZE,
    ) -> None:
        """Initialize run state.

        Args:
            source_channel: Channel whose runs trigger mirroring.
            run_capacity: Bound on pending and processed run ids.
        """
        self.source_channel = source_channel
        self.pending_runs = PendingRuns(run_capacity)
        self.processed_runs = BoundedSet(run_capacity)

    def feed(self, event: LogEvent) -> ForwardCandidate | None:
        """Apply one event.

        Args:
            event: Classified line.

        Returns:
            Candidate naming the session of a finished source-channel run.
        """
        if isinstance(event, RunStart):
            if event.channel != self.source_channel:
                logger.debug("ignoring %s run %s", event.channel, event.run_id)
                return None
            if event.run_id not in self.processed_runs:
                self.pending_runs.start(event.run_id, event.session_id)
                logger.debug("tracking run %s (session %s)", event.run_id, event.session_id)
            return None

        if not isinstance(event, RunDone):
            return None

        session_id = self.pending_runs.finish(event.run_id)
        if session_id is None:
            logger.debug("run done without tracked start: %s", event.run_id)
            return None
        if not self.processed_runs.add(event.run_id):
            logger.debug("run %s already processed", event.run_id)
            return None
        return ForwardCandidate(session_id=session_id, run_id=event.run_id)

    def reset(self) -> None:
        """Drop position-dependent state after a file or session switch."""
        self.pending_runs.clear()
