"""Bounded in-memory state shared by the correlators and the echo filter."""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterator

from .errors import MirrorError


class BoundedSet:
    """Insertion-ordered set that evicts its oldest member past `capacity`."""

    def __init__(self, capacity: int) -> None:
        """Initialize an empty set.

        Args:
            capacity: Maximum number of members kept.
        """
        if capacity < 1:
            raise MirrorError("validation error: cache capacity must be positive")
        self.capacity = capacity
        self._items: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def add(self, item: str) -> bool:
        """Insert one member.

        Re-adding an existing member does not refresh its position, so
        eviction order stays first-insertion order.

        Args:
            item: Member to insert.

        Returns:
            True when the member was new.
        """
        if item in self._items:
            return False
        self._items[item] = None
        while len(self._items) > self.capacity:
            self._items.popitem(last=False)
        return True


class PendingRuns:
    """Runs started on the source channel that have not finished yet.

    Maps run id to session id, at most one entry per run id. The map is
    bounded as well so starts that never see a matching done line cannot grow
    it without limit.
    """

    def __init__(self, capacity: int) -> None:
        """Initialize an empty pending-run map.

        Args:
            capacity: Maximum number of tracked runs.
        """
        if capacity < 1:
            raise MirrorError("validation error: pending run capacity must be positive")
        self.capacity = capacity
        self._runs: OrderedDict[str, str] = OrderedDict()

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def get(self, run_id: str) -> str | None:
        """Return the session id recorded for a run."""
        return self._runs.get(run_id)

    def start(self, run_id: str, session_id: str) -> None:
        """Record one source-channel run start.

        Args:
            run_id: Run identifier.
            session_id: Session the run writes its transcript to.
        """
        self._runs[run_id] = session_id
        while len(self._runs) > self.capacity:
            self._runs.popitem(last=False)

    def finish(self, run_id: str) -> str | None:
        """Remove one run and return its session id.

        Args:
            run_id: Run identifier.

        Returns:
            Session id, or None when the run was never recorded.
        """
        return self._runs.pop(run_id, None)

    def clear(self) -> None:
        """Forget all pending runs."""
        self._runs.clear()
