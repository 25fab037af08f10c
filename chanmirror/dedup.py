"""Echo-loop and duplicate-content suppression."""

from __future__ import annotations

import logging

from .constants import DEFAULT_CACHE_SIZE, DEFAULT_MARKER
from .errors import MirrorError
from .state import BoundedSet

logger = logging.getLogger(__name__)


class EchoFilter:
    """Decide whether a candidate text may be forwarded.

    Accepted texts enter the mirrored cache before any send is attempted, so
    a failed send is never retried by a later detection of the same text.
    """

    def __init__(self, marker: str = DEFAULT_MARKER, cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        """Initialize filter state.

        Args:
            marker: Tag prepended to every mirrored message.
            cache_size: Bound on remembered texts.
        """
        if not marker:
            raise MirrorError("validation error: mirror marker cannot be empty")
        self.marker = marker
        self.mirrored = BoundedSet(cache_size)

    def should_forward(self, text: str | None) -> bool:
        """Return whether `text` should be forwarded, recording it if so.

        Args:
            text: Candidate text.

        Returns:
            False for empty text, text carrying the marker, or text already
            mirrored; True otherwise.
        """
        if text is None:
            return False
        text = text.strip()
        if not text:
            return False
        if self.marker in text:
            logger.debug("suppressing echo of mirrored text")
            return False
        if text in self.mirrored:
            logger.debug("suppressing duplicate text")
            return False
        self.mirrored.add(text)
        return True
