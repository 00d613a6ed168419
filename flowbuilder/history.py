"""Bounded undo/redo history of Flow snapshots for one editing session."""

from __future__ import annotations

import copy
import logging

from flowbuilder.config import Settings
from flowbuilder.flow import Flow

logger = logging.getLogger(__name__)


class FlowHistory:
    """Undo/redo stack of Flow snapshots.

    - push() stores a deep copy; any redo branch past the current position
      is discarded first.
    - Past ``max_size`` the oldest snapshot is evicted.
    - undo()/redo()/current() hand out deep copies, so callers can edit the
      returned Flow without corrupting history.
    """

    def __init__(self, max_size: int = 10) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self._stack: list[Flow] = []
        self._index = -1

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> FlowHistory:
        """Build a history sized by ``settings.history_size`` (FLOWBUILDER_HISTORY_SIZE)."""
        settings = settings or Settings.from_env()
        return cls(max_size=settings.history_size)

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def index(self) -> int:
        """Position of the current snapshot (-1 when empty)."""
        return self._index

    def push(self, flow: Flow) -> None:
        del self._stack[self._index + 1:]
        self._stack.append(copy.deepcopy(flow))
        self._index += 1
        if len(self._stack) > self.max_size:
            self._stack.pop(0)
            self._index -= 1
            logger.debug("History full (%d); evicted oldest snapshot", self.max_size)

    def undo(self) -> Flow | None:
        """Step back one snapshot. Returns None when already at the oldest."""
        if not self.can_undo():
            return None
        self._index -= 1
        return copy.deepcopy(self._stack[self._index])

    def redo(self) -> Flow | None:
        """Step forward one snapshot. Returns None when already at the newest."""
        if not self.can_redo():
            return None
        self._index += 1
        return copy.deepcopy(self._stack[self._index])

    def current(self) -> Flow | None:
        if 0 <= self._index < len(self._stack):
            return copy.deepcopy(self._stack[self._index])
        return None

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._stack) - 1

    def clear(self) -> None:
        self._stack = []
        self._index = -1
