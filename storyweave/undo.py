"""Snapshot-based undo/redo history for StoryWeave."""

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Optional, List, Callable, Tuple

from storyweave.model import Node, Connection

logger = logging.getLogger(__name__)

MAX_HISTORY = 100


@dataclass(frozen=True)
class HistoryEntry:
    """One committed (nodes, connections) snapshot.

    The tuple is frozen but the nodes in it are not, so the manager only ever
    hands out copies.
    """
    nodes: Tuple[Node, ...]
    connections: Tuple[Connection, ...]
    description: str = ""

    @classmethod
    def capture(cls, nodes: List[Node], connections: List[Connection],
                description: str = "") -> "HistoryEntry":
        return cls(tuple(deepcopy(nodes)), tuple(deepcopy(connections)), description)

    def same_state(self, nodes: List[Node], connections: List[Connection]) -> bool:
        """Structural equality against a live state."""
        return list(self.nodes) == list(nodes) and list(self.connections) == list(connections)

    def restore(self) -> Tuple[List[Node], List[Connection]]:
        """Fresh deep copies, safe to hand to a live store."""
        return deepcopy(list(self.nodes)), deepcopy(list(self.connections))

    def copy(self) -> "HistoryEntry":
        return HistoryEntry(tuple(deepcopy(self.nodes)), tuple(deepcopy(self.connections)),
                            self.description)


class HistoryManager:
    """Append-only log of full-state snapshots with a cursor.

    ``on_restore`` receives the target state on undo/redo and must replace the
    live store with it. Commits issued while it runs are ignored.
    """

    def __init__(self, max_entries: int = MAX_HISTORY):
        self.max_entries = max_entries
        self._entries: List[HistoryEntry] = []
        self._cursor = -1
        self._is_restoring = False

        # Callbacks
        self.on_restore: Optional[Callable[[List[Node], List[Connection]], None]] = None
        self.on_state_changed: Optional[Callable[[], None]] = None

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def entries(self) -> List[HistoryEntry]:
        return [e.copy() for e in self._entries]

    @property
    def current(self) -> Optional[HistoryEntry]:
        if self._cursor < 0:
            return None
        return self._entries[self._cursor].copy()

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return self._cursor < len(self._entries) - 1

    @property
    def is_restoring(self) -> bool:
        return self._is_restoring

    @property
    def undo_description(self) -> str:
        """Description of the change the next undo reverts."""
        if self.can_undo:
            return self._entries[self._cursor].description
        return ""

    @property
    def redo_description(self) -> str:
        """Description of the change the next redo reapplies."""
        if self.can_redo:
            return self._entries[self._cursor + 1].description
        return ""

    def reset(self, nodes: List[Node], connections: List[Connection]):
        """Seed the log with a single entry (session start)."""
        self._entries = [HistoryEntry.capture(nodes, connections, "Load")]
        self._cursor = 0
        self._notify_changed()

    def commit(self, nodes: List[Node], connections: List[Connection],
               description: str = "") -> bool:
        """Record a new state. Returns False when nothing was recorded."""
        if self._is_restoring:
            return False

        current = self._entries[self._cursor] if self._cursor >= 0 else None
        if current is not None and current.same_state(nodes, connections):
            return False

        # New branch: drop everything that was available for redo
        del self._entries[self._cursor + 1:]
        self._entries.append(HistoryEntry.capture(nodes, connections, description))

        # Trim history if needed
        while len(self._entries) > self.max_entries:
            self._entries.pop(0)
        self._cursor = len(self._entries) - 1

        logger.debug(f"History commit '{description}' ({self._cursor + 1}/{len(self._entries)})")
        self._notify_changed()
        return True

    def undo(self) -> bool:
        """Step back one entry and restore it."""
        if not self.can_undo:
            return False
        self._move_to(self._cursor - 1)
        return True

    def redo(self) -> bool:
        """Step forward one entry and restore it."""
        if not self.can_redo:
            return False
        self._move_to(self._cursor + 1)
        return True

    def clear(self):
        """Clear all history."""
        self._entries.clear()
        self._cursor = -1
        self._notify_changed()

    def _move_to(self, index: int):
        self._cursor = index
        nodes, connections = self._entries[index].restore()
        self._is_restoring = True
        try:
            if self.on_restore:
                self.on_restore(nodes, connections)
        finally:
            self._is_restoring = False
        self._notify_changed()

    def _notify_changed(self):
        """Notify that undo/redo state changed."""
        if self.on_state_changed:
            self.on_state_changed()
