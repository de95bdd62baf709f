"""
Collaborator interfaces consumed by the editing session.

The session never talks to storage, navigation or dialogs directly; it goes
through these protocols so the engine runs headless and in tests.
"""

import logging
from typing import Protocol, List, Tuple, Callable, Any, runtime_checkable

from storyweave.model import Node, Connection

logger = logging.getLogger(__name__)


@runtime_checkable
class PersistenceBridge(Protocol):
    """Load/save of one canvas' nodes and connections."""

    def save(self, nodes: List[Node], connections: List[Connection]) -> None:
        """Persist the full state. Fire-and-forget: the caller ignores failures."""
        ...

    def load(self) -> Tuple[List[Node], List[Connection]]:
        """Return the stored state used to seed the store and first history entry."""
        ...


@runtime_checkable
class Navigator(Protocol):
    """Opens another canvas (a node's linked sub-canvas)."""

    def navigate_to_canvas(self, canvas_id: str, label: str) -> None:
        ...


@runtime_checkable
class CanvasTransfer(Protocol):
    """Receives nodes moved out of this canvas into a nested one."""

    def move_to_canvas(self, canvas_id: str, nodes: List[Node],
                       connections: List[Connection]) -> None:
        ...


@runtime_checkable
class Confirmer(Protocol):
    """Asks the user a yes/no question and reports back through ``resolve``."""

    def request_move_confirmation(self, node: Node, target: Node,
                                  resolve: Callable[[bool], None]) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Deferred callbacks on the UI loop."""

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        """Run ``callback`` once after ``delay_ms``; return a cancel handle."""
        ...

    def cancel(self, handle: Any) -> None:
        ...


class MemoryBridge:
    """In-memory persistence, for scratch canvases and tests."""

    def __init__(self, nodes: List[Node] = None, connections: List[Connection] = None):
        self.nodes: List[Node] = list(nodes or [])
        self.connections: List[Connection] = list(connections or [])
        self.save_count = 0

    def save(self, nodes: List[Node], connections: List[Connection]) -> None:
        self.nodes = [Node.from_dict(n.to_dict()) for n in nodes]
        self.connections = [Connection.from_dict(c.to_dict()) for c in connections]
        self.save_count += 1

    def load(self) -> Tuple[List[Node], List[Connection]]:
        return (
            [Node.from_dict(n.to_dict()) for n in self.nodes],
            [Connection.from_dict(c.to_dict()) for c in self.connections],
        )


def save_best_effort(bridge: PersistenceBridge, nodes: List[Node],
                     connections: List[Connection]) -> bool:
    """Call ``bridge.save``; failures are logged and never propagate."""
    try:
        bridge.save(nodes, connections)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Saving canvas failed; keeping in-memory state")
        return False
    return True
