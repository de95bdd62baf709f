"""Shared fixtures for the StoryWeave engine tests."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from storyweave.bridge import MemoryBridge
from storyweave.interaction import InteractionController
from storyweave.model import make_node, NodeKind
from storyweave.session import CanvasSession
from storyweave.settings import SettingsStore


class FakeScheduler:
    """Collects scheduled callbacks until the test runs them."""

    def __init__(self):
        self.pending = {}
        self._next_handle = 0

    def schedule(self, delay_ms, callback):
        self._next_handle += 1
        self.pending[self._next_handle] = (delay_ms, callback)
        return self._next_handle

    def cancel(self, handle):
        self.pending.pop(handle, None)

    def delays(self):
        return [delay for delay, _ in self.pending.values()]

    def run_all(self):
        for handle in list(self.pending):
            entry = self.pending.pop(handle, None)
            if entry:
                entry[1]()


class FakeConfirmer:
    """Remembers the last confirmation request."""

    def __init__(self):
        self.requests = []

    def request_move_confirmation(self, node, target, resolve):
        self.requests.append((node.id, target.id, resolve))

    def answer(self, accepted):
        _, _, resolve = self.requests[-1]
        resolve(accepted)


@pytest.fixture
def bridge():
    return MemoryBridge()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def session(bridge):
    s = CanvasSession(bridge, settings=SettingsStore())
    s.load()
    return s


@pytest.fixture
def controller(session):
    return InteractionController(session)


def add(session, kind, x, y, node_id=None, **changes):
    """Put a node straight into the store, bypassing history."""
    node = make_node(kind, x, y, z_index=session.store.next_z_index(), node_id=node_id)
    for key, value in changes.items():
        setattr(node, key, value)
    session.store.add_node(node)
    return node


@pytest.fixture
def add_node(session):
    def _add(kind=NodeKind.TEXT, x=0, y=0, node_id=None, **changes):
        return add(session, kind, x, y, node_id, **changes)
    return _add
