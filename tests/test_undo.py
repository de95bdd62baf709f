"""Tests for the snapshot history."""

from storyweave.model import Connection, NodeKind, make_node
from storyweave.undo import HistoryManager


def state(x):
    return [make_node(NodeKind.TEXT, x, 0, node_id="n1")], []


class TestHistoryManager:
    """Tests for commit/undo/redo semantics."""

    def test_reset_seeds_first_entry(self):
        history = HistoryManager()
        history.reset(*state(0))
        assert len(history) == 1
        assert not history.can_undo
        assert not history.can_redo

    def test_identical_state_is_not_recorded(self):
        history = HistoryManager()
        history.reset(*state(0))
        assert history.commit(*state(0)) is False
        assert len(history) == 1

    def test_undo_redo_restores_deep_equal_state(self):
        history = HistoryManager()
        restored = []
        history.on_restore = lambda nodes, conns: restored.append((nodes, conns))
        history.reset(*state(0))
        nodes, _ = state(50)
        conns = [Connection("c1", "n1", "n1")]
        history.commit(nodes, conns, "Move")

        assert history.undo()
        assert restored[-1][0][0].x == 0
        assert history.redo()
        assert restored[-1][0] == nodes
        assert restored[-1][1] == conns
        # Restored copies never alias the stored entry
        restored[-1][0][0].x = 123
        assert history.current.nodes[0].x == 50

    def test_undo_at_boundary_is_noop(self):
        history = HistoryManager()
        history.reset(*state(0))
        assert history.undo() is False
        assert history.redo() is False

    def test_cap_evicts_oldest_first(self):
        history = HistoryManager(max_entries=3)
        history.reset(*state(0))
        for x in range(1, 6):
            history.commit(*state(x), description=f"step {x}")
        assert len(history) == 3
        assert [e.description for e in history.entries] == ["step 3", "step 4", "step 5"]
        assert history.cursor == 2

    def test_commit_after_undo_drops_redo_branch(self):
        history = HistoryManager()
        history.reset(*state(0))
        history.commit(*state(1))
        history.commit(*state(2))
        history.undo()
        history.commit(*state(7), description="branch")
        assert not history.can_redo
        assert history.current.nodes[0].x == 7
        assert len(history) == 3

    def test_commits_during_restore_are_ignored(self):
        history = HistoryManager()
        results = []
        history.on_restore = lambda nodes, conns: results.append(history.commit(*state(99)))
        history.reset(*state(0))
        history.commit(*state(1))
        history.undo()
        assert results == [False]
        assert len(history) == 2

    def test_state_changed_callback(self):
        history = HistoryManager()
        calls = []
        history.on_state_changed = lambda: calls.append((history.can_undo, history.can_redo))
        history.reset(*state(0))
        history.commit(*state(1))
        history.undo()
        assert calls == [(False, False), (True, False), (False, True)]

    def test_handed_out_entries_cannot_change_history(self):
        history = HistoryManager()
        history.reset(*state(0))
        history.current.nodes[0].x = 999
        history.entries[0].nodes[0].text = "tampered"

        assert history.commit(*state(0)) is False
        assert history.current.nodes[0].x == 0
        assert history.current.nodes[0].text == "New Text"

    def test_descriptions(self):
        history = HistoryManager()
        history.reset(*state(0))
        history.commit(*state(1), description="Move")
        assert history.undo_description == "Move"
        history.undo()
        assert history.redo_description == "Move"
