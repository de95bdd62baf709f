"""Tests for the node store and selection set."""

import pytest

from storyweave.model import Connection, NodeKind, make_node
from storyweave.store import NodeStore, SelectionSet


class TestSelectionSet:
    """Tests for primary id bookkeeping."""

    def test_single_selection_sets_primary(self):
        selection = SelectionSet()
        selection.set(["a"])
        assert selection.primary == "a"

    def test_primary_cleared_when_removed(self):
        selection = SelectionSet()
        selection.set(["a", "b"], primary="a")
        selection.discard("a")
        # One left: it becomes primary
        assert selection.primary == "b"
        selection.clear()
        assert selection.primary is None

    def test_multi_selection_without_primary(self):
        selection = SelectionSet()
        selection.set(["a", "b"])
        assert selection.primary is None
        assert len(selection) == 2


class TestNodeStore:
    """Tests for NodeStore mutations and queries."""

    def test_duplicate_id_rejected(self):
        store = NodeStore()
        store.add_node(make_node(NodeKind.TEXT, 0, 0, node_id="n1"))
        with pytest.raises(ValueError):
            store.add_node(make_node(NodeKind.TEXT, 5, 5, node_id="n1"))

    def test_require_unknown_raises(self):
        with pytest.raises(KeyError):
            NodeStore().require("missing")

    def test_move_clamps_to_positive_quadrant(self):
        store = NodeStore([make_node(NodeKind.TEXT, 10, 10, node_id="n1")])
        store.move_node("n1", -5, -20)
        assert (store.get("n1").x, store.get("n1").y) == (0, 0)

    def test_removing_container_frees_children(self):
        container = make_node(NodeKind.LIST, 0, 0, node_id="list")
        child = make_node(NodeKind.CHARACTER, 15, 55, node_id="c1")
        child.parent_id = "list"
        container.child_ids = ["c1"]
        store = NodeStore([container, child])
        store.remove_node("list")
        assert store.get("c1").parent_id is None

    def test_removing_child_updates_container(self):
        container = make_node(NodeKind.LIST, 0, 0, node_id="list")
        child = make_node(NodeKind.CHARACTER, 15, 55, node_id="c1")
        child.parent_id = "list"
        container.child_ids = ["c1"]
        store = NodeStore([container, child])
        store.select(["c1"])
        store.remove_node("c1")
        assert store.get("list").child_ids == []
        assert "c1" not in store.selection

    def test_children_render_above_container(self):
        container = make_node(NodeKind.LIST, 0, 0, z_index=1, node_id="list")
        child = make_node(NodeKind.CHARACTER, 15, 55, z_index=1, node_id="c1")
        child.parent_id = "list"
        container.child_ids = ["c1"]
        store = NodeStore([child, container])
        assert [n.id for n in store.render_order()] == ["list", "c1"]

    def test_live_connections_skip_stale_endpoints(self):
        store = NodeStore(
            [make_node(NodeKind.TEXT, 0, 0, node_id="a"), make_node(NodeKind.TEXT, 0, 0, node_id="b")],
            [Connection("c1", "a", "b"), Connection("c2", "a", "gone")],
        )
        assert [c.id for c in store.live_connections()] == ["c1"]
        assert len(store.connections) == 2

    def test_batch_coalesces_notifications(self):
        store = NodeStore()
        calls = []
        store.on_changed = lambda: calls.append(1)
        with store.batch():
            store.add_node(make_node(NodeKind.TEXT, 0, 0, node_id="a"))
            store.add_node(make_node(NodeKind.TEXT, 0, 0, node_id="b"))
            store.select(["a"])
        assert len(calls) == 1

    def test_replace_keeps_surviving_selection(self):
        store = NodeStore([make_node(NodeKind.TEXT, 0, 0, node_id="a"),
                           make_node(NodeKind.TEXT, 0, 0, node_id="b")])
        store.select(["a", "b"])
        store.replace([make_node(NodeKind.TEXT, 0, 0, node_id="b")], [])
        assert store.selection.ids == ["b"]
        assert store.selection.primary == "b"

    def test_snapshot_is_independent(self):
        store = NodeStore([make_node(NodeKind.TEXT, 0, 0, node_id="a")])
        nodes, _ = store.snapshot()
        nodes[0].x = 999
        assert store.get("a").x == 0
