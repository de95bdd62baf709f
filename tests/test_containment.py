"""Tests for list containers."""

from storyweave.containment import (
    enter_container, leave_container, repair_containment, can_enter,
    container_size,
)
from storyweave.model import NodeKind, make_node
from storyweave.store import NodeStore


def build_store():
    container = make_node(NodeKind.LIST, 100, 100, node_id="list")
    character = make_node(NodeKind.CHARACTER, 600, 0, node_id="char")
    event = make_node(NodeKind.EVENT, 600, 300, node_id="event")
    text = make_node(NodeKind.TEXT, 0, 600, node_id="text")
    return NodeStore([container, character, event, text])


class TestContainment:
    """Tests for entering, leaving and layout."""

    def test_enter_lays_out_child(self):
        store = build_store()
        assert enter_container(store, "char", "list")
        child = store.get("char")
        assert child.parent_id == "list"
        assert store.get("list").child_ids == ["char"]
        assert (child.x, child.y) == (115, 155)

    def test_container_resizes_to_children(self):
        store = build_store()
        enter_container(store, "char", "list")
        enter_container(store, "event", "list")
        container = store.get("list")
        # 40 + 15 + (72 + 15) + (140 + 15)
        assert container.height == 297
        assert container.width == 320
        assert store.get("event").y == 100 + 40 + 15 + 72 + 15

    def test_node_is_never_added_twice(self):
        store = build_store()
        enter_container(store, "char", "list")
        assert enter_container(store, "char", "list") is False
        assert store.get("list").child_ids == ["char"]

    def test_only_containable_kinds_enter(self):
        store = build_store()
        assert enter_container(store, "text", "list") is False
        other = make_node(NodeKind.LIST, 0, 0, node_id="other")
        assert not can_enter(store.get("list"), other)
        assert not can_enter(store.get("char"), store.get("event"))

    def test_leave_places_node_at_drop_point(self):
        store = build_store()
        enter_container(store, "char", "list")
        assert leave_container(store, "char", 700, 40)
        child = store.get("char")
        assert child.parent_id is None
        assert (child.x, child.y) == (700, 40)
        assert store.get("list").child_ids == []

    def test_leave_without_point_goes_beside_container(self):
        store = build_store()
        enter_container(store, "char", "list")
        leave_container(store, "char")
        container = store.get("list")
        assert store.get("char").x == container.x + container.width + 15

    def test_empty_container_size(self):
        container = make_node(NodeKind.LIST, 0, 0)
        container.width = 2000
        assert container_size(container, []) == (800, 200)


class TestRepair:

    def test_repair_fixes_broken_links(self):
        container = make_node(NodeKind.LIST, 0, 0, node_id="L")
        container.child_ids = ["a", "a", "ghost"]
        a = make_node(NodeKind.CHARACTER, 0, 0, node_id="a")
        a.parent_id = "L"
        b = make_node(NodeKind.EVENT, 0, 0, node_id="b")
        b.parent_id = "L"
        c = make_node(NodeKind.FOLDER, 0, 0, node_id="c")
        c.parent_id = "missing"

        fixes = repair_containment([container, a, b, c])

        assert fixes == 3
        assert container.child_ids == ["a", "b"]
        assert c.parent_id is None

    def test_consistent_nodes_need_no_repair(self):
        container = make_node(NodeKind.LIST, 0, 0, node_id="L")
        container.child_ids = ["a"]
        a = make_node(NodeKind.CHARACTER, 0, 0, node_id="a")
        a.parent_id = "L"
        assert repair_containment([container, a]) == 0
