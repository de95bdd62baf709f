"""Tests for the data model and per-kind defaults."""

import pytest

from storyweave.model import (
    Node, Connection, ConnectionKind, NodeKind, make_node, node_for_tool_click,
    nodes_from_json, nodes_to_json, connections_from_json, DEFAULT_TABLE_ROWS,
)


class TestNode:
    """Tests for Node construction and serialization."""

    def test_tool_click_offsets_and_clamps(self):
        node = node_for_tool_click(NodeKind.TEXT, 140, 80)
        assert (node.x, node.y, node.width, node.height) == (40, 20, 300, 139)
        corner = node_for_tool_click(NodeKind.TEXT, 50, 30)
        assert (corner.x, corner.y) == (0, 0)

    def test_table_defaults(self):
        node = make_node(NodeKind.TABLE, 0, 0)
        assert node.attributes["columns"] == ["Field", "Value"]
        assert [row[0] for row in node.attributes["rows"]] == DEFAULT_TABLE_ROWS
        assert node.attributes["column_widths"] == [50.0, 50.0]

    def test_folder_gets_linked_canvas(self):
        assert make_node(NodeKind.FOLDER, 0, 0).linked_canvas_id.startswith("folder-canvas-")
        assert make_node(NodeKind.CHARACTER, 0, 0).linked_canvas_id is None

    def test_only_lists_carry_child_ids(self):
        assert make_node(NodeKind.LIST, 0, 0).child_ids == []
        assert make_node(NodeKind.TEXT, 0, 0).child_ids is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            Node(id="x", kind="spaceship")

    def test_from_dict_ignores_unknown_keys(self):
        data = make_node(NodeKind.EVENT, 10, 20, node_id="e1").to_dict()
        data["legacyField"] = True
        node = Node.from_dict(data)
        assert node.id == "e1"
        assert node.kind == NodeKind.EVENT

    def test_json_helpers(self):
        nodes = [make_node(NodeKind.TEXT, 1, 2, node_id="t1")]
        assert nodes_from_json(nodes_to_json(nodes)) == nodes
        assert nodes_from_json("not json") == []
        assert connections_from_json(None) == []


class TestConnection:

    def test_wire_keys(self):
        conn = Connection("c1", "a", "b", ConnectionKind.RELATIONSHIP)
        data = conn.to_dict()
        assert data == {"id": "c1", "from": "a", "to": "b", "kind": "relationship-link"}
        assert Connection.from_dict(data) == conn

    def test_kind_defaults_to_sequence(self):
        assert Connection.from_dict({"id": "c", "from": "a", "to": "b"}).kind == ConnectionKind.SEQUENCE
