"""Tests for SQLite persistence."""

import pytest

from storyweave.database import Database, CanvasBridge, ViewSettings, MAIN_CANVAS_ID
from storyweave.model import NodeKind, ConnectionKind, Connection, make_node
from storyweave.session import CanvasSession


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "story.db")
    yield database
    database.close()


class TestCanvasStorage:
    """Tests for saving and loading canvases."""

    def test_round_trip_keeps_order_and_payload(self, db):
        container = make_node(NodeKind.LIST, 0, 0, node_id="L")
        child = make_node(NodeKind.EVENT, 15, 55, node_id="e")
        child.parent_id = "L"
        container.child_ids = ["e"]
        table = make_node(NodeKind.TABLE, 500, 0, node_id="tbl")
        conn = Connection("c1", "e", "tbl", ConnectionKind.RELATIONSHIP)

        db.save_canvas(MAIN_CANVAS_ID, [table, container, child], [conn])
        nodes, connections = db.load_canvas(MAIN_CANVAS_ID)

        assert [n.id for n in nodes] == ["tbl", "L", "e"]
        assert nodes == [table, container, child]
        assert connections == [conn]

    def test_save_replaces_contents(self, db):
        db.save_canvas(MAIN_CANVAS_ID, [make_node(NodeKind.TEXT, 0, 0, node_id="a")], [])
        db.save_canvas(MAIN_CANVAS_ID, [make_node(NodeKind.TEXT, 0, 0, node_id="b")], [])
        nodes, _ = db.load_canvas(MAIN_CANVAS_ID)
        assert [n.id for n in nodes] == ["b"]

    def test_stale_connections_survive(self, db):
        db.save_canvas(MAIN_CANVAS_ID, [], [Connection("c1", "gone", "missing")])
        _, connections = db.load_canvas(MAIN_CANVAS_ID)
        assert [c.id for c in connections] == ["c1"]

    def test_corrupt_payload_uses_defaults(self, db):
        db.save_canvas(MAIN_CANVAS_ID, [make_node(NodeKind.TEXT, 5, 6, node_id="a")], [])
        db.conn.execute("UPDATE nodes SET data = '{' WHERE id = 'a'")
        db.conn.commit()
        (node,) = db.load_canvas(MAIN_CANVAS_ID)[0]
        assert (node.id, node.x, node.y, node.text) == ("a", 5, 6, "")

    def test_delete_canvas_cascades(self, db):
        db.save_canvas("sub", [make_node(NodeKind.TEXT, 0, 0)], [])
        db.delete_canvas("sub")
        assert db.get_canvas("sub") is None
        assert db.load_canvas("sub") == ([], [])

    def test_view_settings_round_trip(self, db):
        canvas = db.ensure_canvas(MAIN_CANVAS_ID, "My Story")
        canvas.view = ViewSettings(zoom=1.5, scroll_x=120, scroll_y=40)
        db.update_canvas(canvas)
        stored = db.get_canvas(MAIN_CANVAS_ID)
        assert stored.title == "My Story"
        assert stored.view == canvas.view


class TestCanvasBridge:

    def test_move_to_canvas_appends(self, db):
        bridge = CanvasBridge(db)
        db.save_canvas("sub", [make_node(NodeKind.TEXT, 0, 0, node_id="old")], [])
        bridge.move_to_canvas("sub", [make_node(NodeKind.TEXT, 50, 50, node_id="new")], [])
        nodes, _ = db.load_canvas("sub")
        assert [n.id for n in nodes] == ["old", "new"]

    def test_move_to_canvas_creates_target(self, db):
        CanvasBridge(db).move_to_canvas("fresh", [make_node(NodeKind.TEXT, 0, 0)], [])
        assert db.get_canvas("fresh") is not None

    def test_session_survives_restart(self, tmp_path):
        path = tmp_path / "restart.db"
        first_db = Database(path)
        first = CanvasSession(CanvasBridge(first_db))
        first.load()
        node = first.create_node(NodeKind.CHARACTER, 300, 300)
        first_db.close()

        second_db = Database(path)
        second = CanvasSession(CanvasBridge(second_db))
        second.load()
        assert [n.id for n in second.store.nodes] == [node.id]
        assert len(second.history) == 1
        second_db.close()
