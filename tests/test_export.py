"""Tests for outline exports."""

import pytest

from storyweave.database import Database, MAIN_CANVAS_ID
from storyweave.export import CanvasExporter, sort_nodes_by_position
from storyweave.model import NodeKind, Connection, make_node


def node(kind, x, y, node_id, text, **changes):
    result = make_node(kind, x, y, node_id=node_id)
    result.text = text
    for key, value in changes.items():
        setattr(result, key, value)
    return result


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "export.db")
    opening = node(NodeKind.TEXT, 0, 40, "open", "Opening", content="It begins")
    ada = node(NodeKind.CHARACTER, 200, 10, "ada", "Ada", linked_canvas_id="character-canvas-ada")
    cast = node(NodeKind.LIST, 0, 300, "cast", "Cast", child_ids=["duel"])
    duel = node(NodeKind.EVENT, 15, 355, "duel", "Duel", parent_id="cast")
    database.save_canvas(MAIN_CANVAS_ID, [cast, duel, ada, opening], [
        Connection("c1", "open", "ada"),
        Connection("c2", "open", "ghost"),
    ])
    database.save_canvas("character-canvas-ada", [
        node(NodeKind.TEXT, 0, 0, "back", "Backstory"),
    ], [])
    yield database
    database.close()


class TestOrdering:

    def test_rows_then_columns(self):
        right = make_node(NodeKind.TEXT, 200, 10, node_id="right")
        left = make_node(NodeKind.TEXT, 0, 40, node_id="left")
        below = make_node(NodeKind.TEXT, 0, 200, node_id="below")
        ordered = sort_nodes_by_position([below, right, left])
        assert [n.id for n in ordered] == ["left", "right", "below"]


class TestCanvasExporter:
    """Tests for Markdown and text exports."""

    def test_outline_follows_nested_canvases(self, db):
        outline = CanvasExporter(db).collect_outline()
        assert [(depth, n.text) for depth, n in outline] == [
            (0, "Opening"), (0, "Ada"), (1, "Backstory"), (0, "Cast"), (1, "Duel"),
        ]

    def test_missing_nested_canvas_is_skipped(self, db):
        db.delete_canvas("character-canvas-ada")
        texts = [n.text for _, n in CanvasExporter(db).collect_outline()]
        assert "Backstory" not in texts

    def test_markdown(self, db, tmp_path):
        target = tmp_path / "story.md"
        assert CanvasExporter(db).export_markdown(str(target))
        text = target.read_text(encoding="utf-8")

        assert "## Opening" in text
        assert "> It begins" in text
        assert "### Backstory" in text
        assert text.index("Opening") < text.index("Backstory") < text.index("Duel")
        assert "- Opening -> Ada" in text
        assert "ghost" not in text

    def test_text(self, db, tmp_path):
        target = tmp_path / "story.txt"
        assert CanvasExporter(db).export_text(str(target))
        lines = target.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "STORY"
        assert "    Backstory" in lines
        assert "Opening -> Ada" in lines

    def test_empty_canvas_exports_nothing(self, tmp_path):
        database = Database(tmp_path / "empty.db")
        exporter = CanvasExporter(database)
        assert exporter.export_markdown(str(tmp_path / "out.md")) is False
        assert not (tmp_path / "out.md").exists()
        database.close()
