"""SQLite database layer for StoryWeave."""

import sqlite3
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from dataclasses import dataclass, field, asdict

from storyweave.model import Node, Connection

logger = logging.getLogger(__name__)

MAIN_CANVAS_ID = "main"


def get_data_dir() -> Path:
    """Get the application data directory."""
    data_dir = Path.home() / ".local" / "share" / "storyweave"
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "exports").mkdir(exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    """Get the database file path."""
    return get_data_dir() / "storyweave.db"


@dataclass
class ViewSettings:
    """Saved viewport for a canvas."""
    zoom: float = 1.0
    scroll_x: float = 0.0
    scroll_y: float = 0.0

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: Optional[str]) -> "ViewSettings":
        if not data:
            return cls()
        try:
            d = json.loads(data)
            # Filter to only known fields to handle schema evolution
            known = {f.name for f in cls.__dataclass_fields__.values()}
            return cls(**{k: v for k, v in d.items() if k in known})
        except (json.JSONDecodeError, TypeError):
            return cls()


@dataclass
class CanvasRecord:
    """A stored canvas (the main board or a node's nested board)."""
    id: str = MAIN_CANVAS_ID
    title: str = "Story"
    created_at: str = ""
    modified_at: str = ""
    view: ViewSettings = field(default_factory=ViewSettings)


class Database:
    """Database manager for StoryWeave."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or get_db_path()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def _init_db(self):
        """Initialize the database schema."""
        cursor = self.conn.cursor()

        cursor.executescript("""
            CREATE TABLE IF NOT EXISTS canvases (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                modified_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                view JSON
            );

            -- Node geometry is kept in columns so exports can sort without
            -- decoding the payload
            CREATE TABLE IF NOT EXISTS nodes (
                canvas_id TEXT NOT NULL,
                id TEXT NOT NULL,
                kind TEXT NOT NULL,
                x REAL NOT NULL DEFAULT 0,
                y REAL NOT NULL DEFAULT 0,
                width REAL NOT NULL,
                height REAL NOT NULL,
                z_index INTEGER DEFAULT 0,
                sort_order INTEGER DEFAULT 0,
                data JSON,
                PRIMARY KEY (canvas_id, id),
                FOREIGN KEY (canvas_id) REFERENCES canvases(id) ON DELETE CASCADE
            );

            -- Endpoints are not foreign keys: stale links are allowed
            CREATE TABLE IF NOT EXISTS connections (
                canvas_id TEXT NOT NULL,
                id TEXT NOT NULL,
                from_id TEXT NOT NULL,
                to_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                sort_order INTEGER DEFAULT 0,
                PRIMARY KEY (canvas_id, id),
                FOREIGN KEY (canvas_id) REFERENCES canvases(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value JSON
            );

            CREATE INDEX IF NOT EXISTS idx_nodes_canvas_id ON nodes(canvas_id);
            CREATE INDEX IF NOT EXISTS idx_connections_canvas_id ON connections(canvas_id);
        """)

        self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # ==================== Canvas Operations ====================

    def _row_to_canvas(self, row: sqlite3.Row) -> CanvasRecord:
        return CanvasRecord(
            id=row["id"],
            title=row["title"],
            created_at=row["created_at"],
            modified_at=row["modified_at"],
            view=ViewSettings.from_json(row["view"]),
        )

    def ensure_canvas(self, canvas_id: str, title: str = "Story") -> CanvasRecord:
        """Get a canvas, creating an empty one if it does not exist yet."""
        existing = self.get_canvas(canvas_id)
        if existing:
            return existing

        now = datetime.now().isoformat()
        view = ViewSettings()
        self.conn.execute(
            "INSERT INTO canvases (id, title, created_at, modified_at, view) VALUES (?, ?, ?, ?, ?)",
            (canvas_id, title, now, now, view.to_json())
        )
        self.conn.commit()
        return CanvasRecord(id=canvas_id, title=title, created_at=now, modified_at=now, view=view)

    def get_canvas(self, canvas_id: str) -> Optional[CanvasRecord]:
        """Get a canvas by ID."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM canvases WHERE id = ?", (canvas_id,))
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_canvas(row)

    def get_all_canvases(self) -> List[CanvasRecord]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM canvases ORDER BY modified_at DESC")
        return [self._row_to_canvas(row) for row in cursor.fetchall()]

    def update_canvas(self, canvas: CanvasRecord):
        """Update a canvas' title and saved view."""
        now = datetime.now().isoformat()
        self.conn.execute(
            "UPDATE canvases SET title = ?, view = ?, modified_at = ? WHERE id = ?",
            (canvas.title, canvas.view.to_json(), now, canvas.id)
        )
        self.conn.commit()

    def delete_canvas(self, canvas_id: str):
        """Delete a canvas with its nodes and connections."""
        self.conn.execute("DELETE FROM canvases WHERE id = ?", (canvas_id,))
        self.conn.commit()

    # ==================== Node Operations ====================

    @staticmethod
    def _node_row(canvas_id: str, node: Node, sort_order: int) -> tuple:
        data = node.to_dict()
        for column in ("id", "kind", "x", "y", "width", "height", "z_index"):
            data.pop(column)
        return (canvas_id, node.id, node.kind.value, node.x, node.y, node.width,
                node.height, node.z_index, sort_order, json.dumps(data))

    @staticmethod
    def _row_to_node(row: sqlite3.Row) -> Node:
        try:
            data = json.loads(row["data"]) if row["data"] else {}
        except json.JSONDecodeError:
            logger.warning(f"Corrupt payload for node {row['id']}, using defaults")
            data = {}
        data.update(
            id=row["id"], kind=row["kind"], x=row["x"], y=row["y"],
            width=row["width"], height=row["height"], z_index=row["z_index"],
        )
        return Node.from_dict(data)

    def load_canvas(self, canvas_id: str) -> Tuple[List[Node], List[Connection]]:
        """Get all nodes and connections of a canvas, in saved order."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM nodes WHERE canvas_id = ? ORDER BY sort_order", (canvas_id,)
        )
        nodes = [self._row_to_node(row) for row in cursor.fetchall()]

        cursor.execute(
            "SELECT * FROM connections WHERE canvas_id = ? ORDER BY sort_order", (canvas_id,)
        )
        connections = [
            Connection(id=row["id"], from_id=row["from_id"], to_id=row["to_id"], kind=row["kind"])
            for row in cursor.fetchall()
        ]
        return nodes, connections

    def save_canvas(self, canvas_id: str, nodes: List[Node], connections: List[Connection]):
        """Replace the stored contents of a canvas in one transaction."""
        self.ensure_canvas(canvas_id)
        cursor = self.conn.cursor()
        now = datetime.now().isoformat()
        try:
            cursor.execute("DELETE FROM nodes WHERE canvas_id = ?", (canvas_id,))
            cursor.execute("DELETE FROM connections WHERE canvas_id = ?", (canvas_id,))
            self._insert(cursor, canvas_id, nodes, connections, 0, 0)
            cursor.execute("UPDATE canvases SET modified_at = ? WHERE id = ?", (now, canvas_id))
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def append_to_canvas(self, canvas_id: str, nodes: List[Node], connections: List[Connection]):
        """Add nodes and connections to a (possibly new) canvas."""
        self.ensure_canvas(canvas_id)
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT COALESCE(MAX(sort_order), -1) + 1 FROM nodes WHERE canvas_id = ?", (canvas_id,)
        )
        node_start = cursor.fetchone()[0]
        cursor.execute(
            "SELECT COALESCE(MAX(sort_order), -1) + 1 FROM connections WHERE canvas_id = ?", (canvas_id,)
        )
        conn_start = cursor.fetchone()[0]
        try:
            self._insert(cursor, canvas_id, nodes, connections, node_start, conn_start)
            cursor.execute(
                "UPDATE canvases SET modified_at = ? WHERE id = ?",
                (datetime.now().isoformat(), canvas_id)
            )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def _insert(self, cursor: sqlite3.Cursor, canvas_id: str, nodes: List[Node],
                connections: List[Connection], node_start: int, conn_start: int):
        cursor.executemany(
            """INSERT OR REPLACE INTO nodes
               (canvas_id, id, kind, x, y, width, height, z_index, sort_order, data)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [self._node_row(canvas_id, n, node_start + i) for i, n in enumerate(nodes)]
        )
        cursor.executemany(
            """INSERT OR REPLACE INTO connections
               (canvas_id, id, from_id, to_id, kind, sort_order)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [(canvas_id, c.id, c.from_id, c.to_id, c.kind.value, conn_start + i)
             for i, c in enumerate(connections)]
        )

    # ==================== Settings Operations ====================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an application setting."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()

        if not row:
            return default

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return default

    def get_all_settings(self) -> Dict[str, Any]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT key, value FROM settings")
        result = {}
        for row in cursor.fetchall():
            try:
                result[row["key"]] = json.loads(row["value"])
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unreadable setting '{row['key']}'")
        return result

    def set_setting(self, key: str, value: Any):
        """Set an application setting."""
        cursor = self.conn.cursor()
        cursor.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, json.dumps(value))
        )
        self.conn.commit()


class CanvasBridge:
    """Persistence bridge for one canvas stored in a Database."""

    def __init__(self, db: Database, canvas_id: str = MAIN_CANVAS_ID, title: str = "Story"):
        self.db = db
        self.canvas_id = canvas_id
        self.db.ensure_canvas(canvas_id, title)

    def save(self, nodes: List[Node], connections: List[Connection]) -> None:
        self.db.save_canvas(self.canvas_id, nodes, connections)

    def load(self) -> Tuple[List[Node], List[Connection]]:
        return self.db.load_canvas(self.canvas_id)

    def move_to_canvas(self, canvas_id: str, nodes: List[Node],
                       connections: List[Connection]) -> None:
        self.db.append_to_canvas(canvas_id, nodes, connections)
