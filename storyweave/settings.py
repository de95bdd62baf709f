"""Process-wide configuration store (preferences, grid, clipboard).

Values are loaded once at start and written through on every change, so they
outlive a single canvas session.
"""

import logging
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional

from storyweave.database import Database

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "grid_snap": False,
    "grid_size": 20,
    "text_commit_delay_ms": 150,
    "clipboard": None,
}


class SettingsStore:
    """Explicit get/set configuration, optionally backed by a Database."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db
        self._values: Dict[str, Any] = dict(DEFAULTS)
        self._listeners: List[Callable[[str, Any], None]] = []
        self.load()

    def load(self):
        """Read every stored setting over the defaults."""
        if self.db is not None:
            self._values.update(self.db.get_all_settings())

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._values:
            return deepcopy(self._values[key])
        return default

    def set(self, key: str, value: Any):
        self._values[key] = deepcopy(value)
        if self.db is not None:
            self.db.set_setting(key, value)
        for listener in list(self._listeners):
            listener(key, value)

    def subscribe(self, listener: Callable[[str, Any], None]):
        self._listeners.append(listener)

    # ==================== Typed accessors ====================

    @property
    def grid_size(self) -> float:
        """Active grid size, or 0 when snapping is off."""
        if not self.get("grid_snap"):
            return 0
        try:
            return max(0.0, float(self.get("grid_size", 0)))
        except (TypeError, ValueError):
            logger.warning("Invalid grid_size setting, snapping disabled")
            return 0

    @property
    def text_commit_delay_ms(self) -> int:
        try:
            return max(0, min(150, int(self.get("text_commit_delay_ms", 150))))
        except (TypeError, ValueError):
            return 150

    @property
    def clipboard(self) -> Optional[Dict[str, Any]]:
        return self.get("clipboard")

    @clipboard.setter
    def clipboard(self, value: Optional[Dict[str, Any]]):
        self.set("clipboard", value)
