"""Main StoryWeave application."""

import logging
import os
import sys
from typing import Optional, List, Tuple, Callable, Any, Set

import gi
gi.require_version("Gtk", "4.0")
gi.require_version("Adw", "1")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gio, GLib, Adw

from storyweave import __version__, __app_id__
from storyweave.canvas import StoryCanvas
from storyweave.database import Database, CanvasBridge, MAIN_CANVAS_ID
from storyweave.export import CanvasExporter, get_export_dir
from storyweave.interaction import Tool
from storyweave.model import Node
from storyweave.session import CanvasSession
from storyweave.settings import SettingsStore

logger = logging.getLogger(__name__)

TOOLBAR = [
    (Tool.SELECT, "edit-select-symbolic", "Select"),
    (Tool.PAN, "view-pan-symbolic", "Pan (Esc)"),
    (Tool.CONNECT, "network-wired-symbolic", "Connect"),
    (Tool.RELATIONSHIP, "emblem-favorite-symbolic", "Relationship"),
    (Tool.TEXT, "insert-text-symbolic", "Text"),
    (Tool.COMPACT_TEXT, "format-justify-left-symbolic", "Note"),
    (Tool.CHARACTER, "avatar-default-symbolic", "Character"),
    (Tool.EVENT, "x-office-calendar-symbolic", "Event"),
    (Tool.LOCATION, "mark-location-symbolic", "Location"),
    (Tool.FOLDER, "folder-symbolic", "Folder"),
    (Tool.LIST, "view-list-symbolic", "List"),
    (Tool.TABLE, "x-office-spreadsheet-symbolic", "Table"),
    (Tool.IMAGE, "image-x-generic-symbolic", "Image"),
    (Tool.RELATIONSHIP_CANVAS, "system-users-symbolic", "Relationship map"),
    (Tool.LINE, "draw-line-symbolic", "Line"),
]


class GLibScheduler:
    """Deferred callbacks on the GLib main loop."""

    def __init__(self):
        self._live: Set[int] = set()

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        def fire():
            self._live.discard(source_id)
            callback()
            return GLib.SOURCE_REMOVE

        source_id = GLib.timeout_add(delay_ms, fire)
        self._live.add(source_id)
        return source_id

    def cancel(self, handle: Any) -> None:
        if handle in self._live:
            self._live.discard(handle)
            GLib.source_remove(handle)


class StoryWeaveWindow(Adw.ApplicationWindow):
    """Main application window."""

    def __init__(self, app: Adw.Application, db: Database, settings: SettingsStore):
        super().__init__(application=app)
        self.db = db
        self.settings = settings
        self.scheduler = GLibScheduler()
        self.exporter = CanvasExporter(db)

        # (canvas_id, label) from the main board down to the open one
        self.canvas_stack: List[Tuple[str, str]] = []
        self.session: Optional[CanvasSession] = None
        self.canvas: Optional[StoryCanvas] = None

        self.set_title("StoryWeave")
        self.set_default_size(1400, 900)

        self._build_ui()
        self._setup_shortcuts()

        self.navigate_to_canvas(MAIN_CANVAS_ID, "Story")
        self.connect("close-request", self._on_close_request)

    def _build_ui(self):
        """Build the main UI layout."""
        main_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL)
        main_box.append(self._build_header())
        main_box.append(self._build_toolbar())

        self.canvas_frame = Gtk.Frame()
        self.canvas_frame.set_vexpand(True)

        self.toast_overlay = Adw.ToastOverlay()
        self.toast_overlay.set_child(self.canvas_frame)
        main_box.append(self.toast_overlay)

        self.set_content(main_box)

    def _build_header(self) -> Adw.HeaderBar:
        """Build the header bar."""
        header = Adw.HeaderBar()

        menu = Gio.Menu()
        export_section = Gio.Menu()
        export_menu = Gio.Menu()
        export_menu.append("Export as Markdown...", "win.export-md")
        export_menu.append("Export as Text...", "win.export-txt")
        export_menu.append("Export as PNG...", "win.export-png")
        export_section.append_submenu("Export", export_menu)
        menu.append_section(None, export_section)

        view_section = Gio.Menu()
        view_section.append("Snap to Grid", "win.toggle-grid-snap")
        view_section.append("Zoom to 100%", "win.zoom-100")
        menu.append_section(None, view_section)

        help_section = Gio.Menu()
        help_section.append("About StoryWeave", "win.show-about")
        menu.append_section(None, help_section)

        menu_btn = Gtk.MenuButton()
        menu_btn.set_icon_name("open-menu-symbolic")
        menu_btn.set_tooltip_text("Menu")
        popover = Gtk.PopoverMenu()
        popover.set_menu_model(menu)
        menu_btn.set_popover(popover)
        header.pack_end(menu_btn)

        self.back_btn = Gtk.Button()
        self.back_btn.set_icon_name("go-previous-symbolic")
        self.back_btn.set_tooltip_text("Back to parent canvas")
        self.back_btn.connect("clicked", lambda b: self.navigate_back())
        header.pack_start(self.back_btn)

        self.undo_btn = Gtk.Button()
        self.undo_btn.set_icon_name("edit-undo-symbolic")
        self.undo_btn.connect("clicked", lambda b: self._undo())
        header.pack_start(self.undo_btn)

        self.redo_btn = Gtk.Button()
        self.redo_btn.set_icon_name("edit-redo-symbolic")
        self.redo_btn.connect("clicked", lambda b: self._redo())
        header.pack_start(self.redo_btn)

        self.title_label = Gtk.Label(label="StoryWeave")
        self.title_label.add_css_class("title")
        header.set_title_widget(self.title_label)
        return header

    def _build_toolbar(self) -> Gtk.Box:
        toolbar = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=2)
        toolbar.add_css_class("toolbar")
        self.tool_buttons = {}
        group = None
        for tool, icon, tooltip in TOOLBAR:
            button = Gtk.ToggleButton()
            button.set_icon_name(icon)
            button.set_tooltip_text(tooltip)
            if group is not None:
                button.set_group(group)
            else:
                group = button
            button.connect("toggled", self._on_tool_toggled, tool)
            self.tool_buttons[tool] = button
            toolbar.append(button)
        self.tool_buttons[Tool.SELECT].set_active(True)
        return toolbar

    def _setup_shortcuts(self):
        """Setup window actions."""
        actions = [
            ("export-md", self._export_md, None),
            ("export-txt", self._export_txt, None),
            ("export-png", self._export_png, None),
            ("toggle-grid-snap", self._toggle_grid_snap, None),
            ("zoom-100", self._zoom_100, "<Control>1"),
            ("show-about", self._show_about, None),
            ("quit", lambda: self.close(), "<Control>q"),
        ]
        for name, callback, accel in actions:
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", lambda a, p, cb=callback: cb())
            self.add_action(action)
            if accel:
                self.get_application().set_accels_for_action(f"win.{name}", [accel])

    # ==================== Navigation ====================

    def navigate_to_canvas(self, canvas_id: str, label: str) -> None:
        """Open a canvas below the current one."""
        self._leave_current()
        self.canvas_stack.append((canvas_id, label))
        self._open(canvas_id, label)

    def navigate_back(self):
        if len(self.canvas_stack) < 2:
            return
        self._leave_current()
        self.canvas_stack.pop()
        self._open(*self.canvas_stack[-1])

    def _open(self, canvas_id: str, label: str):
        bridge = CanvasBridge(self.db, canvas_id, label)
        session = CanvasSession(
            bridge,
            settings=self.settings,
            navigator=self,
            transfer=bridge,
            confirmer=self,
            scheduler=self.scheduler,
        )
        session.load()

        record = self.db.get_canvas(canvas_id)
        if record is not None:
            session.viewport.zoom = record.view.zoom
            session.viewport.scroll_x = record.view.scroll_x
            session.viewport.scroll_y = record.view.scroll_y

        session.history.on_state_changed = self._update_history_buttons
        self.session = session
        if self.canvas is None:
            self.canvas = StoryCanvas(session)
            self.canvas.controller.on_tool_changed = self._on_tool_changed
            self.canvas_frame.set_child(self.canvas)
        else:
            self.canvas.set_session(session)
            self.canvas.controller.on_tool_changed = self._on_tool_changed

        self.title_label.set_label(" / ".join(name for _, name in self.canvas_stack))
        self.back_btn.set_sensitive(len(self.canvas_stack) > 1)
        self._update_history_buttons()
        logger.info(f"Opened canvas {canvas_id}")

    def _leave_current(self):
        """Flush pending edits and remember the view of the open canvas."""
        if self.session is None or not self.canvas_stack:
            return
        self.session.flush_text_edits()
        canvas_id = self.canvas_stack[-1][0]
        record = self.db.get_canvas(canvas_id)
        if record is not None:
            viewport = self.session.viewport
            record.view.zoom = viewport.zoom
            record.view.scroll_x = viewport.scroll_x
            record.view.scroll_y = viewport.scroll_y
            self.db.update_canvas(record)

    # ==================== Confirmation ====================

    def request_move_confirmation(self, node: Node, target: Node,
                                  resolve: Callable[[bool], None]) -> None:
        """Ask before moving a node into another node's canvas."""
        dialog = Adw.MessageDialog(
            transient_for=self,
            heading="Move into canvas?",
            body=f"Move \"{node.text or node.kind.value}\" into \"{target.text or target.kind.value}\"?"
        )
        dialog.add_response("cancel", "Keep Here")
        dialog.add_response("move", "Move")
        dialog.set_response_appearance("move", Adw.ResponseAppearance.SUGGESTED)
        dialog.set_default_response("cancel")
        dialog.connect("response", lambda d, r: resolve(r == "move"))
        dialog.present()

    # ==================== Actions ====================

    def _on_tool_toggled(self, button, tool: Tool):
        if button.get_active() and self.canvas and self.canvas.controller.tool != tool:
            self.canvas.set_tool(tool)

    def _on_tool_changed(self, tool: Tool):
        button = self.tool_buttons.get(tool)
        if button and not button.get_active():
            button.set_active(True)

    def _update_history_buttons(self):
        history = self.session.history if self.session else None
        self.undo_btn.set_sensitive(bool(history and history.can_undo))
        self.redo_btn.set_sensitive(bool(history and history.can_redo))
        if history:
            self.undo_btn.set_tooltip_text(f"Undo {history.undo_description} (Ctrl+Z)")
            self.redo_btn.set_tooltip_text(f"Redo {history.redo_description} (Ctrl+Shift+Z)")

    def _undo(self):
        if self.session:
            self.session.undo()

    def _redo(self):
        if self.session:
            self.session.redo()

    def _zoom_100(self):
        if self.session:
            self.session.viewport.reset_zoom()
            self.canvas.queue_draw()

    def _toggle_grid_snap(self):
        enabled = not self.settings.get("grid_snap", False)
        self.settings.set("grid_snap", enabled)
        self._show_toast("Snap to grid on" if enabled else "Snap to grid off")

    def _show_about(self):
        about = Adw.AboutWindow(
            transient_for=self,
            application_name="StoryWeave",
            application_icon=__app_id__,
            version=__version__,
            comments="A canvas for planning stories",
        )
        about.present()

    def _on_close_request(self, window):
        self._leave_current()
        return False

    # ==================== Export ====================

    def _export(self, title: str, suffix: str, mime: Optional[str], pattern: Optional[str],
                writer: Callable[[str, str], bool]):
        canvas_id, label = self.canvas_stack[-1]
        dialog = Gtk.FileDialog()
        dialog.set_title(title)
        dialog.set_initial_name(f"{label}{suffix}")
        dialog.set_initial_folder(Gio.File.new_for_path(str(get_export_dir())))

        file_filter = Gtk.FileFilter()
        file_filter.set_name(title)
        if mime:
            file_filter.add_mime_type(mime)
        if pattern:
            file_filter.add_pattern(pattern)
        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(file_filter)
        dialog.set_filters(filters)

        def on_response(dlg, result):
            try:
                file = dlg.save_finish(result)
            except GLib.Error:
                return  # User cancelled
            filepath = file.get_path() if file else None
            if not filepath:
                self._show_toast("Export failed: selected location is not a local file")
                return
            self.session.flush_text_edits()
            try:
                ok = writer(filepath, canvas_id)
            except OSError as exc:
                logger.exception("Export failed")
                self._show_toast(f"Export failed: {exc}")
                return
            self._show_toast(f"Exported to {filepath}" if ok else "Nothing to export")

        dialog.save(self, None, on_response)

    def _export_md(self):
        self._export("Markdown Files", ".md", None, "*.md", self.exporter.export_markdown)

    def _export_txt(self):
        self._export("Text Files", ".txt", "text/plain", None, self.exporter.export_text)

    def _export_png(self):
        self._export("PNG Images", ".png", "image/png", None, self.exporter.export_png)

    def _show_toast(self, message: str):
        """Show a toast notification."""
        toast = Adw.Toast(title=message)
        toast.set_timeout(3)
        self.toast_overlay.add_toast(toast)


class StoryWeaveApp(Adw.Application):
    """Main application class."""

    def __init__(self):
        super().__init__(
            application_id=__app_id__,
            flags=Gio.ApplicationFlags.DEFAULT_FLAGS
        )
        self.db: Optional[Database] = None
        self.settings: Optional[SettingsStore] = None
        self.window: Optional[StoryWeaveWindow] = None

    def do_startup(self):
        """Initialize application."""
        Adw.Application.do_startup(self)
        self.db = Database()
        self.settings = SettingsStore(self.db)

    def do_activate(self):
        """Activate application."""
        if not self.window:
            self.window = StoryWeaveWindow(self, self.db, self.settings)
        self.window.present()

    def do_shutdown(self):
        """Shutdown application."""
        if self.db:
            self.db.close()
        Adw.Application.do_shutdown(self)


def main() -> int:
    """Application entry point."""
    logging.basicConfig(
        level=os.environ.get("STORYWEAVE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = StoryWeaveApp()
    return app.run(sys.argv)


if __name__ == "__main__":
    sys.exit(main())
