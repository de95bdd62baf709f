"""Tests for the launcher preflight checks."""

from storyweave.preflight import run_preflight


class TestPreflight:

    def test_skip_variable_bypasses_checks(self, monkeypatch):
        monkeypatch.setenv("STORYWEAVE_SKIP_PREFLIGHT", "1")
        monkeypatch.delenv("DISPLAY", raising=False)
        monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
        result = run_preflight()
        assert result.ok
        assert "skipped" in result.message

    def test_missing_display_fails(self, monkeypatch):
        monkeypatch.delenv("STORYWEAVE_SKIP_PREFLIGHT", raising=False)
        monkeypatch.delenv("DISPLAY", raising=False)
        monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
        result = run_preflight(require_display=True, check_deps=False)
        assert not result.ok
        assert "graphical session" in result.message

    def test_display_without_dependency_check(self, monkeypatch):
        monkeypatch.delenv("STORYWEAVE_SKIP_PREFLIGHT", raising=False)
        monkeypatch.setenv("WAYLAND_DISPLAY", "wayland-0")
        assert run_preflight(check_deps=False).ok
