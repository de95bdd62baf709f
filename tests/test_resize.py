"""Tests for the per-kind resize policy and column resizing."""

import pytest

from storyweave.model import NodeKind, make_node
from storyweave.resize import (
    resize_dimensions, scale_children, resize_columns, column_widths,
    column_boundaries, find_column_boundary, compact_text_height, min_size,
    list_min_height,
)


class TestResizeDimensions:
    """Tests for handle resizing of each node kind."""

    def test_default_kind_clamps_to_minimum(self):
        node = make_node(NodeKind.TEXT, 0, 0)
        assert resize_dimensions(node, 300, 139, -500, -500) == (120, 80)

    def test_image_keeps_aspect_ratio(self):
        node = make_node(NodeKind.IMAGE, 0, 0)
        node.attributes.update(original_width=300, original_height=200)
        width, height = resize_dimensions(node, 300, 200, 100, 0)
        assert width / height == pytest.approx(1.5)
        assert width > 300

    def test_image_scales_up_uniformly_under_minimum(self):
        node = make_node(NodeKind.IMAGE, 0, 0)
        node.attributes.update(original_width=300, original_height=200)
        width, height = resize_dimensions(node, 300, 200, -250, 0)
        assert width >= 200 and height >= 200
        assert width / height == pytest.approx(1.5)

    def test_table_is_width_only(self):
        node = make_node(NodeKind.TABLE, 0, 0)
        assert resize_dimensions(node, 280, 200, -200, 50) == (150, 200)

    def test_table_minimum_grows_with_columns(self):
        node = make_node(NodeKind.TABLE, 0, 0)
        node.attributes["columns"] = ["a", "b", "c", "d"]
        assert min_size(node)[0] == 240

    def test_compact_text_height_follows_content(self):
        node = make_node(NodeKind.COMPACT_TEXT, 0, 0)
        node.content = "word " * 40
        narrow = resize_dimensions(node, 240, 44, -100, 0)
        wide = resize_dimensions(node, 240, 44, 300, 0)
        assert narrow[1] > wide[1]
        assert wide[1] == compact_text_height(node.content, wide[0])

    def test_line_is_not_resizable(self):
        node = make_node(NodeKind.LINE, 0, 0)
        assert resize_dimensions(node, 200, 80, 50, 50) == (200, 80)

    def test_list_width_is_capped(self):
        node = make_node(NodeKind.LIST, 0, 0)
        assert resize_dimensions(node, 320, 240, 1000, 0) == (800, 240)

    def test_list_height_is_capped(self):
        node = make_node(NodeKind.LIST, 0, 0)
        assert resize_dimensions(node, 320, 240, 0, 5000) == (320, 1200)

    def test_grid_snap_then_reclamp(self):
        node = make_node(NodeKind.TEXT, 0, 0)
        assert resize_dimensions(node, 300, 139, 13, 0, grid_size=20) == (320, 140)
        assert resize_dimensions(node, 300, 139, -250, -100, grid_size=20) == (120, 80)

    def test_list_min_height(self):
        assert list_min_height(0) == 200
        assert list_min_height(5) == 280


class TestScaleChildren:

    def test_children_scale_with_floor(self):
        sizes = scale_children({"a": (200, 100), "b": (100, 70)}, 320, 240, 160, 120)
        assert sizes["a"] == (100, 60)
        assert sizes["b"] == (80, 60)


class TestColumnResize:
    """Tests for table column percentage transfer."""

    def test_pair_sum_is_preserved(self):
        widths = [30.0, 40.0, 30.0]
        for delta in (15, -80, 200, -3):
            widths = resize_columns(widths, 1, delta, 300)
            assert sum(widths) == pytest.approx(100.0)
            assert min(widths) >= 10.0

    def test_floor_redistributes_shortfall(self):
        assert resize_columns([50.0, 50.0], 0, 100, 200) == [90.0, 10.0]
        assert resize_columns([50.0, 50.0], 0, -100, 200) == [10.0, 90.0]

    def test_many_columns_respect_floor(self):
        widths = [12.0, 12.0] + [76.0 / 9] * 9
        result = resize_columns(widths, 0, -50, 700)
        assert result[:2] == pytest.approx([10.0, 14.0])
        assert sum(result) == pytest.approx(100.0)

    def test_pair_narrower_than_two_floors_is_unchanged(self):
        widths = [100.0 / 11] * 11
        assert resize_columns(widths, 0, -5, 700) == widths

    def test_drag_stops_at_floor(self):
        assert resize_columns([20.0, 30.0, 50.0], 0, -100, 100) == [10.0, 40.0, 50.0]

    def test_bad_boundary_index(self):
        with pytest.raises(IndexError):
            resize_columns([50.0, 50.0], 1, 10, 200)

    def test_inconsistent_widths_fall_back_to_equal_split(self):
        node = make_node(NodeKind.TABLE, 0, 0)
        node.attributes["column_widths"] = [70.0]
        assert column_widths(node) == [50.0, 50.0]

    def test_boundary_hit(self):
        node = make_node(NodeKind.TABLE, 0, 0)
        assert column_boundaries(node) == [140.0]
        assert find_column_boundary(node, 143, 4) == 0
        assert find_column_boundary(node, 150, 4) is None
