"""Tests for the bed leveling grid."""

import pytest

from bambulink.app.services.level_map import LevelMap, Point


class TestLevelMapConstruction:
    """Axes and lookups built from a batch of samples."""

    @pytest.fixture
    def level_map(self):
        return LevelMap([Point(25.0, 25.0, 0.272, 0.045), Point(66.2, 25.0, 0.042, 0.037)])

    def test_axes_deduplicated(self, level_map):
        assert level_map.xs == [25.0, 66.2]
        assert level_map.ys == [25.0]

    def test_value_exact_match(self, level_map):
        point = level_map.value(25.0, 25.0)
        assert point is not None
        assert point.c == 0.272

    def test_value_missing_returns_none(self, level_map):
        assert level_map.value(1.0, 1.0) is None

    def test_value_has_no_tolerance(self, level_map):
        """Coordinates must match exactly."""
        assert level_map.value(25.0000001, 25.0) is None

    def test_axes_keep_first_seen_order(self):
        """Axes follow input order, not numeric order."""
        level_map = LevelMap(
            [
                Point(100.0, 50.0, 0.1, 0.0),
                Point(10.0, 5.0, 0.2, 0.0),
                Point(100.0, 5.0, 0.3, 0.0),
                Point(55.0, 50.0, 0.4, 0.0),
            ]
        )
        assert level_map.xs == [100.0, 10.0, 55.0]
        assert level_map.ys == [50.0, 5.0]

    def test_duplicate_samples_are_all_kept(self):
        """Samples sharing (x, y) are not merged; lookups return the first."""
        first = Point(10.0, 10.0, 0.1, 0.01)
        second = Point(10.0, 10.0, 0.9, 0.09)
        level_map = LevelMap([first, second])

        assert level_map.points == [first, second]
        assert level_map.xs == [10.0]
        assert level_map.value(10.0, 10.0) == first

    def test_empty(self):
        level_map = LevelMap([])
        assert level_map.xs == []
        assert level_map.ys == []
        assert level_map.points == []
        assert level_map.render() == "        \n"

    def test_axes_are_copies(self, level_map):
        """Mutating a returned axis does not change the map."""
        level_map.xs.append(999.0)
        assert level_map.xs == [25.0, 66.2]

    def test_equality_by_points(self):
        points = [Point(1.0, 2.0, 0.3, 0.4)]
        assert LevelMap(points) == LevelMap(list(points))
        assert hash(LevelMap(points)) == hash(LevelMap(list(points)))


class TestLevelMapRender:
    """The text table format is exact."""

    def test_render_two_columns(self):
        level_map = LevelMap([Point(25.0, 25.0, 0.272, 0.045), Point(66.2, 25.0, 0.042, 0.037)])

        lines = level_map.render().split("\n")

        assert lines[0] == "        25.0   66.2   "
        assert lines[1] == " 25.0:  0.272  0.042 "
        assert lines[2] == ""

    def test_render_missing_cell_placeholder(self):
        level_map = LevelMap([Point(25.0, 25.0, 0.272, 0.045), Point(66.2, 70.0, -0.101, 0.037)])

        assert level_map.render() == (
            "        25.0   66.2   \n"
            " 25.0:  0.272 ????? \n"
            " 70.0: ????? -0.101 \n"
        )

    def test_render_wide_values(self):
        """Values wider than the field are not truncated."""
        level_map = LevelMap([Point(231.0, 236.0, -12.5, 0.0)])

        assert level_map.render() == "        231.0  \n236.0: -12.500 \n"

    def test_str_matches_render(self):
        level_map = LevelMap([Point(25.0, 25.0, 0.272, 0.045)])
        assert str(level_map) == level_map.render()
