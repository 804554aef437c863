"""Tests for span test and DFS/BFS path search."""

import numpy as np
import pytest

from perctransport.utils.config import InvalidStartWarning
from perctransport.utils.lattice_utils import Lattice, CellState
from perctransport.utils.search_utils import (
    flood_fill, span_test, span_batches, shortest_path, minimum_path, find_paths,
    restore_path_region, count_path_pixels,
)
from perctransport.utils.shape_utils import generate_site_lattice


def column_lattice(width=5, height=6, column=2, stop=None):
    mask = np.zeros((height, width), dtype=bool)
    mask[:stop, column] = True
    return Lattice.from_mask(mask)


class TestSpanTest:

    def test_empty_lattice_does_not_span(self, empty_lattice):
        assert span_test(empty_lattice) is False
        assert empty_lattice.count_area(CellState.PERCOLATE) == 0

    def test_full_lattice_spans(self, full_lattice):
        assert span_test(full_lattice) is True
        assert np.all(full_lattice.state[-1] == CellState.PERCOLATE)

    def test_every_top_start_succeeds_on_full_lattice(self):
        for x in range(10):
            lat = Lattice.from_mask(np.ones((10, 10), dtype=bool))
            assert flood_fill(lat, x, 0)

    def test_broken_column_does_not_span(self):
        lat = column_lattice(stop=4)
        assert span_test(lat) is False
        # the fill still marks what it reached
        assert lat.count_area(CellState.PERCOLATE) == 4

    def test_single_column_spans(self):
        lat = column_lattice()
        assert span_test(lat) is True

    def test_empty_bottom_cells_stay_empty(self):
        lat = column_lattice(width=5, height=5)
        lat.set(0, 4, CellState.HARD, material=1)
        assert span_test(lat) is True
        assert lat.get(0, 4) == CellState.PERCOLATE
        assert lat.get(2, 4) == CellState.PERCOLATE
        for x in (1, 3, 4):
            assert lat.get(x, 4) == CellState.EMPTY

    def test_flood_fill_ignores_hoop_cells(self):
        lat = column_lattice()
        lat.set(2, 3, CellState.SOFT)
        assert flood_fill(lat, 2, 0) is False

    def test_invalid_start_warns(self, empty_lattice):
        with pytest.warns(InvalidStartWarning):
            assert flood_fill(empty_lattice, 0, 0) is False

    def test_batches_cover_every_column_once(self):
        for width in (1, 5, 8, 20, 33):
            batches = span_batches(width, 8)
            flat = sorted(x for batch in batches for x in batch)
            assert flat == list(range(width))

    def test_batches_are_interleaved(self):
        batches = span_batches(16, 8)
        assert batches[0] == [0, 2, 4, 6, 8, 10, 12, 14]
        assert batches[1] == [1, 3, 5, 7, 9, 11, 13, 15]

    def test_narrow_lattice_spans(self):
        lat = Lattice.from_mask(np.ones((4, 3), dtype=bool))
        assert span_test(lat) is True


class TestPathSearch:

    def test_shortest_path_reaches_bottom(self, full_lattice):
        terminal, hops = shortest_path(full_lattice, 3, 0)
        assert terminal is not None
        assert terminal[1] == 9
        assert hops >= 10

    def test_shortest_path_invalid_start(self, empty_lattice):
        with pytest.warns(InvalidStartWarning):
            terminal, hops = shortest_path(empty_lattice, 0, 0)
        assert terminal is None
        assert hops == 0

    def test_shortest_path_blocked(self):
        lat = column_lattice(stop=3)
        terminal, hops = shortest_path(lat, 2, 0)
        assert terminal is None
        assert hops == 3

    def test_minimum_path_no_longer_than_dfs(self):
        for seed in range(5):
            base = generate_site_lattice(Lattice(12, 12), 0.7, np.random.default_rng(seed))
            for x in range(base.width):
                if base.state[0, x] != CellState.HARD:
                    continue
                lat = Lattice.from_labels(base.material)
                terminal, hops = shortest_path(lat, x, 0)
                if terminal is None:
                    continue
                path = minimum_path(lat, x, 0)
                assert 1 <= len(path) <= hops

    def test_minimum_path_is_connected(self, full_lattice):
        shortest_path(full_lattice, 3, 0)
        path = minimum_path(full_lattice, 3, 0)
        assert (path[0].x, path[0].y) == (3, 0)
        assert path[-1].y == 9
        for prev, node in zip(path, path[1:]):
            assert abs(node.x - prev.x) + abs(node.y - prev.y) == 1
            assert (node.prev_x, node.prev_y) == (prev.x, prev.y)
            assert node.dist == prev.dist + 1

    def test_origin_reads_as_vertical(self, full_lattice):
        shortest_path(full_lattice, 0, 0)
        path = minimum_path(full_lattice, 0, 0)
        assert (path[0].prev_x, path[0].prev_y) == (0, -1)
        assert path[0].is_vertical
        assert path[0].dist == 0

    def test_straight_column_path(self):
        lat = column_lattice()
        shortest_path(lat, 2, 0)
        path = minimum_path(lat, 2, 0)
        assert [(n.x, n.y) for n in path] == [(2, y) for y in range(6)]
        assert count_path_pixels(lat) == 6

    def test_off_path_cells_reset(self, full_lattice):
        shortest_path(full_lattice, 3, 0)
        minimum_path(full_lattice, 3, 0)
        on_path = full_lattice.state == CellState.PATH
        np.testing.assert_array_equal(full_lattice.visited, on_path)
        assert full_lattice.count_area(CellState.PATH) >= 10

    def test_minimum_path_invalid_start(self, full_lattice):
        with pytest.warns(InvalidStartWarning):
            assert minimum_path(full_lattice, 0, 0) == []

    def test_find_paths_full_lattice(self, full_lattice):
        paths = find_paths(full_lattice)
        assert len(paths) == 10
        cells = [(n.x, n.y) for p in paths for n in p]
        assert len(cells) == len(set(cells))
        assert all(len(p) == 10 for p in paths)

    def test_find_paths_empty(self, empty_lattice):
        assert find_paths(empty_lattice) == []

    def test_restore_path_region(self):
        lat = column_lattice()
        find_paths(lat)
        assert restore_path_region(lat, 2, 0) == 6
        assert lat.count_area(CellState.HARD) == 6
        assert not lat.visited.any()

    def test_minimum_path_from_interior_origin(self):
        lat = Lattice.from_mask(np.ones((5, 5), dtype=bool))
        lat.state[:] = CellState.PERCOLATE
        path = minimum_path(lat, 2, 2)
        assert [(n.x, n.y) for n in path] == [(2, 2), (2, 3), (2, 4)]
        assert (path[0].prev_x, path[0].prev_y) == (2, 1)
        # the cell above the origin was discovered but is off the route
        assert lat.get(2, 1) == CellState.HARD
        assert not lat.visited[1, 2]

    def test_minimum_path_after_span_test_from_any_cell(self):
        def spanned():
            lat = Lattice.from_mask(np.ones((5, 5), dtype=bool))
            assert span_test(lat)
            return lat

        origins = [(int(x), int(y)) for y, x in np.argwhere(spanned().state == CellState.PERCOLATE)]
        assert any(y > 0 for _, y in origins)
        for x, y in origins:
            lat = spanned()
            path = minimum_path(lat, x, y)
            assert (path[0].x, path[0].y) == (x, y)
            assert path[-1].y == 4
            assert len(path) >= 5 - y
            for prev, node in zip(path, path[1:]):
                assert abs(node.x - prev.x) + abs(node.y - prev.y) == 1

    def test_off_route_reset_keeps_empty_cells(self):
        mask = np.ones((5, 5), dtype=bool)
        mask[4, [0, 1, 3, 4]] = False
        lat = Lattice.from_mask(mask)
        assert span_test(lat)
        lat.state[lat.state != CellState.EMPTY] = CellState.PERCOLATE
        path = minimum_path(lat, 0, 3)
        assert [(n.x, n.y) for n in path] == [(0, 3), (1, 3), (2, 3), (2, 4)]
        for x in (0, 1, 3, 4):
            assert lat.get(x, 4) == CellState.EMPTY
