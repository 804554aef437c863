"""Tests for series/parallel path reduction."""

import numpy as np
import pytest

from perctransport.utils.config import PhaseProperties
from perctransport.utils.lattice_utils import Lattice, CellState
from perctransport.utils.search_utils import PathNode, find_paths
from perctransport.utils.path_utils import (
    node_resistance, elastic_layers, combine_series, combine_parallel,
    path_properties, rve_properties,
)


def props(sigma=(0.0, 1.0), thermal=None, young=(1.0, 10.0), poisson=(0.4, 0.2)):
    thermal = sigma if thermal is None else thermal
    return PhaseProperties(
        electric_conductivity=np.array(sigma, dtype=float),
        thermal_conductivity=np.array(thermal, dtype=float),
        young_modulus=np.array(young, dtype=float),
        poisson_ratio=np.array(poisson, dtype=float),
    )


class TestNodeResistance:

    def test_vertical_node_walks_sideways(self):
        lat = Lattice.from_mask(np.ones((3, 3), dtype=bool))
        node = PathNode(1, 1, 1, 0, 1)
        res_e, res_t = node_resistance(lat, node, props())
        assert res_e == pytest.approx(1.0 / 3.0)
        assert res_t == pytest.approx(1.0 / 3.0)
        assert lat.get(0, 1) == CellState.SIDEPATH
        assert lat.get(2, 1) == CellState.SIDEPATH
        assert lat.visited[1, 0] and lat.visited[1, 2]
        assert lat.get(1, 0) == CellState.HARD

    def test_horizontal_node_walks_vertically(self):
        lat = Lattice.from_mask(np.ones((3, 3), dtype=bool))
        node = PathNode(1, 1, 0, 1, 1)
        res_e, _ = node_resistance(lat, node, props())
        assert res_e == pytest.approx(1.0 / 3.0)
        assert lat.get(1, 0) == CellState.SIDEPATH
        assert lat.get(1, 2) == CellState.SIDEPATH
        assert lat.get(0, 1) == CellState.HARD

    def test_walk_stops_at_empty_cell(self):
        lat = Lattice.from_mask(np.array([[True, True, False, True]]))
        node = PathNode(0, 0, 0, -1, 0)
        res_e, _ = node_resistance(lat, node, props())
        # node + one side cell; the empty cell blocks the rest
        assert res_e == pytest.approx(0.5)
        assert lat.get(3, 0) == CellState.HARD

    def test_walk_stops_at_insulating_phase(self):
        lat = Lattice.from_labels(np.array([[1, 1, 2]]))
        node = PathNode(1, 0, 1, -1, 0)
        res_e, _ = node_resistance(lat, node, props(sigma=(0.0, 1.0, 0.0), young=(1, 1, 1), poisson=(0, 0, 0)))
        assert res_e == pytest.approx(0.5)
        assert lat.get(2, 0) == CellState.HARD

    def test_drawn_path_blocks_walk(self):
        lat = Lattice.from_mask(np.ones((1, 3), dtype=bool))
        lat.set(0, 0, CellState.PATH)
        lat.set(2, 0, CellState.PATH)
        res_e, _ = node_resistance(lat, PathNode(1, 0, 1, -1, 0), props(sigma=(0.0, 4.0)))
        assert res_e == pytest.approx(0.25)


class TestElastic:

    def test_layers_group_same_row(self):
        lat = Lattice.from_mask(np.ones((3, 2), dtype=bool))
        path = [PathNode(0, 0, 0, -1, 0), PathNode(0, 1, 0, 0, 1),
                PathNode(1, 1, 0, 1, 2), PathNode(1, 2, 1, 1, 3)]
        layers = elastic_layers(lat, path, props())
        assert [e for e, _ in layers] == [10.0, 20.0, 10.0]
        assert [nu for _, nu in layers] == pytest.approx([0.2, 0.4, 0.2])

    def test_combine_series(self):
        assert combine_series([10.0, 20.0, 10.0]) == pytest.approx(4.0)
        assert combine_series([]) == 0.0

    def test_combine_parallel(self):
        assert combine_parallel([2.0, 2.0]) == pytest.approx(1.0)
        assert combine_parallel([]) == 0.0


class TestPathProperties:

    def test_single_column(self):
        mask = np.zeros((4, 3), dtype=bool)
        mask[:, 1] = True
        lat = Lattice.from_mask(mask)
        paths = find_paths(lat)
        assert len(paths) == 1
        p = path_properties(lat, paths[0], props(sigma=(0.0, 2.0), thermal=(0.0, 4.0)))
        assert p.length == 4
        assert p.resistance == pytest.approx(2.0)
        assert p.thermal_resistance == pytest.approx(1.0)
        # four single-node layers of E = 10, then divided by the width
        assert p.young_modulus == pytest.approx(2.5 / 3)
        assert p.poisson_ratio == pytest.approx(0.05)

    def test_empty_path(self):
        p = path_properties(Lattice(2, 2), [], props())
        assert p.length == 0
        assert p.resistance == 0.0

    def test_rve_full_lattice(self, full_lattice, unit_props):
        paths = find_paths(full_lattice)
        rve = rve_properties(full_lattice, paths, unit_props)
        assert rve.total_paths == 10
        assert rve.mean_length == pytest.approx(10.0)
        assert rve.resistance == pytest.approx(1.0)
        assert rve.electric_conductivity == pytest.approx(1.0)
        assert rve.mean_path_width == pytest.approx(1.0)
        assert rve.young_modulus == pytest.approx(1.0)
        assert len(rve.paths) == 10

    def test_rve_no_paths(self, empty_lattice):
        rve = rve_properties(empty_lattice, [], props())
        assert rve.total_paths == 0
        assert rve.resistance == 0.0
        assert rve.electric_conductivity == 0.0
        assert rve.young_modulus == 1.0
        assert rve.poisson_ratio == 0.4
