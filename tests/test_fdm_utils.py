"""Tests for the finite-difference conductivity solver."""

import numpy as np
import pytest

from perctransport.utils.config import NonConvergenceWarning
from perctransport.utils.fdm_utils import (
    FDConductivitySolver, bond_table, bond_conductances, halo_labels, phase_fractions,
    prod, effective_conductivity,
)


class TestGrid:

    def test_halo_is_periodic(self):
        labels = np.arange(6).reshape(2, 3)
        pix = halo_labels(labels, 6)
        assert pix.shape == (4, 5)
        np.testing.assert_array_equal(pix[1:-1, 1:-1], labels)
        np.testing.assert_array_equal(pix[0, 1:-1], labels[-1])
        np.testing.assert_array_equal(pix[-1, 1:-1], labels[0])
        np.testing.assert_array_equal(pix[1:-1, 0], labels[:, -1])
        np.testing.assert_array_equal(pix[1:-1, -1], labels[:, 0])
        assert pix[0, 0] == labels[-1, -1]
        assert pix[-1, -1] == labels[0, 0]

    def test_labels_out_of_range(self):
        with pytest.raises(ValueError):
            halo_labels(np.array([[0, 2]]), 2)
        with pytest.raises(ValueError):
            halo_labels(np.array([[-1, 0]]), 2)

    def test_phase_fractions(self):
        np.testing.assert_allclose(phase_fractions(np.array([[0, 1], [1, 1]]), 3), [0.25, 0.75, 0.0])


class TestBonds:

    def test_equal_phases_give_sigma(self):
        be = bond_table([1.0, 2.0, 4.0])
        assert be[0, 0] == 1.0
        assert be[1, 1] == 2.0
        assert be[2, 2] == 4.0

    def test_harmonic_mean(self):
        be = bond_table([1.0, 3.0])
        assert be[0, 1] == pytest.approx(1.5)
        assert be[1, 0] == be[0, 1]

    def test_zero_phase_gives_zero_bond(self):
        be = bond_table([0.0, 5.0])
        assert be[0, 1] == 0.0
        assert be[1, 0] == 0.0
        assert be[0, 0] == 0.0

    def test_negative_conductivity_rejected(self):
        with pytest.raises(ValueError):
            bond_table([-1.0, 1.0])

    def test_last_faces_are_zero(self):
        pix = halo_labels(np.ones((3, 3), dtype=int), 2)
        gx, gy = bond_conductances(pix, bond_table([0.0, 1.0]))
        assert not gx[:, -1].any()
        assert not gy[-1, :].any()
        assert np.all(gx[:, :-1] == 1.0)

    def test_prod_annihilates_constant(self):
        pix = halo_labels(np.random.default_rng(0).integers(0, 2, (5, 4)), 2)
        gx, gy = bond_conductances(pix, bond_table([1.0, 3.0]))
        y = prod(gx, gy, np.full(pix.shape, 7.0))
        np.testing.assert_allclose(y, 0.0, atol=1e-12)


class TestSolver:

    def test_homogeneous_grid(self):
        res = FDConductivitySolver(np.ones((10, 10), dtype=int), [0.0, 2.0], field=(1.0, 1.0)).solve()
        assert res.converged
        assert res.steps == 0
        assert res.current_x == pytest.approx(2.0)
        assert res.current_y == pytest.approx(2.0)

    def test_default_field_is_vertical(self):
        res = effective_conductivity(np.zeros((6, 6), dtype=int), [3.0])
        assert res.current_x == pytest.approx(0.0, abs=1e-12)
        assert res.current_y == pytest.approx(3.0)
        assert res.conductivity == pytest.approx(3.0)
        assert res.resistivity == pytest.approx(1.0 / 3.0)

    def test_stripes_along_field_are_parallel(self):
        labels = np.tile([0, 1], (4, 2))
        res = effective_conductivity(labels, [1.0, 3.0], field=(0.0, 1.0))
        assert res.current_y == pytest.approx(2.0)

    def test_stripes_across_field_are_series(self):
        labels = np.tile([0, 1], (4, 2))
        res = effective_conductivity(labels, [1.0, 3.0], field=(1.0, 0.0))
        assert res.current_x == pytest.approx(1.5)

    def test_insulator(self):
        res = effective_conductivity(np.zeros((4, 4), dtype=int), [0.0, 1.0])
        assert res.conductivity == 0.0
        assert res.resistivity == np.inf

    def test_random_composite_within_bounds(self):
        labels = np.random.default_rng(3).integers(0, 2, (8, 8))
        sigma = np.array([1.0, 10.0])
        res = effective_conductivity(labels, sigma)
        assert res.converged
        assert res.steps > 0
        frac = phase_fractions(labels, 2)
        upper = float(np.sum(frac * sigma))
        lower = 1.0 / float(np.sum(frac / sigma))
        assert lower - 1e-6 <= res.current_y <= upper + 1e-6
        np.testing.assert_allclose(res.phase_fractions, frac)

    def test_step_cap_warns(self):
        labels = np.random.default_rng(5).integers(0, 2, (8, 8))
        with pytest.warns(NonConvergenceWarning):
            res = effective_conductivity(labels, [1.0, 10.0], max_steps=1)
        assert not res.converged
        assert res.steps == 1
