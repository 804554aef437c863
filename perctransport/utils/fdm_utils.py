"""
Finite-difference conjugate-gradient solver for the effective electric
conductivity of a 2D multi-phase pixel image under periodic boundaries.

Grid conventions:
- Phase labels are copied into a (ny + 2, nx + 2) array whose outer ring is a
  periodic ghost layer. Real sites are rows 1..ny, columns 1..nx.
- gx[j, i] is the bond between (j, i) and (j, i + 1); gy[j, i] the bond
  between (j, i) and (j + 1, i). Bond conductance is the harmonic mean of the
  two pixel conductivities.
- The potential starts as u = -ex * i - ey * j on the whole haloed grid, so
  the applied field survives the periodic wrap while the correction found by
  CG stays periodic.
"""
from __future__ import annotations
from dataclasses import dataclass
import warnings

import numpy as np

from .config import CG_MAX_STEPS, CG_TOLERANCE_FACTOR, CG_REPORT_EVERY, DEFAULT_FIELD, NonConvergenceWarning


@dataclass(frozen=True)
class FDResult:
    current_x: float
    current_y: float
    steps: int
    converged: bool
    phase_fractions: np.ndarray
    field: tuple[float, float] = DEFAULT_FIELD

    @property
    def conductivity(self) -> float:
        """Volume-averaged current along the applied field, per unit field."""
        ex, ey = self.field
        magnitude_sq = ex * ex + ey * ey
        if magnitude_sq == 0:
            return 0.0
        return (self.current_x * ex + self.current_y * ey) / magnitude_sq

    @property
    def resistivity(self) -> float:
        sigma = self.conductivity
        return 1.0 / sigma if sigma > 0 else np.inf


def phase_fractions(labels: np.ndarray, nphase: int) -> np.ndarray:
    """Area fraction of each phase label in 0..nphase-1."""
    counts = np.bincount(np.asarray(labels).ravel(), minlength=nphase)[:nphase]
    return counts / max(labels.size, 1)


def halo_labels(labels: np.ndarray, nphase: int) -> np.ndarray:
    """
    Copy phase labels into a grid with a one-cell periodic ghost layer.

    Parameters:
    ----------
    labels : np.ndarray
        (ny x nx) integer phase labels.
    nphase : int
        Number of phases; every label must lie in [0, nphase).

    Returns:
    -------
    np.ndarray
        (ny + 2 x nx + 2) int64 array. Rows wrap first, then columns, so the
        corners wrap diagonally.
    """
    labels = np.asarray(labels)
    if labels.ndim != 2:
        raise ValueError("Phase labels must be a 2D array.")
    if labels.size == 0:
        raise ValueError("Phase labels must not be empty.")
    if labels.min() < 0 or labels.max() > nphase - 1:
        raise ValueError(f"Phase labels must lie in [0, {nphase - 1}], got [{labels.min()}, {labels.max()}].")

    ny, nx = labels.shape
    pix = np.zeros((ny + 2, nx + 2), dtype=np.int64)
    pix[1:-1, 1:-1] = labels
    pix[0, 1:-1] = pix[ny, 1:-1]
    pix[ny + 1, 1:-1] = pix[1, 1:-1]
    pix[:, 0] = pix[:, nx]
    pix[:, nx + 1] = pix[:, 1]
    return pix


def bond_table(sigma: np.ndarray) -> np.ndarray:
    """
    Harmonic-mean bond conductance for every pair of phases.

    be[i, j] = 1 / (0.5 / sigma_i + 0.5 / sigma_j), and 0 when either phase
    has zero conductivity.
    """
    sigma = np.asarray(sigma, dtype=np.float64)
    if np.any(sigma < 0):
        raise ValueError("Phase conductivities must be non-negative.")
    si = sigma[:, None]
    sj = sigma[None, :]
    both = (si > 0) & (sj > 0)
    safe_i = np.where(both, si, 1.0)
    safe_j = np.where(both, sj, 1.0)
    return np.where(both, 1.0 / (0.5 / safe_i + 0.5 / safe_j), 0.0)


def bond_conductances(pix: np.ndarray, be: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Per-site bonds to the right (gx) and downward (gy) neighbours."""
    gx = np.zeros(pix.shape, dtype=np.float64)
    gy = np.zeros(pix.shape, dtype=np.float64)
    gx[:, :-1] = be[pix[:, :-1], pix[:, 1:]]
    gy[:-1, :] = be[pix[:-1, :], pix[1:, :]]
    return gx, gy


def wrap_periodic(y: np.ndarray) -> None:
    """Refresh the ghost layer of a haloed field in place."""
    ny, nx = y.shape[0] - 2, y.shape[1] - 2
    y[:, nx + 1] = y[:, 1]
    y[:, 0] = y[:, nx]
    y[0, :] = y[ny, :]
    y[ny + 1, :] = y[1, :]


def prod(gx: np.ndarray, gy: np.ndarray, x: np.ndarray) -> np.ndarray:
    """
    Apply the discrete divergence operator A to a haloed field.

    y = sum over the four bonds of g * (x_neighbour - x_site) on real sites,
    then the ghost layer is refreshed.
    """
    y = np.zeros_like(x)
    c = x[1:-1, 1:-1]
    g_left = gx[1:-1, :-2]
    g_right = gx[1:-1, 1:-1]
    g_up = gy[:-2, 1:-1]
    g_down = gy[1:-1, 1:-1]
    y[1:-1, 1:-1] = (
        -c * (g_left + g_right + g_up + g_down)
        + g_left * x[1:-1, :-2]
        + g_right * x[1:-1, 2:]
        + g_up * x[:-2, 1:-1]
        + g_down * x[2:, 1:-1]
    )
    wrap_periodic(y)
    return y


def _real_dot(a, b):
    return float(np.sum(a[1:-1, 1:-1] * b[1:-1, 1:-1]))


def conjugate_gradient(gx: np.ndarray, gy: np.ndarray, u: np.ndarray, gtest: float,
                       max_steps: int = CG_MAX_STEPS, verbose: bool = False) -> tuple[int, float]:
    """
    Relax the potential `u` in place until the residual norm drops below `gtest`.

    Norms and curvatures are summed over real sites only. Hitting `max_steps`
    warns and leaves the best estimate in `u`.

    Returns:
    -------
    tuple[int, float]
        Steps taken and the final squared residual norm.
    """
    gb = prod(gx, gy, u)
    gg = _real_dot(gb, gb)
    if gg <= gtest:
        return 0, gg

    h = gb.copy()
    steps = 0
    while steps < max_steps:
        steps += 1
        ah = prod(gx, gy, h)
        hah = _real_dot(h, ah)
        if hah == 0:
            break
        lam = gg / hah
        u -= lam * h
        gb -= lam * ah
        gglast = gg
        gg = _real_dot(gb, gb)
        if gg <= gtest:
            break
        gamma = gg / gglast
        h = gb + gamma * h
        if verbose and steps % CG_REPORT_EVERY == 0:
            print(f"[CG] step {steps}: gg = {gg:.3e} (target {gtest:.3e})")

    if gg > gtest:
        warnings.warn(
            f"Conjugate gradient stopped after {steps} steps with gg = {gg:.3e} > {gtest:.3e}.",
            NonConvergenceWarning,
        )
    return steps, gg


def average_current(u: np.ndarray, gx: np.ndarray, gy: np.ndarray) -> tuple[float, float]:
    """Volume-averaged x and y current over real sites."""
    uc = u[1:-1, 1:-1]
    cur_x = 0.5 * ((u[1:-1, :-2] - uc) * gx[1:-1, :-2] + (uc - u[1:-1, 2:]) * gx[1:-1, 1:-1])
    cur_y = 0.5 * ((u[:-2, 1:-1] - uc) * gy[:-2, 1:-1] + (uc - u[2:, 1:-1]) * gy[1:-1, 1:-1])
    return float(cur_x.mean()), float(cur_y.mean())


class FDConductivitySolver:
    """
    Effective conductivity of a phase-label image by finite differences.

    Parameters:
    ----------
    labels : np.ndarray
        (ny x nx) phase labels in [0, len(conductivities)).
    conductivities : sequence of float
        Electric conductivity per phase.
    field : tuple[float, float]
        Applied field (ex, ey).
    max_steps : int
        Conjugate-gradient step cap.
    tolerance_factor : float
        Convergence threshold per grid site (including the ghost layer).
    """

    def __init__(self, labels, conductivities, field=DEFAULT_FIELD, max_steps=CG_MAX_STEPS,
                 tolerance_factor=CG_TOLERANCE_FACTOR, verbose=False):
        self.sigma = np.asarray(conductivities, dtype=np.float64)
        self.labels = np.asarray(labels)
        self.pix = halo_labels(self.labels, len(self.sigma))
        self.field = (float(field[0]), float(field[1]))
        self.max_steps = max_steps
        self.tolerance_factor = tolerance_factor
        self.verbose = verbose

    @property
    def nx(self) -> int:
        return self.labels.shape[1]

    @property
    def ny(self) -> int:
        return self.labels.shape[0]

    def initial_potential(self) -> np.ndarray:
        ex, ey = self.field
        j, i = np.indices(self.pix.shape, dtype=np.float64)
        return -ex * i - ey * j

    def solve(self) -> FDResult:
        be = bond_table(self.sigma)
        gx, gy = bond_conductances(self.pix, be)
        u = self.initial_potential()
        gtest = self.tolerance_factor * self.pix.size
        steps, gg = conjugate_gradient(gx, gy, u, gtest, self.max_steps, self.verbose)
        cur_x, cur_y = average_current(u, gx, gy)
        return FDResult(
            current_x=cur_x,
            current_y=cur_y,
            steps=steps,
            converged=gg <= gtest,
            phase_fractions=phase_fractions(self.labels, len(self.sigma)),
            field=self.field,
        )


def effective_conductivity(labels, conductivities, field=DEFAULT_FIELD, **kwargs) -> FDResult:
    return FDConductivitySolver(labels, conductivities, field=field, **kwargs).solve()
