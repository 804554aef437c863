"""
Lattice generators: independent site filling and random particle placement.

Particles are tagged shape variants (`Ellipse`, `SlopedRectangle`). Each
knows its bounding box and which pixel coordinates it covers, and `digitize`
paints any of them onto a Lattice.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
import math
import warnings

import numpy as np

from .config import ComponentSpec
from .lattice_utils import Lattice, CellState


def generate_site_lattice(lattice: Lattice, fill_prob: float, rng: np.random.Generator,
                          material: int = 1) -> Lattice:
    """
    Fill a lattice with independently occupied core sites.

    Parameters:
    ----------
    lattice : Lattice
        Lattice to overwrite. It is cleared first.
    fill_prob : float
        Probability that a given site becomes a core cell (between 0 and 1).
    rng : np.random.Generator
        Random source, owned by the caller.
    material : int
        Phase label given to occupied sites. Empty sites get phase 0.

    Returns:
    -------
    Lattice
        The same lattice, for chaining.
    """
    if not 0.0 <= fill_prob <= 1.0:
        raise ValueError("fill_prob must be between 0 and 1.")
    lattice.clear()
    filled = rng.random(lattice.shape) < fill_prob
    lattice.state[filled] = CellState.HARD
    lattice.material[filled] = material
    return lattice


@dataclass(frozen=True)
class Ellipse:
    """Ellipse with semi-axes `a` (along the slope) and `b`. A circle has a == b."""
    cx: float
    cy: float
    a: float
    b: float
    slope: float = 0.0  # radians

    def bounding_box(self) -> tuple[int, int, int, int]:
        r = max(self.a, self.b)
        return (math.floor(self.cx - r), math.ceil(self.cx + r),
                math.floor(self.cy - r), math.ceil(self.cy + r))

    def contains(self, px: np.ndarray, py: np.ndarray) -> np.ndarray:
        u, v = _to_local(px - self.cx, py - self.cy, self.slope)
        return (u / self.a) ** 2 + (v / self.b) ** 2 <= 1.0

    def grown(self, hoop: float) -> "Ellipse":
        return replace(self, a=self.a + hoop, b=self.b + hoop)


@dataclass(frozen=True)
class SlopedRectangle:
    """Rectangle of full size width x height rotated by `slope`. Slope 0 is axis aligned."""
    cx: float
    cy: float
    width: float
    height: float
    slope: float = 0.0

    def bounding_box(self) -> tuple[int, int, int, int]:
        r = 0.5 * math.hypot(self.width, self.height)
        return (math.floor(self.cx - r), math.ceil(self.cx + r),
                math.floor(self.cy - r), math.ceil(self.cy + r))

    def contains(self, px: np.ndarray, py: np.ndarray) -> np.ndarray:
        u, v = _to_local(px - self.cx, py - self.cy, self.slope)
        return (np.abs(u) <= 0.5 * self.width) & (np.abs(v) <= 0.5 * self.height)

    def grown(self, hoop: float) -> "SlopedRectangle":
        return replace(self, width=self.width + 2 * hoop, height=self.height + 2 * hoop)


def _to_local(dx, dy, slope):
    c, s = math.cos(slope), math.sin(slope)
    return dx * c + dy * s, -dx * s + dy * c


def digitize(shape, lattice: Lattice, material: int, state: CellState = CellState.HARD) -> int:
    """
    Paint the pixels whose coordinates fall inside `shape`.

    Core cells overwrite anything; hoop cells only fill empty cells.

    Returns:
    -------
    int
        Number of previously empty cells that were painted.
    """
    x0, x1, y0, y1 = shape.bounding_box()
    x0, y0 = max(x0, 0), max(y0, 0)
    x1, y1 = min(x1, lattice.width - 1), min(y1, lattice.height - 1)
    if x0 > x1 or y0 > y1:
        return 0

    ys, xs = np.mgrid[y0:y1 + 1, x0:x1 + 1]
    inside = shape.contains(xs.astype(np.float64), ys.astype(np.float64))
    window_state = lattice.state[y0:y1 + 1, x0:x1 + 1]
    window_material = lattice.material[y0:y1 + 1, x0:x1 + 1]
    was_empty = window_state == CellState.EMPTY
    paint = inside if state == CellState.HARD else inside & was_empty

    window_state[paint] = state
    window_material[paint] = material
    return int(np.count_nonzero(paint & was_empty))


def area_fractions(weights, densities) -> np.ndarray:
    """
    Convert weight fractions into area fractions.

    A_i = (w_i / rho_i) / sum_j (w_j / rho_j).
    """
    w = np.asarray(weights, dtype=np.float64)
    rho = np.asarray(densities, dtype=np.float64)
    if w.shape != rho.shape:
        raise ValueError("weights and densities must have the same length.")
    if np.any(rho <= 0):
        raise ValueError("densities must be positive.")
    volume = w / rho
    total = volume.sum()
    if total == 0:
        return np.zeros_like(volume)
    return volume / total


def random_shape(comp: ComponentSpec, width: int, height: int, rng: np.random.Generator,
                 pixels_per_unit: float = 1.0):
    """Draw one particle of a component at a uniform random position."""
    dim_x = comp.dim_x * pixels_per_unit
    dim_y = comp.dim_y * pixels_per_unit
    if comp.size_type == "variable":
        dim_x = rng.normal(dim_x, 0.25 * dim_x)
        dim_y = rng.normal(dim_y, 0.25 * dim_y)
    dim_x = max(dim_x, 1.0)
    dim_y = max(dim_y, 1.0)

    cx = rng.uniform(0, width)
    cy = rng.uniform(0, height)
    slope = math.radians(rng.uniform(comp.min_angle, comp.max_angle)) if comp.max_angle > comp.min_angle \
        else math.radians(comp.min_angle)

    if comp.shape == "circle":
        return Ellipse(cx, cy, 0.5 * dim_x, 0.5 * dim_x, 0.0)
    if comp.shape == "ellipse":
        return Ellipse(cx, cy, 0.5 * dim_x, 0.5 * dim_y, slope)
    if comp.shape == "rectangle":
        return SlopedRectangle(cx, cy, dim_x, dim_y, 0.0)
    if comp.shape == "sloped_rectangle":
        return SlopedRectangle(cx, cy, dim_x, dim_y, slope)
    raise ValueError(f"Component '{comp.name}' has no placeable shape ('{comp.shape}').")


def generate_particle_lattice(lattice: Lattice, components: list[ComponentSpec], rng: np.random.Generator,
                              pixels_per_unit: float = 1.0, inverse: bool = False,
                              max_attempts: int = None) -> Lattice:
    """
    Place random particles until each filler component reaches its area fraction.

    Component 0 is the matrix and is never placed. A component with a hoop
    paints a grown copy of each particle as hoop cells before the core.

    Parameters:
    ----------
    lattice : Lattice
        Lattice to overwrite. It is cleared first.
    components : list[ComponentSpec]
        Phases; `area_fraction` is the target covered fraction of the grid.
    rng : np.random.Generator
        Random source, owned by the caller.
    pixels_per_unit : float
        Scale from component dimensions to pixels.
    inverse : bool
        Swap empty and core cells afterwards.
    max_attempts : int, optional
        Particle draws allowed per component. Defaults to the number of cells.

    Returns:
    -------
    Lattice
        The same lattice, for chaining.
    """
    lattice.clear()
    n_cells = lattice.width * lattice.height
    if max_attempts is None:
        max_attempts = n_cells

    for phase, comp in enumerate(components):
        if phase == 0 or comp.shape == "none" or comp.area_fraction <= 0:
            continue
        target = comp.area_fraction * n_cells
        painted = 0
        attempts = 0
        while painted < target and attempts < max_attempts:
            attempts += 1
            shape = random_shape(comp, lattice.width, lattice.height, rng, pixels_per_unit)
            if comp.hoop > 0:
                painted += digitize(shape.grown(comp.hoop * pixels_per_unit), lattice, phase, CellState.SOFT)
            painted += digitize(shape, lattice, phase, CellState.HARD)
            if lattice.count_area(CellState.EMPTY) == 0:
                break
        if painted < target:
            warnings.warn(
                f"Component '{comp.name}' covered {painted / n_cells:.3f} of the grid, "
                f"target was {comp.area_fraction:.3f}."
            )

    if inverse:
        lattice.inverse()
    return lattice
