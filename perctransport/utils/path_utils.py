"""
Series/parallel reduction of minimum paths into transport and elastic properties.
"""
from __future__ import annotations
from dataclasses import dataclass, field

from .config import PhaseProperties
from .lattice_utils import Lattice, CellState, CONDUCTIVE_STATES
from .search_utils import PathNode


@dataclass(frozen=True)
class PathProperties:
    length: int
    resistance: float
    thermal_resistance: float
    young_modulus: float
    poisson_ratio: float


@dataclass
class RVEProperties:
    """Properties of one realization (representative volume element)."""
    total_paths: int = 0
    mean_length: float = 0.0
    resistance: float = 0.0
    thermal_resistance: float = 0.0
    mean_path_width: float = 0.0
    young_modulus: float = 0.0
    poisson_ratio: float = 0.0
    paths: list[PathProperties] = field(default_factory=list)

    @property
    def electric_conductivity(self) -> float:
        return 1.0 / self.resistance if self.resistance > 0 else 0.0

    @property
    def thermal_conductivity(self) -> float:
        return 1.0 / self.thermal_resistance if self.thermal_resistance > 0 else 0.0


def _side_walk(lattice, x, y, step_x, step_y, electric, thermal):
    """
    Walk from (x, y) in direction (step_x, step_y) over conductive side cells.

    Returns the accumulated 1/sigma sums for the electric and thermal tables.
    Walked cells are marked as side path and visited.
    """
    acc_e = 0.0
    acc_t = 0.0
    cx, cy = x + step_x, y + step_y
    while lattice.is_valid(cx, cy) and lattice.state[cy, cx] in CONDUCTIVE_STATES:
        phase = lattice.material[cy, cx]
        sigma_e = electric[phase]
        if sigma_e <= 0:
            break
        acc_e += 1.0 / sigma_e
        if thermal[phase] > 0:
            acc_t += 1.0 / thermal[phase]
        lattice.state[cy, cx] = CellState.SIDEPATH
        lattice.visited[cy, cx] = True
        cx += step_x
        cy += step_y
    return acc_e, acc_t


def node_resistance(lattice: Lattice, node: PathNode, props: PhaseProperties) -> tuple[float, float]:
    """
    Transverse electric and thermal resistance of one path node.

    The slice perpendicular to the local direction of travel is walked both
    ways from the node. The accumulator starts at the node's own phase
    conductivity and each side cell adds 1/sigma. The node resistance is the
    reciprocal of the accumulator.

    Returns:
    -------
    tuple[float, float]
        (electric, thermal) node resistance. Zero when the accumulator is zero.
    """
    phase = lattice.material[node.y, node.x]
    acc_e = float(props.electric_conductivity[phase])
    acc_t = float(props.thermal_conductivity[phase])

    if node.is_vertical:
        steps = ((-1, 0), (1, 0))
    else:
        steps = ((0, -1), (0, 1))
    for step_x, step_y in steps:
        side_e, side_t = _side_walk(lattice, node.x, node.y, step_x, step_y,
                                    props.electric_conductivity, props.thermal_conductivity)
        acc_e += side_e
        acc_t += side_t

    res_e = 1.0 / acc_e if acc_e > 0 else 0.0
    res_t = 1.0 / acc_t if acc_t > 0 else 0.0
    return res_e, res_t


def elastic_layers(lattice: Lattice, path: list[PathNode], props: PhaseProperties) -> list[tuple[float, float]]:
    """
    Group consecutive path nodes on the same row into elastic layers.

    Returns:
    -------
    list[tuple[float, float]]
        Per layer, the summed Young's modulus and summed Poisson ratio of its nodes.
    """
    layers = []
    current_row = None
    for node in path:
        phase = lattice.material[node.y, node.x]
        e = float(props.young_modulus[phase])
        nu = float(props.poisson_ratio[phase])
        if node.y == current_row:
            last_e, last_nu = layers[-1]
            layers[-1] = (last_e + e, last_nu + nu)
        else:
            layers.append((e, nu))
            current_row = node.y
    return layers


def combine_series(values) -> float:
    """Reciprocal-sum combination, 1 / sum(1/v). Zero-valued entries are skipped."""
    inv = sum(1.0 / v for v in values if v > 0)
    return 1.0 / inv if inv > 0 else 0.0


def combine_parallel(resistances) -> float:
    """Equivalent resistance of independent conductors in parallel."""
    return combine_series(resistances)


def path_properties(lattice: Lattice, path: list[PathNode], props: PhaseProperties) -> PathProperties:
    """
    Reduce one minimum path to its resistances and elastic moduli.

    Parameters:
    ----------
    lattice : Lattice
        Lattice the path was drawn on. Side cells touched by the transverse
        walks are marked `CellState.SIDEPATH`.
    path : list[PathNode]
        Nodes from origin to the bottom row.
    props : PhaseProperties
        Per-phase property tables.

    Returns:
    -------
    PathProperties
    """
    if not path:
        return PathProperties(0, 0.0, 0.0, 0.0, 0.0)

    resistance = 0.0
    thermal_resistance = 0.0
    for node in path:
        res_e, res_t = node_resistance(lattice, node, props)
        resistance += res_e
        thermal_resistance += res_t

    layers = elastic_layers(lattice, path, props)
    young = combine_series(e for e, _ in layers) / lattice.width
    poisson = combine_series(nu for _, nu in layers)

    return PathProperties(len(path), resistance, thermal_resistance, young, poisson)


def rve_properties(lattice: Lattice, paths: list[list[PathNode]], props: PhaseProperties) -> RVEProperties:
    """
    Combine every path of one realization into sample-level properties.

    Paths act as parallel conductors. Moduli follow a rule of mixtures between
    the path phase (index 1) and the matrix (index 0), weighted by the lattice
    width the paths occupy. With no paths the result carries zero resistances
    and the matrix moduli.
    """
    matrix_e = float(props.young_modulus[0])
    matrix_nu = float(props.poisson_ratio[0])
    if not paths:
        return RVEProperties(young_modulus=matrix_e, poisson_ratio=matrix_nu)

    per_path = [path_properties(lattice, p, props) for p in paths]
    n = len(per_path)
    width = lattice.width
    mean_length = sum(p.length for p in per_path) / n

    conductance = sum(1.0 / p.resistance for p in per_path if p.resistance > 0)
    path_phase = 1 if props.nphase > 1 else 0
    sigma_path = float(props.electric_conductivity[path_phase])
    mean_path_width = (conductance / sigma_path) * (mean_length / n) if sigma_path > 0 else 0.0

    covered = min(n * mean_path_width, width)
    fraction = covered / width
    young = float(props.young_modulus[path_phase]) * fraction + matrix_e * (1.0 - fraction)
    poisson = float(props.poisson_ratio[path_phase]) * fraction + matrix_nu * (1.0 - fraction)

    return RVEProperties(
        total_paths=n,
        mean_length=mean_length,
        resistance=combine_parallel(p.resistance for p in per_path),
        thermal_resistance=combine_parallel(p.thermal_resistance for p in per_path),
        mean_path_width=mean_path_width,
        young_modulus=young,
        poisson_ratio=poisson,
        paths=per_path,
    )
