"""
analysis_utils.py: Monte Carlo driver and report writers.

One realization = generate a lattice, test/trace percolation, reduce the
paths, optionally solve the finite-difference problem and measure clusters.
Realizations share nothing: each builds its own Lattice and Generator from a
spawned SeedSequence, so a case is reproducible for a given seed regardless
of how many workers run it.
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .config import CaseConfig
from .lattice_utils import Lattice
from .search_utils import span_test, find_paths
from .path_utils import rve_properties, RVEProperties
from .cluster_utils import mark_clusters, max_cluster_radius, correlation_length
from .fdm_utils import FDConductivitySolver
from .shape_utils import generate_site_lattice, generate_particle_lattice
from . import image_utils

# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def ensure_dir(p: str) -> None:
    """Create directory (and parents) if missing."""
    Path(p).expanduser().resolve().mkdir(parents=True, exist_ok=True)


def now_stamp() -> str:
    """Timestamp used to tag report files, e.g. '2024-05-01--13-45-10'."""
    return datetime.now().strftime("%Y-%m-%d--%H-%M-%S")


def safe_mean(values) -> float:
    """Mean of a sequence, 0.0 when it is empty."""
    values = list(values)
    return float(np.mean(values)) if values else 0.0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class RealizationResult:
    index: int
    percolates: bool = False
    total_paths: int = 0
    mean_path_length: float = 0.0
    mean_path_width: float = 0.0
    electric_conductivity: float = 0.0
    thermal_conductivity: float = 0.0
    young_modulus: float = 0.0
    poisson_ratio: float = 0.0
    path_resistances: List[float] = field(default_factory=list)
    fdm_current_x: float = 0.0
    fdm_current_y: float = 0.0
    fdm_resistivity: float = 0.0
    fdm_steps: int = 0
    fdm_converged: bool = True
    cluster_points: List[int] = field(default_factory=list)
    cluster_radii: List[float] = field(default_factory=list)
    cluster_inertia: List[float] = field(default_factory=list)
    max_cluster_radius: float = 0.0
    correlation_length: float = 0.0
    filled_fraction: float = 0.0
    setup_time: float = 0.0
    process_time: float = 0.0


@dataclass
class CaseResult:
    case: CaseConfig
    realizations: List[RealizationResult]
    percolation_probability: float = 0.0
    mean_paths: float = 0.0
    mean_path_length: float = 0.0
    electric_conductivity: float = 0.0
    thermal_conductivity: float = 0.0
    young_modulus: float = 0.0
    poisson_ratio: float = 0.0
    fdm_current_x: float = 0.0
    fdm_current_y: float = 0.0
    fdm_resistivity: float = 0.0
    max_cluster_radius: float = 0.0
    correlation_length: float = 0.0
    filled_fraction: float = 0.0
    elapsed: float = 0.0


# ---------------------------------------------------------------------------
# Monte Carlo
# ---------------------------------------------------------------------------

def build_lattice(case: CaseConfig, lattice: Lattice, rng: np.random.Generator) -> Lattice:
    """Paint one random sample for a case onto `lattice`."""
    if case.lattice_mode:
        fill_prob = case.components[1].area_fraction
        generate_site_lattice(lattice, fill_prob, rng, material=1)
        if case.inverse:
            lattice.inverse()
        return lattice
    return generate_particle_lattice(lattice, case.components, rng, case.pixels_per_unit, case.inverse)


def run_realization(case: CaseConfig, seed, index: int = 0, lattice: Optional[Lattice] = None,
                    image_dir: Optional[str] = None) -> RealizationResult:
    """
    Run one Monte Carlo realization of a case.

    Parameters:
    ----------
    case : CaseConfig
        Case to sample.
    seed : int or np.random.SeedSequence
        Seed for this realization's private Generator.
    index : int
        Realization number, used for reporting and image names.
    lattice : Lattice, optional
        Lattice to reuse. A new one is allocated when None.
    image_dir : str, optional
        When given, the lattice (and cluster image, if statistics are on) is
        written there after processing.

    Returns:
    -------
    RealizationResult
    """
    rng = np.random.default_rng(seed)
    if lattice is None:
        lattice = Lattice(case.width, case.height)
    props = case.properties
    flags = case.flags
    result = RealizationResult(index=index)

    t0 = time.perf_counter()
    build_lattice(case, lattice, rng)
    labels = lattice.phase_labels()
    result.filled_fraction = float(np.count_nonzero(labels)) / labels.size
    result.setup_time = time.perf_counter() - t0

    t0 = time.perf_counter()
    # clusters are counted on the as-built lattice, before the searches relabel it
    if flags.calc_statistics:
        clusters = mark_clusters(lattice)
        result.cluster_points = [c.total_points for c in clusters]
        result.cluster_radii = [c.radius for c in clusters]
        result.cluster_inertia = [c.inertia for c in clusters]
        result.max_cluster_radius = max_cluster_radius(clusters)
        result.correlation_length = correlation_length(clusters)

    if flags.calc_electric_conductivity:
        paths = find_paths(lattice)
        rve: RVEProperties = rve_properties(lattice, paths, props)
        result.percolates = rve.total_paths > 0
        result.total_paths = rve.total_paths
        result.mean_path_length = rve.mean_length
        result.mean_path_width = rve.mean_path_width
        result.electric_conductivity = rve.electric_conductivity
        result.thermal_conductivity = rve.thermal_conductivity
        result.young_modulus = rve.young_modulus
        result.poisson_ratio = rve.poisson_ratio
        result.path_resistances = [p.resistance for p in rve.paths]
    else:
        result.percolates = span_test(lattice)
        result.total_paths = 1 if result.percolates else 0

    if flags.calc_electric_conductivity_with_fdm:
        fd = FDConductivitySolver(labels, props.electric_conductivity).solve()
        result.fdm_current_x = fd.current_x
        result.fdm_current_y = fd.current_y
        result.fdm_resistivity = fd.resistivity if np.isfinite(fd.resistivity) else 0.0
        result.fdm_steps = fd.steps
        result.fdm_converged = fd.converged
    result.process_time = time.perf_counter() - t0

    if image_dir is not None:
        fmt = case.images.image_format
        image_utils.save_lattice_image(lattice, os.path.join(image_dir, f"{case.name}_{index}"), fmt)
        if flags.calc_statistics:
            image_utils.save_cluster_image(lattice, os.path.join(image_dir, f"{case.name}_{index}_clusters"), fmt)
    return result


def image_indices(case: CaseConfig, rng: np.random.Generator) -> set:
    """Realization numbers whose images get saved."""
    settings = case.images
    if not settings.save_images or case.iterations == 0:
        return set()
    total = min(settings.total_images, case.iterations)
    if settings.random_images:
        return set(int(i) for i in rng.choice(case.iterations, size=total, replace=False))
    return set(range(total))


def summarize(case: CaseConfig, realizations: List[RealizationResult]) -> CaseResult:
    """
    Reduce realization results into case-level means.

    Conductivities add the matrix share (width - mean_paths) * sigma_0 / width
    to the mean path conductivity, as the uncovered width conducts through the
    matrix. Every mean is 0.0 over an empty population.
    """
    out = CaseResult(case=case, realizations=realizations)
    if not realizations:
        return out
    props = case.properties
    width = case.width

    out.percolation_probability = safe_mean(r.percolates for r in realizations)
    out.mean_paths = safe_mean(r.total_paths for r in realizations)
    out.mean_path_length = safe_mean(r.mean_path_length for r in realizations if r.total_paths > 0)
    matrix_share = max(width - out.mean_paths, 0.0) / width
    out.electric_conductivity = (safe_mean(r.electric_conductivity for r in realizations)
                                 + matrix_share * float(props.electric_conductivity[0]))
    out.thermal_conductivity = (safe_mean(r.thermal_conductivity for r in realizations)
                                + matrix_share * float(props.thermal_conductivity[0]))
    out.young_modulus = safe_mean(r.young_modulus for r in realizations)
    out.poisson_ratio = safe_mean(r.poisson_ratio for r in realizations)
    out.fdm_current_x = safe_mean(r.fdm_current_x for r in realizations)
    out.fdm_current_y = safe_mean(r.fdm_current_y for r in realizations)
    out.fdm_resistivity = safe_mean(r.fdm_resistivity for r in realizations)
    out.max_cluster_radius = safe_mean(r.max_cluster_radius for r in realizations)
    out.correlation_length = safe_mean(r.correlation_length for r in realizations)
    out.filled_fraction = safe_mean(r.filled_fraction for r in realizations)
    return out


def monte_carlo(case: CaseConfig, n_jobs: int = 1, image_dir: Optional[str] = None,
                verbose: bool = False) -> CaseResult:
    """
    Run every realization of a case and aggregate.

    Parameters:
    ----------
    case : CaseConfig
        Case to run.
    n_jobs : int
        joblib worker count (-1 for all cores).
    image_dir : str, optional
        Directory for the lattice images selected by `case.images`.
    verbose : bool
        Print one line per finished realization.

    Returns:
    -------
    CaseResult
    """
    start = time.perf_counter()
    seq = np.random.SeedSequence(case.seed)
    image_seq, *child_seqs = seq.spawn(case.iterations + 1)
    save_images = image_indices(case, np.random.default_rng(image_seq)) if image_dir else set()

    def one(i, child):
        res = run_realization(case, child, index=i, image_dir=image_dir if i in save_images else None)
        if verbose:
            print(f"[OK] {case.name}: realization {i + 1}/{case.iterations} "
                  f"percolates={res.percolates} paths={res.total_paths}")
        return res

    if n_jobs == 1:
        realizations = [one(i, child) for i, child in enumerate(child_seqs)]
    else:
        realizations = Parallel(n_jobs=n_jobs)(delayed(one)(i, child) for i, child in enumerate(child_seqs))

    out = summarize(case, list(realizations))
    out.elapsed = time.perf_counter() - start
    return out


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def case_row(result: CaseResult) -> dict:
    """One report row for a case; columns follow the case's analysis flags."""
    case = result.case
    flags = case.flags
    row = {
        "Case": case.name,
        "Width": case.width,
        "Height": case.height,
        "Iterations": case.iterations,
        "Filled Fraction": result.filled_fraction,
        "Mean Percolation Probability": result.percolation_probability,
    }
    for i, comp in enumerate(case.components):
        row[f"Area Fraction {i}"] = comp.area_fraction
    if flags.calc_electric_conductivity:
        row["Mean Paths"] = result.mean_paths
        row["Mean Path Length"] = result.mean_path_length
        row["Electric Conductivity"] = result.electric_conductivity
        row["Log Electric Conductivity"] = np.log10(result.electric_conductivity) \
            if result.electric_conductivity > 0 else 0.0
        row["Thermal Conductivity"] = result.thermal_conductivity
        row["Log Thermal Conductivity"] = np.log10(result.thermal_conductivity) \
            if result.thermal_conductivity > 0 else 0.0
        row["Young Modulus"] = result.young_modulus
        row["Poisson Ratio"] = result.poisson_ratio
    if flags.calc_electric_conductivity_with_fdm:
        row["FDM Ix"] = result.fdm_current_x
        row["FDM Iy"] = result.fdm_current_y
        row["FDM ro"] = result.fdm_resistivity
    if flags.calc_statistics:
        row["Max Cluster Radius"] = result.max_cluster_radius
        row["Correlation Length"] = result.correlation_length
    row["Elapsed Seconds"] = result.elapsed
    return row


def case_results_frame(results: List[CaseResult]) -> pd.DataFrame:
    return pd.DataFrame([case_row(r) for r in results])


def realizations_frame(result: CaseResult) -> pd.DataFrame:
    """Per-realization scalars of one case (list fields are dropped)."""
    rows = []
    for r in result.realizations:
        d = asdict(r)
        rows.append({k: v for k, v in d.items() if not isinstance(v, list)})
    return pd.DataFrame(rows)


def save_case_report(frame: pd.DataFrame, out_dir: str, stamp: Optional[str] = None,
                     prefix: str = "results") -> tuple[str, str]:
    """
    Write the case table twice: comma-separated and semicolon-separated.

    Returns:
    -------
    tuple[str, str]
        Paths of the comma and semicolon files.
    """
    ensure_dir(out_dir)
    stamp = stamp or now_stamp()
    comma = os.path.join(out_dir, f"{prefix}_{stamp}.csv")
    semi = os.path.join(out_dir, f"{prefix}_{stamp}_semicolon.csv")
    frame.to_csv(comma, index=False)
    frame.to_csv(semi, index=False, sep=";")
    return comma, semi


def save_cluster_statistics(result: CaseResult, path: str) -> str:
    """Per-cluster points, radius and inertia for every realization of a case."""
    rows = []
    for r in result.realizations:
        for n, radius, inertia in zip(r.cluster_points, r.cluster_radii, r.cluster_inertia):
            rows.append({"Realization": r.index, "Points": n, "Radius": radius, "Inertia": inertia})
    directory = os.path.dirname(path)
    if directory:
        ensure_dir(directory)
    pd.DataFrame(rows, columns=["Realization", "Points", "Radius", "Inertia"]).to_csv(path, index=False)
    return path
