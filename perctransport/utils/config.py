"""
Run-wide constants and the case configuration read from JSON case files.

A case file looks like::

    {
        "name": "cnt_epoxy",
        "width": 200, "height": 200, "iterations": 100, "seed": 7,
        "lattice_mode": false, "inverse": false, "pixels_per_unit": 1.0,
        "components": [
            {"name": "epoxy", "shape": "none", "electric_conductivity": 0.0, ...},
            {"name": "cnt", "shape": "ellipse", "weight_fraction": 0.3, "density": 1.3,
             "dim_x": 20, "dim_y": 2, "size_type": "variable", "hoop": 1, ...}
        ],
        "flags": {"calc_electric_conductivity": true, "calc_statistics": true},
        "images": {"save_images": true, "total_images": 2, "image_format": "bmp"}
    }
"""
from __future__ import annotations
from dataclasses import dataclass, field
import json
import os

import numpy as np

# Neighbour order: left, down-in-row, up-in-row, right (dx, dy)
NEIGHBOR_OFFSETS = ((-1, 0), (0, 1), (0, -1), (1, 0))

SPAN_BATCH_SIZE = 8

CG_MAX_STEPS = 50000
CG_TOLERANCE_FACTOR = 1e-16
CG_REPORT_EVERY = 5000

# (ex, ey); percolation runs top to bottom
DEFAULT_FIELD = (0.0, 1.0)

SHAPES = ("none", "ellipse", "circle", "rectangle", "sloped_rectangle")
SIZE_TYPES = ("constant", "variable")
IMAGE_FORMATS = ("bmp", "pgm")


class InvalidStartWarning(UserWarning):
    """A search was asked to start from a cell that cannot carry current."""


class NonConvergenceWarning(UserWarning):
    """Conjugate gradient hit its step cap before reaching tolerance."""


@dataclass
class AnalysisFlags:
    calc_electric_conductivity: bool = True
    calc_electric_conductivity_with_fdm: bool = False
    calc_statistics: bool = False


@dataclass
class ImageSettings:
    save_images: bool = False
    random_images: bool = False
    total_images: int = 1
    image_format: str = "bmp"


@dataclass
class ComponentSpec:
    """One phase of the composite. Component 0 is the matrix."""
    name: str = ""
    shape: str = "none"
    size_type: str = "constant"
    weight_fraction: float = 0.0
    density: float = 1.0
    area_fraction: float = 0.0
    dim_x: float = 1.0
    dim_y: float = 1.0
    hoop: float = 0.0
    min_angle: float = 0.0
    max_angle: float = 0.0
    electric_conductivity: float = 0.0
    thermal_conductivity: float = 0.0
    young_modulus: float = 0.0
    poisson_ratio: float = 0.0


@dataclass(frozen=True)
class PhaseProperties:
    """Per-phase material properties, indexed by phase label."""
    electric_conductivity: np.ndarray
    thermal_conductivity: np.ndarray
    young_modulus: np.ndarray
    poisson_ratio: np.ndarray

    @classmethod
    def from_components(cls, components: list[ComponentSpec]) -> "PhaseProperties":
        return cls(
            electric_conductivity=np.array([c.electric_conductivity for c in components], dtype=np.float64),
            thermal_conductivity=np.array([c.thermal_conductivity for c in components], dtype=np.float64),
            young_modulus=np.array([c.young_modulus for c in components], dtype=np.float64),
            poisson_ratio=np.array([c.poisson_ratio for c in components], dtype=np.float64),
        )

    @classmethod
    def uniform(cls, nphase: int, conductivity: float = 1.0, young_modulus: float = 1.0,
                poisson_ratio: float = 0.3) -> "PhaseProperties":
        """Every phase gets the same properties. Handy for tests and homogeneous checks."""
        return cls(
            electric_conductivity=np.full(nphase, conductivity, dtype=np.float64),
            thermal_conductivity=np.full(nphase, conductivity, dtype=np.float64),
            young_modulus=np.full(nphase, young_modulus, dtype=np.float64),
            poisson_ratio=np.full(nphase, poisson_ratio, dtype=np.float64),
        )

    @property
    def nphase(self) -> int:
        return len(self.electric_conductivity)


@dataclass
class CaseConfig:
    name: str
    width: int
    height: int
    iterations: int
    components: list[ComponentSpec]
    seed: int | None = None
    lattice_mode: bool = True
    inverse: bool = False
    pixels_per_unit: float = 1.0
    flags: AnalysisFlags = field(default_factory=AnalysisFlags)
    images: ImageSettings = field(default_factory=ImageSettings)

    @property
    def properties(self) -> PhaseProperties:
        return PhaseProperties.from_components(self.components)

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Case '{self.name}': width and height must be positive.")
        if self.iterations < 0:
            raise ValueError(f"Case '{self.name}': iterations must be non-negative.")
        if len(self.components) < 2:
            raise ValueError(f"Case '{self.name}': need a matrix and at least one filler component.")
        for comp in self.components:
            if comp.shape not in SHAPES:
                raise ValueError(f"Case '{self.name}': unknown shape '{comp.shape}'.")
            if comp.size_type not in SIZE_TYPES:
                raise ValueError(f"Case '{self.name}': unknown size type '{comp.size_type}'.")
            if comp.electric_conductivity < 0 or comp.thermal_conductivity < 0:
                raise ValueError(f"Case '{self.name}': conductivities must be non-negative.")
        if self.images.image_format not in IMAGE_FORMATS:
            raise ValueError(f"Case '{self.name}': image format must be one of {IMAGE_FORMATS}.")


def case_from_dict(data: dict) -> CaseConfig:
    """
    Build a CaseConfig from a parsed case-file dictionary.

    Area fractions are derived from weight fractions and densities when the
    file gives weights only.

    Raises:
    -------
    ValueError
        If a required key is missing or a value is inconsistent.
    """
    # Local import keeps config importable without the generator module.
    from .shape_utils import area_fractions

    try:
        components = [ComponentSpec(**comp) for comp in data["components"]]
        case = CaseConfig(
            name=data.get("name", "case"),
            width=int(data["width"]),
            height=int(data.get("height", data["width"])),
            iterations=int(data["iterations"]),
            components=components,
            seed=data.get("seed"),
            lattice_mode=bool(data.get("lattice_mode", True)),
            inverse=bool(data.get("inverse", False)),
            pixels_per_unit=float(data.get("pixels_per_unit", 1.0)),
            flags=AnalysisFlags(**data.get("flags", {})),
            images=ImageSettings(**data.get("images", {})),
        )
    except KeyError as e:
        raise ValueError(f"Case file is missing required key {e}.") from e
    except TypeError as e:
        raise ValueError(f"Case file has an unexpected key: {e}") from e

    if all(c.area_fraction == 0.0 for c in case.components):
        weights = [c.weight_fraction for c in case.components]
        if sum(weights) > 0:
            fractions = area_fractions(weights, [c.density for c in case.components])
            for comp, frac in zip(case.components, fractions):
                comp.area_fraction = float(frac)

    case.validate()
    return case


def load_case(path: str) -> CaseConfig:
    """Read one JSON case file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Case file not found: {path}")
    with open(path, "r") as f:
        data = json.load(f)
    return case_from_dict(data)


def load_cases(directory: str) -> list[CaseConfig]:
    """Read every `*.json` case file in a directory, sorted by filename."""
    names = sorted(n for n in os.listdir(directory) if n.endswith(".json"))
    return [load_case(os.path.join(directory, n)) for n in names]
