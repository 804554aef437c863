import numpy as np
import pytest

from perctransport.utils.config import PhaseProperties, case_from_dict
from perctransport.utils.lattice_utils import Lattice


@pytest.fixture
def full_lattice():
    return Lattice.from_mask(np.ones((10, 10), dtype=bool))


@pytest.fixture
def empty_lattice():
    return Lattice(10, 10)


@pytest.fixture
def unit_props():
    return PhaseProperties.uniform(2, conductivity=1.0, young_modulus=1.0, poisson_ratio=0.3)


def make_case_dict(fill=0.6, width=10, height=10, iterations=4, seed=1, **flags):
    return {
        "name": f"site_{fill}",
        "width": width,
        "height": height,
        "iterations": iterations,
        "seed": seed,
        "lattice_mode": True,
        "components": [
            {"name": "matrix", "area_fraction": 1.0 - fill, "electric_conductivity": 0.0,
             "thermal_conductivity": 0.0, "young_modulus": 1.0, "poisson_ratio": 0.4},
            {"name": "filler", "area_fraction": fill, "electric_conductivity": 1.0,
             "thermal_conductivity": 2.0, "young_modulus": 10.0, "poisson_ratio": 0.2},
        ],
        "flags": flags or {"calc_electric_conductivity": True},
    }


@pytest.fixture
def case_factory():
    def build(**kwargs):
        return case_from_dict(make_case_dict(**kwargs))
    return build
