import os

import numpy as np
from PIL import Image

from .lattice_utils import Lattice, CellState

# Grey level per cell state
STATE_GREY = {
    CellState.EMPTY: 255,
    CellState.PERCOLATE: 160,
    CellState.SOFT: 200,
    CellState.HARD: 96,
    CellState.BORDER: 128,
    CellState.PATH: 0,
    CellState.SIDEPATH: 48,
}

_FORMATS = {"bmp": "BMP", "pgm": "PPM"}


def state_to_grey(state: np.ndarray) -> np.ndarray:
    """Map a cell-state array to an 8-bit grey image."""
    lut = np.full(256, 255, dtype=np.uint8)
    for s, grey in STATE_GREY.items():
        lut[int(s)] = grey
    return lut[state.astype(np.uint8)]


def cluster_palette(n_labels: int, seed: int = 0) -> np.ndarray:
    """Repeatable RGB colours for labels 0..n_labels; label 0 is white."""
    rng = np.random.default_rng(seed)
    palette = rng.integers(0, 224, size=(n_labels + 1, 3), dtype=np.uint8)
    palette[0] = 255
    return palette


def _output_path(path: str, fmt: str) -> tuple[str, str]:
    fmt = fmt.lower()
    if fmt not in _FORMATS:
        raise ValueError(f"Unsupported image format '{fmt}'. Use one of {sorted(_FORMATS)}.")
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    if not path.lower().endswith("." + fmt):
        path += "." + fmt
    return path, _FORMATS[fmt]


def save_lattice_image(lattice: Lattice, path: str, fmt: str = "bmp") -> str:
    """
    Write the lattice states as a greyscale image.

    Parameters:
    ----------
    lattice : Lattice
        Lattice to draw.
    path : str
        Output path, with or without extension.
    fmt : str
        "bmp" or "pgm".

    Returns:
    -------
    str
        Path actually written.
    """
    path, pil_format = _output_path(path, fmt)
    Image.fromarray(state_to_grey(lattice.state)).save(path, format=pil_format)
    return path


def save_cluster_image(lattice: Lattice, path: str, fmt: str = "bmp") -> str:
    """Write `lattice.cluster_image` with one colour per cluster label (RGB; PGM falls back to grey)."""
    labels = lattice.cluster_image
    n_labels = int(labels.max()) if labels.size else 0
    path, pil_format = _output_path(path, fmt)
    if fmt.lower() == "pgm":
        grey = np.where(labels > 0, 255 - (labels % 200).astype(np.uint8) - 40, 255).astype(np.uint8)
        Image.fromarray(grey).save(path, format=pil_format)
    else:
        rgb = cluster_palette(n_labels)[labels]
        Image.fromarray(rgb).save(path, format=pil_format)
    return path


def save_solver_labels_image(pix: np.ndarray, path: str, fmt: str = "bmp") -> str:
    """Write a (haloed) phase-label array, stretching labels across the grey range."""
    path, pil_format = _output_path(path, fmt)
    top = max(int(pix.max()), 1)
    grey = (255 - (pix.astype(np.float64) / top) * 255).astype(np.uint8)
    Image.fromarray(grey).save(path, format=pil_format)
    return path
