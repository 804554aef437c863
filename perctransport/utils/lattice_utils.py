import os
from enum import IntEnum

import numpy as np


class CellState(IntEnum):
    EMPTY = 0
    PERCOLATE = 1
    SOFT = 2       # hoop shell
    HARD = 3       # particle core
    BORDER = 4
    PATH = 5
    SIDEPATH = 6


# States a span/path search may walk through
CONDUCTIVE_STATES = (CellState.HARD, CellState.SOFT, CellState.PERCOLATE)
# States that belong to a cluster
CLUSTER_STATES = (CellState.HARD, CellState.SOFT, CellState.PERCOLATE, CellState.PATH, CellState.SIDEPATH)

CONDUCTIVE_CODES = np.array([int(s) for s in CONDUCTIVE_STATES], dtype=np.int8)
CLUSTER_CODES = np.array([int(s) for s in CLUSTER_STATES], dtype=np.int8)


class Lattice:
    """
    Pixel grid holding per-cell state, phase label and two visitation flags.

    All per-cell arrays are shaped (height, width) and indexed [y, x]. The
    public accessors take (x, y) with y = 0 the top row.

    Parameters:
    ----------
    width : int
        Number of columns.
    height : int
        Number of rows.
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError("Lattice width and height must be positive.")
        self.width = int(width)
        self.height = int(height)
        shape = (self.height, self.width)
        self.state = np.zeros(shape, dtype=np.int8)
        self.material = np.zeros(shape, dtype=np.uint8)
        self.visited = np.zeros(shape, dtype=np.bool_)
        self.cluster_visited = np.zeros(shape, dtype=np.bool_)
        self.cluster_image = np.zeros(shape, dtype=np.uint32)

    def __repr__(self):
        return f"Lattice(width={self.width}, height={self.height})"

    @property
    def shape(self) -> tuple[int, int]:
        return self.state.shape

    def is_valid(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> CellState:
        return CellState(int(self.state[y, x]))

    def set(self, x: int, y: int, state: CellState, material: int = None) -> None:
        self.state[y, x] = state
        if material is not None:
            self.material[y, x] = material

    def clear(self) -> None:
        """Reset every per-cell array together."""
        self.state.fill(CellState.EMPTY)
        self.material.fill(0)
        self.visited.fill(False)
        self.cluster_visited.fill(False)
        self.cluster_image.fill(0)

    def count_area(self, state: CellState = CellState.HARD) -> int:
        return int(np.count_nonzero(self.state == state))

    def conductive_mask(self) -> np.ndarray:
        return np.isin(self.state, CONDUCTIVE_CODES)

    def cluster_mask(self) -> np.ndarray:
        return np.isin(self.state, CLUSTER_CODES)

    def inverse(self, material: int = 1) -> None:
        """
        Swap empty and core cells ("swiss cheese" mode).

        New core cells take phase `material`, new empty cells phase 0.
        """
        empty = self.state == CellState.EMPTY
        hard = self.state == CellState.HARD
        self.state[empty] = CellState.HARD
        self.material[empty] = material
        self.state[hard] = CellState.EMPTY
        self.material[hard] = 0

    def phase_labels(self) -> np.ndarray:
        """Phase label per cell, with empty cells reported as phase 0."""
        labels = self.material.astype(np.int64)
        labels[self.state == CellState.EMPTY] = 0
        return labels

    @classmethod
    def from_labels(cls, labels: np.ndarray, state: CellState = CellState.HARD,
                    empty_label: int = 0) -> "Lattice":
        """
        Build a lattice from a (height x width) phase-label array.

        Parameters:
        ----------
        labels : np.ndarray
            2D integer array of phase labels in [0, 255].
        state : CellState
            State given to every cell whose label differs from `empty_label`.
        empty_label : int or None
            Label treated as the empty matrix. None paints every cell.

        Returns:
        -------
        Lattice
        """
        labels = np.asarray(labels)
        if labels.ndim != 2:
            raise ValueError("Phase labels must be a 2D array.")
        if labels.size and labels.min() < 0:
            raise ValueError("Phase labels must be non-negative.")
        if labels.size and labels.max() > np.iinfo(np.uint8).max:
            raise ValueError(f"Phase labels must not exceed {np.iinfo(np.uint8).max}.")
        lattice = cls(labels.shape[1], labels.shape[0])
        lattice.material[:] = labels
        filled = np.ones(labels.shape, dtype=np.bool_) if empty_label is None else labels != empty_label
        lattice.state[filled] = state
        return lattice

    @classmethod
    def from_mask(cls, mask: np.ndarray, material: int = 1) -> "Lattice":
        """Build a lattice whose True cells are cores of phase `material`."""
        mask = np.asarray(mask, dtype=np.bool_)
        return cls.from_labels(np.where(mask, material, 0), empty_label=0)


def save_lattice_npy(lattice: Lattice, directory: str, filename: str) -> None:
    """
    Save the state and material arrays of a lattice as one `.npy` file.

    The stacked array has shape (2, height, width): index 0 is the state,
    index 1 the phase label.
    """
    if not os.path.exists(directory):
        os.makedirs(directory)

    if not filename.endswith('.npy'):
        filename += '.npy'

    stacked = np.stack([lattice.state.astype(np.int16), lattice.material.astype(np.int16)])
    np.save(os.path.join(directory, filename), stacked)


def load_lattice_npy(directory: str, filename: str) -> Lattice:
    """Inverse of `save_lattice_npy`. Visitation flags come back cleared."""
    if not filename.endswith('.npy'):
        filename += '.npy'

    path = os.path.join(directory, filename)

    if not os.path.exists(path):
        raise FileNotFoundError(f"Lattice file not found: {path}")

    stacked = np.load(path)
    if stacked.ndim != 3 or stacked.shape[0] != 2:
        raise ValueError(f"Not a saved lattice: {path}")
    lattice = Lattice(stacked.shape[2], stacked.shape[1])
    lattice.state[:] = stacked[0]
    lattice.material[:] = stacked[1]
    return lattice
