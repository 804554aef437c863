from __future__ import annotations
from dataclasses import dataclass

import numpy as np
from numba import njit
from scipy.ndimage import label

from .config import NEIGHBOR_OFFSETS
from .lattice_utils import Lattice, CLUSTER_CODES

_DX = np.array([d[0] for d in NEIGHBOR_OFFSETS], dtype=np.int64)
_DY = np.array([d[1] for d in NEIGHBOR_OFFSETS], dtype=np.int64)


@dataclass(frozen=True)
class Cluster:
    x: int
    y: int
    total_points: int
    center_x: float
    center_y: float
    inertia: float
    radius: float


@njit
def _in_codes(value, codes):
    for c in codes:
        if value == c:
            return True
    return False


@njit
def _center_kernel(state, cluster_visited, x0, y0, codes, dx, dy):
    height, width = state.shape
    queue_x = np.empty(height * width, dtype=np.int64)
    queue_y = np.empty(height * width, dtype=np.int64)
    head = 0
    tail = 1
    queue_x[0] = x0
    queue_y[0] = y0
    cluster_visited[y0, x0] = True
    sum_x = 0.0
    sum_y = 0.0
    while head < tail:
        x = queue_x[head]
        y = queue_y[head]
        head += 1
        sum_x += x
        sum_y += y
        for k in range(len(dx)):
            nx = x + dx[k]
            ny = y + dy[k]
            if 0 <= nx < width and 0 <= ny < height and not cluster_visited[ny, nx] \
                    and _in_codes(state[ny, nx], codes):
                cluster_visited[ny, nx] = True
                queue_x[tail] = nx
                queue_y[tail] = ny
                tail += 1
    return sum_x, sum_y, tail


@njit
def _inertia_kernel(cluster_visited, cluster_image, x0, y0, cx, cy, label_id, dx, dy):
    height, width = cluster_visited.shape
    stack_x = np.empty(height * width, dtype=np.int64)
    stack_y = np.empty(height * width, dtype=np.int64)
    stack_x[0] = x0
    stack_y[0] = y0
    top = 1
    cluster_visited[y0, x0] = False
    inertia = 0.0
    while top > 0:
        top -= 1
        x = stack_x[top]
        y = stack_y[top]
        cluster_image[y, x] = label_id
        inertia += (x - cx) ** 2 + (y - cy) ** 2
        for k in range(len(dx)):
            nx = x + dx[k]
            ny = y + dy[k]
            if 0 <= nx < width and 0 <= ny < height and cluster_visited[ny, nx]:
                cluster_visited[ny, nx] = False
                stack_x[top] = nx
                stack_y[top] = ny
                top += 1
    return inertia


def cluster_center(lattice: Lattice, x: int, y: int) -> tuple[float, float, int]:
    """
    Flood one cluster from (x, y) and return its centroid and size.

    Marks the cluster's cells in `lattice.cluster_visited`.
    """
    sum_x, sum_y, n = _center_kernel(lattice.state, lattice.cluster_visited, x, y, CLUSTER_CODES, _DX, _DY)
    return sum_x / n, sum_y / n, int(n)


def cluster_inertia(lattice: Lattice, x: int, y: int, center_x: float, center_y: float,
                    total_points: int, label_id: int) -> tuple[float, float]:
    """
    Second pass over a cluster found by `cluster_center`.

    Clears the cluster's `cluster_visited` marks while writing `label_id` into
    `lattice.cluster_image`.

    Returns:
    -------
    tuple[float, float]
        Moment of inertia (sum of squared distances to the centroid) and the
        radius of gyration sqrt(inertia / total_points).
    """
    inertia = _inertia_kernel(lattice.cluster_visited, lattice.cluster_image, x, y,
                              center_x, center_y, label_id, _DX, _DY)
    radius = float(np.sqrt(inertia / total_points)) if total_points > 0 else 0.0
    return float(inertia), radius


def mark_clusters(lattice: Lattice) -> list[Cluster]:
    """
    Find every 4-connected cluster of non-empty cells and measure it.

    The grid is scanned row by row. All centroids are found first, then each
    cluster is re-flooded for its inertia. `lattice.cluster_image` ends up
    holding labels 1..n in scan order; `lattice.cluster_visited` ends up clear.

    Parameters:
    ----------
    lattice : Lattice
        Lattice to scan. Path-search state is not touched.

    Returns:
    -------
    list[Cluster]
        One entry per cluster, in scan order.
    """
    lattice.cluster_visited.fill(False)
    lattice.cluster_image.fill(0)

    mask = lattice.cluster_mask()
    found = []
    for y, x in zip(*np.nonzero(mask)):
        if lattice.cluster_visited[y, x]:
            continue
        cx, cy, n = cluster_center(lattice, int(x), int(y))
        found.append((int(x), int(y), cx, cy, n))

    clusters = []
    for label_id, (x, y, cx, cy, n) in enumerate(found, start=1):
        inertia, radius = cluster_inertia(lattice, x, y, cx, cy, n, label_id)
        clusters.append(Cluster(x, y, n, cx, cy, inertia, radius))
    return clusters


def max_cluster_radius(clusters: list[Cluster]) -> float:
    return max((c.radius for c in clusters), default=0.0)


def correlation_length(clusters: list[Cluster]) -> float:
    """
    Size-weighted mean squared radius, sum(r^2 n^2) / sum(n^2).

    Returns 0.0 when there are no clusters.
    """
    if not clusters:
        return 0.0
    n = np.array([c.total_points for c in clusters], dtype=np.float64)
    r = np.array([c.radius for c in clusters], dtype=np.float64)
    denom = np.sum(n ** 2)
    if denom == 0:
        return 0.0
    return float(np.sum(r ** 2 * n ** 2) / denom)


def label_clusters(lattice: Lattice) -> tuple[np.ndarray, int]:
    """4-connected labelling of the cluster cells with scipy."""
    labeled_lattice, num_features = label(lattice.cluster_mask())
    return labeled_lattice, num_features


def cluster_size_distribution(clusters: list[Cluster]) -> tuple[np.ndarray, np.ndarray]:
    """Unique cluster sizes and how many clusters have each size."""
    sizes = np.array([c.total_points for c in clusters], dtype=np.int64)
    return np.unique(sizes, return_counts=True)
