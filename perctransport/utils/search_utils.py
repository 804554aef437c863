"""
Percolation search on a Lattice.

- `span_test` answers "does a core-to-core path join the top and bottom rows?"
  by flood filling from top-row columns in batches.
- `shortest_path` (DFS) confirms a spanning route from one top-row origin and
  marks the region it walked as percolating.
- `minimum_path` (BFS) extracts the minimum-hop route through that region and
  draws it on the lattice.
- `find_paths` chains the two for every top-row origin, giving the disjoint
  path set used by path reduction.
"""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass
import math
import warnings

import numpy as np
from numba import njit

from .config import NEIGHBOR_OFFSETS, SPAN_BATCH_SIZE, InvalidStartWarning
from .lattice_utils import Lattice, CellState, CONDUCTIVE_STATES

_DX = np.array([d[0] for d in NEIGHBOR_OFFSETS], dtype=np.int64)
_DY = np.array([d[1] for d in NEIGHBOR_OFFSETS], dtype=np.int64)


@dataclass(frozen=True)
class PathNode:
    x: int
    y: int
    prev_x: int
    prev_y: int
    dist: int

    @property
    def is_vertical(self) -> bool:
        return self.x == self.prev_x


@njit
def _flood_fill_kernel(state, x0, y0, hard, percolate, dx, dy):
    height, width = state.shape
    stack_x = np.empty(height * width + 1, dtype=np.int64)
    stack_y = np.empty(height * width + 1, dtype=np.int64)
    stack_x[0] = x0
    stack_y[0] = y0
    state[y0, x0] = percolate
    top = 1
    while top > 0:
        top -= 1
        x = stack_x[top]
        y = stack_y[top]
        if y >= height - 1:
            return True
        for k in range(len(dx) - 1, -1, -1):
            nx = x + dx[k]
            ny = y + dy[k]
            if 0 <= nx < width and 0 <= ny < height and state[ny, nx] == hard:
                state[ny, nx] = percolate
                stack_x[top] = nx
                stack_y[top] = ny
                top += 1
    return False


def flood_fill(lattice: Lattice, x: int, y: int) -> bool:
    """
    Flood fill core cells from (x, y), marking them as percolating.

    Parameters:
    ----------
    lattice : Lattice
        Lattice to search. Visited core cells become `CellState.PERCOLATE`.
    x, y : int
        Start cell. Must be a core (`CellState.HARD`) cell.

    Returns:
    -------
    bool
        True as soon as a cell on the last row is reached.
    """
    if not lattice.is_valid(x, y) or lattice.state[y, x] != CellState.HARD:
        warnings.warn(f"Flood fill start ({x}, {y}) is not a core cell.", InvalidStartWarning)
        return False
    return bool(_flood_fill_kernel(lattice.state, x, y, int(CellState.HARD),
                                   int(CellState.PERCOLATE), _DX, _DY))


def span_batches(width: int, batch_size: int = SPAN_BATCH_SIZE) -> list[list[int]]:
    """
    Interleaved column batches for the span test.

    Batch k holds columns k, k + step, k + 2*step, ... with
    step = ceil(width / batch_size), so every column lands in exactly one batch.
    """
    step = max(1, math.ceil(width / batch_size))
    return [list(range(k, width, step)) for k in range(step)]


def span_test(lattice: Lattice, batch_size: int = SPAN_BATCH_SIZE) -> bool:
    """
    Decide whether any top-row core cell connects to the bottom row.

    Every start in a batch is tried; scanning stops after the first batch with
    a success. On success every non-empty bottom-row cell is marked
percolating; empty matrix cells keep their state.
    """
    spans = False
    for batch in span_batches(lattice.width, batch_size):
        for x in batch:
            if lattice.state[0, x] == CellState.HARD and flood_fill(lattice, x, 0):
                spans = True
        if spans:
            break
    if spans:
        bottom = lattice.state[-1]
        bottom[bottom != CellState.EMPTY] = CellState.PERCOLATE
    return spans


def shortest_path(lattice: Lattice, x: int, y: int) -> tuple[tuple[int, int] | None, int]:
    """
    Depth-first search from (x, y) to the bottom row.

    Walks conductive cells (core, hoop or already percolating) that are not on
    a drawn path, marking each popped cell as percolating.

    Returns:
    -------
    tuple[tuple[int, int] | None, int]
        - The bottom-row cell reached, or None if there is none.
        - Number of cells popped. It is an upper bound on the hop count of the
          minimum path from the same origin.
    """
    if not lattice.is_valid(x, y) or lattice.state[y, x] not in CONDUCTIVE_STATES or lattice.visited[y, x]:
        warnings.warn(f"Depth-first search start ({x}, {y}) is not conductive.", InvalidStartWarning)
        return None, 0

    seen = np.zeros(lattice.shape, dtype=np.bool_)
    seen[y, x] = True
    stack = [(x, y)]
    hops = 0
    while stack:
        cx, cy = stack.pop()
        lattice.state[cy, cx] = CellState.PERCOLATE
        hops += 1
        if cy == lattice.height - 1:
            return (cx, cy), hops
        for dx, dy in reversed(NEIGHBOR_OFFSETS):
            nx, ny = cx + dx, cy + dy
            if not lattice.is_valid(nx, ny) or seen[ny, nx] or lattice.visited[ny, nx]:
                continue
            if lattice.state[ny, nx] in CONDUCTIVE_STATES:
                seen[ny, nx] = True
                stack.append((nx, ny))
    return None, hops


def minimum_path(lattice: Lattice, x: int, y: int) -> list[PathNode]:
    """
    Breadth-first search for the minimum-hop route from (x, y) to the bottom row.

    Only percolating, unvisited cells are walked. The route is rebuilt from a
    predecessor map. Discovered cells off the route are reset to core and
    unvisited. Route cells are drawn as `CellState.PATH` and marked visited.

    Parameters:
    ----------
    lattice : Lattice
        Lattice whose percolating region was marked by `shortest_path`.
    x, y : int
        Origin cell.

    Returns:
    -------
    list[PathNode]
        Nodes from origin to the bottom row. Empty when no route exists. The
        origin's predecessor is the virtual cell above it, so it reads as a
        vertical move.
    """
    if not lattice.is_valid(x, y) or lattice.state[y, x] != CellState.PERCOLATE or lattice.visited[y, x]:
        warnings.warn(f"Breadth-first search start ({x}, {y}) is not percolating.", InvalidStartWarning)
        return []

    origin = (x, y)
    origin_prev = (x, y - 1)
    predecessor = {}
    lattice.visited[y, x] = True
    queue = deque([origin])
    goal = None
    while queue:
        cx, cy = queue.popleft()
        if cy == lattice.height - 1:
            goal = (cx, cy)
            break
        for dx, dy in NEIGHBOR_OFFSETS:
            nx, ny = cx + dx, cy + dy
            if not lattice.is_valid(nx, ny) or lattice.visited[ny, nx]:
                continue
            if lattice.state[ny, nx] == CellState.PERCOLATE:
                lattice.visited[ny, nx] = True
                predecessor[(nx, ny)] = (cx, cy)
                queue.append((nx, ny))

    route = []
    if goal is not None:
        cell = goal
        while cell != origin:
            route.append(cell)
            cell = predecessor[cell]
        route.append(origin)
        route.reverse()

    on_route = set(route)
    for cx, cy in [origin, *predecessor]:
        if (cx, cy) not in on_route:
            lattice.visited[cy, cx] = False
            lattice.state[cy, cx] = CellState.HARD

    nodes = []
    for dist, (cx, cy) in enumerate(route):
        px, py = origin_prev if (cx, cy) == origin else predecessor[(cx, cy)]
        nodes.append(PathNode(cx, cy, px, py, dist))
    draw_path(lattice, nodes)
    return nodes


def draw_path(lattice: Lattice, path: list[PathNode]) -> None:
    for node in path:
        lattice.state[node.y, node.x] = CellState.PATH
        lattice.visited[node.y, node.x] = True


def find_paths(lattice: Lattice) -> list[list[PathNode]]:
    """
    Collect disjoint top-to-bottom minimum paths, one attempt per top-row column.

    A column is tried when its top cell is core or hoop. Cells already on a
    drawn path are never reused, so the returned paths do not share cells.
    """
    paths = []
    for x in range(lattice.width):
        if lattice.state[0, x] not in (CellState.HARD, CellState.SOFT):
            continue
        terminal, _ = shortest_path(lattice, x, 0)
        if terminal is None:
            continue
        path = minimum_path(lattice, x, 0)
        if path:
            paths.append(path)
    return paths


def restore_path_region(lattice: Lattice, x: int, y: int) -> int:
    """
    Reset a percolating/path region reachable from (x, y) back to core cells.

    Returns the number of cells restored.
    """
    restorable = (CellState.PERCOLATE, CellState.PATH, CellState.SIDEPATH)
    if not lattice.is_valid(x, y) or lattice.state[y, x] not in restorable:
        return 0
    stack = [(x, y)]
    lattice.state[y, x] = CellState.HARD
    lattice.visited[y, x] = False
    restored = 1
    while stack:
        cx, cy = stack.pop()
        for dx, dy in NEIGHBOR_OFFSETS:
            nx, ny = cx + dx, cy + dy
            if lattice.is_valid(nx, ny) and lattice.state[ny, nx] in restorable:
                lattice.state[ny, nx] = CellState.HARD
                lattice.visited[ny, nx] = False
                stack.append((nx, ny))
                restored += 1
    return restored


def count_path_pixels(lattice: Lattice) -> int:
    return lattice.count_area(CellState.PATH)
