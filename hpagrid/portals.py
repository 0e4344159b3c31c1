"""Cluster border detection, portal selection and bounded searches used by the hierarchy."""

from __future__ import annotations

import heapq
import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from hpagrid.filters import PathFilterProfile
from hpagrid.grid import Delta, GridAabb, GridCoord, GridStorage, NeighborhoodMode

_EPSILON = 0.0001


class FaceAxis(Enum):
    """The axis across which two neighbouring clusters share a face."""

    X = "x"
    Y = "y"
    Z = "z"

    @property
    def delta(self) -> Delta:
        return {
            FaceAxis.X: (1, 0, 0),
            FaceAxis.Y: (0, 1, 0),
            FaceAxis.Z: (0, 0, 1),
        }[self]

    def matches_pair(self, a: GridCoord, b: GridCoord) -> bool:
        """True when the two coordinates are one step apart along this axis."""
        if self is FaceAxis.X:
            return abs(a.x - b.x) == 1
        if self is FaceAxis.Y:
            return abs(a.y - b.y) == 1
        return abs(a.z - b.z) == 1


@dataclass(frozen=True)
class BorderPair:
    """Two walkable cells facing each other across a cluster border.

    ``u`` and ``v`` are the pair's position on the shared face.
    """

    left: GridCoord
    right: GridCoord
    u: int
    v: int


def active_axes(mode: NeighborhoodMode, depth: int) -> list[FaceAxis]:
    """Axes along which clusters can border each other for this topology."""
    axes = [FaceAxis.X, FaceAxis.Y]
    if depth > 1 and mode not in (NeighborhoodMode.CARDINAL_2D, NeighborhoodMode.ORDINAL_2D):
        axes.append(FaceAxis.Z)
    return axes


def _walkable(grid: GridStorage, coord: GridCoord) -> bool:
    cell = grid.cell(coord)
    return cell is not None and cell.walkable


def border_pairs(
    grid: GridStorage, left_bounds: GridAabb, right_bounds: GridAabb, axis: FaceAxis
) -> list[BorderPair]:
    """Walkable cell pairs on the face between two adjacent clusters."""
    lo, hi = left_bounds.min, left_bounds.max
    candidates: list[tuple[GridCoord, GridCoord, int, int]] = []
    if axis is FaceAxis.X:
        x_left, x_right = hi.x, right_bounds.min.x
        for z in range(lo.z, hi.z + 1):
            for y in range(lo.y, hi.y + 1):
                candidates.append((GridCoord(x_left, y, z), GridCoord(x_right, y, z), y, z))
    elif axis is FaceAxis.Y:
        y_left, y_right = hi.y, right_bounds.min.y
        for z in range(lo.z, hi.z + 1):
            for x in range(lo.x, hi.x + 1):
                candidates.append((GridCoord(x, y_left, z), GridCoord(x, y_right, z), x, z))
    else:
        z_left, z_right = hi.z, right_bounds.min.z
        for y in range(lo.y, hi.y + 1):
            for x in range(lo.x, hi.x + 1):
                candidates.append((GridCoord(x, y, z_left), GridCoord(x, y, z_right), x, y))
    return [
        BorderPair(a, b, u, v)
        for a, b, u, v in candidates
        if _walkable(grid, a) and _walkable(grid, b)
    ]


def group_border_pairs(pairs: Sequence[BorderPair]) -> list[list[BorderPair]]:
    """Split border pairs into groups that are contiguous on the face."""
    groups: list[list[BorderPair]] = []
    visited = [False] * len(pairs)
    for start, _ in enumerate(pairs):
        if visited[start]:
            continue
        visited[start] = True
        queue = deque([start])
        group: list[BorderPair] = []
        while queue:
            seed = pairs[queue.popleft()]
            group.append(seed)
            for candidate_index, candidate in enumerate(pairs):
                if visited[candidate_index]:
                    continue
                if abs(seed.u - candidate.u) + abs(seed.v - candidate.v) == 1:
                    visited[candidate_index] = True
                    queue.append(candidate_index)
        groups.append(group)
    return groups


def _min_first(group: Sequence[BorderPair], attr: str) -> BorderPair:
    return min(group, key=lambda pair: getattr(pair, attr))


def _max_last(group: Sequence[BorderPair], attr: str) -> BorderPair:
    return max(reversed(group), key=lambda pair: getattr(pair, attr))


def select_representative_pairs(pairs: Sequence[BorderPair]) -> list[BorderPair]:
    """Keep at most the two extreme pairs of each contiguous border group."""
    selected: list[BorderPair] = []
    for group in group_border_pairs(pairs):
        if len(group) <= 2:
            selected.extend(group)
            continue
        min_u, max_u = _min_first(group, "u"), _max_last(group, "u")
        min_v, max_v = _min_first(group, "v"), _max_last(group, "v")
        if max_u.u - min_u.u >= max_v.v - min_v.v:
            first, last = min_u, max_u
        else:
            first, last = min_v, max_v
        selected.append(first)
        if first.left != last.left:
            selected.append(last)
    return selected


def select_representative_lower_pairs(pairs: Sequence[tuple[int, int]]) -> list[tuple[int, int]]:
    """Keep the first and last lower-level crossings when there are more than two."""
    if len(pairs) <= 2:
        return list(pairs)
    return [pairs[0], pairs[-1]]


def manhattan(a: GridCoord, b: GridCoord) -> float:
    """Manhattan distance between two coordinates."""
    return float(abs(a.x - b.x) + abs(a.y - b.y) + abs(a.z - b.z))


def low_level_path(
    grid: GridStorage,
    neighborhood: NeighborhoodMode,
    allow_corner_cutting: bool,
    start: GridCoord,
    goal: GridCoord,
    bounds: GridAabb,
) -> tuple[list[GridCoord], float] | None:
    """A* over cells inside ``bounds`` with the default filter; returns corridor and cost."""
    profile = PathFilterProfile()
    parents: dict[GridCoord, GridCoord] = {}
    g_score: dict[GridCoord, float] = {start: 0.0}
    h = manhattan(start, goal)
    open_heap: list[tuple[float, float, int, int, int, GridCoord]] = [
        (h, h, -start.x, -start.y, -start.z, start)
    ]

    while open_heap:
        current = heapq.heappop(open_heap)[-1]
        if current == goal:
            corridor = [goal]
            cursor = goal
            while cursor in parents:
                cursor = parents[cursor]
                corridor.append(cursor)
            corridor.reverse()
            return corridor, g_score[goal]
        current_g = g_score.get(current, math.inf)
        for neighbor, step_cost in grid.neighbor_cells(
            current, neighborhood, allow_corner_cutting, profile, ()
        ):
            if not bounds.contains(neighbor):
                continue
            tentative = current_g + step_cost
            if tentative + _EPSILON < g_score.get(neighbor, math.inf):
                parents[neighbor] = current
                g_score[neighbor] = tentative
                nh = manhattan(neighbor, goal)
                heapq.heappush(
                    open_heap,
                    (tentative + nh, nh, -neighbor.x, -neighbor.y, -neighbor.z, neighbor),
                )
    return None


def search_same_level_nodes(
    nodes: Sequence[Any],
    edges: Sequence[Sequence[Any]],
    level: int,
    start: int,
    goal: int,
    bounds: GridAabb,
) -> tuple[list[int], float] | None:
    """A* over abstract nodes of one level whose coordinates lie inside ``bounds``.

    ``nodes[i]`` needs ``level`` and ``coord``; ``edges[i]`` holds edges with ``to`` and ``cost``.
    """
    goal_coord = nodes[goal].coord
    parents: dict[int, int] = {}
    g_score: dict[int, float] = {start: 0.0}
    open_heap: list[tuple[float, int]] = [(manhattan(nodes[start].coord, goal_coord), start)]

    while open_heap:
        _, current = heapq.heappop(open_heap)
        if current == goal:
            route = [goal]
            cursor = goal
            while cursor in parents:
                cursor = parents[cursor]
                route.append(cursor)
            route.reverse()
            return route, g_score[goal]
        current_g = g_score.get(current, math.inf)
        for edge in edges[current]:
            target = nodes[edge.to]
            if target.level != level or not bounds.contains(target.coord):
                continue
            tentative = current_g + edge.cost
            if tentative + _EPSILON < g_score.get(edge.to, math.inf):
                parents[edge.to] = current
                g_score[edge.to] = tentative
                heapq.heappush(
                    open_heap, (tentative + manhattan(target.coord, goal_coord), edge.to)
                )
    return None