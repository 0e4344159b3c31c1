"""Grid and hierarchical path queries, sliced searches and query helpers."""

from __future__ import annotations

import heapq
import math
from dataclasses import dataclass, field
from enum import Enum
from itertools import pairwise
from typing import Any, Sequence

from hpagrid.filters import PathCostOverlay, PathFilterProfile
from hpagrid.grid import GridAabb, GridCoord, Vec3
from hpagrid.hierarchy import (
    ClusterInfo,
    ClusterVersionStamp,
    EdgeKind,
    EdgeRoute,
    NodeEdge,
    PathfindingSnapshot,
)
from hpagrid.smoothing import smooth_corridor

_EPSILON = 0.0001


class PathQueryMode(Enum):
    """Which search strategy a path query uses."""

    AUTO = "auto"
    DIRECT_ONLY = "direct_only"
    COARSE_ONLY = "coarse_only"
    SLICED = "sliced"


@dataclass
class ResolvedPath:
    """A found path: the cell corridor, its waypoints and bookkeeping for validation."""

    corridor: list[GridCoord]
    waypoints: list[Vec3]
    total_cost: float
    is_partial: bool
    version: int
    touched_clusters: list[ClusterVersionStamp] = field(default_factory=list)


@dataclass
class CostEstimate:
    estimated_cost: float | None
    used_hierarchy: bool


class _MissingEdge(LookupError):
    """An abstract route refers to an edge the snapshot does not have."""


@dataclass
class _BestPartial:
    node: Any
    h: float
    g: float

    def offer(self, node: Any, h: float, g: float) -> None:
        if h > self.h + _EPSILON:
            return
        if abs(h - self.h) <= _EPSILON and g >= self.g:
            return
        self.node, self.h, self.g = node, h, g


def _chebyshev(a: GridCoord, b: GridCoord) -> float:
    return float(max(abs(a.x - b.x), abs(a.y - b.y), abs(a.z - b.z)))


def _push_cell(heap: list, coord: GridCoord, g: float, h: float) -> None:
    heapq.heappush(heap, (g + h, h, -coord.x, -coord.y, -coord.z, g, coord))


def _pop_cell(heap: list) -> tuple[GridCoord, float, float]:
    _, h, _, _, _, g, coord = heapq.heappop(heap)
    return coord, g, h


def _reconstruct(parents: dict, goal: Any) -> list:
    path = [goal]
    cursor = goal
    while cursor in parents:
        cursor = parents[cursor]
        path.append(cursor)
    path.reverse()
    return path


def _finalize_corridor(
    snapshot: PathfindingSnapshot,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay],
    corridor: list[GridCoord],
    total_cost: float,
    is_partial: bool,
) -> ResolvedPath:
    return ResolvedPath(
        corridor=corridor,
        waypoints=smooth_corridor(
            snapshot.grid, corridor, profile, overlays, snapshot.config.smoothing_mode
        ),
        total_cost=total_cost,
        is_partial=is_partial,
        version=snapshot.version,
        touched_clusters=snapshot.cluster_versions_for_corridor(corridor),
    )


class SlicedGridSearch:
    """A grid A* search that can be advanced a limited number of expansions at a time.

    Raises ``ValueError`` when the start or goal lies outside the grid or the start
    cell is not passable.
    """

    def __init__(
        self,
        snapshot: PathfindingSnapshot,
        start: GridCoord,
        goal: GridCoord,
        profile: PathFilterProfile,
        allow_partial: bool = False,
        overlays: Sequence[PathCostOverlay] = (),
    ) -> None:
        if not snapshot.grid.contains(start) or not snapshot.grid.contains(goal):
            raise ValueError("start and goal must lie inside the grid")
        overlays = list(overlays)
        if not snapshot.grid.is_passable(start, profile, overlays):
            raise ValueError("start cell is not passable")
        self.snapshot = snapshot
        self.profile = profile
        self.overlays = overlays
        self.goal = goal
        self.allow_partial = allow_partial
        h = _chebyshev(start, goal)
        self._open: list = []
        _push_cell(self._open, start, 0.0, h)
        self._parents: dict[GridCoord, GridCoord] = {}
        self._g_score: dict[GridCoord, float] = {start: 0.0}
        self._best = _BestPartial(start, h, 0.0)
        self.finished = False
        self.result: ResolvedPath | None = None

    def advance(self, budget: int) -> bool:
        """Expand up to ``budget`` cells (at least one); return True once the search is done.

        When done, ``result`` holds the path, a partial path, or None.
        """
        if self.finished:
            return True
        snapshot = self.snapshot
        config = snapshot.config
        for _ in range(max(budget, 1)):
            if not self._open:
                self.finished = True
                self.result = self._partial_result()
                return True
            current, g, h = _pop_cell(self._open)
            if current == self.goal:
                self.finished = True
                self.result = _finalize_corridor(
                    snapshot,
                    self.profile,
                    self.overlays,
                    _reconstruct(self._parents, current),
                    g,
                    False,
                )
                return True
            self._best.offer(current, h, g)
            for neighbor, step_cost in snapshot.grid.neighbor_cells(
                current,
                config.neighborhood,
                config.allow_corner_cutting,
                self.profile,
                self.overlays,
            ):
                tentative = g + step_cost
                if tentative + _EPSILON < self._g_score.get(neighbor, math.inf):
                    self._parents[neighbor] = current
                    self._g_score[neighbor] = tentative
                    _push_cell(self._open, neighbor, tentative, _chebyshev(neighbor, self.goal))
        return False

    def _partial_result(self) -> ResolvedPath | None:
        if not self.allow_partial:
            return None
        return _finalize_corridor(
            self.snapshot,
            self.profile,
            self.overlays,
            _reconstruct(self._parents, self._best.node),
            self._best.g,
            True,
        )


def nearest_walkable_cell(
    snapshot: PathfindingSnapshot, start: GridCoord, profile: PathFilterProfile
) -> GridCoord | None:
    return snapshot.grid.nearest_walkable(start, profile)


def line_of_sight(
    snapshot: PathfindingSnapshot,
    start: GridCoord,
    goal: GridCoord,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay] = (),
) -> bool:
    return snapshot.grid.raycast_line_of_sight(start, goal, profile, overlays)


def estimate_cost(
    snapshot: PathfindingSnapshot,
    start: GridCoord,
    goal: GridCoord,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay] = (),
) -> CostEstimate:
    """Cost of the best path, searching directly within a cluster and hierarchically across."""
    if snapshot.cluster_key_for_coord(1, start) == snapshot.cluster_key_for_coord(1, goal):
        path = _direct_search(snapshot, start, goal, profile, False, overlays)
        return CostEstimate(None if path is None else path.total_cost, False)
    path = _hierarchical_search(snapshot, start, goal, profile, False, overlays)
    if path is None:
        path = _direct_search(snapshot, start, goal, profile, False, overlays)
    return CostEstimate(None if path is None else path.total_cost, True)


def find_path(
    snapshot: PathfindingSnapshot,
    start: GridCoord,
    goal: GridCoord,
    profile: PathFilterProfile,
    mode: PathQueryMode = PathQueryMode.AUTO,
    allow_partial: bool = False,
    overlays: Sequence[PathCostOverlay] = (),
) -> ResolvedPath | None:
    """Find a path, moving a blocked start to the nearest walkable cell first."""
    overlays = list(overlays)
    if not snapshot.grid.is_passable(start, profile, overlays):
        start = nearest_walkable_cell(snapshot, start, profile)
        if start is None:
            return None

    def direct() -> ResolvedPath | None:
        return _direct_search(snapshot, start, goal, profile, allow_partial, overlays)

    def coarse() -> ResolvedPath | None:
        return _hierarchical_search(snapshot, start, goal, profile, allow_partial, overlays)

    if mode in (PathQueryMode.DIRECT_ONLY, PathQueryMode.SLICED):
        return direct()
    if mode is PathQueryMode.COARSE_ONLY:
        return coarse() or direct()
    same_cluster = snapshot.cluster_key_for_coord(1, start) == snapshot.cluster_key_for_coord(
        1, goal
    )
    if same_cluster or _chebyshev(start, goal) <= snapshot.config.direct_search_distance:
        return direct() or coarse()
    return coarse() or direct()


def _direct_search(
    snapshot: PathfindingSnapshot,
    start: GridCoord,
    goal: GridCoord,
    profile: PathFilterProfile,
    allow_partial: bool,
    overlays: Sequence[PathCostOverlay],
) -> ResolvedPath | None:
    try:
        search = SlicedGridSearch(snapshot, start, goal, profile, allow_partial, overlays)
    except ValueError:
        return None
    while not search.advance(4096):
        pass
    return search.result


def _bounded_direct_search(
    snapshot: PathfindingSnapshot,
    start: GridCoord,
    goal: GridCoord,
    bounds: GridAabb,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay],
) -> tuple[list[GridCoord], float] | None:
    config = snapshot.config
    heap: list = []
    _push_cell(heap, start, 0.0, _chebyshev(start, goal))
    parents: dict[GridCoord, GridCoord] = {}
    g_score: dict[GridCoord, float] = {start: 0.0}
    while heap:
        current, g, _ = _pop_cell(heap)
        if current == goal:
            return _reconstruct(parents, goal), g
        for neighbor, step_cost in snapshot.grid.neighbor_cells(
            current, config.neighborhood, config.allow_corner_cutting, profile, overlays
        ):
            if not bounds.contains(neighbor):
                continue
            tentative = g + step_cost
            if tentative + _EPSILON < g_score.get(neighbor, math.inf):
                parents[neighbor] = current
                g_score[neighbor] = tentative
                _push_cell(heap, neighbor, tentative, _chebyshev(neighbor, goal))
    return None


def _connect_endpoint(
    snapshot: PathfindingSnapshot,
    endpoint: GridCoord,
    cluster: ClusterInfo,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay],
) -> list[NodeEdge]:
    links = []
    for node_id in cluster.node_ids:
        found = _bounded_direct_search(
            snapshot, endpoint, snapshot.nodes[node_id].coord, cluster.bounds, profile, overlays
        )
        if found is not None:
            cells, cost = found
            links.append(NodeEdge(node_id, cost, EdgeKind.PROJECTION, EdgeRoute(cells=tuple(cells))))
    links.sort(key=lambda edge: edge.to)
    return links


def _find_edge(snapshot: PathfindingSnapshot, origin: int, target: int) -> NodeEdge:
    if origin >= len(snapshot.edges):
        raise _MissingEdge(origin)
    for edge in snapshot.edges[origin]:
        if edge.to == target:
            return edge
    raise _MissingEdge((origin, target))


def _append_cells(corridor: list[GridCoord], cells: Sequence[GridCoord]) -> None:
    for cell in cells:
        if not corridor or corridor[-1] != cell:
            corridor.append(cell)


def _append_route(
    snapshot: PathfindingSnapshot, corridor: list[GridCoord], route: EdgeRoute
) -> None:
    if route.cells is not None:
        _append_cells(corridor, route.cells)
    elif route.nodes is not None:
        if len(route.nodes) == 1:
            _append_cells(corridor, [snapshot.nodes[route.nodes[0]].coord])
        else:
            for origin, target in pairwise(route.nodes):
                _append_route(snapshot, corridor, _find_edge(snapshot, origin, target).route)


def _flatten_node_route(
    snapshot: PathfindingSnapshot,
    temp_start: int,
    route: Sequence[int],
    start_links: Sequence[NodeEdge],
    goal_edges: dict[int, NodeEdge],
) -> list[GridCoord] | None:
    if not route:
        return None
    corridor: list[GridCoord] = []
    try:
        for origin, target in pairwise(route):
            if origin == temp_start:
                link = next((edge for edge in start_links if edge.to == target), None)
                if link is None:
                    raise _MissingEdge((origin, target))
                segment = link.route
            else:
                goal_edge = goal_edges.get(origin)
                if goal_edge is not None and goal_edge.to == target:
                    segment = goal_edge.route
                else:
                    segment = _find_edge(snapshot, origin, target).route
            _append_route(snapshot, corridor, segment)
    except _MissingEdge:
        return None
    return corridor


def _abstract_neighbors(
    snapshot: PathfindingSnapshot,
    node_id: int,
    start_links: Sequence[NodeEdge],
    goal_edges: dict[int, NodeEdge],
) -> list[NodeEdge]:
    if node_id == len(snapshot.nodes):
        return list(start_links)
    output = list(snapshot.edges[node_id])
    goal_edge = goal_edges.get(node_id)
    if goal_edge is not None:
        output.append(goal_edge)
    output.sort(key=lambda edge: edge.to)
    return output


def _hierarchical_search(
    snapshot: PathfindingSnapshot,
    start: GridCoord,
    goal: GridCoord,
    profile: PathFilterProfile,
    allow_partial: bool,
    overlays: Sequence[PathCostOverlay],
) -> ResolvedPath | None:
    level = snapshot.level(1)
    if level is None:
        return None
    start_info = level.clusters.get(snapshot.cluster_key_for_coord(1, start))
    goal_info = level.clusters.get(snapshot.cluster_key_for_coord(1, goal))
    if start_info is None or goal_info is None:
        return None

    start_links = _connect_endpoint(snapshot, start, start_info, profile, overlays)
    goal_links = _connect_endpoint(snapshot, goal, goal_info, profile, overlays)
    if not start_links or not goal_links:
        return None

    temp_start = len(snapshot.nodes)
    temp_goal = temp_start + 1
    goal_edges = {
        edge.to: NodeEdge(temp_goal, edge.cost, edge.kind, edge.route.reversed())
        for edge in goal_links
    }

    parents: dict[int, int] = {}
    g_score: dict[int, float] = {temp_start: 0.0}
    h0 = _chebyshev(start, goal)
    best = _BestPartial(temp_start, h0, 0.0)
    heap: list[tuple[float, int, float]] = [(h0, temp_start, 0.0)]

    while heap:
        _, current, g = heapq.heappop(heap)
        if current == temp_goal:
            route = _reconstruct(parents, temp_goal)
            corridor = _flatten_node_route(snapshot, temp_start, route, start_links, goal_edges)
            if corridor is None:
                return None
            return _finalize_corridor(snapshot, profile, overlays, corridor, g, False)

        current_coord = start if current == temp_start else snapshot.nodes[current].coord
        best.offer(current, _chebyshev(current_coord, goal), g)

        for edge in _abstract_neighbors(snapshot, current, start_links, goal_edges):
            tentative = g + edge.cost
            if tentative + _EPSILON < g_score.get(edge.to, math.inf):
                parents[edge.to] = current
                g_score[edge.to] = tentative
                neighbor_coord = goal if edge.to == temp_goal else snapshot.nodes[edge.to].coord
                heapq.heappush(
                    heap, (tentative + _chebyshev(neighbor_coord, goal), edge.to, tentative)
                )

    if not allow_partial or best.node == temp_start:
        return None
    route = _reconstruct(parents, best.node)
    corridor = _flatten_node_route(snapshot, temp_start, route, start_links, {})
    if corridor is None:
        return None
    return _finalize_corridor(snapshot, profile, overlays, corridor, best.g, True)