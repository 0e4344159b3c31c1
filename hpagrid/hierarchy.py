"""Cluster hierarchy: abstract portal nodes and the edges that connect them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from hpagrid.grid import (
    GridAabb,
    GridCoord,
    GridStorage,
    NeighborhoodMode,
    WorldRoundingPolicy,
)
from hpagrid.portals import (
    active_axes,
    border_pairs,
    low_level_path,
    search_same_level_nodes,
    select_representative_lower_pairs,
    select_representative_pairs,
)
from hpagrid.smoothing import PathSmoothingMode

_MAX_HIERARCHY_LEVELS = 4


@dataclass
class HpaPathfindingConfig:
    """Settings for grid size, clustering and search behaviour."""

    grid_dimensions: tuple[int, int, int] = (64, 64, 1)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    cell_size: float = 1.0
    world_rounding: WorldRoundingPolicy = WorldRoundingPolicy.FLOOR
    cluster_size: tuple[int, int, int] = (16, 16, 1)
    hierarchy_levels: int = 2
    neighborhood: NeighborhoodMode = NeighborhoodMode.ORDINAL_2D
    allow_corner_cutting: bool = False
    direct_search_distance: int = 16
    smoothing_mode: PathSmoothingMode = PathSmoothingMode.LINE_OF_SIGHT

    def clamped_hierarchy_levels(self) -> int:
        """Number of hierarchy levels actually built, at least one."""
        return max(1, min(self.hierarchy_levels, _MAX_HIERARCHY_LEVELS))


@dataclass(frozen=True)
class ClusterKey:
    level: int
    coord: GridCoord


@dataclass(frozen=True)
class ClusterVersionStamp:
    cluster: ClusterKey
    version: int


class EdgeKind(Enum):
    PROJECTION = "projection"
    INTER_CLUSTER = "inter_cluster"
    INTRA_CLUSTER = "intra_cluster"


@dataclass(frozen=True)
class EdgeRoute:
    """How an edge is realised: a run of cells, a run of lower nodes, or a projection.

    A route with neither ``cells`` nor ``nodes`` is a projection between levels.
    """

    cells: tuple[GridCoord, ...] | None = None
    nodes: tuple[int, ...] | None = None

    def reversed(self) -> EdgeRoute:
        return EdgeRoute(
            cells=None if self.cells is None else tuple(reversed(self.cells)),
            nodes=None if self.nodes is None else tuple(reversed(self.nodes)),
        )


@dataclass(frozen=True)
class NodeEdge:
    to: int
    cost: float
    kind: EdgeKind
    route: EdgeRoute


@dataclass(frozen=True)
class AbstractNode:
    node_id: int
    level: int
    cluster: ClusterKey
    coord: GridCoord
    anchor_lower: int | None = None


@dataclass
class ClusterInfo:
    key: ClusterKey
    bounds: GridAabb
    node_ids: list[int] = field(default_factory=list)
    version: int = 0
    dirty: bool = False


@dataclass
class HierarchyLevel:
    level: int
    cluster_size: tuple[int, int, int]
    clusters: dict[ClusterKey, ClusterInfo]


def cluster_size_for_level(base: Sequence[int], level: int) -> tuple[int, int, int]:
    """Cluster size at a level: the base size doubled for every level above the first."""
    scale = 1 << max(level - 1, 0)
    bx, by, bz = base
    return (bx * scale, by * scale, bz * scale)


def _trunc_div(value: int, divisor: int) -> int:
    quotient = abs(value) // abs(divisor)
    return quotient if (value >= 0) == (divisor > 0) else -quotient


def _key_order(key: ClusterKey) -> tuple[int, int, int, int]:
    return (key.level, key.coord.x, key.coord.y, key.coord.z)


def _spatial_order(key: ClusterKey) -> tuple[int, int, int]:
    return (key.coord.z, key.coord.y, key.coord.x)


def _ceil_div(value: int, divisor: int) -> int:
    return -(-value // divisor)


@dataclass
class PathfindingSnapshot:
    """An immutable-by-convention view of the grid together with its abstract graph."""

    version: int
    config: HpaPathfindingConfig
    grid: GridStorage
    levels: list[HierarchyLevel] = field(default_factory=list)
    nodes: list[AbstractNode] = field(default_factory=list)
    edges: list[list[NodeEdge]] = field(default_factory=list)

    @classmethod
    def build(
        cls, grid: GridStorage, config: HpaPathfindingConfig, version: int
    ) -> PathfindingSnapshot:
        snapshot = cls(version=version, config=config, grid=grid)
        for level in range(1, config.clamped_hierarchy_levels() + 1):
            size = cluster_size_for_level(config.cluster_size, level)
            snapshot.levels.append(
                HierarchyLevel(level, size, snapshot._cluster_index(level, size))
            )
            if level == 1:
                snapshot._build_level_one(level)
            else:
                snapshot._build_higher_level(level)
        return snapshot

    def level(self, level: int) -> HierarchyLevel | None:
        return next((candidate for candidate in self.levels if candidate.level == level), None)

    def cluster_key_for_coord(self, level: int, coord: GridCoord) -> ClusterKey:
        sx, sy, sz = cluster_size_for_level(self.config.cluster_size, level)
        return ClusterKey(
            level,
            GridCoord(_trunc_div(coord.x, sx), _trunc_div(coord.y, sy), _trunc_div(coord.z, sz)),
        )

    def cluster_versions_for_corridor(
        self, corridor: Iterable[GridCoord]
    ) -> list[ClusterVersionStamp]:
        """Versions of the level-one clusters a corridor passes through, sorted by key."""
        first = self.level(1)
        versions: dict[ClusterKey, int] = {}
        for coord in corridor:
            key = self.cluster_key_for_coord(1, coord)
            cluster = None if first is None else first.clusters.get(key)
            if cluster is not None:
                versions.setdefault(key, cluster.version)
        return sorted(
            (ClusterVersionStamp(key, version) for key, version in versions.items()),
            key=lambda stamp: _key_order(stamp.cluster),
        )

    def dirty_clusters(self) -> list[ClusterKey]:
        return sorted(
            (
                key
                for level in self.levels
                for key, cluster in level.clusters.items()
                if cluster.dirty
            ),
            key=_key_order,
        )

    def _cluster_index(
        self, level: int, size: tuple[int, int, int]
    ) -> dict[ClusterKey, ClusterInfo]:
        width, height, depth = self.grid.dimensions
        sx, sy, sz = size
        counts = (
            _ceil_div(width, max(sx, 1)),
            _ceil_div(height, max(sy, 1)),
            _ceil_div(depth, max(sz, 1)),
        )
        clusters: dict[ClusterKey, ClusterInfo] = {}
        for z in range(counts[2]):
            for y in range(counts[1]):
                for x in range(counts[0]):
                    key = ClusterKey(level, GridCoord(x, y, z))
                    lo = GridCoord(x * sx, y * sy, z * sz)
                    hi = GridCoord(
                        min((x + 1) * sx - 1, width - 1),
                        min((y + 1) * sy - 1, height - 1),
                        min((z + 1) * sz - 1, depth - 1),
                    )
                    clusters[key] = ClusterInfo(key, GridAabb(lo, hi))
        return clusters

    def _sorted_keys(self, level: int) -> list[ClusterKey]:
        return sorted(self.level(level).clusters, key=_spatial_order)

    def _neighbor_pairs(self, level: int):
        clusters = self.level(level).clusters
        axes = active_axes(self.config.neighborhood, self.grid.dimensions[2])
        for key in self._sorted_keys(level):
            for axis in axes:
                neighbor_key = ClusterKey(level, key.coord.offset(axis.delta))
                if neighbor_key not in clusters:
                    continue
                if _spatial_order(key) >= _spatial_order(neighbor_key):
                    continue
                yield key, neighbor_key, axis

    def _add_node(
        self, level: int, cluster: ClusterKey, coord: GridCoord, anchor: int | None = None
    ) -> int:
        node_id = len(self.nodes)
        self.nodes.append(AbstractNode(node_id, level, cluster, coord, anchor))
        self.edges.append([])
        self.level(level).clusters[cluster].node_ids.append(node_id)
        return node_id

    def _add_undirected_edge(
        self, a: int, b: int, kind: EdgeKind, route: EdgeRoute, cost: float
    ) -> None:
        self.edges[a].append(NodeEdge(b, cost, kind, route))
        self.edges[b].append(NodeEdge(a, cost, kind, route))

    def _base_transition_cost(self, origin: GridCoord, target: GridCoord) -> float:
        movement = NeighborhoodMode.movement_cost(
            (target.x - origin.x, target.y - origin.y, target.z - origin.z)
        )
        cell = self.grid.cell(target)
        return movement * (1.0 if cell is None else cell.base_cost)

    def _direct_edge_cost(self, origin: int, target: int) -> float | None:
        if origin >= len(self.edges):
            return None
        return next((edge.cost for edge in self.edges[origin] if edge.to == target), None)

    def _build_level_one(self, level: int) -> None:
        clusters = self.level(level).clusters
        for key, neighbor_key, axis in self._neighbor_pairs(level):
            pairs = border_pairs(
                self.grid, clusters[key].bounds, clusters[neighbor_key].bounds, axis
            )
            for pair in select_representative_pairs(pairs):
                left_id = self._add_node(level, key, pair.left)
                right_id = self._add_node(level, neighbor_key, pair.right)
                self._add_undirected_edge(
                    left_id,
                    right_id,
                    EdgeKind.INTER_CLUSTER,
                    EdgeRoute(cells=(pair.left, pair.right)),
                    self._base_transition_cost(pair.left, pair.right),
                )
        self._connect_intra_cluster_edges(level)

    def _lower_crossings(self, lower_level: int) -> list[tuple[int, int]]:
        crossings: list[tuple[int, int]] = []
        for node in self.nodes:
            if node.level != lower_level:
                continue
            for edge in self.edges[node.node_id]:
                other = self.nodes[edge.to]
                if (
                    other.level != lower_level
                    or edge.kind is not EdgeKind.INTER_CLUSTER
                    or node.node_id > other.node_id
                ):
                    continue
                crossings.append((node.node_id, other.node_id))
        return crossings

    def _build_higher_level(self, level: int) -> None:
        crossings = self._lower_crossings(level - 1)
        for key, neighbor_key, axis in self._neighbor_pairs(level):
            wanted = {key, neighbor_key}
            candidates = []
            for lower_a, lower_b in crossings:
                coord_a = self.nodes[lower_a].coord
                coord_b = self.nodes[lower_b].coord
                parent_a = self.cluster_key_for_coord(level, coord_a)
                parent_b = self.cluster_key_for_coord(level, coord_b)
                if (
                    parent_a != parent_b
                    and {parent_a, parent_b} == wanted
                    and axis.matches_pair(coord_a, coord_b)
                ):
                    candidates.append((lower_a, lower_b))
            for left_lower, right_lower in select_representative_lower_pairs(candidates):
                left_id = self._add_node(level, key, self.nodes[left_lower].coord, left_lower)
                right_id = self._add_node(
                    level, neighbor_key, self.nodes[right_lower].coord, right_lower
                )
                cost = self._direct_edge_cost(left_lower, right_lower)
                self._add_undirected_edge(
                    left_id,
                    right_id,
                    EdgeKind.INTER_CLUSTER,
                    EdgeRoute(nodes=(left_lower, right_lower)),
                    1.0 if cost is None else cost,
                )
                self._add_undirected_edge(
                    left_id, left_lower, EdgeKind.PROJECTION, EdgeRoute(), 0.0
                )
                self._add_undirected_edge(
                    right_id, right_lower, EdgeKind.PROJECTION, EdgeRoute(), 0.0
                )
        self._connect_intra_cluster_edges(level)

    def _connect_intra_cluster_edges(self, level: int) -> None:
        clusters = self.level(level).clusters
        for key in self._sorted_keys(level):
            bounds = clusters[key].bounds
            node_ids = list(clusters[key].node_ids)
            for i, start in enumerate(node_ids):
                for goal in node_ids[i + 1 :]:
                    if level == 1:
                        found = low_level_path(
                            self.grid,
                            self.config.neighborhood,
                            self.config.allow_corner_cutting,
                            self.nodes[start].coord,
                            self.nodes[goal].coord,
                            bounds,
                        )
                        if found is None:
                            continue
                        route = EdgeRoute(cells=tuple(found[0]))
                    else:
                        found = search_same_level_nodes(
                            self.nodes,
                            self.edges,
                            level - 1,
                            self.nodes[start].anchor_lower,
                            self.nodes[goal].anchor_lower,
                            bounds,
                        )
                        if found is None:
                            continue
                        route = EdgeRoute(nodes=tuple(found[0]))
                    self._add_undirected_edge(
                        start, goal, EdgeKind.INTRA_CLUSTER, route, found[1]
                    )