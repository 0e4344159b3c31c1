"""A mutable pathfinding grid with dirty-cluster tracking and budgeted rebuilds."""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import replace
from typing import Callable, Sequence

from hpagrid.filters import PathCostOverlay, PathFilterLibrary, PathFilterProfile
from hpagrid.flow_field import FlowField, build_flow_field
from hpagrid.grid import CellData, GridAabb, GridCoord, GridStorage, TransitionLink
from hpagrid.hierarchy import ClusterKey, HpaPathfindingConfig, PathfindingSnapshot
from hpagrid.search import (
    CostEstimate,
    PathQueryMode,
    ResolvedPath,
    SlicedGridSearch,
    estimate_cost,
    find_path,
    line_of_sight,
    nearest_walkable_cell,
)


class PathfindingGrid:
    """The current snapshot plus filters, pending edits and per-cluster versions."""

    def __init__(self, grid: GridStorage, config: HpaPathfindingConfig) -> None:
        self.snapshot = PathfindingSnapshot.build(grid, config, 1)
        self.filters = PathFilterLibrary()
        self.pending_dirty_regions: list[GridAabb] = []
        self.pending_dirty_clusters: deque[ClusterKey] = deque()
        self.last_rebuilt_clusters: list[ClusterKey] = []
        self.cluster_versions: dict[ClusterKey, int] = {}
        self.tick = 0
        self.filters.register(PathFilterProfile())
        self._apply_cluster_versions(())

    @classmethod
    def from_config(cls, config: HpaPathfindingConfig) -> PathfindingGrid:
        grid = GridStorage(
            config.grid_dimensions, config.origin, config.cell_size, config.world_rounding
        )
        return cls(grid, config)

    @property
    def grid(self) -> GridStorage:
        return self.snapshot.grid

    def version(self) -> int:
        return self.snapshot.version

    def filter(self, filter_id: int) -> PathFilterProfile:
        """The registered profile, or the default profile for an unknown id."""
        profile = self.filters.get(filter_id)
        return PathFilterProfile() if profile is None else profile

    def filter_with_clearance(self, filter_id: int, clearance_override: int) -> PathFilterProfile:
        profile = self.filter(filter_id)
        return replace(profile, clearance=max(profile.clearance, clearance_override))

    def query_path(
        self,
        start: GridCoord,
        goal: GridCoord,
        filter_id: int = 0,
        mode: PathQueryMode = PathQueryMode.AUTO,
        allow_partial: bool = False,
        overlays: Sequence[PathCostOverlay] = (),
        clearance: int = 0,
    ) -> ResolvedPath | None:
        profile = self.filter_with_clearance(filter_id, clearance)
        return find_path(self.snapshot, start, goal, profile, mode, allow_partial, overlays)

    def query_path_sliced(
        self,
        start: GridCoord,
        goal: GridCoord,
        filter_id: int = 0,
        allow_partial: bool = False,
        overlays: Sequence[PathCostOverlay] = (),
        clearance: int = 0,
    ) -> SlicedGridSearch:
        """Start a sliced search over a private copy of the current snapshot.

        Raises ``ValueError`` when the search cannot start.
        """
        profile = self.filter_with_clearance(filter_id, clearance)
        return SlicedGridSearch(
            copy.deepcopy(self.snapshot), start, goal, profile, allow_partial, list(overlays)
        )

    def nearest_walkable(
        self, start: GridCoord, filter_id: int = 0, clearance: int = 0
    ) -> GridCoord | None:
        profile = self.filter_with_clearance(filter_id, clearance)
        return nearest_walkable_cell(self.snapshot, start, profile)

    def raycast_line_of_sight(
        self,
        start: GridCoord,
        goal: GridCoord,
        filter_id: int = 0,
        overlays: Sequence[PathCostOverlay] = (),
        clearance: int = 0,
    ) -> bool:
        profile = self.filter_with_clearance(filter_id, clearance)
        return line_of_sight(self.snapshot, start, goal, profile, overlays)

    def estimate_cost(
        self,
        start: GridCoord,
        goal: GridCoord,
        filter_id: int = 0,
        overlays: Sequence[PathCostOverlay] = (),
        clearance: int = 0,
    ) -> CostEstimate:
        profile = self.filter_with_clearance(filter_id, clearance)
        return estimate_cost(self.snapshot, start, goal, profile, overlays)

    def build_flow_field(
        self,
        goal: GridCoord,
        filter_id: int = 0,
        overlays: Sequence[PathCostOverlay] = (),
        clearance: int = 0,
    ) -> FlowField | None:
        profile = self.filter_with_clearance(filter_id, clearance)
        return build_flow_field(self.snapshot, goal, profile, overlays)

    def register_filter(self, profile: PathFilterProfile) -> int:
        return self.filters.register(profile)

    def set_cell(self, coord: GridCoord, cell: CellData) -> bool:
        changed = self.snapshot.grid.set_cell(coord, cell)
        if changed:
            self.mark_dirty_region(GridAabb(coord, coord))
        return changed

    def set_walkable(self, coord: GridCoord, walkable: bool) -> bool:
        changed = self.snapshot.grid.set_walkable(coord, walkable)
        if changed:
            self.mark_dirty_region(GridAabb(coord, coord))
        return changed

    def fill_region(self, region: GridAabb, func: Callable[[GridCoord, CellData], None]) -> None:
        self.snapshot.grid.fill_region(region, func)
        self.mark_dirty_region(region)

    def add_transition(self, origin: GridCoord, transition: TransitionLink) -> None:
        target = transition.target
        self.snapshot.grid.add_transition(origin, transition)
        self.mark_dirty_region(
            GridAabb(
                GridCoord(*(min(a, b) for a, b in zip(origin, target))),
                GridCoord(*(max(a, b) for a, b in zip(origin, target))),
            )
        )

    def mark_dirty_region(self, region: GridAabb) -> None:
        """Queue every cluster, on every level, that the region overlaps."""
        clamped = region.clamp_to(self.snapshot.grid.bounds())
        if clamped is None:
            return
        self.pending_dirty_regions.append(clamped)
        for level in range(1, self.snapshot.config.clamped_hierarchy_levels() + 1):
            lo = self.snapshot.cluster_key_for_coord(level, clamped.min).coord
            hi = self.snapshot.cluster_key_for_coord(level, clamped.max).coord
            for coord in GridAabb(lo, hi):
                key = ClusterKey(level, coord)
                if key not in self.pending_dirty_clusters:
                    self.pending_dirty_clusters.append(key)

    def advance_tick(self) -> None:
        self.tick += 1

    def rebuild_budgeted(self, config: HpaPathfindingConfig, budget: int) -> list[ClusterKey]:
        """Consume up to ``budget`` dirty clusters (at least one) and rebuild the snapshot."""
        rebuilt: list[ClusterKey] = []
        for _ in range(max(budget, 1)):
            if not self.pending_dirty_clusters:
                break
            cluster = self.pending_dirty_clusters.popleft()
            self.cluster_versions[cluster] = self.cluster_versions.get(cluster, 0) + 1
            rebuilt.append(cluster)

        self.last_rebuilt_clusters = list(rebuilt)
        if not rebuilt:
            self.pending_dirty_regions.clear()
            self._apply_cluster_versions(())
            return rebuilt

        next_version = self.snapshot.version + 1
        self.snapshot = PathfindingSnapshot.build(self.snapshot.grid, config, next_version)
        self._apply_cluster_versions(rebuilt)
        self.pending_dirty_regions.clear()
        return rebuilt

    def _apply_cluster_versions(self, dirty_clusters: Sequence[ClusterKey]) -> None:
        dirty = set(dirty_clusters) | set(self.pending_dirty_clusters)
        for level in self.snapshot.levels:
            for key, cluster in level.clusters.items():
                cluster.version = self.cluster_versions.get(key, 0)
                cluster.dirty = key in dirty