from dataclasses import replace

import pytest

from hpagrid.filters import PathFilterProfile
from hpagrid.grid import GridCoord, GridStorage, NeighborhoodMode, TransitionKind, TransitionLink
from hpagrid.hierarchy import HpaPathfindingConfig, PathfindingSnapshot
from hpagrid.search import (
    PathQueryMode,
    SlicedGridSearch,
    estimate_cost,
    find_path,
    line_of_sight,
    nearest_walkable_cell,
)


def build_walled_snapshot() -> PathfindingSnapshot:
    grid = GridStorage((16, 16, 1))
    for x in range(4, 12):
        grid.set_walkable(GridCoord(x, 7, 0), False)
    grid.set_walkable(GridCoord(8, 7, 0), True)
    return PathfindingSnapshot.build(
        grid,
        HpaPathfindingConfig(
            grid_dimensions=(16, 16, 1),
            cluster_size=(8, 8, 1),
            hierarchy_levels=2,
            neighborhood=NeighborhoodMode.ORDINAL_2D,
        ),
        3,
    )


def build_split_snapshot() -> PathfindingSnapshot:
    grid = GridStorage((8, 8, 1))
    for y in range(8):
        grid.set_walkable(GridCoord(4, y, 0), False)
    return PathfindingSnapshot.build(
        grid,
        HpaPathfindingConfig(grid_dimensions=(8, 8, 1), cluster_size=(4, 4, 1), hierarchy_levels=1),
        1,
    )


def build_open_snapshot() -> PathfindingSnapshot:
    return PathfindingSnapshot.build(
        GridStorage((8, 8, 1)),
        HpaPathfindingConfig(grid_dimensions=(8, 8, 1), cluster_size=(4, 4, 1), hierarchy_levels=1),
        1,
    )


def assert_contiguous(corridor):
    for a, b in zip(corridor, corridor[1:]):
        assert max(abs(a.x - b.x), abs(a.y - b.y), abs(a.z - b.z)) == 1


def test_direct_a_star_finds_corridor_detour():
    snapshot = build_walled_snapshot()
    path = find_path(
        snapshot,
        GridCoord(2, 2, 0),
        GridCoord(13, 12, 0),
        PathFilterProfile(),
        PathQueryMode.DIRECT_ONLY,
        False,
        [],
    )
    assert path is not None
    assert path.corridor[0] == GridCoord(2, 2, 0)
    assert path.corridor[-1] == GridCoord(13, 12, 0)
    assert GridCoord(8, 7, 0) in path.corridor
    assert_contiguous(path.corridor)
    assert path.version == 3


def test_same_cluster_fallback_returns_path():
    snapshot = build_walled_snapshot()
    path = find_path(
        snapshot, GridCoord(1, 1, 0), GridCoord(6, 5, 0), PathFilterProfile(), PathQueryMode.AUTO
    )
    assert path is not None
    assert len(path.corridor) > 0
    assert path.corridor[-1] == GridCoord(6, 5, 0)


def test_hierarchical_path_crosses_clusters():
    snapshot = build_walled_snapshot()
    path = find_path(
        snapshot,
        GridCoord(1, 1, 0),
        GridCoord(14, 14, 0),
        PathFilterProfile(),
        PathQueryMode.COARSE_ONLY,
        False,
        [],
    )
    assert path is not None
    assert len(path.touched_clusters) >= 2
    assert path.corridor[0] == GridCoord(1, 1, 0)
    assert path.corridor[-1] == GridCoord(14, 14, 0)
    assert_contiguous(path.corridor)
    for coord in path.corridor:
        assert snapshot.grid.is_passable(coord, PathFilterProfile())


def test_partial_path_returns_best_effort_when_goal_unreachable():
    snapshot = build_split_snapshot()
    path = find_path(
        snapshot,
        GridCoord(1, 1, 0),
        GridCoord(7, 7, 0),
        PathFilterProfile(),
        PathQueryMode.DIRECT_ONLY,
        True,
        [],
    )
    assert path is not None
    assert path.is_partial
    assert path.corridor[-1] != GridCoord(7, 7, 0)
    assert path.corridor[-1].x == 3


def test_no_path_returns_none_without_partial_mode():
    snapshot = build_split_snapshot()
    path = find_path(
        snapshot,
        GridCoord(1, 1, 0),
        GridCoord(7, 7, 0),
        PathFilterProfile(),
        PathQueryMode.DIRECT_ONLY,
        False,
        [],
    )
    assert path is None


def test_nearest_walkable_and_los_utilities_work():
    grid = GridStorage((8, 8, 1))
    grid.set_walkable(GridCoord(3, 3, 0), False)
    snapshot = PathfindingSnapshot.build(
        grid,
        HpaPathfindingConfig(grid_dimensions=(8, 8, 1), cluster_size=(4, 4, 1), hierarchy_levels=1),
        1,
    )
    nearest = nearest_walkable_cell(snapshot, GridCoord(3, 3, 0), PathFilterProfile())
    assert nearest is not None
    assert nearest != GridCoord(3, 3, 0)
    assert line_of_sight(snapshot, GridCoord(0, 0, 0), GridCoord(2, 2, 0), PathFilterProfile(), [])
    assert not line_of_sight(
        snapshot, GridCoord(2, 2, 0), GridCoord(4, 4, 0), PathFilterProfile(), []
    )


def test_blocked_start_is_moved_to_nearest_walkable_cell():
    grid = GridStorage((8, 8, 1))
    grid.set_walkable(GridCoord(3, 3, 0), False)
    snapshot = PathfindingSnapshot.build(
        grid,
        HpaPathfindingConfig(grid_dimensions=(8, 8, 1), cluster_size=(4, 4, 1), hierarchy_levels=1),
        1,
    )
    path = find_path(
        snapshot, GridCoord(3, 3, 0), GridCoord(6, 6, 0), PathFilterProfile(), PathQueryMode.DIRECT_ONLY
    )
    assert path is not None
    assert path.corridor[0] != GridCoord(3, 3, 0)
    assert path.corridor[-1] == GridCoord(6, 6, 0)


def test_layered_transition_path_is_supported():
    grid = GridStorage((8, 8, 2))
    grid.add_transition(
        GridCoord(2, 2, 0), TransitionLink(GridCoord(2, 2, 1), 2.0, TransitionKind.STAIR)
    )
    snapshot = PathfindingSnapshot.build(
        grid,
        HpaPathfindingConfig(
            grid_dimensions=(8, 8, 2),
            cluster_size=(4, 4, 1),
            hierarchy_levels=1,
            neighborhood=NeighborhoodMode.ORDINAL_18,
        ),
        1,
    )
    path = find_path(
        snapshot,
        GridCoord(1, 1, 0),
        GridCoord(3, 3, 1),
        PathFilterProfile(),
        PathQueryMode.DIRECT_ONLY,
        False,
        [],
    )
    assert path is not None
    assert path.corridor[-1] == GridCoord(3, 3, 1)


def test_sliced_search_finishes_over_multiple_advances():
    snapshot = build_walled_snapshot()
    sliced = SlicedGridSearch(
        snapshot, GridCoord(1, 1, 0), GridCoord(14, 14, 0), PathFilterProfile(), False, []
    )
    finished = False
    for _ in range(64):
        if sliced.advance(4):
            finished = True
            break
    assert finished
    assert sliced.result is not None
    assert sliced.result.corridor[-1] == GridCoord(14, 14, 0)
    assert not sliced.result.is_partial


def test_sliced_search_reports_partial_when_goal_is_cut_off():
    snapshot = build_split_snapshot()
    sliced = SlicedGridSearch(
        snapshot, GridCoord(1, 1, 0), GridCoord(7, 7, 0), PathFilterProfile(), True, []
    )
    while not sliced.advance(8):
        pass
    assert sliced.result is not None
    assert sliced.result.is_partial
    assert sliced.advance(8) is True


def test_sliced_search_rejects_blocked_start():
    snapshot = build_split_snapshot()
    with pytest.raises(ValueError):
        SlicedGridSearch(snapshot, GridCoord(4, 0, 0), GridCoord(7, 7, 0), PathFilterProfile())


def test_sliced_search_rejects_goal_outside_grid():
    snapshot = build_open_snapshot()
    with pytest.raises(ValueError):
        SlicedGridSearch(snapshot, GridCoord(0, 0, 0), GridCoord(9, 0, 0), PathFilterProfile())


def test_filter_profiles_can_choose_a_cheaper_detour():
    grid = GridStorage((8, 4, 1))
    for x in range(1, 7):
        coord = GridCoord(x, 1, 0)
        grid.set_cell(coord, replace(grid.cell(coord), area=3))
    snapshot = PathfindingSnapshot.build(
        grid,
        HpaPathfindingConfig(
            grid_dimensions=(8, 4, 1),
            cluster_size=(4, 4, 1),
            hierarchy_levels=1,
            neighborhood=NeighborhoodMode.CARDINAL_2D,
        ),
        1,
    )
    direct_bias = PathFilterProfile().with_area_cost(3, 1.1)
    detour_bias = PathFilterProfile().with_area_cost(3, 8.0)

    direct_path = find_path(
        snapshot, GridCoord(0, 1, 0), GridCoord(7, 1, 0), direct_bias, PathQueryMode.DIRECT_ONLY
    )
    detour_path = find_path(
        snapshot, GridCoord(0, 1, 0), GridCoord(7, 1, 0), detour_bias, PathQueryMode.DIRECT_ONLY
    )

    def hot(path):
        return sum(1 for coord in path.corridor if coord.y == 1 and 1 <= coord.x < 7)

    assert hot(direct_path) >= 5
    assert hot(detour_path) < hot(direct_path)


def test_straight_path_cost_and_smoothed_waypoints():
    snapshot = build_open_snapshot()
    path = find_path(
        snapshot, GridCoord(0, 0, 0), GridCoord(5, 0, 0), PathFilterProfile(), PathQueryMode.DIRECT_ONLY
    )
    assert path is not None
    assert path.total_cost == pytest.approx(5.0)
    assert path.corridor == [GridCoord(x, 0, 0) for x in range(6)]
    assert path.waypoints == [(0.5, 0.5, 0.5), (5.5, 0.5, 0.5)]


def test_estimate_cost_within_one_cluster_uses_direct_search():
    snapshot = build_open_snapshot()
    estimate = estimate_cost(snapshot, GridCoord(0, 0, 0), GridCoord(3, 0, 0), PathFilterProfile(), [])
    assert estimate.used_hierarchy is False
    assert estimate.estimated_cost == pytest.approx(3.0)


def test_estimate_cost_across_clusters_uses_hierarchy():
    snapshot = build_open_snapshot()
    estimate = estimate_cost(snapshot, GridCoord(0, 0, 0), GridCoord(7, 7, 0), PathFilterProfile(), [])
    assert estimate.used_hierarchy is True
    assert estimate.estimated_cost is not None
    assert estimate.estimated_cost >= 7.0


def test_estimate_cost_is_none_when_unreachable():
    snapshot = build_split_snapshot()
    estimate = estimate_cost(snapshot, GridCoord(1, 1, 0), GridCoord(7, 7, 0), PathFilterProfile(), [])
    assert estimate.estimated_cost is None
    assert estimate.used_hierarchy is True