from hpagrid.grid import GridAabb, GridCoord, GridStorage, NeighborhoodMode, TransitionKind, TransitionLink
from hpagrid.hierarchy import (
    ClusterKey,
    ClusterVersionStamp,
    EdgeKind,
    EdgeRoute,
    HpaPathfindingConfig,
    PathfindingSnapshot,
    cluster_size_for_level,
)


def grid_2d():
    return GridStorage((16, 16, 1))


def count_portals(snapshot, left, right):
    count = 0
    for node_id, edges in enumerate(snapshot.edges):
        for edge in edges:
            if edge.kind is not EdgeKind.INTER_CLUSTER or node_id >= edge.to:
                continue
            a = snapshot.cluster_key_for_coord(1, snapshot.nodes[node_id].coord)
            b = snapshot.cluster_key_for_coord(1, snapshot.nodes[edge.to].coord)
            if (a == left and b == right) or (a == right and b == left):
                count += 1
    return count


def strip_snapshot(grid=None):
    return PathfindingSnapshot.build(
        grid or GridStorage((16, 8, 1)),
        HpaPathfindingConfig(grid_dimensions=(16, 8, 1), cluster_size=(8, 8, 1), hierarchy_levels=1),
        1,
    )


LEFT = ClusterKey(1, GridCoord(0, 0, 0))
RIGHT = ClusterKey(1, GridCoord(1, 0, 0))


def test_cluster_partitioning_covers_map_edges():
    snapshot = PathfindingSnapshot.build(
        grid_2d(),
        HpaPathfindingConfig(
            grid_dimensions=(16, 16, 1),
            cluster_size=(6, 6, 1),
            hierarchy_levels=1,
            neighborhood=NeighborhoodMode.ORDINAL_2D,
        ),
        1,
    )
    level = snapshot.level(1)
    key = ClusterKey(1, GridCoord(2, 2, 0))
    assert key in level.clusters
    assert level.clusters[key].bounds == GridAabb(GridCoord(12, 12, 0), GridCoord(15, 15, 0))


def test_entrance_detection_creates_inter_cluster_edges():
    snapshot = PathfindingSnapshot.build(
        grid_2d(),
        HpaPathfindingConfig(grid_dimensions=(16, 16, 1), cluster_size=(8, 8, 1), hierarchy_levels=1),
        1,
    )
    assert any(edge.kind is EdgeKind.INTER_CLUSTER for edges in snapshot.edges for edge in edges)


def test_hierarchy_builds_super_clusters():
    snapshot = PathfindingSnapshot.build(
        grid_2d(),
        HpaPathfindingConfig(grid_dimensions=(32, 32, 1), cluster_size=(8, 8, 1), hierarchy_levels=2),
        1,
    )
    assert cluster_size_for_level((8, 8, 1), 2) == (16, 16, 2)
    assert snapshot.level(2) is not None
    assert snapshot.level(2).cluster_size == (16, 16, 2)


def test_layered_portal_nodes_exist():
    grid = GridStorage((8, 8, 2))
    grid.add_transition(
        GridCoord(3, 3, 0), TransitionLink(GridCoord(3, 3, 1), 2.0, TransitionKind.STAIR)
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
    assert any(edge.cost >= 2.0 for edges in snapshot.edges for edge in edges)


def test_long_full_border_merges_down_to_endpoint_portals():
    assert count_portals(strip_snapshot(), LEFT, RIGHT) == 2


def test_border_gaps_split_portal_groups():
    grid = GridStorage((16, 8, 1))
    grid.set_walkable(GridCoord(7, 3, 0), False)
    grid.set_walkable(GridCoord(7, 4, 0), False)
    assert count_portals(strip_snapshot(grid), LEFT, RIGHT) == 4


def test_fully_blocked_border_has_no_portals():
    grid = GridStorage((16, 8, 1))
    for y in range(8):
        grid.set_walkable(GridCoord(7, y, 0), False)
    snapshot = strip_snapshot(grid)
    assert count_portals(snapshot, LEFT, RIGHT) == 0
    assert snapshot.nodes == []


def test_cluster_size_for_first_level_is_base():
    assert cluster_size_for_level((8, 4, 1), 1) == (8, 4, 1)
    assert cluster_size_for_level((8, 4, 1), 3) == (32, 16, 4)


def test_cluster_key_for_coord():
    snapshot = strip_snapshot()
    assert snapshot.cluster_key_for_coord(1, GridCoord(13, 4, 0)) == RIGHT
    assert snapshot.cluster_key_for_coord(1, GridCoord(7, 7, 0)) == LEFT


def test_cluster_versions_for_corridor_are_distinct_and_sorted():
    snapshot = strip_snapshot()
    snapshot.level(1).clusters[LEFT].version = 3
    corridor = [GridCoord(9, 0, 0), GridCoord(0, 0, 0), GridCoord(1, 0, 0), GridCoord(10, 0, 0)]
    assert snapshot.cluster_versions_for_corridor(corridor) == [
        ClusterVersionStamp(LEFT, 3),
        ClusterVersionStamp(RIGHT, 0),
    ]


def test_dirty_clusters_lists_flagged_clusters():
    snapshot = strip_snapshot()
    assert snapshot.dirty_clusters() == []
    snapshot.level(1).clusters[RIGHT].dirty = True
    assert snapshot.dirty_clusters() == [RIGHT]


def test_edge_route_reversed():
    route = EdgeRoute(cells=(GridCoord(0, 0, 0), GridCoord(1, 0, 0)))
    assert route.reversed().cells == (GridCoord(1, 0, 0), GridCoord(0, 0, 0))
    assert EdgeRoute(nodes=(1, 2, 3)).reversed().nodes == (3, 2, 1)
    assert EdgeRoute().reversed() == EdgeRoute()


def test_clamped_hierarchy_levels_is_at_least_one():
    assert HpaPathfindingConfig(hierarchy_levels=0).clamped_hierarchy_levels() == 1
    assert HpaPathfindingConfig(hierarchy_levels=2).clamped_hierarchy_levels() == 2


def test_intra_cluster_routes_join_their_nodes():
    snapshot = strip_snapshot()
    intra = [
        (node_id, edge)
        for node_id, edges in enumerate(snapshot.edges)
        for edge in edges
        if edge.kind is EdgeKind.INTRA_CLUSTER
    ]
    assert intra
    for node_id, edge in intra:
        ends = {edge.route.cells[0], edge.route.cells[-1]}
        assert ends == {snapshot.nodes[node_id].coord, snapshot.nodes[edge.to].coord}


def test_higher_level_nodes_project_onto_lower_anchors():
    snapshot = PathfindingSnapshot.build(
        GridStorage((32, 32, 1)),
        HpaPathfindingConfig(grid_dimensions=(32, 32, 1), cluster_size=(8, 8, 1), hierarchy_levels=2),
        1,
    )
    upper = [node for node in snapshot.nodes if node.level == 2]
    assert upper
    for node in upper:
        anchor = snapshot.nodes[node.anchor_lower]
        assert anchor.level == 1
        assert anchor.coord == node.coord
        assert any(
            edge.to == anchor.node_id and edge.kind is EdgeKind.PROJECTION and edge.cost == 0.0
            for edge in snapshot.edges[node.node_id]
        )