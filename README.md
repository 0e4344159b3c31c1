# hpagrid

Hierarchical pathfinding for large 2D, 2.5D and 3D grids.

`hpagrid` stores a grid of cells and builds a cluster hierarchy over it. The
hierarchy is made of portal nodes on cluster borders and abstract edges
between them, in the style of HPA*. The package answers path queries against
that hierarchy. It offers:

- plain and hierarchical A*;
- sliced searches that run in steps under a budget;
- flow fields;
- line-of-sight checks and nearest-walkable lookups;
- cost estimates;
- filter profiles;
- rebuilds after the grid changes.

## Installation

```
pip install .
```

To include the test dependencies:

```
pip install ".[test]"
```

The package needs only the standard library. It runs on Python 3.10 and
later.

## Modules

- `hpagrid.grid` holds the basic types.
  - `GridCoord`, `GridAabb` (an inclusive box of cells that you can iterate)
    and `GridSpace` (which maps between world and grid).
  - `NeighborhoodMode` has five values: `CARDINAL_2D`, `ORDINAL_2D`,
    `CARDINAL_3D`, `ORDINAL_18` and `ORDINAL_26`.
  - `GridStorage` holds every cell as a `CellData`. A cell has `walkable`,
    `area`, `traversal_mask`, `base_cost` and a `clearance` value that the
    grid computes itself. It is the size of the walkable square reaching
    towards +x and +y.
  - `TransitionLink` connects cells that are not neighbours. Its kinds are
    `TransitionKind.LINK`, `LADDER`, `STAIR`, `ELEVATOR` and `TELEPORT`. A
    link is two-way unless you call `as_one_way()`.
- `hpagrid.filters` decides which cells an agent may enter.
  - `AreaMask` is a set of flags.
  - `PathFilterProfile` sets the allowed and blocked masks, the clearance
    the agent needs, and a cost multiplier for each area type.
  - `PathCostOverlay(region, added_cost)` adds cost to every cell in a
    region. When the added cost is `math.inf`, the region is blocked.
  - `PathFilterLibrary` gives each registered profile an id.
  - `overlay_signature` hashes a list of overlays.
- `hpagrid.smoothing` turns a corridor into world waypoints with
  `smooth_corridor`. `PathSmoothingMode.NONE` keeps every cell centre.
  `PathSmoothingMode.LINE_OF_SIGHT` drops the points that can be seen past.
- `hpagrid.portals` holds the building blocks of the hierarchy: border
  detection, portal selection and bounded searches.
- `hpagrid.hierarchy` holds the snapshot and its configuration.
  - `HpaPathfindingConfig` sets the grid size, origin, cell size, cluster
    size, number of hierarchy levels (clamped to 1–4), neighbourhood, corner
    cutting, the distance used for direct search and the smoothing mode.
  - `PathfindingSnapshot.build(grid, config, version)` builds the abstract
    graph. Its parts are `levels`, `nodes` and `edges`.
  - `cluster_size_for_level` gives the cluster size at a level. The base
    size doubles at each level above the first.
- `hpagrid.search` runs queries against a snapshot.
  - `find_path(snapshot, start, goal, profile, mode, allow_partial, overlays)`
    finds a path. The modes are `PathQueryMode.AUTO`, `DIRECT_ONLY`,
    `COARSE_ONLY` and `SLICED`.
  - Other functions: `estimate_cost`, `line_of_sight` and
    `nearest_walkable_cell`.
  - A `ResolvedPath` holds `corridor`, `waypoints`, `total_cost`,
    `is_partial`, the snapshot `version` and `touched_clusters`.
  - If the start is blocked, `find_path` moves it to the nearest walkable
    cell first.
- `hpagrid.flow_field`: `build_flow_field` computes, for every cell, the
  cost to reach one goal. A `FlowField` answers `integration_cost`,
  `next_step` and `direction_at`.
- `hpagrid.ecs_api`: `PathfindingGrid` wraps all of the above.
  - It keeps registered filters. Filter `0` is the default profile.
  - Every query method takes an optional `clearance`, which raises the
    profile's clearance.
  - Edits go through `set_cell`, `set_walkable`, `fill_region` and
    `add_transition`. Each edit queues the clusters it touches, on every
    level.
  - `rebuild_budgeted(config, budget)` takes up to `budget` dirty clusters
    from the queue, raises their versions and rebuilds the snapshot.
- `hpagrid.validation`: `PathValidationRecord.is_valid_for` checks a stored
  path against the current snapshot version and the current cluster
  versions.
- `hpagrid.stats`: `PathfindingStats` is a set of counters. Its
  `record_failure` method keeps the last eight failure reasons.

## Example

```python
from hpagrid.ecs_api import PathfindingGrid
from hpagrid.filters import PathFilterProfile
from hpagrid.grid import GridCoord, NeighborhoodMode
from hpagrid.hierarchy import HpaPathfindingConfig
from hpagrid.search import PathQueryMode

config = HpaPathfindingConfig(
    grid_dimensions=(16, 16, 1),
    cluster_size=(8, 8, 1),
    neighborhood=NeighborhoodMode.ORDINAL_2D,
)
world = PathfindingGrid.from_config(config)

# A wall with one gap.
for x in range(4, 12):
    if x != 8:
        world.set_walkable(GridCoord(x, 7, 0), False)
world.rebuild_budgeted(config, 64)

path = world.query_path(GridCoord(1, 1, 0), GridCoord(14, 14, 0), mode=PathQueryMode.AUTO)
if path is not None:
    print(path.total_cost, path.corridor[-1], len(path.waypoints))

wide = world.register_filter(PathFilterProfile.named("wide").with_clearance(2))
flow = world.build_flow_field(GridCoord(14, 14, 0), wide)
if flow is not None:
    print(flow.next_step(GridCoord(1, 1, 0)))
```

## Sliced searches

`SlicedGridSearch(snapshot, start, goal, profile, allow_partial, overlays)`
raises `ValueError` in two cases: when the start or the goal lies outside the
grid, and when the start cell is not passable.
`PathfindingGrid.query_path_sliced` runs the search over a private copy of
the current snapshot.

Each call to `advance(budget)` expands at most `budget` cells, and always at
least one. It returns `False` while the search is still running and `True`
once it has finished. After that, the `result` attribute holds one of three
things:

- the `ResolvedPath`;
- a partial path, when `allow_partial` was set;
- `None`.

```python
from hpagrid.search import SlicedGridSearch

search = world.query_path_sliced(GridCoord(1, 1, 0), GridCoord(14, 14, 0))
while not search.advance(4):
    pass
print(search.result)
```

## Path validation

A `ResolvedPath` records two things: the snapshot version, and the version
stamps of the level-one clusters its corridor crosses. Store them in a
`PathValidationRecord`. After the grid has been rebuilt, call
`is_valid_for(world.version(), world.snapshot.cluster_versions_for_corridor(path.corridor))`.
It returns `False` if either the snapshot version or one of the crossed
clusters has changed.

## What the package does not do

`hpagrid` is a library of data structures and synchronous queries. It has:

- no command-line tool;
- no queue that spreads queries across frames or threads;
- no path cache;
- no syncing of moving obstacles;
- no debug drawing.

Queries run when you call them. Rebuilds happen only when you call
`rebuild_budgeted`.

## Running the tests

```
pytest
```