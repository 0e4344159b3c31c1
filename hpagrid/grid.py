"""Grid coordinates, cell storage, neighbourhoods and transitions."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, ClassVar, Iterable, Iterator, Sequence

from hpagrid.filters import AreaMask, PathCostOverlay, PathFilterProfile

Vec3 = tuple[float, float, float]
Delta = tuple[int, int, int]


class WorldRoundingPolicy(Enum):
    """How world positions are snapped to grid cells."""

    FLOOR = "floor"
    ROUND = "round"

    def apply(self, value: float) -> int:
        if self is WorldRoundingPolicy.FLOOR:
            return math.floor(value)
        return math.floor(value + 0.5)


class NeighborhoodMode(Enum):
    """Which neighbouring cells a cell connects to."""

    CARDINAL_2D = "cardinal_2d"
    ORDINAL_2D = "ordinal_2d"
    CARDINAL_3D = "cardinal_3d"
    ORDINAL_18 = "ordinal_18"
    ORDINAL_26 = "ordinal_26"

    @staticmethod
    def movement_cost(delta: Iterable[int]) -> float:
        """Euclidean length of a unit step along the axes the delta moves on."""
        return math.sqrt(sum(1 for axis in delta if axis != 0))


@dataclass(frozen=True, order=True)
class GridCoord:
    x: int
    y: int
    z: int

    ZERO: ClassVar[GridCoord]

    def __iter__(self) -> Iterator[int]:
        yield self.x
        yield self.y
        yield self.z

    def offset(self, delta: Iterable[int]) -> GridCoord:
        dx, dy, dz = delta
        return GridCoord(self.x + dx, self.y + dy, self.z + dz)


GridCoord.ZERO = GridCoord(0, 0, 0)


@dataclass(frozen=True)
class GridAabb:
    """Inclusive axis-aligned box of grid cells."""

    min: GridCoord
    max: GridCoord

    @classmethod
    def from_min_size(cls, origin: GridCoord, size: Sequence[int]) -> GridAabb:
        sx, sy, sz = size
        return cls(origin, GridCoord(origin.x + sx - 1, origin.y + sy - 1, origin.z + sz - 1))

    def contains(self, coord: GridCoord) -> bool:
        return all(lo <= c <= hi for lo, c, hi in zip(self.min, coord, self.max))

    def intersects(self, other: GridAabb) -> bool:
        return all(
            a_lo <= b_hi and b_lo <= a_hi
            for a_lo, a_hi, b_lo, b_hi in zip(self.min, self.max, other.min, other.max)
        )

    def clamp_to(self, bounds: GridAabb) -> GridAabb | None:
        lo = GridCoord(*(max(a, b) for a, b in zip(self.min, bounds.min)))
        hi = GridCoord(*(min(a, b) for a, b in zip(self.max, bounds.max)))
        if any(l > h for l, h in zip(lo, hi)):
            return None
        return GridAabb(lo, hi)

    def __iter__(self) -> Iterator[GridCoord]:
        for z in range(self.min.z, self.max.z + 1):
            for y in range(self.min.y, self.max.y + 1):
                for x in range(self.min.x, self.max.x + 1):
                    yield GridCoord(x, y, z)

    def iter(self) -> Iterator[GridCoord]:
        return iter(self)


@dataclass(frozen=True)
class GridSpace:
    """Mapping between world positions and grid cells."""

    origin: Vec3 = (0.0, 0.0, 0.0)
    cell_size: float = 1.0
    rounding: WorldRoundingPolicy = WorldRoundingPolicy.FLOOR

    def to_grid(self, position: Sequence[float]) -> GridCoord:
        return GridCoord(
            *(
                self.rounding.apply((p - o) / self.cell_size)
                for p, o in zip(position, self.origin)
            )
        )

    def to_world_center(self, coord: GridCoord) -> Vec3:
        x, y, z = ((o + (c + 0.5) * self.cell_size) for o, c in zip(self.origin, coord))
        return (x, y, z)


@dataclass
class CellData:
    walkable: bool = True
    area: int = 0
    traversal_mask: AreaMask = field(default_factory=lambda: AreaMask.from_bit(0))
    base_cost: float = 1.0
    clearance: int = 0


class TransitionKind(Enum):
    LINK = "link"
    LADDER = "ladder"
    STAIR = "stair"
    ELEVATOR = "elevator"
    TELEPORT = "teleport"


@dataclass(frozen=True)
class TransitionLink:
    """An explicit connection from one cell to another, such as stairs."""

    target: GridCoord
    cost: float
    kind: TransitionKind
    required_mask: AreaMask = AreaMask.EMPTY
    one_way: bool = False

    def with_required_mask(self, required_mask: AreaMask) -> TransitionLink:
        return replace(self, required_mask=required_mask)

    def as_one_way(self) -> TransitionLink:
        return replace(self, one_way=True)


_CARDINAL_3D: tuple[Delta, ...] = (
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
    (0, 0, 1),
    (0, 0, -1),
)


def deltas_for_mode(mode: NeighborhoodMode) -> list[Delta]:
    """Neighbour offsets for a neighbourhood mode, in z, y, x order."""
    deltas: list[Delta] = []
    for z in (-1, 0, 1):
        for y in (-1, 0, 1):
            for x in (-1, 0, 1):
                if x == 0 and y == 0 and z == 0:
                    continue
                span = abs(x) + abs(y) + abs(z)
                include = (
                    (mode is NeighborhoodMode.CARDINAL_2D and z == 0 and span == 1)
                    or (mode is NeighborhoodMode.ORDINAL_2D and z == 0)
                    or (mode is NeighborhoodMode.CARDINAL_3D and span == 1)
                    or (mode is NeighborhoodMode.ORDINAL_18 and span <= 2)
                    or mode is NeighborhoodMode.ORDINAL_26
                )
                if include:
                    deltas.append((x, y, z))
    return deltas


class GridStorage:
    """Dense 3D cell storage with per-cell clearance and explicit transitions."""

    def __init__(
        self,
        dimensions: Sequence[int],
        origin: Sequence[float] = (0.0, 0.0, 0.0),
        cell_size: float = 1.0,
        rounding: WorldRoundingPolicy = WorldRoundingPolicy.FLOOR,
    ) -> None:
        width, height, depth = (int(d) for d in dimensions)
        self.dimensions: tuple[int, int, int] = (width, height, depth)
        ox, oy, oz = (float(o) for o in origin)
        self.space = GridSpace((ox, oy, oz), float(cell_size), rounding)
        self.cells: list[CellData] = [CellData() for _ in range(width * height * depth)]
        self.transitions: dict[GridCoord, list[TransitionLink]] = {}
        self.recompute_clearance()

    def bounds(self) -> GridAabb:
        return GridAabb.from_min_size(GridCoord.ZERO, self.dimensions)

    def contains(self, coord: GridCoord) -> bool:
        return all(0 <= c < d for c, d in zip(coord, self.dimensions))

    def index(self, coord: GridCoord) -> int | None:
        if not self.contains(coord):
            return None
        width, height, _ = self.dimensions
        return coord.z * width * height + coord.y * width + coord.x

    def cell(self, coord: GridCoord) -> CellData | None:
        index = self.index(coord)
        return None if index is None else self.cells[index]

    def set_cell(self, coord: GridCoord, cell: CellData) -> bool:
        index = self.index(coord)
        if index is None:
            return False
        walkable_changed = self.cells[index].walkable != cell.walkable
        self.cells[index] = replace(cell)
        if walkable_changed:
            self.recompute_clearance()
        return True

    def fill_region(self, region: GridAabb, func: Callable[[GridCoord, CellData], None]) -> None:
        clamped = region.clamp_to(self.bounds())
        if clamped is None:
            return
        for coord in clamped:
            cell = self.cell(coord)
            if cell is not None:
                func(coord, cell)
        self.recompute_clearance()

    def set_walkable(self, coord: GridCoord, walkable: bool) -> bool:
        cell = self.cell(coord)
        if cell is None:
            return False
        changed = cell.walkable != walkable
        cell.walkable = walkable
        if changed:
            self.recompute_clearance()
        return True

    def recompute_clearance(self) -> None:
        """Recompute each cell's square clearance towards +x and +y, per layer."""
        width, height, depth = self.dimensions
        if width == 0 or height == 0:
            return
        layer_len = width * height
        cells = self.cells
        for layer in range(depth):
            base = layer * layer_len
            for y in reversed(range(height)):
                for x in reversed(range(width)):
                    index = base + y * width + x
                    cell = cells[index]
                    if not cell.walkable:
                        cell.clearance = 0
                        continue
                    right = cells[index + 1].clearance if x + 1 < width else 0
                    down = cells[index + width].clearance if y + 1 < height else 0
                    diagonal = (
                        cells[index + width + 1].clearance
                        if x + 1 < width and y + 1 < height
                        else 0
                    )
                    cell.clearance = 1 + min(right, down, diagonal)

    def add_transition(self, origin: GridCoord, transition: TransitionLink) -> None:
        self.transitions.setdefault(origin, []).append(transition)
        if not transition.one_way:
            self.transitions.setdefault(transition.target, []).append(
                TransitionLink(
                    target=origin,
                    cost=transition.cost,
                    kind=transition.kind,
                    required_mask=transition.required_mask,
                    one_way=False,
                )
            )

    def transitions_from(self, coord: GridCoord) -> list[TransitionLink]:
        return list(self.transitions.get(coord, ()))

    def world_to_grid(self, position: Sequence[float]) -> GridCoord:
        return self.space.to_grid(position)

    def grid_to_world_center(self, coord: GridCoord) -> Vec3:
        return self.space.to_world_center(coord)

    def nearest_walkable(self, start: GridCoord, profile: PathFilterProfile) -> GridCoord | None:
        """Breadth-first search over cardinal 3D steps for the closest passable cell."""
        if self.is_passable(start, profile, ()):
            return start
        queue = deque([start])
        visited = {start}
        while queue:
            current = queue.popleft()
            for delta in _CARDINAL_3D:
                neighbor = current.offset(delta)
                if neighbor in visited or not self.contains(neighbor):
                    continue
                if self.is_passable(neighbor, profile, ()):
                    return neighbor
                visited.add(neighbor)
                queue.append(neighbor)
        return None

    def is_passable(
        self,
        coord: GridCoord,
        profile: PathFilterProfile,
        overlays: Iterable[PathCostOverlay] = (),
    ) -> bool:
        cell = self.cell(coord)
        if cell is None:
            return False
        if not cell.walkable or cell.clearance < profile.clearance:
            return False
        if cell.traversal_mask.intersects(profile.blocked_mask):
            return False
        if not profile.allowed_mask.contains(cell.traversal_mask):
            return False
        return not any(
            overlay.region.contains(coord) and math.isinf(overlay.added_cost)
            for overlay in overlays
        )

    def traversal_cost(
        self,
        origin: GridCoord,
        target: GridCoord,
        profile: PathFilterProfile,
        overlays: Sequence[PathCostOverlay] = (),
    ) -> float | None:
        target_cell = self.cell(target)
        if target_cell is None or not self.is_passable(target, profile, overlays):
            return None
        overlay_cost = sum(
            overlay.added_cost for overlay in overlays if overlay.region.contains(target)
        )
        movement = NeighborhoodMode.movement_cost(
            (target.x - origin.x, target.y - origin.y, target.z - origin.z)
        )
        return movement * (
            target_cell.base_cost * profile.multiplier_for(target_cell.area) + overlay_cost
        )

    def neighbor_cells(
        self,
        coord: GridCoord,
        neighborhood: NeighborhoodMode,
        allow_corner_cutting: bool,
        profile: PathFilterProfile,
        overlays: Sequence[PathCostOverlay] = (),
    ) -> list[tuple[GridCoord, float]]:
        """Reachable neighbours with step costs, followed by transition targets."""
        output: list[tuple[GridCoord, float]] = []
        for delta in deltas_for_mode(neighborhood):
            nxt = coord.offset(delta)
            if not self.contains(nxt):
                continue
            dx, dy, _ = delta
            if not allow_corner_cutting and dx != 0 and dy != 0:
                side_a = GridCoord(coord.x + dx, coord.y, coord.z)
                side_b = GridCoord(coord.x, coord.y + dy, coord.z)
                if not self.is_passable(side_a, profile, overlays) or not self.is_passable(
                    side_b, profile, overlays
                ):
                    continue
            cost = self.traversal_cost(coord, nxt, profile, overlays)
            if cost is not None:
                output.append((nxt, cost))
        for transition in self.transitions.get(coord, ()):
            if transition.required_mask != AreaMask.EMPTY and not profile.allowed_mask.contains(
                transition.required_mask
            ):
                continue
            if self.is_passable(transition.target, profile, overlays):
                output.append((transition.target, transition.cost))
        return output

    def raycast_line_of_sight(
        self,
        start: GridCoord,
        goal: GridCoord,
        profile: PathFilterProfile,
        overlays: Sequence[PathCostOverlay] = (),
    ) -> bool:
        """Sample the straight line between cell centres; every sample must be passable."""
        start_world = self.grid_to_world_center(start)
        goal_world = self.grid_to_world_center(goal)
        span = max(max(abs(g - s) for s, g in zip(start_world, goal_world)), 1.0)
        steps = math.ceil(span / max(self.space.cell_size, 0.001))
        for step in range(steps + 1):
            t = step / steps
            sample = tuple(s + (g - s) * t for s, g in zip(start_world, goal_world))
            if not self.is_passable(self.world_to_grid(sample), profile, overlays):
                return False
        return True