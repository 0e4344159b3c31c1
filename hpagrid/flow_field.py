"""Integration flow fields: per-cell cost to a goal and the best next step."""

from __future__ import annotations

import heapq
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Sequence

from hpagrid.filters import PathCostOverlay, PathFilterProfile
from hpagrid.grid import GridCoord, GridSpace, Vec3, deltas_for_mode
from hpagrid.hierarchy import PathfindingSnapshot
from hpagrid.search import nearest_walkable_cell

_EPSILON = 0.0001


@dataclass
class FlowFieldCell:
    integration_cost: float | None = None
    next: GridCoord | None = None


@dataclass
class FlowField:
    """Costs to reach a single goal from every cell, with a step direction per cell."""

    goal: GridCoord
    space: GridSpace
    dimensions: tuple[int, int, int]
    cells: list[FlowFieldCell] = field(default_factory=list)

    def index(self, coord: GridCoord) -> int | None:
        if not all(0 <= c < d for c, d in zip(coord, self.dimensions)):
            return None
        width, height, _ = self.dimensions
        return coord.z * width * height + coord.y * width + coord.x

    def cell(self, coord: GridCoord) -> FlowFieldCell | None:
        index = self.index(coord)
        return None if index is None else self.cells[index]

    def integration_cost(self, coord: GridCoord) -> float | None:
        cell = self.cell(coord)
        return None if cell is None else cell.integration_cost

    def next_step(self, coord: GridCoord) -> GridCoord | None:
        cell = self.cell(coord)
        return None if cell is None else cell.next

    def direction_at(self, coord: GridCoord) -> Vec3 | None:
        """Unit world-space direction towards the next step, or None without one."""
        nxt = self.next_step(coord)
        if nxt is None:
            return None
        here = self.space.to_world_center(coord)
        there = self.space.to_world_center(nxt)
        dx, dy, dz = (b - a for a, b in zip(here, there))
        length = math.sqrt(dx * dx + dy * dy + dz * dz)
        if length == 0.0 or not math.isfinite(length):
            return (0.0, 0.0, 0.0)
        return (dx / length, dy / length, dz / length)


def _predecessor_steps(
    snapshot: PathfindingSnapshot,
    coord: GridCoord,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay],
) -> list[tuple[GridCoord, float]]:
    grid = snapshot.grid
    config = snapshot.config
    steps = []
    for dx, dy, dz in deltas_for_mode(config.neighborhood):
        predecessor = coord.offset((-dx, -dy, -dz))
        if not grid.contains(predecessor):
            continue
        cost = next(
            (
                step_cost
                for neighbor, step_cost in grid.neighbor_cells(
                    predecessor,
                    config.neighborhood,
                    config.allow_corner_cutting,
                    profile,
                    overlays,
                )
                if neighbor == coord
            ),
            None,
        )
        if cost is not None:
            steps.append((predecessor, cost))
    return steps


def _push(heap: list, coord: GridCoord, cost: float) -> None:
    heapq.heappush(heap, (cost, -coord.x, -coord.y, -coord.z, coord))


def build_flow_field(
    snapshot: PathfindingSnapshot,
    goal: GridCoord,
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay] = (),
) -> FlowField | None:
    """Build a flow field towards ``goal``, moving a blocked goal to the nearest walkable cell."""
    overlays = list(overlays)
    grid = snapshot.grid
    config = snapshot.config
    if not grid.is_passable(goal, profile, overlays):
        goal = nearest_walkable_cell(snapshot, goal, profile)
        if goal is None:
            return None
    goal_index = grid.index(goal)
    if goal_index is None:
        return None

    incoming: dict[GridCoord, list[tuple[GridCoord, float]]] = defaultdict(list)
    for origin, transitions in sorted(grid.transitions.items()):
        for transition in transitions:
            incoming[transition.target].append((origin, transition.cost))

    costs: list[float | None] = [None] * len(grid.cells)
    costs[goal_index] = 0.0
    heap: list = []
    _push(heap, goal, 0.0)

    while heap:
        cost, _, _, _, current = heapq.heappop(heap)
        current_index = grid.index(current)
        if current_index is None:
            continue
        best_known = costs[current_index]
        if best_known is None or cost > best_known + _EPSILON:
            continue

        candidates = _predecessor_steps(snapshot, current, profile, overlays)
        candidates.extend(
            (origin, step_cost)
            for origin, step_cost in incoming.get(current, ())
            if grid.is_passable(origin, profile, overlays)
        )
        for predecessor, step_cost in candidates:
            index = grid.index(predecessor)
            if index is None:
                continue
            tentative = cost + step_cost
            existing = costs[index]
            if existing is None or tentative + _EPSILON < existing:
                costs[index] = tentative
                _push(heap, predecessor, tentative)

    nexts: list[GridCoord | None] = [None] * len(grid.cells)
    for coord in grid.bounds():
        index = grid.index(coord)
        if index is None or costs[index] is None or coord == goal:
            continue
        best: tuple[GridCoord, float] | None = None
        for neighbor, step_cost in grid.neighbor_cells(
            coord, config.neighborhood, config.allow_corner_cutting, profile, overlays
        ):
            neighbor_index = grid.index(neighbor)
            if neighbor_index is None or costs[neighbor_index] is None:
                continue
            total = step_cost + costs[neighbor_index]
            if best is None or total + _EPSILON < best[1]:
                best = (neighbor, total)
        nexts[index] = None if best is None else best[0]

    return FlowField(
        goal=goal,
        space=grid.space,
        dimensions=grid.dimensions,
        cells=[FlowFieldCell(c, n) for c, n in zip(costs, nexts)],
    )