"""Turning a cell corridor into world-space waypoints."""

from __future__ import annotations

from enum import Enum
from typing import Sequence

from hpagrid.filters import PathCostOverlay, PathFilterProfile
from hpagrid.grid import GridCoord, GridStorage, Vec3


class PathSmoothingMode(Enum):
    NONE = "none"
    LINE_OF_SIGHT = "line_of_sight"


def smooth_corridor(
    grid: GridStorage,
    corridor: Sequence[GridCoord],
    profile: PathFilterProfile,
    overlays: Sequence[PathCostOverlay],
    mode: PathSmoothingMode,
) -> list[Vec3]:
    """Return waypoints for the corridor, skipping cells that have line of sight."""
    if not corridor:
        return []
    if mode is PathSmoothingMode.NONE:
        return [grid.grid_to_world_center(coord) for coord in corridor]

    output = [grid.grid_to_world_center(corridor[0])]
    anchor = 0
    while anchor + 1 < len(corridor):
        furthest = anchor + 1
        for candidate in range(anchor + 1, len(corridor)):
            if grid.raycast_line_of_sight(
                corridor[anchor], corridor[candidate], profile, overlays
            ):
                furthest = candidate
            else:
                break
        output.append(grid.grid_to_world_center(corridor[furthest]))
        anchor = furthest
    return output