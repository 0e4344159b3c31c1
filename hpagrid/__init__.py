"""Hierarchical pathfinding, flow fields and grid queries for 2D, 2.5D and 3D grids."""

__version__ = "0.1.0"

__all__ = [
    "ecs_api",
    "filters",
    "flow_field",
    "grid",
    "hierarchy",
    "portals",
    "search",
    "smoothing",
    "stats",
    "validation",
]