"""Checking whether a previously computed path still matches the grid."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from hpagrid.grid import GridCoord
from hpagrid.hierarchy import ClusterVersionStamp


class PathInvalidationReason(Enum):
    DIRTY_CLUSTER = "dirty_cluster"
    SNAPSHOT_ADVANCED = "snapshot_advanced"
    MISSING_CORRIDOR = "missing_corridor"
    GOAL_BECAME_BLOCKED = "goal_became_blocked"


@dataclass
class PathValidationRecord:
    goal: GridCoord | None = None
    version: int = 0
    traversed_clusters: list[ClusterVersionStamp] = field(default_factory=list)

    def is_valid_for(
        self, current_version: int, cluster_versions: Sequence[ClusterVersionStamp]
    ) -> bool:
        """True when the snapshot version and every traversed cluster's version still match."""
        if self.version != current_version:
            return False
        for expected in self.traversed_clusters:
            actual = next(
                (stamp for stamp in cluster_versions if stamp.cluster == expected.cluster), None
            )
            if actual is None or actual.version != expected.version:
                return False
        return True