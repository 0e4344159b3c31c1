"""Counters describing pathfinding activity."""

from __future__ import annotations

from dataclasses import dataclass, field

_FAILURE_HISTORY = 8


@dataclass
class PathfindingStats:
    total_queries_started: int = 0
    total_queries_completed: int = 0
    total_queries_failed: int = 0
    total_queries_invalidated: int = 0
    queue_depth: int = 0
    cache_entries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_evictions: int = 0
    dirty_cluster_count: int = 0
    clusters_rebuilt: int = 0
    async_in_flight: int = 0
    sliced_expansions: int = 0
    last_rebuild_micros: int = 0
    last_query_process_micros: int = 0
    last_publish_micros: int = 0
    last_failed_queries: list[str] = field(default_factory=list)

    def record_failure(self, reason: str) -> None:
        """Count a failed query and keep only the most recent reasons."""
        self.total_queries_failed += 1
        self.last_failed_queries.append(str(reason))
        if len(self.last_failed_queries) > _FAILURE_HISTORY:
            del self.last_failed_queries[0]