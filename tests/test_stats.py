from hpagrid.stats import PathfindingStats


def test_record_failure_counts_and_stores_reason():
    stats = PathfindingStats()
    stats.record_failure("goal blocked")
    assert stats.total_queries_failed == 1
    assert stats.last_failed_queries == ["goal blocked"]


def test_failure_history_keeps_most_recent_eight():
    stats = PathfindingStats()
    reasons = [f"reason-{i}" for i in range(12)]
    for reason in reasons:
        stats.record_failure(reason)
    assert stats.total_queries_failed == len(reasons)
    assert stats.last_failed_queries == reasons[-8:]


def test_fresh_stats_start_empty():
    stats = PathfindingStats()
    assert stats.last_failed_queries == []
    assert stats.total_queries_started == stats.total_queries_failed == 0
    other = PathfindingStats()
    stats.record_failure("x")
    assert other.last_failed_queries == []