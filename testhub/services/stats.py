"""
Dashboard statistics.

Read-only aggregates computed over the repository interface, so the
numbers are identical on either backend.

Functions:
    - get_test_case_status_counts:  count per test case status (every status present)
    - get_test_run_stats:           total runs, average completed duration, pass rate
    - get_dashboard:                everything above plus recent cases and activities
"""

from testhub.domain import TEST_CASE_STATUSES


async def get_test_case_status_counts(repository) -> dict[str, int]:
    counts = {status: 0 for status in sorted(TEST_CASE_STATUSES)}
    for test_case in await repository.list_test_cases():
        counts[test_case.status] = counts.get(test_case.status, 0) + 1
    return counts


async def get_test_run_stats(repository) -> dict:
    """Aggregate run metrics.

    ``avg_duration`` averages completed runs that have a duration;
    ``pass_rate`` is the percentage of all run results with status
    ``passed``. Both are ``None`` when there is nothing to average.
    """
    runs = await repository.list_test_runs()
    durations = [r.duration for r in runs if r.status == "completed" and r.duration is not None]
    avg_duration = sum(durations) / len(durations) if durations else None

    results = await repository.list_run_results()
    passed = sum(1 for r in results if r.status == "passed")
    pass_rate = passed / len(results) * 100 if results else None

    return {
        "total_runs": len(runs),
        "avg_duration": avg_duration,
        "pass_rate": pass_rate,
    }


async def get_dashboard(repository, *, recent_limit=5, activity_limit=10) -> dict:
    return {
        "status_counts": await get_test_case_status_counts(repository),
        "run_stats": await get_test_run_stats(repository),
        "recent_test_cases": [
            tc.to_dict() for tc in await repository.list_recent_test_cases(recent_limit)
        ],
        "recent_activities": [
            a.to_dict() for a in await repository.list_recent_activities(activity_limit)
        ],
    }
