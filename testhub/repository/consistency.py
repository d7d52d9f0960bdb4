"""
Cross-entity rules that span more than one table.

- run results overwrite the derived status of their test case
- folder membership is unique per (test case, folder) pair
- deleting a test case or folder removes its dependent rows first
- completing a run computes its duration

None of these are transactional. A failure after the first committed
write raises PartialWriteError naming what already persisted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from testhub import domain
from testhub.core.exceptions import (
    BackendUnavailableError,
    ConflictError,
    PartialWriteError,
    StatusPropagationError,
)
from testhub.core.results import NotFound, ValidationFailed
from testhub.domain import utc_now
from testhub.repository import validation

if TYPE_CHECKING:
    from testhub.repository.interface import TestHubRepository

logger = logging.getLogger(__name__)


async def _run_stages(operation: str, stages) -> None:
    """Await each ``(name, thunk)`` in order; report what committed on failure."""
    completed: list[str] = []
    for name, thunk in stages:
        try:
            await thunk()
        except BackendUnavailableError as exc:
            if not completed:
                raise
            logger.error(
                "Cascade interrupted",
                extra={"operation": operation, "failed_stage": name, "completed": completed},
            )
            raise PartialWriteError(str(exc), operation=operation, completed=completed) from exc
        completed.append(name)


# ── Run results ──────────────────────────────────────────────────────────


async def record_run_result(
    repo: TestHubRepository,
    run_id: int,
    test_case_id: int,
    status: str,
    *,
    executed_by: int,
    notes: str | None = None,
    duration: int | None = None,
):
    if await repo.get_test_run(run_id) is None:
        return NotFound("TestRun", run_id)
    if await repo.get_test_case(test_case_id) is None:
        return NotFound("TestCase", test_case_id)

    values = validation.clean_run_result({
        "status": status,
        "notes": notes,
        "executed_by": executed_by,
        "duration": duration,
    })
    if isinstance(values, ValidationFailed):
        return values
    values.update(run_id=run_id, test_case_id=test_case_id, executed_at=utc_now())

    result = await repo._insert_run_result(values)
    try:
        await propagate_run_status(repo, result)
    except BackendUnavailableError as exc:
        logger.error(
            "Run result stored but test case status is stale",
            extra={"run_id": run_id, "test_case_id": test_case_id, "result_id": result.id},
        )
        raise StatusPropagationError(str(exc), result=result) from exc

    logger.info(
        "Run result recorded",
        extra={"run_id": run_id, "test_case_id": test_case_id, "status": status},
    )
    return result


async def propagate_run_status(repo: TestHubRepository, result: domain.TestRunResult):
    """Copy a result's status and time onto its test case. Version is unchanged."""
    test_case = await repo._update_test_case_row(
        result.test_case_id,
        {"status": result.status, "last_run": result.executed_at},
    )
    if test_case is None:
        return NotFound("TestCase", result.test_case_id)
    return test_case


async def complete_test_run(repo: TestHubRepository, run_id: int) -> domain.TestRun | NotFound:
    run = await repo.get_test_run(run_id)
    if run is None:
        return NotFound("TestRun", run_id)

    now = utc_now()
    duration = int((now - run.started_at).total_seconds())
    completed = await repo._update_test_run_row(
        run_id, {"status": "completed", "complete_at": now, "duration": duration},
    )
    if completed is None:
        return NotFound("TestRun", run_id)
    logger.info("Test run completed", extra={"run_id": run_id, "duration": duration})
    return completed


# ── Folder membership ────────────────────────────────────────────────────


async def assign_to_folder(repo: TestHubRepository, test_case_id: int, folder_id: int):
    if await repo.get_test_case(test_case_id) is None:
        return NotFound("TestCase", test_case_id)
    if await repo.get_folder(folder_id) is None:
        return NotFound("Folder", folder_id)

    existing = await repo._get_folder_link(test_case_id, folder_id)
    if existing is not None:
        return existing
    try:
        return await repo._insert_folder_link(test_case_id, folder_id)
    except ConflictError:
        # another task inserted the same pair between the read and the insert
        existing = await repo._get_folder_link(test_case_id, folder_id)
        if existing is None:
            raise
        return existing


# ── Cascading deletes ────────────────────────────────────────────────────


async def delete_test_case(repo: TestHubRepository, test_case_id: int) -> bool | NotFound:
    if await repo.get_test_case(test_case_id) is None:
        return NotFound("TestCase", test_case_id)

    removed = {}

    async def delete_row():
        removed["row"] = await repo._delete_test_case_row(test_case_id)

    await _run_stages("delete_test_case", (
        ("test_case_folders", lambda: repo._delete_folder_links(test_case_id=test_case_id)),
        ("test_steps", lambda: repo._delete_test_steps(test_case_id)),
        ("test_versions", lambda: repo._delete_test_versions(test_case_id)),
        ("test_case", delete_row),
    ))
    if not removed["row"]:
        return NotFound("TestCase", test_case_id)
    logger.info("Test case deleted", extra={"test_case_id": test_case_id})
    return True


async def delete_folder(repo: TestHubRepository, folder_id: int) -> bool | NotFound:
    if await repo.get_folder(folder_id) is None:
        return NotFound("Folder", folder_id)

    removed = {}

    async def delete_row():
        removed["row"] = await repo._delete_folder_row(folder_id)

    await _run_stages("delete_folder", (
        ("test_case_folders", lambda: repo._delete_folder_links(folder_id=folder_id)),
        ("folder", delete_row),
    ))
    if not removed["row"]:
        return NotFound("Folder", folder_id)
    logger.info("Folder deleted", extra={"folder_id": folder_id})
    return True
