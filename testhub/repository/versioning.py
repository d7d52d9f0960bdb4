"""
Version history for test cases.

Every content change follows snapshot-then-apply:

    1. write a TestVersion row holding the *pre-update* state, tagged
       with the version the test case is about to move to
    2. write the patch plus the new ``version`` / ``updated_at``
    3. if a step list was supplied, delete all steps and insert the list

Each step is its own primitive call. A snapshot whose version number is
above the live ``version`` (left behind when step 2 failed) is not
recognized by any reader; when two rows share a version number the one
written last wins.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from testhub import domain
from testhub.core.exceptions import BackendUnavailableError, PartialWriteError
from testhub.core.results import NotFound, ValidationFailed
from testhub.domain import utc_now
from testhub.repository import validation

if TYPE_CHECKING:
    from testhub.repository.interface import TestHubRepository

logger = logging.getLogger(__name__)

# Snapshot keys that always differ between versions and carry no content.
_DIFF_IGNORE_FIELDS = {"updated_at", "version"}


async def create_test_case(repo: TestHubRepository, data: dict, steps: list[dict] | None = None):
    """Insert a test case at version 1, then its steps numbered 1..n."""
    values = validation.clean_test_case(data)
    if isinstance(values, ValidationFailed):
        return values
    new_steps = validation.clean_steps(steps or [])
    if isinstance(new_steps, ValidationFailed):
        return new_steps

    now = utc_now()
    values.update(version=1, created_at=now, updated_at=now, last_run=None)
    test_case = await repo._insert_test_case(values)

    inserted = []
    if new_steps:
        try:
            inserted = await repo._insert_test_steps(test_case.id, new_steps)
        except BackendUnavailableError as exc:
            logger.error(
                "Test case stored without its steps",
                extra={"test_case_id": test_case.id, "step_count": len(new_steps)},
            )
            raise PartialWriteError(
                str(exc), operation="create_test_case_with_steps", completed=["test_case"],
            ) from exc

    logger.info(
        "Test case created",
        extra={"test_case_id": test_case.id, "step_count": len(inserted)},
    )
    return domain.TestCaseWithSteps(test_case, inserted)


async def recognized_versions(
    repo: TestHubRepository, test_case: domain.TestCase,
) -> list[domain.TestVersion]:
    rows = await repo._list_test_version_rows(test_case.id)
    latest: dict[int, domain.TestVersion] = {}
    for row in sorted(rows, key=lambda r: r.id):
        if row.version <= test_case.version:
            latest[row.version] = row
    return [latest[v] for v in sorted(latest)]


async def list_versions(repo: TestHubRepository, test_case_id: int) -> list[domain.TestVersion]:
    test_case = await repo.get_test_case(test_case_id)
    if test_case is None:
        return []
    return await recognized_versions(repo, test_case)


async def get_version(
    repo: TestHubRepository, test_case_id: int, version: int,
) -> domain.TestVersion | None:
    for snapshot in await list_versions(repo, test_case_id):
        if snapshot.version == version:
            return snapshot
    return None


async def _snapshot_then_apply(
    repo: TestHubRepository,
    current: domain.TestCase,
    values: dict,
    new_steps: list[dict] | None,
    *,
    actor_id: int,
    change_comment: str | None,
):
    """Run the three-step update. Returns ``(snapshot, TestCaseWithSteps)``
    or ``(snapshot, NotFound)`` if the row vanished after it was read."""
    current_steps = await repo.list_test_steps(current.id)
    snapshot = await repo._insert_test_version({
        "test_case_id": current.id,
        "version": current.version + 1,
        "data": domain.snapshot_test_case(current, current_steps),
        "created_by": actor_id,
        "created_at": utc_now(),
        "change_comment": change_comment,
    })

    updated = await repo._update_test_case_row(
        current.id, {**values, "version": snapshot.version, "updated_at": utc_now()},
    )
    if updated is None:
        return snapshot, NotFound("TestCase", current.id)

    if new_steps is None:
        steps = current_steps
    else:
        completed = ["test_version", "test_case"]
        try:
            await repo._delete_test_steps(current.id)
            completed.append("test_steps_deleted")
            steps = await repo._insert_test_steps(current.id, new_steps)
        except BackendUnavailableError as exc:
            logger.error(
                "Step replacement failed after the test case was updated",
                extra={"test_case_id": current.id, "version": snapshot.version},
            )
            raise PartialWriteError(
                str(exc), operation="update_test_case_with_steps", completed=completed,
            ) from exc

    logger.info(
        "Test case moved to new version",
        extra={
            "test_case_id": current.id,
            "version": snapshot.version,
            "actor_id": actor_id,
            "steps_replaced": new_steps is not None,
        },
    )
    return snapshot, domain.TestCaseWithSteps(updated, steps)


async def update_test_case(
    repo: TestHubRepository,
    test_case_id: int,
    patch: dict,
    steps: list[dict] | None = None,
    *,
    actor_id: int,
    change_comment: str | None = None,
):
    current = await repo.get_test_case(test_case_id)
    if current is None:
        return NotFound("TestCase", test_case_id)

    values = validation.clean_test_case_patch(patch or {})
    if isinstance(values, ValidationFailed):
        return values
    # once executed, status mirrors the latest run result
    if "status" in values and current.last_run is not None:
        return ValidationFailed(
            "Invalid test case", details={"status": "derived from run results"},
        )
    new_steps = None
    if steps is not None:
        new_steps = validation.clean_steps(steps)
        if isinstance(new_steps, ValidationFailed):
            return new_steps

    if not values and new_steps is None:
        return domain.TestCaseWithSteps(current, await repo.list_test_steps(test_case_id))

    _, result = await _snapshot_then_apply(
        repo, current, values, new_steps,
        actor_id=actor_id, change_comment=change_comment,
    )
    return result


async def create_snapshot(
    repo: TestHubRepository,
    test_case_id: int,
    *,
    actor_id: int,
    change_comment: str | None = None,
) -> domain.TestVersion | NotFound:
    """Checkpoint the current state: new snapshot row, version + 1, no field change."""
    current = await repo.get_test_case(test_case_id)
    if current is None:
        return NotFound("TestCase", test_case_id)
    snapshot, result = await _snapshot_then_apply(
        repo, current, {}, None, actor_id=actor_id, change_comment=change_comment,
    )
    if not result:
        return result
    return snapshot


async def revert(repo: TestHubRepository, test_case_id: int, version: int, *, actor_id: int):
    """Re-apply the fields stored in snapshot ``version`` as a new version.

    Steps stay as they are. ``status`` is restored only for a case that
    has never been executed; ``last_run`` is never touched.
    """
    current = await repo.get_test_case(test_case_id)
    if current is None:
        return NotFound("TestCase", test_case_id)

    target = None
    for snapshot in await recognized_versions(repo, current):
        if snapshot.version == version:
            target = snapshot
    if target is None:
        return NotFound("TestVersion", f"{test_case_id}@{version}")

    values = {f: target.data[f] for f in domain.TEST_CASE_CONTENT_FIELDS if f in target.data}
    if current.last_run is None and target.data.get("status") in domain.TEST_CASE_STATUSES:
        values["status"] = target.data["status"]

    _, result = await _snapshot_then_apply(
        repo, current, values, None,
        actor_id=actor_id, change_comment=f"Reverted to version {version}",
    )
    return result


def compute_snapshot_diff(left_snapshot: dict | None, right_snapshot: dict | None) -> dict:
    left = left_snapshot or {}
    right = right_snapshot or {}

    fields = []
    for key in sorted(set(left) | set(right)):
        if key in _DIFF_IGNORE_FIELDS or key == "steps":
            continue
        if left.get(key) != right.get(key):
            fields.append({"field": key, "from": left.get(key), "to": right.get(key)})

    left_steps = {s["step_number"]: s for s in (left.get("steps") or [])}
    right_steps = {s["step_number"]: s for s in (right.get("steps") or [])}
    step_added = []
    step_removed = []
    step_changed = []

    for step_number in sorted(set(left_steps) | set(right_steps)):
        ls = left_steps.get(step_number)
        rs = right_steps.get(step_number)
        if ls and not rs:
            step_removed.append({"step_number": step_number, "from": ls})
            continue
        if rs and not ls:
            step_added.append({"step_number": step_number, "to": rs})
            continue

        row_changes = {}
        for col in ("description", "expected_result"):
            if ls.get(col) != rs.get(col):
                row_changes[col] = {"from": ls.get(col), "to": rs.get(col)}
        if row_changes:
            step_changed.append({"step_number": step_number, "changes": row_changes})

    return {
        "field_changes": fields,
        "steps": {
            "added": step_added,
            "removed": step_removed,
            "changed": step_changed,
        },
        "summary": {
            "field_change_count": len(fields),
            "step_added_count": len(step_added),
            "step_removed_count": len(step_removed),
            "step_changed_count": len(step_changed),
        },
    }


async def diff(repo: TestHubRepository, test_case_id: int, from_version: int, to_version: int):
    """Compare the test case as it stood at two version numbers.

    The state at version N is the pre-update payload of snapshot N + 1;
    the live version reads the row and its current steps.
    """
    test_case = await repo.get_test_case(test_case_id)
    if test_case is None:
        return NotFound("TestCase", test_case_id)
    by_version = {v.version: v for v in await recognized_versions(repo, test_case)}

    states = []
    for version in (from_version, to_version):
        if version == test_case.version:
            steps = await repo.list_test_steps(test_case_id)
            states.append(domain.snapshot_test_case(test_case, steps))
        elif version + 1 in by_version:
            states.append(by_version[version + 1].data)
        else:
            return NotFound("TestVersion", f"{test_case_id}@{version}")
    return compute_snapshot_diff(*states)
