"""
Cross-entity consistency

Covers:
  - run result → test case status / last_run propagation
  - folder membership idempotence and removal
  - cascading delete of test cases and folders
  - run completion duration
"""

from datetime import timedelta

import pytest

from testhub.core.results import NotFound, ValidationFailed

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]

ADMIN_ID = 1


async def _run(repo, name="Regression run"):
    run = await repo.create_test_run({"name": name, "executed_by": ADMIN_ID})
    assert run, run
    return run


async def _folder(repo, name):
    folder = await repo.create_folder({"name": name, "created_by": ADMIN_ID})
    assert folder, folder
    return folder


class TestRunResultPropagation:
    async def test_failed_result_marks_case_failed(self, repo, make_test_case):
        created = await make_test_case("Propagate", status="passed")
        run = await _run(repo)

        result = await repo.record_run_result(
            run.id, created.test_case.id, "failed",
            executed_by=ADMIN_ID, notes="timeout", duration=12,
        )

        assert result.status == "failed"
        assert result.notes == "timeout"
        assert result.duration == 12
        current = await repo.get_test_case(created.test_case.id)
        assert current.status == "failed"
        assert current.last_run == result.executed_at
        assert current.version == 1

    async def test_latest_result_wins(self, repo, make_test_case):
        created = await make_test_case("Latest")
        run = await _run(repo)
        tc_id = created.test_case.id

        first = await repo.record_run_result(run.id, tc_id, "failed", executed_by=ADMIN_ID)
        last = await repo.record_run_result(run.id, tc_id, "passed", executed_by=ADMIN_ID)

        current = await repo.get_test_case(tc_id)
        assert current.status == "passed"
        assert current.last_run == last.executed_at
        results = await repo.list_run_results(run.id)
        assert [r.id for r in results] == [last.id, first.id]

    async def test_skipped_overwrites_status(self, repo, make_test_case):
        created = await make_test_case("Skipped")
        run = await _run(repo)

        await repo.record_run_result(run.id, created.test_case.id, "skipped", executed_by=ADMIN_ID)

        assert (await repo.get_test_case(created.test_case.id)).status == "skipped"

    async def test_status_patch_rejected_after_execution(self, repo, make_test_case):
        created = await make_test_case("Executed")
        tc_id = created.test_case.id
        run = await _run(repo)
        await repo.record_run_result(run.id, tc_id, "failed", executed_by=ADMIN_ID)

        result = await repo.update_test_case_with_steps(
            tc_id, {"status": "passed", "title": "Executed again"}, actor_id=ADMIN_ID,
        )

        assert isinstance(result, ValidationFailed)
        assert result.details == {"status": "derived from run results"}
        current = await repo.get_test_case(tc_id)
        assert current.status == "failed"
        assert current.title == "Executed"
        assert current.version == 1

        renamed = await repo.update_test_case_with_steps(
            tc_id, {"title": "Executed again"}, actor_id=ADMIN_ID,
        )
        assert renamed.test_case.status == "failed"
        assert renamed.test_case.version == 2

    async def test_status_patch_allowed_before_execution(self, repo, make_test_case):
        created = await make_test_case("Fresh")

        updated = await repo.update_test_case_with_steps(
            created.test_case.id, {"status": "blocked"}, actor_id=ADMIN_ID,
        )

        assert updated.test_case.status == "blocked"

    async def test_unknown_run_or_case(self, repo, make_test_case):
        created = await make_test_case("Refs")
        run = await _run(repo)

        missing_run = await repo.record_run_result(999, created.test_case.id, "passed", executed_by=ADMIN_ID)
        missing_case = await repo.record_run_result(run.id, 999, "passed", executed_by=ADMIN_ID)

        assert isinstance(missing_run, NotFound)
        assert missing_run.resource == "TestRun"
        assert isinstance(missing_case, NotFound)
        assert missing_case.resource == "TestCase"
        assert await repo.list_run_results() == []

    async def test_invalid_status_rejected(self, repo, make_test_case):
        created = await make_test_case("Invalid")
        run = await _run(repo)

        result = await repo.record_run_result(run.id, created.test_case.id, "pending", executed_by=ADMIN_ID)

        assert isinstance(result, ValidationFailed)
        assert (await repo.get_test_case(created.test_case.id)).last_run is None

    async def test_list_results_across_runs(self, repo, make_test_case):
        created = await make_test_case("Two runs")
        first, second = await _run(repo, "first"), await _run(repo, "second")

        await repo.record_run_result(first.id, created.test_case.id, "passed", executed_by=ADMIN_ID)
        await repo.record_run_result(second.id, created.test_case.id, "blocked", executed_by=ADMIN_ID)

        assert len(await repo.list_run_results()) == 2
        assert [r.status for r in await repo.list_run_results(second.id)] == ["blocked"]


class TestFolderMembership:
    async def test_assign_is_idempotent(self, repo, make_test_case):
        created = await make_test_case("Member")
        folder = await _folder(repo, "Smoke")

        first = await repo.assign_to_folder(created.test_case.id, folder.id)
        second = await repo.assign_to_folder(created.test_case.id, folder.id)

        assert first == second
        assert first.test_case_id == created.test_case.id
        assert await repo.count_test_cases_by_folder() == [{"folder_id": folder.id, "test_count": 1}]

    async def test_assign_requires_both_ends(self, repo, make_test_case):
        created = await make_test_case("Orphan")
        folder = await _folder(repo, "Smoke")

        assert isinstance(await repo.assign_to_folder(999, folder.id), NotFound)
        assert isinstance(await repo.assign_to_folder(created.test_case.id, 999), NotFound)
        assert await repo.list_test_case_folders(created.test_case.id) == []

    async def test_remove(self, repo, make_test_case):
        created = await make_test_case("Leaving")
        folder = await _folder(repo, "Smoke")
        await repo.assign_to_folder(created.test_case.id, folder.id)

        assert await repo.remove_from_folder(created.test_case.id, folder.id) is True
        assert await repo.remove_from_folder(created.test_case.id, folder.id) is False
        assert await repo.list_test_cases(folder_id=folder.id) == []

    async def test_filters_combine(self, repo, make_test_case):
        folder = await _folder(repo, "Regression")
        passed = await make_test_case("A", status="passed")
        failed = await make_test_case("B", status="failed")
        await make_test_case("C", status="passed")
        for created in (passed, failed):
            await repo.assign_to_folder(created.test_case.id, folder.id)

        in_folder = await repo.list_test_cases(folder_id=folder.id)
        passed_in_folder = await repo.list_test_cases(status="passed", folder_id=folder.id)
        all_passed = await repo.list_test_cases(status="passed")

        assert [tc.title for tc in in_folder] == ["A", "B"]
        assert [tc.title for tc in passed_in_folder] == ["A"]
        assert [tc.title for tc in all_passed] == ["A", "C"]

    async def test_list_folders_of_case(self, repo, make_test_case):
        created = await make_test_case("Multi")
        smoke, regression = await _folder(repo, "Smoke"), await _folder(repo, "Regression")
        await repo.assign_to_folder(created.test_case.id, regression.id)
        await repo.assign_to_folder(created.test_case.id, smoke.id)

        folders = await repo.list_test_case_folders(created.test_case.id)

        assert [f.name for f in folders] == ["Smoke", "Regression"]


class TestCascadeDelete:
    async def test_delete_removes_dependents(self, repo, make_test_case):
        created = await make_test_case("Doomed", [
            {"description": "one"}, {"description": "two"}, {"description": "three"},
        ])
        tc_id = created.test_case.id
        f1, f2 = await _folder(repo, "F1"), await _folder(repo, "F2")
        await repo.assign_to_folder(tc_id, f1.id)
        await repo.assign_to_folder(tc_id, f2.id)
        await repo.update_test_case_with_steps(tc_id, {"title": "Doomed v2"}, actor_id=ADMIN_ID)

        assert await repo.delete_test_case(tc_id) is True

        assert await repo.get_test_case(tc_id) is None
        assert await repo.list_test_steps(tc_id) == []
        assert await repo.list_test_case_folders(tc_id) == []
        assert await repo.list_test_cases(folder_id=f1.id) == []
        assert await repo.count_test_cases_by_folder() == []
        assert await repo.list_versions(tc_id) == []
        assert await repo.get_folder(f1.id) is not None

    async def test_delete_unknown(self, repo):
        assert isinstance(await repo.delete_test_case(31), NotFound)

    async def test_results_and_bugs_keep_dangling_reference(self, repo, make_test_case):
        created = await make_test_case("Executed")
        tc_id = created.test_case.id
        run = await _run(repo)
        result = await repo.record_run_result(run.id, tc_id, "failed", executed_by=ADMIN_ID)
        bug = await repo.create_bug({
            "title": "Crash", "description": "boom", "reported_by": ADMIN_ID,
            "test_case_id": tc_id, "test_run_result_id": result.id,
        })

        await repo.delete_test_case(tc_id)

        assert [r.test_case_id for r in await repo.list_run_results(run.id)] == [tc_id]
        assert (await repo.get_bug(bug.id)).test_case_id == tc_id

    async def test_ids_are_not_reused(self, repo, make_test_case):
        first = await make_test_case("First")
        await repo.delete_test_case(first.test_case.id)

        second = await make_test_case("Second")

        assert second.test_case.id > first.test_case.id

    async def test_delete_folder_removes_memberships(self, repo, make_test_case):
        created = await make_test_case("Stays")
        folder = await _folder(repo, "Temporary")
        await repo.assign_to_folder(created.test_case.id, folder.id)

        assert await repo.delete_folder(folder.id) is True

        assert await repo.get_folder(folder.id) is None
        assert await repo.list_test_case_folders(created.test_case.id) == []
        assert await repo.get_test_case(created.test_case.id) is not None
        assert isinstance(await repo.delete_folder(folder.id), NotFound)


class TestCompleteRun:
    async def test_complete_sets_duration(self, repo, monkeypatch):
        run = await _run(repo)
        later = run.started_at + timedelta(seconds=90, milliseconds=700)
        monkeypatch.setattr("testhub.repository.consistency.utc_now", lambda: later)

        completed = await repo.complete_test_run(run.id)

        assert completed.status == "completed"
        assert completed.duration == 90
        assert completed.complete_at == later
        stored = await repo.get_test_run(run.id)
        assert stored.duration == 90
        assert stored.complete_at == later

    async def test_complete_twice_recomputes(self, repo, monkeypatch):
        run = await _run(repo)
        monkeypatch.setattr(
            "testhub.repository.consistency.utc_now", lambda: run.started_at + timedelta(seconds=5),
        )
        await repo.complete_test_run(run.id)
        monkeypatch.setattr(
            "testhub.repository.consistency.utc_now", lambda: run.started_at + timedelta(seconds=8),
        )

        again = await repo.complete_test_run(run.id)

        assert again.duration == 8

    async def test_complete_unknown(self, repo):
        assert isinstance(await repo.complete_test_run(5), NotFound)
