"""
Test case versioning

Covers:
  - create with steps (version 1, steps numbered from 1)
  - snapshot-then-apply updates and step replacement
  - explicit checkpoints (create_version_snapshot)
  - revert by exact version number
  - version listing and diff
  - validation of patches and steps
"""

import pytest

from testhub.core.results import NotFound, ValidationFailed

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]

ADMIN_ID = 1

LOGIN_STEPS = [
    {"description": "Open login page", "expected_result": "Form visible"},
    {"description": "Submit credentials", "expected_result": "Dashboard shown"},
]


class TestCreate:
    async def test_create_starts_at_version_one(self, repo, make_test_case):
        created = await make_test_case("Login", LOGIN_STEPS)

        assert created.test_case.version == 1
        assert created.test_case.status == "pending"
        assert created.test_case.priority == "medium"
        assert created.test_case.type == "functional"
        assert created.test_case.last_run is None
        assert [s.step_number for s in created.steps] == [1, 2]
        assert await repo.list_versions(created.test_case.id) == []

    async def test_step_numbers_follow_list_order(self, repo, make_test_case):
        steps = [
            {"description": "third", "step_number": 7},
            {"description": "first", "step_number": 1},
        ]
        created = await make_test_case("Ordering", steps)

        stored = await repo.list_test_steps(created.test_case.id)
        assert [(s.step_number, s.description) for s in stored] == [(1, "third"), (2, "first")]

    async def test_create_without_steps(self, repo, make_test_case):
        created = await make_test_case("No steps")
        assert created.steps == []
        fetched = await repo.get_test_case_with_steps(created.test_case.id)
        assert fetched.test_case == created.test_case
        assert fetched.steps == []

    async def test_create_rejects_missing_title(self, repo):
        result = await repo.create_test_case_with_steps({"created_by": ADMIN_ID})
        assert isinstance(result, ValidationFailed)
        assert "title" in result.details
        assert await repo.list_test_cases() == []

    async def test_create_rejects_wrongly_typed_fields(self, repo):
        result = await repo.create_test_case_with_steps(
            {"title": {"a": 1}, "created_by": ADMIN_ID},
            [{"description": "ok", "expected_result": ["x"]}],
        )
        assert isinstance(result, ValidationFailed)
        assert result.details == {"title": "must be a string"}
        assert await repo.list_test_cases() == []

        result = await repo.create_test_case_with_steps(
            {"title": "Typed", "created_by": ADMIN_ID},
            [{"description": "ok", "expected_result": ["x"]}],
        )
        assert isinstance(result, ValidationFailed)
        assert "steps[1].expected_result" in result.details
        assert await repo.list_test_cases() == []

    async def test_create_rejects_blank_step(self, repo):
        result = await repo.create_test_case_with_steps(
            {"title": "Bad steps", "created_by": ADMIN_ID},
            [{"description": "ok"}, {"description": "   "}],
        )
        assert isinstance(result, ValidationFailed)
        assert "steps[2].description" in result.details
        assert await repo.list_test_cases() == []

    async def test_get_unknown_returns_none(self, repo):
        assert await repo.get_test_case(999) is None
        assert await repo.get_test_case_with_steps(999) is None


class TestUpdate:
    async def test_login_scenario(self, repo, make_test_case):
        created = await make_test_case("Login", LOGIN_STEPS)
        tc_id = created.test_case.id

        updated = await repo.update_test_case_with_steps(
            tc_id, {}, [{"description": "Single sign-on"}],
            actor_id=ADMIN_ID, change_comment="collapse steps",
        )

        assert updated.test_case.version == 2
        assert [(s.step_number, s.description) for s in updated.steps] == [(1, "Single sign-on")]

        snapshot = await repo.get_version(tc_id, 2)
        assert snapshot is not None
        assert snapshot.change_comment == "collapse steps"
        assert snapshot.created_by == ADMIN_ID
        assert snapshot.data["title"] == "Login"
        assert snapshot.data["version"] == 1
        assert [s["description"] for s in snapshot.data["steps"]] == [
            "Open login page", "Submit credentials",
        ]

    async def test_each_update_bumps_version_once(self, repo, make_test_case):
        created = await make_test_case("Counter")
        tc_id = created.test_case.id

        for n in range(3):
            result = await repo.update_test_case_with_steps(
                tc_id, {"title": f"Counter {n}"}, actor_id=ADMIN_ID,
            )
            assert result.test_case.version == n + 2

        current = await repo.get_test_case(tc_id)
        versions = await repo.list_versions(tc_id)
        assert current.version == 4
        assert [v.version for v in versions] == [2, 3, 4]
        assert current.version == 1 + len(versions)

    async def test_snapshot_holds_pre_update_state(self, repo, make_test_case):
        created = await make_test_case("Before", priority="low")
        tc_id = created.test_case.id

        await repo.update_test_case_with_steps(
            tc_id, {"title": "After", "priority": "critical"}, actor_id=ADMIN_ID,
        )

        snapshot = await repo.get_version(tc_id, 2)
        assert snapshot.data["title"] == "Before"
        assert snapshot.data["priority"] == "low"
        current = await repo.get_test_case(tc_id)
        assert current.title == "After"
        assert current.priority == "critical"
        assert current.updated_at >= created.test_case.updated_at

    async def test_steps_none_leaves_steps_untouched(self, repo, make_test_case):
        created = await make_test_case("Keep steps", LOGIN_STEPS)

        updated = await repo.update_test_case_with_steps(
            created.test_case.id, {"description": "new text"}, actor_id=ADMIN_ID,
        )

        assert updated.test_case.version == 2
        assert [s.description for s in updated.steps] == [s["description"] for s in LOGIN_STEPS]

    async def test_empty_step_list_removes_all_steps(self, repo, make_test_case):
        created = await make_test_case("Drop steps", LOGIN_STEPS)

        updated = await repo.update_test_case_with_steps(
            created.test_case.id, {}, [], actor_id=ADMIN_ID,
        )

        assert updated.steps == []
        assert updated.test_case.version == 2
        assert await repo.list_test_steps(created.test_case.id) == []

    async def test_replacing_with_same_steps_is_stable(self, repo, make_test_case):
        created = await make_test_case("Stable", LOGIN_STEPS)
        tc_id = created.test_case.id

        for _ in range(2):
            await repo.update_test_case_with_steps(tc_id, {}, LOGIN_STEPS, actor_id=ADMIN_ID)

        stored = await repo.list_test_steps(tc_id)
        assert [(s.step_number, s.description, s.expected_result) for s in stored] == [
            (1, "Open login page", "Form visible"),
            (2, "Submit credentials", "Dashboard shown"),
        ]

    async def test_empty_patch_is_a_no_op(self, repo, make_test_case):
        created = await make_test_case("Unchanged", LOGIN_STEPS)

        result = await repo.update_test_case_with_steps(created.test_case.id, {}, actor_id=ADMIN_ID)

        assert result.test_case == created.test_case
        assert len(result.steps) == 2
        assert await repo.list_versions(created.test_case.id) == []

    async def test_update_unknown_case(self, repo):
        result = await repo.update_test_case_with_steps(42, {"title": "x"}, actor_id=ADMIN_ID)
        assert isinstance(result, NotFound)
        assert result.ok is False
        assert not result

    @pytest.mark.parametrize(
        "patch, field",
        [
            ({"title": ""}, "title"),
            ({"status": "exploded"}, "status"),
            ({"priority": "urgent"}, "priority"),
            ({"type": "smoke"}, "type"),
            ({"version": 9}, "version"),
            ({"last_run": None}, "last_run"),
            ({"title": {"a": 1}}, "title"),
            ({"assigned_to": "bob"}, "assigned_to"),
        ],
    )
    async def test_invalid_patch_is_rejected(self, repo, make_test_case, patch, field):
        created = await make_test_case("Validated")

        result = await repo.update_test_case_with_steps(created.test_case.id, patch, actor_id=ADMIN_ID)

        assert isinstance(result, ValidationFailed)
        assert field in result.details
        assert (await repo.get_test_case(created.test_case.id)).version == 1
        assert await repo.list_versions(created.test_case.id) == []

    async def test_invalid_steps_are_rejected(self, repo, make_test_case):
        created = await make_test_case("Validated", LOGIN_STEPS)

        result = await repo.update_test_case_with_steps(
            created.test_case.id, {}, [{"expected_result": "no description"}], actor_id=ADMIN_ID,
        )

        assert isinstance(result, ValidationFailed)
        assert len(await repo.list_test_steps(created.test_case.id)) == 2


class TestSnapshot:
    async def test_checkpoint_bumps_version_without_field_change(self, repo, make_test_case):
        created = await make_test_case("Checkpoint", LOGIN_STEPS)
        tc_id = created.test_case.id

        snapshot = await repo.create_version_snapshot(
            tc_id, actor_id=ADMIN_ID, change_comment="baseline",
        )

        assert snapshot.version == 2
        assert snapshot.change_comment == "baseline"
        assert snapshot.data["title"] == "Checkpoint"
        assert len(snapshot.data["steps"]) == 2
        current = await repo.get_test_case(tc_id)
        assert current.version == 2
        assert current.title == "Checkpoint"
        assert len(await repo.list_test_steps(tc_id)) == 2

    async def test_checkpoint_unknown_case(self, repo):
        result = await repo.create_version_snapshot(5, actor_id=ADMIN_ID)
        assert isinstance(result, NotFound)


class TestRevert:
    async def _three_versions(self, repo, make_test_case):
        created = await make_test_case("Title A", LOGIN_STEPS, priority="low")
        tc_id = created.test_case.id
        await repo.update_test_case_with_steps(
            tc_id, {"title": "Title B", "priority": "high"}, actor_id=ADMIN_ID,
        )
        await repo.update_test_case_with_steps(
            tc_id, {"title": "Title C", "priority": "critical"}, actor_id=ADMIN_ID,
        )
        return tc_id

    async def test_revert_restores_snapshot_as_new_version(self, repo, make_test_case):
        tc_id = await self._three_versions(repo, make_test_case)

        reverted = await repo.revert_to_version(tc_id, 2, actor_id=ADMIN_ID)

        assert reverted.test_case.version == 4
        assert reverted.test_case.title == "Title A"
        assert reverted.test_case.priority == "low"
        versions = await repo.list_versions(tc_id)
        assert [v.version for v in versions] == [2, 3, 4]
        assert versions[-1].change_comment == "Reverted to version 2"
        assert versions[-1].data["title"] == "Title C"

    async def test_revert_keeps_steps(self, repo, make_test_case):
        tc_id = await self._three_versions(repo, make_test_case)
        await repo.update_test_case_with_steps(
            tc_id, {}, [{"description": "only step"}], actor_id=ADMIN_ID,
        )

        reverted = await repo.revert_to_version(tc_id, 2, actor_id=ADMIN_ID)

        assert [s.description for s in reverted.steps] == ["only step"]

    async def test_revert_to_version_one_is_not_found(self, repo, make_test_case):
        tc_id = await self._three_versions(repo, make_test_case)

        result = await repo.revert_to_version(tc_id, 1, actor_id=ADMIN_ID)

        assert isinstance(result, NotFound)
        assert (await repo.get_test_case(tc_id)).version == 3

    async def test_revert_unknown_version_or_case(self, repo, make_test_case):
        tc_id = await self._three_versions(repo, make_test_case)

        assert isinstance(await repo.revert_to_version(tc_id, 9, actor_id=ADMIN_ID), NotFound)
        assert isinstance(await repo.revert_to_version(777, 2, actor_id=ADMIN_ID), NotFound)

    async def test_revert_restores_status_only_before_first_run(self, repo, make_test_case):
        created = await make_test_case("Status", status="blocked")
        tc_id = created.test_case.id
        await repo.update_test_case_with_steps(tc_id, {"status": "pending"}, actor_id=ADMIN_ID)

        reverted = await repo.revert_to_version(tc_id, 2, actor_id=ADMIN_ID)
        assert reverted.test_case.status == "blocked"

        run = await repo.create_test_run({"name": "Nightly", "executed_by": ADMIN_ID})
        await repo.record_run_result(run.id, tc_id, "failed", executed_by=ADMIN_ID)

        reverted = await repo.revert_to_version(tc_id, 2, actor_id=ADMIN_ID)
        assert reverted.test_case.status == "failed"
        assert reverted.test_case.last_run is not None


class TestHistoryReads:
    async def test_get_version_missing(self, repo, make_test_case):
        created = await make_test_case("Reads")
        assert await repo.get_version(created.test_case.id, 2) is None
        assert await repo.list_versions(404) == []

    async def test_diff_between_versions(self, repo, make_test_case):
        created = await make_test_case("Login", LOGIN_STEPS)
        tc_id = created.test_case.id
        await repo.update_test_case_with_steps(
            tc_id, {"title": "Login v2", "priority": "high"}, actor_id=ADMIN_ID,
        )
        await repo.update_test_case_with_steps(
            tc_id, {}, [
                {"description": "Open login page", "expected_result": "Form visible"},
                {"description": "Use passkey"},
                {"description": "Land on dashboard"},
            ],
            actor_id=ADMIN_ID,
        )
        await repo.update_test_case_with_steps(tc_id, {"description": "touch"}, actor_id=ADMIN_ID)

        fields_diff = await repo.diff_versions(tc_id, 1, 2)
        assert {c["field"] for c in fields_diff["field_changes"]} == {"title", "priority"}
        assert fields_diff["summary"]["step_changed_count"] == 0

        steps_diff = await repo.diff_versions(tc_id, 2, 3)
        assert steps_diff["field_changes"] == []
        assert [c["step_number"] for c in steps_diff["steps"]["changed"]] == [2]
        assert steps_diff["steps"]["changed"][0]["changes"]["description"] == {
            "from": "Submit credentials", "to": "Use passkey",
        }
        assert [a["step_number"] for a in steps_diff["steps"]["added"]] == [3]
        assert steps_diff["steps"]["removed"] == []

        live_diff = await repo.diff_versions(tc_id, 3, 4)
        assert live_diff["field_changes"] == [{"field": "description", "from": None, "to": "touch"}]
        assert live_diff["summary"]["step_added_count"] == 0

        whole = await repo.diff_versions(tc_id, 1, 4)
        assert {c["field"] for c in whole["field_changes"]} == {"title", "priority", "description"}
        assert whole["summary"]["step_added_count"] == 1

    async def test_diff_live_version_against_itself(self, repo, make_test_case):
        created = await make_test_case("Same", LOGIN_STEPS)
        result = await repo.diff_versions(created.test_case.id, 1, 1)
        assert result["field_changes"] == []
        assert result["summary"]["step_changed_count"] == 0

    async def test_diff_unknown_version(self, repo, make_test_case):
        created = await make_test_case("Diff")
        assert isinstance(await repo.diff_versions(created.test_case.id, 1, 2), NotFound)
        assert isinstance(await repo.diff_versions(created.test_case.id, 0, 1), NotFound)
        assert isinstance(await repo.diff_versions(404, 1, 1), NotFound)

