"""Repository contract shared by every storage backend.

Architecture:
  TestHubRepository is an abstract base class with two kinds of members:
    - abstract primitives: one storage round trip each, implemented by
      the backend adapters (SqlRepository, InMemoryRepository)
    - concrete operations: validation plus composites built from the
      primitives in ``versioning`` and ``consistency``

  Every operation is a coroutine. Suspension happens only inside the
  primitives, so a composite can interleave with other tasks between its
  steps but never within one.

Return conventions:
  - single-entity gets return the entity or ``None``
  - writes return the entity, ``NotFound`` or ``ValidationFailed``
  - storage failures raise ``BackendUnavailableError`` (or a subclass)
  - unique violations raise ``ConflictError``
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from testhub import domain
from testhub.core.results import NotFound, ValidationFailed
from testhub.domain import utc_now
from testhub.repository import consistency, validation, versioning


class TestHubRepository(ABC):
    """Abstract repository. Subclasses implement the primitives only."""

    backend_name = "abstract"

    # ══════════════════════════════════════════════════════════════════════
    # Primitives: one round trip each
    # ══════════════════════════════════════════════════════════════════════

    # ── Users ────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_user(self, user_id: int) -> domain.User | None: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> domain.User | None: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> domain.User | None: ...

    @abstractmethod
    async def list_users(self) -> list[domain.User]: ...

    @abstractmethod
    async def _insert_user(self, values: dict) -> domain.User:
        """Insert a user; raise ConflictError on a duplicate username or email."""

    @abstractmethod
    async def _update_user_row(self, user_id: int, values: dict) -> domain.User | None: ...

    # ── Folders ──────────────────────────────────────────────────────────

    @abstractmethod
    async def get_folder(self, folder_id: int) -> domain.Folder | None: ...

    @abstractmethod
    async def list_folders(self) -> list[domain.Folder]: ...

    @abstractmethod
    async def count_test_cases_by_folder(self) -> list[dict]:
        """Return ``[{"folder_id": .., "test_count": ..}]`` for non-empty folders."""

    @abstractmethod
    async def _insert_folder(self, values: dict) -> domain.Folder: ...

    @abstractmethod
    async def _update_folder_row(self, folder_id: int, values: dict) -> domain.Folder | None: ...

    @abstractmethod
    async def _delete_folder_row(self, folder_id: int) -> bool: ...

    # ── Folder membership ────────────────────────────────────────────────

    @abstractmethod
    async def list_test_case_folders(self, test_case_id: int) -> list[domain.Folder]: ...

    @abstractmethod
    async def _get_folder_link(
        self, test_case_id: int, folder_id: int,
    ) -> domain.TestCaseFolder | None: ...

    @abstractmethod
    async def _insert_folder_link(
        self, test_case_id: int, folder_id: int,
    ) -> domain.TestCaseFolder:
        """Insert a membership row; raise ConflictError if the pair exists."""

    @abstractmethod
    async def _delete_folder_link(self, test_case_id: int, folder_id: int) -> bool: ...

    @abstractmethod
    async def _delete_folder_links(
        self, *, test_case_id: int | None = None, folder_id: int | None = None,
    ) -> int: ...

    # ── Test cases & steps ───────────────────────────────────────────────

    @abstractmethod
    async def get_test_case(self, test_case_id: int) -> domain.TestCase | None: ...

    @abstractmethod
    async def list_test_cases(
        self, status: str | None = None, folder_id: int | None = None,
    ) -> list[domain.TestCase]:
        """Filters combine with AND; ordered by id."""

    @abstractmethod
    async def list_recent_test_cases(self, limit: int = 5) -> list[domain.TestCase]: ...

    @abstractmethod
    async def list_test_steps(self, test_case_id: int) -> list[domain.TestStep]:
        """Steps ordered by step_number."""

    @abstractmethod
    async def _insert_test_case(self, values: dict) -> domain.TestCase: ...

    @abstractmethod
    async def _update_test_case_row(
        self, test_case_id: int, values: dict,
    ) -> domain.TestCase | None: ...

    @abstractmethod
    async def _delete_test_case_row(self, test_case_id: int) -> bool: ...

    @abstractmethod
    async def _insert_test_steps(
        self, test_case_id: int, steps: list[dict],
    ) -> list[domain.TestStep]: ...

    @abstractmethod
    async def _delete_test_steps(self, test_case_id: int) -> int: ...

    # ── Versions ─────────────────────────────────────────────────────────

    @abstractmethod
    async def _insert_test_version(self, values: dict) -> domain.TestVersion: ...

    @abstractmethod
    async def _list_test_version_rows(self, test_case_id: int) -> list[domain.TestVersion]:
        """Every stored snapshot row, orphans included, ordered by id."""

    @abstractmethod
    async def _delete_test_versions(self, test_case_id: int) -> int: ...

    # ── Runs & results ───────────────────────────────────────────────────

    @abstractmethod
    async def get_test_run(self, run_id: int) -> domain.TestRun | None: ...

    @abstractmethod
    async def list_test_runs(self) -> list[domain.TestRun]:
        """Newest first by started_at."""

    @abstractmethod
    async def _insert_test_run(self, values: dict) -> domain.TestRun: ...

    @abstractmethod
    async def _update_test_run_row(self, run_id: int, values: dict) -> domain.TestRun | None: ...

    @abstractmethod
    async def list_run_results(self, run_id: int | None = None) -> list[domain.TestRunResult]:
        """Newest first by executed_at."""

    @abstractmethod
    async def _insert_run_result(self, values: dict) -> domain.TestRunResult: ...

    # ── Bugs ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_bug(self, bug_id: int) -> domain.Bug | None: ...

    @abstractmethod
    async def list_bugs(
        self, status: str | None = None, test_case_id: int | None = None,
    ) -> list[domain.Bug]:
        """Filters combine with AND; newest first by reported_at."""

    @abstractmethod
    async def _insert_bug(self, values: dict) -> domain.Bug: ...

    @abstractmethod
    async def _update_bug_row(self, bug_id: int, values: dict) -> domain.Bug | None: ...

    # ── Whiteboards ──────────────────────────────────────────────────────

    @abstractmethod
    async def get_whiteboard(self, whiteboard_id: int) -> domain.Whiteboard | None: ...

    @abstractmethod
    async def list_whiteboards(self) -> list[domain.Whiteboard]:
        """Most recently updated first."""

    @abstractmethod
    async def _insert_whiteboard(self, values: dict) -> domain.Whiteboard: ...

    @abstractmethod
    async def _update_whiteboard_row(
        self, whiteboard_id: int, values: dict,
    ) -> domain.Whiteboard | None: ...

    # ── Activity ─────────────────────────────────────────────────────────

    @abstractmethod
    async def list_recent_activities(self, limit: int = 10) -> list[domain.ActivityLog]: ...

    @abstractmethod
    async def _insert_activity(self, values: dict) -> domain.ActivityLog: ...

    # ══════════════════════════════════════════════════════════════════════
    # Operations
    # ══════════════════════════════════════════════════════════════════════

    # ── Users ────────────────────────────────────────────────────────────

    async def create_user(self, data: dict) -> domain.User | ValidationFailed:
        values = validation.clean_user(data)
        if isinstance(values, ValidationFailed):
            return values
        return await self._insert_user(values)

    async def update_user(self, user_id: int, data: dict):
        values = validation.clean_user(data, partial=True)
        if isinstance(values, ValidationFailed):
            return values
        user = await self._update_user_row(user_id, values)
        return user if user is not None else NotFound("User", user_id)

    async def record_user_login(self, user_id: int) -> domain.User | NotFound:
        user = await self._update_user_row(user_id, {"last_login": utc_now()})
        return user if user is not None else NotFound("User", user_id)

    # ── Folders ──────────────────────────────────────────────────────────

    async def create_folder(self, data: dict) -> domain.Folder | ValidationFailed:
        values = validation.clean_folder(data)
        if isinstance(values, ValidationFailed):
            return values
        values["created_at"] = utc_now()
        return await self._insert_folder(values)

    async def update_folder(self, folder_id: int, data: dict):
        values = validation.clean_folder(data, partial=True)
        if isinstance(values, ValidationFailed):
            return values
        folder = await self._update_folder_row(folder_id, values)
        return folder if folder is not None else NotFound("Folder", folder_id)

    async def delete_folder(self, folder_id: int) -> bool | NotFound:
        return await consistency.delete_folder(self, folder_id)

    async def assign_to_folder(self, test_case_id: int, folder_id: int):
        return await consistency.assign_to_folder(self, test_case_id, folder_id)

    async def remove_from_folder(self, test_case_id: int, folder_id: int) -> bool:
        return await self._delete_folder_link(test_case_id, folder_id)

    # ── Test cases ───────────────────────────────────────────────────────

    async def create_test_case_with_steps(self, data: dict, steps: list[dict] | None = None):
        return await versioning.create_test_case(self, data, steps)

    async def get_test_case_with_steps(self, test_case_id: int) -> domain.TestCaseWithSteps | None:
        test_case = await self.get_test_case(test_case_id)
        if test_case is None:
            return None
        return domain.TestCaseWithSteps(test_case, await self.list_test_steps(test_case_id))

    async def update_test_case_with_steps(
        self,
        test_case_id: int,
        patch: dict,
        steps: list[dict] | None = None,
        *,
        actor_id: int,
        change_comment: str | None = None,
    ):
        return await versioning.update_test_case(
            self, test_case_id, patch, steps,
            actor_id=actor_id, change_comment=change_comment,
        )

    async def delete_test_case(self, test_case_id: int) -> bool | NotFound:
        return await consistency.delete_test_case(self, test_case_id)

    # ── Versions ─────────────────────────────────────────────────────────

    async def create_version_snapshot(
        self, test_case_id: int, *, actor_id: int, change_comment: str | None = None,
    ):
        return await versioning.create_snapshot(
            self, test_case_id, actor_id=actor_id, change_comment=change_comment,
        )

    async def list_versions(self, test_case_id: int) -> list[domain.TestVersion]:
        return await versioning.list_versions(self, test_case_id)

    async def get_version(self, test_case_id: int, version: int) -> domain.TestVersion | None:
        return await versioning.get_version(self, test_case_id, version)

    async def revert_to_version(self, test_case_id: int, version: int, *, actor_id: int):
        return await versioning.revert(self, test_case_id, version, actor_id=actor_id)

    async def diff_versions(self, test_case_id: int, from_version: int, to_version: int):
        return await versioning.diff(self, test_case_id, from_version, to_version)

    # ── Runs & results ───────────────────────────────────────────────────

    async def create_test_run(self, data: dict) -> domain.TestRun | ValidationFailed:
        values = validation.clean_test_run(data)
        if isinstance(values, ValidationFailed):
            return values
        values["started_at"] = utc_now()
        return await self._insert_test_run(values)

    async def update_test_run(self, run_id: int, data: dict):
        values = validation.clean_test_run_patch(data)
        if isinstance(values, ValidationFailed):
            return values
        run = await self._update_test_run_row(run_id, values)
        return run if run is not None else NotFound("TestRun", run_id)

    async def complete_test_run(self, run_id: int) -> domain.TestRun | NotFound:
        return await consistency.complete_test_run(self, run_id)

    async def record_run_result(
        self,
        run_id: int,
        test_case_id: int,
        status: str,
        *,
        executed_by: int,
        notes: str | None = None,
        duration: int | None = None,
    ):
        return await consistency.record_run_result(
            self, run_id, test_case_id, status,
            executed_by=executed_by, notes=notes, duration=duration,
        )

    async def propagate_run_status(self, result: domain.TestRunResult):
        return await consistency.propagate_run_status(self, result)

    # ── Bugs ─────────────────────────────────────────────────────────────

    async def create_bug(self, data: dict) -> domain.Bug | ValidationFailed:
        values = validation.clean_bug(data)
        if isinstance(values, ValidationFailed):
            return values
        values["reported_at"] = values["updated_at"] = utc_now()
        return await self._insert_bug(values)

    async def update_bug(self, bug_id: int, data: dict):
        values = validation.clean_bug_patch(data)
        if isinstance(values, ValidationFailed):
            return values
        values["updated_at"] = utc_now()
        bug = await self._update_bug_row(bug_id, values)
        return bug if bug is not None else NotFound("Bug", bug_id)

    # ── Whiteboards ──────────────────────────────────────────────────────

    async def create_whiteboard(self, data: dict) -> domain.Whiteboard | ValidationFailed:
        values = validation.clean_whiteboard(data)
        if isinstance(values, ValidationFailed):
            return values
        values["created_at"] = values["updated_at"] = utc_now()
        return await self._insert_whiteboard(values)

    async def update_whiteboard(self, whiteboard_id: int, data: dict):
        values = validation.clean_whiteboard(data, partial=True)
        if isinstance(values, ValidationFailed):
            return values
        values["updated_at"] = utc_now()
        whiteboard = await self._update_whiteboard_row(whiteboard_id, values)
        return whiteboard if whiteboard is not None else NotFound("Whiteboard", whiteboard_id)

    # ── Activity ─────────────────────────────────────────────────────────

    async def log_activity(
        self,
        user_id: int,
        action: str,
        entity_type: str,
        entity_id: int,
        details: dict | None = None,
    ) -> domain.ActivityLog | ValidationFailed:
        values = validation.clean_activity({
            "user_id": user_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "details": details,
        })
        if isinstance(values, ValidationFailed):
            return values
        values["created_at"] = utc_now()
        return await self._insert_activity(values)
