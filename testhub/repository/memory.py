"""
In-process repository backend.

Rows are frozen dataclasses held in plain dicts keyed by id, with one id
counter per entity type. Rows carrying JSON payloads are deep-copied on
the way in and out. No primitive awaits anything, so each one runs to
completion without yielding to the event loop and is atomic with respect
to other tasks.
"""

from __future__ import annotations

import copy
import dataclasses
import itertools
import logging

from testhub import domain
from testhub.core.exceptions import ConflictError
from testhub.repository.interface import TestHubRepository

logger = logging.getLogger(__name__)


class InMemoryRepository(TestHubRepository):
    """Volatile storage for tests and local bootstrapping."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._users: dict[int, domain.User] = {}
        self._folders: dict[int, domain.Folder] = {}
        self._folder_links: dict[int, domain.TestCaseFolder] = {}
        self._test_cases: dict[int, domain.TestCase] = {}
        self._test_steps: dict[int, domain.TestStep] = {}
        self._test_versions: dict[int, domain.TestVersion] = {}
        self._test_runs: dict[int, domain.TestRun] = {}
        self._run_results: dict[int, domain.TestRunResult] = {}
        self._bugs: dict[int, domain.Bug] = {}
        self._whiteboards: dict[int, domain.Whiteboard] = {}
        self._activities: dict[int, domain.ActivityLog] = {}
        self._ids = {
            name: itertools.count(1)
            for name in (
                "user", "folder", "folder_link", "test_case", "test_step",
                "test_version", "test_run", "run_result", "bug",
                "whiteboard", "activity",
            )
        }

    def _next_id(self, entity: str) -> int:
        return next(self._ids[entity])

    @staticmethod
    def _replace(table: dict, row_id: int, values: dict):
        row = table.get(row_id)
        if row is None:
            return None
        row = dataclasses.replace(row, **values)
        table[row_id] = row
        return row

    # ── Users ────────────────────────────────────────────────────────────

    async def get_user(self, user_id):
        return self._users.get(user_id)

    async def get_user_by_username(self, username):
        return next((u for u in self._users.values() if u.username == username), None)

    async def get_user_by_email(self, email):
        return next((u for u in self._users.values() if u.email == email), None)

    async def list_users(self):
        return sorted(self._users.values(), key=lambda u: u.id)

    def _check_user_unique(self, values: dict, user_id: int | None = None) -> None:
        for other in self._users.values():
            if other.id == user_id:
                continue
            for key in ("username", "email"):
                if key in values and getattr(other, key) == values[key]:
                    logger.warning("Unique constraint violated", extra={"operation": "user", "error": key})
                    raise ConflictError("User", key, values[key])

    async def _insert_user(self, values):
        self._check_user_unique(values)
        user = domain.User(id=self._next_id("user"), **values)
        self._users[user.id] = user
        return user

    async def _update_user_row(self, user_id, values):
        if user_id not in self._users:
            return None
        self._check_user_unique(values, user_id)
        return self._replace(self._users, user_id, values)

    # ── Folders ──────────────────────────────────────────────────────────

    async def get_folder(self, folder_id):
        return self._folders.get(folder_id)

    async def list_folders(self):
        return sorted(self._folders.values(), key=lambda f: f.id)

    async def count_test_cases_by_folder(self):
        counts: dict[int, int] = {}
        for link in self._folder_links.values():
            counts[link.folder_id] = counts.get(link.folder_id, 0) + 1
        return [{"folder_id": fid, "test_count": n} for fid, n in sorted(counts.items())]

    async def _insert_folder(self, values):
        folder = domain.Folder(id=self._next_id("folder"), **values)
        self._folders[folder.id] = folder
        return folder

    async def _update_folder_row(self, folder_id, values):
        return self._replace(self._folders, folder_id, values)

    async def _delete_folder_row(self, folder_id):
        return self._folders.pop(folder_id, None) is not None

    # ── Folder membership ────────────────────────────────────────────────

    async def list_test_case_folders(self, test_case_id):
        folder_ids = {
            link.folder_id for link in self._folder_links.values()
            if link.test_case_id == test_case_id
        }
        return [f for f in await self.list_folders() if f.id in folder_ids]

    def _find_link(self, test_case_id, folder_id):
        return next(
            (
                link for link in self._folder_links.values()
                if link.test_case_id == test_case_id and link.folder_id == folder_id
            ),
            None,
        )

    async def _get_folder_link(self, test_case_id, folder_id):
        return self._find_link(test_case_id, folder_id)

    async def _insert_folder_link(self, test_case_id, folder_id):
        if self._find_link(test_case_id, folder_id) is not None:
            logger.warning("Unique constraint violated", extra={"operation": "insert_folder_link"})
            raise ConflictError("TestCaseFolder", "test_case_id+folder_id", f"{test_case_id}+{folder_id}")
        link = domain.TestCaseFolder(
            id=self._next_id("folder_link"), test_case_id=test_case_id, folder_id=folder_id,
        )
        self._folder_links[link.id] = link
        return link

    async def _delete_folder_link(self, test_case_id, folder_id):
        link = self._find_link(test_case_id, folder_id)
        if link is None:
            return False
        del self._folder_links[link.id]
        return True

    async def _delete_folder_links(self, *, test_case_id=None, folder_id=None):
        doomed = [
            link.id for link in self._folder_links.values()
            if (test_case_id is None or link.test_case_id == test_case_id)
            and (folder_id is None or link.folder_id == folder_id)
        ]
        for link_id in doomed:
            del self._folder_links[link_id]
        return len(doomed)

    # ── Test cases & steps ───────────────────────────────────────────────

    async def get_test_case(self, test_case_id):
        return self._test_cases.get(test_case_id)

    async def list_test_cases(self, status=None, folder_id=None):
        rows = sorted(self._test_cases.values(), key=lambda tc: tc.id)
        if status is not None:
            rows = [tc for tc in rows if tc.status == status]
        if folder_id is not None:
            members = {
                link.test_case_id for link in self._folder_links.values()
                if link.folder_id == folder_id
            }
            rows = [tc for tc in rows if tc.id in members]
        return rows

    async def list_recent_test_cases(self, limit=5):
        rows = sorted(self._test_cases.values(), key=lambda tc: (tc.created_at, tc.id), reverse=True)
        return rows[:limit]

    async def list_test_steps(self, test_case_id):
        return sorted(
            (s for s in self._test_steps.values() if s.test_case_id == test_case_id),
            key=lambda s: s.step_number,
        )

    async def _insert_test_case(self, values):
        test_case = domain.TestCase(id=self._next_id("test_case"), **values)
        self._test_cases[test_case.id] = test_case
        return test_case

    async def _update_test_case_row(self, test_case_id, values):
        return self._replace(self._test_cases, test_case_id, values)

    async def _delete_test_case_row(self, test_case_id):
        return self._test_cases.pop(test_case_id, None) is not None

    async def _insert_test_steps(self, test_case_id, steps):
        taken = {s.step_number for s in self._test_steps.values() if s.test_case_id == test_case_id}
        for step in steps:
            if step["step_number"] in taken:
                raise ConflictError("TestStep", "step_number", step["step_number"])
        inserted = []
        for step in steps:
            row = domain.TestStep(id=self._next_id("test_step"), test_case_id=test_case_id, **step)
            self._test_steps[row.id] = row
            inserted.append(row)
        return inserted

    async def _delete_test_steps(self, test_case_id):
        doomed = [s.id for s in self._test_steps.values() if s.test_case_id == test_case_id]
        for step_id in doomed:
            del self._test_steps[step_id]
        return len(doomed)

    # ── Versions ─────────────────────────────────────────────────────────

    async def _insert_test_version(self, values):
        snapshot = domain.TestVersion(id=self._next_id("test_version"), **copy.deepcopy(values))
        self._test_versions[snapshot.id] = snapshot
        return copy.deepcopy(snapshot)

    async def _list_test_version_rows(self, test_case_id):
        return copy.deepcopy(sorted(
            (v for v in self._test_versions.values() if v.test_case_id == test_case_id),
            key=lambda v: v.id,
        ))

    async def _delete_test_versions(self, test_case_id):
        doomed = [v.id for v in self._test_versions.values() if v.test_case_id == test_case_id]
        for version_id in doomed:
            del self._test_versions[version_id]
        return len(doomed)

    # ── Runs & results ───────────────────────────────────────────────────

    async def get_test_run(self, run_id):
        return self._test_runs.get(run_id)

    async def list_test_runs(self):
        return sorted(self._test_runs.values(), key=lambda r: (r.started_at, r.id), reverse=True)

    async def _insert_test_run(self, values):
        run = domain.TestRun(id=self._next_id("test_run"), **values)
        self._test_runs[run.id] = run
        return run

    async def _update_test_run_row(self, run_id, values):
        return self._replace(self._test_runs, run_id, values)

    async def list_run_results(self, run_id=None):
        rows = [r for r in self._run_results.values() if run_id is None or r.run_id == run_id]
        return sorted(rows, key=lambda r: (r.executed_at, r.id), reverse=True)

    async def _insert_run_result(self, values):
        result = domain.TestRunResult(id=self._next_id("run_result"), **values)
        self._run_results[result.id] = result
        return result

    # ── Bugs ─────────────────────────────────────────────────────────────

    async def get_bug(self, bug_id):
        return self._bugs.get(bug_id)

    async def list_bugs(self, status=None, test_case_id=None):
        rows = [
            b for b in self._bugs.values()
            if (status is None or b.status == status)
            and (test_case_id is None or b.test_case_id == test_case_id)
        ]
        return sorted(rows, key=lambda b: (b.reported_at, b.id), reverse=True)

    async def _insert_bug(self, values):
        bug = domain.Bug(id=self._next_id("bug"), **values)
        self._bugs[bug.id] = bug
        return bug

    async def _update_bug_row(self, bug_id, values):
        return self._replace(self._bugs, bug_id, values)

    # ── Whiteboards ──────────────────────────────────────────────────────

    async def get_whiteboard(self, whiteboard_id):
        return copy.deepcopy(self._whiteboards.get(whiteboard_id))

    async def list_whiteboards(self):
        rows = sorted(self._whiteboards.values(), key=lambda w: (w.updated_at, w.id), reverse=True)
        return copy.deepcopy(rows)

    async def _insert_whiteboard(self, values):
        whiteboard = domain.Whiteboard(id=self._next_id("whiteboard"), **copy.deepcopy(values))
        self._whiteboards[whiteboard.id] = whiteboard
        return copy.deepcopy(whiteboard)

    async def _update_whiteboard_row(self, whiteboard_id, values):
        return copy.deepcopy(self._replace(self._whiteboards, whiteboard_id, copy.deepcopy(values)))

    # ── Activity ─────────────────────────────────────────────────────────

    async def list_recent_activities(self, limit=10):
        rows = sorted(self._activities.values(), key=lambda a: (a.created_at, a.id), reverse=True)
        return copy.deepcopy(rows[:limit])

    async def _insert_activity(self, values):
        activity = domain.ActivityLog(id=self._next_id("activity"), **copy.deepcopy(values))
        self._activities[activity.id] = activity
        return copy.deepcopy(activity)
