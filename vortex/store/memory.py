"""In-memory Storage implementation.

This is the production fallback when PostgreSQL is unreachable, not a test
double: it enforces the same uniqueness rules, ordering and upsert keys as
PostgresStorage. Each collection has its own lock. Rows are copied on the
way in and out so callers never hold references into the store.
"""

import copy
import itertools
import logging
import threading
from typing import Any, Optional

from vortex.errors import ConflictError
from vortex.store.base import (
    DEFAULT_WORKFLOW_RUN_LIMIT,
    NOTIFICATION_LIMIT,
    new_id,
    utc_now_iso,
    validate_project_patch,
    validate_user_fields,
    workflow_run_key,
)

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Dict/list backed storage, safe for concurrent use."""

    def __init__(self) -> None:
        self._seq = itertools.count(1)

        self._users: dict[str, dict] = {}
        self._users_lock = threading.Lock()

        self._projects: dict[str, dict] = {}
        self._projects_lock = threading.Lock()

        # (project_id, path) -> file row
        self._files: dict[tuple[str, str], dict] = {}
        self._files_lock = threading.Lock()

        self._notifications: dict[str, dict] = {}
        self._notifications_lock = threading.Lock()

        # (owner, repo, run_key) -> {"seq", "run"}; unkeyed runs get a unique key
        self._runs: dict[tuple[str, str, str], dict] = {}
        self._runs_lock = threading.Lock()

    def ping(self) -> None:
        return None

    def _next_seq(self) -> int:
        return next(self._seq)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[dict]:
        with self._users_lock:
            return _copy(self._users.get(user_id))

    def get_user_by_username(self, username: str) -> Optional[dict]:
        with self._users_lock:
            for user in self._users.values():
                if user["username"] == username:
                    return _copy(user)
        return None

    def create_user(self, fields: dict) -> dict:
        values = validate_user_fields(fields)
        with self._users_lock:
            if any(u["username"] == values["username"] for u in self._users.values()):
                raise ConflictError(f"Username already exists: {values['username']}")
            user = {"id": new_id(), **values}
            self._users[user["id"]] = user
            return _copy(user)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        owner_id: Optional[str],
        name: str,
        description: Optional[str] = None,
        repo_url: Optional[str] = None,
        metadata: Optional[dict] = None,
        public: bool = True,
    ) -> dict:
        if not name or not name.strip():
            raise ValueError("project name is required")
        project = {
            "id": new_id(),
            "owner_id": owner_id,
            "name": name,
            "description": description,
            "public": public,
            "repo_url": repo_url or None,
            "metadata": copy.deepcopy(metadata) if metadata else {},
            "created_at": utc_now_iso(),
        }
        with self._projects_lock:
            self._projects[project["id"]] = {**project, "_seq": self._next_seq()}
        return _copy(project)

    def list_projects(
        self, owner_id: Optional[str] = None, public_only: bool = False
    ) -> list[dict]:
        with self._projects_lock:
            rows = sorted(self._projects.values(), key=lambda p: p["_seq"], reverse=True)
            return [
                _copy(p) for p in rows
                if (not owner_id or p["owner_id"] == owner_id)
                and (not public_only or p["public"])
            ]

    def get_project(self, project_id: str) -> Optional[dict]:
        with self._projects_lock:
            return _copy(self._projects.get(project_id))

    def update_project(self, project_id: str, patch: dict) -> Optional[dict]:
        values = validate_project_patch(patch)
        with self._projects_lock:
            project = self._projects.get(project_id)
            if project is None:
                return None
            project.update(copy.deepcopy(values))
            return _copy(project)

    def delete_project(self, project_id: str) -> Optional[dict]:
        with self._projects_lock:
            removed = self._projects.pop(project_id, None)
        if removed is None:
            return None
        with self._files_lock:
            for key in [k for k in self._files if k[0] == project_id]:
                del self._files[key]
        return _copy(removed)

    # ------------------------------------------------------------------
    # Project files
    # ------------------------------------------------------------------

    def save_project_file(
        self,
        project_id: str,
        path: str,
        content: str,
        metadata: Optional[dict] = None,
    ) -> dict:
        if not path:
            raise ValueError("path is required")
        now = utc_now_iso()
        key = (project_id, path)
        with self._files_lock:
            existing = self._files.get(key)
            row = {
                "id": existing["id"] if existing else new_id(),
                "project_id": project_id,
                "path": path,
                "content": content or "",
                "metadata": copy.deepcopy(metadata) if metadata else {},
                "created_at": existing["created_at"] if existing else now,
                "updated_at": now,
            }
            self._files[key] = row
            return _copy(row)

    def list_project_files(self, project_id: str) -> list[dict]:
        with self._files_lock:
            rows = [f for (pid, _), f in self._files.items() if pid == project_id]
            return [_copy(f) for f in sorted(rows, key=lambda f: f["path"])]

    def get_project_file(self, project_id: str, path: str) -> Optional[dict]:
        with self._files_lock:
            return _copy(self._files.get((project_id, path)))

    def delete_project_file(self, project_id: str, path: str) -> bool:
        with self._files_lock:
            return self._files.pop((project_id, path), None) is not None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def create_notification(self, user_id: Optional[str], type: str, payload: Any) -> dict:
        note = {
            "id": new_id(),
            "user_id": user_id,
            "type": type,
            "payload": copy.deepcopy(payload),
            "read": False,
            "created_at": utc_now_iso(),
        }
        with self._notifications_lock:
            self._notifications[note["id"]] = {**note, "_seq": self._next_seq()}
        return _copy(note)

    def get_notifications_for_user(self, user_id: str) -> list[dict]:
        with self._notifications_lock:
            rows = [
                n for n in self._notifications.values()
                if n["user_id"] == user_id or n["user_id"] is None
            ]
            rows.sort(key=lambda n: n["_seq"], reverse=True)
            return [_copy(n) for n in rows[:NOTIFICATION_LIMIT]]

    def mark_notification_read(self, notification_id: str) -> bool:
        with self._notifications_lock:
            note = self._notifications.get(notification_id)
            if note is None:
                return False
            note["read"] = True
            return True

    # ------------------------------------------------------------------
    # CI history
    # ------------------------------------------------------------------

    def save_workflow_runs(self, owner: str, repo: str, runs: list[dict]) -> None:
        with self._runs_lock:
            for run in runs:
                run_key = workflow_run_key(run)
                if run_key is None:
                    # No identity: always appended, never merged
                    key = (owner, repo, f"_anon-{new_id()}")
                    self._runs[key] = {"seq": self._next_seq(), "run": copy.deepcopy(run)}
                    continue
                key = (owner, repo, run_key)
                existing = self._runs.get(key)
                if existing is not None:
                    existing["run"] = copy.deepcopy(run)
                else:
                    self._runs[key] = {"seq": self._next_seq(), "run": copy.deepcopy(run)}
        logger.debug(f"[memory] Saved {len(runs)} workflow runs for {owner}/{repo}")

    def get_workflow_runs(
        self, owner: str, repo: str, limit: int = DEFAULT_WORKFLOW_RUN_LIMIT
    ) -> list[dict]:
        if limit <= 0:
            return []
        with self._runs_lock:
            rows = [
                entry for (o, r, _), entry in self._runs.items()
                if o == owner and r == repo
            ]
            rows.sort(key=lambda e: e["seq"], reverse=True)
            return [copy.deepcopy(e["run"]) for e in rows[:limit]]


def _copy(row: Optional[dict]) -> Optional[dict]:
    """Detached copy of a stored row, without internal bookkeeping keys."""
    if row is None:
        return None
    return {k: copy.deepcopy(v) for k, v in row.items() if not k.startswith("_")}
