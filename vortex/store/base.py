"""Storage interface shared by the durable and in-memory implementations.

Both implementations must behave identically from the caller's side:
same uniqueness rules, same list ordering, same upsert keys, same
"not found -> None / False / []" convention. Rows are plain dicts.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

# get_notifications_for_user returns at most this many rows
NOTIFICATION_LIMIT = 100
DEFAULT_WORKFLOW_RUN_LIMIT = 50

# Columns update_project() may change
PROJECT_UPDATABLE_FIELDS = ("name", "description", "public", "repo_url", "metadata")

USER_DEFAULT_ROLE = "user"


@runtime_checkable
class Storage(Protocol):
    """CRUD surface for users, projects, files, notifications and CI runs."""

    def ping(self) -> None:
        """Cheap liveness round-trip. Raises if the backend is unusable."""
        ...

    # Users
    def get_user(self, user_id: str) -> Optional[dict]: ...

    def get_user_by_username(self, username: str) -> Optional[dict]: ...

    def create_user(self, fields: dict) -> dict: ...

    # Projects
    def create_project(
        self,
        owner_id: Optional[str],
        name: str,
        description: Optional[str] = None,
        repo_url: Optional[str] = None,
        metadata: Optional[dict] = None,
        public: bool = True,
    ) -> dict: ...

    def list_projects(
        self, owner_id: Optional[str] = None, public_only: bool = False
    ) -> list[dict]: ...

    def get_project(self, project_id: str) -> Optional[dict]: ...

    def update_project(self, project_id: str, patch: dict) -> Optional[dict]: ...

    def delete_project(self, project_id: str) -> Optional[dict]: ...

    # Project files
    def save_project_file(
        self,
        project_id: str,
        path: str,
        content: str,
        metadata: Optional[dict] = None,
    ) -> dict: ...

    def list_project_files(self, project_id: str) -> list[dict]: ...

    def get_project_file(self, project_id: str, path: str) -> Optional[dict]: ...

    def delete_project_file(self, project_id: str, path: str) -> bool: ...

    # Notifications
    def create_notification(
        self, user_id: Optional[str], type: str, payload: Any
    ) -> dict: ...

    def get_notifications_for_user(self, user_id: str) -> list[dict]: ...

    def mark_notification_read(self, notification_id: str) -> bool: ...

    # CI history
    def save_workflow_runs(self, owner: str, repo: str, runs: list[dict]) -> None: ...

    def get_workflow_runs(
        self, owner: str, repo: str, limit: int = DEFAULT_WORKFLOW_RUN_LIMIT
    ) -> list[dict]: ...


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_user_fields(fields: dict) -> dict:
    """Normalize create_user input. Raises ValueError on a blank username."""
    username = (fields.get("username") or "").strip()
    if not username:
        raise ValueError("username is required")
    return {
        "username": username,
        "email": fields.get("email") or None,
        "role": fields.get("role") or USER_DEFAULT_ROLE,
    }


def validate_project_patch(patch: dict) -> dict:
    """Keep only updatable project columns. Raises ValueError on unknown keys."""
    unknown = sorted(set(patch) - set(PROJECT_UPDATABLE_FIELDS))
    if unknown:
        raise ValueError(f"Cannot update project fields: {unknown}")
    return dict(patch)


def workflow_run_key(run: dict) -> Optional[str]:
    """Identity of a CI run payload, or None when it carries no id."""
    for key in ("id", "run_id", "number", "head_sha"):
        value = run.get(key)
        if value not in (None, ""):
            return str(value)
    return None
