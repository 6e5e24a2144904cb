"""PostgreSQL Storage implementation (the durable backend).

Mirrors MemoryStorage: ids are generated here (uuid4) rather than by the
database so both backends hand out ids of the same shape, ordering uses the
insertion sequence column, and timestamps come back as ISO strings.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from vortex.store.base import (
    DEFAULT_WORKFLOW_RUN_LIMIT,
    NOTIFICATION_LIMIT,
    new_id,
    utc_now_iso,
    validate_project_patch,
    validate_user_fields,
    workflow_run_key,
)
from vortex.store.db import PostgresDatabase, json_param

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, username, email, role"
_PROJECT_COLUMNS = "id, owner_id, name, description, public, repo_url, metadata, created_at"
_FILE_COLUMNS = "id, project_id, path, content, metadata, created_at, updated_at"
_NOTIFICATION_COLUMNS = "id, user_id, type, payload, read, created_at"

_JSON_PROJECT_FIELDS = ("metadata",)


def _normalize_timestamps(row: Optional[dict]) -> Optional[dict]:
    """Convert datetime objects to ISO strings (Postgres returns datetimes for TIMESTAMP columns)."""
    if row is None:
        return None
    for key in ("created_at", "updated_at"):
        val = row.get(key)
        if isinstance(val, datetime):
            row[key] = val.isoformat()
    return row


class PostgresStorage:
    """Storage backed by PostgreSQL via PostgresDatabase."""

    def __init__(self, db: PostgresDatabase):
        self.db = db

    def ping(self) -> None:
        """SELECT 1 round-trip, then make sure the tables exist."""
        self.db.execute("SELECT 1", fetch="one")
        self.db.init_schema()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[dict]:
        return self.db.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
            fetch="one",
        )

    def get_user_by_username(self, username: str) -> Optional[dict]:
        return self.db.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE username = %s",
            (username,),
            fetch="one",
        )

    def create_user(self, fields: dict) -> dict:
        values = validate_user_fields(fields)
        row = self.db.execute(
            f"""INSERT INTO users (id, username, email, role)
               VALUES (%s, %s, %s, %s)
               RETURNING {_USER_COLUMNS}""",
            (new_id(), values["username"], values["email"], values["role"]),
            fetch="one",
        )
        logger.info(f"Created user {row['id']} ({row['username']})")
        return row

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
        row = self.db.execute(
            f"""INSERT INTO projects
               (id, owner_id, name, description, public, repo_url, metadata, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
               RETURNING {_PROJECT_COLUMNS}""",
            (new_id(), owner_id, name, description, public, repo_url or None,
             json_param(metadata or {}), utc_now_iso()),
            fetch="one",
        )
        return _normalize_timestamps(row)

    def list_projects(
        self, owner_id: Optional[str] = None, public_only: bool = False
    ) -> list[dict]:
        clauses = []
        params: list[Any] = []
        if owner_id:
            clauses.append("owner_id = %s")
            params.append(owner_id)
        if public_only:
            clauses.append("public = TRUE")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.db.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects {where} ORDER BY seq DESC",
            tuple(params),
            fetch="all",
        )
        return [_normalize_timestamps(r) for r in rows]

    def get_project(self, project_id: str) -> Optional[dict]:
        row = self.db.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = %s",
            (project_id,),
            fetch="one",
        )
        return _normalize_timestamps(row)

    def update_project(self, project_id: str, patch: dict) -> Optional[dict]:
        values = validate_project_patch(patch)
        if not values:
            return self.get_project(project_id)

        # Column names come from PROJECT_UPDATABLE_FIELDS only
        assignments = ", ".join(f"{column} = %s" for column in values)
        params = [
            json_param(v) if column in _JSON_PROJECT_FIELDS and v is not None else v
            for column, v in values.items()
        ]
        row = self.db.execute(
            f"UPDATE projects SET {assignments} WHERE id = %s RETURNING {_PROJECT_COLUMNS}",
            (*params, project_id),
            fetch="one",
        )
        return _normalize_timestamps(row)

    def delete_project(self, project_id: str) -> Optional[dict]:
        with self.db.transaction() as cursor:
            cursor.execute(
                f"DELETE FROM projects WHERE id = %s RETURNING {_PROJECT_COLUMNS}",
                (project_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            columns = [desc[0] for desc in cursor.description]
            cursor.execute("DELETE FROM project_files WHERE project_id = %s", (project_id,))
        logger.info(f"Deleted project {project_id}")
        return _normalize_timestamps(dict(zip(columns, row)))

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
        row = self.db.execute(
            f"""INSERT INTO project_files
               (id, project_id, path, content, metadata, created_at, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               ON CONFLICT (project_id, path) DO UPDATE
               SET content = EXCLUDED.content,
                   metadata = EXCLUDED.metadata,
                   updated_at = EXCLUDED.updated_at
               RETURNING {_FILE_COLUMNS}""",
            (new_id(), project_id, path, content or "", json_param(metadata or {}), now, now),
            fetch="one",
        )
        return _normalize_timestamps(row)

    def list_project_files(self, project_id: str) -> list[dict]:
        rows = self.db.execute(
            f"SELECT {_FILE_COLUMNS} FROM project_files WHERE project_id = %s ORDER BY path",
            (project_id,),
            fetch="all",
        )
        return [_normalize_timestamps(r) for r in rows]

    def get_project_file(self, project_id: str, path: str) -> Optional[dict]:
        row = self.db.execute(
            f"SELECT {_FILE_COLUMNS} FROM project_files WHERE project_id = %s AND path = %s",
            (project_id, path),
            fetch="one",
        )
        return _normalize_timestamps(row)

    def delete_project_file(self, project_id: str, path: str) -> bool:
        row = self.db.execute(
            "DELETE FROM project_files WHERE project_id = %s AND path = %s RETURNING id",
            (project_id, path),
            fetch="one",
        )
        return row is not None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def create_notification(self, user_id: Optional[str], type: str, payload: Any) -> dict:
        row = self.db.execute(
            f"""INSERT INTO notifications (id, user_id, type, payload, read, created_at)
               VALUES (%s, %s, %s, %s, FALSE, %s)
               RETURNING {_NOTIFICATION_COLUMNS}""",
            (new_id(), user_id, type, json_param(payload), utc_now_iso()),
            fetch="one",
        )
        return _normalize_timestamps(row)

    def get_notifications_for_user(self, user_id: str) -> list[dict]:
        rows = self.db.execute(
            f"""SELECT {_NOTIFICATION_COLUMNS} FROM notifications
               WHERE user_id = %s OR user_id IS NULL
               ORDER BY seq DESC LIMIT %s""",
            (user_id, NOTIFICATION_LIMIT),
            fetch="all",
        )
        return [_normalize_timestamps(r) for r in rows]

    def mark_notification_read(self, notification_id: str) -> bool:
        row = self.db.execute(
            "UPDATE notifications SET read = TRUE WHERE id = %s RETURNING id",
            (notification_id,),
            fetch="one",
        )
        return row is not None

    # ------------------------------------------------------------------
    # CI history
    # ------------------------------------------------------------------

    def save_workflow_runs(self, owner: str, repo: str, runs: list[dict]) -> None:
        """Upsert runs by run id in one transaction."""
        with self.db.transaction() as cursor:
            for run in runs:
                cursor.execute(
                    """INSERT INTO workflow_runs
                       (repo_owner, repo_name, run_key, workflow_id, status,
                        conclusion, html_url, run_payload)
                       VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                       ON CONFLICT (repo_owner, repo_name, run_key) DO UPDATE
                       SET workflow_id = EXCLUDED.workflow_id,
                           status = EXCLUDED.status,
                           conclusion = EXCLUDED.conclusion,
                           html_url = EXCLUDED.html_url,
                           run_payload = EXCLUDED.run_payload""",
                    (
                        owner,
                        repo,
                        workflow_run_key(run),
                        _str_or_none(run.get("workflow_id")),
                        run.get("status"),
                        run.get("conclusion"),
                        run.get("html_url"),
                        json_param(run),
                    ),
                )
        logger.debug(f"Saved {len(runs)} workflow runs for {owner}/{repo}")

    def get_workflow_runs(
        self, owner: str, repo: str, limit: int = DEFAULT_WORKFLOW_RUN_LIMIT
    ) -> list[dict]:
        if limit <= 0:
            return []
        rows = self.db.execute(
            """SELECT run_payload FROM workflow_runs
               WHERE repo_owner = %s AND repo_name = %s
               ORDER BY seq DESC LIMIT %s""",
            (owner, repo, limit),
            fetch="all",
        )
        return [r["run_payload"] for r in rows]


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)
