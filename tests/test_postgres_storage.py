from contextlib import contextmanager
from datetime import datetime, timezone

import psycopg2.extras
import pytest

from vortex.store.postgres import PostgresStorage


class FakeCursor:
    def __init__(self, rows=None, columns=()):
        self.rows = list(rows or [])
        self.description = [(c,) for c in columns]
        self.executed = []

    def execute(self, sql, params=()):
        self.executed.append((" ".join(sql.split()), params))

    def fetchone(self):
        return self.rows.pop(0) if self.rows else None


class FakeDatabase:
    """Records SQL instead of talking to PostgreSQL."""

    def __init__(self, results=None, cursor=None):
        self.results = list(results or [])
        self.cursor = cursor or FakeCursor()
        self.executed = []
        self.schema_inits = 0

    def execute(self, sql, params=(), fetch="none"):
        self.executed.append((" ".join(sql.split()), params, fetch))
        return self.results.pop(0) if self.results else None

    @contextmanager
    def transaction(self):
        yield self.cursor

    def init_schema(self):
        self.schema_inits += 1


def test_ping_round_trips_and_initializes_schema() -> None:
    db = FakeDatabase()

    PostgresStorage(db).ping()

    assert db.executed[0][0] == "SELECT 1"
    assert db.schema_inits == 1


def test_create_user_generates_id_and_defaults_role() -> None:
    db = FakeDatabase(results=[{"id": "x", "username": "alice", "email": None, "role": "user"}])

    PostgresStorage(db).create_user({"username": " alice "})

    sql, params, fetch = db.executed[0]
    assert sql.startswith("INSERT INTO users")
    assert params[1:] == ("alice", None, "user")
    assert len(params[0]) == 36
    assert fetch == "one"


def test_list_projects_filters_and_orders_newest_first() -> None:
    created = datetime(2024, 1, 2, tzinfo=timezone.utc)
    db = FakeDatabase(results=[[{"id": "p1", "created_at": created}]])

    rows = PostgresStorage(db).list_projects(owner_id="u1", public_only=True)

    sql, params, _ = db.executed[0]
    assert "WHERE owner_id = %s AND public = TRUE" in sql
    assert sql.endswith("ORDER BY seq DESC")
    assert params == ("u1",)
    assert rows == [{"id": "p1", "created_at": created.isoformat()}]


def test_update_project_rejects_unknown_columns_before_sql() -> None:
    db = FakeDatabase()

    with pytest.raises(ValueError):
        PostgresStorage(db).update_project("p1", {"owner_id": "evil"})
    assert db.executed == []


def test_update_project_wraps_metadata_as_json() -> None:
    db = FakeDatabase(results=[{"id": "p1"}])

    PostgresStorage(db).update_project("p1", {"name": "n", "metadata": {"a": 1}})

    sql, params, _ = db.executed[0]
    assert sql.startswith("UPDATE projects SET name = %s, metadata = %s WHERE id = %s")
    assert params[0] == "n"
    assert isinstance(params[1], psycopg2.extras.Json)
    assert params[2] == "p1"


def test_save_project_file_upserts_on_path() -> None:
    db = FakeDatabase(results=[{"id": "f1"}])

    PostgresStorage(db).save_project_file("p1", "a.py", "print(1)")

    sql, params, _ = db.executed[0]
    assert "ON CONFLICT (project_id, path) DO UPDATE" in sql
    assert params[1:4] == ("p1", "a.py", "print(1)")


def test_delete_project_missing_is_none() -> None:
    db = FakeDatabase(cursor=FakeCursor(rows=[]))

    assert PostgresStorage(db).delete_project("missing") is None
    assert len(db.cursor.executed) == 1


def test_delete_project_removes_files_in_same_transaction() -> None:
    cursor = FakeCursor(rows=[("p1", "u1")], columns=("id", "owner_id"))
    db = FakeDatabase(cursor=cursor)

    removed = PostgresStorage(db).delete_project("p1")

    assert removed == {"id": "p1", "owner_id": "u1"}
    assert cursor.executed[1] == ("DELETE FROM project_files WHERE project_id = %s", ("p1",))


def test_delete_project_file_reports_not_found() -> None:
    db = FakeDatabase(results=[None])

    assert PostgresStorage(db).delete_project_file("p1", "gone.py") is False


def test_save_workflow_runs_uses_run_key() -> None:
    cursor = FakeCursor()
    db = FakeDatabase(cursor=cursor)

    PostgresStorage(db).save_workflow_runs("acme", "api", [
        {"id": 42, "workflow_id": 7, "status": "completed"},
        {"status": "queued"},
    ])

    first, second = cursor.executed
    assert "ON CONFLICT (repo_owner, repo_name, run_key)" in first[0]
    assert first[1][:5] == ("acme", "api", "42", "7", "completed")
    assert second[1][2] is None


def test_get_workflow_runs_returns_payloads() -> None:
    db = FakeDatabase(results=[[{"run_payload": {"id": 2}}, {"run_payload": {"id": 1}}]])
    storage = PostgresStorage(db)

    assert storage.get_workflow_runs("acme", "api", limit=2) == [{"id": 2}, {"id": 1}]
    assert db.executed[0][1] == ("acme", "api", 2)
    assert storage.get_workflow_runs("acme", "api", limit=0) == []
    assert len(db.executed) == 1


def test_notifications_include_broadcasts() -> None:
    db = FakeDatabase(results=[[]])

    PostgresStorage(db).get_notifications_for_user("u1")

    sql, params, _ = db.executed[0]
    assert "WHERE user_id = %s OR user_id IS NULL" in sql
    assert params == ("u1", 100)
