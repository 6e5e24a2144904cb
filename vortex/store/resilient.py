"""Storage router: durable when healthy, in-memory otherwise.

Routing per call:
- No durable store configured: memory, always (no probe).
- Health UNKNOWN: run the single-flight probe first.
- Health UNREACHABLE: memory, without touching the durable store.
- Health HEALTHY: durable. A connectivity error serves this call from memory.
  With downgrade_on_error=True it also flips health to UNREACHABLE; by
  default health stays HEALTHY and the next call tries the durable store
  again.

Writes that land in memory while a durable store is configured (per-call
fallback or UNREACHABLE health) pin their keys: later reads and writes for
those keys (and list reads over the same scope) stay in memory until
restart, even if health is reset and the durable store comes back. Nothing
is ever copied back to the durable store.

Business errors (ConflictError, ValueError) and "not found" results pass
through unchanged and never cause fallback.
"""

import logging
import threading
from typing import Any, Callable, Iterable, Optional

from vortex.errors import StoreConnectionError
from vortex.store.base import DEFAULT_WORKFLOW_RUN_LIMIT, Storage
from vortex.store.health import HealthState, HealthStatus, StoreHealth
from vortex.store.memory import MemoryStorage

logger = logging.getLogger(__name__)

# Errors from the durable store that mean "not reachable"
CONNECTIVITY_ERRORS = (StoreConnectionError, OSError)

# Scope key matching every record of a collection
ANY = "*"

PinKey = tuple
PinFn = Callable[[Any], Iterable[PinKey]]


def _user_keys(user: dict) -> list[PinKey]:
    return [("user", user["id"]), ("username", user["username"])]


def _project_keys(project: dict) -> list[PinKey]:
    return [
        ("project", project["id"]),
        ("projects", project.get("owner_id")),
        ("projects", ANY),
    ]


def _file_keys(row: dict) -> list[PinKey]:
    return [("file", row["project_id"], row["path"]), ("files", row["project_id"])]


def _notification_keys(note: dict) -> list[PinKey]:
    scope = note.get("user_id")
    return [("notification", note["id"]), ("notifications", ANY if scope is None else scope)]


class ResilientStore:
    """Storage facade that hides which backend served each call.

    Args:
        durable: The durable Storage (PostgresStorage), or None when no
            connection string is configured
        fallback: In-memory Storage; a fresh MemoryStorage by default
        health: Health cache for the durable store; a fresh HealthState by default
        downgrade_on_error: Flip health to UNREACHABLE on the first
            connectivity error seen after a successful probe
    """

    def __init__(
        self,
        durable: Optional[Storage] = None,
        fallback: Optional[MemoryStorage] = None,
        health: Optional[HealthState] = None,
        downgrade_on_error: bool = False,
    ):
        self._durable = durable
        self._fallback = fallback if fallback is not None else MemoryStorage()
        self._health = health if health is not None else HealthState()
        self._downgrade_on_error = downgrade_on_error
        self._pinned: set[PinKey] = set()
        self._pinned_lock = threading.Lock()

        if durable is None:
            self._health.mark_unreachable("no durable store configured")

    @property
    def health(self) -> StoreHealth:
        return self._health.snapshot

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _durable_available(self) -> bool:
        if self._durable is None:
            return False
        health = self._health.ensure_probed(self._durable.ping)
        return health.status == HealthStatus.HEALTHY

    def _is_pinned(self, keys: Iterable[PinKey]) -> bool:
        with self._pinned_lock:
            return any(k in self._pinned for k in keys)

    def _pin(self, keys: Iterable[PinKey]) -> None:
        with self._pinned_lock:
            self._pinned.update(keys)

    def _route(
        self,
        op: str,
        keys: list[PinKey],
        *args: Any,
        pins: Optional[PinFn] = None,
        **kwargs: Any,
    ) -> Any:
        """Run `op` on exactly one backend.

        `keys` are the pin keys the call reads or writes. `pins` (writes only)
        derives extra keys from the result, e.g. a freshly generated id.
        """
        if not self._is_pinned(keys) and self._durable_available():
            try:
                return getattr(self._durable, op)(*args, **kwargs)
            except CONNECTIVITY_ERRORS as e:
                self._note_durable_failure(op, e)

        result = getattr(self._fallback, op)(*args, **kwargs)
        if self._durable is not None and pins is not None and result not in (None, False):
            self._pin(list(keys) + list(pins(result)))
        return result

    def _note_durable_failure(self, op: str, exc: BaseException) -> None:
        logger.warning(f"[store] {op}: durable store failed ({exc}), serving from memory")
        if self._downgrade_on_error:
            self._health.mark_unreachable(f"{op}: {exc}")

    def ping(self) -> None:
        """Storage protocol member. Always succeeds: memory is always available."""
        return None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[dict]:
        return self._route("get_user", [("user", user_id)], user_id)

    def get_user_by_username(self, username: str) -> Optional[dict]:
        return self._route("get_user_by_username", [("username", username)], username)

    def create_user(self, fields: dict) -> dict:
        return self._route(
            "create_user",
            [("username", (fields.get("username") or "").strip())],
            fields,
            pins=_user_keys,
        )

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
        return self._route(
            "create_project",
            [],
            owner_id,
            name,
            description=description,
            repo_url=repo_url,
            metadata=metadata,
            public=public,
            pins=_project_keys,
        )

    def list_projects(
        self, owner_id: Optional[str] = None, public_only: bool = False
    ) -> list[dict]:
        scope = ("projects", owner_id) if owner_id else ("projects", ANY)
        return self._route(
            "list_projects", [scope], owner_id=owner_id, public_only=public_only
        )

    def get_project(self, project_id: str) -> Optional[dict]:
        return self._route("get_project", [("project", project_id)], project_id)

    def update_project(self, project_id: str, patch: dict) -> Optional[dict]:
        return self._route(
            "update_project", [("project", project_id)], project_id, patch, pins=_project_keys
        )

    def delete_project(self, project_id: str) -> Optional[dict]:
        """Delete where the project lives, plus any of its files pinned in memory."""
        removed = self._route(
            "delete_project", [("project", project_id)], project_id, pins=_project_keys
        )
        if removed is not None and self._is_pinned([("files", project_id)]):
            for row in self._fallback.list_project_files(project_id):
                self._fallback.delete_project_file(project_id, row["path"])
        return removed

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
        return self._route(
            "save_project_file",
            [("file", project_id, path)],
            project_id,
            path,
            content,
            metadata,
            pins=_file_keys,
        )

    def list_project_files(self, project_id: str) -> list[dict]:
        return self._route("list_project_files", [("files", project_id)], project_id)

    def get_project_file(self, project_id: str, path: str) -> Optional[dict]:
        return self._route(
            "get_project_file", [("file", project_id, path)], project_id, path
        )

    def delete_project_file(self, project_id: str, path: str) -> bool:
        return self._route(
            "delete_project_file",
            [("file", project_id, path)],
            project_id,
            path,
            pins=lambda _: [("files", project_id)],
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def create_notification(self, user_id: Optional[str], type: str, payload: Any) -> dict:
        return self._route(
            "create_notification", [], user_id, type, payload, pins=_notification_keys
        )

    def get_notifications_for_user(self, user_id: str) -> list[dict]:
        return self._route(
            "get_notifications_for_user",
            [("notifications", user_id), ("notifications", ANY)],
            user_id,
        )

    def mark_notification_read(self, notification_id: str) -> bool:
        return self._route(
            "mark_notification_read",
            [("notification", notification_id)],
            notification_id,
            pins=lambda _: [],
        )

    # ------------------------------------------------------------------
    # CI history
    # ------------------------------------------------------------------

    def save_workflow_runs(self, owner: str, repo: str, runs: list[dict]) -> None:
        scope = ("runs", owner, repo)
        if not self._is_pinned([scope]) and self._durable_available():
            try:
                return self._durable.save_workflow_runs(owner, repo, runs)
            except CONNECTIVITY_ERRORS as e:
                self._note_durable_failure("save_workflow_runs", e)

        self._fallback.save_workflow_runs(owner, repo, runs)
        if self._durable is not None:
            self._pin([scope])
        return None

    def get_workflow_runs(
        self, owner: str, repo: str, limit: int = DEFAULT_WORKFLOW_RUN_LIMIT
    ) -> list[dict]:
        return self._route(
            "get_workflow_runs", [("runs", owner, repo)], owner, repo, limit=limit
        )
