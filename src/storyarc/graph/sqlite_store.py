"""SQLite-backed graph document storage with mutation audit trail.

SqliteArcGraphStore implements the ArcGraphStore protocol using stdlib
sqlite3. Every write (put, delete or clear) is recorded in the ``mutations``
table, tagged with the operation set via :meth:`set_mutation_context`.

Compare-and-swap writes run inside ``BEGIN IMMEDIATE`` so the version
check and the write are atomic even across connections to the same file.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, cast

from storyarc.graph.errors import ConcurrentModificationError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS graphs (
    project_id  TEXT PRIMARY KEY,
    graph_id    TEXT NOT NULL,
    version     INTEGER NOT NULL,
    data        JSON NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE TABLE IF NOT EXISTS mutations (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    operation    TEXT NOT NULL DEFAULT '',
    action       TEXT NOT NULL,
    project_id   TEXT NOT NULL,
    version      INTEGER NOT NULL,
    before_version INTEGER
);
CREATE INDEX IF NOT EXISTS idx_mutations_project ON mutations(project_id);
"""


class SqliteArcGraphStore:
    """SQLite-backed graph document store with mutation recording.

    Use :meth:`set_mutation_context` before writing to tag each audit row
    with the facade operation that caused it (e.g. ``"update_point"``).
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """Open or create a SQLite graph database.

        Args:
            db_path: Path to ``.db`` file, or ``":memory:"`` for in-memory.
            _conn: Pre-existing connection (for testing). If provided,
                   *db_path* is ignored.
        """
        if _conn is not None:
            self._conn = _conn
            self._db_path: str = ":memory:"
        else:
            self._db_path = str(db_path) if isinstance(db_path, Path) else db_path
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self._db_path,
                isolation_level=None,  # autocommit; transactions are explicit
            )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(_SCHEMA)

        self._operation: str = ""

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # -- Mutation context ------------------------------------------------------

    def set_mutation_context(self, operation: str = "") -> None:
        """Set the operation name recorded with subsequent writes.

        Args:
            operation: Facade operation (e.g., "add_plot_beat").
        """
        self._operation = operation

    def _record_mutation(
        self,
        action: str,
        project_id: str,
        version: int,
        before_version: int | None,
    ) -> None:
        self._conn.execute(
            "INSERT INTO mutations (operation, action, project_id, version, before_version) "
            "VALUES (?, ?, ?, ?, ?)",
            (self._operation, action, project_id, version, before_version),
        )

    def mutations(self, project_id: str | None = None) -> list[dict[str, Any]]:
        """Return recorded mutations, oldest first.

        Args:
            project_id: Restrict to one project if given.
        """
        if project_id is None:
            rows = self._conn.execute("SELECT * FROM mutations ORDER BY id").fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM mutations WHERE project_id = ? ORDER BY id",
                (project_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    # -- Documents -------------------------------------------------------------

    def get(self, project_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT data, version FROM graphs WHERE project_id = ?", (project_id,)
        ).fetchone()
        if row is None:
            return None
        document = cast("dict[str, Any]", json.loads(row["data"]))
        document["version"] = row["version"]
        return document

    def version(self, project_id: str) -> int:
        row = self._conn.execute(
            "SELECT version FROM graphs WHERE project_id = ?", (project_id,)
        ).fetchone()
        return int(row["version"]) if row is not None else 0

    def put(
        self,
        project_id: str,
        document: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            current = self.version(project_id)
            if expected_version is not None and current != expected_version:
                raise ConcurrentModificationError(
                    project_id=project_id,
                    expected_version=expected_version,
                    actual_version=current if current else None,
                )
            new_version = current + 1
            data = dict(document)
            data["version"] = new_version
            self._conn.execute(
                "INSERT OR REPLACE INTO graphs (project_id, graph_id, version, data, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    project_id,
                    str(data.get("id", "")),
                    new_version,
                    json.dumps(data),
                    str(data.get("updatedAt", "")),
                ),
            )
            self._record_mutation(
                "replace" if current else "create",
                project_id,
                new_version,
                current if current else None,
            )
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")
        return new_version

    def _delete_row(self, project_id: str) -> bool:
        current = self.version(project_id)
        if not current:
            return False
        self._conn.execute("DELETE FROM graphs WHERE project_id = ?", (project_id,))
        self._record_mutation("delete", project_id, 0, current)
        return True

    def delete(self, project_id: str) -> bool:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            deleted = self._delete_row(project_id)
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")
        return deleted

    def clear(self) -> None:
        """Delete every graph in one transaction."""
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            for project_id in self.project_ids():
                self._delete_row(project_id)
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def project_ids(self) -> list[str]:
        rows = self._conn.execute("SELECT project_id FROM graphs ORDER BY project_id").fetchall()
        return [row["project_id"] for row in rows]
