"""Graph document storage protocol and dict-based implementation.

The ArcGraphStore protocol defines the low-level document operations the
repository delegates to. A store holds at most one graph document per
project, keyed by project id, and maintains a version counter per document
for optimistic concurrency.

DictArcGraphStore is the in-memory backend used by tests and ephemeral
sessions. SqliteArcGraphStore provides file-backed storage with a mutation
audit trail.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol, runtime_checkable

from storyarc.graph.errors import ConcurrentModificationError


@runtime_checkable
class ArcGraphStore(Protocol):
    """Storage backend protocol for story arc graph documents.

    Documents are plain JSON-compatible dicts (camelCase keys). Version 0
    means "no document stored"; the first successful put stores version 1.
    """

    def get(self, project_id: str) -> dict[str, Any] | None:
        """Return a copy of the project's document, or None."""
        ...

    def version(self, project_id: str) -> int:
        """Return the stored version for *project_id* (0 if absent)."""
        ...

    def put(
        self,
        project_id: str,
        document: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        """Store *document* for *project_id* and return the new version.

        If *expected_version* is given, the stored version must equal it
        (0 meaning "must not exist yet"), otherwise
        ConcurrentModificationError is raised and nothing is written.
        """
        ...

    def delete(self, project_id: str) -> bool:
        """Remove the project's document. Return True if one existed."""
        ...

    def clear(self) -> None:
        """Remove every document."""
        ...

    def project_ids(self) -> list[str]:
        """Return the ids of all projects with a stored graph."""
        ...

    def set_mutation_context(self, operation: str = "") -> None:
        """Tag subsequent writes with the operation that caused them."""
        ...

    def close(self) -> None:
        """Release any underlying resources."""
        ...


class DictArcGraphStore:
    """In-memory dict-based graph document store."""

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        for project_id, document in (documents or {}).items():
            stored = copy.deepcopy(document)
            stored["version"] = max(1, int(stored.get("version", 0)))
            self._documents[project_id] = stored

    def get(self, project_id: str) -> dict[str, Any] | None:
        document = self._documents.get(project_id)
        return copy.deepcopy(document) if document is not None else None

    def version(self, project_id: str) -> int:
        document = self._documents.get(project_id)
        return int(document["version"]) if document is not None else 0

    def put(
        self,
        project_id: str,
        document: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        current = self.version(project_id)
        if expected_version is not None and current != expected_version:
            raise ConcurrentModificationError(
                project_id=project_id,
                expected_version=expected_version,
                actual_version=current if current else None,
            )
        stored = copy.deepcopy(document)
        stored["version"] = current + 1
        self._documents[project_id] = stored
        return current + 1

    def delete(self, project_id: str) -> bool:
        return self._documents.pop(project_id, None) is not None

    def clear(self) -> None:
        self._documents.clear()

    def project_ids(self) -> list[str]:
        return sorted(self._documents)

    def set_mutation_context(self, operation: str = "") -> None:
        """No-op: DictArcGraphStore does not record mutations."""

    def close(self) -> None:
        """No-op: nothing to release."""
