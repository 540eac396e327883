"""Async repository handle over a graph document store.

The repository owns its lifecycle state. Callers open it with the
idempotent :meth:`ArcGraphRepository.ensure_ready`; any data operation on a
repository that is not READY raises RepositoryUninitializedError.

All operations are coroutines so callers can await them from an event
loop, but they never run store work on other threads: suspension happens
only at the async boundaries, never mid-write.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from storyarc.graph.errors import InvalidGraphError, RepositoryUninitializedError
from storyarc.graph.store import ArcGraphStore, DictArcGraphStore
from storyarc.models.graph import StoryArcGraph
from storyarc.observability.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

log = get_logger(__name__)


class RepositoryState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


StoreFactory = Callable[[], ArcGraphStore]


class ArcGraphRepository:
    """Project-keyed access to story arc graphs.

    Attributes:
        state: Current lifecycle state.
    """

    def __init__(self, store_factory: StoreFactory | None = None) -> None:
        """Create an unopened repository.

        Args:
            store_factory: Builds the backing store on first ensure_ready().
                Defaults to an in-memory DictArcGraphStore.
        """
        self._store_factory: StoreFactory = store_factory or DictArcGraphStore
        self._store: ArcGraphStore | None = None
        self._lock = asyncio.Lock()
        self.state = RepositoryState.UNINITIALIZED

    @classmethod
    def in_memory(cls) -> ArcGraphRepository:
        return cls(DictArcGraphStore)

    @classmethod
    def sqlite(cls, db_path: Path | str) -> ArcGraphRepository:
        """Repository backed by a SQLite file."""
        from storyarc.graph.sqlite_store import SqliteArcGraphStore

        return cls(lambda: SqliteArcGraphStore(db_path))

    # -- Lifecycle -------------------------------------------------------------

    async def ensure_ready(self) -> None:
        """Open the backing store once. Safe to call repeatedly and concurrently."""
        if self.state is RepositoryState.READY:
            return
        async with self._lock:
            if self.state is RepositoryState.READY:
                return
            if self.state is RepositoryState.CLOSED:
                raise RepositoryUninitializedError(self.state.value)
            self.state = RepositoryState.INITIALIZING
            try:
                self._store = self._store_factory()
            except Exception:
                self.state = RepositoryState.UNINITIALIZED
                raise
            self.state = RepositoryState.READY
            log.debug("repository_ready", store=type(self._store).__name__)

    async def close(self) -> None:
        """Release the backing store. The repository cannot be reopened."""
        async with self._lock:
            if self._store is not None:
                self._store.close()
                self._store = None
            self.state = RepositoryState.CLOSED

    @property
    def store(self) -> ArcGraphStore:
        """The backing store, if ready."""
        if self.state is not RepositoryState.READY or self._store is None:
            raise RepositoryUninitializedError(self.state.value)
        return self._store

    # -- Documents -------------------------------------------------------------

    async def get(self, project_id: str) -> StoryArcGraph | None:
        """Return the project's graph, or None if none is stored."""
        document = self.store.get(project_id)
        if document is None:
            return None
        return StoryArcGraph.from_document(document)

    async def save(
        self,
        graph: StoryArcGraph,
        *,
        expected_version: int | None = None,
        operation: str = "save",
    ) -> StoryArcGraph:
        """Persist *graph*, stamping ``updated_at`` and the new version.

        When the project already has a graph, its ``created_at`` is kept and
        the caller's value is ignored.

        Args:
            graph: Graph to store under ``graph.project_id``.
            expected_version: If given, the write only succeeds when the
                stored version still equals it (0 = must not exist).
            operation: Name recorded in the store's mutation log.

        Returns:
            The stored graph (a copy carrying the new version).

        Raises:
            InvalidGraphError: If the points break chapter order.
            ConcurrentModificationError: If *expected_version* is stale.
        """
        store = self.store
        stored = graph.model_copy(deep=True)
        # Points may have been edited in place since validation.
        problems = stored.ordering_problems()
        if problems:
            raise InvalidGraphError(stored.project_id, problems)
        existing = store.get(stored.project_id)
        if existing is not None and existing.get("createdAt"):
            stored.created_at = existing["createdAt"]
        stored.touch()
        store.set_mutation_context(operation)
        try:
            stored.version = store.put(
                stored.project_id,
                stored.to_document(),
                expected_version=expected_version,
            )
        finally:
            store.set_mutation_context("")
        log.debug(
            "graph_saved",
            project_id=stored.project_id,
            version=stored.version,
            operation=operation,
        )
        return stored

    async def clear(self, project_id: str | None = None) -> None:
        """Remove the project's graph, or every graph if no project is given."""
        store = self.store
        if project_id is None:
            store.clear()
            log.info("graphs_cleared")
        elif store.delete(project_id):
            log.info("graph_cleared", project_id=project_id)

    async def project_ids(self) -> list[str]:
        return self.store.project_ids()
