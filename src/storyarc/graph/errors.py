"""Story arc graph error types.

NotFound errors cover a missing graph, point, or plot beat. The remaining
types cover repository lifecycle, optimistic-concurrency conflicts, and
rejected partial updates. Each error carries enough context to render a
helpful message for the CLI or UI layer via ``to_feedback()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


class StoryArcError(Exception):
    """Base class for story arc errors."""

    def to_feedback(self) -> str:
        """Format the error as a user-facing message."""
        return str(self)


class NotFoundError(StoryArcError):
    """Base class for lookups that found nothing."""


@dataclass
class GraphNotFoundError(NotFoundError):
    """Raised when no graph is stored for a project.

    Attributes:
        project_id: The project that was looked up.
    """

    project_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Graph not found for project '{self.project_id}'")


@dataclass
class PointNotFoundError(NotFoundError):
    """Raised when a graph has no point for the requested chapter.

    Attributes:
        chapter: The chapter that was looked up.
        available: Chapters present in the graph.
    """

    chapter: int
    available: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Point not found for chapter {self.chapter}")

    def to_feedback(self) -> str:
        if not self.available:
            return f"{self}. The graph has no chapters."
        lo, hi = min(self.available), max(self.available)
        return f"{self}. Valid chapters are {lo}-{hi}."


@dataclass
class PlotBeatNotFoundError(NotFoundError):
    """Raised when referencing a plot beat id that does not exist.

    Attributes:
        beat_id: The id that was referenced.
        available: Plot beat ids present in the graph.
    """

    beat_id: str
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Plot beat '{self.beat_id}' not found")

    def suggestions(self) -> list[str]:
        """Find ids that might be typos of the requested one."""
        return get_close_matches(self.beat_id, self.available, n=3, cutoff=0.6)

    def to_feedback(self) -> str:
        lines = [str(self)]
        suggestions = self.suggestions()
        if suggestions:
            lines.append("Did you mean: " + ", ".join(suggestions))
        elif self.available:
            shown = sorted(self.available)[:10]
            lines.append("Valid ids: " + ", ".join(shown))
            if len(self.available) > 10:
                lines.append(f"... and {len(self.available) - 10} more")
        return "\n".join(lines)


@dataclass
class PlotBeatExistsError(StoryArcError):
    """Raised when adding a plot beat whose id is already taken."""

    beat_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Plot beat '{self.beat_id}' already exists")


class RepositoryUninitializedError(StoryArcError):
    """Raised when a repository is used before ``ensure_ready()``."""

    def __init__(self, state: str = "uninitialized") -> None:
        self.state = state
        super().__init__(f"Repository is not ready (state: {state})")


@dataclass
class ConcurrentModificationError(StoryArcError):
    """Raised when a save loses an optimistic-concurrency race.

    Attributes:
        project_id: Project whose graph was being saved.
        expected_version: Version the caller read.
        actual_version: Version currently stored (None if the document vanished).
    """

    project_id: str
    expected_version: int | None
    actual_version: int | None

    def __post_init__(self) -> None:
        super().__init__(
            f"Graph for project '{self.project_id}' was modified concurrently "
            f"(expected version {self.expected_version}, found {self.actual_version})"
        )


@dataclass
class InvalidUpdateError(StoryArcError):
    """Raised when a partial update names fields that may not be patched.

    Attributes:
        entity: What was being updated ("point" or "plot_beat").
        fields: Offending field names.
        reason: Validation detail.
    """

    entity: str
    fields: list[str] = field(default_factory=list)
    reason: str = ""

    def __post_init__(self) -> None:
        msg = f"Invalid {self.entity} update"
        if self.fields:
            msg += f": {', '.join(self.fields)}"
        if self.reason:
            msg += f" ({self.reason})"
        super().__init__(msg)


@dataclass
class InvalidGraphError(StoryArcError):
    """Raised when saving a graph whose points break chapter order.

    Attributes:
        project_id: Project whose graph was rejected.
        problems: One description per violation.
    """

    project_id: str
    problems: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(
            f"Graph for project '{self.project_id}' is invalid: {'; '.join(self.problems)}"
        )
