"""Story arc graph models.

A story arc graph is the per-project aggregate of chapter measurements
(``StoryArcPoint``) and structural markers (``PlotBeat``). Documents are
stored with camelCase keys; Python code uses the snake_case attributes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

IntensityLayer = Literal[
    "emotional",
    "stakes",
    "world_pressure",
    "internal_conflict",
    "theme_resonance",
    "spiritual_intensity",
    "action_crisis",
]

INTENSITY_LAYERS: tuple[IntensityLayer, ...] = (
    "emotional",
    "stakes",
    "world_pressure",
    "internal_conflict",
    "theme_resonance",
    "spiritual_intensity",
    "action_crisis",
)

ActNumber = Literal[1, 2, 3]

PlotBeatType = Literal[
    "inciting-incident",
    "first-plot-point",
    "midpoint",
    "dark-night",
    "climax",
    "resolution",
]

Intensity = Annotated[float, Field(ge=0, le=100)]


def utc_now() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(UTC).isoformat()


class DocumentModel(BaseModel):
    """Base for stored documents: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class StoryArcPoint(DocumentModel):
    """One chapter's measurements across the seven intensity layers."""

    chapter: int = Field(gt=0)
    act: ActNumber
    word_count_percent: float = Field(ge=0, le=100)

    emotional: Intensity
    stakes: Intensity
    world_pressure: Intensity
    internal_conflict: Intensity
    theme_resonance: Intensity
    spiritual_intensity: Intensity
    action_crisis: Intensity

    pov_character_id: str | None = None
    chapter_title: str | None = None
    arc_beat_ids: list[str] = Field(default_factory=list)
    notes: str = ""

    def layer(self, name: IntensityLayer) -> float:
        """Return the value of intensity layer *name*."""
        value: float = getattr(self, name)
        return value


class PlotBeat(DocumentModel):
    """A named structural marker pinned to a chapter.

    Independent of the character-level beats referenced by
    ``StoryArcPoint.arc_beat_ids``.
    """

    id: str = Field(min_length=1)
    type: PlotBeatType
    chapter: int = Field(gt=0)
    word_count_percent: float = Field(ge=0, le=100)
    title: str
    description: str = ""
    icon: str = ""


class StoryArcGraph(DocumentModel):
    """Aggregate root: all chapter points and plot beats for one project.

    ``version`` is the optimistic-concurrency counter maintained by the
    store; callers should treat it as read-only.
    """

    id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    points: list[StoryArcPoint] = Field(default_factory=list)
    plot_beats: list[PlotBeat] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_chapter_order(self) -> StoryArcGraph:
        problems = self.ordering_problems()
        if problems:
            raise ValueError("; ".join(problems))
        return self

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> StoryArcGraph:
        """Build a graph from a stored document dict."""
        return cls.model_validate(data)

    def ordering_problems(self) -> list[str]:
        """Describe every way the points break chapter order.

        Chapters must be unique, and neither ``act`` nor
        ``word_count_percent`` may decrease as the chapter increases.
        """
        problems: list[str] = []
        ordered = self.sorted_points()
        for previous, point in zip(ordered, ordered[1:], strict=False):
            if point.chapter == previous.chapter:
                problems.append(f"chapter {point.chapter} appears more than once")
                continue
            if point.act < previous.act:
                problems.append(
                    f"chapter {point.chapter} is in act {point.act} after act {previous.act}"
                )
            if point.word_count_percent < previous.word_count_percent:
                problems.append(
                    f"chapter {point.chapter} word count {point.word_count_percent:g}% "
                    f"is below chapter {previous.chapter} ({previous.word_count_percent:g}%)"
                )
        return problems

    def sorted_points(self) -> list[StoryArcPoint]:
        """Points ordered by chapter."""
        return sorted(self.points, key=lambda p: p.chapter)

    def point_for(self, chapter: int) -> StoryArcPoint | None:
        """Return the point for *chapter*, or None."""
        for point in self.points:
            if point.chapter == chapter:
                return point
        return None

    def points_in_act(self, act: int) -> list[StoryArcPoint]:
        return [p for p in self.sorted_points() if p.act == act]

    def points_for_pov(self, character_id: str) -> list[StoryArcPoint]:
        return [p for p in self.sorted_points() if p.pov_character_id == character_id]

    def plot_beat(self, beat_id: str) -> PlotBeat | None:
        for beat in self.plot_beats:
            if beat.id == beat_id:
                return beat
        return None

    def touch(self) -> None:
        """Refresh ``updated_at``."""
        self.updated_at = utc_now()
