"""Typed partial updates for points and plot beats.

Patches are validated against an explicit allow-list of fields. Fields that
carry invariants (``chapter``/``act``/``arc_beat_ids`` on points, ``id`` on
plot beats) and unknown keys are rejected with InvalidUpdateError instead
of being merged blindly. Patches may use snake_case or camelCase keys.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import ConfigDict, Field, ValidationError

from storyarc.graph.errors import InvalidUpdateError
from storyarc.models.graph import (
    DocumentModel,
    Intensity,
    PlotBeat,
    PlotBeatType,
    StoryArcPoint,
)

M = TypeVar("M", bound=DocumentModel)
U = TypeVar("U", bound="_Update")


class _Update(DocumentModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set by the caller, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class PointUpdate(_Update):
    """Fields a caller may change on a StoryArcPoint."""

    emotional: Intensity | None = None
    stakes: Intensity | None = None
    world_pressure: Intensity | None = None
    internal_conflict: Intensity | None = None
    theme_resonance: Intensity | None = None
    spiritual_intensity: Intensity | None = None
    action_crisis: Intensity | None = None
    word_count_percent: float | None = Field(default=None, ge=0, le=100)
    pov_character_id: str | None = None
    chapter_title: str | None = None
    notes: str | None = None


class PlotBeatUpdate(_Update):
    """Fields a caller may change on a PlotBeat."""

    type: PlotBeatType | None = None
    chapter: int | None = Field(default=None, gt=0)
    word_count_percent: float | None = Field(default=None, ge=0, le=100)
    title: str | None = None
    description: str | None = None
    icon: str | None = None


# Nullable on the entity itself; every other field must not be set to None.
_NULLABLE_POINT_FIELDS = frozenset({"pov_character_id", "chapter_title"})


def _parse(model: type[U], entity: str, patch: dict[str, Any] | _Update) -> U:
    if isinstance(patch, model):
        return patch
    if isinstance(patch, _Update):
        raise InvalidUpdateError(entity, reason=f"expected {model.__name__}")
    try:
        return model.model_validate(patch)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        reasons = sorted({err["type"] for err in e.errors()})
        raise InvalidUpdateError(entity, fields=fields, reason=", ".join(reasons)) from e


def parse_point_update(patch: dict[str, Any] | PointUpdate) -> PointUpdate:
    """Validate a point patch, raising InvalidUpdateError on bad fields."""
    update = _parse(PointUpdate, "point", patch)
    nulls = [
        k for k, v in update.changes().items() if v is None and k not in _NULLABLE_POINT_FIELDS
    ]
    if nulls:
        raise InvalidUpdateError("point", fields=sorted(nulls), reason="may not be null")
    return update


def parse_plot_beat_update(patch: dict[str, Any] | PlotBeatUpdate) -> PlotBeatUpdate:
    """Validate a plot beat patch, raising InvalidUpdateError on bad fields."""
    update = _parse(PlotBeatUpdate, "plot_beat", patch)
    nulls = [k for k, v in update.changes().items() if v is None]
    if nulls:
        raise InvalidUpdateError("plot_beat", fields=sorted(nulls), reason="may not be null")
    return update


def _apply(target: M, update: _Update) -> M:
    merged = {**target.model_dump(), **update.changes()}
    return type(target).model_validate(merged)


def apply_point_update(point: StoryArcPoint, update: PointUpdate) -> StoryArcPoint:
    """Return a new point with *update* applied."""
    return _apply(point, update)


def apply_plot_beat_update(beat: PlotBeat, update: PlotBeatUpdate) -> PlotBeat:
    """Return a new plot beat with *update* applied."""
    return _apply(beat, update)


def check_word_count_order(points: list[StoryArcPoint], updated: StoryArcPoint) -> None:
    """Reject *updated* if its word count falls outside its neighbours' range.

    Raises:
        InvalidUpdateError: If an earlier chapter has a higher
            ``word_count_percent`` or a later chapter a lower one.
    """
    others = [p for p in points if p.chapter != updated.chapter]
    low = max((p.word_count_percent for p in others if p.chapter < updated.chapter), default=0.0)
    high = min(
        (p.word_count_percent for p in others if p.chapter > updated.chapter), default=100.0
    )
    if not low <= updated.word_count_percent <= high:
        raise InvalidUpdateError(
            "point",
            fields=["word_count_percent"],
            reason=f"chapter {updated.chapter} must stay between {low:g}% and {high:g}%",
        )
