"""Deterministic seed graphs.

Synthesizes a three-act intensity curve and the canonical plot beats for a
project that has no stored graph yet. The output is a reproducible fixture
and the "healthy" baseline the diagnostics are calibrated against: a seeded
graph with the default configuration produces no findings.

Each act is split into phases. Act I rises, Act II rises to a midpoint peak
then falls into a trough, Act III climbs to the climax then resolves. Every
phase is linear between two anchors; values are clamped to [0, 100] after
interpolation because several anchors deliberately overshoot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from storyarc.models.graph import (
    INTENSITY_LAYERS,
    IntensityLayer,
    PlotBeat,
    PlotBeatType,
    StoryArcGraph,
    StoryArcPoint,
    utc_now,
)

DEFAULT_TOTAL_CHAPTERS = 30
DEFAULT_ACT_ONE_END = 0.23
DEFAULT_ACT_TWO_END = 0.73


@dataclass(frozen=True)
class LayerCurve:
    """Anchor values for one intensity layer.

    Attributes:
        act_one: (start, end) for the Act I rise.
        act_two: (start, peak, trough) for the Act II rise and fall.
        act_three: (start, peak, end) for the Act III climax and resolution.
    """

    act_one: tuple[float, float]
    act_two: tuple[float, float, float]
    act_three: tuple[float, float, float]


CURVES: dict[IntensityLayer, LayerCurve] = {
    "emotional": LayerCurve((30, 65), (62, 94, 36), (36, 100, 40)),
    "stakes": LayerCurve((38, 62), (62, 92, 50), (50, 110, 20)),
    "world_pressure": LayerCurve((15, 29), (34, 88, 46), (46, 114, 18)),
    "internal_conflict": LayerCurve((25, 53), (51, 87, 31), (31, 116, 28)),
    "theme_resonance": LayerCurve((20, 34), (40, 85, 50), (50, 105, 52)),
    "spiritual_intensity": LayerCurve((15, 36), (46, 82, 23), (23, 112, 40)),
    "action_crisis": LayerCurve((10, 24), (30, 75, 26), (26, 118, 12)),
}


@dataclass(frozen=True)
class CanonicalBeat:
    id: str
    type: PlotBeatType
    percent: float
    title: str
    description: str
    icon: str


CANONICAL_BEATS: tuple[CanonicalBeat, ...] = (
    CanonicalBeat(
        "beat-1",
        "inciting-incident",
        10,
        "Inciting Incident",
        "The event that sets the story in motion",
        "zap",
    ),
    CanonicalBeat(
        "beat-2",
        "first-plot-point",
        25,
        "First Plot Point",
        "End of Act I - Point of no return",
        "arrow-right",
    ),
    CanonicalBeat(
        "beat-3", "midpoint", 50, "Midpoint Shift", "Major revelation or reversal", "rotate-cw"
    ),
    CanonicalBeat("beat-4", "dark-night", 75, "Dark Night of the Soul", "All seems lost", "moon"),
    CanonicalBeat("beat-5", "climax", 90, "Final Confrontation", "The ultimate showdown", "flame"),
    CanonicalBeat("beat-6", "resolution", 97, "Resolution", "Tying up loose ends", "check-circle"),
)


@dataclass(frozen=True)
class SeedConfig:
    """Parameters for seed generation.

    Attributes:
        total_chapters: Number of chapters to generate (>= 1).
        act_one_end: Fraction of the book at which Act I ends.
        act_two_end: Fraction of the book at which Act II ends.
    """

    total_chapters: int = DEFAULT_TOTAL_CHAPTERS
    act_one_end: float = DEFAULT_ACT_ONE_END
    act_two_end: float = DEFAULT_ACT_TWO_END

    def __post_init__(self) -> None:
        if self.total_chapters < 1:
            raise ValueError(f"total_chapters must be >= 1, got {self.total_chapters}")
        if not 0 < self.act_one_end < self.act_two_end <= 1:
            raise ValueError(
                "act boundaries must satisfy 0 < act_one_end < act_two_end <= 1, "
                f"got {self.act_one_end} and {self.act_two_end}"
            )

    def act_boundaries(self) -> tuple[int, int]:
        """Return the last chapter of Act I and of Act II."""
        n = self.total_chapters
        act_one = min(n, max(1, math.floor(n * self.act_one_end + 0.5)))
        act_two = min(n, max(act_one, math.floor(n * self.act_two_end + 0.5)))
        return act_one, act_two


def act_for_chapter(chapter: int, boundaries: tuple[int, int]) -> int:
    """Return the act (1-3) that *chapter* falls in."""
    act_one, act_two = boundaries
    if chapter <= act_one:
        return 1
    if chapter <= act_two:
        return 2
    return 3


def _lerp(start: float, end: float, step: int, steps: int) -> float:
    return start + (end - start) * step / steps


def _clamp(value: float) -> float:
    return round(max(0.0, min(100.0, value)), 1)


def _layer_value(curve: LayerCurve, chapter: int, boundaries: tuple[int, int], total: int) -> float:
    act_one, act_two = boundaries
    if chapter <= act_one:
        start, end = curve.act_one
        return _lerp(start, end, chapter, act_one)

    if chapter <= act_two:
        length = act_two - act_one
        rise = (length + 1) // 2
        k = chapter - act_one
        start, peak, trough = curve.act_two
        if k <= rise:
            return _lerp(start, peak, k, rise)
        return _lerp(peak, trough, k - rise, length - rise)

    length = total - act_two
    rise = length // 2
    k = chapter - act_two
    start, peak, end = curve.act_three
    if k <= rise:
        return _lerp(start, peak, k, rise)
    return _lerp(peak, end, k - rise, length - rise)


def nearest_chapter(percent: float, total_chapters: int) -> int:
    """Map a word-count percentage to the nearest chapter (ties go earlier)."""
    target = percent * total_chapters / 100
    return min(range(1, total_chapters + 1), key=lambda c: (abs(c - target), c))


def generate_points(config: SeedConfig) -> list[StoryArcPoint]:
    """Generate one point per chapter following the three-act curve."""
    total = config.total_chapters
    boundaries = config.act_boundaries()
    points: list[StoryArcPoint] = []
    for chapter in range(1, total + 1):
        values = {
            layer: _clamp(_layer_value(CURVES[layer], chapter, boundaries, total))
            for layer in INTENSITY_LAYERS
        }
        points.append(
            StoryArcPoint(
                chapter=chapter,
                act=act_for_chapter(chapter, boundaries),
                word_count_percent=round(chapter / total * 100, 2),
                chapter_title=f"Chapter {chapter}",
                **values,
            )
        )
    return points


def generate_plot_beats(config: SeedConfig) -> list[PlotBeat]:
    """Place the canonical plot beats on their nearest chapters."""
    return [
        PlotBeat(
            id=beat.id,
            type=beat.type,
            chapter=nearest_chapter(beat.percent, config.total_chapters),
            word_count_percent=beat.percent,
            title=beat.title,
            description=beat.description,
            icon=beat.icon,
        )
        for beat in CANONICAL_BEATS
    ]


def generate_graph(
    project_id: str,
    total_chapters: int = DEFAULT_TOTAL_CHAPTERS,
    *,
    config: SeedConfig | None = None,
    now: str | None = None,
) -> StoryArcGraph:
    """Synthesize a seed graph for *project_id*.

    Pure and deterministic apart from the timestamps, which can be pinned
    with *now*.

    Args:
        project_id: Owning project.
        total_chapters: Chapter count; ignored when *config* is given.
        config: Full seed parameters.
        now: ISO timestamp to use for ``created_at``/``updated_at``.

    Returns:
        An unsaved graph (version 0).
    """
    config = config or SeedConfig(total_chapters=total_chapters)
    stamp = now or utc_now()
    return StoryArcGraph(
        id=f"graph::{project_id}",
        project_id=project_id,
        points=generate_points(config),
        plot_beats=generate_plot_beats(config),
        created_at=stamp,
        updated_at=stamp,
    )
