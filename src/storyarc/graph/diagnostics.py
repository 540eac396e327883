"""Heuristic structural diagnostics for story arc graphs.

The analysis is a pure function of the points: identical input always
yields an identical report. Three categories are implemented:

- Flat arcs: sliding windows where the emotional layer's range stays
  under a threshold.
- Low stakes: sliding windows where every point's stakes sit under a floor.
- Pacing issues: Act I points whose action/crisis layer spikes too early.

Window scans suppress overlaps: once a window is flagged, scanning resumes
at the first chapter after it, so no chapter appears in two findings of
the same category.

The score starts at 70 and gains 10 for each implemented category that
produced no findings.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from storyarc.models.analysis import AIArcAnalysis, FlatArc, LowStakes, PacingIssue
from storyarc.models.graph import PlotBeat, StoryArcPoint

T = TypeVar("T")

BASE_SCORE = 70
CATEGORY_BONUS = 10

EXCELLENT_SUMMARY = (
    "Your story arc shows excellent structure with clear three-act progression "
    "and well-paced intensity throughout."
)
SUMMARY_PREFIX = "Your story arc shows good structure overall."
FLAT_CLAUSE = "Some sections could use more emotional variation."
LOW_STAKES_CLAUSE = "Consider raising stakes in identified sections."
PACING_CLAUSE = "Watch pacing in early chapters."


@dataclass(frozen=True)
class DiagnosticConfig:
    """Thresholds for the heuristics.

    Attributes:
        flat_window: Points per flat-arc window.
        flat_range_threshold: A window is flat when max - min is below this.
        low_stakes_window: Points per low-stakes window.
        low_stakes_threshold: A window is low-stakes when every value is below this.
        early_action_threshold: Act I action/crisis above this is flagged.
    """

    flat_window: int = 5
    flat_range_threshold: float = 10
    low_stakes_window: int = 3
    low_stakes_threshold: float = 40
    early_action_threshold: float = 70

    def __post_init__(self) -> None:
        if self.flat_window < 1 or self.low_stakes_window < 1:
            raise ValueError("window sizes must be >= 1")


def scan_windows(
    items: Sequence[T],
    width: int,
    predicate: Callable[[Sequence[T]], bool],
) -> list[Sequence[T]]:
    """Return non-overlapping windows of *width* items that satisfy *predicate*.

    After a match the scan advances width - 1 positions plus the regular
    step, so the next candidate window begins right after the matched one.
    """
    matches: list[Sequence[T]] = []
    i = 0
    while i + width <= len(items):
        window = items[i : i + width]
        if predicate(window):
            matches.append(window)
            i += width - 1
        i += 1
    return matches


def _span(points: Sequence[StoryArcPoint]) -> str:
    return f"{points[0].chapter}-{points[-1].chapter}"


def find_flat_arcs(points: Sequence[StoryArcPoint], config: DiagnosticConfig) -> list[FlatArc]:
    """Flag windows where emotional intensity barely moves."""

    def is_flat(window: Sequence[StoryArcPoint]) -> bool:
        values = [p.emotional for p in window]
        return max(values) - min(values) < config.flat_range_threshold

    return [
        FlatArc(
            layer="emotional",
            chapters=[p.chapter for p in window],
            suggestion=(
                f"Emotional intensity is relatively flat in chapters {_span(window)}. "
                "Consider adding a character conflict or revelation to increase tension."
            ),
        )
        for window in scan_windows(points, config.flat_window, is_flat)
    ]


def find_low_stakes(points: Sequence[StoryArcPoint], config: DiagnosticConfig) -> list[LowStakes]:
    """Flag windows where stakes stay below the floor throughout."""

    def is_low(window: Sequence[StoryArcPoint]) -> bool:
        return all(p.stakes < config.low_stakes_threshold for p in window)

    return [
        LowStakes(
            chapters=[p.chapter for p in window],
            suggestion=(
                f"Stakes are low in chapters {_span(window)}. Consider raising what's at risk."
            ),
        )
        for window in scan_windows(points, config.low_stakes_window, is_low)
    ]


def find_pacing_issues(
    points: Iterable[StoryArcPoint], config: DiagnosticConfig
) -> list[PacingIssue]:
    """Flag Act I points whose action/crisis spikes above the threshold."""
    return [
        PacingIssue(
            type="too-early",
            chapter=p.chapter,
            suggestion=(
                f"Action intensity spikes early in chapter {p.chapter}. Consider building "
                "more gradually to preserve impact for later climaxes."
            ),
        )
        for p in points
        if p.act == 1 and p.action_crisis > config.early_action_threshold
    ]


def score(*categories: Sequence[object]) -> int:
    """Base score plus a bonus for every empty category, capped at 100."""
    total = BASE_SCORE + CATEGORY_BONUS * sum(1 for c in categories if not c)
    return min(100, total)


def summarize(
    flat_arcs: Sequence[object],
    low_stakes: Sequence[object],
    pacing: Sequence[object],
) -> str:
    """One clause per non-empty category, or the all-clear sentence."""
    if not (flat_arcs or low_stakes or pacing):
        return EXCELLENT_SUMMARY
    clauses = [SUMMARY_PREFIX]
    if flat_arcs:
        clauses.append(FLAT_CLAUSE)
    if low_stakes:
        clauses.append(LOW_STAKES_CLAUSE)
    if pacing:
        clauses.append(PACING_CLAUSE)
    return " ".join(clauses)


def analyze_points(
    points: Sequence[StoryArcPoint],
    plot_beats: Sequence[PlotBeat] = (),
    config: DiagnosticConfig | None = None,
) -> AIArcAnalysis:
    """Run all heuristics over *points* and build the scored report.

    Args:
        points: Chapter points in any order; they are sorted by chapter.
        plot_beats: Accepted for future heuristics; currently unused.
        config: Heuristic thresholds (defaults if omitted).

    Returns:
        The analysis report.
    """
    config = config or DiagnosticConfig()
    ordered = sorted(points, key=lambda p: p.chapter)

    flat_arcs = find_flat_arcs(ordered, config)
    low_stakes = find_low_stakes(ordered, config)
    pacing_issues = find_pacing_issues(ordered, config)

    return AIArcAnalysis(
        flat_arcs=flat_arcs,
        low_stakes=low_stakes,
        pacing_issues=pacing_issues,
        overall_score=score(flat_arcs, low_stakes, pacing_issues),
        summary=summarize(flat_arcs, low_stakes, pacing_issues),
    )
