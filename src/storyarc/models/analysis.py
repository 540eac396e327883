"""Diagnostic report models.

``emotional_disconnects`` and ``canon_violations`` are never populated by
the current heuristics; they default to empty lists so consumers can read
every category unconditionally.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from storyarc.models.graph import DocumentModel, IntensityLayer


class FlatArc(DocumentModel):
    """A run of chapters where one layer barely varies."""

    layer: IntensityLayer
    chapters: list[int]
    suggestion: str


class LowStakes(DocumentModel):
    """A run of chapters where stakes stay under the floor."""

    chapters: list[int]
    suggestion: str


class PacingIssue(DocumentModel):
    type: Literal["too-early", "too-late", "too-flat"]
    chapter: int
    suggestion: str


class EmotionalDisconnect(DocumentModel):
    chapter: int
    character_id: str
    issue: str
    suggestion: str


class CanonViolation(DocumentModel):
    chapter: int
    issue: str
    conflicts_with: int


class AIArcAnalysis(DocumentModel):
    """Scored structural report for one graph."""

    flat_arcs: list[FlatArc] = Field(default_factory=list)
    low_stakes: list[LowStakes] = Field(default_factory=list)
    pacing_issues: list[PacingIssue] = Field(default_factory=list)
    emotional_disconnects: list[EmotionalDisconnect] = Field(default_factory=list)
    canon_violations: list[CanonViolation] = Field(default_factory=list)
    overall_score: int = Field(ge=0, le=100)
    summary: str

    @property
    def is_clean(self) -> bool:
        """True when none of the implemented categories has findings."""
        return not (self.flat_arcs or self.low_stakes or self.pacing_issues)
