"""Pydantic models for story arc graphs, character arcs, and reports."""

from storyarc.models.analysis import (
    AIArcAnalysis,
    CanonViolation,
    EmotionalDisconnect,
    FlatArc,
    LowStakes,
    PacingIssue,
)
from storyarc.models.character import ArcBeat, CharacterArc
from storyarc.models.graph import (
    INTENSITY_LAYERS,
    ActNumber,
    IntensityLayer,
    PlotBeat,
    PlotBeatType,
    StoryArcGraph,
    StoryArcPoint,
)

__all__ = [
    "INTENSITY_LAYERS",
    "AIArcAnalysis",
    "ActNumber",
    "ArcBeat",
    "CanonViolation",
    "CharacterArc",
    "EmotionalDisconnect",
    "FlatArc",
    "IntensityLayer",
    "LowStakes",
    "PacingIssue",
    "PlotBeat",
    "PlotBeatType",
    "StoryArcGraph",
    "StoryArcPoint",
]
