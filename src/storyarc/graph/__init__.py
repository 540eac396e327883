"""Graph package - story arc graph storage, seeding, integration and diagnostics.

Graphs are stored as whole documents, one per project, behind the
ArcGraphStore protocol. The repository adds lifecycle state; the service
layer (storyarc.service) adds seed-if-absent and versioned read-modify-write.
"""

from storyarc.graph.diagnostics import DiagnosticConfig, analyze_points
from storyarc.graph.errors import (
    ConcurrentModificationError,
    GraphNotFoundError,
    InvalidGraphError,
    InvalidUpdateError,
    NotFoundError,
    PlotBeatExistsError,
    PlotBeatNotFoundError,
    PointNotFoundError,
    RepositoryUninitializedError,
    StoryArcError,
)
from storyarc.graph.integration import (
    ChapterParseFailure,
    ChapterRef,
    IntegrationResult,
    integrate_beats,
    parse_chapter_reference,
)
from storyarc.graph.mutations import PlotBeatUpdate, PointUpdate
from storyarc.graph.repository import ArcGraphRepository, RepositoryState
from storyarc.graph.seed import SeedConfig, generate_graph
from storyarc.graph.store import ArcGraphStore, DictArcGraphStore

__all__ = [
    "ArcGraphRepository",
    "ArcGraphStore",
    "ChapterParseFailure",
    "ChapterRef",
    "ConcurrentModificationError",
    "DiagnosticConfig",
    "DictArcGraphStore",
    "GraphNotFoundError",
    "IntegrationResult",
    "InvalidGraphError",
    "InvalidUpdateError",
    "NotFoundError",
    "PlotBeatExistsError",
    "PlotBeatNotFoundError",
    "PlotBeatUpdate",
    "PointNotFoundError",
    "PointUpdate",
    "RepositoryState",
    "RepositoryUninitializedError",
    "SeedConfig",
    "StoryArcError",
    "analyze_points",
    "generate_graph",
    "integrate_beats",
    "parse_chapter_reference",
]
