"""Story arc service: the public operations over stored graphs.

Every mutation is a read-modify-write of the whole graph document guarded
by optimistic concurrency. The change is applied to the freshly read
snapshot and saved with the version that was read; if another writer got
there first the store raises ConcurrentModificationError and the change is
re-applied to the new snapshot, up to ``max_save_retries`` more times.
Nothing is written unless the change applies cleanly, so a failed lookup
leaves the stored graph untouched.

``save_story_arc_graph`` is the one unconditional overwrite.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from storyarc.graph.diagnostics import DiagnosticConfig, analyze_points
from storyarc.graph.errors import (
    ConcurrentModificationError,
    GraphNotFoundError,
    PlotBeatExistsError,
    PlotBeatNotFoundError,
    PointNotFoundError,
)
from storyarc.graph.integration import IntegrationResult, integrate_beats
from storyarc.graph.mutations import (
    PlotBeatUpdate,
    PointUpdate,
    apply_plot_beat_update,
    apply_point_update,
    check_word_count_order,
    parse_plot_beat_update,
    parse_point_update,
)
from storyarc.graph.seed import SeedConfig, generate_graph
from storyarc.models.graph import PlotBeat, StoryArcGraph
from storyarc.observability.logging import get_logger

if TYPE_CHECKING:
    from storyarc.characters import CharacterArcRepository
    from storyarc.config import ProjectConfig
    from storyarc.graph.repository import ArcGraphRepository
    from storyarc.models.analysis import AIArcAnalysis
    from storyarc.models.character import CharacterArc

log = get_logger(__name__)

GraphChange = Callable[[StoryArcGraph], None]


class StoryArcService:
    """Public story arc operations for one repository.

    Attributes:
        repository: Graph document repository.
        characters: Optional character-arc collaborator used when
            integrate_character_beats() is called without explicit arcs.
        seed_config: Parameters for graphs created on first read.
        diagnostic_config: Thresholds for analyze_arc_graph().
        max_save_retries: Retries after a concurrency conflict.
    """

    def __init__(
        self,
        repository: ArcGraphRepository,
        *,
        characters: CharacterArcRepository | None = None,
        seed_config: SeedConfig | None = None,
        diagnostic_config: DiagnosticConfig | None = None,
        max_save_retries: int = 3,
    ) -> None:
        self.repository = repository
        self.characters = characters
        self.seed_config = seed_config or SeedConfig()
        self.diagnostic_config = diagnostic_config or DiagnosticConfig()
        self.max_save_retries = max_save_retries

    @classmethod
    def from_config(
        cls,
        config: ProjectConfig,
        repository: ArcGraphRepository,
        characters: CharacterArcRepository | None = None,
    ) -> StoryArcService:
        return cls(
            repository,
            characters=characters,
            seed_config=config.seed,
            diagnostic_config=config.diagnostics,
            max_save_retries=config.service.max_save_retries,
        )

    # -------------------------------------------------------------------------
    # Read / seed
    # -------------------------------------------------------------------------

    async def get_story_arc_graph(self, project_id: str) -> StoryArcGraph:
        """Return the project's graph, seeding and saving one if absent."""
        await self.repository.ensure_ready()
        graph = await self.repository.get(project_id)
        if graph is not None:
            return graph

        seeded = generate_graph(project_id, config=self.seed_config)
        try:
            graph = await self.repository.save(seeded, expected_version=0, operation="seed")
        except ConcurrentModificationError:
            # Another caller seeded first; theirs wins.
            existing = await self.repository.get(project_id)
            if existing is None:
                raise
            return existing
        log.info(
            "graph_seeded",
            project_id=project_id,
            chapters=len(graph.points),
            plot_beats=len(graph.plot_beats),
        )
        return graph

    async def save_story_arc_graph(self, graph: StoryArcGraph) -> StoryArcGraph:
        """Overwrite the stored graph unconditionally, stamping ``updated_at``."""
        await self.repository.ensure_ready()
        return await self.repository.save(graph, operation="save")

    async def clear(self, project_id: str | None = None) -> None:
        """Drop the project's graph, or every graph."""
        await self.repository.ensure_ready()
        await self.repository.clear(project_id)

    # -------------------------------------------------------------------------
    # Read-modify-write
    # -------------------------------------------------------------------------

    async def _mutate(
        self, project_id: str, operation: str, change: GraphChange
    ) -> StoryArcGraph:
        """Apply *change* to the stored graph and save it with a version check.

        Raises:
            GraphNotFoundError: If the project has no graph.
            ConcurrentModificationError: If every attempt lost a race.
        """
        await self.repository.ensure_ready()
        attempt = 0
        while True:
            attempt += 1
            graph = await self.repository.get(project_id)
            if graph is None:
                raise GraphNotFoundError(project_id)
            read_version = graph.version
            change(graph)
            try:
                return await self.repository.save(
                    graph, expected_version=read_version, operation=operation
                )
            except ConcurrentModificationError:
                log.warning(
                    "graph_save_conflict",
                    project_id=project_id,
                    operation=operation,
                    attempt=attempt,
                )
                if attempt > self.max_save_retries:
                    raise

    async def update_arc_point(
        self,
        project_id: str,
        chapter: int,
        patch: dict[str, Any] | PointUpdate,
    ) -> StoryArcGraph:
        """Apply a field-level update to the point for *chapter*.

        Raises:
            InvalidUpdateError: If *patch* names unknown or protected fields,
                or moves word_count_percent out of chapter order.
            GraphNotFoundError: If the project has no graph.
            PointNotFoundError: If no point has that chapter.
        """
        update = parse_point_update(patch)

        def change(graph: StoryArcGraph) -> None:
            for i, point in enumerate(graph.points):
                if point.chapter == chapter:
                    updated = apply_point_update(point, update)
                    check_word_count_order(graph.points, updated)
                    graph.points[i] = updated
                    return
            raise PointNotFoundError(chapter, sorted(p.chapter for p in graph.points))

        graph = await self._mutate(project_id, "update_point", change)
        log.debug(
            "point_updated",
            project_id=project_id,
            chapter=chapter,
            fields=sorted(update.changes()),
        )
        return graph

    async def add_plot_beat(
        self, project_id: str, beat: PlotBeat | dict[str, Any]
    ) -> StoryArcGraph:
        """Append a plot beat.

        Raises:
            PlotBeatExistsError: If a beat with the same id exists.
        """
        new_beat = beat if isinstance(beat, PlotBeat) else PlotBeat.model_validate(beat)

        def change(graph: StoryArcGraph) -> None:
            if graph.plot_beat(new_beat.id) is not None:
                raise PlotBeatExistsError(new_beat.id)
            graph.plot_beats.append(new_beat.model_copy(deep=True))

        graph = await self._mutate(project_id, "add_plot_beat", change)
        log.debug("plot_beat_added", project_id=project_id, beat_id=new_beat.id)
        return graph

    async def update_plot_beat(
        self,
        project_id: str,
        beat_id: str,
        patch: dict[str, Any] | PlotBeatUpdate,
    ) -> StoryArcGraph:
        """Apply a field-level update to the plot beat *beat_id*.

        Raises:
            InvalidUpdateError: If *patch* names unknown or protected fields.
            PlotBeatNotFoundError: If no beat has that id.
        """
        update = parse_plot_beat_update(patch)

        def change(graph: StoryArcGraph) -> None:
            for i, beat in enumerate(graph.plot_beats):
                if beat.id == beat_id:
                    graph.plot_beats[i] = apply_plot_beat_update(beat, update)
                    return
            raise PlotBeatNotFoundError(beat_id, [b.id for b in graph.plot_beats])

        return await self._mutate(project_id, "update_plot_beat", change)

    async def delete_plot_beat(self, project_id: str, beat_id: str) -> StoryArcGraph:
        """Remove the plot beat *beat_id*.

        Raises:
            PlotBeatNotFoundError: If no beat has that id.
        """

        def change(graph: StoryArcGraph) -> None:
            remaining = [b for b in graph.plot_beats if b.id != beat_id]
            if len(remaining) == len(graph.plot_beats):
                raise PlotBeatNotFoundError(beat_id, [b.id for b in graph.plot_beats])
            graph.plot_beats = remaining

        graph = await self._mutate(project_id, "delete_plot_beat", change)
        log.debug("plot_beat_deleted", project_id=project_id, beat_id=beat_id)
        return graph

    # -------------------------------------------------------------------------
    # Integration and analysis
    # -------------------------------------------------------------------------

    async def integrate_character_beats(
        self,
        project_id: str,
        character_arcs: Iterable[CharacterArc] | None = None,
    ) -> IntegrationResult:
        """Rebuild ``arc_beat_ids`` on every point from character beats.

        Never seeds: a project without a graph fails.

        Args:
            project_id: Project to integrate into.
            character_arcs: Arcs to use; fetched from the character
                repository when omitted.

        Raises:
            GraphNotFoundError: If the project has no graph.
            ValueError: If no arcs are given and no character repository is set.
        """
        if character_arcs is None:
            if self.characters is None:
                raise ValueError("character_arcs required when no character repository is set")
            arcs = await self.characters.get_all(project_id)
        else:
            arcs = list(character_arcs)

        results: list[IntegrationResult] = []

        def change(graph: StoryArcGraph) -> None:
            integrated = integrate_beats(graph, arcs)
            graph.points = integrated.graph.points
            results.append(integrated)

        saved = await self._mutate(project_id, "integrate_beats", change)
        result = results[-1]
        result.graph = saved
        log.info(
            "character_beats_integrated",
            project_id=project_id,
            characters=len(arcs),
            linked=result.linked_beat_count,
            skipped=len(result.skipped),
        )
        return result

    async def analyze_arc_graph(
        self,
        project_id: str,
        graph: StoryArcGraph | None = None,
    ) -> AIArcAnalysis:
        """Run the diagnostics on *graph*, or on the stored graph if omitted.

        A project with no stored graph analyzes as an empty graph.
        """
        if graph is None:
            await self.repository.ensure_ready()
            graph = await self.repository.get(project_id)
        points = graph.points if graph is not None else []
        plot_beats = graph.plot_beats if graph is not None else []
        analysis = analyze_points(points, plot_beats, self.diagnostic_config)
        log.info(
            "graph_analyzed",
            project_id=project_id,
            score=analysis.overall_score,
            flat_arcs=len(analysis.flat_arcs),
            low_stakes=len(analysis.low_stakes),
            pacing_issues=len(analysis.pacing_issues),
        )
        return analysis
