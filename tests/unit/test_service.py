"""Tests for StoryArcService operations."""

from __future__ import annotations

from typing import Any

import pytest

from storyarc.characters import InMemoryCharacterArcRepository
from storyarc.graph.errors import (
    ConcurrentModificationError,
    GraphNotFoundError,
    InvalidGraphError,
    InvalidUpdateError,
    NotFoundError,
    PlotBeatExistsError,
    PlotBeatNotFoundError,
    PointNotFoundError,
)
from storyarc.graph.mutations import PointUpdate
from storyarc.graph.repository import ArcGraphRepository
from storyarc.graph.seed import SeedConfig
from storyarc.graph.store import DictArcGraphStore
from storyarc.models.character import ArcBeat, CharacterArc
from storyarc.models.graph import PlotBeat
from storyarc.service import StoryArcService


class RacingStore(DictArcGraphStore):
    """Store where another writer sneaks in before each versioned put."""

    def __init__(self, races: int) -> None:
        super().__init__()
        self.races = races

    def put(
        self,
        project_id: str,
        document: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        if expected_version and self.races > 0:
            self.races -= 1
            current = self.get(project_id)
            assert current is not None
            super().put(project_id, current)
        return super().put(project_id, document, expected_version)


@pytest.fixture
def service() -> StoryArcService:
    return StoryArcService(ArcGraphRepository.in_memory())


def racing_service(races: int, max_save_retries: int = 3) -> tuple[StoryArcService, RacingStore]:
    store = RacingStore(races)
    repo = ArcGraphRepository(lambda: store)
    return StoryArcService(repo, max_save_retries=max_save_retries), store


def beat(beat_id: str, chapter: int = 10) -> PlotBeat:
    return PlotBeat(id=beat_id, type="midpoint", chapter=chapter, word_count_percent=33, title="T")


class TestGetStoryArcGraph:
    """Seed-if-absent reads."""

    @pytest.mark.asyncio
    async def test_seeds_on_first_read(self, service: StoryArcService) -> None:
        graph = await service.get_story_arc_graph("proj")
        assert len(graph.points) == 30
        assert len(graph.plot_beats) == 6
        assert graph.version == 1

    @pytest.mark.asyncio
    async def test_second_read_returns_stored(self, service: StoryArcService) -> None:
        first = await service.get_story_arc_graph("proj")
        second = await service.get_story_arc_graph("proj")
        assert second.to_document() == first.to_document()
        assert await service.repository.project_ids() == ["proj"]

    @pytest.mark.asyncio
    async def test_seed_size_from_config(self) -> None:
        service = StoryArcService(
            ArcGraphRepository.in_memory(), seed_config=SeedConfig(total_chapters=12)
        )
        graph = await service.get_story_arc_graph("proj")
        assert len(graph.points) == 12

    @pytest.mark.asyncio
    async def test_lost_seed_race_returns_winner(self) -> None:
        """If another caller seeds first, its graph is returned."""
        store = DictArcGraphStore()
        repo = ArcGraphRepository(lambda: store)
        service = StoryArcService(repo)
        await repo.ensure_ready()
        real_get = repo.get
        calls: list[str] = []

        async def get_then_race(project_id: str) -> Any:
            result = await real_get(project_id)
            if not calls:
                calls.append(project_id)
                store.put(project_id, {"id": "graph::winner", "projectId": project_id})
            return result

        repo.get = get_then_race  # type: ignore[method-assign]
        graph = await service.get_story_arc_graph("proj")
        assert graph.id == "graph::winner"
        assert graph.points == []


class TestSaveAndClear:
    @pytest.mark.asyncio
    async def test_save_overwrites_and_refreshes_updated_at(
        self, service: StoryArcService
    ) -> None:
        graph = await service.get_story_arc_graph("proj")
        graph.points = graph.points[:3]
        saved = await service.save_story_arc_graph(graph)
        assert saved.version == 2
        assert saved.created_at == graph.created_at
        assert saved.updated_at >= graph.updated_at
        stored = await service.repository.get("proj")
        assert stored is not None
        assert len(stored.points) == 3

    @pytest.mark.asyncio
    async def test_save_keeps_original_created_at(self, service: StoryArcService) -> None:
        seeded = await service.get_story_arc_graph("proj")
        rebuilt = seeded.model_copy(update={"created_at": "1999-01-01T00:00:00+00:00"})

        saved = await service.save_story_arc_graph(rebuilt)

        assert saved.created_at == seeded.created_at
        stored = await service.repository.get("proj")
        assert stored is not None
        assert stored.created_at == seeded.created_at

    @pytest.mark.asyncio
    async def test_save_rejects_duplicate_chapter(self, service: StoryArcService) -> None:
        graph = await service.get_story_arc_graph("proj")
        graph.points.append(graph.points[0].model_copy(update={"act": 3}))

        with pytest.raises(InvalidGraphError, match="chapter 1 appears more than once"):
            await service.save_story_arc_graph(graph)

        stored = await service.repository.get("proj")
        assert stored is not None
        assert stored.version == 1
        assert len(stored.points) == 30

    @pytest.mark.asyncio
    async def test_clear_reseeds(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        await service.update_arc_point("proj", 1, {"notes": "edited"})
        await service.clear("proj")
        assert await service.repository.get("proj") is None
        graph = await service.get_story_arc_graph("proj")
        assert graph.points[0].notes == ""


class TestUpdateArcPoint:
    @pytest.mark.asyncio
    async def test_updates_fields(self, service: StoryArcService) -> None:
        seeded = await service.get_story_arc_graph("proj")
        graph = await service.update_arc_point(
            "proj", 5, {"stakes": 12, "povCharacterId": "ana", "notes": "quiet"}
        )
        point = graph.point_for(5)
        assert point is not None
        assert point.stakes == 12
        assert point.pov_character_id == "ana"
        assert point.notes == "quiet"
        assert point.act == 1
        assert graph.version == seeded.version + 1
        assert graph.created_at == seeded.created_at

    @pytest.mark.asyncio
    async def test_accepts_typed_update(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        graph = await service.update_arc_point("proj", 2, PointUpdate(emotional=1))
        point = graph.point_for(2)
        assert point is not None
        assert point.emotional == 1

    @pytest.mark.asyncio
    async def test_missing_chapter_leaves_graph_unchanged(
        self, service: StoryArcService
    ) -> None:
        await service.get_story_arc_graph("proj")
        before = await service.repository.get("proj")
        assert before is not None

        with pytest.raises(PointNotFoundError) as exc_info:
            await service.update_arc_point("proj", 99, {"stakes": 10})

        assert isinstance(exc_info.value, NotFoundError)
        assert "Valid chapters are 1-30" in exc_info.value.to_feedback()
        after = await service.repository.get("proj")
        assert after is not None
        assert after.to_document() == before.to_document()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("patch", [{"chapter": 4}, {"act": 3}, {"arcBeatIds": []}, {"x": 1}])
    async def test_rejects_protected_and_unknown_fields(
        self, service: StoryArcService, patch: dict[str, Any]
    ) -> None:
        await service.get_story_arc_graph("proj")
        with pytest.raises(InvalidUpdateError):
            await service.update_arc_point("proj", 1, patch)
        stored = await service.repository.get("proj")
        assert stored is not None
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_rejects_word_count_out_of_chapter_order(
        self, service: StoryArcService
    ) -> None:
        await service.get_story_arc_graph("proj")

        with pytest.raises(InvalidUpdateError) as exc_info:
            await service.update_arc_point("proj", 2, {"word_count_percent": 99})

        assert exc_info.value.fields == ["word_count_percent"]
        stored = await service.repository.get("proj")
        assert stored is not None
        assert stored.version == 1
        assert [p.word_count_percent for p in stored.sorted_points()[:3]] == [3.33, 6.67, 10.0]

    @pytest.mark.asyncio
    async def test_word_count_within_neighbours_accepted(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        graph = await service.update_arc_point("proj", 2, {"wordCountPercent": 8})
        point = graph.point_for(2)
        assert point is not None
        assert point.word_count_percent == 8

    @pytest.mark.asyncio
    async def test_missing_graph(self, service: StoryArcService) -> None:
        with pytest.raises(GraphNotFoundError):
            await service.update_arc_point("nope", 1, {"stakes": 10})


class TestPlotBeats:
    @pytest.mark.asyncio
    async def test_add(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        graph = await service.add_plot_beat("proj", beat("twist-1"))
        assert graph.plot_beat("twist-1") is not None
        assert len(graph.plot_beats) == 7

    @pytest.mark.asyncio
    async def test_add_from_document(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        graph = await service.add_plot_beat(
            "proj",
            {
                "id": "pinch",
                "type": "dark-night",
                "chapter": 18,
                "wordCountPercent": 60,
                "title": "Pinch",
            },
        )
        added = graph.plot_beat("pinch")
        assert added is not None
        assert added.word_count_percent == 60

    @pytest.mark.asyncio
    async def test_add_duplicate_rejected(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        with pytest.raises(PlotBeatExistsError):
            await service.add_plot_beat("proj", beat("beat-1"))

    @pytest.mark.asyncio
    async def test_update(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        graph = await service.update_plot_beat("proj", "beat-3", {"chapter": 16, "title": "Twist"})
        updated = graph.plot_beat("beat-3")
        assert updated is not None
        assert updated.chapter == 16
        assert updated.title == "Twist"
        assert updated.type == "midpoint"

    @pytest.mark.asyncio
    async def test_update_rejects_id_change(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        with pytest.raises(InvalidUpdateError):
            await service.update_plot_beat("proj", "beat-3", {"id": "beat-9"})

    @pytest.mark.asyncio
    async def test_update_missing_suggests_close_ids(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        with pytest.raises(PlotBeatNotFoundError) as exc_info:
            await service.update_plot_beat("proj", "beat-7", {"title": "x"})
        assert "Did you mean" in exc_info.value.to_feedback()

    @pytest.mark.asyncio
    async def test_delete(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        graph = await service.delete_plot_beat("proj", "beat-2")
        assert graph.plot_beat("beat-2") is None
        assert len(graph.plot_beats) == 5

    @pytest.mark.asyncio
    async def test_delete_missing(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        with pytest.raises(PlotBeatNotFoundError):
            await service.delete_plot_beat("proj", "nope")


class TestOptimisticConcurrency:
    """Read-modify-write retries after losing a race."""

    @pytest.mark.asyncio
    async def test_retry_applies_change_to_fresh_snapshot(self) -> None:
        service, store = racing_service(races=2)
        await service.get_story_arc_graph("proj")

        graph = await service.update_arc_point("proj", 3, {"stakes": 77})

        point = graph.point_for(3)
        assert point is not None
        assert point.stakes == 77
        assert store.races == 0
        # Seed (1), two interleaved writes (2, 3), then ours (4).
        assert graph.version == 4

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        service, _ = racing_service(races=10, max_save_retries=1)
        await service.get_story_arc_graph("proj")
        with pytest.raises(ConcurrentModificationError):
            await service.update_arc_point("proj", 3, {"stakes": 77})


class TestIntegrateCharacterBeats:
    @pytest.mark.asyncio
    async def test_integrates_explicit_arcs(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        arcs = [
            CharacterArc(id="ana", beats=[ArcBeat(id="a1", chapter_links=["Ch 4", "Prologue"])])
        ]
        result = await service.integrate_character_beats("proj", arcs)

        assert result.graph.version == 2
        point = result.graph.point_for(4)
        assert point is not None
        assert point.arc_beat_ids == ["a1"]
        assert [s.link for s in result.skipped] == ["Prologue"]
        stored = await service.repository.get("proj")
        assert stored is not None
        assert stored.to_document() == result.graph.to_document()

    @pytest.mark.asyncio
    async def test_uses_character_repository(self) -> None:
        characters = InMemoryCharacterArcRepository(
            [
                CharacterArc(
                    id="ana", project_id="proj", beats=[ArcBeat(id="a1", chapter_links=["2"])]
                ),
                CharacterArc(
                    id="ben", project_id="other", beats=[ArcBeat(id="b1", chapter_links=["2"])]
                ),
            ]
        )
        service = StoryArcService(ArcGraphRepository.in_memory(), characters=characters)
        await service.get_story_arc_graph("proj")

        result = await service.integrate_character_beats("proj")

        point = result.graph.point_for(2)
        assert point is not None
        assert point.arc_beat_ids == ["a1"]

    @pytest.mark.asyncio
    async def test_requires_arcs_or_repository(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        with pytest.raises(ValueError, match="character_arcs"):
            await service.integrate_character_beats("proj")

    @pytest.mark.asyncio
    async def test_does_not_seed(self, service: StoryArcService) -> None:
        with pytest.raises(GraphNotFoundError):
            await service.integrate_character_beats("proj", [])
        assert await service.repository.project_ids() == []


class TestAnalyzeArcGraph:
    @pytest.mark.asyncio
    async def test_seeded_graph_scores_100(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        analysis = await service.analyze_arc_graph("proj")
        assert analysis.overall_score == 100

    @pytest.mark.asyncio
    async def test_missing_graph_analyzes_as_empty(self, service: StoryArcService) -> None:
        analysis = await service.analyze_arc_graph("nope")
        assert analysis.overall_score == 100
        assert await service.repository.project_ids() == []

    @pytest.mark.asyncio
    async def test_edits_surface_findings(self, service: StoryArcService) -> None:
        await service.get_story_arc_graph("proj")
        for chapter in (8, 9, 10):
            await service.update_arc_point("proj", chapter, {"stakes": 15})
        await service.update_arc_point("proj", 2, {"actionCrisis": 85})

        analysis = await service.analyze_arc_graph("proj")

        assert [w.chapters for w in analysis.low_stakes] == [[8, 9, 10]]
        assert [(p.type, p.chapter) for p in analysis.pacing_issues] == [("too-early", 2)]
        assert analysis.overall_score == 80

    @pytest.mark.asyncio
    async def test_explicit_graph(
        self, service: StoryArcService, point_factory: Any, graph_factory: Any
    ) -> None:
        graph = graph_factory([point_factory(c, emotional=50) for c in range(1, 6)])
        analysis = await service.analyze_arc_graph("proj", graph)
        assert len(analysis.flat_arcs) == 1
        assert analysis.overall_score == 90
