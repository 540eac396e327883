"""Tests for folding character-arc beats into chapter points."""

from __future__ import annotations

from typing import Any

import pytest

from storyarc.graph.integration import (
    ChapterParseFailure,
    ChapterRef,
    integrate_beats,
    map_beats_to_chapters,
    parse_chapter_reference,
)
from storyarc.models.character import ArcBeat, CharacterArc


def arc(arc_id: str, beats: dict[str, list[str]]) -> CharacterArc:
    return CharacterArc(
        id=arc_id,
        beats=[ArcBeat(id=beat_id, chapter_links=links) for beat_id, links in beats.items()],
    )


class TestParseChapterReference:
    """Free-text chapter links become a chapter number or a typed failure."""

    @pytest.mark.parametrize(
        ("text", "chapter"),
        [
            ("Ch 7", 7),
            ("Chapter 12: The Fall", 12),
            ("3", 3),
            ("ch.04", 4),
            ("Chapter 2, scene 5", 2),
        ],
    )
    def test_parses_first_number(self, text: str, chapter: int) -> None:
        assert parse_chapter_reference(text) == ChapterRef(chapter=chapter, text=text)

    def test_no_digits(self) -> None:
        result = parse_chapter_reference("The Prologue")
        assert isinstance(result, ChapterParseFailure)
        assert result.reason == "no chapter number"

    def test_zero_is_not_a_chapter(self) -> None:
        result = parse_chapter_reference("Ch 0")
        assert isinstance(result, ChapterParseFailure)
        assert result.reason == "chapter must be positive"


class TestMapBeatsToChapters:
    def test_order_follows_characters_then_beats(self) -> None:
        arcs = [
            arc("ana", {"a1": ["Ch 2"], "a2": ["Ch 2", "Ch 3"]}),
            arc("ben", {"b1": ["Chapter 2"]}),
        ]
        mapping, skipped = map_beats_to_chapters(arcs)
        assert mapping == {2: ["a1", "a2", "b1"], 3: ["a2"]}
        assert skipped == []

    def test_duplicate_link_listed_once(self) -> None:
        mapping, _ = map_beats_to_chapters([arc("ana", {"a1": ["Ch 4", "Chapter 4"]})])
        assert mapping == {4: ["a1"]}

    def test_unparseable_links_reported(self) -> None:
        mapping, skipped = map_beats_to_chapters([arc("ana", {"a1": ["Epilogue", "Ch 5"]})])
        assert mapping == {5: ["a1"]}
        assert len(skipped) == 1
        assert skipped[0].character_id == "ana"
        assert skipped[0].beat_id == "a1"
        assert skipped[0].link == "Epilogue"
        assert skipped[0].reason == "no chapter number"


class TestIntegrateBeats:
    """Integration rebuilds arc_beat_ids wholesale."""

    def test_links_beats_to_points(self, point_factory: Any, graph_factory: Any) -> None:
        graph = graph_factory([point_factory(c) for c in (1, 2, 3)])
        result = integrate_beats(graph, [arc("ana", {"a1": ["Ch 1"], "a2": ["Ch 3"]})])
        assert [p.arc_beat_ids for p in result.graph.points] == [["a1"], [], ["a2"]]
        assert result.linked_beat_count == 2

    def test_idempotent(self, point_factory: Any, graph_factory: Any) -> None:
        graph = graph_factory([point_factory(c) for c in (1, 2, 3)])
        arcs = [arc("ana", {"a1": ["Ch 1", "Ch 2"]}), arc("ben", {"b1": ["Ch 2"]})]
        once = integrate_beats(graph, arcs).graph
        twice = integrate_beats(once, arcs).graph
        assert once.to_document() == twice.to_document()

    def test_removed_beat_disappears(self, point_factory: Any, graph_factory: Any) -> None:
        graph = graph_factory([point_factory(c) for c in (1, 2)])
        first = integrate_beats(graph, [arc("ana", {"a1": ["Ch 1"], "a2": ["Ch 2"]})]).graph
        second = integrate_beats(first, [arc("ana", {"a1": ["Ch 1"]})]).graph
        assert [p.arc_beat_ids for p in second.points] == [["a1"], []]

    def test_stale_ids_replaced(self, point_factory: Any, graph_factory: Any) -> None:
        graph = graph_factory([point_factory(1, arc_beat_ids=["gone"])])
        result = integrate_beats(graph, [])
        assert result.graph.points[0].arc_beat_ids == []

    def test_input_graph_not_modified(self, point_factory: Any, graph_factory: Any) -> None:
        graph = graph_factory([point_factory(1)])
        before = graph.to_document()
        integrate_beats(graph, [arc("ana", {"a1": ["Ch 1"]})])
        assert graph.to_document() == before

    def test_links_outside_graph_reported(self, point_factory: Any, graph_factory: Any) -> None:
        graph = graph_factory([point_factory(1), point_factory(2)])
        result = integrate_beats(graph, [arc("ana", {"a1": ["Ch 2", "Ch 40"], "a2": ["??"]})])
        assert result.beats_by_chapter == {2: ["a1"], 40: ["a1"]}
        assert [(u.link, u.reason) for u in result.unmatched] == [("Ch 40", "chapter not in graph")]
        assert [s.link for s in result.skipped] == ["??"]
        assert result.linked_beat_count == 1
