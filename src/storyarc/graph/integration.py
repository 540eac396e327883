"""Fold character-arc beats into chapter points.

Character beats reference chapters through free text (``"Ch 7"``,
``"Chapter 12: The Fall"``). Each link is parsed into a chapter number; the
resulting chapter -> beat-id mapping then *replaces* every point's
``arc_beat_ids``. Full replacement keeps the operation idempotent and drops
references to beats that were removed from a character.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from storyarc.models.character import CharacterArc
from storyarc.models.graph import StoryArcGraph
from storyarc.observability.logging import get_logger

log = get_logger(__name__)

_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True)
class ChapterRef:
    """A successfully parsed chapter reference."""

    chapter: int
    text: str


@dataclass(frozen=True)
class ChapterParseFailure:
    """A chapter link that could not be turned into a chapter number."""

    text: str
    reason: str


def parse_chapter_reference(text: str) -> ChapterRef | ChapterParseFailure:
    """Extract the first run of digits in *text* as a chapter number.

    Args:
        text: Human-readable chapter reference.

    Returns:
        ChapterRef on success, ChapterParseFailure when the text has no
        digits or the number is not a valid chapter.
    """
    match = _DIGITS.search(text)
    if match is None:
        return ChapterParseFailure(text=text, reason="no chapter number")
    chapter = int(match.group())
    if chapter < 1:
        return ChapterParseFailure(text=text, reason="chapter must be positive")
    return ChapterRef(chapter=chapter, text=text)


@dataclass(frozen=True)
class SkippedLink:
    """A beat link that contributed nothing to the graph."""

    character_id: str
    beat_id: str
    link: str
    reason: str


@dataclass
class IntegrationResult:
    """Outcome of an integration pass.

    Attributes:
        graph: Copy of the input graph with rebuilt ``arc_beat_ids``.
        beats_by_chapter: Chapter -> ordered beat ids, as parsed.
        skipped: Links that could not be parsed.
        unmatched: Links that parsed to a chapter the graph does not have.
    """

    graph: StoryArcGraph
    beats_by_chapter: dict[int, list[str]] = field(default_factory=dict)
    skipped: list[SkippedLink] = field(default_factory=list)
    unmatched: list[SkippedLink] = field(default_factory=list)

    @property
    def linked_beat_count(self) -> int:
        return sum(len(p.arc_beat_ids) for p in self.graph.points)


def map_beats_to_chapters(
    character_arcs: Iterable[CharacterArc],
) -> tuple[dict[int, list[str]], list[SkippedLink]]:
    """Build the chapter -> beat ids mapping.

    Order follows character order, then beat order, then link order. A
    beat listed twice for the same chapter appears once.
    """
    beats_by_chapter: dict[int, list[str]] = {}
    skipped: list[SkippedLink] = []
    for arc in character_arcs:
        for beat in arc.beats:
            for link in beat.chapter_links:
                parsed = parse_chapter_reference(link)
                if isinstance(parsed, ChapterParseFailure):
                    log.warning(
                        "chapter_link_skipped",
                        character_id=arc.id,
                        beat_id=beat.id,
                        link=link,
                        reason=parsed.reason,
                    )
                    skipped.append(SkippedLink(arc.id, beat.id, link, parsed.reason))
                    continue
                ids = beats_by_chapter.setdefault(parsed.chapter, [])
                if beat.id not in ids:
                    ids.append(beat.id)
    return beats_by_chapter, skipped


def integrate_beats(
    graph: StoryArcGraph,
    character_arcs: Iterable[CharacterArc],
) -> IntegrationResult:
    """Rebuild every point's ``arc_beat_ids`` from *character_arcs*.

    The input graph is not modified.

    Args:
        graph: Graph to integrate into.
        character_arcs: Character arcs for the graph's project.

    Returns:
        IntegrationResult holding the updated copy and a report of links
        that were skipped or pointed outside the graph.
    """
    arcs = list(character_arcs)
    beats_by_chapter, skipped = map_beats_to_chapters(arcs)

    updated = graph.model_copy(deep=True)
    chapters: set[int] = set()
    for point in updated.points:
        chapters.add(point.chapter)
        point.arc_beat_ids = list(beats_by_chapter.get(point.chapter, []))

    unmatched: list[SkippedLink] = []
    for arc in arcs:
        for beat in arc.beats:
            for link in beat.chapter_links:
                parsed = parse_chapter_reference(link)
                if isinstance(parsed, ChapterRef) and parsed.chapter not in chapters:
                    unmatched.append(SkippedLink(arc.id, beat.id, link, "chapter not in graph"))

    if unmatched:
        log.info("chapter_links_unmatched", project_id=graph.project_id, count=len(unmatched))
    log.debug(
        "beats_integrated",
        project_id=graph.project_id,
        characters=len(arcs),
        chapters_with_beats=sum(1 for p in updated.points if p.arc_beat_ids),
        skipped=len(skipped),
    )
    return IntegrationResult(
        graph=updated,
        beats_by_chapter=beats_by_chapter,
        skipped=skipped,
        unmatched=unmatched,
    )
