"""Character arc shapes consumed from the character-arc collaborator.

Only the fields the story arc graph needs are modelled strictly; the rest
of a character record is carried through untouched.
"""

from __future__ import annotations

from pydantic import ConfigDict, Field

from storyarc.models.graph import ActNumber, DocumentModel


class ArcBeat(DocumentModel):
    """A character-owned narrative milestone.

    ``chapter_links`` are human-readable references such as ``"Ch 7"`` or
    ``"Chapter 12: The Fall"``, not chapter numbers.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    act_number: ActNumber = 1
    title: str = ""
    description: str = ""
    chapter_links: list[str] = Field(default_factory=list)
    ai_suggestions: str | None = None


class CharacterArc(DocumentModel):
    """A character's development record, owned outside the arc graph."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    project_id: str | None = None
    name: str = ""
    beats: list[ArcBeat] = Field(default_factory=list)
