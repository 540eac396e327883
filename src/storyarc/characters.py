"""Character arc collaborator: repository contract and file loading.

Character arcs are owned outside the story arc graph. The graph only needs
``get_all(project_id)``; the in-memory repository here backs tests and the
CLI, which loads arcs from a YAML or JSON file.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from storyarc.models.character import CharacterArc
from storyarc.observability.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class CharacterArcRepository(Protocol):
    """Read access to a project's character arcs."""

    async def get_all(self, project_id: str) -> list[CharacterArc]:
        """Return every character arc for *project_id*."""
        ...


class InMemoryCharacterArcRepository:
    """Character arcs held in a dict keyed by arc id."""

    def __init__(self, arcs: Iterable[CharacterArc] = ()) -> None:
        self._arcs: dict[str, CharacterArc] = {}
        for arc in arcs:
            self._arcs[arc.id] = arc

    async def get_all(self, project_id: str) -> list[CharacterArc]:
        # Arcs without a project id belong to every project.
        return [
            arc.model_copy(deep=True)
            for arc in self._arcs.values()
            if arc.project_id in (None, project_id)
        ]

    async def get(self, arc_id: str) -> CharacterArc | None:
        arc = self._arcs.get(arc_id)
        return arc.model_copy(deep=True) if arc is not None else None

    async def save(self, arc: CharacterArc) -> CharacterArc:
        self._arcs[arc.id] = arc.model_copy(deep=True)
        return arc

    async def delete(self, arc_id: str) -> None:
        self._arcs.pop(arc_id, None)


class CharacterFileError(Exception):
    """Raised when a character arc file cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load character arcs from {path}: {reason}")


def load_character_arcs(path: Path) -> list[CharacterArc]:
    """Load character arcs from a YAML or JSON file.

    The file holds either a list of arcs or a mapping with a ``characters``
    list.

    Raises:
        CharacterFileError: If the file is missing or malformed.
    """
    if not path.exists():
        raise CharacterFileError(path, "File not found")

    from ruamel.yaml import YAML
    from ruamel.yaml.error import YAMLError

    yaml = YAML(typ="safe")
    try:
        with path.open("r", encoding="utf-8") as f:
            data: Any = yaml.load(f)
    except YAMLError as e:
        raise CharacterFileError(path, str(e)) from e

    if isinstance(data, dict):
        data = data.get("characters", [])
    if not isinstance(data, list):
        raise CharacterFileError(path, "expected a list of character arcs")

    try:
        arcs = [CharacterArc.model_validate(item) for item in data]
    except ValidationError as e:
        raise CharacterFileError(path, str(e)) from e
    log.debug("character_arcs_loaded", path=str(path), count=len(arcs))
    return arcs
