"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from storyarc.models.graph import StoryArcGraph, StoryArcPoint

FIXED_NOW = "2026-01-01T00:00:00+00:00"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep STORYARC_* overrides from the developer's shell out of tests."""
    for name in ("STORYARC_STORE", "STORYARC_TOTAL_CHAPTERS", "STORYARC_PROJECTS_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


def make_point(chapter: int, act: int = 2, **overrides: Any) -> StoryArcPoint:
    """Build a point whose layers sit at an unremarkable 60 unless overridden."""
    values: dict[str, Any] = {
        "chapter": chapter,
        "act": act,
        "word_count_percent": min(100.0, chapter * 3.0),
        "emotional": 60,
        "stakes": 60,
        "world_pressure": 60,
        "internal_conflict": 60,
        "theme_resonance": 60,
        "spiritual_intensity": 60,
        "action_crisis": 40,
    }
    values.update(overrides)
    return StoryArcPoint(**values)


def make_graph(points: list[StoryArcPoint], project_id: str = "proj") -> StoryArcGraph:
    return StoryArcGraph(
        id=f"graph::{project_id}",
        project_id=project_id,
        points=points,
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )


@pytest.fixture
def point_factory() -> Any:
    """Factory for StoryArcPoint with neutral defaults."""
    return make_point


@pytest.fixture
def graph_factory() -> Any:
    """Factory for an unsaved StoryArcGraph with pinned timestamps."""
    return make_graph
