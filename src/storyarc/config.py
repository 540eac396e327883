"""Project configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

from storyarc.graph.diagnostics import DiagnosticConfig
from storyarc.graph.seed import (
    DEFAULT_ACT_ONE_END,
    DEFAULT_ACT_TWO_END,
    DEFAULT_TOTAL_CHAPTERS,
    SeedConfig,
)

DEFAULT_STORE = "graph.db"
DEFAULT_MAX_SAVE_RETRIES = 3


@dataclass
class ServiceConfig:
    """Configuration for the mutation facade.

    Attributes:
        max_save_retries: Extra attempts after an optimistic-concurrency
            conflict before the error reaches the caller.
    """

    max_save_retries: int = DEFAULT_MAX_SAVE_RETRIES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceConfig:
        return cls(max_save_retries=int(data.get("max_save_retries", DEFAULT_MAX_SAVE_RETRIES)))


def seed_config_from_dict(data: dict[str, Any]) -> SeedConfig:
    """Build a SeedConfig, honoring STORYARC_TOTAL_CHAPTERS.

    Resolution order for the chapter count:
    1. Environment variable STORYARC_TOTAL_CHAPTERS
    2. Project config (seed.total_chapters)
    3. Default (30)
    """
    env_total = os.getenv("STORYARC_TOTAL_CHAPTERS")
    total = int(env_total or data.get("total_chapters", DEFAULT_TOTAL_CHAPTERS))
    return SeedConfig(
        total_chapters=total,
        act_one_end=float(data.get("act_one_end", DEFAULT_ACT_ONE_END)),
        act_two_end=float(data.get("act_two_end", DEFAULT_ACT_TWO_END)),
    )


def diagnostic_config_from_dict(data: dict[str, Any]) -> DiagnosticConfig:
    defaults = DiagnosticConfig()
    return DiagnosticConfig(
        flat_window=int(data.get("flat_window", defaults.flat_window)),
        flat_range_threshold=float(
            data.get("flat_range_threshold", defaults.flat_range_threshold)
        ),
        low_stakes_window=int(data.get("low_stakes_window", defaults.low_stakes_window)),
        low_stakes_threshold=float(
            data.get("low_stakes_threshold", defaults.low_stakes_threshold)
        ),
        early_action_threshold=float(
            data.get("early_action_threshold", defaults.early_action_threshold)
        ),
    )


@dataclass
class ProjectConfig:
    """Configuration for a StoryArc project."""

    name: str
    project_id: str = ""
    version: int = 1
    store: str = DEFAULT_STORE
    seed: SeedConfig = field(default_factory=SeedConfig)
    diagnostics: DiagnosticConfig = field(default_factory=DiagnosticConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    def __post_init__(self) -> None:
        if not self.project_id:
            self.project_id = self.name

    def store_path(self, project_path: Path) -> Path:
        """Resolve the graph database path.

        STORYARC_STORE overrides the configured value. Relative paths are
        resolved against *project_path*.
        """
        raw = os.getenv("STORYARC_STORE") or self.store
        path = Path(raw)
        return path if path.is_absolute() else project_path / path

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """Create config from dictionary.

        Args:
            data: Dictionary containing config fields.

        Returns:
            ProjectConfig instance.
        """
        name = data.get("name", "unnamed")
        return cls(
            name=name,
            project_id=data.get("project_id", name),
            version=data.get("version", 1),
            store=data.get("store", DEFAULT_STORE),
            seed=seed_config_from_dict(dict(data.get("seed") or {})),
            diagnostics=diagnostic_config_from_dict(dict(data.get("diagnostics") or {})),
            service=ServiceConfig.from_dict(dict(data.get("service") or {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the project.yaml layout."""
        return {
            "name": self.name,
            "project_id": self.project_id,
            "version": self.version,
            "store": self.store,
            "seed": {
                "total_chapters": self.seed.total_chapters,
                "act_one_end": self.seed.act_one_end,
                "act_two_end": self.seed.act_two_end,
            },
            "diagnostics": {
                "flat_window": self.diagnostics.flat_window,
                "flat_range_threshold": self.diagnostics.flat_range_threshold,
                "low_stakes_window": self.diagnostics.low_stakes_window,
                "low_stakes_threshold": self.diagnostics.low_stakes_threshold,
                "early_action_threshold": self.diagnostics.early_action_threshold,
            },
            "service": {"max_save_retries": self.service.max_save_retries},
        }


class ProjectConfigError(Exception):
    """Raised when project configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load project config at {path}: {reason}")


def load_project_config(project_path: Path) -> ProjectConfig:
    """Load project configuration from project.yaml.

    Args:
        project_path: Path to the project root directory.

    Returns:
        ProjectConfig instance.

    Raises:
        ProjectConfigError: If config cannot be loaded.
    """
    config_path = project_path / "project.yaml"

    if not config_path.exists():
        raise ProjectConfigError(config_path, "File not found")

    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise ProjectConfigError(config_path, "Empty file")

        return ProjectConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ProjectConfigError):
            raise
        raise ProjectConfigError(config_path, str(e)) from e


def create_default_config(name: str, total_chapters: int | None = None) -> ProjectConfig:
    """Create a default project configuration.

    Args:
        name: Project name (also used as the project id).
        total_chapters: Optional seed size; defaults to 30.
    """
    seed = SeedConfig(total_chapters=total_chapters or DEFAULT_TOTAL_CHAPTERS)
    return ProjectConfig(name=name, seed=seed)


def write_project_config(config: ProjectConfig, project_path: Path) -> Path:
    """Write *config* to ``project_path/project.yaml``."""
    project_path.mkdir(parents=True, exist_ok=True)
    config_path = project_path / "project.yaml"
    yaml = YAML()
    yaml.default_flow_style = False
    with config_path.open("w", encoding="utf-8") as f:
        yaml.dump(config.to_dict(), f)
    return config_path
