"""StoryArc CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from storyarc.graph.errors import StoryArcError
from storyarc.observability import (
    bind_log_context,
    clear_log_context,
    close_file_logging,
    configure_logging,
    get_logger,
)

# Load environment variables from .env file
load_dotenv()

T = TypeVar("T")

app = typer.Typer(
    name="storyarc",
    help="StoryArc: story arc graphs and structural diagnostics for novels.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_PROJECTS_DIR = Path("projects")

LAYER_COLUMNS = (
    ("emotional", "Emo"),
    ("stakes", "Stakes"),
    ("world_pressure", "World"),
    ("internal_conflict", "Inner"),
    ("theme_resonance", "Theme"),
    ("spiritual_intensity", "Spirit"),
    ("action_crisis", "Action"),
)

NUMERIC_FIELDS = frozenset(
    [layer for layer, _ in LAYER_COLUMNS]
    + ["word_count_percent", "wordCountPercent", "worldPressure", "internalConflict"]
    + ["themeResonance", "spiritualIntensity", "actionCrisis"]
)

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False
_projects_dir: Path = DEFAULT_PROJECTS_DIR

ProjectOption = Annotated[
    Path | None,
    typer.Option(
        "--project",
        "-p",
        help="Project directory. Can be a path or name (looks in --projects-dir).",
    ),
]


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log: Annotated[
        bool,
        typer.Option("--log", help="Enable file logging to {project}/logs/debug.jsonl."),
    ] = False,
    projects_dir: Annotated[
        Path,
        typer.Option(
            "--projects-dir",
            "-d",
            help="Base directory for projects (default: ./projects).",
            envvar="STORYARC_PROJECTS_DIR",
        ),
    ] = DEFAULT_PROJECTS_DIR,
) -> None:
    """StoryArc: story arc graphs and structural diagnostics for novels."""
    global _verbose, _log_enabled, _projects_dir
    _verbose = verbose
    _log_enabled = log
    _projects_dir = projects_dir

    configure_logging(verbosity=verbose)


def _configure_project_logging(project_path: Path) -> None:
    """Configure file logging if --log flag was set."""
    if _log_enabled:
        configure_logging(verbosity=_verbose, log_to_file=True, project_path=project_path)
        atexit.register(close_file_logging)


def _resolve_project_path(project: Path | None) -> Path:
    """Resolve project path from argument.

    Resolution order:
    1. If project is None, use current directory
    2. If project exists as given, use it
    3. If project is a name (no path separators), look in _projects_dir
    """
    if project is None:
        return Path()

    if project.exists():
        return project

    if len(project.parts) == 1:
        projects_path = _projects_dir / project
        if projects_path.exists():
            return projects_path

    return project


def _require_project(project_path: Path) -> None:
    """Verify project.yaml exists, exit with error if not."""
    config_file = project_path / "project.yaml"
    if not config_file.exists():
        console.print(
            "[red]Error:[/red] No project.yaml found. "
            "Run 'storyarc init <name>' first or use --project."
        )
        raise typer.Exit(1)


def _run_with_service(
    project: Path | None,
    action: Callable[[Any, Any], Awaitable[T]],
    *,
    command: str,
) -> T:
    """Open the project's service, run *action(service, config)*, and close.

    Log events emitted meanwhile carry the project id and *command*.
    StoryArc errors are printed and turned into exit code 1.
    """
    from storyarc.config import ProjectConfigError, load_project_config
    from storyarc.graph.repository import ArcGraphRepository
    from storyarc.service import StoryArcService

    project_path = _resolve_project_path(project)
    _require_project(project_path)
    _configure_project_logging(project_path)

    try:
        config = load_project_config(project_path)
    except ProjectConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    bind_log_context(project_id=config.project_id, command=command)

    async def runner() -> T:
        repository = ArcGraphRepository.sqlite(config.store_path(project_path))
        service = StoryArcService.from_config(config, repository)
        try:
            return await action(service, config)
        finally:
            await repository.close()

    try:
        return asyncio.run(runner())
    except StoryArcError as e:
        get_logger(__name__).debug("command_failed", error=str(e))
        console.print(f"[red]Error:[/red] {e.to_feedback()}")
        raise typer.Exit(1) from e
    finally:
        clear_log_context()


def _parse_assignments(assignments: list[str]) -> dict[str, Any]:
    """Parse ``field=value`` pairs; intensity and percentage values become floats."""
    patch: dict[str, Any] = {}
    for item in assignments:
        if "=" not in item:
            console.print(f"[red]Error:[/red] Expected field=value, got '{item}'")
            raise typer.Exit(1)
        key, raw = item.split("=", 1)
        key = key.strip()
        value: Any = raw
        if key in NUMERIC_FIELDS:
            try:
                value = float(raw)
            except ValueError as e:
                console.print(f"[red]Error:[/red] {key} must be a number, got '{raw}'")
                raise typer.Exit(1) from e
        patch[key] = value
    return patch


@app.command()
def version() -> None:
    """Show version information."""
    from storyarc import __version__

    console.print(f"StoryArc v{__version__}")


@app.command()
def init(
    name: Annotated[str, typer.Argument(help="Project name.")],
    path: Annotated[
        Path | None,
        typer.Option("--path", help="Parent directory (default: --projects-dir)."),
    ] = None,
    chapters: Annotated[
        int,
        typer.Option("--chapters", "-c", min=1, help="Chapters in the seed graph."),
    ] = 30,
) -> None:
    """Create a new project directory with project.yaml."""
    from storyarc.config import create_default_config, write_project_config

    parent_dir = path or _projects_dir
    project_path = parent_dir / name
    if project_path.exists():
        console.print(f"[red]Error:[/red] Directory '{project_path}' already exists")
        raise typer.Exit(1)

    config = create_default_config(name, total_chapters=chapters)
    write_project_config(config, project_path)
    console.print(f"[green]✓[/green] Created project [bold]{name}[/bold] at {project_path}")


@app.command()
def show(project: ProjectOption = None) -> None:
    """Show the project's story arc graph (seeding it on first use)."""

    async def action(service: Any, config: Any) -> Any:
        return await service.get_story_arc_graph(config.project_id)

    graph = _run_with_service(project, action, command="show")

    table = Table(title=f"Story Arc: {graph.project_id}")
    table.add_column("Ch", justify="right", style="cyan")
    table.add_column("Act", justify="center")
    table.add_column("Words %", justify="right", style="dim")
    for _, label in LAYER_COLUMNS:
        table.add_column(label, justify="right")
    table.add_column("Beats", style="magenta")

    for point in graph.sorted_points():
        table.add_row(
            str(point.chapter),
            str(point.act),
            f"{point.word_count_percent:.1f}",
            *(f"{point.layer(layer):.0f}" for layer, _ in LAYER_COLUMNS),
            ", ".join(point.arc_beat_ids),
        )
    console.print(table)

    if graph.plot_beats:
        beats = Table(title="Plot Beats")
        beats.add_column("Id", style="cyan")
        beats.add_column("Type")
        beats.add_column("Ch", justify="right")
        beats.add_column("Title", style="bold")
        for beat in sorted(graph.plot_beats, key=lambda b: (b.chapter, b.id)):
            beats.add_row(beat.id, beat.type, str(beat.chapter), beat.title)
        console.print(beats)


@app.command()
def analyze(project: ProjectOption = None) -> None:
    """Run structural diagnostics on the project's graph."""

    async def action(service: Any, config: Any) -> Any:
        graph = await service.get_story_arc_graph(config.project_id)
        return await service.analyze_arc_graph(config.project_id, graph)

    analysis = _run_with_service(project, action, command="analyze")

    color = "green" if analysis.overall_score == 100 else "yellow"
    console.print(f"Score: [{color}]{analysis.overall_score}[/{color}]/100")
    console.print(analysis.summary)

    findings = Table(title="Findings", show_lines=False)
    findings.add_column("Category", style="cyan")
    findings.add_column("Chapters", justify="right")
    findings.add_column("Suggestion")
    for flat in analysis.flat_arcs:
        findings.add_row("flat arc", _chapters(flat.chapters), flat.suggestion)
    for low in analysis.low_stakes:
        findings.add_row("low stakes", _chapters(low.chapters), low.suggestion)
    for issue in analysis.pacing_issues:
        findings.add_row(f"pacing ({issue.type})", str(issue.chapter), issue.suggestion)
    if findings.row_count:
        console.print(findings)


def _chapters(chapters: list[int]) -> str:
    if not chapters:
        return ""
    if len(chapters) == 1:
        return str(chapters[0])
    return f"{chapters[0]}-{chapters[-1]}"


@app.command()
def integrate(
    characters_file: Annotated[
        Path,
        typer.Argument(help="YAML or JSON file with character arcs and their beats."),
    ],
    project: ProjectOption = None,
) -> None:
    """Fold character arc beats into the project's graph."""
    from storyarc.characters import CharacterFileError, load_character_arcs

    try:
        arcs = load_character_arcs(characters_file)
    except CharacterFileError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    async def action(service: Any, config: Any) -> Any:
        await service.get_story_arc_graph(config.project_id)
        return await service.integrate_character_beats(config.project_id, arcs)

    result = _run_with_service(project, action, command="integrate")

    console.print(
        f"[green]✓[/green] Linked {result.linked_beat_count} beat reference(s) "
        f"from {len(arcs)} character(s)"
    )
    for skipped in result.skipped:
        console.print(
            f"[yellow]Skipped[/yellow] {skipped.character_id}/{skipped.beat_id}: "
            f"'{skipped.link}' ({skipped.reason})"
        )
    for unmatched in result.unmatched:
        console.print(
            f"[yellow]Unmatched[/yellow] {unmatched.character_id}/{unmatched.beat_id}: "
            f"'{unmatched.link}' ({unmatched.reason})"
        )


@app.command("update-point")
def update_point(
    chapter: Annotated[int, typer.Argument(help="Chapter number of the point.")],
    assignments: Annotated[
        list[str],
        typer.Option("--set", "-s", help="field=value, repeatable (e.g. --set stakes=55)."),
    ],
    project: ProjectOption = None,
) -> None:
    """Update fields on one chapter's point."""
    patch = _parse_assignments(assignments)

    async def action(service: Any, config: Any) -> Any:
        await service.get_story_arc_graph(config.project_id)
        return await service.update_arc_point(config.project_id, chapter, patch)

    graph = _run_with_service(project, action, command="update-point")
    console.print(
        f"[green]✓[/green] Updated chapter {chapter} "
        f"({', '.join(sorted(patch))}); graph version {graph.version}"
    )


@app.command()
def history(project: ProjectOption = None) -> None:
    """Show the write history recorded for the project's graph."""
    from storyarc.graph.sqlite_store import SqliteArcGraphStore

    async def action(service: Any, config: Any) -> Any:
        await service.repository.ensure_ready()
        store = service.repository.store
        if not isinstance(store, SqliteArcGraphStore):
            return []
        return store.mutations(config.project_id)

    rows = _run_with_service(project, action, command="history")

    table = Table(title="Graph History")
    table.add_column("Time", style="dim")
    table.add_column("Operation", style="cyan")
    table.add_column("Action")
    table.add_column("Version", justify="right")
    for row in rows:
        table.add_row(row["timestamp"], row["operation"], row["action"], str(row["version"]))
    console.print(table)


@app.command()
def clear(
    project: ProjectOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete the project's stored graph. It is re-seeded on next use."""
    if not yes:
        typer.confirm("Delete the stored story arc graph?", abort=True)

    async def action(service: Any, config: Any) -> Any:
        await service.clear(config.project_id)
        return config.project_id

    project_id = _run_with_service(project, action, command="clear")
    console.print(f"[green]✓[/green] Cleared graph for {project_id}")
