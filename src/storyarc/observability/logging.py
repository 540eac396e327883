"""Structured logging for StoryArc.

Events are emitted through structlog and rendered by the stdlib logging
handlers installed here:

- a rich console handler on stderr whose level follows ``-v``;
- with ``--log``, a JSONL handler writing every event to
  ``{project}/logs/debug.jsonl``.

CLI commands bind the project id and command name with
:func:`bind_log_context`, so each event line carries them without every
call site repeating them.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from structlog.typing import Processor

LOG_FILE_NAME = "debug.jsonl"

_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None


class JSONLFileHandler(logging.FileHandler):
    """Writes one JSON object per record.

    structlog hands the event dict over as ``record.msg``; its ``event`` key
    becomes ``message`` and the remaining keys are copied through.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
            }
            if isinstance(record.msg, dict):
                fields = {
                    k: v for k, v in record.msg.items() if k not in ("level", "timestamp")
                }
                entry["message"] = fields.pop("event", "")
                entry.update(fields)
            else:
                entry["message"] = record.getMessage()

            if self.stream:
                self.stream.write(json.dumps(entry, default=str) + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def _console_handler(verbosity: int) -> RichHandler:
    # Event text may contain brackets from chapter links; never parse it as markup.
    return RichHandler(
        console=Console(stderr=True),
        level=_console_level(verbosity),
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
    )


def _open_file_handler(project_path: Path) -> JSONLFileHandler:
    global _logs_dir
    _logs_dir = project_path / "logs"
    _logs_dir.mkdir(parents=True, exist_ok=True)
    handler = JSONLFileHandler(str(_logs_dir / LOG_FILE_NAME), mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    project_path: Path | None = None,
) -> None:
    """Install the console (and optionally file) handlers and configure structlog.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_to_file: Also write every event to ``{project_path}/logs/debug.jsonl``.
        project_path: Project directory; required with *log_to_file*.

    Raises:
        ValueError: If log_to_file=True but project_path is not provided.
    """
    global _configured, _file_handler

    if log_to_file and project_path is None:
        raise ValueError("project_path is required when log_to_file=True")

    close_file_logging()

    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_to_file and project_path is not None:
        _file_handler = _open_file_handler(project_path)
        handlers.append(_file_handler)

    # The root logger passes everything the most verbose handler wants.
    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Return a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def bind_log_context(**values: Any) -> None:
    """Attach *values* (e.g. ``project_id``, ``command``) to every later event."""
    structlog.contextvars.bind_contextvars(**values)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logs_dir() -> Path | None:
    """Directory receiving debug.jsonl, or None when file logging is off."""
    return _logs_dir


def close_file_logging() -> None:
    """Close the JSONL handler if one is open."""
    global _file_handler, _logs_dir
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
    _logs_dir = None
