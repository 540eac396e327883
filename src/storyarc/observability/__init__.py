"""Observability module for StoryArc: structured logging."""

from storyarc.observability.logging import (
    bind_log_context,
    clear_log_context,
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)

__all__ = [
    "bind_log_context",
    "clear_log_context",
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "get_logs_dir",
]
