"""StoryArc: story arc graph model and structural diagnostics."""

__version__ = "0.3.0"
