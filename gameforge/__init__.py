"""GameForge engine: queued AI game generation service."""

__version__ = "0.1.0"
