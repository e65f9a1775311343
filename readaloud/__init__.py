"""Read-aloud document player with synchronized sentence highlighting."""

__version__ = "1.0.0"
