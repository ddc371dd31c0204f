"""Git-backed folder synchronization."""

__version__ = "0.1.0"
