"""Fleet availability sync and conflict resolution service."""

__version__ = "1.0.0"
