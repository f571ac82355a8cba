"""API route handlers."""
from . import sync, time_entries

__all__ = ["sync", "time_entries"]
