"""Resumable chunked file uploads over HTTP, tracked in SQLite."""

__version__ = "0.1.0"