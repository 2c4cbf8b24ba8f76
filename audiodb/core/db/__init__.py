"""
Internal DB subpackage for audiodb.

Split into focused units: models, schema, compiled statements and query
groups. The write path (`AudioDb`) lives in `audiodb.core.audio_db`; the
connection facade in `audiodb.core.library_db`.

Re-exports here are primarily for convenience inside the `core` package.
"""

from __future__ import annotations

# Models / DTOs
from .models import AlbumRow, ArtistRow, AudioInfo, FileRow, GenreRow, TrackRow

# Schema
from .schema import ensure_schema

# Statements
from .statements import Statement

__all__ = [
    # models
    "AudioInfo",
    "ArtistRow",
    "AlbumRow",
    "GenreRow",
    "TrackRow",
    "FileRow",
    # schema
    "ensure_schema",
    # statements
    "Statement",
]
