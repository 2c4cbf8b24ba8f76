"""
DB models (DTOs) and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AudioInfo:
    """
    Input record produced by scanners/importers.

    `id` must be the id of an existing row in the `files` table; the audio row
    shares it. `length` is in seconds. Every other field is optional and `None`
    means "not present in the tags", which is different from an empty string.
    """

    id: int
    length: float
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    track_number: int | None = None
    rating: int | None = None


@dataclass(frozen=True, slots=True)
class ArtistRow:
    """Artist record as stored in SQLite."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class AlbumRow:
    """Album record as stored in SQLite."""

    id: int
    artist_id: int | None
    name: str


@dataclass(frozen=True, slots=True)
class GenreRow:
    """Genre record as stored in SQLite."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class TrackRow:
    """
    Audio record as stored in SQLite.

    `id` is the `files.id` of the backing file; `album_id` and `genre_id` are
    FKs to `audio_albums` / `audio_genres`.
    """

    id: int
    title: str | None
    album_id: int | None
    genre_id: int | None
    length: float
    track_number: int | None
    rating: int | None


@dataclass(frozen=True, slots=True)
class FileRow:
    """Row of the generic `files` table."""

    id: int
    path: str
    mtime: int
    size: int


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None
