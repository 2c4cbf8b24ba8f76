"""
Database schema for the audio metadata store.

- Tables, indices and triggers are created with IF NOT EXISTS, so
  `ensure_schema()` is safe to call on every start.
- Each DDL statement runs on its own; the first failure stops the sequence
  and raises `SchemaError` with the name of the object that failed.
- Cascades are implemented with triggers rather than FOREIGN KEY clauses, so
  they work regardless of the `foreign_keys` pragma.

The triggers reference the generic `files` table, which must exist first
(see `audiodb.core.db.queries_files.ensure_files_schema`).
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Final

import aiosqlite

from audiodb.core import SchemaError

logger = logging.getLogger(__name__)


TABLES: Final[tuple[tuple[str, str], ...]] = (
    (
        "audios",
        """
        CREATE TABLE IF NOT EXISTS audios (
            id INTEGER PRIMARY KEY,
            title TEXT,
            album_id INTEGER,
            genre_id INTEGER,
            length REAL NOT NULL,
            trackno INTEGER,
            rating INTEGER
        )
        """,
    ),
    (
        "audio_artists",
        """
        CREATE TABLE IF NOT EXISTS audio_artists (
            id INTEGER PRIMARY KEY,
            name TEXT UNIQUE
        )
        """,
    ),
    (
        # No UNIQUE(name, artist_id): lookups are by exact match only.
        "audio_albums",
        """
        CREATE TABLE IF NOT EXISTS audio_albums (
            id INTEGER PRIMARY KEY,
            artist_id INTEGER,
            name TEXT
        )
        """,
    ),
    (
        "audio_genres",
        """
        CREATE TABLE IF NOT EXISTS audio_genres (
            id INTEGER PRIMARY KEY,
            name TEXT UNIQUE
        )
        """,
    ),
)

INDICES: Final[tuple[tuple[str, str], ...]] = (
    ("audios_title_idx", "CREATE INDEX IF NOT EXISTS audios_title_idx ON audios (title)"),
    ("audios_album_idx", "CREATE INDEX IF NOT EXISTS audios_album_idx ON audios (album_id)"),
    ("audios_genre_idx", "CREATE INDEX IF NOT EXISTS audios_genre_idx ON audios (genre_id)"),
    (
        "audio_artists_name_idx",
        "CREATE INDEX IF NOT EXISTS audio_artists_name_idx ON audio_artists (name)",
    ),
    (
        "audio_albums_name_idx",
        "CREATE INDEX IF NOT EXISTS audio_albums_name_idx ON audio_albums (name)",
    ),
    (
        "audio_albums_artist_idx",
        "CREATE INDEX IF NOT EXISTS audio_albums_artist_idx ON audio_albums (artist_id)",
    ),
    (
        "audio_genres_name_idx",
        "CREATE INDEX IF NOT EXISTS audio_genres_name_idx ON audio_genres (name)",
    ),
)

# files <-> audios both ways, then album/genre -> audios and artist -> albums.
TRIGGERS: Final[tuple[tuple[str, str], ...]] = (
    (
        "delete_audios_on_files_deleted",
        """
        CREATE TRIGGER IF NOT EXISTS delete_audios_on_files_deleted
        DELETE ON files FOR EACH ROW BEGIN
            DELETE FROM audios WHERE id = OLD.id;
        END
        """,
    ),
    (
        "delete_files_on_audios_deleted",
        """
        CREATE TRIGGER IF NOT EXISTS delete_files_on_audios_deleted
        DELETE ON audios FOR EACH ROW BEGIN
            DELETE FROM files WHERE id = OLD.id;
        END
        """,
    ),
    (
        "delete_audios_on_albums_deleted",
        """
        CREATE TRIGGER IF NOT EXISTS delete_audios_on_albums_deleted
        DELETE ON audio_albums FOR EACH ROW BEGIN
            DELETE FROM audios WHERE album_id = OLD.id;
        END
        """,
    ),
    (
        "delete_audios_on_genres_deleted",
        """
        CREATE TRIGGER IF NOT EXISTS delete_audios_on_genres_deleted
        DELETE ON audio_genres FOR EACH ROW BEGIN
            DELETE FROM audios WHERE genre_id = OLD.id;
        END
        """,
    ),
    (
        "delete_audio_albums_on_artists_deleted",
        """
        CREATE TRIGGER IF NOT EXISTS delete_audio_albums_on_artists_deleted
        DELETE ON audio_artists FOR EACH ROW BEGIN
            DELETE FROM audio_albums WHERE artist_id = OLD.id;
        END
        """,
    ),
)


async def _create(conn: aiosqlite.Connection, name: str, sql: str) -> None:
    try:
        await conn.execute(sql)
    except sqlite3.Error as e:
        logger.error('could not create "%s": %s', name, e)
        raise SchemaError(name, str(e)) from e


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create the audio tables, indices and cascade triggers if they are missing.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - the `files` table already exists
    """
    for name, sql in (*TABLES, *INDICES, *TRIGGERS):
        await _create(conn, name, sql)
    await conn.commit()
    logger.debug("Audio schema ensured")
