"""
Read and delete helpers for the audio tables.

The write path lives in `audiodb.core.audio_db` (compiled statements); these
are plain queries used by tests, the CLI and maintenance code.

Important:
- Do NOT interpolate user input into SQL. `count_rows` only accepts table
  names from `COUNTABLE_TABLES`.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

from audiodb.core.db.models import AlbumRow, ArtistRow, GenreRow, TrackRow

COUNTABLE_TABLES: Final[frozenset[str]] = frozenset(
    {"files", "audios", "audio_artists", "audio_albums", "audio_genres"}
)

# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_track(conn: aiosqlite.Connection, track_id: int) -> TrackRow | None:
    cursor = await conn.execute(
        """
        SELECT id, title, album_id, genre_id, length, trackno, rating
        FROM audios
        WHERE id = ?
        """,
        (int(track_id),),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    return TrackRow(
        id=int(row[0]),
        title=row[1],
        album_id=row[2],
        genre_id=row[3],
        length=float(row[4]),
        track_number=row[5],
        rating=row[6],
    )


async def get_artist_by_name(conn: aiosqlite.Connection, name: str) -> ArtistRow | None:
    cursor = await conn.execute("SELECT id, name FROM audio_artists WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return ArtistRow(id=int(row[0]), name=row[1])


async def get_genre_by_name(conn: aiosqlite.Connection, name: str) -> GenreRow | None:
    cursor = await conn.execute("SELECT id, name FROM audio_genres WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return GenreRow(id=int(row[0]), name=row[1])


async def list_albums_by_name(conn: aiosqlite.Connection, name: str) -> list[AlbumRow]:
    """
    All albums with this exact name, oldest first.

    There can be several: albums are keyed on (name, artist_id) and that pair
    is not unique.
    """
    cursor = await conn.execute(
        "SELECT id, artist_id, name FROM audio_albums WHERE name = ? ORDER BY id ASC;",
        (name,),
    )
    rows = await cursor.fetchall()
    return [AlbumRow(id=int(r[0]), artist_id=r[1], name=r[2]) for r in rows]


async def count_rows(conn: aiosqlite.Connection, table: str) -> int:
    if table not in COUNTABLE_TABLES:
        raise ValueError(f"Unknown table {table!r}.")
    cursor = await conn.execute(f"SELECT COUNT(*) FROM {table};")
    row = await cursor.fetchone()
    return int(row[0]) if row is not None else 0


# ---------------------------------------------------------------------------
# Deletes (cascades are done by the schema triggers)
# ---------------------------------------------------------------------------


async def delete_artist(conn: aiosqlite.Connection, artist_id: int) -> bool:
    cursor = await conn.execute("DELETE FROM audio_artists WHERE id = ?;", (int(artist_id),))
    return cursor.rowcount > 0


async def delete_album(conn: aiosqlite.Connection, album_id: int) -> bool:
    cursor = await conn.execute("DELETE FROM audio_albums WHERE id = ?;", (int(album_id),))
    return cursor.rowcount > 0


async def delete_genre(conn: aiosqlite.Connection, genre_id: int) -> bool:
    cursor = await conn.execute("DELETE FROM audio_genres WHERE id = ?;", (int(genre_id),))
    return cursor.rowcount > 0
