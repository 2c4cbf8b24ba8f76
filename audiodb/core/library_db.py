"""
Connection facade for the audio library database.

Goals:
- One aiosqlite connection, opened with sane pragmas.
- Create the `files` table and the audio schema.
- Thin delegation to the query modules for reads and deletes.

The write path for tracks is `audiodb.core.audio_db.AudioDb`, which is
acquired on `LibraryDb.connection`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

import aiosqlite

from audiodb.config import DatabaseConfig
from audiodb.core.db import queries_audio, queries_files
from audiodb.core.db.models import AlbumRow, ArtistRow, FileRow, GenreRow, TrackRow
from audiodb.core.db.schema import ensure_schema as ensure_audio_schema


class LibraryDb:
    """
    Async access layer for the audio library DB.

    Usage:
        db = LibraryDb("audiodb.sqlite3")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - Connections are not pooled; we keep a single connection.
    """

    def __init__(self, db_path: str | Path, *, config: DatabaseConfig | None = None) -> None:
        self._db_path = str(db_path)
        self._config = config or DatabaseConfig()
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._require_conn()

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)

        # Values are whitelisted by audiodb.config.
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute(f"PRAGMA journal_mode = {self._config.journal_mode};")
        await self._conn.execute(f"PRAGMA synchronous = {self._config.synchronous};")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("LibraryDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create the files table, then the audio tables/indices/triggers."""
        conn = self._require_conn()
        await queries_files.ensure_files_schema(conn)
        await ensure_audio_schema(conn)

    async def execute(self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()) -> None:
        conn = self._require_conn()
        await conn.execute(sql, params)

    async def commit(self) -> None:
        conn = self._require_conn()
        await conn.commit()

    # ===========================================================================
    # Files (delegated to queries_files module)
    # ===========================================================================

    async def register_file(self, path: str, *, mtime: int, size: int) -> int:
        return await queries_files.register_file(self._require_conn(), path, mtime=mtime, size=size)

    async def get_file_id(self, path: str) -> int | None:
        return await queries_files.get_file_id(self._require_conn(), path)

    async def get_file(self, file_id: int) -> FileRow | None:
        return await queries_files.get_file(self._require_conn(), file_id)

    async def delete_file(self, file_id: int) -> bool:
        return await queries_files.delete_file(self._require_conn(), file_id)

    # ===========================================================================
    # Audio reads (delegated to queries_audio module)
    # ===========================================================================

    async def get_track(self, track_id: int) -> TrackRow | None:
        return await queries_audio.get_track(self._require_conn(), track_id)

    async def get_artist_by_name(self, name: str) -> ArtistRow | None:
        return await queries_audio.get_artist_by_name(self._require_conn(), name)

    async def get_genre_by_name(self, name: str) -> GenreRow | None:
        return await queries_audio.get_genre_by_name(self._require_conn(), name)

    async def list_albums_by_name(self, name: str) -> list[AlbumRow]:
        return await queries_audio.list_albums_by_name(self._require_conn(), name)

    async def count_rows(self, table: str) -> int:
        return await queries_audio.count_rows(self._require_conn(), table)

    async def stats(self) -> dict[str, int]:
        """Row counts for every library table."""
        conn = self._require_conn()
        return {
            table: await queries_audio.count_rows(conn, table)
            for table in sorted(queries_audio.COUNTABLE_TABLES)
        }

    async def delete_artist(self, artist_id: int) -> bool:
        return await queries_audio.delete_artist(self._require_conn(), artist_id)

    async def delete_album(self, album_id: int) -> bool:
        return await queries_audio.delete_album(self._require_conn(), album_id)

    async def delete_genre(self, genre_id: int) -> bool:
        return await queries_audio.delete_genre(self._require_conn(), genre_id)
