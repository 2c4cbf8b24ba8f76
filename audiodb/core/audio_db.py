"""
Normalized audio metadata store.

`AudioDb` persists scanned tracks into `audios` and deduplicates artist,
album and genre names into their own tables. It owns a fixed set of compiled
statements bound to one connection and is shared process-wide through a
reference-counted instance.

Usage:
    audio = await acquire(conn)
    await audio.start()
    await audio.add_track(AudioInfo(id=file_id, length=180.0, title="Song"))
    await release(audio)

or, with release guaranteed:
    async with open_audio_db(conn) as audio:
        await audio.add_track(...)

Notes:
- Only the connection passed by the first `acquire()` is ever used. Later
  callers share the live instance whatever connection they pass.
- The instance is not safe to share across threads. Within one event loop,
  `add_track()` calls are serialized by an instance lock.
- Transactions are the caller's responsibility. A failed `add_track()` never
  writes the audio row, but dimension rows created before the failure stay.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from audiodb.core import LifecycleMisuseError, ValidationError
from audiodb.core.db.models import AudioInfo
from audiodb.core.db.schema import ensure_schema
from audiodb.core.db.statements import Statement

logger = logging.getLogger(__name__)


class AudioDb:
    """
    Compiled statements plus the get-or-create logic on top of them.

    Do not construct directly; use `acquire()`.
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        *,
        dedupe_unknown_artist_albums: bool = False,
    ) -> None:
        self._conn = conn
        self._references = 1
        self._started = False
        self._lock = asyncio.Lock()
        self.dedupe_unknown_artist_albums = dedupe_unknown_artist_albums

        # `artist_id = NULL` is never true, so by default albums without an
        # artist are never found again and each lookup inserts a new row.
        # `IS` compares NULL to NULL as equal.
        if dedupe_unknown_artist_albums:
            artist_match = "artist_id IS :artist_id"
        else:
            artist_match = "artist_id = :artist_id"

        self.insert_audio = Statement(
            "insert_audio",
            """
            INSERT OR REPLACE INTO audios
                (id, title, album_id, genre_id, length, trackno, rating)
            VALUES
                (:id, :title, :album_id, :genre_id, :length, :trackno, :rating)
            """,
            ("id", "title", "album_id", "genre_id", "length", "trackno", "rating"),
        )
        self.insert_artist = Statement(
            "insert_artist",
            "INSERT INTO audio_artists (name) VALUES (:name)",
            ("name",),
        )
        self.insert_album = Statement(
            "insert_album",
            "INSERT INTO audio_albums (artist_id, name) VALUES (:artist_id, :name)",
            ("artist_id", "name"),
        )
        self.insert_genre = Statement(
            "insert_genre",
            "INSERT INTO audio_genres (name) VALUES (:name)",
            ("name",),
        )
        self.get_artist = Statement(
            "get_artist",
            "SELECT id FROM audio_artists WHERE name = :name LIMIT 1",
            ("name",),
        )
        self.get_album = Statement(
            "get_album",
            f"SELECT id FROM audio_albums WHERE name = :name AND {artist_match} LIMIT 1",
            ("name", "artist_id"),
        )
        self.get_genre = Statement(
            "get_genre",
            "SELECT id FROM audio_genres WHERE name = :name LIMIT 1",
            ("name",),
        )

    def __repr__(self) -> str:
        return f"<AudioDb refs={self._references} started={self._started}>"

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    @property
    def references(self) -> int:
        return self._references

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def statements(self) -> tuple[Statement, ...]:
        """All statements, in compile order."""
        return (
            self.insert_audio,
            self.insert_artist,
            self.insert_album,
            self.insert_genre,
            self.get_artist,
            self.get_album,
            self.get_genre,
        )

    # ===========================================================================
    # Lifecycle
    # ===========================================================================

    async def start(self) -> None:
        """
        Compile all statements. No-op if already started.

        Stops at the first statement that fails to compile; the statements
        compiled by this attempt are finalized again and `CompileError` is
        raised, so `start()` can simply be retried.
        """
        if self._references == 0:
            raise LifecycleMisuseError("AudioDb was released; acquire a new one.")
        if self._started:
            return

        compiled: list[Statement] = []
        try:
            for stmt in self.statements:
                await stmt.compile(self._conn)
                compiled.append(stmt)
        except Exception:
            for stmt in compiled:
                await stmt.finalize()
            raise

        self._started = True
        logger.debug("AudioDb started (%d statements)", len(compiled))

    async def release(self) -> None:
        await release(self)

    async def _finalize(self) -> None:
        for stmt in self.statements:
            await stmt.finalize()
        self._started = False

    # ===========================================================================
    # Tracks
    # ===========================================================================

    async def add_track(self, info: AudioInfo) -> None:
        """
        Insert or fully replace the audio row for `info.id`.

        Album (and through it, artist) and genre are resolved first; the audio
        row is written last, so a failure never leaves a half-written track.
        """
        if info.id < 1:
            raise ValidationError(f"Invalid audio id {info.id}; ids start at 1.")
        if info.length is None:
            raise ValidationError(f"Audio {info.id} has no length.")
        if not self._started:
            raise LifecycleMisuseError("AudioDb is not started. Call await audio.start() first.")

        async with self._lock:
            album_id = await self._resolve_album(info)
            genre_id = await self._get_or_create(self.get_genre, self.insert_genre, info.genre)

            async with self.insert_audio.scoped() as stmt:
                stmt.bind_all(
                    {
                        "id": info.id,
                        "title": info.title,
                        "album_id": album_id,
                        "genre_id": genre_id,
                        "length": info.length,
                        "trackno": info.track_number,
                        "rating": info.rating,
                    }
                )
                await stmt.step()

    async def _get_or_create(
        self, lookup: Statement, insert: Statement, name: str | None
    ) -> int | None:
        """
        Return the id of the row named `name`, inserting it if missing.

        None means the dimension is absent from the input; it is never looked up.
        """
        if name is None:
            return None

        async with lookup.scoped() as stmt:
            stmt.bind("name", name)
            found = await stmt.fetch_id()
        if found is not None:
            return found

        async with insert.scoped() as stmt:
            stmt.bind("name", name)
            return await stmt.insert()

    async def _resolve_album(self, info: AudioInfo) -> int | None:
        # No album: the artist is not persisted either (audios has no artist column).
        if info.album is None:
            return None

        artist_id = await self._get_or_create(self.get_artist, self.insert_artist, info.artist)

        async with self.get_album.scoped() as stmt:
            stmt.bind("name", info.album)
            stmt.bind("artist_id", artist_id)
            found = await stmt.fetch_id()
        if found is not None:
            return found

        async with self.insert_album.scoped() as stmt:
            stmt.bind("artist_id", artist_id)
            stmt.bind("name", info.album)
            return await stmt.insert()


# ===========================================================================
# Process-wide instance
# ===========================================================================

# The live instance, or None. Set by the first acquire(), cleared by the last
# release() or by reset_instance().
_instance: AudioDb | None = None


def current_instance() -> AudioDb | None:
    return _instance


async def acquire(
    conn: aiosqlite.Connection | None,
    *,
    dedupe_unknown_artist_albums: bool = False,
) -> AudioDb:
    """
    Return the shared `AudioDb`, creating it on first use.

    The first call ensures the audio schema on `conn` and creates the instance
    with one reference. Later calls add a reference to the live instance and
    ignore `conn` (and the options); passing a different connection is logged
    but not an error.
    """
    global _instance

    if _instance is None:
        if conn is None:
            raise LifecycleMisuseError("A connection is required to create the AudioDb.")
        await ensure_schema(conn)

    # Another coroutine may have created the instance while the schema was ensured.
    if _instance is not None:
        if conn is not None and conn is not _instance.connection:
            logger.warning("acquire() got a different connection; using the first one")
        _instance._references += 1
        return _instance

    _instance = AudioDb(conn, dedupe_unknown_artist_albums=dedupe_unknown_artist_albums)
    logger.debug("AudioDb created")
    return _instance


async def release(audio: AudioDb) -> None:
    """
    Drop one reference. The last one finalizes all statements and clears the
    process-wide instance so the next `acquire()` starts fresh.
    """
    global _instance

    if audio._references == 0:
        logger.error("over-called release(%r)", audio)
        raise LifecycleMisuseError("release() called with no outstanding references.")

    audio._references -= 1
    if audio._references > 0:
        return

    await audio._finalize()
    if _instance is audio:
        _instance = None
    logger.debug("AudioDb released")


def reset_instance() -> None:
    """
    Forget the process-wide instance without finalizing it.

    Meant for tests that close the connection themselves between cases.
    """
    global _instance
    if _instance is not None:
        _instance._references = 0
        _instance._started = False
    _instance = None


@asynccontextmanager
async def open_audio_db(
    conn: aiosqlite.Connection,
    *,
    dedupe_unknown_artist_albums: bool = False,
) -> AsyncIterator[AudioDb]:
    """Acquire and start the shared `AudioDb`; release it on exit."""
    audio = await acquire(conn, dedupe_unknown_artist_albums=dedupe_unknown_artist_albums)
    try:
        await audio.start()
        yield audio
    finally:
        await release(audio)
