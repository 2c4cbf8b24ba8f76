"""
Tests for audiodb.core.audio_db.

These tests verify:
- acquire/start/release reference counting and the process-wide instance
- get-or-create of artists, albums and genres
- add_track upsert semantics, validation and error paths
- cascading deletes through the schema triggers
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

import aiosqlite
import pytest

from audiodb.core import (
    BindError,
    CompileError,
    ExecutionError,
    LifecycleMisuseError,
    ValidationError,
)
from audiodb.core.audio_db import (
    AudioDb,
    acquire,
    current_instance,
    open_audio_db,
    release,
)
from audiodb.core.db.models import AudioInfo
from audiodb.core.library_db import LibraryDb

MakeFile = Callable[[], Awaitable[int]]


@pytest.fixture
async def audio(db: LibraryDb) -> AsyncIterator[AudioDb]:
    audio = await acquire(db.connection)
    await audio.start()
    yield audio
    if audio.references:
        await release(audio)


async def _counts(db: LibraryDb) -> tuple[int, int, int, int]:
    return (
        await db.count_rows("audio_artists"),
        await db.count_rows("audio_albums"),
        await db.count_rows("audio_genres"),
        await db.count_rows("audios"),
    )


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    async def test_acquire_creates_single_instance(self, db: LibraryDb) -> None:
        audio = await acquire(db.connection)
        assert audio.references == 1
        assert current_instance() is audio
        assert not audio.is_started
        await release(audio)

    async def test_acquire_n_release_n(self, db: LibraryDb) -> None:
        n = 4
        handles = [await acquire(db.connection) for _ in range(n)]
        audio = handles[0]
        assert all(h is audio for h in handles)
        assert audio.references == n

        await audio.start()
        for _ in range(n - 1):
            await release(audio)
            assert audio.is_started
            assert all(stmt.is_compiled for stmt in audio.statements)

        await release(audio)
        assert audio.references == 0
        assert not audio.is_started
        assert not any(stmt.is_compiled for stmt in audio.statements)
        assert current_instance() is None

    async def test_over_release_reports_misuse(
        self, db: LibraryDb, caplog: pytest.LogCaptureFixture
    ) -> None:
        audio = await acquire(db.connection)
        await release(audio)

        with caplog.at_level(logging.ERROR, logger="audiodb.core.audio_db"):
            with pytest.raises(LifecycleMisuseError):
                await release(audio)
        assert audio.references == 0
        assert "over-called release" in caplog.text

    async def test_stale_release_keeps_new_instance(self, db: LibraryDb) -> None:
        old = await acquire(db.connection)
        await release(old)
        new = await acquire(db.connection)
        assert new is not old

        with pytest.raises(LifecycleMisuseError):
            await release(old)
        assert current_instance() is new
        assert new.references == 1
        await release(new)

    async def test_first_connection_wins(
        self, db: LibraryDb, caplog: pytest.LogCaptureFixture
    ) -> None:
        audio = await acquire(db.connection)
        async with aiosqlite.connect(":memory:") as other:
            with caplog.at_level(logging.WARNING, logger="audiodb.core.audio_db"):
                again = await acquire(other)

        assert again is audio
        assert again.connection is db.connection
        assert "different connection" in caplog.text
        await release(audio)
        await release(audio)

    async def test_acquire_without_connection(self, db: LibraryDb) -> None:
        with pytest.raises(LifecycleMisuseError):
            await acquire(None)

        audio = await acquire(db.connection)
        assert await acquire(None) is audio
        await release(audio)
        await release(audio)

    async def test_start_is_idempotent(self, audio: AudioDb) -> None:
        await audio.start()
        assert audio.is_started
        assert all(stmt.is_compiled for stmt in audio.statements)

    async def test_start_failure_names_statement(self, db: LibraryDb) -> None:
        audio = await acquire(db.connection)
        await db.execute("DROP TABLE audio_genres;")

        with pytest.raises(CompileError) as exc_info:
            await audio.start()

        assert exc_info.value.statement == "insert_genre"
        assert not audio.is_started
        assert not any(stmt.is_compiled for stmt in audio.statements)

        # Retry once the table is back.
        await db.execute("CREATE TABLE audio_genres (id INTEGER PRIMARY KEY, name TEXT UNIQUE);")
        await audio.start()
        assert audio.is_started
        await release(audio)

    async def test_add_before_start(self, db: LibraryDb, make_file: MakeFile) -> None:
        audio = await acquire(db.connection)
        with pytest.raises(LifecycleMisuseError):
            await audio.add_track(AudioInfo(id=await make_file(), length=1.0))
        await release(audio)

    async def test_open_audio_db_releases_on_error(self, db: LibraryDb) -> None:
        with pytest.raises(RuntimeError):
            async with open_audio_db(db.connection) as audio:
                assert audio.is_started
                raise RuntimeError("boom")

        assert audio.references == 0
        assert current_instance() is None


# =============================================================================
# Resolver + upsert
# =============================================================================


class TestAddTrack:
    async def test_full_record(self, db: LibraryDb, audio: AudioDb, make_file: MakeFile) -> None:
        file_id = await make_file()
        await audio.add_track(
            AudioInfo(
                id=file_id,
                title="Song",
                artist="Foo",
                album="Bar",
                genre="Rock",
                length=180.0,
                track_number=3,
                rating=5,
            )
        )

        foo = await db.get_artist_by_name("Foo")
        rock = await db.get_genre_by_name("Rock")
        (bar,) = await db.list_albums_by_name("Bar")
        assert foo is not None and rock is not None
        assert bar.artist_id == foo.id

        track = await db.get_track(file_id)
        assert track is not None
        assert track.title == "Song"
        assert track.album_id == bar.id
        assert track.genre_id == rock.id
        assert track.length == 180.0
        assert track.track_number == 3
        assert track.rating == 5

    async def test_readd_replaces_and_reuses(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        info = AudioInfo(
            id=await make_file(), title="Song", artist="Foo", album="Bar", genre="Rock", length=1.0
        )
        await audio.add_track(info)
        await audio.add_track(info)

        assert await _counts(db) == (1, 1, 1, 1)

    async def test_album_change_leaves_old_album(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await make_file()
        base = dict(id=file_id, title="Song", artist="Foo", genre="Rock", length=180.0)
        await audio.add_track(AudioInfo(album="Bar", track_number=3, rating=5, **base))
        await audio.add_track(AudioInfo(album="Baz", **base))

        (bar,) = await db.list_albums_by_name("Bar")
        (baz,) = await db.list_albums_by_name("Baz")
        assert bar.artist_id == baz.artist_id

        track = await db.get_track(file_id)
        assert track is not None
        assert track.album_id == baz.id
        # Fully replaced, not merged.
        assert track.track_number is None
        assert track.rating is None
        assert await _counts(db) == (1, 2, 1, 1)

    async def test_existing_artist_is_reused(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        await db.execute("INSERT INTO audio_artists (name) VALUES ('A');")
        existing = await db.get_artist_by_name("A")
        assert existing is not None

        await audio.add_track(AudioInfo(id=await make_file(), artist="A", album="X", length=1.0))

        (album,) = await db.list_albums_by_name("X")
        assert album.artist_id == existing.id
        assert await db.count_rows("audio_artists") == 1

    async def test_shared_dimensions_across_tracks(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        for n in range(3):
            await audio.add_track(
                AudioInfo(
                    id=await make_file(), title=f"T{n}", artist="Foo", album="Bar", genre="Rock",
                    length=1.0,
                )
            )

        assert await _counts(db) == (1, 1, 1, 3)

    async def test_artist_without_album_is_discarded(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await make_file()
        await audio.add_track(AudioInfo(id=file_id, artist="Lonely", length=1.0))

        assert await db.get_artist_by_name("Lonely") is None
        track = await db.get_track(file_id)
        assert track is not None
        assert track.album_id is None
        assert track.genre_id is None

    async def test_album_without_artist_duplicates(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        first, second = await make_file(), await make_file()
        await audio.add_track(AudioInfo(id=first, album="Mix", length=1.0))
        await audio.add_track(AudioInfo(id=second, album="Mix", length=1.0))

        albums = await db.list_albums_by_name("Mix")
        assert len(albums) == 2
        assert all(a.artist_id is None for a in albums)
        assert await db.count_rows("audio_artists") == 0

    async def test_album_without_artist_dedupe_option(
        self, db: LibraryDb, make_file: MakeFile
    ) -> None:
        async with open_audio_db(db.connection, dedupe_unknown_artist_albums=True) as audio:
            await audio.add_track(AudioInfo(id=await make_file(), album="Mix", length=1.0))
            await audio.add_track(AudioInfo(id=await make_file(), album="Mix", length=1.0))

        assert len(await db.list_albums_by_name("Mix")) == 1

    async def test_empty_string_is_a_value(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        await audio.add_track(AudioInfo(id=await make_file(), genre="", length=1.0))
        assert await db.get_genre_by_name("") is not None

    async def test_concurrent_adds_share_artist(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        ids = [await make_file() for _ in range(5)]
        await asyncio.gather(
            *(
                audio.add_track(
                    AudioInfo(id=i, artist="Foo", album="Bar", genre="Rock", length=1.0)
                )
                for i in ids
            )
        )

        assert await _counts(db) == (1, 1, 1, 5)


class TestAddTrackErrors:
    @pytest.mark.parametrize("bad_id", [0, -1, -(2**40)])
    async def test_invalid_id(
        self, db: LibraryDb, audio: AudioDb, bad_id: int
    ) -> None:
        with pytest.raises(ValidationError):
            await audio.add_track(
                AudioInfo(id=bad_id, artist="Foo", album="Bar", genre="Rock", length=1.0)
            )

        assert await _counts(db) == (0, 0, 0, 0)

    async def test_missing_length(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await make_file()
        with pytest.raises(ValidationError):
            await audio.add_track(
                AudioInfo(id=file_id, genre="Rock", length=None)  # type: ignore[arg-type]
            )

        assert await _counts(db) == (0, 0, 0, 0)

    async def test_bind_error_writes_no_track(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        with pytest.raises(BindError) as exc_info:
            await audio.add_track(
                AudioInfo(id=await make_file(), genre="Rock", length=1.0, track_number=2**70)
            )

        assert exc_info.value.statement == "insert_audio"
        assert exc_info.value.param == "trackno"
        assert await db.count_rows("audios") == 0
        # The genre resolved before the failure stays; atomicity is the caller's job.
        assert await db.count_rows("audio_genres") == 1
        assert audio.insert_audio.bindings == {}

    async def test_execution_error_is_retryable(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await make_file()
        await db.execute("ALTER TABLE audio_genres RENAME TO audio_genres_away;")

        with pytest.raises(ExecutionError) as exc_info:
            await audio.add_track(AudioInfo(id=file_id, genre="Rock", length=1.0))

        assert exc_info.value.statement == "get_genre"
        assert "no such table" in exc_info.value.message
        assert await db.count_rows("audios") == 0
        assert audio.get_genre.bindings == {}

        await db.execute("ALTER TABLE audio_genres_away RENAME TO audio_genres;")
        await audio.add_track(AudioInfo(id=file_id, genre="Rock", length=1.0))
        assert await db.count_rows("audios") == 1


# =============================================================================
# Cascades
# =============================================================================


class TestCascades:
    async def _add(self, audio: AudioDb, make_file: MakeFile, **fields: object) -> int:
        file_id = await make_file()
        await audio.add_track(AudioInfo(id=file_id, length=1.0, **fields))  # type: ignore[arg-type]
        return file_id

    async def test_delete_artist_cascades_to_files(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        gone = [
            await self._add(audio, make_file, artist="Foo", album="Bar"),
            await self._add(audio, make_file, artist="Foo", album="Other"),
        ]
        kept = await self._add(audio, make_file, artist="Someone", album="Bar")

        foo = await db.get_artist_by_name("Foo")
        assert foo is not None
        assert await db.delete_artist(foo.id)

        assert await db.count_rows("audio_albums") == 1
        for file_id in gone:
            assert await db.get_track(file_id) is None
            assert await db.get_file(file_id) is None
        assert await db.get_track(kept) is not None
        assert await db.get_file(kept) is not None

    async def test_delete_album_cascades(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await self._add(audio, make_file, artist="Foo", album="Bar")
        (bar,) = await db.list_albums_by_name("Bar")

        assert await db.delete_album(bar.id)
        assert await db.get_track(file_id) is None
        assert await db.get_file(file_id) is None
        # Artists are not removed with their albums.
        assert await db.get_artist_by_name("Foo") is not None

    async def test_delete_genre_cascades(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await self._add(audio, make_file, genre="Rock")
        other = await self._add(audio, make_file, genre="Jazz")
        rock = await db.get_genre_by_name("Rock")
        assert rock is not None

        assert await db.delete_genre(rock.id)
        assert await db.get_track(file_id) is None
        assert await db.get_file(file_id) is None
        assert await db.get_track(other) is not None

    async def test_delete_file_deletes_track(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await self._add(audio, make_file, title="x")
        assert await db.delete_file(file_id)
        assert await db.get_track(file_id) is None
        assert await db.get_file(file_id) is None

    async def test_delete_file_without_track(self, db: LibraryDb, make_file: MakeFile) -> None:
        file_id = await make_file()
        assert await db.delete_file(file_id)
        assert await db.get_file(file_id) is None

    async def test_delete_missing_file(self, db: LibraryDb) -> None:
        assert not await db.delete_file(12345)

    async def test_delete_track_deletes_file(
        self, db: LibraryDb, audio: AudioDb, make_file: MakeFile
    ) -> None:
        file_id = await self._add(audio, make_file, title="x")
        await db.execute("DELETE FROM audios WHERE id = ?;", (file_id,))
        assert await db.get_file(file_id) is None
