"""Shared fixtures for audiodb tests."""

from __future__ import annotations

import itertools
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

import pytest

from audiodb.core.audio_db import reset_instance
from audiodb.core.library_db import LibraryDb


@pytest.fixture(autouse=True)
def _fresh_audio_db() -> Iterator[None]:
    """Every test starts without a live AudioDb instance."""
    reset_instance()
    yield
    reset_instance()


@pytest.fixture
async def db() -> AsyncIterator[LibraryDb]:
    """In-memory database with the files table and audio schema."""
    db = LibraryDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


@pytest.fixture
def make_file(db: LibraryDb) -> Callable[[], Awaitable[int]]:
    """Register a dummy `files` row and return its id."""
    counter = itertools.count(1)

    async def _make() -> int:
        return await db.register_file(f"/music/{next(counter)}.mp3", mtime=0, size=0)

    return _make
