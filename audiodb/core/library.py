from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from audiodb.config import ScanSettings
from audiodb.core import CoreError
from audiodb.core.audio_db import AudioDb, acquire, release
from audiodb.core.db.models import AudioInfo, normalize_text
from audiodb.core.library_db import LibraryDb
from audiodb.core.scanner import (
    DEFAULT_AUDIO_EXTENSIONS,
    ScanConfig,
    TrackMetadata,
    scan_music_folder,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanSummary:
    scanned_files: int
    added_tracks: int
    errors: int


class AudioLibraryError(RuntimeError):
    """Base error for AudioLibrary operations."""


class AudioLibraryNotReadyError(AudioLibraryError):
    """Raised when operations are attempted before the library is initialized."""


class AudioLibrary:
    """
    Scan folders into the audio store.

    Scanning and persistence stay separate internally:
    - scanner returns normalized metadata
    - each file gets a `files` row, then `AudioDb.add_track()` writes the audio row

    Each file is written inside its own SAVEPOINT, so a file that fails halfway
    leaves no stray artist/album/genre rows behind.
    """

    def __init__(
        self,
        *,
        db: LibraryDb,
        scan_settings: ScanSettings | None = None,
        dedupe_unknown_artist_albums: bool = False,
    ) -> None:
        self._db = db
        self._scan_settings = scan_settings or ScanSettings(extensions=DEFAULT_AUDIO_EXTENSIONS)
        self._dedupe_unknown_artist_albums = dedupe_unknown_artist_albums
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Prepare the database.

        Contract:
        - `LibraryDb` must already be open.
        """
        if not self._db.is_open:
            raise AudioLibraryError(
                "LibraryDb is not open. Open it before initializing AudioLibrary."
            )

        await self._db.ensure_schema()
        self._initialized = True

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise AudioLibraryNotReadyError("AudioLibrary is not initialized.")

    async def scan(self, roots: Sequence[Path]) -> ScanSummary:
        """Scan `roots` and add or replace one audio row per readable file."""
        self._require_initialized()
        if not roots:
            raise AudioLibraryError("No scan roots provided.")

        scanned_files = 0
        added = 0
        errors = 0

        audio = await acquire(
            self._db.connection,
            dedupe_unknown_artist_albums=self._dedupe_unknown_artist_albums,
        )
        try:
            await audio.start()
            for root in roots:
                result = await scan_music_folder(
                    ScanConfig(
                        root=root,
                        extensions=self._scan_settings.extensions or DEFAULT_AUDIO_EXTENSIONS,
                        follow_symlinks=self._scan_settings.follow_symlinks,
                        max_concurrency=self._scan_settings.max_concurrency,
                    )
                )
                scanned_files += len(result.tracks) + len(result.issues)
                errors += len(result.issues)
                for issue in result.issues:
                    logger.warning("Skipping %s: %s", issue.path, issue.message)

                for meta in result.tracks:
                    if await self._add(audio, meta):
                        added += 1
                    else:
                        errors += 1

            await self._db.commit()
        finally:
            await release(audio)

        summary = ScanSummary(scanned_files=scanned_files, added_tracks=added, errors=errors)
        logger.info(
            "Scan finished: %d files, %d tracks added, %d errors",
            summary.scanned_files,
            summary.added_tracks,
            summary.errors,
        )
        return summary

    async def _add(self, audio: AudioDb, meta: TrackMetadata) -> bool:
        try:
            stat = meta.path.stat()
        except OSError as e:
            logger.warning("Could not stat %s: %s", meta.path, e)
            return False

        await self._db.execute("SAVEPOINT add_audio_sp;")
        try:
            file_id = await self._db.register_file(
                str(meta.path), mtime=stat.st_mtime_ns, size=stat.st_size
            )
            await audio.add_track(track_metadata_to_info(file_id, meta))
        except BaseException as e:
            await self._db.execute("ROLLBACK TO SAVEPOINT add_audio_sp;")
            await self._db.execute("RELEASE SAVEPOINT add_audio_sp;")
            if not isinstance(e, CoreError):
                raise
            logger.warning("Could not add %s: %s", meta.path, e)
            return False

        await self._db.execute("RELEASE SAVEPOINT add_audio_sp;")
        logger.debug("Added %s as audio %d", meta.path, file_id)
        return True


def track_metadata_to_info(file_id: int, meta: TrackMetadata) -> AudioInfo:
    return AudioInfo(
        id=file_id,
        length=meta.length,
        title=normalize_text(meta.title),
        artist=normalize_text(meta.artist),
        album=normalize_text(meta.album),
        genre=normalize_text(meta.genre),
        track_number=meta.track_number,
        rating=meta.rating,
    )
