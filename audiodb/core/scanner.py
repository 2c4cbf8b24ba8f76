from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mutagen import File as mutagen_file

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".flac",
        ".ogg",
        ".opus",
        ".m4a",
        ".aac",
        ".wav",
        ".aiff",
        ".aif",
        ".wma",
        ".wv",
        ".ape",
        ".mpc",
    }
)


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Configuration for scanning a music folder."""

    root: Path
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS
    follow_symlinks: bool = False
    max_concurrency: int = 8


@dataclass(frozen=True, slots=True)
class TrackMetadata:
    """
    Metadata extracted from an audio file, shaped after `AudioInfo`.

    `length` is in seconds and is 0.0 when the container does not report it.
    Only the first genre is kept: the store has one genre per track.
    """

    path: Path
    title: str
    length: float
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    track_number: int | None = None
    rating: int | None = None


@dataclass(frozen=True, slots=True)
class ScanIssue:
    path: Path
    message: str


@dataclass(frozen=True, slots=True)
class ScanResult:
    tracks: list[TrackMetadata]
    issues: list[ScanIssue]


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s if s else None


def _first_text(value: Any) -> str | None:
    """
    Mutagen returns different shapes depending on container/tag type:
    - ID3 frames
    - lists of strings
    - plain strings
    - objects with `.text`
    We normalize to a single string (first item if multiple).
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])

    # Mutagen ID3 frames often have `.text` list
    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)

    try:
        s = str(value)
    except Exception:
        return None

    return _clean_str(s)


def _parse_int_maybe(value: Any) -> int | None:
    """
    Parse things like:
    - "3"
    - "3/12"
    - ["3/12"]
    - (3, 12)  (MP4 trkn)
    """
    if isinstance(value, list) and value and isinstance(value[0], tuple):
        value = value[0]
    if isinstance(value, tuple) and value and isinstance(value[0], int):
        return value[0]

    s = _first_text(value)
    if not s:
        return None

    if "/" in s:
        s = s.split("/", 1)[0].strip()

    try:
        return int(s)
    except ValueError:
        return None


def _parse_rating(tags: dict[str, Any] | None) -> int | None:
    """
    Rating from a plain text tag (Vorbis/APE `rating`, MP4 `rate`) or,
    failing that, the first ID3 POPM frame (0-255).
    """
    rating = _parse_int_maybe(_tags_get(tags, ("rating", "RATING", "rate")))
    if rating is not None:
        return rating
    if not tags:
        return None
    for key, frame in tags.items():
        if str(key).startswith("POPM"):
            value = getattr(frame, "rating", None)
            if isinstance(value, int):
                return value
    return None


def _tags_get(tags: dict[str, Any] | None, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        if k in tags:
            return tags.get(k)
    return None


def _extract_metadata(path: Path) -> TrackMetadata:
    """
    Extract metadata using mutagen.

    Important: This function is intentionally synchronous; scanning runs it in a thread
    to keep the asyncio event loop responsive.
    """
    audio = mutagen_file(path)
    if audio is None:
        raise ValueError("unsupported or unreadable audio file")

    tags: dict[str, Any] | None = None
    if getattr(audio, "tags", None) is not None:
        try:
            tags = dict(audio.tags)
        except Exception:
            # Some tag containers may not be directly castable
            tags = audio.tags  # type: ignore[assignment]

    length = 0.0
    info = getattr(audio, "info", None)
    if info is not None:
        value = getattr(info, "length", None)
        if isinstance(value, (int, float)) and value > 0:
            length = float(value)

    # Keys: ID3=TIT2, Vorbis=title, MP4=©nam
    title = _first_text(_tags_get(tags, ("TIT2", "title", "TITLE", "©nam"))) or path.stem
    # Keys: ID3=TPE1, Vorbis=artist, MP4=©ART
    artist = _first_text(_tags_get(tags, ("TPE1", "artist", "ARTIST", "©ART")))
    # Keys: ID3=TALB, Vorbis=album, MP4=©alb
    album = _first_text(_tags_get(tags, ("TALB", "album", "ALBUM", "©alb")))
    # Keys: ID3=TCON, Vorbis=genre, MP4=©gen
    genre = _first_text(_tags_get(tags, ("TCON", "genre", "GENRE", "©gen")))
    # Keys: ID3=TRCK, Vorbis=tracknumber, MP4=trkn
    track_number = _parse_int_maybe(_tags_get(tags, ("TRCK", "tracknumber", "TRACKNUMBER", "trkn")))

    return TrackMetadata(
        path=path,
        title=title,
        length=length,
        artist=artist,
        album=album,
        genre=genre,
        track_number=track_number,
        rating=_parse_rating(tags),
    )


async def iter_audio_files(config: ScanConfig) -> AsyncIterator[Path]:
    """
    Asynchronously yields audio file paths under `config.root`.

    The directory walk runs in a thread; filtering is by extension only.
    """
    root = config.root
    if not root.exists():
        raise FileNotFoundError(root)
    if not root.is_dir():
        raise NotADirectoryError(root)

    def _walk() -> list[Path]:
        paths: list[Path] = []
        for p in root.rglob("*"):
            try:
                if not config.follow_symlinks and p.is_symlink():
                    continue
                if not p.is_file():
                    continue
                if p.suffix.lower() not in config.extensions:
                    continue
                paths.append(p)
            except OSError:
                # Unreadable entries are skipped; decode errors are reported per file.
                continue
        return paths

    paths = await asyncio.to_thread(_walk)
    for p in paths:
        yield p


async def scan_music_folder(config: ScanConfig) -> ScanResult:
    """
    Scan a folder for audio files and extract metadata.

    This returns a pure in-memory result; persisting is `AudioLibrary.scan()`'s job.
    Metadata extraction runs in threads with bounded concurrency.
    """
    semaphore = asyncio.Semaphore(max(1, config.max_concurrency))

    tracks: list[TrackMetadata] = []
    issues: list[ScanIssue] = []

    async def _process(path: Path) -> None:
        async with semaphore:
            try:
                meta = await asyncio.to_thread(_extract_metadata, path)
            except Exception as e:  # noqa: BLE001 - one bad file must not stop the scan
                msg = f"{type(e).__name__}: {e}"
                issues.append(ScanIssue(path=path, message=msg))
                logger.debug("Scan issue for %s: %s", path, msg)
                return
            tracks.append(meta)

    tasks: list[asyncio.Task[None]] = []
    async for path in iter_audio_files(config):
        tasks.append(asyncio.create_task(_process(path)))

    if tasks:
        await asyncio.gather(*tasks)

    # Deterministic ordering keeps file ids stable across identical scans.
    tracks.sort(key=lambda t: str(t.path).lower())

    return ScanResult(tracks=tracks, issues=issues)
