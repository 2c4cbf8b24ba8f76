"""
audiodb - normalized SQLite store for audio file metadata.

Scanned tracks are written into an `audios` table, with artist, album and
genre names deduplicated into their own tables and kept consistent through
cascading-delete triggers.
"""

__version__ = "0.1.0"
__author__ = "audiodb Contributors"
__license__ = "LGPL-2.1"

from audiodb.core.audio_db import AudioDb, acquire, open_audio_db, release
from audiodb.core.db.models import AudioInfo

__all__ = ["AudioDb", "AudioInfo", "acquire", "open_audio_db", "release", "__version__"]
