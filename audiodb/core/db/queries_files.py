"""
Queries for the generic `files` table.

Every scanned file gets one row here; its id is shared with the matching
`audios` row. The audio schema's triggers keep the two tables in step, so
deleting either side removes the other.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`.
- Transactions are the caller's responsibility.
"""

from __future__ import annotations

import aiosqlite

from audiodb.core.db.models import FileRow


async def ensure_files_schema(conn: aiosqlite.Connection) -> None:
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS files (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            path TEXT NOT NULL UNIQUE,
            mtime INTEGER NOT NULL,
            size INTEGER NOT NULL
        )
        """
    )
    await conn.execute("CREATE INDEX IF NOT EXISTS files_path_idx ON files (path);")
    await conn.commit()


async def get_file_id(conn: aiosqlite.Connection, path: str) -> int | None:
    cursor = await conn.execute("SELECT id FROM files WHERE path = ?;", (path,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return int(row[0])


async def get_file(conn: aiosqlite.Connection, file_id: int) -> FileRow | None:
    cursor = await conn.execute(
        "SELECT id, path, mtime, size FROM files WHERE id = ?;",
        (int(file_id),),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    return FileRow(id=int(row[0]), path=row[1], mtime=int(row[2]), size=int(row[3]))


async def register_file(conn: aiosqlite.Connection, path: str, *, mtime: int, size: int) -> int:
    """
    Get or insert a file row by path and return its id.

    An existing row keeps its id; mtime and size are refreshed.
    """
    file_id = await get_file_id(conn, path)
    if file_id is not None:
        await conn.execute(
            "UPDATE files SET mtime = ?, size = ? WHERE id = ?;",
            (int(mtime), int(size), file_id),
        )
        return file_id

    cursor = await conn.execute(
        "INSERT INTO files (path, mtime, size) VALUES (?, ?, ?);",
        (path, int(mtime), int(size)),
    )
    if cursor.lastrowid is None:
        raise RuntimeError(f"Insert into files returned no id for {path!r}.")
    return int(cursor.lastrowid)


async def delete_file(conn: aiosqlite.Connection, file_id: int) -> bool:
    """Delete a file row (and, via trigger, its audio row). Returns True if deleted."""
    # rowcount is 0 when the row goes through the audios trigger chain, so
    # existence is checked up front.
    if await get_file(conn, file_id) is None:
        return False
    await conn.execute("DELETE FROM files WHERE id = ?;", (int(file_id),))
    return True
