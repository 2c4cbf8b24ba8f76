"""
Named, reusable SQL statements bound to a single connection.

A `Statement` goes through explicit steps:

    compile()  -> prepare once against the connection (fails fast on schema problems)
    bind()     -> set named parameters, type-checked before they reach SQLite
    step()     -> execute with the current bindings
    reset()    -> drop bindings so the next call starts clean
    finalize() -> release the underlying cursor

`scoped()` wraps bind/step in a block that always resets, whatever the exit
path. Each statement owns its own cursor, so `insert()` reads the row id of
the insert it just ran and nothing else.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, Final

import aiosqlite

from audiodb.core import BindError, CompileError, ExecutionError, LifecycleMisuseError

logger = logging.getLogger(__name__)

_INT64_MIN: Final[int] = -(2**63)
_INT64_MAX: Final[int] = 2**63 - 1

# What sqlite3 can bind without adapters.
_BINDABLE_TYPES: Final[tuple[type, ...]] = (str, int, float, bytes)


class Statement:
    """A compiled SQL statement with named parameters."""

    def __init__(self, name: str, sql: str, params: tuple[str, ...]) -> None:
        self.name = name
        self.sql = sql
        self.params = params
        self._cursor: aiosqlite.Cursor | None = None
        self._bindings: dict[str, Any] = {}

    def __repr__(self) -> str:
        state = "compiled" if self.is_compiled else "idle"
        return f"<Statement {self.name} {state}>"

    @property
    def is_compiled(self) -> bool:
        return self._cursor is not None

    @property
    def bindings(self) -> dict[str, Any]:
        """Copy of the current bindings (empty after a reset)."""
        return dict(self._bindings)

    async def compile(self, conn: aiosqlite.Connection) -> None:
        """
        Prepare the statement against `conn`.

        SQLite prepares statements lazily, so we run it through EXPLAIN with
        all parameters NULL: that parses and plans the SQL (missing tables or
        columns fail here) without touching any rows.
        """
        if self._cursor is not None:
            return

        cursor = await conn.cursor()
        try:
            await cursor.execute(f"EXPLAIN {self.sql}", dict.fromkeys(self.params))
            await cursor.fetchall()
        except sqlite3.Error as e:
            await cursor.close()
            logger.error("could not compile %s: %s", self.name, e)
            raise CompileError(self.name, str(e)) from e

        self._cursor = cursor

    def bind(self, param: str, value: Any) -> None:
        if param not in self.params:
            raise BindError(self.name, param, "unknown parameter")
        if value is not None and not isinstance(value, _BINDABLE_TYPES):
            raise BindError(self.name, param, f"unsupported type {type(value).__name__}")
        if isinstance(value, int) and not _INT64_MIN <= value <= _INT64_MAX:
            raise BindError(self.name, param, "integer does not fit in 64 bits")
        self._bindings[param] = value

    def bind_all(self, values: Mapping[str, Any]) -> None:
        for param, value in values.items():
            self.bind(param, value)

    def reset(self) -> None:
        self._bindings.clear()

    @asynccontextmanager
    async def scoped(self) -> AsyncIterator[Statement]:
        """Yield this statement and reset it on exit, success or not."""
        self._require_cursor()
        try:
            yield self
        finally:
            self.reset()

    async def step(self) -> aiosqlite.Cursor:
        """Execute with the current bindings and return the statement's cursor."""
        cursor = self._require_cursor()
        for param in self.params:
            if param not in self._bindings:
                raise BindError(self.name, param, "parameter not bound")

        try:
            await cursor.execute(self.sql, self._bindings)
        except sqlite3.Error as e:
            logger.error("could not %s: %s", self.name, e)
            raise ExecutionError(self.name, str(e)) from e
        return cursor

    async def fetch_id(self) -> int | None:
        """Run a single-column id lookup. Returns None when no row matches."""
        cursor = await self.step()
        try:
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.error("could not %s: %s", self.name, e)
            raise ExecutionError(self.name, str(e)) from e
        if row is None:
            return None
        return int(row[0])

    async def insert(self) -> int:
        """Run an INSERT and return the generated row id."""
        cursor = await self.step()
        # Read right away: this cursor's lastrowid is only ours until the next execute.
        rowid = cursor.lastrowid
        if rowid is None:
            raise ExecutionError(self.name, "no row id after insert")
        return int(rowid)

    async def finalize(self) -> None:
        if self._cursor is None:
            return
        cursor, self._cursor = self._cursor, None
        self.reset()
        await cursor.close()
        logger.debug("Finalized %s", self.name)

    def _require_cursor(self) -> aiosqlite.Cursor:
        if self._cursor is None:
            raise LifecycleMisuseError(f"{self.name} is not compiled")
        return self._cursor
