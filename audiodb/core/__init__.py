"""
Core domain package.

This package contains the audio metadata store and the collaborators needed to
feed it (scanner, files table, connection handling). It has no CLI knowledge.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `audiodb.core.audio_db`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "ValidationError",
    "SchemaError",
    "CompileError",
    "BindError",
    "ExecutionError",
    "LifecycleMisuseError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class ValidationError(CoreError):
    """Raised when an input record is missing required data. No I/O has happened."""


class SchemaError(CoreError):
    """Raised when a table, index or trigger could not be created."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f'could not create "{name}": {message}')
        self.name = name
        self.message = message


class CompileError(CoreError):
    """Raised when a statement fails to prepare against the connection."""

    def __init__(self, statement: str, message: str) -> None:
        super().__init__(f"could not compile {statement}: {message}")
        self.statement = statement
        self.message = message


class BindError(CoreError):
    """Raised when a value cannot be bound to a statement parameter."""

    def __init__(self, statement: str, param: str, message: str) -> None:
        super().__init__(f"could not bind {param!r} of {statement}: {message}")
        self.statement = statement
        self.param = param
        self.message = message


class ExecutionError(CoreError):
    """Raised when the storage engine fails to execute a statement."""

    def __init__(self, statement: str, message: str) -> None:
        super().__init__(f"could not {statement}: {message}")
        self.statement = statement
        self.message = message


class LifecycleMisuseError(CoreError):
    """Raised when acquire/start/release are used out of order."""
