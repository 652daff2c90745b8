"""The exception hierarchy shared by every layer of the database.

Each class marks the layer that detected the fault, so a failure surfacing at
the SQL or protocol boundary is easy to attribute.
"""

from __future__ import annotations


class PrehniteError(Exception):
    """Base class of every error the database raises."""

    prefix = ""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}{self.message}"


class StorageIOError(PrehniteError):
    """An underlying filesystem or socket operation failed."""

    prefix = "i/o error: "

    def __init__(self, error: OSError) -> None:
        super().__init__(str(error))
        self.error = error
        self.__cause__ = error


class CorruptionError(PrehniteError):
    """On-disk structures are inconsistent or damaged; never the caller's fault."""

    prefix = "corruption: "


class ParseError(PrehniteError):
    """SQL text could not be tokenized or parsed."""

    prefix = "parse error: "


class ExecError(PrehniteError):
    """A statement parsed cleanly but is semantically invalid."""


class TooLargeError(PrehniteError):
    """A key or value exceeded a hard structural limit of the storage engine."""

    prefix = "limit exceeded: "


class ExhaustedError(PrehniteError):
    """A bounded internal resource is fully in use."""

    prefix = "exhausted: "


class ProtocolError(PrehniteError):
    """A peer violated the wire protocol."""

    prefix = "protocol error: "


class ConflictError(PrehniteError):
    """A write-write conflict under first-updater-wins; the transaction aborts."""

    prefix = "conflict: "


class SerializationError(PrehniteError):
    """Committing would close a dangerous cycle of rw-dependencies."""

    prefix = "serialization failure: "