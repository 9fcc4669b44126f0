"""Error taxonomy shared by the statement log adapters and the coordinators."""

from __future__ import annotations


class CardRoomError(Exception):
    """Base class for every failure raised by the backend."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.cause = cause


class WriteError(CardRoomError):
    """A statement could not be appended or voided."""


class QueryError(CardRoomError):
    """A statement query or cursor continuation failed."""


class JoinError(CardRoomError):
    """Room discovery, creation or seat claim failed."""


class SubmissionError(CardRoomError):
    """A sentence or vote could not be recorded."""


class StatementFormatError(CardRoomError, ValueError):
    """A raw statement does not match the verb or shape it was parsed as."""
