"""Backend package for the card room game."""

from .config import BackendSettings, load_settings
from .errors import CardRoomError, JoinError, QueryError, StatementFormatError, SubmissionError, WriteError
from .game import CardGame
from .identity import generate_token, hash_token, verify_token
from .state import GameState
from .store import InMemoryStatementLog, PostgresStatementLog, StatementLog, create_log

__all__ = [
    "BackendSettings",
    "CardGame",
    "CardRoomError",
    "create_log",
    "GameState",
    "generate_token",
    "hash_token",
    "InMemoryStatementLog",
    "JoinError",
    "load_settings",
    "PostgresStatementLog",
    "QueryError",
    "StatementFormatError",
    "StatementLog",
    "SubmissionError",
    "verify_token",
    "WriteError",
]
