"""Notification payloads delivered to the embedding UI."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from cardroom.backend.models import Agent


logger = logging.getLogger(__name__)

PLAYER_JOINED = "player_joined"
SENTENCE_FOUND = "sentence_found"
READY_TO_VOTE = "ready_to_vote"

Listener = Callable[[dict[str, Any]], Union[Awaitable[None], None]]


def player_joined(agent: Agent, players: list[Agent]) -> dict[str, Any]:
    return {
        "kind": PLAYER_JOINED,
        "agent": agent.to_dict(),
        "players": [player.to_dict() for player in players],
    }


def sentence_found(statement_id: str, sentence: str, author: Agent | None, countdown: int) -> dict[str, Any]:
    return {
        "kind": SENTENCE_FOUND,
        "id": statement_id,
        "sentence": sentence,
        "agent": author.to_dict() if author else None,
        "countdown": countdown,
    }


def ready_to_vote(found: int, expected: int, timed_out: bool) -> dict[str, Any]:
    return {"kind": READY_TO_VOTE, "found": found, "expected": expected, "timedOut": timed_out}


async def emit(listener: Listener | None, event: dict[str, Any]) -> None:
    logger.debug("Emitting %s", event["kind"])
    if listener is None:
        return
    outcome = listener(event)
    if inspect.isawaitable(outcome):
        await outcome
