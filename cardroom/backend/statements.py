"""Verb identifiers, wire builders and tagged statement variants.

Every piece of shared game state is an xAPI statement. Builders produce the
wire dictionaries written to the log; ``StatementCodec.parse`` turns raw
statements back into one variant per verb and rejects anything whose verb
does not match.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar, Union
from urllib.parse import quote, unquote

from cardroom.backend.cards import VERBS
from cardroom.backend.config import DEFAULT_VERB_PREFIX
from cardroom.backend.errors import StatementFormatError
from cardroom.backend.models import Agent


VOIDED_VERB_ID = "http://adlnet.gov/expapi/verbs/voided"
ROOM_BASE = "http://dominknow/expapi/room/"
SENTENCE_ACTIVITY_BASE = "http://dominknow/expapi/ah/"
SUBJECT_HOME_PAGE = "http://dominknow/expapi/ah"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class VerbSet:
    prefix: str = DEFAULT_VERB_PREFIX
    game_words: tuple[str, ...] = VERBS

    @property
    def created(self) -> str:
        return f"{self.prefix}createdRoom"

    @property
    def joined(self) -> str:
        return f"{self.prefix}joinedRoom"

    @property
    def attributed(self) -> str:
        return f"{self.prefix}createdSentence"

    @property
    def voted(self) -> str:
        return f"{self.prefix}votedSentence"

    def game(self, word: str) -> str:
        return f"{self.prefix}{quote(word, safe='')}"

    def simple(self, verb_id: str) -> str:
        return unquote(verb_id.rsplit("/", maxsplit=1)[-1])

    def is_game_verb(self, verb_id: str) -> bool:
        return verb_id.startswith(self.prefix) and self.simple(verb_id) in self.game_words


@dataclass(frozen=True)
class RoomCreated:
    statement_id: str
    actor: Agent
    room_id: str
    registration: str
    timestamp: str | None = None


@dataclass(frozen=True)
class RoomJoined:
    statement_id: str
    actor: Agent
    room_id: str
    registration: str
    timestamp: str | None = None


@dataclass(frozen=True)
class SentenceCreated:
    statement_id: str
    verb_id: str
    subject: str
    object_noun: str
    object_id: str
    text: str
    registration: str
    timestamp: str | None = None


@dataclass(frozen=True)
class SentenceAttributed:
    statement_id: str
    actor: Agent
    sentence_id: str
    text: str
    registration: str
    timestamp: str | None = None


@dataclass(frozen=True)
class SentenceVoted:
    statement_id: str
    actor: Agent
    sentence_id: str
    text: str
    registration: str
    timestamp: str | None = None


ParsedStatement = Union[RoomCreated, RoomJoined, SentenceCreated, SentenceAttributed, SentenceVoted]
T = TypeVar("T", RoomCreated, RoomJoined, SentenceCreated, SentenceAttributed, SentenceVoted)


def room_id_for(registration: str) -> str:
    return f"{ROOM_BASE}{registration}"


def build_voiding(actor: dict[str, Any], statement_id: str) -> dict[str, Any]:
    return {
        "actor": actor,
        "verb": {"id": VOIDED_VERB_ID, "display": {"en-US": "voided"}},
        "object": {"objectType": "StatementRef", "id": statement_id},
    }


def statement_ref_target(statement: dict[str, Any]) -> str | None:
    """Return the referenced statement id when the object is a StatementRef."""
    target = statement.get("object")
    if isinstance(target, dict) and target.get("objectType") == "StatementRef":
        target_id = target.get("id")
        return target_id if isinstance(target_id, str) else None
    return None


class StatementCodec:
    def __init__(self, verbs: VerbSet | None = None) -> None:
        self.verbs = verbs if verbs is not None else VerbSet()

    def _verb(self, verb_id: str, display: str) -> dict[str, Any]:
        return {"id": verb_id, "display": {"en-US": display}}

    def _context(self, registration: str) -> dict[str, Any]:
        return {"registration": registration}

    def _room(self, registration: str) -> dict[str, Any]:
        return {
            "objectType": "Activity",
            "id": room_id_for(registration),
            "definition": {"name": {"und": f"Room {registration}"}},
        }

    def room_created(self, actor: Agent, registration: str) -> dict[str, Any]:
        return {
            "actor": actor.to_wire(),
            "verb": self._verb(self.verbs.created, "created"),
            "object": self._room(registration),
            "context": self._context(registration),
        }

    def room_joined(self, actor: Agent, registration: str) -> dict[str, Any]:
        return {
            "actor": actor.to_wire(),
            "verb": self._verb(self.verbs.joined, "joined"),
            "object": self._room(registration),
            "context": self._context(registration),
        }

    def sentence(self, subject: str, verb_word: str, obj: str, object_id: int, registration: str) -> dict[str, Any]:
        """The sentence as its own statement: ``<subject> <verb> <object>``."""
        text = " ".join([subject, verb_word, obj])
        return {
            "actor": {
                "objectType": "Agent",
                "name": subject,
                "account": {"homePage": SUBJECT_HOME_PAGE, "name": subject},
            },
            "verb": self._verb(self.verbs.game(verb_word), verb_word),
            "object": {
                "objectType": "Activity",
                "id": f"{SENTENCE_ACTIVITY_BASE}{object_id}",
                "definition": {"name": {"en-US": obj}},
            },
            "context": self._context(registration),
            "result": {"response": text},
        }

    def attribution(self, actor: Agent, sentence_id: str, text: str, registration: str, player_number: int) -> dict[str, Any]:
        player = actor.name or f"Player {player_number}"
        return {
            "actor": actor.to_wire(),
            "verb": self._verb(self.verbs.attributed, "created sentence"),
            "object": {"objectType": "StatementRef", "id": sentence_id},
            "context": self._context(registration),
            "result": {"response": f"{player} played '{text}'"},
        }

    def vote(self, actor: Agent, sentence_id: str, text: str, registration: str) -> dict[str, Any]:
        return {
            "actor": actor.to_wire(),
            "verb": self._verb(self.verbs.voted, "+1 for sentence"),
            "object": {"objectType": "StatementRef", "id": sentence_id},
            "context": self._context(registration),
            "result": {"response": text},
        }

    def parse(self, raw: Any) -> ParsedStatement:
        if not isinstance(raw, dict):
            raise StatementFormatError("statement must be an object")
        statement_id = raw.get("id")
        verb = raw.get("verb")
        if not isinstance(statement_id, str) or not statement_id:
            raise StatementFormatError("statement has no id")
        if not isinstance(verb, dict) or not isinstance(verb.get("id"), str):
            raise StatementFormatError(f"statement {statement_id} has no verb")

        verb_id = verb["id"]
        context = raw.get("context") if isinstance(raw.get("context"), dict) else {}
        registration = context.get("registration")
        if not isinstance(registration, str) or not registration:
            raise StatementFormatError(f"statement {statement_id} has no registration")
        timestamp = raw.get("timestamp") or raw.get("stored")
        response = _response(raw)

        if verb_id in (self.verbs.created, self.verbs.joined):
            target = raw.get("object")
            room_id = target.get("id") if isinstance(target, dict) else None
            if not isinstance(room_id, str):
                raise StatementFormatError(f"statement {statement_id} has no room activity")
            kind = RoomCreated if verb_id == self.verbs.created else RoomJoined
            return kind(
                statement_id=statement_id,
                actor=Agent.from_wire(raw.get("actor")),
                room_id=room_id,
                registration=registration,
                timestamp=timestamp,
            )

        if verb_id in (self.verbs.attributed, self.verbs.voted):
            sentence_id = statement_ref_target(raw)
            if sentence_id is None:
                raise StatementFormatError(f"statement {statement_id} does not reference a sentence")
            kind = SentenceAttributed if verb_id == self.verbs.attributed else SentenceVoted
            return kind(
                statement_id=statement_id,
                actor=Agent.from_wire(raw.get("actor")),
                sentence_id=sentence_id,
                text=response,
                registration=registration,
                timestamp=timestamp,
            )

        if self.verbs.is_game_verb(verb_id):
            actor = raw.get("actor") if isinstance(raw.get("actor"), dict) else {}
            target = raw.get("object") if isinstance(raw.get("object"), dict) else {}
            definition = target.get("definition") if isinstance(target.get("definition"), dict) else {}
            names = definition.get("name") if isinstance(definition.get("name"), dict) else {}
            return SentenceCreated(
                statement_id=statement_id,
                verb_id=verb_id,
                subject=str(actor.get("name", "")),
                object_noun=str(names.get("en-US", "")),
                object_id=str(target.get("id", "")),
                text=response,
                registration=registration,
                timestamp=timestamp,
            )

        raise StatementFormatError(f"statement {statement_id} has unexpected verb {verb_id}")

    def parse_as(self, raw: Any, kind: type[T]) -> T:
        parsed = self.parse(raw)
        if not isinstance(parsed, kind):
            raise StatementFormatError(f"expected {kind.__name__}, got {type(parsed).__name__}")
        return parsed


def _response(raw: dict[str, Any]) -> str:
    result = raw.get("result")
    if isinstance(result, dict) and isinstance(result.get("response"), str):
        return result["response"]
    return ""
