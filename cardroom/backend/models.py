"""Domain models for room membership, sentences and vote results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from cardroom.backend.errors import StatementFormatError
from cardroom.backend.identity import avatar_url, normalize_mbox


ROOM_CAPACITY = 4


@dataclass(frozen=True)
class Agent:
    mbox: str
    name: str | None = None
    icon: str | None = None

    @property
    def agent_id(self) -> str:
        return self.mbox

    @classmethod
    def create(cls, mbox: str, name: str | None = None) -> "Agent":
        normalized = normalize_mbox(mbox)
        return cls(mbox=normalized, name=name, icon=avatar_url(normalized))

    @classmethod
    def from_wire(cls, actor: Any) -> "Agent":
        if not isinstance(actor, dict) or not isinstance(actor.get("mbox"), str):
            raise StatementFormatError("actor must be an agent with an mbox")
        name = actor.get("name")
        return cls.create(actor["mbox"], name if isinstance(name, str) else None)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Agent":
        agent = cls.create(str(payload["mbox"]), payload.get("name"))
        icon = payload.get("icon")
        if isinstance(icon, str) and icon:
            return cls(mbox=agent.mbox, name=agent.name, icon=icon)
        return agent

    def to_wire(self) -> dict[str, Any]:
        actor: dict[str, Any] = {"objectType": "Agent", "mbox": self.mbox}
        if self.name:
            actor["name"] = self.name
        return actor

    def to_dict(self) -> dict[str, Any]:
        return {"mbox": self.mbox, "name": self.name, "icon": self.icon}


class PlayerSet:
    """Players of one room: unique by agent id, local player always first.

    The set only grows. Additions beyond the room capacity are refused so
    an over-subscribed registration never shows more than four seats.
    """

    def __init__(self, local_id: str, agents: Iterable[Agent] = (), capacity: int = ROOM_CAPACITY) -> None:
        self.local_id = local_id
        self.capacity = capacity
        self._agents: list[Agent] = []
        for agent in agents:
            self.add(agent)

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[Agent]:
        return iter(list(self._agents))

    def __contains__(self, agent_id: object) -> bool:
        if not isinstance(agent_id, str):
            return False
        return self.find(agent_id) is not None

    @property
    def agents(self) -> list[Agent]:
        return list(self._agents)

    @property
    def ids(self) -> list[str]:
        return [agent.agent_id for agent in self._agents]

    @property
    def is_full(self) -> bool:
        return len(self._agents) >= self.capacity

    def find(self, agent_id: str) -> Agent | None:
        for agent in self._agents:
            if agent.agent_id == agent_id:
                return agent
        return None

    def add(self, agent: Agent) -> bool:
        """Add a newly observed player; returns False when known or full."""
        if self.find(agent.agent_id) is not None or self.is_full:
            return False
        if agent.agent_id == self.local_id:
            self._agents.insert(0, agent)
        else:
            self._agents.append(agent)
        return True

    def resolve(self, agent: Agent) -> Agent:
        """Return the known player for an actor, adding unseen actors on the fly."""
        known = self.find(agent.agent_id)
        if known is not None:
            return known
        self.add(agent)
        return agent


@dataclass(frozen=True)
class Room:
    room_id: str
    registration: str
    create_statement_id: str
    creator_join_statement_id: str | None = None


@dataclass(frozen=True)
class SubmittedSentence:
    verb: str
    statement_id: str
    text: str


@dataclass
class VoteCount:
    count: int
    sentence: str


@dataclass(frozen=True)
class TopSentence:
    statement_id: str
    count: int
    sentence: str
    author: Agent | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.statement_id,
            "count": self.count,
            "sentence": self.sentence,
            "author": self.author.to_dict() if self.author else None,
        }


@dataclass(frozen=True)
class TopSentences:
    entries: list[TopSentence]
    authors_resolved: bool = True


@dataclass(frozen=True)
class StatementPage:
    statements: list[dict[str, Any]] = field(default_factory=list)
    more: str | None = None
