"""State builders for portable game snapshots."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PlayerSnapshot(BaseModel):
    mbox: str
    name: str | None = None
    icon: str | None = None


class SentenceSnapshot(BaseModel):
    id: str
    sentence: str


class GameState(BaseModel):
    """Everything a caller carries across page or session boundaries."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    turn: int = Field(default=0, ge=0)
    hand: list[str] | None = None
    registration_id: str | None = None
    player_number: int = Field(default=0, ge=0)
    submitted_sentences: dict[str, SentenceSnapshot] = Field(default_factory=dict)
    players: list[PlayerSnapshot] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
