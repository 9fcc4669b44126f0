"""Per-player coordinator state shared by the room, turn and vote logic."""

from __future__ import annotations

from dataclasses import dataclass, field

from cardroom.backend.models import Agent, PlayerSet, Room, SubmittedSentence
from cardroom.backend.state import GameState, PlayerSnapshot, SentenceSnapshot


@dataclass
class GameSession:
    local: Agent
    players: PlayerSet
    registration: str | None = None
    player_number: int = 0
    turn: int = 0
    room: Room | None = None
    joined_statement_id: str | None = None
    submitted: dict[str, SubmittedSentence] = field(default_factory=dict)

    @classmethod
    def fresh(cls, local: Agent) -> "GameSession":
        return cls(local=local, players=PlayerSet(local.agent_id))

    @classmethod
    def from_state(cls, local: Agent, state: GameState) -> "GameSession":
        agents = [Agent.from_dict(player.model_dump()) for player in state.players]
        return cls(
            local=local,
            players=PlayerSet(local.agent_id, agents),
            registration=state.registration_id,
            player_number=state.player_number,
            turn=state.turn,
            submitted={
                verb: SubmittedSentence(verb=verb, statement_id=entry.id, text=entry.sentence)
                for verb, entry in state.submitted_sentences.items()
            },
        )

    def to_state(self, hand: list[str] | None) -> GameState:
        return GameState(
            turn=self.turn,
            hand=hand,
            registration_id=self.registration,
            player_number=self.player_number,
            submitted_sentences={
                verb: SentenceSnapshot(id=entry.statement_id, sentence=entry.text)
                for verb, entry in self.submitted.items()
            },
            players=[PlayerSnapshot(**agent.to_dict()) for agent in self.players],
        )

    def clear_registration(self) -> None:
        """Forget the room being negotiated; keeps the turn and submissions."""
        self.registration = None
        self.room = None
        self.joined_statement_id = None
        self.player_number = 0
        self.players = PlayerSet(self.local.agent_id)
