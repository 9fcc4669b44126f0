"""Game facade: the operations an embedding UI calls for one local player."""

from __future__ import annotations

import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Union

from cardroom.backend.cards import CardDealer
from cardroom.backend.config import BackendSettings, load_settings
from cardroom.backend.errors import CardRoomError, JoinError, QueryError, SubmissionError, WriteError
from cardroom.backend.events import Listener
from cardroom.backend.models import Agent, SubmittedSentence, TopSentences
from cardroom.backend.rooms import RoomCoordinator
from cardroom.backend.session import GameSession
from cardroom.backend.state import GameState
from cardroom.backend.statements import StatementCodec, VerbSet
from cardroom.backend.store import StatementLog
from cardroom.backend.turns import TurnSynchronizer
from cardroom.backend.votes import VoteAggregator


logger = logging.getLogger(__name__)

ErrorCallback = Callable[[CardRoomError], Union[Awaitable[None], None]]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


async def _fail(error: CardRoomError, on_error: ErrorCallback | None) -> None:
    """Hand the failure to the error continuation, or raise it when there is none."""
    if on_error is None:
        raise error
    logger.info("Delivering %s to error continuation: %s", type(error).__name__, error)
    await _call(on_error, error)


class CardGame:
    def __init__(
        self,
        log: StatementLog,
        local: Agent,
        state: GameState | None = None,
        *,
        settings: BackendSettings | None = None,
        listener: Listener | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        settings = settings if settings is not None else load_settings()
        self.log = log
        self.codec = StatementCodec(VerbSet(prefix=settings.verb_prefix))
        if state is None:
            self.session = GameSession.fresh(local)
            self.dealer = CardDealer(rng=rng)
        else:
            self.session = GameSession.from_state(local, state)
            self.dealer = CardDealer(state.hand, rng=rng)
        self.rooms = RoomCoordinator(
            log,
            self.codec,
            self.session,
            poll_interval=settings.poll_interval,
            max_join_attempts=settings.max_join_attempts,
            listener=listener,
        )
        self.turns = TurnSynchronizer(
            log,
            self.codec,
            self.session,
            poll_interval=settings.poll_interval,
            window=settings.sentence_window,
            listener=listener,
            clock=clock,
        )
        self.votes = VoteAggregator(log, self.codec, self.session)

    @property
    def turn(self) -> int:
        return self.session.turn

    async def setup_game(
        self,
        on_success: Callable[[list[Agent]], Any] | None = None,
        on_error: ErrorCallback | None = None,
    ) -> list[Agent] | None:
        """Join a room, then deal the hand and move to the first turn."""
        try:
            players = await self.rooms.join()
        except JoinError as exc:
            await _fail(exc, on_error)
            return None
        self.dealer.deal()
        self.session.turn = 1
        if on_success is not None:
            await _call(on_success, players)
        return players

    async def resume(self) -> None:
        """Pick a restored game back up: find its room and keep watching an open lobby."""
        if self.session.registration is None:
            return
        try:
            room = await self.rooms.find_current_room()
        except QueryError as exc:
            logger.warning("Could not look up room %s: %s", self.session.registration, exc)
            return
        if room is not None:
            self.rooms.start_polling_players()

    async def start_game(self) -> None:
        """Leave the lobby: stop watching for players and close the room."""
        self.rooms.stop_polling_players()
        try:
            await self.rooms.check_and_close_room()
        except (QueryError, WriteError) as exc:
            logger.warning("Could not close room %s: %s", self.session.registration, exc)

    def get_all_players(self) -> list[Agent]:
        return self.session.players.agents

    def get_question_cards(self) -> dict[str, Any] | None:
        return self.dealer.question_cards(self.session.turn)

    async def submit_sentence(
        self,
        subject: str,
        obj: str,
        on_error: ErrorCallback | None = None,
    ) -> SubmittedSentence | None:
        """Record ``<subject> <verb> <object>`` for the current turn."""
        verb = self.dealer.question_verb(self.session.turn)
        try:
            if verb is None:
                raise SubmissionError(f"turn {self.session.turn} has no question")
            if self.session.registration is None:
                raise SubmissionError("not seated in a room")
            submitted = await self._write_sentence(subject, verb, obj)
        except SubmissionError as exc:
            await _fail(exc, on_error)
            return None
        self.dealer.discard([subject, obj])
        return submitted

    async def get_submitted_sentences(self) -> None:
        """Start reporting this turn's sentences; ends with ready_to_vote."""
        verb = self.dealer.question_verb(self.session.turn)
        if verb is None or verb not in self.session.submitted:
            raise SubmissionError(f"no sentence submitted for turn {self.session.turn}")
        await self.turns.start(verb)

    async def submit_vote(
        self,
        statement_id: str | None,
        sentence: str | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Vote for a sentence, or pass with no id; either way the turn ends.

        A vote for the player's own sentence is rejected with SubmissionError
        and leaves the turn unchanged, so the player can still vote again.
        """
        own = self.session.submitted.get(self.dealer.question_verb(self.session.turn) or "")
        if statement_id and own is not None and own.statement_id == statement_id:
            await _fail(SubmissionError("players cannot vote for their own sentence"), on_error)
            return

        self.turns.stop()
        self.session.turn += 1
        if not statement_id:
            return
        statement = self.codec.vote(self.session.local, statement_id, sentence or "", str(self.session.registration))
        try:
            await self.log.append(statement)
        except WriteError as exc:
            await _fail(SubmissionError("Cannot submit vote", exc), on_error)

    async def get_top_sentences(self) -> TopSentences:
        return await self.votes.fetch_top_sentences()

    def get_state(self) -> GameState:
        return self.session.to_state(self.dealer.hand)

    async def close(self) -> None:
        self.rooms.stop_polling_players()
        self.turns.stop()
        await self.rooms.wait_stopped()
        await self.turns.wait_stopped()

    async def _write_sentence(self, subject: str, verb: str, obj: str) -> SubmittedSentence:
        hand = self.dealer.hand
        if subject == obj or subject not in hand or obj not in hand:
            raise SubmissionError("the sentence needs two different nouns from the hand")
        statement = self.codec.sentence(subject, verb, obj, self.dealer.noun_id(obj), str(self.session.registration))
        try:
            statement_id = await self.log.append(statement)
        except WriteError as exc:
            raise SubmissionError("Cannot submit formed sentence", exc) from exc

        text = statement["result"]["response"]
        attribution = self.codec.attribution(
            self.session.local, statement_id, text, str(self.session.registration), self.session.player_number
        )
        try:
            await self.log.append(attribution)
        except WriteError as exc:
            raise SubmissionError("Cannot attribute formed sentence", exc) from exc
        submitted = SubmittedSentence(verb=verb, statement_id=statement_id, text=text)
        self.session.submitted[verb] = submitted
        logger.info("Submitted sentence %s for turn %d", statement_id, self.session.turn)
        return submitted
