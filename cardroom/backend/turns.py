"""Sentence polling for one turn and the ready-to-vote signal."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable

from cardroom.backend import events
from cardroom.backend.errors import QueryError, StatementFormatError
from cardroom.backend.events import Listener
from cardroom.backend.scheduler import CancellationToken, PollingTimer
from cardroom.backend.session import GameSession
from cardroom.backend.statements import SentenceAttributed, SentenceCreated, StatementCodec
from cardroom.backend.store import StatementLog, query_all


logger = logging.getLogger(__name__)

OWN_SENTENCE_COUNTDOWN = 30


class TurnSynchronizer:
    def __init__(
        self,
        log: StatementLog,
        codec: StatementCodec,
        session: GameSession,
        *,
        poll_interval: float = 1.0,
        window: float = 29.0,
        listener: Listener | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.log = log
        self.codec = codec
        self.session = session
        self.window = window
        self.listener = listener
        self._clock = clock
        self._timer = PollingTimer("sentences", poll_interval)
        self._verb: str | None = None
        self._deadline: float = 0.0
        self._known: list[str] = []
        self._ready = False

    @property
    def known_sentence_ids(self) -> list[str]:
        return list(self._known)

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def polling(self) -> bool:
        return self._timer.active

    def now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def start(self, verb: str) -> None:
        """Report our own sentence for the verb, then poll for everybody else's."""
        own = self.session.submitted.get(verb)
        if own is None:
            raise KeyError(f"no sentence submitted for verb {verb!r}")

        self._timer.stop()
        self._verb = verb
        self._known = [own.statement_id]
        self._ready = False
        self._deadline = self.now() + self.window
        await events.emit(
            self.listener,
            events.sentence_found(own.statement_id, own.text, self.session.local, OWN_SENTENCE_COUNTDOWN),
        )
        self._timer.start(self.poll_once)

    def stop(self) -> None:
        self._timer.stop()

    async def wait_stopped(self) -> None:
        await self._timer.wait_stopped()

    async def poll_once(self, token: CancellationToken | None = None) -> bool:
        """One polling round; returns True once the turn is ready to vote."""
        if self._ready or self._verb is None:
            return self._ready
        try:
            sentences = await query_all(
                self.log,
                verb=self.codec.verbs.game(self._verb),
                registration=self.session.registration,
            )
            attributions = await query_all(
                self.log,
                verb=self.codec.verbs.attributed,
                registration=self.session.registration,
            )
        except QueryError as exc:
            logger.warning("Sentence poll failed, retrying next tick: %s", exc)
            return await self._check_ready(token)
        if token is not None and token.cancelled:
            return False

        await self._detect_new_sentences(sentences, attributions, token)
        return await self._check_ready(token)

    async def _detect_new_sentences(
        self,
        sentences: list[dict],
        attributions: list[dict],
        token: CancellationToken | None = None,
    ) -> None:
        """Record every new sentence, then announce them while the round is still current."""
        texts: dict[str, str] = {}
        for raw in sentences:
            try:
                created = self.codec.parse_as(raw, SentenceCreated)
            except StatementFormatError as exc:
                logger.warning("Skipping malformed sentence: %s", exc)
                continue
            texts[created.statement_id] = created.text

        found: list[dict] = []
        # attributions arrive newest first; report in submission order
        for raw in reversed(attributions):
            try:
                attribution = self.codec.parse_as(raw, SentenceAttributed)
            except StatementFormatError as exc:
                logger.warning("Skipping malformed attribution: %s", exc)
                continue
            sentence_id = attribution.sentence_id
            if sentence_id in self._known or sentence_id not in texts:
                continue
            author = self.session.players.resolve(attribution.actor)
            countdown = max(0, math.ceil(self._deadline - self.now()))
            self._known.append(sentence_id)
            found.append(events.sentence_found(sentence_id, texts[sentence_id], author, countdown))

        for event in found:
            if token is not None and token.cancelled:
                return
            await events.emit(self.listener, event)

    async def _check_ready(self, token: CancellationToken | None) -> bool:
        expected = len(self.session.players)
        timed_out = self.now() >= self._deadline
        if len(self._known) < expected and not timed_out:
            return False
        if token is not None and token.cancelled:
            return False
        self._ready = True
        self._timer.stop()
        logger.info(
            "Turn %d ready to vote with %d of %d sentence(s)%s",
            self.session.turn,
            len(self._known),
            expected,
            " after timeout" if timed_out else "",
        )
        await events.emit(self.listener, events.ready_to_vote(len(self._known), expected, timed_out))
        return True
