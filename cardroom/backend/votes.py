"""Vote tally and top sentence ranking."""

from __future__ import annotations

import logging
from typing import Mapping

from cardroom.backend.errors import QueryError, StatementFormatError
from cardroom.backend.models import Agent, TopSentence, TopSentences, VoteCount
from cardroom.backend.session import GameSession
from cardroom.backend.statements import SentenceAttributed, SentenceVoted, StatementCodec
from cardroom.backend.store import StatementLog, collect_statements


logger = logging.getLogger(__name__)

TOP_SENTENCES = 5


def compute_top_sentences(votes: Mapping[str, VoteCount], limit: int = TOP_SENTENCES) -> list[str]:
    """Ids with the most votes, highest count first.

    Ids sharing a count keep the order in which they were first counted.
    """
    by_count: dict[int, list[str]] = {}
    for statement_id, tally in votes.items():
        by_count.setdefault(tally.count, []).append(statement_id)

    top_ids: list[str] = []
    for count in sorted(by_count, reverse=True):
        for statement_id in by_count[count]:
            top_ids.append(statement_id)
            if len(top_ids) >= limit:
                return top_ids
    return top_ids


def add_votes(votes: dict[str, VoteCount], ballots: list[SentenceVoted]) -> None:
    for ballot in ballots:
        tally = votes.get(ballot.sentence_id)
        if tally is None:
            votes[ballot.sentence_id] = VoteCount(count=1, sentence=ballot.text)
        else:
            tally.count += 1


class VoteAggregator:
    def __init__(self, log: StatementLog, codec: StatementCodec, session: GameSession) -> None:
        self.log = log
        self.codec = codec
        self.session = session

    async def fetch_votes(self) -> dict[str, VoteCount]:
        votes: dict[str, VoteCount] = {}
        try:
            page = await self.log.query(verb=self.codec.verbs.voted, registration=self.session.registration)
            while True:
                add_votes(votes, self._parse(page.statements, SentenceVoted))
                if not page.more:
                    break
                page = await self.log.more(page.more)
        except QueryError as exc:
            raise QueryError("Cannot fetch votes by all players in the room", exc) from exc
        return votes

    async def fetch_top_sentences(self, limit: int = TOP_SENTENCES) -> TopSentences:
        votes = await self.fetch_votes()
        top_ids = compute_top_sentences(votes, limit)
        try:
            authors = await self._fetch_authors(set(top_ids))
        except QueryError as exc:
            logger.warning("Returning top sentences without authors: %s", exc)
            return TopSentences(entries=self._entries(top_ids, votes, {}), authors_resolved=False)
        return TopSentences(entries=self._entries(top_ids, votes, authors))

    async def _fetch_authors(self, sentence_ids: set[str]) -> dict[str, Agent]:
        page = await self.log.query(verb=self.codec.verbs.attributed, registration=self.session.registration)
        statements = await collect_statements(self.log, page)
        authors: dict[str, Agent] = {}
        for attribution in self._parse(statements, SentenceAttributed):
            if attribution.sentence_id in sentence_ids:
                authors[attribution.sentence_id] = self.session.players.resolve(attribution.actor)
        return authors

    def _entries(self, top_ids: list[str], votes: dict[str, VoteCount], authors: dict[str, Agent]) -> list[TopSentence]:
        return [
            TopSentence(
                statement_id=statement_id,
                count=votes[statement_id].count,
                sentence=votes[statement_id].sentence,
                author=authors.get(statement_id),
            )
            for statement_id in top_ids
        ]

    def _parse(self, statements: list[dict], kind: type) -> list:
        parsed = []
        for raw in statements:
            try:
                parsed.append(self.codec.parse_as(raw, kind))
            except StatementFormatError as exc:
                logger.warning("Skipping malformed %s statement: %s", kind.__name__, exc)
        return parsed
