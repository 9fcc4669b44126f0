import asyncio

import pytest

from cardroom.backend.errors import QueryError
from cardroom.backend.models import Agent, StatementPage, VoteCount
from cardroom.backend.session import GameSession
from cardroom.backend.statements import StatementCodec
from cardroom.backend.store import InMemoryStatementLog
from cardroom.backend.votes import VoteAggregator, compute_top_sentences


CODEC = StatementCodec()
REGISTRATION = "reg-1"


def _agent(letter: str) -> Agent:
    return Agent.create(f"{letter}@example.com", letter.upper())


def _tally(**counts: int) -> dict[str, VoteCount]:
    return {key: VoteCount(count=value, sentence=f"sentence {key}") for key, value in counts.items()}


class _NoAttributionsLog(InMemoryStatementLog):
    async def query(self, verb=None, registration=None, ascending=False) -> StatementPage:
        if verb == CODEC.verbs.attributed:
            raise QueryError("attributions unavailable")
        return await super().query(verb=verb, registration=registration, ascending=ascending)


class _NoVotesLog(InMemoryStatementLog):
    async def query(self, verb=None, registration=None, ascending=False) -> StatementPage:
        raise QueryError("votes unavailable")


def test_top_sentences_order_by_count_then_first_seen() -> None:
    assert compute_top_sentences(_tally(A=3, B=1, C=3, D=2)) == ["A", "C", "D", "B"]


def test_top_sentences_is_idempotent() -> None:
    votes = _tally(A=1, B=2, C=2)

    assert compute_top_sentences(votes) == compute_top_sentences(votes)


def test_top_sentences_is_capped() -> None:
    votes = _tally(A=1, B=2, C=3, D=4, E=5, F=6)

    assert compute_top_sentences(votes) == ["F", "E", "D", "C", "B"]
    assert compute_top_sentences(votes, limit=2) == ["F", "E"]
    assert compute_top_sentences({}) == []


async def _seed(log) -> GameSession:
    session = GameSession.fresh(_agent("a"))
    session.registration = REGISTRATION
    for letter in "ab":
        session.players.add(_agent(letter))
    sentences = {}
    for letter, text in (("a", "x licked y"), ("b", "p licked q")):
        sentence_id = await log.append(CODEC.sentence("x", "licked", "y", 1, REGISTRATION))
        await log.append(CODEC.attribution(_agent(letter), sentence_id, text, REGISTRATION, 1))
        sentences[letter] = (sentence_id, text)
    ballots = ["b", "b", "a", "b"]
    for index, letter in enumerate(ballots):
        sentence_id, text = sentences[letter]
        await log.append(CODEC.vote(_agent("cdef"[index]), sentence_id, text, REGISTRATION))
    await log.append(CODEC.vote(_agent("z"), sentences["a"][0], "x licked y", "other-room"))
    return session


def test_fetch_top_sentences_counts_votes_and_resolves_authors() -> None:
    async def scenario():
        log = InMemoryStatementLog(page_size=2)
        session = await _seed(log)
        return await VoteAggregator(log, CODEC, session).fetch_top_sentences()

    top = asyncio.run(scenario())

    assert top.authors_resolved is True
    assert [(entry.sentence, entry.count) for entry in top.entries] == [("p licked q", 3), ("x licked y", 1)]
    assert top.entries[0].author.mbox == _agent("b").mbox
    assert top.entries[1].author.name == "A"


def test_fetch_top_sentences_without_authors_when_attributions_fail() -> None:
    async def scenario():
        log = _NoAttributionsLog()
        session = await _seed(log)
        return await VoteAggregator(log, CODEC, session).fetch_top_sentences()

    top = asyncio.run(scenario())

    assert top.authors_resolved is False
    assert [entry.count for entry in top.entries] == [3, 1]
    assert all(entry.author is None for entry in top.entries)


def test_fetch_votes_failure_is_reported() -> None:
    session = GameSession.fresh(_agent("a"))
    session.registration = REGISTRATION

    with pytest.raises(QueryError):
        asyncio.run(VoteAggregator(_NoVotesLog(), CODEC, session).fetch_votes())
