import asyncio
import dataclasses
import random

import pytest

from cardroom.backend import events
from cardroom.backend.config import load_settings
from cardroom.backend.errors import JoinError, QueryError, SubmissionError, WriteError
from cardroom.backend.game import CardGame
from cardroom.backend.models import Agent, StatementPage
from cardroom.backend.store import InMemoryStatementLog, query_all


def _settings():
    return dataclasses.replace(load_settings(), poll_interval=0.01, sentence_window=29.0, max_join_attempts=6)


def _agent(letter: str) -> Agent:
    return Agent.create(f"{letter}@example.com", letter.upper())


def _game(log, letter: str, state=None, listener=None) -> CardGame:
    return CardGame(log, _agent(letter), state, settings=_settings(), listener=listener, rng=random.Random(letter))


class _FailingLog(InMemoryStatementLog):
    async def query(self, verb=None, registration=None, ascending=False) -> StatementPage:
        raise QueryError("lrs unreachable")


class _RejectingLog(InMemoryStatementLog):
    """Refuses every statement with the given verb."""

    def __init__(self) -> None:
        super().__init__()
        self.rejected_verb: str | None = None

    async def append_batch(self, statements):
        if any(statement["verb"]["id"] == self.rejected_verb for statement in statements):
            raise WriteError("lrs rejected the statement")
        return await super().append_batch(statements)


def test_setup_game_joins_deals_and_starts_turn_one() -> None:
    async def scenario():
        game = _game(InMemoryStatementLog(), "a")
        joined: list[list[Agent]] = []
        players = await game.setup_game(on_success=joined.append)
        await game.close()
        return game, players, joined

    game, players, joined = asyncio.run(scenario())

    assert joined == [players]
    assert game.turn == 1
    assert len(game.get_state().hand) == 10
    assert game.get_question_cards()["verb"] == "licked"
    assert game.get_all_players() == [_agent("a")]


def test_setup_game_failure_goes_to_error_continuation() -> None:
    async def scenario():
        game = _game(_FailingLog(), "a")
        errors: list[Exception] = []
        result = await game.setup_game(on_error=errors.append)
        return game, result, errors

    game, result, errors = asyncio.run(scenario())

    assert result is None
    assert len(errors) == 1
    assert isinstance(errors[0], JoinError)
    assert game.turn == 0
    assert game.get_state().registration_id is None


def test_setup_game_failure_raises_without_continuation() -> None:
    with pytest.raises(JoinError):
        asyncio.run(_game(_FailingLog(), "a").setup_game())


def test_submit_sentence_writes_sentence_and_attribution() -> None:
    async def scenario():
        log = InMemoryStatementLog()
        game = _game(log, "a")
        await game.setup_game()
        await game.start_game()
        subject, obj = game.get_state().hand[:2]
        submitted = await game.submit_sentence(subject, obj)
        attributions = await query_all(log, verb=game.codec.verbs.attributed)
        return game, subject, obj, submitted, attributions

    game, subject, obj, submitted, attributions = asyncio.run(scenario())

    assert submitted.text == f"{subject} licked {obj}"
    assert subject not in game.get_state().hand
    assert obj not in game.get_state().hand
    assert len(game.get_state().hand) == 8
    assert game.get_state().submitted_sentences["licked"].id == submitted.statement_id
    assert len(attributions) == 1
    assert attributions[0]["object"]["id"] == submitted.statement_id


def test_submit_sentence_rejects_nouns_outside_the_hand() -> None:
    async def scenario():
        game = _game(InMemoryStatementLog(), "a")
        await game.setup_game()
        await game.close()
        errors: list[Exception] = []
        hand = game.get_state().hand
        result = await game.submit_sentence(hand[0], "not a card", on_error=errors.append)
        return game, hand, result, errors

    game, hand, result, errors = asyncio.run(scenario())

    assert result is None
    assert isinstance(errors[0], SubmissionError)
    assert game.get_state().hand == hand


def test_submit_sentence_requires_a_question_turn() -> None:
    game = _game(InMemoryStatementLog(), "a")

    with pytest.raises(SubmissionError):
        asyncio.run(game.submit_sentence("a", "b"))


def test_get_submitted_sentences_requires_own_sentence() -> None:
    async def scenario() -> None:
        game = _game(InMemoryStatementLog(), "a")
        await game.setup_game()
        await game.close()
        await game.get_submitted_sentences()

    with pytest.raises(SubmissionError):
        asyncio.run(scenario())


def test_submit_vote_advances_turn_and_rejects_own_sentence() -> None:
    async def scenario():
        log = InMemoryStatementLog()
        game = _game(log, "a")
        await game.setup_game()
        await game.start_game()
        subject, obj = game.get_state().hand[:2]
        own = await game.submit_sentence(subject, obj)
        with pytest.raises(SubmissionError):
            await game.submit_vote(own.statement_id, own.text)
        turn_before = game.turn
        await game.submit_vote("someone-else", "p licked q")
        votes = await query_all(log, verb=game.codec.verbs.voted)
        await game.submit_vote(None)
        return game, turn_before, votes

    game, turn_before, votes = asyncio.run(scenario())

    assert turn_before == 1
    assert game.turn == 3
    assert len(votes) == 1
    assert votes[0]["object"]["id"] == "someone-else"


def test_state_snapshot_restores_a_game() -> None:
    async def scenario():
        log = InMemoryStatementLog()
        game = _game(log, "a")
        await game.setup_game()
        await game.start_game()
        subject, obj = game.get_state().hand[:2]
        await game.submit_sentence(subject, obj)
        snapshot = game.get_state()
        restored = _game(log, "a", state=snapshot)
        return snapshot, restored

    snapshot, restored = asyncio.run(scenario())

    assert restored.get_state() == snapshot
    assert restored.turn == 1
    assert restored.get_all_players() == [_agent("a")]


def test_two_players_play_a_round_and_see_top_sentences() -> None:
    async def scenario():
        log = InMemoryStatementLog()
        seen: list[dict] = []
        host = _game(log, "a", listener=seen.append)
        guest = _game(log, "b")
        await host.setup_game()
        await guest.setup_game()
        await host.rooms.poll_members()
        await host.start_game()
        await guest.start_game()

        host_sentence = await host.submit_sentence(*host.get_state().hand[:2])
        guest_sentence = await guest.submit_sentence(*guest.get_state().hand[:2])
        await host.get_submitted_sentences()
        for _ in range(200):
            if host.turns.ready:
                break
            await asyncio.sleep(0.01)

        await host.submit_vote(guest_sentence.statement_id, guest_sentence.text)
        await guest.submit_vote(host_sentence.statement_id, host_sentence.text)
        top = await host.get_top_sentences()
        await host.close()
        await guest.close()
        return host_sentence, guest_sentence, seen, top

    host_sentence, guest_sentence, seen, top = asyncio.run(scenario())

    kinds = [event["kind"] for event in seen]
    assert kinds[0] == events.PLAYER_JOINED
    assert kinds[1:] == [events.SENTENCE_FOUND, events.SENTENCE_FOUND, events.READY_TO_VOTE]
    assert seen[2]["id"] == guest_sentence.statement_id
    assert seen[-1]["timedOut"] is False
    assert {entry.statement_id for entry in top.entries} == {
        host_sentence.statement_id,
        guest_sentence.statement_id,
    }
    assert all(entry.count == 1 for entry in top.entries)
    authors = {entry.statement_id: entry.author.mbox for entry in top.entries}
    assert authors[guest_sentence.statement_id] == _agent("b").mbox


def test_failed_attribution_leaves_no_submission_behind() -> None:
    async def scenario():
        log = _RejectingLog()
        game = _game(log, "a")
        await game.setup_game()
        await game.start_game()
        log.rejected_verb = game.codec.verbs.attributed
        hand = game.get_state().hand
        errors: list[Exception] = []
        result = await game.submit_sentence(hand[0], hand[1], on_error=errors.append)
        return game, hand, result, errors

    game, hand, result, errors = asyncio.run(scenario())

    assert result is None
    assert isinstance(errors[0], SubmissionError)
    assert game.get_state().submitted_sentences == {}
    assert game.get_state().hand == hand


def test_resumed_lobby_keeps_watching_for_players_and_closes_its_room() -> None:
    async def scenario():
        log = InMemoryStatementLog()
        first = _game(log, "a")
        await first.setup_game()
        snapshot = first.get_state()
        await first.close()
        guest = _game(log, "b")
        await guest.setup_game()
        await guest.close()

        resumed = _game(log, "a", state=snapshot)
        await resumed.resume()
        for _ in range(200):
            if len(resumed.get_all_players()) == 2:
                break
            await asyncio.sleep(0.01)
        players = resumed.get_all_players()
        await resumed.start_game()
        voided = await log.get_voided(resumed.session.room.create_statement_id)
        await resumed.close()
        return players, voided

    players, voided = asyncio.run(scenario())

    assert [player.mbox for player in players] == [_agent("a").mbox, _agent("b").mbox]
    assert voided is not None


def test_start_game_after_restore_closes_the_room() -> None:
    async def scenario():
        log = InMemoryStatementLog()
        first = _game(log, "a")
        await first.setup_game()
        snapshot = first.get_state()
        await first.close()
        restored = _game(log, "a", state=snapshot)
        await restored.start_game()
        rooms = await restored.rooms.find_open_rooms()
        return restored, rooms

    restored, rooms = asyncio.run(scenario())

    assert restored.session.room is not None
    assert rooms == []


def test_close_waits_for_polling_tasks_to_exit() -> None:
    async def scenario():
        game = _game(InMemoryStatementLog(), "a")
        await game.setup_game()
        subject, obj = game.get_state().hand[:2]
        await game.submit_sentence(subject, obj)
        await game.get_submitted_sentences()
        polling = (game.rooms.polling_players, game.turns.polling)
        await game.close()
        pending = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
        return polling, pending

    polling, pending = asyncio.run(scenario())

    assert polling == (True, True)
    assert pending == []
