import dataclasses
import time

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from cardroom.backend.api import create_app
from cardroom.backend.config import load_settings
from cardroom.backend.errors import QueryError
from cardroom.backend.models import StatementPage
from cardroom.backend.store import InMemoryStatementLog


class _FailingLog(InMemoryStatementLog):
    async def query(self, verb=None, registration=None, ascending=False) -> StatementPage:
        raise QueryError("lrs unreachable")


def _app(log=None):
    settings = dataclasses.replace(load_settings(), server_salt="test-salt", poll_interval=0.01)
    return create_app(log=log if log is not None else InMemoryStatementLog(), settings=settings)


def _open_session(client: TestClient, letter: str = "a") -> tuple[str, str]:
    created = client.post("/api/sessions", json={"mbox": f"{letter}@example.com", "name": letter.upper()}).json()
    return created["session_id"], created["token"]


def test_post_sessions_returns_id_and_token() -> None:
    client = TestClient(_app())

    response = client.post("/api/sessions", json={"mbox": "alice@example.com", "name": "Alice"})

    assert response.status_code == 200
    data = response.json()
    assert data["session_id"]
    assert data["token"]


def test_get_state_rejects_invalid_token() -> None:
    client = TestClient(_app())
    session_id, _ = _open_session(client)

    response = client.get(f"/api/sessions/{session_id}/state", params={"token": "invalid"})

    assert response.status_code == 404


def test_join_deals_hand_and_serves_question_cards() -> None:
    with TestClient(_app()) as client:
        session_id, token = _open_session(client)

        joined = client.post(f"/api/sessions/{session_id}/join", json={"token": token})
        cards = client.get(f"/api/sessions/{session_id}/cards", params={"token": token})

    assert joined.status_code == 200
    assert joined.json()["players"][0]["mbox"] == "mailto:a@example.com"
    assert joined.json()["state"]["turn"] == 1
    assert joined.json()["state"]["playerNumber"] == 1
    assert cards.json()["cards"]["verb"] == "licked"
    assert len(cards.json()["cards"]["nouns"]) == 10


def test_join_failure_maps_to_conflict() -> None:
    with TestClient(_app(_FailingLog())) as client:
        session_id, token = _open_session(client)

        response = client.post(f"/api/sessions/{session_id}/join", json={"token": token})

    assert response.status_code == 409


def test_sentence_vote_and_top_flow() -> None:
    with TestClient(_app()) as client:
        session_id, token = _open_session(client)
        client.post(f"/api/sessions/{session_id}/join", json={"token": token})
        client.post(f"/api/sessions/{session_id}/start", json={"token": token})
        nouns = client.get(f"/api/sessions/{session_id}/cards", params={"token": token}).json()["cards"]["nouns"]

        rejected = client.post(
            f"/api/sessions/{session_id}/sentences",
            json={"token": token, "subject": nouns[0], "object": "not a card"},
        )
        accepted = client.post(
            f"/api/sessions/{session_id}/sentences",
            json={"token": token, "subject": nouns[0], "object": nouns[1]},
        )
        polled = client.post(f"/api/sessions/{session_id}/sentences/poll", json={"token": token})
        own_vote = client.post(
            f"/api/sessions/{session_id}/votes",
            json={"token": token, "statementId": accepted.json()["id"], "sentence": accepted.json()["sentence"]},
        )
        passed = client.post(f"/api/sessions/{session_id}/votes", json={"token": token})
        top = client.get(f"/api/sessions/{session_id}/top", params={"token": token})

    assert rejected.status_code == 422
    assert accepted.status_code == 200
    assert accepted.json()["sentence"] == f"{nouns[0]} licked {nouns[1]}"
    assert polled.status_code == 200
    assert own_vote.status_code == 422
    assert passed.json()["state"]["turn"] == 2
    assert top.json() == {"sentences": [], "authorsResolved": True}


def test_poll_before_submitting_is_rejected() -> None:
    with TestClient(_app()) as client:
        session_id, token = _open_session(client)
        client.post(f"/api/sessions/{session_id}/join", json={"token": token})

        response = client.post(f"/api/sessions/{session_id}/sentences/poll", json={"token": token})

    assert response.status_code == 422


def test_websocket_sends_initial_state_after_connect() -> None:
    client = TestClient(_app())
    session_id, token = _open_session(client)

    with client.websocket_connect(f"/ws/sessions/{session_id}?token={token}") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "state.full"
    assert message["state"]["turn"] == 0


def test_websocket_rejects_invalid_token() -> None:
    client = TestClient(_app())
    session_id, _ = _open_session(client)

    with pytest.raises(Exception):
        with client.websocket_connect(f"/ws/sessions/{session_id}?token=invalid"):
            pass


def test_websocket_streams_player_joined_events() -> None:
    with TestClient(_app()) as client:
        host_id, host_token = _open_session(client, "a")
        guest_id, guest_token = _open_session(client, "b")

        with client.websocket_connect(f"/ws/sessions/{host_id}?token={host_token}") as websocket:
            websocket.receive_json()
            client.post(f"/api/sessions/{host_id}/join", json={"token": host_token})
            client.post(f"/api/sessions/{guest_id}/join", json={"token": guest_token})
            message = websocket.receive_json()

    assert message["type"] == "game.event"
    assert message["event"]["kind"] == "player_joined"
    assert message["event"]["agent"]["mbox"] == "mailto:b@example.com"


def test_session_restored_from_state_keeps_watching_its_lobby() -> None:
    with TestClient(_app()) as client:
        host_id, host_token = _open_session(client, "a")
        snapshot = client.post(f"/api/sessions/{host_id}/join", json={"token": host_token}).json()["state"]
        restored = client.post("/api/sessions", json={"mbox": "a@example.com", "name": "A", "state": snapshot}).json()
        guest_id, guest_token = _open_session(client, "b")
        client.post(f"/api/sessions/{guest_id}/join", json={"token": guest_token})

        players: list[dict] = []
        for _ in range(200):
            state = client.get(f"/api/sessions/{restored['session_id']}/state", params={"token": restored["token"]})
            players = state.json()["state"]["players"]
            if len(players) == 2:
                break
            time.sleep(0.01)

    assert [player["mbox"] for player in players] == ["mailto:a@example.com", "mailto:b@example.com"]
