from cardroom.backend.state import GameState, SentenceSnapshot


def test_default_state_is_not_seated() -> None:
    state = GameState()

    assert state.turn == 0
    assert state.hand is None
    assert state.registration_id is None
    assert state.player_number == 0
    assert state.submitted_sentences == {}
    assert state.players == []


def test_game_state_serializes_with_camel_case_keys() -> None:
    state = GameState(
        turn=2,
        hand=["crippling debt"],
        registration_id="reg-1",
        player_number=3,
        submitted_sentences={"licked": SentenceSnapshot(id="s-1", sentence="a licked b")},
    )

    wire = state.to_wire()

    assert wire["registrationId"] == "reg-1"
    assert wire["playerNumber"] == 3
    assert wire["submittedSentences"]["licked"] == {"id": "s-1", "sentence": "a licked b"}


def test_game_state_accepts_its_own_wire_form() -> None:
    wire = {
        "turn": 4,
        "hand": ["natural selection"],
        "registrationId": "reg-2",
        "playerNumber": 2,
        "submittedSentences": {"hurt": {"id": "s-9", "sentence": "x hurt y"}},
        "players": [{"mbox": "mailto:a@example.com", "name": "A", "icon": None}],
    }

    state = GameState.model_validate(wire)

    assert state.turn == 4
    assert state.registration_id == "reg-2"
    assert state.submitted_sentences["hurt"].id == "s-9"
    assert state.players[0].mbox == "mailto:a@example.com"
    assert state.to_wire() == wire
