"""FastAPI endpoints driving one card game per player session, plus websocket notifications."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cardroom.backend.config import BackendSettings, configure_logging, load_settings
from cardroom.backend.errors import CardRoomError, JoinError, QueryError, SubmissionError, WriteError
from cardroom.backend.game import CardGame
from cardroom.backend.identity import generate_token, hash_token, verify_token
from cardroom.backend.models import Agent
from cardroom.backend.state import GameState
from cardroom.backend.store import StatementLog, create_log


logger = logging.getLogger(__name__)


class CreateSessionRequest(BaseModel):
    mbox: str = Field(min_length=1, max_length=320)
    name: str | None = Field(default=None, max_length=200)
    state: GameState | None = None


class CreateSessionResponse(BaseModel):
    session_id: str
    token: str


class TokenEnvelope(BaseModel):
    token: str = Field(min_length=1)


class SentenceEnvelope(TokenEnvelope):
    subject: str = Field(min_length=1)
    object: str = Field(min_length=1)


class VoteEnvelope(TokenEnvelope):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    statement_id: str | None = None
    sentence: str | None = None


class StateResponse(BaseModel):
    state: dict[str, Any]


@dataclass
class PlayerSession:
    session_id: str
    token_hash: str
    game: CardGame


class SessionWebSocketHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[session_id].add(websocket)

    def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        connections = self._connections.get(session_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(session_id, None)

    async def send_state(self, websocket: WebSocket, state: dict[str, Any]) -> None:
        await websocket.send_json({"type": "state.full", "state": state})

    async def broadcast_event(self, session_id: str, event: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(session_id, set())):
            try:
                await websocket.send_json({"type": "game.event", "event": event})
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(session_id=session_id, websocket=websocket)


_ERROR_STATUS: list[tuple[type[CardRoomError], int]] = [
    (JoinError, 409),
    (SubmissionError, 422),
    (QueryError, 502),
    (WriteError, 502),
]


def _status_for(exc: CardRoomError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_app(log: StatementLog | None = None, settings: BackendSettings | None = None) -> FastAPI:
    backend_settings = settings if settings is not None else load_settings()
    statement_log = log if log is not None else create_log(backend_settings)
    sessions: dict[str, PlayerSession] = {}
    websocket_hub = SessionWebSocketHub()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        for session in list(sessions.values()):
            await session.game.close()

    app = FastAPI(title="Card Room API", version="0.1.0", lifespan=lifespan)
    app.state.websocket_hub = websocket_hub
    app.state.sessions = sessions

    @app.exception_handler(CardRoomError)
    async def card_room_error(_: Request, exc: CardRoomError) -> JSONResponse:
        status_code = _status_for(exc)
        logger.info("Request failed with %s (%d): %s", type(exc).__name__, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    def get_log() -> StatementLog:
        return statement_log

    def get_session(session_id: str, token: str) -> PlayerSession:
        session = sessions.get(session_id)
        if session is None or not verify_token(token, session.token_hash, backend_settings.server_salt):
            raise HTTPException(status_code=404, detail="Session not found or token invalid")
        return session

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    async def create_session(
        payload: CreateSessionRequest,
        local_log: StatementLog = Depends(get_log),
    ) -> CreateSessionResponse:
        session_id = str(uuid.uuid4())
        token = generate_token()

        async def publish(event: dict[str, Any]) -> None:
            await websocket_hub.broadcast_event(session_id=session_id, event=event)

        game = CardGame(
            local_log,
            Agent.create(payload.mbox, payload.name),
            payload.state,
            settings=backend_settings,
            listener=publish,
        )
        if payload.state is not None:
            await game.resume()
        sessions[session_id] = PlayerSession(
            session_id=session_id,
            token_hash=hash_token(token, backend_settings.server_salt),
            game=game,
        )
        logger.info("Opened session %s for %s", session_id, game.session.local.mbox)
        return CreateSessionResponse(session_id=session_id, token=token)

    @app.post("/api/sessions/{session_id}/join")
    async def join(session_id: str, payload: TokenEnvelope) -> dict[str, Any]:
        session = get_session(session_id, payload.token)
        players = await session.game.setup_game()
        return {
            "players": [agent.to_dict() for agent in players or []],
            "state": session.game.get_state().to_wire(),
        }

    @app.post("/api/sessions/{session_id}/start", response_model=StateResponse)
    async def start(session_id: str, payload: TokenEnvelope) -> StateResponse:
        session = get_session(session_id, payload.token)
        await session.game.start_game()
        return StateResponse(state=session.game.get_state().to_wire())

    @app.get("/api/sessions/{session_id}/cards")
    def cards(session_id: str, token: str = Query(min_length=1)) -> dict[str, Any]:
        session = get_session(session_id, token)
        return {"cards": session.game.get_question_cards()}

    @app.post("/api/sessions/{session_id}/sentences")
    async def submit_sentence(session_id: str, payload: SentenceEnvelope) -> dict[str, Any]:
        session = get_session(session_id, payload.token)
        submitted = await session.game.submit_sentence(payload.subject, payload.object)
        if submitted is None:
            raise HTTPException(status_code=422, detail="Sentence not recorded")
        return {"id": submitted.statement_id, "sentence": submitted.text, "verb": submitted.verb}

    @app.post("/api/sessions/{session_id}/sentences/poll", response_model=StateResponse)
    async def poll_sentences(session_id: str, payload: TokenEnvelope) -> StateResponse:
        session = get_session(session_id, payload.token)
        await session.game.get_submitted_sentences()
        return StateResponse(state=session.game.get_state().to_wire())

    @app.post("/api/sessions/{session_id}/votes", response_model=StateResponse)
    async def submit_vote(session_id: str, payload: VoteEnvelope) -> StateResponse:
        session = get_session(session_id, payload.token)
        await session.game.submit_vote(payload.statement_id, payload.sentence)
        return StateResponse(state=session.game.get_state().to_wire())

    @app.get("/api/sessions/{session_id}/top")
    async def top_sentences(session_id: str, token: str = Query(min_length=1)) -> dict[str, Any]:
        session = get_session(session_id, token)
        top = await session.game.get_top_sentences()
        return {
            "sentences": [entry.to_dict() for entry in top.entries],
            "authorsResolved": top.authors_resolved,
        }

    @app.get("/api/sessions/{session_id}/state", response_model=StateResponse)
    def get_state(session_id: str, token: str = Query(min_length=1)) -> StateResponse:
        session = get_session(session_id, token)
        return StateResponse(state=session.game.get_state().to_wire())

    @app.websocket("/ws/sessions/{session_id}")
    async def session_ws(websocket: WebSocket, session_id: str) -> None:
        token = websocket.query_params.get("token")
        if token is None or token == "":
            await websocket.close(code=1008)
            return
        session = sessions.get(session_id)
        if session is None or not verify_token(token, session.token_hash, backend_settings.server_salt):
            await websocket.close(code=1008)
            return

        await websocket_hub.connect(session_id=session_id, websocket=websocket)
        await websocket_hub.send_state(websocket=websocket, state=session.game.get_state().to_wire())

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(session_id=session_id, websocket=websocket)

    return app


app = create_app()


def main() -> None:
    settings = load_settings()
    configure_logging(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
