"""Room discovery, seat claiming and membership polling over the statement log.

A room exists only as statements: one ``createdRoom`` statement plus one
``joinedRoom`` statement per player, all sharing a registration. A room is
open while its creation statement is not voided. Seats are decided by the
ascending order of the join statements, never by client-side counting.
"""

from __future__ import annotations

import asyncio
import logging

from cardroom.backend import events
from cardroom.backend.errors import JoinError, QueryError, StatementFormatError, WriteError
from cardroom.backend.events import Listener
from cardroom.backend.identity import new_registration
from cardroom.backend.models import ROOM_CAPACITY, Agent, Room
from cardroom.backend.scheduler import CancellationToken, PollingTimer
from cardroom.backend.session import GameSession
from cardroom.backend.statements import RoomCreated, RoomJoined, StatementCodec, room_id_for
from cardroom.backend.store import StatementLog, query_all


logger = logging.getLogger(__name__)

RANK_LOOKUP_ATTEMPTS = 3


class RoomCoordinator:
    def __init__(
        self,
        log: StatementLog,
        codec: StatementCodec,
        session: GameSession,
        *,
        poll_interval: float = 1.0,
        max_join_attempts: int = 6,
        rank_lookup_attempts: int = RANK_LOOKUP_ATTEMPTS,
        listener: Listener | None = None,
    ) -> None:
        self.log = log
        self.codec = codec
        self.session = session
        self.poll_interval = poll_interval
        self.max_join_attempts = max_join_attempts
        self.rank_lookup_attempts = rank_lookup_attempts
        self.listener = listener
        self._members_timer = PollingTimer("members", poll_interval)

    @property
    def polling_players(self) -> bool:
        return self._members_timer.active

    async def join(self) -> list[Agent]:
        """Find or create a room and take a seat in it.

        Raises JoinError once ``max_join_attempts`` searches ended with a full
        room, or on any read or write failure during the negotiation.
        """
        self.stop_polling_players()
        self.session.clear_registration()
        self.session.submitted.clear()
        try:
            attempts = 0
            while True:
                attempts += 1
                if await self._search_and_claim():
                    break
                if attempts >= self.max_join_attempts:
                    raise JoinError("We were unable to create or join a game")
                logger.info("Room was full, searching again (attempt %d of %d)", attempts + 1, self.max_join_attempts)
                self.session.clear_registration()
            return await self.end_join()
        except JoinError:
            self.session.clear_registration()
            raise
        except (QueryError, WriteError) as exc:
            self.session.clear_registration()
            raise JoinError("Error negotiating a room", exc) from exc

    async def find_open_rooms(self) -> list[Room]:
        """Open rooms, oldest first."""
        statements = await query_all(self.log, verb=self.codec.verbs.created, ascending=True)
        rooms: list[Room] = []
        for raw in statements:
            try:
                created = self.codec.parse_as(raw, RoomCreated)
            except StatementFormatError as exc:
                logger.warning("Skipping malformed room statement: %s", exc)
                continue
            rooms.append(
                Room(
                    room_id=created.room_id,
                    registration=created.registration,
                    create_statement_id=created.statement_id,
                )
            )
        return rooms

    async def find_current_room(self) -> Room | None:
        """Look up the open room of the current registration, e.g. after a restore."""
        if self.session.registration is None:
            return None
        statements = await query_all(self.log, verb=self.codec.verbs.created, registration=self.session.registration)
        for raw in statements:
            try:
                created = self.codec.parse_as(raw, RoomCreated)
            except StatementFormatError as exc:
                logger.warning("Skipping malformed room statement: %s", exc)
                continue
            self.session.room = Room(
                room_id=created.room_id,
                registration=created.registration,
                create_statement_id=created.statement_id,
            )
            return self.session.room
        return None

    async def create_room(self) -> Room:
        registration = new_registration()
        local = self.session.local
        batch = [self.codec.room_joined(local, registration), self.codec.room_created(local, registration)]
        try:
            joined_id, created_id = await self.log.append_batch(batch)
        except WriteError as exc:
            raise JoinError("Cannot create a new game room", exc) from exc

        room = Room(
            room_id=room_id_for(registration),
            registration=registration,
            create_statement_id=created_id,
            creator_join_statement_id=joined_id,
        )
        self._use_room(room)
        self.session.joined_statement_id = joined_id
        self.session.player_number = 1
        logger.info("Created room %s", registration)
        return room

    async def joined_statements(self) -> list[RoomJoined]:
        """Join statements of the current registration in ascending order."""
        statements = await query_all(
            self.log,
            verb=self.codec.verbs.joined,
            registration=self.session.registration,
            ascending=True,
        )
        joined: list[RoomJoined] = []
        for raw in statements:
            try:
                joined.append(self.codec.parse_as(raw, RoomJoined))
            except StatementFormatError as exc:
                logger.warning("Skipping malformed join statement: %s", exc)
        return joined

    async def close_room(self) -> None:
        room = self.session.room
        if room is None:
            return
        await self.log.void(room.create_statement_id, self.session.local.to_wire())
        logger.info("Closed room %s", room.registration)

    async def check_and_close_room(self) -> None:
        """Void the creation statement unless it is already voided."""
        room = self.session.room
        if room is None:
            room = await self.find_current_room()
        if room is None:
            return
        if await self.log.get_voided(room.create_statement_id) is None:
            await self.close_room()

    async def end_join(self) -> list[Agent]:
        joined = await self.joined_statements()
        for statement in joined:
            self.session.players.add(statement.actor)
        logger.info(
            "Joined room %s as player %d with %d player(s)",
            self.session.registration,
            self.session.player_number,
            len(self.session.players),
        )
        self.start_polling_players()
        return self.session.players.agents

    def start_polling_players(self) -> None:
        if self.session.registration is None or self.session.players.is_full:
            return
        self._members_timer.start(self.poll_members)

    def stop_polling_players(self) -> None:
        self._members_timer.stop()

    async def poll_members(self, token: CancellationToken | None = None) -> None:
        """One membership round: seat every new player, then announce them.

        Listeners may leave the room or restart polling while being notified;
        the remaining announcements of this round are dropped once the token
        is cancelled.
        """
        if self.session.registration is None:
            self.stop_polling_players()
            return
        players = self.session.players
        try:
            joined = await self.joined_statements()
        except QueryError as exc:
            logger.warning("Membership poll failed, retrying next tick: %s", exc)
            return
        if token is not None and token.cancelled:
            return

        announcements: list[dict] = []
        for statement in joined:
            if players.is_full:
                break
            if players.add(statement.actor):
                announcements.append(events.player_joined(statement.actor, players.agents))

        for event in announcements:
            if token is not None and token.cancelled:
                return
            await events.emit(self.listener, event)
        if players.is_full and (token is None or not token.cancelled):
            self.stop_polling_players()

    async def wait_stopped(self) -> None:
        await self._members_timer.wait_stopped()

    def _use_room(self, room: Room) -> None:
        self.session.room = room
        self.session.registration = room.registration

    async def claim_spot(self, room: Room) -> bool | None:
        """Take a seat in an open room.

        Returns True once seated, False when the room is full and None when
        the local player already joined it.
        """
        self._use_room(room)
        joined = await self.joined_statements()
        if len(joined) > ROOM_CAPACITY - 1:
            await self._close_stale_room(room)
            return False
        if any(statement.actor.agent_id == self.session.local.agent_id for statement in joined):
            return None
        if len(joined) == ROOM_CAPACITY - 1:
            await self.close_room()
            if len(await self.joined_statements()) > ROOM_CAPACITY - 1:
                return False
        rank = await self._write_join()
        if rank > ROOM_CAPACITY:
            logger.warning("Room %s is over-subscribed, rank %d gets no seat", room.registration, rank)
            return False
        if rank == ROOM_CAPACITY:
            await self.check_and_close_room()
        return True

    async def _search_and_claim(self) -> bool:
        """Take a seat in the oldest open room, or create one.

        Returns False when the chosen room turned out to be full.
        """
        for room in await self.find_open_rooms():
            claimed = await self.claim_spot(room)
            if claimed is not None:
                return claimed

        self.session.clear_registration()
        await self.create_room()
        return True

    async def _write_join(self) -> int:
        statement = self.codec.room_joined(self.session.local, str(self.session.registration))
        try:
            joined_id = await self.log.append(statement)
        except WriteError as exc:
            raise JoinError("Error joining room", exc) from exc
        self.session.joined_statement_id = joined_id
        self.session.player_number = await self._rank_of(joined_id)
        return self.session.player_number

    async def _rank_of(self, joined_id: str) -> int:
        for attempt in range(self.rank_lookup_attempts):
            joined = await self.joined_statements()
            for index, statement in enumerate(joined):
                if statement.statement_id == joined_id:
                    return index + 1
            logger.info("Join statement %s not visible yet (lookup %d)", joined_id, attempt + 1)
            await asyncio.sleep(self.poll_interval)
        raise JoinError(f"Join statement {joined_id} never appeared in the room")

    async def _close_stale_room(self, room: Room) -> None:
        try:
            await self.close_room()
        except WriteError as exc:
            logger.warning("Could not close full room %s: %s", room.registration, exc)
