"""Statement log interfaces and implementations."""

from __future__ import annotations

import base64
import copy
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from cardroom.backend.config import BackendSettings
from cardroom.backend.errors import QueryError, WriteError
from cardroom.backend.models import StatementPage
from cardroom.backend.statements import VOIDED_VERB_ID, build_voiding, statement_ref_target, utc_now_iso


logger = logging.getLogger(__name__)


class StatementLog(Protocol):
    async def append(self, statement: dict[str, Any]) -> str:
        """Append one statement and return its id."""

    async def append_batch(self, statements: list[dict[str, Any]]) -> list[str]:
        """Append statements in one write and return their ids in order."""

    async def query(
        self,
        verb: str | None = None,
        registration: str | None = None,
        ascending: bool = False,
    ) -> StatementPage:
        """Return the first page of non-voided statements matching the filter."""

    async def more(self, cursor: str) -> StatementPage:
        """Continue a query from the cursor of a previous page."""

    async def void(self, statement_id: str, actor: dict[str, Any]) -> None:
        """Void a statement on behalf of the actor."""

    async def get_voided(self, statement_id: str) -> dict[str, Any] | None:
        """Return the voided statement, or None when it is not voided."""


async def collect_statements(log: StatementLog, page: StatementPage) -> list[dict[str, Any]]:
    """Follow ``more`` cursors from the first page until exhausted."""
    statements = list(page.statements)
    while page.more:
        page = await log.more(page.more)
        statements.extend(page.statements)
    return statements


async def query_all(
    log: StatementLog,
    verb: str | None = None,
    registration: str | None = None,
    ascending: bool = False,
) -> list[dict[str, Any]]:
    page = await log.query(verb=verb, registration=registration, ascending=ascending)
    return await collect_statements(log, page)


def _prepare(statement: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(statement, dict):
        raise WriteError("statement must be an object")
    verb = statement.get("verb")
    if not isinstance(verb, dict) or not isinstance(verb.get("id"), str):
        raise WriteError("statement requires a verb id")
    if not isinstance(statement.get("actor"), dict):
        raise WriteError("statement requires an actor")
    prepared = copy.deepcopy(statement)
    prepared.setdefault("id", str(uuid.uuid4()))
    prepared.setdefault("timestamp", utc_now_iso())
    prepared["stored"] = utc_now_iso()
    return prepared


def _registration(statement: dict[str, Any]) -> str | None:
    context = statement.get("context")
    if isinstance(context, dict):
        registration = context.get("registration")
        return registration if isinstance(registration, str) else None
    return None


@dataclass
class InMemoryStatementLog:
    """Process-local log with LRS semantics: atomic batches, voiding, paging."""

    page_size: int = 100

    def __post_init__(self) -> None:
        self._statements: list[dict[str, Any]] = []
        self._by_id: dict[str, dict[str, Any]] = {}
        self._voided: set[str] = set()
        self._cursors: dict[str, tuple[list[dict[str, Any]], int]] = {}

    async def append(self, statement: dict[str, Any]) -> str:
        ids = await self.append_batch([statement])
        return ids[0]

    async def append_batch(self, statements: list[dict[str, Any]]) -> list[str]:
        prepared = [_prepare(statement) for statement in statements]
        seen: set[str] = set()
        for statement in prepared:
            statement_id = statement["id"]
            if statement_id in self._by_id or statement_id in seen:
                raise WriteError(f"statement {statement_id} already exists")
            seen.add(statement_id)
            if statement["verb"]["id"] == VOIDED_VERB_ID:
                target_id = statement_ref_target(statement)
                if target_id is None or target_id not in self._by_id:
                    raise WriteError(f"cannot void unknown statement {target_id}")
                if self._by_id[target_id]["verb"]["id"] == VOIDED_VERB_ID:
                    raise WriteError("voiding statements cannot be voided")

        for statement in prepared:
            self._statements.append(statement)
            self._by_id[statement["id"]] = statement
            if statement["verb"]["id"] == VOIDED_VERB_ID:
                self._voided.add(str(statement_ref_target(statement)))
        return [statement["id"] for statement in prepared]

    async def query(
        self,
        verb: str | None = None,
        registration: str | None = None,
        ascending: bool = False,
    ) -> StatementPage:
        matches = [
            statement
            for statement in self._statements
            if statement["id"] not in self._voided
            and (verb is None or statement["verb"]["id"] == verb)
            and (registration is None or _registration(statement) == registration)
        ]
        if not ascending:
            matches.reverse()
        return self._page(matches, 0)

    async def more(self, cursor: str) -> StatementPage:
        pending = self._cursors.pop(cursor, None)
        if pending is None:
            raise QueryError(f"unknown cursor {cursor}")
        matches, offset = pending
        return self._page(matches, offset)

    async def void(self, statement_id: str, actor: dict[str, Any]) -> None:
        if statement_id in self._voided:
            return
        await self.append(build_voiding(actor, statement_id))

    async def get_voided(self, statement_id: str) -> dict[str, Any] | None:
        if statement_id not in self._voided:
            return None
        return copy.deepcopy(self._by_id[statement_id])

    def _page(self, matches: list[dict[str, Any]], offset: int) -> StatementPage:
        end = offset + self.page_size
        more: str | None = None
        if end < len(matches):
            more = str(uuid.uuid4())
            self._cursors[more] = (matches, end)
        return StatementPage(statements=copy.deepcopy(matches[offset:end]), more=more)


def _encode_cursor(payload: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def _decode_cursor(cursor: str) -> dict[str, Any]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (ValueError, UnicodeError) as exc:
        raise QueryError("malformed cursor", exc) from exc
    if not isinstance(payload, dict):
        raise QueryError("malformed cursor")
    return payload


@dataclass
class PostgresStatementLog:
    database_url: str
    page_size: int = 100

    async def _connect(self) -> Any:
        import psycopg

        return await psycopg.AsyncConnection.connect(self.database_url)

    async def append(self, statement: dict[str, Any]) -> str:
        ids = await self.append_batch([statement])
        return ids[0]

    async def append_batch(self, statements: list[dict[str, Any]]) -> list[str]:
        prepared = [_prepare(statement) for statement in statements]
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cur:
                    for statement in prepared:
                        await cur.execute(
                            """
                            INSERT INTO statements (id, verb, registration, voided, stored_at, payload)
                            VALUES (%s, %s, %s, FALSE, now(), %s::jsonb)
                            """,
                            (
                                statement["id"],
                                statement["verb"]["id"],
                                _registration(statement),
                                json.dumps(statement),
                            ),
                        )
                        if statement["verb"]["id"] == VOIDED_VERB_ID:
                            await cur.execute(
                                "UPDATE statements SET voided = TRUE WHERE id = %s",
                                (statement_ref_target(statement),),
                            )
                await conn.commit()
        except WriteError:
            raise
        except Exception as exc:
            logger.error("Failed to append %d statement(s): %s", len(prepared), exc)
            raise WriteError("cannot append statements", exc) from exc
        return [statement["id"] for statement in prepared]

    async def query(
        self,
        verb: str | None = None,
        registration: str | None = None,
        ascending: bool = False,
    ) -> StatementPage:
        return await self._fetch({"verb": verb, "registration": registration, "ascending": ascending, "after": None})

    async def more(self, cursor: str) -> StatementPage:
        return await self._fetch(_decode_cursor(cursor))

    async def _fetch(self, params: dict[str, Any]) -> StatementPage:
        ascending = bool(params.get("ascending"))
        clauses = ["voided = FALSE"]
        values: list[Any] = []
        if params.get("verb") is not None:
            clauses.append("verb = %s")
            values.append(params["verb"])
        if params.get("registration") is not None:
            clauses.append("registration = %s")
            values.append(params["registration"])
        if params.get("after") is not None:
            clauses.append("seq > %s" if ascending else "seq < %s")
            values.append(int(params["after"]))
        order = "ASC" if ascending else "DESC"
        sql = (
            f"SELECT seq, payload FROM statements WHERE {' AND '.join(clauses)} "
            f"ORDER BY seq {order} LIMIT %s"
        )
        values.append(self.page_size + 1)
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql, tuple(values))
                    rows = await cur.fetchall()
        except Exception as exc:
            logger.error("Statement query failed: %s", exc)
            raise QueryError("cannot query statements", exc) from exc

        page_rows = rows[: self.page_size]
        statements = [payload if isinstance(payload, dict) else json.loads(payload) for _, payload in page_rows]
        more: str | None = None
        if len(rows) > self.page_size:
            more = _encode_cursor({**params, "after": page_rows[-1][0]})
        return StatementPage(statements=statements, more=more)

    async def void(self, statement_id: str, actor: dict[str, Any]) -> None:
        await self.append(build_voiding(actor, statement_id))

    async def get_voided(self, statement_id: str) -> dict[str, Any] | None:
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT payload FROM statements WHERE id = %s AND voided = TRUE",
                        (statement_id,),
                    )
                    row = await cur.fetchone()
        except Exception as exc:
            raise QueryError(f"cannot look up voided statement {statement_id}", exc) from exc
        if row is None:
            return None
        payload = row[0]
        return payload if isinstance(payload, dict) else json.loads(payload)


def create_log(settings: BackendSettings) -> StatementLog:
    if settings.lrs_endpoint:
        from cardroom.backend.lrs import LrsStatementLog

        return LrsStatementLog(
            endpoint=settings.lrs_endpoint,
            username=settings.lrs_username,
            password=settings.lrs_password,
        )
    if settings.database_url:
        return PostgresStatementLog(database_url=settings.database_url, page_size=settings.page_size)
    return InMemoryStatementLog(page_size=settings.page_size)
