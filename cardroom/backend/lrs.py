"""xAPI Learning Record Store client implementing the statement log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from cardroom.backend.errors import QueryError, WriteError
from cardroom.backend.models import StatementPage
from cardroom.backend.statements import build_voiding


logger = logging.getLogger(__name__)

XAPI_VERSION = "1.0.3"


@dataclass
class LrsStatementLog:
    endpoint: str
    username: str | None = None
    password: str | None = None
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    def _client(self) -> httpx.AsyncClient:
        auth = None
        if self.username is not None:
            auth = httpx.BasicAuth(self.username, self.password or "")
        return httpx.AsyncClient(
            auth=auth,
            headers={"X-Experience-API-Version": XAPI_VERSION},
            timeout=self.timeout,
            transport=self.transport,
        )

    @property
    def _statements_url(self) -> str:
        return urljoin(self.endpoint.rstrip("/") + "/", "statements")

    async def append(self, statement: dict[str, Any]) -> str:
        ids = await self.append_batch([statement])
        return ids[0]

    async def append_batch(self, statements: list[dict[str, Any]]) -> list[str]:
        try:
            async with self._client() as client:
                response = await client.post(self._statements_url, json=statements)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("LRS rejected %d statement(s): %s", len(statements), exc)
            raise WriteError("cannot send statements", exc) from exc
        ids = response.json()
        if not isinstance(ids, list) or len(ids) != len(statements):
            raise WriteError(f"unexpected LRS response {ids!r}")
        return [str(statement_id) for statement_id in ids]

    async def query(
        self,
        verb: str | None = None,
        registration: str | None = None,
        ascending: bool = False,
    ) -> StatementPage:
        params: dict[str, str] = {"ascending": "true" if ascending else "false"}
        if verb is not None:
            params["verb"] = verb
        if registration is not None:
            params["registration"] = registration
        return await self._get_page(self._statements_url, params)

    async def more(self, cursor: str) -> StatementPage:
        return await self._get_page(urljoin(self.endpoint, cursor), None)

    async def _get_page(self, url: str, params: dict[str, str] | None) -> StatementPage:
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("LRS query failed: %s", exc)
            raise QueryError("cannot query statements", exc) from exc
        payload = response.json()
        statements = payload.get("statements", []) if isinstance(payload, dict) else []
        more = payload.get("more") if isinstance(payload, dict) else None
        return StatementPage(statements=list(statements), more=more or None)

    async def void(self, statement_id: str, actor: dict[str, Any]) -> None:
        await self.append(build_voiding(actor, statement_id))

    async def get_voided(self, statement_id: str) -> dict[str, Any] | None:
        try:
            async with self._client() as client:
                response = await client.get(self._statements_url, params={"voidedStatementId": statement_id})
                if response.status_code == 404:
                    return None
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise QueryError(f"cannot look up voided statement {statement_id}", exc) from exc
        return response.json()
