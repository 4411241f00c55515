"""Tabular data access used by the patient resolver.

The resolver only needs "fetch the best matching row" and "fetch all matching
rows" against a handful of tables. Two backends are provided: an in-memory one
for tests and local demos, and a PostgREST client (the REST layer of the
hosted Supabase database the lab front-end talks to).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Union

import httpx

from ..errors import DataAccessError

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, None]
Row = dict[str, Scalar]


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = True


class TabularDataAccess(ABC):
    """Read-only view over remote tables.

    Implementations raise DataAccessError for infrastructure problems and
    return ``None`` / ``[]`` when nothing matches.
    """

    @abstractmethod
    async def query_one(
        self,
        table: str,
        filters: Mapping[str, Scalar],
        order_by: OrderBy | None = None,
    ) -> Row | None: ...

    @abstractmethod
    async def query_many(self, table: str, filters: Mapping[str, Scalar]) -> list[Row]: ...


class InMemoryDataAccess(TabularDataAccess):
    """Tables held as lists of dicts. Unknown tables behave like a missing relation."""

    def __init__(self, tables: Mapping[str, list[Row]] | None = None) -> None:
        self.tables: dict[str, list[Row]] = {k: list(v) for k, v in (tables or {}).items()}
        self.calls: list[tuple[str, dict[str, Scalar]]] = []

    def _rows(self, table: str) -> list[Row]:
        if table not in self.tables:
            raise DataAccessError(f'relation "{table}" does not exist', table=table, status=404)
        return self.tables[table]

    @staticmethod
    def _matches(row: Row, filters: Mapping[str, Scalar]) -> bool:
        # PostgREST eq filters compare as text
        return all(str(row.get(k)) == str(v) for k, v in filters.items())

    async def query_many(self, table: str, filters: Mapping[str, Scalar]) -> list[Row]:
        self.calls.append((table, dict(filters)))
        return [dict(r) for r in self._rows(table) if self._matches(r, filters)]

    async def query_one(
        self,
        table: str,
        filters: Mapping[str, Scalar],
        order_by: OrderBy | None = None,
    ) -> Row | None:
        rows = await self.query_many(table, filters)
        if not rows:
            return None
        if order_by is not None:
            present = [r for r in rows if r.get(order_by.column) is not None]
            absent = [r for r in rows if r.get(order_by.column) is None]
            present.sort(key=lambda r: r[order_by.column], reverse=order_by.descending)
            # Postgres puts NULLs first on DESC, last on ASC
            rows = absent + present if order_by.descending else present + absent
        return rows[0]


def _error_message(resp: httpx.Response) -> str:
    """Pull the PostgREST error message out of a response, falling back to text."""
    try:
        body = resp.json()
    except (json.JSONDecodeError, ValueError):
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("hint") or body)
    return json.dumps(body)


class RestDataAccess(TabularDataAccess):
    """PostgREST client (``{base_url}/rest/v1/{table}``) over httpx.

    Pass ``client`` to reuse an existing ``httpx.AsyncClient`` (tests inject one
    backed by ``httpx.MockTransport``); otherwise one is created and closed by
    ``aclose()`` or the async context manager.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_s)
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }

    async def __aenter__(self) -> "RestDataAccess":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    @staticmethod
    def _params(
        filters: Mapping[str, Scalar],
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> dict[str, str]:
        params: dict[str, str] = {"select": "*"}
        for column, value in filters.items():
            params[column] = "is.null" if value is None else f"eq.{value}"
        if order_by is not None:
            params["order"] = f"{order_by.column}.{'desc' if order_by.descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        return params

    async def _get(self, table: str, params: dict[str, str]) -> list[Row]:
        try:
            resp = await self.client.get(self._table_url(table), params=params, headers=self.headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = _error_message(e.response)
            logger.warning({"event": "data_query", "table": table, "ok": False, "status": status})
            raise DataAccessError(message, table=table, status=status) from e
        except httpx.RequestError as e:
            message = str(e) or type(e).__name__
            logger.warning({"event": "data_query", "table": table, "ok": False, "error": type(e).__name__})
            raise DataAccessError(message, table=table) from e

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise DataAccessError("Response was not JSON", table=table, status=resp.status_code) from e
        if not isinstance(data, list):
            raise DataAccessError("Expected a JSON array of rows", table=table, status=resp.status_code)
        return [r for r in data if isinstance(r, dict)]

    async def query_many(self, table: str, filters: Mapping[str, Scalar]) -> list[Row]:
        return await self._get(table, self._params(filters))

    async def query_one(
        self,
        table: str,
        filters: Mapping[str, Scalar],
        order_by: OrderBy | None = None,
    ) -> Row | None:
        rows = await self._get(table, self._params(filters, order_by=order_by, limit=1))
        return rows[0] if rows else None

    async def ping(self) -> bool:
        """Cheap reachability probe against the REST root."""
        try:
            resp = await self.client.get(f"{self.base_url}/rest/v1/", headers=self.headers)
        except httpx.RequestError:
            return False
        return resp.status_code < 500
