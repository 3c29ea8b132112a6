"""Remote store access over the PostgREST HTTP interface."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from boardsync._constants import REST_PREFIX, USER_AGENT
from boardsync._redact import redact_for_log
from boardsync.config import SyncConfig
from boardsync.exceptions import RemoteNotConfiguredError, RemoteStoreError

_logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Structural "table" interface used by the sync layer.

    Every method raises :class:`RemoteStoreError` on failure. Having a
    protocol here makes it easy to pass test doubles while keeping the
    production implementation (`RestRemoteStore`) concrete.
    """

    async def select_all(self, table: str) -> list[dict[str, Any]]: ...

    async def select_one(self, table: str, record_id: str) -> dict[str, Any] | None: ...

    async def upsert(self, table: str, record: Mapping[str, Any]) -> None: ...

    async def delete(self, table: str, record_id: str) -> None: ...

    async def count(self, table: str) -> int: ...


def _parse_content_range(value: str | None) -> int | None:
    """Extract the total from a ``Content-Range: 0-24/3573`` header."""
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class RestRemoteStore:
    """aiohttp client for a PostgREST endpoint (``{base_url}/rest/v1``)."""

    def __init__(self, config: SyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._config.api_key,
            "authorization": f"Bearer {self._config.api_key}",
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        if prefer:
            headers["prefer"] = prefer
        return headers

    def _url(self, table: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{REST_PREFIX}/{quote(table, safe='')}"

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> tuple[int, Mapping[str, str], str]:
        if not self._config.remote_enabled:
            raise RemoteNotConfiguredError("remote store is not configured", table=table)

        url = self._url(table)
        headers = self._headers(prefer)
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None

        if self._config.api_trace_enabled:
            _logger.debug(
                "%s %s params=%s headers=%s body=%s",
                method,
                url,
                dict(params or {}),
                redact_for_log(headers),
                redact_for_log(payload),
            )
        else:
            _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(method, url, params=params, data=body, headers=headers) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    raise RemoteStoreError(
                        f"HTTP {resp.status} from {table}: {text[:200]}",
                        status_code=resp.status,
                        table=table,
                    )
                return resp.status, resp.headers, text
        except RemoteStoreError:
            raise
        except aiohttp.ClientError as exc:
            raise RemoteStoreError(f"{method} {table} failed: {exc}", table=table) from exc

    @staticmethod
    def _decode_rows(table: str, text: str) -> list[dict[str, Any]]:
        if not text.strip():
            return []
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteStoreError(f"Invalid JSON from {table}: {text[:200]}", table=table) from exc
        if not isinstance(body, list):
            raise RemoteStoreError(f"Expected a list of rows from {table}", table=table)
        return [row for row in body if isinstance(row, dict)]

    async def select_all(self, table: str) -> list[dict[str, Any]]:
        _, _, text = await self._request("GET", table, params={"select": "*"})
        return self._decode_rows(table, text)

    async def select_one(self, table: str, record_id: str) -> dict[str, Any] | None:
        _, _, text = await self._request("GET", table, params={"select": "*", "id": f"eq.{record_id}"})
        rows = self._decode_rows(table, text)
        return rows[0] if rows else None

    async def upsert(self, table: str, record: Mapping[str, Any]) -> None:
        await self._request(
            "POST",
            table,
            payload=dict(record),
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def delete(self, table: str, record_id: str) -> None:
        await self._request("DELETE", table, params={"id": f"eq.{record_id}"}, prefer="return=minimal")

    async def count(self, table: str) -> int:
        _, headers, _ = await self._request("HEAD", table, params={"select": "*"}, prefer="count=exact")
        total = _parse_content_range(headers.get("content-range"))
        if total is None:
            raise RemoteStoreError(f"Missing row count from {table}", table=table)
        return total
