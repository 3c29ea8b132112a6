from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest

from boardsync.config import SyncConfig
from boardsync.exceptions import RemoteNotConfiguredError, RemoteStoreError
from boardsync.remote import RestRemoteStore, _parse_content_range

API_KEY = "eyJhbGciOiJIUzI1NiJ9.test.signature"


@dataclass
class _FakeResponse:
    status: int = 200
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    async def text(self) -> str:
        return self.body


@dataclass
class _FakeSession:
    """Records requests and answers them from a queue of canned responses."""

    responses: list[_FakeResponse | Exception] = field(default_factory=list)
    requests: list[dict[str, Any]] = field(default_factory=list)

    @contextlib.asynccontextmanager
    async def request(self, method: str, url: str, **kwargs: Any) -> AsyncIterator[_FakeResponse]:
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0) if self.responses else _FakeResponse()
        if isinstance(response, Exception):
            raise response
        yield response


def _store(session: _FakeSession, **config: Any) -> RestRemoteStore:
    cfg = SyncConfig(base_url="https://project.supabase.co/", api_key=API_KEY, **config)
    return RestRemoteStore(cfg, session)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_select_all_sends_auth_headers_and_decodes_rows() -> None:
    session = _FakeSession([_FakeResponse(body=json.dumps([{"id": "a"}, "junk", {"id": "b"}]))])

    rows = await _store(session).select_all("billboards")

    assert rows == [{"id": "a"}, {"id": "b"}]
    [request] = session.requests
    assert request["method"] == "GET"
    assert request["url"] == "https://project.supabase.co/rest/v1/billboards"
    assert request["params"] == {"select": "*"}
    assert request["headers"]["apikey"] == API_KEY
    assert request["headers"]["authorization"] == f"Bearer {API_KEY}"


@pytest.mark.asyncio
async def test_upsert_merges_duplicates() -> None:
    session = _FakeSession([_FakeResponse(status=201)])

    await _store(session).upsert("clients", {"id": "client-1", "companyName": "Acme"})

    [request] = session.requests
    assert request["method"] == "POST"
    assert request["headers"]["prefer"] == "resolution=merge-duplicates,return=minimal"
    assert json.loads(request["data"]) == {"id": "client-1", "companyName": "Acme"}


@pytest.mark.asyncio
async def test_delete_filters_by_id() -> None:
    session = _FakeSession([_FakeResponse(status=204)])

    await _store(session).delete("tasks", "task-1")

    assert session.requests[0]["method"] == "DELETE"
    assert session.requests[0]["params"] == {"id": "eq.task-1"}


@pytest.mark.asyncio
async def test_select_one_returns_none_when_missing() -> None:
    session = _FakeSession([_FakeResponse(body="[]")])

    assert await _store(session).select_one("company_profile", "profile_v1") is None
    assert session.requests[0]["params"] == {"select": "*", "id": "eq.profile_v1"}


@pytest.mark.asyncio
async def test_count_reads_content_range() -> None:
    session = _FakeSession([_FakeResponse(headers={"content-range": "0-24/3573"})])

    assert await _store(session).count("invoices") == 3573
    assert session.requests[0]["method"] == "HEAD"
    assert session.requests[0]["headers"]["prefer"] == "count=exact"


@pytest.mark.asyncio
async def test_http_error_raises_with_status() -> None:
    session = _FakeSession([_FakeResponse(status=409, body='{"message":"conflict"}')])

    with pytest.raises(RemoteStoreError) as excinfo:
        await _store(session).upsert("clients", {"id": "client-1"})

    assert excinfo.value.status_code == 409
    assert excinfo.value.table == "clients"


@pytest.mark.asyncio
async def test_transport_error_is_wrapped() -> None:
    session = _FakeSession([aiohttp.ClientConnectionError("offline")])

    with pytest.raises(RemoteStoreError, match="offline"):
        await _store(session).select_all("billboards")


@pytest.mark.asyncio
async def test_non_list_body_is_rejected() -> None:
    session = _FakeSession([_FakeResponse(body='{"id": "a"}')])

    with pytest.raises(RemoteStoreError):
        await _store(session).select_all("billboards")


@pytest.mark.asyncio
async def test_unconfigured_remote_never_sends() -> None:
    session = _FakeSession()
    store = RestRemoteStore(SyncConfig(), session)  # type: ignore[arg-type]

    with pytest.raises(RemoteNotConfiguredError):
        await store.select_all("billboards")
    assert session.requests == []


@pytest.mark.asyncio
async def test_trace_logging_redacts_credentials(caplog: pytest.LogCaptureFixture) -> None:
    session = _FakeSession([_FakeResponse(body="[]")])

    with caplog.at_level(logging.DEBUG, logger="boardsync.remote"):
        await _store(session, api_trace_enabled=True).select_all("billboards")

    assert "billboards" in caplog.text
    assert API_KEY not in caplog.text


@pytest.mark.parametrize(
    ("header", "expected"),
    [("0-24/3573", 3573), ("*/0", 0), ("0-9/*", None), (None, None), ("garbage", None)],
)
def test_parse_content_range(header: str | None, expected: int | None) -> None:
    assert _parse_content_range(header) == expected
