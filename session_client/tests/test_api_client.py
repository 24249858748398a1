"""Tests for the tenant API transport (headers, error mapping, 401 handling)."""
import asyncio
import json
import logging

import httpx
import pytest

from session_client.api_client import ApiClient, camelize_keys, is_tenant_header_exempt
from session_client.credential_store import CredentialStore
from session_client.errors import ApiError
from session_client.storage import SessionStorage


def make_client(handler, credentials=None, on_unauthorized=None):
    credentials = credentials or CredentialStore(SessionStorage(), SessionStorage())
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
    return ApiClient(credentials, on_unauthorized=on_unauthorized, http=http), credentials


def test_headers_carry_token_and_tenant():
    seen = {}

    def handler(request: httpx.Request):
        seen.update(request.headers)
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"booking_id": 1, "pet_list": [{"pet_name": "Rex"}]})

    client, credentials = make_client(handler)
    credentials.set_auth(user={"id": "u-1"}, tenant_id="X", account_code="BK-1", access_token="T1")

    data = asyncio.run(client.get("/api/v1/bookings", params={"page": 2, "q": None}))

    assert seen["authorization"] == "Bearer T1"
    assert seen["x-tenant-id"] == "X"
    assert seen["x-account-code"] == "BK-1"
    assert seen["url"] == "http://api.test/api/v1/bookings?page=2"
    assert data == {"bookingId": 1, "petList": [{"petName": "Rex"}]}


def test_missing_tenant_warns_except_on_bootstrap_paths(caplog):
    client, credentials = make_client(lambda request: httpx.Response(204))
    credentials.update_tokens(access_token="T1")

    with caplog.at_level(logging.WARNING, logger="session_client.api_client"):
        assert asyncio.run(client.get("/api/v1/config/tenant")) is None
        assert "No tenant ID" not in caplog.text
        asyncio.run(client.get("/api/v1/bookings"))
        assert "No tenant ID for /api/v1/bookings" in caplog.text


def test_401_runs_unauthorized_handler():
    calls = []
    client, _ = make_client(lambda request: httpx.Response(401), on_unauthorized=lambda: calls.append(True))

    with pytest.raises(ApiError) as exc:
        asyncio.run(client.get("/api/v1/bookings"))

    assert exc.value.status_code == 401
    assert str(exc.value) == "Session expired. Please log in again."
    assert calls == [True]


def test_403_does_not_end_session():
    calls = []
    client, _ = make_client(
        lambda request: httpx.Response(403, json={"message": "Staff only"}), on_unauthorized=lambda: calls.append(True)
    )

    with pytest.raises(ApiError) as exc:
        asyncio.run(client.post("/api/v1/settings", {"a": 1}))

    assert exc.value.status_code == 403
    assert str(exc.value) == "Staff only"
    assert calls == []


@pytest.mark.parametrize(
    "response,expected",
    [
        (httpx.Response(500), "An unexpected server error occurred. Please try again."),
        (httpx.Response(422, json={"error": "name is required"}), "name is required"),
        (httpx.Response(418), "Request failed with status 418"),
    ],
)
def test_error_messages(response, expected):
    client, _ = make_client(lambda request: response)
    with pytest.raises(ApiError) as exc:
        asyncio.run(client.delete("/api/v1/pets/1"))
    assert str(exc.value) == expected
    assert exc.value.status_code == response.status_code


def test_json_body_is_sent():
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    client, _ = make_client(handler)
    asyncio.run(client.put("/api/v1/pets/1", {"name": "Rex"}))
    asyncio.run(client.patch("/api/v1/pets/1", {"name": "Max"}))
    assert bodies == [{"name": "Rex"}, {"name": "Max"}]


def test_helpers():
    assert is_tenant_header_exempt("/api/v1/tenants/current")
    assert not is_tenant_header_exempt("/api/v1/bookings")
    assert camelize_keys([{"a_b": {"c_d": 1}}, 2]) == [{"aB": {"cD": 1}}, 2]
