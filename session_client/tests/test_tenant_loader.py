"""Tests for the tenant bootstrap loader decision table."""
import asyncio

import httpx
import pytest

from session_client.config import TENANT_SLUG_COOKIE
from session_client.credential_store import CredentialStore
from session_client.errors import ApiError
from session_client.storage import SessionStorage
from session_client.tenant_config import TENANT_CONFIG_PATH, load_tenant
from session_client.tenant_loader import TenantBootstrapLoader
from session_client.tenant_store import TenantConfig, TenantStore
from session_client.tests.support import FakeApi, make_token


@pytest.fixture
def stores():
    local = SessionStorage()
    return CredentialStore(local, SessionStorage()), TenantStore(local)


def make_loader(stores, api, cookies=None, delay_seconds=0.0):
    credentials, tenants = stores
    return TenantBootstrapLoader(
        credentials=credentials, tenants=tenants, api=api, cookies=cookies, delay_seconds=delay_seconds
    )


def test_resolved_tenant_means_no_fetch(stores, tenant_response):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))
    tenants.set_tenant(TenantConfig(record_id="X", account_code="BK-1"))
    api = FakeApi(response=tenant_response)

    assert asyncio.run(make_loader(stores, api).run()) is False
    assert api.calls == []


def test_credentials_matching_tenant_record_means_no_fetch(stores, tenant_response):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, tenant_id="X", account_code="BK-1", access_token=make_token(600))
    tenants.set_tenant(TenantConfig(record_id="X"))
    api = FakeApi(response=tenant_response)

    assert asyncio.run(make_loader(stores, api).evaluate()) is False
    assert api.calls == []


def test_fetch_in_flight_means_no_fetch(stores, tenant_response):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))
    tenants.set_loading(True)
    api = FakeApi(response=tenant_response)

    assert asyncio.run(make_loader(stores, api).evaluate()) is False
    assert api.calls == []


def test_unauthenticated_means_no_fetch(stores, tenant_response):
    credentials, _ = stores
    # a token alone is not an authenticated user
    credentials.update_tokens(access_token=make_token(600))
    api = FakeApi(response=tenant_response)

    assert asyncio.run(make_loader(stores, api).evaluate()) is False
    assert api.calls == []


def test_missing_tenant_fetched_once_and_cookie_set(stores, tenant_response):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))
    api = FakeApi(response=tenant_response)
    cookies = httpx.Cookies()
    loader = make_loader(stores, api, cookies=cookies)

    async def scenario():
        return await loader.run(), await loader.evaluate()

    first, second = asyncio.run(scenario())

    assert (first, second) == (True, False)
    assert api.calls == [TENANT_CONFIG_PATH]
    assert tenants.tenant.record_id == "X"
    assert credentials.tenant_id == "X"
    assert credentials.account_code == "BK-1"
    assert cookies.get(TENANT_SLUG_COOKIE) == "happy-paws"


def test_failed_fetch_is_not_retried_in_the_same_mount(stores):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))
    api = FakeApi(error=ApiError("Service temporarily unavailable. Please try again.", 503))
    loader = make_loader(stores, api)

    async def scenario():
        return await loader.run(), await loader.evaluate()

    assert asyncio.run(scenario()) == (True, False)
    assert api.calls == [TENANT_CONFIG_PATH]
    assert tenants.tenant is None
    assert tenants.is_loading is False


def test_missing_slug_leaves_cookie_unset(stores, tenant_response):
    credentials, _ = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))
    tenant_response.pop("slug")
    cookies = httpx.Cookies()

    asyncio.run(make_loader(stores, FakeApi(response=tenant_response), cookies=cookies).run())

    assert cookies.get(TENANT_SLUG_COOKIE) is None


def test_cancelled_before_delay_elapses(stores, tenant_response):
    credentials, _ = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))
    api = FakeApi(response=tenant_response)
    loader = make_loader(stores, api, delay_seconds=0.05)

    async def scenario():
        task = loader.schedule()
        loader.cancel()
        await asyncio.sleep(0.1)
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    assert api.calls == []


def test_concurrent_with_bootstrap_fetch_gives_one_request(stores, tenant_response):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))

    async def scenario():
        gate = asyncio.Event()
        api = FakeApi(response=tenant_response, gate=gate)
        loader = make_loader(stores, api, delay_seconds=0.01)
        loader_task = loader.schedule()
        bootstrap_task = asyncio.create_task(load_tenant(api, credentials, tenants, source="init"))
        await asyncio.sleep(0.03)
        gate.set()
        return api, await loader_task, await bootstrap_task

    api, loader_fetched, config = asyncio.run(scenario())
    assert loader_fetched is False
    assert config.record_id == "X"
    assert api.calls == [TENANT_CONFIG_PATH]


def test_fetch_outliving_teardown_keeps_newer_fetch_exclusive(stores, tenant_response):
    credentials, tenants = stores
    credentials.set_auth(user={"id": "u-1"}, access_token=make_token(600))

    async def scenario():
        gate_old, gate_new = asyncio.Event(), asyncio.Event()
        api_old = FakeApi(response=tenant_response, gate=gate_old)
        api_new = FakeApi(response=tenant_response, gate=gate_new)
        old_fetch = asyncio.create_task(load_tenant(api_old, credentials, tenants, source="old"))
        await asyncio.sleep(0)

        # logout, then a new login starts its own fetch while the old one is still pending
        credentials.clear_auth()
        tenants.reset()
        credentials.set_auth(user={"id": "u-2"}, access_token=make_token(600))
        new_fetch = asyncio.create_task(load_tenant(api_new, credentials, tenants, source="new"))
        await asyncio.sleep(0)
        assert api_new.calls == [TENANT_CONFIG_PATH]

        gate_old.set()
        assert await old_fetch is None
        assert tenants.is_loading is True

        api_other = FakeApi(response=tenant_response)
        assert await make_loader(stores, api_other).evaluate() is False

        gate_new.set()
        return api_other, await new_fetch

    api_other, config = asyncio.run(scenario())
    assert api_other.calls == []
    assert config.record_id == "X"
    assert tenants.is_loading is False
    assert credentials.tenant_id == "X"


def test_parse_tenant_config_variants():
    from session_client.errors import TenantFetchError
    from session_client.tenant_config import parse_tenant_config
    from session_client.tenant_store import TenantPlan

    config = parse_tenant_config({"id": 7, "tenant": {"accountCode": "BK-7"}, "plan": "enterprise"})
    assert config.record_id == "7"
    assert config.account_code == "BK-7"
    assert config.plan is TenantPlan.ENTERPRISE

    with pytest.raises(TenantFetchError):
        parse_tenant_config({"name": "no id"})
    with pytest.raises(TenantFetchError):
        parse_tenant_config(None)
