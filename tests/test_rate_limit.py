import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from api.rate_limit import MEMORY_STORAGE_URI, rate_limit_storage_uri, setup_rate_limiting


def build_app(requests_per_minute):
    app = FastAPI()

    @app.get("/")
    async def root():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    enabled = setup_rate_limiting(app, {'api': {'rate_limit_per_minute': requests_per_minute}})
    return app, enabled


def client_for(app, address="10.0.0.1"):
    transport = ASGITransport(app=app, client=(address, 40000))
    return AsyncClient(transport=transport, base_url="http://testserver")


@pytest.mark.parametrize("cache_config, expected", [
    ({'url': "redis://cache:6379/1", 'enabled': True}, "redis://cache:6379/1"),
    ({'url': "redis://cache:6379/1", 'enabled': False}, MEMORY_STORAGE_URI),
    (None, MEMORY_STORAGE_URI),
])
def test_storage_follows_cache_settings(cache_config, expected):
    assert rate_limit_storage_uri({'cache': cache_config}) == expected


def test_zero_disables_limiting():
    app, enabled = build_app(0)

    assert enabled is False
    assert not hasattr(app.state, "limiter")


@pytest.mark.asyncio
async def test_window_is_shared_across_routes():
    app, enabled = build_app(2)

    async with client_for(app) as client:
        first = await client.get("/")
        second = await client.get("/health")
        third = await client.get("/")

    assert enabled is True
    assert first.status_code == second.status_code == 200
    assert third.status_code == 429
    assert third.json() == {"error": "rate_limit_exceeded", "message": "Too many requests"}


@pytest.mark.asyncio
async def test_clients_are_counted_separately():
    app, _ = build_app(1)

    async with client_for(app, "10.0.0.1") as first_client, client_for(app, "10.0.0.2") as second_client:
        assert (await first_client.get("/")).status_code == 200
        assert (await second_client.get("/")).status_code == 200
        assert (await first_client.get("/")).status_code == 429
