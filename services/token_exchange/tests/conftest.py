"""Pytest configuration and fixtures for the token exchange service."""

from collections.abc import AsyncGenerator, Callable, Generator

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from cadence_exchange.config import ExchangeSettings
from cadence_exchange.service import TokenExchangeService

TOKEN_URL = "https://idp.test/2/oauth2/token"
PROFILE_URL = "https://idp.test/2/users/me"


@pytest.fixture
def exchange_settings() -> ExchangeSettings:
    """Settings with a configured confidential client."""
    return ExchangeSettings(
        x_client_id="test-client-id",
        x_client_secret="test-client-secret",
        x_token_url=TOKEN_URL,
        x_profile_url=PROFILE_URL,
        log_json=False,
    )


@pytest.fixture
def idp_handler() -> dict:
    """Mutable routing table for the fake identity provider.

    Tests replace ``token`` or ``profile`` with their own handlers; every
    request seen is appended to ``requests``.
    """
    return {
        "token": lambda request: httpx.Response(
            200,
            json={
                "access_token": "at-123",
                "refresh_token": "rt-456",
                "token_type": "bearer",
                "expires_in": 7200,
                "scope": "tweet.read users.read offline.access",
            },
        ),
        "profile": lambda request: httpx.Response(
            200, json={"data": {"id": "42", "username": "ada", "name": "Ada L."}}
        ),
        "requests": [],
    }


@pytest.fixture
def idp_transport(idp_handler) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        idp_handler["requests"].append(request)
        if str(request.url).startswith(TOKEN_URL):
            return idp_handler["token"](request)
        return idp_handler["profile"](request)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_service(idp_transport) -> Callable[..., TokenExchangeService]:
    def factory(client_id="test-client-id", client_secret="test-client-secret"):
        return TokenExchangeService(
            client_id=client_id,
            client_secret=client_secret,
            token_url=TOKEN_URL,
            profile_url=PROFILE_URL,
            transport=idp_transport,
        )

    return factory


@pytest.fixture
def exchange_app(exchange_settings, make_service) -> Generator[FastAPI, None, None]:
    from cadence_exchange.main import app, get_exchange_service

    app.state.settings = exchange_settings
    app.dependency_overrides[get_exchange_service] = lambda: make_service()

    yield app

    app.dependency_overrides.clear()
    del app.state.settings


@pytest.fixture
async def exchange_client(exchange_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=exchange_app),
        base_url="http://exchange.test",
    ) as ac:
        yield ac


@pytest.fixture(autouse=True)
def reset_exchange_settings_cache():
    from cadence_exchange.config import get_exchange_settings

    get_exchange_settings.cache_clear()
    yield
    get_exchange_settings.cache_clear()
