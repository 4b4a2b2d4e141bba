"""Unit tests for the token exchange service client."""

import json

import httpx
import pytest

from cadence_core.domain.errors import TokenExchangeFailed, TokenRefreshFailed, UpstreamTimeout
from cadence_core.domain.services.exchange_client import TokenExchangeClient

URL = "http://exchange.test/exchange"
REFRESH_URL = "http://exchange.test/refresh"


def make_client(handler, api_key=None) -> TokenExchangeClient:
    return TokenExchangeClient(
        url=URL,
        refresh_url=REFRESH_URL,
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


class TestTokenExchangeClient:
    """Tests for TokenExchangeClient.exchange."""

    @pytest.mark.asyncio
    async def test_success_returns_tokens_and_user(self):
        """The request body uses the exchange service's field names."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(
                200,
                json={
                    "tokens": {"access_token": "at-123"},
                    "user": {"data": {"id": "42", "username": "ada"}},
                },
            )

        result = await make_client(handler, api_key="k").exchange("code", "verifier", "http://cb")

        assert seen["body"] == {
            "code": "code",
            "codeVerifier": "verifier",
            "redirectUri": "http://cb",
        }
        assert seen["auth"] == "Bearer k"
        assert result.tokens == {"access_token": "at-123"}
        assert result.profile == {"data": {"id": "42", "username": "ada"}}

    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_details(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"error": "Failed to exchange code for token", "details": {"error": "invalid_grant"}},
            )

        with pytest.raises(TokenExchangeFailed) as exc_info:
            await make_client(handler).exchange("code", "verifier", "http://cb")

        assert exc_info.value.status == 400
        assert exc_info.value.details == {"error": "invalid_grant"}

    @pytest.mark.asyncio
    async def test_non_json_error_body_is_kept_as_text(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(TokenExchangeFailed) as exc_info:
            await make_client(handler).exchange("code", "verifier", "http://cb")

        assert exc_info.value.details == "bad gateway"

    @pytest.mark.asyncio
    async def test_missing_tokens_is_a_failure(self):
        def handler(request):
            return httpx.Response(200, json={"user": {"id": "42", "username": "ada"}})

        with pytest.raises(TokenExchangeFailed):
            await make_client(handler).exchange("code", "verifier", "http://cb")

    @pytest.mark.asyncio
    async def test_timeout_maps_to_upstream_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamTimeout):
            await make_client(handler).exchange("code", "verifier", "http://cb")

    @pytest.mark.asyncio
    async def test_connection_error_is_exchange_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TokenExchangeFailed):
            await make_client(handler).exchange("code", "verifier", "http://cb")


class TestTokenRefresh:
    """Tests for TokenExchangeClient.refresh."""

    @pytest.mark.asyncio
    async def test_success_returns_bundle(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"tokens": {"access_token": "at-new", "refresh_token": "rt-new", "expires_in": 7200}},
            )

        bundle = await make_client(handler).refresh("rt-456")

        assert seen["url"] == REFRESH_URL
        assert seen["body"] == {"refreshToken": "rt-456"}
        assert bundle.access_token == "at-new"
        assert bundle.refresh_token == "rt-new"
        assert bundle.expires_in == 7200

    @pytest.mark.asyncio
    async def test_rejection_carries_status(self):
        def handler(request):
            return httpx.Response(400, json={"error": "Failed to refresh token", "details": "invalid_grant"})

        with pytest.raises(TokenRefreshFailed) as exc_info:
            await make_client(handler).refresh("rt-456")

        assert exc_info.value.status == 400
        assert exc_info.value.details == "invalid_grant"

    @pytest.mark.asyncio
    async def test_payload_without_access_token_is_a_failure(self):
        def handler(request):
            return httpx.Response(200, json={"tokens": {"refresh_token": "rt"}})

        with pytest.raises(TokenRefreshFailed):
            await make_client(handler).refresh("rt-456")

    @pytest.mark.asyncio
    async def test_timeout_maps_to_upstream_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamTimeout):
            await make_client(handler).refresh("rt-456")

    @pytest.mark.asyncio
    async def test_without_refresh_url_fails(self):
        client = TokenExchangeClient(url=URL)

        with pytest.raises(TokenRefreshFailed):
            await client.refresh("rt-456")
