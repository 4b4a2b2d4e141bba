"""Client for the confidential token exchange service.

The core never holds the OAuth client secret. It forwards the authorization
code and PKCE verifier to the exchange service, which talks to the identity
provider and returns ``{tokens, user}`` on success. Expired access tokens are
renewed the same way, through ``POST /refresh``.

Usage:
    client = TokenExchangeClient(url="http://cadence-exchange:8001/exchange")
    result = await client.exchange(code, verifier, redirect_uri)
    tokens = await client.refresh(refresh_token)
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cadence_core.domain.errors import TokenExchangeFailed, TokenRefreshFailed, UpstreamTimeout
from cadence_core.observability import get_logger
from cadence_core.providers.base import TokenBundle

logger = get_logger(__name__)


@dataclass
class ExchangeResult:
    """Raw payloads returned by the exchange service."""

    tokens: dict
    profile: dict


class TokenExchangeClient:
    """HTTP client for ``POST /exchange`` and ``POST /refresh``."""

    def __init__(
        self,
        url: str,
        refresh_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.refresh_url = refresh_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def exchange(self, code: str, verifier: str, redirect_uri: str) -> ExchangeResult:
        """Trade an authorization code for tokens and the user's profile.

        Raises:
            TokenExchangeFailed: On a non-2xx answer or an unusable payload.
            UpstreamTimeout: If the exchange service does not answer in time.
        """
        body = {"code": code, "codeVerifier": verifier, "redirectUri": redirect_uri}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Token exchange timed out: {e!r}") from e
        except httpx.HTTPError as e:
            raise TokenExchangeFailed(details=f"Exchange service unreachable: {e!r}") from e

        payload = _json_or_text(response)

        if not response.is_success:
            details: Any = payload
            if isinstance(payload, dict):
                details = payload.get("details") or payload.get("error") or payload
            logger.warning(
                "Token exchange rejected",
                status_code=response.status_code,
            )
            raise TokenExchangeFailed(details=details, status=response.status_code)

        if not isinstance(payload, dict):
            raise TokenExchangeFailed(details="Exchange service returned a non-object body")

        tokens = payload.get("tokens")
        profile = payload.get("user", payload.get("profile"))
        if not isinstance(tokens, dict) or not isinstance(profile, dict):
            raise TokenExchangeFailed(details="Exchange response is missing tokens or user")

        return ExchangeResult(tokens=tokens, profile=profile)

    async def refresh(self, refresh_token: str) -> TokenBundle:
        """Trade a refresh token for a new token bundle.

        Raises:
            TokenRefreshFailed: On a non-2xx answer or an unusable payload.
            UpstreamTimeout: If the exchange service does not answer in time.
        """
        if not self.refresh_url:
            raise TokenRefreshFailed(details="No refresh endpoint configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.refresh_url,
                    json={"refreshToken": refresh_token},
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Token refresh timed out: {e!r}") from e
        except httpx.HTTPError as e:
            raise TokenRefreshFailed(details=f"Exchange service unreachable: {e!r}") from e

        payload = _json_or_text(response)

        if not response.is_success:
            details: Any = payload
            if isinstance(payload, dict):
                details = payload.get("details") or payload.get("error") or payload
            logger.warning("Token refresh rejected", status_code=response.status_code)
            raise TokenRefreshFailed(details=details, status=response.status_code)

        tokens = payload.get("tokens") if isinstance(payload, dict) else None
        try:
            return TokenBundle.from_payload(tokens)
        except ValueError as e:
            raise TokenRefreshFailed(details=str(e)) from e


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
