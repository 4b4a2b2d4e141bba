"""Authorization code exchange against the identity provider.

Stateless protocol translation. A code exchange trades the code for tokens
with the confidential credential, fetches the profile with the new access
token and hands both payloads back untouched. A refresh trades a refresh
token for a new token payload the same way.

Usage:
    service = TokenExchangeService(client_id="...", client_secret="...")
    payload = await service.exchange(code, verifier, redirect_uri)
    payload.tokens, payload.profile
    tokens = await service.refresh(refresh_token)
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cadence_exchange.log import get_logger

logger = get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ExchangeError(Exception):
    """Base exception for exchange failures."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None, body: Any = None):
        super().__init__(message or self.error)
        if status is not None:
            self.status_code = status
        self.body = body


class BadRequest(ExchangeError):
    status_code = 400
    error = "Missing required parameters"


class NotConfigured(ExchangeError):
    status_code = 500
    error = "Token exchange is not configured"


class UpstreamTokenError(ExchangeError):
    """Token endpoint answered with a non-success status."""

    error = "Failed to exchange code for token"


class UpstreamRefreshError(UpstreamTokenError):
    """Token endpoint refused a refresh token."""

    error = "Failed to refresh token"


class UpstreamProfileError(ExchangeError):
    """Profile endpoint answered with a non-success status."""

    error = "Failed to get user info"


class UpstreamTimeout(ExchangeError):
    status_code = 504
    error = "Identity provider timed out"


class UpstreamUnavailable(ExchangeError):
    status_code = 502
    error = "Identity provider unreachable"


# =============================================================================
# SERVICE
# =============================================================================


@dataclass
class ExchangePayload:
    tokens: Any
    profile: Any


class TokenExchangeService:
    """Trades authorization codes and refresh tokens using the client secret."""

    TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
    PROFILE_URL = "https://api.twitter.com/2/users/me?user.fields=profile_image_url,verified"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_url: Optional[str] = None,
        profile_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self.token_url = token_url or self.TOKEN_URL
        self.profile_url = profile_url or self.PROFILE_URL
        self.timeout = timeout
        self._transport = transport

    async def exchange(self, code: str, verifier: str, redirect_uri: str) -> ExchangePayload:
        """Exchange ``code`` for tokens and fetch the user's profile.

        Raises:
            BadRequest: Any input is empty. No network call is made.
            NotConfigured: Client id or secret is missing.
            UpstreamTokenError: Token endpoint returned non-2xx.
            UpstreamProfileError: Profile endpoint returned non-2xx.
            UpstreamTimeout: Either call timed out.
            UpstreamUnavailable: Either endpoint could not be reached.
        """
        if not code or not verifier or not redirect_uri:
            raise BadRequest()
        if not self._client_id or not self._client_secret:
            raise NotConfigured()

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            tokens = await self._request_tokens(
                client,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "code_verifier": verifier,
                    "client_id": self._client_id,
                },
                UpstreamTokenError,
            )
            access_token = tokens["access_token"]

            try:
                profile_response = await client.get(
                    self.profile_url,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.TimeoutException as e:
                raise UpstreamTimeout(f"Profile endpoint timed out: {e!r}") from e
            except httpx.TransportError as e:
                raise UpstreamUnavailable(f"Profile endpoint unreachable: {e!r}") from e

            if not profile_response.is_success:
                logger.warning(
                    "Profile endpoint rejected token", status_code=profile_response.status_code
                )
                raise UpstreamProfileError(
                    status=profile_response.status_code, body=profile_response.text
                )

            profile = _json(profile_response, UpstreamProfileError)

        logger.info("Authorization code exchanged")
        return ExchangePayload(tokens=tokens, profile=profile)

    async def refresh(self, refresh_token: str) -> Any:
        """Exchange a refresh token for a new token payload.

        Raises:
            BadRequest: ``refresh_token`` is empty. No network call is made.
            NotConfigured: Client id or secret is missing.
            UpstreamRefreshError: Token endpoint returned non-2xx.
            UpstreamTimeout: The call timed out.
            UpstreamUnavailable: The endpoint could not be reached.
        """
        if not refresh_token:
            raise BadRequest()
        if not self._client_id or not self._client_secret:
            raise NotConfigured()

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            tokens = await self._request_tokens(
                client,
                {
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self._client_id,
                },
                UpstreamRefreshError,
            )

        logger.info("Refresh token exchanged")
        return tokens

    async def _request_tokens(
        self,
        client: httpx.AsyncClient,
        form: dict[str, str],
        error_cls: type[UpstreamTokenError],
    ) -> dict:
        try:
            response = await client.post(
                self.token_url,
                data=form,
                auth=(self._client_id, self._client_secret),
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Token endpoint timed out: {e!r}") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailable(f"Token endpoint unreachable: {e!r}") from e

        if not response.is_success:
            logger.warning(
                "Token endpoint rejected grant",
                grant_type=form["grant_type"],
                status_code=response.status_code,
            )
            raise error_cls(status=response.status_code, body=response.text)

        tokens = _json(response, error_cls)
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise error_cls(status=502, body="Token response did not contain an access_token")
        return tokens


def _json(response: httpx.Response, error_cls: type[ExchangeError]) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise error_cls(status=502, body=response.text[:2000]) from e
