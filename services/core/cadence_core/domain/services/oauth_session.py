"""OAuth2 Authorization Code + PKCE flow, public client side.

Drives authorize-redirect -> callback -> token exchange. The handshake
(verifier and state nonce) lives in a per-client slot and is consumed
exactly once; the token exchange itself is delegated to the confidential
exchange service.

Usage:
    controller = OAuthSessionController(
        handshakes=HandshakeStore(db),
        exchanger=TokenExchangeClient(url=settings.token_exchange_url),
        client_id=settings.x_client_id,
        redirect_uri=settings.redirect_uri,
    )

    request = controller.begin_authorization(client_key)
    # ... user is redirected to request.url and comes back ...
    result = await controller.complete_authorization(client_key, code, state)
"""

import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol
from urllib.parse import urlencode

from cadence_core.domain.errors import (
    InvalidState,
    MissingCode,
    TokenExchangeFailed,
    UpstreamError,
)
from cadence_core.domain.services.exchange_client import ExchangeResult
from cadence_core.domain.services.handshake import HandshakeState, HandshakeStore
from cadence_core.infrastructure.pkce import CHALLENGE_METHOD, PkceGenerator, challenge
from cadence_core.observability import get_logger
from cadence_core.providers.base import ProviderProfile, TokenBundle

logger = get_logger(__name__)


class AuthorizationPhase(str, Enum):
    """Where a controller is in the sign-in flow."""

    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class CodeExchanger(Protocol):
    async def exchange(self, code: str, verifier: str, redirect_uri: str) -> ExchangeResult:
        ...


@dataclass
class AuthorizationRequest:
    """Where to send the user, and the state nonce that was issued."""

    url: str
    state: str


@dataclass
class AuthorizationResult:
    tokens: TokenBundle
    profile: ProviderProfile


class OAuthSessionController:
    """Public-client half of the PKCE flow."""

    AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"

    DEFAULT_SCOPES = [
        "tweet.read",
        "users.read",
        "tweet.write",
        "offline.access",  # refresh token
        "follows.read",
    ]

    def __init__(
        self,
        handshakes: HandshakeStore,
        exchanger: CodeExchanger,
        client_id: str,
        redirect_uri: str,
        scopes: Optional[list[str]] = None,
        authorize_url: Optional[str] = None,
        strict_state: bool = True,
        pkce: Optional[PkceGenerator] = None,
    ):
        """Initialize the controller.

        Args:
            handshakes: Slot storage for in-flight handshakes.
            exchanger: Confidential code exchanger.
            client_id: Public OAuth client id.
            redirect_uri: Registered callback URL.
            scopes: Scopes to request. Defaults to DEFAULT_SCOPES.
            authorize_url: Provider authorize endpoint.
            strict_state: Reject callbacks whose state differs from the issued nonce.
            pkce: Verifier/state generator.
        """
        self.handshakes = handshakes
        self.exchanger = exchanger
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scopes = scopes or self.DEFAULT_SCOPES
        self.authorize_url = authorize_url or self.AUTHORIZE_URL
        self.strict_state = strict_state
        self.pkce = pkce or PkceGenerator()
        self.phase = AuthorizationPhase.IDLE

    def begin_authorization(self, client_key: str) -> AuthorizationRequest:
        """Start a sign-in attempt for ``client_key``.

        Any earlier in-flight attempt for the same client is replaced.
        """
        verifier = self.pkce.new_verifier()
        state = self.pkce.new_state()

        self.handshakes.purge_expired()
        self.handshakes.put(client_key, HandshakeState(code_verifier=verifier, state=state))

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "code_challenge": challenge(verifier),
            "code_challenge_method": CHALLENGE_METHOD,
        }
        self.phase = AuthorizationPhase.AWAITING_CALLBACK
        logger.info("Authorization started", client_key=client_key)
        return AuthorizationRequest(url=f"{self.authorize_url}?{urlencode(params)}", state=state)

    async def complete_authorization(
        self,
        client_key: str,
        code: Optional[str],
        returned_state: Optional[str],
    ) -> AuthorizationResult:
        """Finish the attempt started by ``begin_authorization``.

        Nothing is persisted here; the caller hands the result to the
        session store, so a failure leaves no partial session.

        Raises:
            MissingCode: ``code`` is empty. The handshake is left in place.
            InvalidState: No live handshake, or the state nonce differs.
            TokenExchangeFailed: The exchange service rejected the code or
                returned an unusable payload.
            UpstreamTimeout: The exchange service did not answer in time.
        """
        if not code:
            self.phase = AuthorizationPhase.FAILED
            raise MissingCode("Authorization callback has no code")

        handshake = self.handshakes.take(client_key)
        if handshake is None:
            self.phase = AuthorizationPhase.FAILED
            raise InvalidState("No authorization in progress for this client")

        if self.strict_state and not hmac.compare_digest(
            handshake.state.encode(), (returned_state or "").encode()
        ):
            self.phase = AuthorizationPhase.FAILED
            logger.warning("State nonce mismatch on callback", client_key=client_key)
            raise InvalidState("State nonce mismatch")

        self.phase = AuthorizationPhase.EXCHANGING
        try:
            exchanged = await self.exchanger.exchange(
                code, handshake.code_verifier, self.redirect_uri
            )
            result = AuthorizationResult(
                tokens=TokenBundle.from_payload(exchanged.tokens),
                profile=ProviderProfile.from_payload(exchanged.profile),
            )
        except UpstreamError:
            self.phase = AuthorizationPhase.FAILED
            raise
        except ValueError as e:
            self.phase = AuthorizationPhase.FAILED
            raise TokenExchangeFailed(details=str(e)) from e

        self.phase = AuthorizationPhase.AUTHENTICATED
        logger.info(
            "Authorization completed",
            client_key=client_key,
            platform_user_id=result.profile.external_id,
        )
        return result
