"""Sign in with X (OAuth2 + PKCE) routes."""

import secrets
from typing import Optional

from fastapi import APIRouter, Request, Response

from cadence_core.api.deps import DBSession, ExchangerDep, SessionStoreDep, SettingsDep
from cadence_core.api.errors import http_error
from cadence_core.api.schemas.auth import (
    AuthStartResponse,
    CallbackResponse,
    IdentityResponse,
    LogoutResponse,
    MeResponse,
)
from cadence_core.config import Settings
from cadence_core.domain.errors import AuthorizationDenied, CadenceError
from cadence_core.domain.services.handshake import HandshakeStore
from cadence_core.domain.services.oauth_session import CodeExchanger, OAuthSessionController
from cadence_core.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _controller(db, settings: Settings, exchanger: CodeExchanger) -> OAuthSessionController:
    return OAuthSessionController(
        handshakes=HandshakeStore(db, ttl_seconds=settings.oauth_handshake_ttl_seconds),
        exchanger=exchanger,
        client_id=settings.x_client_id or "",
        redirect_uri=settings.redirect_uri,
        scopes=settings.x_scopes.split(),
        authorize_url=settings.x_authorize_url,
        strict_state=settings.oauth_strict_state,
    )


@router.get("/x/start", response_model=AuthStartResponse)
async def start_authorization(
    request: Request,
    response: Response,
    db: DBSession,
    settings: SettingsDep,
    exchanger: ExchangerDep,
) -> AuthStartResponse:
    """Begin sign-in. The client should navigate to ``authorization_url``."""
    client_key = request.cookies.get(settings.client_cookie_name) or secrets.token_urlsafe(24)
    auth_request = _controller(db, settings, exchanger).begin_authorization(client_key)

    response.set_cookie(
        key=settings.client_cookie_name,
        value=client_key,
        httponly=True,
        samesite="lax",
        max_age=settings.oauth_handshake_ttl_seconds,
    )
    return AuthStartResponse(authorization_url=auth_request.url)


@router.get("/x/callback", response_model=CallbackResponse)
async def authorization_callback(
    request: Request,
    response: Response,
    db: DBSession,
    settings: SettingsDep,
    exchanger: ExchangerDep,
    store: SessionStoreDep,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
) -> CallbackResponse:
    """Complete sign-in and open a session."""
    client_key = request.cookies.get(settings.client_cookie_name) or ""
    controller = _controller(db, settings, exchanger)

    try:
        if error:
            raise AuthorizationDenied(f"Provider returned error={error}")
        result = await controller.complete_authorization(client_key, code, state)
        identity = store.persist_login(result.profile, result.tokens)
    except CadenceError as e:
        logger.warning("Sign-in failed", error_code=e.code, phase=controller.phase.value)
        raise http_error(e) from e

    response.delete_cookie(settings.client_cookie_name)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=store.session_id,
        httponly=True,
        samesite="lax",
        max_age=settings.session_expire_hours * 3600,
    )
    return CallbackResponse(
        is_new=store.created_identity,
        identity=IdentityResponse.model_validate(identity),
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response, settings: SettingsDep, store: SessionStoreDep) -> LogoutResponse:
    """Drop the local session. The X token is not revoked."""
    store.logout()
    response.delete_cookie(settings.session_cookie_name)
    return LogoutResponse()


@router.get("/me", response_model=MeResponse)
async def me(store: SessionStoreDep) -> MeResponse:
    identity = store.current_identity()
    if identity is None:
        return MeResponse(logged_in=False)
    return MeResponse(logged_in=True, identity=IdentityResponse.model_validate(identity))
