"""Cadence token exchange API.

``POST /exchange`` takes ``{code, codeVerifier, redirectUri}`` and responds
``{tokens, user}``. ``POST /refresh`` takes ``{refreshToken}`` and responds
``{tokens}``. Failures respond ``{error, details}`` with the upstream status.
"""

import hmac
from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cadence_exchange import __version__
from cadence_exchange.config import ExchangeSettings, get_exchange_settings
from cadence_exchange.log import configure_logging
from cadence_exchange.service import ExchangeError, TokenExchangeService


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_exchange_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    if not hasattr(app.state, "settings"):
        app.state.settings = settings
    yield


app = FastAPI(
    title="Cadence Token Exchange",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_exchange_settings().cors_origins,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["authorization", "content-type"],
)


class ExchangeRequest(BaseModel):
    code: Optional[str] = None
    codeVerifier: Optional[str] = None
    redirectUri: Optional[str] = None


class RefreshRequest(BaseModel):
    refreshToken: Optional[str] = None


def get_settings_dep(request: Request) -> ExchangeSettings:
    if hasattr(request.app.state, "settings"):
        return request.app.state.settings
    return get_exchange_settings()


SettingsDep = Annotated[ExchangeSettings, Depends(get_settings_dep)]


def get_exchange_service(settings: SettingsDep) -> TokenExchangeService:
    return TokenExchangeService(
        client_id=settings.x_client_id,
        client_secret=(
            settings.x_client_secret.get_secret_value() if settings.x_client_secret else None
        ),
        token_url=settings.x_token_url,
        profile_url=settings.x_profile_url,
        timeout=settings.upstream_timeout,
    )


def _authorized(settings: ExchangeSettings, authorization: Optional[str]) -> bool:
    if settings.exchange_api_key is None:
        return True
    expected = f"Bearer {settings.exchange_api_key.get_secret_value()}"
    return hmac.compare_digest(expected.encode(), (authorization or "").encode())


def _error_response(e: ExchangeError) -> JSONResponse:
    content = {"error": e.error}
    if e.body is not None:
        content["details"] = e.body
    return JSONResponse(status_code=e.status_code, content=content)


@app.post("/exchange")
async def exchange(
    body: ExchangeRequest,
    settings: SettingsDep,
    service: Annotated[TokenExchangeService, Depends(get_exchange_service)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> JSONResponse:
    """Exchange an authorization code for tokens and the user's profile."""
    if not _authorized(settings, authorization):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        payload = await service.exchange(
            body.code or "", body.codeVerifier or "", body.redirectUri or ""
        )
    except ExchangeError as e:
        return _error_response(e)

    return JSONResponse(content={"tokens": payload.tokens, "user": payload.profile})


@app.post("/refresh")
async def refresh(
    body: RefreshRequest,
    settings: SettingsDep,
    service: Annotated[TokenExchangeService, Depends(get_exchange_service)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> JSONResponse:
    """Exchange a refresh token for a new token payload."""
    if not _authorized(settings, authorization):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        tokens = await service.refresh(body.refreshToken or "")
    except ExchangeError as e:
        return _error_response(e)

    return JSONResponse(content={"tokens": tokens})


@app.get("/healthz")
async def health_check(settings: SettingsDep) -> dict:
    return {"ok": True, "service": "cadence-exchange", "configured": settings.is_configured}
