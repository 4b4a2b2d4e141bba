"""API dependencies for dependency injection."""

from typing import Annotated, AsyncGenerator, Callable, Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from cadence_core.api.errors import http_error
from cadence_core.config import Settings, get_settings
from cadence_core.domain.errors import NotAuthenticated
from cadence_core.domain.models import Identity
from cadence_core.domain.services.exchange_client import TokenExchangeClient
from cadence_core.domain.services.inference import InferenceClient, InferenceConfig
from cadence_core.domain.services.session_store import SessionStore
from cadence_core.infra.db import get_sync_session_factory
from cadence_core.infrastructure.crypto import TokenCipher
from cadence_core.providers.base import ProviderAdapter, TokenBundle
from cadence_core.providers.x.adapter import XAdapter

AdapterFactory = Callable[[TokenBundle], ProviderAdapter]


def get_db() -> Generator[Session, None, None]:
    """Get a database session."""
    session = get_sync_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_app_settings(request: Request) -> Settings:
    """Get settings from app state or default."""
    if hasattr(request.app.state, "settings"):
        return request.app.state.settings
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
DBSession = Annotated[Session, Depends(get_db)]


def get_cipher(settings: SettingsDep) -> TokenCipher:
    if not settings.encryption_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Encryption key not configured",
        )
    return TokenCipher(settings.encryption_key)


def get_session_store(
    request: Request,
    db: DBSession,
    settings: SettingsDep,
    cipher: Annotated[TokenCipher, Depends(get_cipher)],
) -> SessionStore:
    """Session store bound to the caller's session cookie."""
    return SessionStore(
        db=db,
        cipher=cipher,
        session_id=request.cookies.get(settings.session_cookie_name),
        session_ttl_hours=settings.session_expire_hours,
    )


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]


def get_current_identity(store: SessionStoreDep) -> Identity:
    """Get the logged-in identity.

    Raises:
        HTTPException: 401 if there is no valid session.
    """
    identity = store.current_identity()
    if identity is None:
        raise http_error(NotAuthenticated())
    return identity


def get_token_exchanger(settings: SettingsDep) -> TokenExchangeClient:
    return TokenExchangeClient(
        url=settings.token_exchange_url,
        refresh_url=settings.token_refresh_url,
        api_key=settings.token_exchange_api_key,
        timeout=settings.token_exchange_timeout,
    )


async def get_current_tokens(
    store: SessionStoreDep,
    exchanger: Annotated[TokenExchangeClient, Depends(get_token_exchanger)],
) -> Optional[TokenBundle]:
    """Tokens for the current session, renewed first if the access token expired."""
    return await store.fresh_tokens(exchanger)


async def get_inference_client(settings: SettingsDep) -> AsyncGenerator[InferenceClient, None]:
    if not settings.inference_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Completion service not configured",
        )
    client = InferenceClient(
        config=InferenceConfig(
            base_url=settings.inference_url,
            model_name=settings.inference_model,
            timeout=settings.inference_timeout,
            max_tokens=settings.inference_max_tokens,
            api_key=settings.inference_api_key,
        )
    )
    try:
        yield client
    finally:
        await client.close()


def get_adapter_factory(settings: SettingsDep) -> AdapterFactory:
    def factory(tokens: TokenBundle) -> ProviderAdapter:
        return XAdapter(
            access_token=tokens.access_token,
            base_url=settings.x_api_base_url,
            timeout=settings.x_api_timeout,
        )

    return factory


# Type aliases for cleaner route signatures
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
CurrentTokens = Annotated[Optional[TokenBundle], Depends(get_current_tokens)]
ExchangerDep = Annotated[TokenExchangeClient, Depends(get_token_exchanger)]
InferenceDep = Annotated[InferenceClient, Depends(get_inference_client)]
AdapterFactoryDep = Annotated[AdapterFactory, Depends(get_adapter_factory)]
