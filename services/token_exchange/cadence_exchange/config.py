"""Configuration for the token exchange service."""

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeSettings(BaseSettings):
    """Settings loaded from environment variables.

    The client secret is read once at startup and never written back.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    x_client_id: Optional[str] = None
    x_client_secret: Optional[SecretStr] = None

    x_token_url: str = Field(default="https://api.twitter.com/2/oauth2/token")
    x_profile_url: str = Field(
        default="https://api.twitter.com/2/users/me?user.fields=profile_image_url,verified"
    )
    upstream_timeout: float = Field(default=15.0)

    # Optional shared key the core presents as a bearer token
    exchange_api_key: Optional[SecretStr] = None

    cors_origins: list[str] = Field(default=["http://localhost:5173"])
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    @property
    def is_configured(self) -> bool:
        return bool(self.x_client_id and self.x_client_secret)


@lru_cache
def get_exchange_settings() -> ExchangeSettings:
    """Get cached settings."""
    return ExchangeSettings()
