"""Base provider interface and DTOs.

The DTOs keep the rest of the core independent of the platform's JSON shape:

- TokenBundle: opaque OAuth tokens plus expiry metadata
- ProviderProfile: the authenticated user's profile
- ProviderContentItem: a post or reply, authored by anyone
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class ProviderAPIError(Exception):
    """Raised when a platform API call fails or returns an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class TokenBundle:
    """OAuth token bundle.

    Tokens are opaque: only their presence is ever inspected.
    """

    access_token: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expires_in: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenBundle":
        """Build a bundle from the token endpoint's JSON.

        Raises:
            ValueError: If the payload has no access token.
        """
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ValueError("Token payload has no access_token")
        expires_in = payload.get("expires_in")
        return cls(
            access_token=str(payload["access_token"]),
            refresh_token=payload.get("refresh_token") or None,
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
            expires_in=int(expires_in) if expires_in is not None else None,
        )


@dataclass
class ProviderProfile:
    """Normalized profile of the authenticated user."""

    external_id: str
    username: str

    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: bool = False
    raw_data: Optional[dict] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProviderProfile":
        """Build a profile from a users/me response.

        Accepts both the bare user object and the ``{"data": {...}}``
        envelope the API returns.

        Raises:
            ValueError: If ``id`` or ``username`` is missing.
        """
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            raise ValueError("Profile payload is not an object")

        external_id = payload.get("id")
        username = payload.get("username")
        if not external_id or not username:
            raise ValueError("Profile payload needs id and username")

        return cls(
            external_id=str(external_id),
            username=str(username),
            display_name=payload.get("name") or None,
            avatar_url=payload.get("profile_image_url") or None,
            is_verified=bool(payload.get("verified", False)),
            raw_data=payload,
        )


@dataclass
class ProviderContentItem:
    """Normalized post or reply."""

    external_id: str
    text: str
    author_id: Optional[str] = None
    author_username: Optional[str] = None
    created_at: Optional[datetime] = None
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0
    in_reply_to_id: Optional[str] = None
    raw_data: dict = field(default_factory=dict)

    @property
    def is_reply(self) -> bool:
        return self.in_reply_to_id is not None

    @property
    def engagement_count(self) -> int:
        return self.like_count + self.repost_count + self.reply_count


# =============================================================================
# PROVIDER ADAPTER INTERFACE
# =============================================================================


class ProviderAdapter(ABC):
    """Read-side interface the content fetcher and suggestion pipeline use."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Return the unique provider identifier (e.g. 'x')."""
        ...

    @abstractmethod
    async def list_user_posts(
        self, user_id: str, limit: int = 20
    ) -> list[ProviderContentItem]:
        """List a user's original posts, newest first.

        Raises:
            ProviderAPIError: On any API failure.
        """
        ...

    @abstractmethod
    async def list_user_replies(
        self, user_id: str, limit: int = 20
    ) -> list[ProviderContentItem]:
        """List a user's replies to other posts, newest first.

        Raises:
            ProviderAPIError: On any API failure.
        """
        ...

    @abstractmethod
    async def search_recent(
        self, query: str, limit: int = 10
    ) -> list[ProviderContentItem]:
        """Search recent public posts.

        Raises:
            ProviderAPIError: On any API failure.
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
