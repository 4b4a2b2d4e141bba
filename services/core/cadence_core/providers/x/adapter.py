"""X API v2 adapter.

Implements the read-side ``ProviderAdapter`` interface with a user-context
bearer token. Every non-2xx status, transport error and malformed payload is
raised as ``ProviderAPIError`` so callers have one failure type to handle.
"""

from datetime import datetime
from typing import Any, Optional

import httpx

from cadence_core.observability import get_logger
from cadence_core.providers.base import (
    ProviderAdapter,
    ProviderAPIError,
    ProviderContentItem,
)

logger = get_logger(__name__)

TWEET_FIELDS = "created_at,public_metrics,referenced_tweets,author_id,conversation_id"

# API limits for max_results
TIMELINE_MIN_RESULTS = 5
SEARCH_MIN_RESULTS = 10
MAX_RESULTS = 100


class XAdapter(ProviderAdapter):
    """Adapter for the X API v2."""

    BASE_URL = "https://api.twitter.com/2"

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter.

        Args:
            access_token: User-context OAuth2 bearer token.
            base_url: API base URL, defaults to BASE_URL.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.access_token = access_token
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    @property
    def provider_id(self) -> str:
        return "x"

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict:
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as e:
            raise ProviderAPIError(f"Request to {endpoint} failed: {e!r}") from e

        if response.status_code != 200:
            raise ProviderAPIError(
                f"{endpoint} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderAPIError(f"{endpoint} returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise ProviderAPIError(f"{endpoint} returned a non-object payload")
        return payload

    async def _timeline(self, user_id: str, limit: int, exclude: str) -> list[dict]:
        payload = await self._get(
            f"/users/{user_id}/tweets",
            {
                "max_results": _clamp(limit, TIMELINE_MIN_RESULTS),
                "tweet.fields": TWEET_FIELDS,
                "exclude": exclude,
            },
        )
        return _data_list(payload)

    async def list_user_posts(
        self, user_id: str, limit: int = 20
    ) -> list[ProviderContentItem]:
        tweets = await self._timeline(user_id, limit, exclude="replies,retweets")
        items = [self._map_tweet(t) for t in tweets]
        return [item for item in items if not item.is_reply][:limit]

    async def list_user_replies(
        self, user_id: str, limit: int = 20
    ) -> list[ProviderContentItem]:
        tweets = await self._timeline(user_id, MAX_RESULTS, exclude="retweets")
        items = [self._map_tweet(t) for t in tweets]
        return [item for item in items if item.is_reply][:limit]

    async def search_recent(
        self, query: str, limit: int = 10
    ) -> list[ProviderContentItem]:
        payload = await self._get(
            "/tweets/search/recent",
            {
                "query": f"{query} -is:retweet -is:reply lang:en",
                "max_results": _clamp(limit, SEARCH_MIN_RESULTS),
                "tweet.fields": TWEET_FIELDS,
                "expansions": "author_id",
                "user.fields": "username",
            },
        )
        users = {
            u.get("id"): u.get("username")
            for u in (payload.get("includes") or {}).get("users", [])
            if isinstance(u, dict)
        }
        items = []
        for tweet in _data_list(payload):
            item = self._map_tweet(tweet)
            item.author_username = users.get(item.author_id)
            items.append(item)
        return items[:limit]

    def _map_tweet(self, data: Any) -> ProviderContentItem:
        if not isinstance(data, dict) or "id" not in data or "text" not in data:
            raise ProviderAPIError("Tweet object is missing id or text")

        metrics = data.get("public_metrics") or {}
        parent_id = None
        for ref in data.get("referenced_tweets") or []:
            if isinstance(ref, dict) and ref.get("type") == "replied_to":
                parent_id = ref.get("id")
                break

        return ProviderContentItem(
            external_id=str(data["id"]),
            text=str(data["text"]),
            author_id=data.get("author_id"),
            created_at=_parse_timestamp(data.get("created_at")),
            like_count=int(metrics.get("like_count", 0)),
            repost_count=int(metrics.get("retweet_count", 0)),
            reply_count=int(metrics.get("reply_count", 0)),
            in_reply_to_id=parent_id,
            raw_data=data,
        )


def _clamp(limit: int, minimum: int) -> int:
    return max(minimum, min(limit, MAX_RESULTS))


def _data_list(payload: dict) -> list:
    # An empty timeline omits "data" entirely
    data = payload.get("data", [])
    if not isinstance(data, list):
        raise ProviderAPIError("Expected a list under 'data'")
    return data


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ProviderAPIError(f"Bad created_at value: {value!r}") from e
    return parsed.replace(tzinfo=None)
