"""Content fetcher with synthetic fallback.

Live data from the platform API is preferred. When the live call fails for
any reason the fetcher degrades to ``SyntheticContentGenerator`` instead of
failing the caller, and says so in ``FetchResult.is_fallback``. Both sources
are upserted by platform content id, so re-running a fetch never duplicates
rows.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session as DBSession

from cadence_core.domain.clock import Clock, utcnow
from cadence_core.domain.models import (
    AuditActor,
    AuditResult,
    ContentItem,
    ContentKind,
    ContentSource,
    Identity,
)
from cadence_core.domain.services.audit import AuditService
from cadence_core.observability import get_logger
from cadence_core.providers.base import ProviderAdapter, ProviderContentItem, TokenBundle
from cadence_core.providers.x.synthetic import SyntheticContentGenerator

logger = get_logger(__name__)

AdapterFactory = Callable[[TokenBundle], ProviderAdapter]


@dataclass
class FetchResult:
    """Fetched items plus their provenance."""

    items: list[ContentItem]
    is_fallback: bool
    fallback_reason: Optional[str] = None

    @property
    def source(self) -> str:
        return ContentSource.SYNTHETIC if self.is_fallback else ContentSource.LIVE


class ContentFetcher:
    """Fetches and stores an identity's posts and replies."""

    def __init__(
        self,
        db: DBSession,
        adapter_factory: AdapterFactory,
        synthetic: Optional[SyntheticContentGenerator] = None,
        limit: int = 20,
        clock: Clock = utcnow,
    ):
        """Initialize the fetcher.

        Args:
            db: SQLAlchemy session.
            adapter_factory: Builds a platform adapter for a token bundle.
            synthetic: Fallback generator.
            limit: Maximum items per fetch.
            clock: Time source for ``fetched_at``.
        """
        self.db = db
        self.adapter_factory = adapter_factory
        self.synthetic = synthetic or SyntheticContentGenerator()
        self.limit = limit
        self.clock = clock
        self._audit = AuditService(db, clock=clock)

    async def fetch_posts(
        self, identity: Identity, tokens: Optional[TokenBundle]
    ) -> FetchResult:
        return await self._fetch(
            identity,
            tokens,
            kind=ContentKind.POST,
            live=lambda adapter: adapter.list_user_posts(identity.platform_user_id, self.limit),
            fallback=lambda: self.synthetic.posts(identity.platform_user_id),
        )

    async def fetch_replies(
        self, identity: Identity, tokens: Optional[TokenBundle]
    ) -> FetchResult:
        return await self._fetch(
            identity,
            tokens,
            kind=ContentKind.REPLY,
            live=lambda adapter: adapter.list_user_replies(identity.platform_user_id, self.limit),
            fallback=lambda: self.synthetic.replies(identity.platform_user_id),
        )

    async def _fetch(
        self,
        identity: Identity,
        tokens: Optional[TokenBundle],
        kind: str,
        live: Callable[[ProviderAdapter], Awaitable[list[ProviderContentItem]]],
        fallback: Callable[[], list[ProviderContentItem]],
    ) -> FetchResult:
        reason = None
        fetched: Optional[list[ProviderContentItem]] = None

        if tokens is None or not tokens.access_token:
            reason = "no access token"
        else:
            adapter: Optional[ProviderAdapter] = None
            try:
                adapter = self.adapter_factory(tokens)
                fetched = await live(adapter)
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
            finally:
                if adapter is not None:
                    await adapter.close()

        is_fallback = fetched is None
        if is_fallback:
            logger.warning(
                "Live fetch failed, using synthetic content",
                identity_id=identity.id,
                kind=kind,
                reason=reason,
            )
            fetched = fallback()

        source = ContentSource.SYNTHETIC if is_fallback else ContentSource.LIVE
        items = [self._upsert(identity, kind, item, source) for item in fetched]

        self._audit.create_entry(
            actor=AuditActor.SYSTEM,
            action_type=f"content.fetch_{kind}s",
            result=AuditResult.OK,
            identity_id=identity.id,
            response_json={"count": len(items), "source": source},
            error_detail=reason,
        )
        self.db.commit()

        return FetchResult(items=items, is_fallback=is_fallback, fallback_reason=reason)

    def _upsert(
        self,
        identity: Identity,
        kind: str,
        item: ProviderContentItem,
        source: str,
    ) -> ContentItem:
        row = (
            self.db.query(ContentItem)
            .filter(ContentItem.platform_content_id == item.external_id)
            .first()
        )
        if row is None:
            row = ContentItem(platform_content_id=item.external_id, identity_id=identity.id)
            self.db.add(row)

        row.kind = kind
        row.text = item.text
        row.posted_at = item.created_at
        row.like_count = item.like_count
        row.repost_count = item.repost_count
        row.reply_count = item.reply_count
        row.is_reply = item.is_reply
        row.parent_content_id = item.in_reply_to_id
        row.source = source
        row.fetched_at = self.clock()
        self.db.flush()
        return row
