"""Deterministic synthetic content.

Used when the live API is unavailable so the persona and suggestion stages
still have something to work on. Output depends only on the seed inputs:
the same user id (or query) always yields the same items, which keeps
re-runs idempotent once items are upserted by id.
"""

import hashlib
import random
from datetime import datetime, timedelta
from typing import Optional

from cadence_core.providers.base import ProviderContentItem

ANCHOR = datetime(2024, 1, 1, 12, 0, 0)

SUBJECTS = [
    "shipping small features every week",
    "talking to users before writing code",
    "pricing an early-stage product",
    "using AI assistants in a daily workflow",
    "writing in public",
    "keeping a side project alive",
    "choosing boring technology",
    "onboarding the first hundred customers",
]

POST_TEMPLATES = [
    "Lesson from this week: {subject} beats almost everything else I tried.",
    "Hot take: most advice about {subject} skips the hard part, which is consistency.",
    "Thread-worthy thought on {subject}: start smaller than feels comfortable.",
    "Still learning a lot about {subject}. What worked for you?",
]

REPLY_TEMPLATES = [
    "Agree on this. {subject} changed how I plan my weeks.",
    "Good point. I'd add that {subject} only works if you measure it.",
    "We tried something similar with {subject} and the results surprised us.",
]

AUTHORS = ["buildinpublic_dev", "saas_sarah", "founder_notes", "ml_maker", "indie_ops"]


def _rng(*parts: str) -> random.Random:
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


class SyntheticContentGenerator:
    """Builds stable placeholder posts, replies and search results."""

    def __init__(self, count: int = 3, anchor: Optional[datetime] = None):
        self.count = count
        self.anchor = anchor or ANCHOR

    def posts(self, user_id: str) -> list[ProviderContentItem]:
        rng = _rng("posts", user_id)
        return [
            self._item(
                rng,
                external_id=f"synthetic-post-{user_id}-{i}",
                text=rng.choice(POST_TEMPLATES).format(subject=rng.choice(SUBJECTS)),
                author_id=user_id,
                hours_ago=i * 20,
            )
            for i in range(self.count)
        ]

    def replies(self, user_id: str) -> list[ProviderContentItem]:
        rng = _rng("replies", user_id)
        items = []
        for i in range(max(1, self.count - 1)):
            item = self._item(
                rng,
                external_id=f"synthetic-reply-{user_id}-{i}",
                text=rng.choice(REPLY_TEMPLATES).format(subject=rng.choice(SUBJECTS)),
                author_id=user_id,
                hours_ago=i * 30 + 5,
            )
            item.in_reply_to_id = f"synthetic-parent-{user_id}-{i}"
            items.append(item)
        return items

    def search_results(self, query: str, limit: int = 3) -> list[ProviderContentItem]:
        rng = _rng("search", query)
        digest = hashlib.sha256(query.encode("utf-8")).hexdigest()[:12]
        items = []
        for i in range(limit):
            author = rng.choice(AUTHORS)
            item = self._item(
                rng,
                external_id=f"synthetic-search-{digest}-{i}",
                text=f"Curious how others approach {query}. "
                + rng.choice(POST_TEMPLATES).format(subject=rng.choice(SUBJECTS)),
                author_id=f"synthetic-author-{author}",
                hours_ago=i * 3 + 1,
            )
            item.author_username = author
            items.append(item)
        return items

    def _item(
        self,
        rng: random.Random,
        external_id: str,
        text: str,
        author_id: str,
        hours_ago: int,
    ) -> ProviderContentItem:
        return ProviderContentItem(
            external_id=external_id,
            text=text,
            author_id=author_id,
            created_at=self.anchor - timedelta(hours=hours_ago),
            like_count=rng.randint(5, 200),
            repost_count=rng.randint(0, 50),
            reply_count=rng.randint(0, 40),
        )
