"""Persona build workflow.

Runs fetch-posts, fetch-replies and analysis in order, reporting progress
as it goes:

    0 scraping -> 25 posts fetched -> 50 replies fetched -> 75 analyzing -> 100 complete

The whole run is bounded by a timeout. Cancelling the awaiting task stops
the run between steps; the persona is written only by the final analysis
step, so an abandoned run leaves no partial persona behind.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from cadence_core.domain.errors import CadenceError, UpstreamTimeout
from cadence_core.domain.models import Identity, Persona
from cadence_core.domain.services.content_fetcher import ContentFetcher, FetchResult
from cadence_core.domain.services.persona import PersonaAnalysisEngine
from cadence_core.observability import RequestContext, get_logger
from cadence_core.providers.base import TokenBundle

logger = get_logger(__name__)


class BuildStage(str, Enum):
    SCRAPING = "scraping"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressUpdate:
    stage: BuildStage
    progress: int
    message: str


@dataclass
class PersonaBuildResult:
    persona: Persona
    posts: FetchResult
    replies: FetchResult
    progress: list[ProgressUpdate] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.posts.is_fallback or self.replies.is_fallback


ProgressCallback = Callable[[ProgressUpdate], None]


class PersonaBuildWorkflow:
    """Orchestrates content fetch and persona analysis for one identity."""

    def __init__(
        self,
        fetcher: ContentFetcher,
        engine: PersonaAnalysisEngine,
        timeout_seconds: Optional[float] = 180.0,
    ):
        self.fetcher = fetcher
        self.engine = engine
        self.timeout_seconds = timeout_seconds

    async def run(
        self,
        identity: Identity,
        tokens: Optional[TokenBundle],
        on_progress: Optional[ProgressCallback] = None,
    ) -> PersonaBuildResult:
        """Build the identity's persona.

        Raises:
            UpstreamTimeout: The run exceeded ``timeout_seconds``.
            CadenceError: Any stage failure, after an ``error`` progress update.
        """
        history: list[ProgressUpdate] = []

        def report(stage: BuildStage, progress: int, message: str) -> None:
            update = ProgressUpdate(stage=stage, progress=progress, message=message)
            history.append(update)
            if on_progress is not None:
                on_progress(update)

        context = RequestContext(identity_id=identity.id)
        try:
            result = await asyncio.wait_for(
                self._run(identity, tokens, report), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            error = UpstreamTimeout(f"Persona build exceeded {self.timeout_seconds}s")
            report(BuildStage.ERROR, history[-1].progress if history else 0, error.user_message)
            logger.warning("Persona build timed out", context=context)
            raise error from e
        except CadenceError as e:
            report(BuildStage.ERROR, history[-1].progress if history else 0, e.user_message)
            logger.warning("Persona build failed", context=context, error_code=e.code)
            raise

        result.progress = history
        return result

    async def _run(
        self,
        identity: Identity,
        tokens: Optional[TokenBundle],
        report: Callable[[BuildStage, int, str], None],
    ) -> PersonaBuildResult:
        report(BuildStage.SCRAPING, 0, "Fetching your posts...")
        posts = await self.fetcher.fetch_posts(identity, tokens)

        report(BuildStage.SCRAPING, 25, "Fetching your replies...")
        replies = await self.fetcher.fetch_replies(identity, tokens)

        report(BuildStage.SCRAPING, 50, "Content collected.")
        report(BuildStage.ANALYZING, 75, "Analyzing your voice...")
        persona = await self.engine.build_persona(identity, posts.items, replies.items)

        report(BuildStage.COMPLETE, 100, "Persona ready.")
        return PersonaBuildResult(persona=persona, posts=posts, replies=replies)
