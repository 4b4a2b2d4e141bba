"""Suggestion pipeline.

Sub-operations, each callable on its own:

- generate_search_queries: persona -> discovery queries
- find_candidates: queries -> third-party posts (live search, synthetic fallback)
- draft_reply: persona + post -> {reply, confidence, reasoning}
- record_suggestion: persist a draft as a ``pending`` suggestion
- update_status: the one-way move out of ``pending``

``generate_suggestions`` chains them. A draft that fails only drops that one
suggestion; everything recorded before it stays.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.orm import Session as DBSession

from cadence_core.domain.clock import Clock, utcnow
from cadence_core.domain.errors import (
    ContractError,
    InvalidStatusTransition,
    MalformedQueryList,
    MalformedReplyJSON,
    NoCompletion,
    SuggestionNotFound,
    UpstreamError,
)
from cadence_core.domain.models import (
    AuditActor,
    AuditResult,
    EngagementSuggestion,
    Identity,
    SuggestionStatus,
)
from cadence_core.domain.services.audit import AuditService
from cadence_core.domain.services.inference import InferenceClient
from cadence_core.domain.services.json_extract import (
    extract_json_array,
    extract_json_object,
    json_integer,
)
from cadence_core.observability import get_logger
from cadence_core.providers.base import ProviderAdapter, ProviderContentItem, TokenBundle
from cadence_core.providers.x.synthetic import SyntheticContentGenerator

logger = get_logger(__name__)

QUERY_TEMPERATURE = 0.8
REPLY_TEMPERATURE = 0.7
DEFAULT_QUERY_COUNT = 5
DEFAULT_REPLY_BUDGET = 280
TOPIC_MAX_LENGTH = EngagementSuggestion.__table__.c.topic.type.length


class PersonaLike(Protocol):
    tone: str
    topics: list
    interaction_style: str
    identity_description: str


# =============================================================================
# RESULT TYPES
# =============================================================================


class DraftReply(BaseModel):
    """JSON contract for a drafted reply."""

    model_config = ConfigDict(strict=True)

    reply: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_is_number(cls, v: Any) -> Any:
        return json_integer(v)

    @field_validator("reply")
    @classmethod
    def reply_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reply must not be blank")
        return v


@dataclass
class Candidate:
    """A third-party post found by a discovery query."""

    post: ProviderContentItem
    query: str
    is_fallback: bool = False


@dataclass
class CandidateSearch:
    candidates: list[Candidate]
    is_fallback: bool


@dataclass
class SuggestionRunResult:
    """Outcome of one ``generate_suggestions`` run."""

    queries: list[str]
    suggestions: list[EngagementSuggestion] = field(default_factory=list)
    failed_drafts: int = 0
    is_fallback: bool = False


# =============================================================================
# PROMPTS
# =============================================================================


def _persona_block(persona: PersonaLike) -> str:
    return (
        f"- Tone: {persona.tone}\n"
        f"- Main topics: {', '.join(persona.topics)}\n"
        f"- Interaction style: {persona.interaction_style}\n"
        f"- Identity: {persona.identity_description}"
    )


def build_queries_prompt(persona: PersonaLike, count: int = DEFAULT_QUERY_COUNT) -> str:
    return f"""Based on this user persona, write {count} varied search queries for X that would surface conversations this person would want to join.

Persona:
{_persona_block(persona)}

Cover a mix of:
1. Questions they could answer
2. Discussions in their areas of expertise
3. Community conversations they would engage with
4. Trending topics in their field
5. Chances to share what they know

Respond with ONLY a JSON array of strings:
["query1", "query2", "query3", "query4", "query5"]"""


def build_reply_prompt(
    persona: PersonaLike,
    target_text: str,
    target_author: str,
    budget: int = DEFAULT_REPLY_BUDGET,
) -> str:
    return f"""Draft a reply to the post below, written as this person:

{_persona_block(persona)}

Requirements:
1. Match the persona's tone and style
2. Add something useful to the conversation
3. Stay under {budget} characters
4. Read like a person wrote it

Post by @{target_author}:
"{target_text}"

Respond with ONLY a JSON object:
{{
  "reply": "your drafted reply",
  "confidence": 85,
  "reasoning": "one sentence on why this fits the persona"
}}"""


# =============================================================================
# PIPELINE
# =============================================================================


class SuggestionPipeline:
    """Generates, stores and transitions engagement suggestions."""

    def __init__(
        self,
        db: DBSession,
        inference_client: Optional[InferenceClient] = None,
        adapter_factory: Optional[Callable[[TokenBundle], ProviderAdapter]] = None,
        synthetic: Optional[SyntheticContentGenerator] = None,
        reply_budget: int = DEFAULT_REPLY_BUDGET,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.inference_client = inference_client
        self.adapter_factory = adapter_factory
        self.synthetic = synthetic or SyntheticContentGenerator()
        self.reply_budget = reply_budget
        self.clock = clock
        self._audit = AuditService(db, clock=clock)

    async def _complete(self, prompt: str, temperature: float) -> str:
        if self.inference_client is None:
            raise RuntimeError("SuggestionPipeline was built without a completion client")
        response = await self.inference_client.prompt(prompt, temperature=temperature)
        return response.content

    async def generate_search_queries(
        self, persona: PersonaLike, count: int = DEFAULT_QUERY_COUNT
    ) -> list[str]:
        """Ask the model for discovery queries.

        Raises:
            NoCompletion: Empty answer.
            MalformedQueryList: No array of non-empty strings in the answer.
        """
        raw = await self._complete(build_queries_prompt(persona, count), QUERY_TEMPERATURE)
        if not raw or not raw.strip():
            raise NoCompletion("Completion service returned no content")

        data = extract_json_array(raw)
        if data is None:
            raise MalformedQueryList("No JSON array found in completion", raw_response=raw)
        if not data or not all(isinstance(q, str) and q.strip() for q in data):
            raise MalformedQueryList("Query list must hold non-empty strings", raw_response=raw)
        return [q.strip() for q in data]

    async def find_candidates(
        self,
        identity: Identity,
        tokens: Optional[TokenBundle],
        queries: list[str],
        per_query: int = 3,
    ) -> CandidateSearch:
        """Search each query, falling back to synthetic posts per query.

        The identity's own posts and duplicates across queries are dropped.
        """
        adapter: Optional[ProviderAdapter] = None
        if tokens is not None and tokens.access_token and self.adapter_factory:
            try:
                adapter = self.adapter_factory(tokens)
            except Exception as e:
                logger.warning(
                    "Could not build search adapter, using synthetic posts",
                    identity_id=identity.id,
                    reason=f"{type(e).__name__}: {e}",
                )

        seen: set[str] = set()
        candidates: list[Candidate] = []
        any_fallback = False
        try:
            for query in queries:
                results: Optional[list[ProviderContentItem]] = None
                if adapter is not None:
                    try:
                        results = await adapter.search_recent(query, limit=per_query)
                    except Exception as e:
                        logger.warning(
                            "Live search failed, using synthetic posts",
                            identity_id=identity.id,
                            query=query,
                            reason=f"{type(e).__name__}: {e}",
                        )
                fallback = results is None
                if fallback:
                    results = self.synthetic.search_results(query, limit=per_query)
                    any_fallback = True

                for post in results:
                    if post.external_id in seen or post.author_id == identity.platform_user_id:
                        continue
                    seen.add(post.external_id)
                    candidates.append(Candidate(post=post, query=query, is_fallback=fallback))
        finally:
            if adapter is not None:
                await adapter.close()

        return CandidateSearch(candidates=candidates, is_fallback=any_fallback)

    async def draft_reply(
        self, persona: PersonaLike, target_text: str, target_author: str
    ) -> DraftReply:
        """Draft a reply in the persona's voice.

        Raises:
            NoCompletion: Empty answer.
            MalformedReplyJSON: The answer did not match the reply contract.
        """
        raw = await self._complete(
            build_reply_prompt(persona, target_text, target_author, self.reply_budget),
            REPLY_TEMPERATURE,
        )
        if not raw or not raw.strip():
            raise NoCompletion("Completion service returned no content")

        data = extract_json_object(raw)
        if data is None:
            raise MalformedReplyJSON("No JSON object found in completion", raw_response=raw)
        try:
            draft = DraftReply.model_validate(data)
        except ValidationError as e:
            raise MalformedReplyJSON(f"Reply JSON failed validation: {e}", raw_response=raw) from e

        if len(draft.reply) > self.reply_budget:
            logger.warning(
                "Drafted reply exceeds budget",
                length=len(draft.reply),
                budget=self.reply_budget,
            )
        return draft

    def record_suggestion(
        self,
        identity: Identity,
        content: ProviderContentItem,
        draft: DraftReply,
        topic: Optional[str],
        engagement_count: int,
    ) -> EngagementSuggestion:
        """Persist a drafted reply as a pending suggestion."""
        now = self.clock()
        suggestion = EngagementSuggestion(
            identity_id=identity.id,
            target_content_id=content.external_id,
            target_author_username=content.author_username or "unknown",
            target_content_text=content.text,
            suggested_reply=draft.reply,
            confidence=draft.confidence,
            reasoning=draft.reasoning or None,
            topic=topic[:TOPIC_MAX_LENGTH] if topic else None,
            engagement_count=engagement_count,
            status=SuggestionStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.db.add(suggestion)
        self.db.commit()
        return suggestion

    def update_status(
        self, identity: Identity, suggestion_id: int, new_status: str
    ) -> EngagementSuggestion:
        """Move a pending suggestion to a terminal status.

        Raises:
            SuggestionNotFound: Unknown id, or owned by another identity.
            InvalidStatusTransition: Not pending, or ``new_status`` is not
                a terminal status.
        """
        suggestion = self.db.get(EngagementSuggestion, suggestion_id)
        if suggestion is None or suggestion.identity_id != identity.id:
            raise SuggestionNotFound(f"Suggestion {suggestion_id} not found")

        if (
            suggestion.status != SuggestionStatus.PENDING
            or new_status not in SuggestionStatus.TERMINAL
        ):
            raise InvalidStatusTransition(suggestion.status, new_status)

        # Only a row that is still pending is written
        updated = (
            self.db.query(EngagementSuggestion)
            .filter(
                EngagementSuggestion.id == suggestion.id,
                EngagementSuggestion.status == SuggestionStatus.PENDING,
            )
            .update(
                {"status": new_status, "updated_at": self.clock()},
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.refresh(suggestion)
            raise InvalidStatusTransition(suggestion.status, new_status)
        self.db.refresh(suggestion)

        self._audit.create_entry(
            actor=AuditActor.USER,
            action_type="suggestion.update_status",
            result=AuditResult.OK,
            identity_id=identity.id,
            entity_type="engagement_suggestion",
            entity_id=suggestion.id,
            request_json={"from": SuggestionStatus.PENDING, "to": new_status},
        )
        self.db.commit()
        return suggestion

    def list_suggestions(
        self, identity: Identity, status: Optional[str] = None
    ) -> list[EngagementSuggestion]:
        query = self.db.query(EngagementSuggestion).filter(
            EngagementSuggestion.identity_id == identity.id
        )
        if status:
            query = query.filter(EngagementSuggestion.status == status)
        return query.order_by(
            EngagementSuggestion.created_at.desc(), EngagementSuggestion.id.desc()
        ).all()

    async def generate_suggestions(
        self,
        identity: Identity,
        tokens: Optional[TokenBundle],
        persona: PersonaLike,
        max_suggestions: int = 5,
    ) -> SuggestionRunResult:
        """Run queries -> candidates -> drafts -> records.

        Query generation failures propagate. Per-candidate draft failures
        are counted and skipped.
        """
        queries = await self.generate_search_queries(persona)
        search = await self.find_candidates(identity, tokens, queries)
        result = SuggestionRunResult(queries=queries, is_fallback=search.is_fallback)

        already_suggested = {
            target_id
            for (target_id,) in self.db.query(EngagementSuggestion.target_content_id)
            .filter(EngagementSuggestion.identity_id == identity.id)
            .all()
        }

        for candidate in search.candidates:
            if len(result.suggestions) >= max_suggestions:
                break
            post = candidate.post
            if post.external_id in already_suggested:
                continue
            try:
                draft = await self.draft_reply(
                    persona, post.text, post.author_username or "unknown"
                )
            except (ContractError, UpstreamError) as e:
                result.failed_drafts += 1
                logger.warning(
                    "Draft failed, skipping candidate",
                    identity_id=identity.id,
                    target_content_id=post.external_id,
                    error_code=e.code,
                )
                continue

            result.suggestions.append(
                self.record_suggestion(
                    identity,
                    post,
                    draft,
                    topic=candidate.query,
                    engagement_count=post.engagement_count,
                )
            )

        logger.info(
            "Suggestion run finished",
            identity_id=identity.id,
            created_count=len(result.suggestions),
            failed_drafts=result.failed_drafts,
            is_fallback=result.is_fallback,
        )
        return result
