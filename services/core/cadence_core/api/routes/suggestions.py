"""Engagement suggestion routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from cadence_core.api.deps import (
    AdapterFactoryDep,
    CurrentIdentity,
    CurrentTokens,
    DBSession,
    InferenceDep,
    SettingsDep,
)
from cadence_core.api.errors import http_error
from cadence_core.api.schemas.suggestions import (
    GenerateSuggestionsRequest,
    GenerateSuggestionsResponse,
    StatusUpdateRequest,
    SuggestionListResponse,
    SuggestionResponse,
)
from cadence_core.domain.errors import CadenceError
from cadence_core.domain.models import Persona, SuggestionStatus
from cadence_core.domain.services.suggestions import SuggestionPipeline

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


@router.post("/generate", response_model=GenerateSuggestionsResponse)
async def generate_suggestions(
    db: DBSession,
    settings: SettingsDep,
    identity: CurrentIdentity,
    tokens: CurrentTokens,
    inference: InferenceDep,
    adapter_factory: AdapterFactoryDep,
    body: Optional[GenerateSuggestionsRequest] = None,
) -> GenerateSuggestionsResponse:
    """Draft new suggestions from the current identity's persona."""
    persona = db.query(Persona).filter(Persona.identity_id == identity.id).first()
    if persona is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Build a persona before generating suggestions",
        )

    pipeline = SuggestionPipeline(
        db,
        inference,
        adapter_factory=adapter_factory,
        reply_budget=settings.suggestion_reply_budget,
    )
    limit = (body.max_suggestions if body else None) or settings.max_suggestions
    try:
        result = await pipeline.generate_suggestions(identity, tokens, persona, limit)
    except CadenceError as e:
        raise http_error(e) from e

    return GenerateSuggestionsResponse(
        queries=result.queries,
        suggestions=[SuggestionResponse.model_validate(s) for s in result.suggestions],
        failed_drafts=result.failed_drafts,
        is_fallback=result.is_fallback,
    )


@router.get("", response_model=SuggestionListResponse)
async def list_suggestions(
    db: DBSession,
    identity: CurrentIdentity,
    status_filter: Optional[str] = Query(default=None, alias="status"),
) -> SuggestionListResponse:
    if status_filter is not None and status_filter not in SuggestionStatus.ALL:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"status must be one of {', '.join(SuggestionStatus.ALL)}",
        )
    pipeline = SuggestionPipeline(db)
    return SuggestionListResponse(
        suggestions=[
            SuggestionResponse.model_validate(s)
            for s in pipeline.list_suggestions(identity, status_filter)
        ]
    )


@router.patch("/{suggestion_id}", response_model=SuggestionResponse)
async def update_suggestion_status(
    suggestion_id: int,
    body: StatusUpdateRequest,
    db: DBSession,
    identity: CurrentIdentity,
) -> SuggestionResponse:
    """Approve, reject or mark a pending suggestion as posted."""
    pipeline = SuggestionPipeline(db)
    try:
        suggestion = pipeline.update_status(identity, suggestion_id, body.status)
    except CadenceError as e:
        raise http_error(e) from e
    return SuggestionResponse.model_validate(suggestion)
