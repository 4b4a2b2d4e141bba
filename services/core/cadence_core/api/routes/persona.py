"""Persona routes."""

from fastapi import APIRouter, HTTPException, status

from cadence_core.api.deps import (
    AdapterFactoryDep,
    CurrentIdentity,
    CurrentTokens,
    DBSession,
    InferenceDep,
    SettingsDep,
)
from cadence_core.api.errors import http_error
from cadence_core.api.schemas.persona import (
    PersonaBuildResponse,
    PersonaResponse,
    ProgressResponse,
)
from cadence_core.domain.errors import CadenceError
from cadence_core.domain.models import Persona
from cadence_core.domain.services.content_fetcher import ContentFetcher
from cadence_core.domain.services.persona import PersonaAnalysisEngine
from cadence_core.domain.services.persona_workflow import PersonaBuildWorkflow

router = APIRouter(prefix="/persona", tags=["persona"])


@router.post("/build", response_model=PersonaBuildResponse)
async def build_persona(
    db: DBSession,
    settings: SettingsDep,
    identity: CurrentIdentity,
    tokens: CurrentTokens,
    inference: InferenceDep,
    adapter_factory: AdapterFactoryDep,
) -> PersonaBuildResponse:
    """Fetch content and (re)build the current identity's persona."""
    workflow = PersonaBuildWorkflow(
        fetcher=ContentFetcher(db, adapter_factory, limit=settings.content_fetch_limit),
        engine=PersonaAnalysisEngine(db, inference),
        timeout_seconds=settings.pipeline_timeout_seconds,
    )
    try:
        result = await workflow.run(identity, tokens)
    except CadenceError as e:
        raise http_error(e) from e

    return PersonaBuildResponse(
        persona=PersonaResponse.model_validate(result.persona),
        progress=[
            ProgressResponse(stage=p.stage.value, progress=p.progress, message=p.message)
            for p in result.progress
        ],
        posts_fallback=result.posts.is_fallback,
        replies_fallback=result.replies.is_fallback,
    )


@router.get("", response_model=PersonaResponse)
async def get_persona(db: DBSession, identity: CurrentIdentity) -> PersonaResponse:
    persona = db.query(Persona).filter(Persona.identity_id == identity.id).first()
    if persona is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No persona built yet",
        )
    return PersonaResponse.model_validate(persona)
