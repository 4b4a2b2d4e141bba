"""Persona schemas."""

from datetime import datetime

from pydantic import BaseModel


class PersonaResponse(BaseModel):
    id: int
    identity_id: int
    tone: str
    topics: list[str]
    interaction_style: str
    identity_description: str
    confidence: int
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProgressResponse(BaseModel):
    stage: str
    progress: int
    message: str


class PersonaBuildResponse(BaseModel):
    persona: PersonaResponse
    progress: list[ProgressResponse]
    posts_fallback: bool
    replies_fallback: bool
