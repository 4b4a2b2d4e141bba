"""Engagement suggestion schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SuggestionResponse(BaseModel):
    id: int
    target_content_id: str
    target_author_username: str
    target_content_text: str
    suggested_reply: str
    confidence: int
    reasoning: Optional[str] = None
    topic: Optional[str] = None
    engagement_count: int
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SuggestionListResponse(BaseModel):
    suggestions: list[SuggestionResponse]


class GenerateSuggestionsRequest(BaseModel):
    max_suggestions: Optional[int] = Field(default=None, ge=1, le=20)


class GenerateSuggestionsResponse(BaseModel):
    queries: list[str]
    suggestions: list[SuggestionResponse]
    failed_drafts: int
    is_fallback: bool


class StatusUpdateRequest(BaseModel):
    status: Literal["approved", "rejected", "posted"]
