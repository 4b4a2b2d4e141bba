"""Persona analysis engine.

Turns an identity's posts and replies into a voice persona:

1. Join all texts into one corpus
2. Ask the completion service for a single JSON object (low temperature)
3. Pull the first balanced ``{...}`` span out of the free-text answer
4. Validate it against ``PersonaOutput``
5. Upsert the Persona for the identity, replacing every field

Only a fully validated persona is ever written. There is no automatic retry;
callers decide whether to run the build again.

Usage:
    engine = PersonaAnalysisEngine(db=session, inference_client=client)
    persona = await engine.build_persona(identity, posts, replies)
"""

from typing import Any, Optional, Protocol, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.orm import Session as DBSession

from cadence_core.domain.clock import Clock, utcnow
from cadence_core.domain.errors import MalformedPersonaJSON, NoCompletion
from cadence_core.domain.models import AuditActor, AuditResult, Identity, Persona
from cadence_core.domain.services.audit import AuditService
from cadence_core.domain.services.inference import InferenceClient
from cadence_core.domain.services.json_extract import extract_json_object, json_integer
from cadence_core.observability import get_logger

logger = get_logger(__name__)

PERSONA_TEMPERATURE = 0.3


class HasText(Protocol):
    text: str


# =============================================================================
# OUTPUT SCHEMA
# =============================================================================


class PersonaOutput(BaseModel):
    """JSON contract the model must satisfy.

    ``mainTopics`` is accepted as an alias of ``topics``.
    """

    model_config = ConfigDict(strict=True, populate_by_name=True)

    tone: str = Field(..., min_length=1)
    topics: list[str] = Field(
        ..., min_length=1, validation_alias=AliasChoices("topics", "mainTopics")
    )
    interaction_style: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("interactionStyle", "interaction_style")
    )
    identity: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=1, le=100)

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_is_number(cls, v: Any) -> Any:
        return json_integer(v)

    @field_validator("topics")
    @classmethod
    def topics_not_blank(cls, v: list[str]) -> list[str]:
        topics = [t.strip() for t in v if t.strip()]
        if not topics:
            raise ValueError("topics must contain at least one label")
        return topics


def build_persona_prompt(corpus: str) -> str:
    return f"""Analyze the following posts and replies written by one user and describe their persona.

Content to analyze:
{corpus}

Respond with ONLY a JSON object in exactly this format:
{{
  "tone": "description of their communication tone",
  "topics": ["topic1", "topic2", "topic3"],
  "interactionStyle": "how they interact with others",
  "identity": "their professional or personal identity",
  "confidence": 85
}}

Guidelines:
- List at least three topics, most prominent first
- confidence is an integer from 1 to 100 reflecting how much usable content there was"""


def parse_persona_output(raw: str) -> PersonaOutput:
    """Validate a raw completion against the persona contract.

    Raises:
        NoCompletion: ``raw`` is empty.
        MalformedPersonaJSON: No object found, or fields missing/wrong-typed.
    """
    if not raw or not raw.strip():
        raise NoCompletion("Completion service returned no content")

    data = extract_json_object(raw)
    if data is None:
        raise MalformedPersonaJSON("No JSON object found in completion", raw_response=raw)

    try:
        return PersonaOutput.model_validate(data)
    except ValidationError as e:
        raise MalformedPersonaJSON(f"Persona JSON failed validation: {e}", raw_response=raw) from e


# =============================================================================
# ENGINE
# =============================================================================


class PersonaAnalysisEngine:
    """Builds and stores personas."""

    def __init__(
        self,
        db: DBSession,
        inference_client: InferenceClient,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.inference_client = inference_client
        self.clock = clock
        self._audit = AuditService(db, clock=clock)

    async def build_persona(
        self,
        identity: Identity,
        posts: Sequence[HasText],
        replies: Sequence[HasText],
    ) -> Persona:
        """Analyze content and upsert the identity's persona.

        Raises:
            NoCompletion: The completion service returned empty content.
            MalformedPersonaJSON: The answer did not match the contract.
            InferenceError: The completion call itself failed.
        """
        corpus = "\n\n".join(item.text for item in [*posts, *replies] if item.text)
        response = await self.inference_client.prompt(
            build_persona_prompt(corpus), temperature=PERSONA_TEMPERATURE
        )

        try:
            output = parse_persona_output(response.content)
        except (NoCompletion, MalformedPersonaJSON) as e:
            logger.warning(
                "Persona output rejected",
                identity_id=identity.id,
                error_code=e.code,
            )
            self._audit.create_entry(
                actor=AuditActor.AGENT,
                action_type="persona.build",
                result=AuditResult.ERROR,
                identity_id=identity.id,
                error_detail=str(e),
            )
            self.db.commit()
            raise

        persona = self._upsert(identity, output, response.model_info.to_dict())
        logger.info(
            "Persona stored",
            identity_id=identity.id,
            confidence=persona.confidence,
            topic_count=len(persona.topics),
        )
        return persona

    def get_persona(self, identity: Identity) -> Optional[Persona]:
        return self.db.query(Persona).filter(Persona.identity_id == identity.id).first()

    def _upsert(self, identity: Identity, output: PersonaOutput, model_info: dict) -> Persona:
        now = self.clock()
        persona = self.get_persona(identity)
        if persona is None:
            persona = Persona(identity_id=identity.id, created_at=now)
            self.db.add(persona)

        persona.tone = output.tone
        persona.topics = list(output.topics)
        persona.interaction_style = output.interaction_style
        persona.identity_description = output.identity
        persona.confidence = output.confidence
        persona.model_info_json = model_info
        persona.updated_at = now
        self.db.flush()

        self._audit.create_entry(
            actor=AuditActor.AGENT,
            action_type="persona.build",
            result=AuditResult.OK,
            identity_id=identity.id,
            entity_type="persona",
            entity_id=persona.id,
            response_json={"confidence": output.confidence, "topics": list(output.topics)},
        )
        self.db.commit()
        return persona
