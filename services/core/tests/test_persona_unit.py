"""Unit tests for the persona analysis engine."""

import json

import pytest

from cadence_core.domain.errors import MalformedPersonaJSON, NoCompletion
from cadence_core.domain.models import AuditLog, Persona
from cadence_core.domain.services.persona import (
    PERSONA_TEMPERATURE,
    PersonaAnalysisEngine,
    parse_persona_output,
)
from tests.factories import PERSONA_JSON, chat_response, content_item


POSTS = [content_item("p1", "Shipping weekly is my whole strategy.")]
REPLIES = [content_item("r1", "Agreed, pricing is the hard part.", in_reply_to_id="x")]


class TestParsePersonaOutput:
    """Tests for parse_persona_output."""

    def test_valid_object_in_prose(self):
        raw = 'Here is the analysis:\n```json\n{"tone": "dry", "topics": ["ml"], ' \
              '"interactionStyle": "terse", "identity": "researcher", "confidence": 64}\n```'

        output = parse_persona_output(raw)

        assert output.tone == "dry"
        assert output.topics == ["ml"]
        assert output.interaction_style == "terse"
        assert output.identity == "researcher"
        assert output.confidence == 64

    def test_main_topics_alias(self):
        data = dict(PERSONA_JSON)
        data["mainTopics"] = data.pop("topics")

        assert parse_persona_output(json.dumps(data)).topics == PERSONA_JSON["topics"]

    def test_empty_completion(self):
        with pytest.raises(NoCompletion):
            parse_persona_output("   ")

    def test_no_json(self):
        with pytest.raises(MalformedPersonaJSON):
            parse_persona_output("I'd rather not.")

    @pytest.mark.parametrize(
        "patch",
        [
            {"confidence": "80"},
            {"confidence": 0},
            {"confidence": 101},
            {"confidence": 80.5},
            {"topics": []},
            {"topics": ["  "]},
            {"topics": "startups"},
            {"tone": ""},
            {"tone": None},
        ],
    )
    def test_contract_violations(self, patch):
        data = {**PERSONA_JSON, **patch}

        with pytest.raises(MalformedPersonaJSON):
            parse_persona_output(json.dumps(data))

    def test_missing_field(self):
        data = dict(PERSONA_JSON)
        del data["identity"]

        with pytest.raises(MalformedPersonaJSON):
            parse_persona_output(json.dumps(data))


class TestPersonaAnalysisEngine:
    """Tests for PersonaAnalysisEngine."""

    @pytest.mark.asyncio
    async def test_build_persona_stores_result(self, db_session, identity, fake_inference):
        """A valid answer is stored for the identity."""
        fake_inference.prompt.return_value = chat_response(PERSONA_JSON)
        engine = PersonaAnalysisEngine(db_session, fake_inference)

        persona = await engine.build_persona(identity, POSTS, REPLIES)

        assert persona.identity_id == identity.id
        assert persona.tone == "casual, optimistic"
        assert persona.topics == ["startups", "ai tools", "product"]
        assert persona.interaction_style == "supportive"
        assert persona.identity_description == "indie founder"
        assert persona.confidence == 80
        assert persona.model_info_json["model_name"] == "test-model"

        prompt = fake_inference.prompt.await_args.args[0]
        assert "Shipping weekly" in prompt
        assert "pricing is the hard part" in prompt
        assert fake_inference.prompt.await_args.kwargs["temperature"] == PERSONA_TEMPERATURE

    @pytest.mark.asyncio
    async def test_rebuild_replaces_every_field(self, db_session, identity, fake_inference):
        """A second build overwrites the persona instead of merging."""
        engine = PersonaAnalysisEngine(db_session, fake_inference)
        fake_inference.prompt.return_value = chat_response(PERSONA_JSON)
        first = await engine.build_persona(identity, POSTS, REPLIES)

        fake_inference.prompt.return_value = chat_response(
            {
                "tone": "formal",
                "topics": ["compilers"],
                "interactionStyle": "lectures",
                "identity": "professor",
                "confidence": 40,
            }
        )
        second = await engine.build_persona(identity, POSTS, REPLIES)

        assert second.id == first.id
        assert db_session.query(Persona).count() == 1
        assert second.topics == ["compilers"]
        assert second.confidence == 40

    @pytest.mark.asyncio
    async def test_malformed_answer_leaves_existing_persona(self, db_session, identity, fake_inference):
        engine = PersonaAnalysisEngine(db_session, fake_inference)
        fake_inference.prompt.return_value = chat_response(PERSONA_JSON)
        await engine.build_persona(identity, POSTS, REPLIES)

        fake_inference.prompt.return_value = chat_response('{"tone": "only tone"}')
        with pytest.raises(MalformedPersonaJSON) as exc_info:
            await engine.build_persona(identity, POSTS, REPLIES)

        assert exc_info.value.raw_response == '{"tone": "only tone"}'
        assert engine.get_persona(identity).tone == "casual, optimistic"

    @pytest.mark.asyncio
    async def test_empty_answer_stores_nothing(self, db_session, identity, fake_inference):
        fake_inference.prompt.return_value = chat_response("")

        with pytest.raises(NoCompletion):
            await PersonaAnalysisEngine(db_session, fake_inference).build_persona(
                identity, POSTS, REPLIES
            )

        assert db_session.query(Persona).count() == 0
        entry = db_session.query(AuditLog).filter(AuditLog.action_type == "persona.build").one()
        assert entry.result == "error"
