import asyncio

import pytest

from archai.errors import ExtractionError, ModelResponseError
from archai.interview.conversation_history import ConversationTurn, MessageRole
from archai.interview.extractor import (
    CONFIRMATION_QUESTION,
    FIELD_QUESTIONS,
    START_GENERATION_REPLY,
    LLMExtractor,
    RuleBasedExtractor,
    create_extractor,
    is_greeting,
)
from archai.interview.stage_coordinator import Stage
from archai.models import RequirementRecord

from conftest import FakeLLMClient, complete_record


ANSWERS = [
    "A cozy lakeside retreat",
    "About 1800",
    "Half an acre",
    "Three bedrooms and two bathrooms",
    "Around four hundred thousand",
    "Craftsman",
    "We are a couple who love hosting friends",
    "Single-level living",
    "Cedar and stone",
    "Earthy and calm",
]


def extract(extractor, requirements, message, stage, history=()):
    return asyncio.run(extractor.extract(list(history), requirements, message, stage))


def test_rules_sequential_answers_reach_confirmation():
    extractor = RuleBasedExtractor()
    record = RequirementRecord()
    stage = Stage.VISION

    for answer in ANSWERS:
        assert stage.is_field
        result = extract(extractor, record, answer, stage)
        assert result.changed_fields == [stage.field_name]
        record, stage = result.requirements, result.next_stage

    assert stage == Stage.CONFIRMATION
    assert record.is_complete
    assert record.vision == ANSWERS[0]
    assert record.aesthetic_preferences == ANSWERS[-1]
    assert CONFIRMATION_QUESTION in result.reply


def test_rules_fill_several_fields_in_one_message():
    message = "A modern home, 2000 sq ft, 3 bedrooms and 2 baths, budget $500k"
    result = extract(RuleBasedExtractor(), RequirementRecord(), message, Stage.VISION)

    assert result.requirements.vision == message
    assert result.requirements.square_footage == "2000 sq ft"
    assert result.requirements.rooms == "3 bedrooms and 2 baths"
    assert result.requirements.budget == "$500k"
    assert result.next_stage == Stage.LOT_SIZE
    assert FIELD_QUESTIONS["lot_size"] in result.reply


def test_rules_patterns_never_overwrite_answers():
    record = RequirementRecord().with_user_fields({"vision": "A barn conversion", "rooms": "2 bedrooms"})
    result = extract(RuleBasedExtractor(), record, "2500 square feet, maybe 4 bedrooms", Stage.SQUARE_FOOTAGE)

    assert result.requirements.square_footage == "2500 square feet, maybe 4 bedrooms"
    assert result.requirements.rooms == "2 bedrooms"
    assert result.changed_fields == ["square_footage"]


@pytest.mark.parametrize("message", ["hello", "Hi there!", "good morning", "  "])
def test_rules_greeting_changes_nothing(message):
    record = RequirementRecord(vision="A cabin")
    result = extract(RuleBasedExtractor(), record, message, Stage.SQUARE_FOOTAGE)

    assert result.requirements is record
    assert result.changed_fields == []
    assert result.next_stage == Stage.SQUARE_FOOTAGE
    assert FIELD_QUESTIONS["square_footage"] in result.reply


def test_rules_confirmation_yes_and_no():
    record = complete_record()
    extractor = RuleBasedExtractor()

    yes = extract(extractor, record, "Yes, looks good", Stage.CONFIRMATION)
    assert yes.confirmed
    assert yes.next_stage == Stage.GENERATION

    no = extract(extractor, record, "No, the budget is wrong", Stage.CONFIRMATION)
    assert not no.confirmed
    assert no.requirements is record
    assert no.next_stage == Stage.CONFIRMATION
    assert "/set" in no.reply


def test_is_greeting():
    assert is_greeting("Hey")
    assert not is_greeting("Hey, I want a 3 bedroom house")


def llm_reply(response="Noted!", requirements=None, next_stage="lotSize"):
    return {"response": response, "requirements": requirements or {}, "nextStage": next_stage}


def test_llm_fills_several_fields_and_drops_derived_keys():
    client = FakeLLMClient([llm_reply(requirements={
        "vision": "A modern family home",
        "squareFootage": "2000",
        "rooms": None,
        "floorPlanImage": "data:image/png;base64,AAAA",
    })])
    result = extract(LLMExtractor(client), RequirementRecord(), "A modern 2000 sq ft family home", Stage.VISION)

    assert result.changed_fields == ["vision", "square_footage"]
    assert result.requirements.rooms is None
    assert result.requirements.floor_plan_image is None
    assert result.next_stage == Stage.LOT_SIZE
    assert result.reply == "Noted!"
    assert "squareFootage" in client.calls[0]["system"]


def test_llm_correction_at_confirmation_updates_only_named_field():
    record = complete_record()
    client = FakeLLMClient([llm_reply(
        response="Updated to 4 bedrooms. Does everything look right?",
        requirements={"rooms": "4 bedrooms, 2 baths", "budget": "$500k"},
        next_stage="confirmation",
    )])
    result = extract(LLMExtractor(client), record, "Actually make it 4 bedrooms", Stage.CONFIRMATION)

    assert result.changed_fields == ["rooms"]
    assert result.requirements.budget == record.budget
    assert result.next_stage == Stage.CONFIRMATION
    assert not result.confirmed


def test_llm_confirmation_agreement():
    client = FakeLLMClient([llm_reply(response="Starting now.", next_stage="generation")])
    result = extract(LLMExtractor(client), complete_record(), "Yes!", Stage.CONFIRMATION)

    assert result.confirmed
    assert result.next_stage == Stage.GENERATION


def test_llm_confirmation_follows_the_user_not_the_model():
    client = FakeLLMClient([
        llm_reply(response="Anything else?", next_stage="confirmation"),
        llm_reply(response="Starting now.", next_stage="generation"),
    ])
    extractor = LLMExtractor(client)

    yes = extract(extractor, complete_record(), "yes", Stage.CONFIRMATION)
    assert yes.confirmed
    assert yes.reply == START_GENERATION_REPLY

    more = extract(extractor, complete_record(), "tell me more", Stage.CONFIRMATION)
    assert not more.confirmed


def test_llm_blank_values_do_not_overwrite_or_answer():
    record = RequirementRecord().with_user_fields({"vision": "A cabin", "squareFootage": "900"})
    client = FakeLLMClient([llm_reply(requirements={"lotSize": "1 acre", "squareFootage": "", "rooms": "  "})])

    result = extract(LLMExtractor(client), record, "It sits on a 1 acre lot", Stage.LOT_SIZE)

    assert result.requirements.square_footage == "900"
    assert result.requirements.rooms is None
    assert result.requirements.lot_size == "1 acre"
    assert result.changed_fields == ["lot_size"]


def test_llm_unknown_stage_falls_back_to_first_unset_field():
    client = FakeLLMClient([llm_reply(requirements={"vision": "A loft"}, next_stage="blueprints")])
    result = extract(LLMExtractor(client), RequirementRecord(), "A loft", Stage.VISION)

    assert result.next_stage == Stage.SQUARE_FOOTAGE


def test_llm_history_window_limits_transcript():
    history = [
        ConversationTurn(role=MessageRole.USER, content=f"message number {i}")
        for i in range(5)
    ]
    client = FakeLLMClient([llm_reply(next_stage="vision")])
    extract(LLMExtractor(client, history_window=2), RequirementRecord(), "hello", Stage.VISION, history)

    prompt = client.calls[0]["prompt"]
    assert "message number 4" in prompt
    assert "message number 3" in prompt
    assert "message number 2" not in prompt
    assert 'Current user message: "hello"' in prompt


@pytest.mark.parametrize("reply", ["I am not JSON", {"response": "missing stage"}, ModelResponseError("HTTP 500", status=500)])
def test_llm_failures_raise_extraction_error(reply):
    client = FakeLLMClient([reply])
    with pytest.raises(ExtractionError):
        extract(LLMExtractor(client), RequirementRecord(), "A cabin", Stage.VISION)


def test_create_extractor():
    assert isinstance(create_extractor("rules", None), RuleBasedExtractor)
    assert isinstance(create_extractor("llm", FakeLLMClient()), LLMExtractor)
    with pytest.raises(ValueError):
        create_extractor("llm", None)
    with pytest.raises(ValueError):
        create_extractor("magic", None)
