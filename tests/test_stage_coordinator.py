import pytest

from archai.errors import StageTransitionError
from archai.interview.stage_coordinator import (
    STAGE_ORDER,
    TRANSITIONS,
    Outcome,
    Stage,
    StageCoordinator,
    is_affirmative,
    next_stage,
)
from archai.models import RequirementRecord

from conftest import complete_record


def test_stage_order_and_field_stages():
    assert STAGE_ORDER[0] == Stage.INTRODUCTION
    assert STAGE_ORDER[-1] == Stage.DONE
    assert [s for s in STAGE_ORDER if s.is_field][0] == Stage.VISION
    assert Stage.SQUARE_FOOTAGE.field_name == "square_footage"
    assert Stage.for_field("lot_size") == Stage.LOT_SIZE
    assert Stage.GENERATION.display_name == "Generating Plan"
    assert not Stage.GENERATION.accepts_input
    assert Stage.FLOORPLAN.accepts_input


def test_started_goes_to_first_unset_field():
    record = RequirementRecord(vision="A cabin")
    assert next_stage(Stage.INTRODUCTION, Outcome.STARTED, record) == Stage.SQUARE_FOOTAGE


def test_field_extracted_skips_answered_fields():
    record = RequirementRecord().with_user_fields({"vision": "A cabin", "squareFootage": "900", "rooms": "2 bedrooms"})
    assert next_stage(Stage.SQUARE_FOOTAGE, Outcome.FIELD_EXTRACTED, record) == Stage.LOT_SIZE


def test_last_field_goes_to_confirmation():
    assert next_stage(Stage.AESTHETIC_PREFERENCES, Outcome.FIELD_EXTRACTED, complete_record()) == Stage.CONFIRMATION


def test_no_change_stays_on_field():
    assert next_stage(Stage.BUDGET, Outcome.NO_CHANGE, RequirementRecord()) == Stage.BUDGET


def test_confirmation_transitions():
    record = complete_record()
    assert next_stage(Stage.CONFIRMATION, Outcome.CONFIRMED, record) == Stage.GENERATION
    assert next_stage(Stage.CONFIRMATION, Outcome.CORRECTED, record) == Stage.CONFIRMATION
    assert next_stage(Stage.CONFIRMATION, Outcome.DECLINED, record) == Stage.CONFIRMATION

    partial = record.without_fields(["budget"])
    assert next_stage(Stage.CONFIRMATION, Outcome.DECLINED, partial) == Stage.BUDGET


def test_pipeline_transitions():
    record = complete_record()
    assert next_stage(Stage.GENERATION, Outcome.SUCCEEDED, record) == Stage.REFINEMENT
    assert next_stage(Stage.GENERATION, Outcome.SUCCEEDED, record, refinement_enabled=False) == Stage.FLOORPLAN
    assert next_stage(Stage.GENERATION, Outcome.FAILED, record) == Stage.CONFIRMATION
    assert next_stage(Stage.REFINEMENT, Outcome.SUCCEEDED, record) == Stage.FLOORPLAN
    assert next_stage(Stage.REFINEMENT, Outcome.FAILED, record) == Stage.CONFIRMATION
    assert next_stage(Stage.FLOORPLAN, Outcome.CONFIRMED, record) == Stage.INTERIOR
    assert next_stage(Stage.FLOORPLAN, Outcome.DECLINED, record) == Stage.DONE
    assert next_stage(Stage.INTERIOR, Outcome.FAILED, record) == Stage.DONE


@pytest.mark.parametrize("stage, outcome", [
    (Stage.DONE, Outcome.STARTED),
    (Stage.GENERATION, Outcome.CONFIRMED),
    (Stage.VISION, Outcome.CONFIRMED),
    (Stage.INTERIOR, Outcome.NO_CHANGE),
])
def test_undefined_pairs_raise(stage, outcome):
    with pytest.raises(StageTransitionError):
        next_stage(stage, outcome, RequirementRecord())


def test_every_table_target_is_a_stage():
    record = complete_record()
    for (kind, outcome), _ in TRANSITIONS.items():
        stage = Stage.VISION if kind == "field" else kind
        assert isinstance(next_stage(stage, outcome, record), Stage)


def test_coordinator_tracks_visits_and_notifies():
    changes = []
    coordinator = StageCoordinator()
    coordinator.set_on_stage_change(lambda old, new: changes.append((old, new)))

    coordinator.advance(Outcome.STARTED, RequirementRecord())
    coordinator.advance(Outcome.NO_CHANGE, RequirementRecord())

    assert coordinator.current_stage == Stage.VISION
    assert coordinator.visited_stages == [Stage.INTRODUCTION, Stage.VISION]
    assert changes == [(Stage.INTRODUCTION, Stage.VISION)]


def test_progress_and_reset():
    coordinator = StageCoordinator()
    coordinator.restore(Stage.DONE, [])

    progress = coordinator.get_progress()
    assert progress["is_complete"]
    assert progress["progress_percent"] == 100
    assert progress["stages"][0] == "Introduction"
    assert len(progress["stages"]) == progress["total_stages"] == 17

    coordinator.reset()
    assert coordinator.current_stage == Stage.INTRODUCTION
    assert coordinator.get_progress()["progress_percent"] == 0


@pytest.mark.parametrize("message", ["yes", "Yes!", "Looks good to me", "ok", "Sure, go ahead", "Correct, no changes", "That's right"])
def test_affirmative_messages(message):
    assert is_affirmative(message)


@pytest.mark.parametrize("message", [
    "no",
    "yes but change the budget",
    "that's not right",
    "wrong number of rooms",
    "I don't think so",
    "",
    "tell me more",
    "put the garage on the right",
])
def test_non_affirmative_messages(message):
    assert not is_affirmative(message)
