"""Stage coordination for the design conversation.

This module defines the ordered stages of a session, the outcomes a stage can
report, and the explicit transition table that maps every reachable
(stage, outcome) pair to the next stage.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import StageTransitionError
from ..models import USER_FIELD_SPECS, RequirementRecord

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Session stages, in their fixed order.

    The ten field stages collect one requirement each; the rest drive the
    confirmation and generation pipeline.
    """
    INTRODUCTION = "introduction"
    VISION = "vision"
    SQUARE_FOOTAGE = "squareFootage"
    LOT_SIZE = "lotSize"
    ROOMS = "rooms"
    BUDGET = "budget"
    ARCHITECTURAL_STYLE = "architecturalStyle"
    LIFESTYLE_NEEDS = "lifestyleNeeds"
    SPECIAL_REQUIREMENTS = "specialRequirements"
    MATERIAL_PREFERENCES = "materialPreferences"
    AESTHETIC_PREFERENCES = "aestheticPreferences"
    CONFIRMATION = "confirmation"
    GENERATION = "generation"
    REFINEMENT = "refinement"
    FLOORPLAN = "floorplan"
    INTERIOR = "interior"
    DONE = "done"

    @property
    def display_name(self) -> str:
        """Human-readable stage name, used as the progress label."""
        return _STAGE_TITLES[self]

    @property
    def is_field(self) -> bool:
        return self.value in _FIELD_STAGE_ATTRS

    @property
    def field_name(self) -> Optional[str]:
        """RequirementRecord attribute collected by this stage, if any."""
        return _FIELD_STAGE_ATTRS.get(self.value)

    @property
    def accepts_input(self) -> bool:
        """Whether the user may send chat messages in this stage."""
        return self in _INPUT_STAGES

    @property
    def index(self) -> int:
        return STAGE_ORDER.index(self)

    @classmethod
    def for_field(cls, attr: str) -> "Stage":
        for alias, field_attr in _FIELD_STAGE_ATTRS.items():
            if field_attr == attr:
                return cls(alias)
        raise ValueError(f"No stage collects field {attr!r}")


STAGE_ORDER: List[Stage] = list(Stage)

_FIELD_STAGE_ATTRS: Dict[str, str] = {alias: attr for attr, alias, _ in USER_FIELD_SPECS}

_STAGE_TITLES: Dict[Stage, str] = {
    Stage.INTRODUCTION: "Introduction",
    Stage.VISION: "Vision",
    Stage.SQUARE_FOOTAGE: "Sizing",
    Stage.LOT_SIZE: "Lot Size",
    Stage.ROOMS: "Rooms",
    Stage.BUDGET: "Budget",
    Stage.ARCHITECTURAL_STYLE: "Style",
    Stage.LIFESTYLE_NEEDS: "Lifestyle",
    Stage.SPECIAL_REQUIREMENTS: "Special Needs",
    Stage.MATERIAL_PREFERENCES: "Materials",
    Stage.AESTHETIC_PREFERENCES: "Aesthetics",
    Stage.CONFIRMATION: "Confirmation",
    Stage.GENERATION: "Generating Plan",
    Stage.REFINEMENT: "Refining Plan",
    Stage.FLOORPLAN: "Floor Plan",
    Stage.INTERIOR: "Interior Design",
    Stage.DONE: "Final Designs",
}

_INPUT_STAGES = frozenset(
    [Stage.INTRODUCTION, Stage.CONFIRMATION, Stage.FLOORPLAN]
    + [s for s in Stage if s.value in _FIELD_STAGE_ATTRS]
)

BUSY_STAGES = frozenset([Stage.GENERATION, Stage.REFINEMENT, Stage.INTERIOR])


class Outcome(str, Enum):
    """Signal reported by the active component when it finishes a step."""
    STARTED = "started"
    NO_CHANGE = "no_change"
    FIELD_EXTRACTED = "field_extracted"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CORRECTED = "corrected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


Resolver = Callable[[Stage, RequirementRecord, bool], Stage]
Target = Union[Stage, Resolver]

# Key used in the table for every field-collection stage.
FIELD = "field"


def _first_unset_or_confirmation(current: Stage, requirements: RequirementRecord, refinement_enabled: bool) -> Stage:
    attr = requirements.first_unset_field()
    return Stage.for_field(attr) if attr else Stage.CONFIRMATION


def _stay(current: Stage, requirements: RequirementRecord, refinement_enabled: bool) -> Stage:
    return current


def _after_generation(current: Stage, requirements: RequirementRecord, refinement_enabled: bool) -> Stage:
    return Stage.REFINEMENT if refinement_enabled else Stage.FLOORPLAN


TRANSITIONS: Dict[Tuple[Any, Outcome], Target] = {
    (Stage.INTRODUCTION, Outcome.STARTED): _first_unset_or_confirmation,
    (Stage.INTRODUCTION, Outcome.NO_CHANGE): _first_unset_or_confirmation,
    (Stage.INTRODUCTION, Outcome.FIELD_EXTRACTED): _first_unset_or_confirmation,

    (FIELD, Outcome.FIELD_EXTRACTED): _first_unset_or_confirmation,
    (FIELD, Outcome.NO_CHANGE): _stay,

    (Stage.CONFIRMATION, Outcome.CONFIRMED): Stage.GENERATION,
    # A bare "no" rewinds to the first unanswered field, or waits for details.
    (Stage.CONFIRMATION, Outcome.DECLINED): _first_unset_or_confirmation,
    (Stage.CONFIRMATION, Outcome.CORRECTED): Stage.CONFIRMATION,
    (Stage.CONFIRMATION, Outcome.NO_CHANGE): Stage.CONFIRMATION,

    (Stage.GENERATION, Outcome.SUCCEEDED): _after_generation,
    (Stage.GENERATION, Outcome.FAILED): Stage.CONFIRMATION,

    (Stage.REFINEMENT, Outcome.SUCCEEDED): Stage.FLOORPLAN,
    (Stage.REFINEMENT, Outcome.FAILED): Stage.CONFIRMATION,

    (Stage.FLOORPLAN, Outcome.CONFIRMED): Stage.INTERIOR,
    (Stage.FLOORPLAN, Outcome.DECLINED): Stage.DONE,
    (Stage.FLOORPLAN, Outcome.NO_CHANGE): Stage.DONE,

    (Stage.INTERIOR, Outcome.SUCCEEDED): Stage.DONE,
    (Stage.INTERIOR, Outcome.FAILED): Stage.DONE,
}


def next_stage(
    current: Stage,
    outcome: Outcome,
    requirements: RequirementRecord,
    refinement_enabled: bool = True,
) -> Stage:
    """Look up the stage that follows ``current`` after ``outcome``.

    Raises:
        StageTransitionError: If the pair has no entry in the table.
    """
    key = (FIELD if current.is_field else current, outcome)
    target = TRANSITIONS.get(key)
    if target is None:
        raise StageTransitionError(f"No transition from {current.value!r} on {outcome.value!r}")
    if isinstance(target, Stage):
        return target
    return target(current, requirements, refinement_enabled)


_AFFIRMATIONS = (
    "yes", "yep", "yeah", "yup", "correct", "looks good", "looks correct", "looks great",
    "confirm", "confirmed", "sure", "ok", "okay", "go ahead", "sounds good", "that's right",
    "all right", "alright", "perfect", "absolutely", "let's do it",
)
_NEGATIONS = ("no", "nope", "not", "don't", "dont", "wrong", "incorrect", "change", "but", "wait", "instead")
# Phrases that contain a negation word yet agree ("no changes needed").
_AGREEING_NEGATIONS = re.compile(r"\b(?:no changes?|nothing to change|no problem|no issues?)\b")


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![\w']){re.escape(phrase)}(?![\w'])", text) is not None


def is_affirmative(message: str) -> bool:
    """Case-insensitive check for an affirmation without any negation."""
    text = message.strip().lower().replace("’", "'")
    text = _AGREEING_NEGATIONS.sub(" ", text)
    if not text.strip():
        return False
    if any(_contains_phrase(text, word) for word in _NEGATIONS):
        return False
    return any(_contains_phrase(text, phrase) for phrase in _AFFIRMATIONS)


class StageCoordinator:
    """Tracks the current stage and applies the transition table.

    Responsibilities:
    - Hold the single pointer to the current stage
    - Resolve outcomes into transitions
    - Record which stages have been visited
    - Notify listeners of stage changes
    - Provide progress data for display

    Example:
        coordinator = StageCoordinator()
        coordinator.advance(Outcome.STARTED, RequirementRecord())
        assert coordinator.current_stage == Stage.VISION
    """

    def __init__(self, refinement_enabled: bool = True):
        """Initialize stage coordinator.

        Args:
            refinement_enabled: When False, generation goes straight to the
                floor-plan stage.
        """
        self.refinement_enabled = refinement_enabled
        self._current_stage = Stage.INTRODUCTION
        self._visited: List[Stage] = [Stage.INTRODUCTION]
        self._on_stage_change: Optional[Callable[[Stage, Stage], None]] = None

    @property
    def current_stage(self) -> Stage:
        """Get the current stage."""
        return self._current_stage

    @property
    def visited_stages(self) -> List[Stage]:
        return list(self._visited)

    @property
    def is_complete(self) -> bool:
        """Check if the session reached its terminal stage."""
        return self._current_stage == Stage.DONE

    def peek(self, outcome: Outcome, requirements: RequirementRecord) -> Stage:
        """Resolve a transition without applying it."""
        return next_stage(self._current_stage, outcome, requirements, self.refinement_enabled)

    def advance(self, outcome: Outcome, requirements: RequirementRecord) -> Stage:
        """Apply the transition for ``outcome`` and return the new stage.

        Args:
            outcome: Result reported by the active component
            requirements: Record snapshot after the component's delta

        Returns:
            The new current stage
        """
        target = self.peek(outcome, requirements)
        logger.debug("Stage %s --%s--> %s", self._current_stage.value, outcome.value, target.value)
        self._set_stage(target)
        return target

    def restore(self, stage: Stage, visited: List[Stage]) -> None:
        self._current_stage = stage
        self._visited = list(visited) or [stage]

    def reset(self) -> None:
        """Reset to initial state."""
        self._current_stage = Stage.INTRODUCTION
        self._visited = [Stage.INTRODUCTION]

    def set_on_stage_change(self, callback: Callable[[Stage, Stage], None]) -> None:
        """Set callback for stage changes.

        Args:
            callback: Function(old_stage, new_stage) called on stage changes
        """
        self._on_stage_change = callback

    def get_progress(self) -> Dict[str, Any]:
        """Get progress information.

        Returns:
            Dictionary with progress data
        """
        index = self._current_stage.index
        total = len(STAGE_ORDER)
        return {
            "current_stage": self._current_stage.value,
            "current_stage_name": self._current_stage.display_name,
            "current_index": index,
            "stages": [s.display_name for s in STAGE_ORDER],
            "visited_stages": [s.value for s in self._visited],
            "total_stages": total,
            "progress_percent": int((index / (total - 1)) * 100),
            "is_complete": self.is_complete,
        }

    def _set_stage(self, stage: Stage) -> None:
        old_stage = self._current_stage
        self._current_stage = stage
        if stage not in self._visited:
            self._visited.append(stage)
        if self._on_stage_change and old_stage != stage:
            self._on_stage_change(old_stage, stage)
