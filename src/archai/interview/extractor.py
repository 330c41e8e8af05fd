"""Conversational extractors.

An extractor reads the latest user message and returns the reply to show,
the updated requirement record and the stage it believes comes next. Two
strategies are provided:

- LLMExtractor asks the text model to fill every stated field in one pass
  and to map corrections at confirmation to the field the user named.
- RuleBasedExtractor assigns the message to the current stage's field and
  picks up unit-bearing values (square feet, bedrooms, budget...) on the way.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from ..errors import ArchAIError, ExtractionError
from ..llm_client import LLMClient
from ..models import FIELD_TITLES, USER_FIELD_SPECS, ExtractionPayload, RequirementRecord
from ..templates import render_template
from .conversation_history import ConversationTurn
from .stage_coordinator import Stage, is_affirmative

logger = logging.getLogger(__name__)

FIELD_ORDER = ", ".join(alias for _, alias, _ in USER_FIELD_SPECS)

FIELD_QUESTIONS: Dict[str, str] = {
    "vision": "To start, could you tell me a little about your overall vision for the home?",
    "square_footage": "Roughly how many square feet would you like the house to be?",
    "lot_size": "How big is the lot you're building on?",
    "rooms": "Which rooms do you need, and how many (bedrooms, bathrooms, office...)?",
    "budget": "What budget range are you working with?",
    "architectural_style": "Which architectural style speaks to you: modern, farmhouse, craftsman, something else?",
    "lifestyle_needs": "Tell me about how you live: family size, working from home, entertaining?",
    "special_requirements": "Any special requirements, such as accessibility features or sustainability goals?",
    "material_preferences": "Do you have preferences for construction or finishing materials? You can also upload an inspiration image.",
    "aesthetic_preferences": "Finally, how would you describe the look and feel you want inside?",
}

CONFIRMATION_QUESTION = (
    "Great, it looks like I have all the details. Please review the summary. Does everything look correct?"
)
START_GENERATION_REPLY = "Perfect! I'll start designing your floor plan now."

_GREETING_PATTERN = re.compile(
    r"^\s*(hi|hello|hey|hiya|howdy|greetings|good (morning|afternoon|evening)|yo|sup|what's up|thanks|thank you)"
    r"( there)?( archai)?[\s!.,?]*$",
    re.IGNORECASE,
)


@dataclass
class ExtractionResult:
    """Outcome of one extractor call."""
    reply: str
    requirements: RequirementRecord
    next_stage: Stage
    changed_fields: List[str] = field(default_factory=list)
    confirmed: bool = False


class Extractor(Protocol):
    async def extract(
        self,
        history: Sequence[ConversationTurn],
        requirements: RequirementRecord,
        message: str,
        stage: Stage,
    ) -> ExtractionResult:
        ...


def is_greeting(message: str) -> bool:
    return bool(_GREETING_PATTERN.match(message))


def question_for(requirements: RequirementRecord) -> str:
    """Question for the first unanswered field, or the confirmation prompt."""
    attr = requirements.first_unset_field()
    return FIELD_QUESTIONS[attr] if attr else CONFIRMATION_QUESTION


def _expected_stage(requirements: RequirementRecord) -> Stage:
    attr = requirements.first_unset_field()
    return Stage.for_field(attr) if attr else Stage.CONFIRMATION


class LLMExtractor:
    """Extractor backed by a structured-output language-model call."""

    def __init__(self, llm_client: LLMClient, history_window: Optional[int] = 30):
        self.llm_client = llm_client
        self.history_window = history_window

    async def extract(
        self,
        history: Sequence[ConversationTurn],
        requirements: RequirementRecord,
        message: str,
        stage: Stage,
    ) -> ExtractionResult:
        """Run one extraction turn.

        Args:
            history: Non-rhetorical prior turns (the current message excluded)
            requirements: Current record snapshot
            message: The user's latest message
            stage: Stage the session is in

        Returns:
            ExtractionResult with the merged record

        Raises:
            ExtractionError: If the model call fails or its reply is unusable
        """
        turns = list(history)
        if self.history_window and len(turns) > self.history_window:
            turns = turns[-self.history_window:]

        system = render_template("extractor_system.jinja", {"field_order": FIELD_ORDER})
        prompt = render_template("extractor_turn.jinja", {
            "stage": stage.value,
            "transcript": "\n".join(f"{t.role.value}: {t.content}" for t in turns),
            "requirements_json": json.dumps(requirements.user_values(), indent=2),
            "message": message,
        })

        try:
            payload = await self.llm_client.generate_structured(prompt, ExtractionPayload, system=system)
        except ArchAIError as e:
            raise ExtractionError(f"Extraction failed: {e}") from e

        # Blank values mean "not mentioned"; only /set may record an empty answer.
        delta = {
            key: value
            for key, value in payload.requirements.model_dump(by_alias=True, exclude_none=True).items()
            if value.strip()
        }
        updated = requirements.with_user_fields(delta)
        changed = updated.changed_fields(requirements)

        try:
            suggested = Stage(payload.next_stage)
        except ValueError:
            logger.warning("Model suggested unknown stage %r", payload.next_stage)
            suggested = _expected_stage(updated)

        reply = payload.response.strip() or question_for(updated)
        confirmed = stage == Stage.CONFIRMATION and not changed and is_affirmative(message)
        if stage == Stage.CONFIRMATION and confirmed != (suggested == Stage.GENERATION):
            logger.info("Model suggested %s for %r; affirmation check says confirmed=%s", suggested.value, message, confirmed)
            if confirmed:
                reply = START_GENERATION_REPLY

        return ExtractionResult(
            reply=reply,
            requirements=updated,
            next_stage=suggested,
            changed_fields=changed,
            confirmed=confirmed,
        )


class RuleBasedExtractor:
    """Stage-indexed field mapper used when no language model is wanted.

    The message answers the current stage's field. Unit patterns fill other
    still-unanswered fields in the same turn, so "2000 sq ft, 3 bedrooms"
    at the vision stage records the vision and the size and rooms with it.
    """

    PATTERNS: Dict[str, List[re.Pattern]] = {
        "square_footage": [
            re.compile(r"\b(\d[\d,.]*\s*(?:k\s*)?(?:sq\.?\s*(?:ft|feet)|square\s*(?:feet|foot|ft)|sqft|sf|m2|m²|square\s*met(?:er|re)s?))", re.IGNORECASE),
        ],
        "lot_size": [
            re.compile(r"\b(\d[\d,.]*\s*acres?(?:\s+lot)?)", re.IGNORECASE),
            re.compile(r"\b(\d+\s*(?:ft|feet|')?\s*(?:x|by)\s*\d+\s*(?:ft|feet|')?\s+lot)", re.IGNORECASE),
        ],
        "rooms": [
            re.compile(r"\b(\d+(?:\.\d)?\s*(?:bed(?:room)?s?|br)\b(?:\s*(?:,|and|&|/)?\s*\d+(?:\.\d)?\s*(?:bath(?:room)?s?|ba)\b)?)", re.IGNORECASE),
        ],
        "budget": [
            re.compile(r"((?:\$|€|£)\s?\d[\d,.]*\s*(?:k|m|million|thousand)?(?:\s*(?:-|to)\s*(?:\$|€|£)?\s?\d[\d,.]*\s*(?:k|m|million|thousand)?)?)", re.IGNORECASE),
        ],
        "lifestyle_needs": [
            re.compile(r"\b(family of (?:\d+|two|three|four|five|six|seven|eight))\b", re.IGNORECASE),
        ],
    }

    async def extract(
        self,
        history: Sequence[ConversationTurn],
        requirements: RequirementRecord,
        message: str,
        stage: Stage,
    ) -> ExtractionResult:
        text = message.strip()

        if stage == Stage.CONFIRMATION:
            if is_affirmative(text):
                return ExtractionResult(
                    reply=START_GENERATION_REPLY,
                    requirements=requirements,
                    next_stage=Stage.GENERATION,
                    confirmed=True,
                )
            target = _expected_stage(requirements)
            if target == Stage.CONFIRMATION:
                reply = "No problem. Use /set field=value to change a requirement, then confirm when it looks right."
            else:
                reply = f"Let's revisit that. {question_for(requirements)}"
            return ExtractionResult(reply=reply, requirements=requirements, next_stage=target)

        if not text or is_greeting(text):
            prefix = "Hello! " if text else ""
            return ExtractionResult(
                reply=prefix + question_for(requirements),
                requirements=requirements,
                next_stage=stage if stage.is_field else _expected_stage(requirements),
            )

        delta: Dict[str, str] = {}
        if stage.is_field:
            delta[stage.field_name] = text

        for attr, value in self.extract_patterns(text).items():
            if attr not in delta and getattr(requirements, attr) is None:
                delta[attr] = value

        updated = requirements.with_user_fields(delta)
        changed = updated.changed_fields(requirements)

        if changed:
            noted = ", ".join(FIELD_TITLES[attr].lower() for attr in changed)
            reply = f"Got it, I've noted your {noted}. {question_for(updated)}"
        else:
            reply = question_for(updated)

        return ExtractionResult(
            reply=reply,
            requirements=updated,
            next_stage=_expected_stage(updated),
            changed_fields=changed,
        )

    def extract_patterns(self, text: str) -> Dict[str, str]:
        """Field values recognisable from units alone."""
        found: Dict[str, str] = {}
        for attr, patterns in self.PATTERNS.items():
            for pattern in patterns:
                match = pattern.search(text)
                if match:
                    found[attr] = match.group(1).strip(" ,.")
                    break
        return found


def create_extractor(kind: str, llm_client: Optional[LLMClient], history_window: Optional[int] = 30) -> Extractor:
    """Build the extractor named by configuration ("llm" or "rules")."""
    if kind == "rules":
        return RuleBasedExtractor()
    if kind == "llm":
        if llm_client is None:
            raise ValueError("The llm extractor needs an LLM client")
        return LLMExtractor(llm_client, history_window=history_window)
    raise ValueError(f"Unknown extractor {kind!r}; expected 'llm' or 'rules'")
