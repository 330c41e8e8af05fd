from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import DEFAULT_REFINEMENT_PASSES
from ..errors import ArchAIError, RefinementError
from ..llm_client import ImageClient, LLMClient
from ..models import CritiqueResult, ImageRef
from ..templates import render_template

logger = logging.getLogger(__name__)


@dataclass
class RefinementPass:
    number: int
    polish_only: bool
    critique: Optional[str]
    correction: str


@dataclass
class RefinementResult:
    image: ImageRef
    passes: List[RefinementPass] = field(default_factory=list)

    @property
    def passes_used(self) -> int:
        return len(self.passes)


class RefinementLoop:
    """Fixed-count critique-then-edit cycle over a floor-plan image.

    Every pass asks the text+vision model for a correction instruction, then
    hands the current image and that instruction to the image model. The last
    pass only polishes the drawing; earlier passes fix the layout.
    """

    def __init__(self, llm_client: LLMClient, image_client: ImageClient, passes: int = DEFAULT_REFINEMENT_PASSES) -> None:
        if passes < 1:
            raise ValueError("Refinement needs at least one pass")
        self.llm_client = llm_client
        self.image_client = image_client
        self.passes = passes

    async def refine(self, initial_image: ImageRef, requirements_text: str, original_prompt: str) -> ImageRef:
        result = await self.run(initial_image, requirements_text, original_prompt)
        return result.image

    async def run(self, initial_image: ImageRef, requirements_text: str, original_prompt: str) -> RefinementResult:
        current_image = initial_image
        history: List[RefinementPass] = []

        for number in range(1, self.passes + 1):
            polish_only = number == self.passes
            logger.info("Refining plan (pass %d of %d): %s", number, self.passes, "polish" if polish_only else "layout review")

            critique = await self._critique(number, polish_only, current_image, requirements_text, original_prompt)
            current_image = await self._edit(number, current_image, critique.correction)
            history.append(RefinementPass(number=number, polish_only=polish_only, critique=critique.critique, correction=critique.correction))

        # Only the last edit leaves the loop; intermediates are never returned.
        return RefinementResult(image=current_image, passes=history)

    async def _critique(self, number: int, polish_only: bool, image: ImageRef, requirements_text: str, original_prompt: str) -> CritiqueResult:
        template = "critique_polish.jinja" if polish_only else "critique_layout.jinja"
        prompt = render_template(template, {
            "pass_number": number,
            "total_passes": self.passes,
            "requirements_text": requirements_text,
            "original_prompt": "" if polish_only else original_prompt,
        })

        try:
            critique = await self.llm_client.generate_structured(prompt, CritiqueResult, images=[image])
        except ArchAIError as e:
            raise RefinementError(f"Critique failed on pass {number}: {e}", pass_number=number) from e

        if not critique.correction or not critique.correction.strip():
            raise RefinementError(f"Critique on pass {number} produced no correction instruction.", pass_number=number)
        return critique

    async def _edit(self, number: int, image: ImageRef, instruction: str) -> ImageRef:
        try:
            edited = await self.image_client.edit_image(image, instruction)
        except ArchAIError as e:
            raise RefinementError(f"Image refinement failed on pass {number}: {e}", pass_number=number) from e

        if edited is None:
            raise RefinementError(f"Image refinement failed on pass {number}.", pass_number=number)
        return edited
