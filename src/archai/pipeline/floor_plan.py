"""Floor-plan image generation stage."""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import GenerationError
from ..llm_client import ImageClient
from ..models import ImageRef
from ..templates import render_template

logger = logging.getLogger(__name__)


class FloorPlanGenerator:
    """Turn an architectural prompt into a floor-plan image with one call."""

    def __init__(self, image_client: ImageClient):
        self.image_client = image_client

    async def generate(self, prompt: str, reference_image: Optional[ImageRef] = None) -> ImageRef:
        """Draw the floor plan.

        There is no retry and no timeout here; the call can take a minute.

        Raises:
            GenerationError: If the model returned no image.
        """
        instructions = render_template("floor_plan.jinja", {
            "architectural_prompt": prompt,
            "has_reference": reference_image is not None,
        })
        images = [reference_image] if reference_image is not None else None

        logger.info("Generating floor plan (reference image: %s)", "yes" if images else "no")
        image = await self.image_client.generate_image(instructions, images=images)
        if image is None:
            raise GenerationError("Image generation failed.")
        return image
