"""Interior rendering stage."""

from __future__ import annotations

import logging

from ..errors import InteriorGenerationError
from ..llm_client import ImageClient
from ..models import ImageRef
from ..templates import render_template

logger = logging.getLogger(__name__)


class InteriorVisualizer:
    """Render a furnished interior from a finished floor plan.

    The rendering is a derivative artifact; it never replaces the floor plan.
    """

    def __init__(self, image_client: ImageClient):
        self.image_client = image_client

    async def visualize(self, floor_plan_image: ImageRef, aesthetic_preferences: str, architectural_style: str) -> ImageRef:
        prompt = render_template("interior.jinja", {
            "aesthetic_preferences": aesthetic_preferences or "",
            "architectural_style": architectural_style or "",
        })

        logger.info("Rendering interior (%s / %s)", architectural_style, aesthetic_preferences)
        image = await self.image_client.generate_image(prompt, images=[floor_plan_image])
        if image is None:
            raise InteriorGenerationError("Interior image generation failed.")
        return image
