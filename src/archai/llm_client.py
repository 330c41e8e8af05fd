"""Abstract model client interfaces for provider-agnostic usage.

This module defines the minimal async interfaces the conversation and
pipeline stages depend on. Concrete provider clients implement these methods;
tests substitute in-memory fakes.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import ModelResponseError
from .interview.json_extractor import JSONExtractor
from .models import ImageRef

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMClient(abc.ABC):
    """Abstract base class for text (and text+vision) model clients.

    Concrete implementations should accept a configuration object in their
    constructor (e.g., an instance with ``.text_model`` and ``.timeout``).
    """

    def __init__(self, config: Any = None) -> None:
        self._config = config
        self._extractor = JSONExtractor()

    @abc.abstractmethod
    async def generate_completion(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        images: Optional[Sequence[ImageRef]] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        """Generate a single completion for the provided prompt.

        Returns the generated text content from the provider.
        """

    async def generate_structured(
        self,
        prompt: str,
        model_class: Type[T],
        *,
        system: Optional[str] = None,
        images: Optional[Sequence[ImageRef]] = None,
        **kwargs: Any,
    ) -> T:
        """Generate a completion and validate it into ``model_class``.

        Raises:
            ModelResponseError: If the reply holds no JSON object or the object
                does not satisfy the model's schema.
        """
        response = await self.generate_completion(
            prompt,
            system=system,
            images=images,
            response_schema=self.schema_for(model_class),
            **kwargs,
        )

        data = self._extractor.extract_json(response)
        if not isinstance(data, dict):
            logger.warning("No JSON object in structured reply: %.200s", response)
            raise ModelResponseError(f"Model reply did not contain a {model_class.__name__} object")

        try:
            return model_class.model_validate(data)
        except ValidationError as e:
            raise ModelResponseError(f"Model reply did not match {model_class.__name__}: {e}") from e

    def schema_for(self, model_class: Type[BaseModel]) -> Optional[Dict[str, Any]]:
        """Provider-specific response schema for ``model_class``; None disables it."""
        return None


class ImageClient(abc.ABC):
    """Abstract base class for image generation and editing endpoints."""

    @abc.abstractmethod
    async def generate_image(
        self,
        prompt: str,
        *,
        images: Optional[Sequence[ImageRef]] = None,
        **kwargs: Any,
    ) -> Optional[ImageRef]:
        """Generate (or edit, when ``images`` are given) a single image.

        Returns None when the provider answered without any media.
        """

    async def edit_image(self, image: ImageRef, instruction: str, **kwargs: Any) -> Optional[ImageRef]:
        return await self.generate_image(instruction, images=[image], **kwargs)
