"""Gemini client for the design assistant.

This module implements both model interfaces against the Google Generative
Language REST API: text and text+vision completions (with optional structured
JSON output) and image generation/editing through the image-capable model.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Type

import aiohttp
from pydantic import BaseModel

from .config import GeminiConfig
from .errors import ModelResponseError
from .llm_client import ImageClient, LLMClient
from .models import ImageRef

logger = logging.getLogger(__name__)

_DROPPED_SCHEMA_KEYS = {"title", "default", "additionalProperties", "$defs", "examples"}


def to_gemini_schema(model_class: Type[BaseModel]) -> Dict[str, Any]:
    """Convert a pydantic model into the OpenAPI subset Gemini accepts.

    References are inlined and ``Optional[X]`` becomes ``X`` with
    ``nullable: true``.
    """
    raw = model_class.model_json_schema(by_alias=True)
    defs = raw.get("$defs", {})

    def convert(node: Dict[str, Any]) -> Dict[str, Any]:
        if "$ref" in node:
            merged = dict(defs[node["$ref"].split("/")[-1]])
            merged.update({k: v for k, v in node.items() if k != "$ref"})
            return convert(merged)

        all_of = node.get("allOf")
        if all_of and len(all_of) == 1:
            merged = dict(all_of[0])
            merged.update({k: v for k, v in node.items() if k != "allOf"})
            return convert(merged)

        any_of = node.get("anyOf")
        if any_of:
            options = [o for o in any_of if o.get("type") != "null"]
            converted = convert(options[0]) if options else {"type": "STRING"}
            if len(options) < len(any_of):
                converted["nullable"] = True
            if "description" in node:
                converted["description"] = node["description"]
            return converted

        out: Dict[str, Any] = {}
        for key, value in node.items():
            if key in _DROPPED_SCHEMA_KEYS:
                continue
            if key == "type":
                out["type"] = str(value).upper()
            elif key == "properties":
                out["properties"] = {name: convert(prop) for name, prop in value.items()}
            elif key == "items":
                out["items"] = convert(value)
            else:
                out[key] = value
        return out

    return convert(raw)


class GeminiClient(LLMClient, ImageClient):
    """Model client backed by the Gemini REST API.

    Example usage:
        config = GeminiConfig(api_key="...")
        client = GeminiClient(config)
        text = await client.generate_completion("Describe a craftsman bungalow")
        image = await client.generate_image("A 2D floor plan of a 3 bedroom bungalow")
    """

    def __init__(self, config: Optional[GeminiConfig] = None):
        """Initialize the Gemini client.

        Args:
            config: GeminiConfig instance with credentials and model names
        """
        config = config or GeminiConfig()
        super().__init__(config)
        self.api_key = config.api_key
        self.text_model = config.text_model
        self.image_model = config.image_model
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout

        if not self.api_key:
            logger.warning("Gemini API key not configured - model calls will fail")

    def schema_for(self, model_class: Type[BaseModel]) -> Optional[Dict[str, Any]]:
        return to_gemini_schema(model_class)

    async def generate_completion(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        images: Optional[Sequence[ImageRef]] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        """Generate a text completion.

        Args:
            prompt: The user-turn prompt
            system: Optional system instruction
            images: Optional images placed after the prompt text
            response_schema: When given, JSON output constrained to this schema
            **kwargs: Extra generationConfig entries (e.g. temperature)

        Returns:
            The concatenated text parts of the first candidate

        Raises:
            ModelResponseError: On transport errors or an empty reply
        """
        generation_config: Dict[str, Any] = dict(kwargs)
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema

        payload = self._build_payload(prompt, images, system, generation_config)
        result = await self._post(self.text_model, payload)

        text = "".join(p.get("text", "") for p in self._candidate_parts(result))
        if not text.strip():
            raise ModelResponseError(f"{self.text_model} returned no text")
        return text

    async def generate_image(
        self,
        prompt: str,
        *,
        images: Optional[Sequence[ImageRef]] = None,
        **kwargs: Any,
    ) -> Optional[ImageRef]:
        """Generate or edit an image with the image-capable model.

        Returns:
            The first image part of the reply, or None when the model answered
            with text only.
        """
        generation_config: Dict[str, Any] = {"responseModalities": ["TEXT", "IMAGE"]}
        generation_config.update(kwargs)

        payload = self._build_payload(prompt, images, None, generation_config)
        result = await self._post(self.image_model, payload)

        for part in self._candidate_parts(result):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return ImageRef(mime_type=mime_type, data=inline["data"])

        text = " ".join(p.get("text", "") for p in self._candidate_parts(result)).strip()
        logger.warning("%s returned no image%s", self.image_model, f": {text[:200]}" if text else "")
        return None

    def _build_payload(
        self,
        prompt: str,
        images: Optional[Sequence[ImageRef]],
        system: Optional[str],
        generation_config: Dict[str, Any],
    ) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        for image in images or []:
            parts.append(image.to_inline_part())

        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if generation_config:
            payload["generationConfig"] = generation_config
        return payload

    @staticmethod
    def _candidate_parts(result: Dict[str, Any]) -> List[Dict[str, Any]]:
        candidates = result.get("candidates") or []
        if not candidates:
            return []
        content = candidates[0].get("content") or {}
        return content.get("parts") or []

    async def _post(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a generateContent request and return the decoded JSON body."""
        url = f"{self.base_url}/models/{model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        start_time = time.time()
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error("Gemini API error %s from %s: %s", response.status, model, error_text[:500])
                        raise ModelResponseError(
                            f"{model} returned status {response.status}: {error_text[:500]}",
                            status=response.status,
                        )
                    result = await response.json()
        except asyncio.TimeoutError as e:
            raise ModelResponseError(f"{model} request timed out after {self.timeout} seconds") from e
        except aiohttp.ClientError as e:
            raise ModelResponseError(f"{model} request failed: {e}") from e

        logger.info("Gemini request to %s completed in %.2fs", model, time.time() - start_time)
        return result
