import json
from typing import Any, Dict, List, Optional, Sequence

import pytest

from archai.config import Config, SessionConfig
from archai.errors import ModelResponseError
from archai.llm_client import ImageClient, LLMClient
from archai.models import ImageRef, RequirementRecord


class FakeLLMClient(LLMClient):
    """Replays scripted replies; dicts are sent as JSON, exceptions are raised."""

    def __init__(self, replies: Optional[List[Any]] = None):
        super().__init__()
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    async def generate_completion(self, prompt, *, system=None, images=None, response_schema=None, **kwargs):
        self.calls.append({"prompt": prompt, "system": system, "images": list(images or [])})
        if not self.replies:
            raise ModelResponseError("No scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)


class FakeImageClient(ImageClient):
    """Returns scripted images in order; None simulates a reply without media."""

    def __init__(self, images: Optional[Sequence[Optional[ImageRef]]] = None):
        self.images = list(images or [])
        self.calls: List[Dict[str, Any]] = []

    async def generate_image(self, prompt, *, images=None, **kwargs):
        self.calls.append({"prompt": prompt, "images": list(images or [])})
        if not self.images:
            return None
        image = self.images.pop(0)
        if isinstance(image, Exception):
            raise image
        return image


def make_image(label: str) -> ImageRef:
    return ImageRef.from_bytes(label.encode("utf-8"))


def complete_record(**overrides: str) -> RequirementRecord:
    values = {
        "vision": "A bright family home near the coast",
        "squareFootage": "2000",
        "lotSize": "0.5 acres",
        "rooms": "3 bedrooms, 2 baths",
        "budget": "$500k",
        "architecturalStyle": "modern",
        "lifestyleNeeds": "Family of four, works from home",
        "specialRequirements": "Wheelchair accessible",
        "materialPreferences": "Timber and concrete",
        "aestheticPreferences": "Warm minimalism",
    }
    values.update(overrides)
    return RequirementRecord().with_user_fields(values)


@pytest.fixture
def config(tmp_path):
    return Config(session=SessionConfig(
        extractor="rules",
        save_dir=tmp_path / "designs",
        session_dir=tmp_path / "sessions",
    ))
