"""Pydantic models used across the conversation and pipeline stages."""

from __future__ import annotations

import base64
import mimetypes
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# User-answerable fields in the order they are collected: (attribute, alias, title).
USER_FIELD_SPECS: Tuple[Tuple[str, str, str], ...] = (
    ("vision", "vision", "Vision"),
    ("square_footage", "squareFootage", "Square Footage"),
    ("lot_size", "lotSize", "Lot Size"),
    ("rooms", "rooms", "Rooms"),
    ("budget", "budget", "Budget"),
    ("architectural_style", "architecturalStyle", "Architectural Style"),
    ("lifestyle_needs", "lifestyleNeeds", "Lifestyle Needs"),
    ("special_requirements", "specialRequirements", "Special Requirements"),
    ("material_preferences", "materialPreferences", "Material Preferences"),
    ("aesthetic_preferences", "aestheticPreferences", "Aesthetic Preferences"),
)

USER_FIELDS: Tuple[str, ...] = tuple(spec[0] for spec in USER_FIELD_SPECS)
DERIVED_FIELDS: Tuple[str, ...] = ("architectural_prompt", "floor_plan_image", "interior_image")

FIELD_TITLES: Dict[str, str] = {attr: title for attr, _, title in USER_FIELD_SPECS}
_ALIAS_TO_ATTR: Dict[str, str] = {alias: attr for attr, alias, _ in USER_FIELD_SPECS}
_ALIAS_TO_ATTR.update({
    "inspirationImage": "inspiration_image",
    "architecturalPrompt": "architectural_prompt",
    "floorPlanImage": "floor_plan_image",
    "interiorImage": "interior_image",
})

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


def field_attr(name: str) -> Optional[str]:
    """Resolve a field name given as alias (``squareFootage``) or attribute.

    Returns None for names that are not requirement fields.
    """
    if name in _ALIAS_TO_ATTR:
        return _ALIAS_TO_ATTR[name]
    if name in _ALIAS_TO_ATTR.values():
        return name
    return None


class ImageRef(BaseModel):
    """An image held in memory as base64 with its MIME type."""

    model_config = ConfigDict(frozen=True)

    mime_type: str = "image/png"
    data: str

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str = "image/png") -> "ImageRef":
        return cls(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImageRef":
        match = _DATA_URI_PATTERN.match(uri.strip())
        if not match:
            raise ValueError("Expected a data URI of the form 'data:<mimetype>;base64,<data>'")
        return cls(mime_type=match.group("mime"), data=match.group("data"))

    @classmethod
    def from_file(cls, path: Path) -> "ImageRef":
        mime_type, _ = mimetypes.guess_type(str(path))
        if not mime_type or not mime_type.startswith("image/"):
            raise ValueError(f"Unsupported image type: {path.name}")
        return cls.from_bytes(Path(path).read_bytes(), mime_type=mime_type)

    @property
    def extension(self) -> str:
        return mimetypes.guess_extension(self.mime_type) or ".png"

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    def to_inline_part(self) -> Dict[str, Any]:
        return {"inline_data": {"mime_type": self.mime_type, "data": self.data}}

    def save(self, path: Path) -> Path:
        """Write the decoded image, adding an extension when ``path`` has none."""
        path = Path(path)
        if not path.suffix:
            path = path.with_suffix(self.extension)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.to_bytes())
        return path

    def __repr__(self) -> str:
        return f"ImageRef(mime_type={self.mime_type!r}, size={len(self.data)})"


class RequirementRecord(BaseModel):
    """Partial record of everything known about the user's home.

    ``None`` means the field has not been answered yet; any string, including
    an empty one, is an answer. Records are immutable: every mutation returns
    a new record so components only ever see snapshots.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    vision: Optional[str] = None
    square_footage: Optional[str] = Field(default=None, alias="squareFootage")
    lot_size: Optional[str] = Field(default=None, alias="lotSize")
    rooms: Optional[str] = None
    budget: Optional[str] = None
    architectural_style: Optional[str] = Field(default=None, alias="architecturalStyle")
    lifestyle_needs: Optional[str] = Field(default=None, alias="lifestyleNeeds")
    special_requirements: Optional[str] = Field(default=None, alias="specialRequirements")
    material_preferences: Optional[str] = Field(default=None, alias="materialPreferences")
    aesthetic_preferences: Optional[str] = Field(default=None, alias="aestheticPreferences")

    inspiration_image: Optional[ImageRef] = Field(default=None, alias="inspirationImage")

    architectural_prompt: Optional[str] = Field(default=None, alias="architecturalPrompt")
    floor_plan_image: Optional[ImageRef] = Field(default=None, alias="floorPlanImage")
    interior_image: Optional[ImageRef] = Field(default=None, alias="interiorImage")

    def first_unset_field(self) -> Optional[str]:
        """Return the first unanswered user field in collection order."""
        for attr in USER_FIELDS:
            if getattr(self, attr) is None:
                return attr
        return None

    @property
    def is_complete(self) -> bool:
        return self.first_unset_field() is None

    def with_user_fields(self, delta: Dict[str, Optional[str]]) -> "RequirementRecord":
        """Apply answered user fields from ``delta``.

        Keys may be aliases or attribute names. Derived fields, the upload
        field, unknown keys and ``None`` values are ignored, so a delta can
        never unset an answer or forge a generated artifact.
        """
        update: Dict[str, str] = {}
        for key, value in delta.items():
            attr = field_attr(key)
            if attr not in USER_FIELDS or value is None:
                continue
            update[attr] = str(value).strip()
        if not update:
            return self
        return self.model_copy(update=update)

    def without_fields(self, names: Iterable[str]) -> "RequirementRecord":
        """Clear user fields; used only for explicit user corrections."""
        update = {}
        for name in names:
            attr = field_attr(name)
            if attr in USER_FIELDS:
                update[attr] = None
        return self.model_copy(update=update) if update else self

    def with_inspiration_image(self, image: Optional[ImageRef]) -> "RequirementRecord":
        return self.model_copy(update={"inspiration_image": image})

    def with_derived(self, **values: Any) -> "RequirementRecord":
        unknown = set(values) - set(DERIVED_FIELDS)
        if unknown:
            raise ValueError(f"Not derived fields: {', '.join(sorted(unknown))}")
        return self.model_copy(update=values)

    def changed_fields(self, other: "RequirementRecord") -> List[str]:
        """User fields whose value differs between ``self`` and ``other``."""
        return [attr for attr in USER_FIELDS if getattr(self, attr) != getattr(other, attr)]

    def user_values(self, by_alias: bool = True) -> Dict[str, Optional[str]]:
        result: Dict[str, Optional[str]] = {}
        for attr, alias, _ in USER_FIELD_SPECS:
            result[alias if by_alias else attr] = getattr(self, attr)
        return result

    def summary_lines(self) -> List[str]:
        lines = []
        for attr, _, title in USER_FIELD_SPECS:
            value = getattr(self, attr)
            if value is not None:
                lines.append(f"{title}: {value}")
        if self.inspiration_image is not None:
            lines.append("Inspiration Image: attached")
        return lines

    def as_requirements_text(self) -> str:
        """Plain-text block of the answered requirements for model prompts."""
        return "\n".join(self.summary_lines())

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> "RequirementRecord":
        return cls.model_validate(data or {})


class RequirementsDelta(BaseModel):
    """Schema of the requirement fields a language model may fill in."""

    model_config = ConfigDict(populate_by_name=True)

    vision: Optional[str] = Field(default=None, description="The user's overall vision for their dream home.")
    square_footage: Optional[str] = Field(default=None, alias="squareFootage", description="Total square footage of the house.")
    lot_size: Optional[str] = Field(default=None, alias="lotSize", description="Size of the lot.")
    rooms: Optional[str] = Field(default=None, description="Types and number of rooms needed (e.g., 3 bedrooms, 2.5 bathrooms, home office).")
    budget: Optional[str] = Field(default=None, description="Budget range for the project.")
    architectural_style: Optional[str] = Field(default=None, alias="architecturalStyle", description="Preferred architectural style (e.g., modern, traditional, contemporary).")
    lifestyle_needs: Optional[str] = Field(default=None, alias="lifestyleNeeds", description="Lifestyle considerations (e.g., work from home, entertaining, family size).")
    special_requirements: Optional[str] = Field(default=None, alias="specialRequirements", description="Special features like accessibility (ramps, elevator) or sustainability.")
    material_preferences: Optional[str] = Field(default=None, alias="materialPreferences", description="Preferences for construction and finishing materials.")
    aesthetic_preferences: Optional[str] = Field(default=None, alias="aestheticPreferences", description="The desired look and feel of the house.")


class ExtractionPayload(BaseModel):
    """Structured reply expected from the conversational model."""

    model_config = ConfigDict(populate_by_name=True)

    response: str = Field(description="The conversational reply to show the user.")
    requirements: RequirementsDelta = Field(default_factory=RequirementsDelta, description="The updated set of requirements after processing the user's message.")
    next_stage: str = Field(alias="nextStage", description="The key of the next conversational stage (e.g., 'vision', 'squareFootage', 'confirmation').")


class CritiqueResult(BaseModel):
    """Critique of a floor plan plus the edit instruction derived from it."""

    critique: Optional[str] = Field(default=None, description="Free-text assessment of the current drawing.")
    correction: str = Field(default="", description="A single, self-contained instruction for the image editor.")


class RationaleResult(BaseModel):
    explanation: str = Field(description="An explanation of the design rationale behind the given choices.")
