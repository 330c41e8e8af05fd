"""Architectural prompt compiler."""

from __future__ import annotations

from typing import Any, Dict

from ..models import RequirementRecord
from ..templates import render_template


class PromptCompiler:
    """Render a requirement record into the architectural prompt.

    The output is plain template expansion: no model call, no randomness, so
    the same record always yields the same text. Unanswered fields render as
    empty strings; deciding whether a record is ready is the session's job.
    """

    template_name = "architectural_prompt.jinja"

    def compile(self, requirements: RequirementRecord) -> str:
        return render_template(self.template_name, self._context(requirements))

    def _context(self, requirements: RequirementRecord) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            alias: value if value is not None else ""
            for alias, value in requirements.user_values().items()
        }
        image = requirements.inspiration_image
        context["inspiration_image"] = image.mime_type if image is not None else ""
        return context
