"""Design-rationale explainer."""

from __future__ import annotations

from ..llm_client import LLMClient
from ..models import RationaleResult
from ..templates import render_template


class DesignRationaleExplainer:
    """Explain, in plain language, why the user's design choices matter."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def explain(self, user_choices: str) -> str:
        prompt = render_template("rationale.jinja", {"user_choices": user_choices})
        result = await self.llm_client.generate_structured(prompt, RationaleResult)
        return result.explanation.strip()
