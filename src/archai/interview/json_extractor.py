"""JSON extraction utilities for parsing structured data from LLM responses.

Models asked for JSON still occasionally wrap it in markdown fences, prefix it
with prose or leave trailing commas behind. This module recovers the object
in those cases.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class JSONExtractor:
    """Extract structured data from LLM responses.

    Handles various response formats:
    - Pure JSON
    - JSON in markdown code blocks (```json ... ```)
    - JSON with trailing commas
    - JSON embedded in natural language

    Example:
        extractor = JSONExtractor()

        response = '''Here's the data:
        ```json
        {"response": "Hi!", "nextStage": "vision"}
        ```
        '''
        data = extractor.extract_json(response)
        # Returns: {"response": "Hi!", "nextStage": "vision"}
    """

    JSON_BLOCK_PATTERN = re.compile(r'```(?:json)?\s*\n?(.*?)\n?```', re.DOTALL | re.IGNORECASE)
    TRAILING_COMMA_PATTERN = re.compile(r',(\s*[}\]])')

    def extract_json(self, response: str, expect_type: str = "object") -> Optional[Dict[str, Any] | List[Any]]:
        """Extract JSON from an LLM response.

        Tries multiple extraction strategies:
        1. Direct JSON parsing
        2. Extract from markdown code blocks
        3. Find the outermost balanced object/array in text

        Args:
            response: Raw LLM response text
            expect_type: "object" for dict, "array" for list

        Returns:
            Extracted JSON data or None if extraction fails
        """
        if not response or not response.strip():
            return None

        result = self._try_direct_parse(response.strip())
        if result is not None:
            return result

        result = self._extract_from_code_blocks(response)
        if result is not None:
            return result

        opener, closer = ("[", "]") if expect_type == "array" else ("{", "}")
        return self._find_balanced(response, opener, closer)

    def _try_direct_parse(self, text: str) -> Optional[Dict[str, Any] | List[Any]]:
        """Try to parse text directly as JSON, tolerating trailing commas."""
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
        cleaned = self.TRAILING_COMMA_PATTERN.sub(r'\1', text)
        if cleaned == text:
            return None
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError:
            return None

    def _extract_from_code_blocks(self, text: str) -> Optional[Dict[str, Any] | List[Any]]:
        """Extract JSON from markdown code blocks."""
        for match in self.JSON_BLOCK_PATTERN.findall(text):
            result = self._try_direct_parse(match.strip())
            if result is not None:
                return result
        return None

    def _find_balanced(self, text: str, opener: str, closer: str) -> Optional[Dict[str, Any] | List[Any]]:
        """Scan for balanced bracket spans and return the largest that parses."""
        candidates: List[str] = []
        depth = 0
        start = -1
        in_string = False
        escaped = False

        for i, ch in enumerate(text):
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"' and depth > 0:
                in_string = True
            elif ch == opener:
                if depth == 0:
                    start = i
                depth += 1
            elif ch == closer and depth > 0:
                depth -= 1
                if depth == 0:
                    candidates.append(text[start:i + 1])

        candidates.sort(key=len, reverse=True)
        for candidate in candidates:
            result = self._try_direct_parse(candidate)
            if result is not None:
                return result
        return None
