"""Interview module for the conversational requirement-gathering flow.

Users chat naturally to:
1. Describe their vision for a home
2. Answer one requirement at a time (or several in a single message)
3. Review and correct the gathered requirements
4. Kick off floor-plan generation and an optional interior rendering

Key components:
- ConversationHistory: Append-only transcript with rhetorical-turn tagging
- StageCoordinator: Current stage plus the explicit transition table
- JSONExtractor: Parses structured data from LLM responses
- LLMExtractor / RuleBasedExtractor (archai.interview.extractor)
- DesignSession (archai.interview.design_session): the session controller
"""

from .conversation_history import ConversationHistory, ConversationTurn, MessageRole
from .json_extractor import JSONExtractor
from .stage_coordinator import Outcome, Stage, StageCoordinator, is_affirmative, next_stage

__all__ = [
    "ConversationHistory",
    "ConversationTurn",
    "MessageRole",
    "JSONExtractor",
    "Outcome",
    "Stage",
    "StageCoordinator",
    "is_affirmative",
    "next_stage",
]
