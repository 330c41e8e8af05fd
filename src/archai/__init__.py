"""ArchAI: conversational home design with generated floor plans."""

from .config import Config, GeminiConfig, SessionConfig, load_config
from .errors import ArchAIError
from .interview.design_session import DesignSession, Notice
from .interview.session_store import SessionStore
from .models import ImageRef, RequirementRecord

__version__ = "0.1.0"

__all__ = [
    "ArchAIError",
    "Config",
    "DesignSession",
    "GeminiConfig",
    "ImageRef",
    "Notice",
    "RequirementRecord",
    "SessionConfig",
    "SessionStore",
    "load_config",
]
