"""Configuration management for the design assistant.

This module provides configuration loading with sensible defaults. Values can
be overridden through environment variables (a local .env file is honoured).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_REFINEMENT_PASSES = 2


@dataclass
class GeminiConfig:
    """Connection settings for the hosted model provider."""
    api_key: str = ""
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    base_url: str = DEFAULT_BASE_URL
    # None leaves model calls unbounded; image calls routinely take a minute.
    timeout: Optional[float] = None


@dataclass
class SessionConfig:
    """Behaviour of a single design conversation."""
    extractor: str = "llm"
    refinement_passes: int = DEFAULT_REFINEMENT_PASSES
    interior_enabled: bool = True
    history_window: int = 30
    save_dir: Path = field(default_factory=lambda: Path.home() / ".archai" / "designs")
    session_dir: Path = field(default_factory=lambda: Path.home() / ".archai" / "sessions")


@dataclass
class Config:
    """Main configuration object."""
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_timeout(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    if not value or value.lower() == "none":
        return None
    return float(value)


def load_config(env_file: Optional[Path] = None) -> Config:
    """Load configuration with defaults and environment overrides.

    Args:
        env_file: Optional .env file to read before consulting the environment.

    Returns:
        Config object.
    """
    load_dotenv(dotenv_path=env_file)

    gemini = GeminiConfig(
        api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", ""),
        text_model=os.getenv("ARCHAI_TEXT_MODEL", DEFAULT_TEXT_MODEL),
        image_model=os.getenv("ARCHAI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
        base_url=os.getenv("ARCHAI_BASE_URL", DEFAULT_BASE_URL),
        timeout=_env_timeout("ARCHAI_TIMEOUT"),
    )

    session = SessionConfig(
        extractor=os.getenv("ARCHAI_EXTRACTOR", "llm").strip().lower(),
        refinement_passes=int(os.getenv("ARCHAI_REFINEMENT_PASSES", str(DEFAULT_REFINEMENT_PASSES))),
        interior_enabled=_env_bool("ARCHAI_INTERIOR", True),
        history_window=int(os.getenv("ARCHAI_HISTORY_WINDOW", "30")),
    )
    if os.getenv("ARCHAI_SAVE_DIR"):
        session.save_dir = Path(os.environ["ARCHAI_SAVE_DIR"]).expanduser()
    if os.getenv("ARCHAI_SESSION_DIR"):
        session.session_dir = Path(os.environ["ARCHAI_SESSION_DIR"]).expanduser()

    return Config(gemini=gemini, session=session)
