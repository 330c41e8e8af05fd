import os
from pathlib import Path

from archai.config import DEFAULT_IMAGE_MODEL, DEFAULT_TEXT_MODEL, load_config

ENV_VARS = [
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "ARCHAI_TEXT_MODEL",
    "ARCHAI_IMAGE_MODEL",
    "ARCHAI_TIMEOUT",
    "ARCHAI_EXTRACTOR",
    "ARCHAI_REFINEMENT_PASSES",
    "ARCHAI_INTERIOR",
    "ARCHAI_HISTORY_WINDOW",
    "ARCHAI_SAVE_DIR",
    "ARCHAI_SESSION_DIR",
]


def clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path):
    clear_env(monkeypatch)

    config = load_config(tmp_path / "missing.env")

    assert config.gemini.api_key == ""
    assert config.gemini.text_model == DEFAULT_TEXT_MODEL
    assert config.gemini.image_model == DEFAULT_IMAGE_MODEL
    assert config.gemini.timeout is None
    assert config.session.extractor == "llm"
    assert config.session.refinement_passes == 2
    assert config.session.interior_enabled
    assert config.session.save_dir == Path.home() / ".archai" / "designs"


def test_environment_overrides(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("ARCHAI_TIMEOUT", "90")
    monkeypatch.setenv("ARCHAI_EXTRACTOR", "Rules")
    monkeypatch.setenv("ARCHAI_REFINEMENT_PASSES", "3")
    monkeypatch.setenv("ARCHAI_INTERIOR", "off")
    monkeypatch.setenv("ARCHAI_SESSION_DIR", str(tmp_path / "sessions"))

    config = load_config(tmp_path / "missing.env")

    assert config.gemini.api_key == "google-key"
    assert config.gemini.timeout == 90.0
    assert config.session.extractor == "rules"
    assert config.session.refinement_passes == 3
    assert not config.session.interior_enabled
    assert config.session.session_dir == tmp_path / "sessions"


def test_env_file_is_read(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text("GEMINI_API_KEY=from-file\nARCHAI_TEXT_MODEL=gemini-2.5-pro\n")

    config = load_config(env_file)

    assert config.gemini.api_key == "from-file"
    assert config.gemini.text_model == "gemini-2.5-pro"
    # load_dotenv writes straight into os.environ.
    os.environ.pop("GEMINI_API_KEY", None)
    os.environ.pop("ARCHAI_TEXT_MODEL", None)
