from pathlib import Path

from archai.cli import build_config, build_parser

from test_config import clear_env


def test_flags_override_config(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    args = build_parser().parse_args([
        "--model", "gemini-2.5-pro",
        "--image-model", "image-x",
        "--extractor", "rules",
        "--passes", "0",
        "--no-interior",
        "--save-dir", str(tmp_path / "out"),
        "--env-file", str(tmp_path / "missing.env"),
    ])

    config = build_config(args)

    assert config.gemini.text_model == "gemini-2.5-pro"
    assert config.gemini.image_model == "image-x"
    assert config.session.extractor == "rules"
    assert config.session.refinement_passes == 0
    assert not config.session.interior_enabled
    assert config.session.save_dir == Path(tmp_path / "out")


def test_defaults_leave_config_alone(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    args = build_parser().parse_args(["--env-file", str(tmp_path / "missing.env")])

    config = build_config(args)

    assert config.session.extractor == "llm"
    assert config.session.refinement_passes == 2
    assert config.session.interior_enabled
