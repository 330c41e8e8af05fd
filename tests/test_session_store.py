import asyncio
import json

from archai.interview.design_session import DesignSession
from archai.interview.session_store import SessionStore
from archai.interview.stage_coordinator import Stage

from conftest import FakeImageClient, FakeLLMClient


def make_store(config):
    factory = lambda: DesignSession(config, llm_client=FakeLLMClient(), image_client=FakeImageClient())
    return SessionStore(config.session.session_dir, factory)


def test_create_session_marks_it_active(config):
    store = make_store(config)

    response = asyncio.run(store.resume_or_create())

    assert response.startswith("Hello! I'm ArchAI")
    assert store.get_active_session_id() == store.session_id
    saved = json.loads((config.session.session_dir / f"{store.session_id}.json").read_text())
    assert saved["stage"] == "vision"
    assert saved["session_id"] == store.session_id


def test_messages_persist_across_processes(config):
    store = make_store(config)
    asyncio.run(store.resume_or_create())
    asyncio.run(store.process_message("A cabin in the woods"))

    resumed = make_store(config)
    response = asyncio.run(resumed.resume_or_create())

    assert response.startswith(f"[Resumed session {store.session_id}]")
    assert resumed.session.current_stage == Stage.SQUARE_FOOTAGE
    assert resumed.session.requirements.vision == "A cabin in the woods"
    assert "Stage: Sizing" in resumed.get_status()


def test_uploads_are_saved_immediately(config, tmp_path):
    picture = tmp_path / "ref.png"
    picture.write_bytes(b"png")
    store = make_store(config)
    asyncio.run(store.resume_or_create())

    asyncio.run(store.session.upload_inspiration_image(picture))

    saved = json.loads((config.session.session_dir / f"{store.session_id}.json").read_text())
    assert saved["requirements"]["inspirationImage"]["mime_type"] == "image/png"


def test_clear_active_session(config):
    store = make_store(config)
    asyncio.run(store.resume_or_create())

    store.clear_active_session()

    assert store.get_active_session_id() is None
    assert make_store(config).get_status() == "No active session"
