"""Persistent design sessions for non-TTY environments.

Where the program handles one message per invocation (piped input, editor
integrations), the session has to survive between processes. SessionStore
handles:
- Detecting the active session
- Persisting session state to disk after every mutation
- Loading and resuming sessions
- One-message-at-a-time processing
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional

from .design_session import DesignSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Manages persistent design sessions stored as JSON files."""

    def __init__(self, session_dir: Path, session_factory: Callable[[], DesignSession]):
        """Initialize session store.

        Args:
            session_dir: Directory to store session state files
            session_factory: Builds a fresh DesignSession (clients, config)
        """
        self.session_dir = Path(session_dir).expanduser()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.session_factory = session_factory
        self.session: Optional[DesignSession] = None
        self.session_id: Optional[str] = None

    def _get_session_file(self, session_id: str) -> Path:
        return self.session_dir / f"{session_id}.json"

    def _get_active_session_file(self) -> Path:
        return self.session_dir / "active_session.txt"

    def get_active_session_id(self) -> Optional[str]:
        """Get the ID of the currently active session."""
        active_file = self._get_active_session_file()
        if active_file.exists():
            return active_file.read_text().strip() or None
        return None

    def set_active_session(self, session_id: str) -> None:
        self._get_active_session_file().write_text(session_id)

    def clear_active_session(self) -> None:
        """Clear the active session marker."""
        active_file = self._get_active_session_file()
        if active_file.exists():
            active_file.unlink()

    def session_exists(self, session_id: str) -> bool:
        return self._get_session_file(session_id).exists()

    def save_state(self) -> None:
        """Save current session state to disk."""
        if not self.session or not self.session_id:
            return

        state = {"session_id": self.session_id, **self.session.to_state()}
        session_file = self._get_session_file(self.session_id)
        with open(session_file, "w") as f:
            json.dump(state, f, indent=2)
        logger.debug("Saved session %s at stage %s", self.session_id, state["stage"])

    def load_state(self, session_id: str) -> bool:
        """Load session state from disk.

        Args:
            session_id: Session ID to load

        Returns:
            True if session was loaded successfully
        """
        session_file = self._get_session_file(session_id)
        if not session_file.exists():
            return False

        with open(session_file, "r") as f:
            state = json.load(f)

        self.session = self.session_factory()
        self.session.load_state(state)
        self.session_id = session_id
        self._attach()
        return True

    async def create_session(self) -> str:
        """Create a new session and return its welcome message."""
        self.session_id = f"session_{int(time.time())}"
        self.session = self.session_factory()
        self._attach()
        self.set_active_session(self.session_id)

        response = await self.session.start()
        self.save_state()
        return response

    async def resume_or_create(self) -> str:
        """Resume the active session or create a new one.

        Returns:
            The last assistant message of a resumed session, or the welcome
            message of a new one
        """
        active_id = self.get_active_session_id()

        if active_id and self.session_exists(active_id) and self.load_state(active_id):
            response = await self.session.start()
            return f"[Resumed session {active_id}]\n\n{response}"
        return await self.create_session()

    async def process_message(self, message: str) -> str:
        """Process a single user message in the current session."""
        if not self.session:
            raise RuntimeError("No active session; call resume_or_create first")

        response = await self.session.chat(message)
        self.save_state()

        if self.session.is_complete:
            output_dir = self.session.export()
            self.clear_active_session()
            return f"{response}\n\nDesign complete! Output saved to: {output_dir}"

        return response

    def get_status(self) -> str:
        """Get current session status."""
        if not self.session or not self.session_id:
            return "No active session"

        progress = self.session.get_progress()
        return (
            f"Session: {self.session_id}\n"
            f"Stage: {progress['current_stage_name']}\n"
            f"Progress: {progress['progress_percent']}%\n"
            f"Requirements: {progress['fields_answered']}/{progress['fields_total']}\n"
            f"Messages: {len(self.session.history)}\n"
            f"Complete: {self.session.is_complete}"
        )

    def _attach(self) -> None:
        self.session.set_on_state_change(lambda _session: self.save_state())
