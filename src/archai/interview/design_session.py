"""Design session controller.

This is the main orchestrator for one design conversation. It owns the
requirement record, the conversation history and the stage coordinator, runs
the extractor on every user turn, and once the user confirms the summary it
drives the generation pipeline through to the finished floor plan and the
optional interior rendering.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from ..config import Config
from ..errors import (
    ArchAIError,
    ExtractionError,
    InputDisabledError,
    PipelineError,
    SessionBusyError,
)
from ..llm_client import ImageClient, LLMClient
from ..models import FIELD_TITLES, USER_FIELDS, ImageRef, RequirementRecord, field_attr
from ..pipeline import (
    DesignRationaleExplainer,
    FloorPlanGenerator,
    InteriorVisualizer,
    PromptCompiler,
    RefinementLoop,
)
from .conversation_history import ConversationHistory
from .extractor import ExtractionResult, Extractor, create_extractor, question_for
from .stage_coordinator import BUSY_STAGES, Outcome, Stage, StageCoordinator, is_affirmative

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Hello! I'm ArchAI, your personal AI architect. I'm here to help you design your dream home."
TROUBLE_REPLY = "I seem to be having some trouble connecting. Could you try that again?"


@dataclass
class Notice:
    """A dismissible message for the user interface (errors, warnings)."""
    level: str
    title: str
    description: str


class DesignSession:
    """Single owner of all mutations for one design conversation.

    Manages the conversation flow across all stages:
    1. Introduction and field collection, one requirement at a time or several
       per message
    2. Confirmation of the gathered summary, with corrections
    3. Generation, refinement and presentation of the floor plan
    4. Optional interior rendering

    Components only ever see immutable ``RequirementRecord`` snapshots; the
    session applies their results and advances the coordinator.

    Example:
        session = DesignSession(config)
        print(await session.start())

        while not session.is_complete:
            reply = await session.chat(input("> "))
            print(reply)
    """

    COMMANDS = {
        "/help": "Show available commands",
        "/status": "Show current progress",
        "/summary": "Show the requirements gathered so far",
        "/set": "Edit a requirement: /set field=value (empty value clears it)",
        "/upload": "Attach an inspiration image: /upload <path>",
        "/explain": "Explain the reasoning behind your design choices",
        "/save": "Export requirements, prompt and images",
        "/reset": "Start over",
        "/quit": "Leave the session",
    }

    def __init__(
        self,
        config: Optional[Config] = None,
        llm_client: Optional[LLMClient] = None,
        image_client: Optional[ImageClient] = None,
        extractor: Optional[Extractor] = None,
    ):
        """Initialize the session.

        Args:
            config: Application configuration
            llm_client: Text model client. If None, a GeminiClient is created.
            image_client: Image model client. If None, the text client is used
                when it can also draw, otherwise a GeminiClient is created.
            extractor: Conversational extractor. If None, one is built from
                ``config.session.extractor``.
        """
        self.config = config or Config()
        session_config = self.config.session

        if llm_client is None or image_client is None:
            from ..llm_client_gemini import GeminiClient

            if llm_client is None:
                llm_client = GeminiClient(self.config.gemini)
            if image_client is None:
                image_client = llm_client if isinstance(llm_client, ImageClient) else GeminiClient(self.config.gemini)
        self.llm_client = llm_client
        self.image_client = image_client

        # Initialize components
        self.history = ConversationHistory()
        self.coordinator = StageCoordinator(refinement_enabled=session_config.refinement_passes > 0)
        self.extractor = extractor or create_extractor(
            session_config.extractor, llm_client, history_window=session_config.history_window
        )
        self.compiler = PromptCompiler()
        self.floor_plan_generator = FloorPlanGenerator(image_client)
        self.refinement_loop = (
            RefinementLoop(llm_client, image_client, passes=session_config.refinement_passes)
            if session_config.refinement_passes > 0
            else None
        )
        self.interior_visualizer = InteriorVisualizer(image_client)
        self.explainer = DesignRationaleExplainer(llm_client)

        # State
        self._requirements = RequirementRecord()
        self._draft_prompt: Optional[str] = None
        self._draft_image: Optional[ImageRef] = None
        self.notices: List[Notice] = []
        self._lock = asyncio.Lock()

        # Pipeline stages run by the session itself rather than by user input.
        self._stage_handlers: Dict[Stage, Callable[[], Awaitable[Outcome]]] = {
            Stage.GENERATION: self._generate_floor_plan,
            Stage.REFINEMENT: self._refine_floor_plan,
            Stage.INTERIOR: self._render_interior,
        }

        # Callbacks
        self._on_stage_change: Optional[Callable[[Stage, Stage], None]] = None
        self._on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
        self._on_notice: Optional[Callable[[Notice], None]] = None
        self._on_state_change: Optional[Callable[["DesignSession"], None]] = None

        self.coordinator.set_on_stage_change(self._handle_stage_change)

    @property
    def current_stage(self) -> Stage:
        return self.coordinator.current_stage

    @property
    def is_complete(self) -> bool:
        return self.coordinator.is_complete

    @property
    def is_busy(self) -> bool:
        return self._lock.locked() or self.current_stage in BUSY_STAGES

    @property
    def requirements(self) -> RequirementRecord:
        """Snapshot of the current requirement record."""
        return self._requirements

    @property
    def summary(self) -> List[str]:
        return self._requirements.summary_lines()

    def set_on_stage_change(self, callback: Callable[[Stage, Stage], None]) -> None:
        self._on_stage_change = callback

    def set_on_progress(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Set callback for progress updates (stage changes, long-call notes)."""
        self._on_progress = callback

    def set_on_notice(self, callback: Callable[[Notice], None]) -> None:
        self._on_notice = callback

    def set_on_state_change(self, callback: Callable[["DesignSession"], None]) -> None:
        """Set callback invoked after every mutation, e.g. to persist state."""
        self._on_state_change = callback

    async def start(self) -> str:
        """Start the conversation.

        Returns:
            The welcome message and first question, or the last assistant
            message when the session was restored mid-conversation.
        """
        async with self._exclusive():
            return self._start()

    async def chat(self, user_message: str) -> str:
        """Process a user message and return the assistant's reply.

        Slash commands are handled here too. When the message confirms the
        summary, the whole generation pipeline runs before this returns.

        Raises:
            InputDisabledError: If the session is finished.
            SessionBusyError: If a pipeline stage or another call is running.
        """
        if user_message.strip().startswith("/"):
            return await self._handle_command(user_message.strip())

        self._ensure_accepts_input()
        async with self._exclusive():
            self.history.add_user_message(user_message, stage=self.current_stage.value)

            if self.current_stage == Stage.FLOORPLAN:
                replies = await self._handle_floorplan(user_message)
            else:
                replies = await self._handle_requirements(user_message)

            self._state_changed()
            return "\n\n".join(replies)

    async def upload_inspiration_image(self, path: Path) -> str:
        """Attach an inspiration image to the requirements.

        Read or type errors are reported as a notice and change nothing.
        """
        self._ensure_editable()
        async with self._exclusive():
            path = Path(path).expanduser()
            try:
                image = ImageRef.from_file(path)
            except (OSError, ValueError) as e:
                logger.error("Could not load inspiration image %s: %s", path, e)
                self._notify(Notice("error", "Upload failed", f"Could not read {path.name}: {e}"))
                return f"I couldn't use {path.name} as an inspiration image."

            self._requirements = self._requirements.with_inspiration_image(image)
            stage = self.current_stage.value
            self.history.add_user_message(f"[Uploaded inspiration image: {path.name}]", stage=stage, rhetorical=True)
            reply = "Thanks! I'll use that image as inspiration for your floor plan."
            self.history.add_assistant_message(reply, stage=stage, rhetorical=True)
            self._state_changed()
            return reply

    async def update_requirements(self, **fields: Optional[str]) -> str:
        """Edit gathered requirements directly.

        Keys are field attributes or aliases. ``None`` or an empty string
        clears a field. The edit counts as a user correction, so the session
        moves to the first unanswered field or back to confirmation.

        Raises:
            ValueError: If a key is not a user requirement field.
        """
        self._ensure_editable()
        updates: Dict[str, str] = {}
        cleared: List[str] = []
        for name, value in fields.items():
            attr = field_attr(name)
            if attr not in USER_FIELDS:
                raise ValueError(f"Unknown requirement field: {name}")
            if value is None or not str(value).strip():
                cleared.append(attr)
            else:
                updates[attr] = str(value)

        async with self._exclusive():
            previous = self._requirements
            updated = previous.without_fields(cleared).with_user_fields(updates)
            changed = updated.changed_fields(previous)
            self._requirements = updated

            stage = self.current_stage
            if not changed:
                outcome = Outcome.NO_CHANGE
            elif stage == Stage.CONFIRMATION:
                outcome = Outcome.CORRECTED if updated.is_complete else Outcome.DECLINED
            else:
                outcome = Outcome.FIELD_EXTRACTED
            self.coordinator.advance(outcome, updated)

            edited = list(updates) + [attr for attr in cleared if attr not in updates]
            self.history.add_user_message(
                "[Edited requirements: " + ", ".join(FIELD_TITLES[attr] for attr in edited) + "]",
                stage=stage.value,
                rhetorical=True,
            )
            if changed:
                noted = ", ".join(FIELD_TITLES[attr].lower() for attr in changed)
                reply = f"Updated your {noted}. {question_for(updated)}"
            else:
                reply = f"Nothing changed. {question_for(updated)}"
            self.history.add_assistant_message(reply, stage=self.current_stage.value)
            self._state_changed()
            return reply

    async def explain(self) -> str:
        """Explain the reasoning behind the gathered choices; never mutates."""
        if not self._requirements.summary_lines():
            return "Tell me a little about your home first, then I can explain the design thinking behind it."

        async with self._exclusive():
            try:
                return await self.explainer.explain(self._requirements.as_requirements_text())
            except ArchAIError as e:
                logger.error("Design rationale failed: %s", e)
                self._notify(Notice("error", "Explanation unavailable", str(e)))
                return TROUBLE_REPLY

    def export(self, directory: Optional[Path] = None) -> Path:
        """Write requirements, transcript, prompt and images to ``directory``.

        Returns:
            The directory the design was written to.
        """
        if directory is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            directory = self.config.session.save_dir / f"design_{timestamp}"
        directory = Path(directory).expanduser()
        directory.mkdir(parents=True, exist_ok=True)

        record = self._requirements
        with open(directory / "requirements.json", "w") as f:
            json.dump(record.user_values(), f, indent=2)

        self.history.save(directory / "conversation.json")

        if record.architectural_prompt:
            (directory / "architectural_prompt.md").write_text(record.architectural_prompt + "\n")
        if record.inspiration_image is not None:
            record.inspiration_image.save(directory / "inspiration")
        if record.floor_plan_image is not None:
            record.floor_plan_image.save(directory / "floor_plan")
        if record.interior_image is not None:
            record.interior_image.save(directory / "interior")

        logger.info("Exported design to %s", directory)
        return directory

    async def reset(self) -> str:
        """Discard everything and start over."""
        async with self._exclusive():
            self.coordinator.reset()
            self.history.clear()
            self._requirements = RequirementRecord()
            self._draft_prompt = None
            self._draft_image = None
            self.notices.clear()
            return self._start()

    def get_progress(self) -> Dict[str, Any]:
        progress = self.coordinator.get_progress()
        progress["fields_answered"] = sum(1 for attr in USER_FIELDS if getattr(self._requirements, attr) is not None)
        progress["fields_total"] = len(USER_FIELDS)
        return progress

    def to_state(self) -> Dict[str, Any]:
        """Serializable snapshot of the session."""
        return {
            "stage": self.current_stage.value,
            "visited": [s.value for s in self.coordinator.visited_stages],
            "requirements": self._requirements.to_storage(),
            "history": self.history.to_list(),
        }

    def load_state(self, state: Dict[str, Any]) -> None:
        """Restore a snapshot produced by ``to_state``."""
        stage = Stage(state.get("stage", Stage.INTRODUCTION.value))
        if stage in BUSY_STAGES:
            # The process stopped mid-pipeline; nothing from that run was kept.
            logger.warning("Restored session was interrupted during %s; returning to confirmation", stage.value)
            stage = Stage.CONFIRMATION
        visited = [Stage(value) for value in state.get("visited", [])]
        self.coordinator.restore(stage, visited)
        self._requirements = RequirementRecord.from_storage(state.get("requirements", {}))
        self.history = ConversationHistory.from_list(state.get("history", []))

    # Conversation handling

    def _start(self) -> str:
        last = self.history.last_assistant_message()
        if last is not None:
            return last.content

        self.coordinator.advance(Outcome.STARTED, self._requirements)
        greeting = f"{WELCOME_MESSAGE} {question_for(self._requirements)}"
        self.history.add_assistant_message(greeting, stage=Stage.INTRODUCTION.value)
        self._state_changed()
        return greeting

    async def _handle_requirements(self, user_message: str) -> List[str]:
        stage = self.current_stage
        # The message just recorded is passed separately.
        dialogue = self.history.dialogue()[:-1]

        try:
            result = await self.extractor.extract(dialogue, self._requirements, user_message, stage)
        except ExtractionError as e:
            logger.error("Extraction failed at %s: %s", stage.value, e)
            self._notify(Notice("error", "Connection problem", str(e)))
            self.history.add_assistant_message(TROUBLE_REPLY, stage=stage.value, metadata={"error": "extraction"})
            return [TROUBLE_REPLY]

        outcome = self._outcome_for(stage, result)
        self._requirements = result.requirements
        new_stage = self.coordinator.advance(outcome, self._requirements)
        if result.next_stage != new_stage:
            logger.info(
                "Extractor suggested %s after %s; transition table chose %s",
                result.next_stage.value, outcome.value, new_stage.value,
            )

        self.history.add_assistant_message(result.reply, stage=new_stage.value)
        replies = [result.reply]

        if new_stage == Stage.GENERATION:
            replies.extend(await self._run_pipeline())
        return replies

    @staticmethod
    def _outcome_for(stage: Stage, result: ExtractionResult) -> Outcome:
        if stage == Stage.CONFIRMATION:
            if result.confirmed:
                return Outcome.CONFIRMED
            if result.changed_fields:
                return Outcome.CORRECTED
            return Outcome.DECLINED
        return Outcome.FIELD_EXTRACTED if result.changed_fields else Outcome.NO_CHANGE

    async def _handle_floorplan(self, user_message: str) -> List[str]:
        wants_interior = self.config.session.interior_enabled and is_affirmative(user_message)
        outcome = Outcome.CONFIRMED if wants_interior else Outcome.DECLINED
        new_stage = self.coordinator.advance(outcome, self._requirements)

        if new_stage == Stage.INTERIOR:
            reply = "Wonderful, let's see how the inside could look."
            self.history.add_assistant_message(reply, stage=new_stage.value)
            return [reply] + await self._run_pipeline()

        reply = "Your design is complete. Use /save to export your floor plan."
        self.history.add_assistant_message(reply, stage=new_stage.value)
        return [reply]

    # Pipeline

    async def _run_pipeline(self) -> List[str]:
        """Run pipeline stages until the coordinator lands on an input stage."""
        first_turn = len(self.history)
        while self.current_stage in self._stage_handlers:
            handler = self._stage_handlers[self.current_stage]
            outcome = await handler()
            self.coordinator.advance(outcome, self._requirements)
            self._state_changed()

        if self.current_stage == Stage.FLOORPLAN:
            self._present_floor_plan()

        self._draft_prompt = None
        self._draft_image = None
        return [t.content for t in self.history.get_all()[first_turn:] if not t.rhetorical]

    async def _generate_floor_plan(self) -> Outcome:
        self._narrate("Generating your floor plan. This may take up to a minute...")
        try:
            prompt = self.compiler.compile(self._requirements)
            image = await self.floor_plan_generator.generate(prompt, self._requirements.inspiration_image)
        except ArchAIError as e:
            return self._pipeline_failed("Generation failed", e)

        self._draft_prompt = prompt
        self._draft_image = image
        return Outcome.SUCCEEDED

    async def _refine_floor_plan(self) -> Outcome:
        passes = self.refinement_loop.passes
        self._narrate(f"Reviewing and refining the floor plan ({passes} passes). This may take a minute or two...")
        try:
            result = await self.refinement_loop.run(
                self._draft_image,
                self._requirements.as_requirements_text(),
                self._draft_prompt,
            )
        except ArchAIError as e:
            return self._pipeline_failed("Refinement failed", e)

        self._draft_image = result.image
        return Outcome.SUCCEEDED

    async def _render_interior(self) -> Outcome:
        self._narrate("Rendering an interior view. This may take up to a minute...")
        record = self._requirements
        try:
            image = await self.interior_visualizer.visualize(
                record.floor_plan_image,
                record.aesthetic_preferences or "",
                record.architectural_style or "",
            )
        except ArchAIError as e:
            logger.error("Interior rendering failed: %s", e)
            self._notify(Notice("error", "Interior rendering failed", str(e)))
            reply = "I wasn't able to render the interior, but your floor plan is ready. Use /save to export it."
            self.history.add_assistant_message(reply, stage=Stage.INTERIOR.value, metadata={"error": "interior"})
            return Outcome.FAILED

        self._requirements = record.with_derived(interior_image=image)
        reply = "Here is an interior view in your style. Use /save to export your designs."
        self.history.add_assistant_message(reply, stage=Stage.INTERIOR.value)
        return Outcome.SUCCEEDED

    def _present_floor_plan(self) -> None:
        self._requirements = self._requirements.with_derived(
            architectural_prompt=self._draft_prompt,
            floor_plan_image=self._draft_image,
        )
        if self.config.session.interior_enabled:
            reply = "Here is your floor plan! Would you like me to render an interior view as well?"
        else:
            reply = "Here is your floor plan! Let me know when you're done reviewing it."
        self.history.add_assistant_message(reply, stage=Stage.FLOORPLAN.value)
        self._state_changed()

    def _pipeline_failed(self, title: str, error: Exception) -> Outcome:
        stage = self.current_stage
        if isinstance(error, PipelineError):
            logger.error("%s at %s: %s", title, stage.value, error)
        else:
            logger.exception("%s at %s", title, stage.value)
        self._notify(Notice("error", title, str(error)))
        reply = (
            "I ran into a problem while creating your floor plan. Your requirements are safe; "
            "reply 'yes' to try again or tell me what you'd like to change."
        )
        self.history.add_assistant_message(reply, stage=stage.value, metadata={"error": stage.value})
        return Outcome.FAILED

    # Slash commands

    async def _handle_command(self, command: str) -> str:
        parts = command.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "/help":
            help_text = "Available commands:\n"
            for c, desc in self.COMMANDS.items():
                help_text += f"  {c} - {desc}\n"
            return help_text.rstrip()

        elif cmd == "/status":
            progress = self.get_progress()
            return (
                f"Current Progress:\n"
                f"- Stage: {progress['current_stage_name']}\n"
                f"- Requirements: {progress['fields_answered']}/{progress['fields_total']} answered\n"
                f"- Progress: {progress['progress_percent']}%"
            )

        elif cmd == "/summary":
            lines = self.summary
            return "\n".join(lines) if lines else "Nothing gathered yet."

        elif cmd == "/set":
            name, sep, value = args.partition("=")
            if not sep or not name.strip():
                return "Usage: /set field=value"
            try:
                return await self.update_requirements(**{name.strip(): value.strip()})
            except ValueError as e:
                return str(e)

        elif cmd == "/upload":
            if not args:
                return "Usage: /upload <path>"
            return await self.upload_inspiration_image(Path(args))

        elif cmd == "/explain":
            return await self.explain()

        elif cmd == "/save":
            return f"Design saved to {self.export()}"

        elif cmd == "/reset":
            return await self.reset()

        elif cmd == "/quit":
            return "Goodbye!"

        return f"Unknown command: {cmd}. Type /help for available commands."

    # Guards and notifications

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise SessionBusyError("Still working on the previous request.")
        async with self._lock:
            yield

    def _ensure_accepts_input(self) -> None:
        stage = self.current_stage
        if stage == Stage.DONE:
            raise InputDisabledError("The design session is complete.")
        if self.is_busy:
            raise SessionBusyError(f"Busy with {stage.display_name.lower()}.")
        if not stage.accepts_input:
            raise InputDisabledError(f"No input is accepted during {stage.display_name.lower()}.")

    def _ensure_editable(self) -> None:
        self._ensure_accepts_input()
        if self.current_stage.index >= Stage.GENERATION.index:
            raise InputDisabledError("Requirements can no longer be changed once generation has started.")

    def _narrate(self, message: str) -> None:
        self.history.add_assistant_message(message, stage=self.current_stage.value, rhetorical=True)
        self._notify_progress(message)

    def _notify(self, notice: Notice) -> None:
        self.notices.append(notice)
        if self._on_notice:
            self._on_notice(notice)

    def _notify_progress(self, message: str) -> None:
        if self._on_progress:
            progress = self.get_progress()
            progress["message"] = message
            self._on_progress(progress)

    def _handle_stage_change(self, old_stage: Stage, new_stage: Stage) -> None:
        if self._on_stage_change:
            self._on_stage_change(old_stage, new_stage)
        if self._on_progress:
            self._on_progress(self.get_progress())

    def _state_changed(self) -> None:
        if self._on_state_change:
            self._on_state_change(self)
