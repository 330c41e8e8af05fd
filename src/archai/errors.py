"""Exception hierarchy for the design assistant.

Every failure a session can surface to the user derives from ArchAIError so
callers can separate expected, recoverable conditions from programming errors.
"""

from __future__ import annotations

from typing import Optional


class ArchAIError(Exception):
    """Base class for all design-assistant errors."""


class ModelResponseError(ArchAIError):
    """The model endpoint failed or returned something unusable."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ExtractionError(ArchAIError):
    """The conversational extractor could not process a user message."""


class PipelineError(ArchAIError):
    """A generation-pipeline step failed."""


class GenerationError(PipelineError):
    """The floor-plan image call returned no media."""


class RefinementError(PipelineError):
    """A critique or edit step of the refinement loop failed."""

    def __init__(self, message: str, pass_number: int) -> None:
        super().__init__(message)
        self.pass_number = pass_number


class InteriorGenerationError(PipelineError):
    """The interior rendering call returned no media."""


class StageTransitionError(ArchAIError):
    """No transition is defined for a (stage, outcome) pair."""


class SessionError(ArchAIError):
    """The session cannot accept the requested action right now."""


class InputDisabledError(SessionError):
    """The session is finished or in a stage that takes no input."""


class SessionBusyError(SessionError):
    """Another operation is still in flight for this session."""
