"""Generation pipeline stages."""

from .floor_plan import FloorPlanGenerator
from .interior import InteriorVisualizer
from .prompt_compiler import PromptCompiler
from .rationale import DesignRationaleExplainer
from .refinement_loop import RefinementLoop, RefinementPass, RefinementResult

__all__ = [
    "FloorPlanGenerator",
    "InteriorVisualizer",
    "PromptCompiler",
    "DesignRationaleExplainer",
    "RefinementLoop",
    "RefinementPass",
    "RefinementResult",
]
