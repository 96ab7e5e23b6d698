"""Agent declaration and orchestration.

- ``Agent`` – base class of typed agents.
- ``model`` / ``system_prompt`` / ``input_type`` / ``output_type`` / ``shots`` – class declarations.
- ``AgentOrchestrator`` – the model / tool / validation run loop.
- ``AgentStream`` – streaming runs.
"""

from .agent import Agent
from .decorators import AgentDeclaration, get_declaration, input_type, model, output_type, shots, system_prompt
from .orchestrator import AgentOrchestrator
from .state import AgentRunResult, AgentRunState, RunPhase
from .stream import AgentStream

__all__ = [
    "Agent",
    "AgentDeclaration",
    "get_declaration",
    "model",
    "system_prompt",
    "input_type",
    "output_type",
    "shots",
    "AgentOrchestrator",
    "AgentRunResult",
    "AgentRunState",
    "RunPhase",
    "AgentStream",
]
