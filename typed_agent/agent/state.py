"""Per-run state of the agent orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from typed_agent.core.messages import Message, ToolCall


class RunPhase(str, Enum):
    """Phases of one agent run."""

    init = "init"
    building_prompt = "building_prompt"
    awaiting_model = "awaiting_model"
    tool_call_requested = "tool_call_requested"
    executing_tools = "executing_tools"
    validating_output = "validating_output"
    done = "done"
    failed = "failed"


ALLOWED_TRANSITIONS = {
    RunPhase.init: {RunPhase.building_prompt, RunPhase.failed},
    RunPhase.building_prompt: {RunPhase.awaiting_model, RunPhase.failed},
    RunPhase.awaiting_model: {RunPhase.tool_call_requested, RunPhase.validating_output, RunPhase.failed},
    RunPhase.tool_call_requested: {RunPhase.executing_tools, RunPhase.failed},
    RunPhase.executing_tools: {RunPhase.awaiting_model, RunPhase.failed},
    RunPhase.validating_output: {RunPhase.done, RunPhase.awaiting_model, RunPhase.failed},
    RunPhase.done: set(),
    RunPhase.failed: set(),
}


@dataclass
class AgentRunState:
    """Mutable state of a single run; created at run entry and never shared."""

    phase: RunPhase = RunPhase.init
    rounds: int = 0
    corrections: int = 0
    history: List[Message] = field(default_factory=list)
    pending_tool_calls: List[ToolCall] = field(default_factory=list)
    last_output: Any = None
    final_output: Any = None
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.phase in (RunPhase.done, RunPhase.failed)

    def transition(self, phase: RunPhase) -> None:
        """Move to ``phase``.

        Raises:
            RuntimeError: If the transition is not part of the run state machine
        """
        if phase not in ALLOWED_TRANSITIONS[self.phase]:
            raise RuntimeError(f"Invalid run transition {self.phase.value} -> {phase.value}")
        self.phase = phase

    def add_usage(self, usage: Dict[str, int]) -> None:
        for key, value in usage.items():
            self.usage[key] = self.usage.get(key, 0) + value

    def error_context(self) -> Dict[str, Any]:
        return {"rounds": self.rounds, "corrections": self.corrections, "last_output": self.last_output}


@dataclass(frozen=True)
class AgentRunResult:
    """Outcome of a successful run.

    Attributes:
        output: Validated output
        rounds: Model exchanges performed
        corrections: Correction rounds spent
        history: Conversation after the system prompt and shots
        usage: Token usage summed over all rounds
    """

    output: Any
    rounds: int
    corrections: int
    history: List[Message]
    usage: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_state(cls, state: AgentRunState) -> "AgentRunResult":
        return cls(
            output=state.final_output,
            rounds=state.rounds,
            corrections=state.corrections,
            history=list(state.history),
            usage=dict(state.usage),
        )
