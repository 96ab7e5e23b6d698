"""Agent base class.

Subclass :class:`Agent` and configure it with the class decorators from
:mod:`typed_agent.agent.decorators` and :mod:`typed_agent.tools`. The model
handler is created when the agent is constructed, so configuration mistakes
(unknown provider, invalid schema) surface before the first model call.
"""

from __future__ import annotations

from typing import Any, Optional

from typed_agent.core.config import get_settings
from typed_agent.core.errors import ConfigError
from typed_agent.core.logging_config import get_logger
from typed_agent.handlers.base import ModelHandler
from typed_agent.handlers.factory import create_handler
from typed_agent.prompt.builder import PromptBuilder, PromptSpec
from typed_agent.schema.synthesizer import resolve_schema
from typed_agent.schema.types import SchemaLike
from typed_agent.tools.registry import ToolRegistry

from .decorators import AgentDeclaration, collect_dynamic_prompts, get_declaration
from .orchestrator import AgentOrchestrator
from .state import AgentRunResult
from .stream import AgentStream

logger = get_logger(__name__)


class Agent:
    """Base class of typed agents.

    Args:
        handler: Model handler to use instead of the one selected by ``@model``
        prompt_builder: Prompt builder (defaults to JSON schema rendering)

    Raises:
        ConfigError: If no model is declared and no handler given, or a declaration is invalid
    """

    def __init__(self, handler: Optional[ModelHandler] = None, prompt_builder: Optional[PromptBuilder] = None) -> None:
        declaration = get_declaration(type(self))
        if handler is None:
            if not declaration.model_id:
                raise ConfigError(f"Agent '{type(self).__name__}' has no model; decorate it with @model")
            handler = create_handler(declaration.model_id, **declaration.model_options)

        settings = get_settings()
        self.declaration = declaration
        self.handler = handler
        self.input_schema: Optional[SchemaLike] = (
            resolve_schema(declaration.input_source) if declaration.input_source is not None else None
        )
        self.output_schema: SchemaLike = resolve_schema(declaration.output_source)
        self.tools = ToolRegistry.for_agent(self)
        self.orchestrator = AgentOrchestrator(
            handler,
            self.prompt_spec(),
            self.output_schema,
            input_schema=self.input_schema,
            tools=self.tools,
            instance=self,
            max_rounds=_first_set(declaration.max_rounds, settings.default_max_rounds),
            max_corrections=_first_set(declaration.max_corrections, settings.default_max_corrections),
            parallel_tool_calls=_first_set(declaration.parallel_tool_calls, settings.parallel_tool_calls),
            prompt_builder=prompt_builder,
            name=type(self).__name__,
        )
        logger.debug(f"Created agent {self!r} with {len(self.tools)} tool(s)")

    def prompt_spec(self) -> PromptSpec:
        declaration: AgentDeclaration = self.declaration
        return PromptSpec(
            static_segments=list(declaration.static_prompts),
            dynamic_providers=collect_dynamic_prompts(type(self)),
            output_schema=self.output_schema,
            shots=list(declaration.shots),
        )

    async def run(self, value: Any) -> Any:
        """Run the agent on ``value`` and return the validated output.

        Raises:
            ValidationError: If ``value`` does not satisfy the input schema
            MaxRoundsExceededError: If no valid answer is produced within the round budget
            OutputValidationError: If the answer is still invalid after the correction budget
            TransportError: If the model call fails
        """
        return await self.orchestrator.run(value)

    async def run_detailed(self, value: Any) -> AgentRunResult:
        """Run the agent and return the output together with rounds, corrections and history."""
        return await self.orchestrator.run_detailed(value)

    def run_stream(self, value: Any) -> AgentStream:
        """Start a streaming run; iterate the returned stream to drive it."""
        return AgentStream(self.orchestrator, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(handler={self.handler!r})"


def _first_set(value: Any, default: Any) -> Any:
    return default if value is None else value
