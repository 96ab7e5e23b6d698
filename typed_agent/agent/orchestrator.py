"""Agent run loop.

The :class:`AgentOrchestrator` drives one conversation with the model:

    INIT -> BUILDING_PROMPT -> AWAITING_MODEL
         -> {TOOL_CALL_REQUESTED -> EXECUTING_TOOLS -> AWAITING_MODEL}*
         -> VALIDATING_OUTPUT -> DONE | FAILED

Every run is bounded: each model exchange spends one round of
``max_rounds`` and each rejected output spends one of ``max_corrections``.
The orchestrator itself is stateless between runs; all per-run data lives
in :class:`~typed_agent.agent.state.AgentRunState`.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import Any, AsyncIterator, List, Optional

from pydantic_core import from_json

from typed_agent.core.errors import (
    MaxRoundsExceededError,
    OutputValidationError,
    RunError,
    TransportError,
    ValidationError,
)
from typed_agent.core.logging_config import get_logger
from typed_agent.core.messages import Message, serialize_value
from typed_agent.core.monitoring import trace_span
from typed_agent.handlers.base import ModelHandler, ModelTurn
from typed_agent.prompt.builder import PromptBuilder, PromptSpec
from typed_agent.schema.synthesizer import get_synthesizer
from typed_agent.schema.types import ScalarSchema, SchemaLike
from typed_agent.tools.invoker import ToolInvoker
from typed_agent.tools.registry import ToolRegistry

from .state import AgentRunResult, AgentRunState, RunPhase

logger = get_logger(__name__)

_NO_OUTPUT = object()

CORRECTION_HINT = "Please correct the output and respond again."
SKIPPED_TOOL_RESULT = "Tool call skipped: a final answer was given in the same turn."


class AgentOrchestrator:
    """Runs the model / tool / validation loop for one agent.

    Args:
        handler: Model handler performing each exchange
        prompt_spec: Prompt sources of the agent
        output_schema: Schema the final answer must satisfy
        input_schema: Schema the run input is validated against, if any
        tools: Tools exposed to the model
        instance: Agent instance dynamic prompt providers are bound to
        max_rounds: Maximum number of model exchanges
        max_corrections: Maximum number of rejected outputs sent back for correction
        parallel_tool_calls: Run the tool calls of one turn concurrently
        name: Agent name used in logs and spans
    """

    def __init__(
        self,
        handler: ModelHandler,
        prompt_spec: PromptSpec,
        output_schema: SchemaLike,
        *,
        input_schema: Optional[SchemaLike] = None,
        tools: Optional[ToolRegistry] = None,
        instance: Any = None,
        max_rounds: int = 8,
        max_corrections: int = 2,
        parallel_tool_calls: bool = True,
        prompt_builder: Optional[PromptBuilder] = None,
        name: str = "agent",
    ) -> None:
        self.handler = handler
        self.prompt_spec = prompt_spec
        self.output_schema = output_schema
        self.input_schema = input_schema
        self.tools = tools or ToolRegistry()
        self.invoker = ToolInvoker(self.tools)
        self.instance = instance
        self.max_rounds = max_rounds
        self.max_corrections = max_corrections
        self.parallel_tool_calls = parallel_tool_calls
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.name = name

    async def run(self, value: Any) -> Any:
        """Run the agent and return the validated output."""
        result = await self.run_detailed(value)
        return result.output

    async def run_detailed(self, value: Any) -> AgentRunResult:
        """Run the agent and return the output with run statistics and history."""
        state = AgentRunState()
        async for _partial in self.drive(value, state, streaming=False):
            pass
        return AgentRunResult.from_state(state)

    def prepare_input(self, value: Any) -> str:
        """Validate and serialize the run input.

        Raises:
            ValidationError: If the input does not satisfy the input schema
        """
        if self.input_schema is not None:
            value = self.input_schema.validate(value)
        elif not isinstance(value, (str, int, float, bool)):
            logger.warning(f"Agent '{self.name}' received {type(value).__name__} input without an input schema")
            synthesizer = get_synthesizer()
            if synthesizer.is_declared(type(value)):
                value = synthesizer.synthesize_type(type(value)).dump(value)

        if isinstance(value, (str, int, float, bool)):
            return str(value)
        return serialize_value(value)

    def validate_output(self, candidate: Any) -> Any:
        """Validate an output candidate and coerce it to the output type.

        Structured outputs given as text are parsed as JSON first.

        Raises:
            ValidationError: If the candidate does not satisfy the output schema
        """
        schema = self.output_schema
        if isinstance(candidate, str) and not schema.is_text:
            try:
                candidate = from_json(candidate)
            except ValueError as e:
                if not isinstance(schema, ScalarSchema):
                    raise ValidationError(schema.name, message=f"Output is not valid JSON: {e}") from e
        return schema.coerce(candidate)

    @staticmethod
    def output_candidate(turn: ModelTurn) -> Any:
        """Pick the output candidate of a turn.

        A call to the output tool always wins; otherwise a turn with tool calls
        has no candidate, and a turn without them offers its text.
        """
        if turn.has_output_call:
            return turn.output
        if turn.tool_calls:
            return _NO_OUTPUT
        return turn.text

    def _fail(self, state: AgentRunState, error: Exception) -> Exception:
        state.transition(RunPhase.failed)
        logger.error(f"Agent '{self.name}' run failed after {state.rounds} round(s): {error}")
        return error

    async def _request(self, state: AgentRunState, system_prompt: str, shots: List[Message], streaming: bool) -> AsyncIterator[Any]:
        """Perform one exchange; yields partial outputs, then the completed turn."""
        prompt_schema = None if self.output_schema.is_text else self.output_schema.json_schema()
        arguments = (prompt_schema, list(state.history), self.output_schema.name, self.output_schema.description, shots)
        options = {"system_prompt": system_prompt, "tools": self.tools.catalog()}
        if not streaming:
            yield await self.handler.process_query(*arguments, **options)
            return

        turn: Optional[ModelTurn] = None
        async with aclosing(self.handler.stream_query(*arguments, **options)) as deltas:
            async for delta in deltas:
                if delta.turn is not None:
                    turn = delta.turn
                elif delta.partial is not None:
                    yield delta.partial
        if turn is None:
            raise RuntimeError("Model stream ended without a completed turn")
        yield turn

    async def drive(self, value: Any, state: AgentRunState, streaming: bool = False) -> AsyncIterator[Any]:
        """Run the state machine on ``state``; yields partial outputs when ``streaming``.

        Partial outputs of a round are held back until that round's output
        validates, so only fragments of the accepted answer are yielded; those
        of tool rounds and rejected drafts are dropped. On return
        ``state.final_output`` holds the validated output.

        Raises:
            ValidationError: If the input is invalid (before any model call)
            MaxRoundsExceededError: If the round budget is spent
            OutputValidationError: If the output is still invalid when the correction budget is spent
            TransportError: If the model handler fails
        """
        with trace_span("agent.run", agent=self.name):
            state.transition(RunPhase.building_prompt)
            try:
                query = self.prepare_input(value)
                system_prompt = await self.prompt_builder.build_system_prompt(self.prompt_spec, self.instance)
                shots = self.prompt_builder.generate_shots(self.output_schema, self.prompt_spec.shots, value)
            except Exception as e:
                raise self._fail(state, e)
            state.history.append(Message.user(query))
            logger.info(f"Agent '{self.name}' run started (max_rounds={self.max_rounds})")

            while True:
                if state.rounds >= self.max_rounds:
                    raise self._fail(state, MaxRoundsExceededError(self.max_rounds, **state.error_context()))
                state.transition(RunPhase.awaiting_model)

                with trace_span("agent.round", agent=self.name, round=state.rounds + 1):
                    turn: Optional[ModelTurn] = None
                    partials: List[Any] = []
                    try:
                        async with aclosing(self._request(state, system_prompt, shots, streaming)) as items:
                            async for item in items:
                                if isinstance(item, ModelTurn):
                                    turn = item
                                else:
                                    partials.append(item)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        raise self._fail(state, TransportError(e, **state.error_context()))

                    state.rounds += 1
                    state.add_usage(turn.usage)
                    state.history.append(turn.to_message())

                    candidate = self.output_candidate(turn)
                    if candidate is _NO_OUTPUT:
                        await self._execute_tools(state, turn)
                        continue

                    state.last_output = candidate
                    state.transition(RunPhase.validating_output)
                    try:
                        output = self.validate_output(candidate)
                    except ValidationError as e:
                        self._correct(state, turn, e)
                        continue

                state.final_output = output
                state.transition(RunPhase.done)
                logger.info(
                    f"Agent '{self.name}' run finished in {state.rounds} round(s) "
                    f"with {state.corrections} correction(s)"
                )
                for fragment in partials:
                    yield fragment
                return

    async def _execute_tools(self, state: AgentRunState, turn: ModelTurn) -> None:
        state.transition(RunPhase.tool_call_requested)
        state.pending_tool_calls = list(turn.tool_calls)
        state.transition(RunPhase.executing_tools)
        logger.debug(f"Agent '{self.name}' executing {len(turn.tool_calls)} tool call(s)")
        results = await self.invoker.invoke_all(state.pending_tool_calls, parallel=self.parallel_tool_calls)
        state.history.extend(results)
        state.pending_tool_calls = []

    def _correct(self, state: AgentRunState, turn: ModelTurn, error: ValidationError) -> None:
        """Send validation feedback, or fail when the correction budget is spent."""
        if state.corrections >= self.max_corrections:
            failure: RunError = OutputValidationError(error, **state.error_context())
            raise self._fail(state, failure)

        state.corrections += 1
        logger.warning(
            f"Agent '{self.name}' output rejected (correction {state.corrections}/{self.max_corrections}): {error}"
        )
        feedback = f"{error.observation()}\n{CORRECTION_HINT}"
        for call in turn.tool_calls:
            state.history.append(Message.tool_result(call, SKIPPED_TOOL_RESULT))
        if turn.output_call is not None:
            state.history.append(Message.tool_result(turn.output_call, feedback))
        else:
            state.history.append(Message.user(feedback))
