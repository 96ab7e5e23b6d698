"""Tool invocation.

The invoker turns model tool calls into tool-result messages. Failures are
never raised to the run loop: they become observations the model can react
to on its next turn.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Sequence

from typed_agent.core.errors import AgentError, ToolExecutionError, ToolNotFoundError, ValidationError
from typed_agent.core.logging_config import get_logger
from typed_agent.core.messages import Message, ToolCall, serialize_value
from typed_agent.core.monitoring import trace_span
from typed_agent.schema.synthesizer import get_synthesizer

from .registry import ToolRegistry

logger = get_logger(__name__)


def render_result(result: Any) -> str:
    """Serialize a tool result for the model (instances of ``@schema`` classes are dumped first)."""
    synthesizer = get_synthesizer()
    if synthesizer.is_declared(type(result)):
        result = synthesizer.synthesize_type(type(result)).dump(result)
    return serialize_value(result)


class ToolInvoker:
    """Executes tool calls against a :class:`ToolRegistry`."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def invoke(self, call: ToolCall) -> Message:
        """Execute one call and return its tool-result message."""
        with trace_span("agent.tool", tool_name=call.name, tool_call_id=call.id):
            definition = self.registry.get(call.name)
            if definition is None:
                error: AgentError = ToolNotFoundError(call.name, self.registry.names())
                logger.warning(f"Model requested unknown tool '{call.name}'")
                return Message.tool_result(call, error.observation())

            try:
                params = definition.parameters.coerce(call.arguments_as_dict())
            except ValidationError as e:
                logger.info(f"Invalid arguments for tool '{call.name}': {e}")
                return Message.tool_result(call, e.observation())
            except ValueError as e:
                error = ValidationError(definition.parameters.name, message=f"Arguments are not valid JSON: {e}")
                logger.info(f"Unparseable arguments for tool '{call.name}': {e}")
                return Message.tool_result(call, error.observation())

            logger.debug(f"Executing tool '{call.name}' (call {call.id})")
            try:
                result = await definition.call(params)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = ToolExecutionError(call.name, e)
                logger.error(f"Tool '{call.name}' failed: {e}", exc_info=True)
                return Message.tool_result(call, error.observation())

            return Message.tool_result(call, render_result(result))

    async def invoke_all(self, calls: Sequence[ToolCall], parallel: bool = True) -> List[Message]:
        """Execute calls and return their results in request order.

        Concurrent calls are shielded from cancellation so that side effects
        already in flight complete.
        """
        if not parallel or len(calls) < 2:
            return [await self.invoke(call) for call in calls]
        tasks = [asyncio.ensure_future(self.invoke(call)) for call in calls]
        return list(await asyncio.shield(asyncio.gather(*tasks)))
