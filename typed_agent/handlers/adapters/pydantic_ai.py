"""Pydantic AI Model Handler Adapter.

This module provides a handler that implements the ModelHandler abstraction
on top of Pydantic AI's direct model-request API. Pydantic AI only performs
the single exchange; the run loop (tool execution, output validation,
corrections) stays in the agent orchestrator.

The structured output is exposed to the model as an output tool named after
the output schema, and regular tools as function tools.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic_ai.direct import model_request, model_request_stream
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.tools import ToolDefinition as PydanticAIToolDefinition
from pydantic_core import from_json

from typed_agent.core.logging_config import get_logger
from typed_agent.core.messages import Message, MessageRole, ToolCall, new_call_id

from ..base import ModelHandler, ModelHandlerConfig, ModelTurn, ModelTurnDelta

logger = get_logger(__name__)

# Provider identifiers accepted in "<provider>:<model>", mapped to Pydantic AI's model prefixes.
PROVIDER_PREFIXES: Dict[str, str] = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "google-gla",
    "google-gla": "google-gla",
    "google-vertex": "google-vertex",
    "groq": "groq",
    "mistral": "mistral",
    "cohere": "cohere",
    "bedrock": "bedrock",
}

SUPPORTED_PROVIDERS = list(PROVIDER_PREFIXES)

# Content returned for few-shot output calls, which never get a real tool result.
SHOT_ACKNOWLEDGEMENT = "Example response accepted."


class PydanticAIModelHandler(ModelHandler):
    """Adapter for Pydantic AI models.

    Attributes:
        model_name: Pydantic AI model identifier (e.g. 'openai:gpt-4o-mini')
    """

    def __init__(self, config: ModelHandlerConfig) -> None:
        super().__init__(config)
        prefix = PROVIDER_PREFIXES.get(config.provider, config.provider)
        self.model_name = f"{prefix}:{config.model}"

    def build_model_settings(self) -> Optional[Dict[str, Any]]:
        """Build Pydantic AI model settings from the handler configuration."""
        settings = self._config.settings()
        return settings or None

    @staticmethod
    def build_request_parameters(
        prompt_schema: Optional[Dict[str, Any]],
        schema_name: str,
        schema_description: Optional[str],
        tools: Sequence[Dict[str, Any]],
    ) -> ModelRequestParameters:
        """Describe tools and output to Pydantic AI."""
        function_tools = [
            PydanticAIToolDefinition(
                name=entry["name"],
                description=entry.get("description"),
                parameters_json_schema=entry["parameters"],
            )
            for entry in tools
        ]
        if prompt_schema is None:
            return ModelRequestParameters(function_tools=function_tools, output_mode="text", allow_text_output=True)

        output_tool = PydanticAIToolDefinition(
            name=schema_name,
            description=schema_description or f"Return the final {schema_name} result",
            parameters_json_schema=prompt_schema,
            kind="output",
        )
        return ModelRequestParameters(
            function_tools=function_tools,
            output_mode="tool",
            output_tools=[output_tool],
            allow_text_output=False,
        )

    @staticmethod
    def build_messages(
        system_prompt: Optional[str],
        shots: Sequence[Message],
        query: Sequence[Message],
    ) -> List[ModelMessage]:
        """Translate our conversation into Pydantic AI request/response messages.

        Tool calls that are never answered (few-shot output calls) get a
        synthetic return part, since providers reject dangling calls.
        """
        messages: List[ModelMessage] = []
        request_parts: List[ModelRequestPart] = []
        unanswered: Dict[str, str] = {}

        if system_prompt:
            request_parts.append(SystemPromptPart(content=system_prompt))

        def acknowledge_pending() -> None:
            for call_id, tool_name in unanswered.items():
                request_parts.append(
                    ToolReturnPart(tool_name=tool_name, content=SHOT_ACKNOWLEDGEMENT, tool_call_id=call_id)
                )
            unanswered.clear()

        for message in [*shots, *query]:
            if message.role is MessageRole.tool:
                unanswered.pop(message.tool_call_id or "", None)
                request_parts.append(
                    ToolReturnPart(
                        tool_name=message.name or "",
                        content=message.content or "",
                        tool_call_id=message.tool_call_id or new_call_id(),
                    )
                )
                continue

            if message.role is MessageRole.assistant:
                acknowledge_pending()
                if request_parts:
                    messages.append(ModelRequest(parts=request_parts))
                    request_parts = []
                parts: List[Any] = []
                if message.content:
                    parts.append(TextPart(content=message.content))
                for call in message.tool_calls:
                    parts.append(ToolCallPart(tool_name=call.name, args=call.arguments, tool_call_id=call.id))
                    unanswered[call.id] = call.name
                messages.append(ModelResponse(parts=parts))
                continue

            acknowledge_pending()
            if message.role is MessageRole.system:
                request_parts.append(SystemPromptPart(content=message.content or ""))
            else:
                request_parts.append(UserPromptPart(content=message.content or ""))

        acknowledge_pending()
        if request_parts:
            messages.append(ModelRequest(parts=request_parts))
        return messages

    @staticmethod
    def _usage(response: ModelResponse) -> Dict[str, int]:
        usage = getattr(response, "usage", None)
        if usage is None:
            return {}
        counters = {
            "input_tokens": getattr(usage, "input_tokens", None),
            "output_tokens": getattr(usage, "output_tokens", None),
        }
        return {key: value for key, value in counters.items() if isinstance(value, int)}

    def to_turn(self, response: ModelResponse, schema_name: str, structured: bool) -> ModelTurn:
        """Convert a Pydantic AI response into a :class:`ModelTurn`."""
        texts: List[str] = []
        tool_calls: List[ToolCall] = []
        output_call: Optional[ToolCall] = None
        output: Any = None

        for part in response.parts:
            if isinstance(part, TextPart):
                texts.append(part.content)
            elif isinstance(part, ToolCallPart):
                call = ToolCall(
                    id=part.tool_call_id or new_call_id(),
                    name=part.tool_name,
                    arguments=part.args if part.args is not None else {},
                )
                if structured and part.tool_name == schema_name and output_call is None:
                    output_call = call
                    try:
                        output = call.arguments_as_dict()
                    except ValueError:
                        output = call.arguments
                else:
                    tool_calls.append(call)

        return ModelTurn(
            text="".join(texts) or None,
            output_call=output_call,
            output=output,
            tool_calls=tool_calls,
            usage=self._usage(response),
        )

    @staticmethod
    def partial_output(response: ModelResponse, schema_name: str, structured: bool) -> Any:
        """Best-effort decoding of the output produced so far."""
        if not structured:
            text = "".join(part.content for part in response.parts if isinstance(part, TextPart))
            return text or None
        for part in response.parts:
            if isinstance(part, ToolCallPart) and part.tool_name == schema_name:
                if isinstance(part.args, dict):
                    return part.args
                if not part.args:
                    return None
                try:
                    return from_json(part.args, allow_partial=True)
                except ValueError:
                    return None
        return None

    async def process_query(
        self,
        prompt_schema: Optional[Dict[str, Any]],
        query: Sequence[Message],
        schema_name: str,
        schema_description: Optional[str],
        shots: Sequence[Message] = (),
        *,
        system_prompt: Optional[str] = None,
        tools: Sequence[Dict[str, Any]] = (),
    ) -> ModelTurn:
        messages = self.build_messages(system_prompt, shots, query)
        parameters = self.build_request_parameters(prompt_schema, schema_name, schema_description, tools)
        logger.debug(f"Requesting {self.model_name} with {len(messages)} message(s) and {len(tools)} tool(s)")

        response = await model_request(
            self.model_name,
            messages,
            model_settings=self.build_model_settings(),
            model_request_parameters=parameters,
        )
        return self.to_turn(response, schema_name, structured=prompt_schema is not None)

    async def stream_query(
        self,
        prompt_schema: Optional[Dict[str, Any]],
        query: Sequence[Message],
        schema_name: str,
        schema_description: Optional[str],
        shots: Sequence[Message] = (),
        *,
        system_prompt: Optional[str] = None,
        tools: Sequence[Dict[str, Any]] = (),
    ) -> AsyncIterator[ModelTurnDelta]:
        messages = self.build_messages(system_prompt, shots, query)
        parameters = self.build_request_parameters(prompt_schema, schema_name, schema_description, tools)
        structured = prompt_schema is not None
        logger.debug(f"Streaming from {self.model_name} with {len(messages)} message(s)")

        last: Any = None
        async with model_request_stream(
            self.model_name,
            messages,
            model_settings=self.build_model_settings(),
            model_request_parameters=parameters,
        ) as stream:
            async for _event in stream:
                partial = self.partial_output(stream.get(), schema_name, structured)
                if partial is not None and partial != last:
                    last = partial
                    yield ModelTurnDelta(partial=partial)
            response = stream.get()

        yield ModelTurnDelta(turn=self.to_turn(response, schema_name, structured))
