"""Prompt assembly.

The :class:`PromptBuilder` turns an agent's :class:`PromptSpec` into the
system prompt and the few-shot messages sent to the model handler:

* static segments declared on the class, top-most decorator first
* dynamic segments computed by instance methods, in declaration order
* the rendered output schema (structured outputs only)
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from typed_agent.core.errors import ConfigError, PromptGenerationError
from typed_agent.core.logging_config import get_logger
from typed_agent.core.messages import Message, ToolCall, serialize_value
from typed_agent.schema.types import ScalarSchema, SchemaLike

from .translator import JsonSchemaTranslator, Translator

logger = get_logger(__name__)

SEGMENT_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class ShotExample:
    """An example request/response pair used to steer output formatting."""

    example_request: Any
    example_response: Any


@dataclass
class PromptSpec:
    """Everything the builder needs to assemble the prompt of one agent.

    Attributes:
        static_segments: Fixed prompt text, in final order
        dynamic_providers: Unbound methods returning a prompt fragment (sync or async)
        output_schema: Schema of the agent output, if any
        shots: Few-shot examples
    """

    static_segments: List[str] = field(default_factory=list)
    dynamic_providers: List[Callable[..., Any]] = field(default_factory=list)
    output_schema: Optional[SchemaLike] = None
    shots: List[ShotExample] = field(default_factory=list)


class PromptBuilder:
    """Builds system prompts and shot messages."""

    def __init__(self, translator: Optional[Translator] = None) -> None:
        self.translator = translator or JsonSchemaTranslator()

    def generate_prompt(self, schema: SchemaLike) -> str:
        """Render ``schema`` as model-facing instruction text.

        Raises:
            PromptGenerationError: If the schema cannot be rendered
        """
        try:
            rendered = self.translator.translate(schema)
        except Exception as e:
            raise PromptGenerationError(e) from e
        return (
            f"Respond by calling the `{schema.name}` tool with arguments matching this JSON schema:\n{rendered}"
        )

    async def resolve_dynamic(self, providers: Sequence[Callable[..., Any]], instance: Any) -> List[str]:
        """Invoke dynamic prompt providers bound to ``instance``, in order.

        Raises:
            ConfigError: If a provider returns something other than a string
        """
        fragments: List[str] = []
        for provider in providers:
            bound = provider.__get__(instance, type(instance)) if instance is not None else provider
            result = bound()
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, str):
                name = getattr(provider, "__qualname__", repr(provider))
                raise ConfigError(f"System prompt provider '{name}' must return a string, got {type(result).__name__}")
            fragments.append(result)
        return fragments

    async def build_system_prompt(self, spec: PromptSpec, instance: Any = None) -> str:
        """Assemble the full system prompt for one run."""
        segments = list(spec.static_segments)
        segments.extend(await self.resolve_dynamic(spec.dynamic_providers, instance))
        if spec.output_schema is not None and not spec.output_schema.is_text:
            segments.append(self.generate_prompt(spec.output_schema))
        prompt = SEGMENT_SEPARATOR.join(segment for segment in segments if segment)
        logger.debug(f"Built system prompt with {len(segments)} segment(s), {len(prompt)} chars")
        return prompt

    def generate_shots(self, schema: SchemaLike, shots: Sequence[ShotExample], query: Any = None) -> List[Message]:
        """Render shots as alternating user / assistant messages.

        For structured outputs each example response becomes the arguments of
        a call to the output tool named after ``schema``; text outputs have no
        output tool, so the response is the assistant text. ``N`` shots yield
        ``2N`` messages.

        Raises:
            PromptGenerationError: If an example cannot be serialized
        """
        if query is not None:
            logger.debug(f"Generating {len(shots)} shot(s) for query of type {type(query).__name__}")
        messages: List[Message] = []
        try:
            for index, shot in enumerate(shots, start=1):
                arguments = schema.dump(shot.example_response)
                messages.append(Message.user(serialize_value(shot.example_request)))
                if schema.is_text:
                    messages.append(Message.assistant(content=serialize_value(arguments)))
                    continue
                if isinstance(schema, ScalarSchema):
                    arguments = {"response": arguments}
                call = ToolCall(id=f"shot_{index}", name=schema.name, arguments=serialize_value(arguments))
                messages.append(Message.assistant(tool_calls=[call]))
        except Exception as e:
            raise PromptGenerationError(e) from e
        return messages
