"""Base abstraction for model handlers.

A model handler performs exactly one model exchange: it receives the system
prompt, the few-shot messages, the conversation so far, the output schema and
the tool catalog, and returns the model's turn. Handlers hold only immutable
configuration, so one handler can serve concurrent runs.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from typed_agent.core.messages import Message, ToolCall


class ModelHandlerConfig(BaseModel):
    """Configuration for a model handler.

    Attributes:
        provider: Provider identifier (e.g. 'openai', 'anthropic')
        model: Model name at the provider (e.g. 'gpt-4o-mini')
        temperature: Sampling temperature
        max_tokens: Maximum tokens for the response
        top_p: Nucleus sampling parameter
        timeout: Request timeout in seconds
        model_settings: Additional provider-specific settings
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str = Field(..., description="Provider identifier")
    model: str = Field(..., description="Model name at the provider")
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(None, ge=1, description="Maximum tokens for the response")
    top_p: Optional[float] = Field(None, ge=0.0, le=1.0, description="Nucleus sampling parameter")
    timeout: Optional[float] = Field(None, gt=0, description="Request timeout in seconds")
    model_settings: Dict[str, Any] = Field(default_factory=dict, description="Additional provider settings")

    @property
    def model_id(self) -> str:
        return f"{self.provider}:{self.model}"

    def settings(self) -> Dict[str, Any]:
        """Merge the explicit sampling parameters with ``model_settings``."""
        settings: Dict[str, Any] = {}
        for key in ("temperature", "max_tokens", "top_p", "timeout"):
            value = getattr(self, key)
            if value is not None:
                settings[key] = value
        settings.update(self.model_settings)
        return settings


class ModelTurn(BaseModel):
    """One model response.

    Attributes:
        text: Free text produced by the model
        output_call: Call to the output tool, when the model answered with a structured result
        output: Decoded arguments of ``output_call`` (raw text if they were not valid JSON)
        tool_calls: Calls to regular tools, in the order the model made them
        usage: Token usage reported by the provider
    """

    text: Optional[str] = Field(None, description="Free text content")
    output_call: Optional[ToolCall] = Field(None, description="Call to the output tool")
    output: Any = Field(None, description="Structured output candidate")
    tool_calls: List[ToolCall] = Field(default_factory=list, description="Regular tool calls")
    usage: Dict[str, int] = Field(default_factory=dict, description="Token usage")

    @property
    def output_call_id(self) -> Optional[str]:
        return self.output_call.id if self.output_call is not None else None

    @property
    def has_output_call(self) -> bool:
        return self.output_call is not None

    def to_message(self) -> Message:
        """Assistant message recording this turn in the conversation history."""
        calls = list(self.tool_calls)
        if self.output_call is not None:
            calls.append(self.output_call)
        return Message.assistant(content=self.text, tool_calls=calls)


class ModelTurnDelta(BaseModel):
    """Streaming update: a partial output fragment, or the completed turn."""

    partial: Any = Field(None, description="Cumulative partial output")
    turn: Optional[ModelTurn] = Field(None, description="Completed turn (last delta only)")


class ModelHandler(ABC):
    """Abstract base class for all model handlers.

    Subclasses must implement:
    - process_query(): perform one model exchange

    Subclasses may override:
    - stream_query(): stream the exchange (default: a single delta carrying the turn)
    """

    def __init__(self, config: ModelHandlerConfig) -> None:
        """Initialize the handler with configuration.

        Args:
            config: ModelHandlerConfig instance with model parameters
        """
        self._config = config

    @property
    def config(self) -> ModelHandlerConfig:
        """Get the handler configuration."""
        return self._config

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    @abstractmethod
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
        """Perform one model exchange.

        Args:
            prompt_schema: JSON schema of the structured output (None for text output)
            query: Conversation so far: the user input, previous turns and tool results
            schema_name: Name of the output tool
            schema_description: Description of the output
            shots: Few-shot messages placed before the conversation
            system_prompt: Assembled system prompt
            tools: Tool catalog entries (``{name, description, parameters}``)

        Returns:
            The model's turn
        """

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
        """Stream one model exchange; the last delta carries the completed turn."""
        turn = await self.process_query(
            prompt_schema,
            query,
            schema_name,
            schema_description,
            shots,
            system_prompt=system_prompt,
            tools=tools,
        )
        yield ModelTurnDelta(turn=turn)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider}, model={self.model})"
