"""
typed-agent: typed, schema-validated LLM agents.

Declare an agent as a class, describe its input and output with ``@schema``
types, expose methods as tools, and let the orchestrator drive the model
until it produces a validated result.
"""

from typed_agent.agent import (
    Agent,
    AgentRunResult,
    AgentStream,
    input_type,
    model,
    output_type,
    shots,
    system_prompt,
)
from typed_agent.core.errors import (
    AgentError,
    ConfigError,
    MaxRoundsExceededError,
    OutputValidationError,
    PromptGenerationError,
    RunError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    TransportError,
    TypeConflictError,
    ValidationError,
)
from typed_agent.handlers import ModelHandler, ModelHandlerConfig, ModelTurn, ModelTurnDelta
from typed_agent.prompt import ShotExample
from typed_agent.schema import (
    array_items,
    cuid,
    email,
    enum_values,
    example,
    exclusive_maximum,
    exclusive_minimum,
    integer,
    ip,
    iso_datetime,
    max_items,
    max_length,
    maximum,
    min_items,
    min_length,
    minimum,
    multiple_of,
    optional,
    pattern,
    prop,
    schema,
    unique_items,
    url,
    uuid,
)
from typed_agent.tools import ToolDefinition, agent_tool, tool, tools

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentRunResult",
    "AgentStream",
    "model",
    "system_prompt",
    "input_type",
    "output_type",
    "shots",
    "ShotExample",
    "tool",
    "tools",
    "agent_tool",
    "ToolDefinition",
    "ModelHandler",
    "ModelHandlerConfig",
    "ModelTurn",
    "ModelTurnDelta",
    "schema",
    "prop",
    "optional",
    "example",
    "enum_values",
    "array_items",
    "email",
    "url",
    "pattern",
    "uuid",
    "cuid",
    "iso_datetime",
    "ip",
    "min_length",
    "max_length",
    "minimum",
    "maximum",
    "exclusive_minimum",
    "exclusive_maximum",
    "multiple_of",
    "integer",
    "min_items",
    "max_items",
    "unique_items",
    "AgentError",
    "ConfigError",
    "TypeConflictError",
    "PromptGenerationError",
    "ValidationError",
    "ToolError",
    "ToolNotFoundError",
    "ToolExecutionError",
    "RunError",
    "OutputValidationError",
    "MaxRoundsExceededError",
    "TransportError",
]
