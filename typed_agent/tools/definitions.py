"""Tool definitions for agent capabilities.

This module defines :class:`ToolDefinition` and the declarative helpers that
produce them:

* :func:`tool` marks an agent method as a tool
* :func:`tools` attaches ready-made definitions to an agent class
* :func:`agent_tool` wraps another agent so it can be called as a tool
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, get_type_hints

from pydantic import BaseModel, ConfigDict, Field

from typed_agent.core.errors import ConfigError, ToolError
from typed_agent.schema.synthesizer import get_synthesizer
from typed_agent.schema.types import BaseKind, ConstrainedType, Schema, SchemaLike

TOOL_ATTR = "__typed_agent_tool__"
EXTRA_TOOLS_ATTR = "__typed_agent_extra_tools__"

F = TypeVar("F", bound=Callable[..., Any])
C = TypeVar("C", bound=type)


class ToolDefinition(BaseModel):
    """Pydantic model for tool definitions.

    Provides a structured way to describe a tool to the model (name,
    description, parameter schema) together with the handler that executes it.
    """

    name: str = Field(..., description="Unique identifier for the tool")
    description: str = Field(..., description="Human-readable description of what the tool does")
    parameters: Any = Field(..., description="Schema the call arguments are validated against")
    handler: Optional[Callable[..., Any]] = Field(
        default=None,
        description="Handler executing the tool, sync or async (can be set later)",
    )
    takes_params: bool = Field(default=True, description="Whether the handler receives the validated arguments")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert tool definition to dictionary format.

        Returns:
            Dictionary representation of tool definition with JSON schema
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.json_schema(),
        }

    def has_handler(self) -> bool:
        return self.handler is not None

    def bind(self, handler: Callable[..., Any]) -> "ToolDefinition":
        """Return a copy of this definition executing ``handler``."""
        return self.model_copy(update={"handler": handler})

    async def call(self, params: Any) -> Any:
        """Execute the handler with already validated parameters.

        Raises:
            ToolError: If no handler has been set
        """
        if self.handler is None:
            raise ToolError(self.name, f"Tool '{self.name}' has no handler")
        result = self.handler(params) if self.takes_params else self.handler()
        if inspect.isawaitable(result):
            result = await result
        return result


@dataclass(frozen=True)
class ToolDeclaration:
    """What :func:`tool` records on a method."""

    name: str
    description: str
    parameters: SchemaLike
    takes_params: bool


def empty_schema(name: str) -> Schema:
    return Schema.of(f"{name}_params", {})


def _parameter_schema(func: Callable[..., Any], tool_name: str) -> Tuple[SchemaLike, bool]:
    params = [
        parameter
        for parameter in list(inspect.signature(func).parameters.values())[1:]
        if parameter.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if not params:
        return empty_schema(tool_name), False
    if len(params) > 1:
        raise ConfigError(
            f"Tool '{tool_name}' must take a single parameter object, got {len(params)} parameters; "
            f"group them in a @schema class"
        )

    try:
        hints = get_type_hints(func)
    except NameError as exc:
        raise ConfigError(f"Cannot resolve the parameter annotation of tool '{tool_name}': {exc}") from exc
    annotation = hints.get(params[0].name)
    if annotation is None:
        raise ConfigError(f"Parameter '{params[0].name}' of tool '{tool_name}' needs a type annotation")

    synthesizer = get_synthesizer()
    if isinstance(annotation, type) and (issubclass(annotation, BaseModel) or synthesizer.is_declared(annotation)):
        return synthesizer.resolve_schema(annotation), True
    raise ConfigError(
        f"Parameter of tool '{tool_name}' must be a @schema class or a pydantic model, got {annotation!r}"
    )


def tool(description: str, params: Any = None, name: Optional[str] = None) -> Callable[[F], F]:
    """Mark an agent method as a tool.

    The parameter schema is ``params`` when given, otherwise it is taken from
    the annotation of the method's single parameter. A method without
    parameters gets an empty schema.

    Args:
        description: What the tool does, shown to the model
        params: Explicit parameter schema source
        name: Tool name (defaults to the method name)

    Raises:
        ConfigError: If the parameter schema cannot be determined
    """

    def decorate(func: F) -> F:
        tool_name = name or func.__name__
        if params is not None:
            parameters = get_synthesizer().resolve_schema(params)
            takes_params = len(inspect.signature(func).parameters) > 1
        else:
            parameters, takes_params = _parameter_schema(func, tool_name)
        setattr(func, TOOL_ATTR, ToolDeclaration(tool_name, description, parameters, takes_params))
        return func

    return decorate


def tools(*definitions: ToolDefinition) -> Callable[[C], C]:
    """Attach ready-made tool definitions to an agent class."""

    def decorate(cls: C) -> C:
        inherited: List[ToolDefinition] = list(getattr(cls, EXTRA_TOOLS_ATTR, []))
        setattr(cls, EXTRA_TOOLS_ATTR, inherited + list(definitions))
        return cls

    return decorate


AGENT_TOOL_INPUT = Schema.of(
    "AgentToolInput",
    {"input": ConstrainedType(BaseKind.string, description="Input passed to the agent")},
)


def agent_tool(agent_cls: type, description: str, name: Optional[str] = None) -> ToolDefinition:
    """Wrap an agent class as a tool taking ``{"input": str}``.

    A fresh agent is created per call, so nested runs share no state.
    """

    async def run_agent(args: Dict[str, Any]) -> Any:
        return await agent_cls().run(args["input"])

    return ToolDefinition(
        name=name or agent_cls.__name__,
        description=description,
        parameters=AGENT_TOOL_INPUT,
        handler=run_agent,
    )
