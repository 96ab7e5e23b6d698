"""Error types for typed-agent.

Defines the exception hierarchy raised while declaring agents, synthesizing
schemas, invoking tools and driving a run. Tool-level errors are usually not
raised to the caller at all: the invoker renders them as observations for the
model through :meth:`AgentError.observation`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class AgentError(Exception):
    """Base error for all typed-agent exceptions."""

    def observation(self) -> str:
        """Render the error as text the model can read and react to."""
        return f"{type(self).__name__}: {self}"


class ConfigError(AgentError):
    """Raised for invalid declarations: bad annotations, unknown providers, empty enums."""


class TypeConflictError(ConfigError):
    """Raised when rules of incompatible families are attached to one property."""

    def __init__(self, owner: str, property_name: str, families: Sequence[str]) -> None:
        self.owner = owner
        self.property_name = property_name
        self.families = list(families)
        super().__init__(
            f"Property '{property_name}' of '{owner}' mixes incompatible rule families: {', '.join(self.families)}"
        )


class PromptGenerationError(AgentError):
    """Raised when the model-facing prompt cannot be rendered."""

    def __init__(self, cause: object) -> None:
        super().__init__(f"Failed to generate prompt: {cause}")


class ValidationError(AgentError):
    """Raised when a value does not satisfy a schema.

    Attributes:
        schema_name: Name of the schema the value was checked against
        errors: Structured error entries (pydantic's ``errors()`` format)
    """

    def __init__(self, schema_name: str, errors: Optional[List[Dict[str, Any]]] = None, message: Optional[str] = None) -> None:
        self.schema_name = schema_name
        self.errors = errors or []
        super().__init__(message or self._summarize())

    def _summarize(self) -> str:
        if not self.errors:
            return f"Value does not match schema '{self.schema_name}'"
        lines = [f"{len(self.errors)} validation error(s) for '{self.schema_name}':"]
        for error in self.errors:
            location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
            lines.append(f"  {location}: {error.get('msg', 'invalid value')}")
        return "\n".join(lines)


class ToolError(AgentError):
    """Base error for tool dispatch failures."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class ToolNotFoundError(ToolError):
    """Raised when the model asks for a tool the agent does not expose."""

    def __init__(self, tool_name: str, available: Sequence[str] = ()) -> None:
        self.available = list(available)
        hint = f" Available tools: {', '.join(self.available)}" if self.available else " No tools are available."
        super().__init__(tool_name, f"Unknown tool '{tool_name}'.{hint}")


class ToolExecutionError(ToolError):
    """Raised when a tool body fails."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(tool_name, f"Tool '{tool_name}' failed: {type(cause).__name__}: {cause}")


class RunError(AgentError):
    """Base error for terminal run failures.

    Attributes:
        rounds: Model exchanges completed when the run stopped
        corrections: Correction rounds spent when the run stopped
        last_output: Last candidate output the model produced, if any
    """

    def __init__(self, message: str, *, rounds: int = 0, corrections: int = 0, last_output: Any = None) -> None:
        self.rounds = rounds
        self.corrections = corrections
        self.last_output = last_output
        super().__init__(message)


class OutputValidationError(RunError):
    """Raised when the final answer still fails the output schema after the correction budget."""

    def __init__(self, cause: ValidationError, **context: Any) -> None:
        self.diagnostics = cause.errors
        super().__init__(
            f"Output failed validation after {context.get('corrections', 0)} correction(s): {cause}",
            **context,
        )


class MaxRoundsExceededError(RunError):
    """Raised when the round budget is exhausted without a valid answer."""

    def __init__(self, max_rounds: int, **context: Any) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"Run did not converge within {max_rounds} round(s)", **context)


class TransportError(RunError):
    """Raised when the model handler call itself fails (network, provider)."""

    def __init__(self, cause: BaseException, **context: Any) -> None:
        self.cause = cause
        super().__init__(f"Model call failed: {type(cause).__name__}: {cause}", **context)
