"""Tool declaration, registration and invocation."""

from .definitions import ToolDeclaration, ToolDefinition, agent_tool, tool, tools
from .invoker import ToolInvoker, render_result
from .registry import ToolRegistry, collect_tool_declarations

__all__ = [
    "ToolDefinition",
    "ToolDeclaration",
    "tool",
    "tools",
    "agent_tool",
    "ToolRegistry",
    "collect_tool_declarations",
    "ToolInvoker",
    "render_result",
]
